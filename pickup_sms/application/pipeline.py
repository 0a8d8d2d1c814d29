"""
Eligibility Pipeline - Fetch, Filter, Send, Audit
=================================================

One run goes through:
    started   -> run summary row created (before any fetch)
    fetched   -> candidates for the window, fetched_count recorded
    filtering -> first failing check wins, one skip reason per candidate
    sending   -> sequential, rate limited, per-candidate failures contained
    finished  -> summary stamped with end time and counts
    aborted   -> summary stamped with the error, error re-raised

The booking source connection is held for the whole run and released on
every exit path. The run also holds the advisory lock for its job name.
"""

import logging
import sqlite3
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Set

from ..domain import (
    Candidate,
    CandidateDecision,
    OutcomeStatus,
    RunStats,
    TimeWindow,
    is_domestic,
    normalize_phone,
    render_template,
)
from ..infrastructure.persistence import BookingReader
from ..infrastructure.sms import RateLimitedSender, SmsSendError
from .context import AppContext

logger = logging.getLogger(__name__)

FieldBuilder = Callable[[CandidateDecision, str], Dict[str, Optional[str]]]


@dataclass(frozen=True)
class JobDefinition:
    """What differs between job variants; the pipeline handles the rest."""
    name: str
    title: str
    fetch: Callable[[BookingReader, TimeWindow], List[Candidate]]
    build_fields: FieldBuilder
    requires_review_link: bool = True


@dataclass
class RunOutcome:
    run_id: int
    job: str
    window: TimeWindow
    stats: RunStats

    def to_dict(self) -> dict:
        return {
            "run_id": self.run_id,
            "job": self.job,
            "window": {
                "start": self.window.start.isoformat(),
                "end": self.window.end.isoformat(),
                "label": self.window.label,
            },
            **self.stats.to_dict(),
        }


class EligibilityPipeline:
    """
    Usage:
        pipeline = EligibilityPipeline(context, DAILY_REVIEW_JOB)
        outcome = pipeline.run(window, dry_run=True)
        outcome.stats.sent
    """

    def __init__(self, context: AppContext, job: JobDefinition):
        self._ctx = context
        self._job = job

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    def preview(self, window: TimeWindow) -> List[CandidateDecision]:
        """Fetch and filter only. Writes nothing and takes no lock."""
        with self._ctx.source.reader() as reader:
            candidates = self._job.fetch(reader, window)
        return self._filter(candidates)

    def run(self, window: TimeWindow, dry_run: bool = False) -> RunOutcome:
        """Full run under the job's advisory lock. Raises JobAlreadyRunningError."""
        with self._ctx.locks.hold(self._job.name):
            return self._run(window, dry_run)

    # ------------------------------------------------------------------
    # Run
    # ------------------------------------------------------------------

    def _run(self, window: TimeWindow, dry_run: bool) -> RunOutcome:
        dry_run = dry_run or self._ctx.settings.sms.dry_run
        stats = RunStats(dry_run=dry_run)
        runs = self._ctx.runs
        run_id = runs.start(self._job.name, dry_run=dry_run)

        mode = "DRY RUN" if dry_run else "LIVE"
        logger.info(
            f"[{self._job.name}] run {run_id} started ({mode}) "
            f"window {window.start.isoformat()} -> {window.end.isoformat()}"
        )

        try:
            # Built after the summary row so a missing provider still stamps it
            sender = self._ctx.sender(dry_run)
            with self._ctx.source.reader() as reader:
                candidates = self._job.fetch(reader, window)
                stats.fetched = len(candidates)
                runs.update(run_id, fetched_count=stats.fetched)
                logger.info(f"[{self._job.name}] fetched {stats.fetched} candidates")

                decisions = self._filter(candidates)
                eligible = []
                for decision in decisions:
                    if decision.eligible:
                        eligible.append(decision)
                    else:
                        self._record_skip(decision, stats)
                stats.eligible = len(eligible)
                runs.update(run_id, skipped_count=stats.skipped)

                self._send_all(eligible, sender, stats)
        except Exception as e:
            logger.error(f"[{self._job.name}] run {run_id} aborted: {e}")
            self._stamp(run_id, stats, error=str(e) or type(e).__name__)
            raise

        self._stamp(run_id, stats)
        logger.info(
            f"[{self._job.name}] run {run_id} finished: fetched={stats.fetched} "
            f"sent={stats.sent} skipped={stats.skipped} failed={stats.failed} "
            f"fallback={stats.fallback_used}"
        )
        return RunOutcome(run_id=run_id, job=self._job.name, window=window, stats=stats)

    def _stamp(self, run_id: int, stats: RunStats, error: Optional[str] = None) -> None:
        counts = dict(
            fetched_count=stats.fetched,
            sent_count=stats.sent,
            skipped_count=stats.skipped,
            failed_count=stats.failed,
        )
        if error is None:
            self._ctx.runs.finish(run_id, **counts)
            return
        # Storage may be what failed; the original error still propagates
        try:
            self._ctx.runs.finish(run_id, error=error, **counts)
        except sqlite3.Error:
            logger.exception(f"[{self._job.name}] could not stamp run {run_id} as aborted")

    # ------------------------------------------------------------------
    # Filtering
    # ------------------------------------------------------------------

    def _filter(self, candidates: List[Candidate]) -> List[CandidateDecision]:
        seen: Set[str] = set()
        return [self._evaluate(candidate, seen) for candidate in candidates]

    def _evaluate(self, candidate: Candidate, seen: Set[str]) -> CandidateDecision:
        phone_settings = self._ctx.settings.phone
        raw = (candidate.phone_number or "").strip()
        if not raw:
            return CandidateDecision(candidate, OutcomeStatus.SKIPPED_NO_PHONE)

        e164 = normalize_phone(raw, phone_settings.default_region)
        if not e164:
            return CandidateDecision(candidate, OutcomeStatus.SKIPPED_INVALID_PHONE)

        if not is_domestic(
            e164, raw, phone_settings.default_region, phone_settings.domestic_trunk_prefix
        ):
            return CandidateDecision(candidate, OutcomeStatus.SKIPPED_NON_DOMESTIC, phone_e164=e164)

        if self._ctx.opt_outs.is_opted_out(e164):
            return CandidateDecision(candidate, OutcomeStatus.SKIPPED_OPTED_OUT, phone_e164=e164)

        review_url, used_fallback = None, False
        if self._job.requires_review_link:
            resolution = self._ctx.links.resolve(candidate.city)
            if not resolution.found:
                return CandidateDecision(
                    candidate, OutcomeStatus.SKIPPED_NO_REVIEW_LINK, phone_e164=e164
                )
            review_url, used_fallback = resolution.url, resolution.used_fallback

        booking_id = str(candidate.booking_id)
        if booking_id in seen or self._ctx.guard.is_claimed(self._job.name, booking_id):
            return CandidateDecision(
                candidate,
                OutcomeStatus.SKIPPED_ALREADY_SENT,
                phone_e164=e164,
                review_url=review_url,
                used_fallback=used_fallback,
            )
        seen.add(booking_id)

        return CandidateDecision(
            candidate,
            OutcomeStatus.ELIGIBLE,
            phone_e164=e164,
            review_url=review_url,
            used_fallback=used_fallback,
        )

    # ------------------------------------------------------------------
    # Sending
    # ------------------------------------------------------------------

    def _send_all(
        self,
        eligible: List[CandidateDecision],
        sender: RateLimitedSender,
        stats: RunStats,
    ) -> None:
        template = self._ctx.templates.get(self._job.name)
        brand = self._ctx.settings.review.brand_name

        for decision in eligible:
            candidate = decision.candidate
            claimed = False
            try:
                text = render_template(template, self._job.build_fields(decision, brand))

                # Durable claim just before dispatch; dry runs never touch the guard
                if not sender.dry_run:
                    claimed = self._ctx.guard.claim(
                        self._job.name, candidate.booking_id, decision.phone_e164
                    )
                    if not claimed:
                        decision.status = OutcomeStatus.SKIPPED_ALREADY_SENT
                        self._record_skip(decision, stats)
                        continue

                result = sender.send(decision.phone_e164, text)
            except SmsSendError as e:
                logger.error(
                    f"[{self._job.name}] booking {candidate.booking_id}: send failed "
                    f"({e.code}) {e.message}"
                )
                self._record_failure(decision, stats, str(e), claimed)
                continue
            except Exception as e:
                logger.exception(
                    f"[{self._job.name}] booking {candidate.booking_id}: unexpected send error"
                )
                self._record_failure(decision, stats, str(e) or type(e).__name__, claimed)
                continue

            stats.sent += 1
            if decision.used_fallback:
                stats.fallback_used += 1
            logger.info(
                f"[{self._job.name}] booking {candidate.booking_id}: sent "
                f"(id {result.message_id}{', fallback link' if decision.used_fallback else ''})"
            )
            self._log(decision, OutcomeStatus.SENT, provider_message_id=result.message_id)

    def _record_failure(
        self,
        decision: CandidateDecision,
        stats: RunStats,
        error: str,
        claimed: bool,
    ) -> None:
        stats.failed += 1
        self._log(decision, OutcomeStatus.FAILED, error=error)
        # Let a later run retry this booking
        if claimed:
            self._ctx.guard.release(self._job.name, decision.candidate.booking_id)

    # ------------------------------------------------------------------
    # Audit
    # ------------------------------------------------------------------

    def _record_skip(self, decision: CandidateDecision, stats: RunStats) -> None:
        stats.count_skip(decision.status)
        logger.info(
            f"[{self._job.name}] booking {decision.candidate.booking_id}: "
            f"{decision.status.value} ({decision.reason})"
        )
        self._log(decision, decision.status, error=decision.reason)

    def _log(
        self,
        decision: CandidateDecision,
        status: OutcomeStatus,
        provider_message_id: Optional[str] = None,
        error: Optional[str] = None,
    ) -> None:
        candidate = decision.candidate
        self._ctx.send_log.append(
            feature=self._job.name,
            booking_id=candidate.booking_id,
            phone=decision.phone_e164 or candidate.phone_number or "unknown",
            status=status,
            pickup_time=candidate.pickup.isoformat() if candidate.pickup else None,
            provider_message_id=provider_message_id,
            used_fallback=decision.used_fallback,
            error=error,
        )
