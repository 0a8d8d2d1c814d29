"""
Job Variants - Daily Review Request and Locker Pickup Reminder
==============================================================

Two thin instantiations of the eligibility pipeline. They differ only in
time window, candidate query, message template and whether a review link
is required.

Windows are computed in Europe/London:
    daily  -> [anchor - 1 day 00:00, anchor 00:00), anchor defaults to today
    hourly -> [start of previous hour, start of current hour)
"""

import logging
from datetime import date, datetime, time, timedelta, timezone
from typing import Callable, Dict, List, Optional, Tuple
from zoneinfo import ZoneInfo

from ..domain import CandidateDecision, TimeWindow
from ..domain.templates import greeting
from ..infrastructure.config import TIMEZONE
from .context import AppContext
from .pipeline import EligibilityPipeline, JobDefinition, RunOutcome

logger = logging.getLogger(__name__)

LONDON = ZoneInfo(TIMEZONE)

DAILY_REVIEW_REQUEST = "daily_review_request"
LOCKER_PICKUP_REMINDER = "locker_pickup_reminder"


class UnknownJobError(KeyError):
    """No job is registered under this name."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(name)

    def __str__(self) -> str:
        return f"Unknown job: {self.name}"


class InvalidAnchorDateError(ValueError):
    """Anchor date is malformed or in the future."""


# ----------------------------------------------------------------------
# Windows
# ----------------------------------------------------------------------

def london_today(now: Optional[datetime] = None) -> date:
    now = now or datetime.now(timezone.utc)
    return now.astimezone(LONDON).date()


def parse_anchor_date(value: Optional[str], now: Optional[datetime] = None) -> Optional[date]:
    """Parse YYYY-MM-DD; reject malformed input and dates after today (London)."""
    if value is None or not value.strip():
        return None
    try:
        anchor = datetime.strptime(value.strip(), "%Y-%m-%d").date()
    except ValueError:
        raise InvalidAnchorDateError(f"Invalid date {value!r}; expected YYYY-MM-DD")
    if anchor > london_today(now):
        raise InvalidAnchorDateError(f"Date {anchor.isoformat()} is in the future")
    return anchor


def daily_window(anchor: Optional[date] = None, now: Optional[datetime] = None) -> TimeWindow:
    """Whole London calendar day before the anchor (23 or 25 hours across DST)."""
    anchor = anchor or london_today(now)
    day = anchor - timedelta(days=1)
    return TimeWindow(
        start=datetime.combine(day, time.min, tzinfo=LONDON),
        end=datetime.combine(anchor, time.min, tzinfo=LONDON),
        label=day.isoformat(),
    )


def hourly_window(now: Optional[datetime] = None) -> TimeWindow:
    """
    Previous full clock hour.

    Bounds stay in UTC: London offsets are whole hours, and UTC keeps the
    window one hour wide when the clocks go back.
    """
    now = now or datetime.now(timezone.utc)
    end = now.astimezone(timezone.utc).replace(minute=0, second=0, microsecond=0)
    start = end - timedelta(hours=1)
    return TimeWindow(
        start=start,
        end=end,
        label=start.astimezone(LONDON).strftime("%Y-%m-%d %H:00"),
    )


# ----------------------------------------------------------------------
# Message fields
# ----------------------------------------------------------------------

def _fields(decision: CandidateDecision, brand: str, fallback_greeting: str) -> Dict[str, Optional[str]]:
    c = decision.candidate
    return {
        "greeting": greeting(c.first_name, fallback_greeting),
        "first_name": (c.first_name or "").strip() or None,
        "last_name": (c.last_name or "").strip() or None,
        "full_name": c.full_name or None,
        "stashpoint_name": c.stashpoint_name,
        "city": c.city,
        "booking_id": c.booking_id,
        "review_url": decision.review_url,
        "access_code": c.access_code,
        "brand": brand,
    }


def review_request_fields(decision: CandidateDecision, brand: str) -> Dict[str, Optional[str]]:
    return _fields(decision, brand, "Hi")


def locker_reminder_fields(decision: CandidateDecision, brand: str) -> Dict[str, Optional[str]]:
    return _fields(decision, brand, "Hi there")


DAILY_REVIEW_JOB = JobDefinition(
    name=DAILY_REVIEW_REQUEST,
    title="Daily review request",
    fetch=lambda reader, window: reader.review_pickups(window),
    build_fields=review_request_fields,
    requires_review_link=True,
)

LOCKER_REMINDER_JOB = JobDefinition(
    name=LOCKER_PICKUP_REMINDER,
    title="Locker pickup reminder",
    fetch=lambda reader, window: reader.locker_pickups(window),
    build_fields=locker_reminder_fields,
    requires_review_link=False,
)

JOBS: Dict[str, JobDefinition] = {
    DAILY_REVIEW_JOB.name: DAILY_REVIEW_JOB,
    LOCKER_REMINDER_JOB.name: LOCKER_REMINDER_JOB,
}


# ----------------------------------------------------------------------
# Runner
# ----------------------------------------------------------------------

class JobRunner:
    """
    Entry point shared by the scheduler, the HTTP API and the CLI.

    Usage:
        runner = JobRunner(context)
        outcome = runner.run("daily_review_request", anchor_date="2024-06-02")
        window, decisions = runner.preview("locker_pickup_reminder")
    """

    def __init__(self, context: AppContext, clock: Optional[Callable[[], datetime]] = None):
        self._ctx = context
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    @property
    def context(self) -> AppContext:
        return self._ctx

    def job(self, name: str) -> JobDefinition:
        try:
            return JOBS[name]
        except KeyError:
            raise UnknownJobError(name)

    def window_for(self, name: str, anchor_date: Optional[str] = None) -> TimeWindow:
        job = self.job(name)
        now = self._clock()
        if job.name == DAILY_REVIEW_REQUEST:
            return daily_window(parse_anchor_date(anchor_date, now), now)
        if anchor_date:
            logger.info(f"[{job.name}] anchor date ignored; hourly job always uses the previous hour")
        return hourly_window(now)

    def run(self, name: str, anchor_date: Optional[str] = None, dry_run: bool = False) -> RunOutcome:
        job = self.job(name)
        window = self.window_for(name, anchor_date)
        return EligibilityPipeline(self._ctx, job).run(window, dry_run=dry_run)

    def preview(
        self, name: str, anchor_date: Optional[str] = None
    ) -> Tuple[TimeWindow, List[CandidateDecision]]:
        job = self.job(name)
        window = self.window_for(name, anchor_date)
        return window, EligibilityPipeline(self._ctx, job).preview(window)
