from datetime import date

import pytest

from pickup_sms.application import EligibilityPipeline, daily_window, hourly_window
from pickup_sms.application.jobs import DAILY_REVIEW_JOB, LOCKER_REMINDER_JOB
from pickup_sms.domain import OutcomeStatus
from pickup_sms.infrastructure.persistence import JobAlreadyRunningError

from .conftest import RecordingProvider, make_candidate

WINDOW = daily_window(date(2024, 6, 2))
FEATURE = DAILY_REVIEW_JOB.name


class BrokenProvider(RecordingProvider):
    """Fails like a gateway client tripping over an unexpected response body."""

    def __init__(self, broken_for=()):
        super().__init__()
        self.broken_for = set(broken_for)

    def send_message(self, phone, text):
        if phone in self.broken_for:
            raise AttributeError("'NoneType' object has no attribute 'get'")
        return super().send_message(phone, text)


def run(context, dry_run=False, job=DAILY_REVIEW_JOB, window=WINDOW):
    return EligibilityPipeline(context, job).run(window, dry_run=dry_run)


def statuses(context, feature=FEATURE):
    return {e.booking_id: e.status for e in context.send_log.recent(feature)}


class TestDailyReviewRun:
    def test_direct_link_fallback_and_foreign_number(self, context, source, provider):
        source.candidates = [
            make_candidate(1, "+447400123456", city="London"),
            make_candidate(2, "07911000000", city="Glasgow"),
            make_candidate(3, "+12015550123", city="London"),
        ]

        stats = run(context).stats

        assert (stats.fetched, stats.sent, stats.skipped_non_domestic, stats.failed) == (3, 2, 1, 0)
        assert stats.fallback_used == 1
        assert [phone for phone, _ in provider.sent] == ["+447400123456", "+447911000000"]

        logged = {e.booking_id: e for e in context.send_log.recent(FEATURE)}
        assert logged["1"].status == "sent" and not logged["1"].used_fallback
        assert logged["2"].status == "sent" and logged["2"].used_fallback
        assert logged["3"].status == "skipped_non_uk"
        assert logged["1"].provider_message_id == "tm-1"

    def test_london_glasgow_and_us_numbers(self, context, source, provider):
        source.candidates = [
            make_candidate(1, "+447911123456", city="London"),
            make_candidate(2, "07911000000", city="Glasgow"),
            make_candidate(3, "+14155550100", city="London"),
        ]

        stats = run(context).stats

        assert (stats.fetched, stats.sent, stats.skipped_non_domestic, stats.failed) == (3, 2, 1, 0)
        assert stats.fallback_used == 1
        assert [phone for phone, _ in provider.sent] == ["+447911123456", "+447911000000"]
        assert statuses(context)["3"] == "skipped_non_uk"

    def test_message_text(self, context, source, provider):
        source.candidates = [
            make_candidate(1, "07400123456", first_name="Anna"),
            make_candidate(2, "07911000000", first_name=None),
        ]

        run(context)

        first, second = (text for _, text in provider.sent)
        assert first.startswith("Hi Anna\nStasher would love your feedback! Leave a review here: https://g.page/r/london-")
        assert second.startswith("Hi\nStasher would love your feedback!")

    def test_each_skip_has_exactly_one_reason(self, context, source, ledger, provider):
        ledger.add("+447911000000")
        source.candidates = [
            make_candidate(1, None),
            make_candidate(2, "12345"),
            make_candidate(3, "+12015550123"),
            make_candidate(4, "07911000000"),
        ]

        stats = run(context).stats

        assert stats.skipped_no_phone == 1
        assert stats.skipped_invalid_phone == 1
        assert stats.skipped_non_domestic == 1
        assert stats.skipped_opted_out == 1
        assert stats.skipped == 4
        assert provider.sent == []
        assert len(context.send_log.recent(FEATURE)) == 4

    def test_no_link_anywhere(self, context, source, provider):
        context.links.replace({})
        source.candidates = [make_candidate(1, "07400123456", city="Glasgow")]

        stats = run(context).stats

        assert stats.skipped_no_review_link == 1
        assert provider.sent == []
        assert statuses(context) == {"1": "skipped_no_review_link"}

    def test_duplicate_row_sent_once(self, context, source, provider):
        source.candidates = [
            make_candidate(1, "07400123456"),
            make_candidate(1, "07400123456"),
        ]

        stats = run(context).stats

        assert stats.sent == 1
        assert stats.skipped_already_sent == 1
        assert len(provider.sent) == 1

    def test_rerun_for_same_window_does_not_resend(self, context, source, provider):
        source.candidates = [make_candidate(1, "07400123456")]

        assert run(context).stats.sent == 1
        second = run(context).stats

        assert second.sent == 0
        assert second.skipped_already_sent == 1
        assert len(provider.sent) == 1

    def test_failed_send_is_contained_and_retryable(self, context, source, provider):
        provider.fail_for = {"+447400123456"}
        source.candidates = [
            make_candidate(1, "07400123456"),
            make_candidate(2, "07911000000"),
        ]

        stats = run(context).stats

        assert (stats.sent, stats.failed) == (1, 1)
        failed = [e for e in context.send_log.recent(FEATURE) if e.status == "failed"]
        assert failed[0].booking_id == "1"
        assert "rejected" in failed[0].error
        assert not context.guard.is_claimed(FEATURE, "1")
        assert context.guard.is_claimed(FEATURE, "2")

        provider.fail_for = set()
        retry = run(context).stats
        assert (retry.sent, retry.skipped_already_sent) == (1, 1)

    def test_unexpected_provider_error_is_contained(self, context, source):
        context.provider = BrokenProvider(broken_for={"+447400123456"})
        source.candidates = [
            make_candidate(1, "07400123456"),
            make_candidate(2, "07911000000"),
        ]

        stats = run(context).stats

        assert (stats.sent, stats.failed) == (1, 1)
        assert [phone for phone, _ in context.provider.sent] == ["+447911000000"]
        failed = [e for e in context.send_log.recent(FEATURE) if e.status == "failed"]
        assert [e.booking_id for e in failed] == ["1"]
        assert "has no attribute" in failed[0].error
        assert not context.guard.is_claimed(FEATURE, "1")
        assert context.guard.is_claimed(FEATURE, "2")

        summary = context.runs.latest(FEATURE)
        assert summary.error is None
        assert (summary.sent_count, summary.failed_count) == (1, 1)


class TestDryRun:
    def test_dry_run_is_audited_like_live(self, context, source, provider):
        source.candidates = [make_candidate(1, "07400123456")]

        stats = run(context, dry_run=True).stats

        assert stats.sent == 1 and stats.dry_run
        assert provider.sent == []
        entry = context.send_log.recent(FEATURE)[0]
        assert entry.status == "sent"
        assert entry.provider_message_id.startswith("dry-run-")
        assert not context.guard.is_claimed(FEATURE, "1")
        assert context.runs.latest(FEATURE).dry_run

    def test_dry_run_still_suppresses_in_run_duplicates(self, context, source):
        source.candidates = [make_candidate(1, "07400123456"), make_candidate(1, "07400123456")]

        stats = run(context, dry_run=True).stats

        assert (stats.sent, stats.skipped_already_sent) == (1, 1)


class TestRunSummary:
    def test_summary_finished_with_counts(self, context, source):
        source.candidates = [make_candidate(1, "07400123456"), make_candidate(2, None)]

        outcome = run(context)
        summary = context.runs.get(outcome.run_id)

        assert summary.is_finished
        assert summary.error is None
        assert (summary.fetched_count, summary.sent_count, summary.skipped_count, summary.failed_count) == (2, 1, 1, 0)

    def test_source_failure_aborts_and_stamps_summary(self, context, source):
        source.error = RuntimeError("connection refused")

        with pytest.raises(RuntimeError):
            run(context)

        summary = context.runs.latest(FEATURE)
        assert summary.is_finished
        assert summary.error == "connection refused"
        assert source.opened == source.released == 1

    def test_live_run_without_provider_stamps_summary(self, context, source):
        context.provider = None
        source.candidates = [make_candidate(1, "07400123456")]

        with pytest.raises(ValueError):
            run(context)

        summary = context.runs.latest(FEATURE)
        assert summary.is_finished
        assert not summary.dry_run
        assert summary.error == "A provider is required unless dry_run is set"
        assert context.send_log.recent(FEATURE) == []
        assert context.locks.holder(FEATURE) is None

    def test_lock_held_elsewhere(self, context, source):
        assert context.locks.acquire(FEATURE, "someone-else")

        with pytest.raises(JobAlreadyRunningError):
            run(context)

        assert context.runs.latest(FEATURE) is None
        assert source.opened == 0

    def test_lock_released_after_run(self, context, source):
        run(context)
        assert context.locks.holder(FEATURE) is None


class TestPreview:
    def test_preview_annotates_without_writing(self, context, source, provider):
        source.candidates = [
            make_candidate(1, "07400123456", city="Glasgow"),
            make_candidate(2, "+12015550123"),
        ]

        decisions = EligibilityPipeline(context, DAILY_REVIEW_JOB).preview(WINDOW)

        assert [d.status for d in decisions] == [OutcomeStatus.ELIGIBLE, OutcomeStatus.SKIPPED_NON_DOMESTIC]
        assert decisions[0].used_fallback
        assert decisions[0].to_dict()["phone_e164"] == "+447400123456"
        assert decisions[1].reason == "Non-UK phone number"
        assert provider.sent == []
        assert context.send_log.recent() == []
        assert context.runs.latest(FEATURE) is None


class TestLockerReminder:
    def test_no_review_link_needed(self, context, source, provider):
        context.links.replace({})
        source.candidates = [
            make_candidate(10, "07400123456", city="Nowhere", first_name="Sam"),
            make_candidate(11, "07911000000", city=None, first_name=None),
        ]

        stats = run(context, job=LOCKER_REMINDER_JOB, window=hourly_window()).stats

        assert stats.sent == 2
        assert source.queries[0][0] == "locker"
        first, second = (text for _, text in provider.sent)
        assert first.startswith("Hi Sam\n\nYour locker booking with Stasher ended an hour ago.")
        assert second.startswith("Hi there\n\n")

    def test_guards_are_per_job(self, context, source, provider):
        source.candidates = [make_candidate(1, "07400123456")]

        run(context)
        run(context, job=LOCKER_REMINDER_JOB, window=hourly_window())

        assert len(provider.sent) == 2
