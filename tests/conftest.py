"""Shared test fixtures: temp SQLite, fake booking source, recording SMS provider."""

import random
from contextlib import contextmanager
from datetime import datetime, timezone

import pytest

from pickup_sms.application import AppContext
from pickup_sms.domain import Candidate
from pickup_sms.infrastructure.config import (
    DatabaseSettings,
    PhoneSettings,
    ReviewSettings,
    SchedulerSettings,
    Settings,
    SmsSettings,
    StorageSettings,
    WebSettings,
)
from pickup_sms.infrastructure.importer import ReviewLinkResolver
from pickup_sms.infrastructure.persistence import (
    Database,
    JobLock,
    JobRunStore,
    OptOutLedger,
    SendGuard,
    SendLog,
)
from pickup_sms.infrastructure.sms import SendResult, SmsProvider, SmsSendError
from pickup_sms.infrastructure.templates import TemplateStore

LONDON_LINKS = ("https://g.page/r/london-1/review", "https://g.page/r/london-2/review")


def make_candidate(booking_id, phone, city="London", first_name="Anna", **kwargs) -> Candidate:
    return Candidate(
        booking_id=str(booking_id),
        phone_number=phone,
        first_name=first_name,
        last_name=kwargs.pop("last_name", "Smith"),
        city=city,
        stashpoint_name=kwargs.pop("stashpoint_name", "Kings Cross Cafe"),
        pickup=kwargs.pop("pickup", datetime(2024, 6, 1, 12, 30, tzinfo=timezone.utc)),
        **kwargs,
    )


class FakeReader:
    def __init__(self, source):
        self._source = source

    def review_pickups(self, window):
        return self._fetch("review", window)

    def locker_pickups(self, window):
        return self._fetch("locker", window)

    def ping(self):
        if self._source.error:
            raise self._source.error
        return True

    def _fetch(self, kind, window):
        self._source.queries.append((kind, window))
        if self._source.error:
            raise self._source.error
        return list(self._source.candidates)


class FakeSource:
    """In-memory stand-in for the read-only Postgres source."""

    def __init__(self, candidates=None, error=None):
        self.candidates = list(candidates or [])
        self.error = error
        self.queries = []
        self.opened = 0
        self.released = 0
        self.closed = False

    @contextmanager
    def reader(self):
        self.opened += 1
        try:
            yield FakeReader(self)
        finally:
            self.released += 1

    def ping(self):
        with self.reader() as reader:
            return reader.ping()

    def close(self):
        self.closed = True


class RecordingProvider(SmsProvider):
    """Records every send; phones in fail_for are rejected with a 400."""

    def __init__(self, fail_for=()):
        self.sent = []
        self.fail_for = set(fail_for)
        self.closed = False

    def send_message(self, phone, text):
        if phone in self.fail_for:
            raise SmsSendError(400, f"Phone {phone} rejected")
        self.sent.append((phone, text))
        return SendResult(message_id=f"tm-{len(self.sent)}", phone=phone)

    def close(self):
        self.closed = True


@pytest.fixture
def settings(tmp_path):
    return Settings(
        database=DatabaseSettings(read_url="postgresql://readonly@localhost/test"),
        sms=SmsSettings(username="user", api_key="key", delay_ms=0, dry_run=False),
        scheduler=SchedulerSettings(enabled=False, run_on_start=False),
        storage=StorageSettings(
            sqlite_path=tmp_path / "optouts.db",
            review_links_csv=tmp_path / "review-links.csv",
            templates_dir=tmp_path / "templates",
        ),
        web=WebSettings(webhook_secret=""),
        phone=PhoneSettings(default_region="GB"),
        review=ReviewSettings(fallback_city="london", brand_name="Stasher"),
    )


@pytest.fixture
def db(settings):
    return Database(settings.storage.sqlite_path).init()


@pytest.fixture
def ledger(db):
    return OptOutLedger(db)


@pytest.fixture
def resolver():
    return ReviewLinkResolver(
        fallback_city="london",
        pool={"london": LONDON_LINKS},
        rng=random.Random(7),
    )


@pytest.fixture
def source():
    return FakeSource()


@pytest.fixture
def provider():
    return RecordingProvider()


@pytest.fixture
def context(settings, db, ledger, resolver, source, provider):
    return AppContext(
        settings=settings,
        db=db,
        opt_outs=ledger,
        send_log=SendLog(db),
        runs=JobRunStore(db),
        guard=SendGuard(db),
        locks=JobLock(db, ttl_seconds=settings.scheduler.lock_ttl_seconds),
        links=resolver,
        templates=TemplateStore(settings.storage.templates_dir),
        source=source,
        provider=provider,
    )
