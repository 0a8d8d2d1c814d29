"""
Application Context
===================

Every long-lived handle the jobs and the web layer need, built once at
process start and closed at shutdown. Nothing below this module reaches
for globals; handles are passed in through constructors.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from ..infrastructure.config import Settings, get_settings
from ..infrastructure.importer import ReviewLinkResolver
from ..infrastructure.persistence import (
    BookingSource,
    Database,
    JobLock,
    JobRunStore,
    OptOutLedger,
    SendGuard,
    SendLog,
)
from ..infrastructure.sms import RateLimitedSender, SmsProvider, TextMagicProvider
from ..infrastructure.templates import TemplateStore

logger = logging.getLogger(__name__)


@dataclass
class AppContext:
    settings: Settings
    db: Database
    opt_outs: OptOutLedger
    send_log: SendLog
    runs: JobRunStore
    guard: SendGuard
    locks: JobLock
    links: ReviewLinkResolver
    templates: TemplateStore
    source: BookingSource
    provider: Optional[SmsProvider] = None

    @classmethod
    def create(cls, settings: Optional[Settings] = None) -> "AppContext":
        """Wire the real stores, the Postgres source and the TextMagic provider."""
        settings = settings or get_settings()

        db = Database(settings.storage.sqlite_path).init()

        links = ReviewLinkResolver(fallback_city=settings.review.fallback_city)
        links.load_file(settings.storage.review_links_csv)

        provider = None
        if settings.sms.username and settings.sms.api_key:
            provider = TextMagicProvider(
                username=settings.sms.username,
                api_key=settings.sms.api_key,
                sender=settings.sms.sender,
                api_url=settings.sms.api_url,
                timeout_seconds=settings.sms.timeout_seconds,
            )
        elif not settings.sms.dry_run:
            logger.warning("TextMagic credentials missing; live sends will fail")

        return cls(
            settings=settings,
            db=db,
            opt_outs=OptOutLedger(db),
            send_log=SendLog(db),
            runs=JobRunStore(db),
            guard=SendGuard(db),
            locks=JobLock(db, ttl_seconds=settings.scheduler.lock_ttl_seconds),
            links=links,
            templates=TemplateStore(settings.storage.templates_dir),
            source=BookingSource(settings.database, settings.schema),
            provider=provider,
        )

    def sender(self, dry_run: bool = False) -> RateLimitedSender:
        """Sender for one run; global DRY_RUN always wins over a live request."""
        return RateLimitedSender(
            self.provider,
            delay_seconds=self.settings.sms.delay_seconds,
            dry_run=dry_run or self.settings.sms.dry_run,
        )

    def close(self) -> None:
        self.source.close()
        if self.provider is not None:
            self.provider.close()
        logger.info("Application context closed")
