"""
Rate-Limited Sender
===================

Wraps a provider with a fixed pause after every successful send, which
keeps one run strictly sequential and under the gateway's throughput
ceiling. In dry-run mode nothing leaves the process: a placeholder id is
returned and callers audit it exactly like a real send.
"""

import logging
import time
from typing import Callable, Optional

from .messaging_provider import SendResult, SmsProvider

logger = logging.getLogger(__name__)


class RateLimitedSender:
    """
    Usage:
        sender = RateLimitedSender(provider, delay_seconds=0.2)
        result = sender.send("+447400123456", "Hi there")
    """

    def __init__(
        self,
        provider: Optional[SmsProvider],
        delay_seconds: float = 0.2,
        dry_run: bool = False,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.time,
    ):
        if provider is None and not dry_run:
            raise ValueError("A provider is required unless dry_run is set")
        self._provider = provider
        self._delay = max(delay_seconds, 0.0)
        self._dry_run = dry_run
        self._sleep = sleep
        self._clock = clock

    @property
    def dry_run(self) -> bool:
        return self._dry_run

    def send(self, phone: str, text: str) -> SendResult:
        """Send one message. SmsSendError from the provider propagates unchanged."""
        if self._dry_run:
            logger.info(f"[DRY RUN] Would send SMS to {phone}: {text!r}")
            return SendResult(message_id=f"dry-run-{int(self._clock() * 1000)}", phone=phone)

        result = self._provider.send_message(phone, text)

        if self._delay > 0:
            self._sleep(self._delay)

        return result
