"""One-off review message to an operator-supplied number."""

import logging
from dataclasses import dataclass
from typing import Optional

from ..domain import Candidate, CandidateDecision, OutcomeStatus, is_domestic, normalize_phone
from ..domain.templates import render_template
from .context import AppContext
from .jobs import DAILY_REVIEW_REQUEST, review_request_fields

logger = logging.getLogger(__name__)


class InvalidRecipientError(ValueError):
    """Phone, country or city cannot produce a test message."""


@dataclass
class ManualSendResult:
    message_id: str
    phone: str
    text: str
    review_url: str
    used_fallback: bool
    dry_run: bool

    def to_dict(self) -> dict:
        return {
            "message_id": self.message_id,
            "phone": self.phone,
            "text": self.text,
            "review_url": self.review_url,
            "used_fallback": self.used_fallback,
            "dry_run": self.dry_run,
        }


def send_test_sms(
    context: AppContext,
    phone: str,
    city: Optional[str] = None,
    first_name: Optional[str] = None,
    dry_run: bool = False,
) -> ManualSendResult:
    """
    Render and send the review-request message exactly as the daily job
    would. SmsSendError propagates to the caller. Nothing is audited.
    """
    phone_settings = context.settings.phone
    e164 = normalize_phone(phone, phone_settings.default_region)
    if not e164:
        raise InvalidRecipientError(f"Invalid phone number: {phone!r}")
    if not is_domestic(e164, phone, phone_settings.default_region, phone_settings.domestic_trunk_prefix):
        raise InvalidRecipientError(f"Only UK numbers are supported: {e164}")

    city = city or context.settings.review.fallback_city
    resolution = context.links.resolve(city)
    if not resolution.found:
        raise InvalidRecipientError(f"No review link for {city!r} or the fallback city")

    decision = CandidateDecision(
        candidate=Candidate(booking_id="test", phone_number=phone, first_name=first_name, city=city),
        status=OutcomeStatus.ELIGIBLE,
        phone_e164=e164,
        review_url=resolution.url,
        used_fallback=resolution.used_fallback,
    )
    text = render_template(
        context.templates.get(DAILY_REVIEW_REQUEST),
        review_request_fields(decision, context.settings.review.brand_name),
    )

    sender = context.sender(dry_run)
    result = sender.send(e164, text)
    logger.info(f"Test SMS sent to {e164} (id {result.message_id})")

    return ManualSendResult(
        message_id=result.message_id,
        phone=e164,
        text=text,
        review_url=resolution.url,
        used_fallback=resolution.used_fallback,
        dry_run=sender.dry_run,
    )
