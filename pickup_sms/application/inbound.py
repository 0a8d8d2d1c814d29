"""
Inbound SMS - STOP / START Keywords and Delivery Callbacks
==========================================================

Keywords are matched as whole words, case-insensitively. When a message
contains both a STOP and a START keyword, STOP wins.
"""

import logging
import re
from dataclasses import asdict, dataclass
from typing import Optional

from ..domain import normalize_phone
from ..infrastructure.persistence import SOURCE_INBOUND_STOP, OptOutLedger

logger = logging.getLogger(__name__)

STOP_KEYWORDS = frozenset({"STOP", "STOPALL", "UNSUBSCRIBE", "CANCEL", "END", "QUIT"})
OPT_IN_KEYWORDS = frozenset({"START", "YES", "UNSTOP"})

ACTION_OPTED_OUT = "opted_out"
ACTION_OPTED_IN = "opted_in"
ACTION_NONE = "none"

_WORD = re.compile(r"[A-Za-z]+")


@dataclass
class InboundResult:
    action: str
    phone: Optional[str] = None

    def to_dict(self) -> dict:
        return asdict(self)


def keywords_in(text: Optional[str]) -> set:
    return {word.upper() for word in _WORD.findall(text or "")}


def handle_inbound_sms(
    ledger: OptOutLedger,
    text: Optional[str],
    from_phone: Optional[str],
    default_region: str = "GB",
) -> InboundResult:
    """Apply an inbound message to the opt-out ledger."""
    phone = normalize_phone(from_phone, default_region)
    if not phone:
        logger.warning(f"Inbound SMS from unparseable number {from_phone!r}; ignored")
        return InboundResult(ACTION_NONE)

    words = keywords_in(text)

    if words & STOP_KEYWORDS:
        ledger.add(phone, source=SOURCE_INBOUND_STOP, note=(text or "").strip()[:500] or None)
        logger.info(f"Opt-out recorded for {phone}")
        return InboundResult(ACTION_OPTED_OUT, phone)

    if words & OPT_IN_KEYWORDS:
        if ledger.remove(phone):
            logger.info(f"Opt-out removed for {phone}")
            return InboundResult(ACTION_OPTED_IN, phone)
        return InboundResult(ACTION_NONE, phone)

    return InboundResult(ACTION_NONE, phone)


def handle_delivery_status(message_id: Optional[str], status: Optional[str]) -> dict:
    """Validate and log a delivery callback. The send log is never mutated."""
    if not message_id or not status:
        raise ValueError("messageId and status are required")
    logger.info(f"Delivery status for message {message_id}: {status}")
    return {"message_id": message_id, "status": status}
