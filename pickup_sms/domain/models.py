"""
Domain Models - Candidates, Outcomes and Run Counters
=====================================================

Plain dataclasses shared by the pipeline, the stores and the web layer.
"""

from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional


class OutcomeStatus(str, Enum):
    """Outcome recorded once per candidate per run."""
    SENT = "sent"
    FAILED = "failed"
    SKIPPED_NO_PHONE = "skipped_no_phone"
    SKIPPED_INVALID_PHONE = "skipped_invalid_phone"
    SKIPPED_NON_DOMESTIC = "skipped_non_uk"
    SKIPPED_OPTED_OUT = "skipped_opted_out"
    SKIPPED_NO_REVIEW_LINK = "skipped_no_review_link"
    SKIPPED_ALREADY_SENT = "skipped_already_sent"
    ELIGIBLE = "eligible"

    @property
    def is_skip(self) -> bool:
        return self in SKIP_STATUSES


SKIP_STATUSES = frozenset({
    OutcomeStatus.SKIPPED_NO_PHONE,
    OutcomeStatus.SKIPPED_INVALID_PHONE,
    OutcomeStatus.SKIPPED_NON_DOMESTIC,
    OutcomeStatus.SKIPPED_OPTED_OUT,
    OutcomeStatus.SKIPPED_NO_REVIEW_LINK,
    OutcomeStatus.SKIPPED_ALREADY_SENT,
})

SKIP_REASONS = {
    OutcomeStatus.SKIPPED_NO_PHONE: "No phone number",
    OutcomeStatus.SKIPPED_INVALID_PHONE: "Invalid phone number format",
    OutcomeStatus.SKIPPED_NON_DOMESTIC: "Non-UK phone number",
    OutcomeStatus.SKIPPED_OPTED_OUT: "Phone number is opted out",
    OutcomeStatus.SKIPPED_NO_REVIEW_LINK: "No review link for city or fallback city",
    OutcomeStatus.SKIPPED_ALREADY_SENT: "Already sent for this booking",
}


@dataclass(frozen=True)
class TimeWindow:
    """Half-open interval [start, end) of pickup timestamps."""
    start: datetime
    end: datetime
    label: str = ""

    def __contains__(self, moment: datetime) -> bool:
        return self.start <= moment < self.end


@dataclass
class Candidate:
    """One upstream booking row that may receive a message in this run."""
    booking_id: str
    phone_number: Optional[str]
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    city: Optional[str] = None
    stashpoint_name: Optional[str] = None
    pickup: Optional[datetime] = None
    access_code: Optional[str] = None

    @property
    def full_name(self) -> str:
        return " ".join(p.strip() for p in (self.first_name, self.last_name) if p and p.strip())


@dataclass
class CandidateDecision:
    """Result of the filtering step for one candidate."""
    candidate: Candidate
    status: OutcomeStatus
    phone_e164: Optional[str] = None
    review_url: Optional[str] = None
    used_fallback: bool = False

    @property
    def eligible(self) -> bool:
        return self.status is OutcomeStatus.ELIGIBLE

    @property
    def reason(self) -> Optional[str]:
        return SKIP_REASONS.get(self.status)

    def to_dict(self) -> dict:
        c = self.candidate
        return {
            "booking_id": c.booking_id,
            "first_name": c.first_name,
            "last_name": c.last_name,
            "phone_number": c.phone_number,
            "phone_e164": self.phone_e164,
            "city": c.city,
            "stashpoint_name": c.stashpoint_name,
            "pickup": c.pickup.isoformat() if c.pickup else None,
            "status": self.status.value,
            "reason": self.reason,
            "review_url": self.review_url,
            "used_fallback": self.used_fallback,
        }


@dataclass
class RunStats:
    """Aggregate counters returned by every run."""
    fetched: int = 0
    eligible: int = 0
    sent: int = 0
    failed: int = 0
    skipped_no_phone: int = 0
    skipped_invalid_phone: int = 0
    skipped_non_domestic: int = 0
    skipped_opted_out: int = 0
    skipped_no_review_link: int = 0
    skipped_already_sent: int = 0
    fallback_used: int = 0
    dry_run: bool = field(default=False)

    _SKIP_FIELDS = {
        OutcomeStatus.SKIPPED_NO_PHONE: "skipped_no_phone",
        OutcomeStatus.SKIPPED_INVALID_PHONE: "skipped_invalid_phone",
        OutcomeStatus.SKIPPED_NON_DOMESTIC: "skipped_non_domestic",
        OutcomeStatus.SKIPPED_OPTED_OUT: "skipped_opted_out",
        OutcomeStatus.SKIPPED_NO_REVIEW_LINK: "skipped_no_review_link",
        OutcomeStatus.SKIPPED_ALREADY_SENT: "skipped_already_sent",
    }

    def count_skip(self, status: OutcomeStatus) -> None:
        name = self._SKIP_FIELDS[status]
        setattr(self, name, getattr(self, name) + 1)

    @property
    def skipped(self) -> int:
        return sum(getattr(self, name) for name in self._SKIP_FIELDS.values())

    def to_dict(self) -> dict:
        data = asdict(self)
        data["skipped"] = self.skipped
        return data
