# Domain Layer
# ============
# Pure functions and value types: no network, no database.
from .models import Candidate, CandidateDecision, OutcomeStatus, RunStats, SKIP_STATUSES, TimeWindow
from .phone import is_domestic, normalize_phone
from .templates import render_template

__all__ = [
    "Candidate",
    "CandidateDecision",
    "OutcomeStatus",
    "RunStats",
    "SKIP_STATUSES",
    "TimeWindow",
    "is_domestic",
    "normalize_phone",
    "render_template",
]
