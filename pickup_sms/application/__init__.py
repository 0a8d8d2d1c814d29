# Application Layer
# =================
# Use cases built on the domain and infrastructure layers:
# - context: handles built once per process
# - pipeline: fetch, filter, send, audit
# - jobs: the two job variants and the runner shared by every trigger
# - inbound: STOP / START keywords and delivery callbacks
# - scheduler: recurring triggers
from .context import AppContext
from .inbound import InboundResult, handle_delivery_status, handle_inbound_sms
from .jobs import (
    DAILY_REVIEW_REQUEST,
    JOBS,
    LOCKER_PICKUP_REMINDER,
    InvalidAnchorDateError,
    JobRunner,
    UnknownJobError,
    daily_window,
    hourly_window,
    parse_anchor_date,
)
from .manual_send import InvalidRecipientError, ManualSendResult, send_test_sms
from .pipeline import EligibilityPipeline, JobDefinition, RunOutcome
from .scheduler import JobScheduler

__all__ = [
    "AppContext",
    "DAILY_REVIEW_REQUEST",
    "EligibilityPipeline",
    "InboundResult",
    "InvalidAnchorDateError",
    "InvalidRecipientError",
    "JOBS",
    "JobDefinition",
    "JobRunner",
    "JobScheduler",
    "LOCKER_PICKUP_REMINDER",
    "ManualSendResult",
    "RunOutcome",
    "UnknownJobError",
    "daily_window",
    "handle_delivery_status",
    "handle_inbound_sms",
    "hourly_window",
    "parse_anchor_date",
    "send_test_sms",
]
