from .audit import JobRunStore, JobRunSummary, SendLog, SendLogEntry
from .bookings import BookingReader, BookingSource, CandidateQueries
from .database import Database
from .guards import JobAlreadyRunningError, JobLock, SendGuard
from .opt_outs import SOURCE_INBOUND_STOP, SOURCE_MANUAL, OptOut, OptOutLedger

__all__ = [
    "BookingReader",
    "BookingSource",
    "CandidateQueries",
    "Database",
    "JobAlreadyRunningError",
    "JobLock",
    "JobRunStore",
    "JobRunSummary",
    "OptOut",
    "OptOutLedger",
    "SOURCE_INBOUND_STOP",
    "SOURCE_MANUAL",
    "SendGuard",
    "SendLog",
    "SendLogEntry",
]
