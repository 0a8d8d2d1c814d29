"""
Settings Module - Centralized Configuration Management
=======================================================

ARCHITECTURAL DECISION:
- All configuration is loaded from environment variables (no hardcoded secrets)
- Settings are immutable dataclasses for safety and clarity
- Single source of truth for all configurable values

The upstream schema mapping lives here too. Table and column names are
validated once at startup and only ever reach SQL as quoted identifiers.
"""

import os
import re
from dataclasses import dataclass, field, fields
from functools import lru_cache
from pathlib import Path
from typing import List

from dotenv import load_dotenv

load_dotenv()

TIMEZONE = "Europe/London"

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    try:
        return int(value)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {value!r}")


@dataclass(frozen=True)
class DatabaseSettings:
    """Read-only Postgres connection settings."""

    read_url: str = field(
        default_factory=lambda: os.getenv("DATABASE_READ_URL") or os.getenv("DATABASE_URL", "")
    )
    sslmode: str = field(default_factory=lambda: os.getenv("DATABASE_SSLMODE", "require"))
    pool_max_size: int = field(default_factory=lambda: _env_int("DB_POOL_MAX", 5))
    connect_timeout_seconds: int = field(default_factory=lambda: _env_int("DB_CONNECT_TIMEOUT", 10))


@dataclass(frozen=True)
class SmsSettings:
    """TextMagic gateway and throughput settings."""

    username: str = field(default_factory=lambda: os.getenv("TEXTMAGIC_USERNAME", ""))
    api_key: str = field(default_factory=lambda: os.getenv("TEXTMAGIC_API_KEY", ""))
    sender: str = field(default_factory=lambda: os.getenv("TEXTMAGIC_SENDER", ""))
    api_url: str = field(
        default_factory=lambda: os.getenv("TEXTMAGIC_API_URL", "https://rest.textmagic.com/api/v2")
    )

    # Pause after each successful send to stay under the provider ceiling
    delay_ms: int = field(default_factory=lambda: _env_int("SMS_DELAY_MS", 200))
    timeout_seconds: int = field(default_factory=lambda: _env_int("SMS_TIMEOUT_SECONDS", 15))

    dry_run: bool = field(default_factory=lambda: _env_bool("DRY_RUN"))

    @property
    def delay_seconds(self) -> float:
        return max(self.delay_ms, 0) / 1000.0


@dataclass(frozen=True)
class SchedulerSettings:
    """Recurring job triggers, all in Europe/London."""

    enabled: bool = field(default_factory=lambda: _env_bool("SCHEDULER_ENABLED", True))
    run_on_start: bool = field(default_factory=lambda: _env_bool("RUN_JOB"))
    timezone: str = TIMEZONE
    daily_hour: int = 10
    daily_minute: int = 0
    hourly_minute: int = 2

    # Advisory lock expiry; a crashed run frees its job after this long
    lock_ttl_seconds: int = 2 * 60 * 60


@dataclass(frozen=True)
class StorageSettings:
    """Local files: SQLite stores, review-link CSV, template files."""

    sqlite_path: Path = field(
        default_factory=lambda: Path(os.getenv("OPT_OUT_DB_PATH", "data/optouts.db"))
    )
    review_links_csv: Path = field(
        default_factory=lambda: Path(os.getenv("REVIEW_LINKS_CSV") or "data/review-links.csv")
    )
    templates_dir: Path = field(
        default_factory=lambda: Path(os.getenv("TEMPLATES_DIR", "data/templates"))
    )
    max_upload_bytes: int = 5 * 1024 * 1024


@dataclass(frozen=True)
class WebSettings:
    """Webhook server settings."""

    host: str = field(default_factory=lambda: os.getenv("HOST", "0.0.0.0"))
    port: int = field(
        default_factory=lambda: _env_int("PORT", _env_int("WEBHOOK_PORT", 4010))
    )
    webhook_secret: str = field(default_factory=lambda: os.getenv("WEBHOOK_SECRET", ""))


@dataclass(frozen=True)
class PhoneSettings:
    """Single supported destination country."""

    default_region: str = field(default_factory=lambda: os.getenv("DEFAULT_REGION", "GB"))

    # Raw numbers starting with this trunk prefix count as domestic even if
    # the normalized form says otherwise
    domestic_trunk_prefix: str = "07"


@dataclass(frozen=True)
class ReviewSettings:
    """Review-link policy and message branding."""

    fallback_city: str = field(
        default_factory=lambda: os.getenv("REVIEW_FALLBACK_CITY", "london").strip().lower()
    )
    brand_name: str = field(default_factory=lambda: os.getenv("BRAND_NAME", "Stasher"))


@dataclass(frozen=True)
class BookingsTable:
    table: str = "bookings"
    id: str = "id"
    picked_up_at: str = "pickup"
    stashpoint_id: str = "stashpoint_id"
    customer_id: str = "customer_id"
    cancelled: str = "cancelled"
    paid: str = "paid"


@dataclass(frozen=True)
class CustomersTable:
    table: str = "customers"
    id: str = "id"
    user_id: str = "user_id"


@dataclass(frozen=True)
class UsersTable:
    table: str = "users"
    id: str = "id"
    first_name: str = "first_name"
    last_name: str = "last_name"
    phone_number: str = "phone_number"


@dataclass(frozen=True)
class StashpointsTable:
    table: str = "stashpoints"
    id: str = "id"
    business_name: str = "business_name"
    nearest_city_id: str = "new_nearest_city_id"
    storage_type: str = "storage_type"


@dataclass(frozen=True)
class LocationsTable:
    table: str = "locations"
    id: str = "id"
    name: str = "name"


@dataclass(frozen=True)
class StorageSpacesTable:
    bookings_table: str = "storage_space_bookings"
    spaces_table: str = "storage_spaces"
    codes_table: str = "storage_space_codes"
    locker_code: str = "locker_code"


@dataclass(frozen=True)
class SchemaSettings:
    """
    Upstream table/column names.

    Usage:
        schema = get_settings().schema
        schema.bookings.picked_up_at  # "pickup"
    """

    bookings: BookingsTable = field(default_factory=BookingsTable)
    customers: CustomersTable = field(default_factory=CustomersTable)
    users: UsersTable = field(default_factory=UsersTable)
    stashpoints: StashpointsTable = field(default_factory=StashpointsTable)
    locations: LocationsTable = field(default_factory=LocationsTable)
    storage: StorageSpacesTable = field(default_factory=StorageSpacesTable)
    locker_storage_type: str = "hivebox_locker_bank"

    def invalid_identifiers(self) -> List[str]:
        """Return dotted paths of every name that is not a plain SQL identifier."""
        bad = []
        for group in fields(self):
            value = getattr(self, group.name)
            if isinstance(value, str):
                continue
            for column in fields(value):
                name = getattr(value, column.name)
                if not isinstance(name, str) or not _IDENTIFIER.match(name):
                    bad.append(f"{group.name}.{column.name}={name!r}")
        return bad


@dataclass(frozen=True)
class Settings:
    """
    Root settings container - Single source of truth for all configuration.

    Usage:
        from pickup_sms.infrastructure.config import get_settings
        settings = get_settings()
        print(settings.sms.delay_ms)
    """

    database: DatabaseSettings = field(default_factory=DatabaseSettings)
    sms: SmsSettings = field(default_factory=SmsSettings)
    scheduler: SchedulerSettings = field(default_factory=SchedulerSettings)
    storage: StorageSettings = field(default_factory=StorageSettings)
    web: WebSettings = field(default_factory=WebSettings)
    phone: PhoneSettings = field(default_factory=PhoneSettings)
    review: ReviewSettings = field(default_factory=ReviewSettings)
    schema: SchemaSettings = field(default_factory=SchemaSettings)

    def validate(self) -> List[str]:
        """
        Validate settings and return list of warnings/errors.
        Entries starting with "ERROR:" must stop the process.
        Returns empty list if all settings are valid.
        """
        issues = []

        if not self.database.read_url:
            issues.append("ERROR: DATABASE_READ_URL (or DATABASE_URL) is required.")

        if not self.sms.dry_run and (not self.sms.username or not self.sms.api_key):
            issues.append(
                "ERROR: TEXTMAGIC_USERNAME and TEXTMAGIC_API_KEY are required "
                "when not in DRY_RUN mode."
            )

        for bad in self.schema.invalid_identifiers():
            issues.append(f"ERROR: Invalid schema identifier {bad}.")

        if not self.storage.review_links_csv.exists():
            issues.append(
                f"WARNING: Review links CSV not found: {self.storage.review_links_csv}. "
                "Review requests will be skipped until one is uploaded."
            )

        if not self.web.webhook_secret:
            issues.append("WARNING: WEBHOOK_SECRET not set. Webhooks accept unauthenticated calls.")

        return issues

    def errors(self) -> List[str]:
        return [issue for issue in self.validate() if issue.startswith("ERROR:")]


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Get singleton Settings instance.
    Cached to ensure consistent settings throughout application lifecycle.
    """
    return Settings()
