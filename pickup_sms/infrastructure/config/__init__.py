from .settings import (
    TIMEZONE,
    DatabaseSettings,
    PhoneSettings,
    ReviewSettings,
    SchedulerSettings,
    SchemaSettings,
    Settings,
    SmsSettings,
    StorageSettings,
    WebSettings,
    get_settings,
)

__all__ = [
    "TIMEZONE",
    "DatabaseSettings",
    "PhoneSettings",
    "ReviewSettings",
    "SchedulerSettings",
    "SchemaSettings",
    "Settings",
    "SmsSettings",
    "StorageSettings",
    "WebSettings",
    "get_settings",
]
