from .store import DEFAULT_TEMPLATES, LOCKER_REMINDER_TEMPLATE, REVIEW_REQUEST_TEMPLATE, TemplateStore

__all__ = [
    "DEFAULT_TEMPLATES",
    "LOCKER_REMINDER_TEMPLATE",
    "REVIEW_REQUEST_TEMPLATE",
    "TemplateStore",
]
