from .messaging_provider import SendResult, SmsProvider, SmsSendError, TextMagicProvider
from .sender import RateLimitedSender

__all__ = [
    "RateLimitedSender",
    "SendResult",
    "SmsProvider",
    "SmsSendError",
    "TextMagicProvider",
]
