"""
Messaging Provider - Abstraction Layer for SMS Gateways
========================================================

Provides a unified interface for sending SMS. Currently backed by the
TextMagic REST API; any gateway that turns (phone, text) into a message id
can be plugged in by implementing SmsProvider.

USAGE:
    provider = TextMagicProvider(username="me", api_key="key")
    result = provider.send_message("+447400123456", "Hello!")
    print(result.message_id)
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Optional

import requests

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "https://rest.textmagic.com/api/v2"


@dataclass
class SendResult:
    """Successful submission to the gateway."""
    message_id: str
    phone: Optional[str] = None


class SmsSendError(Exception):
    """
    Gateway rejected or never received a message.

    code follows HTTP: 4xx means the content or number was rejected,
    5xx means the gateway or network was unavailable.
    """

    def __init__(self, code: int, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.code = code
        self.message = message
        self.details = details or {}

    @property
    def is_validation_error(self) -> bool:
        return 400 <= self.code < 500

    def __str__(self) -> str:
        return f"[{self.code}] {self.message}"


class SmsProvider(ABC):
    """
    Abstract base class for SMS gateways.
    Implement this interface to add new messaging backends.
    """

    @abstractmethod
    def send_message(self, phone: str, text: str) -> SendResult:
        """Submit one SMS. Raises SmsSendError on any failure."""
        ...

    def close(self) -> None:
        """Clean up resources."""


def _join_messages(value: Any) -> str:
    if isinstance(value, (list, tuple)):
        return ", ".join(str(v) for v in value)
    return str(value)


def describe_textmagic_error(status: int, reason: str, payload: Dict[str, Any]) -> str:
    """Flatten TextMagic's error payload into one readable line."""
    message = payload.get("message") or f"HTTP {status}: {reason}"

    parts = []
    errors = payload.get("errors")
    if isinstance(errors, dict):
        for key, value in errors.items():
            if key == "fields" and isinstance(value, dict):
                parts.extend(f"{name}: {_join_messages(msgs)}" for name, msgs in value.items())
            else:
                parts.append(f"{key}: {_join_messages(value)}")
    if parts:
        message = f"{message} ({'; '.join(parts)})"

    validation = payload.get("validation_errors")
    if isinstance(validation, dict) and validation:
        details = "; ".join(f"{name}: {_join_messages(msgs)}" for name, msgs in validation.items())
        message = f"{message} ({details})"

    return message


class TextMagicProvider(SmsProvider):
    """
    TextMagic REST API v2 provider.

    Configuration:
        - username / api_key: HTTP Basic credentials
        - sender: optional registered sender id ("from")
        - api_url: API base (default: TextMagic v2)
    """

    def __init__(
        self,
        username: str,
        api_key: str,
        sender: str = "",
        api_url: str = DEFAULT_API_URL,
        timeout_seconds: int = 15,
        session: Optional[requests.Session] = None,
    ):
        self._api_url = (api_url or DEFAULT_API_URL).rstrip("/")
        self._sender = (sender or "").strip()
        self._timeout = timeout_seconds
        self._session = session or requests.Session()
        self._session.auth = (username, api_key)

    def send_message(self, phone: str, text: str) -> SendResult:
        data = {"phones": phone, "text": text}
        # Sender id must be registered in the TextMagic account
        if self._sender:
            data["from"] = self._sender

        try:
            response = self._session.post(
                f"{self._api_url}/messages",
                data=data,
                timeout=self._timeout,
            )
        except requests.Timeout as e:
            raise SmsSendError(504, f"TextMagic request timed out: {e}")
        except requests.RequestException as e:
            raise SmsSendError(503, f"TextMagic unreachable: {e}")

        if not response.ok:
            try:
                payload = response.json()
            except ValueError:
                payload = {}
            if not isinstance(payload, dict):
                payload = {}

            message = describe_textmagic_error(response.status_code, response.reason or "", payload)
            logger.error(
                f"TextMagic API error {response.status_code} for {phone} "
                f"(length {len(text)}): {message}"
            )
            raise SmsSendError(response.status_code, message, payload)

        try:
            body = response.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}

        message_id = body.get("id") or body.get("href") or "unknown"
        return SendResult(message_id=str(message_id), phone=phone)

    def close(self) -> None:
        self._session.close()
