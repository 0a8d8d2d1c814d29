import pytest
import requests

from pickup_sms.infrastructure.sms import RateLimitedSender, SmsSendError, TextMagicProvider
from pickup_sms.infrastructure.sms.messaging_provider import describe_textmagic_error

from .conftest import RecordingProvider


class TestRateLimitedSender:
    def test_live_send_sleeps_after_success(self):
        provider = RecordingProvider()
        sleeps = []
        sender = RateLimitedSender(provider, delay_seconds=0.2, sleep=sleeps.append)

        result = sender.send("+447400123456", "hello")

        assert result.message_id == "tm-1"
        assert provider.sent == [("+447400123456", "hello")]
        assert sleeps == [0.2]

    def test_failure_propagates_without_delay(self):
        provider = RecordingProvider(fail_for={"+447400123456"})
        sleeps = []
        sender = RateLimitedSender(provider, delay_seconds=0.2, sleep=sleeps.append)

        with pytest.raises(SmsSendError) as exc:
            sender.send("+447400123456", "hello")
        assert exc.value.code == 400
        assert exc.value.is_validation_error
        assert sleeps == []

    def test_dry_run_never_calls_transport(self):
        provider = RecordingProvider()
        sleeps = []
        sender = RateLimitedSender(provider, delay_seconds=0.2, dry_run=True, sleep=sleeps.append)

        result = sender.send("+447400123456", "hello")

        assert result.message_id.startswith("dry-run-")
        assert provider.sent == []
        assert sleeps == []

    def test_live_mode_needs_a_provider(self):
        with pytest.raises(ValueError):
            RateLimitedSender(None, dry_run=False)
        assert RateLimitedSender(None, dry_run=True).dry_run


class FakeResponse:
    def __init__(self, status_code, payload=None, reason="", json_error=False):
        self.status_code = status_code
        self.ok = 200 <= status_code < 300
        self.reason = reason
        self._payload = payload
        self._json_error = json_error

    def json(self):
        if self._json_error:
            raise ValueError("no json")
        return self._payload


class FakeSession:
    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.calls = []
        self.auth = None

    def post(self, url, data=None, timeout=None):
        self.calls.append({"url": url, "data": data, "timeout": timeout})
        if self.error:
            raise self.error
        return self.response

    def close(self):
        pass


class TestTextMagicProvider:
    def test_posts_form_with_sender(self):
        session = FakeSession(FakeResponse(201, {"id": 123, "href": "/api/v2/messages/123"}))
        provider = TextMagicProvider("user", "key", sender="Stasher", session=session)

        result = provider.send_message("+447400123456", "Hi")

        assert result.message_id == "123"
        assert session.auth == ("user", "key")
        call = session.calls[0]
        assert call["url"] == "https://rest.textmagic.com/api/v2/messages"
        assert call["data"] == {"phones": "+447400123456", "text": "Hi", "from": "Stasher"}

    def test_non_object_body_yields_unknown_id(self):
        session = FakeSession(FakeResponse(201, None))
        provider = TextMagicProvider("user", "key", session=session)

        assert provider.send_message("+447400123456", "Hi").message_id == "unknown"

    def test_error_payload_is_flattened(self):
        payload = {
            "message": "Validation Failed",
            "errors": {"fields": {"phones": ["Invalid phone number"]}},
        }
        session = FakeSession(FakeResponse(400, payload, reason="Bad Request"))
        provider = TextMagicProvider("user", "key", session=session)

        with pytest.raises(SmsSendError) as exc:
            provider.send_message("+447400123456", "Hi")
        assert exc.value.code == 400
        assert exc.value.message == "Validation Failed (phones: Invalid phone number)"

    def test_non_json_error(self):
        session = FakeSession(FakeResponse(502, reason="Bad Gateway", json_error=True))
        provider = TextMagicProvider("user", "key", session=session)

        with pytest.raises(SmsSendError) as exc:
            provider.send_message("+447400123456", "Hi")
        assert exc.value.code == 502
        assert not exc.value.is_validation_error
        assert "HTTP 502: Bad Gateway" in exc.value.message

    @pytest.mark.parametrize(
        "error, code",
        [(requests.Timeout("slow"), 504), (requests.ConnectionError("down"), 503)],
    )
    def test_network_errors(self, error, code):
        provider = TextMagicProvider("user", "key", session=FakeSession(error=error))
        with pytest.raises(SmsSendError) as exc:
            provider.send_message("+447400123456", "Hi")
        assert exc.value.code == code


def test_describe_validation_errors():
    message = describe_textmagic_error(
        422, "Unprocessable", {"validation_errors": {"text": ["too long", "bad chars"]}}
    )
    assert message == "HTTP 422: Unprocessable (text: too long, bad chars)"
