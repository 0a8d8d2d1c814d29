import pytest

from pickup_sms.domain import render_template
from pickup_sms.domain.templates import greeting
from pickup_sms.infrastructure.templates import REVIEW_REQUEST_TEMPLATE, TemplateStore


def test_render_fills_fields():
    assert render_template("Hi {name}, see {link}", {"name": "Anna", "link": "x"}) == "Hi Anna, see x"


def test_unresolved_placeholders_render_empty():
    assert render_template("Hi {name}{missing}!", {"name": None}) == "Hi !"


def test_non_placeholder_braces_are_left_alone():
    assert render_template("{ not one } {1x}", {}) == "{ not one } {1x}"


def test_greeting():
    assert greeting("Anna") == "Hi Anna"
    assert greeting("  ") == "Hi"
    assert greeting(None, "Hi there") == "Hi there"


class TestTemplateStore:
    def test_default_written_on_first_read(self, tmp_path):
        store = TemplateStore(tmp_path / "templates")
        assert store.get("daily_review_request") == REVIEW_REQUEST_TEMPLATE
        assert (tmp_path / "templates" / "daily_review_request.txt").exists()

    def test_set_and_reset(self, tmp_path):
        store = TemplateStore(tmp_path)
        store.set("locker_pickup_reminder", "Hello {first_name}")
        assert store.get("locker_pickup_reminder") == "Hello {first_name}"
        store.reset("locker_pickup_reminder")
        assert store.get("locker_pickup_reminder") == store.default("locker_pickup_reminder")

    def test_rejects_empty_and_unknown(self, tmp_path):
        store = TemplateStore(tmp_path)
        with pytest.raises(ValueError):
            store.set("daily_review_request", "   ")
        with pytest.raises(KeyError):
            store.get("weekly_newsletter")
