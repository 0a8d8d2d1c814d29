import pytest

from pickup_sms.domain import is_domestic, normalize_phone


@pytest.mark.parametrize("raw", [None, "", "   ", "\t\n"])
def test_empty_input_is_invalid(raw):
    assert normalize_phone(raw) is None


def test_domestic_forms_normalize_identically():
    expected = "+447400123456"
    assert normalize_phone("07400123456") == expected
    assert normalize_phone("07400 123 456") == expected
    assert normalize_phone("+44 7400 123456") == expected
    assert normalize_phone("447400123456") == expected


def test_normalized_number_is_a_fixed_point():
    once = normalize_phone("07400123456")
    assert normalize_phone(once) == once


def test_garbage_never_raises():
    assert normalize_phone("not a number") is None
    assert normalize_phone("12345") is None
    assert normalize_phone("+") is None


def test_foreign_number_keeps_its_country():
    assert normalize_phone("+12015550123") == "+12015550123"


def test_domestic_by_country_code():
    assert is_domestic("+447400123456", "+447400123456")
    assert not is_domestic("+12015550123", "+12015550123")


def test_domestic_by_trunk_prefix_fallback():
    # Raw number written with the UK mobile trunk prefix counts as domestic
    assert is_domestic("+12015550123", "07400123456")
    assert not is_domestic("+12015550123", None)
