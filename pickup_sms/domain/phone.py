"""
Phone Normalizer
================

Turns raw, user-entered phone strings into E.164 ("+447400123456") or
None. Dirty rows are expected upstream, so nothing here raises.
"""

import re
from typing import Optional

import phonenumbers
from phonenumbers import NumberParseException, PhoneNumberFormat

_WHITESPACE = re.compile(r"\s+")


def _valid_e164(text: str, region: Optional[str]) -> Optional[str]:
    try:
        parsed = phonenumbers.parse(text, region)
    except NumberParseException:
        return None
    if not phonenumbers.is_valid_number(parsed):
        return None
    return phonenumbers.format_number(parsed, PhoneNumberFormat.E164)


def normalize_phone(raw: Optional[str], default_region: str = "GB") -> Optional[str]:
    """
    Normalize a phone number to E.164.

    Tries the number as written under the default region, then again with
    the region's country code forced in front. Returns None when neither
    attempt yields a valid number.
    """
    if not raw:
        return None

    cleaned = _WHITESPACE.sub("", raw.strip())
    if not cleaned:
        return None

    e164 = _valid_e164(cleaned, default_region)
    if e164:
        return e164

    country_code = phonenumbers.country_code_for_region(default_region)
    if not country_code:
        return None
    return _valid_e164(f"+{country_code}{cleaned.lstrip('+')}", None)


def is_domestic(
    e164: str,
    raw: Optional[str],
    default_region: str = "GB",
    trunk_prefix: str = "07",
) -> bool:
    """True when the number belongs to the single supported country."""
    country_code = phonenumbers.country_code_for_region(default_region)
    if country_code and e164.startswith(f"+{country_code}"):
        return True
    if not raw or not trunk_prefix:
        return False
    return raw.strip().startswith(trunk_prefix)
