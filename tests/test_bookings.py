from dataclasses import replace
from datetime import datetime, timezone

import pytest

from pickup_sms.infrastructure.config import SchemaSettings
from pickup_sms.infrastructure.persistence import CandidateQueries
from pickup_sms.infrastructure.persistence.bookings import row_to_candidate


def test_default_schema_is_valid():
    assert SchemaSettings().invalid_identifiers() == []
    CandidateQueries(SchemaSettings())


def test_injected_identifier_is_rejected():
    schema = SchemaSettings()
    schema = replace(schema, users=replace(schema.users, phone_number="phone; DROP TABLE users"))

    assert schema.invalid_identifiers() == ["users.phone_number='phone; DROP TABLE users'"]
    with pytest.raises(ValueError):
        CandidateQueries(schema)


def test_row_to_candidate():
    pickup = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)
    candidate = row_to_candidate({
        "booking_id": 981,
        "phone_number": "07400123456",
        "first_name": "Anna",
        "last_name": "Smith",
        "city": "London",
        "stashpoint_name": "Kings Cross Cafe",
        "pickup": pickup,
        "access_code": 4521,
    })

    assert candidate.booking_id == "981"
    assert candidate.access_code == "4521"
    assert candidate.full_name == "Anna Smith"
    assert candidate.pickup == pickup


def test_row_without_locker_code():
    candidate = row_to_candidate({"booking_id": "b-1", "phone_number": None})
    assert candidate.access_code is None
    assert candidate.full_name == ""
