import pytest

from fleetdesk.db.sequences import PAYMENT_NUMBER_PREFIX, RESERVATION_CODE_PREFIX, next_code


def test_first_code_starts_at_one() -> None:
    assert next_code(RESERVATION_CODE_PREFIX, None) == "RS-00001"
    assert next_code(PAYMENT_NUMBER_PREFIX, "") == "PM-00001"


def test_next_code_increments_last_code() -> None:
    assert next_code(RESERVATION_CODE_PREFIX, "RS-00041") == "RS-00042"
    assert next_code(PAYMENT_NUMBER_PREFIX, "PM-00999") == "PM-01000"


def test_next_code_grows_past_width() -> None:
    assert next_code(RESERVATION_CODE_PREFIX, "RS-99999") == "RS-100000"


def test_next_code_rejects_foreign_prefix() -> None:
    with pytest.raises(ValueError):
        next_code(RESERVATION_CODE_PREFIX, "PM-00001")
