"""Tests for validation rules."""

from decimal import Decimal

import pytest

from catnat_app.core.errors import UploadRejectedError
from catnat_app.core.validation import (
    parse_square_meters,
    validate_required_text,
    validate_upload,
)


def test_parse_square_meters_accepts_both_separators() -> None:
    assert parse_square_meters("120.5") == Decimal("120.5")
    assert parse_square_meters(" 120,5 ") == Decimal("120.5")
    assert parse_square_meters("80") == Decimal("80")


@pytest.mark.parametrize("value", ["", "abc", "0", "-5", "NaN", "Infinity", None])
def test_parse_square_meters_rejects_non_positive(value) -> None:
    with pytest.raises(ValueError):
        parse_square_meters(value)


def test_validate_required_text() -> None:
    assert validate_required_text(" S1 ", "Store code") == "S1"
    with pytest.raises(ValueError):
        validate_required_text("   ", "Store code")


def test_validate_upload() -> None:
    allowed = (".csv", ".xlsx")

    assert validate_upload("Roster.XLSX", 10, allowed, 100) == "Roster.XLSX"
    with pytest.raises(UploadRejectedError):
        validate_upload("roster.pdf", 10, allowed, 100)
    with pytest.raises(UploadRejectedError):
        validate_upload("roster.csv", 101, allowed, 100)
