from datetime import date

import pytest

from workdesk.core.errors import ValidationError
from workdesk.core.models import InputType
from workdesk.core.values import parse_value


def test_number_accepts_numeric_strings():
    typed = parse_value("NUMBER", "15")
    assert typed.kind == InputType.NUMBER
    assert typed.to_json() == 15


def test_number_keeps_fractions():
    assert parse_value("AMOUNT", 12.5).to_json() == 12.5


@pytest.mark.parametrize("raw", ["abc", True, "inf", [1]])
def test_number_rejects_non_numbers(raw):
    with pytest.raises(ValidationError):
        parse_value("NUMBER", raw)


def test_none_clears_the_value():
    typed = parse_value("NUMBER", None)
    assert typed.to_json() is None
    assert typed.file_paths() is None


def test_email():
    assert parse_value("EMAIL", "ops@example.com").to_json() == "ops@example.com"
    with pytest.raises(ValidationError):
        parse_value("EMAIL", "not-an-email")


def test_phone():
    assert parse_value("PHONE", "+91 98450 12345").to_json() == "+91 98450 12345"
    with pytest.raises(ValidationError):
        parse_value("PHONE", "call me")


def test_date_is_stored_as_iso_string():
    typed = parse_value("DATE", "2024-03-01")
    assert typed.value == date(2024, 3, 1)
    assert typed.to_json() == "2024-03-01"


def test_boolean_and_checkbox():
    assert parse_value("BOOLEAN", True).to_json() is True
    assert parse_value("CHECKBOX", ["a", "b"]).to_json() == ["a", "b"]
    with pytest.raises(ValidationError):
        parse_value("CHECKBOX", "a")


def test_file_values_carry_paths():
    assert parse_value("FILE", "uploads/a.pdf").file_paths() == ["uploads/a.pdf"]
    typed = parse_value("MULTIPLE_FILES", ["a.png", "b.png"])
    assert typed.file_paths() == ["a.png", "b.png"]
    with pytest.raises(ValidationError):
        parse_value("FILE", "")


def test_table_rows():
    rows = [{"item": "cable", "qty": 3}]
    assert parse_value("TABLE", rows).to_json() == rows


def test_unknown_input_type():
    with pytest.raises(ValidationError):
        parse_value("SLIDER", 3)
