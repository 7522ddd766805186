from identity_resolution.steps.normalize import (
    first_name_prefix,
    format_phone,
    household_key,
    normalize_address,
    normalize_email,
    normalize_name_zip,
    normalize_phone,
)


def test_normalize_email_lowercases_and_trims() -> None:
    assert normalize_email("  Jane.Doe@Example.COM ") == "jane.doe@example.com"


def test_normalize_email_rejects_placeholders_and_missing_at() -> None:
    for raw in (None, "", "   ", "null", "N/A", "undefined", "None", "jane.example.com"):
        assert normalize_email(raw) is None


def test_normalize_phone_strips_formatting_and_country_code() -> None:
    assert normalize_phone("(555) 123-4567") == "5551234567"
    assert normalize_phone("+1 555.123.4567") == "5551234567"
    assert normalize_phone("123-4567") == "1234567"


def test_normalize_phone_rejects_garbage() -> None:
    assert normalize_phone("http://example.com/5551234567") is None
    assert normalize_phone("www.5551234567.com") is None
    assert normalize_phone("555,123,4567") is None
    assert normalize_phone("555|1234567") is None
    assert normalize_phone("call 5551234567") is None
    assert normalize_phone("12345") is None
    assert normalize_phone("555123456789") is None


def test_normalize_phone_keeps_short_letter_suffix() -> None:
    assert normalize_phone("555-123-4567 x1") == "55512345671"


def test_normalize_name_zip() -> None:
    assert normalize_name_zip("O'Brien", "78701-1234") == "obrien|78701"
    assert normalize_name_zip("X", "78701") is None
    assert normalize_name_zip("Smith", "7870") is None
    assert normalize_name_zip(None, "78701") is None


def test_first_name_prefix() -> None:
    assert first_name_prefix(" Jonathan ") == "jon"
    assert first_name_prefix("Al", length=3) == "al"
    assert first_name_prefix("") is None


def test_format_phone() -> None:
    assert format_phone("5551234567") == "(555) 123-4567"
    assert format_phone("1234567") == "1234567"


def test_normalize_address_expands_abbreviations() -> None:
    assert normalize_address("12 Oak St.") == "12 OAK STREET"
    assert normalize_address("  400  Congress Ave, Apt #5 ") == "400 CONGRESS AVENUE APARTMENT 5"
    assert normalize_address(None) == ""


def test_household_key_matches_address_variants() -> None:
    left = household_key("12 Oak Street", "Austin", "tx", "Smith")
    right = household_key("12 oak st", " AUSTIN ", "TX", "SMITHERS")
    assert left == right == "12 OAK STREET|AUSTIN|TX::SMI"


def test_household_key_requires_line1_city_and_last_name() -> None:
    assert household_key("", "Austin", "TX", "Smith") is None
    assert household_key("12 Oak St", None, "TX", "Smith") is None
    assert household_key("12 Oak St", "Austin", "TX", "  ") is None
