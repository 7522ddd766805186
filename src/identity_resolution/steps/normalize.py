"""Signal normalization: raw identifier strings to comparison keys.

Every function here returns ``None`` for a value it rejects. A missing or
malformed identifier is an expected condition, not an error.
"""

from __future__ import annotations

import re

_EMAIL_PLACEHOLDERS = {"null", "undefined", "none", "n/a"}

_URL_MARKERS = ("http", "www.")
_COLUMN_SHIFT_DELIMITERS = (",", "|")
_LETTER_RUN_RE = re.compile(r"[a-zA-Z]{3,}")
_NON_DIGIT_RE = re.compile(r"\D")
_NON_ALPHA_RE = re.compile(r"[^a-z]")
_WHITESPACE_RE = re.compile(r"\s+")
_ADDRESS_PUNCT_RE = re.compile(r"[.,#]")

_ADDR_ABBREVS = [
    (re.compile(r"\bSTE\b"), "SUITE"),
    (re.compile(r"\bST\b"), "STREET"),
    (re.compile(r"\bAVE?\b"), "AVENUE"),
    (re.compile(r"\bBLVD\b"), "BOULEVARD"),
    (re.compile(r"\bDR\b"), "DRIVE"),
    (re.compile(r"\bRD\b"), "ROAD"),
    (re.compile(r"\bLN\b"), "LANE"),
    (re.compile(r"\bCT\b"), "COURT"),
    (re.compile(r"\bPL\b"), "PLACE"),
    (re.compile(r"\bPKWY\b"), "PARKWAY"),
    (re.compile(r"\bAPT\b"), "APARTMENT"),
]


def _text(value: object) -> str:
    if value is None:
        return ""
    return str(value).strip()


def normalize_email(raw: object) -> str | None:
    value = _text(raw).lower()
    if not value or value in _EMAIL_PLACEHOLDERS:
        return None
    if "@" not in value:
        return None
    return value


def normalize_phone(raw: object) -> str | None:
    """Digits-only phone key, or None for values that are clearly not a phone.

    URLs, embedded commas/pipes (column-shift corruption) and runs of three or
    more letters are rejected before digits are extracted.
    """
    value = _text(raw)
    if not value:
        return None
    lowered = value.lower()
    if any(marker in lowered for marker in _URL_MARKERS):
        return None
    if any(delim in value for delim in _COLUMN_SHIFT_DELIMITERS):
        return None
    if _LETTER_RUN_RE.search(value):
        return None

    digits = _NON_DIGIT_RE.sub("", value)
    if len(digits) == 11 and digits[0] == "1":
        return digits[1:]
    if 7 <= len(digits) <= 11:
        return digits
    return None


def normalize_name_zip(last_name: object, zip_code: object) -> str | None:
    last = _NON_ALPHA_RE.sub("", _text(last_name).lower())
    zip5 = _NON_DIGIT_RE.sub("", _text(zip_code))[:5]
    if len(last) < 2 or len(zip5) < 5:
        return None
    return f"{last}|{zip5}"


def first_name_prefix(first_name: object, length: int = 3) -> str | None:
    value = _text(first_name).lower()
    if not value:
        return None
    return value[:length]


def format_phone(digits: str) -> str:
    if len(digits) == 10:
        return f"({digits[:3]}) {digits[3:6]}-{digits[6:]}"
    return digits


def normalize_address(line: object) -> str:
    """Uppercase, strip punctuation, collapse whitespace, expand street abbreviations."""
    value = _ADDRESS_PUNCT_RE.sub(" ", _text(line).upper())
    value = _WHITESPACE_RE.sub(" ", value).strip()
    for pattern, replacement in _ADDR_ABBREVS:
        value = pattern.sub(replacement, value)
    return value


def household_key(
    address_line1: object,
    city: object,
    state: object,
    last_name: object,
) -> str | None:
    """Address + surname-prefix key; None when line 1, city or last name is blank."""
    line1 = normalize_address(address_line1)
    city_text = _WHITESPACE_RE.sub(" ", _text(city).upper())
    last = _text(last_name).upper()
    if not line1 or not city_text or not last:
        return None
    state_text = _text(state).upper()
    return f"{line1}|{city_text}|{state_text}::{last[:3]}"
