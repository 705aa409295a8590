"""Input validation shared by the profile and chat paths."""
from __future__ import annotations

import re
from datetime import date
from typing import Tuple

from chatastro.exceptions import ValidationError
from chatastro.utils.models import Gender, ProfileCreate

DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")
TIME_PATTERN = re.compile(r"^\d{2}:\d{2}$")

PROFILE_FIELDS = (
    ("fullName", "full_name"),
    ("gender", "gender"),
    ("birthDate", "birth_date"),
    ("birthTime", "birth_time"),
    ("birthPlace", "birth_place"),
)


def validate_profile(data: ProfileCreate) -> Gender:
    """
    Check a profile submission. Returns the normalised gender.

    Raises:
        ValidationError: a field is missing or malformed
    """
    missing = [alias for alias, attr in PROFILE_FIELDS if not str(getattr(data, attr) or "").strip()]
    if missing:
        raise ValidationError("All fields are required", details={"missing_fields": missing})

    try:
        gender = Gender(data.gender.strip().lower())
    except ValueError:
        raise ValidationError(
            "Invalid gender selection. Must be male, female, or other.", field="gender"
        ) from None

    if not DATE_PATTERN.match(data.birth_date):
        raise ValidationError("Invalid birth date format. Use YYYY-MM-DD.", field="birthDate")
    parse_birth_date(data.birth_date)

    if not TIME_PATTERN.match(data.birth_time):
        raise ValidationError("Invalid birth time format. Use HH:MM.", field="birthTime")
    parse_birth_time(data.birth_time)

    return gender


def parse_birth_date(value: str) -> Tuple[int, int, int]:
    year, month, day = (int(part) for part in value.split("-"))
    try:
        date(year, month, day)
    except ValueError:
        raise ValidationError("Invalid birth date.", field="birthDate") from None
    return year, month, day


def parse_birth_time(value: str) -> Tuple[int, int]:
    hour, minute = (int(part) for part in value.split(":"))
    if not (0 <= hour < 24 and 0 <= minute < 60):
        raise ValidationError("Invalid birth time.", field="birthTime")
    return hour, minute


def validate_message(text: str, max_length: int = 1000) -> str:
    """Return the stripped message or raise ValidationError."""
    if text is None or not text.strip():
        raise ValidationError("Message cannot be empty", field="message")
    if len(text) > max_length:
        raise ValidationError(
            f"Message too long. Please keep it under {max_length} characters.",
            field="message",
            details={"max_length": max_length},
        )
    return text.strip()
