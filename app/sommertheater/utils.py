from __future__ import annotations

import math
import re
from datetime import date, datetime, timezone
from typing import Any

from flask import request

from app.sommertheater.errors import ValidationError

_TRUTHY = ("1", "true", "yes", "on")
_WS_RE = re.compile(r"\s+")


# --- request / payload parsing ---------------------------------------------


def json_body() -> dict[str, Any]:
    """JSON object body of the current request; anything else is a 400."""
    data = request.get_json(silent=True)
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ValidationError("Ungültige Eingabe.")
    data.pop("csrf_token", None)
    return data


def clean_str(value: Any, *, max_len: int | None = None, field: str | None = None) -> str | None:
    """Trimmed string or None. Raises when longer than max_len."""
    if value is None:
        return None
    if not isinstance(value, str):
        value = str(value)
    value = value.strip()
    if not value:
        return None
    if max_len is not None and len(value) > max_len:
        label = field or "Eingabe"
        raise ValidationError(f"{label} darf höchstens {max_len} Zeichen lang sein.")
    return value


def parse_bool(value: Any) -> bool | None:
    if value is None:
        return None
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return bool(value)
    if isinstance(value, str):
        return value.strip().lower() in _TRUTHY
    return None


def parse_int(value: Any) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(math.floor(value)) if math.isfinite(value) else None
    v = str(value).strip()
    if not v:
        return None
    try:
        return int(math.floor(float(v)))
    except ValueError:
        return None


def parse_float(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        f = float(value)
    except (TypeError, ValueError):
        return None
    return f if math.isfinite(f) else None


def parse_date(value: Any) -> date | None:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    s = str(value).strip()
    if not s:
        return None
    try:
        return date.fromisoformat(s[:10])
    except ValueError:
        return None


def parse_datetime(value: Any) -> datetime | None:
    """ISO datetime (or date) to a naive UTC-ish datetime; tz info is dropped after conversion."""
    if value is None:
        return None
    if isinstance(value, datetime):
        dt = value
    else:
        s = str(value).strip()
        if not s:
            return None
        if s.endswith("Z"):
            s = s[:-1] + "+00:00"
        try:
            dt = datetime.fromisoformat(s)
        except ValueError:
            return None
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt


def iso(value: date | datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def calculate_age(dob: date | None, today: date | None = None) -> int | None:
    if dob is None:
        return None
    today = today or date.today()
    years = today.year - dob.year
    if (today.month, today.day) < (dob.month, dob.day):
        years -= 1
    return years


# --- names -----------------------------------------------------------------


def trim_to_null(value: Any) -> str | None:
    if not isinstance(value, str):
        return None
    trimmed = value.strip()
    return trimmed or None


def combine_name_parts(first_name: str | None, last_name: str | None) -> str | None:
    parts = [p for p in (trim_to_null(first_name), trim_to_null(last_name)) if p]
    return " ".join(parts) if parts else None


def get_user_full_name(user: Any) -> str | None:
    return combine_name_parts(getattr(user, "first_name", None), getattr(user, "last_name", None)) or trim_to_null(
        getattr(user, "name", None)
    )


def get_user_display_name(user: Any, fallback: str = "Unbekannt") -> str:
    if user is None:
        return fallback
    return get_user_full_name(user) or trim_to_null(getattr(user, "email", None)) or fallback


def _initials_from_segments(segments: list[str]) -> str | None:
    if not segments:
        return None
    if len(segments) >= 2 and segments[0] and segments[-1]:
        return (segments[0][0] + segments[-1][0]).upper()
    letters = segments[0][:2]
    return letters.upper() if letters else None


def get_name_initials(
    first_name: str | None = None,
    last_name: str | None = None,
    name: str | None = None,
    email: str | None = None,
) -> str:
    from_parts = _initials_from_segments([p for p in (trim_to_null(first_name), trim_to_null(last_name)) if p])
    if from_parts:
        return from_parts
    fallback_name = trim_to_null(name)
    if fallback_name:
        initials = _initials_from_segments(_WS_RE.split(fallback_name))
        if initials:
            return initials
    trimmed_email = trim_to_null(email)
    if trimmed_email:
        initials = _initials_from_segments([p for p in [trimmed_email.split("@")[0]] if p])
        if initials:
            return initials
    return "?"


def split_full_name(full_name: str | None) -> tuple[str | None, str | None]:
    """'Vorname Nachname' or 'Nachname, Vorname' -> (first, last)."""
    trimmed = trim_to_null(full_name)
    if not trimmed:
        return None, None
    if "," in trimmed:
        last_part, first_part = trimmed.split(",", 1)
        return trim_to_null(first_part), trim_to_null(last_part)
    parts = [p for p in _WS_RE.split(trimmed) if p]
    if len(parts) == 1:
        return parts[0], None
    return parts[0], " ".join(parts[1:]) or None


def slugify(value: str | None, *, max_len: int = 60) -> str:
    """ASCII slug with German umlauts transliterated."""
    if not value:
        return ""
    s = value.strip().lower()
    for src, dst in (("ä", "ae"), ("ö", "oe"), ("ü", "ue"), ("ß", "ss")):
        s = s.replace(src, dst)
    s = re.sub(r"[^a-z0-9]+", "-", s).strip("-")
    return s[:max_len].strip("-")
