from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any

from app.sommertheater.audit import record_event
from app.sommertheater.utils import iso

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.sommertheater.models import User
    from app.sommertheater.modules.sperrliste.models import SperrlisteSettings

DEFAULT_SAXONY_HOLIDAY_FEED = "https://www.feiertage-deutschland.de/kalender-download/ics/schulferien-sachsen.ics"
SETTINGS_ID = "default"

DEFAULT_FREEZE_DAYS = 7
MAX_FREEZE_DAYS = 365
DEFAULT_PREFERRED_WEEKDAYS = (6, 0)
DEFAULT_EXCEPTION_WEEKDAYS = (5,)

HOLIDAY_SOURCE_MODES = ("default", "custom", "disabled")
HOLIDAY_SOURCE_STATUSES = ("unknown", "ok", "error", "disabled")

# Monday first, Sunday last
WEEKDAY_ORDER = (1, 2, 3, 4, 5, 6, 0)


@dataclass
class ResolvedSettings:
    freeze_days: int = DEFAULT_FREEZE_DAYS
    preferred_weekdays: list[int] = field(default_factory=lambda: list(DEFAULT_PREFERRED_WEEKDAYS))
    exception_weekdays: list[int] = field(default_factory=lambda: list(DEFAULT_EXCEPTION_WEEKDAYS))
    mode: str = "default"
    url: str | None = None
    effective_url: str | None = None
    status: str = "unknown"
    message: str | None = None
    checked_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def cache_key(self) -> str:
        return f"{self.mode}|{self.effective_url or 'none'}"

    def to_dict(self) -> dict:
        return {
            "freezeDays": self.freeze_days,
            "preferredWeekdays": list(self.preferred_weekdays),
            "exceptionWeekdays": list(self.exception_weekdays),
            "holidaySource": {"mode": self.mode, "url": self.url, "effectiveUrl": self.effective_url},
            "holidayStatus": {"status": self.status, "message": self.message, "checkedAt": iso(self.checked_at)},
            "updatedAt": iso(self.updated_at),
            "cacheKey": self.cache_key,
        }


def default_holiday_url(env_url: str | None) -> str:
    return (env_url or "").strip() or DEFAULT_SAXONY_HOLIDAY_FEED


def _normalize_url(value: Any) -> str | None:
    if not isinstance(value, str):
        return None
    return value.strip() or None


def clamp_freeze_days(value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
        return DEFAULT_FREEZE_DAYS
    return max(0, min(MAX_FREEZE_DAYS, int(round(value))))


def sort_weekdays(values: Any) -> list[int]:
    """Valid weekdays (0-6, ints or numeric strings) deduplicated in Monday-first order."""
    if not isinstance(values, (list, tuple)):
        return []
    wanted: set[int] = set()
    for v in values:
        if isinstance(v, bool):
            continue
        if isinstance(v, str):
            try:
                v = int(v.strip())
            except ValueError:
                continue
        if isinstance(v, int) and 0 <= v <= 6:
            wanted.add(v)
    return [d for d in WEEKDAY_ORDER if d in wanted]


def _resolve_mode(value: Any) -> str:
    mode = value.strip().lower() if isinstance(value, str) else ""
    return mode if mode in HOLIDAY_SOURCE_MODES else "default"


def _resolve_status(value: Any) -> str:
    status = value.strip().lower() if isinstance(value, str) else ""
    return status if status in HOLIDAY_SOURCE_STATUSES else "unknown"


def effective_url_for(mode: str, url: str | None, env_url: str | None) -> str | None:
    if mode == "disabled":
        return None
    if mode == "custom":
        return url
    return default_holiday_url(env_url)


def resolve_settings(record: "SperrlisteSettings | None", *, env_url: str | None = None) -> ResolvedSettings:
    if record is None:
        return ResolvedSettings(effective_url=default_holiday_url(env_url))
    mode = _resolve_mode(record.holiday_source_mode)
    url = _normalize_url(record.holiday_source_url)
    preferred = record.preferred_weekdays
    exceptions = record.exception_weekdays
    return ResolvedSettings(
        freeze_days=clamp_freeze_days(record.freeze_days),
        preferred_weekdays=sort_weekdays(preferred) if isinstance(preferred, list) else list(DEFAULT_PREFERRED_WEEKDAYS),
        exception_weekdays=sort_weekdays(exceptions) if isinstance(exceptions, list) else list(DEFAULT_EXCEPTION_WEEKDAYS),
        mode=mode,
        url=url,
        effective_url=effective_url_for(mode, url, env_url),
        status="disabled" if mode == "disabled" else _resolve_status(record.holiday_source_status),
        message=record.holiday_source_message,
        checked_at=record.holiday_source_checked_at,
        updated_at=record.updated_at,
    )


def read_settings(s: "Session") -> "SperrlisteSettings | None":
    from app.sommertheater.modules.sperrliste.models import SperrlisteSettings

    return s.get(SperrlisteSettings, SETTINGS_ID)


def _get_or_create(s: "Session") -> "SperrlisteSettings":
    from app.sommertheater.modules.sperrliste.models import SperrlisteSettings

    record = read_settings(s)
    if record is None:
        record = SperrlisteSettings(
            id=SETTINGS_ID,
            freeze_days=DEFAULT_FREEZE_DAYS,
            preferred_weekdays=list(DEFAULT_PREFERRED_WEEKDAYS),
            exception_weekdays=list(DEFAULT_EXCEPTION_WEEKDAYS),
            holiday_source_mode="default",
            holiday_source_status="unknown",
        )
        s.add(record)
    return record


def validate_settings_payload(payload: dict) -> tuple[dict, list[str]]:
    """Clean settings input; returns (values, errors)."""
    errors: list[str] = []
    freeze = payload.get("freezeDays")
    if isinstance(freeze, str):
        try:
            freeze = float(freeze.strip())
        except ValueError:
            freeze = None
    if isinstance(freeze, bool) or not isinstance(freeze, (int, float)) or not 0 <= freeze <= MAX_FREEZE_DAYS:
        errors.append("Die Sperrfrist muss zwischen 0 und 365 Tagen liegen.")

    mode = payload.get("holidaySourceMode")
    if mode not in HOLIDAY_SOURCE_MODES:
        errors.append("Unbekannter Modus für die Ferienquelle.")

    url = _normalize_url(payload.get("holidaySourceUrl"))
    if url and (not url.lower().startswith(("http://", "https://")) or len(url) > 500):
        url = None
    if mode != "custom":
        url = None
    elif not url:
        errors.append("Bitte gib eine gültige URL für die Ferienquelle an.")

    preferred = sort_weekdays(payload.get("preferredWeekdays") or [])
    exceptions = [d for d in sort_weekdays(payload.get("exceptionWeekdays") or []) if d not in preferred]
    values = {
        "freeze_days": clamp_freeze_days(freeze),
        "preferred_weekdays": preferred,
        "exception_weekdays": exceptions,
        "holiday_source_mode": mode,
        "holiday_source_url": url,
    }
    return values, errors


def save_settings(s: "Session", values: dict, actor: "User") -> "SperrlisteSettings":
    record = _get_or_create(s)
    reset_status = (
        _resolve_mode(record.holiday_source_mode) != values["holiday_source_mode"]
        or _normalize_url(record.holiday_source_url) != values["holiday_source_url"]
    )
    changes: dict[str, Any] = {}
    for key, value in values.items():
        old = getattr(record, key)
        if old != value:
            changes[key] = {"old": old, "new": value}
            setattr(record, key, value)
    if reset_status:
        record.holiday_source_status = "unknown"
        record.holiday_source_message = None
        record.holiday_source_checked_at = None
    s.flush()
    record_event(
        s,
        actor=actor,
        action="sperrliste.settings.update",
        entity_type="SperrlisteSettings",
        entity_id=SETTINGS_ID,
        metadata={"changes": changes},
    )
    return record


def apply_holiday_status(s: "Session", status: dict) -> "SperrlisteSettings":
    record = _get_or_create(s)
    record.holiday_source_status = status["status"]
    record.holiday_source_message = status.get("message")
    record.holiday_source_checked_at = status.get("checkedAt")
    s.flush()
    return record
