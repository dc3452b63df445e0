"""
School-holiday feed for the Sperrliste calendar.

Resolution order: the configured feed (ICS or ferien-api JSON), then in default
mode the public ferien-api.de endpoint, then the static list shipped with the app.
Every result carries a status dict that is persisted on the settings row.
"""
from __future__ import annotations

import json
import logging
import re
import time
import urllib.error
import urllib.request
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from threading import Lock
from typing import Any

from icalendar import Calendar

from app.sommertheater.modules.sperrliste.holiday_data import static_holiday_ranges
from app.sommertheater.modules.sperrliste.settings import ResolvedSettings, default_holiday_url

logger = logging.getLogger(__name__)

FALLBACK_SAXONY_HOLIDAY_FEED = "https://ferien-api.de/api/v1/holidays/SN"
USER_AGENT = "Theaterverein Kalenderbot/1.0 (+https://devtheater.beegreenx.de)"
REFERER = "https://devtheater.beegreenx.de/mitglieder/sperrliste"
CACHE_TTL_SECONDS = 12 * 60 * 60

_WORD_START_RE = re.compile(r"\b([^\W\d_])")


class HolidayFeedError(RuntimeError):
    pass


@dataclass(frozen=True)
class HolidayFetchResult:
    ranges: list[dict]
    status: dict  # {"status", "message", "checkedAt"}

    def status_json(self) -> dict:
        checked = self.status.get("checkedAt")
        return {**self.status, "checkedAt": checked.isoformat() if checked else None}


def format_range_count(count: int) -> str:
    return "1 Zeitraum" if count == 1 else f"{count} Zeiträume"


def filter_relevant_ranges(ranges: list[dict], *, today: date | None = None) -> list[dict]:
    today = today or date.today()
    lower = (today - timedelta(days=365)).isoformat()
    upper = (today + timedelta(days=365 * 3)).isoformat()
    kept = [r for r in ranges if r["endDate"] >= lower and r["startDate"] <= upper]
    kept.sort(key=lambda r: r["startDate"])
    return kept


# --- parsers ------------------------------------------------------------------


def _text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def _as_date(value: Any) -> date | None:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return None


def parse_ics_ranges(body: bytes | str) -> list[dict]:
    """VEVENTs to ranges. A date-only DTEND is exclusive and moved back one day."""
    try:
        cal = Calendar.from_ical(body)
    except ValueError as e:
        raise HolidayFeedError("Ferienquelle lieferte kein gültiges ICS.") from e

    ranges: list[dict] = []
    for event in cal.walk("VEVENT"):
        raw_start = event.get("DTSTART")
        start = _as_date(raw_start.dt) if raw_start is not None else None
        if start is None:
            continue
        raw_end = event.get("DTEND")
        end_value = raw_end.dt if raw_end is not None else None
        end = _as_date(end_value)
        if end is None:
            end = start
        elif not isinstance(end_value, datetime):
            end = max(start, end - timedelta(days=1))

        summary = _text(event.get("SUMMARY"))
        start_key, end_key = start.isoformat(), end.isoformat()
        ranges.append(
            {
                "id": _text(event.get("UID")) or f"{start_key}-{end_key}-{summary or 'ferien'}",
                "title": summary or "Ferien",
                "startDate": start_key,
                "endDate": end_key,
            }
        )
    ranges.sort(key=lambda r: r["startDate"])
    return ranges


def _title_case(value: Any) -> str:
    summary = _text(value)
    if not summary:
        return "Ferien"
    return _WORD_START_RE.sub(lambda m: m.group(1).upper(), summary)


def _iso_day(value: Any) -> str | None:
    raw = _text(value)
    if not raw:
        return None
    try:
        return date.fromisoformat(raw[:10]).isoformat()
    except ValueError:
        return None


def parse_ferien_api_ranges(payload: Any) -> list[dict]:
    """ferien-api.de format: [{"start", "end", "name", "slug"}, ...]."""
    if not isinstance(payload, list):
        return []
    ranges: list[dict] = []
    for entry in payload:
        if not isinstance(entry, dict):
            continue
        start, end = _iso_day(entry.get("start")), _iso_day(entry.get("end"))
        if not start or not end:
            continue
        title = _title_case(entry.get("name"))
        slug = _text(entry.get("slug"))
        ranges.append(
            {
                "id": f"ferien-api:{slug}" if slug else f"{start}-{end}-{title}",
                "title": title,
                "startDate": start,
                "endDate": end,
            }
        )
    ranges.sort(key=lambda r: r["startDate"])
    return ranges


# --- fetching -----------------------------------------------------------------


def _open(url: str, *, accept: str, timeout: int) -> tuple[bytes, str]:
    req = urllib.request.Request(url, method="GET")
    req.add_header("Accept", accept)
    req.add_header("User-Agent", USER_AGENT)
    req.add_header("Referer", REFERER)
    try:
        with urllib.request.urlopen(req, timeout=timeout) as resp:
            return resp.read(), (resp.headers.get("Content-Type") or "").lower()
    except urllib.error.HTTPError as e:
        raise HolidayFeedError(f"Unexpected response: {e.code}") from e
    except (urllib.error.URLError, TimeoutError, OSError) as e:
        raise HolidayFeedError(f"Ferienquelle nicht erreichbar: {e}") from e


def fetch_holiday_url(url: str, *, timeout: int = 10) -> list[dict]:
    body, content_type = _open(url, accept="text/calendar, application/json;q=0.9,*/*;q=0.1", timeout=timeout)
    if "json" in content_type or url.lower().endswith(".json"):
        try:
            payload = json.loads(body.decode("utf-8"))
        except ValueError as e:
            raise HolidayFeedError("Ferienquelle lieferte kein gültiges JSON.") from e
        ranges = parse_ferien_api_ranges(payload)
        if not ranges:
            raise HolidayFeedError("Ferienquelle lieferte keine verwertbaren Daten.")
        return ranges

    if not body.strip():
        raise HolidayFeedError("Ferienquelle lieferte keine Daten.")
    ranges = parse_ics_ranges(body)
    if not ranges:
        raise HolidayFeedError("Ferienquelle lieferte keine Termine.")
    return ranges


def fetch_fallback_feed(*, timeout: int = 10) -> list[dict]:
    try:
        body, _content_type = _open(FALLBACK_SAXONY_HOLIDAY_FEED, accept="application/json", timeout=timeout)
        return parse_ferien_api_ranges(json.loads(body.decode("utf-8")))
    except (HolidayFeedError, ValueError) as e:
        logger.warning("Fallback holiday feed failed: %s", e)
        return []


def fetch_holiday_ranges(
    settings: ResolvedSettings,
    *,
    outbound_disabled: bool = False,
    env_url: str | None = None,
    timeout: int = 10,
    today: date | None = None,
) -> HolidayFetchResult:
    checked_at = datetime.utcnow()

    def _static(status: str, message: str) -> HolidayFetchResult:
        ranges = filter_relevant_ranges(static_holiday_ranges(), today=today)
        return HolidayFetchResult(ranges, {"status": status, "message": message, "checkedAt": checked_at})

    if settings.mode == "disabled":
        return _static("disabled", "Ferienquelle ist deaktiviert. Es werden nur statische Termine verwendet.")

    if outbound_disabled:
        return _static(
            "error",
            "Externe Abrufe sind deaktiviert (OUTBOUND_HTTP_DISABLED). Es wird die statische Ferienliste genutzt.",
        )

    primary_url = settings.url if settings.mode == "custom" else (settings.effective_url or default_holiday_url(env_url))
    primary_error: str | None = None
    if primary_url:
        try:
            ranges = filter_relevant_ranges(fetch_holiday_url(primary_url, timeout=timeout), today=today)
            return HolidayFetchResult(
                ranges,
                {
                    "status": "ok",
                    "message": f"Quelle {primary_url} lieferte {format_range_count(len(ranges))}.",
                    "checkedAt": checked_at,
                },
            )
        except HolidayFeedError as e:
            primary_error = str(e)
            logger.error("Primary holiday feed failed (url=%s): %s", primary_url, e)
    else:
        primary_error = "Keine Ferienquelle konfiguriert."

    if settings.mode == "default":
        fallback = fetch_fallback_feed(timeout=timeout)
        if fallback:
            ranges = filter_relevant_ranges(fallback, today=today)
            count = format_range_count(len(ranges))
            return HolidayFetchResult(
                ranges,
                {
                    "status": "error",
                    "message": (
                        f"Primärer Feed ({primary_url or default_holiday_url(env_url)}) schlug fehl: {primary_error}. "
                        f"Fallback ({FALLBACK_SAXONY_HOLIDAY_FEED}) lieferte {count}."
                    ),
                    "checkedAt": checked_at,
                },
            )

    static = filter_relevant_ranges(static_holiday_ranges(), today=today)
    return HolidayFetchResult(
        static,
        {
            "status": "error",
            "message": (
                f"Ferienquelle konnte nicht geladen werden: {primary_error}. "
                f"Verwendet werden {format_range_count(len(static))}."
            ),
            "checkedAt": checked_at,
        },
    )


# --- in-process cache ---------------------------------------------------------

_cache: dict[str, tuple[float, HolidayFetchResult]] = {}
_cache_lock = Lock()


def cached_holiday_ranges(settings: ResolvedSettings, **kwargs: Any) -> tuple[HolidayFetchResult, bool]:
    """Fetch result for the settings' cache key, reused for 12 hours. Returns (result, fresh)."""
    key = settings.cache_key
    now = time.monotonic()
    with _cache_lock:
        hit = _cache.get(key)
        if hit and hit[0] > now:
            return hit[1], False
    result = fetch_holiday_ranges(settings, **kwargs)
    with _cache_lock:
        _cache[key] = (now + CACHE_TTL_SECONDS, result)
    return result, True


def clear_holiday_cache() -> None:
    with _cache_lock:
        _cache.clear()
