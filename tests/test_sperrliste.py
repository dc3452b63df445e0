import json
from datetime import date, timedelta

import pytest

from app.sommertheater.db import session_scope
from app.sommertheater.models import User
from app.sommertheater.modules.sperrliste import holidays
from app.sommertheater.modules.sperrliste.holidays import (
    FALLBACK_SAXONY_HOLIDAY_FEED,
    HolidayFeedError,
    cached_holiday_ranges,
    clear_holiday_cache,
    fetch_holiday_ranges,
    parse_ferien_api_ranges,
    parse_ics_ranges,
)
from app.sommertheater.modules.sperrliste.models import BlockedDay
from app.sommertheater.modules.sperrliste.settings import (
    DEFAULT_SAXONY_HOLIDAY_FEED,
    ResolvedSettings,
    clamp_freeze_days,
    resolve_settings,
    sort_weekdays,
    validate_settings_payload,
)

ICS_BODY = """BEGIN:VCALENDAR
VERSION:2.0
PRODID:-//Schulferien//DE
BEGIN:VEVENT
UID:sommer-2030
DTSTART;VALUE=DATE:20300704
DTEND;VALUE=DATE:20300816
SUMMARY:Sommerferien Sachsen 2030
END:VEVENT
BEGIN:VEVENT
UID:ferientag-2030
DTSTART;VALUE=DATE:20300515
SUMMARY:Beweglicher Ferientag
END:VEVENT
END:VCALENDAR
"""

FERIEN_API_BODY = json.dumps(
    [
        {"start": "2030-07-04T00:00Z", "end": "2030-08-16T00:00Z", "name": "sommerferien sachsen", "slug": "sommerferien-2030-SN"},
        {"start": "kaputt", "end": "2030-01-01", "name": "x"},
    ]
)

TODAY = date(2030, 6, 1)


def _in(days: int) -> str:
    return (date.today() + timedelta(days=days)).isoformat()


# --- settings -----------------------------------------------------------------


def test_clamp_freeze_days():
    assert clamp_freeze_days(14.6) == 15
    assert clamp_freeze_days(-3) == 0
    assert clamp_freeze_days(999) == 365
    assert clamp_freeze_days(True) == 7
    assert clamp_freeze_days(float("nan")) == 7
    assert clamp_freeze_days("10") == 7


def test_sort_weekdays_monday_first():
    assert sort_weekdays([0, 6, "6", 9, True, "x", 1]) == [1, 6, 0]
    assert sort_weekdays("0,6") == []


def test_resolve_settings_defaults():
    resolved = resolve_settings(None, env_url=None)
    assert resolved.freeze_days == 7
    assert resolved.preferred_weekdays == [6, 0]
    assert resolved.exception_weekdays == [5]
    assert resolved.effective_url == DEFAULT_SAXONY_HOLIDAY_FEED
    assert resolved.cache_key == f"default|{DEFAULT_SAXONY_HOLIDAY_FEED}"

    assert resolve_settings(None, env_url=" https://example.org/sn.ics ").effective_url == "https://example.org/sn.ics"


def test_validate_settings_payload():
    values, errors = validate_settings_payload(
        {
            "freezeDays": "14",
            "holidaySourceMode": "custom",
            "holidaySourceUrl": " https://example.org/ferien.ics ",
            "preferredWeekdays": [0, 6],
            "exceptionWeekdays": [6, 5],
        }
    )
    assert errors == []
    assert values == {
        "freeze_days": 14,
        "preferred_weekdays": [6, 0],
        "exception_weekdays": [5],
        "holiday_source_mode": "custom",
        "holiday_source_url": "https://example.org/ferien.ics",
    }

    _values, errors = validate_settings_payload({"freezeDays": 400, "holidaySourceMode": "custom", "holidaySourceUrl": "ftp://x"})
    assert errors == [
        "Die Sperrfrist muss zwischen 0 und 365 Tagen liegen.",
        "Bitte gib eine gültige URL für die Ferienquelle an.",
    ]

    values, errors = validate_settings_payload({"freezeDays": 3, "holidaySourceMode": "default", "holidaySourceUrl": "https://x.org"})
    assert errors == []
    assert values["holiday_source_url"] is None


# --- holiday parsing ----------------------------------------------------------


def test_parse_ics_ranges_treats_dtend_as_exclusive():
    assert parse_ics_ranges(ICS_BODY) == [
        {"id": "ferientag-2030", "title": "Beweglicher Ferientag", "startDate": "2030-05-15", "endDate": "2030-05-15"},
        {"id": "sommer-2030", "title": "Sommerferien Sachsen 2030", "startDate": "2030-07-04", "endDate": "2030-08-15"},
    ]


def test_parse_ferien_api_ranges():
    assert parse_ferien_api_ranges(json.loads(FERIEN_API_BODY)) == [
        {
            "id": "ferien-api:sommerferien-2030-SN",
            "title": "Sommerferien Sachsen",
            "startDate": "2030-07-04",
            "endDate": "2030-08-16",
        }
    ]
    assert parse_ferien_api_ranges({"error": "x"}) == []


def _fake_open(responses: dict):
    calls = []

    def _open(url, *, accept, timeout):
        calls.append(url)
        result = responses.get(url)
        if isinstance(result, Exception):
            raise result
        if result is None:
            raise HolidayFeedError("Unexpected response: 404")
        return result

    _open.calls = calls
    return _open


def test_primary_ics_feed(monkeypatch):
    url = "https://example.org/ferien.ics"
    monkeypatch.setattr(holidays, "_open", _fake_open({url: (ICS_BODY.encode(), "text/calendar")}))
    settings = ResolvedSettings(mode="custom", url=url, effective_url=url)

    result = fetch_holiday_ranges(settings, today=TODAY)
    assert result.status["status"] == "ok"
    assert result.status["message"] == f"Quelle {url} lieferte 2 Zeiträume."
    assert [r["id"] for r in result.ranges] == ["ferientag-2030", "sommer-2030"]


def test_json_feed_detected_by_content_type(monkeypatch):
    url = "https://example.org/ferien"
    monkeypatch.setattr(holidays, "_open", _fake_open({url: (FERIEN_API_BODY.encode(), "application/json; charset=utf-8")}))
    result = fetch_holiday_ranges(ResolvedSettings(mode="custom", url=url, effective_url=url), today=TODAY)
    assert result.status["message"].endswith("lieferte 1 Zeitraum.")


def test_default_mode_falls_back_to_ferien_api(monkeypatch):
    fake = _fake_open({FALLBACK_SAXONY_HOLIDAY_FEED: (FERIEN_API_BODY.encode(), "application/json")})
    monkeypatch.setattr(holidays, "_open", fake)
    settings = ResolvedSettings(effective_url=DEFAULT_SAXONY_HOLIDAY_FEED)

    result = fetch_holiday_ranges(settings, today=TODAY)
    assert fake.calls == [DEFAULT_SAXONY_HOLIDAY_FEED, FALLBACK_SAXONY_HOLIDAY_FEED]
    assert result.status["status"] == "error"
    assert "Fallback" in result.status["message"]
    assert result.ranges[0]["id"] == "ferien-api:sommerferien-2030-SN"


def test_custom_mode_uses_static_list_on_failure(monkeypatch):
    url = "https://example.org/kaputt.ics"
    fake = _fake_open({url: (b"kein kalender", "text/calendar")})
    monkeypatch.setattr(holidays, "_open", fake)

    result = fetch_holiday_ranges(ResolvedSettings(mode="custom", url=url, effective_url=url), today=date(2026, 1, 1))
    assert fake.calls == [url]
    assert result.status["status"] == "error"
    assert result.status["message"].startswith("Ferienquelle konnte nicht geladen werden")
    assert any(r["title"] == "Sommerferien Sachsen 2026" for r in result.ranges)


def test_disabled_and_outbound_off_skip_network(monkeypatch):
    fake = _fake_open({})
    monkeypatch.setattr(holidays, "_open", fake)

    result = fetch_holiday_ranges(ResolvedSettings(mode="disabled", status="disabled"), today=date(2026, 1, 1))
    assert result.status["status"] == "disabled"

    result = fetch_holiday_ranges(ResolvedSettings(), outbound_disabled=True, today=date(2026, 1, 1))
    assert "OUTBOUND_HTTP_DISABLED" in result.status["message"]
    assert fake.calls == []


def test_static_ranges_are_windowed():
    result = fetch_holiday_ranges(ResolvedSettings(mode="disabled"), today=date(2027, 6, 1))
    starts = [r["startDate"] for r in result.ranges]
    assert starts == sorted(starts)
    assert all(r["endDate"] >= "2026-06-01" for r in result.ranges)


def test_cache_reuses_result(monkeypatch):
    url = "https://example.org/ferien.ics"
    fake = _fake_open({url: (ICS_BODY.encode(), "text/calendar")})
    monkeypatch.setattr(holidays, "_open", fake)
    settings = ResolvedSettings(mode="custom", url=url, effective_url=url)
    clear_holiday_cache()

    first, fresh = cached_holiday_ranges(settings, today=TODAY)
    assert fresh is True
    second, fresh = cached_holiday_ranges(settings, today=TODAY)
    assert fresh is False
    assert second is first
    assert len(fake.calls) == 1


# --- API ----------------------------------------------------------------------


@pytest.fixture()
def board(login_as):
    c, _ = login_as("vorstand@example.com", ("board",))
    return c


def test_settings_roundtrip(board, login_as):
    r = board.get("/api/sperrliste/settings")
    assert r.status_code == 200
    assert r.json["settings"]["freezeDays"] == 7
    assert r.json["defaults"]["holidaySourceUrl"] == DEFAULT_SAXONY_HOLIDAY_FEED

    r = board.put(
        "/api/sperrliste/settings",
        json={
            "freezeDays": 14,
            "holidaySourceMode": "custom",
            "holidaySourceUrl": "https://example.org/ferien.ics",
            "preferredWeekdays": [0, 6],
            "exceptionWeekdays": [5],
        },
    )
    assert r.status_code == 200
    settings = r.json["settings"]
    assert settings["freezeDays"] == 14
    assert settings["holidaySource"] == {
        "mode": "custom",
        "url": "https://example.org/ferien.ics",
        "effectiveUrl": "https://example.org/ferien.ics",
    }
    # outbound requests are off in tests
    assert settings["holidayStatus"]["status"] == "error"

    r = board.put("/api/sperrliste/settings", json={"freezeDays": 0, "holidaySourceMode": "disabled"})
    assert r.json["settings"]["holidayStatus"]["status"] == "disabled"
    assert r.json["settings"]["holidaySource"]["effectiveUrl"] is None

    r = board.put("/api/sperrliste/settings", json={"freezeDays": 5, "holidaySourceMode": "custom"})
    assert r.status_code == 400

    member, _ = login_as("mia@example.com")
    assert member.get("/api/sperrliste/settings").status_code == 403


def test_settings_check_does_not_save(board):
    r = board.post("/api/sperrliste/settings/check", json={"mode": "disabled"})
    assert r.status_code == 200
    assert r.json["holidayStatus"]["status"] == "disabled"
    assert board.get("/api/sperrliste/settings").json["settings"]["holidaySource"]["mode"] == "default"


def test_holidays_endpoint_records_status(login_as):
    c, _ = login_as("mia@example.com")
    r = c.get("/api/sperrliste/holidays")
    assert r.status_code == 200
    assert isinstance(r.json["ranges"], list)
    assert r.json["status"]["status"] == "error"
    assert r.json["status"]["checkedAt"]


def test_block_day_freeze_window(app, login_as):
    c, uid = login_as("mia@example.com")

    r = c.post("/api/block-days", json={"date": _in(3)})
    assert r.status_code == 400
    assert r.json["error"].endswith("ab 7 Tagen im Voraus eingetragen werden.")

    r = c.post("/api/block-days", json={"date": "2030-1-1"})
    assert r.status_code == 400
    assert r.json["error"] == "Ungültiges Datum"

    r = c.post("/api/block-days", json={"date": _in(10), "reason": " Klassenfahrt "})
    assert r.status_code == 200
    created = r.json
    assert created["reason"] == "Klassenfahrt"
    assert created["kind"] == "BLOCKED"

    r = c.post("/api/block-days", json={"date": _in(10)})
    assert r.status_code == 409

    r = c.patch(f"/api/block-days/{created['id']}", json={"reason": "x" * 201})
    assert r.status_code == 400
    r = c.patch(f"/api/block-days/{created['id']}", json={"reason": "  "})
    assert r.json["reason"] is None

    # inside the window deletion is refused
    with session_scope(app) as s:
        frozen = BlockedDay(user_id=uid, date=date.today() + timedelta(days=1))
        s.add(frozen)
        s.flush()
        frozen_id = frozen.id
    r = c.delete(f"/api/block-days/{frozen_id}")
    assert r.status_code == 400

    assert c.delete(f"/api/block-days/{created['id']}").json == {"success": True}
    assert [b["id"] for b in c.get("/api/block-days").json] == [frozen_id]


def test_block_days_are_private(login_as):
    mia, _ = login_as("mia@example.com")
    created = mia.post("/api/block-days", json={"date": _in(20)}).json

    lea, _ = login_as("lea@example.com")
    assert lea.delete(f"/api/block-days/{created['id']}").status_code == 404
    assert lea.patch(f"/api/block-days/{created['id']}", json={"reason": "meins"}).status_code == 404


def test_bulk_create(login_as):
    c, _ = login_as("mia@example.com")
    c.post("/api/block-days", json={"date": _in(11)})

    r = c.post(
        "/api/block-days/bulk",
        json={"dates": [_in(2), _in(10), _in(11), _in(10)], "kind": "PREFERRED", "reason": "Urlaub"},
    )
    assert r.status_code == 200
    assert r.json["skipped"] == [_in(2)]
    assert [b["date"] for b in r.json["created"]] == [_in(10), _in(11)]
    # existing days are left untouched
    assert r.json["created"][1]["kind"] == "BLOCKED"

    assert c.post("/api/block-days/bulk", json={"dates": []}).status_code == 400
    assert c.post("/api/block-days/bulk", json={"dates": [_in(12)], "kind": "MAYBE"}).status_code == 400


def test_overview_counts_active_members(app, login_as):
    mia, mia_id = login_as("mia@example.com", first_name="Mia", last_name="Berger")
    lea, lea_id = login_as("lea@example.com")
    mia.post("/api/block-days", json={"date": _in(15), "reason": "Prüfung"})
    lea.post("/api/block-days", json={"date": _in(15)})
    lea.post("/api/block-days", json={"date": _in(16), "kind": "PREFERRED"})

    with session_scope(app) as s:
        s.get(User, lea_id).is_active = False

    planner, _ = login_as("regie@example.com", ("tech",))
    r = planner.get(f"/api/block-days/overview?from={_in(0)}&to={_in(30)}")
    assert r.status_code == 200
    assert r.json["days"] == [
        {"date": _in(15), "count": 1, "members": [{"id": mia_id, "name": "Mia Berger", "reason": "Prüfung"}]}
    ]
    assert r.json["memberCount"] == 2

    r = planner.get(f"/api/block-days/overview?from={_in(10)}&to={_in(0)}")
    assert r.status_code == 400

    assert mia.get("/api/block-days/overview").status_code == 403
