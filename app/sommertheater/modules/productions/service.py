from __future__ import annotations

from datetime import date, datetime
from typing import TYPE_CHECKING, Any

from app.sommertheater.audit import record_event
from app.sommertheater.constants import CHRONIK_POSTER_OVERRIDES
from app.sommertheater.errors import NotFoundError, ValidationError
from app.sommertheater.utils import clean_str, iso, parse_int

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.sommertheater.models import User
    from app.sommertheater.modules.productions.models import Show

MIN_SHOW_YEAR = 1990
MAX_DATES_LENGTH = 280


def get_show_or_404(s: "Session", show_id: Any, message: str = "Produktion wurde nicht gefunden") -> "Show":
    from app.sommertheater.modules.productions.models import Show

    sid = parse_int(show_id)
    show = s.get(Show, sid) if sid is not None else None
    if not show:
        raise NotFoundError(message)
    return show


def validate_show_payload(payload: dict) -> list[str]:
    errors = []
    year = parse_int(payload.get("year"))
    max_year = date.today().year + 5
    if year is None or year < MIN_SHOW_YEAR or year > max_year:
        errors.append(f"Bitte gib ein Jahr zwischen {MIN_SHOW_YEAR} und {max_year} an.")
    title = payload.get("title")
    if isinstance(title, str) and len(title.strip()) > 200:
        errors.append("Der Titel darf höchstens 200 Zeichen lang sein.")
    dates = payload.get("dates")
    if isinstance(dates, str) and len(dates.strip()) > MAX_DATES_LENGTH:
        errors.append("Bitte formuliere die Termine kompakt (maximal 280 Zeichen).")
    meta = payload.get("meta")
    if meta is not None and not isinstance(meta, dict):
        errors.append("Meta-Angaben müssen ein Objekt sein.")
    return errors


def create_show(s: "Session", payload: dict, user: "User") -> "Show":
    from app.sommertheater.modules.productions.models import Show

    show = Show(
        year=parse_int(payload.get("year")),
        slug=clean_str(payload.get("slug"), max_len=120),
        title=clean_str(payload.get("title"), max_len=200),
        synopsis=clean_str(payload.get("synopsis")),
        dates=clean_str(payload.get("dates"), max_len=MAX_DATES_LENGTH),
        poster_url=clean_str(payload.get("posterUrl"), max_len=1024),
        meta=payload.get("meta") or None,
        revealed_at=datetime.utcnow() if payload.get("revealed") else None,
        created_by_user_id=user.id,
    )
    s.add(show)
    s.flush()

    record_event(
        s,
        actor=user,
        action="show.create",
        entity_type="Show",
        entity_id=str(show.id),
        metadata={"year": show.year, "title": show.title},
    )
    return show


def update_show_dates(s: "Session", show: "Show", raw_dates: Any, user: "User") -> "Show":
    if raw_dates is not None and not isinstance(raw_dates, str):
        raise ValidationError("Ungültige Eingabe.")
    dates = raw_dates.strip() if isinstance(raw_dates, str) else ""
    if len(dates) > MAX_DATES_LENGTH:
        raise ValidationError("Bitte formuliere die Termine kompakt (maximal 280 Zeichen).")
    old = show.dates
    show.dates = dates or None

    record_event(
        s,
        actor=user,
        action="chronik.dates_update",
        entity_type="Show",
        entity_id=str(show.id),
        metadata={"changes": {"dates": {"old": old, "new": show.dates}}},
    )
    return show


def list_shows(s: "Session") -> list["Show"]:
    from app.sommertheater.modules.productions.models import Show

    return s.query(Show).order_by(Show.year.desc(), Show.id.desc()).all()


def list_revealed_shows(s: "Session") -> list["Show"]:
    from app.sommertheater.modules.productions.models import Show

    return (
        s.query(Show)
        .filter(Show.revealed_at.isnot(None))
        .order_by(Show.year.desc(), Show.id.desc())
        .all()
    )


def next_revealed_show(s: "Session") -> "Show | None":
    """Most recent revealed production (landing page teaser)."""
    shows = list_revealed_shows(s)
    return shows[0] if shows else None


def serialize_show(show: "Show") -> dict:
    return {
        "id": show.id,
        "year": show.year,
        "slug": show.slug,
        "title": show.title,
        "synopsis": show.synopsis,
        "dates": serialize_dates(show.dates),
        "posterUrl": show.poster_url,
        "revealedAt": iso(show.revealed_at),
    }


def serialize_dates(value: Any) -> str | None:
    if not isinstance(value, str):
        return None
    return value.strip() or None


# --- Chronik presentation ------------------------------------------------------


def _unique_trimmed(values: list[Any]) -> list[str]:
    seen: set[str] = set()
    out: list[str] = []
    for v in values:
        if not isinstance(v, str):
            continue
        t = v.strip()
        if not t or t in seen:
            continue
        seen.add(t)
        out.append(t)
    return out


def chronik_poster_sources(show: "Show") -> list[str]:
    base = _unique_trimmed([show.poster_url])
    override = CHRONIK_POSTER_OVERRIDES.get(show.slug or "")
    if not override:
        return base
    extra = _unique_trimmed(list(override.get("sources") or []))
    if override.get("strategy") == "replace":
        return extra
    return _unique_trimmed(base + extra)


def _parse_cast(value: Any) -> list[dict] | None:
    if not isinstance(value, list):
        return None
    entries = []
    for entry in value:
        if not isinstance(entry, dict):
            continue
        role = entry.get("role").strip() if isinstance(entry.get("role"), str) else ""
        players_raw = entry.get("players")
        players = (
            [p.strip() for p in players_raw if isinstance(p, str) and p.strip()] if isinstance(players_raw, list) else []
        )
        if role and players:
            entries.append({"role": role, "players": players})
    return entries or None


def parse_show_meta(meta: Any) -> dict | None:
    """Normalise the free-form meta JSON; None when nothing usable is left."""
    if not isinstance(meta, dict):
        return None

    def _str(v: Any) -> str | None:
        return v.strip() or None if isinstance(v, str) else None

    def _list(v: Any) -> list[str] | None:
        return _unique_trimmed(v) or None if isinstance(v, list) else None

    parsed = {
        "author": _str(meta.get("author")),
        "director": _str(meta.get("director")),
        "venue": _str(meta.get("venue") if meta.get("venue") is not None else meta.get("location")),
        "ticket_info": _str(meta.get("ticket_info")),
        "organizer": _str(meta.get("organizer")),
        "transport": _str(meta.get("transport")),
        "sources": _list(meta.get("sources")),
        "gallery": _list(meta.get("gallery") if meta.get("gallery") is not None else meta.get("images")),
        "quotes": _list(meta.get("quotes") if meta.get("quotes") is not None else meta.get("press_quotes")),
        "cast": _parse_cast(meta.get("cast")),
    }
    if not any(v for v in parsed.values()):
        return None
    return parsed


def chronik_item(show: "Show") -> dict:
    item = serialize_show(show)
    item["posters"] = chronik_poster_sources(show)
    item["meta"] = parse_show_meta(show.meta)
    return item
