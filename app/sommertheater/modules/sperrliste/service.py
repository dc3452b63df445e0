from __future__ import annotations

from datetime import date, timedelta
from typing import TYPE_CHECKING, Any

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from app.sommertheater.audit import record_event
from app.sommertheater.errors import ConflictError, NotFoundError, ValidationError
from app.sommertheater.utils import get_user_display_name, iso, parse_date

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.sommertheater.models import User
    from app.sommertheater.modules.sperrliste.models import BlockedDay

BLOCK_KINDS = ("BLOCKED", "PREFERRED")
MAX_REASON_LENGTH = 200
MAX_OVERVIEW_DAYS = 366


def freeze_message(freeze_days: int) -> str:
    return (
        "Aus Planungsgründen können Sperrtermine erst ab "
        f"{freeze_days} Tagen im Voraus eingetragen werden."
    )


def freeze_cutoff(freeze_days: int, *, today: date | None = None) -> date:
    """First day outside the freeze window."""
    return (today or date.today()) + timedelta(days=freeze_days)


def normalize_reason(value: Any) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError("Ungültige Eingabe")
    value = value.strip()
    if len(value) > MAX_REASON_LENGTH:
        raise ValidationError("Der Grund darf höchstens 200 Zeichen lang sein.")
    return value or None


def _parse_kind(value: Any) -> str:
    if value is None:
        return "BLOCKED"
    if value not in BLOCK_KINDS:
        raise ValidationError("Ungültige Eingabe")
    return value


def serialize_block_day(b: "BlockedDay") -> dict:
    return {
        "id": b.id,
        "date": iso(b.date),
        "reason": b.reason,
        "kind": b.kind,
        "userId": b.user_id,
        "updatedAt": iso(b.updated_at),
    }


def list_own_block_days(s: "Session", user: "User") -> list["BlockedDay"]:
    from app.sommertheater.modules.sperrliste.models import BlockedDay

    return s.query(BlockedDay).filter(BlockedDay.user_id == user.id).order_by(BlockedDay.date.asc()).all()


def create_block_day(
    s: "Session",
    user: "User",
    payload: dict,
    *,
    freeze_days: int,
    today: date | None = None,
) -> "BlockedDay":
    from app.sommertheater.modules.sperrliste.models import BlockedDay

    raw = payload.get("date")
    day = parse_date(raw) if isinstance(raw, str) and len(raw.strip()) == 10 else None
    if day is None:
        raise ValidationError("Ungültiges Datum")
    if day < freeze_cutoff(freeze_days, today=today):
        raise ValidationError(freeze_message(freeze_days))
    reason = normalize_reason(payload.get("reason"))
    kind = _parse_kind(payload.get("kind"))

    exists = (
        s.query(BlockedDay.id).filter(BlockedDay.user_id == user.id, BlockedDay.date == day).first()
    )
    if exists:
        raise ConflictError("Für dieses Datum existiert bereits ein Sperrtermin.")

    b = BlockedDay(user_id=user.id, date=day, reason=reason, kind=kind)
    s.add(b)
    try:
        s.flush()
    except IntegrityError as e:
        s.rollback()
        raise ConflictError("Für dieses Datum existiert bereits ein Sperrtermin.") from e
    record_event(
        s,
        actor=user,
        action="block_day.create",
        entity_type="BlockedDay",
        entity_id=str(b.id),
        metadata={"date": day, "kind": kind},
    )
    return b


def bulk_create_block_days(
    s: "Session",
    user: "User",
    payload: dict,
    *,
    freeze_days: int,
    today: date | None = None,
) -> tuple[list["BlockedDay"], list[str]]:
    """Create several days at once; days inside the freeze window are skipped, duplicates ignored."""
    from app.sommertheater.modules.sperrliste.models import BlockedDay

    raw_dates = payload.get("dates")
    if not isinstance(raw_dates, list) or not raw_dates:
        raise ValidationError("Ungültige Eingabe")
    days: list[date] = []
    for raw in raw_dates:
        d = parse_date(raw) if isinstance(raw, str) else None
        if d is None:
            raise ValidationError("Ungültige Eingabe")
        if d not in days:
            days.append(d)
    reason = normalize_reason(payload.get("reason"))
    kind = _parse_kind(payload.get("kind"))

    cutoff = freeze_cutoff(freeze_days, today=today)
    allowed = [d for d in days if d >= cutoff]
    skipped = [d.isoformat() for d in days if d < cutoff]
    if allowed:
        existing = {
            d
            for (d,) in s.query(BlockedDay.date)
            .filter(BlockedDay.user_id == user.id, BlockedDay.date.in_(allowed))
            .all()
        }
        for d in allowed:
            if d not in existing:
                s.add(BlockedDay(user_id=user.id, date=d, reason=reason, kind=kind))
        s.flush()
        record_event(
            s,
            actor=user,
            action="block_day.bulk_create",
            entity_type="BlockedDay",
            metadata={"dates": [d.isoformat() for d in allowed if d not in existing], "skipped": skipped},
        )
    created = (
        s.query(BlockedDay)
        .filter(BlockedDay.user_id == user.id, BlockedDay.date.in_(allowed or [date.min]))
        .order_by(BlockedDay.date.asc())
        .all()
    )
    return created, skipped


def get_own_block_day_or_404(s: "Session", user: "User", block_id: int) -> "BlockedDay":
    from app.sommertheater.modules.sperrliste.models import BlockedDay

    b = s.get(BlockedDay, block_id)
    if not b or b.user_id != user.id:
        raise NotFoundError("Sperrtermin wurde nicht gefunden.")
    return b


def update_block_day_reason(s: "Session", b: "BlockedDay", payload: dict, user: "User") -> "BlockedDay":
    old = b.reason
    b.reason = normalize_reason(payload.get("reason"))
    s.flush()
    record_event(
        s,
        actor=user,
        action="block_day.update",
        entity_type="BlockedDay",
        entity_id=str(b.id),
        metadata={"changes": {"reason": {"old": old, "new": b.reason}}},
    )
    return b


def delete_block_day(
    s: "Session",
    b: "BlockedDay",
    user: "User",
    *,
    freeze_days: int,
    today: date | None = None,
) -> None:
    if b.date < freeze_cutoff(freeze_days, today=today):
        raise ValidationError(
            "Sperrtermine innerhalb der Sperrfrist können nicht mehr gelöscht werden."
        )
    record_event(
        s,
        actor=user,
        action="block_day.delete",
        entity_type="BlockedDay",
        entity_id=str(b.id),
        metadata={"date": b.date},
    )
    s.delete(b)
    s.flush()


def block_day_overview(s: "Session", start: Any, end: Any) -> dict:
    """Blocked members per date in [start, end]; defaults to the next 90 days."""
    from app.sommertheater.models import User
    from app.sommertheater.modules.sperrliste.models import BlockedDay

    first = parse_date(start) or date.today()
    last = parse_date(end) or first + timedelta(days=90)
    if last < first:
        raise ValidationError("Das Enddatum muss nach dem Startdatum liegen.")
    if (last - first).days > MAX_OVERVIEW_DAYS:
        raise ValidationError("Der Zeitraum darf höchstens ein Jahr umfassen.")

    rows = (
        s.query(BlockedDay)
        .join(User, User.id == BlockedDay.user_id)
        .filter(
            BlockedDay.date >= first,
            BlockedDay.date <= last,
            BlockedDay.kind == "BLOCKED",
            User.is_active.is_(True),
        )
        .order_by(BlockedDay.date.asc(), BlockedDay.user_id.asc())
        .all()
    )
    days: dict[str, dict] = {}
    for b in rows:
        key = b.date.isoformat()
        bucket = days.setdefault(key, {"date": key, "count": 0, "members": []})
        bucket["count"] += 1
        bucket["members"].append({"id": b.user_id, "name": get_user_display_name(b.user), "reason": b.reason})

    member_count = s.query(func.count(User.id)).filter(User.is_active.is_(True)).scalar() or 0
    return {
        "from": first.isoformat(),
        "to": last.isoformat(),
        "memberCount": member_count,
        "days": list(days.values()),
    }
