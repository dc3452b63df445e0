from __future__ import annotations

import re
from datetime import date, datetime, timedelta
from typing import TYPE_CHECKING, Any

from app.sommertheater.audit import record_event
from app.sommertheater.constants import ATTENDANCE_MANAGER_ROLES
from app.sommertheater.errors import ForbiddenError, NotFoundError, ValidationError
from app.sommertheater.rbac import user_has_role
from app.sommertheater.utils import clean_str, get_user_display_name, iso, parse_bool, parse_date, parse_datetime, parse_int

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.sommertheater.models import User
    from app.sommertheater.modules.rehearsals.models import (
        Rehearsal,
        RehearsalAttendance,
        RehearsalProposal,
        RehearsalTemplate,
    )

PRIORITIES = ("LOW", "NORMAL", "HIGH", "CRITICAL")
STATUSES = ("DRAFT", "PLANNED", "CONFIRMED", "CANCELLED", "COMPLETED")
ATTENDANCE_STATUSES = ("yes", "no", "emergency", "maybe")
PROPOSAL_STATUSES = ("proposed", "approved", "rejected", "scheduled")

DEFAULT_WEEKS_AHEAD = 8
MAX_WEEKS_AHEAD = 52
MAX_COMMENT_LENGTH = 500
DEFAULT_PROPOSAL_LOCATION = "Wird noch bekannt gegeben"

_TIME_RE = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")


def _time_to_minutes(value: str) -> int:
    hours, minutes = value.split(":")
    return int(hours) * 60 + int(minutes)


def _parse_time(value: Any) -> str | None:
    if not isinstance(value, str):
        return None
    value = value.strip()
    return value if _TIME_RE.match(value) else None


def _roles_list(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    out: list[str] = []
    for v in value:
        if isinstance(v, str) and v.strip() and v.strip() not in out:
            out.append(v.strip())
    return out


def python_weekday_to_sunday_first(d: date) -> int:
    """0 = Sunday ... 6 = Saturday."""
    return (d.weekday() + 1) % 7


# --- rehearsals ---------------------------------------------------------------


def validate_rehearsal_payload(payload: dict, *, partial: bool = False) -> list[str]:
    errors: list[str] = []
    start = parse_datetime(payload.get("start")) if "start" in payload else None
    end = parse_datetime(payload.get("end")) if "end" in payload else None
    if not partial or "start" in payload:
        if start is None:
            errors.append("Ungültiger Beginn.")
    if not partial or "end" in payload:
        if end is None:
            errors.append("Ungültiges Ende.")
    if start and end and end <= start:
        errors.append("Das Ende muss nach dem Beginn liegen.")
    if "priority" in payload and payload.get("priority") not in PRIORITIES:
        errors.append("Unbekannte Priorität.")
    if "status" in payload and payload.get("status") not in STATUSES:
        errors.append("Unbekannter Status.")
    if payload.get("registrationDeadline") and parse_datetime(payload.get("registrationDeadline")) is None:
        errors.append("Ungültige Anmeldefrist.")
    return errors


def serialize_rehearsal(r: "Rehearsal", *, include_attendance: bool = False) -> dict:
    body = {
        "id": r.id,
        "showId": r.show_id,
        "title": r.title,
        "start": iso(r.start),
        "end": iso(r.end),
        "location": r.location,
        "description": r.description,
        "requiredRoles": list(r.required_roles or []),
        "registrationDeadline": iso(r.registration_deadline),
        "isFromTemplate": r.is_from_template,
        "templateId": r.template_id,
        "priority": r.priority,
        "status": r.status,
        "createdAt": iso(r.created_at),
    }
    if include_attendance:
        body["attendance"] = [serialize_attendance(a) for a in r.attendance]
    return body


def list_rehearsals(s: "Session", filters: dict) -> list["Rehearsal"]:
    from app.sommertheater.modules.rehearsals.models import Rehearsal

    q = s.query(Rehearsal)
    show_id = parse_int(filters.get("showId"))
    if show_id:
        q = q.filter(Rehearsal.show_id == show_id)
    status = filters.get("status")
    if status in STATUSES:
        q = q.filter(Rehearsal.status == status)
    start = parse_date(filters.get("from"))
    if start:
        q = q.filter(Rehearsal.start >= datetime.combine(start, datetime.min.time()))
    end = parse_date(filters.get("to"))
    if end:
        q = q.filter(Rehearsal.start < datetime.combine(end + timedelta(days=1), datetime.min.time()))
    return q.order_by(Rehearsal.start.asc()).all()


def get_rehearsal_or_404(s: "Session", rehearsal_id: int) -> "Rehearsal":
    from app.sommertheater.modules.rehearsals.models import Rehearsal

    r = s.get(Rehearsal, rehearsal_id)
    if not r:
        raise NotFoundError("Probe nicht gefunden")
    return r


def create_rehearsal(s: "Session", payload: dict, actor: "User") -> "Rehearsal":
    from app.sommertheater.modules.rehearsals.models import Rehearsal

    r = Rehearsal(
        show_id=parse_int(payload.get("showId")),
        title=clean_str(payload.get("title"), max_len=200, field="Titel") or "Probe",
        start=parse_datetime(payload.get("start")),
        end=parse_datetime(payload.get("end")),
        location=clean_str(payload.get("location"), max_len=200, field="Ort"),
        description=clean_str(payload.get("description")),
        required_roles=_roles_list(payload.get("requiredRoles")),
        registration_deadline=parse_datetime(payload.get("registrationDeadline")),
        priority=payload.get("priority") or "NORMAL",
        status=payload.get("status") or "PLANNED",
        created_by_user_id=actor.id,
    )
    s.add(r)
    s.flush()
    record_event(
        s,
        actor=actor,
        action="rehearsal.create",
        entity_type="Rehearsal",
        entity_id=str(r.id),
        metadata={"title": r.title, "start": r.start},
    )
    return r


def update_rehearsal(s: "Session", r: "Rehearsal", payload: dict, actor: "User") -> "Rehearsal":
    changes: dict[str, Any] = {}

    def _set(field: str, value: Any) -> None:
        old = getattr(r, field)
        if old != value:
            changes[field] = {"old": old, "new": value}
            setattr(r, field, value)

    if "title" in payload:
        _set("title", clean_str(payload.get("title"), max_len=200, field="Titel") or "Probe")
    if "start" in payload:
        _set("start", parse_datetime(payload.get("start")))
    if "end" in payload:
        _set("end", parse_datetime(payload.get("end")))
    if r.end <= r.start:
        raise ValidationError("Das Ende muss nach dem Beginn liegen.")
    if "location" in payload:
        _set("location", clean_str(payload.get("location"), max_len=200, field="Ort"))
    if "description" in payload:
        _set("description", clean_str(payload.get("description")))
    if "requiredRoles" in payload:
        _set("required_roles", _roles_list(payload.get("requiredRoles")))
    if "registrationDeadline" in payload:
        _set("registration_deadline", parse_datetime(payload.get("registrationDeadline")))
    if "priority" in payload:
        _set("priority", payload.get("priority"))
    if "status" in payload:
        _set("status", payload.get("status"))
    if "showId" in payload:
        _set("show_id", parse_int(payload.get("showId")))

    if not changes:
        raise ValidationError("Keine Änderungen übermittelt")
    s.flush()
    record_event(
        s,
        actor=actor,
        action="rehearsal.update",
        entity_type="Rehearsal",
        entity_id=str(r.id),
        metadata={"changes": changes},
    )
    return r


def delete_rehearsal(s: "Session", r: "Rehearsal", actor: "User") -> None:
    record_event(
        s,
        actor=actor,
        action="rehearsal.delete",
        entity_type="Rehearsal",
        entity_id=str(r.id),
        metadata={"title": r.title, "start": r.start},
    )
    s.delete(r)
    s.flush()


def list_upcoming_for_user(s: "Session", user: "User", *, now: datetime | None = None) -> list[dict]:
    from app.sommertheater.modules.rehearsals.models import Rehearsal, RehearsalAttendance

    now = now or datetime.utcnow()
    rows = (
        s.query(Rehearsal)
        .filter(Rehearsal.start >= now, Rehearsal.status != "CANCELLED")
        .order_by(Rehearsal.start.asc())
        .all()
    )
    own = {
        a.rehearsal_id: a
        for a in s.query(RehearsalAttendance)
        .filter(
            RehearsalAttendance.user_id == user.id,
            RehearsalAttendance.rehearsal_id.in_([r.id for r in rows] or [0]),
        )
        .all()
    }
    out = []
    for r in rows:
        body = serialize_rehearsal(r)
        a = own.get(r.id)
        body["myStatus"] = a.status if a else None
        body["myEmergencyReason"] = a.emergency_reason if a else None
        out.append(body)
    return out


# --- templates ----------------------------------------------------------------


def validate_template_payload(payload: dict, *, partial: bool = False) -> list[str]:
    errors: list[str] = []
    if not partial or "name" in payload:
        if not clean_str(payload.get("name")):
            errors.append("Name ist erforderlich.")
    if not partial or "weekday" in payload:
        weekday = parse_int(payload.get("weekday"))
        if weekday is None or not 0 <= weekday <= 6:
            errors.append("Wochentag muss zwischen 0 und 6 liegen.")
    start = _parse_time(payload.get("startTime"))
    end = _parse_time(payload.get("endTime"))
    if (not partial or "startTime" in payload) and start is None:
        errors.append("Ungültige Startzeit (HH:MM).")
    if (not partial or "endTime" in payload) and end is None:
        errors.append("Ungültige Endzeit (HH:MM).")
    if start and end and _time_to_minutes(end) <= _time_to_minutes(start):
        errors.append("Die Endzeit muss nach der Startzeit liegen.")
    if "priority" in payload and payload.get("priority") not in PRIORITIES:
        errors.append("Unbekannte Priorität.")
    valid_from = parse_date(payload.get("validFrom"))
    valid_to = parse_date(payload.get("validTo"))
    if valid_from and valid_to and valid_to < valid_from:
        errors.append("Das Enddatum muss nach dem Startdatum liegen.")
    return errors


def serialize_template(t: "RehearsalTemplate") -> dict:
    return {
        "id": t.id,
        "name": t.name,
        "description": t.description,
        "weekday": t.weekday,
        "startTime": t.start_time,
        "endTime": t.end_time,
        "location": t.location,
        "requiredRoles": list(t.required_roles or []),
        "isActive": t.is_active,
        "priority": t.priority,
        "validFrom": iso(t.valid_from),
        "validTo": iso(t.valid_to),
    }


def list_templates(s: "Session") -> list["RehearsalTemplate"]:
    from app.sommertheater.modules.rehearsals.models import RehearsalTemplate

    return s.query(RehearsalTemplate).order_by(RehearsalTemplate.weekday.asc(), RehearsalTemplate.start_time.asc()).all()


def get_template_or_404(s: "Session", template_id: int) -> "RehearsalTemplate":
    from app.sommertheater.modules.rehearsals.models import RehearsalTemplate

    t = s.get(RehearsalTemplate, template_id)
    if not t:
        raise NotFoundError("Template nicht gefunden")
    return t


def create_template(s: "Session", payload: dict, actor: "User") -> "RehearsalTemplate":
    from app.sommertheater.modules.rehearsals.models import RehearsalTemplate

    active = parse_bool(payload.get("isActive"))
    t = RehearsalTemplate(
        name=clean_str(payload.get("name"), max_len=200, field="Name"),
        description=clean_str(payload.get("description")),
        weekday=parse_int(payload.get("weekday")),
        start_time=_parse_time(payload.get("startTime")),
        end_time=_parse_time(payload.get("endTime")),
        location=clean_str(payload.get("location"), max_len=200, field="Ort"),
        required_roles=_roles_list(payload.get("requiredRoles")),
        is_active=True if active is None else active,
        priority=payload.get("priority") or "NORMAL",
        valid_from=parse_date(payload.get("validFrom")),
        valid_to=parse_date(payload.get("validTo")),
        created_by_user_id=actor.id,
    )
    s.add(t)
    s.flush()
    record_event(
        s,
        actor=actor,
        action="rehearsal_template.create",
        entity_type="RehearsalTemplate",
        entity_id=str(t.id),
        metadata={"name": t.name, "weekday": t.weekday},
    )
    return t


def update_template(s: "Session", t: "RehearsalTemplate", payload: dict, actor: "User") -> "RehearsalTemplate":
    changes: dict[str, Any] = {}

    def _set(field: str, value: Any) -> None:
        old = getattr(t, field)
        if old != value:
            changes[field] = {"old": old, "new": value}
            setattr(t, field, value)

    if "name" in payload:
        _set("name", clean_str(payload.get("name"), max_len=200, field="Name"))
    if "description" in payload:
        _set("description", clean_str(payload.get("description")))
    if "weekday" in payload:
        _set("weekday", parse_int(payload.get("weekday")))
    if "startTime" in payload:
        _set("start_time", _parse_time(payload.get("startTime")))
    if "endTime" in payload:
        _set("end_time", _parse_time(payload.get("endTime")))
    if _time_to_minutes(t.end_time) <= _time_to_minutes(t.start_time):
        raise ValidationError("Die Endzeit muss nach der Startzeit liegen.")
    if "location" in payload:
        _set("location", clean_str(payload.get("location"), max_len=200, field="Ort"))
    if "requiredRoles" in payload:
        _set("required_roles", _roles_list(payload.get("requiredRoles")))
    if "isActive" in payload:
        _set("is_active", bool(parse_bool(payload.get("isActive"))))
    if "priority" in payload:
        _set("priority", payload.get("priority"))
    if "validFrom" in payload:
        _set("valid_from", parse_date(payload.get("validFrom")))
    if "validTo" in payload:
        _set("valid_to", parse_date(payload.get("validTo")))

    if not changes:
        raise ValidationError("Keine Änderungen übermittelt")
    s.flush()
    record_event(
        s,
        actor=actor,
        action="rehearsal_template.update",
        entity_type="RehearsalTemplate",
        entity_id=str(t.id),
        metadata={"changes": changes},
    )
    return t


def delete_template(s: "Session", t: "RehearsalTemplate", actor: "User") -> None:
    record_event(
        s,
        actor=actor,
        action="rehearsal_template.delete",
        entity_type="RehearsalTemplate",
        entity_id=str(t.id),
        metadata={"name": t.name},
    )
    s.delete(t)
    s.flush()


def _template_applies(t: "RehearsalTemplate", day: date) -> bool:
    if python_weekday_to_sunday_first(day) != t.weekday:
        return False
    if t.valid_from and day < t.valid_from:
        return False
    if t.valid_to and day > t.valid_to:
        return False
    return True


def generate_from_templates(
    s: "Session",
    actor: "User",
    *,
    weeks_ahead: Any = None,
    today: date | None = None,
) -> int:
    """
    Create rehearsals for every active template occurrence from today up to
    weeks_ahead weeks. Days that already carry a rehearsal are skipped.
    """
    from app.sommertheater.modules.rehearsals.models import Rehearsal, RehearsalTemplate

    weeks = parse_int(weeks_ahead)
    if weeks is None:
        weeks = DEFAULT_WEEKS_AHEAD
    if not 1 <= weeks <= MAX_WEEKS_AHEAD:
        raise ValidationError(f"weeksAhead muss zwischen 1 und {MAX_WEEKS_AHEAD} liegen.")

    templates = s.query(RehearsalTemplate).filter(RehearsalTemplate.is_active.is_(True)).all()
    if not templates:
        raise ValidationError("Keine aktiven Templates gefunden")

    today = today or date.today()
    last = today + timedelta(days=weeks * 7)
    window_start = datetime.combine(today, datetime.min.time())
    window_end = datetime.combine(last + timedelta(days=1), datetime.min.time())
    occupied = {
        start.date()
        for (start,) in s.query(Rehearsal.start)
        .filter(Rehearsal.start >= window_start, Rehearsal.start < window_end)
        .all()
    }

    created = 0
    day = today
    while day <= last:
        for t in templates:
            if day in occupied or not _template_applies(t, day):
                continue
            start = datetime.combine(day, datetime.min.time()) + timedelta(minutes=_time_to_minutes(t.start_time))
            end = datetime.combine(day, datetime.min.time()) + timedelta(minutes=_time_to_minutes(t.end_time))
            s.add(
                Rehearsal(
                    title=t.name,
                    start=start,
                    end=end,
                    location=t.location,
                    description=t.description,
                    required_roles=list(t.required_roles or []),
                    is_from_template=True,
                    template_id=t.id,
                    priority=t.priority,
                    status="PLANNED",
                    created_by_user_id=actor.id,
                )
            )
            occupied.add(day)
            created += 1
        day += timedelta(days=1)

    s.flush()
    record_event(
        s,
        actor=actor,
        action="rehearsal.generate",
        entity_type="Rehearsal",
        metadata={"created": created, "weeksAhead": weeks},
    )
    return created


# --- proposals ----------------------------------------------------------------


def serialize_proposal(p: "RehearsalProposal") -> dict:
    return {
        "id": p.id,
        "showId": p.show_id,
        "title": p.title,
        "date": iso(p.date),
        "startTime": p.start_time,
        "endTime": p.end_time,
        "location": p.location,
        "requiredRoles": list(p.required_roles or []),
        "status": p.status,
        "approvedAt": iso(p.approved_at),
        "approvedByUserId": p.approved_by_user_id,
        "rejectionReason": p.rejection_reason,
        "rehearsalId": p.rehearsal_id,
    }


def list_proposals(s: "Session", *, status: str | None = None) -> list["RehearsalProposal"]:
    from app.sommertheater.modules.rehearsals.models import RehearsalProposal

    q = s.query(RehearsalProposal)
    if status in PROPOSAL_STATUSES:
        q = q.filter(RehearsalProposal.status == status)
    return q.order_by(RehearsalProposal.date.asc(), RehearsalProposal.start_time.asc()).all()


def _minutes(value: Any) -> int | None:
    if isinstance(value, str) and _TIME_RE.match(value.strip()):
        return _time_to_minutes(value.strip())
    m = parse_int(value)
    if m is None or not 0 <= m < 24 * 60:
        return None
    return m


def create_proposal(s: "Session", payload: dict, actor: "User") -> "RehearsalProposal":
    from app.sommertheater.modules.rehearsals.models import RehearsalProposal

    day = parse_date(payload.get("date"))
    if day is None:
        raise ValidationError("Ungültiges Datum.")
    start = _minutes(payload.get("startTime"))
    end = _minutes(payload.get("endTime"))
    if start is None or end is None:
        raise ValidationError("Ungültige Uhrzeit.")
    if end <= start:
        raise ValidationError("Die Endzeit muss nach der Startzeit liegen.")

    p = RehearsalProposal(
        show_id=parse_int(payload.get("showId")),
        title=clean_str(payload.get("title"), max_len=200, field="Titel") or "Probenvorschlag",
        date=day,
        start_time=start,
        end_time=end,
        location=clean_str(payload.get("location"), max_len=200, field="Ort"),
        required_roles=_roles_list(payload.get("requiredRoles")),
        status="proposed",
        created_by_user_id=actor.id,
    )
    s.add(p)
    s.flush()
    record_event(
        s,
        actor=actor,
        action="rehearsal_proposal.create",
        entity_type="RehearsalProposal",
        entity_id=str(p.id),
        metadata={"date": p.date, "startTime": p.start_time},
    )
    return p


def get_proposal_or_404(s: "Session", proposal_id: int) -> "RehearsalProposal":
    from app.sommertheater.modules.rehearsals.models import RehearsalProposal

    p = s.get(RehearsalProposal, proposal_id)
    if not p:
        raise NotFoundError("Vorschlag nicht gefunden")
    return p


def decide_proposal(
    s: "Session",
    p: "RehearsalProposal",
    action: Any,
    actor: "User",
    *,
    reason: Any = None,
) -> "Rehearsal | None":
    """Approve (creates and schedules a rehearsal) or reject a pending proposal."""
    from app.sommertheater.modules.rehearsals.models import Rehearsal

    if p.status != "proposed":
        raise ValidationError("Dieser Vorschlag wurde bereits bearbeitet")

    if action == "approve":
        start = datetime.combine(p.date, datetime.min.time()) + timedelta(minutes=p.start_time)
        r = Rehearsal(
            show_id=p.show_id,
            title=p.title or "Probe",
            start=start,
            end=start + timedelta(minutes=p.end_time - p.start_time),
            location=p.location or DEFAULT_PROPOSAL_LOCATION,
            description="Aus Probenvorschlag erstellt",
            required_roles=list(p.required_roles or []),
            status="PLANNED",
            created_by_user_id=actor.id,
        )
        s.add(r)
        s.flush()
        p.status = "scheduled"
        p.approved_at = datetime.utcnow()
        p.approved_by_user_id = actor.id
        p.rehearsal_id = r.id
        s.flush()
        record_event(
            s,
            actor=actor,
            action="rehearsal_proposal.approve",
            entity_type="RehearsalProposal",
            entity_id=str(p.id),
            metadata={"rehearsalId": r.id},
        )
        return r

    if action == "reject":
        why = clean_str(reason, max_len=MAX_COMMENT_LENGTH, field="Grund")
        if not why:
            raise ValidationError("Für die Ablehnung muss ein Grund angegeben werden")
        p.status = "rejected"
        p.rejection_reason = why
        s.flush()
        record_event(
            s,
            actor=actor,
            action="rehearsal_proposal.reject",
            entity_type="RehearsalProposal",
            entity_id=str(p.id),
            reason=why,
        )
        return None

    raise ValidationError("Ungültige Action")


# --- attendance ---------------------------------------------------------------


def serialize_attendance(a: "RehearsalAttendance") -> dict:
    return {
        "id": a.id,
        "rehearsalId": a.rehearsal_id,
        "userId": a.user_id,
        "memberName": get_user_display_name(a.user) if a.user else None,
        "status": a.status,
        "emergencyReason": a.emergency_reason,
        "updatedAt": iso(a.updated_at),
    }


def can_manage_foreign_attendance(user: "User | None") -> bool:
    return user_has_role(user, *ATTENDANCE_MANAGER_ROLES)


def update_attendance(
    s: "Session",
    rehearsal: "Rehearsal",
    actor: "User",
    *,
    status: Any,
    comment: Any = None,
    target_user_id: Any = None,
) -> "RehearsalAttendance | None":
    """
    Set (or clear, with a null status) one member's attendance and append a log row.
    Members change their own answer; managers may pass another user's id.
    """
    from app.sommertheater.models import User
    from app.sommertheater.modules.rehearsals.models import RehearsalAttendance, RehearsalAttendanceLog

    if status is not None and status not in ATTENDANCE_STATUSES:
        raise ValidationError("Ungültiger Status")
    if isinstance(comment, str) and len(comment.strip()) > MAX_COMMENT_LENGTH:
        raise ValidationError("Kommentar darf höchstens 500 Zeichen lang sein.")
    note = clean_str(comment)
    if status == "emergency" and not note:
        raise ValidationError("Für eine Notfall-Absage ist eine Begründung erforderlich")

    target_id = actor.id
    requested = parse_int(target_user_id)
    if requested is not None and requested != actor.id:
        if not can_manage_foreign_attendance(actor):
            raise ForbiddenError("Keine Berechtigung")
        if not s.get(User, requested):
            raise NotFoundError("Mitglied nicht gefunden")
        target_id = requested

    existing = (
        s.query(RehearsalAttendance)
        .filter(RehearsalAttendance.rehearsal_id == rehearsal.id, RehearsalAttendance.user_id == target_id)
        .one_or_none()
    )
    previous = existing.status if existing else None

    attendance = existing
    if status:
        if attendance is None:
            attendance = RehearsalAttendance(rehearsal_id=rehearsal.id, user_id=target_id, status=status)
            s.add(attendance)
        attendance.status = status
        attendance.emergency_reason = note if status == "emergency" else None
    elif existing is not None:
        s.delete(existing)
        attendance = None

    s.add(
        RehearsalAttendanceLog(
            rehearsal_id=rehearsal.id,
            user_id=target_id,
            previous=previous,
            next=status,
            comment=note,
            changed_by_user_id=actor.id,
        )
    )
    s.flush()
    record_event(
        s,
        actor=actor,
        action="rehearsal.attendance",
        entity_type="Rehearsal",
        entity_id=str(rehearsal.id),
        metadata={"userId": target_id, "changes": {"status": {"old": previous, "new": status}}},
    )
    return attendance


def report_emergency(s: "Session", rehearsal: "Rehearsal", actor: "User", reason: Any) -> "RehearsalAttendance":
    """Late cancellation of a previous 'yes' once the registration deadline has passed."""
    from app.sommertheater.modules.rehearsals.models import RehearsalAttendance

    current = (
        s.query(RehearsalAttendance)
        .filter(RehearsalAttendance.rehearsal_id == rehearsal.id, RehearsalAttendance.user_id == actor.id)
        .one_or_none()
    )
    if current is None:
        raise NotFoundError("Keine bestehende Anmeldung gefunden")
    if current.status != "yes":
        raise ValidationError("Emergency-Absagen sind nur möglich, wenn Sie vorher zugesagt hatten")
    if rehearsal.registration_deadline and datetime.utcnow() <= rehearsal.registration_deadline:
        raise ValidationError("Emergency-Absagen sind erst nach Ablauf der Anmeldefrist möglich")
    return update_attendance(s, rehearsal, actor, status="emergency", comment=reason)


def attendance_overview(s: "Session", rehearsal: "Rehearsal", *, log_limit: int = 100) -> dict:
    from app.sommertheater.modules.rehearsals.models import RehearsalAttendanceLog

    logs = (
        s.query(RehearsalAttendanceLog)
        .filter(RehearsalAttendanceLog.rehearsal_id == rehearsal.id)
        .order_by(RehearsalAttendanceLog.changed_at.desc(), RehearsalAttendanceLog.id.desc())
        .limit(log_limit)
        .all()
    )
    counts = {status: 0 for status in ATTENDANCE_STATUSES}
    for a in rehearsal.attendance:
        counts[a.status] = counts.get(a.status, 0) + 1
    return {
        "rehearsal": serialize_rehearsal(rehearsal),
        "attendance": [serialize_attendance(a) for a in rehearsal.attendance],
        "counts": counts,
        "logs": [
            {
                "id": log.id,
                "userId": log.user_id,
                "previous": log.previous,
                "next": log.next,
                "comment": log.comment,
                "changedAt": iso(log.changed_at),
                "changedBy": (
                    {"id": log.changed_by.id, "name": get_user_display_name(log.changed_by)}
                    if log.changed_by
                    else None
                ),
            }
            for log in logs
        ],
    }
