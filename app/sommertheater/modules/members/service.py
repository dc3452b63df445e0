from __future__ import annotations

from datetime import date, datetime
from typing import TYPE_CHECKING, Any, Iterable

from app.sommertheater.audit import record_event
from app.sommertheater.constants import ROLE_LABELS, ROLES
from app.sommertheater.errors import ForbiddenError, NotFoundError, ValidationError
from app.sommertheater.rbac import primary_role, sort_roles, user_has_role
from app.sommertheater.utils import (
    clean_str,
    get_name_initials,
    get_user_display_name,
    iso,
    parse_date,
    parse_int,
    split_full_name,
)

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.sommertheater.models import Role, User


def get_user_or_404(s: "Session", user_id: Any) -> "User":
    from app.sommertheater.models import User

    uid = parse_int(user_id)
    user = s.get(User, uid) if uid is not None else None
    if not user:
        raise NotFoundError("Mitglied nicht gefunden")
    return user


def ensure_roles(s: "Session", keys: Iterable[str]) -> list["Role"]:
    """
    Role rows for the given keys. System roles are created on first use;
    unknown custom keys are ignored.
    """
    from app.sommertheater.models import Role

    wanted = list(dict.fromkeys(keys))
    if not wanted:
        return []
    existing = {r.key: r for r in s.query(Role).filter(Role.key.in_(wanted)).all()}
    out = []
    for key in wanted:
        role = existing.get(key)
        if role is None and key in ROLES:
            role = Role(key=key, name=ROLE_LABELS.get(key, key), is_system=True, sort_index=ROLES.index(key))
            s.add(role)
        if role is not None:
            out.append(role)
    return out


def serialize_member(user: "User") -> dict:
    first_name, last_name = user.first_name, user.last_name
    if not first_name and not last_name:
        # accounts created before the split name fields
        first_name, last_name = split_full_name(user.name)
    return {
        "id": user.id,
        "email": user.email,
        "firstName": first_name,
        "lastName": last_name,
        "displayName": get_user_display_name(user),
        "initials": get_name_initials(user.first_name, user.last_name, user.name, user.email),
        "roles": sort_roles(user.role_keys) + sorted(k for k in user.role_keys if k not in ROLES),
        "primaryRole": primary_role(user),
        "isActive": user.is_active,
        "dateOfBirth": iso(user.date_of_birth),
        "createdAt": iso(user.created_at),
    }


def list_members(s: "Session", *, include_inactive: bool = True) -> list["User"]:
    from app.sommertheater.models import User

    q = s.query(User)
    if not include_inactive:
        q = q.filter(User.is_active.is_(True))
    return q.order_by(User.last_name.asc(), User.first_name.asc(), User.email.asc()).all()


def set_member_roles(s: "Session", target: "User", role_keys: Any, actor: "User") -> "User":
    from app.sommertheater.models import Role

    if not isinstance(role_keys, list):
        raise ValidationError("Rollen müssen als Liste übermittelt werden.")
    requested = [k.strip() for k in role_keys if isinstance(k, str) and k.strip()]
    known = {r.key for r in s.query(Role).filter(Role.key.in_(requested)).all()} | set(ROLES)
    keys = [k for k in dict.fromkeys(requested) if k in known]
    if not keys:
        raise ValidationError("Mindestens eine gültige Rolle ist erforderlich.")

    before = set(target.role_keys)
    after = set(keys)
    if ("owner" in before) != ("owner" in after) and not user_has_role(actor, "owner"):
        raise ForbiddenError("Nur Owner dürfen die Owner-Rolle vergeben oder entziehen.")

    target.roles = ensure_roles(s, keys)

    record_event(
        s,
        actor=actor,
        action="member.roles_update",
        entity_type="User",
        entity_id=str(target.id),
        metadata={"changes": {"roles": {"old": sorted(before), "new": sorted(after)}}},
    )
    return target


def set_member_status(s: "Session", target: "User", active: bool, actor: "User") -> "User":
    if target.id == actor.id and not active:
        raise ValidationError("Du kannst dein eigenes Konto nicht deaktivieren.")
    if target.is_active == active:
        return target
    target.is_active = active
    target.deactivated_at = None if active else datetime.utcnow()

    record_event(
        s,
        actor=actor,
        action="member.activate" if active else "member.deactivate",
        entity_type="User",
        entity_id=str(target.id),
    )
    return target


def validate_profile_payload(payload: dict) -> list[str]:
    errors = []
    for key, label in (("firstName", "Vorname"), ("lastName", "Nachname")):
        if key in payload:
            value = (payload.get(key) or "").strip() if isinstance(payload.get(key), str) else ""
            if len(value) < 2:
                errors.append(f"{label} muss mindestens 2 Zeichen lang sein.")
            elif len(value) > 120:
                errors.append(f"{label} darf höchstens 120 Zeichen lang sein.")
    if payload.get("dateOfBirth"):
        dob = parse_date(payload.get("dateOfBirth"))
        if dob is None:
            errors.append("Ungültiges Geburtsdatum.")
        elif dob > date.today():
            errors.append("Das Geburtsdatum darf nicht in der Zukunft liegen.")
    return errors


def update_profile(s: "Session", user: "User", payload: dict) -> "User":
    changes = {}

    def _set(attr: str, val):
        if val != getattr(user, attr):
            changes[attr] = {"old": getattr(user, attr), "new": val}
            setattr(user, attr, val)

    if "firstName" in payload:
        _set("first_name", clean_str(payload.get("firstName"), max_len=120))
    if "lastName" in payload:
        _set("last_name", clean_str(payload.get("lastName"), max_len=120))
    if "dateOfBirth" in payload:
        _set("date_of_birth", parse_date(payload.get("dateOfBirth")))

    if changes:
        record_event(
            s,
            actor=user,
            action="profile.update",
            entity_type="User",
            entity_id=str(user.id),
            metadata={"changes": changes},
        )
    return user
