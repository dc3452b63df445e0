from __future__ import annotations

from typing import TYPE_CHECKING, Any

from app.sommertheater.audit import record_event
from app.sommertheater.constants import LOCKED_ROLES, PERMISSION_DEFINITIONS, ROLES
from app.sommertheater.errors import ConflictError, NotFoundError, ValidationError
from app.sommertheater.utils import clean_str, slugify

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.sommertheater.models import Permission, Role, User


def ensure_permission_definitions(s: "Session") -> dict[str, "Permission"]:
    """Upsert the permission catalog; returns key -> row."""
    from app.sommertheater.models import Permission

    existing = {p.key: p for p in s.query(Permission).all()}
    for key, label in PERMISSION_DEFINITIONS.items():
        p = existing.get(key)
        if p is None:
            p = Permission(key=key, name=label)
            s.add(p)
            existing[key] = p
        elif p.name != label:
            p.name = label
    return existing


def serialize_role(role: "Role") -> dict:
    return {
        "id": role.id,
        "key": role.key,
        "name": role.name,
        "isSystem": role.is_system,
        "locked": role.key in LOCKED_ROLES,
        "permissions": sorted(p.key for p in role.permissions),
        "memberCount": len(role.users),
    }


def permission_matrix(s: "Session") -> dict:
    from app.sommertheater.models import Role

    roles = s.query(Role).order_by(Role.sort_index.asc(), Role.name.asc()).all()
    return {
        "roles": [serialize_role(r) for r in roles],
        "permissions": [{"key": k, "label": v} for k, v in PERMISSION_DEFINITIONS.items()],
    }


def set_role_permissions(s: "Session", role: "Role", keys: Any, actor: "User") -> "Role":
    if role.key in LOCKED_ROLES:
        raise ValidationError("Diese Systemrolle hat immer alle Rechte und kann nicht bearbeitet werden.")
    if not isinstance(keys, list) or not all(isinstance(k, str) for k in keys):
        raise ValidationError("Rechte müssen als Liste übermittelt werden.")
    unknown = sorted({k for k in keys if k not in PERMISSION_DEFINITIONS})
    if unknown:
        raise ValidationError("Unbekannte Rechte: " + ", ".join(unknown))

    catalog = ensure_permission_definitions(s)
    before = sorted(p.key for p in role.permissions)
    after = sorted(set(keys))
    role.permissions = [catalog[k] for k in after]

    record_event(
        s,
        actor=actor,
        action="rbac.role_permissions_update",
        entity_type="Role",
        entity_id=str(role.id),
        metadata={"role": role.key, "changes": {"permissions": {"old": before, "new": after}}},
    )
    return role


def create_custom_role(s: "Session", payload: dict, actor: "User") -> "Role":
    from app.sommertheater.models import Role

    name = clean_str(payload.get("name"), max_len=64, field="Rollenname")
    if not name or len(name) < 2:
        raise ValidationError("Der Rollenname muss mindestens 2 Zeichen lang sein.")
    key = slugify(name, max_len=64)
    if not key or key in ROLES:
        raise ValidationError("Dieser Rollenname ist reserviert.")
    if s.query(Role).filter((Role.key == key) | (Role.name == name)).first():
        raise ConflictError("Eine Rolle mit diesem Namen existiert bereits.")

    role = Role(key=key, name=name, is_system=False, sort_index=len(ROLES) + 1)
    s.add(role)
    s.flush()
    record_event(s, actor=actor, action="rbac.role_create", entity_type="Role", entity_id=str(role.id), metadata={"key": key})
    return role


def get_role_or_404(s: "Session", role_id: int) -> "Role":
    from app.sommertheater.models import Role

    role = s.get(Role, role_id)
    if not role:
        raise NotFoundError("Rolle nicht gefunden")
    return role
