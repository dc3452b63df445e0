from __future__ import annotations

from collections import Counter
from typing import TYPE_CHECKING

from app.sommertheater.audit import record_event
from app.sommertheater.errors import NotFoundError, ValidationError
from app.sommertheater.utils import clean_str, get_user_display_name, iso

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.sommertheater.models import User
    from app.sommertheater.modules.dietary.models import DietaryRestriction

ALLERGY_LEVELS = ("MILD", "MODERATE", "SEVERE", "LETHAL")

ALLERGY_LEVEL_LABELS = {
    "MILD": "Leicht",
    "MODERATE": "Mittel",
    "SEVERE": "Schwer",
    "LETHAL": "Lebensbedrohlich",
}

DIETARY_STYLE_LABELS = {
    "none": "Allesesser:in",
    "omnivore": "Allesesser:in",
    "vegetarian": "Vegetarisch",
    "vegan": "Vegan",
    "pescetarian": "Pescetarisch",
    "flexitarian": "Flexitarisch",
    "halal": "Halal",
    "kosher": "Koscher",
    "custom": "Individueller Stil",
}

DIETARY_STRICTNESS_LABELS = {
    "strict": "Strikt – keine Ausnahmen",
    "flexible": "Flexibel – kleine Ausnahmen sind möglich",
    "situational": "Situationsabhängig / nach Rücksprache",
}

BASELINE_DIETARY_STYLES = frozenset({"none", "omnivore"})
NOT_RELEVANT_LABEL = "Nicht relevant"


def dietary_style_label(style: str, custom: str | None = None) -> str:
    if style == "custom":
        return custom or DIETARY_STYLE_LABELS["none"]
    return DIETARY_STYLE_LABELS.get(style) or DIETARY_STYLE_LABELS["none"]


def dietary_strictness_label(style: str, strictness: str) -> str:
    if style in BASELINE_DIETARY_STYLES:
        return NOT_RELEVANT_LABEL
    return DIETARY_STRICTNESS_LABELS.get(strictness, NOT_RELEVANT_LABEL)


def validate_restriction_payload(payload: dict) -> list[str]:
    errors = []
    allergen = payload.get("allergen")
    if not isinstance(allergen, str) or len(allergen.strip()) < 2:
        errors.append("Allergen muss mindestens 2 Zeichen lang sein.")
    elif len(allergen.strip()) > 120:
        errors.append("Allergen darf höchstens 120 Zeichen lang sein.")
    if payload.get("level") not in ALLERGY_LEVELS:
        errors.append("Ungültiger Schweregrad.")
    for key, label in (("symptoms", "Symptome"), ("treatment", "Behandlung"), ("note", "Notiz")):
        value = payload.get(key)
        if isinstance(value, str) and len(value.strip()) > 500:
            errors.append(f"{label} darf höchstens 500 Zeichen lang sein.")
    return errors


def serialize_restriction(row: "DietaryRestriction") -> dict:
    return {
        "id": row.id,
        "allergen": row.allergen,
        "level": row.level,
        "levelLabel": ALLERGY_LEVEL_LABELS.get(row.level, row.level),
        "symptoms": row.symptoms,
        "treatment": row.treatment,
        "note": row.note,
        "isActive": row.is_active,
        "updatedAt": iso(row.updated_at),
    }


def list_own_restrictions(s: "Session", user: "User") -> list["DietaryRestriction"]:
    from app.sommertheater.modules.dietary.models import DietaryRestriction

    return (
        s.query(DietaryRestriction)
        .filter(DietaryRestriction.user_id == user.id, DietaryRestriction.is_active.is_(True))
        .order_by(DietaryRestriction.allergen.asc())
        .all()
    )


def _find_restriction(s: "Session", user_id: int, allergen: str | None) -> "DietaryRestriction | None":
    """Allergens match case-insensitively, like the onboarding import."""
    from app.sommertheater.modules.dietary.models import DietaryRestriction

    if not allergen:
        return None
    wanted = allergen.lower()
    rows = s.query(DietaryRestriction).filter(DietaryRestriction.user_id == user_id).all()
    return next((r for r in rows if r.allergen.lower() == wanted), None)


def upsert_restriction(s: "Session", user: "User", payload: dict, *, actor: "User | None" = None) -> "DietaryRestriction":
    """Create or update by (user, allergen); an inactive row is reactivated."""
    from app.sommertheater.modules.dietary.models import DietaryRestriction

    allergen = clean_str(payload.get("allergen"), max_len=120, field="Allergen")
    row = _find_restriction(s, user.id, allergen)
    created = row is None
    if row is None:
        row = DietaryRestriction(user_id=user.id, allergen=allergen)
        s.add(row)
    row.allergen = allergen
    row.level = payload.get("level")
    row.symptoms = clean_str(payload.get("symptoms"), max_len=500, field="Symptome")
    row.treatment = clean_str(payload.get("treatment"), max_len=500, field="Behandlung")
    row.note = clean_str(payload.get("note"), max_len=500, field="Notiz")
    row.is_active = True
    s.flush()

    record_event(
        s,
        actor=actor or user,
        action="dietary.create" if created else "dietary.update",
        entity_type="DietaryRestriction",
        entity_id=str(row.id),
        metadata={"allergen": allergen, "level": row.level},
    )
    return row


def deactivate_restriction(s: "Session", user: "User", allergen: str | None) -> "DietaryRestriction":
    allergen = (allergen or "").strip()
    if not allergen:
        raise ValidationError("Allergen muss angegeben werden")
    row = _find_restriction(s, user.id, allergen)
    if not row or not row.is_active:
        raise NotFoundError("Allergie nicht gefunden")
    row.is_active = False

    record_event(
        s,
        actor=user,
        action="dietary.deactivate",
        entity_type="DietaryRestriction",
        entity_id=str(row.id),
        metadata={"allergen": allergen},
    )
    return row


def allergy_overview(s: "Session") -> dict:
    """All active restrictions with member names, for meal planning."""
    from app.sommertheater.models import User
    from app.sommertheater.modules.dietary.models import DietaryRestriction

    rows = (
        s.query(DietaryRestriction)
        .join(User, User.id == DietaryRestriction.user_id)
        .filter(DietaryRestriction.is_active.is_(True), User.is_active.is_(True))
        .order_by(DietaryRestriction.allergen.asc(), User.last_name.asc(), User.first_name.asc())
        .all()
    )
    counts = Counter(r.level for r in rows)
    return {
        "restrictions": [
            {**serialize_restriction(r), "userId": r.user_id, "memberName": get_user_display_name(r.user)} for r in rows
        ],
        "levelCounts": {level: counts.get(level, 0) for level in ALLERGY_LEVELS},
        "memberCount": len({r.user_id for r in rows}),
    }
