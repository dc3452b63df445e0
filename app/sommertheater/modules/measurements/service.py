from __future__ import annotations

from typing import TYPE_CHECKING

from app.sommertheater.audit import record_event
from app.sommertheater.utils import clean_str, iso, parse_float

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.sommertheater.models import User
    from app.sommertheater.modules.measurements.models import MemberMeasurement

MEASUREMENT_TYPE_LABELS = {
    "HEIGHT": "Körpergröße",
    "CHEST": "Brustumfang",
    "WAIST": "Taillenumfang",
    "HIPS": "Hüftumfang",
    "INSEAM": "Innenbeinlänge",
    "SHOULDER": "Schulterbreite",
    "SLEEVE": "Armlänge",
    "SHOE_SIZE": "Schuhgröße",
    "HEAD": "Kopfumfang",
}
MEASUREMENT_UNITS = ("CM", "INCH", "EU", "DE")
MAX_NOTE_LENGTH = 500


def validate_measurement_payload(payload: dict) -> list[str]:
    errors = []
    if payload.get("type") not in MEASUREMENT_TYPE_LABELS:
        errors.append("Unbekannter Maßtyp.")
    if payload.get("unit") not in MEASUREMENT_UNITS:
        errors.append("Unbekannte Einheit.")
    value = parse_float(payload.get("value"))
    if value is None or value < 0:
        errors.append("Der Wert muss eine positive Zahl sein.")
    note = payload.get("note")
    if isinstance(note, str) and len(note.strip()) > MAX_NOTE_LENGTH:
        errors.append("Die Notiz darf höchstens 500 Zeichen lang sein.")
    return errors


def serialize_measurement(m: "MemberMeasurement") -> dict:
    return {
        "id": m.id,
        "userId": m.user_id,
        "type": m.type,
        "label": MEASUREMENT_TYPE_LABELS.get(m.type, m.type),
        "value": m.value,
        "unit": m.unit,
        "note": m.note,
        "updatedAt": iso(m.updated_at),
    }


def list_measurements(s: "Session", user_id: int) -> list["MemberMeasurement"]:
    from app.sommertheater.modules.measurements.models import MemberMeasurement

    return (
        s.query(MemberMeasurement)
        .filter(MemberMeasurement.user_id == user_id)
        .order_by(MemberMeasurement.type.asc())
        .all()
    )


def upsert_measurement(s: "Session", target: "User", payload: dict, actor: "User") -> "MemberMeasurement":
    from app.sommertheater.modules.measurements.models import MemberMeasurement

    mtype = payload.get("type")
    m = (
        s.query(MemberMeasurement)
        .filter(MemberMeasurement.user_id == target.id, MemberMeasurement.type == mtype)
        .one_or_none()
    )
    created = m is None
    old_value = None if m is None else m.value
    if m is None:
        m = MemberMeasurement(user_id=target.id, type=mtype)
        s.add(m)
    m.value = parse_float(payload.get("value"))
    m.unit = payload.get("unit")
    m.note = clean_str(payload.get("note"), max_len=MAX_NOTE_LENGTH, field="Notiz")
    m.updated_by_user_id = actor.id
    s.flush()

    record_event(
        s,
        actor=actor,
        action="measurement.create" if created else "measurement.update",
        entity_type="MemberMeasurement",
        entity_id=str(m.id),
        metadata={"userId": target.id, "type": mtype, "changes": {"value": {"old": old_value, "new": m.value}}},
    )
    return m
