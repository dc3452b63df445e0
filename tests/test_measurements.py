from app.sommertheater.db import session_scope
from app.sommertheater.models import AuditEvent
from app.sommertheater.modules.measurements.service import validate_measurement_payload


def test_validation_collects_all_errors():
    assert validate_measurement_payload({"type": "NECK", "unit": "MM", "value": -3}) == [
        "Unbekannter Maßtyp.",
        "Unbekannte Einheit.",
        "Der Wert muss eine positive Zahl sein.",
    ]
    assert validate_measurement_payload({"type": "HEIGHT", "unit": "CM", "value": "172.5"}) == []


def test_own_measurements_upsert(app, login_as):
    c, uid = login_as("mia@example.com", ("cast",))
    r = c.post("/api/measurements", json={"type": "HEIGHT", "unit": "CM", "value": 170})
    assert r.status_code == 200
    first = r.json["measurement"]
    assert first["label"] == "Körpergröße"

    r = c.post("/api/measurements", json={"type": "HEIGHT", "unit": "CM", "value": "171.5", "note": " mit Schuhen "})
    assert r.json["measurement"]["id"] == first["id"]
    assert r.json["measurement"]["value"] == 171.5
    assert r.json["measurement"]["note"] == "mit Schuhen"

    c.post("/api/measurements", json={"type": "CHEST", "unit": "CM", "value": 92})
    r = c.get("/api/measurements")
    assert [m["type"] for m in r.json["measurements"]] == ["CHEST", "HEIGHT"]

    with session_scope(app) as s:
        actions = [e.action for e in s.query(AuditEvent).order_by(AuditEvent.id).all()]
    assert actions.count("measurement.create") == 2
    assert actions.count("measurement.update") == 1


def test_invalid_measurement_rejected(login_as):
    c, _ = login_as("mia@example.com")
    r = c.post("/api/measurements", json={"type": "HEIGHT", "unit": "CM", "value": "groß"})
    assert r.status_code == 400
    assert r.json["error"] == "Der Wert muss eine positive Zahl sein."


def test_costume_team_access(login_as, make_user):
    target = make_user("lea@example.com", first_name="Lea", last_name="Neumann")

    member, _ = login_as("mia@example.com")
    assert member.get(f"/api/measurements/{target}").status_code == 403

    cast, _ = login_as("kostuem@example.com", ("cast",))
    r = cast.post(f"/api/measurements/{target}", json={"type": "SHOE_SIZE", "unit": "EU", "value": 39})
    assert r.status_code == 200

    r = cast.get(f"/api/measurements/{target}")
    assert r.json["member"]["name"] == "Lea Neumann"
    assert r.json["measurements"][0]["unit"] == "EU"

    assert cast.get("/api/measurements/9999").status_code == 404
