from datetime import date, datetime, timedelta

import pytest

from app.sommertheater.db import session_scope
from app.sommertheater.errors import ValidationError
from app.sommertheater.models import User
from app.sommertheater.modules.rehearsals.models import Rehearsal, RehearsalTemplate
from app.sommertheater.modules.rehearsals.service import generate_from_templates, python_weekday_to_sunday_first


def _future(days: int, hour: int = 18) -> datetime:
    base = datetime.utcnow().replace(hour=hour, minute=0, second=0, microsecond=0)
    return base + timedelta(days=days)


def _rehearsal_payload(**overrides):
    data = {
        "title": "Szenenprobe 2. Akt",
        "start": _future(3).isoformat(),
        "end": _future(3, hour=21).isoformat(),
        "location": "Probebühne",
        "requiredRoles": ["cast", "cast", " tech "],
    }
    data.update(overrides)
    return data


@pytest.fixture()
def planner(login_as):
    c, _ = login_as("regie@example.com", ("tech",))
    return c


def test_sunday_first_weekday():
    assert python_weekday_to_sunday_first(date(2030, 6, 2)) == 0
    assert python_weekday_to_sunday_first(date(2030, 6, 3)) == 1
    assert python_weekday_to_sunday_first(date(2030, 6, 8)) == 6


def test_create_and_update_rehearsal(app, planner):
    r = planner.post("/api/rehearsals", json=_rehearsal_payload(end=_future(3, hour=17).isoformat()))
    assert r.status_code == 400
    assert r.json["error"] == "Das Ende muss nach dem Beginn liegen."

    r = planner.post("/api/rehearsals", json=_rehearsal_payload())
    assert r.status_code == 201
    rehearsal = r.json["rehearsal"]
    assert rehearsal["requiredRoles"] == ["cast", "tech"]
    assert rehearsal["status"] == "PLANNED"
    assert rehearsal["priority"] == "NORMAL"

    r = planner.patch(f"/api/rehearsals/{rehearsal['id']}", json={"status": "CONFIRMED", "priority": "HIGH"})
    assert r.status_code == 200
    assert r.json["rehearsal"]["status"] == "CONFIRMED"

    r = planner.patch(f"/api/rehearsals/{rehearsal['id']}", json={"status": "CONFIRMED"})
    assert r.status_code == 400
    assert r.json["error"] == "Keine Änderungen übermittelt"

    r = planner.patch(f"/api/rehearsals/{rehearsal['id']}", json={"end": _future(2).isoformat()})
    assert r.status_code == 400

    assert planner.delete(f"/api/rehearsals/{rehearsal['id']}").json == {"ok": True}
    assert planner.get(f"/api/rehearsals/{rehearsal['id']}").status_code == 404


def test_member_cannot_plan(login_as):
    c, _ = login_as("mia@example.com")
    assert c.post("/api/rehearsals", json=_rehearsal_payload()).status_code == 403
    assert c.get("/api/rehearsals").status_code == 403


def test_list_filters_by_range(planner):
    planner.post("/api/rehearsals", json=_rehearsal_payload(title="Früh"))
    planner.post(
        "/api/rehearsals",
        json=_rehearsal_payload(title="Spät", start=_future(30).isoformat(), end=_future(30, hour=21).isoformat()),
    )
    until = (datetime.utcnow() + timedelta(days=10)).date().isoformat()
    r = planner.get(f"/api/rehearsals?to={until}")
    assert [x["title"] for x in r.json["rehearsals"]] == ["Früh"]


def test_attendance_flow(app, planner, login_as):
    rehearsal = planner.post("/api/rehearsals", json=_rehearsal_payload()).json["rehearsal"]
    mia, mia_id = login_as("mia@example.com")

    r = mia.post(f"/api/rehearsals/{rehearsal['id']}/attendance", json={"status": "perhaps"})
    assert r.status_code == 400

    r = mia.post(f"/api/rehearsals/{rehearsal['id']}/attendance", json={"status": "emergency"})
    assert r.status_code == 400
    assert r.json["error"] == "Für eine Notfall-Absage ist eine Begründung erforderlich"

    r = mia.post(f"/api/rehearsals/{rehearsal['id']}/attendance", json={"status": "yes"})
    assert r.status_code == 200
    assert r.json["attendance"]["status"] == "yes"

    mine = mia.get("/api/rehearsals/mine").json["rehearsals"]
    assert mine[0]["myStatus"] == "yes"

    # members only answer for themselves
    other = login_as("lea@example.com")[1]
    r = mia.post(f"/api/rehearsals/{rehearsal['id']}/attendance", json={"status": "no", "userId": other})
    assert r.status_code == 403

    r = planner.post(f"/api/rehearsals/{rehearsal['id']}/attendance", json={"status": "no", "userId": other})
    assert r.status_code == 200
    assert r.json["attendance"]["userId"] == other

    r = mia.post(f"/api/rehearsals/{rehearsal['id']}/attendance", json={"status": None})
    assert r.json["attendance"] is None

    overview = planner.get(f"/api/rehearsals/{rehearsal['id']}/attendance").json
    assert overview["counts"]["no"] == 1
    assert overview["counts"]["yes"] == 0
    assert [(log["previous"], log["next"]) for log in overview["logs"]][0] == ("yes", None)
    assert len(overview["logs"]) == 3


def test_emergency_cancellation(app, planner, login_as):
    deadline_passed = planner.post(
        "/api/rehearsals", json=_rehearsal_payload(registrationDeadline=(datetime.utcnow() - timedelta(hours=1)).isoformat())
    ).json["rehearsal"]
    deadline_open = planner.post(
        "/api/rehearsals", json=_rehearsal_payload(registrationDeadline=_future(2).isoformat())
    ).json["rehearsal"]
    mia, _ = login_as("mia@example.com")

    r = mia.post(f"/api/rehearsals/{deadline_passed['id']}/emergency", json={"reason": "krank"})
    assert r.status_code == 404

    mia.post(f"/api/rehearsals/{deadline_open['id']}/attendance", json={"status": "yes"})
    r = mia.post(f"/api/rehearsals/{deadline_open['id']}/emergency", json={"reason": "krank"})
    assert r.status_code == 400
    assert "Anmeldefrist" in r.json["error"]

    mia.post(f"/api/rehearsals/{deadline_passed['id']}/attendance", json={"status": "yes"})
    r = mia.post(f"/api/rehearsals/{deadline_passed['id']}/emergency", json={"reason": "Fieber"})
    assert r.status_code == 200
    assert r.json["attendance"]["status"] == "emergency"
    assert r.json["attendance"]["emergencyReason"] == "Fieber"


def test_template_crud(planner):
    r = planner.post("/api/rehearsal-templates", json={"name": "Montagsprobe", "weekday": 7, "startTime": "25:00"})
    assert r.status_code == 400
    assert r.json["details"][:2] == ["Wochentag muss zwischen 0 und 6 liegen.", "Ungültige Startzeit (HH:MM)."]

    r = planner.post(
        "/api/rehearsal-templates",
        json={"name": "Montagsprobe", "weekday": 1, "startTime": "18:00", "endTime": "21:00", "location": "Aula"},
    )
    assert r.status_code == 201
    template = r.json["template"]
    assert template["isActive"] is True

    r = planner.patch(f"/api/rehearsal-templates/{template['id']}", json={"endTime": "17:00"})
    assert r.status_code == 400

    r = planner.patch(f"/api/rehearsal-templates/{template['id']}", json={"isActive": False})
    assert r.json["template"]["isActive"] is False

    assert planner.get("/api/rehearsal-templates").json["templates"][0]["name"] == "Montagsprobe"
    assert planner.delete(f"/api/rehearsal-templates/{template['id']}").json == {"ok": True}


def test_generate_from_templates_skips_occupied_days(app, make_user):
    uid = make_user("regie@example.com", ("tech",))
    monday = date(2030, 6, 3)
    with session_scope(app) as s:
        s.add(RehearsalTemplate(name="Montagsprobe", weekday=1, start_time="18:00", end_time="21:00", required_roles=[]))
        s.add(RehearsalTemplate(name="Archiv", weekday=1, start_time="10:00", end_time="12:00", is_active=False))
        s.add(Rehearsal(title="Sonderprobe", start=datetime(2030, 6, 10, 10), end=datetime(2030, 6, 10, 12)))
        s.flush()
        actor = s.get(User, uid)

        created = generate_from_templates(s, actor, weeks_ahead=2, today=monday)
        assert created == 2
        starts = sorted(r.start for r in s.query(Rehearsal).filter(Rehearsal.is_from_template.is_(True)).all())
        assert starts == [datetime(2030, 6, 3, 18), datetime(2030, 6, 17, 18)]

        # second run finds every Monday taken
        assert generate_from_templates(s, actor, weeks_ahead=2, today=monday) == 0

        with pytest.raises(ValidationError):
            generate_from_templates(s, actor, weeks_ahead=53, today=monday)


def test_generate_requires_active_template(planner):
    r = planner.post("/api/rehearsals/generate", json={})
    assert r.status_code == 400
    assert r.json["error"] == "Keine aktiven Templates gefunden"


def test_proposals(planner):
    r = planner.post("/api/rehearsals/proposals", json={"date": "2030-07-01", "startTime": "19:00", "endTime": "18:00"})
    assert r.status_code == 400

    approve = planner.post(
        "/api/rehearsals/proposals", json={"date": "2030-07-01", "startTime": "18:30", "endTime": 1290, "title": "Licht"}
    ).json["proposal"]
    assert approve["startTime"] == 1110
    assert approve["endTime"] == 1290
    reject = planner.post(
        "/api/rehearsals/proposals", json={"date": "2030-07-02", "startTime": "10:00", "endTime": "12:00"}
    ).json["proposal"]

    r = planner.post(f"/api/rehearsals/proposals/{approve['id']}", json={"action": "approve"})
    assert r.status_code == 200
    assert r.json["proposal"]["status"] == "scheduled"
    assert r.json["rehearsal"]["start"] == "2030-07-01T18:30:00"
    assert r.json["rehearsal"]["end"] == "2030-07-01T21:30:00"
    assert r.json["rehearsal"]["location"] == "Wird noch bekannt gegeben"

    r = planner.post(f"/api/rehearsals/proposals/{approve['id']}", json={"action": "reject", "reason": "x"})
    assert r.status_code == 400

    r = planner.post(f"/api/rehearsals/proposals/{reject['id']}", json={"action": "reject"})
    assert r.status_code == 400
    r = planner.post(f"/api/rehearsals/proposals/{reject['id']}", json={"action": "reject", "reason": "Bühne belegt"})
    assert r.json["proposal"]["rejectionReason"] == "Bühne belegt"
    assert "rehearsal" not in r.json

    r = planner.get("/api/rehearsals/proposals?status=rejected")
    assert [p["id"] for p in r.json["proposals"]] == [reject["id"]]
