import io
import json
from datetime import date, datetime, timedelta

import pytest

from app.sommertheater.db import session_scope
from app.sommertheater.errors import ValidationError
from app.sommertheater.models import User
from app.sommertheater.modules.dietary.models import DietaryRestriction
from app.sommertheater.modules.onboarding.models import (
    MemberInvite,
    MemberInviteRedemption,
    MemberOnboardingProfile,
    MemberRolePreference,
)
from app.sommertheater.modules.onboarding.service import (
    calculate_invite_status,
    hash_invite_token,
    parse_onboarding_payload,
    requires_bsz_class,
)
from app.sommertheater.modules.photo_consent.models import PhotoConsent
from app.sommertheater.modules.productions.models import Show


@pytest.fixture()
def show_id(app):
    with session_scope(app) as s:
        show = Show(year=2025, title="Ein Sommernachtstraum")
        s.add(show)
        s.flush()
        return show.id


@pytest.fixture()
def board(login_as):
    c, _ = login_as("vorstand@example.com", ("board",))
    return c


def _payload(session_token: str, **overrides) -> dict:
    data = {
        "sessionToken": session_token,
        "firstName": "Lea",
        "lastName": "Neumann",
        "email": "lea@example.com",
        "password": "geheim123",
        "background": "Gymnasium Dresden",
        "dateOfBirth": "2000-04-01",
        "focus": "acting",
        "gender": {"option": "female"},
        "dietaryPreference": {"style": "vegetarian", "strictness": "flexible"},
        "preferences": [{"code": "hauptrolle", "domain": "acting", "weight": 80}],
        "interests": ["Gesang", "gesang", "Tanz"],
        "dietary": [{"allergen": "Erdnüsse", "level": "SEVERE"}],
        "photoConsent": {"consent": True},
    }
    data.update(overrides)
    return data


def _latest_session_token(app) -> str:
    with session_scope(app) as s:
        return s.query(MemberInviteRedemption).order_by(MemberInviteRedemption.id.desc()).first().session_token


def _complete(c, payload, document=True):
    data = {"payload": json.dumps(payload)}
    if document:
        data["document"] = (io.BytesIO(b"%PDF-1.4 signed"), "Einverständnis.pdf", "application/pdf")
    return c.post("/api/onboarding/complete", data=data, content_type="multipart/form-data")


def test_invite_create_returns_raw_token_once(app, board, show_id):
    r = board.post("/api/member-invites", json={"showId": show_id, "roles": ["cast", "admin", "nope"], "maxUses": 2})
    assert r.status_code == 201
    invite = r.json["invite"]
    assert invite["roles"] == ["cast", "admin"]
    assert invite["inviteUrl"] == f"https://mitglieder.example.org/onboarding/{invite['token']}"
    assert invite["isActive"] is True
    assert invite["remainingUses"] == 2

    with session_scope(app) as s:
        row = s.get(MemberInvite, invite["id"])
        assert row.token_hash == hash_invite_token(invite["token"])

    r = board.get("/api/member-invites")
    assert "token" not in r.json["invites"][0]
    assert r.json["productions"][0]["id"] == show_id


def test_invite_requires_show(board):
    r = board.post("/api/member-invites", json={"roles": ["member"]})
    assert r.status_code == 400
    assert r.json["error"] == "Bitte wähle eine Produktion aus."


def test_invite_update_and_renew(board, show_id):
    invite = board.post("/api/member-invites", json={"showId": show_id}).json["invite"]

    r = board.patch(f"/api/member-invites/{invite['id']}", json={})
    assert r.status_code == 400
    assert r.json["error"] == "Keine Änderungen übermittelt"

    r = board.patch(f"/api/member-invites/{invite['id']}", json={"isDisabled": True, "label": "Ensemble 2025"})
    assert r.status_code == 200
    assert r.json["invite"]["isActive"] is False
    assert r.json["invite"]["shareUrl"] is None

    r = board.post(f"/api/member-invites/{invite['id']}/renew", json={"days": 500})
    assert r.status_code == 200
    body = r.json["invite"]
    assert body["isDisabled"] is False
    expires = datetime.fromisoformat(body["expiresAt"])
    assert timedelta(days=89) < expires - datetime.utcnow() <= timedelta(days=90)


def test_invite_status_calculation():
    now = datetime(2025, 6, 1, 12, 0)
    invite = MemberInvite(expires_at=now - timedelta(minutes=1), max_uses=3, usage_count=1, is_disabled=False)
    status = calculate_invite_status(invite, now)
    assert status["isExpired"] is True
    assert status["isActive"] is False
    assert status["remainingUses"] == 2

    invite = MemberInvite(expires_at=None, max_uses=1, usage_count=1, is_disabled=False)
    assert calculate_invite_status(invite, now)["isExhausted"] is True


def test_full_redemption_flow(app, api, board, show_id):
    invite = board.post("/api/member-invites", json={"showId": show_id, "roles": ["cast"], "maxUses": 1}).json["invite"]

    r = api.get(f"/onboarding/{invite['token']}")
    assert r.status_code == 200
    token = _latest_session_token(app)

    r = _complete(api, _payload(token))
    assert r.status_code == 200, r.json
    assert r.json["ok"] is True
    user_id = r.json["userId"]

    # the new member is logged in right away
    assert api.get("/api/profile").json["profile"]["email"] == "lea@example.com"

    with session_scope(app) as s:
        user = s.get(User, user_id)
        assert user.role_keys == ["cast"]
        assert user.date_of_birth == date(2000, 4, 1)
        assert s.get(MemberInvite, invite["id"]).usage_count == 1

        profile = s.query(MemberOnboardingProfile).filter_by(user_id=user_id).one()
        assert profile.show_id == show_id
        assert profile.gender == "Weiblich"
        assert profile.dietary_preference == "Vegetarisch"

        assert s.query(MemberRolePreference).filter_by(user_id=user_id).count() == 1
        assert s.query(DietaryRestriction).filter_by(user_id=user_id).one().allergen == "Erdnüsse"

        consent = s.query(PhotoConsent).filter_by(user_id=user_id).one()
        assert consent.status == "pending"
        assert consent.document_key

        redemption = s.query(MemberInviteRedemption).filter_by(session_token=token).one()
        assert redemption.completed_at is not None
        assert "password" not in redemption.payload

    # same session token again
    r = _complete(api, _payload(token, email="other@example.com"))
    assert r.status_code == 409
    assert r.json["error"] == "Einladung wurde bereits verwendet"

    # link is used up now
    r = api.get(f"/onboarding/{invite['token']}")
    assert r.status_code == 410


def test_redemption_rolls_back_on_duplicate_email(app, api, board, make_user, show_id):
    make_user("lea@example.com")
    invite = board.post("/api/member-invites", json={"showId": show_id}).json["invite"]
    api.get(f"/onboarding/{invite['token']}")

    r = _complete(api, _payload(_latest_session_token(app)))
    assert r.status_code == 409
    assert r.json["error"] == "Für diese E-Mail existiert bereits ein Konto"
    with session_scope(app) as s:
        assert s.get(MemberInvite, invite["id"]).usage_count == 0
        assert s.query(MemberOnboardingProfile).count() == 0


def test_consent_requires_document(app, api, board, show_id):
    invite = board.post("/api/member-invites", json={"showId": show_id}).json["invite"]
    api.get(f"/onboarding/{invite['token']}")
    token = _latest_session_token(app)

    minor_dob = date(date.today().year - 15, 1, 1).isoformat()
    r = _complete(api, _payload(token, dateOfBirth=minor_dob), document=False)
    assert r.status_code == 400
    assert "Erziehungsberechtigten" in r.json["error"]

    r = _complete(api, _payload(token, photoConsent={"consent": False}), document=False)
    assert r.status_code == 200
    with session_scope(app) as s:
        assert s.query(PhotoConsent).count() == 0


def test_unknown_invite_token(client):
    r = client.get("/onboarding/gibt-es-nicht")
    assert r.status_code == 404


def test_onboarding_requires_multipart(api):
    api.get("/")
    r = api.post("/api/onboarding/complete", json={"payload": "{}"})
    assert r.status_code == 400
    assert r.json["error"] == "Erwartet multipart/form-data"


def test_parse_payload_rules():
    base = _payload("x" * 20)
    assert parse_onboarding_payload(base)["interests"] == ["Gesang", "Tanz"]

    with pytest.raises(ValidationError, match="Klasse am BSZ"):
        parse_onboarding_payload(dict(base, background="BSZ Canaletto"))
    assert parse_onboarding_payload(dict(base, background="BSZ Canaletto", backgroundClass="FOS 12"))

    with pytest.raises(ValidationError, match="Sitzung"):
        parse_onboarding_payload(dict(base, sessionToken="kurz"))
    with pytest.raises(ValidationError, match="Passwort"):
        parse_onboarding_payload(dict(base, password="123"))
    with pytest.raises(ValidationError, match="Geschlecht"):
        parse_onboarding_payload(dict(base, gender={"option": "custom"}))
    with pytest.raises(ValidationError, match="Gewichtung"):
        parse_onboarding_payload(dict(base, preferences=[{"code": "x", "domain": "crew", "weight": 101}]))


def test_bsz_detection_ignores_accents_and_case():
    assert requires_bsz_class("bsz altroßthal")
    assert not requires_bsz_class("Gymnasium Altrossthal")
    assert not requires_bsz_class(None)


def test_onboarding_analytics(app, api, board, show_id):
    invite = board.post("/api/member-invites", json={"showId": show_id}).json["invite"]
    api.get(f"/onboarding/{invite['token']}")
    assert _complete(api, _payload(_latest_session_token(app))).status_code == 200

    r = board.get(f"/api/onboarding/analytics?showId={show_id}")
    assert r.status_code == 200
    data = r.json
    assert data["completions"]["total"] == 1
    assert data["completions"]["byFocus"]["acting"] == 1
    assert data["invites"]["totalUsage"] == 1
    assert {"name": "Gesang", "count": 1} in data["interests"]
    assert data["rolePreferences"][0]["averageWeight"] == 80
    assert data["pendingPhotoConsents"] == 1


def _hash_after(monkeypatch, change):
    """Run `change` in its own session right after the pre-checks passed."""
    from app.sommertheater.modules.onboarding import service

    real_hash = service.generate_password_hash

    def _hash(password):
        change()
        return real_hash(password)

    monkeypatch.setattr(service, "generate_password_hash", _hash)


def test_email_taken_during_redemption(app, api, board, make_user, monkeypatch, show_id):
    invite = board.post("/api/member-invites", json={"showId": show_id}).json["invite"]
    api.get(f"/onboarding/{invite['token']}")
    _hash_after(monkeypatch, lambda: make_user("lea@example.com"))

    r = _complete(api, _payload(_latest_session_token(app)))
    assert r.status_code == 409
    assert r.json["error"] == "Für diese E-Mail existiert bereits ein Konto"
    with session_scope(app) as s:
        assert s.get(MemberInvite, invite["id"]).usage_count == 0
        assert s.query(User).filter(User.email == "lea@example.com").count() == 1
        assert s.query(MemberOnboardingProfile).count() == 0
        assert s.query(PhotoConsent).count() == 0


def test_invite_used_up_during_redemption(app, api, board, monkeypatch, show_id):
    invite = board.post("/api/member-invites", json={"showId": show_id, "maxUses": 1}).json["invite"]
    api.get(f"/onboarding/{invite['token']}")

    def _use_up():
        with session_scope(app) as s:
            s.get(MemberInvite, invite["id"]).usage_count = 1

    _hash_after(monkeypatch, _use_up)

    r = _complete(api, _payload(_latest_session_token(app)))
    assert r.status_code == 409
    assert r.json["error"] == "Einladungslink ist nicht mehr gültig"
    with session_scope(app) as s:
        assert s.query(User).filter(User.email == "lea@example.com").count() == 0


def test_session_completed_during_redemption(app, api, board, monkeypatch, show_id):
    invite = board.post("/api/member-invites", json={"showId": show_id}).json["invite"]
    api.get(f"/onboarding/{invite['token']}")
    token = _latest_session_token(app)

    def _complete_elsewhere():
        with session_scope(app) as s:
            redemption = s.query(MemberInviteRedemption).filter_by(session_token=token).one()
            redemption.completed_at = datetime.utcnow()
            redemption.email = "erste@example.com"

    _hash_after(monkeypatch, _complete_elsewhere)

    r = _complete(api, _payload(token))
    assert r.status_code == 409
    assert r.json["error"] == "Einladung wurde bereits verwendet"
    with session_scope(app) as s:
        assert s.get(MemberInvite, invite["id"]).usage_count == 0
        assert s.query(User).filter(User.email == "lea@example.com").count() == 0
        redemption = s.query(MemberInviteRedemption).filter_by(session_token=token).one()
        assert redemption.email == "erste@example.com"
        assert redemption.user_id is None
