from __future__ import annotations

import hashlib
import re
import unicodedata
from collections import Counter, defaultdict
from datetime import date, datetime, timedelta
from typing import TYPE_CHECKING, Any

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from werkzeug.security import generate_password_hash

from app.sommertheater.audit import record_event
from app.sommertheater.constants import ROLES
from app.sommertheater.db import atomic
from app.sommertheater.errors import ConflictError, NotFoundError, ValidationError
from app.sommertheater.modules.dietary.service import (
    ALLERGY_LEVELS,
    DIETARY_STRICTNESS_LABELS,
    DIETARY_STYLE_LABELS,
    dietary_strictness_label,
    dietary_style_label,
)
from app.sommertheater.modules.photo_consent.service import UploadedDocument, attach_document, store_document
from app.sommertheater.modules.productions.service import get_show_or_404
from app.sommertheater.rbac import sort_roles
from app.sommertheater.security import generate_token
from app.sommertheater.utils import (
    calculate_age,
    combine_name_parts,
    get_user_display_name,
    iso,
    parse_bool,
    parse_date,
    parse_datetime,
    parse_int,
    trim_to_null,
)

if TYPE_CHECKING:
    from sqlalchemy.orm import Session

    from app.sommertheater.models import User
    from app.sommertheater.modules.onboarding.models import MemberInvite, MemberInviteRedemption
    from app.sommertheater.storage import Storage

INVITE_DATE_LIMIT_YEARS = 5
DEFAULT_RENEW_DAYS = 21
MAX_RENEW_DAYS = 90
MAX_INTERESTS_PER_USER = 30
MAX_INTEREST_LENGTH = 80
MIN_SESSION_TOKEN_LENGTH = 16

FOCUS_OPTIONS = ("acting", "tech", "both")
PREFERENCE_DOMAINS = ("acting", "crew")

GENDER_LABELS = {
    "female": "Weiblich",
    "male": "Männlich",
    "diverse": "Divers",
    "no_answer": "Keine Angabe",
    "custom": "Selbst beschrieben",
}

BSZ_SCHOOL_KEYWORDS = ("altrossthal", "altrothal", "canaletto")

_HEX64_RE = re.compile(r"^[0-9a-f]{64}$")
_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


# --- invites -------------------------------------------------------------------


def hash_invite_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def calculate_invite_status(invite: "MemberInvite", now: datetime | None = None) -> dict:
    now = now or datetime.utcnow()
    is_expired = invite.expires_at is not None and invite.expires_at <= now
    is_exhausted = invite.max_uses is not None and invite.usage_count >= invite.max_uses
    remaining = None if invite.max_uses is None else max(invite.max_uses - invite.usage_count, 0)
    return {
        "isExpired": is_expired,
        "isExhausted": is_exhausted,
        "isActive": not invite.is_disabled and not is_expired and not is_exhausted,
        "remainingUses": remaining,
    }


def is_invite_usable(invite: "MemberInvite | None", now: datetime | None = None) -> bool:
    return invite is not None and calculate_invite_status(invite, now)["isActive"]


def invite_url(base_url: str, token: str) -> str:
    return f"{base_url.rstrip('/')}/onboarding/{token}"


def serialize_invite(invite: "MemberInvite", *, base_url: str | None = None) -> dict:
    status = calculate_invite_status(invite)
    completed = sum(1 for r in invite.redemptions if r.completed_at is not None)
    show = invite.show
    return {
        "id": invite.id,
        "label": invite.label,
        "note": invite.note,
        "createdAt": iso(invite.created_at),
        "expiresAt": iso(invite.expires_at),
        "maxUses": invite.max_uses,
        "usageCount": invite.usage_count,
        "roles": list(invite.roles or []),
        "isDisabled": invite.is_disabled,
        "createdBy": (
            {"id": invite.created_by.id, "name": get_user_display_name(invite.created_by)} if invite.created_by else None
        ),
        "show": {"id": show.id, "title": show.title, "year": show.year} if show else None,
        "completedSessions": completed,
        "pendingSessions": len(invite.redemptions) - completed,
        "shareUrl": invite_url(base_url, invite.token_hash) if base_url and status["isActive"] else None,
        **status,
    }


def list_invites(s: "Session") -> list["MemberInvite"]:
    from app.sommertheater.modules.onboarding.models import MemberInvite

    return s.query(MemberInvite).order_by(MemberInvite.created_at.desc(), MemberInvite.id.desc()).all()


def get_invite_or_404(s: "Session", invite_id: Any) -> "MemberInvite":
    from app.sommertheater.modules.onboarding.models import MemberInvite

    iid = parse_int(invite_id)
    invite = s.get(MemberInvite, iid) if iid is not None else None
    if not invite:
        raise NotFoundError("Einladung nicht gefunden")
    return invite


def _limited_text(value: Any, max_len: int) -> str | None:
    text = trim_to_null(value)
    return text[:max_len] if text else None


def _parse_expires_at(value: Any) -> datetime | None:
    if value in (None, ""):
        return None
    parsed = parse_datetime(value)
    if parsed is None:
        raise ValidationError("Ungültiges Ablaufdatum.")
    now = datetime.utcnow()
    if parsed <= now:
        raise ValidationError("Das Ablaufdatum muss in der Zukunft liegen.")
    limit = now + timedelta(days=365 * INVITE_DATE_LIMIT_YEARS + 1)
    return min(parsed, limit)


def _parse_max_uses(value: Any) -> int | None:
    if value in (None, ""):
        return None
    n = parse_int(value)
    if n is None:
        return None
    return max(n, 1)


def filter_invite_roles(value: Any) -> list[str]:
    if not isinstance(value, list):
        return ["member"]
    roles = sort_roles(v for v in value if isinstance(v, str))
    return roles or ["member"]


def create_invite(s: "Session", payload: dict, actor: "User") -> tuple["MemberInvite", str]:
    """Returns the invite and the raw token; only the hash is persisted."""
    from app.sommertheater.modules.onboarding.models import MemberInvite

    if payload.get("showId") in (None, ""):
        raise ValidationError("Bitte wähle eine Produktion aus.")
    show = get_show_or_404(s, payload.get("showId"))

    token = generate_token()
    invite = MemberInvite(
        token_hash=hash_invite_token(token),
        label=_limited_text(payload.get("label"), 120),
        note=_limited_text(payload.get("note"), 400),
        expires_at=_parse_expires_at(payload.get("expiresAt")),
        max_uses=_parse_max_uses(payload.get("maxUses")),
        usage_count=0,
        roles=filter_invite_roles(payload.get("roles")),
        is_disabled=False,
        show_id=show.id,
        created_by_user_id=actor.id,
    )
    s.add(invite)
    s.flush()

    record_event(
        s,
        actor=actor,
        action="invite.create",
        entity_type="MemberInvite",
        entity_id=str(invite.id),
        metadata={"showId": show.id, "roles": invite.roles, "maxUses": invite.max_uses, "expiresAt": invite.expires_at},
    )
    return invite, token


def update_invite(s: "Session", invite: "MemberInvite", payload: dict, actor: "User") -> "MemberInvite":
    changes = {}

    def _set(attr: str, val):
        if val != getattr(invite, attr):
            changes[attr] = {"old": getattr(invite, attr), "new": val}
            setattr(invite, attr, val)

    if "label" in payload:
        _set("label", _limited_text(payload.get("label"), 120))
    if "note" in payload:
        _set("note", _limited_text(payload.get("note"), 400))
    if "expiresAt" in payload:
        _set("expires_at", _parse_expires_at(payload.get("expiresAt")))
    if "maxUses" in payload:
        max_uses = _parse_max_uses(payload.get("maxUses"))
        if max_uses is not None and max_uses < invite.usage_count:
            max_uses = invite.usage_count
        _set("max_uses", max_uses)
    if "roles" in payload:
        _set("roles", filter_invite_roles(payload.get("roles")))
    if "isDisabled" in payload:
        _set("is_disabled", bool(parse_bool(payload.get("isDisabled"))))

    if not changes:
        raise ValidationError("Keine Änderungen übermittelt")

    record_event(
        s,
        actor=actor,
        action="invite.update",
        entity_type="MemberInvite",
        entity_id=str(invite.id),
        metadata={"changes": changes},
    )
    return invite


def renew_invite(s: "Session", invite: "MemberInvite", days: Any, actor: "User") -> "MemberInvite":
    n = parse_int(days)
    n = DEFAULT_RENEW_DAYS if n is None else min(max(n, 1), MAX_RENEW_DAYS)
    now = datetime.utcnow()
    base = invite.expires_at if invite.expires_at and invite.expires_at > now else now
    old = invite.expires_at
    invite.expires_at = base + timedelta(days=n)
    invite.is_disabled = False

    record_event(
        s,
        actor=actor,
        action="invite.renew",
        entity_type="MemberInvite",
        entity_id=str(invite.id),
        metadata={"days": n, "changes": {"expires_at": {"old": old, "new": invite.expires_at}}},
    )
    return invite


# --- redemption ----------------------------------------------------------------


def find_invite_by_token(s: "Session", token: str) -> "MemberInvite | None":
    """Share links carry the hash itself; freshly created links carry the raw token."""
    from app.sommertheater.modules.onboarding.models import MemberInvite

    token = (token or "").strip()
    if not token:
        return None
    token_hash = token if _HEX64_RE.match(token) else hash_invite_token(token)
    return s.query(MemberInvite).filter(MemberInvite.token_hash == token_hash).one_or_none()


def start_redemption(s: "Session", invite: "MemberInvite") -> "MemberInviteRedemption":
    from app.sommertheater.modules.onboarding.models import MemberInviteRedemption

    redemption = MemberInviteRedemption(invite_id=invite.id, session_token=generate_token())
    s.add(redemption)
    s.flush()
    return redemption


def _normalize_for_match(value: str) -> str:
    decomposed = unicodedata.normalize("NFKD", value)
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return stripped.replace("ß", "ss").lower()


def requires_bsz_class(background: str | None) -> bool:
    if not background:
        return False
    normalized = _normalize_for_match(background)
    if "bsz" not in normalized:
        return False
    return any(keyword in normalized for keyword in BSZ_SCHOOL_KEYWORDS)


def _required_text(payload: dict, key: str, label: str, *, min_len: int, max_len: int) -> str:
    value = payload.get(key)
    text = value.strip() if isinstance(value, str) else ""
    if len(text) < min_len:
        raise ValidationError(f"{label} muss mindestens {min_len} Zeichen lang sein.")
    if len(text) > max_len:
        raise ValidationError(f"{label} darf höchstens {max_len} Zeichen lang sein.")
    return text


def _optional_text(value: Any, label: str, max_len: int) -> str | None:
    text = trim_to_null(value)
    if text and len(text) > max_len:
        raise ValidationError(f"{label} darf höchstens {max_len} Zeichen lang sein.")
    return text


def _parse_gender(raw: Any) -> dict:
    if not isinstance(raw, dict) or raw.get("option") not in GENDER_LABELS:
        raise ValidationError("Bitte wähle eine Angabe zum Geschlecht.")
    option = raw["option"]
    custom = _optional_text(raw.get("custom"), "Geschlecht", 120)
    if option == "custom" and not custom:
        raise ValidationError("Bitte beschreibe dein Geschlecht.")
    label = custom if option == "custom" else GENDER_LABELS[option]
    return {"option": option, "label": label or GENDER_LABELS["no_answer"], "custom": custom}


def _parse_dietary_preference(raw: Any) -> dict:
    if not isinstance(raw, dict) or raw.get("style") not in DIETARY_STYLE_LABELS:
        raise ValidationError("Bitte wähle deinen Ernährungsstil.")
    style = raw["style"]
    strictness = raw.get("strictness")
    if strictness not in DIETARY_STRICTNESS_LABELS:
        raise ValidationError("Bitte wähle, wie strikt dein Ernährungsstil ist.")
    custom = _optional_text(raw.get("custom"), "Ernährungsstil", 120)
    if style == "custom" and not custom:
        raise ValidationError("Bitte beschreibe deinen Ernährungsstil.")
    return {
        "style": style,
        "label": dietary_style_label(style, custom),
        "custom": custom,
        "strictness": strictness,
        "strictnessLabel": dietary_strictness_label(style, strictness),
    }


def _parse_preferences(raw: Any) -> list[dict]:
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise ValidationError("Ungültige Rollenpräferenzen.")
    out = []
    seen = set()
    for entry in raw:
        if not isinstance(entry, dict):
            raise ValidationError("Ungültige Rollenpräferenzen.")
        code = trim_to_null(entry.get("code"))
        domain = entry.get("domain")
        weight = entry.get("weight")
        if not code or domain not in PREFERENCE_DOMAINS:
            raise ValidationError("Ungültige Rollenpräferenzen.")
        if isinstance(weight, bool) or not isinstance(weight, int) or not 0 <= weight <= 100:
            raise ValidationError("Die Gewichtung muss zwischen 0 und 100 liegen.")
        if weight == 0 or code in seen:
            continue
        seen.add(code)
        out.append({"code": code[:64], "domain": domain, "weight": weight})
    return out


def _parse_interests(raw: Any) -> list[str]:
    if raw is None:
        return []
    if not isinstance(raw, list) or not all(isinstance(v, str) for v in raw):
        raise ValidationError("Ungültige Interessen.")
    by_key: dict[str, str] = {}
    for value in raw:
        name = value.strip()
        if not name:
            continue
        if len(name) > MAX_INTEREST_LENGTH:
            raise ValidationError(f"Interessen dürfen höchstens {MAX_INTEREST_LENGTH} Zeichen lang sein.")
        by_key.setdefault(name.lower(), name)
    if len(by_key) > MAX_INTERESTS_PER_USER:
        raise ValidationError(f"Bitte wähle höchstens {MAX_INTERESTS_PER_USER} Interessen.")
    return list(by_key.values())


def _parse_dietary(raw: Any) -> list[dict]:
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise ValidationError("Ungültige Allergieangaben.")
    out = []
    seen = set()
    for entry in raw:
        if not isinstance(entry, dict):
            raise ValidationError("Ungültige Allergieangaben.")
        allergen = trim_to_null(entry.get("allergen"))
        if not allergen or len(allergen) < 2:
            raise ValidationError("Allergen muss mindestens 2 Zeichen lang sein.")
        if entry.get("level") not in ALLERGY_LEVELS:
            raise ValidationError("Ungültiger Schweregrad.")
        key = allergen.lower()
        if key in seen:
            continue
        seen.add(key)
        out.append(
            {
                "allergen": allergen[:120],
                "level": entry["level"],
                "symptoms": _optional_text(entry.get("symptoms"), "Symptome", 500),
                "treatment": _optional_text(entry.get("treatment"), "Behandlung", 500),
                "note": _optional_text(entry.get("note"), "Notiz", 500),
            }
        )
    return out


def parse_onboarding_payload(payload: Any) -> dict:
    """
    Validate and normalize the onboarding form. Raises ValidationError with the
    first problem found.
    """
    if not isinstance(payload, dict):
        raise ValidationError("Ungültige Daten")

    session_token = payload.get("sessionToken")
    if not isinstance(session_token, str) or len(session_token.strip()) < MIN_SESSION_TOKEN_LENGTH:
        raise ValidationError("Ungültige Sitzung. Bitte öffne den Einladungslink erneut.")

    first_name = _required_text(payload, "firstName", "Vorname", min_len=2, max_len=120)
    last_name = _required_text(payload, "lastName", "Nachname", min_len=2, max_len=120)

    email = payload.get("email")
    email = email.strip().lower() if isinstance(email, str) else ""
    if not _EMAIL_RE.match(email) or len(email) > 320:
        raise ValidationError("Bitte gib eine gültige E-Mail-Adresse an.")

    password = payload.get("password")
    if not isinstance(password, str) or not 6 <= len(password) <= 128:
        raise ValidationError("Das Passwort muss zwischen 6 und 128 Zeichen lang sein.")

    background = _required_text(payload, "background", "Hintergrund", min_len=2, max_len=200)
    background_class = _optional_text(payload.get("backgroundClass"), "Klasse", 120)
    if requires_bsz_class(background) and not background_class:
        raise ValidationError("Bitte gib deine Klasse am BSZ an.")

    date_of_birth = None
    if payload.get("dateOfBirth"):
        date_of_birth = parse_date(payload.get("dateOfBirth"))
        if date_of_birth is None or date_of_birth.year < 1900 or date_of_birth >= date.today():
            raise ValidationError("Geburtsdatum ist ungültig")

    member_since_year = None
    if payload.get("memberSinceYear") not in (None, ""):
        member_since_year = parse_int(payload.get("memberSinceYear"))
        if member_since_year is None or not 1900 <= member_since_year <= date.today().year:
            raise ValidationError("Bitte gib ein gültiges Eintrittsjahr an.")

    focus = payload.get("focus")
    if focus not in FOCUS_OPTIONS:
        raise ValidationError("Bitte wähle deinen Schwerpunkt.")

    photo_consent = payload.get("photoConsent")
    if photo_consent is None:
        consent = True
    elif isinstance(photo_consent, dict) and isinstance(photo_consent.get("consent"), bool):
        consent = photo_consent["consent"]
    else:
        raise ValidationError("Ungültige Angabe zur Fotoerlaubnis.")

    return {
        "sessionToken": session_token.strip(),
        "firstName": first_name,
        "lastName": last_name,
        "name": combine_name_parts(first_name, last_name),
        "email": email,
        "password": password,
        "focus": focus,
        "background": background,
        "backgroundClass": background_class,
        "notes": _optional_text(payload.get("notes"), "Notizen", 1000),
        "dateOfBirth": date_of_birth,
        "gender": _parse_gender(payload.get("gender")),
        "memberSinceYear": member_since_year,
        "preferences": _parse_preferences(payload.get("preferences")),
        "interests": _parse_interests(payload.get("interests")),
        "dietaryPreference": _parse_dietary_preference(payload.get("dietaryPreference")),
        "dietary": _parse_dietary(payload.get("dietary")),
        "photoConsent": {"consent": consent},
    }


def missing_document_message(age: int | None) -> str:
    if age is not None and age < 18:
        return "Bitte lade die unterschriebene Einverständniserklärung deiner Erziehungsberechtigten hoch."
    return "Bitte lade dein unterschriebenes Einverständnis hoch oder unterschreibe digital."


def stored_payload(data: dict, *, has_document: bool) -> dict:
    """Form data as kept on the redemption; the password never leaves parse_onboarding_payload."""
    out = {k: v for k, v in data.items() if k not in ("password", "sessionToken")}
    out["dateOfBirth"] = iso(data["dateOfBirth"])
    out["photoConsent"] = {"consent": data["photoConsent"]["consent"], "hasDocument": has_document}
    return out


def _link_interests(s: "Session", user: "User", names: list[str]) -> None:
    from app.sommertheater.modules.onboarding.models import Interest, UserInterest

    if not names:
        return
    wanted = {n.lower(): n for n in names}
    existing = {
        i.name.lower(): i for i in s.query(Interest).filter(func.lower(Interest.name).in_(list(wanted))).all()
    }
    for key, name in wanted.items():
        interest = existing.get(key)
        if interest is None:
            interest = Interest(name=name, created_by_user_id=user.id)
            s.add(interest)
            s.flush()
            existing[key] = interest
        s.add(UserInterest(user_id=user.id, interest_id=interest.id))


def complete_onboarding(
    s: "Session",
    raw_payload: Any,
    document: UploadedDocument | None,
    storage: "Storage",
) -> "User":
    """
    Redeem an invite: create the account and every onboarding record in one
    transaction. Nothing is written when any step fails.
    """
    from app.sommertheater.models import User
    from app.sommertheater.modules.dietary.models import DietaryRestriction
    from app.sommertheater.modules.members.service import ensure_roles
    from app.sommertheater.modules.onboarding.models import (
        MemberInvite,
        MemberInviteRedemption,
        MemberOnboardingProfile,
        MemberRolePreference,
    )
    from app.sommertheater.modules.photo_consent.models import PhotoConsent
    from app.sommertheater.modules.productions.models import ProductionMembership

    data = parse_onboarding_payload(raw_payload)
    age = calculate_age(data["dateOfBirth"])
    consent_given = data["photoConsent"]["consent"]
    if document is None and consent_given:
        raise ValidationError(missing_document_message(age))

    redemption = (
        s.query(MemberInviteRedemption)
        .filter(MemberInviteRedemption.session_token == data["sessionToken"])
        .one_or_none()
    )
    if not redemption or not redemption.invite:
        raise NotFoundError("Einladung wurde nicht gefunden")
    if redemption.completed_at is not None:
        raise ConflictError("Einladung wurde bereits verwendet")
    if not is_invite_usable(redemption.invite):
        raise ValidationError("Dieser Einladungslink ist nicht mehr gültig")
    if s.query(User.id).filter(User.email == data["email"]).first():
        raise ConflictError("Für diese E-Mail existiert bereits ein Konto")

    password_hash = generate_password_hash(data["password"])
    document_key = None
    try:
        with atomic(s):
            invite = (
                s.query(MemberInvite)
                .filter(MemberInvite.id == redemption.invite_id)
                .with_for_update()
                .populate_existing()
                .one_or_none()
            )
            if not is_invite_usable(invite):
                raise ConflictError("Einladungslink ist nicht mehr gültig")
            redemption = (
                s.query(MemberInviteRedemption)
                .filter(MemberInviteRedemption.id == redemption.id)
                .with_for_update()
                .populate_existing()
                .one()
            )
            if redemption.completed_at is not None:
                raise ConflictError("Einladung wurde bereits verwendet")

            roles = sort_roles(r for r in (invite.roles or []) if r in ROLES) or ["member"]
            user = User(
                email=data["email"],
                password_hash=password_hash,
                first_name=data["firstName"],
                last_name=data["lastName"],
                name=data["name"],
                date_of_birth=data["dateOfBirth"],
                is_active=True,
            )
            user.roles = ensure_roles(s, roles)
            s.add(user)
            try:
                s.flush()
            except IntegrityError as e:
                raise ConflictError("Für diese E-Mail existiert bereits ein Konto") from e

            invite.usage_count = invite.usage_count + 1

            redemption.email = data["email"]
            redemption.user_id = user.id
            redemption.completed_at = datetime.utcnow()
            redemption.payload = stored_payload(data, has_document=document is not None)

            s.add(ProductionMembership(show_id=invite.show_id, user_id=user.id))
            s.add(
                MemberOnboardingProfile(
                    user_id=user.id,
                    invite_id=invite.id,
                    redemption_id=redemption.id,
                    show_id=invite.show_id,
                    focus=data["focus"],
                    background=data["background"],
                    background_class=data["backgroundClass"],
                    notes=data["notes"],
                    gender=data["gender"]["label"],
                    member_since_year=data["memberSinceYear"],
                    dietary_preference=data["dietaryPreference"]["label"],
                    dietary_preference_strictness=data["dietaryPreference"]["strictnessLabel"],
                )
            )
            for pref in data["preferences"]:
                s.add(MemberRolePreference(user_id=user.id, **pref))
            _link_interests(s, user, data["interests"])
            for entry in data["dietary"]:
                s.add(DietaryRestriction(user_id=user.id, is_active=True, **entry))

            if consent_given or document is not None or (age is not None and age < 18):
                consent = PhotoConsent(user_id=user.id, status="pending", consent_given=consent_given)
                if document is not None:
                    document_key = store_document(storage, user.id, document)
                    attach_document(consent, document_key, document)
                s.add(consent)

            s.flush()
            record_event(
                s,
                actor=user,
                action="onboarding.complete",
                entity_type="User",
                entity_id=str(user.id),
                metadata={"inviteId": invite.id, "showId": invite.show_id, "roles": roles, "focus": data["focus"]},
            )
    except Exception:
        if document_key:
            storage.delete(document_key)
        raise
    return user


# --- analytics -----------------------------------------------------------------


def onboarding_analytics(s: "Session", *, show_id: int | None = None) -> dict:
    from app.sommertheater.modules.dietary.models import DietaryRestriction
    from app.sommertheater.modules.onboarding.models import (
        MemberInvite,
        MemberOnboardingProfile,
        MemberRolePreference,
        UserInterest,
    )
    from app.sommertheater.modules.photo_consent.models import PhotoConsent

    invites_q = s.query(MemberInvite)
    profiles_q = s.query(MemberOnboardingProfile)
    if show_id is not None:
        invites_q = invites_q.filter(MemberInvite.show_id == show_id)
        profiles_q = profiles_q.filter(MemberOnboardingProfile.show_id == show_id)
    invites = invites_q.all()
    profiles = profiles_q.order_by(MemberOnboardingProfile.created_at.desc()).all()
    user_ids = [p.user_id for p in profiles]

    invite_stats = {"total": 0, "active": 0, "expired": 0, "disabled": 0, "exhausted": 0, "totalUsage": 0}
    for invite in invites:
        status = calculate_invite_status(invite)
        invite_stats["total"] += 1
        invite_stats["totalUsage"] += invite.usage_count
        invite_stats["active"] += int(status["isActive"])
        invite_stats["expired"] += int(status["isExpired"])
        invite_stats["exhausted"] += int(status["isExhausted"])
        invite_stats["disabled"] += int(invite.is_disabled)

    focus_counts = {f: 0 for f in FOCUS_OPTIONS}
    dietary_styles: Counter[str] = Counter()
    for p in profiles:
        focus_counts[p.focus] = focus_counts.get(p.focus, 0) + 1
        if p.dietary_preference:
            dietary_styles[p.dietary_preference] += 1

    interests: Counter[str] = Counter()
    buckets: dict[tuple[str, str], list[int]] = defaultdict(list)
    levels: Counter[str] = Counter()
    pending_consents = 0
    if user_ids:
        for ui in s.query(UserInterest).filter(UserInterest.user_id.in_(user_ids)).all():
            interests[ui.interest.name] += 1
        for pref in s.query(MemberRolePreference).filter(MemberRolePreference.user_id.in_(user_ids)).all():
            buckets[(pref.domain, pref.code)].append(pref.weight)
        for row in (
            s.query(DietaryRestriction)
            .filter(DietaryRestriction.user_id.in_(user_ids), DietaryRestriction.is_active.is_(True))
            .all()
        ):
            levels[row.level] += 1
        pending_consents = (
            s.query(func.count(PhotoConsent.id))
            .filter(PhotoConsent.user_id.in_(user_ids), PhotoConsent.status == "pending")
            .scalar()
        ) or 0

    role_preferences = sorted(
        (
            {
                "domain": domain,
                "code": code,
                "responses": len(weights),
                "averageWeight": round(sum(weights) / len(weights), 1),
            }
            for (domain, code), weights in buckets.items()
        ),
        key=lambda r: (-r["averageWeight"], r["code"]),
    )

    return {
        "showId": show_id,
        "invites": invite_stats,
        "completions": {"total": len(profiles), "byFocus": focus_counts},
        "interests": [
            {"name": name, "count": count}
            for name, count in sorted(interests.items(), key=lambda kv: (-kv[1], kv[0].lower()))
        ],
        "rolePreferences": role_preferences,
        "dietaryStyles": [{"label": label, "count": count} for label, count in dietary_styles.most_common()],
        "dietary": [{"level": level, "count": count} for level, count in levels.most_common()],
        "pendingPhotoConsents": pending_consents,
    }
