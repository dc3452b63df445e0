"""
Central constants for the Sommertheater members area.
"""
from __future__ import annotations

# System roles in ascending order of privilege. The last role of a sorted list
# is a member's primary role.
ROLES = ("member", "cast", "tech", "board", "finance", "owner", "admin")

# Roles that bypass every permission check
SUPERUSER_ROLES = frozenset({"owner", "admin"})

# Roles that cannot be edited through the permission matrix
LOCKED_ROLES = frozenset({"owner", "admin"})

ROLE_LABELS = {
    "member": "Mitglied",
    "cast": "Ensemble",
    "tech": "Technik",
    "board": "Vorstand",
    "finance": "Finanzen",
    "owner": "Owner",
    "admin": "Admin",
}

# Permission catalog: key -> label
PERMISSION_DEFINITIONS = {
    "mitglieder.dashboard": "Mitglieder-Dashboard öffnen",
    "mitglieder.profil": "Profilbereich aufrufen",
    "mitglieder.probenplanung": "Probenplanung verwalten",
    "mitglieder.rollenverwaltung": "Rollenverwaltung öffnen",
    "mitglieder.rechte": "Rechteverwaltung öffnen",
    "mitglieder.sperrliste": "Sperrliste pflegen",
    "mitglieder.sperrliste.settings": "Sperrlisten-Einstellungen verwalten",
    "mitglieder.finanzen": "Finanzen einsehen",
    "mitglieder.finanzen.manage": "Finanzbuchungen verwalten",
    "mitglieder.finanzen.approve": "Finanzbuchungen freigeben",
    "mitglieder.finanzen.export": "Finanzdaten exportieren",
    "mitglieder.einladungen": "Einladungslinks verwalten",
    "mitglieder.onboarding.analytics": "Onboarding-Auswertung ansehen",
    "mitglieder.fotoerlaubnisse": "Fotoerlaubnisse prüfen",
    "mitglieder.koerpermasse": "Körpermaße des Ensembles einsehen",
    "mitglieder.essenplanung": "Essensplanung und Allergien einsehen",
    "mitglieder.galerie": "Galerie ansehen",
    "mitglieder.galerie.upload": "Galerie-Medien hochladen",
    "mitglieder.website.chronik": "Chronik bearbeiten",
    "mitglieder.produktionen": "Produktionen verwalten",
    "admin.audit": "Audit-Protokoll einsehen",
}

_MEMBER_GRANTS = (
    "mitglieder.dashboard",
    "mitglieder.profil",
    "mitglieder.sperrliste",
    "mitglieder.galerie",
)

# Default grants applied by scripts/init_db.py
DEFAULT_ROLE_GRANTS = {
    "member": _MEMBER_GRANTS,
    "cast": _MEMBER_GRANTS + ("mitglieder.koerpermasse",),
    "tech": _MEMBER_GRANTS + ("mitglieder.probenplanung", "mitglieder.galerie.upload"),
    "board": _MEMBER_GRANTS
    + (
        "mitglieder.probenplanung",
        "mitglieder.rollenverwaltung",
        "mitglieder.einladungen",
        "mitglieder.onboarding.analytics",
        "mitglieder.fotoerlaubnisse",
        "mitglieder.koerpermasse",
        "mitglieder.essenplanung",
        "mitglieder.galerie.upload",
        "mitglieder.website.chronik",
        "mitglieder.produktionen",
        "mitglieder.sperrliste.settings",
        "mitglieder.finanzen",
    ),
    "finance": _MEMBER_GRANTS
    + (
        "mitglieder.finanzen",
        "mitglieder.finanzen.manage",
        "mitglieder.finanzen.approve",
        "mitglieder.finanzen.export",
    ),
}

# Roles allowed to change another member's rehearsal attendance
ATTENDANCE_MANAGER_ROLES = frozenset({"board", "admin", "tech"})

# Poster overrides for the public chronicle, keyed by show slug.
# "replace" drops the stored poster, "append" adds behind it.
CHRONIK_POSTER_OVERRIDES = {
    "altrossthal-2024": {
        "strategy": "replace",
        "sources": ["/static/chronik/Bunbury_Flyer.jpg", "/static/chronik/Bunbury_Standbild.jpg"],
    },
    "altrossthal-2022": {"strategy": "append", "sources": ["/static/chronik/Aladin_Buehne.jpg"]},
    "altrossthal-2015": {
        "strategy": "replace",
        "sources": ["/static/chronik/RuJ_1.png", "/static/chronik/RuJ_2.png"],
    },
}
