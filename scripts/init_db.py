import os
import sys
from pathlib import Path

from werkzeug.security import generate_password_hash

# Ensure repo root is on sys.path when running as a script.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.sommertheater.constants import DEFAULT_ROLE_GRANTS, ROLES  # noqa: E402
from app.sommertheater.models import User  # noqa: E402
from app.sommertheater.modules.members.service import ensure_roles  # noqa: E402
from app.sommertheater.modules.permissions.service import ensure_permission_definitions  # noqa: E402
from scripts._db_utils import script_session  # noqa: E402


def seed_only(*, database_url: str | None = None) -> None:
    """
    Seed the permission catalog, the system roles with their default grants and
    the owner account in an idempotent way.
    Grants are only added, never removed, so edits made in the permission matrix survive.
    Does NOT overwrite an existing owner's password.
    """
    admin_email = (os.environ.get("ADMIN_EMAIL") or "admin@sommertheater.local").strip().lower()
    admin_password = os.environ.get("ADMIN_PASSWORD") or "change-me"

    db_url = (database_url or os.environ.get("DATABASE_URL") or "sqlite:///sommertheater.db").strip()

    # Direct engine/session so this can run in release without importing app.wsgi.
    with script_session(db_url) as s:
        catalog = ensure_permission_definitions(s)
        roles = {r.key: r for r in ensure_roles(s, ROLES)}

        for role_key, grant_keys in DEFAULT_ROLE_GRANTS.items():
            role = roles[role_key]
            for key in grant_keys:
                p = catalog[key]
                if p not in role.permissions:
                    role.permissions.append(p)

        user = s.query(User).filter(User.email == admin_email).one_or_none()
        if not user:
            user = User(
                email=admin_email,
                password_hash=generate_password_hash(admin_password),
                name="Owner",
                is_active=True,
            )
            s.add(user)
        if roles["owner"] not in user.roles:
            user.roles.append(roles["owner"])

    print("Initialized database (seed_only).")
    print(f"Owner email: {admin_email}")
    print("Owner password: (from ADMIN_PASSWORD)")


def main() -> None:
    seed_only(database_url=None)


if __name__ == "__main__":
    main()
