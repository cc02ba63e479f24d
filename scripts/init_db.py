import os
import sys
from datetime import datetime
from pathlib import Path

from sqlalchemy.orm import Session
from werkzeug.security import generate_password_hash

# Ensure repo root is on sys.path when running as a script (Windows-friendly).
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.ecodeli.constants import ADMIN_PERMISSIONS
from app.ecodeli.models import AdminRole, Permission, User
from scripts._db_utils import script_session

ADMIN_ROLE_KEY = "admin"


def ensure_admin_role(s: Session) -> AdminRole:
    """Permissions plus the "admin" role holding all of them (idempotent)."""

    def ensure_perm(key: str, name: str) -> Permission:
        p = s.query(Permission).filter(Permission.key == key).one_or_none()
        if not p:
            p = Permission(key=key, name=name)
            s.add(p)
        return p

    perms = [ensure_perm(key, name) for key, name in ADMIN_PERMISSIONS]

    role_admin = s.query(AdminRole).filter(AdminRole.key == ADMIN_ROLE_KEY).one_or_none()
    if not role_admin:
        role_admin = AdminRole(key=ADMIN_ROLE_KEY, name="Administrator")
        s.add(role_admin)
    for p in perms:
        if p not in role_admin.permissions:
            role_admin.permissions.append(p)
    return role_admin


def seed_only(*, database_url: str | None = None) -> None:
    """
    Seed permissions/roles/admin user in an idempotent way.
    Does NOT overwrite an existing admin user's password.
    """
    admin_email = (os.environ.get("ADMIN_EMAIL") or "admin@ecodeli.pro").strip().lower()
    admin_password = os.environ.get("ADMIN_PASSWORD") or "change-me"

    db_url = (database_url or os.environ.get("DATABASE_URL") or "sqlite:///ecodeli.db").strip()

    with script_session(db_url) as s:
        role_admin = ensure_admin_role(s)

        user = s.query(User).filter(User.email == admin_email).one_or_none()
        if not user:
            now = datetime.utcnow()
            user = User(
                email=admin_email,
                password_hash=generate_password_hash(admin_password),
                first_name="Admin",
                last_name="EcoDeli",
                role="ADMIN",
                user_type="PROFESSIONAL",
                is_verified=True,
                email_verified_at=now,
                is_active=True,
                created_at=now,
                updated_at=now,
            )
            s.add(user)
        if role_admin not in user.admin_roles:
            user.admin_roles.append(role_admin)

    print("Initialized database (seed_only).", flush=True)
    print(f"Admin email: {admin_email}", flush=True)
    print("Admin password: (from ADMIN_PASSWORD)", flush=True)


def main() -> None:
    seed_only(database_url=None)


if __name__ == "__main__":
    main()
