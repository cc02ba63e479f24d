#!/usr/bin/env python3
"""Create a dashboard admin, or repair an existing account so it can sign in.

Usage:
  python scripts/create_admin.py --email admin@ecodeli.pro --password '...' [--first-name Admin --last-name EcoDeli]
"""

import argparse
import os
import sys
from datetime import datetime
from pathlib import Path

from werkzeug.security import check_password_hash, generate_password_hash

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.ecodeli.models import User
from scripts._db_utils import script_session
from scripts.init_db import ensure_admin_role


def create_or_repair_admin(db_url: str, *, email: str, password: str, first_name: str, last_name: str) -> bool:
    """Returns True when the credentials verify afterwards."""
    email = email.strip().lower()
    with script_session(db_url) as s:
        role_admin = ensure_admin_role(s)
        now = datetime.utcnow()
        user = s.query(User).filter(User.email == email).one_or_none()
        if not user:
            user = User(
                email=email,
                password_hash=generate_password_hash(password),
                name=f"{first_name} {last_name}".strip(),
                first_name=first_name,
                last_name=last_name,
                role="ADMIN",
                user_type="PROFESSIONAL",
                is_verified=True,
                email_verified_at=now,
                is_active=True,
                created_at=now,
                updated_at=now,
            )
            s.add(user)
            print(f"Created admin user {email}", flush=True)
        else:
            print(f"User exists (id={user.id}); repairing admin access", flush=True)
            user.role = "ADMIN"
            user.is_active = True
            if not user.is_verified:
                user.is_verified = True
                user.email_verified_at = now
            if not user.password_hash or not check_password_hash(user.password_hash, password):
                user.password_hash = generate_password_hash(password)
                print("Password updated", flush=True)
            user.updated_at = now
        if role_admin not in user.admin_roles:
            user.admin_roles.append(role_admin)
            print("Admin role attached", flush=True)

    # Verification pass on a fresh session, the way the login endpoint reads it.
    with script_session(db_url) as s:
        user = s.query(User).filter(User.email == email).one_or_none()
        ok = bool(
            user
            and user.is_active
            and user.password_hash
            and user.admin_roles
            and check_password_hash(user.password_hash, password)
        )
    print(f"Login check: {'OK' if ok else 'FAILED'}", flush=True)
    return ok


def main() -> None:
    parser = argparse.ArgumentParser()
    parser.add_argument("--email", required=True, help="Admin email")
    parser.add_argument("--password", required=True, help="Admin password")
    parser.add_argument("--first-name", default="Admin")
    parser.add_argument("--last-name", default="EcoDeli")
    args = parser.parse_args()

    db_url = (os.environ.get("DATABASE_URL") or "sqlite:///ecodeli.db").strip()
    ok = create_or_repair_admin(
        db_url,
        email=args.email,
        password=args.password,
        first_name=args.first_name,
        last_name=args.last_name,
    )
    sys.exit(0 if ok else 1)


if __name__ == "__main__":
    main()
