#!/usr/bin/env python3
"""Database diagnostics: connectivity, tables, row counts and admin accounts.

Usage:
  python scripts/diagnose_db.py
"""

import os
import sys
from pathlib import Path

from sqlalchemy import func, inspect, select, text
from sqlalchemy.exc import SQLAlchemyError

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.ecodeli.models import AdminRole, Base, User
from scripts._db_utils import create_script_engine, script_session


def _redact(db_url: str) -> str:
    if "@" not in db_url or "://" not in db_url:
        return db_url
    scheme, rest = db_url.split("://", 1)
    return f"{scheme}://***@{rest.split('@', 1)[1]}"


def diagnose(db_url: str) -> int:
    print(f"Database: {_redact(db_url)}", flush=True)
    engine = create_script_engine(db_url)
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        print("Connectivity: OK", flush=True)
        existing = set(inspect(engine).get_table_names())
    except SQLAlchemyError as e:
        print(f"Connectivity: FAILED ({e})", flush=True)
        return 2
    finally:
        engine.dispose()

    print(f"Tables found: {len(existing)}", flush=True)
    for name in sorted(existing):
        print(f"  - {name}", flush=True)

    expected = {t.name for t in Base.metadata.sorted_tables}
    missing = sorted(expected - existing)
    if missing:
        print(f"Missing tables ({len(missing)}): {', '.join(missing)}", flush=True)
        print("Run `alembic upgrade head`.", flush=True)

    with script_session(db_url) as s:
        print("Row counts:", flush=True)
        for table in Base.metadata.sorted_tables:
            if table.name not in existing:
                continue
            n = s.execute(select(func.count()).select_from(table)).scalar()
            print(f"  {table.name}: {n}", flush=True)

        if "users" in existing and "admin_roles" in existing:
            admins = (
                s.query(User)
                .filter((User.role == "ADMIN") | User.admin_roles.any(AdminRole.key == "admin"))
                .order_by(User.id)
                .all()
            )
            print(f"Admin users: {len(admins)}", flush=True)
            for u in admins:
                roles = ",".join(r.key for r in u.admin_roles) or "(none)"
                print(
                    f"  id={u.id} email={u.email} role={u.role} admin_roles={roles} "
                    f"active={u.is_active} verified={u.is_verified} password={'yes' if u.password_hash else 'no'}",
                    flush=True,
                )
    return 1 if missing else 0


def main() -> None:
    db_url = (os.environ.get("DATABASE_URL") or "sqlite:///ecodeli.db").strip()
    sys.exit(diagnose(db_url))


if __name__ == "__main__":
    main()
