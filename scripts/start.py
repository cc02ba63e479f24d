#!/usr/bin/env python3
"""
Run the release phase, then exec gunicorn on $PORT (default 8080).

Usage:
    python scripts/start.py
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


def main() -> None:
    port = os.environ.get("PORT", "").strip() or "8080"
    if not port.isdigit():
        sys.exit(f"Invalid PORT: {port!r}")

    from scripts.release import run_release

    run_release()

    print(f"Starting gunicorn on 0.0.0.0:{port}", flush=True)
    os.execvp(
        "gunicorn",
        ["gunicorn", "app.wsgi:app", "--bind", f"0.0.0.0:{port}", "--workers", "2", "--timeout", "60", "--access-logfile", "-"],
    )


if __name__ == "__main__":
    main()
