#!/usr/bin/env python3
"""Check the Stripe keys in the environment and optionally check the account live.

Usage:
  python scripts/check_stripe_config.py [--live]
"""

import argparse
import sys
from pathlib import Path

from dotenv import load_dotenv

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.ecodeli.config import load_config
from app.ecodeli.modules.payments.stripe_config import check_stripe_config


def main() -> None:
    parser = argparse.ArgumentParser()
    parser.add_argument("--live", action="store_true", help="Call the Stripe API with the secret key")
    args = parser.parse_args()

    load_dotenv()
    report = check_stripe_config(load_config(), live=args.live)

    print("Stripe configuration", flush=True)
    print(f"  STRIPE_SECRET_KEY: {report.secret_key_status}", flush=True)
    print(f"  STRIPE_PUBLISHABLE_KEY: {report.publishable_key_status}", flush=True)
    if report.mode:
        print(f"  Mode: {report.mode}", flush=True)
    if report.account:
        print(f"  Account: {report.account.get('display_name') or report.account.get('id')}", flush=True)
        print(f"  Country: {report.account.get('country') or '-'}", flush=True)
        print(f"  Default currency: {report.account.get('default_currency') or '-'}", flush=True)
    for err in report.errors:
        print(f"ERROR: {err}", flush=True)
    print("OK" if report.ok else "Stripe configuration has errors", flush=True)
    sys.exit(0 if report.ok else 1)


if __name__ == "__main__":
    main()
