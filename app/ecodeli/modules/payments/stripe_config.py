"""
Stripe key sanity checks and an optional live account check.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

import stripe

PLACEHOLDER_SECRET = "your-stripe-secret-key"
PLACEHOLDER_PUBLISHABLE = "your-stripe-publishable-key"


@dataclass
class StripeConfigReport:
    secret_key_status: str = "missing"
    publishable_key_status: str = "missing"
    mode: str | None = None
    errors: list[str] = field(default_factory=list)
    account: dict[str, Any] | None = None

    @property
    def ok(self) -> bool:
        return not self.errors

    def to_dict(self) -> dict[str, Any]:
        return {
            "ok": self.ok,
            "secret_key": self.secret_key_status,
            "publishable_key": self.publishable_key_status,
            "mode": self.mode,
            "errors": list(self.errors),
            "account": self.account,
        }


def _key_mode(key: str, prefix: str) -> str:
    return "test" if key.startswith(f"{prefix}_test_") else "live"


def _check_key(key: str, *, name: str, prefix: str, placeholder: str, report: StripeConfigReport) -> str:
    if not key:
        report.errors.append(f"{name} is not set")
        return "missing"
    if key == placeholder:
        report.errors.append(f"{name} still has the placeholder value")
        return "placeholder"
    if not key.startswith(f"{prefix}_"):
        report.errors.append(f"{name} must start with {prefix}_")
        return "invalid"
    return _key_mode(key, prefix)


def check_stripe_keys(secret_key: str, publishable_key: str) -> StripeConfigReport:
    report = StripeConfigReport()
    secret_key = (secret_key or "").strip()
    publishable_key = (publishable_key or "").strip()
    report.secret_key_status = _check_key(
        secret_key, name="STRIPE_SECRET_KEY", prefix="sk", placeholder=PLACEHOLDER_SECRET, report=report
    )
    report.publishable_key_status = _check_key(
        publishable_key, name="STRIPE_PUBLISHABLE_KEY", prefix="pk", placeholder=PLACEHOLDER_PUBLISHABLE, report=report
    )
    modes = {report.secret_key_status, report.publishable_key_status}
    if modes <= {"test", "live"}:
        if len(modes) > 1:
            report.errors.append("Secret and publishable keys target different modes (test vs live)")
        else:
            report.mode = modes.pop()
    return report


def verify_stripe_account(secret_key: str, report: StripeConfigReport) -> StripeConfigReport:
    """Hit the Stripe API with the secret key; failures land in report.errors."""
    if report.secret_key_status not in ("test", "live"):
        return report
    try:
        account = stripe.Account.retrieve(api_key=secret_key)
        stripe.Customer.list(limit=1, api_key=secret_key)
    except stripe.StripeError as e:
        report.errors.append(f"Stripe API error: {e.user_message or str(e)}")
        return report
    dashboard = (account.get("settings") or {}).get("dashboard") or {}
    report.account = {
        "id": account.get("id"),
        "display_name": dashboard.get("display_name"),
        "country": account.get("country"),
        "default_currency": account.get("default_currency"),
    }
    return report


def check_stripe_config(config: Any, *, live: bool = False) -> StripeConfigReport:
    secret_key = config.get("STRIPE_SECRET_KEY") or ""
    report = check_stripe_keys(secret_key, config.get("STRIPE_PUBLISHABLE_KEY") or "")
    if live:
        verify_stripe_account(secret_key, report)
    return report
