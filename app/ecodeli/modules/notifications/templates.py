"""
Transactional e-mail templates (French, as shown to EcoDeli users).
"""
from __future__ import annotations

from html import escape
from typing import Any

from app.ecodeli.constants import EMAIL_TEMPLATES

_LAYOUT = """<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
  <div style="background: {color}; padding: 20px; text-align: center;">
    <h1 style="color: white; margin: 0;">{heading}</h1>
  </div>
  <div style="padding: 20px;">
    {body}
  </div>
</div>"""

_TEMPLATES: dict[str, dict[str, str]] = {
    "WELCOME": {
        "subject": "Bienvenue sur ecodeli!",
        "color": "#2563eb",
        "heading": "Bienvenue sur ecodeli!",
        "body": (
            "<h2>Bonjour {first_name}!</h2>"
            "<p>Votre compte a été créé avec succès.</p>"
            '<p><a href="{base_url}/dashboard">Accéder à mon tableau de bord</a></p>'
        ),
    },
    "BOOKING_CONFIRMATION": {
        "subject": "Confirmation de réservation - ecodeli",
        "color": "#4CAF50",
        "heading": "Réservation Confirmée",
        "body": (
            "<h2>Bonjour {customer_name}!</h2>"
            "<p>Votre réservation a été confirmée avec succès.</p>"
            "<p><strong>Service:</strong> {service_name}</p>"
            "<p><strong>Date:</strong> {date}</p>"
            "<p><strong>Adresse:</strong> {address}</p>"
            "<p><strong>Prix:</strong> €{price}</p>"
            '<p><a href="{base_url}/bookings/{booking_id}">Voir ma réservation</a></p>'
        ),
    },
    "DELIVERY_UPDATE": {
        "subject": "Mise à jour de livraison - ecodeli",
        "color": "#FF9800",
        "heading": "Mise à jour de livraison",
        "body": (
            "<h2>Bonjour {customer_name}!</h2>"
            "<p><strong>Statut:</strong> {status}</p>"
            "<p><strong>Colis:</strong> #{package_id}</p>"
            "<p><strong>Transporteur:</strong> {carrier_name}</p>"
            "<p>{message}</p>"
            '<p><a href="{base_url}/packages/{package_id}">Suivre mon colis</a></p>'
        ),
    },
    "PAYMENT_CONFIRMATION": {
        "subject": "Confirmation de paiement - ecodeli",
        "color": "#2196F3",
        "heading": "Paiement Confirmé",
        "body": (
            "<h2>Bonjour {customer_name}!</h2>"
            "<p><strong>Montant:</strong> €{amount}</p>"
            "<p><strong>Transaction ID:</strong> {transaction_id}</p>"
            "<p><strong>Date:</strong> {date}</p>"
            "<p><strong>Méthode:</strong> {payment_method}</p>"
        ),
    },
    "SECURITY_ALERT": {
        "subject": "Alerte de sécurité - ecodeli",
        "color": "#f44336",
        "heading": "Alerte de Sécurité",
        "body": (
            "<h2>Bonjour {first_name}!</h2>"
            "<p>Une activité suspecte a été détectée sur votre compte.</p>"
            "<p><strong>Type:</strong> {activity_type}</p>"
            "<p><strong>Date/Heure:</strong> {timestamp}</p>"
            "<p><strong>Adresse IP:</strong> {ip_address}</p>"
        ),
    },
    "EMAIL_VERIFICATION": {
        "subject": "Vérifiez votre compte - ecodeli",
        "color": "#2563eb",
        "heading": "Confirmez votre adresse email",
        "body": (
            "<h2>Bonjour {first_name}!</h2>"
            "<p>Cliquez sur le lien ci-dessous pour vérifier votre adresse email. Ce lien expire dans 24 heures.</p>"
            '<p><a href="{verification_url}">Vérifier mon email</a></p>'
        ),
    },
    "NOTIFICATION": {
        "subject": "{title}",
        "color": "#2563eb",
        "heading": "{title}",
        "body": "<p>{message}</p>",
    },
}


class _Defaults(dict):
    def __missing__(self, key: str) -> str:
        return ""


def template_types() -> list[str]:
    return list(EMAIL_TEMPLATES)


def render_email(template_type: str, data: dict[str, Any]) -> tuple[str, str]:
    """Returns (subject, html). Unknown placeholders render empty."""
    tpl = _TEMPLATES.get(template_type)
    if tpl is None:
        raise ValueError(f"Unknown email template: {template_type}")
    values = _Defaults({k: escape(str(v)) for k, v in data.items() if v is not None})
    subject = tpl["subject"].format_map(values)
    html = _LAYOUT.format(
        color=tpl["color"],
        heading=tpl["heading"].format_map(values),
        body=tpl["body"].format_map(values),
    )
    return subject, html
