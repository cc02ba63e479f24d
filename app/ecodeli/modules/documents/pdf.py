"""
Contract PDF rendering (A4, reportlab canvas).
"""
from __future__ import annotations

from datetime import datetime
from io import BytesIO
from typing import TYPE_CHECKING

from reportlab.lib.pagesizes import A4
from reportlab.lib.units import mm
from reportlab.lib.utils import simpleSplit
from reportlab.pdfgen import canvas

if TYPE_CHECKING:
    from app.ecodeli.modules.contracts.models import Contract

COMPANY_INFO = {
    "name": "ecodeli",
    "address": "242 Rue du Faubourg Saint-Antoine",
    "city": "Paris, 75012",
    "phone": "+33 6 12 34 56 78",
    "email": "contact@ecodeli.fr",
    "website": "www.ecodeli.fr",
}

MARGIN_X = 20 * mm
BODY_WIDTH = A4[0] - 2 * MARGIN_X
BOTTOM = 30 * mm


def format_eur(amount: float) -> str:
    """1234.5 -> '1 234,50 €' (fr-FR)."""
    return f"{amount:,.2f}".replace(",", " ").replace(".", ",") + " €"


def format_date(value: datetime) -> str:
    return value.strftime("%d/%m/%Y")


def contract_number(contract: "Contract") -> str:
    return f"CONT-{contract.id:06d}"


def party_name(user) -> str:
    full = " ".join(p for p in (user.first_name, user.last_name) if p)
    return user.company_name or full or user.name or user.email


class _Writer:
    """Top-down text cursor that starts a new page when it runs out of room."""

    def __init__(self, c: canvas.Canvas):
        self.c = c
        self.y = A4[1] - 25 * mm
        self.page = 1

    def _footer(self) -> None:
        self.c.setFont("Helvetica", 8)
        self.c.drawString(MARGIN_X, 12 * mm, f"{COMPANY_INFO['name']} - {COMPANY_INFO['website']}")
        self.c.drawRightString(A4[0] - MARGIN_X, 12 * mm, f"Page {self.page}")

    def new_page(self) -> None:
        self._footer()
        self.c.showPage()
        self.page += 1
        self.y = A4[1] - 25 * mm

    def line(self, text: str, *, font: str = "Helvetica", size: int = 10, indent: float = 0, gap: float = 5 * mm) -> None:
        if self.y < BOTTOM:
            self.new_page()
        self.c.setFont(font, size)
        self.c.drawString(MARGIN_X + indent, self.y, text)
        self.y -= gap

    def paragraph(self, text: str, *, size: int = 10) -> None:
        for chunk in (text or "").splitlines() or [""]:
            for part in simpleSplit(chunk, "Helvetica", size, BODY_WIDTH) or [""]:
                self.line(part, size=size)

    def space(self, amount: float = 5 * mm) -> None:
        self.y -= amount

    def finish(self) -> None:
        self._footer()
        self.c.showPage()
        self.c.save()


def render_contract_pdf(contract: "Contract") -> bytes:
    buf = BytesIO()
    c = canvas.Canvas(buf, pagesize=A4)
    c.setTitle(f"Contrat {contract.title}")
    w = _Writer(c)

    c.setFont("Helvetica-Bold", 20)
    c.drawString(MARGIN_X, w.y, COMPANY_INFO["name"])
    c.setFont("Helvetica-Bold", 16)
    c.drawRightString(A4[0] - MARGIN_X, w.y, "CONTRAT DE SERVICE")
    w.space(7 * mm)
    for key in ("address", "city", "phone", "email"):
        w.line(COMPANY_INFO[key], size=8, gap=4 * mm)

    w.space(6 * mm)
    w.line(f"Contrat N° : {contract_number(contract)}", size=12, gap=6 * mm)
    w.line(f"Date : {format_date(contract.created_at or datetime.utcnow())}", size=12)

    w.space(8 * mm)
    w.line("ENTRE LES PARTIES SUIVANTES :", font="Helvetica-Bold", size=14, gap=10 * mm)
    w.line("Le prestataire :", font="Helvetica-Bold", size=12, gap=7 * mm)
    w.line(COMPANY_INFO["name"], indent=10 * mm)
    w.line(COMPANY_INFO["address"], indent=10 * mm)
    w.line(COMPANY_INFO["city"], indent=10 * mm)
    w.line(f"Email : {COMPANY_INFO['email']}", indent=10 * mm)
    w.line(f"Tél : {COMPANY_INFO['phone']}", indent=10 * mm)

    party = contract.party
    w.space()
    w.line("Le client :" if contract.merchant_id else "Le transporteur :", font="Helvetica-Bold", size=12, gap=7 * mm)
    w.line(party_name(party), indent=10 * mm)
    if party.address:
        w.line(party.address, indent=10 * mm)
    w.line(f"Email : {party.email}", indent=10 * mm)
    if party.phone_number:
        w.line(f"Tél : {party.phone_number}", indent=10 * mm)

    w.space()
    w.line("OBJET DU CONTRAT :", font="Helvetica-Bold", size=12, gap=7 * mm)
    w.paragraph(contract.content)
    w.space()
    w.line("CONDITIONS :", font="Helvetica-Bold", size=12, gap=7 * mm)
    w.paragraph(contract.terms)

    w.space()
    if contract.value:
        w.line(f"Valeur du contrat : {format_eur(contract.value)}", font="Helvetica-Bold", gap=8 * mm)
    if contract.start_date:
        w.line(f"Date de début : {format_date(contract.start_date)}")
    if contract.end_date:
        w.line(f"Date de fin : {format_date(contract.end_date)}")

    w.space(15 * mm)
    if w.y < BOTTOM + 10 * mm:
        w.new_page()
    c.setFont("Helvetica", 10)
    c.drawString(MARGIN_X, w.y, "Signature du prestataire :")
    c.drawString(MARGIN_X + 90 * mm, w.y, "Signature du client :")

    w.finish()
    return buf.getvalue()
