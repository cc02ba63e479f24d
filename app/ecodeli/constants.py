"""
Central constants for the EcoDeli admin API.
"""
from __future__ import annotations

PLATFORM_NAME = "ecodeli"

# Marketplace roles (User.role); dashboard access is governed separately by AdminRole/Permission.
USER_ROLES = ("CUSTOMER", "CARRIER", "MERCHANT", "PROVIDER", "SERVICE_PROVIDER", "ADMIN")
USER_TYPES = ("INDIVIDUAL", "PROFESSIONAL")

PACKAGE_STATUSES = (
    "PENDING",
    "CONFIRMED",
    "ACCEPTED_BY_SENDER",
    "ACCEPTED_BY_CARRIER",
    "IN_TRANSIT",
    "DELIVERED",
    "CANCELLED",
    "AWAITING_RELAY",
    "RELAY_IN_PROGRESS",
)

RIDE_STATUSES = ("AVAILABLE", "FULL", "IN_PROGRESS", "COMPLETED", "CANCELLED")
RIDE_SPACES = ("SMALL", "MEDIUM", "LARGE")

MATCH_STATUSES = (
    "PROPOSED",
    "PENDING",
    "ACCEPTED_BY_SENDER",
    "ACCEPTED_BY_CARRIER",
    "CONFIRMED",
    "IN_PROGRESS",
    "IN_TRANSIT",
    "DELIVERED",
    "COMPLETED",
    "CANCELLED",
    "REJECTED",
)

BOOKING_STATUSES = ("PENDING", "CONFIRMED", "IN_PROGRESS", "COMPLETED", "CANCELLED", "REFUNDED")

# Labels shown in the (French) dashboard.
BOOKING_STATUS_LABELS = {
    "PENDING": "En Attente",
    "CONFIRMED": "Confirmé",
    "IN_PROGRESS": "En Cours",
    "COMPLETED": "Terminé",
    "CANCELLED": "Annulé",
    "REFUNDED": "Remboursé",
}

PAYMENT_STATUSES = ("PENDING", "COMPLETED", "FAILED", "REFUNDED", "CANCELLED")
SUBSCRIPTION_STATUSES = ("ACTIVE", "PENDING", "CANCELED", "PAST_DUE", "EXPIRED")

NOTIFICATION_TYPES = (
    "MATCH_UPDATE",
    "DELIVERY_STARTED",
    "DELIVERY_COMPLETED",
    "DELIVERY_CANCELLED",
    "BOOKING_UPDATE",
    "PAYMENT_UPDATE",
    "SUBSCRIPTION_UPDATE",
    "SYSTEM",
)

EMAIL_TEMPLATES = ("WELCOME", "BOOKING_CONFIRMATION", "DELIVERY_UPDATE", "PAYMENT_CONFIRMATION", "SECURITY_ALERT")

CONTRACT_STATUSES = ("DRAFT", "PENDING_SIGNATURE", "SIGNED", "ACTIVE", "EXPIRED", "TERMINATED")
DOCUMENT_TYPES = ("CONTRACT", "INVOICE", "RECEIPT", "REPORT", "OTHER")

# Dashboard permissions seeded for the "admin" role (key, display name).
ADMIN_PERMISSIONS = (
    ("admin.view", "Admin: view dashboard"),
    ("users.view", "Users: view"),
    ("users.edit", "Users: create/edit/delete"),
    ("packages.view", "Packages: view"),
    ("packages.edit", "Packages: change status"),
    ("rides.view", "Rides: view"),
    ("rides.edit", "Rides: create/edit/sync"),
    ("matches.view", "Matches: view"),
    ("matches.edit", "Matches: edit"),
    ("bookings.view", "Services & bookings: view"),
    ("bookings.edit", "Services & bookings: create"),
    ("storage.view", "Storage boxes: view"),
    ("storage.edit", "Storage boxes: create/rent"),
    ("payments.view", "Payments: view"),
    ("payments.edit", "Payments: change status"),
    ("subscriptions.view", "Subscriptions: view"),
    ("notifications.view", "Notifications: view"),
    ("notifications.send", "Notifications: send/edit"),
    ("contracts.view", "Contracts: view"),
    ("contracts.edit", "Contracts: create/edit/delete"),
    ("documents.view", "Documents: view/download"),
    ("documents.edit", "Documents: generate/delete"),
    ("merchants.view", "Merchants & products: view"),
    ("merchants.edit", "Merchants: delete products"),
    ("carriers.view", "Carriers: view status"),
    ("carriers.edit", "Carriers: set availability"),
    ("analytics.view", "Analytics: view"),
    ("diagnostics.view", "Diagnostics: database check"),
)
