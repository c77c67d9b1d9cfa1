"""Application-wide constants for the IceTime booking engine."""

from __future__ import annotations

BRAND_NAME = "IceTime"

API_TITLE = f"{BRAND_NAME} Booking Engine API"
API_DESCRIPTION = "Session booking, credits, pairing and recurring schedules for hockey training."
API_VERSION = "1.0.0"

# Credits required per session by program. Programs with 0 are paid per session.
CREDITS_PER_SESSION = {
    "group": 1,
    "sunday": 0,
    "private": 0,
    "semi_private": 0,
}

# Direct purchase pricing (cents, CAD) for programs paid per session
SESSION_PRICE_CENTS = {
    "sunday": 5000,
    "semi_private": 6900,
    "private": 8999,
}

# Credit packages: credits granted and price paid (cents, CAD)
CREDIT_PACKAGES = {
    "single": {"credits": 1, "price_cents": 4500},
    "10_pack": {"credits": 10, "price_cents": 35000},
    "20_pack": {"credits": 20, "price_cents": 50000},
    "50_pack": {"credits": 50, "price_cents": 100000},
}

# Pairing score weights
PAIRING_DAY_WEIGHT = 20
PAIRING_TIME_WEIGHT = 20
PAIRING_CATEGORY_BONUS = 30

MAX_BOOKING_DURATION_HOURS = 2
MAX_REASON_LENGTH = 255
DEFAULT_QUERY_LIMIT = 100
