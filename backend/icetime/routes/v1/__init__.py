"""
API v1 Routes

Versioned API endpoints under /api/v1.
"""

from . import availability, bookings, credits, pairing, recurring, schedule_changes

__all__ = [
    "availability",
    "bookings",
    "credits",
    "pairing",
    "recurring",
    "schedule_changes",
]
