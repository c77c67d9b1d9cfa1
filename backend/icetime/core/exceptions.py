# backend/icetime/core/exceptions.py
"""
Domain-specific exceptions for the IceTime booking engine.

Every expected rejection (full slot, missing credits, wrong day for a program)
is a DomainException subclass with a stable ``code`` so callers can explain
exactly why an action was refused. The API layer converts them with
``to_http_exception``.
"""

from typing import Any, Dict, Optional

from fastapi import HTTPException, status

HTTP_422_UNPROCESSABLE: int = getattr(status, "HTTP_422_UNPROCESSABLE_CONTENT", 422)


class DomainException(Exception):
    """Base exception for all domain-specific errors."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.message = message
        self.code = code or self.__class__.__name__
        self.details = details or {}
        super().__init__(self.message)

    def to_http_exception(self) -> HTTPException:
        return HTTPException(
            status_code=self.status_code,
            detail={
                "message": self.message,
                "code": self.code,
                "details": self.details,
            },
        )


class ValidationException(DomainException):
    """Raised when business validation fails."""

    status_code = status.HTTP_400_BAD_REQUEST


class NotFoundException(DomainException):
    """Raised when a requested resource is not found."""

    status_code = status.HTTP_404_NOT_FOUND


class ConflictException(DomainException):
    """Raised when there's a conflict with existing data."""

    status_code = status.HTTP_409_CONFLICT


class BusinessRuleException(DomainException):
    """Raised when a business rule is violated."""

    status_code = HTTP_422_UNPROCESSABLE


class ServiceException(DomainException):
    """Raised when a service operation fails."""

    def __init__(self, message: Optional[str] = None, **kwargs: Any) -> None:
        super().__init__(message or "An error occurred processing your request", **kwargs)


# Specific booking engine exceptions


class InvalidSlotForProgramException(ValidationException):
    """Requested day/time does not belong to the program's pool."""

    def __init__(
        self,
        program_type: str,
        day: str,
        start_time: str,
        reason: Optional[str] = None,
    ):
        super().__init__(
            message=reason or f"{start_time} on {day} is not offered for {program_type} sessions",
            code="INVALID_SLOT_FOR_PROGRAM",
            details={"program_type": program_type, "day": day, "start_time": start_time},
        )


class SlotFullException(ConflictException):
    """Capacity for the slot is exhausted."""

    def __init__(self, pool: str, session_date: str, start_time: str, booked: int, capacity: int):
        super().__init__(
            message="This time slot is fully booked. Please select another time.",
            code="SLOT_FULL",
            details={
                "pool": pool,
                "session_date": session_date,
                "start_time": start_time,
                "booked": booked,
                "capacity": capacity,
            },
        )


class InsufficientCreditsException(DomainException):
    """Debiting credits would take the balance below zero."""

    status_code = status.HTTP_402_PAYMENT_REQUIRED

    def __init__(self, credits_required: int, credits_available: int):
        super().__init__(
            message=(
                f"Insufficient credits. You have {credits_available} credit(s), "
                f"but {credits_required} is required."
            ),
            code="INSUFFICIENT_CREDITS",
            details={
                "credits_required": credits_required,
                "credits_available": credits_available,
            },
        )


class StaleOpportunityException(ConflictException):
    """A pairing candidate's slot was taken between discovery and commit."""

    def __init__(self, day: str, start_time: str, reason: Optional[str] = None):
        super().__init__(
            message=reason or "This pairing slot is no longer available. Refresh the suggestions.",
            code="STALE_OPPORTUNITY",
            details={"day": day, "start_time": start_time},
        )


class CategoryMismatchException(BusinessRuleException):
    """Pairing attempted across different age categories."""

    def __init__(self, category_1: str, category_2: str):
        super().__init__(
            message=f"Players in {category_1} and {category_2} cannot be paired",
            code="CATEGORY_MISMATCH",
            details={"category_1": category_1, "category_2": category_2},
        )


class DuplicateBookingException(ConflictException):
    """The player already holds an active booking for this session."""

    def __init__(self, player_id: str, session_date: str, start_time: str):
        super().__init__(
            message="This child already has a booking for this session",
            code="DUPLICATE_BOOKING",
            details={
                "player_id": player_id,
                "session_date": session_date,
                "start_time": start_time,
            },
        )


class InvalidStateTransitionException(BusinessRuleException):
    """Raised when a status change is not allowed from the current state."""

    def __init__(self, entity: str, current: str, target: str):
        super().__init__(
            message=f"Cannot move {entity} from {current} to {target}",
            code="INVALID_STATE_TRANSITION",
            details={"entity": entity, "current": current, "target": target},
        )


class RepositoryException(Exception):
    """
    Exception raised for repository layer errors.

    This exception is used when data access operations fail,
    such as database connection issues, query failures, or
    constraint violations.
    """
