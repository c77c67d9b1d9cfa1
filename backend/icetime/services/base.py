# backend/icetime/services/base.py
"""
Base Service Pattern for the IceTime booking engine.

Provides common functionality for all service classes including:
- Transaction management (nesting-aware, one commit per unit of work)
- Logging
- Error handling
- Performance monitoring
"""

from contextlib import contextmanager
from functools import wraps
import logging
import time
from typing import Any, Callable, Iterator, TypeVar, cast

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.exceptions import ServiceException
from ..events.booking_events import EngineEvent, EngineEvents
from ..monitoring.prometheus_metrics import prometheus_metrics

logger = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable[..., Any])

_TX_DEPTH_KEY = "icetime_transaction_depth"
_PENDING_EVENTS_KEY = "icetime_pending_events"


class BaseService:
    """
    Base class for all service layer components.

    Provides common patterns for:
    - Database session management
    - Logging
    - Transaction handling
    - Performance monitoring
    """

    def __init__(self, db: Session):
        self.db = db
        self.logger = logging.getLogger(self.__class__.__name__)

    @contextmanager
    def transaction(self) -> Iterator[Session]:
        """
        Context manager for database transactions.

        Usage:
            with self.transaction():
                self.db.add(entity)
                # Note: commit is handled automatically

        Services sharing a session nest: only the outermost block commits or
        rolls back, so a booking move called from a schedule change is part
        of the schedule change's unit of work.
        """
        depth = self.db.info.get(_TX_DEPTH_KEY, 0)
        self.db.info[_TX_DEPTH_KEY] = depth + 1
        committed = False
        try:
            yield self.db
            if depth == 0:
                self.db.commit()
                committed = True
                self.logger.debug("Transaction committed successfully")
        except SQLAlchemyError as e:
            self.logger.error(f"Transaction failed: {str(e)}")
            if depth == 0:
                self.db.rollback()
                self.db.info.pop(_PENDING_EVENTS_KEY, None)
            raise ServiceException(f"Database operation failed: {str(e)}") from e
        except Exception as e:
            if depth == 0:
                self.logger.info(f"Transaction rolled back: {type(e).__name__}: {e}")
                self.db.rollback()
                self.db.info.pop(_PENDING_EVENTS_KEY, None)
            raise
        finally:
            self.db.info[_TX_DEPTH_KEY] = depth

        if committed:
            for event in self.db.info.pop(_PENDING_EVENTS_KEY, []):
                EngineEvents.dispatch(event)

    @property
    def in_transaction(self) -> bool:
        return self.db.info.get(_TX_DEPTH_KEY, 0) > 0

    def emit_event(self, event: EngineEvent) -> None:
        """Dispatch now, or after the enclosing transaction commits."""
        if self.in_transaction:
            self.db.info.setdefault(_PENDING_EVENTS_KEY, []).append(event)
        else:
            EngineEvents.dispatch(event)

    @staticmethod
    def measure_operation(operation_name: str) -> Callable[[F], F]:
        """
        Decorator to measure operation performance.

        Usage:
            @BaseService.measure_operation("reserve")
            def reserve(self, ...):
                ...
        """

        def decorator(func: F) -> F:
            @wraps(func)
            def wrapper(self: "BaseService", *args: Any, **kwargs: Any) -> Any:
                start_time = time.time()
                success = False
                error_type = None

                try:
                    result = func(self, *args, **kwargs)
                    success = True
                    return result
                except Exception as e:
                    error_type = type(e).__name__
                    raise
                finally:
                    elapsed = time.time() - start_time

                    # Only log if it's actually slow
                    if elapsed > 1.0:
                        self.logger.warning(
                            f"Slow operation detected: {operation_name} took {elapsed:.2f}s"
                        )

                    prometheus_metrics.record_service_operation(
                        service=self.__class__.__name__,
                        operation=operation_name,
                        duration=elapsed,
                        status="success" if success else "error",
                        error_type=error_type,
                    )

            setattr(wrapper, "_operation_name", operation_name)
            setattr(wrapper, "_is_measured", True)
            return cast(F, wrapper)

        return decorator
