"""
Capacity Service Errors

Exception taxonomy shared by the scheduling services and the HTTP layer.
Each error carries the HTTP status and error code it is rendered with, so
routes stay thin and services never import FastAPI.
"""
import asyncio
import logging
from typing import Any, Awaitable, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CapacityError(Exception):
    """Base class for errors surfaced to API callers"""

    status_code = 500
    code = "CAPACITY_ERROR"

    def __init__(self, message: str, details: Optional[Any] = None):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict:
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "details": self.details,
            }
        }


class ValidationError(CapacityError):
    """Bad input shape or range"""

    status_code = 400
    code = "VALIDATION_ERROR"


class PreconditionError(CapacityError):
    """Inactive provider, service-kind mismatch or past-dated slot"""

    status_code = 400
    code = "PRECONDITION_FAILED"


class AuthenticationError(CapacityError):
    """Missing or invalid bearer token"""

    status_code = 401
    code = "UNAUTHORIZED"


class NotFoundError(CapacityError):
    status_code = 404
    code = "NOT_FOUND"


class ConflictError(CapacityError):
    """Overlap, capacity below reserved, or slot has reservations"""

    status_code = 409
    code = "CONFLICT"


class StoreTimeoutError(CapacityError):
    status_code = 408
    code = "TIMEOUT"


class InternalError(CapacityError):
    status_code = 500
    code = "INTERNAL_ERROR"


async def with_timeout(awaitable: Awaitable[T], seconds: float, operation: str) -> T:
    """
    Await a store call, failing closed with StoreTimeoutError after `seconds`.

    Args:
        awaitable: Coroutine performing the database call
        seconds: Timeout budget
        operation: Short description used in the log line and error message

    Returns:
        The awaited result

    Raises:
        StoreTimeoutError: If the call did not finish in time
    """
    try:
        return await asyncio.wait_for(awaitable, timeout=seconds)
    except asyncio.TimeoutError as e:
        logger.warning(f"Timed out after {seconds:.1f}s during {operation}")
        raise StoreTimeoutError(f"Timed out during {operation}. Please retry.") from e
