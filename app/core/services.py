"""
Base service layer patterns for business logic encapsulation.

- ServiceResult: result wrapper for expected success/failure outcomes
- BaseService: base class providing a per-service logger, transaction
  scoping, and exception-to-result conversion

Expected failures (validation, missing records, business rules) are
returned as ``ServiceResult.failure``. Unexpected failures (database
errors, bugs) propagate as exceptions.

Usage:
    from core.services import BaseService, ServiceResult

    class RefundService(BaseService):
        @classmethod
        def process_refund(cls, order_id, amount) -> ServiceResult[RefundOutcome]:
            if amount <= 0:
                return ServiceResult.failure(
                    "Refund amount must be positive",
                    error_code="INVALID_AMOUNT",
                )
            with cls.atomic():
                ...
            return ServiceResult.success(outcome)
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Generic, TypeVar

from django.db import transaction

from core.exceptions import BaseApplicationError

if TYPE_CHECKING:
    from collections.abc import Generator
    from typing import Any

T = TypeVar("T")


@dataclass
class ServiceResult(Generic[T]):
    """
    Standard result wrapper for service operations.

    Attributes:
        success: Whether the operation succeeded
        data: Result data if successful (None if failed)
        error: Error message if failed (None if successful)
        error_code: Machine-readable error code
        errors: Field-level errors for validation failures

    Usage:
        result = PayoutExecutorService.request_manual_payout(store_id)
        if result:
            payout_id = result.data.payout.id
        else:
            print(f"Error: {result.error} ({result.error_code})")
    """

    success: bool
    data: T | None = None
    error: str | None = None
    error_code: str | None = None
    errors: dict[str, list[str]] | None = field(default=None)

    @classmethod
    def success(cls, data: T) -> ServiceResult[T]:
        """Create a successful result."""
        return cls(success=True, data=data)

    @classmethod
    def failure(
        cls,
        error: str,
        error_code: str | None = None,
        errors: dict[str, list[str]] | None = None,
    ) -> ServiceResult[T]:
        """
        Create a failed result.

        Args:
            error: Human-readable error message
            error_code: Machine-readable error code
            errors: Field-level errors (for validation failures)
        """
        return cls(
            success=False,
            error=error,
            error_code=error_code,
            errors=errors,
        )

    @classmethod
    def from_exception(
        cls, exc: Exception, error_code: str | None = None
    ) -> ServiceResult[T]:
        """
        Create a failed result from an exception.

        Application errors keep their own message and code (and field errors
        stored under details["errors"]); anything else falls back to the
        exception class name.
        """
        if isinstance(exc, BaseApplicationError):
            field_errors = (exc.details or {}).get("errors")
            return cls(
                success=False,
                error=exc.message,
                error_code=error_code or exc.error_code,
                errors=field_errors if isinstance(field_errors, dict) else None,
            )
        return cls(
            success=False,
            error=str(exc),
            error_code=error_code or exc.__class__.__name__.upper(),
        )

    def to_response(self) -> dict[str, Any]:
        """Convert to a plain dict with success status and data or error details."""
        if self.success:
            return {"success": True, "data": self.data}

        response: dict[str, Any] = {
            "success": False,
            "error": self.error,
        }
        if self.error_code:
            response["error_code"] = self.error_code
        if self.errors:
            response["errors"] = self.errors
        return response

    def __bool__(self) -> bool:
        return self.success


class BaseService:
    """
    Base class for service layer classes.

    Services are stateless: use @classmethod or @staticmethod, return
    ServiceResult for expected failures, and raise for unexpected ones.
    """

    @classmethod
    def get_logger(cls) -> logging.Logger:
        """Return a logger named after the service class."""
        return logging.getLogger(f"{cls.__module__}.{cls.__name__}")

    @classmethod
    @contextmanager
    def atomic(cls) -> Generator[None, None, None]:
        """
        Execute operations in a database transaction.

        Example:
            with cls.atomic():
                order = Order.objects.create(...)
                OrderItem.objects.create(order=order, ...)
                # If the item insert fails, the order is rolled back too
        """
        with transaction.atomic():
            yield

    @classmethod
    def handle_exception(
        cls,
        exc: Exception,
        context: str = "",
        log_level: int = logging.ERROR,
    ) -> ServiceResult:
        """
        Log an exception and convert it to a failed ServiceResult.

        Example:
            try:
                adapter.create_refund(...)
            except GatewayError as e:
                return cls.handle_exception(e, "refund gateway call", logging.WARNING)
        """
        message = f"{context}: {exc}" if context else str(exc)
        extra: dict[str, Any] = {}
        if isinstance(exc, BaseApplicationError):
            extra = {"error_code": exc.error_code, "details": exc.details}
        cls.get_logger().log(
            log_level,
            message,
            extra=extra,
            exc_info=log_level >= logging.ERROR,
        )
        return ServiceResult.from_exception(exc)
