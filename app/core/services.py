"""
Base service layer patterns for business logic encapsulation.

This module provides foundational patterns for the service layer:
- ServiceResult: Standard result wrapper for consistent success/failure handling
- BaseService: Base class with common service utilities

Service Layer Philosophy:
    Services encapsulate business logic separate from views and models.
    Views handle HTTP concerns, models handle data, services handle logic.

Pattern Comparison:
    - ServiceResult: Use for expected, non-fatal outcomes (a settlement that
      is waiting for payee configuration, an amount mismatch)
    - Exceptions: Use for failures the caller must surface (ownership,
      invalid state, provider outages)

Usage:
    from core.services import BaseService, ServiceResult

    class SettlementCoordinator(BaseService):
        def finalize_payment(self, ref, observed_status) -> ServiceResult[Outcome]:
            ...
            if payout_config is None:
                return ServiceResult.failure(
                    "Payee has no payout destination",
                    error_code="SETTLEMENT_PENDING",
                )
            return ServiceResult.success(outcome)

    result = coordinator.finalize_payment(ref, "completed")
    if not result:
        logger.warning(result.error, extra={"error_code": result.error_code})
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from typing import TYPE_CHECKING, Generic, TypeVar

from django.db import transaction

if TYPE_CHECKING:
    from collections.abc import Generator

# Generic type for ServiceResult data
T = TypeVar("T")


@dataclass
class ServiceResult(Generic[T]):
    """
    Standard result wrapper for service operations.

    Attributes:
        success: Whether the operation succeeded
        data: Result data if successful (None if failed)
        error: Error message if failed (None if successful)
        error_code: Machine-readable error code for client handling
    """

    success: bool
    data: T | None = None
    error: str | None = None
    error_code: str | None = None

    @classmethod
    def success(cls, data: T) -> ServiceResult[T]:
        """
        Create a successful result.

        Args:
            data: The result data

        Returns:
            ServiceResult with success=True and data set
        """
        return cls(success=True, data=data)

    @classmethod
    def failure(
        cls,
        error: str,
        error_code: str | None = None,
        data: T | None = None,
    ) -> ServiceResult[T]:
        """
        Create a failed result.

        Args:
            error: Human-readable error message
            error_code: Machine-readable error code for client handling
            data: Partial result the caller may still want to inspect

        Returns:
            ServiceResult with success=False and error details

        Example:
            return ServiceResult.failure(
                "Payee has no payout destination",
                error_code="SETTLEMENT_PENDING",
                data=outcome,
            )
        """
        return cls(
            success=False,
            data=data,
            error=error,
            error_code=error_code,
        )

    def __bool__(self) -> bool:
        """Allow using result in boolean context."""
        return self.success


class BaseService:
    """
    Base class for service layer classes.

    Provides common utilities for services:
    - Logging setup per service
    - Database transaction management

    Design Notes:
        - Services receive their collaborators (ID generator, provider
          registry, commission calculator) through __init__ so tests can
          substitute them
        - Use ServiceResult for expected failures
        - Raise exceptions for failures the caller must surface
    """

    @classmethod
    def get_logger(cls) -> logging.Logger:
        """
        Get logger for this service.

        Returns a logger named after the service class for
        easy filtering in logs.
        """
        return logging.getLogger(f"{cls.__module__}.{cls.__name__}")

    @classmethod
    @contextmanager
    def atomic(cls) -> Generator[None, None, None]:
        """
        Execute operations in a database transaction.

        Thin wrapper around Django's transaction.atomic() that makes
        transaction boundaries explicit in service code.
        """
        with transaction.atomic():
            yield
