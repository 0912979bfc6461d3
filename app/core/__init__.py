"""
Core Application - Infrastructure & Base Classes

Generic building blocks shared by the domain apps (catalog, orders,
payments). Nothing here knows about orders or money.

Models (import from core.models):
    - BaseModel: Abstract model with timestamps (created_at, updated_at)

Model Mixins (import from core.model_mixins):
    - SequenceIdPrimaryKeyMixin: 64-bit sequence id as primary key

Sequence IDs (import from core.sequence):
    - SequenceIdGenerator: Thread-safe time-ordered id generator
    - get_sequence_generator / generate_sequence_id

Services (import from core.services):
    - BaseService: Base class for service layer
    - ServiceResult: Standard result wrapper for success/failure handling

Exceptions (import from core.exceptions):
    - BaseApplicationError and its HTTP-mapped subclasses

API plumbing:
    - core.exception_handlers.api_exception_handler
    - core.pagination.StandardPagination
    - core.throttling.ApiKeyRateThrottle

Note:
    Models and model mixins are NOT imported here to avoid
    AppRegistryNotReady errors. Import them directly from their modules.
"""

# Services (no Django model dependencies)
from .services import BaseService, ServiceResult

# Exceptions (no Django dependencies)
from .exceptions import (
    BaseApplicationError,
    ConflictError,
    ExternalServiceError,
    NotFoundError,
    PermissionDeniedError,
    RateLimitError,
    UnauthorizedError,
    ValidationError,
)

# Helpers (no Django model dependencies)
from .helpers import get_client_ip

__all__ = [
    # Services
    "BaseService",
    "ServiceResult",
    # Exceptions
    "BaseApplicationError",
    "ValidationError",
    "UnauthorizedError",
    "NotFoundError",
    "PermissionDeniedError",
    "ConflictError",
    "RateLimitError",
    "ExternalServiceError",
    # Helpers
    "get_client_ip",
]
