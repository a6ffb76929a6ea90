"""Common module — shared utilities for the leave workflow engine."""

from leaveflow.common.audit import AuditTrail, create_audit_entry
from leaveflow.common.concurrency import bounded
from leaveflow.common.exceptions import (
    AppException,
    BadRequestException,
    ConflictError,
    NotFoundException,
    OperationTimeoutError,
    register_exception_handlers,
)
from leaveflow.common.pagination import (
    PaginatedResponse,
    PaginationMeta,
    PaginationParams,
    paginate,
)

__all__ = [
    # Audit
    "AuditTrail",
    "create_audit_entry",
    # Concurrency
    "bounded",
    # Exceptions
    "AppException",
    "BadRequestException",
    "ConflictError",
    "NotFoundException",
    "OperationTimeoutError",
    "register_exception_handlers",
    # Pagination
    "PaginatedResponse",
    "PaginationMeta",
    "PaginationParams",
    "paginate",
]
