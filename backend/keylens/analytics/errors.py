"""
Query Error Classification
==========================

**Version**: 1.0.0
**Created**: 2026-10-02
**Status**: Active

Error classification and messaging for analytics queries.

WHY THIS FILE EXISTS
--------------------
Errors come from three places:

    1. Boundary validation
       - Unknown analytics domain
       - Unknown filter field for a domain
       - Operator not allowed for a field
       - Value outside a field's fixed vocabulary

    2. Key resolver (external)
       - API / keyspace not found or soft-deleted

    3. Aggregation executor (external)
       - Query execution failed, timed out, or returned garbage

The compiler itself never raises. Everything above is reported as a single
QueryError type so the router can map it to an HTTP status in one place.

RETRY POLICY
------------
Nothing here is retryable. Executor queries are potentially expensive and the
executor makes no idempotency promises, so a failure is surfaced to the caller
as-is.

RELATED FILES
-------------
- keylens/analytics/filters.py: Raises boundary validation errors
- keylens/analytics/sql.py: Raises SCOPE_NOT_FOUND
- keylens/analytics/executor.py: Raises EXECUTOR_ERROR
- keylens/routers/analytics.py: Maps errors to HTTP responses
"""

from dataclasses import dataclass, field as dataclass_field
from typing import Optional, Dict, Any
from enum import Enum
import logging


logger = logging.getLogger(__name__)


# =============================================================================
# ERROR CLASSIFICATION ENUMS
# =============================================================================

class ErrorCategory(Enum):
    """
    Categories of errors for classification and handling.

    WHAT: Groups error codes by where they originate.

    WHY: The category decides the HTTP status and the log level.
    """
    SCHEMA = "schema"              # Request shape, fields, operators
    RESOURCE = "resource"          # Scope lookups in the row store
    EXTERNAL = "external"          # Aggregation executor failures
    UNKNOWN = "unknown"            # Unexpected errors


class ErrorSeverity(Enum):
    """How serious an error is and who needs to know."""
    WARNING = "warning"            # Caller mistake, nothing broken
    ERROR = "error"                # Operation failed
    CRITICAL = "critical"          # Dependency down or internal bug


class ErrorCode(Enum):
    """
    Machine-readable error codes.

    WHAT: Stable identifiers for monitoring and client handling.
    """
    # Schema errors
    UNKNOWN_DOMAIN = "ERR_001"
    UNKNOWN_FIELD = "ERR_002"
    INVALID_FILTER = "ERR_003"
    MISSING_SCOPE = "ERR_004"

    # Resource errors
    SCOPE_NOT_FOUND = "ERR_030"

    # External errors
    EXECUTOR_ERROR = "ERR_040"
    EXECUTOR_NOT_CONFIGURED = "ERR_041"

    # Unknown errors
    INTERNAL_ERROR = "ERR_999"


_CATEGORY_BY_CODE: Dict[ErrorCode, ErrorCategory] = {
    ErrorCode.UNKNOWN_DOMAIN: ErrorCategory.SCHEMA,
    ErrorCode.UNKNOWN_FIELD: ErrorCategory.SCHEMA,
    ErrorCode.INVALID_FILTER: ErrorCategory.SCHEMA,
    ErrorCode.MISSING_SCOPE: ErrorCategory.SCHEMA,
    ErrorCode.SCOPE_NOT_FOUND: ErrorCategory.RESOURCE,
    ErrorCode.EXECUTOR_ERROR: ErrorCategory.EXTERNAL,
    ErrorCode.EXECUTOR_NOT_CONFIGURED: ErrorCategory.EXTERNAL,
    ErrorCode.INTERNAL_ERROR: ErrorCategory.UNKNOWN,
}

_SEVERITY_BY_CATEGORY: Dict[ErrorCategory, ErrorSeverity] = {
    ErrorCategory.SCHEMA: ErrorSeverity.WARNING,
    ErrorCategory.RESOURCE: ErrorSeverity.ERROR,
    ErrorCategory.EXTERNAL: ErrorSeverity.CRITICAL,
    ErrorCategory.UNKNOWN: ErrorSeverity.CRITICAL,
}


# =============================================================================
# QUERY ERROR EXCEPTION
# =============================================================================

@dataclass
class QueryError(Exception):
    """
    Exception class for analytics query failures.

    WHAT: Carries everything the router and the logs need about one failure.

    ATTRIBUTES:
        code: ErrorCode (machine-readable)
        message: Human-readable message, safe to return to the client
        category: Where the error originated
        severity: How serious it is
        field_name: Filter field that caused the error (optional)
        suggestion: How to fix the request (optional)
        details: Extra debug information (never shown to clients)

    USAGE:
        raise QueryError.create(
            ErrorCode.SCOPE_NOT_FOUND,
            "API not found or does not have key authentication enabled",
        )
    """
    code: ErrorCode
    message: str
    category: ErrorCategory
    severity: ErrorSeverity
    field_name: Optional[str] = None
    suggestion: Optional[str] = None
    details: Dict[str, Any] = dataclass_field(default_factory=dict)

    def __str__(self) -> str:
        if self.field_name:
            return f"[{self.code.value}] {self.field_name}: {self.message}"
        return f"[{self.code.value}] {self.message}"

    @classmethod
    def create(
        cls,
        code: ErrorCode,
        message: str,
        field_name: Optional[str] = None,
        suggestion: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> "QueryError":
        """Build an error with category and severity derived from the code."""
        category = _CATEGORY_BY_CODE.get(code, ErrorCategory.UNKNOWN)
        return cls(
            code=code,
            message=message,
            category=category,
            severity=_SEVERITY_BY_CATEGORY[category],
            field_name=field_name,
            suggestion=suggestion,
            details=details or {},
        )

    @property
    def is_retryable(self) -> bool:
        """Always False. Executor queries are not assumed idempotent."""
        return False

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert to dictionary for logging/JSON serialization.

        RETURNS:
            Dictionary with code, name, message, category and optional extras.
            `details` is never included; log it separately if needed.
        """
        result = {
            "code": self.code.value,
            "error": self.code.name,
            "message": self.message,
            "category": self.category.value,
        }

        if self.field_name:
            result["field"] = self.field_name

        if self.suggestion:
            result["suggestion"] = self.suggestion

        return result


# =============================================================================
# CONVENIENCE FUNCTIONS
# =============================================================================

def scope_not_found(message: str, **details: Any) -> QueryError:
    """Error for an API/keyspace that does not exist or was soft-deleted."""
    return QueryError.create(ErrorCode.SCOPE_NOT_FOUND, message, details=details)


def executor_failed(message: str, **details: Any) -> QueryError:
    """Error for a failed aggregation query."""
    return QueryError.create(
        ErrorCode.EXECUTOR_ERROR,
        message,
        suggestion="Try again later or narrow the time range",
        details=details,
    )
