"""
Structured Error Handling for the Asset Hierarchy Service
Provides error hierarchy with categorization, error codes, and structured context.
"""

from typing import Dict, Any, Optional
from enum import Enum


class ErrorCategory(str, Enum):
    """Error categories for classification and handling."""
    SCOPE = "SCOPE"  # No resolvable tenant for the caller
    FETCH = "FETCH"  # Reading a collection from the store failed
    MUTATION = "MUTATION"  # Writing to the store failed
    VALIDATION = "VALIDATION"  # Write rejected before reaching the store


class ErrorCode(str, Enum):
    """Standardized error codes for monitoring and debugging."""
    TENANT_SCOPE_UNRESOLVED = "TENANT_SCOPE_UNRESOLVED"
    ORGANIZATION_REQUIRED = "ORGANIZATION_REQUIRED"

    FETCH_FAILED = "FETCH_FAILED"

    MUTATION_FAILED = "MUTATION_FAILED"
    RECORD_NOT_FOUND = "RECORD_NOT_FOUND"

    INVALID_PARENT = "INVALID_PARENT"
    INVALID_PAYLOAD = "INVALID_PAYLOAD"


class HierarchyServiceError(Exception):
    """
    Base exception for all hierarchy service errors.

    Carries enough structure for the API layer to render a response without
    inspecting the message text.
    """

    def __init__(
        self,
        message: str,
        category: ErrorCategory,
        error_code: ErrorCode,
        http_status: int = 500,
        context: Optional[Dict[str, Any]] = None,
        original_error: Optional[Exception] = None
    ):
        """
        Initialize structured exception.

        Args:
            message: Human-readable error message
            category: Error category for classification
            error_code: Standardized error code
            http_status: HTTP status code to return
            context: Additional context (organization_id, record id, etc.)
            original_error: Original exception if wrapped
        """
        super().__init__(message)
        self.message = message
        self.category = category
        self.error_code = error_code
        self.http_status = http_status
        self.context = context or {}
        self.original_error = original_error

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for API responses."""
        result = {
            "error": self.error_code.value,
            "message": self.message,
            "category": self.category.value,
            "http_status": self.http_status
        }

        if self.context:
            result["context"] = self.context

        return result


class TenantScopeError(HierarchyServiceError):
    """
    No organization and no cross-tenant grant for a write.

    Reads under an unresolved scope return empty results instead of raising.
    """

    def __init__(
        self,
        message: str = "No organization scope available for this operation",
        error_code: ErrorCode = ErrorCode.TENANT_SCOPE_UNRESOLVED,
        context: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            message=message,
            category=ErrorCategory.SCOPE,
            error_code=error_code,
            http_status=403,
            context=context
        )


class FetchError(HierarchyServiceError):
    """A collection fetch failed; assembly must not run."""

    def __init__(
        self,
        message: str,
        collection: str,
        context: Optional[Dict[str, Any]] = None,
        original_error: Optional[Exception] = None
    ):
        context = {"collection": collection, **(context or {})}
        super().__init__(
            message=message,
            category=ErrorCategory.FETCH,
            error_code=ErrorCode.FETCH_FAILED,
            http_status=502,
            context=context,
            original_error=original_error
        )
        self.collection = collection


class MutationError(HierarchyServiceError):
    """A store write failed. The original store message is kept in the text."""

    def __init__(
        self,
        message: str,
        operation: str,
        error_code: ErrorCode = ErrorCode.MUTATION_FAILED,
        http_status: int = 502,
        context: Optional[Dict[str, Any]] = None,
        original_error: Optional[Exception] = None
    ):
        context = {"operation": operation, **(context or {})}
        super().__init__(
            message=message,
            category=ErrorCategory.MUTATION,
            error_code=error_code,
            http_status=http_status,
            context=context,
            original_error=original_error
        )
        self.operation = operation


class RecordNotFoundError(MutationError):
    """Update target does not exist (or is not visible to this tenant)."""

    def __init__(
        self,
        message: str,
        operation: str,
        context: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            message=message,
            operation=operation,
            error_code=ErrorCode.RECORD_NOT_FOUND,
            http_status=404,
            context=context
        )


class HierarchyValidationError(HierarchyServiceError):
    """Write rejected before reaching the store."""

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.INVALID_PAYLOAD,
        context: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            message=message,
            category=ErrorCategory.VALIDATION,
            error_code=error_code,
            http_status=400,
            context=context
        )
