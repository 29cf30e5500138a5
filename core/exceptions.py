"""
Custom exceptions for the reconciliation batch with structured error context.

Every exception carries a message, a context dictionary and the original
exception (if any) so failures can be logged and persisted with enough
information to debug a run after the fact.

Exception Hierarchy:
    BatchException (base)
    ├── ExtractionError
    │   ├── APIExtractionError
    │   │   ├── UpstreamOverloadError (retryable, HTTP 502)
    │   │   ├── NetworkError (retryable)
    │   │   ├── RetryExhaustedError
    │   │   └── AuthenticationError
    │   ├── CSVExtractionError
    │   ├── MarkupExtractionError
    │   ├── InvalidPageError
    │   └── EndOfDataError (HTTP 400/404, normal pagination stop)
    ├── TransformationError
    │   └── NormalizationError
    ├── ReconciliationError
    │   └── MergeMismatchError
    ├── LoadError
    │   └── PersistenceError
    ├── GateTimeoutError
    ├── BatchExecutionError
    └── RetryableError / NonRetryableError (mixins)
"""

from typing import Optional, Dict, Any
from datetime import datetime, timezone


class BatchException(Exception):
    """
    Base exception for all batch-related errors.

    Attributes:
        message: Human-readable error message
        context: Additional context information (source, page, phase, etc.)
        original_exception: The original exception that was caught (if any)
    """

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        original_exception: Optional[Exception] = None
    ):
        self.message = message
        self.context = context or {}
        self.original_exception = original_exception
        self.timestamp = datetime.now(timezone.utc)

        self.context["error_timestamp"] = self.timestamp.isoformat()

        super().__init__(message)
        if original_exception:
            self.__cause__ = original_exception

    def __str__(self) -> str:
        """Format error message with context."""
        base_msg = f"{self.__class__.__name__}: {self.message}"

        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            base_msg += f" | Context: {context_str}"

        if self.original_exception:
            base_msg += (
                f" | Caused by: {type(self.original_exception).__name__}: "
                f"{str(self.original_exception)}"
            )

        return base_msg

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/storage."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
            "original_error": str(self.original_exception) if self.original_exception else None
        }


# ============================================================================
# Retry Strategy Mixins
# ============================================================================

class RetryableError(BatchException):
    """
    Mixin for errors that a retry policy may retry.

    Only the designated transient class (upstream overload) is actually
    retried by the fetchers; other retryable errors are informational.
    """
    pass


class NonRetryableError(BatchException):
    """Mixin for errors that must never be retried."""
    pass


# ============================================================================
# Extraction Errors
# ============================================================================

class ExtractionError(BatchException):
    """Base exception for upstream fetch failures."""
    pass


class APIExtractionError(ExtractionError):
    """
    Exception raised when an HTTP upstream fails.

    Context should include:
        - url: The endpoint that failed
        - status_code: HTTP status code (if applicable)
        - page: Requested page
    """
    pass


class CSVExtractionError(ExtractionError):
    """
    Exception raised when the transaction file cannot be read.

    Context should include:
        - file_path: Path to the CSV file
    """
    pass


class MarkupExtractionError(ExtractionError):
    """
    Exception raised when a markup document or one of its records is malformed.

    Context should include:
        - url: Endpoint the document came from
        - record_index: Index of the transaction block (if applicable)
        - tag: Missing or empty tag name (if applicable)
    """
    pass


class UpstreamOverloadError(RetryableError, APIExtractionError):
    """Upstream signalled overload (HTTP 502). The only class the retry policy retries."""
    pass


class NetworkError(RetryableError, APIExtractionError):
    """Transport-level failures (connection refused, timeouts)."""
    pass


class RetryExhaustedError(APIExtractionError):
    """Raised when a retry policy ran out of attempts on a transient failure."""
    pass


class AuthenticationError(NonRetryableError, APIExtractionError):
    """Authentication failures (HTTP 401, 403)."""
    pass


class InvalidPageError(NonRetryableError, ExtractionError):
    """Caller passed a page that is not an integer >= 1."""
    pass


class EndOfDataError(NonRetryableError, ExtractionError):
    """
    Terminal status (HTTP 400/404) used by upstreams to end pagination.

    Collectors treat this as a normal stop signal, not a failure.
    """
    pass


# ============================================================================
# Transformation Errors
# ============================================================================

class TransformationError(BatchException):
    """Base exception for record transformation failures."""
    pass


class NormalizationError(TransformationError):
    """
    Exception raised when a wire record cannot be projected onto a Transaction.

    Context should include:
        - source_name: Name of the data source
        - field_errors: List of field-level errors
    """
    pass


# ============================================================================
# Reconciliation Errors
# ============================================================================

class ReconciliationError(BatchException):
    """Base exception for matching failures."""
    pass


class MergeMismatchError(ReconciliationError):
    """Transaction and StoreTransaction do not share transaction id and store id."""
    pass


# ============================================================================
# Load Errors
# ============================================================================

class LoadError(BatchException):
    """Base exception for persistence failures."""
    pass


class PersistenceError(LoadError):
    """
    Exception raised when a read or write against the key-value store fails.

    Context should include:
        - operation: get, put or delete
        - key: Store key involved
    """
    pass


# ============================================================================
# Run Errors
# ============================================================================

class GateTimeoutError(BatchException):
    """A gated operation was not admitted to its resource group in time."""
    pass


class BatchExecutionError(BatchException):
    """Unexpected failure inside a batch run, wrapped with its phase."""
    pass
