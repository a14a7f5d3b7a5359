"""Error handling utilities for the claims review system."""

from dataclasses import dataclass
from typing import Optional, Dict, Any, List, Tuple
from enum import Enum


class ErrorType(Enum):
    """Enumeration of error types in the claims review system."""

    # Chat-completion API Errors
    MODEL_RATE_LIMIT = "MODEL_RATE_LIMIT"
    MODEL_TIMEOUT = "MODEL_TIMEOUT"
    MODEL_AUTH_ERROR = "MODEL_AUTH_ERROR"
    MODEL_INVALID_REQUEST = "MODEL_INVALID_REQUEST"
    MODEL_SERVICE_ERROR = "MODEL_SERVICE_ERROR"
    MODEL_RESPONSE_INVALID = "MODEL_RESPONSE_INVALID"

    # Document Processing Errors
    PDF_EXTRACTION_FAILED = "PDF_EXTRACTION_FAILED"

    # Storage Errors
    STORE_CORRUPTED = "STORE_CORRUPTED"
    STORE_WRITE_FAILED = "STORE_WRITE_FAILED"

    # Submission Errors
    VALIDATION_FAILED = "VALIDATION_FAILED"

    # Configuration Errors
    CONFIG_MISSING = "CONFIG_MISSING"
    CONFIG_INVALID = "CONFIG_INVALID"

    # General Errors
    UNKNOWN_ERROR = "UNKNOWN_ERROR"


@dataclass
class ErrorContext:
    """
    Context information for errors in the claims review system.

    Attributes:
        error_type: Type of error from ErrorType enum
        message: Human-readable error message
        recoverable: Whether the error can be recovered from
        fallback_action: Optional description of fallback action taken
        details: Optional additional error details
        original_exception: Optional original exception that caused this error
    """

    error_type: ErrorType
    message: str
    recoverable: bool
    fallback_action: Optional[str] = None
    details: Optional[Dict[str, Any]] = None
    original_exception: Optional[Exception] = None

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert error context to dictionary for logging/serialization.

        Returns:
            Dictionary representation of error context
        """
        return {
            "error_type": self.error_type.value,
            "message": self.message,
            "recoverable": self.recoverable,
            "fallback_action": self.fallback_action,
            "details": self.details or {},
            "original_exception": str(self.original_exception) if self.original_exception else None
        }


class ClaimsProcessingError(Exception):
    """
    Base exception for all claims processing errors.

    This exception wraps errors with additional context to enable
    graceful degradation and better error reporting.

    Attributes:
        context: ErrorContext with detailed error information
    """

    def __init__(self, context: ErrorContext):
        """
        Initialize claims processing error.

        Args:
            context: ErrorContext with error details
        """
        self.context = context
        super().__init__(context.message)

    def __str__(self) -> str:
        """String representation of the error."""
        base = f"{self.context.error_type.value}: {self.context.message}"
        if self.context.fallback_action:
            base += f" (Fallback: {self.context.fallback_action})"
        return base

    @property
    def message(self) -> str:
        return self.context.message

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert error to dictionary for logging/serialization.

        Returns:
            Dictionary representation of error
        """
        return self.context.to_dict()


class ModelAPIError(ClaimsProcessingError):
    """Exception for chat-completion endpoint errors."""

    @classmethod
    def from_api_error(
        cls,
        error: Exception,
        operation: str,
        recoverable: bool = False,
        fallback_action: Optional[str] = None
    ) -> "ModelAPIError":
        """
        Create ModelAPIError from an openai SDK exception.

        Args:
            error: Original openai exception
            operation: Description of operation that failed
            recoverable: Whether error is recoverable
            fallback_action: Optional fallback action description

        Returns:
            ModelAPIError instance
        """
        error_code = error.__class__.__name__
        status_code = getattr(error, "status_code", None)

        # Map SDK exception names to error types
        error_type_map = {
            "RateLimitError": ErrorType.MODEL_RATE_LIMIT,
            "APITimeoutError": ErrorType.MODEL_TIMEOUT,
            "TimeoutError": ErrorType.MODEL_TIMEOUT,
            "AuthenticationError": ErrorType.MODEL_AUTH_ERROR,
            "PermissionDeniedError": ErrorType.MODEL_AUTH_ERROR,
            "BadRequestError": ErrorType.MODEL_INVALID_REQUEST,
            "NotFoundError": ErrorType.MODEL_INVALID_REQUEST,
            "UnprocessableEntityError": ErrorType.MODEL_INVALID_REQUEST,
            "InternalServerError": ErrorType.MODEL_SERVICE_ERROR,
            "APIConnectionError": ErrorType.MODEL_SERVICE_ERROR,
        }

        error_type = error_type_map.get(error_code, ErrorType.MODEL_SERVICE_ERROR)

        context = ErrorContext(
            error_type=error_type,
            message=f"Chat-completion API error during {operation}: {str(error)}",
            recoverable=recoverable,
            fallback_action=fallback_action,
            details={
                "error_code": error_code,
                "status_code": status_code,
                "operation": operation
            },
            original_exception=error
        )

        return cls(context)

    @classmethod
    def missing_api_key(cls) -> "ModelAPIError":
        """Create error for a chat-completion call attempted without an API key."""
        context = ErrorContext(
            error_type=ErrorType.CONFIG_MISSING,
            message="LLaMA API key not found. Please set your API key in the settings.",
            recoverable=True,
            fallback_action="Set an API key on the settings page"
        )
        return cls(context)

    @classmethod
    def invalid_response(
        cls,
        operation: str,
        reason: str,
        content: Optional[str] = None
    ) -> "ModelAPIError":
        """
        Create error for a response that could not be interpreted.

        Args:
            operation: Description of operation that failed
            reason: Why the response was rejected
            content: Optional raw response content (truncated in details)

        Returns:
            ModelAPIError instance
        """
        context = ErrorContext(
            error_type=ErrorType.MODEL_RESPONSE_INVALID,
            message=f"Failed to parse {operation} result: {reason}",
            recoverable=True,
            details={"operation": operation, "content": (content or "")[:500]}
        )
        return cls(context)


class DocumentProcessingError(ClaimsProcessingError):
    """Exception for document processing errors."""

    @classmethod
    def pdf_extraction_failed(
        cls,
        filename: str,
        failures: List[Tuple[str, str]],
        fallback_action: Optional[str] = None
    ) -> "DocumentProcessingError":
        """
        Create error for a PDF on which every extraction strategy failed.

        Args:
            filename: Name of PDF file
            failures: (strategy name, error message) pairs in strategy order
            fallback_action: Optional fallback action

        Returns:
            DocumentProcessingError instance
        """
        summary = "; ".join(f"{name}: {message}" for name, message in failures)
        context = ErrorContext(
            error_type=ErrorType.PDF_EXTRACTION_FAILED,
            message=f"Failed to extract text from PDF '{filename}': {summary}",
            recoverable=False,
            fallback_action=fallback_action,
            details={
                "filename": filename,
                "strategy_errors": [
                    {"strategy": name, "error": message} for name, message in failures
                ]
            }
        )
        return cls(context)


class StorageError(ClaimsProcessingError):
    """Exception for persisted claim state that cannot be read."""

    @classmethod
    def corrupted(cls, key: str, error: Exception) -> "StorageError":
        """
        Create error for a stored blob that failed to deserialize.

        Args:
            key: Storage key holding the malformed value
            error: Original parse exception

        Returns:
            StorageError instance
        """
        context = ErrorContext(
            error_type=ErrorType.STORE_CORRUPTED,
            message=f"Stored data under '{key}' is malformed: {str(error)}",
            recoverable=True,
            fallback_action="Treat store as empty",
            details={"key": key},
            original_exception=error
        )
        return cls(context)

    @classmethod
    def write_failed(cls, key: str, error: Exception) -> "StorageError":
        """Create error for a value that could not be persisted."""
        context = ErrorContext(
            error_type=ErrorType.STORE_WRITE_FAILED,
            message=f"Failed to save data under '{key}': {str(error)}",
            recoverable=False,
            details={"key": key},
            original_exception=error
        )
        return cls(context)


class ClaimValidationError(ClaimsProcessingError):
    """Exception for operator input rejected before any processing."""

    def __init__(self, field: str, message: str):
        self.field = field
        super().__init__(
            ErrorContext(
                error_type=ErrorType.VALIDATION_FAILED,
                message=message,
                recoverable=True,
                details={"field": field}
            )
        )


class ConfigError(ClaimsProcessingError):
    """Exception for missing or invalid configuration."""

    @classmethod
    def missing(cls, what: str) -> "ConfigError":
        return cls(
            ErrorContext(
                error_type=ErrorType.CONFIG_MISSING,
                message=f"Configuration missing: {what}",
                recoverable=False,
                details={"missing": what}
            )
        )

    @classmethod
    def invalid(cls, what: str, error: Exception) -> "ConfigError":
        return cls(
            ErrorContext(
                error_type=ErrorType.CONFIG_INVALID,
                message=f"Invalid configuration for {what}: {str(error)}",
                recoverable=False,
                details={"setting": what},
                original_exception=error
            )
        )


