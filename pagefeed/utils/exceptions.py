"""
PageFeed Custom Exceptions
==========================

Exception hierarchy for PageFeed with error codes, context information and
user-friendly messages. Feed-level errors fail a single feed only; the
orchestrator records them and moves on to the next feed.
"""

from typing import Optional, Dict, Any
from enum import Enum


class ErrorCode(str, Enum):
    """Error codes for categorizing exceptions."""

    # Configuration errors (C001-C099)
    CONFIG_INVALID = "C001"
    CONFIG_MISSING = "C002"
    CONFIG_PARSE_ERROR = "C003"

    # Database errors (D001-D099)
    DATABASE_CONNECTION = "D001"
    DATABASE_SCHEMA = "D002"
    DATABASE_ERROR = "D006"

    # Fetch errors (F001-F099)
    FEED_INVALID_URL = "F001"
    FEED_FETCH_TIMEOUT = "F002"
    FEED_NETWORK_ERROR = "F004"
    FEED_HTTP_STATUS = "F005"
    FEED_NOT_FOUND = "F006"

    # Parse and extraction errors (P001-P099)
    CONTENT_PARSE_ERROR = "P001"
    SELECTOR_INVALID = "P002"
    DATE_PARSE_FAILED = "P003"

    # Output errors (O001-O099)
    OUTPUT_WRITE_FAILED = "O001"
    OUTPUT_DUPLICATE = "O002"

    # Validation errors (V001-V099)
    VALIDATION_REQUIRED_FIELD = "V001"
    VALIDATION_INVALID_FORMAT = "V002"

    # System errors (S001-S099)
    SYSTEM_RESOURCE_EXHAUSTED = "S001"
    SYSTEM_PERMISSION_DENIED = "S002"
    SYSTEM_MEMORY_ERROR = "S004"


class PageFeedError(Exception):
    """Base exception for all PageFeed errors."""

    def __init__(
        self,
        message: str,
        error_code: Optional[ErrorCode] = None,
        context: Optional[Dict[str, Any]] = None,
        user_message: Optional[str] = None,
        recoverable: bool = False,
    ):
        """Initialize PageFeed error.

        Args:
            message: Technical error message for logging
            error_code: Categorized error code
            context: Additional context information
            user_message: User-friendly error message
            recoverable: Whether the error is recoverable
        """
        super().__init__(message)
        self.error_code = error_code
        self.context = context or {}
        self.user_message = user_message or message
        self.recoverable = recoverable

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/serialization."""
        return {
            "error_type": self.__class__.__name__,
            "error_code": self.error_code.value if self.error_code else None,
            "error_message": str(self),
            "user_message": self.user_message,
            "context": self.context,
            "recoverable": self.recoverable,
        }

    def __str__(self) -> str:
        """String representation with error code."""
        if self.error_code:
            return f"[{self.error_code.value}] {super().__str__()}"
        return super().__str__()


def _forward(kwargs: Dict[str, Any], *consumed: str) -> Dict[str, Any]:
    return {k: v for k, v in kwargs.items() if k not in consumed}


class ConfigurationError(PageFeedError):
    """Configuration-related errors."""

    def __init__(self, message: str, config_key: Optional[str] = None, **kwargs):
        """Initialize configuration error.

        Args:
            message: Error message
            config_key: Configuration key that caused the error
            **kwargs: Additional arguments for PageFeedError
        """
        context = kwargs.get("context", {})
        if config_key:
            context["config_key"] = config_key

        super().__init__(
            message=message,
            error_code=kwargs.get("error_code", ErrorCode.CONFIG_INVALID),
            context=context,
            user_message=kwargs.get("user_message", f"Configuration error: {message}"),
            **_forward(kwargs, "context", "error_code", "user_message"),
        )


class DatabaseError(PageFeedError):
    """Cache database errors. Not being able to open the store fails the whole run."""

    def __init__(self, message: str, query: Optional[str] = None, **kwargs):
        context = kwargs.get("context", {})
        if query:
            context["query"] = query

        super().__init__(
            message=message,
            error_code=kwargs.get("error_code", ErrorCode.DATABASE_CONNECTION),
            context=context,
            user_message=kwargs.get("user_message", "Cache database operation failed"),
            recoverable=kwargs.get("recoverable", False),
            **_forward(kwargs, "context", "error_code", "user_message", "recoverable"),
        )


class FeedError(PageFeedError):
    """Errors that fail a single feed."""

    def __init__(self, message: str, feed_url: Optional[str] = None, **kwargs):
        """Initialize feed error.

        Args:
            message: Error message
            feed_url: Source page URL of the failing feed
            **kwargs: Additional arguments for PageFeedError
        """
        context = kwargs.get("context", {})
        if feed_url:
            context["feed_url"] = feed_url

        super().__init__(
            message=message,
            error_code=kwargs.get("error_code", ErrorCode.FEED_NETWORK_ERROR),
            context=context,
            user_message=kwargs.get(
                "user_message", f"Feed processing failed: {message}"
            ),
            recoverable=kwargs.get("recoverable", True),
            **_forward(kwargs, "context", "error_code", "user_message", "recoverable"),
        )


class FetchError(FeedError):
    """Page retrieval errors."""

    pass


class NetworkError(FetchError):
    """Connection, TLS or body read failure."""

    def __init__(self, message: str, **kwargs):
        kwargs.setdefault("error_code", ErrorCode.FEED_NETWORK_ERROR)
        super().__init__(message, **kwargs)


class FetchTimeoutError(NetworkError):
    """Request exceeded the configured timeout. Never retried automatically."""

    def __init__(self, message: str, timeout: Optional[float] = None, **kwargs):
        context = kwargs.pop("context", {})
        if timeout is not None:
            context["timeout_seconds"] = timeout
        kwargs.setdefault("error_code", ErrorCode.FEED_FETCH_TIMEOUT)
        super().__init__(message, context=context, **kwargs)


class HttpStatusError(FetchError):
    """Response status was neither 2xx nor 304."""

    def __init__(self, message: str, status: Optional[int] = None, **kwargs):
        context = kwargs.pop("context", {})
        if status is not None:
            context["status"] = status
        kwargs.setdefault("error_code", ErrorCode.FEED_HTTP_STATUS)
        super().__init__(message, context=context, **kwargs)
        self.status = status


class ParseError(FeedError):
    """Document could not be parsed as markup at all."""

    def __init__(self, message: str, **kwargs):
        kwargs.setdefault("error_code", ErrorCode.CONTENT_PARSE_ERROR)
        super().__init__(message, **kwargs)


class SelectorError(ParseError):
    """A configured CSS selector is not valid."""

    def __init__(self, message: str, selector: Optional[str] = None, **kwargs):
        context = kwargs.pop("context", {})
        if selector:
            context["selector"] = selector
        kwargs.setdefault("error_code", ErrorCode.SELECTOR_INVALID)
        super().__init__(message, context=context, **kwargs)


class DateParseFailure(PageFeedError):
    """A single date field could not be parsed. Recovered locally, never escalated."""

    def __init__(self, message: str, raw_value: Optional[str] = None, **kwargs):
        context = kwargs.get("context", {})
        if raw_value is not None:
            context["raw_value"] = raw_value

        super().__init__(
            message=message,
            error_code=kwargs.get("error_code", ErrorCode.DATE_PARSE_FAILED),
            context=context,
            user_message=kwargs.get("user_message", f"Unparsable date: {raw_value!r}"),
            recoverable=True,
        )


class WriteError(PageFeedError):
    """Output could not be persisted atomically."""

    def __init__(self, message: str, output_path: Optional[str] = None, **kwargs):
        context = kwargs.get("context", {})
        if output_path:
            context["output_path"] = output_path

        super().__init__(
            message=message,
            error_code=kwargs.get("error_code", ErrorCode.OUTPUT_WRITE_FAILED),
            context=context,
            user_message=kwargs.get("user_message", f"Unable to write feed: {message}"),
            recoverable=kwargs.get("recoverable", True),
            **_forward(kwargs, "context", "error_code", "user_message", "recoverable"),
        )


class DuplicateOutputError(WriteError):
    """Two feed definitions target the same output file in one run."""

    def __init__(self, message: str, **kwargs):
        kwargs.setdefault("error_code", ErrorCode.OUTPUT_DUPLICATE)
        kwargs.setdefault("recoverable", False)
        super().__init__(message, **kwargs)


class ValidationError(PageFeedError):
    """Data validation errors."""

    def __init__(self, message: str, field_name: Optional[str] = None, **kwargs):
        """Initialize validation error.

        Args:
            message: Error message
            field_name: Field name that failed validation
            **kwargs: Additional arguments for PageFeedError
        """
        context = kwargs.get("context", {})
        if field_name:
            context["field_name"] = field_name

        super().__init__(
            message=message,
            error_code=kwargs.get("error_code", ErrorCode.VALIDATION_INVALID_FORMAT),
            context=context,
            user_message=kwargs.get(
                "user_message", f"Invalid {field_name or 'input'}: {message}"
            ),
            recoverable=kwargs.get("recoverable", False),
            **_forward(kwargs, "context", "error_code", "user_message", "recoverable"),
        )


# Exception handling utilities


def handle_exception(
    exception: Exception,
    logger,
    operation: str,
    context: Optional[Dict[str, Any]] = None,
) -> PageFeedError:
    """Convert generic exceptions to PageFeed exceptions with proper logging.

    Args:
        exception: Original exception
        logger: Logger instance for error logging
        operation: Operation that was being performed
        context: Additional context information

    Returns:
        PageFeed exception with proper categorization
    """
    context = context or {}
    context["operation"] = operation
    context["original_exception_type"] = type(exception).__name__

    if isinstance(exception, PageFeedError):
        logger.error(f"Operation '{operation}' failed", extra=exception.to_dict())
        return exception

    elif isinstance(exception, (ConnectionError, TimeoutError)):
        error = NetworkError(
            f"Network error during {operation}: {str(exception)}",
            context=context,
            user_message="Network connection failed",
        )

    elif isinstance(exception, PermissionError):
        error = PageFeedError(
            message=f"Permission denied during {operation}: {str(exception)}",
            error_code=ErrorCode.SYSTEM_PERMISSION_DENIED,
            context=context,
            user_message="Access denied",
            recoverable=False,
        )

    elif isinstance(exception, MemoryError):
        error = PageFeedError(
            message=f"Memory exhausted during {operation}: {str(exception)}",
            error_code=ErrorCode.SYSTEM_MEMORY_ERROR,
            context=context,
            user_message="System resources exhausted",
            recoverable=False,
        )

    else:
        error = PageFeedError(
            message=f"Unexpected error during {operation}: {str(exception)}",
            context=context,
            user_message="An unexpected error occurred",
            recoverable=True,
        )

    logger.error(f"Operation '{operation}' failed", extra=error.to_dict())
    return error


def get_user_friendly_message(exception: Exception) -> str:
    """Get user-friendly error message for any exception."""
    if isinstance(exception, PageFeedError):
        return exception.user_message

    return "An unexpected error occurred."
