"""
Custom exceptions for the menu scan backend.

Every failure in the scan, translation and dish image paths is one of these
types, so callers can branch on the class (or on ``error_code``) instead of
parsing messages.
"""

from typing import Optional, Dict, Any, List
from enum import Enum


class ErrorCode(str, Enum):
    """Standardized error codes for the application."""

    # Input errors
    INVALID_INPUT = "INVALID_INPUT"
    EMPTY_IMAGE = "EMPTY_IMAGE"
    IMAGE_TOO_LARGE = "IMAGE_TOO_LARGE"
    UNSUPPORTED_IMAGE_TYPE = "UNSUPPORTED_IMAGE_TYPE"
    IMAGE_CORRUPTED = "IMAGE_CORRUPTED"
    UNSUPPORTED_LANGUAGE = "UNSUPPORTED_LANGUAGE"
    MISSING_FIELD = "MISSING_FIELD"

    # Upstream model errors
    SERVICE_UNAVAILABLE = "SERVICE_UNAVAILABLE"
    UPSTREAM_REJECTED = "UPSTREAM_REJECTED"

    # Processing errors
    MENU_UNREADABLE = "MENU_UNREADABLE"
    TRANSLATION_FAILED = "TRANSLATION_FAILED"
    DISH_IMAGE_FAILED = "DISH_IMAGE_FAILED"

    # Generic errors
    VALIDATION_ERROR = "VALIDATION_ERROR"
    NOT_FOUND = "NOT_FOUND"
    INTERNAL_SERVER_ERROR = "INTERNAL_SERVER_ERROR"


class MenuScanException(Exception):
    """Base exception for the menu scan backend."""

    def __init__(
        self,
        message: str,
        error_code: ErrorCode,
        details: Optional[Dict[str, Any]] = None,
        status_code: int = 500
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        self.status_code = status_code


# ---------------------------------------------------------------------------
# Input validation
# ---------------------------------------------------------------------------

class InvalidInputError(MenuScanException):
    """Raised for a bad upload or request body. Never retried."""

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.INVALID_INPUT,
        details: Optional[Dict[str, Any]] = None,
        status_code: int = 400
    ):
        super().__init__(
            message=message,
            error_code=error_code,
            details=details,
            status_code=status_code
        )


class EmptyImageError(InvalidInputError):
    """Raised when the uploaded image has no content."""

    def __init__(self):
        super().__init__(
            message="Please upload a menu image",
            error_code=ErrorCode.EMPTY_IMAGE
        )


class ImageTooLargeError(InvalidInputError):
    """Raised when uploaded image exceeds size limits."""

    def __init__(self, size_bytes: int, max_bytes: int):
        super().__init__(
            message=(
                f"Image size {size_bytes / (1024 * 1024):.1f}MB exceeds maximum "
                f"allowed size of {max_bytes / (1024 * 1024):.1f}MB"
            ),
            error_code=ErrorCode.IMAGE_TOO_LARGE,
            details={"size_bytes": size_bytes, "max_bytes": max_bytes},
            status_code=413
        )


class UnsupportedImageTypeError(InvalidInputError):
    """Raised when the declared content type is not an accepted image type."""

    def __init__(self, content_type: Optional[str], accepted: List[str]):
        super().__init__(
            message=f"Unsupported image type '{content_type or 'unknown'}'. Please upload only images.",
            error_code=ErrorCode.UNSUPPORTED_IMAGE_TYPE,
            details={"content_type": content_type, "accepted_content_types": accepted}
        )


class CorruptedImageError(InvalidInputError):
    """Raised when image is corrupted or unreadable."""

    def __init__(self, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message="Image is corrupted or unreadable",
            error_code=ErrorCode.IMAGE_CORRUPTED,
            details=details
        )


class UnsupportedLanguageError(InvalidInputError):
    """Raised when requested language is not supported."""

    def __init__(self, language: str, supported_languages: Optional[list] = None):
        details = {"requested_language": language}
        if supported_languages:
            details["supported_languages"] = supported_languages

        super().__init__(
            message=f"Language '{language}' is not supported",
            error_code=ErrorCode.UNSUPPORTED_LANGUAGE,
            details=details
        )


class MissingFieldError(InvalidInputError):
    """Raised when a required request field is absent or blank."""

    def __init__(self, message: str, field_name: str):
        super().__init__(
            message=message,
            error_code=ErrorCode.MISSING_FIELD,
            details={"field": field_name}
        )


# ---------------------------------------------------------------------------
# Upstream model calls
# ---------------------------------------------------------------------------

class UpstreamError(MenuScanException):
    """Common base for failures talking to an external model endpoint."""

    def __init__(
        self,
        message: str,
        error_code: ErrorCode,
        status_code: int,
        operation: str,
        upstream_status: Optional[int] = None,
        attempts: int = 1
    ):
        super().__init__(
            message=message,
            error_code=error_code,
            details={
                "operation": operation,
                "upstream_status": upstream_status,
                "attempts": attempts,
            },
            status_code=status_code
        )
        self.operation = operation
        self.upstream_status = upstream_status
        self.attempts = attempts


class UpstreamTransientError(UpstreamError):
    """Timeout, 5xx or rate limit. Raised only after local retries are exhausted."""

    def __init__(
        self,
        operation: str,
        reason: str,
        upstream_status: Optional[int] = None,
        attempts: int = 1,
        retry_after: Optional[float] = None
    ):
        super().__init__(
            message="The model service is temporarily unavailable, please try again later",
            error_code=ErrorCode.SERVICE_UNAVAILABLE,
            status_code=503,
            operation=operation,
            upstream_status=upstream_status,
            attempts=attempts
        )
        self.reason = reason
        self.retry_after = retry_after


class UpstreamFatalError(UpstreamError):
    """Authentication failure or a non rate-limit 4xx. Never retried."""

    def __init__(
        self,
        operation: str,
        reason: str,
        upstream_status: Optional[int] = None,
        attempts: int = 1
    ):
        super().__init__(
            message="The model service rejected the request",
            error_code=ErrorCode.UPSTREAM_REJECTED,
            status_code=502,
            operation=operation,
            upstream_status=upstream_status,
            attempts=attempts
        )
        self.reason = reason


# ---------------------------------------------------------------------------
# Processing
# ---------------------------------------------------------------------------

class ExtractionParseError(MenuScanException):
    """
    Raised when model output cannot be parsed even after the repair pass.

    ``raw_response`` is kept on the instance for diagnostics only. It is not
    part of ``details`` so it never reaches a response body.
    """

    def __init__(self, raw_response: str, reason: str = ""):
        super().__init__(
            message="Could not read menu from the image",
            error_code=ErrorCode.MENU_UNREADABLE,
            details={"raw_length": len(raw_response or "")},
            status_code=422
        )
        self.raw_response = raw_response
        self.reason = reason


class TranslationConsistencyError(MenuScanException):
    """Raised when a translated menu diverges structurally from its source."""

    def __init__(self, reason: str, details: Optional[Dict[str, Any]] = None):
        merged = {"reason": reason}
        merged.update(details or {})
        super().__init__(
            message="Menu translation failed",
            error_code=ErrorCode.TRANSLATION_FAILED,
            details=merged,
            status_code=422
        )
        self.reason = reason


class CacheGenerationFailure(MenuScanException):
    """Raised when a dish image could not be generated (possibly cached failure)."""

    def __init__(self, cache_key: str, reason: str, cached: bool = False):
        super().__init__(
            message="Failed to generate dish image",
            error_code=ErrorCode.DISH_IMAGE_FAILED,
            details={"cache_key": cache_key, "cached": cached},
            status_code=502
        )
        self.cache_key = cache_key
        self.reason = reason
        self.cached = cached
