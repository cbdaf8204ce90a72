"""
PageFeed Input Validators
=========================

Validation utilities for source URLs, output filenames and CSS selectors
used by feed definitions.
"""

from urllib.parse import urlparse

import soupsieve

from .exceptions import ValidationError, ErrorCode


class URLValidator:
    """Source URL validation utilities."""

    # Allowed schemes for source pages
    ALLOWED_SCHEMES = {"http", "https", "file"}

    @classmethod
    def validate_source_url(cls, url: str) -> str:
        """Validate a source page URL.

        The URL is returned stripped but otherwise untouched, it is used
        verbatim as the cache key.

        Args:
            url: URL to validate

        Returns:
            Stripped URL

        Raises:
            ValidationError: If URL is invalid
        """
        if not url or not isinstance(url, str):
            raise ValidationError(
                "URL is required and must be a string",
                error_code=ErrorCode.VALIDATION_REQUIRED_FIELD,
                field_name="url",
            )

        url = url.strip()

        try:
            parsed = urlparse(url)
        except ValueError as e:
            raise ValidationError(
                f"Invalid URL format: {str(e)}",
                error_code=ErrorCode.VALIDATION_INVALID_FORMAT,
                field_name="url",
            )

        scheme = parsed.scheme.lower()
        if scheme not in cls.ALLOWED_SCHEMES:
            raise ValidationError(
                "URL scheme must be http, https or file",
                error_code=ErrorCode.VALIDATION_INVALID_FORMAT,
                field_name="url",
            )

        if scheme == "file":
            if not parsed.path:
                raise ValidationError(
                    "file URL must include a path",
                    error_code=ErrorCode.VALIDATION_INVALID_FORMAT,
                    field_name="url",
                )
        elif not parsed.netloc:
            raise ValidationError(
                "URL must include a hostname",
                error_code=ErrorCode.VALIDATION_INVALID_FORMAT,
                field_name="url",
            )

        return url

    @staticmethod
    def is_file_url(url: str) -> bool:
        return urlparse(url).scheme.lower() == "file"


class OutputValidator:
    """Output filename validation."""

    FORBIDDEN_NAMES = {"", ".", ".."}

    @classmethod
    def validate_filename(cls, filename: str) -> str:
        """Validate an output filename.

        Raises:
            ValidationError: If the name is empty or contains path separators
        """
        if not isinstance(filename, str):
            raise ValidationError(
                "Filename must be a string",
                error_code=ErrorCode.VALIDATION_REQUIRED_FIELD,
                field_name="filename",
            )

        filename = filename.strip()

        if filename in cls.FORBIDDEN_NAMES:
            raise ValidationError(
                "Filename cannot be empty",
                error_code=ErrorCode.VALIDATION_REQUIRED_FIELD,
                field_name="filename",
            )

        if "/" in filename or "\\" in filename or "\x00" in filename:
            raise ValidationError(
                "Filename must not contain path separators",
                error_code=ErrorCode.VALIDATION_INVALID_FORMAT,
                field_name="filename",
            )

        return filename


class SelectorValidator:
    """CSS selector validation."""

    @staticmethod
    def validate_selector(selector: str, field_name: str = "selector") -> str:
        """Check that a selector is non-empty and compiles.

        Raises:
            ValidationError: If the selector is empty or not valid CSS
        """
        if not selector or not isinstance(selector, str) or not selector.strip():
            raise ValidationError(
                "Selector cannot be empty",
                error_code=ErrorCode.VALIDATION_REQUIRED_FIELD,
                field_name=field_name,
            )

        selector = selector.strip()

        try:
            soupsieve.compile(selector)
        except soupsieve.SelectorSyntaxError as e:
            raise ValidationError(
                f"Invalid CSS selector {selector!r}: {e}",
                error_code=ErrorCode.VALIDATION_INVALID_FORMAT,
                field_name=field_name,
            )

        return selector
