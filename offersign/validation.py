"""
offersign - Input validation helpers.

Provides validation functions for parameter checking before calls reach the
record store or the HTTP service.
"""

import re
from typing import Any, Optional

from .exceptions import ValidationError as SDKValidationError


class InputValidationError(SDKValidationError):
    """Raised when input validation fails before making a request."""

    def __init__(self, message: str, field: Optional[str] = None, value: Any = None):
        super().__init__(message, status_code=None, response=None)
        self.field = field
        self.value = value


ValidationError = InputValidationError

SLUG_MAX_LENGTH = 200

# Slugs end up inside a filterByFormula string literal, so quotes and braces
# must never get through.
_SLUG_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._~-]*$")


def validate_required(value: Any, field_name: str) -> None:
    """Validate that a required field is not None or empty."""
    if value is None:
        raise ValidationError(f"{field_name} is required", field=field_name)
    if isinstance(value, str) and not value.strip():
        raise ValidationError(f"{field_name} cannot be empty", field=field_name, value=value)


def validate_string_length(
    value: str,
    field_name: str,
    min_length: Optional[int] = None,
    max_length: Optional[int] = None,
) -> None:
    """Validate string length constraints."""
    if value is None:
        return

    if min_length is not None and len(value) < min_length:
        raise ValidationError(
            f"{field_name} must be at least {min_length} characters",
            field=field_name,
            value=value,
        )

    if max_length is not None and len(value) > max_length:
        raise ValidationError(
            f"{field_name} must be at most {max_length} characters",
            field=field_name,
            value=value,
        )


def validate_url(value: str, field_name: str) -> None:
    """Validate URL format."""
    if value is None:
        return

    url_pattern = re.compile(
        r"^https?://"
        r"(?:(?:[A-Z0-9](?:[A-Z0-9-]{0,61}[A-Z0-9])?\.)+[A-Z]{2,6}\.?|"
        r"localhost|"
        r"\d{1,3}\.\d{1,3}\.\d{1,3}\.\d{1,3})"
        r"(?::\d+)?"
        r"(?:/?|[/?]\S+)$",
        re.IGNORECASE,
    )

    if not url_pattern.match(value):
        raise ValidationError(
            f"{field_name} must be a valid URL",
            field=field_name,
            value=value,
        )


def validate_slug(slug: str, field_name: str = "slug") -> None:
    """Validate an offer slug."""
    validate_required(slug, field_name)
    validate_string_length(slug, field_name, max_length=SLUG_MAX_LENGTH)

    if not _SLUG_PATTERN.match(slug):
        raise ValidationError(
            f"{field_name} may only contain letters, digits, '.', '_', '~' and '-'",
            field=field_name,
            value=slug,
        )
