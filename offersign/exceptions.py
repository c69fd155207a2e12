"""
offersign - Custom exceptions for error handling.
"""

from typing import Any, Optional


class OfferSignError(Exception):
    """Base exception for all offersign errors."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        response: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.response = response


class NotFoundError(OfferSignError):
    """Raised when a requested offer is not found."""

    pass


class ConflictError(OfferSignError):
    """Raised when a write is rejected because the record changed underneath it."""

    pass


class AlreadySignedError(ConflictError):
    """Raised by the HTTP client when the offer has already been signed."""

    def __init__(self, message: str, signed_at: Optional[str] = None, **kwargs: Any) -> None:
        super().__init__(message, **kwargs)
        self.signed_at = signed_at


class ValidationError(OfferSignError):
    """Raised when request validation fails."""

    def __init__(self, message: str, errors: Optional[list[Any]] = None, **kwargs: Any) -> None:
        super().__init__(message, **kwargs)
        self.errors = errors or []


class AuthenticationError(OfferSignError):
    """Raised when authentication fails or the API key is invalid."""

    pass


class APIError(OfferSignError):
    """Raised when an API request fails with an unexpected error."""

    pass


class TransportError(OfferSignError):
    """Raised when the record store could not be reached at all."""

    pass


class ConfigurationError(OfferSignError):
    """Raised when required configuration is missing."""

    pass
