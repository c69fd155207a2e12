"""
offersign - View and sign customer offers held in a tabular record store.

Signing is guarded against concurrent requests for the same offer by a
bounded retry loop; see ``offersign.coordination``.
"""

__version__ = "1.0.0"

from .client import AsyncOfferSignClient, OfferSignClient
from .coordination import SignCoordinator, classify_write_error, compute_backoff
from .exceptions import (
    AlreadySignedError,
    APIError,
    AuthenticationError,
    ConfigurationError,
    ConflictError,
    NotFoundError,
    OfferSignError,
    TransportError,
    ValidationError,
)
from .fields import process_pdf_url, record_to_offer
from .models import Offer, RetryPolicy, SignOutcome, SignResult, WriteErrorKind
from .store import AirtableRecordStore, InMemoryRecordStore, RecordStore
from .validation import InputValidationError, validate_slug


def get_server():
    """Lazy import for server components (requires server extras)."""
    try:
        from .server import OfferSignServer, ServerConfig, create_app

        return OfferSignServer, ServerConfig, create_app
    except ImportError:
        raise ImportError(
            "Server components require the 'server' extras. "
            "Install with: pip install offersign[server]"
        )


__all__ = [
    "OfferSignClient",
    "AsyncOfferSignClient",
    "SignCoordinator",
    "classify_write_error",
    "compute_backoff",
    "RecordStore",
    "AirtableRecordStore",
    "InMemoryRecordStore",
    "Offer",
    "RetryPolicy",
    "SignOutcome",
    "SignResult",
    "WriteErrorKind",
    "record_to_offer",
    "process_pdf_url",
    "OfferSignError",
    "NotFoundError",
    "ConflictError",
    "AlreadySignedError",
    "ValidationError",
    "AuthenticationError",
    "APIError",
    "TransportError",
    "ConfigurationError",
    "InputValidationError",
    "validate_slug",
    "get_server",
]
