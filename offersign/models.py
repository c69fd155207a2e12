"""
offersign - Data models for offers and sign outcomes.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional


class SignOutcome(str, Enum):
    """Terminal result of a sign attempt."""

    SIGNED = "signed"
    ALREADY_SIGNED = "already_signed"
    NOT_FOUND = "not_found"
    EXHAUSTED_RETRIES = "exhausted_retries"
    UPSTREAM_ERROR = "upstream_error"


class WriteErrorKind(str, Enum):
    """Classification of a failed sign write."""

    CONFLICT = "conflict"
    NOT_FOUND = "not_found"
    OTHER = "other"


@dataclass
class Offer:
    """
    A customer offer as held by the record store.

    Only ``is_signed`` and ``signed_at`` ever change after the store creates the
    record; ``is_signed`` goes from False to True exactly once.
    """

    slug: str
    customer_name: str
    offer_amount: float = 0.0
    document_url: str = ""
    is_signed: bool = False
    signed_at: Optional[str] = None
    customer_email: str = ""
    project_address: str = ""
    notes: str = ""
    record_id: Optional[str] = None

    @property
    def pdf_url(self) -> str:
        """Alias kept for frontends that still read ``pdfUrl``."""
        return self.document_url

    def to_dict(self) -> dict[str, Any]:
        return {
            "slug": self.slug,
            "customerName": self.customer_name,
            "customerEmail": self.customer_email,
            "offerAmount": self.offer_amount,
            "documentURL": self.document_url,
            "pdfUrl": self.document_url,
            "isSigned": self.is_signed,
            "signedAt": self.signed_at,
            "projectAddress": self.project_address,
            "notes": self.notes,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Offer":
        return cls(
            slug=data["slug"],
            customer_name=data.get("customerName", data.get("customer_name", "")),
            offer_amount=float(data.get("offerAmount", data.get("offer_amount", 0)) or 0),
            document_url=(
                data.get("documentURL")
                or data.get("document_url")
                or data.get("pdfUrl")
                or ""
            ),
            is_signed=bool(data.get("isSigned", data.get("is_signed", False))),
            signed_at=data.get("signedAt", data.get("signed_at")),
            customer_email=data.get("customerEmail", data.get("customer_email", "")) or "",
            project_address=data.get("projectAddress", data.get("project_address", "")) or "",
            notes=data.get("notes", "") or "",
            record_id=data.get("record_id"),
        )


@dataclass
class RetryPolicy:
    """
    Bounded retry configuration for the sign operation.

    Worst-case total backoff before giving up is roughly
    ``base_delay_ms * (1 + multiplier + ... + multiplier ** (max_attempts - 2))``
    plus jitter, capped per step by ``max_delay_ms``.
    """

    max_attempts: int = 3
    base_delay_ms: int = 200
    max_delay_ms: int = 1000
    multiplier: float = 2.0
    jitter_ratio: float = 0.3

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.base_delay_ms < 0 or self.max_delay_ms < 0:
            raise ValueError("delays cannot be negative")
        if self.multiplier < 1:
            raise ValueError("multiplier must be >= 1")
        if self.jitter_ratio < 0:
            raise ValueError("jitter_ratio cannot be negative")


@dataclass
class SignResult:
    """Outcome of ``SignCoordinator.sign``."""

    outcome: SignOutcome
    slug: str
    offer: Optional[Offer] = None
    attempts: int = 0
    error: Optional[str] = None
    status_code: Optional[int] = None

    @property
    def ok(self) -> bool:
        return self.outcome == SignOutcome.SIGNED

    @property
    def retryable(self) -> bool:
        """Whether a fresh call to ``sign`` later might succeed."""
        return self.outcome in (SignOutcome.EXHAUSTED_RETRIES, SignOutcome.UPSTREAM_ERROR)
