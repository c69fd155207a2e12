"""
Mapping from loosely named record-store columns to ``Offer`` fields.

Tables are maintained by hand, so the same column shows up under several
spellings. Each ``Offer`` field lists the names it accepts, first match wins.
"""

import logging
import re
from typing import Any, Optional
from urllib.parse import quote

from .models import Offer

logger = logging.getLogger("offersign.fields")

FIELD_VARIATIONS: dict[str, list[str]] = {
    "slug": ["Slug", "slug", "id", "ID", "Id"],
    "customer_name": ["Name", "name", "customerName", "Customer Name"],
    "customer_email": ["Email", "email", "customerEmail", "Customer Email"],
    "offer_amount": ["Offer Amount", "offerAmount", "Amount", "Value"],
    "document_url": ["Document URL", "documentURL", "DocumentURL", "pdfUrl", "PDF URL"],
    "is_signed": ["Signed", "signed", "isSigned", "Is Signed"],
    "signed_at": ["Signed At", "signedAt", "Sign Date", "Date Signed"],
    "project_address": [
        "Address",
        "address",
        "projectAddress",
        "Project Address",
        "Projektadresse",
    ],
    "notes": [
        "Notes",
        "notes",
        "Note",
        "note",
        "Description",
        "description",
        "Comment",
        "comment",
    ],
}

SIGNED_FIELD = "Signed"
SIGNED_AT_FIELD = "Signed At"

_TRUTHY_SIGNED = frozenset({"true", "yes", "signed"})
_GS_URL = re.compile(r"gs://([^/]+)/(.+)")


def get_field_value(fields: dict[str, Any], names: list[str], default: Any = None) -> Any:
    """Return the value of the first column in ``names`` present in ``fields``."""
    for name in names:
        if name in fields and fields[name] is not None:
            return fields[name]
    return default


def match_slug(fields: dict[str, Any], slug: str) -> bool:
    """Check whether any slug column of a record equals ``slug``."""
    return any(fields.get(name) == slug for name in FIELD_VARIATIONS["slug"])


def parse_amount(raw: Any) -> float:
    if isinstance(raw, bool):
        return 0.0
    if isinstance(raw, (int, float)):
        return float(raw)
    if isinstance(raw, str):
        try:
            return float(raw.strip())
        except ValueError:
            return 0.0
    return 0.0


def parse_signed(raw: Any) -> bool:
    if isinstance(raw, bool):
        return raw
    if isinstance(raw, str):
        return raw.strip().lower() in _TRUTHY_SIGNED
    return bool(raw)


def process_pdf_url(url: Optional[str]) -> str:
    """
    Normalize a document URL for browser download.

    ``gs://bucket/path/to/file.pdf`` becomes a Firebase Storage download URL.
    HTTP(S) URLs and anything unrecognised are returned unchanged.
    """
    if not url:
        return ""

    if url.startswith(("http://", "https://")):
        return url

    match = _GS_URL.match(url)
    if match:
        bucket, file_path = match.group(1), match.group(2)
        encoded_path = "%2F".join(quote(part, safe="") for part in file_path.split("/"))
        http_url = f"https://firebasestorage.googleapis.com/v0/b/{bucket}/o/{encoded_path}?alt=media"
        logger.debug("Converted GS URL to HTTP: %s", http_url)
        return http_url

    return url


def record_to_offer(record: dict[str, Any]) -> Offer:
    """
    Build an ``Offer`` from a raw store record (``{"id": ..., "fields": {...}}``).

    Raises:
        ValueError: If ``record`` is empty.
    """
    if not record:
        raise ValueError("Cannot transform an empty record")

    fields = record.get("fields") or {}
    record_id = record.get("id")

    signed_at = get_field_value(fields, FIELD_VARIATIONS["signed_at"])

    return Offer(
        slug=get_field_value(fields, FIELD_VARIATIONS["slug"])
        or f"record-{record_id or 'unknown'}",
        customer_name=get_field_value(fields, FIELD_VARIATIONS["customer_name"])
        or "Unnamed Customer",
        customer_email=get_field_value(fields, FIELD_VARIATIONS["customer_email"]) or "",
        offer_amount=parse_amount(get_field_value(fields, FIELD_VARIATIONS["offer_amount"])),
        document_url=process_pdf_url(get_field_value(fields, FIELD_VARIATIONS["document_url"])),
        is_signed=parse_signed(get_field_value(fields, FIELD_VARIATIONS["is_signed"])),
        signed_at=str(signed_at) if signed_at is not None else None,
        project_address=get_field_value(fields, FIELD_VARIATIONS["project_address"]) or "",
        notes=get_field_value(fields, FIELD_VARIATIONS["notes"]) or "",
        record_id=record_id,
    )
