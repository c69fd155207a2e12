"""
offersign - Record store collaborators.

The sign coordinator only talks to a ``RecordStore``. Two implementations ship:

    RecordStore (base)
      ├── AirtableRecordStore: the production table, over the Airtable REST API
      └── InMemoryRecordStore: seeded demo offers for local runs and tests
"""

import asyncio
import logging
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any, Iterable, Optional
from urllib.parse import quote

import httpx

from .exceptions import (
    APIError,
    AuthenticationError,
    ConfigurationError,
    ConflictError,
    NotFoundError,
    OfferSignError,
    TransportError,
    ValidationError,
)
from .fields import (
    FIELD_VARIATIONS,
    SIGNED_AT_FIELD,
    SIGNED_FIELD,
    match_slug,
    record_to_offer,
)
from .models import Offer

logger = logging.getLogger("offersign.store")

AIRTABLE_API_URL = "https://api.airtable.com/v0"
DEFAULT_TABLE_NAME = "Offers"

ALREADY_SIGNED_MESSAGE = "Record modified: offer already signed"


class RecordStore:
    """Base class for offer record stores.

    Subclasses implement the three operations below. ``write_signed`` must
    refuse to sign a record that is already signed by raising
    ``ConflictError``; the sign coordinator relies on that signal.
    """

    async def read_offer(self, slug: str) -> Offer:
        """Fetch the current state of an offer. Raises ``NotFoundError``."""
        raise NotImplementedError

    async def write_signed(self, slug: str) -> Offer:
        """Mark an offer signed and stamp its signed-at time."""
        raise NotImplementedError

    async def list_offers(self) -> list[Offer]:
        raise NotImplementedError

    async def close(self) -> None:
        pass

    async def __aenter__(self) -> "RecordStore":
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()


# ---------------------------------------------------------------------------
# In-memory store
# ---------------------------------------------------------------------------

DEMO_PDF_URL = "https://www.w3.org/WAI/ER/tests/xhtml/testfiles/resources/pdf/dummy.pdf"

DEMO_OFFERS = (
    Offer(
        slug="test-offer-123",
        customer_name="John Doe",
        offer_amount=150000,
        document_url=DEMO_PDF_URL,
    ),
    Offer(
        slug="signed-offer-456",
        customer_name="Jane Smith",
        offer_amount=275000,
        document_url=DEMO_PDF_URL,
        is_signed=True,
        signed_at="2024-06-14T10:30:00Z",
    ),
    Offer(
        slug="offer-789",
        customer_name="Alice Johnson",
        offer_amount=320000,
        document_url=DEMO_PDF_URL,
    ),
)


class InMemoryRecordStore(RecordStore):
    """Dictionary-backed store with a true conditional write."""

    def __init__(self, offers: Optional[Iterable[Offer]] = None):
        self._offers: dict[str, Offer] = {offer.slug: replace(offer) for offer in offers or ()}
        self._lock = asyncio.Lock()

    @classmethod
    def with_demo_data(cls) -> "InMemoryRecordStore":
        return cls(DEMO_OFFERS)

    def _get(self, slug: str) -> Offer:
        offer = self._offers.get(slug)
        if offer is None:
            raise NotFoundError("Offer not found", status_code=404)
        return offer

    async def read_offer(self, slug: str) -> Offer:
        return replace(self._get(slug))

    async def write_signed(self, slug: str) -> Offer:
        async with self._lock:
            offer = self._get(slug)
            if offer.is_signed:
                raise ConflictError(ALREADY_SIGNED_MESSAGE, status_code=409)
            offer.is_signed = True
            offer.signed_at = datetime.now(timezone.utc).isoformat()
            logger.info(f"Signed offer {slug} at {offer.signed_at}")
            return replace(offer)

    async def list_offers(self) -> list[Offer]:
        return [replace(offer) for offer in self._offers.values()]


# ---------------------------------------------------------------------------
# Airtable store
# ---------------------------------------------------------------------------


def _error_message(data: Any, default: str) -> str:
    """Pull a readable message out of an Airtable error body."""
    if isinstance(data, dict):
        error = data.get("error")
        if isinstance(error, dict):
            return error.get("message") or error.get("type") or default
        if isinstance(error, str):
            return error
        if data.get("message"):
            return str(data["message"])
    return default


def _formula_literal(value: str) -> str:
    """Quote ``value`` as an Airtable formula string literal."""
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


class AirtableRecordStore(RecordStore):
    """
    Offers table in Airtable.

    Example:
        ```python
        async with AirtableRecordStore(base_id="appXXXX", api_key="pat...") as store:
            offer = await store.read_offer("offer-42")
        ```
    """

    def __init__(
        self,
        base_id: Optional[str],
        api_key: Optional[str],
        table_name: str = DEFAULT_TABLE_NAME,
        base_url: str = AIRTABLE_API_URL,
        timeout: float = 30.0,
    ):
        if not base_id:
            raise ConfigurationError(
                "Airtable base id is missing. Set it with AIRTABLE_BASE_ID=<base id>"
            )
        if not api_key:
            raise ConfigurationError(
                "Airtable API key is missing. Set it with AIRTABLE_API_KEY=<token>"
            )

        self.base_id = base_id
        self.table_name = table_name
        self._table_path = f"/{quote(table_name, safe='')}"
        self._client = httpx.AsyncClient(
            base_url=f"{base_url.rstrip('/')}/{base_id}",
            headers={
                "Authorization": f"Bearer {api_key}",
                "Content-Type": "application/json",
            },
            timeout=timeout,
        )

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        try:
            return await self._client.request(method, path, **kwargs)
        except httpx.TransportError as e:
            logger.warning(f"Airtable {method} {path} failed: {type(e).__name__}")
            raise TransportError(f"Record store unreachable: {e}") from e

    def _handle_response(self, response: httpx.Response) -> dict:
        """Handle HTTP response and raise appropriate exceptions."""
        if response.status_code < 400:
            return response.json() if response.content else {}

        try:
            data = response.json() if response.content else {}
        except ValueError:
            data = {"message": response.text}

        status = response.status_code
        logger.error(f"Airtable API error {status}: {_error_message(data, response.text)}")

        if status == 404:
            raise NotFoundError(
                _error_message(data, "Offer not found"), status_code=404, response=data
            )
        elif status in (409, 412):
            raise ConflictError(
                _error_message(data, "Record modified by another request"),
                status_code=status,
                response=data,
            )
        elif status in (400, 422):
            raise ValidationError(
                _error_message(data, "Invalid request"),
                errors=[data.get("error")] if isinstance(data, dict) and data.get("error") else [],
                status_code=status,
                response=data,
            )
        elif status in (401, 403):
            raise AuthenticationError(
                _error_message(data, "Record store rejected the credentials"),
                status_code=status,
                response=data,
            )
        raise APIError(
            f"Record store request failed with status {status}: "
            f"{_error_message(data, response.text)}",
            status_code=status,
            response=data,
        )

    async def _query(self, formula: str) -> list[dict[str, Any]]:
        response = await self._request(
            "GET", self._table_path, params={"filterByFormula": formula}
        )
        return self._handle_response(response).get("records") or []

    async def _list_records(self) -> list[dict[str, Any]]:
        """Fetch every record, following Airtable's ``offset`` pagination."""
        records: list[dict[str, Any]] = []
        params: dict[str, Any] = {}
        while True:
            response = await self._request("GET", self._table_path, params=params)
            data = self._handle_response(response)
            records.extend(data.get("records") or [])
            offset = data.get("offset")
            if not offset:
                return records
            params = {"offset": offset}

    async def _scan_for_record(self, slug: str) -> Optional[dict[str, Any]]:
        logger.debug(f"Scanning all records for slug {slug}")
        for record in await self._list_records():
            if match_slug(record.get("fields") or {}, slug):
                return record
        return None

    async def read_offer(self, slug: str) -> Offer:
        formula = f"{{Slug}} = {_formula_literal(slug)}"
        logger.debug(f"Fetching offer with slug: {slug}")
        try:
            records = await self._query(formula)
        except ValidationError as e:
            if e.status_code != 422:
                raise
            logger.warning("Airtable rejected filterByFormula (422), scanning the table")
            record = await self._scan_for_record(slug)
            records = [record] if record else []

        if not records:
            raise NotFoundError(
                "Offer not found. This link may be incorrect or the offer may have been removed.",
                status_code=404,
            )
        return record_to_offer(records[0])

    async def _find_record(self, slug: str) -> dict[str, Any]:
        """Locate the raw record for a slug under any slug column spelling."""
        for slug_field in FIELD_VARIATIONS["slug"]:
            try:
                records = await self._query(f"{{{slug_field}}} = {_formula_literal(slug)}")
            except TransportError:
                raise
            except OfferSignError as e:
                logger.warning(f"Filter query failed for field {slug_field!r}: {e.status_code}")
                continue
            if records:
                logger.info(f"Found record {records[0].get('id')} for slug {slug} via {slug_field!r}")
                return records[0]

        record = await self._scan_for_record(slug)
        if record is None:
            logger.warning(f"No record found with slug {slug} in any field variation")
            raise NotFoundError("Could not find record for this offer", status_code=404)
        return record

    async def write_signed(self, slug: str) -> Offer:
        record = await self._find_record(slug)
        if record_to_offer(record).is_signed:
            raise ConflictError(ALREADY_SIGNED_MESSAGE, status_code=409)

        path = f"{self._table_path}/{record['id']}"
        # Airtable Date fields only accept YYYY-MM-DD.
        signed_on = datetime.now(timezone.utc).date().isoformat()
        payload = {"fields": {SIGNED_FIELD: True, SIGNED_AT_FIELD: signed_on}}

        logger.info(f"Updating offer {slug}, record {record['id']}")
        response = await self._request("PATCH", path, json=payload)

        if response.status_code == 422 and (
            SIGNED_AT_FIELD in response.text or "UNKNOWN_FIELD_NAME" in response.text
        ):
            logger.info(f"Table has no usable {SIGNED_AT_FIELD!r} column, retrying with {SIGNED_FIELD!r} only")
            response = await self._request("PATCH", path, json={"fields": {SIGNED_FIELD: True}})

        data = self._handle_response(response)
        logger.info(f"Signed offer {slug} in Airtable")
        return record_to_offer(data)

    async def list_offers(self) -> list[Offer]:
        return [record_to_offer(record) for record in await self._list_records()]

    async def close(self) -> None:
        """Close the HTTP client connection."""
        await self._client.aclose()
