"""
offersign - HTTP client for the offersign server.

Provides both synchronous and asynchronous clients.
"""

from typing import Any, Optional

import httpx

from .exceptions import (
    AlreadySignedError,
    AuthenticationError,
    ConflictError,
    NotFoundError,
    OfferSignError,
    ValidationError,
)
from .models import Offer, SignOutcome
from .validation import validate_slug


def _handle_response(response: httpx.Response) -> dict:
    """Handle HTTP response and raise appropriate exceptions."""
    if response.status_code < 400:
        return response.json() if response.content else {}

    try:
        data = response.json() if response.content else {}
    except ValueError:
        data = {"detail": response.text}
    detail = data.get("detail") if isinstance(data, dict) else None
    info = detail if isinstance(detail, dict) else {}
    message = info.get("message") or (detail if isinstance(detail, str) else None)

    if response.status_code == 404:
        raise NotFoundError(message or "Offer not found", status_code=404, response=data)
    elif response.status_code == 409:
        if info.get("outcome") == SignOutcome.ALREADY_SIGNED.value:
            raise AlreadySignedError(
                message or "This offer has already been signed",
                signed_at=info.get("signedAt"),
                status_code=409,
                response=data,
            )
        raise ConflictError(message or "Conflict", status_code=409, response=data)
    elif response.status_code in (400, 422):
        raise ValidationError(
            message or "Validation error",
            errors=detail if isinstance(detail, list) else [],
            status_code=response.status_code,
            response=data,
        )
    elif response.status_code == 401:
        raise AuthenticationError(
            message or "Invalid or missing API key", status_code=401, response=data
        )
    raise OfferSignError(
        f"Request failed with status {response.status_code}"
        + (f": {message}" if message else ""),
        status_code=response.status_code,
        response=data,
    )


def _headers(api_key: Optional[str]) -> dict[str, str]:
    headers = {"Content-Type": "application/json"}
    if api_key:
        headers["X-API-Key"] = api_key
    return headers


def _sign_payload(signature: Optional[str]) -> dict[str, Any]:
    return {"signature": signature} if signature else {}


class OfferSignClient:
    """
    Synchronous client for the offersign server.

    Example:
        ```python
        client = OfferSignClient(base_url="http://localhost:8000")

        offer = client.get_offer("test-offer-123")
        if not offer.is_signed:
            offer = client.sign_offer(offer.slug)
        ```
    """

    def __init__(
        self,
        base_url: str,
        api_key: Optional[str] = None,
        timeout: float = 30.0,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self._client = httpx.Client(
            base_url=self.base_url,
            headers=_headers(api_key),
            timeout=timeout,
        )

    def ping(self) -> dict:
        """Check that the server is up."""
        return _handle_response(self._client.get("/ping"))

    def get_offer(self, slug: str) -> Offer:
        """
        Retrieve an offer by slug.

        Raises:
            NotFoundError: If no offer has this slug.
        """
        validate_slug(slug)
        data = _handle_response(self._client.get(f"/api/offer/{slug}"))
        return Offer.from_dict(data["data"])

    def sign_offer(self, slug: str, signature: Optional[str] = None) -> Offer:
        """
        Sign an offer.

        Raises:
            AlreadySignedError: If the offer was signed before this call.
            NotFoundError: If no offer has this slug.
            OfferSignError: If signing failed and may be retried later.
        """
        validate_slug(slug)
        response = self._client.post(
            f"/api/offer/{slug}/sign", json=_sign_payload(signature)
        )
        data = _handle_response(response)
        return Offer.from_dict(data["data"])

    def list_offers(self) -> list[Offer]:
        data = _handle_response(self._client.get("/api/offers"))
        return [Offer.from_dict(item) for item in data.get("data", [])]

    def close(self) -> None:
        """Close the HTTP client connection."""
        self._client.close()

    def __enter__(self) -> "OfferSignClient":
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()


class AsyncOfferSignClient:
    """
    Asynchronous client for the offersign server.

    Example:
        ```python
        async with AsyncOfferSignClient(base_url="http://localhost:8000") as client:
            offer = await client.sign_offer("test-offer-123")
        ```
    """

    def __init__(
        self,
        base_url: str,
        api_key: Optional[str] = None,
        timeout: float = 30.0,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            headers=_headers(api_key),
            timeout=timeout,
        )

    async def ping(self) -> dict:
        return _handle_response(await self._client.get("/ping"))

    async def get_offer(self, slug: str) -> Offer:
        validate_slug(slug)
        data = _handle_response(await self._client.get(f"/api/offer/{slug}"))
        return Offer.from_dict(data["data"])

    async def sign_offer(self, slug: str, signature: Optional[str] = None) -> Offer:
        validate_slug(slug)
        response = await self._client.post(
            f"/api/offer/{slug}/sign", json=_sign_payload(signature)
        )
        data = _handle_response(response)
        return Offer.from_dict(data["data"])

    async def list_offers(self) -> list[Offer]:
        data = _handle_response(await self._client.get("/api/offers"))
        return [Offer.from_dict(item) for item in data.get("data", [])]

    async def close(self) -> None:
        """Close the HTTP client connection."""
        await self._client.aclose()

    async def __aenter__(self) -> "AsyncOfferSignClient":
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()
