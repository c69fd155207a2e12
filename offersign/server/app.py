"""
FastAPI application for the offersign server.
"""

import logging
import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from fastapi import Depends, FastAPI, Header, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from ..coordination import SignCoordinator
from ..exceptions import NotFoundError, OfferSignError
from ..models import SignOutcome, SignResult
from ..store import AirtableRecordStore, InMemoryRecordStore, RecordStore
from ..validation import InputValidationError, validate_slug
from .config import ServerConfig

logger = logging.getLogger("offersign.server.app")


class SignRequest(BaseModel):
    signature: Optional[str] = None


OUTCOME_STATUS = {
    SignOutcome.SIGNED: 200,
    SignOutcome.ALREADY_SIGNED: 409,
    SignOutcome.NOT_FOUND: 404,
    SignOutcome.EXHAUSTED_RETRIES: 503,
    SignOutcome.UPSTREAM_ERROR: 502,
}

OUTCOME_MESSAGES = {
    SignOutcome.ALREADY_SIGNED: "This offer has already been signed",
    SignOutcome.NOT_FOUND: "Offer not found. This link may be incorrect or the offer may have been removed.",
    SignOutcome.EXHAUSTED_RETRIES: "The offer is being signed elsewhere, please try again",
    SignOutcome.UPSTREAM_ERROR: "Failed to sign offer",
}


def build_store(config: ServerConfig) -> RecordStore:
    """Create the record store selected by ``config.record_store``."""
    if config.record_store == "memory":
        logger.warning("Using the in-memory record store with demo offers")
        return InMemoryRecordStore.with_demo_data()
    return AirtableRecordStore(
        base_id=config.airtable_base_id,
        api_key=config.airtable_api_key,
        table_name=config.airtable_table_name,
        base_url=config.airtable_base_url,
        timeout=config.airtable_timeout,
    )


def _upstream_error(e: OfferSignError) -> HTTPException:
    detail: Dict[str, Any] = {
        "message": "The offer service is temporarily unavailable",
        "outcome": SignOutcome.UPSTREAM_ERROR.value,
    }
    if e.status_code:
        detail["upstream_status"] = e.status_code
    return HTTPException(status_code=502, detail=detail)


def _sign_error(result: SignResult) -> HTTPException:
    detail: Dict[str, Any] = {
        "message": OUTCOME_MESSAGES[result.outcome],
        "outcome": result.outcome.value,
        "attempts": result.attempts,
    }
    if result.outcome == SignOutcome.ALREADY_SIGNED and result.offer:
        detail["signedAt"] = result.offer.signed_at
    if result.outcome == SignOutcome.UPSTREAM_ERROR:
        detail["error"] = result.error
        if result.status_code:
            detail["upstream_status"] = result.status_code
    return HTTPException(status_code=OUTCOME_STATUS[result.outcome], detail=detail)


def create_app(
    config: Optional[ServerConfig] = None,
    store: Optional[RecordStore] = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        config: Server configuration; read from the environment when omitted.
        store: Record store to use instead of the one ``config`` selects.
            A store passed in is not closed on shutdown.
    """
    if config is None:
        config = ServerConfig.from_env()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owned = store is None
        record_store = build_store(config) if owned else store
        app.state.config = config
        app.state.store = record_store
        app.state.coordinator = SignCoordinator(record_store, config.retry_policy)
        try:
            yield
        finally:
            if owned:
                await record_store.close()

    app = FastAPI(
        title="offersign",
        description="Offer viewing and signing API",
        version=config.version,
        debug=config.debug,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
    )

    def get_store() -> RecordStore:
        return app.state.store

    def get_coordinator() -> SignCoordinator:
        return app.state.coordinator

    def validate_api_key(x_api_key: str = Header(None)) -> Optional[str]:
        if not app.state.config.auth_enabled:
            return None
        if x_api_key is None or x_api_key not in app.state.config.api_keys:
            logger.warning("Unauthorized request: invalid API key")
            raise HTTPException(status_code=401, detail={"message": "Invalid or missing API key"})
        return x_api_key

    def checked_slug(slug: str) -> str:
        try:
            validate_slug(slug)
        except InputValidationError as e:
            raise HTTPException(status_code=400, detail={"message": e.message})
        return slug

    @app.get("/ping")
    async def ping():
        logger.info("Ping called")
        return {
            "message": "pong",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "version": config.version,
        }

    @app.get("/api/offers")
    async def list_offers(
        store: RecordStore = Depends(get_store),
        api_key: Optional[str] = Depends(validate_api_key),
    ):
        start = time.monotonic()
        try:
            offers = await store.list_offers()
        except OfferSignError as e:
            logger.error(f"Listing offers failed: {e}")
            raise _upstream_error(e)

        logger.info(
            f"Listed {len(offers)} offers in {int((time.monotonic() - start) * 1000)}ms"
        )
        return {"data": [offer.to_dict() for offer in offers], "status": 200}

    @app.get("/api/offer/{slug}")
    async def get_offer(
        slug: str = Depends(checked_slug),
        store: RecordStore = Depends(get_store),
        api_key: Optional[str] = Depends(validate_api_key),
    ):
        start = time.monotonic()
        try:
            offer = await store.read_offer(slug)
        except NotFoundError:
            logger.warning(f"Offer not found: {slug}")
            raise HTTPException(
                status_code=404,
                detail={
                    "message": OUTCOME_MESSAGES[SignOutcome.NOT_FOUND],
                    "outcome": SignOutcome.NOT_FOUND.value,
                },
            )
        except OfferSignError as e:
            logger.error(f"Fetching offer {slug} failed: {e}")
            raise _upstream_error(e)

        logger.info(
            f"Fetched offer {slug} in {int((time.monotonic() - start) * 1000)}ms"
        )
        return {"data": offer.to_dict(), "status": 200}

    @app.post("/api/offer/{slug}/sign")
    async def sign_offer(
        body: Optional[SignRequest] = None,
        slug: str = Depends(checked_slug),
        coordinator: SignCoordinator = Depends(get_coordinator),
        api_key: Optional[str] = Depends(validate_api_key),
    ):
        start = time.monotonic()
        logger.info(
            f"Signing offer {slug} (signature provided: {bool(body and body.signature)})"
        )

        result = await coordinator.sign(slug)

        logger.info(
            f"Completed sign for offer {slug}: {result.outcome.value} after "
            f"{result.attempts} attempt(s) in {int((time.monotonic() - start) * 1000)}ms"
        )
        if result.outcome != SignOutcome.SIGNED:
            raise _sign_error(result)

        return {
            "data": result.offer.to_dict(),
            "status": 200,
            "attempts": result.attempts,
        }

    return app


class OfferSignServer:
    """High-level server class for running offersign."""

    def __init__(
        self,
        host: str = "0.0.0.0",
        port: int = 8000,
        record_store: str = "airtable",
        config: Optional[ServerConfig] = None,
        **kwargs,
    ):
        self.config = config or ServerConfig(
            host=host,
            port=port,
            record_store=record_store,
            **kwargs,
        )
        self.config.check_record_store()
        self.app = create_app(self.config)

    def run(self):
        """Run the server (blocking)."""
        import uvicorn

        uvicorn.run(
            self.app,
            host=self.config.host,
            port=self.config.port,
            log_level=self.config.log_level,
        )

    async def run_async(self):
        """Run the server asynchronously."""
        import uvicorn

        config = uvicorn.Config(
            self.app,
            host=self.config.host,
            port=self.config.port,
            log_level=self.config.log_level,
        )
        server = uvicorn.Server(config)
        await server.serve()
