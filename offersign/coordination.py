"""
offersign - Concurrency-guarded sign operation.

Two browser tabs can sign the same offer at once. The coordinator does a
read-then-write against the record store and treats a conflicting write as
recoverable: it backs off, re-reads, and either finds the offer already signed
or tries again, up to a bounded number of attempts.

The coordinator holds no lock and keeps no state between calls. "At most one
signer wins" is enforced by the store rejecting the losing write with a
distinguishable conflict.
"""

import asyncio
import logging
import random
from typing import Awaitable, Callable, Optional

from .exceptions import NotFoundError
from .models import RetryPolicy, SignOutcome, SignResult, WriteErrorKind
from .store import RecordStore

logger = logging.getLogger("offersign.coordination")

CONFLICT_MARKERS = ("record modified", "conflict", "concurrent")
CONFLICT_409_MARKERS = ("already", "modified", "locked")


def _error_status(error: BaseException) -> Optional[int]:
    return getattr(error, "status_code", None)


def _error_message(error: BaseException) -> str:
    return getattr(error, "message", None) or str(error)


def classify_write_error(error: BaseException) -> WriteErrorKind:
    """
    Classify a failed sign write.

    A write counts as a conflict (and is worth retrying) when the store
    answered 409 with an already-modified/locked message, answered 412, or
    the message mentions a modified record, a conflict or a concurrent write.
    """
    status = _error_status(error)
    text = _error_message(error).lower()

    if status == 409 and any(marker in text for marker in CONFLICT_409_MARKERS):
        return WriteErrorKind.CONFLICT
    if status == 412:
        return WriteErrorKind.CONFLICT
    if any(marker in text for marker in CONFLICT_MARKERS):
        return WriteErrorKind.CONFLICT

    if isinstance(error, NotFoundError) or status == 404:
        return WriteErrorKind.NOT_FOUND
    return WriteErrorKind.OTHER


def compute_backoff(
    attempt: int,
    policy: RetryPolicy,
    rand: Callable[[], float] = random.random,
) -> float:
    """Delay in milliseconds to wait after failed attempt number ``attempt``."""
    base = min(
        policy.max_delay_ms,
        policy.base_delay_ms * policy.multiplier ** (attempt - 1),
    )
    return base + rand() * policy.jitter_ratio * base


class SignCoordinator:
    """
    Signs offers with bounded retries.

    Example:
        ```python
        coordinator = SignCoordinator(store, RetryPolicy(max_attempts=3))
        result = await coordinator.sign("offer-42")
        if result.outcome == SignOutcome.SIGNED:
            print(result.offer.signed_at)
        ```
    """

    def __init__(
        self,
        store: RecordStore,
        policy: Optional[RetryPolicy] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        rand: Callable[[], float] = random.random,
    ):
        self.store = store
        self.policy = policy or RetryPolicy()
        self._sleep = sleep
        self._rand = rand

    async def sign(self, slug: str) -> SignResult:
        """
        Sign the offer identified by ``slug``.

        Returns:
            A SignResult; errors are reported through its outcome, never raised.
        """
        max_attempts = self.policy.max_attempts
        attempt = 1

        while attempt <= max_attempts:
            if attempt > 1:
                logger.info(f"Retry attempt {attempt}/{max_attempts} for signing offer {slug}")

            try:
                offer = await self.store.read_offer(slug)
            except NotFoundError as e:
                logger.warning(f"Cannot sign offer {slug}: not found")
                return SignResult(
                    SignOutcome.NOT_FOUND,
                    slug,
                    attempts=attempt,
                    error=_error_message(e),
                    status_code=e.status_code or 404,
                )
            except Exception as e:
                logger.warning(f"Cannot sign offer {slug}: read failed: {e}")
                return SignResult(
                    SignOutcome.UPSTREAM_ERROR,
                    slug,
                    attempts=attempt,
                    error=_error_message(e),
                    status_code=_error_status(e),
                )

            if offer.is_signed:
                logger.info(f"Offer {slug} already signed at {offer.signed_at}")
                return SignResult(
                    SignOutcome.ALREADY_SIGNED, slug, offer=offer, attempts=attempt
                )

            try:
                signed = await self.store.write_signed(slug)
            except Exception as e:
                kind = classify_write_error(e)
                if kind != WriteErrorKind.CONFLICT:
                    logger.error(f"Signing offer {slug} failed ({kind.value}): {e}")
                    return SignResult(
                        SignOutcome.UPSTREAM_ERROR,
                        slug,
                        attempts=attempt,
                        error=_error_message(e),
                        status_code=_error_status(e),
                    )

                logger.info(
                    f"Concurrency conflict for offer {slug} on attempt {attempt}: {e}"
                )
                if attempt == max_attempts:
                    break

                delay_ms = compute_backoff(attempt, self.policy, self._rand)
                logger.info(f"Waiting {delay_ms:.0f}ms before retrying offer {slug}")
                await self._sleep(delay_ms / 1000)
                attempt += 1
                continue

            if attempt > 1:
                logger.info(f"Signed offer {slug} after {attempt} attempts")
            return SignResult(SignOutcome.SIGNED, slug, offer=signed, attempts=attempt)

        logger.error(
            f"Failed to sign offer {slug} after {max_attempts} attempts "
            "due to concurrent modifications"
        )
        return SignResult(
            SignOutcome.EXHAUSTED_RETRIES,
            slug,
            attempts=max_attempts,
            error=f"Failed to sign offer after {max_attempts} attempts due to concurrent modifications",
            status_code=409,
        )
