#!/usr/bin/env python3
"""
offersign - Basic Usage Example

Shows the sign coordinator working directly against a record store, then the
HTTP client talking to a running server.

Prerequisites:
    pip install offersign[server]
    offersign-server --record-store memory

Usage:
    export OFFERSIGN_SERVER=http://localhost:8000
    python basic_usage.py
"""

import asyncio
import os

from offersign import (
    AlreadySignedError,
    InMemoryRecordStore,
    OfferSignClient,
    OfferSignError,
    RetryPolicy,
    SignCoordinator,
    SignOutcome,
)


async def sign_locally():
    print("1. Signing against an in-memory store...")
    store = InMemoryRecordStore.with_demo_data()
    coordinator = SignCoordinator(store, RetryPolicy(max_attempts=3))

    # Two concurrent requests for the same offer: exactly one signs it.
    first, second = await asyncio.gather(
        coordinator.sign("test-offer-123"),
        coordinator.sign("test-offer-123"),
    )
    for result in (first, second):
        print(f"   {result.slug}: {result.outcome.value} after {result.attempts} attempt(s)")

    result = await coordinator.sign("no-such-offer")
    assert result.outcome == SignOutcome.NOT_FOUND
    print(f"   no-such-offer: {result.outcome.value}")


def sign_over_http():
    base_url = os.getenv("OFFERSIGN_SERVER", "http://localhost:8000")
    api_key = os.getenv("OFFERSIGN_API_KEY")

    print(f"\n2. Signing through the server at {base_url}...")
    with OfferSignClient(base_url=base_url, api_key=api_key) as client:
        offer = client.get_offer("offer-789")
        print(f"   {offer.slug}: {offer.customer_name}, {offer.offer_amount:,.2f}")

        try:
            offer = client.sign_offer(offer.slug, signature=offer.customer_name)
            print(f"   Signed at {offer.signed_at}")
        except AlreadySignedError as e:
            print(f"   Already signed at {e.signed_at}")
        except OfferSignError as e:
            print(f"   Could not sign right now: {e}")


def main():
    asyncio.run(sign_locally())
    sign_over_http()


if __name__ == "__main__":
    main()
