"""
Tests for the concurrency-guarded sign operation.
"""

import asyncio
from dataclasses import replace

import pytest

from offersign.coordination import SignCoordinator, classify_write_error, compute_backoff
from offersign.exceptions import (
    APIError,
    AuthenticationError,
    ConflictError,
    NotFoundError,
    OfferSignError,
    TransportError,
    ValidationError,
)
from offersign.models import Offer, RetryPolicy, SignOutcome, WriteErrorKind
from offersign.store import InMemoryRecordStore, RecordStore


def _offer(slug="offer-42", signed=False, signed_at=None):
    return Offer(
        slug=slug,
        customer_name="Test Customer",
        offer_amount=150000,
        is_signed=signed,
        signed_at=signed_at,
    )


class FakeRecordStore(RecordStore):
    """Scripted store that counts reads and writes."""

    def __init__(self, offer=None, read_error=None, write_results=()):
        self.offer = offer
        self.read_error = read_error
        self.write_results = list(write_results)
        self.reads = 0
        self.writes = 0

    async def read_offer(self, slug):
        self.reads += 1
        if self.read_error is not None:
            raise self.read_error
        return replace(self.offer)

    async def write_signed(self, slug):
        self.writes += 1
        result = self.write_results.pop(0)
        if isinstance(result, BaseException):
            raise result
        return result


class RecordingSleep:
    def __init__(self):
        self.delays = []

    async def __call__(self, seconds):
        self.delays.append(seconds)


def _conflict():
    return ConflictError("Record modified: offer already signed", status_code=409)


def _coordinator(store, sleep=None, policy=None):
    return SignCoordinator(
        store,
        policy or RetryPolicy(max_attempts=3),
        sleep=sleep or RecordingSleep(),
        rand=lambda: 0.0,
    )


class TestSignCoordinator:
    """Tests for SignCoordinator.sign."""

    @pytest.mark.asyncio
    async def test_already_signed_skips_write(self):
        store = FakeRecordStore(_offer(signed=True, signed_at="2025-06-01T00:00:00Z"))

        result = await _coordinator(store).sign("offer-42")

        assert result.outcome == SignOutcome.ALREADY_SIGNED
        assert result.offer.signed_at == "2025-06-01T00:00:00Z"
        assert store.reads == 1
        assert store.writes == 0

    @pytest.mark.asyncio
    async def test_signs_on_first_attempt(self):
        signed = _offer(signed=True, signed_at="2025-06-16T09:30:00+00:00")
        store = FakeRecordStore(_offer(), write_results=[signed])
        sleep = RecordingSleep()

        result = await _coordinator(store, sleep).sign("offer-42")

        assert result.outcome == SignOutcome.SIGNED
        assert result.ok
        assert result.offer.is_signed is True
        assert result.offer.signed_at is not None
        assert result.attempts == 1
        assert store.reads == 1
        assert store.writes == 1
        assert sleep.delays == []

    @pytest.mark.asyncio
    async def test_gives_up_after_max_attempts(self):
        store = FakeRecordStore(_offer("offer-7"), write_results=[_conflict()] * 3)
        sleep = RecordingSleep()

        result = await _coordinator(store, sleep).sign("offer-7")

        assert result.outcome == SignOutcome.EXHAUSTED_RETRIES
        assert result.retryable
        assert result.attempts == 3
        assert store.reads == 3
        assert store.writes == 3
        assert len(sleep.delays) == 2

    @pytest.mark.asyncio
    async def test_retries_conflict_then_succeeds(self):
        signed = _offer(signed=True, signed_at="2025-06-16")
        store = FakeRecordStore(_offer(), write_results=[_conflict(), signed])
        sleep = RecordingSleep()

        result = await _coordinator(store, sleep).sign("offer-42")

        assert result.outcome == SignOutcome.SIGNED
        assert result.attempts == 2
        assert store.reads == 2
        assert store.writes == 2
        assert len(sleep.delays) == 1
        assert sleep.delays[0] > 0

    @pytest.mark.asyncio
    async def test_non_conflict_write_error_is_not_retried(self):
        error = ValidationError("Invalid value for field Signed", status_code=422)
        store = FakeRecordStore(_offer(), write_results=[error])
        sleep = RecordingSleep()

        result = await _coordinator(store, sleep).sign("offer-42")

        assert result.outcome == SignOutcome.UPSTREAM_ERROR
        assert result.status_code == 422
        assert "Invalid value" in result.error
        assert store.reads == 1
        assert store.writes == 1
        assert sleep.delays == []

    @pytest.mark.asyncio
    async def test_not_found_on_read(self):
        store = FakeRecordStore(read_error=NotFoundError("Offer not found", status_code=404))

        result = await _coordinator(store).sign("offer-99")

        assert result.outcome == SignOutcome.NOT_FOUND
        assert result.status_code == 404
        assert store.writes == 0

    @pytest.mark.asyncio
    async def test_read_failure_is_upstream_error(self):
        store = FakeRecordStore(read_error=TransportError("Record store unreachable"))

        result = await _coordinator(store).sign("offer-42")

        assert result.outcome == SignOutcome.UPSTREAM_ERROR
        assert result.retryable
        assert store.reads == 1
        assert store.writes == 0

    @pytest.mark.asyncio
    async def test_read_conflict_is_not_retried(self):
        store = FakeRecordStore(read_error=ConflictError("conflict", status_code=409))

        result = await _coordinator(store).sign("offer-42")

        assert result.outcome == SignOutcome.UPSTREAM_ERROR
        assert store.reads == 1

    @pytest.mark.asyncio
    async def test_unexpected_exception_does_not_escape(self):
        store = FakeRecordStore(_offer(), write_results=[RuntimeError("boom")])

        result = await _coordinator(store).sign("offer-42")

        assert result.outcome == SignOutcome.UPSTREAM_ERROR
        assert result.error == "boom"
        assert result.status_code is None

    @pytest.mark.asyncio
    async def test_not_found_on_write_is_upstream_error(self):
        store = FakeRecordStore(
            _offer(), write_results=[NotFoundError("Could not find record", status_code=404)]
        )

        result = await _coordinator(store).sign("offer-42")

        assert result.outcome == SignOutcome.UPSTREAM_ERROR
        assert result.status_code == 404
        assert store.writes == 1

    @pytest.mark.asyncio
    async def test_reread_after_conflict_finds_signed(self):
        store = FakeRecordStore(_offer(), write_results=[_conflict()])
        sleep = RecordingSleep()

        async def sign_elsewhere(seconds):
            await sleep(seconds)
            store.offer = _offer(signed=True, signed_at="2025-06-16")

        result = await _coordinator(store, sign_elsewhere).sign("offer-42")

        assert result.outcome == SignOutcome.ALREADY_SIGNED
        assert result.attempts == 2
        assert store.reads == 2
        assert store.writes == 1

    @pytest.mark.asyncio
    async def test_single_attempt_policy_never_sleeps(self):
        store = FakeRecordStore(_offer(), write_results=[_conflict()])
        sleep = RecordingSleep()

        result = await _coordinator(store, sleep, RetryPolicy(max_attempts=1)).sign("offer-42")

        assert result.outcome == SignOutcome.EXHAUSTED_RETRIES
        assert result.attempts == 1
        assert sleep.delays == []

    @pytest.mark.asyncio
    async def test_backoff_delays_grow(self):
        store = FakeRecordStore(_offer(), write_results=[_conflict()] * 3)
        sleep = RecordingSleep()

        await _coordinator(store, sleep).sign("offer-42")

        assert sleep.delays == pytest.approx([0.2, 0.4])


class TestScenarios:
    """End-to-end scenarios for a three-attempt policy."""

    @pytest.mark.asyncio
    async def test_scenario_a_unsigned_offer_is_signed(self):
        store = FakeRecordStore(
            _offer("offer-42"),
            write_results=[_offer("offer-42", signed=True, signed_at="2025-06-16T10:00:00Z")],
        )

        result = await _coordinator(store).sign("offer-42")

        assert result.outcome == SignOutcome.SIGNED
        assert result.offer.is_signed is True
        assert result.offer.signed_at == "2025-06-16T10:00:00Z"
        assert (store.reads, store.writes) == (1, 1)

    @pytest.mark.asyncio
    async def test_scenario_b_signed_offer(self):
        store = FakeRecordStore(
            _offer("offer-42", signed=True, signed_at="2025-06-01T00:00:00Z")
        )

        result = await _coordinator(store).sign("offer-42")

        assert result.outcome == SignOutcome.ALREADY_SIGNED
        assert (store.reads, store.writes) == (1, 0)

    @pytest.mark.asyncio
    async def test_scenario_c_missing_offer(self):
        store = FakeRecordStore(read_error=NotFoundError("Offer not found", status_code=404))

        result = await _coordinator(store).sign("offer-99")

        assert result.outcome == SignOutcome.NOT_FOUND
        assert store.writes == 0

    @pytest.mark.asyncio
    async def test_scenario_d_succeeds_on_last_attempt(self):
        store = FakeRecordStore(
            _offer("offer-7"),
            write_results=[
                _conflict(),
                _conflict(),
                _offer("offer-7", signed=True, signed_at="2025-06-16"),
            ],
        )
        sleep = RecordingSleep()

        result = await _coordinator(store, sleep).sign("offer-7")

        assert result.outcome == SignOutcome.SIGNED
        assert result.attempts == 3
        assert (store.reads, store.writes) == (3, 3)
        assert len(sleep.delays) == 2

    @pytest.mark.asyncio
    async def test_scenario_e_conflict_every_time(self):
        store = FakeRecordStore(_offer("offer-7"), write_results=[_conflict()] * 3)

        result = await _coordinator(store).sign("offer-7")

        assert result.outcome == SignOutcome.EXHAUSTED_RETRIES
        assert (store.reads, store.writes) == (3, 3)


class YieldingStore(InMemoryRecordStore):
    """In-memory store that yields to the event loop after each read."""

    async def read_offer(self, slug):
        offer = await super().read_offer(slug)
        await asyncio.sleep(0)
        return offer


class TestConcurrentSigning:
    """Racing sign calls against a store with a real conditional write."""

    @pytest.mark.asyncio
    async def test_only_one_of_two_racing_signs_wins(self):
        store = YieldingStore([_offer("offer-42")])
        coordinator = SignCoordinator(store, RetryPolicy(base_delay_ms=0, max_delay_ms=0))

        first, second = await asyncio.gather(
            coordinator.sign("offer-42"), coordinator.sign("offer-42")
        )

        outcomes = sorted([first.outcome.value, second.outcome.value])
        assert outcomes == ["already_signed", "signed"]
        loser = first if first.outcome == SignOutcome.ALREADY_SIGNED else second
        assert loser.attempts == 2

    @pytest.mark.asyncio
    async def test_different_offers_sign_independently(self):
        store = YieldingStore([_offer("offer-1"), _offer("offer-2"), _offer("offer-3")])
        coordinator = SignCoordinator(store)

        results = await asyncio.gather(
            *(coordinator.sign(slug) for slug in ("offer-1", "offer-2", "offer-3"))
        )

        assert all(result.outcome == SignOutcome.SIGNED for result in results)
        assert all(result.attempts == 1 for result in results)


class TestClassifyWriteError:
    """Tests for classify_write_error."""

    def test_409_already_signed_is_conflict(self):
        error = ConflictError("This offer has already been signed", status_code=409)
        assert classify_write_error(error) == WriteErrorKind.CONFLICT

    def test_409_locked_is_conflict(self):
        error = OfferSignError("Row is locked", status_code=409)
        assert classify_write_error(error) == WriteErrorKind.CONFLICT

    def test_409_without_marker_is_other(self):
        error = ConflictError("Duplicate key", status_code=409)
        assert classify_write_error(error) == WriteErrorKind.OTHER

    def test_412_is_conflict(self):
        error = OfferSignError("Precondition failed", status_code=412)
        assert classify_write_error(error) == WriteErrorKind.CONFLICT

    def test_message_markers_are_conflicts(self):
        for message in (
            "Record modified since last read",
            "Write CONFLICT detected",
            "Concurrent modification detected",
        ):
            error = APIError(message, status_code=500)
            assert classify_write_error(error) == WriteErrorKind.CONFLICT, message

    def test_plain_exception_with_marker_is_conflict(self):
        assert classify_write_error(RuntimeError("concurrent update")) == WriteErrorKind.CONFLICT

    def test_not_found(self):
        error = NotFoundError("Could not find record for this offer", status_code=404)
        assert classify_write_error(error) == WriteErrorKind.NOT_FOUND

    def test_bare_404_status_is_not_found(self):
        error = APIError("Gone", status_code=404)
        assert classify_write_error(error) == WriteErrorKind.NOT_FOUND

    def test_validation_error_is_other(self):
        error = ValidationError("Invalid value for field Signed", status_code=422)
        assert classify_write_error(error) == WriteErrorKind.OTHER

    def test_auth_error_is_other(self):
        error = AuthenticationError("Forbidden", status_code=403)
        assert classify_write_error(error) == WriteErrorKind.OTHER

    def test_transport_error_is_other(self):
        error = TransportError("Record store unreachable: timed out")
        assert classify_write_error(error) == WriteErrorKind.OTHER

    def test_unrelated_exception_is_other(self):
        assert classify_write_error(RuntimeError("boom")) == WriteErrorKind.OTHER


class TestComputeBackoff:
    """Tests for compute_backoff."""

    def test_exponential_without_jitter(self):
        policy = RetryPolicy()
        delays = [compute_backoff(attempt, policy, lambda: 0.0) for attempt in (1, 2, 3)]
        assert delays == [200, 400, 800]

    def test_capped_at_max_delay(self):
        policy = RetryPolicy()
        assert compute_backoff(4, policy, lambda: 0.0) == 1000
        assert compute_backoff(10, policy, lambda: 0.0) == 1000

    def test_jitter_adds_up_to_thirty_percent(self):
        policy = RetryPolicy()
        assert compute_backoff(1, policy, lambda: 1.0) == pytest.approx(260)
        assert compute_backoff(1, policy, lambda: 0.5) == pytest.approx(230)

    def test_custom_multiplier(self):
        policy = RetryPolicy(multiplier=1.5)
        assert compute_backoff(2, policy, lambda: 0.0) == pytest.approx(300)

    def test_bounded_with_random_jitter(self):
        policy = RetryPolicy()
        for attempt in range(1, 8):
            delay = compute_backoff(attempt, policy)
            assert 0 <= delay <= policy.max_delay_ms * (1 + policy.jitter_ratio)
