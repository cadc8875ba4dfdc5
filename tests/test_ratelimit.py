import pytest

from simplisafe_local.errors import RateLimitError, SimpliSafeError
from simplisafe_local.ratelimit import DEFAULT_BACKOFF_SECONDS, RateLimitGate


def test_gate_starts_open(gate):
    assert not gate.is_blocked()
    assert gate.seconds_until_retry() == 0
    gate.check()


def test_failure_uses_retry_hint(gate, clock):
    gate.record_failure(30)

    assert gate.is_blocked()
    assert gate.next_attempt() == clock.now + 30
    with pytest.raises(RateLimitError) as exc:
        gate.check()
    assert exc.value.retry_after == 30
    assert str(exc.value) == "Request blocked (rate limited)"


def test_failure_without_hint_uses_fixed_backoff(gate, clock):
    gate.record_failure()
    assert gate.next_attempt() == clock.now + DEFAULT_BACKOFF_SECONDS

    gate.record_failure(-5)
    assert gate.next_attempt() == clock.now + DEFAULT_BACKOFF_SECONDS
    assert gate.failure_count == 2


def test_check_passes_once_next_attempt_is_reached(gate, clock):
    gate.record_failure(10)
    clock.advance(9.5)
    with pytest.raises(RateLimitError):
        gate.check()

    clock.advance(0.5)
    gate.check()
    # Still flagged until a request succeeds
    assert gate.is_blocked()


def test_success_clears_block(gate):
    gate.record_failure(10)
    gate.record_success()
    assert not gate.is_blocked()
    assert gate.failure_count == 0
    gate.check()


@pytest.mark.asyncio
async def test_call_records_success(gate, clock):
    gate.record_failure(5)
    clock.advance(5)

    async def fetch():
        return 'ok'

    assert await gate.call(fetch) == 'ok'
    assert not gate.is_blocked()


@pytest.mark.asyncio
async def test_call_records_rate_limit_with_hint(gate, clock):
    async def fetch():
        raise RateLimitError(retry_after=45)

    with pytest.raises(RateLimitError):
        await gate.call(fetch)
    assert gate.is_blocked()
    assert gate.next_attempt() == clock.now + 45


@pytest.mark.asyncio
async def test_call_fails_fast_while_blocked(gate):
    gate.record_failure(30)
    called = []

    async def fetch():
        called.append(True)

    with pytest.raises(RateLimitError):
        await gate.call(fetch)
    assert called == []


@pytest.mark.asyncio
async def test_generic_errors_do_not_block(gate):
    async def fetch():
        raise SimpliSafeError("boom")

    with pytest.raises(SimpliSafeError):
        await gate.call(fetch)
    assert not gate.is_blocked()


def test_to_dict(gate):
    assert gate.to_dict() == {'blocked': False, 'next_attempt': None, 'retry_in_seconds': None, 'failure_count': 0}

    gate.record_failure(30)
    data = gate.to_dict()
    assert data['blocked'] is True
    assert data['retry_in_seconds'] == 30
    assert data['next_attempt'] is not None


def test_default_clock_is_wall_time():
    gate = RateLimitGate(backoff_seconds=1)
    gate.record_failure()
    assert 0 < gate.seconds_until_retry() <= 1
