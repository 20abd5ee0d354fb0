"""
In-process reminder ledger and resend throttle.
"""

import pytest

from helpdesk.core.state import InMemoryReminderLedger, InMemoryResendThrottle

pytestmark = pytest.mark.asyncio


class FakeClock:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


async def test_ledger_marks_are_idempotent():
    ledger = InMemoryReminderLedger()
    assert not await ledger.has(1)
    await ledger.mark(1)
    await ledger.mark(1)
    assert await ledger.has(1)
    assert not await ledger.has(2)
    assert len(ledger) == 1


async def test_throttle_cooldown():
    clock = FakeClock()
    throttle = InMemoryResendThrottle(cooldown_seconds=60, max_per_hour=5, clock=clock)

    assert await throttle.check("a@example.com") is None
    await throttle.record("a@example.com")

    clock.advance(20)
    assert await throttle.check("a@example.com") == 40
    # Keys are independent
    assert await throttle.check("b@example.com") is None

    clock.advance(40)
    assert await throttle.check("a@example.com") is None


async def test_throttle_hourly_cap_rolls_off():
    clock = FakeClock()
    throttle = InMemoryResendThrottle(cooldown_seconds=60, max_per_hour=5, clock=clock)

    for _ in range(5):
        assert await throttle.check("key") is None
        await throttle.record("key")
        clock.advance(61)

    # Five sends in the last hour: blocked until the first falls out of the window
    retry_after = await throttle.check("key")
    assert retry_after == 3600 - 5 * 61

    clock.advance(retry_after)
    assert await throttle.check("key") is None
