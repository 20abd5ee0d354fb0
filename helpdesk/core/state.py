"""
Small stateful collaborators shared across requests and the scheduler.

- ReminderLedger: which tickets already got a stale-ticket reminder.
- ResendThrottle: cooldown + rolling hourly cap for code emails.

Each has an in-process implementation (default; state resets on restart)
and a Redis one for deployments that need it to survive restarts or be
shared between workers. Pick with STATE_BACKEND.
"""

import math
import time
from abc import ABC, abstractmethod
from collections import defaultdict
from typing import Callable, Dict, List, Optional, Set

import redis.asyncio as redis

from helpdesk.utils.logger import get_logger

logger = get_logger(__name__)

HOUR_SECONDS = 3600


def create_redis_client(url: str) -> redis.Redis:
    client = redis.from_url(
        url,
        decode_responses=True,
        max_connections=50,
        socket_keepalive=True,
        socket_timeout=5.0,
        retry_on_timeout=True,
    )
    logger.info(f"Initialized Redis client: {url}")
    return client


# ── Reminder ledger ───────────────────────────────────────────────────────────

class ReminderLedger(ABC):
    """Set of ticket ids that have been reminded."""

    @abstractmethod
    async def has(self, ticket_id: int) -> bool: ...

    @abstractmethod
    async def mark(self, ticket_id: int) -> None: ...


class InMemoryReminderLedger(ReminderLedger):
    def __init__(self):
        self._reminded: Set[int] = set()

    async def has(self, ticket_id: int) -> bool:
        return ticket_id in self._reminded

    async def mark(self, ticket_id: int) -> None:
        self._reminded.add(ticket_id)

    def __len__(self) -> int:
        return len(self._reminded)


class RedisReminderLedger(ReminderLedger):
    def __init__(self, client: redis.Redis, key: str = "helpdesk:reminded_tickets"):
        self.redis = client
        self.key = key

    async def has(self, ticket_id: int) -> bool:
        return bool(await self.redis.sismember(self.key, str(ticket_id)))

    async def mark(self, ticket_id: int) -> None:
        await self.redis.sadd(self.key, str(ticket_id))


# ── Resend throttle ───────────────────────────────────────────────────────────

class ResendThrottle(ABC):
    """
    Per-key sliding window: at most one send per cooldown and at most
    `max_per_hour` sends in any rolling hour.
    """

    def __init__(self, cooldown_seconds: int = 60, max_per_hour: int = 5):
        self.cooldown_seconds = cooldown_seconds
        self.max_per_hour = max_per_hour

    @abstractmethod
    async def check(self, key: str) -> Optional[int]:
        """Seconds to wait before the next send, or None if allowed now."""

    @abstractmethod
    async def record(self, key: str) -> None: ...

    def _retry_after(self, history: List[float], now: float) -> Optional[int]:
        if history:
            since_last = now - history[-1]
            if since_last < self.cooldown_seconds:
                return max(math.ceil(self.cooldown_seconds - since_last), 1)
        if len(history) >= self.max_per_hour:
            return max(math.ceil(HOUR_SECONDS - (now - history[0])), 1)
        return None


class InMemoryResendThrottle(ResendThrottle):
    def __init__(
        self,
        cooldown_seconds: int = 60,
        max_per_hour: int = 5,
        clock: Callable[[], float] = time.monotonic,
    ):
        super().__init__(cooldown_seconds, max_per_hour)
        self._clock = clock
        self._history: Dict[str, List[float]] = defaultdict(list)

    def _window(self, key: str, now: float) -> List[float]:
        history = [t for t in self._history.get(key, []) if now - t < HOUR_SECONDS]
        if history:
            self._history[key] = history
        else:
            self._history.pop(key, None)
        return history

    async def check(self, key: str) -> Optional[int]:
        now = self._clock()
        return self._retry_after(self._window(key, now), now)

    async def record(self, key: str) -> None:
        now = self._clock()
        self._window(key, now)
        self._history[key].append(now)


class RedisResendThrottle(ResendThrottle):
    """Sorted set of send timestamps per key, trimmed to the last hour."""

    def __init__(
        self,
        client: redis.Redis,
        cooldown_seconds: int = 60,
        max_per_hour: int = 5,
        prefix: str = "helpdesk:resend",
    ):
        super().__init__(cooldown_seconds, max_per_hour)
        self.redis = client
        self.prefix = prefix

    def _key(self, key: str) -> str:
        return f"{self.prefix}:{key}"

    async def check(self, key: str) -> Optional[int]:
        now = time.time()
        rkey = self._key(key)
        await self.redis.zremrangebyscore(rkey, 0, now - HOUR_SECONDS)
        history = [float(score) for _, score in await self.redis.zrange(rkey, 0, -1, withscores=True)]
        return self._retry_after(history, now)

    async def record(self, key: str) -> None:
        now = time.time()
        rkey = self._key(key)
        pipe = self.redis.pipeline()
        pipe.zadd(rkey, {str(now): now})
        pipe.expire(rkey, HOUR_SECONDS)
        await pipe.execute()
