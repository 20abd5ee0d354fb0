"""
Dependency injection for FastAPI.

Provides singleton instances of services. Tests swap them through
`app.dependency_overrides`; the scheduler calls the getters directly.
"""

from functools import lru_cache

import redis.asyncio as redis

from helpdesk.config.settings import settings
from helpdesk.core.notifier import EmailNotifier
from helpdesk.core.state import (
    InMemoryReminderLedger,
    InMemoryResendThrottle,
    RedisReminderLedger,
    RedisResendThrottle,
    ReminderLedger,
    ResendThrottle,
    create_redis_client,
)


def _use_redis() -> bool:
    return settings.STATE_BACKEND.lower() == "redis"


@lru_cache()
def get_redis() -> redis.Redis:
    """Get Redis client singleton."""
    return create_redis_client(settings.REDIS_URL)


@lru_cache()
def get_notifier() -> EmailNotifier:
    """Get email notifier singleton."""
    return EmailNotifier(
        api_url=settings.MAIL_API_URL,
        api_key=settings.MAIL_API_KEY,
        sender=settings.MAIL_FROM,
        timeout=settings.MAIL_TIMEOUT_SECONDS,
        max_retries=settings.MAIL_MAX_RETRIES,
    )


@lru_cache()
def get_reminder_ledger() -> ReminderLedger:
    """Get reminder ledger singleton."""
    if _use_redis():
        return RedisReminderLedger(get_redis())
    return InMemoryReminderLedger()


@lru_cache()
def get_resend_throttle() -> ResendThrottle:
    """Get resend throttle singleton."""
    if _use_redis():
        return RedisResendThrottle(
            get_redis(),
            cooldown_seconds=settings.RESEND_COOLDOWN_SECONDS,
            max_per_hour=settings.RESEND_MAX_PER_HOUR,
        )
    return InMemoryResendThrottle(
        cooldown_seconds=settings.RESEND_COOLDOWN_SECONDS,
        max_per_hour=settings.RESEND_MAX_PER_HOUR,
    )
