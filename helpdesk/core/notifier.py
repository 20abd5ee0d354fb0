"""
Outbound email notifier.

Best-effort delivery over an HTTP mail API (httpx). `send` never raises: any
failure comes back as a NotificationResult. `dispatch` schedules a send as a
detached task so a ticket mutation never waits on, or fails because of, email.

When MAIL_API_URL is not configured, messages are logged instead of sent.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Set

import httpx

from helpdesk.utils.logger import get_logger
from helpdesk.utils.metrics import notifications_sent

logger = get_logger(__name__)


@dataclass
class NotificationResult:
    """Outcome of a single send call."""

    ok: bool
    recipients: List[str] = field(default_factory=list)
    error: Optional[str] = None
    delivered: bool = True


def clean_recipients(recipients: Iterable[Optional[str]]) -> List[str]:
    """Drop blanks and duplicates, keep first-seen order."""
    seen: Set[str] = set()
    cleaned = []
    for address in recipients:
        if not address or address in seen:
            continue
        seen.add(address)
        cleaned.append(address)
    return cleaned


class EmailNotifier:
    """
    Fire-and-forget email client.

    Retries with exponential backoff on non-2xx or transport errors.
    """

    def __init__(
        self,
        api_url: Optional[str],
        api_key: str = "",
        sender: str = "helpdesk@localhost",
        timeout: float = 10.0,
        max_retries: int = 3,
    ):
        self.api_url = api_url
        self.api_key = api_key
        self.sender = sender
        self.timeout = timeout
        self.max_retries = max(max_retries, 1)
        self._http_client: Optional[httpx.AsyncClient] = None
        self._pending: Set[asyncio.Task] = set()

    async def _get_client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            headers = {"Authorization": f"Bearer {self.api_key}"} if self.api_key else {}
            self._http_client = httpx.AsyncClient(timeout=self.timeout, headers=headers)
        return self._http_client

    async def _deliver(
        self, recipients: List[str], subject: str, text: str, html: Optional[str]
    ) -> bool:
        """Push one message to the mail API. Returns False when only logged."""
        if not self.api_url:
            logger.info(
                "Mail API not configured, logging email instead",
                extra={"to": recipients, "subject": subject},
            )
            return False

        payload = {
            "from": self.sender,
            "to": recipients,
            "subject": subject,
            "text": text,
        }
        if html:
            payload["html"] = html

        last_error: Optional[Exception] = None
        for attempt in range(self.max_retries):
            try:
                client = await self._get_client()
                response = await client.post(self.api_url, json=payload)
                response.raise_for_status()
                return True
            except httpx.HTTPError as e:
                last_error = e
                logger.warning(
                    "Mail API call failed",
                    extra={"error": str(e), "attempt": attempt + 1, "subject": subject},
                )
            if attempt < self.max_retries - 1:
                await asyncio.sleep(2 ** attempt)

        raise RuntimeError(f"mail delivery failed after {self.max_retries} attempts: {last_error}")

    async def send(
        self,
        recipients: Iterable[Optional[str]],
        subject: str,
        text: str,
        html: Optional[str] = None,
    ) -> NotificationResult:
        """Send one message. Never raises."""
        to = clean_recipients(recipients)
        if not to:
            return NotificationResult(ok=True, recipients=[], delivered=False)

        try:
            delivered = await self._deliver(to, subject, text, html)
        except Exception as e:
            notifications_sent.labels(outcome="failed").inc()
            logger.error(
                "Email notification failed",
                extra={"to": to, "subject": subject, "error": str(e)},
            )
            return NotificationResult(ok=False, recipients=to, error=str(e), delivered=False)

        notifications_sent.labels(outcome="sent" if delivered else "logged").inc()
        logger.info("Email notification processed", extra={"to": to, "subject": subject})
        return NotificationResult(ok=True, recipients=to, delivered=delivered)

    def dispatch(
        self,
        recipients: Iterable[Optional[str]],
        subject: str,
        text: str,
        html: Optional[str] = None,
    ) -> Optional[asyncio.Task]:
        """
        Schedule `send` in the background and return immediately.

        Returns None when there is nobody to notify.
        """
        to = clean_recipients(recipients)
        if not to:
            logger.debug("No recipients, notification skipped", extra={"subject": subject})
            return None

        task = asyncio.create_task(self.send(to, subject, text, html))
        # Strong reference until done, otherwise the loop may drop the task
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def drain(self) -> None:
        """Wait for every dispatched send to finish."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def close(self) -> None:
        await self.drain()
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None
