"""
SLA monitor.

Two independent checks:

- Breach query: open tickets whose due date has passed. Read-only, computed
  fresh on each call.
- Stale-ticket sweep: tickets older than STALE_TICKET_MINUTES that are still
  active and have no comments get one reminder to IT staff and managers.
  The reminder ledger makes this at-most-once per ledger lifetime (the
  process, for the in-memory ledger). A failed send is logged and the
  ticket is still marked, so it is not retried.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, List, Optional

from sqlalchemy import exists, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from helpdesk.apps.auth.policy import Action, authorize_role
from helpdesk.apps.tickets.lifecycle import ACTIVE_STATUSES, CLOSING_STATUSES
from helpdesk.apps.tickets.models import Ticket, TicketComment
from helpdesk.apps.users.services import staff_emails
from helpdesk.core.notifier import EmailNotifier
from helpdesk.core.state import ReminderLedger
from helpdesk.utils.clock import as_utc, utcnow
from helpdesk.utils.logger import get_logger
from helpdesk.utils.metrics import stale_reminders_sent, sweep_latency

logger = get_logger(__name__)

# Upper bound on candidate pages scanned per run, so already-reminded
# tickets cannot turn one sweep into a full-table walk.
MAX_SCAN_PAGES = 10


# ── Breach query ──────────────────────────────────────────────────────────────

async def find_sla_breaches(session: AsyncSession, now: Optional[datetime] = None) -> List[Ticket]:
    now = now or utcnow()
    result = await session.execute(
        select(Ticket)
        .where(Ticket.due_at.is_not(None), Ticket.due_at < now)
        .where(Ticket.status.not_in(CLOSING_STATUSES))
        .order_by(Ticket.due_at.asc(), Ticket.id.asc())
    )
    return list(result.scalars().all())


async def get_sla_breaches(session: AsyncSession, actor: dict) -> List[Ticket]:
    authorize_role(Action.VIEW_SLA_BREACHES, actor["role"])
    return await find_sla_breaches(session)


# ── Stale-ticket sweep ────────────────────────────────────────────────────────

@dataclass
class SweepSummary:
    candidates: int = 0
    reminded: int = 0
    failed: int = 0
    skipped_no_recipients: bool = False


class StaleTicketSweep:
    """
    One pass of the stale-ticket reminder job.

    Built once and handed to the scheduler; each `run` opens its own session.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker,
        notifier: EmailNotifier,
        ledger: ReminderLedger,
        stale_after: timedelta = timedelta(minutes=30),
        batch_size: int = 100,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.session_factory = session_factory
        self.notifier = notifier
        self.ledger = ledger
        self.stale_after = stale_after
        self.batch_size = batch_size
        self.clock = clock

    async def find_candidates(self, session: AsyncSession, now: datetime) -> List[Ticket]:
        """
        Up to `batch_size` stale tickets not yet in the ledger, oldest first.
        """
        cutoff = now - self.stale_after
        has_comments = exists().where(TicketComment.ticket_id == Ticket.id)
        base = (
            select(Ticket)
            .where(Ticket.created_at <= cutoff)
            .where(Ticket.status.in_(ACTIVE_STATUSES))
            .where(~has_comments)
            .order_by(Ticket.id.asc())
            .limit(self.batch_size)
        )

        fresh: List[Ticket] = []
        last_id = 0
        for _ in range(MAX_SCAN_PAGES):
            result = await session.execute(base.where(Ticket.id > last_id))
            page = list(result.scalars().all())
            for ticket in page:
                if not await self.ledger.has(ticket.id):
                    fresh.append(ticket)
                    if len(fresh) >= self.batch_size:
                        return fresh
            if len(page) < self.batch_size:
                break
            last_id = page[-1].id
        return fresh

    def _message(self, ticket: Ticket, now: datetime) -> tuple:
        age_minutes = int((now - as_utc(ticket.created_at)).total_seconds() // 60)
        subject = f"Reminder: Ticket #{ticket.id} has no response yet"
        text = (
            f"Ticket #{ticket.id}: {ticket.title}\n"
            f"Status: {ticket.status}\n"
            f"Priority: {ticket.priority}\n"
            f"Open for {age_minutes} minutes without a comment."
        )
        return subject, text

    async def run(self) -> SweepSummary:
        """Never raises; per-ticket failures are logged and counted."""
        summary = SweepSummary()
        with sweep_latency.time():
            try:
                async with self.session_factory() as session:
                    now = self.clock()
                    candidates = await self.find_candidates(session, now)
                    summary.candidates = len(candidates)
                    if not candidates:
                        return summary

                    recipients = await staff_emails(session)
                    if not recipients:
                        summary.skipped_no_recipients = True
                        logger.warning(
                            "Stale tickets found but no staff to remind",
                            extra={"candidates": len(candidates)},
                        )
                        return summary

                    for ticket in candidates:
                        await self._remind(ticket, recipients, now, summary)
            except Exception as e:
                logger.error("Reminder sweep aborted", extra={"error": str(e)}, exc_info=True)

        if summary.candidates:
            logger.info(
                "Reminder sweep finished",
                extra={
                    "candidates": summary.candidates,
                    "reminded": summary.reminded,
                    "failed": summary.failed,
                },
            )
        return summary

    async def _remind(
        self, ticket: Ticket, recipients: List[str], now: datetime, summary: SweepSummary
    ) -> None:
        subject, text = self._message(ticket, now)
        try:
            result = await self.notifier.send(recipients, subject, text)
            # Marked even when delivery failed: at most one attempt per ticket
            await self.ledger.mark(ticket.id)
        except Exception as e:
            summary.failed += 1
            stale_reminders_sent.labels(outcome="error").inc()
            logger.error(
                "Stale reminder failed",
                extra={"ticket_id": ticket.id, "error": str(e)},
            )
            return

        if result.ok:
            summary.reminded += 1
            stale_reminders_sent.labels(outcome="sent").inc()
            logger.info("Stale ticket reminder sent", extra={"ticket_id": ticket.id})
        else:
            summary.failed += 1
            stale_reminders_sent.labels(outcome="failed").inc()
            logger.warning(
                "Stale ticket reminder not delivered",
                extra={"ticket_id": ticket.id, "error": result.error},
            )
