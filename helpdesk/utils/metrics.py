"""
Centralized Prometheus metrics.

All application metrics are defined here to prevent duplication
and ensure consistent labeling across modules.
"""

from prometheus_client import Counter, Histogram


# ── Ticket Metrics ────────────────────────────────────────────────────────────

tickets_created = Counter(
    "helpdesk_tickets_created_total",
    "Tickets created",
    ["priority"]
)

ticket_transitions = Counter(
    "helpdesk_ticket_transitions_total",
    "Status / priority / assignment changes applied to tickets",
    ["field", "value"]
)


# ── Notification Metrics ──────────────────────────────────────────────────────

notifications_sent = Counter(
    "helpdesk_notifications_total",
    "Outbound notifications by delivery outcome",
    ["outcome"]
)


# ── SLA Metrics ───────────────────────────────────────────────────────────────

stale_reminders_sent = Counter(
    "helpdesk_stale_reminders_total",
    "Stale-ticket reminders dispatched",
    ["outcome"]
)

sweep_latency = Histogram(
    "helpdesk_reminder_sweep_seconds",
    "Stale-ticket reminder sweep duration",
    buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0]
)
