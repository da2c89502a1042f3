from __future__ import annotations

from datetime import datetime
from typing import Any, Iterable, Mapping

from eventdesk.core.logging import log_debug
from eventdesk.repositories import tickets as tickets_repo
from eventdesk.repositories.tickets import CLOSED_STATUSES, TicketFilters
from eventdesk.security.context import AuthContext
from eventdesk.services import authorization, memberships
from eventdesk.services.authorization import Capability
from eventdesk.services.time_utils import clock


def compute_stats(
    tickets: Iterable[Mapping[str, Any]],
    user_id: str,
    start_of_day: datetime,
) -> dict[str, int]:
    """Count the queue buckets. A ticket may land in several buckets or none."""

    stats = {"awaitingSupport": 0, "unassigned": 0, "assignedToMe": 0, "resolvedToday": 0}
    for ticket in tickets:
        status = ticket.get("status")
        if status not in CLOSED_STATUSES:
            if ticket.get("last_message_sender") == "user":
                stats["awaitingSupport"] += 1
            assignee = ticket.get("assigned_user_id")
            if assignee is None:
                stats["unassigned"] += 1
            elif assignee == user_id:
                stats["assignedToMe"] += 1
        if status == "resolved":
            updated_at = ticket.get("updated_at")
            if updated_at is not None and updated_at >= start_of_day:
                stats["resolvedToday"] += 1
    return stats


async def _visible_filters(ctx: AuthContext) -> TicketFilters:
    filters = TicketFilters(require_sla=True, limit=None)
    if authorization.is_allowed(ctx, None, None, Capability.VIEW_TICKET_STATS):
        return filters

    membership = await memberships.resolve_membership(ctx.tenant_id, ctx.user_id)
    authorization.require(ctx, membership, ctx.tenant_id, Capability.READ_TICKETS)
    if isinstance(membership, memberships.Legacy):
        filters.creator_id = ctx.user_id
    else:
        filters.tenant_id = ctx.tenant_id
    return filters


async def ticket_stats(ctx: AuthContext, *, now: datetime | None = None) -> dict[str, int]:
    filters = await _visible_filters(ctx)
    tickets = await tickets_repo.list_tickets(filters)
    current = now or clock.now()
    stats = compute_stats(tickets, ctx.user_id, clock.start_of_day(current))
    log_debug("Computed ticket stats", user_id=ctx.user_id, total=len(tickets))
    return stats
