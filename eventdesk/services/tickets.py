"""Support ticket use cases for tenant users and platform staff.

Every entry point takes the per-request :class:`AuthContext`, asks the
authorization gate first and only then touches the repository. A ticket that
lives in another tenant is reported as missing, never as forbidden.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from eventdesk.core.errors import NotFoundError
from eventdesk.core.logging import log_audit_event
from eventdesk.repositories import tickets as tickets_repo
from eventdesk.repositories.tickets import TicketFilters, TicketRecord
from eventdesk.security.context import AuthContext
from eventdesk.services import authorization, memberships
from eventdesk.services.authorization import Capability
from eventdesk.services.memberships import Legacy, Membership
from eventdesk.services.ticket_workflow import TicketUpdate, plan_update, validate_update
from eventdesk.services.time_utils import clock


def effective_tenant(ticket: TicketRecord) -> str:
    """Tenant a ticket belongs to. Legacy tickets belong to their creator."""

    return ticket.get("tenant_id") or ticket["creator_id"]


async def _tenant_membership(ctx: AuthContext) -> Membership | None:
    return await memberships.resolve_membership(ctx.tenant_id, ctx.user_id)


async def _load_visible(ctx: AuthContext, ticket_id: str) -> TicketRecord:
    ticket = await tickets_repo.get_ticket(ticket_id)
    if ticket is None or effective_tenant(ticket) != ctx.tenant_id:
        raise NotFoundError("Ticket not found")
    return ticket


async def _load_any(ticket_id: str) -> TicketRecord:
    ticket = await tickets_repo.get_ticket(ticket_id)
    if ticket is None:
        raise NotFoundError("Ticket not found")
    return ticket


async def _detail(ticket: TicketRecord) -> dict[str, Any]:
    messages = await tickets_repo.list_messages(ticket["id"])
    return {"ticket": ticket, "messages": messages}


async def _apply(
    ctx: AuthContext,
    ticket: TicketRecord,
    update: TicketUpdate,
    *,
    sender: str,
    now: datetime | None,
) -> TicketRecord:
    validate_update(update)
    current = now or clock.now()
    transition = plan_update(ticket, update, actor=ctx.user_id, sender=sender, now=current)
    if transition.is_empty:
        return ticket

    # A reply is only stored together with the state change it causes.
    async with tickets_repo.transaction():
        await tickets_repo.update_ticket(ticket["id"], transition.patch)
        if transition.message is not None:
            await tickets_repo.add_message(
                ticket["id"],
                sender=transition.message.sender,
                message=transition.message.body,
                now=current,
            )

    log_audit_event(
        "SUPPORT TICKET",
        "update",
        user_id=ctx.user_id,
        user_email=ctx.email,
        tenant_id=ctx.tenant_id,
        entity_type="ticket",
        entity_id=ticket["id"],
        sender=sender,
        fields=",".join(sorted(key for key in transition.patch if key != "updated_at")),
    )
    refreshed = await tickets_repo.get_ticket(ticket["id"])
    return refreshed or {**ticket, **transition.patch}


# Tenant-facing operations


async def list_tenant_tickets(ctx: AuthContext, filters: TicketFilters) -> list[TicketRecord]:
    membership = await _tenant_membership(ctx)
    authorization.require(ctx, membership, filters.tenant_id or ctx.tenant_id, Capability.READ_TICKETS)
    filters.actor_id = ctx.user_id
    if isinstance(membership, Legacy):
        filters.tenant_id = None
        filters.creator_id = ctx.user_id
    else:
        filters.tenant_id = ctx.tenant_id
    return await tickets_repo.list_tickets(filters)


async def create_tenant_ticket(
    ctx: AuthContext,
    *,
    subject: str,
    message: str,
    priority: str = "normal",
    now: datetime | None = None,
) -> dict[str, Any]:
    membership = await _tenant_membership(ctx)
    authorization.require(ctx, membership, ctx.tenant_id, Capability.WRITE_TICKETS)
    validate_update(TicketUpdate(priority=priority))
    current = now or clock.now()

    async with tickets_repo.transaction():
        ticket = await tickets_repo.create_ticket(
            creator_id=ctx.user_id,
            tenant_id=None if isinstance(membership, Legacy) else ctx.tenant_id,
            subject=subject.strip(),
            priority=priority,
            now=current,
        )
        await tickets_repo.add_message(ticket["id"], sender="user", message=message.strip(), now=current)
    log_audit_event(
        "SUPPORT TICKET",
        "create",
        user_id=ctx.user_id,
        user_email=ctx.email,
        tenant_id=ctx.tenant_id,
        entity_type="ticket",
        entity_id=ticket["id"],
        priority=priority,
    )
    return await _detail(ticket)


async def get_tenant_ticket(ctx: AuthContext, ticket_id: str) -> dict[str, Any]:
    membership = await _tenant_membership(ctx)
    authorization.require(ctx, membership, ctx.tenant_id, Capability.READ_TICKETS)
    ticket = await _load_visible(ctx, ticket_id)
    return await _detail(ticket)


async def update_tenant_ticket(
    ctx: AuthContext,
    ticket_id: str,
    update: TicketUpdate,
    *,
    now: datetime | None = None,
) -> TicketRecord:
    membership = await _tenant_membership(ctx)
    authorization.require(ctx, membership, ctx.tenant_id, Capability.WRITE_TICKETS)
    ticket = await _load_visible(ctx, ticket_id)
    # Assignment and tagging belong to the support desk.
    update.assign_to_me = False
    update.unassign = False
    update.assigned_to_user_id = None
    update.tags = None
    return await _apply(ctx, ticket, update, sender="user", now=now)


# Staff operations


async def list_all_tickets(ctx: AuthContext, filters: TicketFilters) -> list[TicketRecord]:
    authorization.require(ctx, None, None, Capability.VIEW_ALL_TICKETS)
    filters.actor_id = ctx.user_id
    return await tickets_repo.list_tickets(filters)


async def get_any_ticket(ctx: AuthContext, ticket_id: str) -> dict[str, Any]:
    authorization.require(ctx, None, None, Capability.VIEW_ALL_TICKETS)
    ticket = await _load_any(ticket_id)
    return await _detail(ticket)


async def update_any_ticket(
    ctx: AuthContext,
    ticket_id: str,
    update: TicketUpdate,
    *,
    now: datetime | None = None,
) -> TicketRecord:
    authorization.require(ctx, None, None, Capability.MANAGE_ALL_TICKETS)
    ticket = await _load_any(ticket_id)
    return await _apply(ctx, ticket, update, sender="support", now=now)
