from __future__ import annotations

from typing import Any, Literal, Optional

from fastapi import Query

from eventdesk.repositories.tickets import TicketFilters
from eventdesk.schemas.tickets import (
    AdminTicketUpdate,
    SupportTicketUpdate,
    TicketMessageModel,
    TicketModel,
    TicketPriority,
    TicketStatus,
)
from eventdesk.services.ticket_workflow import TicketUpdate


def ticket_filters(
    status: Optional[TicketStatus] = Query(default=None),
    priority: Optional[TicketPriority] = Query(default=None),
    tenant_id: Optional[str] = Query(default=None, alias="tenantId"),
    assigned: Optional[Literal["me", "unassigned"]] = Query(default=None),
    awaiting: Optional[Literal["support"]] = Query(default=None),
    q: Optional[str] = Query(default=None, max_length=200),
    tag: Optional[str] = Query(default=None, max_length=64),
    limit: int = Query(default=200, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
) -> TicketFilters:
    return TicketFilters(
        status=status,
        priority=priority,
        tenant_id=tenant_id.strip() if tenant_id and tenant_id.strip() else None,
        assigned=assigned,
        awaiting=awaiting,
        search=q.strip() if q and q.strip() else None,
        tag=tag.strip() if tag and tag.strip() else None,
        limit=limit,
        offset=offset,
    )


def to_ticket_update(payload: SupportTicketUpdate) -> TicketUpdate:
    update = TicketUpdate(
        message=payload.message,
        status=payload.status,
        priority=payload.priority,
    )
    if isinstance(payload, AdminTicketUpdate):
        update.assign_to_me = payload.assign_to_me
        update.unassign = payload.unassign
        update.assigned_to_user_id = payload.assigned_to_user_id
        update.tags = payload.tags
    return update


def ticket_model(ticket: dict[str, Any]) -> TicketModel:
    return TicketModel.model_validate(ticket)


def message_models(messages: list[dict[str, Any]]) -> list[TicketMessageModel]:
    return [TicketMessageModel.model_validate(message) for message in messages]
