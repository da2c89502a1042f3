from __future__ import annotations

from fastapi import APIRouter, Depends, status

from eventdesk.api.dependencies.auth import get_auth_context
from eventdesk.api.dependencies.database import require_database
from eventdesk.api.routes._ticket_params import (
    message_models,
    ticket_filters,
    ticket_model,
    to_ticket_update,
)
from eventdesk.repositories.tickets import TicketFilters
from eventdesk.schemas.tickets import (
    SupportTicketCreate,
    SupportTicketUpdate,
    TicketDetailResponse,
    TicketListResponse,
    TicketResponse,
    TicketStatsResponse,
)
from eventdesk.security.context import AuthContext
from eventdesk.services import ticket_stats as ticket_stats_service
from eventdesk.services import tickets as tickets_service

router = APIRouter(
    prefix="/api/support/tickets",
    tags=["Support tickets"],
    dependencies=[Depends(require_database)],
)


@router.get("", response_model=TicketListResponse, summary="List the tenant's support tickets")
async def list_tickets(
    filters: TicketFilters = Depends(ticket_filters),
    ctx: AuthContext = Depends(get_auth_context),
) -> TicketListResponse:
    tickets = await tickets_service.list_tenant_tickets(ctx, filters)
    return TicketListResponse(tickets=[ticket_model(ticket) for ticket in tickets])


@router.post(
    "",
    response_model=TicketDetailResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Open a support ticket",
)
async def create_ticket(
    payload: SupportTicketCreate,
    ctx: AuthContext = Depends(get_auth_context),
) -> TicketDetailResponse:
    detail = await tickets_service.create_tenant_ticket(
        ctx,
        subject=payload.subject,
        message=payload.message,
        priority=payload.priority,
    )
    return TicketDetailResponse(
        ticket=ticket_model(detail["ticket"]),
        messages=message_models(detail["messages"]),
    )


@router.get("/stats", response_model=TicketStatsResponse, summary="Queue counters for the caller")
async def ticket_stats(ctx: AuthContext = Depends(get_auth_context)) -> TicketStatsResponse:
    return TicketStatsResponse.model_validate(await ticket_stats_service.ticket_stats(ctx))


@router.get("/{ticket_id}", response_model=TicketDetailResponse, summary="Ticket with its messages")
async def get_ticket(
    ticket_id: str,
    ctx: AuthContext = Depends(get_auth_context),
) -> TicketDetailResponse:
    detail = await tickets_service.get_tenant_ticket(ctx, ticket_id)
    return TicketDetailResponse(
        ticket=ticket_model(detail["ticket"]),
        messages=message_models(detail["messages"]),
    )


@router.put("/{ticket_id}", response_model=TicketResponse, summary="Reply to or update a ticket")
async def update_ticket(
    ticket_id: str,
    payload: SupportTicketUpdate,
    ctx: AuthContext = Depends(get_auth_context),
) -> TicketResponse:
    ticket = await tickets_service.update_tenant_ticket(ctx, ticket_id, to_ticket_update(payload))
    return TicketResponse(ticket=ticket_model(ticket))
