from __future__ import annotations

from fastapi import APIRouter, Depends

from eventdesk.api.dependencies.auth import require_staff_capability
from eventdesk.api.dependencies.database import require_database
from eventdesk.api.routes._ticket_params import (
    message_models,
    ticket_filters,
    ticket_model,
    to_ticket_update,
)
from eventdesk.repositories.tickets import TicketFilters
from eventdesk.schemas.tickets import (
    AdminTicketUpdate,
    TicketDetailResponse,
    TicketListResponse,
    TicketResponse,
    TicketStatsResponse,
)
from eventdesk.security.context import AuthContext
from eventdesk.services import ticket_stats as ticket_stats_service
from eventdesk.services import tickets as tickets_service
from eventdesk.services.authorization import Capability

router = APIRouter(
    prefix="/api/admin/tickets",
    tags=["Support desk"],
    dependencies=[Depends(require_database)],
)


@router.get("", response_model=TicketListResponse, summary="List tickets across every tenant")
async def list_tickets(
    filters: TicketFilters = Depends(ticket_filters),
    ctx: AuthContext = Depends(require_staff_capability(Capability.VIEW_ALL_TICKETS)),
) -> TicketListResponse:
    tickets = await tickets_service.list_all_tickets(ctx, filters)
    return TicketListResponse(tickets=[ticket_model(ticket) for ticket in tickets])


@router.get("/stats", response_model=TicketStatsResponse, summary="Support queue counters")
async def ticket_stats(
    ctx: AuthContext = Depends(require_staff_capability(Capability.VIEW_TICKET_STATS)),
) -> TicketStatsResponse:
    return TicketStatsResponse.model_validate(await ticket_stats_service.ticket_stats(ctx))


@router.get("/{ticket_id}", response_model=TicketDetailResponse, summary="Any ticket with its messages")
async def get_ticket(
    ticket_id: str,
    ctx: AuthContext = Depends(require_staff_capability(Capability.VIEW_ALL_TICKETS)),
) -> TicketDetailResponse:
    detail = await tickets_service.get_any_ticket(ctx, ticket_id)
    return TicketDetailResponse(
        ticket=ticket_model(detail["ticket"]),
        messages=message_models(detail["messages"]),
    )


@router.put("/{ticket_id}", response_model=TicketResponse, summary="Reply, assign or change status")
async def update_ticket(
    ticket_id: str,
    payload: AdminTicketUpdate,
    ctx: AuthContext = Depends(require_staff_capability(Capability.MANAGE_ALL_TICKETS)),
) -> TicketResponse:
    ticket = await tickets_service.update_any_ticket(ctx, ticket_id, to_ticket_update(payload))
    return TicketResponse(ticket=ticket_model(ticket))
