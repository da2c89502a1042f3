from __future__ import annotations

from datetime import datetime
from typing import List, Literal, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

TicketStatus = Literal["open", "pending", "resolved", "closed"]
TicketPriority = Literal["low", "normal", "high", "urgent"]
MessageSender = Literal["user", "support"]


class SupportTicketCreate(BaseModel):
    subject: str = Field(..., min_length=3, max_length=200)
    message: str = Field(..., min_length=1, max_length=10000)
    priority: TicketPriority = "normal"

    @field_validator("subject", "message")
    @classmethod
    def _strip(cls, value: str) -> str:
        stripped = value.strip()
        if not stripped:
            raise ValueError("must not be blank")
        return stripped


class SupportTicketUpdate(BaseModel):
    """Changes a tenant user may make to their own ticket."""

    message: Optional[str] = Field(default=None, max_length=10000)
    status: Optional[TicketStatus] = None
    priority: Optional[TicketPriority] = None


class AdminTicketUpdate(SupportTicketUpdate):
    model_config = ConfigDict(populate_by_name=True)

    assign_to_me: bool = Field(
        default=False,
        validation_alias=AliasChoices("assignToMe", "assign_to_me"),
    )
    unassign: bool = False
    assigned_to_user_id: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("assignedToUserId", "assigned_to_user_id"),
    )
    tags: Optional[List[str]] = Field(default=None, max_length=50)

    @field_validator("assigned_to_user_id")
    @classmethod
    def _blank_assignee(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        return value.strip() or None


class TicketModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    tenant_id: Optional[str] = Field(default=None, alias="tenantId")
    tenant_name: Optional[str] = Field(default=None, alias="tenantName")
    creator_id: str = Field(alias="creatorId")
    creator_name: Optional[str] = Field(default=None, alias="creatorName")
    creator_email: Optional[str] = Field(default=None, alias="creatorEmail")
    assigned_user_id: Optional[str] = Field(default=None, alias="assignedUserId")
    assignee_name: Optional[str] = Field(default=None, alias="assigneeName")
    assignee_email: Optional[str] = Field(default=None, alias="assigneeEmail")
    assigned_at: Optional[datetime] = Field(default=None, alias="assignedAt")
    subject: str
    status: TicketStatus
    priority: TicketPriority
    tags: List[str] = Field(default_factory=list)
    last_message_at: Optional[datetime] = Field(default=None, alias="lastMessageAt")
    last_message_sender: Optional[MessageSender] = Field(default=None, alias="lastMessageSender")
    created_at: Optional[datetime] = Field(default=None, alias="createdAt")
    updated_at: Optional[datetime] = Field(default=None, alias="updatedAt")


class TicketMessageModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    ticket_id: str = Field(alias="ticketId")
    sender: MessageSender
    message: str
    created_at: Optional[datetime] = Field(default=None, alias="createdAt")


class TicketListResponse(BaseModel):
    success: bool = True
    tickets: List[TicketModel]


class TicketDetailResponse(BaseModel):
    success: bool = True
    ticket: TicketModel
    messages: List[TicketMessageModel] = Field(default_factory=list)


class TicketResponse(BaseModel):
    success: bool = True
    ticket: TicketModel


class TicketStatsResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    awaiting_support: int = Field(alias="awaitingSupport")
    unassigned: int
    assigned_to_me: int = Field(alias="assignedToMe")
    resolved_today: int = Field(alias="resolvedToday")
