"""Support ticket status, assignment and SLA bookkeeping rules.

:func:`plan_update` turns one update request into the column patch and the
optional message to store. It does not touch storage, so the whole request is
applied by a single ``UPDATE`` afterwards.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Iterable, Mapping

from eventdesk.core.errors import ValidationError

TICKET_STATUSES = ("open", "pending", "resolved", "closed")
TICKET_PRIORITIES = ("low", "normal", "high", "urgent")
MESSAGE_SENDERS = ("user", "support")


@dataclass
class TicketUpdate:
    message: str | None = None
    status: str | None = None
    priority: str | None = None
    assign_to_me: bool = False
    unassign: bool = False
    assigned_to_user_id: str | None = None
    tags: list[str] | None = None


@dataclass(frozen=True)
class PlannedMessage:
    sender: str
    body: str


@dataclass
class TicketTransition:
    patch: dict[str, Any] = field(default_factory=dict)
    message: PlannedMessage | None = None

    @property
    def is_empty(self) -> bool:
        return not self.patch and self.message is None


def normalise_tags(tags: Iterable[str]) -> list[str]:
    cleaned: list[str] = []
    for tag in tags:
        text = str(tag).strip()
        if text and text not in cleaned:
            cleaned.append(text)
    return cleaned


def validate_update(update: TicketUpdate) -> None:
    """Reject enum values outside their sets before any transition is planned."""

    if update.status is not None and update.status not in TICKET_STATUSES:
        raise ValidationError("status", f"must be one of: {', '.join(TICKET_STATUSES)}")
    if update.priority is not None and update.priority not in TICKET_PRIORITIES:
        raise ValidationError("priority", f"must be one of: {', '.join(TICKET_PRIORITIES)}")


def plan_update(
    ticket: Mapping[str, Any],
    update: TicketUpdate,
    *,
    actor: str,
    sender: str,
    now: datetime,
) -> TicketTransition:
    if sender not in MESSAGE_SENDERS:
        raise ValueError(f"Unknown message sender: {sender}")

    patch: dict[str, Any] = {}
    body = (update.message or "").strip()
    message = PlannedMessage(sender=sender, body=body) if body else None

    if update.status is not None:
        patch["status"] = update.status
    elif message is not None and sender == "support":
        # Closed tickets only leave that state through an explicit status.
        if ticket.get("status") not in ("closed", "pending"):
            patch["status"] = "pending"

    if update.priority is not None:
        patch["priority"] = update.priority

    if update.tags is not None:
        patch["tags"] = normalise_tags(update.tags)

    if update.unassign:
        patch["assigned_user_id"] = None
        patch["assigned_at"] = None
    elif update.assign_to_me:
        patch["assigned_user_id"] = actor
        patch["assigned_at"] = now
    elif update.assigned_to_user_id:
        patch["assigned_user_id"] = update.assigned_to_user_id
        patch["assigned_at"] = now

    if message is not None:
        patch["last_message_at"] = now
        patch["last_message_sender"] = sender

    if patch:
        patch["updated_at"] = now
    return TicketTransition(patch=patch, message=message)
