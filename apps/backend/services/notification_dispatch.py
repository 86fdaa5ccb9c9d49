"""Outbox event dispatch: event type to typed payload to notification handler."""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from sqlalchemy.orm import Session

from apps.backend.config import Settings, get_settings
from apps.backend.models.notification import TicketIntegration
from apps.backend.models.outbox import OutboxEvent
from apps.backend.services import notification_context as ctx
from apps.backend.services import notification_messages as messages
from apps.backend.services.notification_channels import NotificationChannels
from apps.backend.services.notification_errors import ChannelNotConfigured, InvalidPayloadError

logger = logging.getLogger(__name__)

OUTCOME_DELIVERED = "delivered"
OUTCOME_SKIPPED = "skipped"
OUTCOME_IGNORED = "ignored"


class EventType(str, Enum):
    TICKET_CREATED = "ticket.created"
    STATUS_UPDATED = "ticket.status_updated"
    TICKET_ASSIGNED = "ticket.assigned"
    TICKET_ESCALATED = "ticket.escalated"
    COMMENT_ADDED = "ticket.comment_added"


class _TicketPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    ticket_id: int = Field(alias="ticketId")


class TicketCreatedPayload(_TicketPayload):
    pass


class StatusUpdatedPayload(_TicketPayload):
    old_status: str | None = Field(None, alias="oldStatus")
    new_status: str | None = Field(None, alias="newStatus")
    updated_by: str | None = Field(None, alias="updatedBy")


class TicketAssignedPayload(_TicketPayload):
    assigned_to: str = Field(alias="assignedTo")
    assigned_by: str | None = Field(None, alias="assignedBy")
    is_forward: bool = Field(False, alias="isForward")


class CommentAddedPayload(_TicketPayload):
    comment: str = ""
    commented_by: str | None = Field(None, alias="commentedBy")
    is_internal: bool = Field(False, alias="isInternal")


class TicketEscalatedPayload(_TicketPayload):
    escalation_level: int | None = Field(None, alias="escalationLevel")
    reason: str | None = None


@dataclass
class DispatchResult:
    outcome: str
    channels: list[str] = field(default_factory=list)
    reason: str | None = None

    @classmethod
    def delivered(cls, channels: list[str]) -> "DispatchResult":
        if not channels:
            return cls(OUTCOME_SKIPPED, [], "no_channel_delivered")
        return cls(OUTCOME_DELIVERED, list(channels))

    @classmethod
    def skipped(cls, reason: str) -> "DispatchResult":
        return cls(OUTCOME_SKIPPED, [], reason)


def save_ticket_thread(
    db: Session,
    ticket_id: int,
    *,
    slack_channel_id: str | None = None,
    slack_thread_id: str | None = None,
    email_thread_id: str | None = None,
) -> None:
    """Record thread ids for later replies; only given fields are overwritten.

    Only the ticket.created handler writes here, so a recorded thread id also
    means its root announcement went out on that channel.
    """
    rec = db.get(TicketIntegration, ticket_id)
    if rec is None:
        rec = TicketIntegration(ticket_id=ticket_id)
        db.add(rec)
    if slack_channel_id:
        rec.slack_channel_id = slack_channel_id
    if slack_thread_id:
        rec.slack_thread_id = slack_thread_id
    if email_thread_id:
        rec.email_thread_id = email_thread_id
    rec.updated_at = datetime.utcnow()
    db.commit()


class NotificationDispatcher:
    """Routes one outbox event to its handler; handler errors propagate to the processor."""

    def __init__(self, channels, base_url: str, message_domain: str = "helpdesk.local") -> None:
        self.channels = channels
        self.base_url = base_url
        self.message_domain = message_domain
        self._handlers = {
            EventType.TICKET_CREATED: (TicketCreatedPayload, self._on_created),
            EventType.STATUS_UPDATED: (StatusUpdatedPayload, self._on_status_updated),
            EventType.TICKET_ASSIGNED: (TicketAssignedPayload, self._on_assigned),
            EventType.TICKET_ESCALATED: (TicketEscalatedPayload, self._on_escalated),
            EventType.COMMENT_ADDED: (CommentAddedPayload, self._on_comment_added),
        }

    def dispatch(self, db: Session, event: OutboxEvent) -> DispatchResult:
        try:
            event_type = EventType(event.event_type)
        except ValueError:
            logger.warning("outbox_unknown_event_type id=%s type=%s", event.id, event.event_type)
            return DispatchResult(OUTCOME_IGNORED, [], "unknown_event_type")
        payload_model, handler = self._handlers[event_type]
        raw = event.payload
        if isinstance(raw, str):
            try:
                raw = json.loads(raw or "{}")
            except ValueError as e:
                raise InvalidPayloadError("invalid_payload", "payload is not JSON") from e
        try:
            payload = payload_model.model_validate(raw or {})
        except ValidationError as e:
            raise InvalidPayloadError("invalid_payload", str(e)[:300]) from e
        result = handler(db, event, payload)
        logger.info(
            "outbox_event_dispatched id=%s type=%s outcome=%s channels=%s reason=%s",
            event.id,
            event.event_type,
            result.outcome,
            ",".join(result.channels),
            result.reason,
        )
        return result

    def _message_id(self, ticket_id: int, kind: str) -> str:
        return f"<ticket-{ticket_id}.{kind}@{self.message_domain}>"

    def _post_chat(self, **kwargs) -> tuple[str, str] | None:
        try:
            return self.channels.post_chat(**kwargs)
        except ChannelNotConfigured:
            logger.info("notify_channel_not_configured channel=slack")
            return None

    def _send_email(self, **kwargs) -> str | None:
        try:
            return self.channels.send_email(**kwargs)
        except ChannelNotConfigured:
            logger.info("notify_channel_not_configured channel=email")
            return None

    def _on_created(self, db: Session, event: OutboxEvent, p: TicketCreatedPayload) -> DispatchResult:
        ticket = ctx.load_ticket_context(db, p.ticket_id)
        if ticket is None:
            logger.warning("notify_ticket_missing id=%s ticket_id=%s", event.id, p.ticket_id)
            return DispatchResult.skipped("ticket_not_found")
        creator = ctx.load_user_contact(db, ticket.created_by_id)
        assignee = ctx.load_user_contact(db, ticket.assigned_to_id)
        routing = ctx.resolve_notification_config(
            db,
            scope_id=ticket.scope_id,
            category_id=ticket.category_id,
            subcategory_id=ticket.subcategory_id,
        )
        thread = ctx.load_ticket_thread(db, ticket.id)
        link = messages.ticket_link(self.base_url, ticket.id, internal=bool(creator and creator.is_staff))
        sent: list[str] = []

        if routing.enable_slack and not thread.slack_thread_id:
            text, blocks = messages.render_new_ticket_chat(
                ticket, creator, assignee, link, routing.slack_cc_user_ids
            )
            posted = self._post_chat(channel=routing.slack_channel, text=text, blocks=blocks)
            if posted:
                channel_id, ts = posted
                save_ticket_thread(db, ticket.id, slack_channel_id=channel_id, slack_thread_id=ts)
                sent.append("slack")

        if routing.enable_email and not thread.email_thread_id:
            recipients: list[str] = []
            for addr in [creator.email if creator else None, *routing.email_recipients]:
                if addr and addr not in recipients:
                    recipients.append(addr)
            if recipients:
                subject, text, html = messages.render_new_ticket_email(ticket, creator, link)
                message_id = self._send_email(
                    to=recipients,
                    subject=subject,
                    text=text,
                    html=html,
                    message_id=self._message_id(ticket.id, "created"),
                )
                if message_id:
                    save_ticket_thread(db, ticket.id, email_thread_id=message_id)
                    sent.append("email")
        return DispatchResult.delivered(sent)

    def _on_status_updated(self, db: Session, event: OutboxEvent, p: StatusUpdatedPayload) -> DispatchResult:
        ticket = ctx.load_ticket_context(db, p.ticket_id)
        if ticket is None:
            return DispatchResult.skipped("ticket_not_found")
        creator = ctx.load_user_contact(db, ticket.created_by_id)
        if creator is None or not creator.email:
            return DispatchResult.skipped("creator_contact_missing")
        change = ctx.load_latest_status_change(db, ticket.id, to_status=p.new_status)
        actor_name = ctx.friendly_name(db, p.updated_by or (change.actor_id if change else None))
        old_status = p.old_status or (change.from_status if change else None)
        new_status = p.new_status or ticket.status
        thread = ctx.load_ticket_thread(db, ticket.id)
        link = messages.ticket_link(self.base_url, ticket.id, internal=creator.is_staff)
        subject, text, html = messages.render_status_email(
            ticket, creator, old_status, new_status, actor_name, change.comment if change else None, link
        )
        message_id = self._send_email(
            to=[creator.email],
            subject=subject,
            text=text,
            html=html,
            message_id=self._message_id(ticket.id, f"status.{event.id}"),
            in_reply_to=thread.email_thread_id,
        )
        return DispatchResult.delivered(["email"] if message_id else [])

    def _on_assigned(self, db: Session, event: OutboxEvent, p: TicketAssignedPayload) -> DispatchResult:
        ticket = ctx.load_ticket_context(db, p.ticket_id)
        if ticket is None:
            return DispatchResult.skipped("ticket_not_found")
        assignee = ctx.load_user_contact(db, p.assigned_to)
        if assignee is None:
            return DispatchResult.skipped("assignee_not_found")
        assignor_name = ctx.friendly_name(db, p.assigned_by)
        routing = ctx.resolve_notification_config(
            db,
            scope_id=ticket.scope_id,
            category_id=ticket.category_id,
            subcategory_id=ticket.subcategory_id,
        )
        thread = ctx.load_ticket_thread(db, ticket.id)
        sent: list[str] = []

        if routing.enable_slack:
            posted = self._post_chat(
                channel=thread.slack_channel_id or routing.slack_channel,
                text=messages.render_assigned_chat(ticket, assignee, assignor_name, forward=p.is_forward),
                thread_ts=thread.slack_thread_id,
            )
            if posted:
                sent.append("slack")

        if routing.enable_email and assignee.email:
            internal_link = messages.ticket_link(self.base_url, ticket.id, internal=True)
            subject, text, html = messages.render_assigned_email(
                ticket, assignee, assignor_name, internal_link, forward=p.is_forward
            )
            if self._send_email(
                to=[assignee.email],
                subject=subject,
                text=text,
                html=html,
                message_id=self._message_id(ticket.id, f"assigned.{event.id}"),
                in_reply_to=thread.email_thread_id,
            ):
                sent.append("email")

        if p.is_forward and routing.enable_email:
            creator = ctx.load_user_contact(db, ticket.created_by_id)
            if creator is not None and creator.email and creator.id != assignee.id:
                link = messages.ticket_link(self.base_url, ticket.id, internal=creator.is_staff)
                subject, text, html = messages.render_forwarded_email(ticket, creator, assignee, link)
                if self._send_email(
                    to=[creator.email],
                    subject=subject,
                    text=text,
                    html=html,
                    message_id=self._message_id(ticket.id, f"forwarded.{event.id}"),
                    in_reply_to=thread.email_thread_id,
                ):
                    sent.append("email_creator")
        return DispatchResult.delivered(sent)

    def _on_comment_added(self, db: Session, event: OutboxEvent, p: CommentAddedPayload) -> DispatchResult:
        if p.is_internal:
            return DispatchResult.skipped("internal_comment")
        ticket = ctx.load_ticket_context(db, p.ticket_id)
        if ticket is None:
            return DispatchResult.skipped("ticket_not_found")
        creator = ctx.load_user_contact(db, ticket.created_by_id)
        if creator is None or not creator.email:
            return DispatchResult.skipped("creator_contact_missing")
        if p.commented_by and p.commented_by == creator.id:
            return DispatchResult.skipped("own_comment")
        commenter_name = ctx.friendly_name(db, p.commented_by)
        thread = ctx.load_ticket_thread(db, ticket.id)
        link = messages.ticket_link(self.base_url, ticket.id, internal=creator.is_staff)
        subject, text, html = messages.render_comment_email(ticket, creator, commenter_name, p.comment, link)
        message_id = self._send_email(
            to=[creator.email],
            subject=subject,
            text=text,
            html=html,
            message_id=self._message_id(ticket.id, f"comment.{event.id}"),
            in_reply_to=thread.email_thread_id,
        )
        return DispatchResult.delivered(["email"] if message_id else [])

    def _on_escalated(self, db: Session, event: OutboxEvent, p: TicketEscalatedPayload) -> DispatchResult:
        # No escalation channel is defined; acknowledged so the event completes.
        logger.info(
            "notify_ticket_escalated id=%s ticket_id=%s level=%s",
            event.id,
            p.ticket_id,
            p.escalation_level,
        )
        return DispatchResult(OUTCOME_IGNORED, [], "escalation_acknowledged")


def build_dispatcher(settings: Settings | None = None) -> NotificationDispatcher:
    s = settings or get_settings()
    channels = NotificationChannels.from_settings(s)
    return NotificationDispatcher(channels, base_url=s.public_base_url, message_domain=channels.message_domain)
