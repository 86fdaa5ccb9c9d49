"""Read-only enrichment lookups for notification handlers."""
from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime

from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from apps.backend.models.notification import NotificationChannel, NotificationConfig, TicketIntegration
from apps.backend.models.ticket import Category, Subcategory, Ticket, TicketActivity, TicketStatus
from apps.backend.models.user import Role, User, STAFF_ROLES

UNKNOWN_USER = "Unknown"


@dataclass(frozen=True)
class UserContact:
    id: str
    name: str
    email: str | None = None
    role: str | None = None
    slack_user_id: str | None = None

    @property
    def is_staff(self) -> bool:
        return (self.role or "") in STAFF_ROLES


@dataclass(frozen=True)
class TicketContext:
    id: int
    number: str
    title: str
    description: str
    status: str
    status_label: str
    priority: str
    category: str
    subcategory: str | None = None
    location: str | None = None
    category_id: int | None = None
    subcategory_id: int | None = None
    scope_id: int | None = None
    created_by_id: str | None = None
    assigned_to_id: str | None = None


@dataclass(frozen=True)
class TicketThread:
    slack_channel_id: str | None = None
    slack_thread_id: str | None = None
    email_thread_id: str | None = None


@dataclass(frozen=True)
class StatusChange:
    from_status: str | None
    to_status: str | None
    comment: str | None
    actor_id: str | None
    created_at: datetime | None


@dataclass(frozen=True)
class RoutingConfig:
    enable_slack: bool = True
    enable_email: bool = True
    slack_channel: str | None = None
    slack_cc_user_ids: tuple[str, ...] = field(default_factory=tuple)
    email_recipients: tuple[str, ...] = field(default_factory=tuple)


def _as_dict(value) -> dict:
    if isinstance(value, dict):
        return value
    if isinstance(value, str) and value:
        try:
            parsed = json.loads(value)
        except ValueError:
            return {}
        return parsed if isinstance(parsed, dict) else {}
    return {}


def _as_str_tuple(value) -> tuple[str, ...]:
    if not value:
        return ()
    if isinstance(value, str):
        value = [part.strip() for part in value.split(",")]
    return tuple(str(v) for v in value if v)


def load_ticket_context(db: Session, ticket_id: int) -> TicketContext | None:
    row = db.execute(
        select(Ticket, TicketStatus.value, TicketStatus.label, Category.name, Subcategory.name)
        .outerjoin(TicketStatus, TicketStatus.id == Ticket.status_id)
        .outerjoin(Category, Category.id == Ticket.category_id)
        .outerjoin(Subcategory, Subcategory.id == Ticket.subcategory_id)
        .where(Ticket.id == ticket_id)
    ).first()
    if row is None:
        return None
    ticket, status_value, status_label, category_name, subcategory_name = row
    status = status_value or "open"
    return TicketContext(
        id=ticket.id,
        number=ticket.ticket_number or f"TKT-{ticket.id}",
        title=ticket.title or "No title",
        description=ticket.description or "",
        status=status,
        status_label=status_label or status,
        priority=ticket.priority or "medium",
        category=category_name or "Uncategorized",
        subcategory=subcategory_name,
        location=ticket.location,
        category_id=ticket.category_id,
        subcategory_id=ticket.subcategory_id,
        scope_id=ticket.scope_id,
        created_by_id=ticket.created_by,
        assigned_to_id=ticket.assigned_to,
    )


def load_user_contact(db: Session, user_id: str | None) -> UserContact | None:
    if not user_id:
        return None
    row = db.execute(
        select(User, Role.name).outerjoin(Role, Role.id == User.role_id).where(User.id == user_id)
    ).first()
    if row is None:
        return None
    user, role_name = row
    slack_user_id = db.execute(
        select(NotificationChannel.slack_user_id)
        .where(
            NotificationChannel.owner_type == "user",
            NotificationChannel.owner_id == str(user.id),
            NotificationChannel.is_active.is_(True),
            NotificationChannel.slack_user_id.is_not(None),
        )
        .order_by(NotificationChannel.priority.desc(), NotificationChannel.id.asc())
        .limit(1)
    ).scalar_one_or_none()
    return UserContact(
        id=str(user.id),
        name=user.full_name or user.email or UNKNOWN_USER,
        email=user.email,
        role=role_name,
        slack_user_id=slack_user_id,
    )


def friendly_name(db: Session, user_id: str | None) -> str:
    """Display name for an actor; the raw id only when no user row exists."""
    if not user_id:
        return UNKNOWN_USER
    contact = load_user_contact(db, user_id)
    if contact is None:
        return str(user_id)
    return contact.name


def load_ticket_thread(db: Session, ticket_id: int) -> TicketThread:
    rec = db.get(TicketIntegration, ticket_id)
    if rec is None:
        return TicketThread()
    return TicketThread(
        slack_channel_id=rec.slack_channel_id,
        slack_thread_id=rec.slack_thread_id,
        email_thread_id=rec.email_thread_id,
    )


def load_latest_status_change(db: Session, ticket_id: int, to_status: str | None = None) -> StatusChange | None:
    """Most recent status_changed entry, preferring one that moved to ``to_status``."""
    rows = db.execute(
        select(TicketActivity)
        .where(TicketActivity.ticket_id == ticket_id, TicketActivity.action == "status_changed")
        .order_by(TicketActivity.created_at.desc(), TicketActivity.id.desc())
        .limit(20)
    ).scalars().all()
    if not rows:
        return None
    chosen = rows[0]
    if to_status:
        for act in rows:
            if _as_dict(act.details).get("to") == to_status:
                chosen = act
                break
    details = _as_dict(chosen.details)
    return StatusChange(
        from_status=details.get("from"),
        to_status=details.get("to"),
        comment=(details.get("comment") or None),
        actor_id=chosen.user_id,
        created_at=chosen.created_at,
    )


def resolve_notification_config(
    db: Session,
    *,
    scope_id: int | None = None,
    category_id: int | None = None,
    subcategory_id: int | None = None,
) -> RoutingConfig:
    """Most specific active config: subcategory, then category, then scope, then global."""
    clauses = [
        (NotificationConfig.scope_id.is_(None))
        & (NotificationConfig.category_id.is_(None))
        & (NotificationConfig.subcategory_id.is_(None))
    ]
    if subcategory_id is not None:
        clauses.append(NotificationConfig.subcategory_id == subcategory_id)
    if category_id is not None:
        clauses.append(
            (NotificationConfig.category_id == category_id) & (NotificationConfig.subcategory_id.is_(None))
        )
    if scope_id is not None:
        clauses.append(
            (NotificationConfig.scope_id == scope_id)
            & (NotificationConfig.category_id.is_(None))
            & (NotificationConfig.subcategory_id.is_(None))
        )
    rows = db.execute(
        select(NotificationConfig)
        .where(NotificationConfig.is_active.is_(True), or_(*clauses))
        .order_by(NotificationConfig.priority.desc(), NotificationConfig.id.asc())
    ).scalars().all()

    def rank(cfg: NotificationConfig) -> int:
        if cfg.subcategory_id is not None:
            return 0
        if cfg.category_id is not None:
            return 1
        if cfg.scope_id is not None:
            return 2
        return 3

    if not rows:
        return RoutingConfig()
    best = min(rows, key=rank)
    return RoutingConfig(
        enable_slack=bool(best.enable_slack),
        enable_email=bool(best.enable_email),
        slack_channel=best.slack_channel or None,
        slack_cc_user_ids=_as_str_tuple(best.slack_cc_user_ids),
        email_recipients=_as_str_tuple(best.email_recipients),
    )
