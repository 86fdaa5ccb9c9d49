"""SQLAlchemy models."""
from apps.backend.models.outbox import OutboxEvent
from apps.backend.models.user import Role, User
from apps.backend.models.ticket import TicketStatus, Category, Subcategory, Ticket, TicketActivity
from apps.backend.models.notification import NotificationConfig, NotificationChannel, TicketIntegration

__all__ = [
    "OutboxEvent",
    "Role",
    "User",
    "TicketStatus",
    "Category",
    "Subcategory",
    "Ticket",
    "TicketActivity",
    "NotificationConfig",
    "NotificationChannel",
    "TicketIntegration",
]
