"""Notification outbox events."""
from datetime import datetime
from sqlalchemy import Column, Integer, String, DateTime, Text, Index
from sqlalchemy.dialects.postgresql import JSONB

from apps.backend.database import Base

OUTBOX_PENDING = "pending"
OUTBOX_PROCESSING = "processing"
OUTBOX_COMPLETED = "completed"
OUTBOX_DEAD_LETTER = "dead_letter"

OUTBOX_STATUSES = (OUTBOX_PENDING, OUTBOX_PROCESSING, OUTBOX_COMPLETED, OUTBOX_DEAD_LETTER)


class OutboxEvent(Base):
    __tablename__ = "outbox_events"

    id = Column(Integer, primary_key=True, index=True)
    event_type = Column(String(100), nullable=False)  # ticket.created, ticket.assigned, ...
    aggregate_type = Column(String(50), nullable=True)  # ticket
    aggregate_id = Column(String(100), nullable=True)
    payload = Column(JSONB, nullable=False, default=dict)

    status = Column(String(32), nullable=False, default=OUTBOX_PENDING)
    priority = Column(Integer, nullable=False, default=5)  # lower = claimed first
    attempts = Column(Integer, nullable=False, default=0)
    max_attempts = Column(Integer, nullable=False, default=3)
    last_error = Column(Text, nullable=True)
    idempotency_key = Column(String(255), nullable=True, unique=True)

    scheduled_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    processing_started_at = Column(DateTime, nullable=True)
    processed_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    created_by = Column(String(100), nullable=True)

    __table_args__ = (
        Index("ix_outbox_events_claim", "status", "scheduled_at", "priority"),
        Index("ix_outbox_events_status", "status"),
        Index("ix_outbox_events_scheduled_at", "scheduled_at"),
        Index("ix_outbox_events_aggregate", "aggregate_type", "aggregate_id"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "event_type": self.event_type,
            "aggregate_type": self.aggregate_type,
            "aggregate_id": self.aggregate_id,
            "payload": self.payload,
            "status": self.status,
            "priority": self.priority,
            "attempts": self.attempts,
            "max_attempts": self.max_attempts,
            "last_error": self.last_error,
            "idempotency_key": self.idempotency_key,
            "scheduled_at": self.scheduled_at.isoformat() if self.scheduled_at else None,
            "processing_started_at": (
                self.processing_started_at.isoformat() if self.processing_started_at else None
            ),
            "processed_at": self.processed_at.isoformat() if self.processed_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "created_by": self.created_by,
        }
