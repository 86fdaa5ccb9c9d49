"""Outbox store: due-event selection and single-row lifecycle transitions.

Every transition is a guarded ``UPDATE ... WHERE id = :id AND status = :expected``
committed on its own, so repeating one is a no-op and a crash mid-batch leaves
already finished rows finished and the rest pending. Rows are claimed one at a
time by ``mark_processing`` just before dispatch, so two overlapping runs never
both own a row.
"""
from __future__ import annotations

from datetime import datetime, timedelta

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from apps.backend.config import get_settings
from apps.backend.models.outbox import (
    OutboxEvent,
    OUTBOX_COMPLETED,
    OUTBOX_DEAD_LETTER,
    OUTBOX_PENDING,
    OUTBOX_PROCESSING,
)

_ERROR_MAX_LEN = 1000


def _due_clauses(now: datetime):
    return (
        OutboxEvent.status == OUTBOX_PENDING,
        OutboxEvent.scheduled_at <= now,
        OutboxEvent.attempts < OutboxEvent.max_attempts,
    )


def _transition(db: Session, event_id: int, expected: str, *extra, **values) -> bool:
    res = db.execute(
        update(OutboxEvent)
        .where(OutboxEvent.id == event_id, OutboxEvent.status == expected, *extra)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    return res.rowcount == 1


def claim_batch(db: Session, now: datetime, batch_size: int) -> list[OutboxEvent]:
    """Up to ``batch_size`` due events, oldest highest-priority first.

    Rows stay ``pending``; the caller owns one only after ``mark_processing``
    returns True for it.
    """
    if batch_size <= 0:
        return []
    events = list(
        db.execute(
            select(OutboxEvent)
            .where(*_due_clauses(now))
            .order_by(OutboxEvent.priority.asc(), OutboxEvent.created_at.asc(), OutboxEvent.id.asc())
            .limit(batch_size)
            .execution_options(populate_existing=True)
        ).scalars().all()
    )
    db.commit()
    return events


def mark_processing(db: Session, event_id: int, now: datetime) -> bool:
    """CAS a due ``pending`` row to ``processing``; False when another run got there first."""
    ok = _transition(
        db,
        event_id,
        OUTBOX_PENDING,
        OutboxEvent.scheduled_at <= now,
        OutboxEvent.attempts < OutboxEvent.max_attempts,
        status=OUTBOX_PROCESSING,
        processing_started_at=now,
    )
    db.commit()
    return ok


def release_claim(db: Session, event_id: int) -> bool:
    """Hand an unfinished claim back to ``pending`` without spending an attempt."""
    ok = _transition(db, event_id, OUTBOX_PROCESSING, status=OUTBOX_PENDING, processing_started_at=None)
    db.commit()
    return ok


def mark_completed(db: Session, event_id: int, now: datetime) -> bool:
    ok = _transition(db, event_id, OUTBOX_PROCESSING, status=OUTBOX_COMPLETED, processed_at=now)
    db.commit()
    return ok


def mark_retry(db: Session, event_id: int, next_scheduled_at: datetime, error: str) -> bool:
    ok = _transition(
        db,
        event_id,
        OUTBOX_PROCESSING,
        status=OUTBOX_PENDING,
        attempts=OutboxEvent.attempts + 1,
        scheduled_at=next_scheduled_at,
        last_error=(error or "")[:_ERROR_MAX_LEN],
    )
    db.commit()
    return ok


def mark_dead_letter(db: Session, event_id: int, error: str) -> bool:
    ok = _transition(
        db,
        event_id,
        OUTBOX_PROCESSING,
        status=OUTBOX_DEAD_LETTER,
        attempts=OutboxEvent.attempts + 1,
        last_error=(error or "")[:_ERROR_MAX_LEN],
    )
    db.commit()
    return ok


def count_due(db: Session, now: datetime) -> int:
    return int(db.execute(select(func.count(OutboxEvent.id)).where(*_due_clauses(now))).scalar_one())


def status_counts(db: Session) -> dict[str, int]:
    rows = db.execute(select(OutboxEvent.status, func.count(OutboxEvent.id)).group_by(OutboxEvent.status)).all()
    return {str(status): int(count) for status, count in rows}


def list_events(
    db: Session,
    *,
    status: str | None = None,
    event_type: str | None = None,
    skip: int = 0,
    limit: int = 100,
) -> list[OutboxEvent]:
    q = select(OutboxEvent)
    if status:
        q = q.where(OutboxEvent.status == status)
    if event_type:
        q = q.where(OutboxEvent.event_type == event_type)
    q = q.order_by(OutboxEvent.id.desc()).offset(skip).limit(limit)
    return list(db.execute(q).scalars().all())


def get_event(db: Session, event_id: int) -> OutboxEvent | None:
    return db.get(OutboxEvent, event_id)


def list_stuck_events(db: Session, now: datetime, stale_seconds: int, limit: int = 100) -> list[OutboxEvent]:
    """Events left in processing longer than ``stale_seconds``; reported, never requeued."""
    cutoff = now - timedelta(seconds=max(1, int(stale_seconds)))
    return list(
        db.execute(
            select(OutboxEvent)
            .where(
                OutboxEvent.status == OUTBOX_PROCESSING,
                OutboxEvent.processing_started_at < cutoff,
            )
            .order_by(OutboxEvent.processing_started_at.asc())
            .limit(limit)
        ).scalars().all()
    )


def enqueue_outbox_event(
    db: Session,
    event_type: str,
    payload: dict,
    *,
    aggregate_type: str | None = None,
    aggregate_id: str | int | None = None,
    priority: int | None = None,
    max_attempts: int | None = None,
    scheduled_at: datetime | None = None,
    idempotency_key: str | None = None,
    created_by: str | None = None,
) -> OutboxEvent:
    """Add an event to the caller's unit of work; the caller commits."""
    if idempotency_key:
        existing = db.execute(
            select(OutboxEvent).where(OutboxEvent.idempotency_key == idempotency_key)
        ).scalar_one_or_none()
        if existing is not None:
            return existing
    s = get_settings()
    now = datetime.utcnow()
    event = OutboxEvent(
        event_type=event_type,
        aggregate_type=aggregate_type,
        aggregate_id=str(aggregate_id) if aggregate_id is not None else None,
        payload=payload or {},
        status=OUTBOX_PENDING,
        priority=s.outbox_default_priority if priority is None else int(priority),
        attempts=0,
        max_attempts=s.outbox_max_attempts if max_attempts is None else int(max_attempts),
        idempotency_key=idempotency_key,
        scheduled_at=scheduled_at or now,
        created_at=now,
        created_by=created_by,
    )
    db.add(event)
    db.flush()
    return event
