"""Admin endpoints for outbox inspection."""
from datetime import datetime

from fastapi import APIRouter, Depends, Query, HTTPException
from sqlalchemy.orm import Session

from apps.backend.deps import get_db
from apps.backend.auth import get_current_admin
from apps.backend.config import get_settings
from apps.backend.models.outbox import OUTBOX_STATUSES
from apps.backend.services import outbox_store

router = APIRouter()


@router.get("")
def list_outbox(
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
    status: str | None = Query(None),
    event_type: str | None = Query(None),
    db: Session = Depends(get_db),
    _: dict = Depends(get_current_admin),
):
    if status and status not in OUTBOX_STATUSES:
        raise HTTPException(status_code=400, detail=f"Unknown status: {status}")
    items = outbox_store.list_events(db, status=status, event_type=event_type, skip=skip, limit=limit)
    return {"items": [o.to_dict() for o in items]}


@router.get("/stats")
def outbox_stats(
    db: Session = Depends(get_db),
    _: dict = Depends(get_current_admin),
):
    s = get_settings()
    now = datetime.utcnow()
    counts = {status: 0 for status in OUTBOX_STATUSES}
    counts.update(outbox_store.status_counts(db))
    stuck = outbox_store.list_stuck_events(db, now, s.outbox_stuck_seconds)
    return {
        "counts": counts,
        "due": outbox_store.count_due(db, now),
        "stuck": len(stuck),
    }


@router.get("/stuck")
def outbox_stuck(
    stale_seconds: int | None = Query(None, ge=1),
    limit: int = Query(100, ge=1, le=500),
    db: Session = Depends(get_db),
    _: dict = Depends(get_current_admin),
):
    s = get_settings()
    items = outbox_store.list_stuck_events(
        db, datetime.utcnow(), stale_seconds or s.outbox_stuck_seconds, limit=limit
    )
    return {"items": [o.to_dict() for o in items]}


@router.get("/{id}")
def get_outbox_event(
    id: int,
    db: Session = Depends(get_db),
    _: dict = Depends(get_current_admin),
):
    o = outbox_store.get_event(db, id)
    if not o:
        raise HTTPException(status_code=404, detail="Outbox event not found")
    return o.to_dict()
