"""Outbox batch processor: claim, dispatch, then complete, retry or dead-letter."""
from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable

from sqlalchemy.exc import SQLAlchemyError

from apps.backend.config import Settings, get_settings
from apps.backend.database import get_session_factory
from apps.backend.services import outbox_store as store
from apps.backend.services.notification_dispatch import build_dispatcher
from apps.backend.services.notification_errors import OutboxStoreError

logger = logging.getLogger(__name__)
_OUTBOX_LOCK_KEY = "outbox:process:lock"


def backoff_delay(attempt: int, base_minutes: int = 1) -> timedelta:
    """Delay before retry number ``attempt``: base * 2**attempt minutes."""
    return timedelta(minutes=max(0, int(base_minutes)) * (2 ** max(0, int(attempt))))


@dataclass
class OutboxRunResult:
    processed: int = 0
    errors: int = 0
    unprocessed: int = 0
    processed_ids: list[int] = field(default_factory=list)
    dead_lettered_ids: list[int] = field(default_factory=list)
    skipped: str | None = None

    def to_response(self) -> dict:
        if self.skipped:
            message = "Skipped: another run in progress"
        else:
            message = f"Processed {self.processed} events"
        return {
            "success": True,
            "processed": self.processed,
            "errors": self.errors,
            "unprocessed": self.unprocessed,
            "processedIds": list(self.processed_ids),
            "message": message,
        }


def _release(db, event_id: int) -> None:
    try:
        db.rollback()
        if store.release_claim(db, event_id):
            logger.warning("outbox_claim_released id=%s", event_id)
    except SQLAlchemyError:
        logger.exception("outbox_claim_release_failed id=%s", event_id)


def _finish(db, dispatcher, event, result: OutboxRunResult, backoff_base_minutes: int, clock) -> None:
    event_id = event.id
    event_type = event.event_type
    attempts = int(event.attempts or 0)
    max_attempts = int(event.max_attempts or 0)
    try:
        dispatcher.dispatch(db, event)
    except Exception as exc:
        db.rollback()
        error = str(exc) or exc.__class__.__name__
        next_attempts = attempts + 1
        if next_attempts >= max_attempts:
            store.mark_dead_letter(db, event_id, error)
            result.errors += 1
            result.dead_lettered_ids.append(event_id)
            logger.error(
                "outbox_event_dead_letter id=%s type=%s attempts=%s error=%s",
                event_id,
                event_type,
                next_attempts,
                error[:200],
            )
        else:
            retry_at = clock() + backoff_delay(next_attempts, backoff_base_minutes)
            store.mark_retry(db, event_id, retry_at, error)
            result.errors += 1
            logger.warning(
                "outbox_event_failed id=%s type=%s attempts=%s retry_at=%s error=%s",
                event_id,
                event_type,
                next_attempts,
                retry_at.isoformat(),
                error[:200],
            )
        return
    store.mark_completed(db, event_id, clock())
    result.processed += 1
    result.processed_ids.append(event_id)


def process_outbox_batch(
    db_factory,
    dispatcher,
    *,
    now: datetime | None = None,
    batch_size: int = 10,
    max_per_run: int = 50,
    backoff_base_minutes: int = 1,
    clock: Callable[[], datetime] = datetime.utcnow,
) -> OutboxRunResult:
    """Handle at most ``max_per_run`` due events, ``batch_size`` per selection.

    Each event is claimed right before its dispatch. If recording the outcome
    fails, the claim is released back to pending and the error propagates, so
    the rest of the batch stays untouched for the next run.
    """
    started = now or clock()
    result = OutboxRunResult()
    with db_factory() as db:
        while result.processed + result.errors < max_per_run:
            limit = min(batch_size, max_per_run - (result.processed + result.errors))
            events = store.claim_batch(db, started, limit)
            if not events:
                break
            for event in events:
                event_id = event.id
                if not store.mark_processing(db, event_id, started):
                    logger.info("outbox_claim_contended id=%s", event_id)
                    continue
                db.refresh(event)
                try:
                    _finish(db, dispatcher, event, result, backoff_base_minutes, clock)
                except Exception:
                    _release(db, event_id)
                    raise
        result.unprocessed = store.count_due(db, started)
    logger.info(
        "outbox_run_done processed=%s errors=%s unprocessed=%s",
        result.processed,
        result.errors,
        result.unprocessed,
    )
    return result


def run_outbox_cycle(
    settings: Settings | None = None,
    dispatcher=None,
    now: datetime | None = None,
) -> OutboxRunResult:
    """Single guarded cycle with an optional Redis overlap lock."""
    s = settings or get_settings()
    lock = None
    token = uuid.uuid4().hex
    if s.outbox_lock_enabled:
        try:
            from redis import Redis

            r = Redis(host=s.redis_host, port=s.redis_port, socket_connect_timeout=2, socket_timeout=2)
            if not r.set(_OUTBOX_LOCK_KEY, token, nx=True, ex=max(5, int(s.outbox_lock_ttl_seconds))):
                logger.info("outbox_run_skipped reason=lock_not_acquired")
                return OutboxRunResult(skipped="lock_not_acquired")
            lock = r
        except Exception:
            # Redis down: run unguarded, claims are compare-and-set.
            logger.exception("outbox_lock_unavailable")
    try:
        return process_outbox_batch(
            get_session_factory(),
            dispatcher or build_dispatcher(s),
            now=now,
            batch_size=s.outbox_batch_size,
            max_per_run=s.outbox_max_per_run,
            backoff_base_minutes=s.outbox_backoff_base_minutes,
        )
    except SQLAlchemyError as e:
        logger.exception("outbox_run_failed")
        raise OutboxStoreError(str(e)[:500]) from e
    finally:
        if lock is not None:
            try:
                if (lock.get(_OUTBOX_LOCK_KEY) or b"").decode() == token:
                    lock.delete(_OUTBOX_LOCK_KEY)
            except Exception:
                logger.exception("outbox_lock_release_failed")
