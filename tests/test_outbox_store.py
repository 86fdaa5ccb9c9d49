"""Outbox store selection and transition tests."""
from datetime import timedelta

import pytest

from apps.backend.models.outbox import OutboxEvent
from apps.backend.services import outbox_store


@pytest.mark.timeout(10)
def test_claim_orders_by_priority_then_age(test_db_session, seed):
    t0 = seed.t0
    low = seed.add_event(test_db_session, "ticket.created", {"ticketId": 1}, priority=5)
    urgent_new = seed.add_event(
        test_db_session, "ticket.created", {"ticketId": 2}, priority=1, created_at=t0 + timedelta(seconds=5)
    )
    urgent_old = seed.add_event(test_db_session, "ticket.created", {"ticketId": 3}, priority=1)

    claimed = outbox_store.claim_batch(test_db_session, t0 + timedelta(minutes=1), 10)

    assert [e.id for e in claimed] == [urgent_old.id, urgent_new.id, low.id]
    # Selection alone does not take ownership.
    assert all(e.status == "pending" for e in claimed)
    assert outbox_store.count_due(test_db_session, t0 + timedelta(minutes=1)) == 3


@pytest.mark.timeout(10)
def test_claim_skips_future_exhausted_and_terminal_rows(test_db_session, seed):
    t0 = seed.t0
    due = seed.add_event(test_db_session, "ticket.created", {"ticketId": 1})
    seed.add_event(test_db_session, "ticket.created", {"ticketId": 2}, scheduled_at=t0 + timedelta(hours=1))
    seed.add_event(test_db_session, "ticket.created", {"ticketId": 3}, attempts=3, max_attempts=3)
    seed.add_event(test_db_session, "ticket.created", {"ticketId": 4}, status="completed")
    seed.add_event(test_db_session, "ticket.created", {"ticketId": 5}, status="dead_letter", attempts=3)
    seed.add_event(test_db_session, "ticket.created", {"ticketId": 6}, status="processing", processing_started_at=t0)

    assert outbox_store.count_due(test_db_session, t0) == 1
    claimed = outbox_store.claim_batch(test_db_session, t0, 10)
    assert [e.id for e in claimed] == [due.id]
    assert outbox_store.claim_batch(test_db_session, t0, 0) == []


@pytest.mark.timeout(10)
def test_overlapping_runs_never_both_own_a_row(test_db_session, seed):
    for i in range(5):
        seed.add_event(test_db_session, "ticket.created", {"ticketId": i})

    first = outbox_store.claim_batch(test_db_session, seed.t0, 3)
    second = outbox_store.claim_batch(test_db_session, seed.t0, 3)
    assert [e.id for e in first] == [e.id for e in second]

    won = [outbox_store.mark_processing(test_db_session, e.id, seed.t0) for e in first]
    lost = [outbox_store.mark_processing(test_db_session, e.id, seed.t0) for e in second]

    assert won == [True, True, True]
    assert lost == [False, False, False]
    assert len(outbox_store.claim_batch(test_db_session, seed.t0, 3)) == 2


@pytest.mark.timeout(10)
def test_mark_processing_refuses_rows_that_are_not_due(test_db_session, seed):
    t0 = seed.t0
    later = seed.add_event(test_db_session, "ticket.created", {"ticketId": 1}, scheduled_at=t0 + timedelta(minutes=2))
    spent = seed.add_event(test_db_session, "ticket.created", {"ticketId": 2}, attempts=3, max_attempts=3)

    assert outbox_store.mark_processing(test_db_session, later.id, t0) is False
    assert outbox_store.mark_processing(test_db_session, spent.id, t0) is False
    assert outbox_store.mark_processing(test_db_session, later.id, t0 + timedelta(minutes=2)) is True


@pytest.mark.timeout(10)
def test_release_claim_returns_row_to_pending_without_spending_an_attempt(test_db_session, seed):
    t0 = seed.t0
    event = seed.add_event(test_db_session, "ticket.created", {"ticketId": 1})

    assert outbox_store.release_claim(test_db_session, event.id) is False
    assert outbox_store.mark_processing(test_db_session, event.id, t0) is True
    assert outbox_store.release_claim(test_db_session, event.id) is True

    test_db_session.expire_all()
    fresh = test_db_session.get(OutboxEvent, event.id)
    assert (fresh.status, fresh.attempts, fresh.processing_started_at) == ("pending", 0, None)
    assert [e.id for e in outbox_store.claim_batch(test_db_session, t0, 10)] == [event.id]


@pytest.mark.timeout(10)
def test_transitions_are_guarded_by_source_status(test_db_session, seed):
    t0 = seed.t0
    event = seed.add_event(test_db_session, "ticket.created", {"ticketId": 1})

    # Not yet processing: nothing to complete.
    assert outbox_store.mark_completed(test_db_session, event.id, t0) is False
    assert outbox_store.mark_processing(test_db_session, event.id, t0) is True
    assert outbox_store.mark_processing(test_db_session, event.id, t0) is False
    assert outbox_store.mark_completed(test_db_session, event.id, t0) is True
    assert outbox_store.mark_completed(test_db_session, event.id, t0) is False
    assert outbox_store.mark_retry(test_db_session, event.id, t0, "late failure") is False
    assert outbox_store.mark_dead_letter(test_db_session, event.id, "late failure") is False

    test_db_session.expire_all()
    fresh = test_db_session.get(OutboxEvent, event.id)
    assert fresh.status == "completed"
    assert fresh.attempts == 0
    assert fresh.processed_at == t0
    assert fresh.last_error is None


@pytest.mark.timeout(10)
def test_retry_and_dead_letter_increment_attempts(test_db_session, seed):
    t0 = seed.t0
    event = seed.add_event(test_db_session, "ticket.created", {"ticketId": 1})
    outbox_store.mark_processing(test_db_session, event.id, t0)
    assert outbox_store.mark_retry(test_db_session, event.id, t0 + timedelta(minutes=2), "x" * 5000) is True

    test_db_session.expire_all()
    fresh = test_db_session.get(OutboxEvent, event.id)
    assert fresh.status == "pending"
    assert fresh.attempts == 1
    assert fresh.scheduled_at == t0 + timedelta(minutes=2)
    assert len(fresh.last_error) == 1000

    outbox_store.mark_processing(test_db_session, event.id, t0 + timedelta(minutes=2))
    assert outbox_store.mark_dead_letter(test_db_session, event.id, "smtp_error: refused") is True
    test_db_session.expire_all()
    fresh = test_db_session.get(OutboxEvent, event.id)
    assert fresh.status == "dead_letter"
    assert fresh.attempts == 2
    assert fresh.last_error == "smtp_error: refused"


@pytest.mark.timeout(10)
def test_inspection_queries(test_db_session, seed):
    t0 = seed.t0
    seed.add_event(test_db_session, "ticket.created", {"ticketId": 1})
    seed.add_event(test_db_session, "ticket.assigned", {"ticketId": 1, "assignedTo": "u1"})
    stuck = seed.add_event(
        test_db_session,
        "ticket.created",
        {"ticketId": 2},
        status="processing",
        processing_started_at=t0 - timedelta(hours=1),
    )
    seed.add_event(
        test_db_session,
        "ticket.created",
        {"ticketId": 3},
        status="processing",
        processing_started_at=t0 - timedelta(seconds=30),
    )

    assert outbox_store.status_counts(test_db_session) == {"pending": 2, "processing": 2}
    assert [e.id for e in outbox_store.list_stuck_events(test_db_session, t0, 600)] == [stuck.id]
    assigned = outbox_store.list_events(test_db_session, event_type="ticket.assigned")
    assert len(assigned) == 1
    assert assigned[0].payload["assignedTo"] == "u1"
    assert len(outbox_store.list_events(test_db_session, status="processing", limit=1)) == 1
    assert outbox_store.get_event(test_db_session, stuck.id).to_dict()["status"] == "processing"
    assert outbox_store.get_event(test_db_session, 9999) is None


@pytest.mark.timeout(10)
def test_enqueue_deduplicates_by_idempotency_key(test_db_session):
    first = outbox_store.enqueue_outbox_event(
        test_db_session,
        "ticket.created",
        {"ticketId": 7},
        aggregate_type="ticket",
        aggregate_id=7,
        idempotency_key="ticket.created:7",
        created_by="producer-test",
    )
    second = outbox_store.enqueue_outbox_event(
        test_db_session, "ticket.created", {"ticketId": 7}, idempotency_key="ticket.created:7"
    )
    test_db_session.commit()

    assert first.id == second.id
    assert first.status == "pending"
    assert first.priority == 5
    assert first.max_attempts == 3
    assert first.aggregate_id == "7"
    assert test_db_session.query(OutboxEvent).count() == 1
