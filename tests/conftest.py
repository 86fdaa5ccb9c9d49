"""Shared fixtures: in-memory database, recording channel fakes and domain seeding."""
from datetime import datetime

import pytest

from apps.backend.database import Base, get_session_factory, get_test_engine
from apps.backend.models.outbox import OutboxEvent
from apps.backend.models.ticket import Category, Ticket, TicketStatus
from apps.backend.models.user import Role, User
from apps.backend.models.notification import NotificationChannel
from apps.backend.services.notification_errors import ChannelNotConfigured, SlackApiError

T0 = datetime(2026, 1, 5, 12, 0, 0)


@pytest.fixture
def engine():
    eng = get_test_engine()
    Base.metadata.create_all(eng)
    try:
        yield eng
    finally:
        eng.dispose()


@pytest.fixture
def session_factory(engine):
    return get_session_factory(engine)


@pytest.fixture
def test_db_session(session_factory):
    db = session_factory()
    try:
        yield db
    finally:
        db.close()


class FakeChannels:
    """Records every send; ``slack``/``email`` False makes that channel unconfigured."""

    def __init__(self, slack: bool = True, email: bool = True, slack_error: Exception | None = None):
        self.slack = slack
        self.email = email
        self.slack_error = slack_error
        self.chat_calls: list[dict] = []
        self.email_calls: list[dict] = []

    @property
    def calls(self) -> int:
        return len(self.chat_calls) + len(self.email_calls)

    def post_chat(self, *, channel, text, blocks=None, thread_ts=None):
        if not self.slack:
            raise ChannelNotConfigured("slack")
        if self.slack_error is not None:
            raise self.slack_error
        self.chat_calls.append({"channel": channel, "text": text, "blocks": blocks, "thread_ts": thread_ts})
        return "C0TICKETS", f"1700000000.{len(self.chat_calls):06d}"

    def send_email(self, *, to, subject, text, html="", message_id=None, in_reply_to=None):
        if not self.email:
            raise ChannelNotConfigured("email")
        self.email_calls.append(
            {
                "to": list(to),
                "subject": subject,
                "text": text,
                "html": html,
                "message_id": message_id,
                "in_reply_to": in_reply_to,
            }
        )
        return message_id or f"<generated-{len(self.email_calls)}@test>"


@pytest.fixture
def fake_channels():
    return FakeChannels()


@pytest.fixture
def failing_slack_channels():
    return FakeChannels(slack_error=SlackApiError("slack_api_error", "channel_not_found"))


def add_user(db, user_id: str, role_name: str, *, full_name=None, email=None, slack_user_id=None) -> User:
    role = db.query(Role).filter(Role.name == role_name).one_or_none()
    if role is None:
        role = Role(name=role_name)
        db.add(role)
        db.flush()
    user = User(
        id=user_id,
        email=email or f"{user_id}@campus.test",
        full_name=full_name,
        role_id=role.id,
    )
    db.add(user)
    if slack_user_id:
        db.add(NotificationChannel(owner_type="user", owner_id=user_id, channel_type="slack", slack_user_id=slack_user_id))
    db.commit()
    return user


def add_ticket(db, *, created_by: str | None, assigned_to: str | None = None, title="Wi-Fi down in hostel B") -> Ticket:
    status = db.query(TicketStatus).filter(TicketStatus.value == "open").one_or_none()
    if status is None:
        status = TicketStatus(value="open", label="Open")
        db.add(status)
    category = db.query(Category).filter(Category.slug == "network").one_or_none()
    if category is None:
        category = Category(name="Network", slug="network")
        db.add(category)
    db.flush()
    ticket = Ticket(
        ticket_number=None,
        title=title,
        description="No connectivity since morning.",
        priority="high",
        category_id=category.id,
        created_by=created_by,
        assigned_to=assigned_to,
        status_id=status.id,
    )
    db.add(ticket)
    db.commit()
    return ticket


def add_event(db, event_type: str, payload: dict, **fields) -> OutboxEvent:
    fields.setdefault("scheduled_at", T0)
    fields.setdefault("created_at", T0)
    event = OutboxEvent(event_type=event_type, payload=payload, **fields)
    db.add(event)
    db.commit()
    return event


class Seed:
    t0 = T0
    add_user = staticmethod(add_user)
    add_ticket = staticmethod(add_ticket)
    add_event = staticmethod(add_event)
    channels = FakeChannels


@pytest.fixture
def seed():
    return Seed
