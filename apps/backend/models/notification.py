"""Notification routing config and per-ticket thread references."""
from datetime import datetime
from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey, Index
from sqlalchemy.dialects.postgresql import JSONB

from apps.backend.database import Base


class NotificationConfig(Base):
    """Channel routing; subcategory > category > scope > global."""

    __tablename__ = "notification_config"

    id = Column(Integer, primary_key=True, index=True)
    scope_id = Column(Integer, nullable=True, index=True)
    category_id = Column(Integer, ForeignKey("categories.id", ondelete="CASCADE"), nullable=True, index=True)
    subcategory_id = Column(Integer, ForeignKey("subcategories.id", ondelete="CASCADE"), nullable=True, index=True)
    enable_slack = Column(Boolean, nullable=False, default=True)
    enable_email = Column(Boolean, nullable=False, default=True)
    slack_channel = Column(String(255), nullable=True)
    slack_cc_user_ids = Column(JSONB, nullable=True)
    email_recipients = Column(JSONB, nullable=True)
    priority = Column(Integer, nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class NotificationChannel(Base):
    """Channel handles per owner; owner_type=user carries a person's Slack id."""

    __tablename__ = "notification_channels"

    id = Column(Integer, primary_key=True, index=True)
    owner_type = Column(String(32), nullable=False)  # user, category, scope, ticket, ...
    owner_id = Column(String(255), nullable=False)
    channel_type = Column(String(32), nullable=False, default="slack")
    slack_channel_id = Column(String(255), nullable=True)
    slack_user_id = Column(String(128), nullable=True)
    priority = Column(Integer, default=0)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (Index("ix_notification_channels_owner", "owner_type", "owner_id"),)


class TicketIntegration(Base):
    __tablename__ = "ticket_integrations"

    ticket_id = Column(Integer, ForeignKey("tickets.id", ondelete="CASCADE"), primary_key=True)
    slack_channel_id = Column(String(255), nullable=True)
    slack_thread_id = Column(String(255), nullable=True, index=True)
    email_thread_id = Column(String(255), nullable=True, index=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
