"""Ticket tables read by notification enrichment (owned by the portal schema)."""
from datetime import datetime
from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey, Text, Index
from sqlalchemy.dialects.postgresql import JSONB

from apps.backend.database import Base


class TicketStatus(Base):
    __tablename__ = "ticket_statuses"

    id = Column(Integer, primary_key=True, index=True)
    value = Column(String(50), unique=True, nullable=False)  # open, in_progress, resolved, ...
    label = Column(String(100), nullable=False)
    is_final = Column(Boolean, nullable=False, default=False)
    is_active = Column(Boolean, nullable=False, default=True)


class Category(Base):
    __tablename__ = "categories"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False)
    slug = Column(String(100), nullable=False, unique=True)
    scope_id = Column(Integer, nullable=True, index=True)
    is_active = Column(Boolean, nullable=False, default=True)


class Subcategory(Base):
    __tablename__ = "subcategories"

    id = Column(Integer, primary_key=True, index=True)
    category_id = Column(Integer, ForeignKey("categories.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(100), nullable=False)
    slug = Column(String(100), nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)


class Ticket(Base):
    __tablename__ = "tickets"

    id = Column(Integer, primary_key=True, index=True)
    ticket_number = Column(String(50), unique=True, nullable=True)
    title = Column(String(255), nullable=True)
    description = Column(Text, nullable=True)
    location = Column(String(500), nullable=True)
    priority = Column(String(20), nullable=True, default="medium")
    category_id = Column(Integer, ForeignKey("categories.id"), nullable=True, index=True)
    subcategory_id = Column(Integer, ForeignKey("subcategories.id"), nullable=True, index=True)
    scope_id = Column(Integer, nullable=True, index=True)
    created_by = Column(String(100), ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    assigned_to = Column(String(100), ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    status_id = Column(Integer, ForeignKey("ticket_statuses.id"), nullable=True)
    metadata_json = Column("metadata", JSONB, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class TicketActivity(Base):
    __tablename__ = "ticket_activity"

    id = Column(Integer, primary_key=True, index=True)
    ticket_id = Column(Integer, ForeignKey("tickets.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(String(100), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    action = Column(String(50), nullable=False)  # status_changed, assigned, comment, ...
    details = Column(JSONB, nullable=True)
    visibility = Column(String(20), default="student_visible")
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        Index("ix_ticket_activity_ticket", "ticket_id"),
        Index("ix_ticket_activity_created_at", "created_at"),
    )
