"""Portal users and roles (read-only mapping, owned by the portal schema)."""
from datetime import datetime
from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey, Text
from sqlalchemy.orm import relationship

from apps.backend.database import Base

ROLE_SUPER_ADMIN = "super_admin"
ROLE_SNR_ADMIN = "snr_admin"
ROLE_ADMIN = "admin"
ROLE_COMMITTEE = "committee"
ROLE_STUDENT = "student"

STAFF_ROLES = frozenset({ROLE_SUPER_ADMIN, ROLE_SNR_ADMIN, ROLE_ADMIN})


class Role(Base):
    __tablename__ = "roles"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(50), unique=True, nullable=False)
    description = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)


class User(Base):
    __tablename__ = "users"

    id = Column(String(100), primary_key=True)  # auth provider user id
    external_id = Column(String(100), unique=True, nullable=True)
    email = Column(String(255), unique=True, nullable=False)
    phone = Column(String(20), nullable=True)
    full_name = Column(String(255), nullable=True)
    role_id = Column(Integer, ForeignKey("roles.id"), nullable=True, index=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    role = relationship("Role")
