"""
SQLAlchemy models for the subscription reconciler.
"""
from __future__ import annotations

import uuid

from sqlalchemy import JSON, Boolean, Column, DateTime, Float, Index, Integer, String, Text
from sqlalchemy.orm import declarative_base
from sqlalchemy.sql import func

Base = declarative_base()


class UserRecord(Base):
    __tablename__ = "users"

    id = Column(String(64), primary_key=True)
    display_name = Column(Text)
    is_pro = Column(Boolean, default=False, nullable=False, index=True)
    subscription_id = Column(String(128))
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


class SubscriptionRecord(Base):
    __tablename__ = "subscriptions"

    id = Column(String(128), primary_key=True)
    user_id = Column(String(64), index=True)
    source = Column(String(32), nullable=False)
    status = Column(String(32), nullable=False)
    # Billing provider only.
    frequency = Column(String(32))
    price = Column(Float)
    currency = Column(String(8))
    last_payment = Column(JSON)
    date_created = Column(DateTime(timezone=True))
    date_updated = Column(DateTime(timezone=True))
    date_expiry = Column(DateTime(timezone=True))

    __table_args__ = (
        Index("ix_subscriptions_source_status", "source", "status"),
    )


class RoutineLog(Base):
    __tablename__ = "routine_logs"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    job_name = Column(Text)
    routine_name = Column(Text, nullable=False)
    action = Column(Text, nullable=False)
    status = Column(Text)
    message = Column(Text)
    error_details = Column(Text)
    execution_time_ms = Column(Integer)
    meta = Column("metadata", JSON, default=dict)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class JobSetting(Base):
    __tablename__ = "job_settings"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    name = Column(String(64), nullable=False, unique=True)
    routines = Column(JSON, default=list)
    is_enabled = Column(Boolean, default=True)
    schedule_cron = Column(Text)
    config = Column(JSON, default=dict)
    last_run_at = Column(DateTime(timezone=True))
    next_run_at = Column(DateTime(timezone=True))
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
