"""
SQLAlchemy models for the operational records the context engine reads.

These mirror the platform's CRUD tables closely enough for the read-only
adapter in data_access.py; the engine itself never writes to them.
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    JSON, Column, DateTime, Float, ForeignKey, Index, Integer, String, Text,
    create_engine,
)
from sqlalchemy.orm import declarative_base, sessionmaker

Base = declarative_base()


def _new_id() -> str:
    return str(uuid.uuid4())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Business(Base):
    """Business profile (one row per tenant)."""

    __tablename__ = 'businesses'

    id = Column(String(36), primary_key=True, default=_new_id)
    name = Column(String(200), nullable=True)
    business_type = Column(String(100), nullable=True)
    industry = Column(String(100), nullable=True)
    size = Column(Integer, nullable=True)  # team size
    location = Column(String(200), nullable=True)
    services = Column(JSON, nullable=True)  # list of service names
    preferences = Column(JSON, nullable=True)
    created_at = Column(DateTime, default=_utcnow)

    def __repr__(self):
        return f"<Business(id='{self.id}', name='{self.name}')>"


class Customer(Base):
    __tablename__ = 'customers'

    id = Column(String(36), primary_key=True, default=_new_id)
    business_id = Column(String(36), ForeignKey('businesses.id', ondelete='CASCADE'), nullable=False)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False, default='')
    email = Column(String(200), nullable=True)
    phone = Column(String(50), nullable=True)
    status = Column(String(20), nullable=False, default='prospect')  # active, inactive, prospect, churned
    lifetime_value = Column(Float, nullable=True)
    last_contacted_at = Column(DateTime, nullable=True)
    tags = Column(JSON, nullable=True)
    created_at = Column(DateTime, default=_utcnow)

    __table_args__ = (
        Index('customers_business_id_idx', 'business_id'),
        Index('customers_business_value_idx', 'business_id', 'lifetime_value'),
    )

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    def __repr__(self):
        return f"<Customer(id='{self.id}', name='{self.full_name}')>"


class CalendarEvent(Base):
    """Appointments and service visits; completed service events count as jobs."""

    __tablename__ = 'calendar_events'

    id = Column(String(36), primary_key=True, default=_new_id)
    business_id = Column(String(36), ForeignKey('businesses.id', ondelete='CASCADE'), nullable=False)
    customer_id = Column(String(36), ForeignKey('customers.id', ondelete='SET NULL'), nullable=True)
    title = Column(String(200), nullable=False)
    event_type = Column(String(30), nullable=False, default='service')
    status = Column(String(20), nullable=False, default='scheduled')
    start_time = Column(DateTime, nullable=False)
    end_time = Column(DateTime, nullable=True)
    estimated_cost = Column(Float, nullable=True)  # serviceDetails.estimatedCost
    rating = Column(Float, nullable=True)  # customer rating 0-5 after completion
    created_at = Column(DateTime, default=_utcnow)
    updated_at = Column(DateTime, default=_utcnow, onupdate=_utcnow)

    __table_args__ = (
        Index('calendar_events_business_created_idx', 'business_id', 'created_at'),
    )


class CommunicationMessage(Base):
    __tablename__ = 'communication_messages'

    id = Column(String(36), primary_key=True, default=_new_id)
    business_id = Column(String(36), ForeignKey('businesses.id', ondelete='CASCADE'), nullable=False)
    customer_id = Column(String(36), ForeignKey('customers.id', ondelete='SET NULL'), nullable=True)
    type = Column(String(20), nullable=False, default='email')  # email, sms, phone, chat
    direction = Column(String(10), nullable=False, default='inbound')  # inbound, outbound
    subject = Column(Text, nullable=True)
    created_at = Column(DateTime, default=_utcnow)

    __table_args__ = (
        Index('communication_messages_business_created_idx', 'business_id', 'created_at'),
    )


class Invoice(Base):
    __tablename__ = 'invoices'

    id = Column(String(36), primary_key=True, default=_new_id)
    business_id = Column(String(36), ForeignKey('businesses.id', ondelete='CASCADE'), nullable=False)
    customer_id = Column(String(36), ForeignKey('customers.id', ondelete='SET NULL'), nullable=True)
    invoice_number = Column(String(50), nullable=True)
    total = Column(Float, nullable=False, default=0.0)
    status = Column(String(20), nullable=False, default='draft')
    created_at = Column(DateTime, default=_utcnow)
    paid_at = Column(DateTime, nullable=True)

    __table_args__ = (
        Index('invoices_business_created_idx', 'business_id', 'created_at'),
        Index('invoices_status_idx', 'status'),
    )


class DatabaseManager:
    """Database connection and session management for business data."""

    def __init__(self, database_url: str = "sqlite:///smb_context.db"):
        self.database_url = database_url
        connect_args = {"check_same_thread": False} if database_url.startswith("sqlite") else {}
        self.engine = create_engine(database_url, echo=False, connect_args=connect_args)
        self.SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=self.engine)

    def create_tables(self):
        """Create all tables in the database."""
        Base.metadata.create_all(bind=self.engine)

    def get_session(self):
        """Get a database session."""
        return self.SessionLocal()

    def dispose(self):
        self.engine.dispose()
