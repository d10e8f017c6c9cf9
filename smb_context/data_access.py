"""
Read-only data access adapters.

The engine depends only on the BusinessDataSource protocol. Every fetch is
scoped to one business, bounded (records newer than `since`, at most
`limit`) and returns plain records ordered newest-first. Implementations
raise DataSourceError on I/O failure and return None / [] for absent data.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Protocol, TypeVar

from sqlalchemy import desc, select
from sqlalchemy.exc import SQLAlchemyError

from smb_context.db_models import (
    Business, CalendarEvent, CommunicationMessage, Customer, DatabaseManager, Invoice,
)
from smb_context.errors import DataSourceError
from smb_context.timeutils import as_utc

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class BusinessProfileRecord:
    id: str
    name: Optional[str] = None
    business_type: Optional[str] = None
    industry: Optional[str] = None
    size: Optional[int] = None
    location: Optional[str] = None
    services: List[str] = field(default_factory=list)
    preferences: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class CustomerRecord:
    id: str
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    status: str = "prospect"
    lifetime_value: Optional[float] = None
    last_contacted_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    tags: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class JobRecord:
    id: str
    title: str
    status: str
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    customer_id: Optional[str] = None
    customer_name: Optional[str] = None
    value: Optional[float] = None
    rating: Optional[float] = None
    created_at: Optional[datetime] = None


@dataclass(frozen=True)
class CommunicationRecord:
    id: str
    type: str
    direction: str
    subject: Optional[str] = None
    customer_id: Optional[str] = None
    customer_name: Optional[str] = None
    created_at: Optional[datetime] = None


@dataclass(frozen=True)
class InvoiceRecord:
    id: str
    amount: Optional[float]
    status: str
    customer_id: Optional[str] = None
    customer_name: Optional[str] = None
    created_at: Optional[datetime] = None
    paid_at: Optional[datetime] = None


class BusinessDataSource(Protocol):
    """Read-only fetch contract consumed by the Context Assembler."""

    async def get_business_profile(self, business_id: str) -> Optional[BusinessProfileRecord]:
        ...

    async def fetch_recent_jobs(self, business_id: str, since: datetime, limit: int) -> List[JobRecord]:
        ...

    async def fetch_recent_customers(self, business_id: str, since: datetime, limit: int) -> List[CustomerRecord]:
        ...

    async def fetch_customers(self, business_id: str, limit: int) -> List[CustomerRecord]:
        """All customers, highest lifetime value first."""
        ...

    async def fetch_recent_communications(
        self, business_id: str, since: datetime, limit: int
    ) -> List[CommunicationRecord]:
        ...

    async def fetch_recent_invoices(self, business_id: str, since: datetime, limit: int) -> List[InvoiceRecord]:
        ...


class SqlBusinessDataSource:
    """
    BusinessDataSource backed by SQLAlchemy.

    Sessions are synchronous, so each fetch runs in a worker thread to keep
    the event loop free while the query executes.
    """

    def __init__(self, db: DatabaseManager):
        self.db = db

    @classmethod
    def from_url(cls, database_url: str) -> "SqlBusinessDataSource":
        return cls(DatabaseManager(database_url))

    def close(self) -> None:
        self.db.dispose()

    async def _run(self, name: str, fn: Callable[[Any], T]) -> T:
        def work() -> T:
            session = self.db.get_session()
            try:
                return fn(session)
            finally:
                session.close()

        try:
            return await asyncio.to_thread(work)
        except SQLAlchemyError as e:
            logger.error(f"Data source read '{name}' failed: {e}")
            raise DataSourceError(f"Failed to read {name}: {e}", source=name) from e

    async def get_business_profile(self, business_id: str) -> Optional[BusinessProfileRecord]:
        def query(session) -> Optional[BusinessProfileRecord]:
            business = session.get(Business, business_id)
            if business is None:
                return None
            return BusinessProfileRecord(
                id=business.id,
                name=business.name,
                business_type=business.business_type,
                industry=business.industry,
                size=business.size,
                location=business.location,
                services=list(business.services or []),
                preferences=dict(business.preferences or {}),
            )

        return await self._run("business_profile", query)

    async def fetch_recent_jobs(self, business_id: str, since: datetime, limit: int) -> List[JobRecord]:
        def query(session) -> List[JobRecord]:
            stmt = (
                select(CalendarEvent, Customer.first_name, Customer.last_name)
                .outerjoin(Customer, CalendarEvent.customer_id == Customer.id)
                .where(CalendarEvent.business_id == business_id, CalendarEvent.created_at >= since)
                .order_by(desc(CalendarEvent.created_at))
                .limit(limit)
            )
            return [
                JobRecord(
                    id=event.id,
                    title=event.title,
                    status=event.status,
                    start_time=as_utc(event.start_time),
                    end_time=as_utc(event.end_time),
                    customer_id=event.customer_id,
                    customer_name=_join_name(first, last),
                    value=event.estimated_cost,
                    rating=event.rating,
                    created_at=as_utc(event.created_at),
                )
                for event, first, last in session.execute(stmt).all()
            ]

        return await self._run("calendar_events", query)

    async def fetch_recent_customers(self, business_id: str, since: datetime, limit: int) -> List[CustomerRecord]:
        def query(session) -> List[CustomerRecord]:
            stmt = (
                select(Customer)
                .where(Customer.business_id == business_id, Customer.created_at >= since)
                .order_by(desc(Customer.created_at))
                .limit(limit)
            )
            return [_customer_record(c) for c in session.scalars(stmt).all()]

        return await self._run("recent_customers", query)

    async def fetch_customers(self, business_id: str, limit: int) -> List[CustomerRecord]:
        def query(session) -> List[CustomerRecord]:
            stmt = (
                select(Customer)
                .where(Customer.business_id == business_id)
                .order_by(desc(Customer.lifetime_value))
                .limit(limit)
            )
            return [_customer_record(c) for c in session.scalars(stmt).all()]

        return await self._run("customers", query)

    async def fetch_recent_communications(
        self, business_id: str, since: datetime, limit: int
    ) -> List[CommunicationRecord]:
        def query(session) -> List[CommunicationRecord]:
            stmt = (
                select(CommunicationMessage, Customer.first_name, Customer.last_name)
                .outerjoin(Customer, CommunicationMessage.customer_id == Customer.id)
                .where(
                    CommunicationMessage.business_id == business_id,
                    CommunicationMessage.created_at >= since,
                )
                .order_by(desc(CommunicationMessage.created_at))
                .limit(limit)
            )
            return [
                CommunicationRecord(
                    id=message.id,
                    type=message.type,
                    direction=message.direction,
                    subject=message.subject,
                    customer_id=message.customer_id,
                    customer_name=_join_name(first, last),
                    created_at=as_utc(message.created_at),
                )
                for message, first, last in session.execute(stmt).all()
            ]

        return await self._run("communication_messages", query)

    async def fetch_recent_invoices(self, business_id: str, since: datetime, limit: int) -> List[InvoiceRecord]:
        def query(session) -> List[InvoiceRecord]:
            stmt = (
                select(Invoice, Customer.first_name, Customer.last_name)
                .outerjoin(Customer, Invoice.customer_id == Customer.id)
                .where(Invoice.business_id == business_id, Invoice.created_at >= since)
                .order_by(desc(Invoice.created_at))
                .limit(limit)
            )
            return [
                InvoiceRecord(
                    id=invoice.id,
                    amount=invoice.total,
                    status=invoice.status,
                    customer_id=invoice.customer_id,
                    customer_name=_join_name(first, last),
                    created_at=as_utc(invoice.created_at),
                    paid_at=as_utc(invoice.paid_at),
                )
                for invoice, first, last in session.execute(stmt).all()
            ]

        return await self._run("invoices", query)


def _join_name(first: Optional[str], last: Optional[str]) -> Optional[str]:
    name = f"{first or ''} {last or ''}".strip()
    return name or None


def _customer_record(customer: Customer) -> CustomerRecord:
    return CustomerRecord(
        id=customer.id,
        name=customer.full_name,
        email=customer.email,
        phone=customer.phone,
        status=customer.status,
        lifetime_value=customer.lifetime_value,
        last_contacted_at=as_utc(customer.last_contacted_at),
        created_at=as_utc(customer.created_at),
        tags=list(customer.tags or []),
    )
