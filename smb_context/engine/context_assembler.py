"""
Context Assembler

Builds a complete BusinessContext for one business from the read-only data
source. The profile is fetched first so an unknown business fails fast;
the activity reads are independent and run concurrently. Derived aggregates
(financial snapshot, operational metrics, trends) are computed here from the
bounded record lists, never by the data source.

A context is either built completely or assembly raises: read failures are
surfaced as DataSourceError and never turned into an empty snapshot.
"""

import asyncio
import logging
import time
from datetime import datetime, timedelta
from statistics import mean
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from smb_context.data_access import (
    BusinessDataSource, BusinessProfileRecord, CommunicationRecord, CustomerRecord,
    InvoiceRecord, JobRecord,
)
from smb_context.data_models import (
    OUTSTANDING_INVOICE_STATUSES, InvoiceStatus, JobStatus, TrendDirection,
)
from smb_context.engine.industry import lookup_industry_context
from smb_context.engine.relationship import DEFAULT_THRESHOLDS, RelationshipThresholds, classify
from smb_context.errors import BusinessNotFoundError, DataSourceError
from smb_context.models.context import (
    ActivityTrend, BusinessContext, BusinessProfile, CommunicationSummary, CustomerSummary,
    FinancialActivity, FinancialSnapshot, JobSummary, OperationalMetrics, RecentActivity,
    TopCustomer,
)
from smb_context.timeutils import as_utc, utc_now

logger = logging.getLogger(__name__)

MONTH_DAYS = 30
CUSTOMER_LIMIT = 50
TOP_CUSTOMER_COUNT = 5
WORKDAY_HOURS = 8
WORKDAYS_PER_WEEK = 5
STABLE_TREND_BAND = 5.0  # percent
ESTIMATED_JOB_MARGIN = 30.0  # percent, no cost data is tracked per job

_INACTIVE_JOB_STATUSES = {JobStatus.CANCELLED.value, JobStatus.NO_SHOW.value}


class ContextAssembler:
    """Assembles BusinessContext snapshots, optionally memoized per business for a TTL."""

    def __init__(
        self,
        data_source: BusinessDataSource,
        *,
        window_days: int = 90,
        window_limit: int = 20,
        customer_limit: int = CUSTOMER_LIMIT,
        thresholds: RelationshipThresholds = DEFAULT_THRESHOLDS,
        cache_ttl_seconds: float = 0.0,
        clock: Callable[[], datetime] = utc_now,
        monotonic: Callable[[], float] = time.monotonic,
    ):
        self.data_source = data_source
        self.window_days = window_days
        self.window_limit = window_limit
        self.customer_limit = customer_limit
        self.thresholds = thresholds
        self.cache_ttl_seconds = cache_ttl_seconds
        self._clock = clock
        self._monotonic = monotonic
        self._cache: Dict[str, Tuple[float, BusinessContext]] = {}

    def invalidate(self, business_id: Optional[str] = None) -> None:
        """Drop memoized contexts (all of them when business_id is None)."""
        if business_id is None:
            self._cache.clear()
        else:
            self._cache.pop(business_id, None)

    async def assemble(self, business_id: str) -> BusinessContext:
        cached = self._cache_get(business_id)
        if cached is not None:
            logger.debug(f"Using cached context for business {business_id}")
            return cached

        try:
            context = await self._build(business_id)
        except BusinessNotFoundError:
            logger.info(f"Business not found: {business_id}")
            raise
        except DataSourceError as e:
            logger.error(f"Context assembly failed for business {business_id}: {e}")
            raise
        except (OSError, asyncio.TimeoutError) as e:
            logger.error(f"Context assembly failed for business {business_id}: {e}")
            raise DataSourceError(f"Data source read failed: {e}") from e

        self._cache_put(business_id, context)
        return context

    async def _build(self, business_id: str) -> BusinessContext:
        profile_record = await self.data_source.get_business_profile(business_id)
        if profile_record is None:
            raise BusinessNotFoundError(business_id)

        now = as_utc(self._clock())
        since = now - timedelta(days=self.window_days)
        limit = self.window_limit

        jobs, recent_customers, customers, communications, invoices = await asyncio.gather(
            self.data_source.fetch_recent_jobs(business_id, since, limit),
            self.data_source.fetch_recent_customers(business_id, since, limit),
            self.data_source.fetch_customers(business_id, self.customer_limit),
            self.data_source.fetch_recent_communications(business_id, since, limit),
            self.data_source.fetch_recent_invoices(business_id, since, limit),
        )

        jobs = _bounded(jobs, since, limit, key=lambda j: j.created_at or j.start_time)
        recent_customers = _bounded(recent_customers, since, limit, key=lambda c: c.created_at)
        communications = _bounded(communications, since, limit, key=lambda m: m.created_at)
        invoices = _bounded(invoices, since, limit, key=lambda i: i.created_at)
        customers = sorted(customers, key=lambda c: c.lifetime_value or 0.0, reverse=True)[: self.customer_limit]

        profile = _business_profile(profile_record)
        customer_data = [self._customer_summary(c, now) for c in customers]

        context = BusinessContext(
            business_id=business_id,
            business_profile=profile,
            recent_activity=RecentActivity(
                recent_jobs=[_job_summary(j) for j in jobs],
                recent_customers=[self._customer_summary(c, now) for c in recent_customers],
                recent_communications=[_communication_summary(m) for m in communications],
                recent_financials=[_financial_activity(i) for i in invoices],
                trends=compute_trends(jobs, recent_customers, invoices, now),
            ),
            customer_data=customer_data,
            financial_snapshot=compute_financial_snapshot(invoices, jobs, customers, now),
            operational_metrics=compute_operational_metrics(
                jobs, communications, now, team_size=profile.size, window_days=self.window_days
            ),
            industry_context=lookup_industry_context(profile_record.business_type, profile_record.industry),
            assembled_at=now,
        )
        logger.debug(
            f"Assembled context for {business_id}: {len(jobs)} jobs, {len(customer_data)} customers, "
            f"{len(communications)} messages, {len(invoices)} invoices"
        )
        return context

    def _customer_summary(self, record: CustomerRecord, now: datetime) -> CustomerSummary:
        return CustomerSummary(
            id=record.id,
            name=record.name or "Unknown",
            email=record.email or "",
            phone=record.phone or "",
            total_value=float(record.lifetime_value or 0.0),
            last_contact=as_utc(record.last_contacted_at),
            status=record.status or "prospect",
            relationship=classify(record.lifetime_value, record.last_contacted_at, now=now, thresholds=self.thresholds),
            tags=list(record.tags or []),
        )

    def _cache_get(self, business_id: str) -> Optional[BusinessContext]:
        if self.cache_ttl_seconds <= 0:
            return None
        entry = self._cache.get(business_id)
        if entry is None:
            return None
        stored_at, context = entry
        if self._monotonic() - stored_at >= self.cache_ttl_seconds:
            del self._cache[business_id]
            return None
        return context

    def _cache_put(self, business_id: str, context: BusinessContext) -> None:
        if self.cache_ttl_seconds <= 0:
            return
        now = self._monotonic()
        expired = [
            key for key, (stored_at, _) in self._cache.items()
            if now - stored_at >= self.cache_ttl_seconds
        ]
        for key in expired:
            del self._cache[key]
        self._cache[business_id] = (now, context)


def _bounded(records: Sequence, since: datetime, limit: int, key: Callable) -> List:
    """Keep records inside the window, newest first, at most `limit`."""
    def stamp(record) -> Optional[datetime]:
        return as_utc(key(record))

    kept = [r for r in records if stamp(r) is None or stamp(r) >= since]
    kept.sort(key=lambda r: stamp(r) or since, reverse=True)
    return kept[:limit]


def _business_profile(record: BusinessProfileRecord) -> BusinessProfile:
    return BusinessProfile(
        id=record.id,
        name=record.name or "Unknown Business",
        business_type=record.business_type or "General",
        industry=record.industry or "Services",
        size=record.size if record.size and record.size > 0 else 1,
        location=record.location or "Unknown",
        services=list(record.services or []),
        preferences=dict(record.preferences or {}),
    )


def _job_summary(job: JobRecord) -> JobSummary:
    value = float(job.value or 0.0)
    return JobSummary(
        id=job.id,
        title=job.title,
        customer_id=job.customer_id,
        customer_name=job.customer_name or "Unknown",
        status=job.status,
        value=value,
        scheduled_date=as_utc(job.start_time),
        completion=100.0 if job.status == JobStatus.COMPLETED.value else 0.0,
        profit_margin=ESTIMATED_JOB_MARGIN if value > 0 else 0.0,
    )


def _communication_summary(message: CommunicationRecord) -> CommunicationSummary:
    return CommunicationSummary(
        id=message.id,
        type=message.type,
        direction=message.direction,
        subject=message.subject or "",
        customer_id=message.customer_id,
        customer_name=message.customer_name or "Unknown",
        created_at=as_utc(message.created_at),
    )


def _financial_activity(invoice: InvoiceRecord) -> FinancialActivity:
    return FinancialActivity(
        id=invoice.id,
        type="invoice",
        amount=float(invoice.amount or 0.0),
        status=invoice.status,
        customer_id=invoice.customer_id,
        customer_name=invoice.customer_name or "Unknown",
        created_at=as_utc(invoice.created_at),
    )


def _paid_on(invoice: InvoiceRecord) -> Optional[datetime]:
    return as_utc(invoice.paid_at or invoice.created_at)


def compute_financial_snapshot(
    invoices: Sequence[InvoiceRecord],
    jobs: Sequence[JobRecord],
    customers: Sequence[CustomerRecord],
    now: datetime,
) -> FinancialSnapshot:
    month_start = now - timedelta(days=MONTH_DAYS)
    revenue = sum(
        float(i.amount or 0.0)
        for i in invoices
        if i.status == InvoiceStatus.PAID.value and _paid_on(i) is not None and _paid_on(i) >= month_start
    )
    # No expense source exists; expenses stay at zero until one is added
    expenses = 0.0
    outstanding = sum(float(i.amount or 0.0) for i in invoices if i.status in OUTSTANDING_INVOICE_STATUSES)
    job_values = [float(j.value) for j in jobs if j.value and j.value > 0]
    ranked = sorted(
        (c for c in customers if c.lifetime_value and c.lifetime_value > 0),
        key=lambda c: c.lifetime_value,
        reverse=True,
    )

    return FinancialSnapshot(
        monthly_revenue=revenue,
        monthly_expenses=expenses,
        profit_margin=((revenue - expenses) / revenue) * 100 if revenue > 0 else 0.0,
        cash_flow=revenue - expenses,
        outstanding_invoices=outstanding,
        average_job_value=mean(job_values) if job_values else 0.0,
        top_customers=[TopCustomer(name=c.name or "Unknown", value=float(c.lifetime_value)) for c in ranked[:TOP_CUSTOMER_COUNT]],
    )


def compute_operational_metrics(
    jobs: Sequence[JobRecord],
    communications: Sequence[CommunicationRecord],
    now: datetime,
    *,
    team_size: int = 1,
    window_days: int = 90,
) -> OperationalMetrics:
    completed = [j for j in jobs if j.status == JobStatus.COMPLETED.value]
    cancelled = [j for j in jobs if j.status == JobStatus.CANCELLED.value]
    no_show = [j for j in jobs if j.status == JobStatus.NO_SHOW.value]

    active_total = len(jobs) - len(cancelled)
    booking_rate = (len(completed) / active_total) * 100 if active_total > 0 else 0.0

    resolved = len(completed) + len(cancelled) + len(no_show)
    efficiency = (len(completed) / resolved) * 100 if resolved else 0.0

    ratings = [float(j.rating) for j in completed if j.rating is not None]

    return OperationalMetrics(
        jobs_completed=len(completed),
        customer_satisfaction=round(mean(ratings), 2) if ratings else 0.0,
        response_time=_average_response_minutes(communications),
        booking_rate=booking_rate,
        utilization_rate=_utilization(jobs, now, team_size, window_days),
        efficiency=efficiency,
    )


def _utilization(jobs: Sequence[JobRecord], now: datetime, team_size: int, window_days: int) -> float:
    """Booked hours over available working hours for the period the jobs cover."""
    booked_hours = 0.0
    earliest: Optional[datetime] = None
    for job in jobs:
        if job.status in _INACTIVE_JOB_STATUSES:
            continue
        start, end = as_utc(job.start_time), as_utc(job.end_time)
        if start is None or end is None or end <= start:
            continue
        booked_hours += (end - start).total_seconds() / 3600
        earliest = start if earliest is None else min(earliest, start)

    if earliest is None or booked_hours == 0:
        return 0.0

    period_days = min(max((now - earliest).days, 1), window_days)
    available_hours = max(team_size, 1) * WORKDAY_HOURS * WORKDAYS_PER_WEEK * (period_days / 7)
    if available_hours <= 0:
        return 0.0
    return min(100.0, (booked_hours / available_hours) * 100)


def _average_response_minutes(communications: Sequence[CommunicationRecord]) -> float:
    """Mean minutes from an inbound message to the next outbound one for the same customer."""
    ordered = sorted(
        (m for m in communications if m.created_at is not None and m.customer_id),
        key=lambda m: as_utc(m.created_at),
    )
    pending: Dict[str, datetime] = {}
    delays: List[float] = []
    for message in ordered:
        sent_at = as_utc(message.created_at)
        if message.direction == "inbound":
            pending.setdefault(message.customer_id, sent_at)
        elif message.direction == "outbound" and message.customer_id in pending:
            received_at = pending.pop(message.customer_id)
            delays.append((sent_at - received_at).total_seconds() / 60)
    return round(mean(delays), 1) if delays else 0.0


def _trend(metric: str, current: float, previous: float) -> Optional[ActivityTrend]:
    if current == 0 and previous == 0:
        return None
    if previous > 0:
        change = ((current - previous) / previous) * 100
    else:
        change = 100.0
    if abs(change) <= STABLE_TREND_BAND:
        direction = TrendDirection.STABLE
    elif change > 0:
        direction = TrendDirection.INCREASING
    else:
        direction = TrendDirection.DECREASING
    return ActivityTrend(metric=metric, trend=direction, change=round(change, 1), timeframe=f"{MONTH_DAYS}d")


def compute_trends(
    jobs: Sequence[JobRecord],
    recent_customers: Sequence[CustomerRecord],
    invoices: Sequence[InvoiceRecord],
    now: datetime,
) -> List[ActivityTrend]:
    """Latest 30 days vs the 30 days before, for revenue, jobs and new customers."""
    current_start = now - timedelta(days=MONTH_DAYS)
    previous_start = now - timedelta(days=2 * MONTH_DAYS)

    def bucket(moment: Optional[datetime]) -> Optional[str]:
        moment = as_utc(moment)
        if moment is None or moment < previous_start:
            return None
        return "current" if moment >= current_start else "previous"

    revenue = {"current": 0.0, "previous": 0.0}
    for invoice in invoices:
        period = bucket(_paid_on(invoice)) if invoice.status == InvoiceStatus.PAID.value else None
        if period:
            revenue[period] += float(invoice.amount or 0.0)

    job_counts = {"current": 0, "previous": 0}
    for job in jobs:
        period = bucket(job.created_at or job.start_time)
        if period:
            job_counts[period] += 1

    customer_counts = {"current": 0, "previous": 0}
    for customer in recent_customers:
        period = bucket(customer.created_at)
        if period:
            customer_counts[period] += 1

    trends = [
        _trend("revenue", revenue["current"], revenue["previous"]),
        _trend("jobs", job_counts["current"], job_counts["previous"]),
        _trend("new_customers", customer_counts["current"], customer_counts["previous"]),
    ]
    return [t for t in trends if t is not None]
