from datetime import timedelta

import pytest

from conftest import NOW, FakeDataSource, days_ago
from smb_context.data_access import CommunicationRecord, InvoiceRecord, JobRecord
from smb_context.data_models import RelationshipTier, TrendDirection
from smb_context.engine.context_assembler import (
    ContextAssembler, compute_financial_snapshot, compute_operational_metrics, compute_trends,
)
from smb_context.errors import BusinessNotFoundError, DataSourceError


def make_assembler(source, **kwargs):
    return ContextAssembler(source, clock=lambda: NOW, **kwargs)


async def test_assembles_complete_context(data_source):
    context = await make_assembler(data_source).assemble("biz-1")

    assert context.business_id == "biz-1"
    assert context.business_profile.name == "Cool Air HVAC"
    assert context.business_profile.size == 2
    assert len(context.recent_activity.recent_jobs) == 3
    assert len(context.recent_activity.recent_financials) == 3
    assert context.industry_context.industry_type
    assert context.industry_context.seasonal_patterns

    tiers = {c.id: c.relationship for c in context.customer_data}
    assert tiers == {
        "c-vip": RelationshipTier.VIP,
        "c-risk": RelationshipTier.AT_RISK,
        "c-reg": RelationshipTier.REGULAR,
        "c-new": RelationshipTier.NEW,
    }


async def test_financial_snapshot(data_source):
    context = await make_assembler(data_source).assemble("biz-1")
    fin = context.financial_snapshot

    assert fin.monthly_revenue == 4000.0
    assert fin.monthly_expenses == 0.0
    assert fin.profit_margin == 100.0
    assert fin.cash_flow == 4000.0
    assert fin.outstanding_invoices == 450.0
    assert fin.average_job_value == pytest.approx(1250.0)
    assert [c.name for c in fin.top_customers][:2] == ["Vera Important", "Riley Quiet"]


async def test_operational_metrics(data_source):
    context = await make_assembler(data_source).assemble("biz-1")
    ops = context.operational_metrics

    assert ops.jobs_completed == 2
    assert ops.customer_satisfaction == 4.5
    assert ops.response_time == 30.0
    assert ops.booking_rate == pytest.approx(200 / 3)
    assert ops.efficiency == 100.0
    assert 0 < ops.utilization_rate <= 100


async def test_recent_jobs_are_newest_first_and_bounded(data_source):
    context = await make_assembler(data_source, window_limit=2).assemble("biz-1")
    assert [j.id for j in context.recent_activity.recent_jobs] == ["j-3", "j-1"]


async def test_records_outside_window_are_dropped(data_source):
    data_source.jobs["biz-1"].append(
        JobRecord(id="j-old", title="Old job", status="completed", created_at=days_ago(200))
    )
    context = await make_assembler(data_source).assemble("biz-1")
    assert "j-old" not in [j.id for j in context.recent_activity.recent_jobs]


async def test_sparse_business_gets_defaults(empty_business_source):
    context = await make_assembler(empty_business_source).assemble("biz-empty")

    assert context.business_profile.name == "Quiet Shop"
    assert context.business_profile.business_type == "General"
    assert context.business_profile.industry == "Services"
    assert context.business_profile.size == 1
    assert context.business_profile.location == "Unknown"
    assert context.customer_data == []
    assert context.financial_snapshot.monthly_revenue == 0.0
    assert context.financial_snapshot.profit_margin == 0.0
    assert context.operational_metrics.booking_rate == 0.0
    assert context.recent_activity.trends == []
    assert not context.has_operating_data()


async def test_unknown_business_raises_without_activity_reads():
    source = FakeDataSource()
    with pytest.raises(BusinessNotFoundError) as exc:
        await make_assembler(source).assemble("nope")
    assert exc.value.business_id == "nope"
    assert source.calls == ["get_business_profile"]


async def test_read_failure_raises_data_source_error(data_source):
    data_source.fail_with = DataSourceError("connection refused")
    with pytest.raises(DataSourceError):
        await make_assembler(data_source).assemble("biz-1")


async def test_os_error_is_wrapped(data_source):
    data_source.fail_with = ConnectionResetError("reset by peer")
    with pytest.raises(DataSourceError):
        await make_assembler(data_source).assemble("biz-1")


async def test_ttl_cache_reuses_context(data_source):
    assembler = make_assembler(data_source, cache_ttl_seconds=60)
    first = await assembler.assemble("biz-1")
    calls = len(data_source.calls)
    second = await assembler.assemble("biz-1")

    assert second is first
    assert len(data_source.calls) == calls

    assembler.invalidate("biz-1")
    await assembler.assemble("biz-1")
    assert len(data_source.calls) > calls


class FakeMonotonic:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


async def test_cached_context_expires_after_ttl(data_source):
    ticks = FakeMonotonic()
    assembler = make_assembler(data_source, cache_ttl_seconds=60, monotonic=ticks)
    first = await assembler.assemble("biz-1")
    calls = len(data_source.calls)

    ticks.now += 59
    assert await assembler.assemble("biz-1") is first
    assert len(data_source.calls) == calls

    ticks.now += 1
    refreshed = await assembler.assemble("biz-1")
    assert refreshed is not first
    assert len(data_source.calls) == 2 * calls


async def test_expired_contexts_are_swept_on_store(data_source):
    for business_id in ("b0", "b1", "b2"):
        data_source.add_business(business_id, name=f"Shop {business_id}")
    ticks = FakeMonotonic()
    assembler = make_assembler(data_source, cache_ttl_seconds=60, monotonic=ticks)
    for business_id in ("b0", "b1", "b2"):
        await assembler.assemble(business_id)
    assert len(assembler._cache) == 3

    ticks.now += 120
    await assembler.assemble("biz-1")

    assert list(assembler._cache) == ["biz-1"]


async def test_cache_disabled_by_default(data_source):
    assembler = make_assembler(data_source)
    await assembler.assemble("biz-1")
    calls = len(data_source.calls)
    await assembler.assemble("biz-1")
    assert len(data_source.calls) == 2 * calls


def test_outstanding_counts_only_open_statuses():
    invoices = [
        InvoiceRecord(id="a", amount=100.0, status="sent", created_at=days_ago(1)),
        InvoiceRecord(id="b", amount=200.0, status="overdue", created_at=days_ago(1)),
        InvoiceRecord(id="c", amount=400.0, status="draft", created_at=days_ago(1)),
        InvoiceRecord(id="d", amount=800.0, status="cancelled", created_at=days_ago(1)),
    ]
    snapshot = compute_financial_snapshot(invoices, [], [], NOW)
    assert snapshot.outstanding_invoices == 300.0
    assert snapshot.monthly_revenue == 0.0


def test_booking_rate_excludes_cancelled_from_denominator():
    jobs = [
        JobRecord(id="1", title="a", status="completed"),
        JobRecord(id="2", title="b", status="cancelled"),
        JobRecord(id="3", title="c", status="scheduled"),
    ]
    metrics = compute_operational_metrics(jobs, [], NOW)
    assert metrics.booking_rate == 50.0
    assert metrics.efficiency == 50.0


def test_response_time_pairs_inbound_with_next_outbound():
    messages = [
        CommunicationRecord(id="1", type="sms", direction="inbound", customer_id="x", created_at=days_ago(1)),
        CommunicationRecord(id="2", type="sms", direction="outbound", customer_id="x",
                            created_at=days_ago(1) + timedelta(minutes=90)),
        CommunicationRecord(id="3", type="sms", direction="outbound", customer_id="y", created_at=days_ago(1)),
    ]
    metrics = compute_operational_metrics([], messages, NOW)
    assert metrics.response_time == 90.0


def test_trends_compare_last_two_months():
    invoices = [
        InvoiceRecord(id="1", amount=2000.0, status="paid", created_at=days_ago(10), paid_at=days_ago(10)),
        InvoiceRecord(id="2", amount=1000.0, status="paid", created_at=days_ago(40), paid_at=days_ago(40)),
    ]
    jobs = [
        JobRecord(id="1", title="a", status="completed", created_at=days_ago(5)),
        JobRecord(id="2", title="b", status="completed", created_at=days_ago(45)),
    ]
    trends = {t.metric: t for t in compute_trends(jobs, [], invoices, NOW)}

    assert trends["revenue"].trend == TrendDirection.INCREASING
    assert trends["revenue"].change == 100.0
    assert trends["jobs"].trend == TrendDirection.STABLE
    assert "new_customers" not in trends
