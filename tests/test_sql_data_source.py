from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy.exc import OperationalError

from smb_context.data_access import SqlBusinessDataSource
from smb_context.db_models import (
    Business, CalendarEvent, CommunicationMessage, Customer, DatabaseManager, Invoice,
)
from smb_context.errors import DataSourceError


@pytest.fixture
def db(tmp_path):
    manager = DatabaseManager(f"sqlite:///{tmp_path / 'business.db'}")
    manager.create_tables()
    now = datetime.now(timezone.utc).replace(tzinfo=None)
    session = manager.get_session()
    session.add_all([
        Business(id="b1", name="Green Thumb", business_type="Landscaping", industry="Home Services",
                 size=3, location="Denver, CO", services=["Mowing"]),
        Business(id="b2", name="Other Co"),
        Customer(id="c1", business_id="b1", first_name="Ann", last_name="Lee", lifetime_value=12000.0,
                 last_contacted_at=now - timedelta(days=3), created_at=now - timedelta(days=200)),
        Customer(id="c2", business_id="b1", first_name="Bo", last_name="", lifetime_value=800.0,
                 created_at=now - timedelta(days=5)),
        Customer(id="c3", business_id="b2", first_name="Cy", last_name="Other", lifetime_value=99999.0),
        CalendarEvent(id="e1", business_id="b1", customer_id="c1", title="Spring cleanup",
                      status="completed", start_time=now - timedelta(days=2),
                      end_time=now - timedelta(days=2, hours=-3), estimated_cost=600.0, rating=5.0,
                      created_at=now - timedelta(days=6)),
        CalendarEvent(id="e2", business_id="b1", title="Old job", status="completed",
                      start_time=now - timedelta(days=120), created_at=now - timedelta(days=120)),
        CommunicationMessage(id="m1", business_id="b1", customer_id="c2", type="sms",
                             direction="inbound", subject="Hi", created_at=now - timedelta(days=1)),
        Invoice(id="i1", business_id="b1", customer_id="c1", total=600.0, status="paid",
                created_at=now - timedelta(days=2), paid_at=now - timedelta(days=1)),
    ])
    session.commit()
    session.close()
    yield manager
    manager.dispose()


@pytest.fixture
def source(db):
    return SqlBusinessDataSource(db)


async def test_profile(source):
    profile = await source.get_business_profile("b1")
    assert profile.name == "Green Thumb"
    assert profile.services == ["Mowing"]
    assert await source.get_business_profile("missing") is None


async def test_reads_are_scoped_and_windowed(source):
    since = datetime.now(timezone.utc).replace(tzinfo=None) - timedelta(days=90)

    jobs = await source.fetch_recent_jobs("b1", since, 20)
    assert [j.id for j in jobs] == ["e1"]
    assert jobs[0].customer_name == "Ann Lee"
    assert jobs[0].value == 600.0
    assert jobs[0].start_time.tzinfo is not None

    recent = await source.fetch_recent_customers("b1", since, 20)
    assert [c.id for c in recent] == ["c2"]

    customers = await source.fetch_customers("b1", 50)
    assert [c.id for c in customers] == ["c1", "c2"]
    assert customers[1].name == "Bo"

    messages = await source.fetch_recent_communications("b1", since, 20)
    assert messages[0].customer_name == "Bo"

    invoices = await source.fetch_recent_invoices("b1", since, 20)
    assert invoices[0].amount == 600.0
    assert invoices[0].paid_at is not None


async def test_limit_is_applied(source):
    customers = await source.fetch_customers("b1", 1)
    assert [c.id for c in customers] == ["c1"]


async def test_sqlalchemy_errors_become_data_source_errors(source, monkeypatch):
    def broken_session():
        raise OperationalError("SELECT 1", {}, Exception("database is locked"))

    monkeypatch.setattr(source.db, "get_session", broken_session)
    with pytest.raises(DataSourceError) as exc:
        await source.get_business_profile("b1")
    assert exc.value.retryable
    assert exc.value.source == "business_profile"
