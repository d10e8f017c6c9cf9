"""
Shared fixtures: an in-memory data source and a scripted LLM client.
"""

import asyncio
import json
from datetime import timedelta
from typing import Any, Dict, List, Optional

import pytest

from smb_context.data_access import (
    BusinessProfileRecord, CommunicationRecord, CustomerRecord, InvoiceRecord, JobRecord,
)
from smb_context.engine.context_assembler import ContextAssembler
from smb_context.errors import LLMError
from smb_context.timeutils import utc_now

NOW = utc_now().replace(microsecond=0)


def days_ago(days: float):
    return NOW - timedelta(days=days)


class FakeDataSource:
    """In-memory BusinessDataSource that counts every call."""

    def __init__(self, delay: float = 0.0):
        self.profiles: Dict[str, BusinessProfileRecord] = {}
        self.jobs: Dict[str, List[JobRecord]] = {}
        self.customers: Dict[str, List[CustomerRecord]] = {}
        self.communications: Dict[str, List[CommunicationRecord]] = {}
        self.invoices: Dict[str, List[InvoiceRecord]] = {}
        self.calls: List[str] = []
        self.delay = delay
        self.fail_with: Optional[Exception] = None

    def add_business(self, business_id: str, **fields) -> BusinessProfileRecord:
        record = BusinessProfileRecord(id=business_id, **fields)
        self.profiles[business_id] = record
        return record

    async def _record(self, name: str):
        self.calls.append(name)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail_with is not None:
            raise self.fail_with

    async def get_business_profile(self, business_id):
        await self._record("get_business_profile")
        return self.profiles.get(business_id)

    async def fetch_recent_jobs(self, business_id, since, limit):
        await self._record("fetch_recent_jobs")
        return list(self.jobs.get(business_id, []))

    async def fetch_recent_customers(self, business_id, since, limit):
        await self._record("fetch_recent_customers")
        return [c for c in self.customers.get(business_id, []) if c.created_at and c.created_at >= since]

    async def fetch_customers(self, business_id, limit):
        await self._record("fetch_customers")
        return list(self.customers.get(business_id, []))

    async def fetch_recent_communications(self, business_id, since, limit):
        await self._record("fetch_recent_communications")
        return list(self.communications.get(business_id, []))

    async def fetch_recent_invoices(self, business_id, since, limit):
        await self._record("fetch_recent_invoices")
        return list(self.invoices.get(business_id, []))


# Step name -> marker that only appears in that step's prompt
STEP_MARKERS = {
    "intent": "determine its intent",
    "insights": "TASK: Identify the most important business insights",
    "recommendations": "TASK: Recommend concrete next actions",
    "automation": "TASK: Suggest workflows",
    "related": "These data sets are available",
}


class FakeLLM:
    """
    Scripted ChatCompletionClient.

    `responses` maps a step name (intent, answer, insights, recommendations,
    automation, related) to a string, a JSON-able object, or an exception to
    raise. Unscripted steps raise LLMError.
    """

    model_name = "fake-model"

    def __init__(self, responses: Optional[Dict[str, Any]] = None, delay: float = 0.0):
        self.responses = responses or {}
        self.delay = delay
        self.calls: List[str] = []

    def step_of(self, prompt: str, system_instruction: Optional[str]) -> str:
        if system_instruction is not None:
            return "answer"
        for step, marker in STEP_MARKERS.items():
            if marker in prompt:
                return step
        return "unknown"

    async def complete_chat(self, prompt, *, output_schema=None, system_instruction=None):
        step = self.step_of(prompt, system_instruction)
        self.calls.append(step)
        if self.delay:
            await asyncio.sleep(self.delay)
        response = self.responses.get(step)
        if response is None:
            raise LLMError(f"No scripted response for {step}")
        if isinstance(response, Exception):
            raise response
        if isinstance(response, str):
            return response
        return json.dumps(response)


GOOD_RESPONSES = {
    "intent": {
        "intent": "business_analysis",
        "requiredData": ["financial", "operational"],
        "actionType": "analyze",
        "urgency": "medium",
        "complexity": "simple",
    },
    "answer": "Revenue is healthy at $4,000 this month with a 30% margin.",
    "insights": {
        "insights": [
            {"type": "financial", "insight": "Profit margin is healthy", "confidence": 0.9,
             "impact": "high", "evidence": ["Profit margin 30%"]},
        ]
    },
    "recommendations": {
        "recommendations": [
            {"action": "Follow up on outstanding invoices", "priority": "high", "effort": "low",
             "expectedImpact": "Faster cash collection", "deadline": "1 week", "automatable": True},
        ]
    },
    "automation": {
        "automationSuggestions": [
            {"workflow": "Invoice reminders", "trigger": "Invoice 7 days overdue",
             "actions": ["Send reminder email"], "estimatedTimeSaved": 4, "implementationEffort": "low"},
        ]
    },
    "related": {"relatedData": [{"type": "top_customers", "relevance": 0.8}]},
}


def populate_business(source: FakeDataSource, business_id: str = "biz-1") -> None:
    """An HVAC business with a few customers, jobs, messages and invoices."""
    source.add_business(
        business_id,
        name="Cool Air HVAC",
        business_type="HVAC",
        industry="Home Services",
        size=2,
        location="Austin, TX",
        services=["AC repair", "Furnace install"],
    )
    source.customers[business_id] = [
        CustomerRecord(id="c-vip", name="Vera Important", lifetime_value=15000.0,
                       last_contacted_at=days_ago(200), created_at=days_ago(400)),
        CustomerRecord(id="c-risk", name="Riley Quiet", lifetime_value=5000.0,
                       last_contacted_at=days_ago(100), created_at=days_ago(300)),
        CustomerRecord(id="c-reg", name="Regina Steady", lifetime_value=2000.0,
                       last_contacted_at=days_ago(5), created_at=days_ago(10)),
        CustomerRecord(id="c-new", name="Ned Fresh", lifetime_value=500.0,
                       last_contacted_at=days_ago(1), created_at=days_ago(2)),
    ]
    source.jobs[business_id] = [
        JobRecord(id="j-1", title="AC tune-up", status="completed", start_time=days_ago(3),
                  end_time=days_ago(3) + timedelta(hours=2), customer_id="c-reg",
                  customer_name="Regina Steady", value=300.0, rating=5.0, created_at=days_ago(4)),
        JobRecord(id="j-2", title="Furnace install", status="completed", start_time=days_ago(10),
                  end_time=days_ago(10) + timedelta(hours=6), customer_id="c-vip",
                  customer_name="Vera Important", value=3000.0, rating=4.0, created_at=days_ago(12)),
        JobRecord(id="j-3", title="Duct cleaning", status="scheduled", start_time=days_ago(-2),
                  end_time=days_ago(-2) + timedelta(hours=3), customer_id="c-new",
                  customer_name="Ned Fresh", value=450.0, created_at=days_ago(1)),
    ]
    source.communications[business_id] = [
        CommunicationRecord(id="m-1", type="email", direction="inbound", subject="Quote?",
                            customer_id="c-new", customer_name="Ned Fresh", created_at=days_ago(2)),
        CommunicationRecord(id="m-2", type="email", direction="outbound", subject="Re: Quote?",
                            customer_id="c-new", customer_name="Ned Fresh",
                            created_at=days_ago(2) + timedelta(minutes=30)),
    ]
    source.invoices[business_id] = [
        InvoiceRecord(id="i-1", amount=3000.0, status="paid", customer_id="c-vip",
                      customer_name="Vera Important", created_at=days_ago(9), paid_at=days_ago(8)),
        InvoiceRecord(id="i-2", amount=1000.0, status="paid", customer_id="c-reg",
                      customer_name="Regina Steady", created_at=days_ago(4), paid_at=days_ago(3)),
        InvoiceRecord(id="i-3", amount=450.0, status="sent", customer_id="c-new",
                      customer_name="Ned Fresh", created_at=days_ago(1)),
    ]


@pytest.fixture
def data_source() -> FakeDataSource:
    source = FakeDataSource()
    populate_business(source)
    return source


@pytest.fixture
def empty_business_source() -> FakeDataSource:
    source = FakeDataSource()
    source.add_business("biz-empty", name="Quiet Shop")
    return source


@pytest.fixture
def good_llm() -> FakeLLM:
    return FakeLLM(dict(GOOD_RESPONSES))


@pytest.fixture
def failing_llm() -> FakeLLM:
    return FakeLLM({step: LLMError("service unavailable") for step in ("intent", "answer", "insights",
                                                                       "recommendations", "automation", "related")})


@pytest.fixture
async def context(data_source):
    return await ContextAssembler(data_source, clock=lambda: NOW).assemble("biz-1")


@pytest.fixture
async def empty_context(empty_business_source):
    return await ContextAssembler(empty_business_source, clock=lambda: NOW).assemble("biz-empty")
