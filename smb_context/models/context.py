"""
BusinessContext: the per-request snapshot of one business.

Every numeric field defaults to 0 and every list to empty so a context built
from sparse data is still complete. Contexts are frozen once assembled.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from smb_context.data_models import RelationshipTier, TrendDirection
from smb_context.timeutils import utc_now


class CamelModel(BaseModel):
    """Snake-case attributes in Python, camelCase on the wire."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class FrozenCamelModel(CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


class BusinessProfile(FrozenCamelModel):
    id: str
    name: str = Field(default="Unknown Business")
    business_type: str = Field(default="General")
    industry: str = Field(default="Services")
    size: int = Field(default=1, description="Team size")
    location: str = Field(default="Unknown")
    services: List[str] = Field(default_factory=list)
    preferences: Dict[str, Any] = Field(default_factory=dict)


class CustomerSummary(FrozenCamelModel):
    id: str
    name: str
    email: str = ""
    phone: str = ""
    total_value: float = 0.0
    last_contact: Optional[datetime] = None
    status: str = "prospect"
    relationship: RelationshipTier = RelationshipTier.NEW
    tags: List[str] = Field(default_factory=list)


class JobSummary(FrozenCamelModel):
    id: str
    title: str
    customer_id: Optional[str] = None
    customer_name: str = "Unknown"
    status: str = "scheduled"
    value: float = 0.0
    scheduled_date: Optional[datetime] = None
    completion: float = Field(default=0.0, description="100 when completed, else 0")
    profit_margin: float = 0.0


class CommunicationSummary(FrozenCamelModel):
    id: str
    type: str
    direction: str
    subject: str = ""
    customer_id: Optional[str] = None
    customer_name: str = "Unknown"
    created_at: Optional[datetime] = None


class FinancialActivity(FrozenCamelModel):
    id: str
    type: str = "invoice"
    amount: float = 0.0
    status: str = "draft"
    customer_id: Optional[str] = None
    customer_name: str = "Unknown"
    created_at: Optional[datetime] = None


class ActivityTrend(FrozenCamelModel):
    metric: str
    trend: TrendDirection
    change: float = Field(description="Percent change vs the previous period")
    timeframe: str


class RecentActivity(FrozenCamelModel):
    recent_jobs: List[JobSummary] = Field(default_factory=list)
    recent_customers: List[CustomerSummary] = Field(default_factory=list)
    recent_communications: List[CommunicationSummary] = Field(default_factory=list)
    recent_financials: List[FinancialActivity] = Field(default_factory=list)
    trends: List[ActivityTrend] = Field(default_factory=list)


class TopCustomer(FrozenCamelModel):
    name: str
    value: float = 0.0


class FinancialSnapshot(FrozenCamelModel):
    monthly_revenue: float = 0.0
    monthly_expenses: float = 0.0
    profit_margin: float = 0.0
    cash_flow: float = 0.0
    outstanding_invoices: float = 0.0
    average_job_value: float = 0.0
    top_customers: List[TopCustomer] = Field(default_factory=list)


class OperationalMetrics(FrozenCamelModel):
    jobs_completed: int = 0
    customer_satisfaction: float = Field(default=0.0, description="Mean job rating, 0-5")
    response_time: float = Field(default=0.0, description="Mean minutes to reply to inbound messages")
    booking_rate: float = 0.0
    utilization_rate: float = 0.0
    efficiency: float = 0.0


class SeasonalPattern(FrozenCamelModel):
    season: str
    demand: str
    factor: float


class CompetitiveInsight(FrozenCamelModel):
    insight: str
    impact: str
    recommendation: str


class MarketTrend(FrozenCamelModel):
    trend: str
    impact: str
    timeline: str
    recommendation: str


class BestPractice(FrozenCamelModel):
    practice: str
    category: str
    impact: str
    difficulty: str


class IndustryContext(FrozenCamelModel):
    industry_type: str = ""
    seasonal_patterns: List[SeasonalPattern] = Field(default_factory=list)
    competitive_analysis: List[CompetitiveInsight] = Field(default_factory=list)
    market_trends: List[MarketTrend] = Field(default_factory=list)
    best_practices: List[BestPractice] = Field(default_factory=list)


class BusinessContext(FrozenCamelModel):
    """Complete snapshot used to ground every answer for one business"""

    business_id: str
    business_profile: BusinessProfile
    recent_activity: RecentActivity = Field(default_factory=RecentActivity)
    customer_data: List[CustomerSummary] = Field(default_factory=list)
    financial_snapshot: FinancialSnapshot = Field(default_factory=FinancialSnapshot)
    operational_metrics: OperationalMetrics = Field(default_factory=OperationalMetrics)
    industry_context: IndustryContext = Field(default_factory=IndustryContext)
    assembled_at: datetime = Field(default_factory=utc_now)

    def has_operating_data(self) -> bool:
        """True when any customer, job, message, invoice or revenue is on record."""
        activity = self.recent_activity
        return bool(
            self.customer_data
            or activity.recent_jobs
            or activity.recent_customers
            or activity.recent_communications
            or activity.recent_financials
            or self.financial_snapshot.monthly_revenue
            or self.financial_snapshot.outstanding_invoices
            or self.operational_metrics.jobs_completed
        )

    def customers_with(self, relationship: RelationshipTier) -> List[CustomerSummary]:
        return [c for c in self.customer_data if c.relationship == relationship]
