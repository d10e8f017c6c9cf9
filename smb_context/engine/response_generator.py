"""
Response Generator

Produces the primary natural-language answer. The prompt embeds only the
context facets the intent asks for (or a minimal default set), the raw query
and any caller overrides. The completion is returned verbatim; on any
failure a fixed apology is returned so an answer is always deliverable.
"""

import json
import logging
from typing import Any, Dict, Iterable, List, Optional

from smb_context.data_models import RelationshipTier
from smb_context.engine import facets
from smb_context.engine.llm_step import LLMStep
from smb_context.errors import LLMError
from smb_context.models.context import BusinessContext
from smb_context.models.responses import QueryIntent

logger = logging.getLogger(__name__)

FALLBACK_ANSWER = (
    "I apologize, but I couldn't generate a detailed answer right now. "
    "Please try again in a moment."
)

MAX_LISTED = 5


def _money(value: float) -> str:
    return f"${value:,.0f}"


def render_facet(context: BusinessContext, facet: str) -> List[str]:
    """Condensed, prompt-ready lines for one facet of the context."""
    profile = context.business_profile
    fin = context.financial_snapshot
    ops = context.operational_metrics
    activity = context.recent_activity

    if facet == facets.BUSINESS_PROFILE:
        return [
            "BUSINESS PROFILE:",
            f"- Business Type: {profile.business_type}",
            f"- Industry: {profile.industry}",
            f"- Location: {profile.location}",
            f"- Team Size: {profile.size}",
            f"- Services: {', '.join(profile.services) if profile.services else 'Not listed'}",
        ]
    if facet == facets.FINANCIAL:
        lines = [
            "FINANCIAL SNAPSHOT:",
            f"- Monthly Revenue: {_money(fin.monthly_revenue)}",
            f"- Monthly Expenses: {_money(fin.monthly_expenses)}",
            f"- Profit Margin: {fin.profit_margin:.1f}%",
            f"- Cash Flow: {_money(fin.cash_flow)}",
            f"- Outstanding Invoices: {_money(fin.outstanding_invoices)}",
            f"- Average Job Value: {_money(fin.average_job_value)}",
        ]
        if fin.top_customers:
            top = ", ".join(f"{c.name} ({_money(c.value)})" for c in fin.top_customers[:MAX_LISTED])
            lines.append(f"- Top Customers: {top}")
        return lines
    if facet == facets.OPERATIONAL:
        return [
            "OPERATIONAL METRICS:",
            f"- Jobs Completed (recent window): {ops.jobs_completed}",
            f"- Customer Satisfaction: {ops.customer_satisfaction}/5.0",
            f"- Average Response Time: {ops.response_time} minutes",
            f"- Booking Rate: {ops.booking_rate:.1f}%",
            f"- Utilization Rate: {ops.utilization_rate:.1f}%",
            f"- Efficiency: {ops.efficiency:.1f}%",
        ]
    if facet == facets.CUSTOMERS:
        counts = {tier: len(context.customers_with(tier)) for tier in RelationshipTier}
        lines = [
            "CUSTOMERS:",
            f"- Total Customers: {len(context.customer_data)}",
            "- By Relationship: " + ", ".join(f"{tier.value}={count}" for tier, count in counts.items()),
        ]
        for customer in context.customer_data[:MAX_LISTED]:
            lines.append(f"- {customer.name}: {_money(customer.total_value)} lifetime, {customer.relationship.value}")
        return lines
    if facet == facets.RECENT_ACTIVITY:
        lines = [
            "RECENT ACTIVITY:",
            f"- Recent Jobs: {len(activity.recent_jobs)}",
            f"- New Customers: {len(activity.recent_customers)}",
            f"- Recent Communications: {len(activity.recent_communications)}",
            f"- Recent Invoices: {len(activity.recent_financials)}",
        ]
        for job in activity.recent_jobs[:MAX_LISTED]:
            lines.append(f"- Job '{job.title}' for {job.customer_name}: {job.status}, {_money(job.value)}")
        for trend in activity.trends:
            lines.append(f"- Trend: {trend.metric} {trend.trend.value} ({trend.change:+.1f}% over {trend.timeframe})")
        return lines
    if facet == facets.INDUSTRY:
        industry = context.industry_context
        lines = [f"INDUSTRY CONTEXT ({industry.industry_type or profile.industry}):"]
        lines += [f"- Season {p.season}: {p.demand} demand (x{p.factor})" for p in industry.seasonal_patterns]
        lines += [f"- Market trend: {t.trend} ({t.impact} impact)" for t in industry.market_trends]
        lines += [f"- Best practice: {b.practice}" for b in industry.best_practices]
        return lines
    return []


def project_context(context: BusinessContext, requested: Iterable[str]) -> str:
    """Render the requested facets, falling back to the default minimal set."""
    selected = facets.normalize_facets(list(requested))
    if not selected:
        selected = list(facets.DEFAULT_FACETS)
    blocks = ["\n".join(render_facet(context, facet)) for facet in selected]
    return "\n\n".join(block for block in blocks if block)


class ResponseGenerator(LLMStep):
    name = "response_generation"

    async def generate(
        self,
        query: str,
        context: BusinessContext,
        intent: QueryIntent,
        overrides: Optional[Dict[str, Any]] = None,
    ) -> str:
        system_prompt = self._build_system_prompt(context, intent)
        user_prompt = self._build_user_prompt(query, overrides)
        try:
            answer = await self._complete(user_prompt, system_instruction=system_prompt)
            if not answer or not answer.strip():
                raise LLMError("Empty answer")
            return answer
        except LLMError as e:
            self._log_degradation(e)
            return FALLBACK_ANSWER

    def _build_system_prompt(self, context: BusinessContext, intent: QueryIntent) -> str:
        profile = context.business_profile
        return f"""You are an AI assistant for {profile.name}, a {profile.business_type} business in the {profile.industry} industry.

{project_context(context, intent.required_data)}

QUERY INTENT: {intent.intent} (action: {intent.action_type.value}, urgency: {intent.urgency.value})

Use the business data above to give specific, actionable advice. Reference relevant data points.
If the data does not contain what the user asks about, say so plainly instead of guessing."""

    def _build_user_prompt(self, query: str, overrides: Optional[Dict[str, Any]]) -> str:
        extra = f"\nAdditional Context: {json.dumps(overrides, default=str)}\n" if overrides else ""
        return f"""{query}
{extra}
Please provide a response that:
1. Addresses the specific query with business context
2. References relevant data from the business
3. Provides actionable recommendations
4. Suggests next steps or follow-up actions"""
