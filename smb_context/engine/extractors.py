"""
Insight, recommendation, automation and related-data extractors.

Each extractor reads the same BusinessContext and QueryIntent, asks the LLM
for a JSON list of its item type and returns a bounded list. Items that do
not validate are dropped individually; a failed, timed-out or unconfigured
LLM yields an empty list. When the context carries nothing to reason about
the extractor returns [] without calling the LLM at all.

Deterministic signals computed from the context are embedded in every
prompt as evidence, so answers stay grounded in the actual numbers.
"""

import json
import logging
from typing import Any, Dict, Generic, List, Optional, Type, TypeVar

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from smb_context.data_models import OUTSTANDING_INVOICE_STATUSES, ActionType, JobStatus, RelationshipTier
from smb_context.engine.llm_step import DEFAULT_TIMEOUT_SECONDS, LLMStep
from smb_context.engine.response_generator import project_context
from smb_context.engine import facets
from smb_context.errors import LLMError
from smb_context.llm_client import ChatCompletionClient, parse_json_output
from smb_context.models.context import BusinessContext
from smb_context.models.responses import (
    AutomationSuggestion, Insight, QueryIntent, Recommendation, RelatedDataItem,
)

logger = logging.getLogger(__name__)

ItemT = TypeVar("ItemT", bound=BaseModel)

DEFAULT_MAX_ITEMS = 5
PROFIT_MARGIN_TARGET = 20.0
BOOKING_RATE_TARGET = 60.0
RESPONSE_TIME_TARGET = 60.0  # minutes


def context_signals(context: BusinessContext) -> List[str]:
    """Observations derived from the context by fixed rules."""
    fin = context.financial_snapshot
    ops = context.operational_metrics
    signals: List[str] = []

    if fin.monthly_revenue > 0:
        if fin.profit_margin < PROFIT_MARGIN_TARGET:
            signals.append(
                f"Profit margin {fin.profit_margin:.1f}% is below the 20-25% industry standard"
            )
        else:
            signals.append(f"Profit margin is {fin.profit_margin:.1f}% on ${fin.monthly_revenue:,.0f} monthly revenue")
    if fin.outstanding_invoices > 0:
        signals.append(f"${fin.outstanding_invoices:,.0f} in outstanding invoices")
    if context.recent_activity.recent_jobs and ops.booking_rate < BOOKING_RATE_TARGET:
        signals.append(f"Booking rate {ops.booking_rate:.1f}% is below the 60% target")
    if ops.response_time > RESPONSE_TIME_TARGET:
        signals.append(f"Average response time is {ops.response_time:.0f} minutes (target under 60)")

    at_risk = context.customers_with(RelationshipTier.AT_RISK)
    if at_risk:
        signals.append(f"{len(at_risk)} customers haven't been contacted in 90+ days")
    vips = context.customers_with(RelationshipTier.VIP)
    if vips:
        signals.append(f"{len(vips)} VIP customers with $10,000+ lifetime value")

    completed = [j for j in context.recent_activity.recent_jobs if j.status == JobStatus.COMPLETED.value]
    if completed:
        signals.append(f"{len(completed)} jobs completed recently")
    for trend in context.recent_activity.trends:
        signals.append(f"{trend.metric} is {trend.trend.value} ({trend.change:+.1f}% over {trend.timeframe})")
    return signals


def _items_from(data: Any, key: str) -> List[Any]:
    if isinstance(data, list):
        return data
    if isinstance(data, dict):
        items = data.get(key)
        if items is None and len(data) == 1:
            items = next(iter(data.values()))
        if isinstance(items, list):
            return items
    raise LLMError(f"Expected a JSON list under '{key}'")


class ListExtractor(LLMStep, Generic[ItemT]):
    """Base class: prompt, parse, validate item-by-item, bound."""

    item_model: Type[ItemT]
    response_key = "items"
    item_example = "{}"
    task = ""

    def __init__(
        self,
        llm: Optional[ChatCompletionClient],
        *,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        max_items: int = DEFAULT_MAX_ITEMS,
    ):
        super().__init__(llm, timeout_seconds=timeout_seconds)
        self.max_items = max_items

    def has_signal(self, context: BusinessContext, intent: QueryIntent) -> bool:
        return context.has_operating_data()

    async def extract(self, context: BusinessContext, intent: QueryIntent) -> List[ItemT]:
        if not self.has_signal(context, intent):
            logger.debug(f"{self.name}: no upstream signal, skipping")
            return []
        prompt = self.build_prompt(context, intent)
        try:
            raw = await self._complete(prompt, output_schema={"type": "object"})
            items = _items_from(parse_json_output(raw), self.response_key)
        except LLMError as e:
            self._log_degradation(e)
            return []
        return self.validate_items(items, context)

    def validate_items(self, items: List[Any], context: BusinessContext) -> List[ItemT]:
        valid: List[ItemT] = []
        for item in items:
            if len(valid) >= self.max_items:
                break
            try:
                valid.append(self.item_model.model_validate(item))
            except PydanticValidationError as e:
                logger.warning(f"{self.name}: dropping invalid item: {e.errors()[0].get('msg', e)}")
        return valid

    def build_prompt(self, context: BusinessContext, intent: QueryIntent) -> str:
        profile = context.business_profile
        signals = context_signals(context)
        signal_lines = "\n".join(f"- {s}" for s in signals) if signals else "- No notable signals"
        return f"""You are a business analyst for {profile.name}, a {profile.business_type} business in the {profile.industry} industry.

{project_context(context, facets.ALL_FACETS)}

OBSERVED SIGNALS:
{signal_lines}

QUERY INTENT: {intent.intent} (action: {intent.action_type.value}, urgency: {intent.urgency.value})

TASK: {self.task}
Return at most {self.max_items} items, grounded only in the data above.

Respond ONLY with JSON of this exact shape:
{{"{self.response_key}": [{self.item_example}]}}"""


class InsightExtractor(ListExtractor[Insight]):
    name = "insight_extraction"
    item_model = Insight
    response_key = "insights"
    task = "Identify the most important business insights (financial, operational, customer or market)."
    item_example = (
        '{"type": "financial|operational|customer|market", "insight": "...", '
        '"confidence": 0.0-1.0, "impact": "high|medium|low", "evidence": ["data point", "..."]}'
    )


class RecommendationExtractor(ListExtractor[Recommendation]):
    name = "recommendation_generation"
    item_model = Recommendation
    response_key = "recommendations"
    task = "Recommend concrete next actions for the owner, most valuable first."
    item_example = (
        '{"action": "...", "priority": "high|medium|low", "effort": "high|medium|low", '
        '"expectedImpact": "...", "deadline": "e.g. 1 week", "automatable": true}'
    )


class AutomationExtractor(ListExtractor[AutomationSuggestion]):
    name = "automation_suggestion"
    item_model = AutomationSuggestion
    response_key = "automationSuggestions"
    task = "Suggest workflows this business could automate, with trigger and steps."
    item_example = (
        '{"workflow": "...", "trigger": "...", "actions": ["step", "..."], '
        '"estimatedTimeSaved": hours_per_month, "implementationEffort": "high|medium|low"}'
    )

    def has_signal(self, context: BusinessContext, intent: QueryIntent) -> bool:
        return intent.action_type == ActionType.AUTOMATE or context.has_operating_data()


def related_data_candidates(context: BusinessContext) -> Dict[str, Dict[str, Any]]:
    """Data sets from the context that may be worth surfacing next to the answer."""
    fin = context.financial_snapshot
    activity = context.recent_activity
    candidates: Dict[str, Dict[str, Any]] = {}

    if fin.top_customers:
        candidates["top_customers"] = {
            "customers": [c.model_dump(mode="json", by_alias=True) for c in fin.top_customers]
        }
    high_value_jobs = [j for j in activity.recent_jobs if j.value > fin.average_job_value]
    if high_value_jobs:
        candidates["high_value_jobs"] = {
            "jobs": [j.model_dump(mode="json", by_alias=True) for j in high_value_jobs]
        }
    at_risk = context.customers_with(RelationshipTier.AT_RISK)
    if at_risk:
        candidates["at_risk_customers"] = {
            "customers": [c.model_dump(mode="json", by_alias=True) for c in at_risk]
        }
    outstanding = [f for f in activity.recent_financials if f.status in OUTSTANDING_INVOICE_STATUSES]
    if outstanding:
        candidates["outstanding_invoices"] = {
            "invoices": [f.model_dump(mode="json", by_alias=True) for f in outstanding],
            "total": fin.outstanding_invoices,
        }
    if activity.recent_communications:
        candidates["recent_communications"] = {
            "communications": [m.model_dump(mode="json", by_alias=True) for m in activity.recent_communications]
        }
    if activity.trends:
        candidates["trends"] = {"trends": [t.model_dump(mode="json", by_alias=True) for t in activity.trends]}
    return candidates


class RelatedDataExtractor(ListExtractor[RelatedDataItem]):
    """
    The LLM only picks which candidate data sets matter and how much; the
    payload of every returned item is copied from the context.
    """

    name = "related_data"
    item_model = RelatedDataItem
    response_key = "relatedData"

    def has_signal(self, context: BusinessContext, intent: QueryIntent) -> bool:
        return bool(related_data_candidates(context))

    def build_prompt(self, context: BusinessContext, intent: QueryIntent) -> str:
        candidates = related_data_candidates(context)
        summary = {name: {k: (len(v) if isinstance(v, list) else v) for k, v in data.items()}
                   for name, data in candidates.items()}
        return f"""A user of {context.business_profile.name} asked a question with intent "{intent.intent}"
(action: {intent.action_type.value}; facets: {", ".join(intent.required_data) or "general"}).

These data sets are available to show alongside the answer (name: item counts):
{json.dumps(summary, indent=2, default=str)}

Pick the data sets that would help the user most, at most {self.max_items}, and score each one's relevance from 0.0 to 1.0.

Respond ONLY with JSON of this exact shape:
{{"relatedData": [{{"type": "<data set name>", "relevance": 0.0-1.0}}]}}"""

    def validate_items(self, items: List[Any], context: BusinessContext) -> List[RelatedDataItem]:
        candidates = related_data_candidates(context)
        chosen: Dict[str, RelatedDataItem] = {}
        for item in items:
            kind = item.get("type") if isinstance(item, dict) else None
            if not isinstance(kind, str) or kind not in candidates:
                logger.warning(f"{self.name}: dropping unknown data set {item!r}")
                continue
            try:
                related = RelatedDataItem.model_validate(
                    {"type": kind, "data": candidates[kind], "relevance": item.get("relevance")}
                )
            except PydanticValidationError as e:
                logger.warning(f"{self.name}: dropping invalid item: {e.errors()[0].get('msg', e)}")
                continue
            if related.type not in chosen or related.relevance > chosen[related.type].relevance:
                chosen[related.type] = related
        ranked = sorted(chosen.values(), key=lambda r: r.relevance, reverse=True)
        return ranked[: self.max_items]
