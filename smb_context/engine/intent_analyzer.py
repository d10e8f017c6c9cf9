"""
Intent Analyzer

Classifies a query into a QueryIntent with one LLM call. When the LLM is
unavailable, times out or answers with something that does not validate,
a keyword heuristic takes over so the pipeline can always proceed.
"""

import logging
from typing import Optional

from pydantic import ValidationError as PydanticValidationError

from smb_context.data_models import ActionType, Complexity, Level, QueryType
from smb_context.engine import facets
from smb_context.engine.llm_step import LLMStep
from smb_context.errors import LLMError
from smb_context.llm_client import parse_json_output
from smb_context.models.context import BusinessContext
from smb_context.models.responses import QueryIntent

logger = logging.getLogger(__name__)

AUTOMATION_KEYWORDS = (
    "automate", "automation", "automatic", "workflow", "trigger", "recurring",
    "remind", "reminder", "auto-", "schedule follow",
)
ANALYSIS_KEYWORDS = (
    "analy", "performance", "performing", "trend", "revenue", "profit", "margin",
    "compare", "report", "metric", "forecast", "growth", "how is my business",
    "how are we doing", "cash flow",
)

# Keyword -> facet hints for the heuristic fallback
FACET_KEYWORDS = {
    facets.FINANCIAL: ("revenue", "profit", "margin", "invoice", "payment", "cash", "price", "money", "paid"),
    facets.CUSTOMERS: ("customer", "client", "vip", "churn", "at risk", "at-risk", "loyal"),
    facets.OPERATIONAL: ("booking", "utilization", "efficiency", "response time", "satisfaction", "performance"),
    facets.RECENT_ACTIVITY: ("job", "appointment", "schedule", "calendar", "recent", "message", "call", "email"),
    facets.INDUSTRY: ("industry", "competitor", "market", "season"),
}

INTENT_SCHEMA = {
    "type": "object",
    "properties": {
        "intent": {"type": "string"},
        "requiredData": {"type": "array", "items": {"type": "string", "enum": list(facets.ALL_FACETS)}},
        "actionType": {"type": "string", "enum": [a.value for a in ActionType]},
        "urgency": {"type": "string", "enum": [u.value for u in Level]},
        "complexity": {"type": "string", "enum": [c.value for c in Complexity]},
    },
    "required": ["intent", "requiredData", "actionType", "urgency", "complexity"],
}


def heuristic_intent(query: str) -> QueryIntent:
    """Deterministic classification used whenever the LLM path fails."""
    text = query.lower()
    if any(k in text for k in AUTOMATION_KEYWORDS):
        action, intent = ActionType.AUTOMATE, "workflow_request"
    elif any(k in text for k in ANALYSIS_KEYWORDS):
        action, intent = ActionType.ANALYZE, "business_analysis"
    else:
        action, intent = ActionType.RESPOND, "information_request"

    required = [facet for facet, words in FACET_KEYWORDS.items() if any(w in text for w in words)]
    return QueryIntent(
        intent=intent,
        required_data=required,
        action_type=action,
        urgency=Level.MEDIUM,
        complexity=Complexity.SIMPLE,
    )


class IntentAnalyzer(LLMStep):
    name = "intent_analysis"

    async def analyze(
        self,
        query: str,
        context: BusinessContext,
        query_type: Optional[QueryType] = None,
    ) -> QueryIntent:
        prompt = self._build_prompt(query, context, query_type)
        try:
            raw = await self._complete(prompt, output_schema=INTENT_SCHEMA)
            data = parse_json_output(raw)
            if not isinstance(data, dict):
                raise LLMError("Intent response is not a JSON object")
            intent = QueryIntent.model_validate(data)
        except (LLMError, PydanticValidationError) as e:
            self._log_degradation(e)
            return heuristic_intent(query)

        normalized = facets.normalize_facets(intent.required_data)
        logger.debug(f"Classified query as {intent.intent} ({intent.action_type.value}), facets={normalized}")
        return intent.model_copy(update={"required_data": normalized})

    def _build_prompt(self, query: str, context: BusinessContext, query_type: Optional[QueryType]) -> str:
        profile = context.business_profile
        return f"""Analyze this business query and determine its intent.

BUSINESS: {profile.name} ({profile.business_type}, {profile.industry})
QUERY TYPE: {query_type.value if query_type else "unspecified"}
QUERY: "{query}"

Classify the query:
1. intent: short category such as customer_service, business_analysis, workflow_request, information_request
2. requiredData: which context facets the answer needs, chosen from {", ".join(facets.ALL_FACETS)}
3. actionType: "respond" (answer a question), "analyze" (assess the business) or "automate" (set up a workflow)
4. urgency: "low", "medium" or "high"
5. complexity: "simple" or "complex"

Respond ONLY with a JSON object:
{{"intent": "...", "requiredData": ["..."], "actionType": "...", "urgency": "...", "complexity": "..."}}"""
