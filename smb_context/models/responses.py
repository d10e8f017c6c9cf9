from typing import Any, Dict, List, Optional

from pydantic import Field, field_validator

from smb_context.data_models import ActionType, Complexity, Level, QueryType
from smb_context.models.context import CamelModel

# LLM answers drift from the requested vocabulary; map the common variants
_LEVEL_SYNONYMS = {
    "urgent": "high",
    "critical": "high",
    "very high": "high",
    "moderate": "medium",
    "med": "medium",
    "minimal": "low",
    "very low": "low",
}

_ACTION_SYNONYMS = {
    "informational": "respond",
    "information": "respond",
    "transactional": "respond",
    "answer": "respond",
    "analytical": "analyze",
    "analysis": "analyze",
    "predictive": "analyze",
    "automation": "automate",
    "workflow": "automate",
}

_COMPLEXITY_SYNONYMS = {
    "moderate": "complex",
    "medium": "complex",
    "high": "complex",
    "low": "simple",
    "easy": "simple",
}


def _normalize_choice(value: Any, synonyms: Dict[str, str]) -> Any:
    if isinstance(value, str):
        cleaned = value.strip().lower().replace("-", " ")
        return synonyms.get(cleaned, cleaned.replace(" ", "_"))
    return value


def _normalize_ratio(value: Any) -> Any:
    """
    Accept 0-1 ratios, "85%" strings and whole-number percentages (2-100).

    Fractional values above 1 are left alone so range validation rejects them.
    """
    if isinstance(value, str):
        text = value.strip()
        percent = text.endswith("%")
        try:
            number = float(text.rstrip("%"))
        except ValueError:
            return value
        if percent:
            return number / 100
        value = number
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return value
    if 2 <= value <= 100 and float(value).is_integer():
        return value / 100
    return value


class AIContextRequest(CamelModel):
    """Request accepted by ContextEngine.process_query"""
    business_id: str = Field(min_length=1, description="Business to answer for")
    query_type: QueryType = Field(description="customer_inquiry, business_analysis or workflow_automation")
    query: str = Field(min_length=1, description="Free-text question")
    context: Optional[Dict[str, Any]] = Field(default=None, description="Caller overrides such as customerId or timeframe")

    @field_validator("business_id", "query", mode="before")
    @classmethod
    def _strip_text(cls, value: Any) -> Any:
        return value.strip() if isinstance(value, str) else value


class QueryIntent(CamelModel):
    """Classified purpose of a query"""
    intent: str = Field(default="information_request")
    required_data: List[str] = Field(default_factory=list, description="Context facets the answer should draw on")
    action_type: ActionType = Field(default=ActionType.RESPOND)
    urgency: Level = Field(default=Level.MEDIUM)
    complexity: Complexity = Field(default=Complexity.SIMPLE)

    @field_validator("action_type", mode="before")
    @classmethod
    def _normalize_action(cls, value: Any) -> Any:
        return _normalize_choice(value, _ACTION_SYNONYMS)

    @field_validator("urgency", mode="before")
    @classmethod
    def _normalize_urgency(cls, value: Any) -> Any:
        return _normalize_choice(value, _LEVEL_SYNONYMS)

    @field_validator("complexity", mode="before")
    @classmethod
    def _normalize_complexity(cls, value: Any) -> Any:
        return _normalize_choice(value, _COMPLEXITY_SYNONYMS)

    @field_validator("required_data", mode="before")
    @classmethod
    def _coerce_facets(cls, value: Any) -> Any:
        if isinstance(value, str):
            return [part.strip() for part in value.split(",") if part.strip()]
        return value


class Insight(CamelModel):
    type: str = Field(description="financial, operational, customer or market")
    insight: str = Field(min_length=1)
    confidence: float = Field(ge=0, le=1)
    impact: Level
    evidence: List[str] = Field(default_factory=list)

    @field_validator("type", mode="before")
    @classmethod
    def _normalize_type(cls, value: Any) -> Any:
        return value.strip().lower() if isinstance(value, str) else value

    @field_validator("confidence", mode="before")
    @classmethod
    def _normalize_confidence(cls, value: Any) -> Any:
        return _normalize_ratio(value)

    @field_validator("impact", mode="before")
    @classmethod
    def _normalize_impact(cls, value: Any) -> Any:
        return _normalize_choice(value, _LEVEL_SYNONYMS)


class Recommendation(CamelModel):
    action: str = Field(min_length=1)
    priority: Level
    effort: Level
    expected_impact: str = ""
    deadline: str = ""
    automatable: bool = False

    @field_validator("priority", "effort", mode="before")
    @classmethod
    def _normalize_level(cls, value: Any) -> Any:
        return _normalize_choice(value, _LEVEL_SYNONYMS)


class AutomationSuggestion(CamelModel):
    workflow: str = Field(min_length=1)
    trigger: str
    actions: List[str] = Field(default_factory=list)
    estimated_time_saved: float = Field(ge=0, description="Hours saved per month")
    implementation_effort: Level

    @field_validator("implementation_effort", mode="before")
    @classmethod
    def _normalize_effort(cls, value: Any) -> Any:
        return _normalize_choice(value, _LEVEL_SYNONYMS)


class RelatedDataItem(CamelModel):
    type: str
    data: Dict[str, Any] = Field(default_factory=dict)
    relevance: float = Field(ge=0, le=1)

    @field_validator("relevance", mode="before")
    @classmethod
    def _normalize_relevance(cls, value: Any) -> Any:
        return _normalize_ratio(value)


class AIContextResponse(CamelModel):
    """Aggregated answer returned by ContextEngine.process_query"""
    contextual_answer: str
    business_insights: List[Insight] = Field(default_factory=list)
    recommended_actions: List[Recommendation] = Field(default_factory=list)
    automation_suggestions: List[AutomationSuggestion] = Field(default_factory=list)
    related_data: List[RelatedDataItem] = Field(default_factory=list)


class ErrorResponse(CamelModel):
    """Standard error response model"""
    success: bool = False
    error: str = Field(description="Error message")
    error_code: Optional[str] = Field(default=None, description="Error code for debugging")
    retryable: bool = Field(default=False)
    details: List[Dict[str, Any]] = Field(default_factory=list)


class HealthResponse(CamelModel):
    """Health check response model"""
    status: str = Field(description="Service health status")
    service: str = Field(description="Service name")
    version: str = Field(default="1.0.0", description="API version")
    llm_configured: bool = Field(description="Whether an LLM API key is configured")
    degraded: bool = Field(description="True when every LLM step runs on fallbacks")
    model: Optional[str] = Field(default=None, description="LLM model in use")
