"""
Context Engine

Entry point for answering a business query. Validates the request, assembles
the business context, classifies intent, then fans out the answer and the
four derivation steps concurrently and aggregates them into one response.

Only validation, not-found and data-source errors escape process_query;
every LLM-dependent branch degrades to its fallback value instead.
"""

import asyncio
import logging
from typing import Any, Awaitable, Mapping, Optional, TypeVar, Union

from pydantic import ValidationError as PydanticValidationError

from smb_context.config import EngineSettings
from smb_context.data_access import BusinessDataSource, SqlBusinessDataSource
from smb_context.engine.context_assembler import ContextAssembler
from smb_context.engine.extractors import (
    AutomationExtractor, InsightExtractor, RecommendationExtractor, RelatedDataExtractor,
)
from smb_context.engine.intent_analyzer import IntentAnalyzer, heuristic_intent
from smb_context.engine.relationship import RelationshipThresholds
from smb_context.engine.response_generator import FALLBACK_ANSWER, ResponseGenerator
from smb_context.errors import ValidationError
from smb_context.llm_client import ChatCompletionClient, GeminiChatClient
from smb_context.models.responses import AIContextRequest, AIContextResponse

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ContextEngine:
    """Orchestrates one query from request to aggregated response"""

    def __init__(
        self,
        assembler: ContextAssembler,
        llm: Optional[ChatCompletionClient] = None,
        *,
        timeout_seconds: float = 20.0,
        max_items: int = 5,
    ):
        self.assembler = assembler
        self.llm = llm
        step_options = {"timeout_seconds": timeout_seconds}
        self.intent_analyzer = IntentAnalyzer(llm, **step_options)
        self.response_generator = ResponseGenerator(llm, **step_options)
        self.insight_extractor = InsightExtractor(llm, max_items=max_items, **step_options)
        self.recommendation_extractor = RecommendationExtractor(llm, max_items=max_items, **step_options)
        self.automation_extractor = AutomationExtractor(llm, max_items=max_items, **step_options)
        self.related_data_extractor = RelatedDataExtractor(llm, max_items=max_items, **step_options)

        if self.degraded:
            logger.warning("No LLM client configured; running in degraded mode with fallback answers")

    @property
    def degraded(self) -> bool:
        return self.llm is None

    def close(self) -> None:
        """Release data source resources (connection pools)."""
        close = getattr(self.assembler.data_source, "close", None)
        if close is not None:
            close()

    @classmethod
    def from_settings(
        cls,
        settings: EngineSettings,
        data_source: Optional[BusinessDataSource] = None,
        llm: Optional[ChatCompletionClient] = None,
    ) -> "ContextEngine":
        """Wire data source, LLM client and steps from EngineSettings."""
        if data_source is None:
            data_source = SqlBusinessDataSource.from_url(settings.database_url)
        if llm is None and settings.llm_configured:
            llm = GeminiChatClient(
                settings.gemini_api_key,
                settings.model_name,
                temperature=settings.temperature,
                max_retries=settings.llm_max_retries,
            )

        assembler = ContextAssembler(
            data_source,
            window_days=settings.window_days,
            window_limit=settings.window_limit,
            thresholds=RelationshipThresholds(
                vip_threshold=settings.vip_threshold,
                regular_threshold=settings.regular_threshold,
                at_risk_days=settings.at_risk_days,
            ),
            cache_ttl_seconds=settings.context_cache_ttl_seconds,
        )
        return cls(
            assembler,
            llm,
            timeout_seconds=settings.llm_timeout_seconds,
            max_items=settings.max_items,
        )

    async def process_query(self, request: Union[AIContextRequest, Mapping[str, Any]]) -> AIContextResponse:
        """
        Answer one query for one business.

        Raises:
            ValidationError: malformed request, raised before any data read
            BusinessNotFoundError: businessId does not resolve
            DataSourceError: a data read failed; the request may be retried
        """
        logger.debug("State: Validating")
        request = self._validate(request)

        logger.debug(f"State: AssemblingContext ({request.business_id})")
        context = await self.assembler.assemble(request.business_id)

        logger.debug("State: AnalyzingIntent")
        intent = await self._guarded(
            "intent_analysis",
            self.intent_analyzer.analyze(request.query, context, request.query_type),
            None,
        )
        if intent is None:
            intent = heuristic_intent(request.query)

        logger.debug(f"State: Generating (intent={intent.intent}, action={intent.action_type.value})")
        answer, insights, recommendations, automations, related = await asyncio.gather(
            self._guarded(
                "response_generation",
                self.response_generator.generate(request.query, context, intent, request.context),
                FALLBACK_ANSWER,
            ),
            self._guarded("insight_extraction", self.insight_extractor.extract(context, intent), []),
            self._guarded("recommendation_generation", self.recommendation_extractor.extract(context, intent), []),
            self._guarded("automation_suggestion", self.automation_extractor.extract(context, intent), []),
            self._guarded("related_data", self.related_data_extractor.extract(context, intent), []),
        )

        logger.debug("State: Aggregating")
        response = AIContextResponse(
            contextual_answer=answer or FALLBACK_ANSWER,
            business_insights=insights,
            recommended_actions=recommendations,
            automation_suggestions=automations,
            related_data=related,
        )
        logger.debug("State: Done")
        return response

    def _validate(self, request: Union[AIContextRequest, Mapping[str, Any]]) -> AIContextRequest:
        if isinstance(request, AIContextRequest):
            # Re-validate: model_construct or mutation can bypass field checks
            payload: Any = request.model_dump(by_alias=True)
        elif isinstance(request, Mapping):
            payload = dict(request)
        else:
            raise ValidationError(f"Unsupported request type: {type(request).__name__}")

        try:
            return AIContextRequest.model_validate(payload)
        except PydanticValidationError as e:
            errors = [
                {"field": ".".join(str(p) for p in err.get("loc", ())), "message": err.get("msg", "")}
                for err in e.errors()
            ]
            summary = "; ".join(f"{err['field']}: {err['message']}" for err in errors)
            raise ValidationError(f"Invalid request: {summary}", errors=errors) from e

    async def _guarded(self, name: str, step: Awaitable[T], fallback: T) -> T:
        """Run one branch; any unexpected exception becomes the fallback value."""
        try:
            return await step
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning(f"{name} failed unexpectedly, using fallback: {e}")
            return fallback
