from conftest import GOOD_RESPONSES, FakeLLM
from smb_context.data_models import ActionType, Level
from smb_context.engine.extractors import (
    AutomationExtractor, InsightExtractor, RecommendationExtractor, RelatedDataExtractor,
    context_signals, related_data_candidates,
)
from smb_context.errors import LLMError
from smb_context.models.responses import QueryIntent

INTENT = QueryIntent(intent="business_analysis", action_type=ActionType.ANALYZE)


def insight(text, confidence=0.8, impact="medium"):
    return {"type": "operational", "insight": text, "confidence": confidence, "impact": impact, "evidence": []}


async def test_insights_are_validated_and_parsed(context):
    insights = await InsightExtractor(FakeLLM(dict(GOOD_RESPONSES))).extract(context, INTENT)
    assert len(insights) == 1
    assert insights[0].impact == Level.HIGH
    assert insights[0].evidence == ["Profit margin 30%"]


async def test_invalid_items_are_dropped_individually(context):
    llm = FakeLLM({"insights": {"insights": [
        insight("Good one"),
        {"type": "financial", "insight": "", "confidence": 0.5, "impact": "low"},
        {"type": "financial", "insight": "No impact", "confidence": 0.5},
        insight("Confidence as percent", confidence=85),
        "not an object",
    ]}})
    insights = await InsightExtractor(llm).extract(context, INTENT)
    assert [i.insight for i in insights] == ["Good one", "Confidence as percent"]
    assert insights[1].confidence == 0.85


async def test_list_is_bounded(context):
    llm = FakeLLM({"insights": {"insights": [insight(f"Insight {n}") for n in range(12)]}})
    insights = await InsightExtractor(llm, max_items=3).extract(context, INTENT)
    assert len(insights) == 3


async def test_bare_list_is_accepted(context):
    llm = FakeLLM({"recommendations": GOOD_RESPONSES["recommendations"]["recommendations"]})
    recs = await RecommendationExtractor(llm).extract(context, INTENT)
    assert recs[0].automatable is True
    assert recs[0].priority == Level.HIGH


async def test_failure_returns_empty_list(context):
    llm = FakeLLM({"insights": LLMError("boom"), "automation": "not json"})
    assert await InsightExtractor(llm).extract(context, INTENT) == []
    assert await AutomationExtractor(llm).extract(context, INTENT) == []
    assert await RecommendationExtractor(None).extract(context, INTENT) == []


async def test_empty_context_skips_llm(empty_context):
    llm = FakeLLM(dict(GOOD_RESPONSES))
    assert await InsightExtractor(llm).extract(empty_context, INTENT) == []
    assert await RecommendationExtractor(llm).extract(empty_context, INTENT) == []
    assert await AutomationExtractor(llm).extract(empty_context, INTENT) == []
    assert await RelatedDataExtractor(llm).extract(empty_context, INTENT) == []
    assert llm.calls == []


async def test_automation_intent_runs_without_operating_data(empty_context):
    llm = FakeLLM(dict(GOOD_RESPONSES))
    intent = QueryIntent(intent="workflow_request", action_type=ActionType.AUTOMATE)
    suggestions = await AutomationExtractor(llm).extract(empty_context, intent)
    assert suggestions[0].workflow == "Invoice reminders"
    assert suggestions[0].estimated_time_saved == 4


async def test_signals_are_embedded_in_prompt(context):
    prompts = []

    class CapturingLLM(FakeLLM):
        async def complete_chat(self, prompt, **kwargs):
            prompts.append(prompt)
            return await super().complete_chat(prompt, **kwargs)

    await InsightExtractor(CapturingLLM(dict(GOOD_RESPONSES))).extract(context, INTENT)
    assert "$450 in outstanding invoices" in prompts[0]
    assert "1 customers haven't been contacted in 90+ days" in prompts[0]


def test_context_signals(context):
    signals = context_signals(context)
    assert any("2 jobs completed recently" in s for s in signals)
    assert any("VIP" in s for s in signals)
    assert not any("below the 20-25%" in s for s in signals)


async def test_related_data_payload_comes_from_context(context):
    llm = FakeLLM({"related": {"relatedData": [
        {"type": "outstanding_invoices", "relevance": 0.6, "data": {"fabricated": True}},
        {"type": "top_customers", "relevance": 0.9},
        {"type": "made_up_set", "relevance": 1.0},
    ]}})
    related = await RelatedDataExtractor(llm).extract(context, INTENT)

    assert [r.type for r in related] == ["top_customers", "outstanding_invoices"]
    assert related[1].data["total"] == 450.0
    assert "fabricated" not in related[1].data
    assert related[0].data["customers"][0]["name"] == "Vera Important"


async def test_related_data_drops_malformed_type_but_keeps_siblings(context):
    llm = FakeLLM({"related": {"relatedData": [
        {"type": "top_customers", "relevance": 0.9},
        {"type": ["trends"], "relevance": 0.5},
        {"type": {"name": "trends"}, "relevance": 0.4},
        "outstanding_invoices",
    ]}})
    related = await RelatedDataExtractor(llm).extract(context, INTENT)

    assert [r.type for r in related] == ["top_customers"]


def test_related_candidates(context):
    candidates = related_data_candidates(context)
    assert set(candidates) >= {"top_customers", "high_value_jobs", "at_risk_customers",
                               "outstanding_invoices", "recent_communications"}
    assert [j["id"] for j in candidates["high_value_jobs"]["jobs"]] == ["j-2"]
