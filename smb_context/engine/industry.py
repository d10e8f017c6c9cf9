"""
Static industry reference content used to enrich a BusinessContext.

Lookups are keyed by business type or industry (case-insensitive). An
unknown industry yields an IndustryContext with empty lists.
"""

from typing import Any, Dict, Optional

from smb_context.models.context import IndustryContext

_SHARED_BEST_PRACTICES = [
    {"practice": "Follow up within 24 hours of initial contact", "category": "customer_service",
     "impact": "high", "difficulty": "low"},
    {"practice": "Send payment reminders before invoices are due", "category": "financial",
     "impact": "high", "difficulty": "low"},
    {"practice": "Document all customer interactions", "category": "operational",
     "impact": "medium", "difficulty": "medium"},
]

_SHARED_MARKET_TRENDS = [
    {"trend": "Customers expect faster response times", "impact": "high", "timeline": "immediate",
     "recommendation": "Implement automated response systems"},
    {"trend": "Digital payment preferences increasing", "impact": "medium", "timeline": "6 months",
     "recommendation": "Offer multiple digital payment options"},
]

INDUSTRY_REFERENCE: Dict[str, Dict[str, Any]] = {
    "hvac": {
        "seasonal_patterns": [
            {"season": "Summer", "demand": "high", "factor": 1.4},
            {"season": "Winter", "demand": "high", "factor": 1.3},
            {"season": "Spring", "demand": "medium", "factor": 1.0},
            {"season": "Fall", "demand": "medium", "factor": 1.0},
        ],
        "competitive_analysis": [
            {"insight": "Maintenance plans drive repeat revenue for regional competitors", "impact": "high",
             "recommendation": "Offer annual tune-up memberships before peak seasons"},
        ],
        "market_trends": _SHARED_MARKET_TRENDS + [
            {"trend": "Heat pump adoption is accelerating", "impact": "high", "timeline": "12 months",
             "recommendation": "Certify technicians for heat pump installation"},
        ],
        "best_practices": _SHARED_BEST_PRACTICES,
    },
    "landscaping": {
        "seasonal_patterns": [
            {"season": "Spring", "demand": "high", "factor": 1.5},
            {"season": "Summer", "demand": "high", "factor": 1.3},
            {"season": "Fall", "demand": "medium", "factor": 1.1},
            {"season": "Winter", "demand": "low", "factor": 0.6},
        ],
        "competitive_analysis": [
            {"insight": "Local competitors are increasing their digital presence", "impact": "medium",
             "recommendation": "Invest in online marketing and customer reviews"},
        ],
        "market_trends": _SHARED_MARKET_TRENDS,
        "best_practices": _SHARED_BEST_PRACTICES + [
            {"practice": "Pre-sell winter services such as snow removal in the fall", "category": "financial",
             "impact": "medium", "difficulty": "low"},
        ],
    },
    "personal care": {
        "seasonal_patterns": [
            {"season": "Summer", "demand": "high", "factor": 1.2},
            {"season": "Winter", "demand": "medium", "factor": 1.0},
            {"season": "Spring", "demand": "medium", "factor": 1.0},
            {"season": "Fall", "demand": "medium", "factor": 1.0},
        ],
        "competitive_analysis": [
            {"insight": "Online booking is now expected by most clients", "impact": "high",
             "recommendation": "Enable self-service booking with reminders"},
        ],
        "market_trends": _SHARED_MARKET_TRENDS,
        "best_practices": _SHARED_BEST_PRACTICES,
    },
    "home services": {
        "seasonal_patterns": [
            {"season": "All Year", "demand": "consistent", "factor": 1.0},
        ],
        "competitive_analysis": [
            {"insight": "Industry pricing is trending upward", "impact": "high",
             "recommendation": "Consider gradual price increases for new customers"},
            {"insight": "Local competitors are increasing their digital presence", "impact": "medium",
             "recommendation": "Invest in online marketing and customer reviews"},
        ],
        "market_trends": _SHARED_MARKET_TRENDS,
        "best_practices": _SHARED_BEST_PRACTICES,
    },
}

# Alternate spellings
INDUSTRY_REFERENCE["heating and cooling"] = INDUSTRY_REFERENCE["hvac"]
INDUSTRY_REFERENCE["salon"] = INDUSTRY_REFERENCE["personal care"]
INDUSTRY_REFERENCE["plumbing"] = INDUSTRY_REFERENCE["home services"]


def lookup_industry_context(business_type: Optional[str], industry: Optional[str]) -> IndustryContext:
    """Return reference content for the first of business_type / industry that matches."""
    for key in (business_type, industry):
        if not key:
            continue
        entry = INDUSTRY_REFERENCE.get(key.strip().lower())
        if entry is not None:
            return IndustryContext(industry_type=key, **entry)
    return IndustryContext(industry_type=business_type or industry or "")
