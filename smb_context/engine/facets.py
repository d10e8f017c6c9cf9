"""Names of the BusinessContext facets a query can draw on."""

BUSINESS_PROFILE = "business_profile"
FINANCIAL = "financial"
OPERATIONAL = "operational"
CUSTOMERS = "customers"
RECENT_ACTIVITY = "recent_activity"
INDUSTRY = "industry"

ALL_FACETS = (BUSINESS_PROFILE, FINANCIAL, OPERATIONAL, CUSTOMERS, RECENT_ACTIVITY, INDUSTRY)
DEFAULT_FACETS = (BUSINESS_PROFILE, FINANCIAL, OPERATIONAL)

FACET_ALIASES = {
    "profile": BUSINESS_PROFILE,
    "business": BUSINESS_PROFILE,
    "general": BUSINESS_PROFILE,
    "finance": FINANCIAL,
    "financials": FINANCIAL,
    "revenue": FINANCIAL,
    "invoices": FINANCIAL,
    "operations": OPERATIONAL,
    "operational_metrics": OPERATIONAL,
    "metrics": OPERATIONAL,
    "customer": CUSTOMERS,
    "customer_data": CUSTOMERS,
    "scheduling": RECENT_ACTIVITY,
    "jobs": RECENT_ACTIVITY,
    "activity": RECENT_ACTIVITY,
    "communications": RECENT_ACTIVITY,
    "market": INDUSTRY,
    "industry_context": INDUSTRY,
}


def normalize_facets(names) -> list:
    """Map free-form facet names onto known facets, dropping unknown ones."""
    result = []
    for name in names or []:
        if not isinstance(name, str):
            continue
        key = name.strip().lower().replace(" ", "_").replace("-", "_")
        facet = key if key in ALL_FACETS else FACET_ALIASES.get(key)
        if facet and facet not in result:
            result.append(facet)
    return result
