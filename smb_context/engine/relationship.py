"""
Customer relationship classification.

Pure and total: missing lifetime value or contact date never raises, it
degrades towards NEW. Only a VIP-level lifetime value bypasses the recency
check; a moderate-value customer who has not been contacted for longer than
the at-risk window is AT_RISK.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from smb_context.data_models import RelationshipTier
from smb_context.timeutils import as_utc, utc_now

VIP_THRESHOLD = 10000.0
REGULAR_THRESHOLD = 1000.0
AT_RISK_DAYS = 90


@dataclass(frozen=True)
class RelationshipThresholds:
    """Boundaries are inclusive for value (>=) and exclusive for days (>)."""
    vip_threshold: float = VIP_THRESHOLD
    regular_threshold: float = REGULAR_THRESHOLD
    at_risk_days: int = AT_RISK_DAYS


DEFAULT_THRESHOLDS = RelationshipThresholds()


def days_since(moment: datetime, now: Optional[datetime] = None) -> int:
    """Whole days elapsed since `moment`, floored."""
    now = as_utc(now) if now is not None else utc_now()
    return (now - as_utc(moment)).days


def classify(
    lifetime_value: Optional[float],
    last_contacted_at: Optional[datetime],
    *,
    now: Optional[datetime] = None,
    thresholds: RelationshipThresholds = DEFAULT_THRESHOLDS,
) -> RelationshipTier:
    if lifetime_value is not None and lifetime_value >= thresholds.vip_threshold:
        return RelationshipTier.VIP
    if last_contacted_at is not None and days_since(last_contacted_at, now) > thresholds.at_risk_days:
        return RelationshipTier.AT_RISK
    if lifetime_value is not None and lifetime_value >= thresholds.regular_threshold:
        return RelationshipTier.REGULAR
    return RelationshipTier.NEW
