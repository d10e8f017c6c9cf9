"""
Shared enumerations for the Business Context Engine
"""

from enum import Enum


class QueryType(str, Enum):
    CUSTOMER_INQUIRY = "customer_inquiry"
    BUSINESS_ANALYSIS = "business_analysis"
    WORKFLOW_AUTOMATION = "workflow_automation"


class RelationshipTier(str, Enum):
    VIP = "vip"            # lifetime value at or above the VIP threshold
    AT_RISK = "at_risk"    # not contacted within the at-risk window
    REGULAR = "regular"    # lifetime value at or above the regular threshold
    NEW = "new"            # everything else, including missing data


class ActionType(str, Enum):
    RESPOND = "respond"
    ANALYZE = "analyze"
    AUTOMATE = "automate"


class Level(str, Enum):
    """Three-step scale used for urgency, impact, priority and effort."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class Complexity(str, Enum):
    SIMPLE = "simple"
    COMPLEX = "complex"


class TrendDirection(str, Enum):
    INCREASING = "increasing"
    DECREASING = "decreasing"
    STABLE = "stable"


class JobStatus(str, Enum):
    """Status of a calendar event / job."""
    SCHEDULED = "scheduled"
    CONFIRMED = "confirmed"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no_show"
    RESCHEDULED = "rescheduled"


class InvoiceStatus(str, Enum):
    DRAFT = "draft"
    SENT = "sent"
    VIEWED = "viewed"
    PENDING = "pending"
    PAID = "paid"
    OVERDUE = "overdue"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"


# Invoices that still represent money owed to the business
OUTSTANDING_INVOICE_STATUSES = frozenset({
    InvoiceStatus.SENT.value,
    InvoiceStatus.VIEWED.value,
    InvoiceStatus.PENDING.value,
    InvoiceStatus.OVERDUE.value,
})
