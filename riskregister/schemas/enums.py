"""
Domain enums shared by models, calculators, services and the API.
"""

from enum import StrEnum


# ── Register ───────────────────────────────────────────────────────────


class RiskStatus(StrEnum):
    OPEN = "OPEN"
    MONITORING = "MONITORING"
    CLOSED = "CLOSED"


class RiskLevel(StrEnum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    EXTREME = "EXTREME"


class ControlType(StrEnum):
    PREVENTIVE = "PREVENTIVE"
    DETECTIVE = "DETECTIVE"
    CORRECTIVE = "CORRECTIVE"


class ControlTarget(StrEnum):
    LIKELIHOOD = "LIKELIHOOD"
    IMPACT = "IMPACT"
    BOTH = "BOTH"


class EntityKind(StrEnum):
    RISK = "RISK"
    CONTROL = "CONTROL"
    INDICATOR = "INDICATOR"


# ── Indicators ─────────────────────────────────────────────────────────


class IndicatorType(StrEnum):
    LEADING = "LEADING"
    LAGGING = "LAGGING"
    CONCURRENT = "CONCURRENT"


class IndicatorSignal(StrEnum):
    KRI = "KRI"     # key risk indicator
    KCI = "KCI"     # key control indicator


class CollectionFrequency(StrEnum):
    DAILY = "DAILY"
    WEEKLY = "WEEKLY"
    MONTHLY = "MONTHLY"
    QUARTERLY = "QUARTERLY"
    ANNUALLY = "ANNUALLY"


class DataQuality(StrEnum):
    VERIFIED = "VERIFIED"
    ESTIMATED = "ESTIMATED"
    PROVISIONAL = "PROVISIONAL"


class IndicatorStatus(StrEnum):
    GREEN = "GREEN"
    YELLOW = "YELLOW"
    RED = "RED"


class ThresholdDirection(StrEnum):
    ABOVE_IS_BAD = "ABOVE_IS_BAD"
    BELOW_IS_BAD = "BELOW_IS_BAD"
    BETWEEN = "BETWEEN"


class LifecycleStatus(StrEnum):
    OPEN = "OPEN"
    ACKNOWLEDGED = "ACKNOWLEDGED"
    RESOLVED = "RESOLVED"
    DISMISSED = "DISMISSED"
    ACCEPTED = "ACCEPTED"           # breaches only: board-accepted exception


UNRESOLVED_STATUSES = (LifecycleStatus.OPEN, LifecycleStatus.ACKNOWLEDGED)


# ── Appetite & Tolerance ───────────────────────────────────────────────


class StatementStatus(StrEnum):
    DRAFT = "DRAFT"
    APPROVED = "APPROVED"
    SUPERSEDED = "SUPERSEDED"
    ARCHIVED = "ARCHIVED"


class AppetiteLevel(StrEnum):
    ZERO = "ZERO"
    LOW = "LOW"
    MODERATE = "MODERATE"
    HIGH = "HIGH"


class MetricType(StrEnum):
    MAXIMUM = "MAXIMUM"             # lower is better
    MINIMUM = "MINIMUM"             # higher is better
    RANGE = "RANGE"
    DIRECTIONAL = "DIRECTIONAL"


class BadDirection(StrEnum):
    INCREASING = "INCREASING"
    DECREASING = "DECREASING"


class Materiality(StrEnum):
    INTERNAL = "INTERNAL"
    EXTERNAL = "EXTERNAL"
    DUAL = "DUAL"


class ToleranceStatus(StrEnum):
    GREEN = "GREEN"
    AMBER = "AMBER"
    RED = "RED"
    UNKNOWN = "UNKNOWN"


# ── Suggestions ────────────────────────────────────────────────────────


class SuggestionKind(StrEnum):
    RISK = "RISK"
    CONTROL = "CONTROL"
    TOLERANCE = "TOLERANCE"


class SuggestionDecision(StrEnum):
    ACCEPTED = "ACCEPTED"
    REJECTED = "REJECTED"
