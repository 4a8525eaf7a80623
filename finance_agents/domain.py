from dataclasses import dataclass, field, asdict
from datetime import datetime
from typing import Any, Optional

SEVERITY_ORDER = {"critical": 0, "high": 1, "medium": 2, "low": 3}
PRIORITY_ORDER = {"high": 0, "medium": 1, "low": 2}

UNCATEGORIZED = "Uncategorized"


@dataclass(frozen=True)
class CategoryRef:
    id: str
    name: str


@dataclass(frozen=True)
class Transaction:
    id: str
    amount: float    # signed; magnitudes always use abs()
    type: str        # "income" | "expense"
    description: str
    date: str        # ISO date, e.g. "2025-09-01" or "2025-09-01T10:00:00"
    category: Optional[CategoryRef] = None
    category_id: Optional[str] = None

    @property
    def cat_id(self) -> Optional[str]:
        if self.category_id:
            return self.category_id
        return self.category.id if self.category else None

    @property
    def category_name(self) -> Optional[str]:
        return self.category.name if self.category else None


@dataclass(frozen=True)
class Category:
    id: str
    name: str
    type: str


# A budget (monthly limit for a category); id is None until persisted
@dataclass(frozen=True)
class Budget:
    category_id: str
    amount: float
    id: Optional[str] = None
    category_name: Optional[str] = None


@dataclass(frozen=True)
class Snapshot:
    transactions: tuple[Transaction, ...] = ()
    categories: tuple[Category, ...] = ()
    budgets: tuple[Budget, ...] = ()


@dataclass(frozen=True)
class Anomaly:
    id: str
    type: str           # duplicate | fraud_suspect | unusual_amount | unusual_timing | unusual_frequency
    severity: str       # critical | high | medium | low
    transaction_ids: tuple[str, ...]
    title: str
    description: str
    confidence: int     # 0-100
    suggested_action: str  # review | delete | flag | ignore
    details: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "type": self.type,
            "severity": self.severity,
            "transactionIds": list(self.transaction_ids),
            "title": self.title,
            "description": self.description,
            "confidence": self.confidence,
            "suggestedAction": self.suggested_action,
            "details": self.details,
        }


@dataclass(frozen=True)
class BudgetRecommendation:
    category_id: str
    category_name: str
    current_budget: Optional[float]
    recommended_budget: float
    confidence: str     # high | medium | low
    reasoning: str
    historical_avg: float
    historical_std_dev: float
    trend: str          # increasing | stable | decreasing
    monthly_data: tuple[float, ...]

    def to_dict(self) -> dict:
        return {
            "categoryId": self.category_id,
            "categoryName": self.category_name,
            "currentBudget": self.current_budget,
            "recommendedBudget": self.recommended_budget,
            "confidence": self.confidence,
            "reasoning": self.reasoning,
            "historicalAvg": self.historical_avg,
            "historicalStdDev": self.historical_std_dev,
            "trend": self.trend,
            "monthlyData": list(self.monthly_data),
        }


@dataclass(frozen=True)
class BudgetDifference:
    category: str
    current: float
    recommended: float
    difference: float


@dataclass(frozen=True)
class NotificationAction:
    label: str
    type: str   # navigate | dismiss | review
    payload: Optional[str] = None


@dataclass(frozen=True)
class SmartNotification:
    id: str
    type: str
    priority: str       # high | medium | low
    title: str
    message: str
    actionable: bool
    created_at: datetime
    action: Optional[NotificationAction] = None
    expires_at: Optional[datetime] = None
    category: Optional[str] = None
    amount: Optional[float] = None
    persisted: bool = False

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "type": self.type,
            "priority": self.priority,
            "title": self.title,
            "message": self.message,
            "actionable": self.actionable,
            "action": asdict(self.action) if self.action else None,
            "createdAt": self.created_at.isoformat(),
            "expiresAt": self.expires_at.isoformat() if self.expires_at else None,
            "category": self.category,
            "amount": self.amount,
        }


@dataclass(frozen=True)
class AnomalySummary:
    total: int
    critical: int
    high: int
    medium: int
    low: int
    by_type: dict[str, int]


@dataclass(frozen=True)
class NotificationSummary:
    total: int
    high: int
    medium: int
    low: int
    actionable: int
    by_type: dict[str, int]


@dataclass(frozen=True)
class AgentRunResult:
    user_id: str
    anomalies: tuple[Anomaly, ...] = ()
    notifications: tuple[SmartNotification, ...] = ()
    critical_anomalies: tuple[Anomaly, ...] = ()
    high_priority_notifications: tuple[SmartNotification, ...] = ()

    @classmethod
    def empty(cls, user_id: str) -> "AgentRunResult":
        return cls(user_id=user_id)

    def counts(self) -> dict[str, Any]:
        return {
            "totalAnomalies": len(self.anomalies),
            "criticalAnomalies": len(self.critical_anomalies),
            "totalNotifications": len(self.notifications),
            "highPriorityNotifications": len(self.high_priority_notifications),
        }
