import logging
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, Optional, Sequence

from finance_agents.anomalies import get_anomaly_summary, run_anomaly_detection
from finance_agents.budgets import calculate_budget_recommendations, get_total_recommended_budget
from finance_agents.config import DEFAULT_CONFIG, AgentConfig
from finance_agents.domain import NotificationAction, SmartNotification, Snapshot
from finance_agents.ids import IdFactory, random_ids
from finance_agents.notifications import (
    generate_smart_notifications,
    get_notification_summary,
    notification_fingerprint,
)
from finance_agents.transforms import parse_date

logger = logging.getLogger(__name__)

# (snapshot, config, now, ids) -> partial result
Analyzer = Callable[[Snapshot, AgentConfig, datetime, IdFactory], Dict[str, Any]]


def anomaly_analyzer(snapshot: Snapshot, config: AgentConfig, now: datetime, ids: IdFactory) -> Dict[str, Any]:
    anomalies = run_anomaly_detection(snapshot.transactions, config=config, ids=ids)
    return {"anomalies": anomalies, "anomaly_summary": get_anomaly_summary(anomalies)}


def notification_analyzer(snapshot: Snapshot, config: AgentConfig, now: datetime, ids: IdFactory) -> Dict[str, Any]:
    # live views skip notifications until there is a minimal history
    if len(snapshot.transactions) < config.runner_min_transactions:
        return {"notifications": []}
    notifications = generate_smart_notifications(
        snapshot.transactions, snapshot.budgets, snapshot.categories, now=now, config=config, ids=ids
    )
    return {"notifications": notifications, "notification_summary": get_notification_summary(notifications)}


def recommendation_analyzer(snapshot: Snapshot, config: AgentConfig, now: datetime, ids: IdFactory) -> Dict[str, Any]:
    if not snapshot.categories:
        return {"recommendations": []}
    recommendations = calculate_budget_recommendations(
        snapshot.transactions,
        snapshot.categories,
        snapshot.budgets,
        savings_goal_percent=config.savings_goal_percent,
        months_to_analyze=config.recommendation_months,
        today=now.date(),
        config=config,
    )
    return {
        "recommendations": recommendations,
        "total_recommended": get_total_recommended_budget(recommendations),
    }


DEFAULT_ANALYZERS = (anomaly_analyzer, notification_analyzer, recommendation_analyzer)


class AnalysisService:
    """Facade for live (unsaved) analysis using injected analyzers.

    Each analyzer's output is recorded as a step and merged into the result.
    A failing analyzer is logged and recorded as an error step; the others
    still run.
    """

    def __init__(
        self,
        analyzers: Sequence[Analyzer] = DEFAULT_ANALYZERS,
        config: AgentConfig = DEFAULT_CONFIG,
        ids: IdFactory = random_ids,
    ):
        self.analyzers = analyzers
        self.config = config
        self.ids = ids

    def report(self, snapshot: Snapshot, now: Optional[datetime] = None) -> Dict[str, Any]:
        now = now or datetime.now()
        report = {"generated_at": now.isoformat(), "steps": [], "errors": [], "result": {}}

        acc: Dict[str, Any] = {}
        for analyzer in self.analyzers:
            name = getattr(analyzer, "__name__", str(analyzer))
            try:
                out = analyzer(snapshot, self.config, now, self.ids)
            except Exception as e:
                logger.exception("analyzer %s failed", name)
                report["errors"].append({"analyzer": name, "error": str(e)})
                continue
            report["steps"].append({"analyzer": name, "output": out})
            acc.update(out)

        report["result"] = acc
        return report


def notification_from_row(row: Dict[str, Any]) -> SmartNotification:
    """Convert a persisted ``agent_notifications`` row back into a notification."""
    data = row.get("data") or {}
    action = data.get("action")
    return SmartNotification(
        id=str(row["id"]),
        type=row["type"],
        priority=row["priority"],
        title=row["title"],
        message=row["message"],
        actionable=bool(data.get("actionable", False)),
        action=NotificationAction(**action) if action else None,
        created_at=parse_date(row["created_at"]),
        category=data.get("category"),
        amount=data.get("amount"),
        persisted=True,
    )


def _row_fingerprint(row: Dict[str, Any]) -> str:
    data = row.get("data") or {}
    return data.get("fingerprint") or notification_fingerprint(
        row["type"], data.get("category"), data.get("amount"), row["title"]
    )


def merge_notifications(
    persisted_rows: Iterable[Dict[str, Any]], live: Iterable[SmartNotification]
) -> list[SmartNotification]:
    """Persisted notifications first, then live ones not already persisted.

    Two notifications are the same finding when their fingerprints (type,
    category, amount, title) match.
    """
    persisted_rows = list(persisted_rows)
    seen = {_row_fingerprint(r) for r in persisted_rows}
    merged = [notification_from_row(r) for r in persisted_rows]
    merged.extend(
        n for n in live
        if notification_fingerprint(n.type, n.category, n.amount, n.title) not in seen
    )
    return merged


def visible_notifications(
    notifications: Iterable[SmartNotification], dismissed_ids: Iterable[str], max_visible: int = 5
) -> list[SmartNotification]:
    dismissed = set(dismissed_ids)
    return [n for n in notifications if n.id not in dismissed][:max(0, max_visible)]
