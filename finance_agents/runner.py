"""Agent runner: fetch a user's snapshot, run the agents, persist what matters.

I/O happens only at the edges. Fetching completes before detection starts and
detection completes before anything is persisted.
"""
import asyncio
import logging
from datetime import datetime
from typing import Iterable, Optional

from finance_agents.anomalies import run_anomaly_detection
from finance_agents.config import DEFAULT_CONFIG, AgentConfig
from finance_agents.domain import AgentRunResult, Anomaly, SmartNotification
from finance_agents.events import AGENT_RUN_COMPLETED, EventBus
from finance_agents.functional import Either, Left, Right
from finance_agents.ids import IdFactory, random_ids
from finance_agents.notifications import generate_smart_notifications, notification_fingerprint
from finance_agents.store import AgentStore

logger = logging.getLogger(__name__)

IMPORTANT_SEVERITIES = ("critical", "high")
IMPORTANT_PRIORITIES = ("high", "medium")


def critical_anomalies(anomalies: Iterable[Anomaly]) -> tuple[Anomaly, ...]:
    return tuple(a for a in anomalies if a.severity in IMPORTANT_SEVERITIES)


def high_priority_notifications(notifications: Iterable[SmartNotification]) -> tuple[SmartNotification, ...]:
    return tuple(n for n in notifications if n.priority in IMPORTANT_PRIORITIES)


async def run_all_agents(
    user_id: str,
    store: AgentStore,
    config: AgentConfig = DEFAULT_CONFIG,
    ids: IdFactory = random_ids,
    now: Optional[datetime] = None,
) -> Either[dict, AgentRunResult]:
    """Run anomaly detection and notifications for one user.

    Returns Right(result) on success, or Left({"error", "message", "user_id"})
    when fetching or detection fails.
    """
    now = now or datetime.now()
    try:
        transactions = await store.fetch_transactions(user_id)
        if not transactions or len(transactions) < config.runner_min_transactions:
            return Right(AgentRunResult.empty(user_id))

        categories, budgets = await asyncio.gather(
            store.fetch_categories(user_id),
            store.fetch_budgets(user_id),
        )
    except Exception as e:
        logger.exception("failed to fetch snapshot for user %s", user_id)
        return Left({"error": "fetch_failed", "message": str(e), "user_id": user_id})

    try:
        anomalies = run_anomaly_detection(transactions, config=config, ids=ids)
        notifications = generate_smart_notifications(
            transactions, budgets or [], categories or [], now=now, config=config, ids=ids
        )
    except Exception as e:
        logger.exception("agents failed for user %s", user_id)
        return Left({"error": "agent_failed", "message": str(e), "user_id": user_id})

    return Right(AgentRunResult(
        user_id=user_id,
        anomalies=tuple(anomalies),
        notifications=tuple(notifications),
        critical_anomalies=critical_anomalies(anomalies),
        high_priority_notifications=high_priority_notifications(notifications),
    ))


async def run_agents(
    user_id: str,
    store: AgentStore,
    config: AgentConfig = DEFAULT_CONFIG,
    ids: IdFactory = random_ids,
    now: Optional[datetime] = None,
) -> AgentRunResult:
    """Degraded form of ``run_all_agents``: failures become empty results."""
    outcome = await run_all_agents(user_id, store, config=config, ids=ids, now=now)
    if outcome.is_left():
        logger.error("agent run degraded to empty result: %s", outcome.get_error())
    return outcome.get_or_else(AgentRunResult.empty(user_id))


def build_notification_rows(
    user_id: str,
    notifications: Iterable[SmartNotification],
    anomalies: Iterable[Anomaly],
    created_at: datetime,
) -> list[dict]:
    """Rows for the ``agent_notifications`` table, important findings only."""
    timestamp = created_at.isoformat()
    rows = [
        {
            "user_id": user_id,
            "type": n.type,
            "priority": n.priority,
            "title": n.title,
            "message": n.message,
            "data": {
                "actionable": n.actionable,
                "action": n.to_dict()["action"],
                "category": n.category,
                "amount": n.amount,
                "fingerprint": notification_fingerprint(n.type, n.category, n.amount, n.title),
            },
            "is_read": False,
            "created_at": timestamp,
        }
        for n in high_priority_notifications(notifications)
    ]
    rows.extend(
        {
            "user_id": user_id,
            "type": "anomaly",
            "priority": "high" if a.severity == "critical" else "medium",
            "title": a.title,
            "message": a.description,
            "data": {
                "anomalyType": a.type,
                "confidence": a.confidence,
                "transactionIds": list(a.transaction_ids),
                "details": a.details,
            },
            "is_read": False,
            "created_at": timestamp,
        }
        for a in critical_anomalies(anomalies)
    )
    return rows


async def save_important_notifications(
    user_id: str,
    notifications: Iterable[SmartNotification],
    anomalies: Iterable[Anomaly],
    store: AgentStore,
    now: Optional[datetime] = None,
) -> Either[dict, int]:
    rows = build_notification_rows(user_id, notifications, anomalies, now or datetime.now())
    if not rows:
        return Right(0)

    try:
        await store.save_notifications(rows)
    except Exception as e:
        logger.exception("failed to save notifications for user %s", user_id)
        return Left({"error": "save_failed", "message": str(e), "user_id": user_id})

    logger.info("saved %d notifications for user %s", len(rows), user_id)
    return Right(len(rows))


async def run_agents_and_save(
    user_id: str,
    store: AgentStore,
    config: AgentConfig = DEFAULT_CONFIG,
    ids: IdFactory = random_ids,
    now: Optional[datetime] = None,
    bus: Optional[EventBus] = None,
) -> AgentRunResult:
    now = now or datetime.now()
    result = await run_agents(user_id, store, config=config, ids=ids, now=now)

    saved = await save_important_notifications(
        user_id,
        result.high_priority_notifications,
        result.critical_anomalies,
        store,
        now=now,
    )

    counts = result.counts()
    logger.info("agents executed for user %s: %s", user_id, counts)
    if bus is not None:
        try:
            bus.publish(AGENT_RUN_COMPLETED, {"user_id": user_id, "saved": saved.get_or_else(0), **counts})
        except Exception:
            logger.exception("AGENT_RUN_COMPLETED handler failed for user %s", user_id)
    return result
