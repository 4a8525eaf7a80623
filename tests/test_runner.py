from datetime import date, datetime, timedelta

import pytest

from finance_agents.domain import Budget, Category, CategoryRef, Snapshot, Transaction
from finance_agents.events import AGENT_RUN_COMPLETED, EventBus
from finance_agents.ids import SequentialIds
from finance_agents.runner import (
    build_notification_rows,
    run_agents,
    run_agents_and_save,
    run_all_agents,
    save_important_notifications,
)
from finance_agents.store import InMemoryAgentStore

NOW = datetime(2026, 6, 20, 10, 0)
FOOD = CategoryRef("c-food", "Food")

WORDS = ["Bakery", "Cinema", "Garage", "Florist", "Pharmacy", "Bookshop", "Gym", "Dentist",
         "Plumber", "Museum", "Zoo", "Hardware", "Tailor", "Vet", "Laundry", "Optician",
         "Jeweller", "Kiosk", "Nursery"]


def make_tx(id, amount, ts, description, category=None, type="expense"):
    return Transaction(id=id, amount=amount, type=type, description=description, date=ts, category=category)


def history():
    trans = [
        make_tx(f"t{i}", -100, (date(2026, 1, 1) + timedelta(days=8 * i)).isoformat(), WORDS[i])
        for i in range(19)
    ]
    trans.append(make_tx("big", -1000, "2026-06-01", "Laptop", category=FOOD))
    return trans


def seeded_store(transactions=None, store_cls=InMemoryAgentStore):
    snapshot = Snapshot(
        transactions=tuple(history() if transactions is None else transactions),
        categories=(Category("c-food", "Food", "expense"),),
        budgets=(Budget(category_id="c-food", amount=500, id="b1"),),
    )
    return store_cls({"u1": snapshot})


class BrokenStore(InMemoryAgentStore):
    async def fetch_transactions(self, user_id):
        raise RuntimeError("connection refused")


class ReadOnlyStore(InMemoryAgentStore):
    async def save_notifications(self, rows):
        raise PermissionError("read-only")


@pytest.mark.asyncio
async def test_run_all_agents_finds_anomaly_and_budget_alert():
    outcome = await run_all_agents("u1", seeded_store(), ids=SequentialIds(), now=NOW)
    assert outcome.is_right()
    result = outcome.get_or_else(None)

    assert [a.type for a in result.anomalies] == ["unusual_amount"]
    assert result.critical_anomalies[0].severity == "critical"
    assert [n.type for n in result.notifications] == ["budget_exceeded"]
    assert result.high_priority_notifications == result.notifications
    assert result.counts() == {
        "totalAnomalies": 1,
        "criticalAnomalies": 1,
        "totalNotifications": 1,
        "highPriorityNotifications": 1,
    }


@pytest.mark.asyncio
async def test_too_few_transactions_gives_empty_result():
    outcome = await run_all_agents("u1", seeded_store(history()[-4:]), now=NOW)
    result = outcome.get_or_else(None)
    assert result.anomalies == ()
    assert result.notifications == ()


@pytest.mark.asyncio
async def test_unknown_user_gives_empty_result():
    result = await run_agents("nobody", seeded_store(), now=NOW)
    assert result.user_id == "nobody"
    assert result.counts()["totalAnomalies"] == 0


@pytest.mark.asyncio
async def test_fetch_failure_is_reported():
    outcome = await run_all_agents("u1", BrokenStore(), now=NOW)
    assert outcome.is_left()
    error = outcome.get_error()
    assert error["error"] == "fetch_failed"
    assert error["user_id"] == "u1"
    assert "connection refused" in error["message"]


@pytest.mark.asyncio
async def test_run_agents_degrades_to_empty():
    result = await run_agents("u1", BrokenStore(), now=NOW)
    assert result.anomalies == ()
    assert result.notifications == ()


def test_no_rows_without_findings():
    rows = build_notification_rows("u1", [], [], NOW)
    assert rows == []


@pytest.mark.asyncio
async def test_rows_for_notifications_and_anomalies():
    result = (await run_all_agents("u1", seeded_store(), now=NOW)).get_or_else(None)
    rows = build_notification_rows("u1", result.notifications, result.anomalies, NOW)

    budget_row, anomaly_row = rows
    assert budget_row["type"] == "budget_exceeded"
    assert budget_row["priority"] == "high"
    assert budget_row["data"]["action"]["payload"] == "/budgets"
    assert budget_row["data"]["category"] == "Food"
    assert budget_row["data"]["fingerprint"]

    assert anomaly_row["type"] == "anomaly"
    assert anomaly_row["priority"] == "high"
    assert anomaly_row["data"]["anomalyType"] == "unusual_amount"
    assert anomaly_row["data"]["transactionIds"] == ["big"]
    assert all(r["is_read"] is False and r["created_at"] == NOW.isoformat() for r in rows)


@pytest.mark.asyncio
async def test_save_failure_is_reported():
    store = seeded_store(store_cls=ReadOnlyStore)
    result = await run_agents("u1", store, now=NOW)
    outcome = await save_important_notifications(
        "u1", result.high_priority_notifications, result.critical_anomalies, store, now=NOW
    )
    assert outcome.get_error()["error"] == "save_failed"


@pytest.mark.asyncio
async def test_nothing_to_save():
    outcome = await save_important_notifications("u1", [], [], seeded_store(), now=NOW)
    assert outcome.get_or_else(None) == 0


@pytest.mark.asyncio
async def test_run_and_save_persists_and_publishes():
    store = seeded_store()
    bus = EventBus()
    seen = []
    bus.subscribe(AGENT_RUN_COMPLETED, lambda event, payload: seen.append(payload))

    result = await run_agents_and_save("u1", store, now=NOW, bus=bus)

    inbox = store.list_notifications("u1")
    assert len(inbox) == 2
    assert {r["type"] for r in inbox} == {"budget_exceeded", "anomaly"}
    assert store.unread_count("u1") == 2
    assert seen == [{"user_id": "u1", "saved": 2, **result.counts()}]


@pytest.mark.asyncio
async def test_run_and_save_survives_save_failure():
    store = seeded_store(store_cls=ReadOnlyStore)
    result = await run_agents_and_save("u1", store, now=NOW)
    assert result.counts()["criticalAnomalies"] == 1
    assert store.list_notifications("u1") == []


@pytest.mark.asyncio
async def test_failing_subscriber_does_not_break_run_and_save():
    store = seeded_store()
    bus = EventBus()

    def subscriber_down(event, payload):
        raise RuntimeError("subscriber down")

    bus.subscribe(AGENT_RUN_COMPLETED, subscriber_down)
    result = await run_agents_and_save("u1", store, now=NOW, bus=bus)

    assert result.counts()["criticalAnomalies"] == 1
    assert len(store.list_notifications("u1")) == 2
