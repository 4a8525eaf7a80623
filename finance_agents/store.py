import asyncio
import logging
from datetime import datetime
from itertools import count
from typing import Any, Optional, Protocol

from finance_agents.domain import Budget, Category, Snapshot, Transaction
from finance_agents.transforms import load_snapshots, parse_date

logger = logging.getLogger(__name__)


class NotificationNotFound(LookupError):
    pass


class AgentStore(Protocol):
    async def fetch_transactions(self, user_id: str) -> list[Transaction]: ...

    async def fetch_categories(self, user_id: str) -> list[Category]: ...

    async def fetch_budgets(self, user_id: str) -> list[Budget]: ...

    async def save_notifications(self, rows: list[dict]) -> None: ...


class InMemoryAgentStore:
    """Reference store: user snapshots plus an ``agent_notifications`` inbox."""

    def __init__(self, snapshots: Optional[dict[str, Snapshot]] = None):
        self._snapshots: dict[str, Snapshot] = dict(snapshots or {})
        self._rows: list[dict] = []
        self._ids = count(1)

    @classmethod
    def from_seed(cls, path: str) -> "InMemoryAgentStore":
        return cls(load_snapshots(path))

    def user_ids(self) -> list[str]:
        return list(self._snapshots)

    def put_snapshot(self, user_id: str, snapshot: Snapshot) -> None:
        self._snapshots[user_id] = snapshot

    def _snapshot(self, user_id: str) -> Snapshot:
        return self._snapshots.get(user_id, Snapshot())

    async def fetch_transactions(self, user_id: str) -> list[Transaction]:
        await asyncio.sleep(0)  # cooperate
        # newest first
        return sorted(self._snapshot(user_id).transactions, key=lambda t: parse_date(t.date), reverse=True)

    async def fetch_categories(self, user_id: str) -> list[Category]:
        await asyncio.sleep(0)
        return list(self._snapshot(user_id).categories)

    async def fetch_budgets(self, user_id: str) -> list[Budget]:
        await asyncio.sleep(0)
        return list(self._snapshot(user_id).budgets)

    async def save_notifications(self, rows: list[dict]) -> None:
        await asyncio.sleep(0)
        for row in rows:
            self._rows.append({
                **row,
                "id": str(next(self._ids)),
                "is_dismissed": False,
                "read_at": None,
                "dismissed_at": None,
            })
        logger.debug("stored %d notification rows", len(rows))

    # inbox operations

    def list_notifications(self, user_id: str, limit: int = 50) -> list[dict]:
        rows = [r for r in self._rows if r["user_id"] == user_id and not r["is_dismissed"]]
        rows.sort(key=lambda r: r["created_at"], reverse=True)
        return [dict(r) for r in rows[:limit]]

    def _find(self, user_id: str, notification_id: str) -> dict:
        for row in self._rows:
            if row["id"] == notification_id and row["user_id"] == user_id:
                return row
        raise NotificationNotFound(f"Notification {notification_id} not found for user {user_id}")

    def _update(self, rows: list[dict], **changes: Any) -> int:
        for row in rows:
            row.update(changes)
        return len(rows)

    def mark_as_read(self, user_id: str, notification_id: str, now: Optional[datetime] = None) -> None:
        now = now or datetime.now()
        self._update([self._find(user_id, notification_id)], is_read=True, read_at=now.isoformat())

    def dismiss(self, user_id: str, notification_id: str, now: Optional[datetime] = None) -> None:
        now = now or datetime.now()
        self._update([self._find(user_id, notification_id)], is_dismissed=True, dismissed_at=now.isoformat())

    def mark_all_as_read(self, user_id: str, now: Optional[datetime] = None) -> int:
        now = now or datetime.now()
        unread = [r for r in self._rows if r["user_id"] == user_id and not r["is_read"]]
        return self._update(unread, is_read=True, read_at=now.isoformat())

    def dismiss_all(self, user_id: str, now: Optional[datetime] = None) -> int:
        now = now or datetime.now()
        active = [r for r in self._rows if r["user_id"] == user_id and not r["is_dismissed"]]
        return self._update(active, is_dismissed=True, dismissed_at=now.isoformat())

    def unread_count(self, user_id: str) -> int:
        return sum(1 for r in self.list_notifications(user_id) if not r["is_read"])

    def high_priority_count(self, user_id: str) -> int:
        return sum(1 for r in self.list_notifications(user_id) if r["priority"] == "high" and not r["is_read"])
