import json
from datetime import date, datetime, timezone
from typing import Any, Callable, Iterable, Iterator, Mapping, Union

import pandas as pd

from finance_agents.domain import Budget, Category, CategoryRef, Snapshot, Transaction

DateLike = Union[str, date, datetime]


def parse_date(value: DateLike) -> datetime:
    """Parse an ISO date or timestamp into a naive (UTC) datetime."""
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    else:
        parsed = pd.Timestamp(str(value).strip()).to_pydatetime()
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def month_key(value: DateLike) -> str:
    d = parse_date(value)
    return f"{d.year:04d}-{d.month:02d}"


def days_ago(value: DateLike, today: date) -> int:
    """Whole calendar days between the transaction date and ``today``."""
    return (today - parse_date(value).date()).days


def iter_transactions(
    trans: Iterable[Transaction], pred: Callable[[Transaction], bool]
) -> Iterator[Transaction]:
    for t in trans:
        if pred(t):
            yield t


def expense_transactions(trans: Iterable[Transaction]) -> tuple[Transaction, ...]:
    return tuple(filter(lambda t: t.type == "expense", trans))


def income_transactions(trans: Iterable[Transaction]) -> tuple[Transaction, ...]:
    return tuple(filter(lambda t: t.type == "income", trans))


def total_amount(trans: Iterable[Transaction]) -> float:
    return sum(abs(t.amount) for t in trans)


def transaction_from_row(row: Mapping[str, Any]) -> Transaction:
    """Build a Transaction from a store row with an optional nested category."""
    nested = row.get("category")
    category = None
    if isinstance(nested, Mapping) and nested.get("id") is not None:
        category = CategoryRef(id=str(nested["id"]), name=nested.get("name") or "")
    category_id = row.get("category_id")
    return Transaction(
        id=str(row["id"]),
        amount=float(row["amount"]),
        type=row["type"],
        description=row.get("description") or "",
        date=str(row["date"]),
        category=category,
        category_id=str(category_id) if category_id is not None else None,
    )


def category_from_row(row: Mapping[str, Any]) -> Category:
    return Category(id=str(row["id"]), name=row["name"], type=row["type"])


def budget_from_row(row: Mapping[str, Any]) -> Budget:
    nested = row.get("category")
    name = nested.get("name") if isinstance(nested, Mapping) else row.get("category_name")
    return Budget(
        id=str(row["id"]) if row.get("id") is not None else None,
        category_id=str(row["category_id"]),
        amount=float(row["amount"]),
        category_name=name,
    )


def snapshot_from_dict(data: Mapping[str, Any]) -> Snapshot:
    return Snapshot(
        transactions=tuple(transaction_from_row(t) for t in data.get("transactions", [])),
        categories=tuple(category_from_row(c) for c in data.get("categories", [])),
        budgets=tuple(budget_from_row(b) for b in data.get("budgets", [])),
    )


def load_snapshots(path: str) -> dict[str, Snapshot]:
    """Load ``{"users": {user_id: {transactions, categories, budgets}}}``."""
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)

    return {str(user_id): snapshot_from_dict(user) for user_id, user in data["users"].items()}


def transactions_frame(trans: Iterable[Transaction]) -> pd.DataFrame:
    rows = [
        {
            "id": t.id,
            "date": parse_date(t.date),
            "amount": t.amount,
            "abs_amount": abs(t.amount),
            "type": t.type,
            "description": t.description,
            "category_id": t.cat_id,
            "category_name": t.category_name,
        }
        for t in trans
    ]
    df = pd.DataFrame(
        rows,
        columns=["id", "date", "amount", "abs_amount", "type", "description", "category_id", "category_name"],
    )
    df["date"] = pd.to_datetime(df["date"], errors="coerce")
    df["month"] = df["date"].dt.strftime("%Y-%m")
    return df
