"""Anomaly detection over a user's transaction history.

Four independent detectors (duplicates, unusual amounts, unusual timing and
rapid spending) are merged and sorted by severity. Every detector treats
insufficient data as "no findings".
"""
import math
from collections import Counter
from typing import Iterable, Sequence

from finance_agents.config import DEFAULT_CONFIG, AgentConfig
from finance_agents.domain import (
    SEVERITY_ORDER,
    UNCATEGORIZED,
    Anomaly,
    AnomalySummary,
    Transaction,
)
from finance_agents.ids import IdFactory, random_ids
from finance_agents.similarity import similarity
from finance_agents.stats import mean, stddev
from finance_agents.transforms import parse_date

DAY_NAMES = ["Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday"]
SECONDS_PER_DAY = 24 * 60 * 60


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _days_between(a: str, b: str) -> float:
    return abs((parse_date(a) - parse_date(b)).total_seconds()) / SECONDS_PER_DAY


def _weekday(value: str) -> int:
    # Sunday = 0 ... Saturday = 6
    return (parse_date(value).weekday() + 1) % 7


def detect_duplicates(
    transactions: Sequence[Transaction],
    window_days: float = DEFAULT_CONFIG.duplicate_window_days,
    amount_tolerance: float = DEFAULT_CONFIG.duplicate_amount_tolerance,
    min_similarity: float = DEFAULT_CONFIG.duplicate_min_similarity,
    ids: IdFactory = random_ids,
) -> list[Anomaly]:
    """Group near-identical transactions (amount, date window and description).

    Grouping is greedy: a transaction joins at most one group.
    """
    anomalies: list[Anomaly] = []
    checked: set[str] = set()

    for i, t1 in enumerate(transactions):
        if t1.id in checked:
            continue

        group = [t1]
        for t2 in transactions[i + 1:]:
            if t2.id in checked:
                continue
            if abs(abs(t1.amount) - abs(t2.amount)) >= amount_tolerance:
                continue
            if _days_between(t1.date, t2.date) > window_days:
                continue
            if similarity(t1.description, t2.description) < min_similarity:
                continue
            group.append(t2)
            checked.add(t2.id)

        if len(group) < 2:
            continue

        checked.add(t1.id)
        if len(group) > 2:
            confidence = 95
        else:
            confidence = _round_half_up(similarity(group[0].description, group[1].description) * 100)

        transaction_ids = tuple(t.id for t in group)
        anomalies.append(Anomaly(
            id=ids("anomaly", "duplicate:" + ",".join(transaction_ids)),
            type="duplicate",
            severity="high" if confidence > 90 else "medium",
            transaction_ids=transaction_ids,
            title="Possible duplicate transactions",
            description=f"{len(group)} similar transactions of {abs(t1.amount):.2f} found",
            confidence=confidence,
            suggested_action="review" if confidence > 90 else "flag",
            details={
                "amount": t1.amount,
                "description": t1.description,
                "dates": [t.date for t in group],
                "similarity": confidence,
            },
        ))

    return anomalies


def _amount_severity(z: float) -> str:
    if z > 4:
        return "critical"
    if z > 3:
        return "high"
    return "medium"


def detect_unusual_amounts(
    transactions: Sequence[Transaction],
    threshold: float = DEFAULT_CONFIG.zscore_threshold,
    min_group_size: int = DEFAULT_CONFIG.zscore_min_group_size,
    ids: IdFactory = random_ids,
) -> list[Anomaly]:
    """Flag amounts more than ``threshold`` standard deviations from their type's mean."""
    anomalies: list[Anomaly] = []

    for tx_type, label in (("expense", "Expense"), ("income", "Income")):
        group = [t for t in transactions if t.type == tx_type]
        if len(group) < min_group_size:
            continue

        amounts = [abs(t.amount) for t in group]
        avg = mean(amounts)
        sd = stddev(amounts)
        if sd == 0:
            continue

        for t in group:
            amount = abs(t.amount)
            z = (amount - avg) / sd
            if abs(z) <= threshold:
                continue

            direction = "unusually high" if z > 0 else "unusually low"
            anomalies.append(Anomaly(
                id=ids("anomaly", f"unusual_amount:{t.id}"),
                type="unusual_amount",
                severity=_amount_severity(abs(z)),
                transaction_ids=(t.id,),
                title=f"{label} {direction}",
                description=f"{amount:.2f} is {abs(z):.1f} standard deviations from the average ({avg:.2f})",
                confidence=min(95, _round_half_up(50 + abs(z) * 10)),
                suggested_action="review",
                details={
                    "amount": amount,
                    "mean": avg,
                    "stdDev": sd,
                    "zScore": z,
                    "description": t.description,
                    "date": t.date,
                    "category": t.category_name or UNCATEGORIZED,
                },
            ))

    return anomalies


def detect_unusual_timing(
    transactions: Sequence[Transaction],
    day_multiplier: float = DEFAULT_CONFIG.timing_day_multiplier,
    min_day_count: int = DEFAULT_CONFIG.timing_min_day_count,
    ids: IdFactory = random_ids,
) -> list[Anomaly]:
    """Flag weekdays that concentrate far more transactions than average.

    Findings are aggregate, so ``transaction_ids`` is empty.
    """
    if not transactions:
        return []

    day_count = {day: 0 for day in range(7)}
    day_amounts: dict[int, list[float]] = {day: [] for day in range(7)}
    for t in transactions:
        day = _weekday(t.date)
        day_count[day] += 1
        day_amounts[day].append(abs(t.amount))

    avg_per_day = len(transactions) / 7
    anomalies: list[Anomaly] = []

    for day, count in day_count.items():
        if count <= avg_per_day * day_multiplier or count <= min_day_count:
            continue

        total = sum(day_amounts[day])
        day_name = DAY_NAMES[day]
        percentage = count / len(transactions) * 100
        anomalies.append(Anomaly(
            id=ids("anomaly", f"unusual_timing:{day}:{count}"),
            type="unusual_timing",
            severity="low",
            transaction_ids=(),
            title=f"High activity on {day_name}s",
            description=f"{count} transactions ({percentage:.0f}% of total) totalling {total:.2f}",
            confidence=70,
            suggested_action="flag",
            details={
                "day": day_name,
                "count": count,
                "percentage": percentage,
                "totalAmount": total,
                "avgAmount": total / count,
            },
        ))

    return anomalies


def detect_rapid_spending(
    transactions: Sequence[Transaction],
    window_hours: float = DEFAULT_CONFIG.rapid_window_hours,
    threshold: int = DEFAULT_CONFIG.rapid_threshold,
    ids: IdFactory = random_ids,
) -> list[Anomaly]:
    """Flag bursts of at least ``threshold`` transactions within ``window_hours``."""
    anomalies: list[Anomaly] = []
    ordered = sorted(transactions, key=lambda t: parse_date(t.date))
    window_seconds = window_hours * 60 * 60

    i = 0
    while i < len(ordered):
        window_start = parse_date(ordered[i].date)

        j = i
        while j < len(ordered) and (parse_date(ordered[j].date) - window_start).total_seconds() <= window_seconds:
            j += 1
        window = ordered[i:j]

        if len(window) < threshold:
            i += 1
            continue

        window_ids = {t.id for t in window}
        overlaps = any(
            a.type == "unusual_frequency" and window_ids.intersection(a.transaction_ids)
            for a in anomalies
        )
        if not overlaps:
            total = sum(abs(t.amount) for t in window)
            transaction_ids = tuple(t.id for t in window)
            anomalies.append(Anomaly(
                id=ids("anomaly", "unusual_frequency:" + ",".join(transaction_ids)),
                type="unusual_frequency",
                severity="high" if len(window) >= 10 else "medium",
                transaction_ids=transaction_ids,
                title="Rapid spending detected",
                description=f"{len(window)} transactions ({total:.2f}) within {window_hours:g} hours",
                confidence=75,
                suggested_action="review",
                details={
                    "count": len(window),
                    "totalAmount": total,
                    "startDate": window[0].date,
                    "windowHours": window_hours,
                    "transactions": [
                        {"description": t.description, "amount": t.amount, "date": t.date}
                        for t in window
                    ],
                },
            ))

        # skip past this cluster
        i = j

    return anomalies


def sort_by_severity(anomalies: Iterable[Anomaly]) -> list[Anomaly]:
    return sorted(anomalies, key=lambda a: SEVERITY_ORDER.get(a.severity, len(SEVERITY_ORDER)))


def run_anomaly_detection(
    transactions: Sequence[Transaction],
    config: AgentConfig = DEFAULT_CONFIG,
    ids: IdFactory = random_ids,
) -> list[Anomaly]:
    if len(transactions) < config.anomaly_min_transactions:
        return []

    transactions = list(transactions)
    found = [
        *detect_duplicates(
            transactions,
            window_days=config.duplicate_window_days,
            amount_tolerance=config.duplicate_amount_tolerance,
            min_similarity=config.duplicate_min_similarity,
            ids=ids,
        ),
        *detect_unusual_amounts(
            transactions,
            threshold=config.zscore_threshold,
            min_group_size=config.zscore_min_group_size,
            ids=ids,
        ),
        *detect_unusual_timing(
            transactions,
            day_multiplier=config.timing_day_multiplier,
            min_day_count=config.timing_min_day_count,
            ids=ids,
        ),
        *detect_rapid_spending(
            transactions,
            window_hours=config.rapid_window_hours,
            threshold=config.rapid_threshold,
            ids=ids,
        ),
    ]
    return sort_by_severity(found)


def get_anomaly_summary(anomalies: Sequence[Anomaly]) -> AnomalySummary:
    severities = Counter(a.severity for a in anomalies)
    return AnomalySummary(
        total=len(anomalies),
        critical=severities["critical"],
        high=severities["high"],
        medium=severities["medium"],
        low=severities["low"],
        by_type=dict(Counter(a.type for a in anomalies)),
    )


def visible_anomalies(anomalies: Iterable[Anomaly], dismissed_ids: Iterable[str]) -> list[Anomaly]:
    dismissed = set(dismissed_ids)
    return [a for a in anomalies if a.id not in dismissed]
