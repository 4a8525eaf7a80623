"""Monthly budget recommendations derived from historical category spending."""
import math
from datetime import date
from typing import Iterable, Optional, Sequence

import pandas as pd

from finance_agents.config import DEFAULT_CONFIG, AgentConfig
from finance_agents.domain import (
    UNCATEGORIZED,
    Budget,
    BudgetDifference,
    BudgetRecommendation,
    Category,
    Transaction,
)
from finance_agents.functional import find_budget
from finance_agents.stats import (
    DECREASING,
    INCREASING,
    classify_trend,
    coefficient_of_variation,
    mean,
    stddev,
)
from finance_agents.transforms import transactions_frame


def cutoff_date(today: date, months: int) -> date:
    return (pd.Timestamp(today) - pd.DateOffset(months=months)).date()


def group_by_category_and_month(
    transactions: Iterable[Transaction], categories: Iterable[Category]
) -> dict[str, tuple[str, list[float]]]:
    """Map category id -> (name, chronological monthly expense totals).

    Expense categories are seeded even when they have no transactions.
    """
    result: dict[str, tuple[str, list[float]]] = {
        c.id: (c.name, []) for c in categories if c.type == "expense"
    }

    df = transactions_frame(transactions)
    df = df[(df["type"] == "expense") & df["category_id"].notna()]
    if df.empty:
        return result

    for cat_id, rows in df.groupby("category_id", sort=False):
        monthly = rows.groupby("month")["abs_amount"].sum().sort_index()
        if cat_id in result:
            name = result[cat_id][0]
        else:
            names = rows["category_name"].dropna()
            name = names.iloc[0] if not names.empty and names.iloc[0] else UNCATEGORIZED
        result[cat_id] = (name, [float(v) for v in monthly.tolist()])

    return result


def generate_reasoning(avg: float, trend: str, confidence: str) -> str:
    parts = [f"Historical average: {avg:.2f}"]

    if confidence == "high":
        parts.append("Very consistent spending")
    elif confidence == "medium":
        parts.append("Moderate variability")
    else:
        parts.append("High spending variability")

    if trend == INCREASING:
        parts.append("Trending upwards")
    elif trend == DECREASING:
        parts.append("Trending downwards")

    return ". ".join(parts) + "."


def round_up_to_five(value: float) -> float:
    # cents first, so float noise such as 110.00000000000001 stays at 110
    return float(math.ceil(round(value, 2) / 5) * 5)


def recommend_amount(monthly: Sequence[float]) -> tuple[float, str, float, float, str]:
    """Return (recommended, confidence, mean, stddev, trend) for one category."""
    avg = mean(monthly)
    sd = stddev(monthly)
    trend = classify_trend(monthly)
    cv = coefficient_of_variation(monthly)

    if cv < 0.2:
        recommended, confidence = avg * 1.1, "high"
    elif cv < 0.5:
        recommended, confidence = avg + 0.5 * sd, "medium"
    else:
        recommended, confidence = avg + sd, "low"

    if trend == INCREASING:
        recommended *= 1.05
    elif trend == DECREASING:
        recommended *= 0.95

    return round_up_to_five(recommended), confidence, avg, sd, trend


def calculate_budget_recommendations(
    transactions: Sequence[Transaction],
    categories: Sequence[Category],
    existing_budgets: Sequence[Budget],
    savings_goal_percent: float = DEFAULT_CONFIG.savings_goal_percent,
    months_to_analyze: int = DEFAULT_CONFIG.recommendation_months,
    today: Optional[date] = None,
    config: AgentConfig = DEFAULT_CONFIG,
) -> list[BudgetRecommendation]:
    today = today or date.today()
    cutoff = cutoff_date(today, months_to_analyze).isoformat()

    recent = [t for t in transactions if t.date[:10] >= cutoff]
    if len(recent) < config.recommendation_min_transactions:
        return []

    recommendations: list[BudgetRecommendation] = []
    for cat_id, (name, monthly) in group_by_category_and_month(recent, categories).items():
        if len(monthly) < config.recommendation_min_months:
            continue
        if mean(monthly) < config.recommendation_noise_floor:
            continue

        recommended, confidence, avg, sd, trend = recommend_amount(monthly)
        current = find_budget(existing_budgets, cat_id).map(lambda b: b.amount).get_or_else(None)

        recommendations.append(BudgetRecommendation(
            category_id=cat_id,
            category_name=name,
            current_budget=current,
            recommended_budget=recommended,
            confidence=confidence,
            reasoning=generate_reasoning(avg, trend, confidence),
            historical_avg=avg,
            historical_std_dev=sd,
            trend=trend,
            monthly_data=tuple(monthly),
        ))

    return sorted(recommendations, key=lambda r: r.recommended_budget, reverse=True)


def get_total_recommended_budget(recommendations: Iterable[BudgetRecommendation]) -> float:
    return sum(r.recommended_budget for r in recommendations)


def get_budget_difference(recommendations: Iterable[BudgetRecommendation]) -> list[BudgetDifference]:
    diffs = [
        BudgetDifference(
            category=r.category_name,
            current=r.current_budget,
            recommended=r.recommended_budget,
            difference=r.recommended_budget - r.current_budget,
        )
        for r in recommendations
        if r.current_budget is not None
    ]
    return sorted(diffs, key=lambda d: abs(d.difference), reverse=True)
