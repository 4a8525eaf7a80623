"""Smart notifications: budget alerts, spending spikes, positive trends and insights."""
import calendar
import hashlib
from collections import Counter, defaultdict
from datetime import datetime
from typing import Iterable, Optional, Sequence

from finance_agents.config import DEFAULT_CONFIG, AgentConfig
from finance_agents.domain import (
    PRIORITY_ORDER,
    UNCATEGORIZED,
    Budget,
    Category,
    NotificationAction,
    NotificationSummary,
    SmartNotification,
    Transaction,
)
from finance_agents.functional import find_category
from finance_agents.ids import IdFactory, random_ids
from finance_agents.stats import coefficient_of_variation, mean
from finance_agents.transforms import days_ago, expense_transactions, income_transactions, parse_date, total_amount


def notification_fingerprint(type_: str, category: Optional[str], amount: Optional[float], title: str = "") -> str:
    """Stable content hash identifying the same finding across runs."""
    amount_key = f"{amount:.2f}" if amount is not None else ""
    raw = "|".join([type_, category or "", amount_key, title])
    return hashlib.sha1(raw.encode("utf-8")).hexdigest()


def _make(
    ids: IdFactory,
    now: datetime,
    type_: str,
    priority: str,
    title: str,
    message: str,
    action: Optional[NotificationAction] = None,
    category: Optional[str] = None,
    amount: Optional[float] = None,
) -> SmartNotification:
    return SmartNotification(
        id=ids("notification", notification_fingerprint(type_, category, amount, title)),
        type=type_,
        priority=priority,
        title=title,
        message=message,
        actionable=action is not None,
        action=action,
        created_at=now,
        category=category,
        amount=amount,
    )


def current_month_transactions(transactions: Iterable[Transaction], now: datetime) -> list[Transaction]:
    result = []
    for t in transactions:
        d = parse_date(t.date)
        if d.year == now.year and d.month == now.month:
            result.append(t)
    return result


def monthly_spending_by_category(
    transactions: Iterable[Transaction], now: datetime
) -> dict[str, tuple[float, str]]:
    """Current-month expense totals keyed by category id: (amount, name)."""
    spending: dict[str, tuple[float, str]] = {}
    for t in expense_transactions(current_month_transactions(transactions, now)):
        cat_id = t.cat_id
        if not cat_id:
            continue
        amount, name = spending.get(cat_id, (0.0, t.category_name or UNCATEGORIZED))
        spending[cat_id] = (amount + abs(t.amount), name)
    return spending


def _window(transactions: Iterable[Transaction], now: datetime, start: int, end: int) -> list[Transaction]:
    # transactions aged start <= days < end; the most recent window has no lower bound
    today = now.date()
    result = []
    for t in transactions:
        age = days_ago(t.date, today)
        if age < end and (start == 0 or age >= start):
            result.append(t)
    return result


def check_budget_alerts(
    transactions: Sequence[Transaction],
    budgets: Sequence[Budget],
    now: Optional[datetime] = None,
    config: AgentConfig = DEFAULT_CONFIG,
    ids: IdFactory = random_ids,
) -> list[SmartNotification]:
    now = now or datetime.now()
    spending = monthly_spending_by_category(transactions, now)
    days_in_month = calendar.monthrange(now.year, now.month)[1]
    month_progress = now.day / days_in_month * 100

    notifications = []
    for budget in budgets:
        if budget.category_id not in spending or budget.amount <= 0:
            continue

        spent, spent_name = spending[budget.category_id]
        name = budget.category_name or spent_name
        percent_used = spent / budget.amount * 100

        if percent_used >= 100:
            notifications.append(_make(
                ids, now, "budget_exceeded", "high",
                f"Budget exceeded: {name}",
                f"You have exceeded your {budget.amount:.2f} budget for {name}. "
                f"Current spending: {spent:.2f} ({percent_used:.0f}%)",
                NotificationAction("View details", "navigate", "/budgets"),
                category=name, amount=spent,
            ))
        elif percent_used >= config.budget_warning_percent:
            notifications.append(_make(
                ids, now, "budget_warning", "medium",
                f"Budget alert: {name}",
                f"You have used {percent_used:.0f}% of your {name} budget. "
                f"{budget.amount - spent:.2f} left",
                NotificationAction("Review spending", "navigate", "/transactions"),
                category=name, amount=spent,
            ))
        elif percent_used > month_progress + config.budget_pace_margin:
            notifications.append(_make(
                ids, now, "budget_warning", "low",
                f"Accelerated spending: {name}",
                f"You are spending faster than expected on {name}. "
                "At this pace you may exceed your budget.",
                NotificationAction("View trend", "navigate", "/statistics"),
                category=name, amount=spent,
            ))

    return notifications


def detect_spending_spikes(
    transactions: Sequence[Transaction],
    now: Optional[datetime] = None,
    config: AgentConfig = DEFAULT_CONFIG,
    ids: IdFactory = random_ids,
) -> list[SmartNotification]:
    now = now or datetime.now()
    days = config.spike_window_days
    recent = total_amount(expense_transactions(_window(transactions, now, 0, days)))
    previous = total_amount(expense_transactions(_window(transactions, now, days, 2 * days)))

    if previous <= 0 or recent < previous * config.spike_ratio:
        return []

    increase = (recent - previous) / previous * 100
    return [_make(
        ids, now, "spending_spike", "medium",
        "Spending increase detected",
        f"Your spending over the last {days} days ({recent:.2f}) is {increase:.0f}% "
        "higher than the previous week.",
        NotificationAction("Analyze spending", "navigate", "/statistics"),
        amount=recent,
    )]


def check_positive_trends(
    transactions: Sequence[Transaction],
    now: Optional[datetime] = None,
    config: AgentConfig = DEFAULT_CONFIG,
    ids: IdFactory = random_ids,
) -> list[SmartNotification]:
    now = now or datetime.now()
    days = config.trend_window_days
    last = _window(transactions, now, 0, days)
    recent_expenses = total_amount(expense_transactions(last))
    previous_expenses = total_amount(expense_transactions(_window(transactions, now, days, 2 * days)))

    notifications = []
    if previous_expenses > 0 and recent_expenses <= previous_expenses * (1 - config.positive_trend_reduction):
        decrease = (previous_expenses - recent_expenses) / previous_expenses * 100
        notifications.append(_make(
            ids, now, "positive_trend", "low",
            "Great job saving!",
            f"You reduced your spending by {decrease:.0f}% compared with the previous month. Keep it up!",
            amount=previous_expenses - recent_expenses,
        ))

    recent_income = sum(t.amount for t in income_transactions(last))
    if recent_income > 0:
        savings_rate = (recent_income - recent_expenses) / recent_income * 100
        if savings_rate >= config.savings_rate_target:
            notifications.append(_make(
                ids, now, "savings_goal", "low",
                "Savings goal reached!",
                f"Your savings rate this month is {savings_rate:.0f}%. "
                "You are on track towards your financial goals.",
                amount=recent_income - recent_expenses,
            ))

    return notifications


def generate_insights(
    transactions: Sequence[Transaction],
    categories: Sequence[Category],
    now: Optional[datetime] = None,
    config: AgentConfig = DEFAULT_CONFIG,
    ids: IdFactory = random_ids,
) -> list[SmartNotification]:
    now = now or datetime.now()
    month_tx = current_month_transactions(transactions, now)
    if len(month_tx) < config.insight_min_month_transactions:
        return []

    notifications = []

    category_spending: dict[str, float] = defaultdict(float)
    for t in expense_transactions(month_tx):
        if t.cat_id:
            category_spending[t.cat_id] += abs(t.amount)

    if category_spending:
        top_id, top_amount = max(category_spending.items(), key=lambda item: item[1])
        percentage = top_amount / sum(category_spending.values()) * 100
        name = find_category(categories, top_id).map(lambda c: c.name).get_or_else(UNCATEGORIZED)
        if percentage > config.concentration_percent:
            notifications.append(_make(
                ids, now, "insight", "low",
                "Spending concentration",
                f'{percentage:.0f}% of your spending this month is in "{name}". '
                "Consider whether this category can be optimized.",
                NotificationAction("View breakdown", "navigate", "/statistics"),
                category=name, amount=top_amount,
            ))

    by_description: dict[str, list[float]] = defaultdict(list)
    for t in expense_transactions(transactions):
        by_description[t.description.lower().strip()].append(abs(t.amount))

    for description, amounts in by_description.items():
        if len(amounts) < config.recurring_min_occurrences:
            continue
        avg = mean(amounts)
        if avg <= 0 or coefficient_of_variation(amounts) >= config.recurring_max_cv:
            continue
        notifications.append(_make(
            ids, now, "bill_reminder", "low",
            f"Recurring expense: {description}",
            f'"{description}" looks like a recurring expense of about {avg:.2f}. '
            "Consider adding it to your budget.",
            NotificationAction("Create budget", "navigate", "/budgets"),
            amount=avg,
        ))

    return notifications


def sort_by_priority(notifications: Iterable[SmartNotification]) -> list[SmartNotification]:
    return sorted(notifications, key=lambda n: PRIORITY_ORDER.get(n.priority, len(PRIORITY_ORDER)))


def generate_smart_notifications(
    transactions: Sequence[Transaction],
    budgets: Sequence[Budget],
    categories: Sequence[Category],
    now: Optional[datetime] = None,
    config: AgentConfig = DEFAULT_CONFIG,
    ids: IdFactory = random_ids,
) -> list[SmartNotification]:
    now = now or datetime.now()
    return sort_by_priority([
        *check_budget_alerts(transactions, budgets, now, config, ids),
        *detect_spending_spikes(transactions, now, config, ids),
        *check_positive_trends(transactions, now, config, ids),
        *generate_insights(transactions, categories, now, config, ids),
    ])


def get_notification_summary(notifications: Sequence[SmartNotification]) -> NotificationSummary:
    priorities = Counter(n.priority for n in notifications)
    return NotificationSummary(
        total=len(notifications),
        high=priorities["high"],
        medium=priorities["medium"],
        low=priorities["low"],
        actionable=sum(1 for n in notifications if n.actionable),
        by_type=dict(Counter(n.type for n in notifications)),
    )


def filter_notifications_by_type(
    notifications: Iterable[SmartNotification], types: Iterable[str]
) -> list[SmartNotification]:
    wanted = set(types)
    return [n for n in notifications if n.type in wanted]
