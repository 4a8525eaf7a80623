import json
from dataclasses import dataclass, fields, replace
from typing import Any, Mapping


@dataclass(frozen=True)
class AgentConfig:
    """Every threshold used by the detectors, recommender and runner.

    Instances are immutable; use ``with_overrides`` or ``from_dict`` to tune.
    """

    # anomaly detection
    anomaly_min_transactions: int = 10
    duplicate_window_days: float = 7.0
    duplicate_amount_tolerance: float = 0.02
    duplicate_min_similarity: float = 0.7
    zscore_threshold: float = 2.5
    zscore_min_group_size: int = 10
    timing_day_multiplier: float = 2.0
    timing_min_day_count: int = 5
    rapid_window_hours: float = 24.0
    rapid_threshold: int = 5

    # budget recommendation
    recommendation_min_transactions: int = 10
    recommendation_months: int = 6
    recommendation_min_months: int = 2
    recommendation_noise_floor: float = 10.0
    savings_goal_percent: float = 20.0

    # smart notifications
    budget_warning_percent: float = 80.0
    budget_pace_margin: float = 20.0
    spike_window_days: int = 7
    spike_ratio: float = 1.5
    trend_window_days: int = 30
    positive_trend_reduction: float = 0.10
    savings_rate_target: float = 20.0
    insight_min_month_transactions: int = 5
    concentration_percent: float = 40.0
    recurring_min_occurrences: int = 3
    recurring_max_cv: float = 0.1

    # agent runner
    runner_min_transactions: int = 5

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "AgentConfig":
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ValueError(f"Unknown config keys: {', '.join(unknown)}")
        return cls(**dict(data))

    def with_overrides(self, **overrides: Any) -> "AgentConfig":
        return replace(self, **overrides)


DEFAULT_CONFIG = AgentConfig()


def load_config(path: str) -> AgentConfig:
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)
    return AgentConfig.from_dict(data)
