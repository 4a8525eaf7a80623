from datetime import date, timedelta

import pytest

from finance_agents.anomalies import (
    detect_duplicates,
    detect_rapid_spending,
    detect_unusual_amounts,
    detect_unusual_timing,
    get_anomaly_summary,
    run_anomaly_detection,
    visible_anomalies,
)
from finance_agents.domain import CategoryRef, Transaction
from finance_agents.ids import SequentialIds

WORDS = ["Bakery", "Cinema", "Garage", "Florist", "Pharmacy", "Bookshop", "Gym", "Dentist",
         "Plumber", "Museum", "Zoo", "Hardware", "Tailor", "Vet", "Laundry", "Optician",
         "Jeweller", "Kiosk", "Nursery", "Stationer"]


def make_tx(id, amount, ts, description="Coffee", type="expense", category=None):
    return Transaction(id=id, amount=amount, type=type, description=description, date=ts, category=category)


def spaced(n, start=date(2026, 1, 1), step=3, amount=None):
    """n unrelated transactions, ``step`` days apart, distinct words and amounts."""
    return [
        make_tx(f"t{i}", -(amount if amount is not None else 10 + i * 7),
                (start + timedelta(days=i * step)).isoformat(), WORDS[i])
        for i in range(n)
    ]


def test_minimum_sample_gating():
    assert run_anomaly_detection(spaced(9)) == []


def test_well_formed_history_has_no_findings():
    assert run_anomaly_detection(spaced(10)) == []


def test_duplicate_pair_confidence_is_similarity():
    trans = [
        make_tx("a", -25.00, "2026-03-01", "Amazon"),
        make_tx("b", -25.01, "2026-03-03", "Amazon."),
    ]
    [anomaly] = detect_duplicates(trans)
    assert anomaly.type == "duplicate"
    assert anomaly.transaction_ids == ("a", "b")
    # 1 - 1/7
    assert anomaly.confidence == 86
    assert anomaly.severity == "medium"
    assert anomaly.suggested_action == "flag"
    assert anomaly.details["dates"] == ["2026-03-01", "2026-03-03"]


def test_duplicate_group_of_three_has_confidence_95():
    trans = [
        make_tx("a", -9.99, "2026-03-01", "Spotify"),
        make_tx("b", -9.99, "2026-03-02", "Spotify"),
        make_tx("c", 9.99, "2026-03-04", "spotify "),
    ]
    [anomaly] = detect_duplicates(trans)
    assert set(anomaly.transaction_ids) == {"a", "b", "c"}
    assert anomaly.confidence == 95
    assert anomaly.severity == "high"
    assert anomaly.suggested_action == "review"


def test_duplicate_criteria_are_all_required():
    base = make_tx("a", -40.0, "2026-03-01", "Gas station")
    assert detect_duplicates([base, make_tx("b", -40.05, "2026-03-01", "Gas station")]) == []
    assert detect_duplicates([base, make_tx("c", -40.0, "2026-03-09", "Gas station")]) == []
    assert detect_duplicates([base, make_tx("d", -40.0, "2026-03-01", "Bookshop")]) == []


def test_duplicate_window_is_inclusive():
    trans = [make_tx("a", -40.0, "2026-03-01", "Gas"), make_tx("b", -40.0, "2026-03-08", "Gas")]
    assert len(detect_duplicates(trans)) == 1
    assert detect_duplicates(trans, window_days=6) == []


def test_duplicate_transaction_joins_one_group_only():
    trans = [
        make_tx("a", -5.0, "2026-03-01", "Cafe"),
        make_tx("b", -5.0, "2026-03-02", "Cafe"),
        make_tx("c", -5.0, "2026-03-20", "Cafe"),
        make_tx("d", -5.0, "2026-03-21", "Cafe"),
    ]
    groups = [a.transaction_ids for a in detect_duplicates(trans)]
    assert groups == [("a", "b"), ("c", "d")]


def test_duplicate_detection_is_idempotent():
    trans = spaced(10) + [
        make_tx("x1", -12.0, "2026-02-01", "Uber"),
        make_tx("x2", -12.0, "2026-02-02", "Uber"),
    ]
    first = {frozenset(a.transaction_ids) for a in detect_duplicates(trans)}
    second = {frozenset(a.transaction_ids) for a in detect_duplicates(trans)}
    assert first == second == {frozenset({"x1", "x2"})}


def outlier_set(outlier):
    # nine 100s and one outlier: with outlier 200, mean 110, stddev 30, z = 3
    trans = spaced(9, step=8, amount=100)
    trans.append(make_tx("out", -outlier, "2026-06-01", "Electronics",
                         category=CategoryRef("c1", "Shopping")))
    return trans


def test_unusual_amount_flags_outlier():
    [anomaly] = detect_unusual_amounts(outlier_set(200))
    assert anomaly.type == "unusual_amount"
    assert anomaly.transaction_ids == ("out",)
    assert anomaly.details["zScore"] == pytest.approx(3.0)
    assert anomaly.details["mean"] == pytest.approx(110)
    assert anomaly.details["stdDev"] == pytest.approx(30)
    assert anomaly.details["category"] == "Shopping"
    assert anomaly.severity == "medium"
    assert anomaly.confidence == 80
    assert anomaly.title == "Expense unusually high"


def test_unusual_amount_threshold_boundary():
    trans = outlier_set(200)
    assert len(detect_unusual_amounts(trans, threshold=2.99)) == 1
    assert detect_unusual_amounts(trans, threshold=3.01) == []


def test_unusual_amount_low_outlier():
    [anomaly] = detect_unusual_amounts(outlier_set(0))
    assert anomaly.title == "Expense unusually low"
    assert anomaly.details["zScore"] == pytest.approx(-3.0)


def test_unusual_amount_critical_severity():
    trans = spaced(19, step=8, amount=100)
    trans.append(make_tx("big", -1000, "2026-07-01", "Laptop"))
    [anomaly] = detect_unusual_amounts(trans)
    assert anomaly.severity == "critical"
    assert anomaly.confidence == 94


def test_unusual_amount_skips_small_or_flat_partitions():
    assert detect_unusual_amounts(outlier_set(200)[1:]) == []
    assert detect_unusual_amounts(spaced(12, amount=50)) == []


def test_unusual_amount_partitions_by_type():
    trans = spaced(10, amount=100)
    trans.append(make_tx("salary", 5000, "2026-02-01", "Salary", type="income"))
    assert detect_unusual_amounts(trans) == []


def test_unusual_timing_flags_busy_weekday():
    # 2026-01-05 is a Monday
    mondays = [
        make_tx(f"m{i}", -(20 + i), (date(2026, 1, 5) + timedelta(weeks=i)).isoformat(), WORDS[i])
        for i in range(7)
    ]
    others = [
        make_tx("o1", -5, "2026-01-07", "Kiosk"),
        make_tx("o2", -6, "2026-01-15", "Tailor"),
        make_tx("o3", -7, "2026-01-23", "Vet"),
    ]
    [anomaly] = detect_unusual_timing(mondays + others)
    assert anomaly.type == "unusual_timing"
    assert anomaly.severity == "low"
    assert anomaly.transaction_ids == ()
    assert anomaly.confidence == 70
    assert anomaly.details["day"] == "Monday"
    assert anomaly.details["count"] == 7
    assert anomaly.details["totalAmount"] == pytest.approx(sum(20 + i for i in range(7)))


def test_unusual_timing_needs_more_than_five():
    trans = [make_tx(f"m{i}", -10, (date(2026, 1, 5) + timedelta(weeks=i)).isoformat(), WORDS[i])
             for i in range(5)]
    assert detect_unusual_timing(trans) == []


def burst(prefix, day, n):
    return [make_tx(f"{prefix}{i}", -(3 + i), f"{day}T{8 + i:02d}:00:00", WORDS[i]) for i in range(n)]


def test_rapid_spending_flags_burst_once():
    trans = burst("a", "2026-04-01", 6)
    [anomaly] = detect_rapid_spending(trans)
    assert anomaly.type == "unusual_frequency"
    assert anomaly.severity == "medium"
    assert anomaly.confidence == 75
    assert len(anomaly.transaction_ids) == 6
    assert anomaly.details["startDate"] == "2026-04-01T08:00:00"


def test_rapid_spending_separate_clusters():
    trans = burst("b", "2026-04-15", 5) + burst("a", "2026-04-01", 5)
    anomalies = detect_rapid_spending(trans)
    assert [len(a.transaction_ids) for a in anomalies] == [5, 5]
    assert anomalies[0].transaction_ids[0] == "a0"


def test_rapid_spending_large_burst_is_high():
    [anomaly] = detect_rapid_spending(burst("a", "2026-04-01", 10))
    assert anomaly.severity == "high"


def test_rapid_spending_respects_window():
    trans = burst("a", "2026-04-01", 4) + [make_tx("late", -1, "2026-04-02T09:00:00", "Zoo")]
    assert detect_rapid_spending(trans) == []
    assert len(detect_rapid_spending(trans, window_hours=26)) == 1


def test_run_sorts_by_severity():
    trans = spaced(19, step=8, amount=100)
    trans.append(make_tx("big", -1000, "2026-07-01", "Laptop"))
    trans += burst("r", "2026-08-01", 5)
    anomalies = run_anomaly_detection(trans, ids=SequentialIds())
    severities = [a.severity for a in anomalies]
    assert severities[0] == "critical"
    assert severities == sorted(severities, key=["critical", "high", "medium", "low"].index)
    assert anomalies[0].id.startswith("anomaly_")


def test_summary_counts_add_up():
    trans = spaced(19, step=8, amount=100)
    trans.append(make_tx("big", -1000, "2026-07-01", "Laptop"))
    trans += burst("r", "2026-08-01", 5)
    anomalies = run_anomaly_detection(trans)
    summary = get_anomaly_summary(anomalies)
    assert summary.total == len(anomalies)
    assert summary.critical + summary.high + summary.medium + summary.low == summary.total
    assert sum(summary.by_type.values()) == summary.total
    assert summary.by_type["unusual_frequency"] == 1


def test_empty_summary():
    summary = get_anomaly_summary([])
    assert summary.total == 0
    assert summary.by_type == {}


def test_monthly_subscription_with_duplicate_charge():
    netflix = [
        make_tx(f"n{m}", -15.99, f"2026-{m:02d}-15", "Netflix")
        for m in range(1, 13)
    ]
    netflix.append(make_tx("dup", -15.99, "2026-06-17", "NETFLIX"))
    duplicates = [a for a in run_anomaly_detection(netflix) if a.type == "duplicate"]
    assert len(duplicates) == 1
    assert set(duplicates[0].transaction_ids) == {"n6", "dup"}
    assert duplicates[0].confidence == 100
    assert duplicates[0].severity == "high"


def test_visible_anomalies_hides_dismissed():
    anomalies = detect_duplicates([
        make_tx("a", -5.0, "2026-03-01", "Cafe"),
        make_tx("b", -5.0, "2026-03-02", "Cafe"),
    ], ids=SequentialIds())
    assert visible_anomalies(anomalies, ["anomaly_1"]) == []
    assert visible_anomalies(anomalies, []) == anomalies
