"""Tests for resolution prioritization heuristics."""

import pytest

from coach.prioritize import build_strategy, categorize, estimate_effort, supports
from factories import make_resolution


@pytest.mark.parametrize(
    "title,category",
    [
        ("Exercise 3x a week", "health"),
        ("Learn Rust", "learning"),
        ("Read 12 books", "reading"),
        ("Grow my business", "career"),
        ("Call family weekly", "relationships"),
        ("Meditate daily", "mindfulness"),
        ("Plant a garden", "other"),
    ],
)
def test_categorize(title, category):
    assert categorize(title) == category


@pytest.mark.parametrize(
    "criteria,effort",
    [
        ("30 minutes daily", "high"),
        ("every day before work", "high"),
        ("3 sessions per week", "medium"),
        ("weekly review", "medium"),
        ("by the end of the year", "low"),
    ],
)
def test_estimate_effort(criteria, effort):
    assert estimate_effort(criteria) == effort


def test_supports_is_asymmetric():
    assert supports("Exercise daily", "Learn Spanish")
    assert not supports("Learn Spanish", "Exercise daily")
    assert supports("Meditate", "Read books")
    assert not supports("Meditate", "Meditate more")


def test_single_low_effort_resolution_gets_at_least_an_hour():
    strategy = build_strategy([make_resolution("Plant a garden", "first harvest by summer")], time_per_week=2)
    assert strategy["maintenance"][0]["suggestedMinimalEffort"] == "60 minutes per week"
    assert strategy["constraints"] == "none specified"
    assert "questionsForClarification" not in strategy


def test_health_focus_boosts_exercise_hours():
    strategy = build_strategy(
        [make_resolution("Exercise", "every day")], time_per_week=5, focus_area="health and energy"
    )
    # 60% of 5h is 3h, times 1.3
    assert strategy["secondary"][0]["suggestedWeeklyHours"] == 3.9


def test_constraints_are_echoed():
    strategy = build_strategy([make_resolution()], constraints="new baby")
    assert strategy["constraints"] == "new baby"
