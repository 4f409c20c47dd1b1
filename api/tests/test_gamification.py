import random
from datetime import date

from matchtime.services.gamification import (
    POINTS_REWARD_VALUE,
    REWARD_TYPES,
    achievements_to_award,
    level_for,
    next_login_streak,
    roll_daily_reward,
    stats_view,
)

CATALOGUE = [
    {"id": "a1", "name": "First Match", "requirement_type": "total_matches", "requirement_value": 1},
    {"id": "a2", "name": "Social Butterfly", "requirement_type": "total_matches", "requirement_value": 10},
    {"id": "a3", "name": "Dedicated", "requirement_type": "login_streak", "requirement_value": 7},
    {"id": "a4", "name": "Mystery", "requirement_type": "not_a_stat", "requirement_value": 0},
]


def test_level_for():
    assert level_for(0) == 1
    assert level_for(99) == 1
    assert level_for(100) == 2
    assert level_for(-50) == 1


def test_login_streak_progression():
    today = date(2026, 3, 10)
    assert next_login_streak(None, 0, today) == 1
    assert next_login_streak(date(2026, 3, 9), 4, today) == 5
    assert next_login_streak(today, 4, today) == 4
    assert next_login_streak(date(2026, 3, 7), 4, today) == 1


def test_achievements_to_award_skips_earned_and_unknown_stats():
    stats = {"total_matches": 3, "login_streak": 7}
    awarded = achievements_to_award(stats, CATALOGUE, earned_ids=set())
    assert [a["id"] for a in awarded] == ["a1", "a3"]

    awarded = achievements_to_award(stats, CATALOGUE, earned_ids={"a1"})
    assert [a["id"] for a in awarded] == ["a3"]


def test_roll_daily_reward_values():
    seen = set()
    rng = random.Random(7)
    for _ in range(50):
        reward_type, value = roll_daily_reward(rng)
        assert reward_type in REWARD_TYPES
        assert value == (POINTS_REWARD_VALUE if reward_type == "points" else 1)
        seen.add(reward_type)
    assert seen == set(REWARD_TYPES)


def test_stats_view_reports_level_progress():
    view = stats_view({"experience_points": 250, "bonus_boosts": 2})
    assert view["level"] == 3
    assert view["next_level_at"] == 300
    assert view["bonus_boosts"] == 2
    assert view["total_matches"] == 0
