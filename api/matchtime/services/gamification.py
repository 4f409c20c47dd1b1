import random
from datetime import date
from typing import Any

XP_PER_LEVEL = 100

ACHIEVEMENT_STATS = {
    "total_matches",
    "likes_given",
    "login_streak",
    "profile_views",
    "total_conversations",
    "super_likes_given",
    "likes_received",
}

REWARD_TYPES = ("super_like", "boost", "points")
POINTS_REWARD_VALUE = 50


def level_for(experience_points: int) -> int:
    return 1 + max(0, int(experience_points or 0)) // XP_PER_LEVEL


def next_login_streak(last_login_date: date | None, current_streak: int, today: date) -> int:
    if last_login_date is None:
        return 1
    if last_login_date == today:
        return max(1, int(current_streak or 0))
    if (today - last_login_date).days == 1:
        return int(current_streak or 0) + 1
    return 1


def achievements_to_award(stats: dict[str, Any], catalogue: list[dict[str, Any]], earned_ids: set[str]) -> list[dict[str, Any]]:
    awarded: list[dict[str, Any]] = []
    for achievement in catalogue:
        if str(achievement["id"]) in earned_ids:
            continue
        stat = str(achievement.get("requirement_type") or "")
        if stat not in ACHIEVEMENT_STATS:
            continue
        if int(stats.get(stat) or 0) >= int(achievement.get("requirement_value") or 0):
            awarded.append(achievement)
    return awarded


def roll_daily_reward(rng: random.Random | None = None) -> tuple[str, int]:
    reward_type = (rng or random).choice(REWARD_TYPES)
    return reward_type, POINTS_REWARD_VALUE if reward_type == "points" else 1


def stats_view(stats: dict[str, Any]) -> dict[str, Any]:
    xp = int(stats.get("experience_points") or 0)
    return {
        "level": level_for(xp),
        "experience_points": xp,
        "next_level_at": level_for(xp) * XP_PER_LEVEL,
        "login_streak": int(stats.get("login_streak") or 0),
        "total_matches": int(stats.get("total_matches") or 0),
        "total_conversations": int(stats.get("total_conversations") or 0),
        "profile_views": int(stats.get("profile_views") or 0),
        "likes_given": int(stats.get("likes_given") or 0),
        "likes_received": int(stats.get("likes_received") or 0),
        "super_likes_given": int(stats.get("super_likes_given") or 0),
        "super_likes_received": int(stats.get("super_likes_received") or 0),
        "bonus_super_likes": int(stats.get("bonus_super_likes") or 0),
        "bonus_boosts": int(stats.get("bonus_boosts") or 0),
    }
