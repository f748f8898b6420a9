"""
Achievement System

Fixed catalog of one-time achievements, each with a point reward:
- Engagement (first action, 100 actions)
- Consistency (7- and 30-day streaks)
- Verification (verified human)
- Social (first referral, ten referrals)

Detection is pure: `check_achievements` lists what a record qualifies for,
and the ledger's `unlock_achievement` does the (idempotent) crediting.
"""

from typing import Dict, List, Optional
import logging

from src.exceptions import InvalidArgumentError
from src.models.achievement import Achievement, AchievementCategory, AchievementMetric
from src.models.progress import UserProgress

logger = logging.getLogger(__name__)


ACHIEVEMENTS: Dict[str, Achievement] = {
    a.id: a for a in [
        Achievement(
            id="first_ad",
            name="First Steps",
            description="Watch your first ad",
            icon="👣",
            category=AchievementCategory.ENGAGEMENT,
            metric=AchievementMetric.TOTAL_ACTIONS,
            requirement=1,
            reward_points=500,
        ),
        Achievement(
            id="week_streak",
            name="Dedicated",
            description="Reach a 7-day streak",
            icon="🔥",
            category=AchievementCategory.CONSISTENCY,
            metric=AchievementMetric.CURRENT_STREAK,
            requirement=7,
            reward_points=2_000,
        ),
        Achievement(
            id="month_streak",
            name="Streak God",
            description="Reach a 30-day streak",
            icon="⚡",
            category=AchievementCategory.CONSISTENCY,
            metric=AchievementMetric.CURRENT_STREAK,
            requirement=30,
            reward_points=10_000,
        ),
        Achievement(
            id="hundred_ads",
            name="Centurion",
            description="Watch 100 ads in total",
            icon="💯",
            category=AchievementCategory.ENGAGEMENT,
            metric=AchievementMetric.TOTAL_ACTIONS,
            requirement=100,
            reward_points=5_000,
        ),
        Achievement(
            id="verified",
            name="Verified God Mode",
            description="Verify that you are a unique human",
            icon="🌐",
            category=AchievementCategory.VERIFICATION,
            metric=AchievementMetric.VERIFIED,
            requirement=1,
            reward_points=3_000,
        ),
        Achievement(
            id="first_referral",
            name="Influencer",
            description="Refer your first friend",
            icon="🤝",
            category=AchievementCategory.SOCIAL,
            metric=AchievementMetric.REFERRALS,
            requirement=1,
            reward_points=1_000,
        ),
        Achievement(
            id="ten_referrals",
            name="Viral King",
            description="Refer ten friends",
            icon="👑",
            category=AchievementCategory.SOCIAL,
            metric=AchievementMetric.REFERRALS,
            requirement=10,
            reward_points=20_000,
        ),
    ]
}


def get_achievement(achievement_id: str) -> Achievement:
    """
    Look up an achievement definition

    Raises:
        InvalidArgumentError: If the id is not in the catalog
    """
    achievement = ACHIEVEMENTS.get(achievement_id)
    if achievement is None:
        raise InvalidArgumentError(
            message=f"Unknown achievement: {achievement_id}",
            field="achievement_id",
            value=achievement_id,
        )
    return achievement


def metric_value(record: UserProgress, metric: AchievementMetric) -> int:
    """Current value of the progress field an achievement is measured on"""
    if metric == AchievementMetric.TOTAL_ACTIONS:
        return record.total_actions
    if metric == AchievementMetric.CURRENT_STREAK:
        return record.current_streak
    if metric == AchievementMetric.VERIFIED:
        return int(record.verified)
    if metric == AchievementMetric.REFERRALS:
        return len(record.referral.referrals)
    raise ValueError(f"Unhandled achievement metric: {metric}")


def check_achievements(record: UserProgress) -> List[Achievement]:
    """
    Achievements the record qualifies for but has not unlocked yet

    Returns:
        Achievements in catalog order
    """
    unlocked = record.achievement_ids()
    eligible = [
        achievement for achievement in ACHIEVEMENTS.values()
        if achievement.id not in unlocked
        and metric_value(record, achievement.metric) >= achievement.requirement
    ]

    if eligible:
        logger.debug(
            f"User {record.identity} qualifies for achievements: "
            f"{', '.join(a.id for a in eligible)}"
        )

    return eligible


def get_achievement_progress(record: UserProgress, category: Optional[AchievementCategory] = None) -> Dict[str, List[Dict]]:
    """
    Unlocked and locked achievements with progress

    Returns:
        {
            'unlocked': [{'id', 'name', 'icon', 'reward_points', 'unlocked_at'}],
            'locked': [{'id', 'name', 'icon', 'reward_points', 'progress', 'requirement'}]
        }
    """
    unlocked_at = {a.id: a.unlocked_at for a in record.achievements}
    result: Dict[str, List[Dict]] = {"unlocked": [], "locked": []}

    for achievement in ACHIEVEMENTS.values():
        if category is not None and achievement.category != category:
            continue

        entry = {
            "id": achievement.id,
            "name": achievement.name,
            "description": achievement.description,
            "icon": achievement.icon,
            "reward_points": achievement.reward_points,
        }
        if achievement.id in unlocked_at:
            entry["unlocked_at"] = unlocked_at[achievement.id]
            result["unlocked"].append(entry)
        else:
            entry["progress"] = min(metric_value(record, achievement.metric), achievement.requirement)
            entry["requirement"] = achievement.requirement
            result["locked"].append(entry)

    return result
