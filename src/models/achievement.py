"""Achievement models for gamification"""
from enum import Enum
from pydantic import BaseModel, Field


class AchievementCategory(str, Enum):
    """Achievement categories"""
    ENGAGEMENT = "engagement"
    CONSISTENCY = "consistency"
    VERIFICATION = "verification"
    SOCIAL = "social"


class AchievementMetric(str, Enum):
    """Progress field an achievement requirement is measured against"""
    TOTAL_ACTIONS = "total_actions"
    CURRENT_STREAK = "current_streak"
    VERIFIED = "verified"
    REFERRALS = "referrals"


class Achievement(BaseModel):
    """Achievement definition"""
    id: str
    name: str
    description: str
    icon: str
    category: AchievementCategory
    metric: AchievementMetric
    requirement: int = Field(ge=1)
    reward_points: int = Field(ge=0)
