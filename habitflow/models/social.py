"""Groups and challenges"""
from enum import Enum
from typing import Optional
from datetime import date, datetime
from uuid import uuid4
from pydantic import BaseModel, Field, model_validator

from habitflow.models.habit import utcnow


class GroupRole(str, Enum):
    OWNER = "OWNER"
    MEMBER = "MEMBER"


class Group(BaseModel):
    """A set of users that runs challenges"""
    id: str = Field(default_factory=lambda: str(uuid4()))
    name: str = Field(..., min_length=1, max_length=100)
    owner_id: str
    created_at: datetime = Field(default_factory=utcnow)


class Challenge(BaseModel):
    """Time-boxed group goal"""
    id: str
    group_id: str
    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    start_date: date
    end_date: date
    target_habit_type: Optional[str] = None  # None matches any habit
    goal_count: int = Field(..., ge=1)
    xp_reward: int = Field(default=0, ge=0)
    coin_reward: int = Field(default=0, ge=0)
    created_by: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)

    @model_validator(mode="after")
    def check_dates(self) -> "Challenge":
        if self.end_date <= self.start_date:
            raise ValueError("end_date must be after start_date")
        return self

    def is_running_on(self, day: date) -> bool:
        return self.start_date <= day <= self.end_date


class ChallengeParticipant(BaseModel):
    """A user's progress in a challenge"""
    challenge_id: str
    user_id: str
    progress_count: int = Field(default=0, ge=0)
    is_completed: bool = False
    reward_granted: bool = False
    joined_at: datetime = Field(default_factory=utcnow)
    completed_at: Optional[datetime] = None


class ChallengeDetails(BaseModel):
    """Challenge with its participants, most progress first"""
    challenge: Challenge
    participants: list[ChallengeParticipant] = Field(default_factory=list)


class UserChallenge(BaseModel):
    challenge: Challenge
    participant: ChallengeParticipant


class UserChallenges(BaseModel):
    """Challenges a user is in, and open ones in their groups they have not joined"""
    active: list[UserChallenge] = Field(default_factory=list)
    available: list[Challenge] = Field(default_factory=list)
