"""
Request and response models for the SkillQuest API
"""

from pydantic import BaseModel, ConfigDict, Field
from typing import Dict, List, Optional
from datetime import date, datetime

from config import DEFAULT_CHALLENGE_DURATION_DAYS, MAX_CHALLENGE_DURATION_DAYS
from game_engine import (
    Difficulty, ChallengeType, ChallengePrivacy, ChallengeDifficulty, ChallengeStatus,
    ParticipantStatus,
)


# ============================================================================
# Sync
# ============================================================================

class SyncResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    status: str
    errors: List[str] = []
    pending_writes: int = 0


# ============================================================================
# Skills
# ============================================================================

class SkillCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=50)
    color: Optional[str] = None


class SkillResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    color: str
    level: int
    experience: int
    experience_to_next: int
    total_experience: int
    created_at: Optional[datetime] = None


class SkillCreated(BaseModel):
    skill: SkillResponse
    sync: SyncResponse


class SkillDeleted(BaseModel):
    skill_id: str
    removed_missions: List[str]
    experience_reversed: int
    total_level: int
    progress_reset: bool
    sync: SyncResponse


# ============================================================================
# Missions
# ============================================================================

class MissionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    skill_id: str
    title: str
    description: str
    difficulty: Difficulty
    experience: int
    time_limit: int
    is_completed: bool
    is_recurring: bool
    is_ai_generated: bool
    specific_tasks: List[str] = []
    personalized_tips: List[str] = []
    resources: List[str] = []
    created_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None


class MissionCreated(BaseModel):
    mission: MissionResponse
    sync: SyncResponse


class MissionCompletion(BaseModel):
    # The user's calendar date, used for streaks. Server date if omitted.
    local_date: Optional[date] = None


class CompletionResponse(BaseModel):
    applied: bool
    update: Optional[dict] = None
    sync: SyncResponse


class MissionStats(BaseModel):
    total: int
    completed: int
    active: int


# ============================================================================
# Progress
# ============================================================================

class ProgressResponse(BaseModel):
    user_id: str
    total_level: int
    total_experience: int
    experience_to_next_level: int
    missions_completed: int
    current_streak: int
    longest_streak: int
    last_streak_date: Optional[date] = None
    skill_level_up_contributions: Dict[str, int] = {}
    skills: int
    sync: SyncResponse


class LeaderboardEntry(BaseModel):
    rank: int
    user_id: str
    total_level: int
    total_experience: int
    missions_completed: int
    current_streak: int
    longest_streak: int


# ============================================================================
# Challenges
# ============================================================================

class ChallengeCreate(BaseModel):
    # Title, description and rules left empty are drafted by the text generator
    title: Optional[str] = Field(None, max_length=100)
    description: Optional[str] = Field(None, max_length=500)
    type: ChallengeType = ChallengeType.SPRINT
    duration: int = Field(DEFAULT_CHALLENGE_DURATION_DAYS, ge=1, le=MAX_CHALLENGE_DURATION_DAYS)
    start_date: Optional[date] = None
    skills: List[str] = Field(..., min_length=1)
    privacy: ChallengePrivacy = ChallengePrivacy.PUBLIC
    max_participants: Optional[int] = Field(None, ge=1)
    difficulty: Optional[ChallengeDifficulty] = None
    rules: List[str] = []
    tags: List[str] = []
    reward_xp: int = Field(0, ge=0)


class ChallengeResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    creator_id: Optional[str] = None
    title: str
    description: str
    type: ChallengeType
    duration: int
    start_date: date
    end_date: date
    privacy: ChallengePrivacy
    max_participants: Optional[int] = None
    difficulty: Optional[ChallengeDifficulty] = None
    status: ChallengeStatus
    skills: List[str] = []
    rules: List[str] = []
    tags: List[str] = []
    reward_xp: int = 0
    created_at: Optional[datetime] = None


class ChallengeJoin(BaseModel):
    # The user's calendar date; challenges close after their end date
    local_date: Optional[date] = None


class ChallengeProgressUpdate(BaseModel):
    progress_percentage: Optional[int] = Field(None, ge=0, le=100)
    tasks_completed: Optional[int] = Field(None, ge=0)
    total_tasks: Optional[int] = Field(None, ge=0)


class ParticipantResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    challenge_id: str
    user_id: str
    joined_at: Optional[datetime] = None
    progress_percentage: int
    tasks_completed: int
    total_tasks: int
    last_activity: Optional[datetime] = None
    is_active: bool
    completion_status: ParticipantStatus


class ChallengeLeaderboardEntry(BaseModel):
    rank: int
    user_id: str
    progress_percentage: int
    tasks_completed: int
    total_tasks: int
    completion_status: ParticipantStatus
