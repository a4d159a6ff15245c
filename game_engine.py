"""
SkillQuest Game Engine - progression logic
Leveling formulas, mission rewards, the mission-completion transition,
daily streaks, skill-deletion reversal and time-boxed challenges.

Pure functions over an explicitly passed AccountProgression. No database,
no network: callers load and persist state through progress_store.
"""

import math
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from enum import Enum
from typing import Dict, List, Optional

from config import (
    XP_PER_LEVEL_STEP, SKILL_LEVEL_UP_BONUS, BASE_REWARDS, TIME_LIMITS,
    MEDIUM_FROM_LEVEL, HARD_FROM_LEVEL, EXPERT_FROM_LEVEL,
)


class Difficulty(str, Enum):
    EASY = "Easy"
    MEDIUM = "Medium"
    HARD = "Hard"
    EXPERT = "Expert"


# ============================================================================
# State
# ============================================================================

@dataclass
class SkillState:
    id: str
    name: str
    color: str
    level: int = 1
    experience: int = 0             # XP earned inside the current level
    experience_to_next: int = XP_PER_LEVEL_STEP
    total_experience: int = 0
    created_at: Optional[datetime] = None


@dataclass
class MissionState:
    id: str
    skill_id: str
    title: str
    description: str
    difficulty: Difficulty
    experience: int
    time_limit: int                 # minutes
    is_completed: bool = False
    is_recurring: bool = False
    is_ai_generated: bool = False
    specific_tasks: List[str] = field(default_factory=list)
    personalized_tips: List[str] = field(default_factory=list)
    resources: List[str] = field(default_factory=list)
    created_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None


@dataclass
class ProgressState:
    total_level: int = 1
    total_experience: int = 0
    missions_completed: int = 0
    current_streak: int = 0
    longest_streak: int = 0
    # skill id → account XP that skill's level-ups produced
    skill_level_up_contributions: Dict[str, int] = field(default_factory=dict)


@dataclass
class AccountProgression:
    """Everything the engine needs for one account, passed explicitly."""
    user_id: str
    skills: Dict[str, SkillState] = field(default_factory=dict)
    missions: Dict[str, MissionState] = field(default_factory=dict)
    progress: ProgressState = field(default_factory=ProgressState)
    last_streak_date: Optional[date] = None


# ============================================================================
# Leveling Formulas
# ============================================================================

def level_from_experience(xp: int) -> int:
    """floor(sqrt(xp / 100)) + 1, computed without floats."""
    return math.isqrt(max(0, xp) // XP_PER_LEVEL_STEP) + 1


def experience_for_level(level: int) -> int:
    """Total XP at which `level` starts."""
    return (max(1, level) - 1) ** 2 * XP_PER_LEVEL_STEP


def experience_to_next_level(xp: int) -> int:
    xp = max(0, xp)
    return experience_for_level(level_from_experience(xp) + 1) - xp


def experience_into_level(xp: int) -> int:
    xp = max(0, xp)
    return xp - experience_for_level(level_from_experience(xp))


# ============================================================================
# Mission Rewards
# ============================================================================

def difficulty_for_level(level: int) -> Difficulty:
    if level < MEDIUM_FROM_LEVEL:
        return Difficulty.EASY
    if level < HARD_FROM_LEVEL:
        return Difficulty.MEDIUM
    if level < EXPERT_FROM_LEVEL:
        return Difficulty.HARD
    return Difficulty.EXPERT


def reward_for_difficulty(difficulty: Difficulty, skill_level: int) -> int:
    """Base reward plus 10% per current skill level, rounded down."""
    base = BASE_REWARDS[Difficulty(difficulty).value]
    return base * (10 + skill_level) // 10


def time_limit_for_difficulty(difficulty: Difficulty) -> int:
    return TIME_LIMITS[Difficulty(difficulty).value]


# ============================================================================
# Creation
# ============================================================================

def new_skill(name: str, color: str, now: datetime, skill_id: Optional[str] = None) -> SkillState:
    return SkillState(
        id=skill_id or str(uuid.uuid4()),
        name=name,
        color=color,
        level=1,
        experience=0,
        experience_to_next=experience_to_next_level(0),
        total_experience=0,
        created_at=now,
    )


def new_mission(skill: SkillState, text, now: datetime, mission_id: Optional[str] = None) -> MissionState:
    """
    Build a mission for `skill` from generated text.
    `text` is any object with title, description, specific_tasks,
    personalized_tips, resources, is_recurring and source attributes.
    """
    difficulty = difficulty_for_level(skill.level)
    return MissionState(
        id=mission_id or str(uuid.uuid4()),
        skill_id=skill.id,
        title=text.title,
        description=text.description,
        difficulty=difficulty,
        experience=reward_for_difficulty(difficulty, skill.level),
        time_limit=time_limit_for_difficulty(difficulty),
        is_recurring=bool(text.is_recurring),
        is_ai_generated=text.source == "ai",
        specific_tasks=list(text.specific_tasks),
        personalized_tips=list(text.personalized_tips),
        resources=list(text.resources),
        created_at=now,
    )


# ============================================================================
# Skill Experience
# ============================================================================

def apply_skill_experience(skill: SkillState, gained: int) -> bool:
    """Add XP to a skill and re-derive its level fields. Returns True on level-up."""
    new_total = skill.total_experience + max(0, gained)
    new_level = level_from_experience(new_total)
    leveled_up = new_level > skill.level

    skill.total_experience = new_total
    skill.level = new_level
    skill.experience = experience_into_level(new_total)
    skill.experience_to_next = experience_to_next_level(new_total)
    return leveled_up


# ============================================================================
# Streaks
# ============================================================================

def advance_streak(progress: ProgressState, last_streak_date: Optional[date], today: date) -> date:
    """
    Apply one completion event to the streak. Returns the new last-streak date.

    Same day: nothing changes. Day after: +1. Never recorded: start at 1.
    Any longer gap: back to 1.
    """
    if last_streak_date == today:
        return last_streak_date

    if last_streak_date is None:
        progress.current_streak = max(progress.current_streak, 1)
    elif last_streak_date == today - timedelta(days=1):
        progress.current_streak += 1
    else:
        progress.current_streak = 1

    progress.longest_streak = max(progress.longest_streak, progress.current_streak)
    return today


# ============================================================================
# Mission Completion
# ============================================================================

def complete_mission(account: AccountProgression, mission_id: str,
                     now: datetime, today: Optional[date] = None) -> Optional[dict]:
    """
    Complete a mission and apply its rewards. Returns an update dict, or None
    when the mission is unknown, already completed, or its skill is gone.
    """
    mission = account.missions.get(mission_id)
    if mission is None or mission.is_completed:
        return None

    skill = account.skills.get(mission.skill_id)
    if skill is None:
        return None

    today = today or now.date()
    progress = account.progress

    mission.is_completed = True
    mission.completed_at = now

    previous_level = skill.level
    leveled_up = apply_skill_experience(skill, mission.experience)

    bonus = SKILL_LEVEL_UP_BONUS if leveled_up else 0
    progress.total_experience += bonus
    progress.total_level = level_from_experience(progress.total_experience)
    contributions = progress.skill_level_up_contributions
    contributions[skill.id] = contributions.get(skill.id, 0) + bonus

    progress.missions_completed += 1

    previous_streak = progress.current_streak
    account.last_streak_date = advance_streak(progress, account.last_streak_date, today)

    return {
        "mission_id": mission.id,
        "skill_id": skill.id,
        "experience_gained": mission.experience,
        "skill_leveled_up": leveled_up,
        "previous_skill_level": previous_level,
        "skill_level": skill.level,
        "level_up_bonus": bonus,
        "total_level": progress.total_level,
        "current_streak": progress.current_streak,
        "streak_changed": progress.current_streak != previous_streak,
    }


# ============================================================================
# Deletion
# ============================================================================

def cleanup_orphaned_progress(progress: ProgressState, skills: Dict[str, SkillState]) -> bool:
    """
    Reset account XP and level when no skills remain but progress still
    shows any. Mission count and streaks are left alone. Returns True on reset.
    """
    if skills:
        return False
    if progress.total_experience == 0 and progress.total_level <= 1:
        return False
    progress.total_level = 1
    progress.total_experience = 0
    progress.skill_level_up_contributions = {}
    return True


def delete_skill(account: AccountProgression, skill_id: str) -> Optional[dict]:
    """Remove a skill and its missions, reversing its account XP contribution."""
    if skill_id not in account.skills:
        return None

    del account.skills[skill_id]
    removed = [m_id for m_id, m in account.missions.items() if m.skill_id == skill_id]
    for m_id in removed:
        del account.missions[m_id]

    progress = account.progress
    contributed = progress.skill_level_up_contributions.pop(skill_id, 0)
    progress.total_experience = max(0, progress.total_experience - contributed)
    progress.total_level = level_from_experience(progress.total_experience)

    reset = cleanup_orphaned_progress(progress, account.skills)

    return {
        "skill_id": skill_id,
        "removed_missions": removed,
        "experience_reversed": contributed,
        "total_level": progress.total_level,
        "progress_reset": reset,
    }


def delete_mission(account: AccountProgression, mission_id: str) -> bool:
    """Drop one mission. Rewards already earned stay with the skill."""
    return account.missions.pop(mission_id, None) is not None


# ============================================================================
# Queries
# ============================================================================

def mission_stats(missions) -> dict:
    missions = list(missions)
    completed = sum(1 for m in missions if m.is_completed)
    return {"total": len(missions), "completed": completed, "active": len(missions) - completed}


def recent_missions_for_skill(account: AccountProgression, skill_id: str, limit: int) -> List[MissionState]:
    missions = [m for m in account.missions.values() if m.skill_id == skill_id]
    missions.sort(key=lambda m: m.created_at or datetime.min, reverse=True)
    return missions[:limit]


def completed_since(account: AccountProgression, since: datetime) -> List[MissionState]:
    return [
        m for m in account.missions.values()
        if m.is_completed and m.completed_at is not None and m.completed_at >= since
    ]


# ============================================================================
# Challenges
# ============================================================================

class ChallengeType(str, Enum):
    QUEST = "quest"
    SPRINT = "sprint"
    MARATHON = "marathon"
    DAILY = "daily"


class ChallengePrivacy(str, Enum):
    PUBLIC = "public"
    PRIVATE = "private"
    FRIENDS = "friends"


class ChallengeDifficulty(str, Enum):
    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"


class ChallengeStatus(str, Enum):
    DRAFT = "draft"
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class ParticipantStatus(str, Enum):
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    DROPPED_OUT = "dropped_out"


@dataclass
class ChallengeState:
    id: str
    creator_id: Optional[str]
    title: str
    description: str
    type: ChallengeType
    duration: int                   # days
    start_date: date
    end_date: date
    privacy: ChallengePrivacy = ChallengePrivacy.PUBLIC
    max_participants: Optional[int] = None
    difficulty: Optional[ChallengeDifficulty] = None
    status: ChallengeStatus = ChallengeStatus.ACTIVE
    skills: List[str] = field(default_factory=list)
    rules: List[str] = field(default_factory=list)
    tags: List[str] = field(default_factory=list)
    reward_xp: int = 0
    created_at: Optional[datetime] = None


@dataclass
class ParticipantState:
    challenge_id: str
    user_id: str
    joined_at: Optional[datetime] = None
    progress_percentage: int = 0
    tasks_completed: int = 0
    total_tasks: int = 0
    last_activity: Optional[datetime] = None
    is_active: bool = True
    completion_status: ParticipantStatus = ParticipantStatus.IN_PROGRESS


def new_challenge(creator_id: str, title: str, description: str, challenge_type: ChallengeType,
                  start_date: date, duration: int, now: datetime,
                  challenge_id: Optional[str] = None, **options) -> ChallengeState:
    """
    Build an active challenge running `duration` days from `start_date`.
    `options` fills the remaining ChallengeState fields (privacy, skills, rules...).
    """
    return ChallengeState(
        id=challenge_id or str(uuid.uuid4()),
        creator_id=creator_id,
        title=title,
        description=description,
        type=ChallengeType(challenge_type),
        duration=duration,
        start_date=start_date,
        end_date=start_date + timedelta(days=duration),
        status=ChallengeStatus.ACTIVE,
        created_at=now,
        **options,
    )


def challenge_is_open(challenge: ChallengeState, today: date) -> bool:
    return challenge.status == ChallengeStatus.ACTIVE and today <= challenge.end_date


def join_challenge(challenge: ChallengeState, participants: List[ParticipantState],
                   user_id: str, now: datetime, today: Optional[date] = None) -> Optional[ParticipantState]:
    """
    Add `user_id` to a challenge. Returns the participant record, or None when
    the challenge is closed or full.

    Joining twice returns the existing record unchanged. A user who dropped out
    rejoins with their previous progress.
    """
    today = today or now.date()
    existing = next((p for p in participants if p.user_id == user_id), None)
    if existing is not None and existing.is_active:
        return existing

    if not challenge_is_open(challenge, today):
        return None

    active = sum(1 for p in participants if p.is_active)
    if challenge.max_participants and active >= challenge.max_participants:
        return None

    if existing is not None:
        existing.is_active = True
        existing.completion_status = ParticipantStatus.IN_PROGRESS
        existing.last_activity = now
        return existing

    return ParticipantState(
        challenge_id=challenge.id,
        user_id=user_id,
        joined_at=now,
        last_activity=now,
    )


def leave_challenge(participant: ParticipantState) -> bool:
    if not participant.is_active:
        return False
    participant.is_active = False
    participant.completion_status = ParticipantStatus.DROPPED_OUT
    return True


def update_challenge_progress(participant: ParticipantState, now: datetime,
                              progress_percentage: Optional[int] = None,
                              tasks_completed: Optional[int] = None,
                              total_tasks: Optional[int] = None) -> bool:
    """Record progress for an active participant. Reaching 100% completes it."""
    if not participant.is_active:
        return False

    if progress_percentage is not None:
        participant.progress_percentage = min(100, max(0, progress_percentage))
    if tasks_completed is not None:
        participant.tasks_completed = max(0, tasks_completed)
    if total_tasks is not None:
        participant.total_tasks = max(0, total_tasks)
    participant.last_activity = now

    if participant.progress_percentage == 100:
        participant.completion_status = ParticipantStatus.COMPLETED
    return True


def challenge_leaderboard(participants: List[ParticipantState]) -> List[dict]:
    ranked = sorted(
        (p for p in participants if p.is_active),
        key=lambda p: (-p.progress_percentage, -p.tasks_completed, p.joined_at or datetime.min),
    )
    return [
        {
            "rank": i + 1,
            "user_id": p.user_id,
            "progress_percentage": p.progress_percentage,
            "tasks_completed": p.tasks_completed,
            "total_tasks": p.total_tasks,
            "completion_status": p.completion_status,
        }
        for i, p in enumerate(ranked)
    ]
