"""
Persistence for skills, missions, progress and challenges.
Every write reports success or failure through StoreResult instead of raising,
so callers can keep working on local state when the database is unavailable.
Failed reads raise StoreUnavailable: a read that could not be answered must
never look like an empty account.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime
from typing import List, Optional

from sqlalchemy import select, or_
from sqlalchemy.exc import SQLAlchemyError

from database import (
    SessionLocal, UserSkill, Mission, UserProgress, StreakState,
    Challenge, ChallengeParticipant,
)
from game_engine import (
    AccountProgression, SkillState, MissionState, ProgressState, Difficulty,
    ChallengeState, ParticipantState, ChallengeType, ChallengePrivacy,
    ChallengeDifficulty, ChallengeStatus, ParticipantStatus,
)

logger = logging.getLogger(__name__)


@dataclass
class StoreResult:
    ok: bool = True
    error: Optional[str] = None


class StoreUnavailable(Exception):
    """The database could not answer a read."""


# ============================================================================
# Row Mapping
# ============================================================================

def _skill_from_row(row: UserSkill) -> SkillState:
    return SkillState(
        id=row.id, name=row.name, color=row.color, level=row.level,
        experience=row.experience, experience_to_next=row.experience_to_next,
        total_experience=row.total_experience, created_at=row.created_at,
    )


def _skill_row(user_id: str, skill: SkillState) -> UserSkill:
    return UserSkill(
        id=skill.id, user_id=user_id, name=skill.name, color=skill.color,
        level=skill.level, experience=skill.experience,
        experience_to_next=skill.experience_to_next,
        total_experience=skill.total_experience,
        created_at=skill.created_at or datetime.utcnow(),
        updated_at=datetime.utcnow(),
    )


def _mission_from_row(row: Mission) -> MissionState:
    return MissionState(
        id=row.id, skill_id=row.skill_id, title=row.title,
        description=row.description, difficulty=Difficulty(row.difficulty),
        experience=row.experience, time_limit=row.time_limit,
        is_completed=row.is_completed, is_recurring=row.is_recurring,
        is_ai_generated=row.is_ai_generated,
        specific_tasks=list(row.specific_tasks or []),
        personalized_tips=list(row.personalized_tips or []),
        resources=list(row.learning_resources or []),
        created_at=row.created_at, completed_at=row.completed_at,
    )


def _mission_row(user_id: str, mission: MissionState) -> Mission:
    return Mission(
        id=mission.id, user_id=user_id, skill_id=mission.skill_id,
        title=mission.title, description=mission.description,
        difficulty=Difficulty(mission.difficulty).value,
        experience=mission.experience, time_limit=mission.time_limit,
        is_completed=mission.is_completed, is_recurring=mission.is_recurring,
        is_ai_generated=mission.is_ai_generated,
        specific_tasks=list(mission.specific_tasks),
        personalized_tips=list(mission.personalized_tips),
        learning_resources=list(mission.resources),
        created_at=mission.created_at or datetime.utcnow(),
        completed_at=mission.completed_at,
    )


def _progress_from_row(row: UserProgress) -> ProgressState:
    return ProgressState(
        total_level=row.total_level,
        total_experience=row.total_experience,
        missions_completed=row.missions_completed,
        current_streak=row.current_streak,
        longest_streak=row.longest_streak,
        skill_level_up_contributions={
            k: int(v) for k, v in (row.skill_level_up_contributions or {}).items()
        },
    )


def _challenge_from_row(row: Challenge) -> ChallengeState:
    return ChallengeState(
        id=row.id, creator_id=row.creator_id, title=row.title,
        description=row.description, type=ChallengeType(row.type),
        duration=row.duration, start_date=row.start_date, end_date=row.end_date,
        privacy=ChallengePrivacy(row.privacy),
        max_participants=row.max_participants,
        difficulty=ChallengeDifficulty(row.difficulty) if row.difficulty else None,
        status=ChallengeStatus(row.status),
        skills=list(row.skills or []), rules=list(row.rules or []),
        tags=list(row.tags or []), reward_xp=row.reward_xp,
        created_at=row.created_at,
    )


def _challenge_row(challenge: ChallengeState) -> Challenge:
    return Challenge(
        id=challenge.id, creator_id=challenge.creator_id, title=challenge.title,
        description=challenge.description, type=ChallengeType(challenge.type).value,
        duration=challenge.duration, start_date=challenge.start_date,
        end_date=challenge.end_date, privacy=ChallengePrivacy(challenge.privacy).value,
        max_participants=challenge.max_participants,
        difficulty=ChallengeDifficulty(challenge.difficulty).value if challenge.difficulty else None,
        status=ChallengeStatus(challenge.status).value,
        skills=list(challenge.skills), rules=list(challenge.rules),
        tags=list(challenge.tags), reward_xp=challenge.reward_xp,
        created_at=challenge.created_at or datetime.utcnow(),
    )


def _participant_from_row(row: ChallengeParticipant) -> ParticipantState:
    return ParticipantState(
        challenge_id=row.challenge_id, user_id=row.user_id, joined_at=row.joined_at,
        progress_percentage=row.progress_percentage,
        tasks_completed=row.tasks_completed, total_tasks=row.total_tasks,
        last_activity=row.last_activity, is_active=row.is_active,
        completion_status=ParticipantStatus(row.completion_status),
    )


def _participant_row(participant: ParticipantState) -> ChallengeParticipant:
    return ChallengeParticipant(
        challenge_id=participant.challenge_id, user_id=participant.user_id,
        joined_at=participant.joined_at or datetime.utcnow(),
        progress_percentage=participant.progress_percentage,
        tasks_completed=participant.tasks_completed,
        total_tasks=participant.total_tasks,
        last_activity=participant.last_activity,
        is_active=participant.is_active,
        completion_status=ParticipantStatus(participant.completion_status).value,
    )


# ============================================================================
# Store
# ============================================================================

class SqlProgressStore:
    def __init__(self, session_factory=SessionLocal):
        self.session_factory = session_factory

    def _read(self, action: str, fn):
        db = self.session_factory()
        try:
            return fn(db)
        except SQLAlchemyError as e:
            logger.warning("Store read failed (%s): %s", action, e)
            raise StoreUnavailable(f"{action}: {e}") from e
        finally:
            db.close()

    def _write(self, action: str, fn) -> StoreResult:
        db = self.session_factory()
        try:
            fn(db)
            db.commit()
            return StoreResult()
        except SQLAlchemyError as e:
            db.rollback()
            logger.warning("Store write failed (%s): %s", action, e)
            return StoreResult(ok=False, error=f"{action}: {e}")
        finally:
            db.close()

    # --- progress ---------------------------------------------------------

    def load_progress(self, user_id: str) -> Optional[ProgressState]:
        def fn(db):
            row = db.get(UserProgress, user_id)
            return _progress_from_row(row) if row else None
        return self._read("load_progress", fn)

    def save_progress(self, user_id: str, progress: ProgressState) -> StoreResult:
        def fn(db):
            row = db.get(UserProgress, user_id)
            if not row:
                row = UserProgress(user_id=user_id)
                db.add(row)
            row.total_level = progress.total_level
            row.total_experience = progress.total_experience
            row.missions_completed = progress.missions_completed
            row.current_streak = progress.current_streak
            row.longest_streak = progress.longest_streak
            row.skill_level_up_contributions = dict(progress.skill_level_up_contributions)
            row.last_updated = datetime.utcnow()
        return self._write("save_progress", fn)

    def load_streak_date(self, user_id: str) -> Optional[date]:
        def fn(db):
            row = db.get(StreakState, user_id)
            if not row or not row.last_streak_date:
                return None
            return date.fromisoformat(row.last_streak_date)
        return self._read("load_streak_date", fn)

    def save_streak_date(self, user_id: str, day: Optional[date]) -> StoreResult:
        def fn(db):
            db.merge(StreakState(user_id=user_id, last_streak_date=day.isoformat() if day else None))
        return self._write("save_streak_date", fn)

    # --- skills -----------------------------------------------------------

    def load_skills(self, user_id: str) -> List[SkillState]:
        def fn(db):
            rows = db.query(UserSkill).filter(
                UserSkill.user_id == user_id
            ).order_by(UserSkill.created_at.asc()).all()
            return [_skill_from_row(r) for r in rows]
        return self._read("load_skills", fn)

    def create_skill(self, user_id: str, skill: SkillState) -> StoreResult:
        # merge keeps replays of a failed write harmless
        return self._write("create_skill", lambda db: db.merge(_skill_row(user_id, skill)))

    def update_skill_experience(self, user_id: str, skill: SkillState) -> StoreResult:
        def fn(db):
            row = db.get(UserSkill, skill.id)
            if not row:
                db.merge(_skill_row(user_id, skill))
                return
            row.level = skill.level
            row.experience = skill.experience
            row.experience_to_next = skill.experience_to_next
            row.total_experience = skill.total_experience
            row.updated_at = datetime.utcnow()
        return self._write("update_skill_experience", fn)

    def delete_skill(self, user_id: str, skill_id: str) -> StoreResult:
        def fn(db):
            db.query(Mission).filter(
                Mission.user_id == user_id,
                Mission.skill_id == skill_id
            ).delete(synchronize_session=False)
            db.query(UserSkill).filter(
                UserSkill.user_id == user_id,
                UserSkill.id == skill_id
            ).delete(synchronize_session=False)
        return self._write("delete_skill", fn)

    # --- missions ---------------------------------------------------------

    def load_missions(self, user_id: str) -> List[MissionState]:
        def fn(db):
            rows = db.query(Mission).filter(
                Mission.user_id == user_id
            ).order_by(Mission.created_at.desc()).all()
            return [_mission_from_row(r) for r in rows]
        return self._read("load_missions", fn)

    def create_mission(self, user_id: str, mission: MissionState) -> StoreResult:
        return self._write("create_mission", lambda db: db.merge(_mission_row(user_id, mission)))

    def complete_mission(self, user_id: str, mission: MissionState) -> StoreResult:
        def fn(db):
            row = db.get(Mission, mission.id)
            if not row:
                db.merge(_mission_row(user_id, mission))
                return
            row.is_completed = True
            row.completed_at = mission.completed_at
        return self._write("complete_mission", fn)

    def delete_mission(self, user_id: str, mission_id: str) -> StoreResult:
        def fn(db):
            db.query(Mission).filter(
                Mission.user_id == user_id,
                Mission.id == mission_id
            ).delete(synchronize_session=False)
        return self._write("delete_mission", fn)

    # --- aggregate --------------------------------------------------------

    def load_account(self, user_id: str) -> AccountProgression:
        """
        Assemble everything stored for a user. Missing rows become defaults;
        a failed read raises StoreUnavailable instead of returning a partial account.
        """
        return AccountProgression(
            user_id=user_id,
            skills={s.id: s for s in self.load_skills(user_id)},
            missions={m.id: m for m in self.load_missions(user_id)},
            progress=self.load_progress(user_id) or ProgressState(),
            last_streak_date=self.load_streak_date(user_id),
        )

    def load_leaderboard(self, limit: int) -> List[dict]:
        def fn(db):
            rows = db.query(UserProgress).order_by(
                UserProgress.total_experience.desc(),
                UserProgress.missions_completed.desc(),
                UserProgress.user_id.asc()
            ).limit(limit).all()
            return [
                {
                    "rank": i + 1,
                    "user_id": r.user_id,
                    "total_level": r.total_level,
                    "total_experience": r.total_experience,
                    "missions_completed": r.missions_completed,
                    "current_streak": r.current_streak,
                    "longest_streak": r.longest_streak,
                }
                for i, r in enumerate(rows)
            ]
        return self._read("load_leaderboard", fn)

    # --- challenges -------------------------------------------------------

    def create_challenge(self, challenge: ChallengeState) -> StoreResult:
        return self._write("create_challenge", lambda db: db.merge(_challenge_row(challenge)))

    def load_challenge(self, challenge_id: str) -> Optional[ChallengeState]:
        def fn(db):
            row = db.get(Challenge, challenge_id)
            return _challenge_from_row(row) if row else None
        return self._read("load_challenge", fn)

    def load_public_challenges(self, status: Optional[str] = None,
                               challenge_type: Optional[str] = None,
                               limit: int = 20) -> List[ChallengeState]:
        def fn(db):
            query = db.query(Challenge).filter(Challenge.privacy == ChallengePrivacy.PUBLIC.value)
            if status:
                query = query.filter(Challenge.status == status)
            if challenge_type:
                query = query.filter(Challenge.type == challenge_type)
            rows = query.order_by(Challenge.created_at.desc()).limit(limit).all()
            return [_challenge_from_row(r) for r in rows]
        return self._read("load_public_challenges", fn)

    def load_user_challenges(self, user_id: str) -> List[ChallengeState]:
        """Challenges the user created or is actively taking part in."""
        def fn(db):
            joined = select(ChallengeParticipant.challenge_id).where(
                ChallengeParticipant.user_id == user_id,
                ChallengeParticipant.is_active.is_(True)
            )
            rows = db.query(Challenge).filter(
                or_(Challenge.creator_id == user_id, Challenge.id.in_(joined))
            ).order_by(Challenge.created_at.desc()).all()
            return [_challenge_from_row(r) for r in rows]
        return self._read("load_user_challenges", fn)

    def load_participants(self, challenge_id: str) -> List[ParticipantState]:
        def fn(db):
            rows = db.query(ChallengeParticipant).filter(
                ChallengeParticipant.challenge_id == challenge_id
            ).order_by(ChallengeParticipant.joined_at.asc()).all()
            return [_participant_from_row(r) for r in rows]
        return self._read("load_participants", fn)

    def save_participant(self, participant: ParticipantState) -> StoreResult:
        return self._write("save_participant", lambda db: db.merge(_participant_row(participant)))
