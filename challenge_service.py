"""
Time-boxed challenges shared between users.

Challenges are not owned by one account, so there is no local copy to fall back
on: every operation reads and writes the store directly, and a failed write
raises StoreUnavailable instead of being queued.
"""

import logging
from datetime import date, datetime
from typing import Callable, List, Optional

import game_engine
from config import (
    CHALLENGE_TEXT_LEVELS, DEFAULT_CHALLENGE_DURATION_DAYS, DEFAULT_CHALLENGE_LIST_LIMIT,
)
from game_engine import ChallengeState, ParticipantState, ProgressState, SkillState
from mission_generator import MissionRequest, MissionText, MissionTextGenerator
from progress_store import StoreResult, StoreUnavailable

logger = logging.getLogger(__name__)


def _require(result: StoreResult) -> None:
    if not result.ok:
        raise StoreUnavailable(result.error)


class ChallengeService:
    def __init__(self, store, generator: Optional[MissionTextGenerator] = None,
                 clock: Callable[[], datetime] = datetime.utcnow):
        self.store = store
        self.generator = generator or MissionTextGenerator.default()
        self.clock = clock

    # ------------------------------------------------------------------------
    # Text
    # ------------------------------------------------------------------------

    def draft_text(self, skills: List[str], difficulty=None) -> MissionText:
        """
        Challenge copy from the mission text generator, worded for the first
        skill at the level matching the challenge difficulty.
        """
        key = game_engine.ChallengeDifficulty(difficulty).value if difficulty else "easy"
        stand_in = SkillState(
            id="", name=skills[0] if skills else "Growth", color="",
            level=CHALLENGE_TEXT_LEVELS[key],
        )
        return self.generator.generate(MissionRequest(skill=stand_in, progress=ProgressState()))

    # ------------------------------------------------------------------------
    # Challenges
    # ------------------------------------------------------------------------

    def create_challenge(self, creator_id: str, skills: List[str],
                         challenge_type=game_engine.ChallengeType.SPRINT,
                         title: Optional[str] = None, description: Optional[str] = None,
                         duration: int = DEFAULT_CHALLENGE_DURATION_DAYS,
                         start_date: Optional[date] = None, **options) -> ChallengeState:
        """
        Create a challenge and enroll its creator. Missing title, description
        or rules are drafted by the text generator.
        """
        now = self.clock()
        if not title or not description or not options.get("rules"):
            text = self.draft_text(skills, options.get("difficulty"))
            title = title or text.title
            description = description or text.description
            options["rules"] = options.get("rules") or list(text.specific_tasks)

        challenge = game_engine.new_challenge(
            creator_id, title, description, challenge_type,
            start_date or now.date(), duration, now,
            skills=list(skills), **options,
        )
        _require(self.store.create_challenge(challenge))
        logger.info("Challenge %s created by %s", challenge.id, creator_id)

        creator = game_engine.join_challenge(challenge, [], creator_id, now)
        if creator is not None:
            _require(self.store.save_participant(creator))
        return challenge

    def get_challenge(self, challenge_id: str) -> Optional[ChallengeState]:
        return self.store.load_challenge(challenge_id)

    def list_public(self, status: Optional[str] = None, challenge_type: Optional[str] = None,
                    limit: int = DEFAULT_CHALLENGE_LIST_LIMIT) -> List[ChallengeState]:
        return self.store.load_public_challenges(status=status, challenge_type=challenge_type, limit=limit)

    def list_for_user(self, user_id: str) -> List[ChallengeState]:
        return self.store.load_user_challenges(user_id)

    # ------------------------------------------------------------------------
    # Participation
    # ------------------------------------------------------------------------

    def _participant(self, challenge_id: str, user_id: str) -> Optional[ParticipantState]:
        return next(
            (p for p in self.store.load_participants(challenge_id) if p.user_id == user_id),
            None,
        )

    def join(self, challenge: ChallengeState, user_id: str,
             today: Optional[date] = None) -> Optional[ParticipantState]:
        """Returns the participant, or None when the challenge is closed or full."""
        participants = self.store.load_participants(challenge.id)
        participant = game_engine.join_challenge(challenge, participants, user_id, self.clock(), today)
        if participant is None:
            logger.info("User %s could not join challenge %s", user_id, challenge.id)
            return None
        _require(self.store.save_participant(participant))
        return participant

    def leave(self, challenge_id: str, user_id: str) -> bool:
        participant = self._participant(challenge_id, user_id)
        if participant is None or not game_engine.leave_challenge(participant):
            return False
        _require(self.store.save_participant(participant))
        return True

    def update_progress(self, challenge_id: str, user_id: str,
                        progress_percentage: Optional[int] = None,
                        tasks_completed: Optional[int] = None,
                        total_tasks: Optional[int] = None) -> Optional[ParticipantState]:
        participant = self._participant(challenge_id, user_id)
        if participant is None:
            return None
        if not game_engine.update_challenge_progress(
                participant, self.clock(), progress_percentage, tasks_completed, total_tasks):
            return None
        _require(self.store.save_participant(participant))
        return participant

    def leaderboard(self, challenge_id: str) -> List[dict]:
        return game_engine.challenge_leaderboard(self.store.load_participants(challenge_id))
