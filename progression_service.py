"""
Local-first orchestration of the progression engine.

Each account lives in memory for the life of the process, so a single API
process is assumed to own a user's progression; reload_account picks up
changes written elsewhere. Operations apply the
engine transition to that local copy first and only then write to the store.
A failed write never rolls local state back: it is logged, kept as a pending
write and reported as sync status "pending" until retry_pending succeeds.
"""

import logging
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Callable, Dict, List, Optional, Tuple

import game_engine
from config import SKILL_COLORS, RECENT_MISSIONS_LIMIT, DEFAULT_LEADERBOARD_LIMIT
from game_engine import AccountProgression, SkillState, MissionState
from mission_generator import MissionRequest, MissionTextGenerator

logger = logging.getLogger(__name__)

SYNCED = "synced"
PENDING = "pending"


@dataclass
class SyncReport:
    status: str = SYNCED
    errors: List[str] = field(default_factory=list)
    pending_writes: int = 0


class ProgressionService:
    def __init__(self, store, generator: Optional[MissionTextGenerator] = None,
                 clock: Callable[[], datetime] = datetime.utcnow):
        self.store = store
        self.generator = generator or MissionTextGenerator.default()
        self.clock = clock
        self._accounts: Dict[str, AccountProgression] = {}
        # user id → {(action, entity id): zero-arg write returning StoreResult}
        self._pending: Dict[str, OrderedDict] = {}

    # ------------------------------------------------------------------------
    # Sync bookkeeping
    # ------------------------------------------------------------------------

    def _pending_for(self, user_id: str):
        return self._pending.setdefault(user_id, OrderedDict())

    def _sync(self, user_id: str, writes) -> SyncReport:
        """Run writes in order. Failures are queued, never raised."""
        pending = self._pending_for(user_id)
        errors = []
        for key, write in writes:
            result = write()
            if result.ok:
                pending.pop(key, None)
            else:
                pending[key] = write
                errors.append(result.error or key[0])
        return self._report(user_id, errors)

    def _report(self, user_id: str, errors: List[str]) -> SyncReport:
        pending = self._pending_for(user_id)
        return SyncReport(status=PENDING if pending else SYNCED, errors=errors,
                          pending_writes=len(pending))

    def _drop_pending(self, user_id: str, entity_ids) -> None:
        pending = self._pending_for(user_id)
        for key in [k for k in pending if k[1] in entity_ids]:
            del pending[key]

    def sync_status(self, user_id: str) -> SyncReport:
        return self._report(user_id, [])

    def retry_pending(self, user_id: str) -> SyncReport:
        pending = self._pending_for(user_id)
        if pending:
            logger.info("Retrying %d pending writes for %s", len(pending), user_id)
        return self._sync(user_id, list(pending.items()))

    def _progress_writes(self, user_id: str, account: AccountProgression):
        return [(("save_progress", user_id),
                 lambda: self.store.save_progress(user_id, account.progress))]

    # ------------------------------------------------------------------------
    # Accounts
    # ------------------------------------------------------------------------

    def get_account(self, user_id: str) -> AccountProgression:
        """
        Local copy of the account, loaded on first use.
        Raises StoreUnavailable if the load fails; nothing is cached then, and
        orphan cleanup only ever runs against a complete load.
        """
        account = self._accounts.get(user_id)
        if account is not None:
            return account

        account = self.store.load_account(user_id)
        self._accounts[user_id] = account
        if game_engine.cleanup_orphaned_progress(account.progress, account.skills):
            logger.info("Reset orphaned progress for %s", user_id)
            self._sync(user_id, self._progress_writes(user_id, account))
        return account

    def forget(self, user_id: str) -> None:
        """Drop the local copy; the next access reloads from the store."""
        self._accounts.pop(user_id, None)

    def reload_account(self, user_id: str) -> Tuple[AccountProgression, SyncReport]:
        """
        Replace the local copy with what the store holds, picking up writes
        made by other processes. Pending writes are flushed first; while any
        remain the local copy is kept, since it is newer than the store.
        """
        report = self.retry_pending(user_id)
        if report.status == PENDING:
            logger.warning("Not reloading %s: %d writes still pending", user_id, report.pending_writes)
            return self.get_account(user_id), report

        self.forget(user_id)
        return self.get_account(user_id), self.sync_status(user_id)

    def progress_summary(self, user_id: str) -> dict:
        account = self.get_account(user_id)
        p = account.progress
        return {
            "user_id": user_id,
            "total_level": p.total_level,
            "total_experience": p.total_experience,
            "experience_to_next_level": game_engine.experience_to_next_level(p.total_experience),
            "missions_completed": p.missions_completed,
            "current_streak": p.current_streak,
            "longest_streak": p.longest_streak,
            "last_streak_date": account.last_streak_date,
            "skill_level_up_contributions": dict(p.skill_level_up_contributions),
            "skills": len(account.skills),
            "sync": self.sync_status(user_id),
        }

    # ------------------------------------------------------------------------
    # Skills
    # ------------------------------------------------------------------------

    def add_skill(self, user_id: str, name: str,
                  color: Optional[str] = None) -> Tuple[SkillState, SyncReport]:
        account = self.get_account(user_id)
        color = color or SKILL_COLORS[len(account.skills) % len(SKILL_COLORS)]
        skill = game_engine.new_skill(name, color, self.clock())
        account.skills[skill.id] = skill

        report = self._sync(user_id, [
            (("create_skill", skill.id), lambda: self.store.create_skill(user_id, skill)),
        ])
        return skill, report

    def remove_skill(self, user_id: str, skill_id: str) -> Tuple[Optional[dict], SyncReport]:
        account = self.get_account(user_id)
        update = game_engine.delete_skill(account, skill_id)
        if update is None:
            return None, self.sync_status(user_id)

        self._drop_pending(user_id, {skill_id, *update["removed_missions"]})
        report = self._sync(user_id, [
            (("delete_skill", skill_id), lambda: self.store.delete_skill(user_id, skill_id)),
            *self._progress_writes(user_id, account),
        ])
        return update, report

    # ------------------------------------------------------------------------
    # Missions
    # ------------------------------------------------------------------------

    def generate_mission(self, user_id: str, skill_id: str) -> Tuple[Optional[MissionState], SyncReport]:
        account = self.get_account(user_id)
        skill = account.skills.get(skill_id)
        if skill is None:
            return None, self.sync_status(user_id)

        now = self.clock()
        request = MissionRequest(
            skill=skill,
            progress=account.progress,
            recent_missions=game_engine.recent_missions_for_skill(account, skill_id, RECENT_MISSIONS_LIMIT),
            completed_this_week=game_engine.completed_since(account, now - timedelta(days=7)),
        )
        text = self.generator.generate(request)
        mission = game_engine.new_mission(skill, text, now)
        account.missions[mission.id] = mission
        logger.info("Created %s mission %s for skill %s", text.source, mission.id, skill_id)

        report = self._sync(user_id, [
            (("create_mission", mission.id), lambda: self.store.create_mission(user_id, mission)),
        ])
        return mission, report

    def complete_mission(self, user_id: str, mission_id: str,
                         today: Optional[date] = None) -> Tuple[Optional[dict], SyncReport]:
        """Apply a completion. `today` is the user's local calendar date."""
        account = self.get_account(user_id)
        update = game_engine.complete_mission(account, mission_id, self.clock(), today)
        if update is None:
            return None, self.sync_status(user_id)

        mission = account.missions[mission_id]
        skill = account.skills[mission.skill_id]
        report = self._sync(user_id, [
            (("complete_mission", mission.id), lambda: self.store.complete_mission(user_id, mission)),
            (("update_skill", skill.id), lambda: self.store.update_skill_experience(user_id, skill)),
            *self._progress_writes(user_id, account),
            (("save_streak_date", user_id),
             lambda: self.store.save_streak_date(user_id, account.last_streak_date)),
        ])
        return update, report

    def remove_mission(self, user_id: str, mission_id: str) -> Tuple[bool, SyncReport]:
        account = self.get_account(user_id)
        if not game_engine.delete_mission(account, mission_id):
            return False, self.sync_status(user_id)

        self._drop_pending(user_id, {mission_id})
        report = self._sync(user_id, [
            (("delete_mission", mission_id), lambda: self.store.delete_mission(user_id, mission_id)),
        ])
        return True, report

    def list_missions(self, user_id: str, skill_id: Optional[str] = None,
                      completed: Optional[bool] = None, limit: Optional[int] = None) -> List[MissionState]:
        account = self.get_account(user_id)
        missions = [
            m for m in account.missions.values()
            if (skill_id is None or m.skill_id == skill_id)
            and (completed is None or m.is_completed == completed)
        ]
        missions.sort(key=lambda m: m.created_at or datetime.min, reverse=True)
        return missions if limit is None else missions[:max(0, limit)]

    # ------------------------------------------------------------------------
    # Leaderboard
    # ------------------------------------------------------------------------

    def leaderboard(self, limit: int = DEFAULT_LEADERBOARD_LIMIT) -> List[dict]:
        return self.store.load_leaderboard(limit)
