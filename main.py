"""
SkillQuest API - FastAPI application
Skills, missions, progression, streaks, challenges and the leaderboard
"""

import logging
from datetime import datetime
from typing import List, Optional

from fastapi import FastAPI, Depends, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from config import LOG_LEVEL, SKILL_COLORS, DEFAULT_LEADERBOARD_LIMIT, DEFAULT_CHALLENGE_LIST_LIMIT
from database import init_db, SessionLocal
from game_engine import mission_stats, ChallengeStatus, ChallengeType
from mission_generator import MissionTextGenerator
from progress_store import SqlProgressStore, StoreUnavailable
from progression_service import ProgressionService
from challenge_service import ChallengeService
from schemas import (
    SyncResponse, SkillCreate, SkillResponse, SkillCreated, SkillDeleted,
    MissionResponse, MissionCreated, MissionCompletion, CompletionResponse,
    MissionStats, ProgressResponse, LeaderboardEntry,
    ChallengeCreate, ChallengeResponse, ChallengeJoin, ChallengeProgressUpdate,
    ParticipantResponse, ChallengeLeaderboardEntry,
)

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)

VERSION = "1.0.0"

app = FastAPI(
    title="SkillQuest API",
    description="Level up skills through missions, streaks and leaderboards",
    version=VERSION
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

_service: Optional[ProgressionService] = None
_challenge_service: Optional[ChallengeService] = None


def get_service() -> ProgressionService:
    """Dependency returning the process-wide progression service"""
    global _service
    if _service is None:
        _service = ProgressionService(SqlProgressStore(SessionLocal), MissionTextGenerator.default())
    return _service


def get_challenge_service() -> ChallengeService:
    global _challenge_service
    if _challenge_service is None:
        _challenge_service = ChallengeService(SqlProgressStore(SessionLocal), MissionTextGenerator.default())
    return _challenge_service


@app.on_event("startup")
def startup_event():
    init_db()


@app.exception_handler(StoreUnavailable)
async def store_unavailable_handler(request: Request, exc: StoreUnavailable):
    """Reads that fail must not be answered with empty data"""
    return JSONResponse(
        status_code=503,
        content={"detail": "Database unavailable, try again shortly"}
    )


@app.get("/")
def root():
    return {"status": "healthy", "service": "SkillQuest API", "version": VERSION}


@app.get("/api/skill-colors", response_model=List[str], tags=["Skills"])
def get_skill_colors():
    return SKILL_COLORS


# ============================================================================
# Skill Endpoints
# ============================================================================

@app.get("/api/users/{user_id}/skills", response_model=List[SkillResponse], tags=["Skills"])
def list_skills(user_id: str, service: ProgressionService = Depends(get_service)):
    account = service.get_account(user_id)
    skills = sorted(account.skills.values(), key=lambda s: s.created_at or datetime.min)
    return [SkillResponse.model_validate(s) for s in skills]


@app.post("/api/users/{user_id}/skills", response_model=SkillCreated, tags=["Skills"])
def create_skill(user_id: str, body: SkillCreate, service: ProgressionService = Depends(get_service)):
    skill, report = service.add_skill(user_id, body.name.strip(), body.color)
    return SkillCreated(skill=SkillResponse.model_validate(skill),
                        sync=SyncResponse.model_validate(report))


@app.delete("/api/users/{user_id}/skills/{skill_id}", response_model=SkillDeleted, tags=["Skills"])
def delete_skill(user_id: str, skill_id: str, service: ProgressionService = Depends(get_service)):
    update, report = service.remove_skill(user_id, skill_id)
    if update is None:
        raise HTTPException(status_code=404, detail="Skill not found")
    return SkillDeleted(**update, sync=SyncResponse.model_validate(report))


# ============================================================================
# Mission Endpoints
# ============================================================================

@app.post("/api/users/{user_id}/skills/{skill_id}/missions", response_model=MissionCreated, tags=["Missions"])
def generate_mission(user_id: str, skill_id: str, service: ProgressionService = Depends(get_service)):
    mission, report = service.generate_mission(user_id, skill_id)
    if mission is None:
        raise HTTPException(status_code=404, detail="Skill not found")
    return MissionCreated(mission=MissionResponse.model_validate(mission),
                          sync=SyncResponse.model_validate(report))


@app.get("/api/users/{user_id}/missions", response_model=List[MissionResponse], tags=["Missions"])
def list_missions(user_id: str, skill_id: Optional[str] = None, completed: Optional[bool] = None,
                  limit: Optional[int] = None, service: ProgressionService = Depends(get_service)):
    if limit is not None and limit < 1:
        raise HTTPException(status_code=400, detail="limit must be positive")
    missions = service.list_missions(user_id, skill_id=skill_id, completed=completed, limit=limit)
    return [MissionResponse.model_validate(m) for m in missions]


@app.get("/api/users/{user_id}/missions/stats", response_model=MissionStats, tags=["Missions"])
def get_mission_stats(user_id: str, service: ProgressionService = Depends(get_service)):
    return mission_stats(service.get_account(user_id).missions.values())


@app.post("/api/users/{user_id}/missions/{mission_id}/complete", response_model=CompletionResponse, tags=["Missions"])
def complete_mission(user_id: str, mission_id: str, body: Optional[MissionCompletion] = None,
                     service: ProgressionService = Depends(get_service)):
    """
    Complete a mission. Already-completed missions and missions whose skill
    was deleted come back with applied=false and change nothing.
    """
    local_date = body.local_date if body else None
    update, report = service.complete_mission(user_id, mission_id, today=local_date)
    return CompletionResponse(applied=update is not None, update=update,
                              sync=SyncResponse.model_validate(report))


@app.delete("/api/users/{user_id}/missions/{mission_id}", tags=["Missions"])
def delete_mission(user_id: str, mission_id: str, service: ProgressionService = Depends(get_service)):
    deleted, report = service.remove_mission(user_id, mission_id)
    if not deleted:
        raise HTTPException(status_code=404, detail="Mission not found")
    return {"deleted": mission_id, "sync": SyncResponse.model_validate(report)}


# ============================================================================
# Progress Endpoints
# ============================================================================

@app.get("/api/users/{user_id}/progress", response_model=ProgressResponse, tags=["Progress"])
def get_progress(user_id: str, service: ProgressionService = Depends(get_service)):
    summary = service.progress_summary(user_id)
    summary["sync"] = SyncResponse.model_validate(summary["sync"])
    return ProgressResponse(**summary)


@app.post("/api/users/{user_id}/sync", response_model=SyncResponse, tags=["Progress"])
def sync_progress(user_id: str, service: ProgressionService = Depends(get_service)):
    """Retry writes that failed earlier for this user."""
    return SyncResponse.model_validate(service.retry_pending(user_id))


@app.post("/api/users/{user_id}/reload", response_model=SyncResponse, tags=["Progress"])
def reload_progress(user_id: str, service: ProgressionService = Depends(get_service)):
    """
    Reload the account from the database. Kept local while writes are still
    pending; the response then reports status "pending".
    """
    _, report = service.reload_account(user_id)
    return SyncResponse.model_validate(report)


@app.get("/api/leaderboard", response_model=List[LeaderboardEntry], tags=["Leaderboard"])
def get_leaderboard(limit: int = DEFAULT_LEADERBOARD_LIMIT, service: ProgressionService = Depends(get_service)):
    if limit < 1:
        raise HTTPException(status_code=400, detail="limit must be positive")
    return service.leaderboard(limit)


# ============================================================================
# Challenge Endpoints
# ============================================================================

def _challenge_or_404(challenges: ChallengeService, challenge_id: str):
    challenge = challenges.get_challenge(challenge_id)
    if challenge is None:
        raise HTTPException(status_code=404, detail="Challenge not found")
    return challenge


@app.post("/api/users/{user_id}/challenges", response_model=ChallengeResponse, tags=["Challenges"])
def create_challenge(user_id: str, body: ChallengeCreate,
                     challenges: ChallengeService = Depends(get_challenge_service)):
    """Create a challenge; the creator joins it automatically."""
    challenge = challenges.create_challenge(
        user_id,
        skills=[s.strip() for s in body.skills if s.strip()],
        challenge_type=body.type,
        title=(body.title or "").strip() or None,
        description=(body.description or "").strip() or None,
        duration=body.duration,
        start_date=body.start_date,
        privacy=body.privacy,
        max_participants=body.max_participants,
        difficulty=body.difficulty,
        rules=body.rules,
        tags=[t.strip().lower() for t in body.tags if t.strip()],
        reward_xp=body.reward_xp,
    )
    return ChallengeResponse.model_validate(challenge)


@app.get("/api/challenges", response_model=List[ChallengeResponse], tags=["Challenges"])
def list_public_challenges(status: Optional[ChallengeStatus] = None,
                           challenge_type: Optional[ChallengeType] = Query(None, alias="type"),
                           limit: int = DEFAULT_CHALLENGE_LIST_LIMIT,
                           challenges: ChallengeService = Depends(get_challenge_service)):
    if limit < 1:
        raise HTTPException(status_code=400, detail="limit must be positive")
    found = challenges.list_public(
        status=status.value if status else None,
        challenge_type=challenge_type.value if challenge_type else None,
        limit=limit,
    )
    return [ChallengeResponse.model_validate(c) for c in found]


@app.get("/api/challenges/{challenge_id}", response_model=ChallengeResponse, tags=["Challenges"])
def get_challenge(challenge_id: str, challenges: ChallengeService = Depends(get_challenge_service)):
    return ChallengeResponse.model_validate(_challenge_or_404(challenges, challenge_id))


@app.get("/api/challenges/{challenge_id}/leaderboard", response_model=List[ChallengeLeaderboardEntry],
         tags=["Challenges"])
def get_challenge_leaderboard(challenge_id: str, challenges: ChallengeService = Depends(get_challenge_service)):
    _challenge_or_404(challenges, challenge_id)
    return challenges.leaderboard(challenge_id)


@app.get("/api/users/{user_id}/challenges", response_model=List[ChallengeResponse], tags=["Challenges"])
def list_user_challenges(user_id: str, challenges: ChallengeService = Depends(get_challenge_service)):
    return [ChallengeResponse.model_validate(c) for c in challenges.list_for_user(user_id)]


@app.post("/api/users/{user_id}/challenges/{challenge_id}/join", response_model=ParticipantResponse,
          tags=["Challenges"])
def join_challenge(user_id: str, challenge_id: str, body: Optional[ChallengeJoin] = None,
                   challenges: ChallengeService = Depends(get_challenge_service)):
    challenge = _challenge_or_404(challenges, challenge_id)
    participant = challenges.join(challenge, user_id, today=body.local_date if body else None)
    if participant is None:
        raise HTTPException(status_code=409, detail="Challenge is full or closed")
    return ParticipantResponse.model_validate(participant)


@app.post("/api/users/{user_id}/challenges/{challenge_id}/leave", tags=["Challenges"])
def leave_challenge(user_id: str, challenge_id: str,
                    challenges: ChallengeService = Depends(get_challenge_service)):
    if not challenges.leave(challenge_id, user_id):
        raise HTTPException(status_code=404, detail="Not an active participant")
    return {"challenge_id": challenge_id, "user_id": user_id, "left": True}


@app.post("/api/users/{user_id}/challenges/{challenge_id}/progress", response_model=ParticipantResponse,
          tags=["Challenges"])
def update_challenge_progress(user_id: str, challenge_id: str, body: ChallengeProgressUpdate,
                              challenges: ChallengeService = Depends(get_challenge_service)):
    participant = challenges.update_progress(
        challenge_id, user_id,
        progress_percentage=body.progress_percentage,
        tasks_completed=body.tasks_completed,
        total_tasks=body.total_tasks,
    )
    if participant is None:
        raise HTTPException(status_code=404, detail="Not an active participant")
    return ParticipantResponse.model_validate(participant)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
