"""Tests for challenge creation, participation and the per-challenge leaderboard."""

from datetime import date, timedelta

import pytest

from game_engine import ChallengeDifficulty, ChallengeType, ParticipantStatus
from progress_store import StoreUnavailable

TODAY = date(2024, 5, 10)


def test_create_enrolls_creator(challenge_service, store):
    challenge = challenge_service.create_challenge(
        "u1", ["Guitar"], ChallengeType.SPRINT,
        title="Scale Sprint", description="Scales every day", rules=["15 minutes a day"],
    )

    assert challenge.start_date == TODAY
    assert challenge.end_date == TODAY + timedelta(days=7)
    assert store.load_challenge(challenge.id).title == "Scale Sprint"
    assert [p.user_id for p in store.load_participants(challenge.id)] == ["u1"]


def test_missing_text_is_drafted_by_generator(challenge_service):
    challenge = challenge_service.create_challenge(
        "u1", ["Chess"], ChallengeType.QUEST, difficulty=ChallengeDifficulty.MEDIUM,
    )

    assert challenge.title in ("Chess Deep Dive", "Build Something", "Study Session")
    assert "Chess" in challenge.description
    assert challenge.difficulty == ChallengeDifficulty.MEDIUM


def test_draft_text_matches_difficulty(challenge_service):
    text = challenge_service.draft_text(["Chess"], ChallengeDifficulty.HARD)
    assert text.title in ("Chess Challenge", "Teach Chess", "Master Class")


def test_join_leave_and_progress(challenge_service):
    challenge = challenge_service.create_challenge("u1", ["Guitar"], title="T", description="D", rules=["r"])

    participant = challenge_service.join(challenge, "u2")
    assert participant.is_active

    updated = challenge_service.update_progress(challenge.id, "u2", progress_percentage=100, tasks_completed=7)
    assert updated.completion_status == ParticipantStatus.COMPLETED

    board = challenge_service.leaderboard(challenge.id)
    assert [e["user_id"] for e in board] == ["u2", "u1"]

    assert challenge_service.leave(challenge.id, "u2") is True
    assert challenge_service.leave(challenge.id, "u2") is False
    assert challenge_service.update_progress(challenge.id, "u2", progress_percentage=10) is None
    assert [e["user_id"] for e in challenge_service.leaderboard(challenge.id)] == ["u1"]


def test_full_challenge(challenge_service):
    challenge = challenge_service.create_challenge(
        "u1", ["Guitar"], title="T", description="D", rules=["r"], max_participants=2,
    )
    assert challenge_service.join(challenge, "u2") is not None
    assert challenge_service.join(challenge, "u3") is None


def test_join_after_end_date_is_refused(challenge_service):
    challenge = challenge_service.create_challenge("u1", ["Guitar"], title="T", description="D", rules=["r"])
    assert challenge_service.join(challenge, "u2", today=challenge.end_date + timedelta(days=1)) is None


def test_failed_write_is_raised(challenge_service, store):
    store.down = True
    with pytest.raises(StoreUnavailable):
        challenge_service.create_challenge("u1", ["Guitar"], title="T", description="D", rules=["r"])
