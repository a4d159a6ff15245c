"""
API tests for SkillQuest
Runs the FastAPI app in-process against an in-memory database
"""

from datetime import datetime

from game_engine import ProgressState, new_skill

USER = "test_user_001"
NOW = datetime(2024, 5, 10, 12, 0, 0)


def _create_skill(client, name="Guitar", user=USER):
    response = client.post(f"/api/users/{user}/skills", json={"name": name})
    assert response.status_code == 200
    return response.json()["skill"]


def _generate_mission(client, skill_id, user=USER):
    response = client.post(f"/api/users/{user}/skills/{skill_id}/missions")
    assert response.status_code == 200
    return response.json()["mission"]


def _complete(client, mission_id, user=USER, local_date=None):
    body = {"local_date": local_date} if local_date else None
    response = client.post(f"/api/users/{user}/missions/{mission_id}/complete", json=body)
    assert response.status_code == 200
    return response.json()


def test_health(client):
    response = client.get("/")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


def test_skill_colors(client):
    colors = client.get("/api/skill-colors").json()
    assert len(colors) == 10
    assert colors[0] == "#8EE3EF"


def test_create_and_list_skills(client):
    skill = _create_skill(client, "  Guitar  ")

    assert skill["name"] == "Guitar"
    assert skill["level"] == 1
    assert skill["experience_to_next"] == 100

    skills = client.get(f"/api/users/{USER}/skills").json()
    assert [s["id"] for s in skills] == [skill["id"]]


def test_create_skill_rejects_empty_name(client):
    response = client.post(f"/api/users/{USER}/skills", json={"name": ""})
    assert response.status_code == 422


def test_generate_mission_falls_back_to_template(client):
    skill = _create_skill(client)

    mission = _generate_mission(client, skill["id"])

    assert mission["difficulty"] == "Easy"
    assert mission["experience"] == 55
    assert mission["time_limit"] == 30
    assert mission["is_ai_generated"] is False
    assert mission["is_completed"] is False


def test_generate_mission_unknown_skill(client):
    response = client.post(f"/api/users/{USER}/skills/nope/missions")
    assert response.status_code == 404


def test_complete_mission_once(client):
    skill = _create_skill(client)
    mission = _generate_mission(client, skill["id"])

    first = _complete(client, mission["id"])
    second = _complete(client, mission["id"])

    assert first["applied"] is True
    assert first["update"]["experience_gained"] == 55
    assert first["sync"]["status"] == "synced"
    assert second["applied"] is False
    assert second["update"] is None

    progress = client.get(f"/api/users/{USER}/progress").json()
    assert progress["missions_completed"] == 1
    assert progress["total_experience"] == 0
    assert progress["current_streak"] == 1


def test_level_up_and_streak_through_api(client):
    skill = _create_skill(client)
    missions = [_generate_mission(client, skill["id"]) for _ in range(3)]

    _complete(client, missions[0]["id"], local_date="2024-05-10")
    result = _complete(client, missions[1]["id"], local_date="2024-05-11")
    _complete(client, missions[2]["id"], local_date="2024-05-11")

    assert result["update"]["skill_leveled_up"] is True
    assert result["update"]["level_up_bonus"] == 50

    progress = client.get(f"/api/users/{USER}/progress").json()
    assert progress["total_experience"] == 50
    assert progress["current_streak"] == 2
    assert progress["longest_streak"] == 2
    assert progress["last_streak_date"] == "2024-05-11"
    assert progress["skill_level_up_contributions"] == {skill["id"]: 50}

    listed = client.get(f"/api/users/{USER}/missions", params={"completed": True}).json()
    assert len(listed) == 3
    stats = client.get(f"/api/users/{USER}/missions/stats").json()
    assert stats == {"total": 3, "completed": 3, "active": 0}


def test_delete_skill_reverses_progress(client):
    skill = _create_skill(client)
    for _ in range(2):
        _complete(client, _generate_mission(client, skill["id"])["id"])

    response = client.delete(f"/api/users/{USER}/skills/{skill['id']}")

    assert response.status_code == 200
    body = response.json()
    assert body["experience_reversed"] == 50
    assert len(body["removed_missions"]) == 2

    progress = client.get(f"/api/users/{USER}/progress").json()
    assert progress["total_experience"] == 0
    assert progress["total_level"] == 1
    assert progress["missions_completed"] == 2
    assert progress["skills"] == 0
    assert client.get(f"/api/users/{USER}/missions").json() == []


def test_delete_unknown_skill(client):
    assert client.delete(f"/api/users/{USER}/skills/nope").status_code == 404


def test_delete_mission(client):
    skill = _create_skill(client)
    mission = _generate_mission(client, skill["id"])

    assert client.delete(f"/api/users/{USER}/missions/{mission['id']}").status_code == 200
    assert client.delete(f"/api/users/{USER}/missions/{mission['id']}").status_code == 404


def test_sync_after_outage(client, store):
    skill = _create_skill(client)
    mission = _generate_mission(client, skill["id"])

    store.down = True
    result = _complete(client, mission["id"])
    assert result["applied"] is True
    assert result["sync"]["status"] == "pending"

    progress = client.get(f"/api/users/{USER}/progress").json()
    assert progress["missions_completed"] == 1
    assert progress["sync"]["status"] == "pending"

    store.down = False
    synced = client.post(f"/api/users/{USER}/sync").json()
    assert synced["status"] == "synced"
    assert store.load_progress(USER).missions_completed == 1


def test_leaderboard(client):
    for user, count in (("alice", 2), ("bob", 1)):
        skill = _create_skill(client, user=user)
        for _ in range(count):
            _complete(client, _generate_mission(client, skill["id"], user=user)["id"], user=user)

    board = client.get("/api/leaderboard").json()

    assert [e["user_id"] for e in board] == ["alice", "bob"]
    assert board[0]["total_experience"] == 50
    assert board[0]["rank"] == 1
    assert client.get("/api/leaderboard", params={"limit": 0}).status_code == 400


def test_missions_limit_must_be_positive(client):
    skill = _create_skill(client)
    _generate_mission(client, skill["id"])

    for bad in (0, -1):
        response = client.get(f"/api/users/{USER}/missions", params={"limit": bad})
        assert response.status_code == 400
    assert len(client.get(f"/api/users/{USER}/missions", params={"limit": 1}).json()) == 1


def test_failed_read_returns_503_and_keeps_data(client, store):
    store.create_skill("reader", new_skill("Guitar", "#fff", NOW, skill_id="s1"))
    store.save_progress("reader", ProgressState(total_level=2, total_experience=150, missions_completed=4))
    store.failing_reads = {"load_skills"}

    assert client.get("/api/users/reader/progress").status_code == 503

    progress = client.get("/api/users/reader/progress").json()
    assert progress["skills"] == 1
    assert progress["total_experience"] == 150
    assert progress["missions_completed"] == 4


def test_reload_route(client):
    _create_skill(client)
    response = client.post(f"/api/users/{USER}/reload")
    assert response.status_code == 200
    assert response.json()["status"] == "synced"


def test_challenge_lifecycle(client):
    response = client.post(f"/api/users/{USER}/challenges", json={
        "title": "Scale Sprint",
        "description": "Scales every day",
        "type": "sprint",
        "duration": 7,
        "skills": ["Guitar"],
        "rules": ["15 minutes a day"],
        "tags": [" Music "],
        "max_participants": 2,
    })
    assert response.status_code == 200
    challenge = response.json()
    assert challenge["status"] == "active"
    assert challenge["end_date"] == "2024-05-17"
    assert challenge["tags"] == ["music"]
    cid = challenge["id"]

    joined = client.post(f"/api/users/bob/challenges/{cid}/join")
    assert joined.status_code == 200
    assert joined.json()["completion_status"] == "in_progress"
    assert client.post(f"/api/users/carol/challenges/{cid}/join").status_code == 409

    progress = client.post(f"/api/users/bob/challenges/{cid}/progress",
                           json={"progress_percentage": 100, "tasks_completed": 7})
    assert progress.json()["completion_status"] == "completed"

    board = client.get(f"/api/challenges/{cid}/leaderboard").json()
    assert [e["user_id"] for e in board] == ["bob", USER]

    assert [c["id"] for c in client.get("/api/challenges").json()] == [cid]
    assert [c["id"] for c in client.get("/api/users/bob/challenges").json()] == [cid]

    assert client.post(f"/api/users/bob/challenges/{cid}/leave").status_code == 200
    assert client.post(f"/api/users/bob/challenges/{cid}/leave").status_code == 404
    assert client.get("/api/users/bob/challenges").json() == []


def test_challenge_with_drafted_text(client):
    response = client.post("/api/users/u9/challenges", json={"skills": ["Chess"], "difficulty": "hard"})
    assert response.status_code == 200
    assert response.json()["title"] in ("Chess Challenge", "Teach Chess", "Master Class")


def test_challenge_validation_and_404(client):
    assert client.post(f"/api/users/{USER}/challenges", json={"skills": []}).status_code == 422
    assert client.post(f"/api/users/{USER}/challenges",
                       json={"skills": ["Chess"], "type": "party"}).status_code == 422
    assert client.get("/api/challenges/nope").status_code == 404
    assert client.post(f"/api/users/{USER}/challenges/nope/join").status_code == 404
    assert client.get("/api/challenges/nope/leaderboard").status_code == 404
