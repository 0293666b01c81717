import os

import pytest

from earntask import config

from .conftest import NOW


@pytest.fixture
def user(login_as, make_user):
    return login_as(make_user(coins=0))


def test_list_marks_completion_and_submission_state(client, db, user, make_task):
    db.queue([
        {**make_task(id=1), "completed_at": NOW, "submission_status": None, "submission_rejection_reason": None},
        {**make_task(id=2, type="instagram_follow", instagram_url="https://instagram.com/x"),
         "completed_at": None, "submission_status": None, "submission_rejection_reason": None},
        {**make_task(id=3, type="youtube_subscribe", youtube_url="https://youtube.com/@x"),
         "completed_at": None, "submission_status": "rejected", "submission_rejection_reason": "Blurry"},
    ])

    response = client.get("/api/tasks/")

    assert response.status_code == 200
    video, follow, subscribe = response.json()["data"]
    assert video["isCompleted"] is True
    assert video["submissionStatus"] is None
    assert follow["isCompleted"] is False
    assert follow["submissionStatus"] == "available"
    assert subscribe["submissionStatus"] == "rejected"
    assert "rejectionReason" not in subscribe


def test_single_task_includes_rejection_reason(client, db, user, make_task):
    db.queue({**make_task(type="instagram_like", instagram_url="https://instagram.com/p/1"),
              "completed_at": None, "submission_status": "rejected", "submission_rejection_reason": "Blurry"})
    response = client.get("/api/tasks/10")
    assert response.json()["data"]["rejectionReason"] == "Blurry"


def test_missing_task(client, db, user):
    response = client.get("/api/tasks/999")
    assert response.status_code == 404
    assert response.json()["error"] == "Task not found"


class TestComplete:
    def test_credits_coins(self, client, db, user, make_task):
        db.queue(make_task(), {"id": 1}, {"coins": 10}, {"id": 1})

        response = client.post("/api/tasks/10/complete", json={"watchDuration": 90})

        assert response.status_code == 200
        assert response.json()["data"] == {"coins": 10, "message": "Task completed successfully!"}
        assert db.find("SET coins = coins + %s")[0][1] == (10, 10, 1)
        tx = db.find("INSERT INTO transactions")[0][1]
        assert tx[:5] == (1, "earned", 10, "Completed task: Watch Demo", 10)

    def test_already_completed(self, client, db, user, make_task):
        db.queue(make_task(), None)
        response = client.post("/api/tasks/10/complete", json={"watchDuration": 100})
        assert response.status_code == 400
        assert response.json()["error"] == "Task already completed"
        assert not db.find("SET coins = coins + %s")

    def test_video_not_watched_enough(self, client, db, user, make_task):
        db.queue(make_task(video_duration=100))
        response = client.post("/api/tasks/10/complete", json={"watchDuration": 50})
        assert response.status_code == 400
        assert response.json()["error"] == "You need to watch at least 80% of the video"
        assert db.rolled_back

    def test_no_body_for_task_without_duration(self, client, db, user, make_task):
        db.queue(make_task(type="upload_post", video_url=None, video_duration=None, coins=30),
                 {"id": 1}, {"coins": 30}, {"id": 1})
        response = client.post("/api/tasks/10/complete")
        assert response.status_code == 200
        assert response.json()["data"]["coins"] == 30

    def test_proof_tasks_cannot_be_completed_directly(self, client, db, user, make_task):
        db.queue(make_task(type="instagram_follow", instagram_url="https://instagram.com/x"))
        response = client.post("/api/tasks/10/complete")
        assert response.status_code == 400
        assert response.json()["error"] == "This task requires proof submission"

    def test_inactive_task(self, client, db, user, make_task):
        db.queue(make_task(is_active=False))
        response = client.post("/api/tasks/10/complete", json={"watchDuration": 100})
        assert response.status_code == 400

    def test_creator_task_uses_budget_and_closes(self, client, db, user, make_task):
        task = make_task(coins=20, is_creator_task=True, created_by=9,
                         reward_per_user=20, max_users=2, total_budget=40, coins_used=20)
        db.queue(
            task,
            {"id": 1},
            {"coins_used": 40, "total_budget": 40, "max_users": 2, "completions": 2},
            {"coins": 20},
            {"id": 1},
        )

        response = client.post("/api/tasks/10/complete", json={"watchDuration": 100})

        assert response.status_code == 200
        assert db.find("SET coins_used = coins_used + %s")[0][1] == (20, 10)
        assert db.find("SET is_active = FALSE")

    def test_creator_task_refused_when_remainder_below_reward(self, client, db, user, make_task):
        db.queue(make_task(type="upload_post", video_url=None, video_duration=None, coins=60,
                           is_creator_task=True, created_by=9, reward_per_user=60,
                           max_users=4, total_budget=240, coins_used=220))

        response = client.post("/api/tasks/10/complete")

        assert response.status_code == 400
        assert response.json()["error"] == "Insufficient budget to complete this task"
        assert not db.find("INSERT INTO task_completions")
        assert not db.find("SET coins_used = coins_used + %s")
        assert not db.find("SET coins = coins + %s")

    def test_creator_task_pays_reward_per_user_over_edited_coins(self, client, db, user, make_task):
        task = make_task(coins=5, is_creator_task=True, created_by=9,
                         reward_per_user=20, max_users=5, total_budget=100, coins_used=0)
        db.queue(
            task,
            {"id": 1},
            {"coins_used": 20, "total_budget": 100, "max_users": 5, "completions": 1},
            {"coins": 20},
            {"id": 1},
        )

        response = client.post("/api/tasks/10/complete", json={"watchDuration": 100})

        assert response.status_code == 200
        assert response.json()["data"]["coins"] == 20
        assert db.find("SET coins = coins + %s")[0][1] == (20, 20, 1)
        assert db.find("SET coins_used = coins_used + %s")[0][1] == (20, 10)
        assert not db.find("SET is_active = FALSE")


class TestSubmitProof:
    def test_inactive_task(self, client, db, user):
        db.queue({"id": 10, "type": "instagram_follow", "is_active": False})
        response = client.post(
            "/api/tasks/10/submit-proof",
            files={"proofImage": ("proof.png", b"\x89PNG", "image/png")},
        )
        assert response.status_code == 400
        assert response.json()["error"] == "This task is no longer active"
        assert not db.find("FROM task_submissions")

    def test_rejects_non_proof_task(self, client, db, user):
        db.queue({"id": 10, "type": "watch_video", "is_active": True})
        response = client.post(
            "/api/tasks/10/submit-proof",
            files={"proofImage": ("proof.png", b"\x89PNG", "image/png")},
        )
        assert response.status_code == 400
        assert response.json()["error"] == "This task does not require proof submission"

    def test_requires_file(self, client, db, user):
        db.queue({"id": 10, "type": "instagram_follow", "is_active": True})
        response = client.post("/api/tasks/10/submit-proof")
        assert response.status_code == 400
        assert response.json()["error"] == "Proof screenshot is required"

    def test_already_approved(self, client, db, user):
        db.queue({"id": 10, "type": "instagram_follow", "is_active": True}, {"id": 4, "status": "approved"})
        response = client.post(
            "/api/tasks/10/submit-proof",
            files={"proofImage": ("proof.png", b"\x89PNG", "image/png")},
        )
        assert response.status_code == 400
        assert response.json()["error"] == "Task already approved"

    def test_new_submission_saved_locally(self, client, db, user, monkeypatch, tmp_path):
        monkeypatch.setattr(config, "UPLOAD_DIR", str(tmp_path))
        db.queue({"id": 10, "type": "instagram_follow", "is_active": True}, None, {"id": 55})

        response = client.post(
            "/api/tasks/10/submit-proof",
            files={"proofImage": ("proof.png", b"\x89PNG", "image/png")},
        )

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["submissionStatus"] == "pending"
        assert data["submissionId"] == 55
        proof_url = db.find("INSERT INTO task_submissions")[0][1][2]
        assert proof_url.startswith("/uploads/proof-")
        assert os.path.exists(os.path.join(str(tmp_path), proof_url[len("/uploads/"):]))

    def test_rejected_submission_is_reset(self, client, db, user, monkeypatch, tmp_path):
        monkeypatch.setattr(config, "UPLOAD_DIR", str(tmp_path))
        db.queue({"id": 10, "type": "youtube_subscribe", "is_active": True}, {"id": 4, "status": "rejected"}, {"id": 4})

        response = client.post(
            "/api/tasks/10/submit-proof",
            files={"proofImage": ("proof.jpg", b"jpeg", "image/jpeg")},
        )

        assert response.status_code == 200
        assert "resubmitted" in response.json()["data"]["message"]
        assert db.find("SET proof_image = %s, status = 'pending'")


def test_verify_endpoints(client, user):
    assert client.post("/api/tasks/verify/instagram-follow").json()["data"] == {"verified": True}
    assert client.post("/api/tasks/verify/youtube-subscribe").json()["data"] == {"verified": True}
