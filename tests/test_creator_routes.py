import pytest

from earntask import config


@pytest.fixture
def creator(login_as, make_user):
    return login_as(make_user(is_creator=True, creator_status="approved", role="creator", creator_wallet=5000))


@pytest.fixture
def creator_task(make_task):
    def _creator_task(**overrides):
        task = make_task(
            id=20, coins=10, is_creator_task=True, created_by=1, reward_per_user=10,
            max_users=100, total_budget=1000, coins_used=600, completions=60,
        )
        task.update(overrides)
        return task
    return _creator_task


NEW_TASK = {
    "type": "watch_video",
    "title": "Watch my channel trailer",
    "description": "Watch at least 80%",
    "rewardPerUser": 10,
    "maxUsers": 100,
    "videoUrl": "https://example.com/trailer.mp4",
    "videoDuration": 60,
}


def test_unapproved_users_are_refused(client, db, login_as, make_user):
    login_as(make_user(is_creator=True, creator_status="pending"))
    response = client.get("/api/creator/dashboard")
    assert response.status_code == 403
    assert response.json()["error"] == "You are not an approved creator"


class TestRegister:
    def test_needs_a_link(self, client, db, login_as, make_user):
        login_as(make_user())
        response = client.post("/api/creator/register", json={})
        assert response.status_code == 400
        assert response.json()["error"] == "At least one URL (YouTube or Instagram) is required"

    def test_pending_request(self, client, db, login_as, make_user):
        login_as(make_user(is_creator=True, creator_status="pending"))
        response = client.post("/api/creator/register", json={"youtubeUrl": "https://youtube.com/@me"})
        assert response.status_code == 400
        assert response.json()["error"] == "Your creator request is already pending approval"

    def test_rejected_user_can_reapply(self, client, db, login_as, make_user):
        login_as(make_user(creator_status="rejected", creator_rejection_reason="No content"))
        response = client.post("/api/creator/register", json={"instagramUrl": "https://instagram.com/me"})
        assert response.status_code == 200
        assert response.json()["data"]["creatorStatus"] == "pending"
        assert db.find("creator_status = 'pending'")[0][1] == (None, "https://instagram.com/me", 1)


def test_request_history(client, db, login_as, make_user):
    login_as(make_user(is_creator=True, creator_status="approved", creator_approved_by=99))
    db.queue({"id": 99, "name": "Admin User", "username": "admin"})
    data = client.get("/api/creator/request-history").json()["data"]
    assert data["creatorApprovedBy"] == {"id": 99, "name": "Admin User", "username": "admin"}


class TestCreateTask:
    def test_reserves_budget(self, client, db, creator, creator_task):
        db.queue({"creator_wallet": 4000}, creator_task(coins_used=0))

        response = client.post("/api/creator/tasks", json=NEW_TASK)

        assert response.status_code == 201
        data = response.json()["data"]
        assert data["creatorWallet"] == 4000
        assert data["totalBudget"] == 1000
        assert data["coins"] == 10
        assert db.find("SET creator_wallet = creator_wallet - %s")[0][1] == (1000, 1, 1000)

    def test_wallet_too_small(self, client, db, login_as, make_user):
        login_as(make_user(is_creator=True, creator_status="approved", creator_wallet=500))
        response = client.post("/api/creator/tasks", json=NEW_TASK)
        assert response.status_code == 400
        assert response.json()["error"] == "Insufficient balance. You need 1000 coins but have 500 coins."
        assert not db.queries

    def test_wallet_spent_concurrently(self, client, db, creator):
        db.queue(None)
        response = client.post("/api/creator/tasks", json=NEW_TASK)
        assert response.status_code == 400
        assert not db.find("INSERT INTO tasks")

    def test_missing_fields(self, client, db, creator):
        response = client.post("/api/creator/tasks", json={"type": "watch_video", "title": "x"})
        assert response.status_code == 400
        assert response.json()["error"] == "Type, title, description, reward per user, and max users are required"

    def test_url_required_for_type(self, client, db, creator):
        response = client.post("/api/creator/tasks", json={**NEW_TASK, "videoUrl": None})
        assert response.status_code == 400
        assert response.json()["error"] == "Video URL is required for watch_video tasks"


class TestUpdateTask:
    def test_cannot_drop_below_used(self, client, db, creator, creator_task):
        db.queue(creator_task())
        response = client.put("/api/creator/tasks/20", json={"maxUsers": 50})
        assert response.status_code == 400
        assert response.json()["error"] == "Cannot reduce budget below coins already used (600 coins)"

    def test_raising_budget_debits_difference(self, client, db, creator, creator_task):
        db.queue(creator_task(), {"creator_wallet": 4500}, creator_task(max_users=150, total_budget=1500))

        response = client.put("/api/creator/tasks/20", json={"maxUsers": 150})

        assert response.status_code == 200
        assert response.json()["message"] == "Task updated successfully"
        assert response.json()["data"]["task"]["totalBudget"] == 1500
        assert db.find("SET creator_wallet = creator_wallet - %s")[0][1] == (500, 1, 500)
        query, params = db.find("UPDATE tasks SET")[0]
        assert "coins = %s, reward_per_user = %s, max_users = %s, total_budget = %s, is_active = %s" in query
        assert params == (10, 10, 150, 1500, True, 20)

    def test_lowering_budget_refunds(self, client, db, creator, creator_task):
        db.queue(creator_task(), {"creator_wallet": 5200}, creator_task(max_users=80, total_budget=800))
        response = client.put("/api/creator/tasks/20", json={"maxUsers": 80})
        assert response.status_code == 200
        assert db.find("SET creator_wallet = creator_wallet + %s")[0][1] == (200, 1)

    def test_closes_when_remainder_cannot_cover_new_reward(self, client, db, creator, creator_task):
        task = creator_task(coins_used=610, completions=5)
        db.queue(task, {"creator_wallet": 5375}, creator_task(is_active=False))

        response = client.put("/api/creator/tasks/20", json={"rewardPerUser": 25, "maxUsers": 25})

        assert response.status_code == 200
        assert db.find("UPDATE tasks SET")[0][1] == (25, 25, 25, 625, False, 20)

    def test_other_creators_task(self, client, db, creator, creator_task):
        db.queue(creator_task(created_by=2))
        response = client.put("/api/creator/tasks/20", json={"title": "Mine now"})
        assert response.status_code == 403
        assert response.json()["error"] == "You can only update your own tasks"


def test_delete_refunds_unused_budget(client, db, creator, creator_task):
    db.queue(creator_task(), {"creator_wallet": 5400})
    response = client.delete("/api/creator/tasks/20")
    assert response.json() == {"success": True, "data": {"refundedCoins": 400}, "message": "Task deleted successfully"}
    assert db.find("DELETE FROM tasks")


class TestCoinRequests:
    def test_needs_proof(self, client, db, creator):
        response = client.post("/api/creator/request-coins", data={"coins": "2000"})
        assert response.status_code == 400
        assert response.json()["error"] == "Payment proof screenshot is required"

    def test_minimum(self, client, db, creator):
        response = client.post(
            "/api/creator/request-coins",
            data={"coins": "500"},
            files={"paymentProof": ("pay.png", b"png", "image/png")},
        )
        assert response.status_code == 400
        assert response.json()["error"] == "Minimum 1000 coins required"

    def test_submits_request(self, client, db, creator, monkeypatch, tmp_path):
        monkeypatch.setattr(config, "UPLOAD_DIR", str(tmp_path))
        db.queue({"id": 8})

        response = client.post(
            "/api/creator/request-coins",
            data={"coins": "2000"},
            files={"paymentProof": ("pay.png", b"png", "image/png")},
        )

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["requestId"] == 8
        assert data["amount"] == 20
        params = db.find("INSERT INTO creator_coin_requests")[0][1]
        assert params[:3] == (1, 2000, 20)


class TestSubmissions:
    def test_lists_pending_by_default(self, client, db, creator):
        client.get("/api/creator/task-submissions?taskId=20")
        assert db.queries[0][1] == [1, "pending", 20]

    def test_cannot_view_others(self, client, db, creator):
        db.queue({"id": 5, "task_is_creator_task": True, "task_created_by": 2})
        response = client.get("/api/creator/task-submissions/5")
        assert response.status_code == 403

    def test_cannot_approve_others(self, client, db, creator):
        db.queue({"id": 5, "status": "pending", "user_id": 3, "task_id": 21, "title": "Other",
                  "coins": 10, "is_active": True, "is_creator_task": True, "created_by": 2,
                  "reward_per_user": 10, "max_users": 10, "total_budget": 100, "coins_used": 0})
        response = client.put("/api/creator/task-submissions/5/approve")
        assert response.status_code == 403
        assert response.json()["error"] == "You do not have permission to approve this submission"
