import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile

from ..auth import get_current_user, is_approved_creator, require_creator
from ..coins import coins_to_rupees
from ..database import get_cursor
from ..ledger import (
    approve_submission,
    credit_creator_wallet,
    debit_creator_wallet,
    reject_submission,
)
from ..models import (
    CreatorRegisterRequest,
    CreatorTaskCreate,
    CreatorTaskUpdate,
    RejectRequest,
    serialize_coin_request,
    serialize_creator_task,
    serialize_submission,
)
from ..queries import COIN_REQUEST_SELECT, SUBMISSION_SELECT
from ..responses import success
from ..rules import check_coin_request, creator_budget, task_exhausted, task_url_error
from ..utils.cloudinary import save_upload

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/creator", tags=["creator"])

CREATOR_TASKS = """
    SELECT t.*,
           (SELECT COUNT(*) FROM task_completions WHERE task_id = t.id) AS completions
    FROM tasks t
    WHERE t.created_by = %s AND t.is_creator_task = TRUE
"""


def _insufficient(needed, wallet):
    return HTTPException(
        status_code=400,
        detail=f"Insufficient balance. You need {needed} coins but have {wallet} coins.",
    )


def _own_task(cur, task_id, creator_id, action):
    cur.execute("""
        SELECT t.*,
               (SELECT COUNT(*) FROM task_completions WHERE task_id = t.id) AS completions
        FROM tasks t
        WHERE t.id = %s
        FOR UPDATE OF t
    """, (task_id,))
    task = cur.fetchone()
    if not task:
        raise HTTPException(status_code=404, detail="Task not found")
    if not task["is_creator_task"] or task["created_by"] != creator_id:
        raise HTTPException(status_code=403, detail=f"You can only {action} your own tasks")
    return task


def _task_json(row):
    task = serialize_creator_task(row)
    task["completions"] = row.get("completions", 0)
    return task


# Registration

@router.post("/register")
def register_as_creator(data: CreatorRegisterRequest, user: dict = Depends(get_current_user)):
    if not data.youtube_url and not data.instagram_url:
        raise HTTPException(status_code=400, detail="At least one URL (YouTube or Instagram) is required")
    if is_approved_creator(user):
        raise HTTPException(status_code=400, detail="You are already an approved creator")
    if user["creator_status"] == "pending":
        raise HTTPException(status_code=400, detail="Your creator request is already pending approval")

    with get_cursor() as cur:
        cur.execute("""
            UPDATE users
            SET is_creator = TRUE,
                creator_status = 'pending',
                creator_youtube_url = %s,
                creator_instagram_url = %s,
                creator_rejection_reason = NULL,
                updated_at = NOW()
            WHERE id = %s
        """, (data.youtube_url or None, data.instagram_url or None, user["id"]))

    logger.info(f"User {user['id']} applied to become a creator")
    return success({
        "message": "Creator registration submitted. Waiting for admin approval.",
        "creatorStatus": "pending",
    })


@router.get("/request-history")
def get_request_history(user: dict = Depends(get_current_user)):
    approver = None
    if user.get("creator_approved_by"):
        with get_cursor() as cur:
            cur.execute("SELECT id, name, username FROM users WHERE id = %s", (user["creator_approved_by"],))
            approver = cur.fetchone()

    return success({
        "isCreator": user["is_creator"],
        "creatorStatus": user["creator_status"],
        "creatorApprovedBy": dict(approver) if approver else None,
        "creatorApprovedAt": user.get("creator_approved_at"),
        "creatorRejectionReason": user.get("creator_rejection_reason"),
        "creatorYouTubeUrl": user.get("creator_youtube_url"),
        "creatorInstagramUrl": user.get("creator_instagram_url"),
        "requestedAt": user["updated_at"],
    })


# Dashboard and wallet

@router.get("/dashboard")
def get_creator_dashboard(user: dict = Depends(require_creator)):
    with get_cursor() as cur:
        cur.execute("""
            SELECT COUNT(*) AS total_tasks,
                   COUNT(*) FILTER (WHERE is_active) AS active_tasks,
                   COALESCE(SUM(coins_used), 0) AS total_coins_spent
            FROM tasks
            WHERE created_by = %s AND is_creator_task = TRUE
        """, (user["id"],))
        tasks = cur.fetchone()

        cur.execute("""
            SELECT COUNT(*) AS total_completions,
                   COUNT(DISTINCT tc.user_id) AS unique_users,
                   COUNT(*) FILTER (WHERE t.type = 'youtube_subscribe') AS youtube_subscribers,
                   COALESCE(SUM(t.video_duration) FILTER (WHERE t.type = 'watch_video'), 0) AS total_watch_time
            FROM task_completions tc
            JOIN tasks t ON t.id = tc.task_id
            WHERE t.created_by = %s AND t.is_creator_task = TRUE
        """, (user["id"],))
        completions = cur.fetchone()

        cur.execute("""
            SELECT t.title, t.type, u.name, u.username, tc.completed_at
            FROM task_completions tc
            JOIN tasks t ON t.id = tc.task_id
            JOIN users u ON u.id = tc.user_id
            WHERE t.created_by = %s AND t.is_creator_task = TRUE
            ORDER BY tc.completed_at DESC
            LIMIT 10
        """, (user["id"],))
        recent = cur.fetchall()

    return success({
        "creatorWallet": user["creator_wallet"],
        "stats": {
            "totalTasks": tasks["total_tasks"],
            "activeTasks": tasks["active_tasks"],
            "totalCompletions": completions["total_completions"],
            "totalCoinsSpent": tasks["total_coins_spent"],
            "uniqueUsers": completions["unique_users"],
            "youtubeSubscribers": completions["youtube_subscribers"],
            "totalWatchTime": completions["total_watch_time"],
        },
        "links": {
            "youtubeUrl": user.get("creator_youtube_url"),
            "instagramUrl": user.get("creator_instagram_url"),
        },
        "recentCompletions": [
            {
                "taskTitle": row["title"],
                "taskType": row["type"],
                "userName": row["name"],
                "userUsername": row["username"],
                "completedAt": row["completed_at"],
            }
            for row in recent
        ],
    })


@router.post("/request-coins")
async def request_coins(
    coins: Optional[int] = Form(None),
    payment_proof: Optional[UploadFile] = File(None, alias="paymentProof"),
    user: dict = Depends(require_creator),
):
    if payment_proof is None or not payment_proof.filename:
        raise HTTPException(status_code=400, detail="Payment proof screenshot is required")
    check_coin_request(coins)

    amount = coins_to_rupees(coins)
    proof_url = await save_upload(payment_proof, field="payment-proof", only="image")

    with get_cursor() as cur:
        cur.execute("""
            INSERT INTO creator_coin_requests (creator_id, coins, amount, payment_proof, status, created_at, updated_at)
            VALUES (%s, %s, %s, %s, 'pending', NOW(), NOW())
            RETURNING id
        """, (user["id"], coins, amount, proof_url))
        request = cur.fetchone()

    logger.info(f"Creator {user['id']} requested {coins} coins (request {request['id']})")
    return success({
        "message": "Coin request submitted. Waiting for admin approval.",
        "requestId": request["id"],
        "coins": coins,
        "amount": amount,
    })


@router.get("/coin-requests")
def get_coin_requests(user: dict = Depends(require_creator)):
    with get_cursor() as cur:
        cur.execute(COIN_REQUEST_SELECT + " WHERE cr.creator_id = %s ORDER BY cr.created_at DESC", (user["id"],))
        rows = cur.fetchall()

    return success([serialize_coin_request(row) for row in rows])


# Tasks

@router.post("/tasks", status_code=201)
def create_creator_task(data: CreatorTaskCreate, user: dict = Depends(require_creator)):
    if not data.type or not data.title or not data.description or not data.reward_per_user or not data.max_users:
        raise HTTPException(
            status_code=400,
            detail="Type, title, description, reward per user, and max users are required",
        )

    reward, max_users, total = creator_budget(data.reward_per_user, data.max_users)
    if user["creator_wallet"] < total:
        raise _insufficient(total, user["creator_wallet"])

    error = task_url_error(data.type.value, data.video_url, data.instagram_url, data.youtube_url)
    if error:
        raise HTTPException(status_code=400, detail=error)

    with get_cursor() as cur:
        wallet = debit_creator_wallet(cur, user["id"], total)
        if wallet is None:
            raise _insufficient(total, user["creator_wallet"])

        cur.execute("""
            INSERT INTO tasks (type, title, description, coins, video_url, video_duration,
                               instagram_url, youtube_url, thumbnail, is_active, created_by,
                               is_creator_task, reward_per_user, max_users, total_budget, coins_used,
                               created_at, updated_at)
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, TRUE, %s, TRUE, %s, %s, %s, 0, NOW(), NOW())
            RETURNING *
        """, (
            data.type.value,
            data.title,
            data.description,
            reward,
            data.video_url or None,
            data.video_duration or None,
            data.instagram_url or None,
            data.youtube_url or None,
            data.thumbnail or None,
            user["id"],
            reward,
            max_users,
            total,
        ))
        task = cur.fetchone()

    logger.info(f"Creator {user['id']} created task {task['id']} with budget {total} coins")
    result = serialize_creator_task(task)
    result["creatorWallet"] = wallet
    return success(result)


@router.get("/tasks")
def get_creator_tasks(user: dict = Depends(require_creator)):
    with get_cursor() as cur:
        cur.execute(CREATOR_TASKS + " ORDER BY t.created_at DESC", (user["id"],))
        rows = cur.fetchall()

    return success([_task_json(row) for row in rows])


@router.put("/tasks/{task_id}")
def update_creator_task(task_id: int, data: CreatorTaskUpdate, user: dict = Depends(require_creator)):
    updates = data.model_dump(exclude_unset=True)
    for field in ("type", "title", "description"):
        if field in updates and not updates[field]:
            updates.pop(field)
    if "type" in updates:
        updates["type"] = updates["type"].value
    reward_changed = updates.pop("reward_per_user", None)
    max_users_changed = updates.pop("max_users", None)

    with get_cursor() as cur:
        task = _own_task(cur, task_id, user["id"], "update")

        merged = {**task, **updates}
        error = task_url_error(merged["type"], merged.get("video_url"), merged.get("instagram_url"), merged.get("youtube_url"))
        if error:
            raise HTTPException(status_code=400, detail=error)

        if reward_changed is not None or max_users_changed is not None:
            reward, max_users, total = creator_budget(
                reward_changed if reward_changed is not None else task["reward_per_user"],
                max_users_changed if max_users_changed is not None else task["max_users"],
            )
            if task["coins_used"] > total:
                raise HTTPException(
                    status_code=400,
                    detail=f"Cannot reduce budget below coins already used ({task['coins_used']} coins)",
                )

            difference = total - (task["total_budget"] or 0)
            if difference > 0 and debit_creator_wallet(cur, user["id"], difference) is None:
                raise _insufficient(difference, user["creator_wallet"])
            if difference < 0:
                credit_creator_wallet(cur, user["id"], -difference)

            updates.update({
                "coins": reward,
                "reward_per_user": reward,
                "max_users": max_users,
                "total_budget": total,
                "is_active": not task_exhausted(task["coins_used"], total, task["completions"], max_users, reward),
            })

        if updates:
            # Column names come from the request model fields
            set_clause = ", ".join(f"{column} = %s" for column in updates)
            cur.execute(
                f"UPDATE tasks SET {set_clause}, updated_at = NOW() WHERE id = %s",
                (*updates.values(), task_id),
            )
            task = _own_task(cur, task_id, user["id"], "update")

    return success({"task": _task_json(task)}, "Task updated successfully")


@router.delete("/tasks/{task_id}")
def delete_creator_task(task_id: int, user: dict = Depends(require_creator)):
    with get_cursor() as cur:
        task = _own_task(cur, task_id, user["id"], "delete")

        refund = max((task["total_budget"] or 0) - (task["coins_used"] or 0), 0)
        if refund > 0:
            credit_creator_wallet(cur, user["id"], refund)

        # Submissions and completions cascade
        cur.execute("DELETE FROM tasks WHERE id = %s", (task_id,))

    logger.info(f"Creator {user['id']} deleted task {task_id}, refunded {refund} coins")
    return success({"refundedCoins": refund}, "Task deleted successfully")


# Submissions

@router.get("/task-submissions")
def get_task_submissions(
    status: str = "pending",
    taskId: Optional[int] = None,
    user: dict = Depends(require_creator),
):
    query = SUBMISSION_SELECT + " WHERE t.created_by = %s AND t.is_creator_task = TRUE AND ts.status = %s"
    params = [user["id"], status]
    if taskId is not None:
        query += " AND t.id = %s"
        params.append(taskId)

    with get_cursor() as cur:
        cur.execute(query + " ORDER BY ts.created_at DESC", params)
        rows = cur.fetchall()

    return success([serialize_submission(row) for row in rows])


@router.get("/task-submissions/{submission_id}")
def get_task_submission(submission_id: int, user: dict = Depends(require_creator)):
    with get_cursor() as cur:
        cur.execute(SUBMISSION_SELECT + " WHERE ts.id = %s", (submission_id,))
        row = cur.fetchone()

    if not row:
        raise HTTPException(status_code=404, detail="Submission not found")
    if not row["task_is_creator_task"] or row["task_created_by"] != user["id"]:
        raise HTTPException(status_code=403, detail="You do not have permission to view this submission")

    return success(serialize_submission(row))


@router.put("/task-submissions/{submission_id}/approve")
def approve_task_submission(submission_id: int, user: dict = Depends(require_creator)):
    with get_cursor() as cur:
        coins = approve_submission(cur, submission_id, user["id"], creator_id=user["id"])

    logger.info(f"Creator {user['id']} approved submission {submission_id} for {coins} coins")
    return success({"message": "Task approved and coins credited successfully", "coins": coins})


@router.put("/task-submissions/{submission_id}/reject")
def reject_task_submission(
    submission_id: int,
    data: Optional[RejectRequest] = None,
    user: dict = Depends(require_creator),
):
    with get_cursor() as cur:
        reject_submission(
            cur, submission_id, user["id"],
            reason=data.rejection_reason if data else None,
            creator_id=user["id"],
        )

    return success({"message": "Task submission rejected"})
