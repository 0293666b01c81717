import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile

from ..auth import get_current_user
from ..database import get_cursor
from ..ledger import consume_task_budget, credit_coins, record_completion
from ..models import (
    PROOF_TASK_TYPES,
    CompleteTaskRequest,
    ReviewStatus,
    TaskType,
    TransactionType,
    serialize_task,
)
from ..responses import success
from ..rules import check_video_watched, remaining_budget, task_reward
from ..utils.cloudinary import save_upload

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/tasks", tags=["tasks"])

TASKS_FOR_USER = """
    SELECT t.*, tc.completed_at,
           ts.status AS submission_status,
           ts.rejection_reason AS submission_rejection_reason
    FROM tasks t
    LEFT JOIN task_completions tc ON tc.task_id = t.id AND tc.user_id = %s
    LEFT JOIN task_submissions ts ON ts.task_id = t.id AND ts.user_id = %s
"""


def task_for_user(row, include_reason=False):
    """Task JSON with the caller's completion and proof submission state."""
    task = serialize_task(row)
    task["isCompleted"] = row.get("completed_at") is not None
    task["completedAt"] = row.get("completed_at")

    submission_status = None
    if row["type"] in PROOF_TASK_TYPES:
        submission_status = row.get("submission_status") or "available"
    task["submissionStatus"] = submission_status

    if include_reason:
        task["rejectionReason"] = row.get("submission_rejection_reason")
    return task


@router.get("/")
def get_tasks(user: dict = Depends(get_current_user)):
    with get_cursor() as cur:
        cur.execute(
            TASKS_FOR_USER + " WHERE t.is_active = TRUE ORDER BY t.created_at DESC",
            (user["id"], user["id"]),
        )
        rows = cur.fetchall()

    return success([task_for_user(row) for row in rows])


@router.post("/verify/instagram-follow")
def verify_instagram_follow(user: dict = Depends(get_current_user)):
    # Follows are confirmed by screenshot review, not by the Instagram API
    return success({"verified": True})


@router.post("/verify/youtube-subscribe")
def verify_youtube_subscribe(user: dict = Depends(get_current_user)):
    return success({"verified": True})


@router.get("/{task_id}")
def get_task(task_id: int, user: dict = Depends(get_current_user)):
    with get_cursor() as cur:
        cur.execute(TASKS_FOR_USER + " WHERE t.id = %s", (user["id"], user["id"], task_id))
        row = cur.fetchone()

    if not row:
        raise HTTPException(status_code=404, detail="Task not found")

    return success(task_for_user(row, include_reason=True))


@router.post("/{task_id}/complete")
def complete_task(
    task_id: int,
    data: Optional[CompleteTaskRequest] = None,
    user: dict = Depends(get_current_user),
):
    watch_duration = data.watch_duration if data else None

    with get_cursor() as cur:
        cur.execute("SELECT * FROM tasks WHERE id = %s FOR UPDATE", (task_id,))
        task = cur.fetchone()
        if not task:
            raise HTTPException(status_code=404, detail="Task not found")
        if not task["is_active"]:
            raise HTTPException(status_code=400, detail="This task is no longer active")
        if task["type"] in PROOF_TASK_TYPES:
            raise HTTPException(status_code=400, detail="This task requires proof submission")

        if task["type"] == TaskType.WATCH_VIDEO.value:
            check_video_watched(watch_duration, task["video_duration"])

        reward = task_reward(task)
        if task["is_creator_task"] and remaining_budget(task) < reward:
            raise HTTPException(status_code=400, detail="Insufficient budget to complete this task")

        if not record_completion(cur, task["id"], user["id"]):
            raise HTTPException(status_code=400, detail="Task already completed")

        if task["is_creator_task"]:
            consume_task_budget(cur, task["id"], reward)

        credit_coins(
            cur, user["id"], reward, TransactionType.EARNED.value,
            f"Completed task: {task['title']}", task_id=task["id"],
        )

    return success({"coins": reward, "message": "Task completed successfully!"})


@router.post("/{task_id}/submit-proof")
async def submit_task_proof(
    task_id: int,
    proof_image: Optional[UploadFile] = File(None, alias="proofImage"),
    user: dict = Depends(get_current_user),
):
    with get_cursor() as cur:
        cur.execute("SELECT id, type, is_active FROM tasks WHERE id = %s", (task_id,))
        task = cur.fetchone()
        if not task:
            raise HTTPException(status_code=404, detail="Task not found")
        if not task["is_active"]:
            raise HTTPException(status_code=400, detail="This task is no longer active")
        if task["type"] not in PROOF_TASK_TYPES:
            raise HTTPException(status_code=400, detail="This task does not require proof submission")
        if proof_image is None or not proof_image.filename:
            raise HTTPException(status_code=400, detail="Proof screenshot is required")

        cur.execute(
            "SELECT id, status FROM task_submissions WHERE task_id = %s AND user_id = %s",
            (task_id, user["id"]),
        )
        existing = cur.fetchone()

    if existing and existing["status"] == ReviewStatus.APPROVED.value:
        raise HTTPException(status_code=400, detail="Task already approved")

    proof_url = await save_upload(proof_image, field="proof", only="image")

    with get_cursor() as cur:
        if existing:
            cur.execute("""
                UPDATE task_submissions
                SET proof_image = %s, status = 'pending', rejection_reason = NULL,
                    reviewed_by = NULL, reviewed_at = NULL, updated_at = NOW()
                WHERE id = %s AND status <> 'approved'
                RETURNING id
            """, (proof_url, existing["id"]))
            if not cur.fetchone():
                raise HTTPException(status_code=400, detail="Task already approved")
            logger.info(f"User {user['id']} resubmitted proof for task {task_id}")
            return success({
                "message": "Proof resubmitted successfully. Waiting for admin approval.",
                "submissionStatus": ReviewStatus.PENDING.value,
            })

        cur.execute("""
            INSERT INTO task_submissions (task_id, user_id, proof_image, status, created_at, updated_at)
            VALUES (%s, %s, %s, 'pending', NOW(), NOW())
            RETURNING id
        """, (task_id, user["id"], proof_url))
        submission = cur.fetchone()

    logger.info(f"User {user['id']} submitted proof for task {task_id}")
    return success({
        "message": "Proof submitted successfully. Waiting for admin approval.",
        "submissionStatus": ReviewStatus.PENDING.value,
        "submissionId": submission["id"],
    })
