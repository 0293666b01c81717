import logging

from fastapi import APIRouter, Depends, HTTPException

from ..auth import require_admin
from ..database import get_cursor
from ..models import TaskCreate, TaskUpdate, serialize_task
from ..responses import success
from ..rules import task_url_error

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/admin/tasks", tags=["admin-tasks"])

TASK_WITH_STATS = """
    SELECT t.*,
           (SELECT COUNT(*) FROM task_completions WHERE task_id = t.id) AS completion_count
    FROM tasks t
"""


def _task_with_stats(row):
    task = serialize_task(row)
    count = row.get("completion_count", 0)
    task["completionCount"] = count
    task["totalCoinsGiven"] = count * row["coins"]
    return task


def _completions(cur, task):
    cur.execute("""
        SELECT tc.completed_at, u.id AS user_id, u.name, u.username, u.email
        FROM task_completions tc
        JOIN users u ON u.id = tc.user_id
        WHERE tc.task_id = %s
        ORDER BY tc.completed_at DESC
    """, (task["id"],))
    return [
        {
            "userId": row["user_id"],
            "userName": row["name"],
            "userUsername": row["username"],
            "userEmail": row["email"],
            "completedAt": row["completed_at"],
            "coinsEarned": task["coins"],
        }
        for row in cur.fetchall()
    ]


def _get_task(cur, task_id):
    cur.execute(TASK_WITH_STATS + " WHERE t.id = %s", (task_id,))
    task = cur.fetchone()
    if not task:
        raise HTTPException(status_code=404, detail="Task not found")
    return task


@router.post("/", status_code=201)
def create_task(data: TaskCreate, admin: dict = Depends(require_admin)):
    if not data.type or not data.title or not data.description or data.coins is None:
        raise HTTPException(status_code=400, detail="Type, title, description, and coins are required")

    error = task_url_error(data.type.value, data.video_url, data.instagram_url, data.youtube_url)
    if error:
        raise HTTPException(status_code=400, detail=error)

    with get_cursor() as cur:
        cur.execute("""
            INSERT INTO tasks (type, title, description, coins, video_url, video_duration,
                               instagram_url, youtube_url, thumbnail, is_active, created_by,
                               created_at, updated_at)
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, NOW(), NOW())
            RETURNING *
        """, (
            data.type.value,
            data.title,
            data.description,
            data.coins,
            data.video_url or None,
            data.video_duration or None,
            data.instagram_url or None,
            data.youtube_url or None,
            data.thumbnail or None,
            True if data.is_active is None else data.is_active,
            admin["id"],
        ))
        task = cur.fetchone()

    logger.info(f"Admin {admin['id']} created {task['type']} task {task['id']} worth {task['coins']} coins")
    result = _task_with_stats(task)
    result["completedBy"] = []
    return success(result)


@router.get("/")
def get_all_tasks(admin: dict = Depends(require_admin)):
    with get_cursor() as cur:
        cur.execute(TASK_WITH_STATS + " ORDER BY t.created_at DESC")
        rows = cur.fetchall()

    return success([_task_with_stats(row) for row in rows])


@router.get("/{task_id}")
def get_task(task_id: int, admin: dict = Depends(require_admin)):
    with get_cursor() as cur:
        task = _get_task(cur, task_id)
        completions = _completions(cur, task)

    result = _task_with_stats(task)
    result["completions"] = completions
    return success(result)


@router.get("/{task_id}/completions")
def get_task_completions(task_id: int, admin: dict = Depends(require_admin)):
    with get_cursor() as cur:
        task = _get_task(cur, task_id)
        completions = _completions(cur, task)

    return success({
        "taskId": task["id"],
        "taskTitle": task["title"],
        "completionCount": len(completions),
        "totalCoinsGiven": len(completions) * task["coins"],
        "completions": completions,
    })


@router.put("/{task_id}")
def update_task(task_id: int, data: TaskUpdate, admin: dict = Depends(require_admin)):
    updates = data.model_dump(exclude_unset=True)
    # Blank values would violate NOT NULL columns
    for field in ("type", "title", "description", "coins", "is_active"):
        if field in updates and updates[field] in (None, ""):
            updates.pop(field)
    if "type" in updates:
        updates["type"] = updates["type"].value

    with get_cursor() as cur:
        task = _get_task(cur, task_id)
        if not updates:
            return success(_task_with_stats(task))

        merged = {**task, **updates}
        error = task_url_error(merged["type"], merged.get("video_url"), merged.get("instagram_url"), merged.get("youtube_url"))
        if error:
            raise HTTPException(status_code=400, detail=error)

        # Column names come from the request model fields
        set_clause = ", ".join(f"{column} = %s" for column in updates)
        cur.execute(
            f"UPDATE tasks SET {set_clause}, updated_at = NOW() WHERE id = %s",
            (*updates.values(), task_id),
        )
        task = _get_task(cur, task_id)

    logger.info(f"Admin {admin['id']} updated task {task_id}: {', '.join(updates)}")
    return success(_task_with_stats(task))


@router.delete("/{task_id}")
def delete_task(task_id: int, admin: dict = Depends(require_admin)):
    with get_cursor() as cur:
        cur.execute("DELETE FROM tasks WHERE id = %s RETURNING id", (task_id,))
        if not cur.fetchone():
            raise HTTPException(status_code=404, detail="Task not found")

    logger.info(f"Admin {admin['id']} deleted task {task_id}")
    return success(message="Task deleted successfully")
