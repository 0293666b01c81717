import logging

from fastapi import APIRouter, Depends, HTTPException

from ..auth import get_current_user
from ..database import get_cursor
from ..responses import success

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/follow", tags=["follow"])


def _ensure_user_exists(cur, user_id):
    cur.execute("SELECT id FROM users WHERE id = %s", (user_id,))
    if not cur.fetchone():
        raise HTTPException(status_code=404, detail="User not found")


@router.post("/{user_id}")
def follow_user(user_id: int, user: dict = Depends(get_current_user)):
    if user_id == user["id"]:
        raise HTTPException(status_code=400, detail="You cannot follow yourself")

    with get_cursor() as cur:
        _ensure_user_exists(cur, user_id)
        cur.execute("""
            INSERT INTO follows (follower_id, following_id, created_at)
            VALUES (%s, %s, NOW())
            ON CONFLICT (follower_id, following_id) DO NOTHING
            RETURNING follower_id
        """, (user["id"], user_id))
        if not cur.fetchone():
            raise HTTPException(status_code=400, detail="You are already following this user")

    return success(message="User followed successfully")


@router.delete("/{user_id}")
def unfollow_user(user_id: int, user: dict = Depends(get_current_user)):
    with get_cursor() as cur:
        _ensure_user_exists(cur, user_id)
        cur.execute("""
            DELETE FROM follows
            WHERE follower_id = %s AND following_id = %s
            RETURNING follower_id
        """, (user["id"], user_id))
        if not cur.fetchone():
            raise HTTPException(status_code=400, detail="You are not following this user")

    return success(message="User unfollowed successfully")


@router.get("/{user_id}")
def get_follow_status(user_id: int, user: dict = Depends(get_current_user)):
    with get_cursor() as cur:
        _ensure_user_exists(cur, user_id)
        cur.execute("""
            SELECT
                (SELECT COUNT(*) FROM follows WHERE following_id = %s) AS followers_count,
                (SELECT COUNT(*) FROM follows WHERE follower_id = %s) AS following_count,
                EXISTS (
                    SELECT 1 FROM follows WHERE follower_id = %s AND following_id = %s
                ) AS is_following
        """, (user_id, user_id, user["id"], user_id))
        row = cur.fetchone()

    return success({
        "followersCount": row["followers_count"],
        "followingCount": row["following_count"],
        "isFollowing": row["is_following"],
    })
