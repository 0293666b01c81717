import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile

from ..auth import get_current_user
from ..coins import get_coin_value
from ..database import get_cursor
from ..ledger import credit_coins
from ..models import (
    CoinKey,
    CommentRequest,
    PostUpdate,
    TransactionType,
    serialize_comment,
    serialize_post,
)
from ..responses import success
from ..utils.cloudinary import save_upload

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/posts", tags=["posts"])

# First parameter is the viewing user, for is_liked
POST_SELECT = """
    SELECT p.*, u.name AS user_name, u.avatar AS user_avatar,
           (SELECT COUNT(*) FROM post_likes WHERE post_id = p.id) AS likes_count,
           (SELECT COUNT(*) FROM post_comments WHERE post_id = p.id) AS comments_count,
           EXISTS (SELECT 1 FROM post_likes WHERE post_id = p.id AND user_id = %s) AS is_liked
    FROM posts p
    JOIN users u ON u.id = p.user_id
"""

MAX_PAGE_SIZE = 50


def _get_post(cur, post_id, viewer_id):
    cur.execute(POST_SELECT + " WHERE p.id = %s AND p.is_active = TRUE", (viewer_id, post_id))
    post = cur.fetchone()
    if not post:
        raise HTTPException(status_code=404, detail="Post not found")
    return post


def _get_own_post(cur, post_id, user_id):
    cur.execute("SELECT id, user_id FROM posts WHERE id = %s AND is_active = TRUE", (post_id,))
    post = cur.fetchone()
    if not post:
        raise HTTPException(status_code=404, detail="Post not found")
    if post["user_id"] != user_id:
        raise HTTPException(status_code=403, detail="You can only modify your own posts")
    return post


@router.get("/feed")
def get_feed(page: int = 1, limit: int = 10, user: dict = Depends(get_current_user)):
    page = max(page, 1)
    limit = min(max(limit, 1), MAX_PAGE_SIZE)

    with get_cursor() as cur:
        # One extra row tells whether another page exists
        cur.execute(
            POST_SELECT + " WHERE p.is_active = TRUE ORDER BY p.created_at DESC LIMIT %s OFFSET %s",
            (user["id"], limit + 1, (page - 1) * limit),
        )
        rows = cur.fetchall()

    return success({
        "posts": [serialize_post(row) for row in rows[:limit]],
        "hasMore": len(rows) > limit,
    })


@router.post("/", status_code=201)
async def upload_post(
    image: Optional[UploadFile] = File(None),
    caption: Optional[str] = Form(None),
    user: dict = Depends(get_current_user),
):
    if image is None or not image.filename:
        raise HTTPException(status_code=400, detail="Please upload an image")

    image_url = await save_upload(image, field="post", only="image")

    with get_cursor() as cur:
        cur.execute("""
            INSERT INTO posts (user_id, image_url, caption, created_at, updated_at)
            VALUES (%s, %s, %s, NOW(), NOW())
            RETURNING *
        """, (user["id"], image_url, (caption or "").strip()))
        post = cur.fetchone()

        reward = get_coin_value(cur, CoinKey.POST_UPLOAD.value)
        if reward > 0:
            credit_coins(cur, user["id"], reward, TransactionType.EARNED.value, "Post upload reward")

    post.update({
        "user_name": user["name"],
        "user_avatar": user.get("avatar"),
        "likes_count": 0,
        "comments_count": 0,
        "is_liked": False,
    })
    return success(serialize_post(post))


@router.get("/user/{user_id}")
def get_user_posts(user_id: int, user: dict = Depends(get_current_user)):
    with get_cursor() as cur:
        cur.execute(
            POST_SELECT + " WHERE p.user_id = %s AND p.is_active = TRUE ORDER BY p.created_at DESC",
            (user["id"], user_id),
        )
        rows = cur.fetchall()

    return success([serialize_post(row) for row in rows])


@router.get("/{post_id}")
def get_post(post_id: int, user: dict = Depends(get_current_user)):
    with get_cursor() as cur:
        post = _get_post(cur, post_id, user["id"])

    return success(serialize_post(post))


@router.put("/{post_id}")
def update_post(post_id: int, data: PostUpdate, user: dict = Depends(get_current_user)):
    with get_cursor() as cur:
        _get_own_post(cur, post_id, user["id"])
        cur.execute(
            "UPDATE posts SET caption = %s, updated_at = NOW() WHERE id = %s",
            ((data.caption or "").strip(), post_id),
        )
        post = _get_post(cur, post_id, user["id"])

    return success(serialize_post(post), "Post updated successfully")


@router.delete("/{post_id}")
def delete_post(post_id: int, user: dict = Depends(get_current_user)):
    with get_cursor() as cur:
        _get_own_post(cur, post_id, user["id"])
        cur.execute("UPDATE posts SET is_active = FALSE, updated_at = NOW() WHERE id = %s", (post_id,))

    logger.info(f"User {user['id']} deleted post {post_id}")
    return success(message="Post deleted successfully")


@router.post("/{post_id}/like")
def like_post(post_id: int, user: dict = Depends(get_current_user)):
    with get_cursor() as cur:
        _get_post(cur, post_id, user["id"])
        cur.execute("""
            INSERT INTO post_likes (post_id, user_id, liked_at)
            VALUES (%s, %s, NOW())
            ON CONFLICT (post_id, user_id) DO NOTHING
            RETURNING post_id
        """, (post_id, user["id"]))
        if not cur.fetchone():
            raise HTTPException(status_code=400, detail="Post already liked")

    return success(message="Post liked")


@router.post("/{post_id}/unlike")
def unlike_post(post_id: int, user: dict = Depends(get_current_user)):
    with get_cursor() as cur:
        _get_post(cur, post_id, user["id"])
        cur.execute("DELETE FROM post_likes WHERE post_id = %s AND user_id = %s", (post_id, user["id"]))

    return success(message="Post unliked")


@router.post("/{post_id}/comments")
def add_comment(post_id: int, data: CommentRequest, user: dict = Depends(get_current_user)):
    text = (data.text or "").strip()

    with get_cursor() as cur:
        _get_post(cur, post_id, user["id"])
        if not text:
            raise HTTPException(status_code=400, detail="Comment text is required")

        cur.execute("""
            INSERT INTO post_comments (post_id, user_id, text, created_at)
            VALUES (%s, %s, %s, NOW())
            RETURNING *
        """, (post_id, user["id"], text))
        comment = cur.fetchone()

    comment.update({"user_name": user["name"], "user_username": user["username"]})
    return success(serialize_comment(comment))


@router.get("/{post_id}/comments")
def get_comments(post_id: int, user: dict = Depends(get_current_user)):
    with get_cursor() as cur:
        _get_post(cur, post_id, user["id"])
        cur.execute("""
            SELECT c.*, u.name AS user_name, u.username AS user_username
            FROM post_comments c
            JOIN users u ON u.id = c.user_id
            WHERE c.post_id = %s
            ORDER BY c.created_at ASC
        """, (post_id,))
        rows = cur.fetchall()

    return success([serialize_comment(row) for row in rows])
