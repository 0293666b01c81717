import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile

from ..auth import get_current_user
from ..database import get_cursor
from ..responses import success
from ..utils.cloudinary import generate_thumbnail_url, resource_type_for, save_upload

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/stories", tags=["stories"])

MAX_STORY_VIDEO_SECONDS = 120
STORY_TYPES = ("image", "video")


def group_stories(rows):
    """Group story rows by author, keeping the order authors first appear in."""
    groups = {}
    for row in rows:
        group = groups.get(row["user_id"])
        if group is None:
            group = groups[row["user_id"]] = {
                "user": {
                    "id": row["user_id"],
                    "name": row["user_name"],
                    "username": row["user_username"],
                },
                "stories": [],
            }
        group["stories"].append({
            "id": row["id"],
            "type": row["type"],
            "mediaUrl": row["media_url"],
            "videoDuration": row["video_duration"],
            "thumbnailUrl": row["thumbnail_url"],
            "views": row["views_count"],
            "hasViewed": bool(row["has_viewed"]),
            "createdAt": row["created_at"],
            "expiresAt": row["expires_at"],
        })
    return list(groups.values())


@router.get("/")
def get_stories(user: dict = Depends(get_current_user)):
    with get_cursor() as cur:
        cur.execute("""
            SELECT s.*, u.name AS user_name, u.username AS user_username,
                   (SELECT COUNT(*) FROM story_views WHERE story_id = s.id) AS views_count,
                   EXISTS (
                       SELECT 1 FROM story_views WHERE story_id = s.id AND user_id = %s
                   ) AS has_viewed
            FROM stories s
            JOIN users u ON u.id = s.user_id
            WHERE s.is_active = TRUE AND s.expires_at > NOW()
            ORDER BY s.created_at DESC
        """, (user["id"],))
        rows = cur.fetchall()

    return success(group_stories(rows))


@router.post("/", status_code=201)
async def upload_story(
    media: Optional[UploadFile] = File(None),
    media_type: Optional[str] = Form(None, alias="type"),
    video_duration: Optional[float] = Form(None, alias="videoDuration"),
    user: dict = Depends(get_current_user),
):
    if media is None or not media.filename:
        raise HTTPException(status_code=400, detail="Please upload a file")

    story_type = media_type or ("image" if resource_type_for(media.content_type) == "image" else "video")
    if story_type not in STORY_TYPES:
        raise HTTPException(status_code=400, detail="Story type must be image or video")
    if story_type == "video" and video_duration and video_duration > MAX_STORY_VIDEO_SECONDS:
        raise HTTPException(status_code=400, detail="Story video duration cannot exceed 2 minutes (120 seconds)")

    media_url = await save_upload(media, field="story", only=story_type)
    thumbnail_url = generate_thumbnail_url(media_url) if story_type == "image" else None

    with get_cursor() as cur:
        cur.execute("""
            INSERT INTO stories (user_id, type, media_url, video_duration, thumbnail_url, created_at, expires_at)
            VALUES (%s, %s, %s, %s, %s, NOW(), NOW() + INTERVAL '24 hours')
            RETURNING *
        """, (user["id"], story_type, media_url, video_duration, thumbnail_url))
        story = cur.fetchone()

    logger.info(f"User {user['id']} posted {story_type} story {story['id']}")
    return success({
        "id": story["id"],
        "userId": user["id"],
        "userName": user["name"],
        "type": story["type"],
        "mediaUrl": story["media_url"],
        "videoDuration": story["video_duration"],
        "thumbnailUrl": story["thumbnail_url"],
        "views": 0,
        "createdAt": story["created_at"],
        "expiresAt": story["expires_at"],
    })


@router.post("/{story_id}/view")
def view_story(story_id: int, user: dict = Depends(get_current_user)):
    with get_cursor() as cur:
        cur.execute("SELECT id FROM stories WHERE id = %s", (story_id,))
        if not cur.fetchone():
            raise HTTPException(status_code=404, detail="Story not found")

        cur.execute("""
            INSERT INTO story_views (story_id, user_id, viewed_at)
            VALUES (%s, %s, NOW())
            ON CONFLICT (story_id, user_id) DO NOTHING
        """, (story_id, user["id"]))

    return success(message="Story viewed")
