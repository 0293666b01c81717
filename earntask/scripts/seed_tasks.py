import logging
import sys

import psycopg2

from ..coins import get_all_coin_values
from ..database import get_cursor

logging.basicConfig(
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    level=logging.INFO
)
logger = logging.getLogger(__name__)

SAMPLE_VIDEO = "https://sample-videos.com/video123/mp4/720/big_buck_bunny_720p_1mb.mp4"
PLACEHOLDER = "https://via.placeholder.com/400x300"


def sample_tasks(coin_values):
    return [
        {
            "type": "watch_video",
            "title": "Watch Product Demo Video",
            "description": "Watch this 2-minute product demo video to earn coins",
            "coins": coin_values["WATCH_VIDEO"],
            "video_url": SAMPLE_VIDEO,
            "video_duration": 120,
        },
        {
            "type": "instagram_follow",
            "title": "Follow Our Instagram",
            "description": "Follow our Instagram account @earntaskplatform",
            "coins": coin_values["INSTAGRAM_FOLLOW"],
            "instagram_url": "https://instagram.com/earntaskplatform",
        },
        {
            "type": "instagram_like",
            "title": "Like Our Latest Post",
            "description": "Like our latest Instagram post to earn coins",
            "coins": coin_values["INSTAGRAM_LIKE"],
            "instagram_url": "https://instagram.com/earntaskplatform",
        },
        {
            "type": "youtube_subscribe",
            "title": "Subscribe to Our YouTube Channel",
            "description": "Subscribe to our YouTube channel for exclusive content",
            "coins": coin_values["YOUTUBE_SUBSCRIBE"],
            "youtube_url": "https://youtube.com/@earntaskplatform",
        },
        {
            "type": "watch_video",
            "title": "Learn About Earning Rewards",
            "description": "Watch this tutorial video about how to earn more coins",
            "coins": coin_values["WATCH_VIDEO"],
            "video_url": SAMPLE_VIDEO,
            "video_duration": 180,
        },
    ]


def seed_tasks():
    """Replace every task with the sample set, priced at the current coin values."""
    with get_cursor() as cur:
        tasks = sample_tasks(get_all_coin_values(cur))

        cur.execute("DELETE FROM tasks")
        logger.info("Cleared existing tasks")

        for task in tasks:
            cur.execute("""
                INSERT INTO tasks (type, title, description, coins, video_url, video_duration,
                                   instagram_url, youtube_url, thumbnail, created_at, updated_at)
                VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, NOW(), NOW())
            """, (
                task["type"],
                task["title"],
                task["description"],
                task["coins"],
                task.get("video_url"),
                task.get("video_duration"),
                task.get("instagram_url"),
                task.get("youtube_url"),
                PLACEHOLDER,
            ))

    logger.info(f"Seeded {len(tasks)} tasks")
    return len(tasks)


if __name__ == "__main__":
    try:
        seed_tasks()
    except psycopg2.Error as e:
        logger.error(f"Error seeding tasks: {e}")
        sys.exit(1)
