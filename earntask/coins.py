import logging
import time

import psycopg2

from .models import CoinKey

logger = logging.getLogger(__name__)

COIN_TO_RUPEE_RATE = 100  # 100 coins = 1 rupee
MIN_WITHDRAWAL_AMOUNT = 1000
DEFAULT_WITHDRAWAL_AMOUNTS = [100, 500, 1000, 2000, 5000, 10000]
VIDEO_WATCH_PERCENTAGE = 80

CREATOR_MIN_COIN_REQUEST = 1000
CREATOR_MAX_COIN_REQUEST = 100000

COIN_VALUES = {
    CoinKey.WATCH_VIDEO.value: 10,
    CoinKey.INSTAGRAM_FOLLOW.value: 50,
    CoinKey.INSTAGRAM_LIKE.value: 20,
    CoinKey.YOUTUBE_SUBSCRIBE.value: 100,
    CoinKey.REFERRAL_BONUS.value: 500,
    CoinKey.POST_UPLOAD.value: 30,
    CoinKey.DAILY_LOGIN.value: 25,
    CoinKey.POST_LIKE.value: 0,
}

COIN_LABELS = {
    CoinKey.WATCH_VIDEO.value: "Watch Video",
    CoinKey.INSTAGRAM_FOLLOW.value: "Instagram Follow",
    CoinKey.INSTAGRAM_LIKE.value: "Instagram Like",
    CoinKey.YOUTUBE_SUBSCRIBE.value: "YouTube Subscribe",
    CoinKey.REFERRAL_BONUS.value: "Referral Bonus",
    CoinKey.POST_UPLOAD.value: "Post Upload",
    CoinKey.DAILY_LOGIN.value: "Daily Login",
    CoinKey.POST_LIKE.value: "Post Like",
}

CACHE_DURATION = 5 * 60  # seconds

_cache = {}
_cache_timestamp = 0.0


def coins_to_rupees(coins):
    return round(coins / COIN_TO_RUPEE_RATE, 2)


def clear_coin_cache():
    global _cache, _cache_timestamp
    _cache = {}
    _cache_timestamp = 0.0


def _cache_fresh():
    return time.monotonic() - _cache_timestamp < CACHE_DURATION


def get_coin_value(cur, key):
    """Current reward for ``key``: the admin-configured value or the default."""
    global _cache_timestamp

    if key in _cache and _cache_fresh():
        return _cache[key]

    # A failed lookup must leave the caller's transaction usable
    cur.execute("SAVEPOINT coin_config")
    try:
        cur.execute("SELECT value FROM coin_configs WHERE key = %s", (key,))
        row = cur.fetchone()
    except psycopg2.Error as e:
        cur.execute("ROLLBACK TO SAVEPOINT coin_config")
        logger.error(f"Error fetching coin value for {key}: {e}")
        return COIN_VALUES.get(key, 0)
    cur.execute("RELEASE SAVEPOINT coin_config")

    value = row["value"] if row else COIN_VALUES.get(key, 0)
    _cache[key] = value
    _cache_timestamp = time.monotonic()
    return value


def get_all_coin_values(cur):
    global _cache, _cache_timestamp

    if len(_cache) == len(COIN_VALUES) and _cache_fresh():
        return dict(_cache)

    cur.execute("SAVEPOINT coin_config")
    try:
        cur.execute("SELECT key, value FROM coin_configs")
        rows = cur.fetchall()
    except psycopg2.Error as e:
        cur.execute("ROLLBACK TO SAVEPOINT coin_config")
        logger.error(f"Error fetching all coin values: {e}")
        return dict(COIN_VALUES)
    cur.execute("RELEASE SAVEPOINT coin_config")

    values = dict(COIN_VALUES)
    values.update({row["key"]: row["value"] for row in rows})

    _cache = values
    _cache_timestamp = time.monotonic()
    return dict(values)
