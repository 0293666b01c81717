import logging
import os
from contextlib import contextmanager

import psycopg2
from psycopg2.extras import RealDictCursor

from . import config

logger = logging.getLogger(__name__)

SCHEMA_PATH = os.path.join(os.path.dirname(__file__), "schema.sql")


def get_connection():
    if not config.DATABASE_URL:
        raise ValueError("DATABASE_URL environment variable not set")

    return psycopg2.connect(config.DATABASE_URL, cursor_factory=RealDictCursor)


@contextmanager
def get_cursor():
    """Yield a cursor inside one transaction.

    Commits when the block finishes and rolls back if it raises, including
    on HTTPException, so a rejected request never leaves half a ledger update.
    """
    conn = get_connection()
    cur = conn.cursor()
    try:
        yield cur
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        cur.close()
        conn.close()


def init_database():
    with open(SCHEMA_PATH, "r") as f:
        sql = f.read()

    with get_cursor() as cur:
        cur.execute(sql)

    logger.info("Database initialized successfully")
