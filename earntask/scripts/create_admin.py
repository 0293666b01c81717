import logging
import sys

import psycopg2

from .. import config
from ..auth import hash_password
from ..database import get_cursor
from ..models import Role
from ..utils.referral import assign_referral_code

logging.basicConfig(
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    level=logging.INFO
)
logger = logging.getLogger(__name__)


def create_admin(email=None, password=None):
    """Create the admin account, or promote and reset it if the email exists."""
    email = (email or config.ADMIN_EMAIL).lower()
    hashed = hash_password(password or config.ADMIN_PASSWORD)

    with get_cursor() as cur:
        cur.execute("""
            UPDATE users SET role = %s, password = %s, is_active = TRUE, updated_at = NOW()
            WHERE email = %s
            RETURNING id
        """, (Role.ADMIN.value, hashed, email))
        row = cur.fetchone()
        if row:
            logger.info(f"Admin user updated: {email}")
            return row["id"]

        cur.execute("""
            INSERT INTO users (email, password, name, username, role, created_at, updated_at)
            VALUES (%s, %s, 'Admin User', 'admin', %s, NOW(), NOW())
            RETURNING id
        """, (email, hashed, Role.ADMIN.value))
        row = cur.fetchone()
        assign_referral_code(cur, row["id"])

    logger.info(f"Admin user created: {email}")
    return row["id"]


if __name__ == "__main__":
    try:
        create_admin()
    except psycopg2.Error as e:
        logger.error(f"Could not create admin user: {e}")
        sys.exit(1)
