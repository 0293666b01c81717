import secrets
import string

ALPHABET = string.ascii_uppercase + string.digits


def generate_referral_code(user_id):
    """Three characters of the user id followed by six random ones, e.g. ``42A7K9QZ``."""
    prefix = str(user_id)[:3].upper()
    random_part = "".join(secrets.choice(ALPHABET) for _ in range(6))
    return f"{prefix}{random_part}"


def assign_referral_code(cur, user_id):
    """Store a referral code on the user, retrying until it is unused."""
    while True:
        code = generate_referral_code(user_id)
        cur.execute("""
            UPDATE users SET referral_code = %s
            WHERE id = %s
              AND NOT EXISTS (SELECT 1 FROM users WHERE referral_code = %s)
            RETURNING referral_code
        """, (code, user_id, code))
        row = cur.fetchone()
        if row:
            return row["referral_code"]


def normalize_referral_code(code):
    if not code or not code.strip():
        return None
    return code.strip().upper()
