from fastapi import APIRouter, Depends

from ..auth import get_current_user
from ..database import get_cursor
from ..responses import success
from ..utils.referral import normalize_referral_code

router = APIRouter(prefix="/api/referrals", tags=["referrals"])


@router.get("/stats")
def get_referral_stats(user: dict = Depends(get_current_user)):
    with get_cursor() as cur:
        cur.execute("""
            SELECT id, username, email, created_at FROM users
            WHERE referred_by = %s
            ORDER BY created_at DESC
        """, (user["id"],))
        referrals = cur.fetchall()

        cur.execute("""
            SELECT COALESCE(SUM(amount), 0) AS total FROM transactions
            WHERE user_id = %s AND type = 'referral'
        """, (user["id"],))
        earnings = cur.fetchone()

    return success({
        "referralCode": user["referral_code"],
        "referralCount": len(referrals),
        "totalReferralEarnings": earnings["total"],
        "referrals": [
            {
                "id": r["id"],
                "username": r["username"],
                "email": r["email"],
                "createdAt": r["created_at"],
            }
            for r in referrals
        ],
    })


@router.get("/check/{code}")
def check_referral_code(code: str):
    code = normalize_referral_code(code)
    referrer = None
    if code:
        with get_cursor() as cur:
            cur.execute("SELECT name FROM users WHERE referral_code = %s", (code,))
            referrer = cur.fetchone()

    if not referrer:
        return success({"valid": False})
    return success({"valid": True, "referrerName": referrer["name"]})
