import logging
from typing import Optional

import psycopg2
from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile

from ..auth import create_token, get_current_user, hash_password, verify_password
from ..coins import get_coin_value
from ..database import get_cursor
from ..ledger import credit_coins
from ..models import (
    ChangePasswordRequest,
    CoinKey,
    InstagramIdRequest,
    LoginRequest,
    SignupRequest,
    TransactionType,
    normalize_email,
    serialize_user,
)
from ..responses import success
from ..utils.cloudinary import delete_upload, save_upload
from ..utils.referral import assign_referral_code, normalize_referral_code

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])

USER_WITH_FOLLOW_COUNTS = """
    SELECT u.*,
           (SELECT COUNT(*) FROM follows WHERE following_id = u.id) AS followers_count,
           (SELECT COUNT(*) FROM follows WHERE follower_id = u.id) AS following_count
    FROM users u
    WHERE u.id = %s
"""


def _reward_referrer(cur, referrer, new_user):
    # A failed bonus must not undo the signup, so it runs in its own savepoint
    cur.execute("SAVEPOINT referral_bonus")
    try:
        bonus = get_coin_value(cur, CoinKey.REFERRAL_BONUS.value)
        credit_coins(
            cur, referrer["id"], bonus, TransactionType.REFERRAL.value,
            f"Referral bonus for referring {new_user['username']}",
        )
    except psycopg2.Error as e:
        cur.execute("ROLLBACK TO SAVEPOINT referral_bonus")
        logger.warning(f"Referral bonus for user {referrer['id']} failed: {e}")
        return
    cur.execute("RELEASE SAVEPOINT referral_bonus")


@router.post("/signup", status_code=201)
def signup(data: SignupRequest):
    with get_cursor() as cur:
        cur.execute(
            "SELECT id FROM users WHERE email = %s OR username = %s",
            (data.email, data.username),
        )
        if cur.fetchone():
            raise HTTPException(status_code=400, detail="User already exists with this email or username")

        referrer = None
        code = normalize_referral_code(data.referral_code)
        if code:
            cur.execute("SELECT id, username FROM users WHERE referral_code = %s", (code,))
            referrer = cur.fetchone()
            if not referrer:
                logger.info(f"Ignoring unknown referral code {code}")

        try:
            cur.execute("""
                INSERT INTO users (email, password, name, username, referred_by, created_at, updated_at)
                VALUES (%s, %s, %s, %s, %s, NOW(), NOW())
                RETURNING *
            """, (
                data.email,
                hash_password(data.password),
                data.name,
                data.username,
                referrer["id"] if referrer else None,
            ))
        except psycopg2.IntegrityError:
            raise HTTPException(status_code=400, detail="User already exists with this email or username")

        user = cur.fetchone()
        user["referral_code"] = assign_referral_code(cur, user["id"])

        if referrer:
            _reward_referrer(cur, referrer, user)

    logger.info(f"New user registered: {user['username']} (id {user['id']})")
    return success({"user": serialize_user(user), "token": create_token(user["id"])})


@router.post("/login")
def login(data: LoginRequest):
    with get_cursor() as cur:
        cur.execute("SELECT * FROM users WHERE email = %s", (data.email,))
        user = cur.fetchone()

    if not user or not verify_password(data.password, user["password"]):
        raise HTTPException(status_code=401, detail="Invalid email or password")
    if not user["is_active"]:
        raise HTTPException(status_code=403, detail="Your account has been blocked")

    return success({"user": serialize_user(user), "token": create_token(user["id"])})


@router.get("/me")
def get_me(user: dict = Depends(get_current_user)):
    with get_cursor() as cur:
        cur.execute(USER_WITH_FOLLOW_COUNTS, (user["id"],))
        row = cur.fetchone()

    return success(serialize_user(row))


@router.get("/user/{user_id}")
def get_user_profile(user_id: int, user: dict = Depends(get_current_user)):
    with get_cursor() as cur:
        cur.execute(USER_WITH_FOLLOW_COUNTS, (user_id,))
        row = cur.fetchone()

    if not row:
        raise HTTPException(status_code=404, detail="User not found")

    return success(serialize_user(row, include_email=False))


@router.put("/instagram-id")
def update_instagram_id(data: InstagramIdRequest, user: dict = Depends(get_current_user)):
    with get_cursor() as cur:
        cur.execute("""
            UPDATE users SET instagram_id = %s, updated_at = NOW()
            WHERE id = %s
            RETURNING *
        """, (data.instagram_id, user["id"]))
        row = cur.fetchone()

    return success(serialize_user(row))


@router.put("/profile")
async def update_profile(
    name: Optional[str] = Form(None),
    email: Optional[str] = Form(None),
    username: Optional[str] = Form(None),
    avatar: Optional[UploadFile] = File(None),
    user: dict = Depends(get_current_user),
):
    updates = {}
    if name and name.strip():
        updates["name"] = name.strip()
    if email:
        try:
            updates["email"] = normalize_email(email)
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))
    if username and username.strip():
        updates["username"] = username.strip().lower()

    with get_cursor() as cur:
        if "email" in updates and updates["email"] != user["email"]:
            cur.execute("SELECT id FROM users WHERE email = %s AND id <> %s", (updates["email"], user["id"]))
            if cur.fetchone():
                raise HTTPException(status_code=400, detail="Email already in use")
        if "username" in updates and updates["username"] != user["username"]:
            cur.execute("SELECT id FROM users WHERE username = %s AND id <> %s", (updates["username"], user["id"]))
            if cur.fetchone():
                raise HTTPException(status_code=400, detail="Username already in use")

    if avatar is not None and avatar.filename:
        updates["avatar"] = await save_upload(avatar, field="avatar", only="image")

    if not updates:
        return success(serialize_user(user), "Profile updated successfully")

    set_clause = ", ".join(f"{column} = %s" for column in updates)
    with get_cursor() as cur:
        try:
            cur.execute(
                f"UPDATE users SET {set_clause}, updated_at = NOW() WHERE id = %s RETURNING *",
                (*updates.values(), user["id"]),
            )
        except psycopg2.IntegrityError:
            raise HTTPException(status_code=400, detail="Email or username already in use")
        row = cur.fetchone()

    if "avatar" in updates and user.get("avatar"):
        delete_upload(user["avatar"])

    return success(serialize_user(row), "Profile updated successfully")


@router.put("/change-password")
def change_password(data: ChangePasswordRequest, user: dict = Depends(get_current_user)):
    if not data.old_password or not data.new_password:
        raise HTTPException(status_code=400, detail="Old password and new password are required")
    if len(data.new_password) < 6:
        raise HTTPException(status_code=400, detail="New password must be at least 6 characters")
    if not verify_password(data.old_password, user["password"]):
        raise HTTPException(status_code=400, detail="Current password is incorrect")

    with get_cursor() as cur:
        cur.execute(
            "UPDATE users SET password = %s, updated_at = NOW() WHERE id = %s",
            (hash_password(data.new_password), user["id"]),
        )

    logger.info(f"User {user['id']} changed password")
    return success(message="Password changed successfully")


@router.post("/logout")
def logout(user: dict = Depends(get_current_user)):
    # Tokens are stateless; the client discards its copy
    return success(message="Logged out successfully")
