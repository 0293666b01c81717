import logging
from datetime import datetime, timedelta, timezone

import jwt
from fastapi import Depends, HTTPException, Request
from passlib.context import CryptContext

from . import config
from .database import get_cursor
from .models import Role

logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def hash_password(password):
    return pwd_context.hash(password)


def verify_password(password, hashed):
    return pwd_context.verify(password, hashed)


def create_token(user_id, expires_days=None):
    expire = datetime.now(timezone.utc) + timedelta(days=expires_days or config.JWT_EXPIRE_DAYS)
    payload = {"userId": user_id, "exp": expire}
    return jwt.encode(payload, config.JWT_SECRET, algorithm=config.JWT_ALGORITHM)


def decode_token(token):
    try:
        return jwt.decode(token, config.JWT_SECRET, algorithms=[config.JWT_ALGORITHM])
    except jwt.ExpiredSignatureError:
        logger.warning("Expired JWT token received")
        raise HTTPException(status_code=401, detail="Token expired, please log in again")
    except jwt.InvalidTokenError:
        logger.warning("Invalid JWT token received")
        raise HTTPException(status_code=401, detail="Not authorized, invalid token")


def bearer_token(request: Request):
    header = request.headers.get("Authorization", "")
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token:
        raise HTTPException(status_code=401, detail="Not authorized, no token")
    return token


def get_current_user(token: str = Depends(bearer_token)):
    payload = decode_token(token)
    user_id = payload.get("userId")
    if user_id is None:
        raise HTTPException(status_code=401, detail="Not authorized, invalid token")

    with get_cursor() as cur:
        cur.execute("SELECT * FROM users WHERE id = %s", (user_id,))
        user = cur.fetchone()

    if not user:
        raise HTTPException(status_code=401, detail="Not authorized, user not found")
    if not user["is_active"]:
        raise HTTPException(status_code=403, detail="Your account has been blocked")

    return user


def require_admin(user: dict = Depends(get_current_user)):
    if user["role"] != Role.ADMIN.value:
        logger.warning(f"User {user['id']} ({user['username']}) attempted admin access")
        raise HTTPException(status_code=403, detail="Access denied. Admin privileges required.")
    return user


def is_approved_creator(user):
    return bool(user.get("is_creator")) and user.get("creator_status") == "approved"


def require_creator(user: dict = Depends(get_current_user)):
    if not is_approved_creator(user):
        raise HTTPException(status_code=403, detail="You are not an approved creator")
    return user
