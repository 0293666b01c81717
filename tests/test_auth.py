from datetime import datetime, timedelta, timezone

import jwt
import pytest
from fastapi import HTTPException

from earntask import config
from earntask.auth import (
    create_token,
    decode_token,
    hash_password,
    is_approved_creator,
    verify_password,
)


def test_password_hash_round_trip():
    hashed = hash_password("secret123")
    assert hashed != "secret123"
    assert verify_password("secret123", hashed)
    assert not verify_password("wrong", hashed)


def test_token_carries_user_id():
    payload = decode_token(create_token(42))
    assert payload["userId"] == 42


def test_token_expiry_defaults_to_seven_days():
    payload = decode_token(create_token(1))
    expires = datetime.fromtimestamp(payload["exp"], tz=timezone.utc)
    remaining = expires - datetime.now(timezone.utc)
    assert timedelta(days=6, hours=23) < remaining <= timedelta(days=7)


def test_expired_token():
    token = jwt.encode(
        {"userId": 1, "exp": datetime.now(timezone.utc) - timedelta(seconds=5)},
        config.JWT_SECRET,
        algorithm=config.JWT_ALGORITHM,
    )
    with pytest.raises(HTTPException) as exc:
        decode_token(token)
    assert exc.value.status_code == 401
    assert exc.value.detail == "Token expired, please log in again"


def test_token_signed_with_other_secret():
    token = jwt.encode({"userId": 1}, "some-other-secret", algorithm="HS256")
    with pytest.raises(HTTPException) as exc:
        decode_token(token)
    assert exc.value.detail == "Not authorized, invalid token"


def test_is_approved_creator():
    assert is_approved_creator({"is_creator": True, "creator_status": "approved"})
    assert not is_approved_creator({"is_creator": True, "creator_status": "pending"})
    assert not is_approved_creator({"is_creator": False, "creator_status": None})


class TestBearerDependency:
    def test_missing_token(self, client):
        response = client.get("/api/auth/me")
        assert response.status_code == 401
        assert response.json() == {"success": False, "error": "Not authorized, no token"}

    def test_wrong_scheme(self, client):
        response = client.get("/api/auth/me", headers={"Authorization": "Basic abc"})
        assert response.status_code == 401

    def test_garbage_token(self, client):
        response = client.get("/api/auth/me", headers={"Authorization": "Bearer not.a.jwt"})
        assert response.status_code == 401
        assert response.json()["error"] == "Not authorized, invalid token"

    def test_unknown_user(self, client, db):
        db.queue(None)
        response = client.get("/api/auth/me", headers={"Authorization": f"Bearer {create_token(99)}"})
        assert response.status_code == 401
        assert response.json()["error"] == "Not authorized, user not found"

    def test_blocked_user(self, client, db, make_user):
        db.queue(make_user(is_active=False))
        response = client.get("/api/auth/me", headers={"Authorization": f"Bearer {create_token(1)}"})
        assert response.status_code == 403
        assert response.json()["error"] == "Your account has been blocked"

    def test_valid_token(self, client, db, make_user):
        user = make_user(coins=120)
        db.queue(user, {**user, "followers_count": 3, "following_count": 4})
        response = client.get("/api/auth/me", headers={"Authorization": f"Bearer {create_token(1)}"})
        assert response.status_code == 200
        data = response.json()["data"]
        assert data["coins"] == 120
        assert data["followersCount"] == 3
        assert data["followingCount"] == 4
        assert "password" not in data
