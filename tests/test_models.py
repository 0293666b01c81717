from decimal import Decimal

import pytest
from pydantic import ValidationError

from earntask.models import (
    SignupRequest,
    WithdrawalSettingsUpdate,
    serialize_coin_request,
    serialize_creator_task,
    serialize_submission,
    serialize_user,
)

from .conftest import NOW


def test_signup_normalizes_identity():
    data = SignupRequest(email=" Jane@Example.COM ", password="secret1", name=" Jane ", username=" JaneDoe ")
    assert data.email == "jane@example.com"
    assert data.name == "Jane"
    assert data.username == "janedoe"


def test_signup_accepts_camel_case():
    data = SignupRequest.model_validate({
        "email": "a@example.com", "password": "secret1", "name": "A", "username": "a",
        "referralCode": "ABC",
    })
    assert data.referral_code == "ABC"


def test_blank_name_is_rejected():
    with pytest.raises(ValidationError, match="Name is required"):
        SignupRequest(email="a@example.com", password="secret1", name="  ", username="a")


@pytest.mark.parametrize("amounts", [[], [100, -5]])
def test_withdrawal_amounts_must_be_positive(amounts):
    with pytest.raises(ValidationError):
        WithdrawalSettingsUpdate(withdrawal_amounts=amounts)


def test_user_without_email(make_user):
    data = serialize_user(make_user(), include_email=False)
    assert "email" not in data
    assert "password" not in data
    assert "followersCount" not in data


def test_creator_task_coins_follow_reward(make_task):
    data = serialize_creator_task(make_task(coins=0, reward_per_user=25, max_users=4, total_budget=100, coins_used=None))
    assert data["coins"] == 25
    assert data["coinsUsed"] == 0


def test_coin_request_amount_is_a_number():
    data = serialize_coin_request({
        "id": 1, "coins": 2000, "amount": Decimal("20.00"), "payment_proof": "/uploads/p.png",
        "status": "pending", "rejection_reason": None, "reviewer_id": None, "reviewed_at": None,
        "created_at": NOW, "creator_id": 9, "creator_name": "C", "creator_username": "c",
        "creator_email": "c@example.com", "creator_creator_wallet": 0,
    })
    assert data["amount"] == 20.0
    assert isinstance(data["amount"], float)
    assert data["reviewedBy"] is None
    assert data["creator"] == {"id": 9, "name": "C", "username": "c", "email": "c@example.com", "creatorWallet": 0}


def test_submission_with_reviewer():
    data = serialize_submission({
        "id": 5, "task_id": 20, "task_type": "youtube_subscribe", "task_title": "Sub",
        "task_description": "Subscribe", "task_coins": 100, "task_reward_per_user": None,
        "task_instagram_url": None, "task_youtube_url": "https://youtube.com/@x",
        "user_id": 3, "user_name": "U", "user_username": "u", "user_email": "u@example.com",
        "user_coins": 40, "proof_image": "/uploads/proof.png", "status": "approved",
        "rejection_reason": None, "reviewer_id": 99, "reviewer_name": "Admin",
        "reviewer_username": "admin", "reviewed_at": NOW, "created_at": NOW,
    })
    assert data["task"]["coins"] == 100
    assert data["user"]["coins"] == 40
    assert data["reviewedBy"] == {"id": 99, "name": "Admin", "username": "admin"}
