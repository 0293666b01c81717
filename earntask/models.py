from decimal import Decimal
from enum import Enum
from typing import Any, List, Optional

from email_validator import EmailNotValidError, validate_email
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class TaskType(str, Enum):
    WATCH_VIDEO = "watch_video"
    INSTAGRAM_FOLLOW = "instagram_follow"
    INSTAGRAM_LIKE = "instagram_like"
    YOUTUBE_SUBSCRIBE = "youtube_subscribe"
    UPLOAD_POST = "upload_post"


# Task types that are rewarded only after a reviewer accepts a screenshot
PROOF_TASK_TYPES = (
    TaskType.INSTAGRAM_FOLLOW.value,
    TaskType.INSTAGRAM_LIKE.value,
    TaskType.YOUTUBE_SUBSCRIBE.value,
)


class ReviewStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class WithdrawalStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    COMPLETED = "completed"


class PaymentMethod(str, Enum):
    UPI = "UPI"
    BANK_TRANSFER = "Bank Transfer"
    PAYTM = "Paytm"
    PHONEPE = "PhonePe"


class TransactionType(str, Enum):
    EARNED = "earned"
    WITHDRAWN = "withdrawn"
    BONUS = "bonus"
    REFERRAL = "referral"


class Role(str, Enum):
    USER = "user"
    ADMIN = "admin"
    CREATOR = "creator"


class CoinKey(str, Enum):
    WATCH_VIDEO = "WATCH_VIDEO"
    INSTAGRAM_FOLLOW = "INSTAGRAM_FOLLOW"
    INSTAGRAM_LIKE = "INSTAGRAM_LIKE"
    YOUTUBE_SUBSCRIBE = "YOUTUBE_SUBSCRIBE"
    REFERRAL_BONUS = "REFERRAL_BONUS"
    POST_UPLOAD = "POST_UPLOAD"
    DAILY_LOGIN = "DAILY_LOGIN"
    POST_LIKE = "POST_LIKE"


class CamelModel(BaseModel):
    """Request body that accepts the camelCase keys the mobile client sends."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def normalize_email(value: str) -> str:
    try:
        return validate_email(value.strip(), check_deliverability=False).normalized.lower()
    except EmailNotValidError:
        raise ValueError("Please provide a valid email")


# Auth

class SignupRequest(CamelModel):
    email: str
    password: str
    name: str
    username: str
    referral_code: Optional[str] = None

    @field_validator("email")
    @classmethod
    def valid_email(cls, v):
        return normalize_email(v)

    @field_validator("password")
    @classmethod
    def password_length(cls, v):
        if len(v) < 6:
            raise ValueError("Password must be at least 6 characters")
        return v

    @field_validator("name")
    @classmethod
    def name_required(cls, v):
        if not v.strip():
            raise ValueError("Name is required")
        return v.strip()

    @field_validator("username")
    @classmethod
    def username_required(cls, v):
        if not v.strip():
            raise ValueError("Username is required")
        return v.strip().lower()


class LoginRequest(CamelModel):
    email: str
    password: str

    @field_validator("email")
    @classmethod
    def valid_email(cls, v):
        return normalize_email(v)

    @field_validator("password")
    @classmethod
    def password_required(cls, v):
        if not v:
            raise ValueError("Password is required")
        return v


class InstagramIdRequest(CamelModel):
    instagram_id: Optional[str] = None


class ChangePasswordRequest(CamelModel):
    old_password: Optional[str] = None
    new_password: Optional[str] = None


# Tasks

class CompleteTaskRequest(CamelModel):
    watch_duration: Optional[float] = None


class TaskCreate(CamelModel):
    type: Optional[TaskType] = None
    title: Optional[str] = None
    description: Optional[str] = None
    coins: Optional[int] = Field(default=None, ge=0)
    video_url: Optional[str] = None
    video_duration: Optional[int] = None
    instagram_url: Optional[str] = None
    youtube_url: Optional[str] = None
    thumbnail: Optional[str] = None
    is_active: Optional[bool] = None


class TaskUpdate(TaskCreate):
    pass


class CreatorTaskCreate(CamelModel):
    type: Optional[TaskType] = None
    title: Optional[str] = None
    description: Optional[str] = None
    reward_per_user: Optional[int] = None
    max_users: Optional[int] = None
    video_url: Optional[str] = None
    video_duration: Optional[int] = None
    instagram_url: Optional[str] = None
    youtube_url: Optional[str] = None
    thumbnail: Optional[str] = None


class CreatorTaskUpdate(CreatorTaskCreate):
    pass


class RejectRequest(CamelModel):
    rejection_reason: Optional[str] = None


# Wallet

class WithdrawalRequest(CamelModel):
    amount: Optional[int] = None
    payment_method: Optional[PaymentMethod] = None
    account_details: Optional[str] = None


class PaymentStatusUpdate(CamelModel):
    status: str
    rejection_reason: Optional[str] = None


class WithdrawalSettingsUpdate(CamelModel):
    minimum_withdrawal_amount: Optional[int] = Field(default=None, ge=0)
    withdrawal_amounts: Optional[List[int]] = None

    @field_validator("withdrawal_amounts")
    @classmethod
    def positive_amounts(cls, v):
        if v is not None and (not v or any(amount <= 0 for amount in v)):
            raise ValueError("Withdrawal amounts must be a non-empty array of positive numbers")
        return v


# Admin

class BlockUserRequest(CamelModel):
    is_active: Any = None


class CoinValueUpdate(CamelModel):
    value: int = Field(ge=0)


class CoinConfigItem(CamelModel):
    key: CoinKey
    value: int = Field(ge=0)


class CoinConfigsUpdate(CamelModel):
    configs: List[CoinConfigItem]


# Creator

class CreatorRegisterRequest(CamelModel):
    youtube_url: Optional[str] = None
    instagram_url: Optional[str] = None


# Feed

class CommentRequest(CamelModel):
    text: Optional[str] = None


class PostUpdate(CamelModel):
    caption: Optional[str] = None


# Row serializers

def _number(value):
    if isinstance(value, Decimal):
        return float(value)
    return value


def serialize_user(row, include_email=True):
    user = {
        "id": row["id"],
        "name": row["name"],
        "username": row["username"],
        "avatar": row.get("avatar"),
        "coins": row["coins"],
        "totalEarned": row["total_earned"],
        "totalWithdrawn": row["total_withdrawn"],
        "referralCode": row.get("referral_code"),
        "instagramId": row.get("instagram_id"),
        "role": row.get("role") or Role.USER.value,
        "isActive": row["is_active"] if row.get("is_active") is not None else True,
        "isCreator": row.get("is_creator", False),
        "creatorStatus": row.get("creator_status"),
        "creatorWallet": row.get("creator_wallet", 0),
        "createdAt": row.get("created_at"),
    }
    if include_email:
        user["email"] = row["email"]
    if "followers_count" in row:
        user["followersCount"] = row["followers_count"]
        user["followingCount"] = row["following_count"]
    return user


def serialize_user_brief(row, prefix=""):
    """Nested {id, name, username, email} from columns like ``user_name``."""
    return {
        "id": row[f"{prefix}id"],
        "name": row.get(f"{prefix}name"),
        "username": row.get(f"{prefix}username"),
        "email": row.get(f"{prefix}email"),
    }


def serialize_task(row):
    return {
        "id": row["id"],
        "type": row["type"],
        "title": row["title"],
        "description": row["description"],
        "coins": row["coins"],
        "videoUrl": row.get("video_url"),
        "videoDuration": row.get("video_duration"),
        "instagramUrl": row.get("instagram_url"),
        "youtubeUrl": row.get("youtube_url"),
        "thumbnail": row.get("thumbnail"),
        "isActive": row.get("is_active"),
        "createdAt": row.get("created_at"),
        "updatedAt": row.get("updated_at"),
    }


def serialize_creator_task(row):
    task = serialize_task(row)
    task.update({
        "coins": row.get("reward_per_user") or row["coins"] or 0,
        "rewardPerUser": row.get("reward_per_user"),
        "maxUsers": row.get("max_users"),
        "totalBudget": row.get("total_budget"),
        "coinsUsed": row.get("coins_used") or 0,
    })
    return task


def serialize_transaction(row):
    return {
        "id": row["id"],
        "type": row["type"],
        "amount": row["amount"],
        "description": row["description"],
        "createdAt": row["created_at"],
    }


def serialize_withdrawal(row):
    withdrawal = {
        "id": row["id"],
        "amount": row["amount"],
        "status": row["status"],
        "paymentMethod": row["payment_method"],
        "accountDetails": row["account_details"],
        "requestedAt": row["created_at"],
        "processedAt": row.get("processed_at"),
        "rejectionReason": row.get("rejection_reason"),
    }
    if "user_name" in row:
        withdrawal["user"] = serialize_user_brief(row, prefix="user_")
    return withdrawal


def serialize_coin_request(row):
    request = {
        "id": row["id"],
        "coins": row["coins"],
        "amount": _number(row["amount"]),
        "paymentProof": row["payment_proof"],
        "status": row["status"],
        "rejectionReason": row.get("rejection_reason"),
        "reviewedBy": None,
        "reviewedAt": row.get("reviewed_at"),
        "requestedAt": row["created_at"],
    }
    if row.get("reviewer_id"):
        request["reviewedBy"] = {
            "id": row["reviewer_id"],
            "name": row.get("reviewer_name"),
            "username": row.get("reviewer_username"),
        }
    if "creator_name" in row:
        request["creator"] = serialize_user_brief(row, prefix="creator_")
        request["creator"]["creatorWallet"] = row.get("creator_creator_wallet")
    return request


def serialize_submission(row):
    submission = {
        "id": row["id"],
        "task": {
            "id": row["task_id"],
            "type": row.get("task_type"),
            "title": row.get("task_title"),
            "description": row.get("task_description"),
            "coins": row.get("task_reward_per_user") or row.get("task_coins") or 0,
            "instagramUrl": row.get("task_instagram_url"),
            "youtubeUrl": row.get("task_youtube_url"),
        },
        "user": serialize_user_brief(row, prefix="user_"),
        "proofImage": row["proof_image"],
        "status": row["status"],
        "rejectionReason": row.get("rejection_reason"),
        "reviewedBy": None,
        "reviewedAt": row.get("reviewed_at"),
        "submittedAt": row["created_at"],
    }
    if "user_coins" in row:
        submission["user"]["coins"] = row["user_coins"]
    if row.get("reviewer_id"):
        submission["reviewedBy"] = {
            "id": row["reviewer_id"],
            "name": row.get("reviewer_name"),
            "username": row.get("reviewer_username"),
        }
    return submission


def serialize_post(row):
    return {
        "id": row["id"],
        "userId": row["user_id"],
        "userName": row.get("user_name"),
        "userAvatar": row.get("user_avatar"),
        "imageUrl": row["image_url"],
        "caption": row["caption"],
        "likes": row.get("likes_count", 0),
        "comments": row.get("comments_count", 0),
        "isLiked": bool(row.get("is_liked", False)),
        "createdAt": row["created_at"],
    }


def serialize_comment(row):
    return {
        "id": row["id"],
        "user": {
            "id": row["user_id"],
            "name": row.get("user_name"),
            "username": row.get("user_username"),
        },
        "text": row["text"],
        "createdAt": row["created_at"],
    }


def serialize_coin_config(row):
    return {
        "id": row.get("id"),
        "key": row["key"],
        "value": row["value"],
        "label": row["label"],
        "description": row.get("description", ""),
        "updatedBy": row.get("updated_by"),
        "updatedAt": row.get("updated_at"),
        "createdAt": row.get("created_at"),
    }


def serialize_withdrawal_settings(row):
    return {
        "minimumWithdrawalAmount": row["minimum_withdrawal_amount"],
        "withdrawalAmounts": list(row["withdrawal_amounts"]),
        "updatedBy": row.get("updated_by"),
        "updatedAt": row.get("updated_at"),
    }


