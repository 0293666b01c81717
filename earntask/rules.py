"""Business rules that need no database: validation and state transitions."""

from .coins import CREATOR_MAX_COIN_REQUEST, CREATOR_MIN_COIN_REQUEST, VIDEO_WATCH_PERCENTAGE
from .models import TaskType, WithdrawalStatus

VALID_TASK_TYPES = [t.value for t in TaskType]

# Allowed withdrawal status changes. Rejection gives the held coins back.
WITHDRAWAL_TRANSITIONS = {
    WithdrawalStatus.PENDING.value: {
        WithdrawalStatus.APPROVED.value,
        WithdrawalStatus.COMPLETED.value,
        WithdrawalStatus.REJECTED.value,
    },
    WithdrawalStatus.APPROVED.value: {
        WithdrawalStatus.COMPLETED.value,
        WithdrawalStatus.REJECTED.value,
    },
    WithdrawalStatus.REJECTED.value: set(),
    WithdrawalStatus.COMPLETED.value: set(),
}


class RuleError(ValueError):
    """A request broke a business rule; the message is shown to the user."""


def task_url_error(task_type, video_url=None, instagram_url=None, youtube_url=None):
    if task_type not in VALID_TASK_TYPES:
        return "Invalid task type"
    if task_type == TaskType.WATCH_VIDEO.value and not video_url:
        return "Video URL is required for watch_video tasks"
    if task_type in (TaskType.INSTAGRAM_FOLLOW.value, TaskType.INSTAGRAM_LIKE.value) and not instagram_url:
        return "Instagram URL is required for Instagram tasks"
    if task_type == TaskType.YOUTUBE_SUBSCRIBE.value and not youtube_url:
        return "YouTube URL is required for YouTube subscribe tasks"
    return None


def check_video_watched(watch_duration, video_duration):
    """Raise unless enough of the video was watched.

    Tasks without a known duration are not checked.
    """
    if not video_duration:
        return
    percentage = ((watch_duration or 0) / video_duration) * 100
    if percentage < VIDEO_WATCH_PERCENTAGE:
        raise RuleError(f"You need to watch at least {VIDEO_WATCH_PERCENTAGE}% of the video")


def check_withdrawal_amount(amount, balance, minimum):
    if amount < minimum:
        raise RuleError(f"Minimum withdrawal amount is {minimum} coins")
    if balance < amount:
        raise RuleError("Insufficient balance")


def withdrawal_transition(current, new):
    """Validate a status change and return True when coins must be refunded."""
    if new not in WITHDRAWAL_TRANSITIONS:
        raise RuleError("Invalid status. Must be: pending, approved, rejected, or completed")
    if new == current:
        raise RuleError(f"Withdrawal is already {current}")
    if new not in WITHDRAWAL_TRANSITIONS[current]:
        raise RuleError(f"Cannot change withdrawal from {current} to {new}")
    return new == WithdrawalStatus.REJECTED.value


def creator_budget(reward_per_user, max_users):
    """Total coins a creator task reserves: reward per user times max users."""
    try:
        reward = int(reward_per_user)
    except (TypeError, ValueError):
        reward = 0
    if reward <= 0:
        raise RuleError("Reward per user must be a positive number")

    try:
        users = int(max_users)
    except (TypeError, ValueError):
        users = 0
    if users <= 0:
        raise RuleError("Max users must be a positive number")

    return reward, users, reward * users


def check_coin_request(coins):
    if not coins or coins < CREATOR_MIN_COIN_REQUEST:
        raise RuleError(f"Minimum {CREATOR_MIN_COIN_REQUEST} coins required")
    if coins > CREATOR_MAX_COIN_REQUEST:
        raise RuleError(f"Maximum {CREATOR_MAX_COIN_REQUEST} coins allowed")


def task_reward(task):
    """Coins one completion pays: the creator's reward per user, else the task's coins."""
    return task.get("reward_per_user") or task["coins"]


def remaining_budget(task):
    return (task.get("total_budget") or 0) - (task.get("coins_used") or 0)


def task_exhausted(coins_used, total_budget, completions, max_users, reward=None):
    """A creator task stops accepting work once its budget cannot cover another reward or its seats run out."""
    if total_budget is not None:
        if coins_used >= total_budget:
            return True
        if reward and total_budget - coins_used < reward:
            return True
    if max_users is not None and completions >= max_users:
        return True
    return False
