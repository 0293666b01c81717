"""Coin movements. Every balance change goes through here inside the caller's transaction."""

import logging

from fastapi import HTTPException

from .coins import DEFAULT_WITHDRAWAL_AMOUNTS, MIN_WITHDRAWAL_AMOUNT
from .models import ReviewStatus, TransactionType
from .rules import remaining_budget, task_exhausted, task_reward

logger = logging.getLogger(__name__)


def log_transaction(cur, user_id, tx_type, amount, description, task_id=None, withdrawal_id=None):
    cur.execute("""
        INSERT INTO transactions (user_id, type, amount, description, task_id, withdrawal_id, created_at)
        VALUES (%s, %s, %s, %s, %s, %s, NOW())
        RETURNING *
    """, (user_id, tx_type, amount, description, task_id, withdrawal_id))
    return cur.fetchone()


def credit_coins(cur, user_id, amount, tx_type, description, task_id=None):
    """Add earned coins to a user's balance and lifetime total, and log it."""
    cur.execute("""
        UPDATE users
        SET coins = coins + %s,
            total_earned = total_earned + %s,
            updated_at = NOW()
        WHERE id = %s
        RETURNING coins
    """, (amount, amount, user_id))
    row = cur.fetchone()
    if not row:
        raise HTTPException(status_code=404, detail="User not found")

    log_transaction(cur, user_id, tx_type, amount, description, task_id=task_id)
    logger.info(f"Credited {amount} coins ({tx_type}) to user {user_id}, balance {row['coins']}")
    return row["coins"]


def hold_withdrawal_coins(cur, user_id, amount):
    """Take ``amount`` out of the balance only if it is covered. Returns the new balance or None."""
    cur.execute("""
        UPDATE users
        SET coins = coins - %s,
            total_withdrawn = total_withdrawn + %s,
            updated_at = NOW()
        WHERE id = %s AND coins >= %s
        RETURNING coins
    """, (amount, amount, user_id, amount))
    row = cur.fetchone()
    return row["coins"] if row else None


def refund_withdrawal_coins(cur, user_id, amount):
    cur.execute("""
        UPDATE users
        SET coins = coins + %s,
            total_withdrawn = GREATEST(total_withdrawn - %s, 0),
            updated_at = NOW()
        WHERE id = %s
        RETURNING coins
    """, (amount, amount, user_id))
    row = cur.fetchone()
    logger.info(f"Refunded {amount} withdrawn coins to user {user_id}")
    return row["coins"] if row else None


def debit_creator_wallet(cur, user_id, amount):
    """Reserve ``amount`` from the creator wallet if covered. Returns the new wallet or None."""
    cur.execute("""
        UPDATE users
        SET creator_wallet = creator_wallet - %s,
            updated_at = NOW()
        WHERE id = %s AND creator_wallet >= %s
        RETURNING creator_wallet
    """, (amount, user_id, amount))
    row = cur.fetchone()
    if row:
        logger.info(f"Debited {amount} coins from creator wallet of user {user_id}")
    return row["creator_wallet"] if row else None


def credit_creator_wallet(cur, user_id, amount):
    cur.execute("""
        UPDATE users
        SET creator_wallet = creator_wallet + %s,
            updated_at = NOW()
        WHERE id = %s
        RETURNING creator_wallet
    """, (amount, user_id))
    row = cur.fetchone()
    logger.info(f"Credited {amount} coins to creator wallet of user {user_id}")
    return row["creator_wallet"] if row else None


def record_completion(cur, task_id, user_id):
    """Mark the task done for the user. Returns False if it already was."""
    cur.execute("""
        INSERT INTO task_completions (task_id, user_id, completed_at)
        VALUES (%s, %s, NOW())
        ON CONFLICT (task_id, user_id) DO NOTHING
        RETURNING id
    """, (task_id, user_id))
    return cur.fetchone() is not None


def get_withdrawal_settings(cur):
    """Singleton settings row, created with defaults on first use."""
    cur.execute("""
        INSERT INTO withdrawal_settings (id, minimum_withdrawal_amount, withdrawal_amounts)
        VALUES (1, %s, %s)
        ON CONFLICT (id) DO NOTHING
    """, (MIN_WITHDRAWAL_AMOUNT, DEFAULT_WITHDRAWAL_AMOUNTS))
    cur.execute("SELECT * FROM withdrawal_settings WHERE id = 1")
    return cur.fetchone()


def consume_task_budget(cur, task_id, reward):
    """Charge one reward against a creator task and close it when spent."""
    cur.execute("""
        UPDATE tasks
        SET coins_used = coins_used + %s, updated_at = NOW()
        WHERE id = %s
        RETURNING coins_used, total_budget, max_users,
                  (SELECT COUNT(*) FROM task_completions WHERE task_id = tasks.id) AS completions
    """, (reward, task_id))
    task = cur.fetchone()
    if task_exhausted(task["coins_used"], task["total_budget"], task["completions"], task["max_users"], reward):
        cur.execute("UPDATE tasks SET is_active = FALSE WHERE id = %s", (task_id,))
        logger.info(f"Creator task {task_id} exhausted and deactivated")


def approve_submission(cur, submission_id, reviewer_id, creator_id=None):
    """Approve a proof submission and pay its reward.

    With ``creator_id`` set the submission must belong to one of that
    creator's tasks. Creator tasks are paid from their reserved budget and
    are deactivated once the budget or the user limit is used up.
    Returns the number of coins credited.
    """
    cur.execute("""
        SELECT ts.id, ts.status, ts.user_id, t.id AS task_id, t.title, t.coins,
               t.is_active, t.is_creator_task, t.created_by, t.reward_per_user,
               t.max_users, t.total_budget, t.coins_used
        FROM task_submissions ts
        JOIN tasks t ON t.id = ts.task_id
        WHERE ts.id = %s
        FOR UPDATE OF ts, t
    """, (submission_id,))
    row = cur.fetchone()
    if not row:
        raise HTTPException(status_code=404, detail="Submission not found")

    if creator_id is not None and (not row["is_creator_task"] or row["created_by"] != creator_id):
        raise HTTPException(status_code=403, detail="You do not have permission to approve this submission")

    if row["status"] == ReviewStatus.APPROVED.value:
        raise HTTPException(status_code=400, detail="Submission already approved")

    reward = task_reward(row)

    if row["is_creator_task"]:
        if not row["is_active"]:
            raise HTTPException(status_code=400, detail="This task is no longer active. Budget has been exhausted.")
        if remaining_budget(row) < reward:
            raise HTTPException(status_code=400, detail="Insufficient budget to approve this submission")

    cur.execute("""
        UPDATE task_submissions
        SET status = 'approved', reviewed_by = %s, reviewed_at = NOW(), updated_at = NOW()
        WHERE id = %s
    """, (reviewer_id, submission_id))

    if record_completion(cur, row["task_id"], row["user_id"]) and row["is_creator_task"]:
        consume_task_budget(cur, row["task_id"], reward)

    credit_coins(cur, row["user_id"], reward, TransactionType.EARNED.value,
                 f"Completed task: {row['title']}", task_id=row["task_id"])
    return reward


def reject_submission(cur, submission_id, reviewer_id, reason=None, creator_id=None):
    cur.execute("""
        SELECT ts.id, ts.status, t.is_creator_task, t.created_by
        FROM task_submissions ts
        JOIN tasks t ON t.id = ts.task_id
        WHERE ts.id = %s
    """, (submission_id,))
    row = cur.fetchone()
    if not row:
        raise HTTPException(status_code=404, detail="Submission not found")

    if creator_id is not None and (not row["is_creator_task"] or row["created_by"] != creator_id):
        raise HTTPException(status_code=403, detail="You do not have permission to reject this submission")

    if row["status"] == ReviewStatus.APPROVED.value:
        raise HTTPException(status_code=400, detail="Cannot reject an approved submission")

    cur.execute("""
        UPDATE task_submissions
        SET status = 'rejected', rejection_reason = %s, reviewed_by = %s,
            reviewed_at = NOW(), updated_at = NOW()
        WHERE id = %s
    """, (reason or "Proof verification failed", reviewer_id, submission_id))
