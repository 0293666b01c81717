import csv
import io
import logging
import math
import time
from datetime import date, timedelta
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import Response

from ..auth import require_admin
from ..coins import COIN_LABELS, COIN_VALUES, clear_coin_cache
from ..database import get_cursor
from ..ledger import (
    approve_submission,
    credit_creator_wallet,
    get_withdrawal_settings,
    refund_withdrawal_coins,
    reject_submission,
)
from ..models import (
    BlockUserRequest,
    CoinConfigsUpdate,
    CoinKey,
    CoinValueUpdate,
    PaymentStatusUpdate,
    RejectRequest,
    Role,
    WithdrawalSettingsUpdate,
    WithdrawalStatus,
    serialize_coin_config,
    serialize_coin_request,
    serialize_submission,
    serialize_transaction,
    serialize_user,
    serialize_withdrawal,
    serialize_withdrawal_settings,
)
from ..queries import COIN_REQUEST_SELECT, SUBMISSION_SELECT, WITHDRAWAL_SELECT
from ..responses import success
from ..rules import withdrawal_transition

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/admin", tags=["admin"])

CSV_HEADER = [
    "ID", "User Name", "Email", "Username", "Amount", "Status",
    "Payment Method", "Account Details", "Created At", "Processed At",
]


def _pagination(page, limit, total):
    return {
        "page": page,
        "limit": limit,
        "total": total,
        "pages": math.ceil(total / limit) if limit else 0,
    }


def _page_args(page, limit):
    page = max(page, 1)
    limit = min(max(limit, 1), 100)
    return page, limit, (page - 1) * limit


def payments_csv(rows):
    """Render withdrawal rows (joined with their user) as a CSV export."""
    out = io.StringIO()
    writer = csv.writer(out, lineterminator="\n")
    writer.writerow(CSV_HEADER)
    for row in rows:
        processed = row.get("processed_at")
        writer.writerow([
            row["id"],
            row["user_name"],
            row["user_email"],
            row["user_username"],
            row["amount"],
            row["status"],
            row["payment_method"],
            row["account_details"],
            row["created_at"].isoformat(),
            processed.isoformat() if processed else "",
        ])
    return out.getvalue()


# Dashboard

@router.get("/dashboard")
def get_dashboard_stats(admin: dict = Depends(require_admin)):
    with get_cursor() as cur:
        cur.execute("""
            SELECT
                (SELECT COUNT(*) FROM users) AS total_users,
                (SELECT COUNT(*) FROM users WHERE is_active = TRUE) AS active_users,
                (SELECT COUNT(*) FROM users WHERE is_active = FALSE) AS blocked_users,
                (SELECT COUNT(*) FROM withdrawals) AS total_withdrawals,
                (SELECT COUNT(*) FROM withdrawals WHERE status = 'pending') AS pending_withdrawals,
                (SELECT COUNT(*) FROM withdrawals WHERE status = 'approved') AS approved_withdrawals,
                (SELECT COALESCE(SUM(amount), 0) FROM withdrawals) AS total_withdrawal_amount,
                (SELECT COUNT(*) FROM transactions) AS total_transactions,
                (SELECT COUNT(*) FROM tasks) AS total_tasks,
                (SELECT COUNT(*) FROM posts) AS total_posts
        """)
        counts = cur.fetchone()

        cur.execute("""
            SELECT status, COALESCE(SUM(amount), 0) AS total, COUNT(*) AS count
            FROM withdrawals
            GROUP BY status
        """)
        by_status = cur.fetchall()

        cur.execute(WITHDRAWAL_SELECT + " ORDER BY w.created_at DESC LIMIT 10")
        recent_withdrawals = cur.fetchall()

        cur.execute("SELECT * FROM users ORDER BY created_at DESC LIMIT 10")
        recent_users = cur.fetchall()

    return success({
        "stats": {
            "users": {
                "total": counts["total_users"],
                "active": counts["active_users"],
                "blocked": counts["blocked_users"],
            },
            "withdrawals": {
                "total": counts["total_withdrawals"],
                "pending": counts["pending_withdrawals"],
                "approved": counts["approved_withdrawals"],
                "totalAmount": counts["total_withdrawal_amount"],
                "byStatus": [
                    {"status": row["status"], "total": row["total"], "count": row["count"]}
                    for row in by_status
                ],
            },
            "transactions": counts["total_transactions"],
            "tasks": counts["total_tasks"],
            "posts": counts["total_posts"],
        },
        "recentWithdrawals": [serialize_withdrawal(row) for row in recent_withdrawals],
        "recentUsers": [serialize_user(row) for row in recent_users],
    })


# Payments

@router.get("/payments")
def get_all_payments(
    status: Optional[WithdrawalStatus] = None,
    page: int = 1,
    limit: int = 20,
    admin: dict = Depends(require_admin),
):
    page, limit, offset = _page_args(page, limit)
    where, params = "", []
    if status:
        where, params = " WHERE w.status = %s", [status.value]

    with get_cursor() as cur:
        cur.execute(
            WITHDRAWAL_SELECT + where + " ORDER BY w.created_at DESC LIMIT %s OFFSET %s",
            (*params, limit, offset),
        )
        rows = cur.fetchall()
        cur.execute("SELECT COUNT(*) AS total FROM withdrawals w" + where, params)
        total = cur.fetchone()["total"]

    return success({
        "withdrawals": [serialize_withdrawal(row) for row in rows],
        "pagination": _pagination(page, limit, total),
    })


@router.get("/payments/download")
def download_payments(
    status: Optional[WithdrawalStatus] = None,
    startDate: Optional[date] = None,
    endDate: Optional[date] = None,
    admin: dict = Depends(require_admin),
):
    conditions, params = [], []
    if status:
        conditions.append("w.status = %s")
        params.append(status.value)
    if startDate:
        conditions.append("w.created_at >= %s")
        params.append(startDate)
    if endDate:
        # End date is inclusive
        conditions.append("w.created_at < %s")
        params.append(endDate + timedelta(days=1))
    where = " WHERE " + " AND ".join(conditions) if conditions else ""

    with get_cursor() as cur:
        cur.execute(WITHDRAWAL_SELECT + where + " ORDER BY w.created_at DESC", params)
        rows = cur.fetchall()

    logger.info(f"Admin {admin['id']} exported {len(rows)} payments")
    return Response(
        content=payments_csv(rows),
        media_type="text/csv",
        headers={"Content-Disposition": f"attachment; filename=payments-{int(time.time() * 1000)}.csv"},
    )


@router.put("/payments/{withdrawal_id}/status")
def update_payment_status(
    withdrawal_id: int,
    data: PaymentStatusUpdate,
    admin: dict = Depends(require_admin),
):
    with get_cursor() as cur:
        cur.execute("SELECT * FROM withdrawals WHERE id = %s FOR UPDATE", (withdrawal_id,))
        withdrawal = cur.fetchone()
        if not withdrawal:
            raise HTTPException(status_code=404, detail="Withdrawal request not found")

        refund = withdrawal_transition(withdrawal["status"], data.status)
        if refund:
            # Coins were held when the withdrawal was requested
            refund_withdrawal_coins(cur, withdrawal["user_id"], withdrawal["amount"])

        processed = data.status in (WithdrawalStatus.APPROVED.value, WithdrawalStatus.COMPLETED.value)
        cur.execute("""
            UPDATE withdrawals
            SET status = %s,
                processed_at = CASE WHEN %s THEN NOW() ELSE processed_at END,
                rejection_reason = COALESCE(%s, rejection_reason),
                updated_at = NOW()
            WHERE id = %s
        """, (
            data.status,
            processed,
            data.rejection_reason if data.status == WithdrawalStatus.REJECTED.value else None,
            withdrawal_id,
        ))

        cur.execute(WITHDRAWAL_SELECT + " WHERE w.id = %s", (withdrawal_id,))
        row = cur.fetchone()

    logger.info(f"Admin {admin['id']} moved withdrawal {withdrawal_id} from {withdrawal['status']} to {data.status}")
    return success({"withdrawal": serialize_withdrawal(row)})


# Users

@router.get("/users")
def get_all_users(
    isActive: Optional[str] = None,
    search: Optional[str] = None,
    page: int = 1,
    limit: int = 20,
    admin: dict = Depends(require_admin),
):
    page, limit, offset = _page_args(page, limit)
    conditions, params = [], []
    if isActive is not None:
        conditions.append("is_active = %s")
        params.append(isActive == "true")
    if search:
        conditions.append("(name ILIKE %s OR email ILIKE %s OR username ILIKE %s)")
        params.extend([f"%{search}%"] * 3)
    where = " WHERE " + " AND ".join(conditions) if conditions else ""

    with get_cursor() as cur:
        cur.execute(
            "SELECT * FROM users" + where + " ORDER BY created_at DESC LIMIT %s OFFSET %s",
            (*params, limit, offset),
        )
        rows = cur.fetchall()
        cur.execute("SELECT COUNT(*) AS total FROM users" + where, params)
        total = cur.fetchone()["total"]

    return success({
        "users": [serialize_user(row) for row in rows],
        "pagination": _pagination(page, limit, total),
    })


@router.get("/users/{user_id}")
def get_user_details(user_id: int, admin: dict = Depends(require_admin)):
    with get_cursor() as cur:
        cur.execute("SELECT * FROM users WHERE id = %s", (user_id,))
        user = cur.fetchone()
        if not user:
            raise HTTPException(status_code=404, detail="User not found")

        cur.execute("SELECT * FROM withdrawals WHERE user_id = %s ORDER BY created_at DESC", (user_id,))
        withdrawals = cur.fetchall()
        cur.execute("""
            SELECT * FROM transactions WHERE user_id = %s
            ORDER BY created_at DESC LIMIT 50
        """, (user_id,))
        transactions = cur.fetchall()

    return success({
        "user": serialize_user(user),
        "withdrawals": [serialize_withdrawal(row) for row in withdrawals],
        "transactions": [serialize_transaction(row) for row in transactions],
    })


@router.put("/users/{user_id}/block")
def block_user(user_id: int, data: BlockUserRequest, admin: dict = Depends(require_admin)):
    if not isinstance(data.is_active, bool):
        raise HTTPException(status_code=400, detail="isActive must be a boolean")

    with get_cursor() as cur:
        cur.execute("""
            UPDATE users SET is_active = %s, updated_at = NOW()
            WHERE id = %s
            RETURNING *
        """, (data.is_active, user_id))
        user = cur.fetchone()

    if not user:
        raise HTTPException(status_code=404, detail="User not found")

    logger.info(f"Admin {admin['id']} set user {user_id} active={data.is_active}")
    return success({"user": serialize_user(user)})


@router.delete("/users/{user_id}")
def delete_user(user_id: int, admin: dict = Depends(require_admin)):
    with get_cursor() as cur:
        cur.execute("SELECT id, role FROM users WHERE id = %s", (user_id,))
        user = cur.fetchone()
        if not user:
            raise HTTPException(status_code=404, detail="User not found")
        if user["role"] == Role.ADMIN.value:
            raise HTTPException(status_code=403, detail="Cannot delete admin users")

        # Withdrawals, transactions and the rest of the user's rows cascade
        cur.execute("DELETE FROM users WHERE id = %s", (user_id,))

    logger.info(f"Admin {admin['id']} deleted user {user_id}")
    return success(message="User deleted successfully")


# Coin management

def _upsert_coin_config(cur, key, value, admin_id):
    cur.execute("""
        INSERT INTO coin_configs (key, value, label, updated_by, created_at, updated_at)
        VALUES (%s, %s, %s, %s, NOW(), NOW())
        ON CONFLICT (key) DO UPDATE
        SET value = EXCLUDED.value, updated_by = EXCLUDED.updated_by, updated_at = NOW()
        RETURNING *
    """, (key, value, COIN_LABELS[key], admin_id))
    return cur.fetchone()


@router.get("/coins")
def get_coin_configs(admin: dict = Depends(require_admin)):
    with get_cursor() as cur:
        cur.execute("SELECT * FROM coin_configs")
        stored = {row["key"]: row for row in cur.fetchall()}

    configs = []
    for key, default in COIN_VALUES.items():
        row = stored.get(key) or {"key": key, "value": default, "label": COIN_LABELS[key]}
        configs.append(serialize_coin_config(row))
    return success(configs)


@router.put("/coins/{key}")
def update_coin_config(key: CoinKey, data: CoinValueUpdate, admin: dict = Depends(require_admin)):
    with get_cursor() as cur:
        row = _upsert_coin_config(cur, key.value, data.value, admin["id"])

    clear_coin_cache()
    logger.info(f"Admin {admin['id']} set {key.value} to {data.value} coins")
    return success(serialize_coin_config(row))


@router.put("/coins")
def update_coin_configs(data: CoinConfigsUpdate, admin: dict = Depends(require_admin)):
    with get_cursor() as cur:
        rows = [_upsert_coin_config(cur, item.key.value, item.value, admin["id"]) for item in data.configs]

    clear_coin_cache()
    logger.info(f"Admin {admin['id']} updated {len(rows)} coin values")
    return success([serialize_coin_config(row) for row in rows])


# Withdrawal settings

@router.get("/withdrawal-settings")
def get_admin_withdrawal_settings(admin: dict = Depends(require_admin)):
    with get_cursor() as cur:
        settings = get_withdrawal_settings(cur)

    return success(serialize_withdrawal_settings(settings))


@router.put("/withdrawal-settings")
def update_withdrawal_settings(data: WithdrawalSettingsUpdate, admin: dict = Depends(require_admin)):
    with get_cursor() as cur:
        get_withdrawal_settings(cur)
        cur.execute("""
            UPDATE withdrawal_settings
            SET minimum_withdrawal_amount = COALESCE(%s, minimum_withdrawal_amount),
                withdrawal_amounts = COALESCE(%s, withdrawal_amounts),
                updated_by = %s,
                updated_at = NOW()
            WHERE id = 1
            RETURNING *
        """, (data.minimum_withdrawal_amount, data.withdrawal_amounts, admin["id"]))
        settings = cur.fetchone()

    logger.info(f"Admin {admin['id']} updated withdrawal settings")
    return success(serialize_withdrawal_settings(settings), "Withdrawal settings updated successfully")


# Task submissions

@router.get("/task-submissions")
def get_task_submissions(
    status: Optional[str] = None,
    taskType: Optional[str] = None,
    admin: dict = Depends(require_admin),
):
    conditions, params = [], []
    if status:
        conditions.append("ts.status = %s")
        params.append(status)
    if taskType:
        conditions.append("t.type = %s")
        params.append(taskType)
    where = " WHERE " + " AND ".join(conditions) if conditions else ""

    with get_cursor() as cur:
        cur.execute(SUBMISSION_SELECT + where + " ORDER BY ts.created_at DESC", params)
        rows = cur.fetchall()

    return success([serialize_submission(row) for row in rows])


@router.get("/task-submissions/{submission_id}")
def get_task_submission(submission_id: int, admin: dict = Depends(require_admin)):
    with get_cursor() as cur:
        cur.execute(SUBMISSION_SELECT + " WHERE ts.id = %s", (submission_id,))
        row = cur.fetchone()

    if not row:
        raise HTTPException(status_code=404, detail="Submission not found")

    return success(serialize_submission(row))


@router.put("/task-submissions/{submission_id}/approve")
def approve_task_submission(submission_id: int, admin: dict = Depends(require_admin)):
    with get_cursor() as cur:
        coins = approve_submission(cur, submission_id, admin["id"])

    logger.info(f"Admin {admin['id']} approved submission {submission_id} for {coins} coins")
    return success({"message": "Task approved and coins credited successfully", "coins": coins})


@router.put("/task-submissions/{submission_id}/reject")
def reject_task_submission(
    submission_id: int,
    data: Optional[RejectRequest] = None,
    admin: dict = Depends(require_admin),
):
    with get_cursor() as cur:
        reject_submission(cur, submission_id, admin["id"], reason=data.rejection_reason if data else None)

    return success({"message": "Task submission rejected"})


# Creator requests

def _serialize_creator_request(row):
    return {
        "id": row["id"],
        "name": row["name"],
        "username": row["username"],
        "email": row["email"],
        "isCreator": row["is_creator"],
        "creatorStatus": row["creator_status"],
        "creatorYouTubeUrl": row["creator_youtube_url"],
        "creatorInstagramUrl": row["creator_instagram_url"],
        "creatorRejectionReason": row.get("creator_rejection_reason"),
        "creatorApprovedAt": row.get("creator_approved_at"),
        "createdAt": row["created_at"],
    }


def _pending_creator(cur, user_id):
    cur.execute("SELECT * FROM users WHERE id = %s FOR UPDATE", (user_id,))
    user = cur.fetchone()
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    if user["creator_status"] != "pending":
        raise HTTPException(status_code=400, detail="No pending creator request for this user")
    return user


@router.get("/creator-requests")
def get_creator_requests(status: str = "pending", admin: dict = Depends(require_admin)):
    with get_cursor() as cur:
        cur.execute("""
            SELECT * FROM users
            WHERE creator_status = %s
            ORDER BY updated_at DESC
        """, (status,))
        rows = cur.fetchall()

    return success([_serialize_creator_request(row) for row in rows])


@router.put("/creator-requests/{user_id}/approve")
def approve_creator(user_id: int, admin: dict = Depends(require_admin)):
    with get_cursor() as cur:
        _pending_creator(cur, user_id)
        cur.execute("""
            UPDATE users
            SET is_creator = TRUE,
                creator_status = 'approved',
                role = CASE WHEN role = 'admin' THEN role ELSE 'creator' END,
                creator_approved_by = %s,
                creator_approved_at = NOW(),
                creator_rejection_reason = NULL,
                updated_at = NOW()
            WHERE id = %s
        """, (admin["id"], user_id))

    logger.info(f"Admin {admin['id']} approved creator {user_id}")
    return success({"message": "Creator approved successfully"})


@router.put("/creator-requests/{user_id}/reject")
def reject_creator(
    user_id: int,
    data: Optional[RejectRequest] = None,
    admin: dict = Depends(require_admin),
):
    with get_cursor() as cur:
        _pending_creator(cur, user_id)
        cur.execute("""
            UPDATE users
            SET is_creator = FALSE,
                creator_status = 'rejected',
                creator_rejection_reason = %s,
                updated_at = NOW()
            WHERE id = %s
        """, (data.rejection_reason if data else None, user_id))

    logger.info(f"Admin {admin['id']} rejected creator {user_id}")
    return success({"message": "Creator request rejected"})


# Creator coin requests

def _pending_coin_request(cur, request_id):
    cur.execute("SELECT * FROM creator_coin_requests WHERE id = %s FOR UPDATE", (request_id,))
    request = cur.fetchone()
    if not request:
        raise HTTPException(status_code=404, detail="Coin request not found")
    if request["status"] != "pending":
        raise HTTPException(status_code=400, detail=f"Request has already been {request['status']}")
    return request


@router.get("/creator-coin-requests")
def get_creator_coin_requests(status: Optional[str] = None, admin: dict = Depends(require_admin)):
    where, params = "", []
    if status:
        where, params = " WHERE cr.status = %s", [status]

    with get_cursor() as cur:
        cur.execute(COIN_REQUEST_SELECT + where + " ORDER BY cr.created_at DESC", params)
        rows = cur.fetchall()

    return success([serialize_coin_request(row) for row in rows])


@router.put("/creator-coin-requests/{request_id}/approve")
def approve_creator_coin_request(request_id: int, admin: dict = Depends(require_admin)):
    with get_cursor() as cur:
        request = _pending_coin_request(cur, request_id)
        cur.execute("""
            UPDATE creator_coin_requests
            SET status = 'approved', reviewed_by = %s, reviewed_at = NOW(), updated_at = NOW()
            WHERE id = %s
        """, (admin["id"], request_id))
        wallet = credit_creator_wallet(cur, request["creator_id"], request["coins"])

        cur.execute("SELECT id, name, username FROM users WHERE id = %s", (request["creator_id"],))
        creator = cur.fetchone()

    logger.info(f"Admin {admin['id']} approved coin request {request_id} ({request['coins']} coins)")
    return success({
        "message": f"Coin request approved. {request['coins']} coins added to creator wallet.",
        "creatorWallet": wallet,
        "creator": {"id": creator["id"], "name": creator["name"], "username": creator["username"]},
    })


@router.put("/creator-coin-requests/{request_id}/reject")
def reject_creator_coin_request(
    request_id: int,
    data: Optional[RejectRequest] = None,
    admin: dict = Depends(require_admin),
):
    reason = (data.rejection_reason or "").strip() if data else ""
    if not reason:
        raise HTTPException(status_code=400, detail="Rejection reason is required")

    with get_cursor() as cur:
        _pending_coin_request(cur, request_id)
        cur.execute("""
            UPDATE creator_coin_requests
            SET status = 'rejected', rejection_reason = %s, reviewed_by = %s,
                reviewed_at = NOW(), updated_at = NOW()
            WHERE id = %s
        """, (reason, admin["id"], request_id))

    logger.info(f"Admin {admin['id']} rejected coin request {request_id}")
    return success({"message": "Coin request rejected"})
