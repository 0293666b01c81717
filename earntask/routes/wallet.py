import logging

from fastapi import APIRouter, Depends, HTTPException

from ..auth import get_current_user
from ..coins import COIN_TO_RUPEE_RATE
from ..database import get_cursor
from ..ledger import get_withdrawal_settings, hold_withdrawal_coins, log_transaction
from ..models import (
    TransactionType,
    WithdrawalRequest,
    serialize_transaction,
    serialize_withdrawal,
)
from ..responses import success
from ..rules import check_withdrawal_amount

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/wallet", tags=["wallet"])


@router.get("/balance")
def get_balance(user: dict = Depends(get_current_user)):
    return success({"balance": user["coins"]})


@router.get("/transactions")
def get_transactions(user: dict = Depends(get_current_user)):
    with get_cursor() as cur:
        cur.execute("""
            SELECT * FROM transactions
            WHERE user_id = %s
            ORDER BY created_at DESC
            LIMIT 50
        """, (user["id"],))
        rows = cur.fetchall()

    return success([serialize_transaction(row) for row in rows])


@router.post("/withdraw", status_code=201)
def request_withdrawal(data: WithdrawalRequest, user: dict = Depends(get_current_user)):
    if not data.amount or not data.payment_method or not data.account_details:
        raise HTTPException(status_code=400, detail="Please provide amount, payment method, and account details")

    payment_method = data.payment_method.value

    with get_cursor() as cur:
        settings = get_withdrawal_settings(cur)
        check_withdrawal_amount(data.amount, user["coins"], settings["minimum_withdrawal_amount"])

        # The balance may have moved since the user row was loaded
        if hold_withdrawal_coins(cur, user["id"], data.amount) is None:
            raise HTTPException(status_code=400, detail="Insufficient balance")

        cur.execute("""
            INSERT INTO withdrawals (user_id, amount, status, payment_method, account_details, created_at, updated_at)
            VALUES (%s, %s, 'pending', %s, %s, NOW(), NOW())
            RETURNING *
        """, (user["id"], data.amount, payment_method, data.account_details))
        withdrawal = cur.fetchone()

        log_transaction(
            cur, user["id"], TransactionType.WITHDRAWN.value, data.amount,
            f"Withdrawal request - {payment_method}", withdrawal_id=withdrawal["id"],
        )

    logger.info(f"User {user['id']} requested withdrawal {withdrawal['id']} of {data.amount} coins via {payment_method}")
    return success(serialize_withdrawal(withdrawal))


@router.get("/withdrawals")
def get_withdrawals(user: dict = Depends(get_current_user)):
    with get_cursor() as cur:
        cur.execute(
            "SELECT * FROM withdrawals WHERE user_id = %s ORDER BY created_at DESC",
            (user["id"],),
        )
        rows = cur.fetchall()

    return success([serialize_withdrawal(row) for row in rows])


@router.get("/withdrawal-settings")
def get_public_withdrawal_settings():
    with get_cursor() as cur:
        settings = get_withdrawal_settings(cur)

    return success({
        "minimumWithdrawalAmount": settings["minimum_withdrawal_amount"],
        "withdrawalAmounts": list(settings["withdrawal_amounts"]),
        "rupeeRate": COIN_TO_RUPEE_RATE,
    })
