from datetime import datetime
import logging
from typing import Dict, Optional

from flask import current_app
from sqlalchemy import or_

from extensions import db
from models import User, Withdrawal, BankAccount, WithdrawalStatus
from utils import parse_amount, pagination_meta
from ledger import wallet
from ledger.withdrawal_gate import can_withdraw
from ledger.exceptions import (
    AlreadyProcessed, Forbidden, NotFound, Unauthorized, ValidationError,
)

logger = logging.getLogger(__name__)

# ==========================================================
#                  STATE MACHINE
# ==========================================================
TRANSITIONS = {
    WithdrawalStatus.PENDING: {WithdrawalStatus.COMPLETED, WithdrawalStatus.REJECTED},
    WithdrawalStatus.COMPLETED: set(),
    WithdrawalStatus.REJECTED: set(),
}


def _transition(withdrawal_id, target: WithdrawalStatus, values: Dict) -> Withdrawal:
    """
    Move a withdrawal out of `pending` with a conditional UPDATE. A second
    admin acting on the same row sees 0 rows and gets AlreadyProcessed.
    """
    withdrawal = db.session.get(Withdrawal, withdrawal_id)
    if withdrawal is None:
        raise NotFound("Withdrawal not found.")

    current = WithdrawalStatus(withdrawal.status)
    if target not in TRANSITIONS[current]:
        raise AlreadyProcessed("This withdrawal has already been processed.")

    values = dict(values)
    values[Withdrawal.status] = target.value
    values[Withdrawal.processed_at] = datetime.now()
    rows = Withdrawal.query.filter(
        Withdrawal.id == withdrawal_id,
        Withdrawal.status == current.value,
    ).update(values, synchronize_session="fetch")
    if rows == 0:
        db.session.rollback()
        raise AlreadyProcessed("This withdrawal has already been processed.")
    return withdrawal


# ==========================================================
#                  NOTIFICATION MANAGER
# ==========================================================
class WithdrawalNotifier:
    @staticmethod
    def notify_requested(withdrawal: Withdrawal):
        logger.info(
            "[REQUESTED] User %s - %s from %s - ID: %s",
            withdrawal.user_id, withdrawal.amount, withdrawal.wallet_type, withdrawal.id,
        )

    @staticmethod
    def notify_approved(withdrawal: Withdrawal):
        logger.info(
            "[APPROVED] User %s - %s - ID: %s - txn %s",
            withdrawal.user_id, withdrawal.amount, withdrawal.id, withdrawal.transaction_id,
        )

    @staticmethod
    def notify_rejected(withdrawal: Withdrawal):
        logger.warning(
            "[REJECTED] User %s - %s refunded to %s - ID: %s - Reason: %s",
            withdrawal.user_id, withdrawal.amount, withdrawal.wallet_type, withdrawal.id,
            withdrawal.rejection_reason,
        )


# ==========================================================
#                  USER OPERATIONS
# ==========================================================
def create_withdrawal(user_id, wallet_type, amount, bank_account_id,
                      withdrawal_password=None, now=None) -> Dict:
    now = now or datetime.now()

    if wallet_type not in wallet.WALLETS:
        raise ValidationError("Invalid wallet type.")

    try:
        bank_account_id = int(bank_account_id)
    except (TypeError, ValueError):
        raise ValidationError("Invalid bank account.")

    minimum = current_app.config["MIN_WITHDRAWAL_AMOUNT"]
    amount = parse_amount(amount)
    if amount < minimum:
        raise ValidationError(f"Minimum withdrawal amount is Rs {minimum}.")

    user = db.session.get(User, user_id)
    if user is None:
        raise NotFound("User not found.")

    if user.withdrawal_password_hash and not user.check_withdrawal_password(withdrawal_password):
        raise Unauthorized("Invalid withdrawal password.")

    decision = can_withdraw(user, now)
    if not decision.allowed:
        raise Forbidden(decision.reason)

    account = BankAccount.query.filter_by(id=bank_account_id, user_id=user_id, is_active=True).first()
    if account is None:
        raise NotFound("Bank account not found.")

    entry = wallet.debit(user_id, wallet_type, amount)
    wallet.adjust_counter(user_id, "total_withdrawals", amount)

    withdrawal = Withdrawal(
        user_id=user_id,
        wallet_type=wallet_type,
        amount=amount,
        bank_account_id=account.id,
        account_holder_name=account.account_holder_name,
        bank_name=account.bank_name,
        account_number=account.account_number,
        ifsc_code=account.ifsc_code,
        qr_code_url=account.qr_code_url,
        status=WithdrawalStatus.PENDING.value,
    )
    db.session.add(withdrawal)
    db.session.commit()

    WithdrawalNotifier.notify_requested(withdrawal)
    data = withdrawal.to_dict()
    data["newBalance"] = float(entry.new_balance)
    return data


def set_withdrawal_password(user_id, current_password, new_password):
    user = db.session.get(User, user_id)
    if user is None:
        raise NotFound("User not found.")
    if not new_password or len(new_password) < 6:
        raise ValidationError("Withdrawal password must be at least 6 characters.")
    if user.withdrawal_password_hash and not user.check_withdrawal_password(current_password):
        raise Unauthorized("Current password is incorrect.")

    user.set_withdrawal_password(new_password)
    db.session.commit()
    logger.info("Withdrawal password set for user %s", user_id)


def get_user_withdrawals(user_id, page=1, limit=10, status=None) -> Dict:
    query = Withdrawal.query.filter_by(user_id=user_id)
    if status:
        query = query.filter(Withdrawal.status == status)
    total = query.count()
    rows = (query.order_by(Withdrawal.created_at.desc(), Withdrawal.id.desc())
            .offset((page - 1) * limit).limit(limit).all())
    return {
        "withdrawals": [w.to_dict() for w in rows],
        "pagination": pagination_meta(page, limit, total),
    }


# ==========================================================
#                  ADMIN OPERATIONS
# ==========================================================
def approve_withdrawal(withdrawal_id, transaction_id: Optional[str] = None) -> Dict:
    withdrawal = _transition(
        withdrawal_id,
        WithdrawalStatus.COMPLETED,
        {Withdrawal.transaction_id: transaction_id},
    )
    db.session.commit()
    WithdrawalNotifier.notify_approved(withdrawal)
    return withdrawal.to_dict()


def reject_withdrawal(withdrawal_id, reason: Optional[str] = None) -> Dict:
    withdrawal = _transition(
        withdrawal_id,
        WithdrawalStatus.REJECTED,
        {Withdrawal.rejection_reason: reason or "Rejected by admin"},
    )
    wallet.credit(withdrawal.user_id, withdrawal.wallet_type, withdrawal.amount)
    wallet.adjust_counter(withdrawal.user_id, "total_withdrawals", -withdrawal.amount)
    db.session.commit()
    WithdrawalNotifier.notify_rejected(withdrawal)
    return withdrawal.to_dict()


def get_statistics() -> Dict:
    rows = db.session.query(
        Withdrawal.status,
        db.func.count(Withdrawal.id),
        db.func.coalesce(db.func.sum(Withdrawal.amount), 0),
    ).group_by(Withdrawal.status).all()

    by_status = {status: (count, total) for status, count, total in rows}
    return {
        "totalAmount": float(sum(total for _, total in by_status.values())),
        "pendingCount": by_status.get(WithdrawalStatus.PENDING.value, (0, 0))[0],
        "completedCount": by_status.get(WithdrawalStatus.COMPLETED.value, (0, 0))[0],
        "rejectedCount": by_status.get(WithdrawalStatus.REJECTED.value, (0, 0))[0],
    }


def list_withdrawals(page=1, limit=10, status=None, wallet_type=None, search=None) -> Dict:
    query = Withdrawal.query
    if status and status != "all":
        query = query.filter(Withdrawal.status == status)
    if wallet_type and wallet_type != "all":
        query = query.filter(Withdrawal.wallet_type == wallet_type)
    if search:
        pattern = f"%{search}%"
        query = query.join(User, User.id == Withdrawal.user_id).filter(
            or_(User.name.ilike(pattern), User.phone.ilike(pattern))
        )

    total = query.count()
    rows = (query.order_by(Withdrawal.created_at.desc(), Withdrawal.id.desc())
            .offset((page - 1) * limit).limit(limit).all())
    return {
        "withdrawals": [w.to_dict(include_user=True) for w in rows],
        "pagination": pagination_meta(page, limit, total),
        "statistics": get_statistics(),
    }
