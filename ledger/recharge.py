import logging
import secrets
from datetime import datetime, timedelta
from decimal import Decimal

from flask import current_app

from extensions import db
from models import Recharge, RechargeStatus
from utils import parse_amount, pagination_meta
from ledger import wallet
from ledger.exceptions import AlreadyProcessed, Conflict, NotFound, ValidationError

logger = logging.getLogger(__name__)

MIN_RECHARGE = Decimal("280")
MAX_RECHARGE = Decimal("500000")
AUTO_APPROVE_REMARK = "Auto-approved by system."
APPROVE_REMARK = "Payment verified successfully"
REJECT_REMARK = "Payment verification failed"


def _order_id(now):
    return f"ORD{int(now.timestamp() * 1000)}{secrets.randbelow(1000):03d}"


def submit_recharge(user_id, amount, transaction_ref, now=None):
    now = now or datetime.now()
    amount = parse_amount(amount)
    if amount < MIN_RECHARGE:
        raise ValidationError(f"Minimum recharge amount is Rs {MIN_RECHARGE}.")
    if amount > MAX_RECHARGE:
        raise ValidationError("Maximum recharge amount is Rs 500,000.")

    ref = (transaction_ref or "").strip()
    if len(ref) < 10:
        raise ValidationError("Please enter a valid UTR/Transaction ID (minimum 10 characters).")

    used = Recharge.query.filter(
        Recharge.transaction_ref == ref,
        Recharge.status.in_([RechargeStatus.PROCESSING.value, RechargeStatus.COMPLETED.value]),
    ).first()
    if used:
        raise Conflict("This transaction ID has already been used.")

    recharge = Recharge(
        user_id=user_id,
        order_id=_order_id(now),
        amount=amount,
        transaction_ref=ref,
        status=RechargeStatus.PROCESSING.value,
        submitted_at=now,
    )
    db.session.add(recharge)
    db.session.commit()
    logger.info("Recharge %s submitted by user %s for %s", recharge.order_id, user_id, amount)
    return recharge.to_dict()


def list_recharges(user_id, page=1, limit=10):
    query = Recharge.query.filter_by(user_id=user_id)
    total = query.count()
    rows = (query.order_by(Recharge.created_at.desc(), Recharge.id.desc())
            .offset((page - 1) * limit).limit(limit).all())
    return {"recharges": [r.to_dict() for r in rows], "pagination": pagination_meta(page, limit, total)}


def list_all_recharges(page=1, limit=10, status=None):
    query = Recharge.query
    if status and status != "all":
        query = query.filter(Recharge.status == status)
    total = query.count()
    rows = (query.order_by(Recharge.created_at.desc(), Recharge.id.desc())
            .offset((page - 1) * limit).limit(limit).all())
    return {"recharges": [r.to_dict() for r in rows], "pagination": pagination_meta(page, limit, total)}


def auto_approve_recharges(now=None):
    """
    Credit every `processing` recharge older than the approval delay.
    Each recharge is claimed with a conditional UPDATE so overlapping runs
    credit it once. Returns the number of recharges approved.
    """
    now = now or datetime.now()
    delay = current_app.config.get("RECHARGE_AUTO_APPROVE_SECONDS", 60)
    cutoff = now - timedelta(seconds=delay)

    due = Recharge.query.filter(
        Recharge.status == RechargeStatus.PROCESSING.value,
        Recharge.submitted_at <= cutoff,
    ).order_by(Recharge.submitted_at.asc()).all()

    approved = 0
    for recharge in due:
        claimed = Recharge.query.filter(
            Recharge.id == recharge.id,
            Recharge.status == RechargeStatus.PROCESSING.value,
        ).update(
            {
                Recharge.status: RechargeStatus.COMPLETED.value,
                Recharge.approved_at: now,
                Recharge.remarks: AUTO_APPROVE_REMARK,
            },
            synchronize_session="fetch",
        )
        if claimed == 0:
            db.session.rollback()
            continue

        try:
            wallet.credit(recharge.user_id, wallet.MAIN_WALLET, recharge.amount)
        except NotFound:
            db.session.rollback()
            logger.warning("Recharge %s belongs to missing user %s; skipped", recharge.order_id, recharge.user_id)
            continue
        db.session.commit()
        approved += 1
        logger.info("Auto-approved recharge %s for user %s", recharge.order_id, recharge.user_id)

    if approved:
        logger.info("Auto recharge run approved %s recharge(s)", approved)
    return approved


# ==========================================================================
#   ADMIN REVIEW
# ==========================================================================

def _claim(recharge_id, allowed, values):
    """Conditional status UPDATE; returns the claimed row or raises."""
    recharge = db.session.get(Recharge, recharge_id)
    if recharge is None:
        raise NotFound("Recharge order not found.")
    if recharge.status not in allowed:
        raise AlreadyProcessed(f"This order is already {recharge.status}.")

    rows = Recharge.query.filter(
        Recharge.id == recharge_id,
        Recharge.status == recharge.status,
    ).update(values, synchronize_session="fetch")
    if rows == 0:
        db.session.rollback()
        raise AlreadyProcessed("This order has already been processed.")
    return recharge


def approve_recharge(recharge_id, remarks=None, now=None):
    """Credit the order amount to the owner's main wallet. A rejected order may still be approved."""
    now = now or datetime.now()
    recharge = _claim(
        recharge_id,
        {RechargeStatus.PENDING.value, RechargeStatus.PROCESSING.value, RechargeStatus.REJECTED.value},
        {
            Recharge.status: RechargeStatus.COMPLETED.value,
            Recharge.approved_at: now,
            Recharge.rejected_at: None,
            Recharge.remarks: remarks or APPROVE_REMARK,
        },
    )
    try:
        wallet.credit(recharge.user_id, wallet.MAIN_WALLET, recharge.amount)
    except NotFound:
        db.session.rollback()
        raise
    db.session.commit()
    logger.info("Recharge %s approved: +%s mainWallet for user %s", recharge.order_id, recharge.amount, recharge.user_id)
    return recharge.to_dict()


def reject_recharge(recharge_id, remarks=None, now=None):
    now = now or datetime.now()
    recharge = _claim(
        recharge_id,
        {RechargeStatus.PENDING.value, RechargeStatus.PROCESSING.value},
        {
            Recharge.status: RechargeStatus.REJECTED.value,
            Recharge.rejected_at: now,
            Recharge.remarks: remarks or REJECT_REMARK,
        },
    )
    db.session.commit()
    logger.warning("Recharge %s rejected for user %s: %s", recharge.order_id, recharge.user_id, recharge.remarks)
    return recharge.to_dict()
