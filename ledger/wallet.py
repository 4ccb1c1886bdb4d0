"""
Wallet ledger.

Every balance mutation is a single conditional UPDATE so that concurrent
requests cannot push a wallet below zero:

    UPDATE users SET col = col - :amt WHERE id = :id AND col >= :amt

Nothing here commits. Callers commit the balance change together with the
record that explains it (withdrawal, history row, completion).
"""
import logging
from collections import namedtuple
from decimal import Decimal, InvalidOperation

from extensions import db
from models import User
from utils import quantize
from ledger.exceptions import ValidationError, NotFound, InsufficientBalance

logger = logging.getLogger(__name__)

MAIN_WALLET = "mainWallet"
COMMISSION_WALLET = "commissionWallet"
WALLETS = (MAIN_WALLET, COMMISSION_WALLET)
CURRENCIES = ("INR", "USDT")

LedgerEntry = namedtuple("LedgerEntry", ["previous_balance", "new_balance"])

_COLUMNS = {
    (MAIN_WALLET, "INR"): "main_wallet",
    (COMMISSION_WALLET, "INR"): "commission_wallet",
    (MAIN_WALLET, "USDT"): "main_wallet_usdt",
    (COMMISSION_WALLET, "USDT"): "commission_wallet_usdt",
}

_COUNTERS = ("total_withdrawals", "investment_amount")


def wallet_column(wallet, currency="INR"):
    """Map (wallet, currency) to the User column holding that balance."""
    if wallet not in WALLETS:
        raise ValidationError(f"Invalid wallet type: {wallet}")
    if currency not in CURRENCIES:
        raise ValidationError(f"Invalid currency: {currency}")
    return getattr(User, _COLUMNS[(wallet, currency)])


def _positive(amount) -> Decimal:
    try:
        value = quantize(amount)
    except (InvalidOperation, ValueError, TypeError):
        raise ValidationError("Invalid amount.")
    if not value.is_finite() or value <= 0:
        raise ValidationError("Amount must be greater than zero.")
    return value


def _read(column, user_id):
    balance = db.session.query(column).filter(User.id == user_id).scalar()
    return quantize(balance or 0)


def credit(user_id, wallet, amount, currency="INR") -> LedgerEntry:
    column = wallet_column(wallet, currency)
    amount = _positive(amount)

    rows = User.query.filter(User.id == user_id).update(
        {column: column + amount}, synchronize_session="fetch"
    )
    if rows == 0:
        raise NotFound("User not found.")

    new_balance = _read(column, user_id)
    return LedgerEntry(new_balance - amount, new_balance)


def debit(user_id, wallet, amount, currency="INR") -> LedgerEntry:
    column = wallet_column(wallet, currency)
    amount = _positive(amount)

    rows = User.query.filter(User.id == user_id, column >= amount).update(
        {column: column - amount}, synchronize_session="fetch"
    )
    if rows == 0:
        if db.session.get(User, user_id) is None:
            raise NotFound("User not found.")
        raise InsufficientBalance(
            f"Insufficient balance in {wallet}.",
            data={"available": float(_read(column, user_id)), "requested": float(amount)},
        )

    new_balance = _read(column, user_id)
    return LedgerEntry(new_balance + amount, new_balance)


def adjust_counter(user_id, field, delta):
    """Atomically add `delta` (may be negative) to a numeric counter on the user."""
    if field not in _COUNTERS:
        raise ValidationError(f"Unknown counter: {field}")
    column = getattr(User, field)
    rows = User.query.filter(User.id == user_id).update(
        {column: column + quantize(delta)}, synchronize_session="fetch"
    )
    if rows == 0:
        raise NotFound("User not found.")


def admin_adjust(user_id, wallet, amount, currency="INR", direction="add", reason=None, admin_id=None):
    """Manual credit/debit by an admin. Commits."""
    if direction not in ("add", "deduct"):
        raise ValidationError("Direction must be 'add' or 'deduct'.")

    if direction == "add":
        entry = credit(user_id, wallet, amount, currency)
    else:
        entry = debit(user_id, wallet, amount, currency)
    db.session.commit()

    logger.info(
        "Admin %s %s %s %s on user %s wallet %s: %s -> %s (%s)",
        admin_id, direction, quantize(amount), currency, user_id, wallet,
        entry.previous_balance, entry.new_balance, reason or "no reason given",
    )
    return {
        "userId": user_id,
        "walletType": wallet,
        "currency": currency,
        "amount": float(quantize(amount)),
        "previousBalance": float(entry.previous_balance),
        "newBalance": float(entry.new_balance),
        "reason": reason,
    }
