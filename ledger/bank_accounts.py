import logging

from flask import current_app

from extensions import db
from models import BankAccount, AccountType
from ledger.exceptions import Conflict, NotFound, ValidationError

logger = logging.getLogger(__name__)

ACCOUNT_TYPES = [t.value for t in AccountType]


def _active(user_id):
    return BankAccount.query.filter_by(user_id=user_id, is_active=True)


def _owned_or_404(user_id, account_id):
    account = _active(user_id).filter_by(id=account_id).first()
    if account is None:
        raise NotFound("Bank account not found.")
    return account


def _clear_default(user_id):
    _active(user_id).update({BankAccount.is_default: False}, synchronize_session="fetch")


def list_accounts(user_id):
    accounts = _active(user_id).order_by(BankAccount.is_default.desc(), BankAccount.created_at.desc()).all()
    return [a.to_dict() for a in accounts]


def add_account(user_id, payload):
    account_type = (payload.get("accountType") or AccountType.SAVINGS.value).lower()
    if account_type not in ACCOUNT_TYPES:
        raise ValidationError(f"accountType must be one of {', '.join(ACCOUNT_TYPES)}.")

    holder = (payload.get("accountHolderName") or "").strip()
    number = (payload.get("accountNumber") or "").strip()
    ifsc = (payload.get("ifscCode") or "").strip().upper()
    qr_code_url = (payload.get("qrCodeUrl") or "").strip()

    if account_type == AccountType.QR.value:
        if not qr_code_url:
            raise ValidationError("qrCodeUrl is required for QR accounts.")
    elif not holder or not number or not ifsc:
        raise ValidationError("Account holder name, account number and IFSC code are required.")

    count = _active(user_id).count()
    if count >= current_app.config["MAX_BANK_ACCOUNTS"]:
        raise ValidationError(f"Maximum {current_app.config['MAX_BANK_ACCOUNTS']} bank accounts allowed.")

    if number and _active(user_id).filter_by(account_number=number).first():
        raise Conflict("This account is already added.")

    is_default = bool(payload.get("isDefault")) or count == 0
    if is_default:
        _clear_default(user_id)

    account = BankAccount(
        user_id=user_id,
        account_type=account_type,
        account_holder_name=holder or None,
        bank_name=(payload.get("bankName") or "").strip() or None,
        account_number=number or None,
        ifsc_code=ifsc or None,
        branch_name=(payload.get("branchName") or "").strip() or None,
        qr_code_url=qr_code_url or None,
        is_default=is_default,
    )
    db.session.add(account)
    db.session.commit()
    logger.info("User %s added %s account %s", user_id, account_type, account.id)
    return account.to_dict()


def delete_account(user_id, account_id):
    """Soft delete; the next active account inherits the default flag."""
    account = _owned_or_404(user_id, account_id)
    was_default = account.is_default
    account.is_active = False
    account.is_default = False

    if was_default:
        successor = _active(user_id).filter(BankAccount.id != account.id) \
            .order_by(BankAccount.created_at.asc()).first()
        if successor:
            successor.is_default = True

    db.session.commit()
    logger.info("User %s removed bank account %s", user_id, account_id)


def set_default(user_id, account_id):
    account = _owned_or_404(user_id, account_id)
    _clear_default(user_id)
    account.is_default = True
    db.session.commit()
    return account.to_dict()
