from flask import Blueprint, request
from flask_login import login_required, current_user

from utils import json_response, parse_pagination
from ledger import bank_accounts, withdrawals
from ledger.withdrawal_gate import can_withdraw

bp = Blueprint("withdrawals", __name__, url_prefix="/api")


#=======================================================================================
#      BANK ACCOUNTS
#=======================================================================================
@bp.route("/bank-accounts", methods=["GET"])
@login_required
def get_bank_accounts():
    accounts = bank_accounts.list_accounts(current_user.id)
    return json_response(200, "Bank Account", "Bank accounts retrieved successfully.", {"accounts": accounts})


@bp.route("/bank-accounts", methods=["POST"])
@login_required
def add_bank_account():
    account = bank_accounts.add_account(current_user.id, request.get_json(silent=True) or {})
    return json_response(201, "Bank Account", "Bank account added successfully.", {"account": account})


@bp.route("/bank-accounts/<int:account_id>", methods=["DELETE"])
@login_required
def delete_bank_account(account_id):
    bank_accounts.delete_account(current_user.id, account_id)
    return json_response(200, "Bank Account", "Bank account deleted successfully.")


@bp.route("/bank-accounts/<int:account_id>/default", methods=["PUT"])
@login_required
def set_default_account(account_id):
    account = bank_accounts.set_default(current_user.id, account_id)
    return json_response(200, "Bank Account", "Default account updated successfully.", {"account": account})


#=======================================================================================
#      WITHDRAWALS
#=======================================================================================
@bp.route("/withdrawals/eligibility", methods=["GET"])
@login_required
def eligibility():
    decision = can_withdraw(current_user)
    return json_response(200, "Withdrawal", "Eligibility checked.", {
        "allowed": decision.allowed,
        "reason": decision.reason,
    })


@bp.route("/withdrawals", methods=["POST"])
@login_required
def create_withdrawal():
    data = request.get_json(silent=True) or {}
    withdrawal = withdrawals.create_withdrawal(
        current_user.id,
        data.get("walletType"),
        data.get("amount"),
        data.get("bankAccountId"),
        withdrawal_password=data.get("withdrawalPassword"),
    )
    return json_response(201, "Withdrawal", "Withdrawal request created successfully.", {"withdrawal": withdrawal})


@bp.route("/withdrawals", methods=["GET"])
@login_required
def withdrawal_history():
    page, limit = parse_pagination(request.args)
    result = withdrawals.get_user_withdrawals(current_user.id, page, limit, request.args.get("status"))
    return json_response(200, "Withdrawal History", "Withdrawal history retrieved successfully.", result)


@bp.route("/withdrawals/password", methods=["PUT"])
@login_required
def set_withdrawal_password():
    data = request.get_json(silent=True) or {}
    withdrawals.set_withdrawal_password(current_user.id, data.get("currentPassword"), data.get("newPassword"))
    return json_response(200, "Withdrawal Password", "Withdrawal password set successfully.")
