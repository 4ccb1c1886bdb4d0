#======================================================================================
#
# ADMIN API: withdrawals, withdrawal windows, recharges, users, wallet adjustments, tasks
#
#=======================================================================================

from functools import wraps
import logging

from flask import Blueprint, request
from flask_login import current_user

from utils import json_response, parse_pagination
from ledger import recharge, users, wallet, withdrawals, withdrawal_gate, task_settlement
from ledger.exceptions import Forbidden, Unauthorized, ValidationError

logger = logging.getLogger(__name__)


def admin_required(f):
    """
    Decorator to restrict access to admin-only routes.
    - 401 when there is no logged-in user.
    - 403 when the logged-in user is not an admin.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not current_user.is_authenticated:
            raise Unauthorized("User not authenticated.")
        if current_user.role != "admin":
            raise Forbidden("Admin access required.")
        return f(*args, **kwargs)

    return decorated_function


admin_bp = Blueprint("admin", __name__, url_prefix="/admin")


#=======================================================================================
#      WITHDRAWALS
#=======================================================================================
@admin_bp.route("/withdrawals", methods=["GET"])
@admin_required
def list_withdrawals():
    page, limit = parse_pagination(request.args)
    result = withdrawals.list_withdrawals(
        page,
        limit,
        status=request.args.get("status"),
        wallet_type=request.args.get("walletType"),
        search=request.args.get("search"),
    )
    return json_response(200, "Withdrawals Retrieved", "Withdrawals fetched successfully.", result)


@admin_bp.route("/withdrawals/statistics", methods=["GET"])
@admin_required
def withdrawal_statistics():
    return json_response(200, "Statistics", "Statistics retrieved successfully.", withdrawals.get_statistics())


@admin_bp.route("/withdrawals/<int:withdrawal_id>/approve", methods=["PUT"])
@admin_required
def approve_withdrawal(withdrawal_id):
    data = request.get_json(silent=True) or {}
    result = withdrawals.approve_withdrawal(withdrawal_id, data.get("transactionId"))
    logger.info("Admin %s approved withdrawal %s", current_user.id, withdrawal_id)
    return json_response(200, "Withdrawal", "Withdrawal approved successfully.", {"withdrawal": result})


@admin_bp.route("/withdrawals/<int:withdrawal_id>/reject", methods=["PUT"])
@admin_required
def reject_withdrawal(withdrawal_id):
    data = request.get_json(silent=True) or {}
    result = withdrawals.reject_withdrawal(withdrawal_id, data.get("reason"))
    logger.info("Admin %s rejected withdrawal %s", current_user.id, withdrawal_id)
    return json_response(200, "Withdrawal", "Withdrawal rejected and amount refunded.", {"withdrawal": result})


#=======================================================================================
#      WITHDRAWAL WINDOWS
#=======================================================================================
@admin_bp.route("/withdrawal-configs", methods=["GET"])
@admin_required
def get_withdrawal_configs():
    return json_response(200, "Withdrawal Configurations", "Configurations retrieved successfully.",
                         {"configs": withdrawal_gate.list_configs()})


@admin_bp.route("/withdrawal-configs/<day>", methods=["PUT"])
@admin_required
def update_withdrawal_config(day):
    config = withdrawal_gate.upsert_config(day, request.get_json(silent=True) or {})
    return json_response(200, "Withdrawal Configurations", "Configuration updated successfully.",
                         {"config": config})


@admin_bp.route("/withdrawal-configs", methods=["PUT"])
@admin_required
def bulk_update_withdrawal_configs():
    data = request.get_json(silent=True) or {}
    configs = withdrawal_gate.bulk_upsert(data.get("configs"))
    return json_response(200, "Withdrawal Configurations", "Configurations updated successfully.",
                         {"configs": configs})


#=======================================================================================
#      RECHARGES
#=======================================================================================
@admin_bp.route("/recharges", methods=["GET"])
@admin_required
def list_recharges():
    page, limit = parse_pagination(request.args)
    result = recharge.list_all_recharges(page, limit, status=request.args.get("status"))
    return json_response(200, "Recharge", "Recharge orders fetched successfully.", result)


@admin_bp.route("/recharges/<int:recharge_id>/approve", methods=["PUT"])
@admin_required
def approve_recharge(recharge_id):
    data = request.get_json(silent=True) or {}
    order = recharge.approve_recharge(recharge_id, data.get("remarks"))
    logger.info("Admin %s approved recharge %s", current_user.id, recharge_id)
    return json_response(200, "Recharge", "Recharge approved successfully.", {"order": order})


@admin_bp.route("/recharges/<int:recharge_id>/reject", methods=["PUT"])
@admin_required
def reject_recharge(recharge_id):
    data = request.get_json(silent=True) or {}
    order = recharge.reject_recharge(recharge_id, data.get("remarks"))
    logger.info("Admin %s rejected recharge %s", current_user.id, recharge_id)
    return json_response(200, "Recharge", "Recharge rejected.", {"order": order})


#=======================================================================================
#      USERS
#=======================================================================================
@admin_bp.route("/users", methods=["GET"])
@admin_required
def list_users():
    page, limit = parse_pagination(request.args)
    result = users.list_users(
        page,
        limit,
        search=request.args.get("search"),
        level=request.args.get("userLevel"),
        team_level=request.args.get("teamLevel"),
    )
    return json_response(200, "Users Retrieved", "Users fetched successfully.", result)


@admin_bp.route("/users/<int:user_id>", methods=["GET"])
@admin_required
def get_user(user_id):
    return json_response(200, "User Details", "User details fetched successfully.", users.get_user(user_id))


@admin_bp.route("/users/<int:user_id>/status", methods=["PATCH"])
@admin_required
def set_user_status(user_id):
    data = request.get_json(silent=True) or {}
    user = users.set_user_status(user_id, data.get("isActive"))
    state = "activated" if user["isActive"] else "deactivated"
    logger.info("Admin %s %s user %s", current_user.id, state, user_id)
    return json_response(200, "Status Updated", f"User {state} successfully.", {"user": user})


@admin_bp.route("/users/<int:user_id>/level", methods=["PUT"])
@admin_required
def update_user_level(user_id):
    data = request.get_json(silent=True) or {}
    user = users.update_user_level(user_id, data.get("levelNumber"))
    logger.info("Admin %s set user %s to level %s", current_user.id, user_id, user["currentLevelNumber"])
    return json_response(200, "Level Updated", f"User level updated successfully to {user['currentLevel']}.",
                         {"user": user})


#=======================================================================================
#      WALLET ADJUSTMENTS
#=======================================================================================
def _adjust(user_id, direction):
    data = request.get_json(silent=True) or {}
    if data.get("amount") is None:
        raise ValidationError("amount is required.")
    return wallet.admin_adjust(
        user_id,
        data.get("walletType", wallet.MAIN_WALLET),
        data.get("amount"),
        currency=data.get("currency", "INR"),
        direction=direction,
        reason=data.get("reason"),
        admin_id=current_user.id,
    )


@admin_bp.route("/users/<int:user_id>/wallet/add", methods=["POST"])
@admin_required
def add_to_wallet(user_id):
    return json_response(200, "Wallet Updated", "Amount added successfully.", _adjust(user_id, "add"))


@admin_bp.route("/users/<int:user_id>/wallet/deduct", methods=["POST"])
@admin_required
def deduct_from_wallet(user_id):
    return json_response(200, "Wallet Updated", "Amount deducted successfully.", _adjust(user_id, "deduct"))


#=======================================================================================
#      TASKS
#=======================================================================================
@admin_bp.route("/tasks", methods=["POST"])
@admin_required
def create_task():
    task = task_settlement.create_task(request.get_json(silent=True) or {})
    return json_response(201, "Task", "Task created successfully.", {"task": task})


@admin_bp.route("/tasks/<int:task_id>", methods=["PUT"])
@admin_required
def update_task(task_id):
    task = task_settlement.update_task(task_id, request.get_json(silent=True) or {})
    return json_response(200, "Task", "Task updated successfully.", {"task": task})


@admin_bp.route("/tasks/<int:task_id>/toggle", methods=["PATCH"])
@admin_required
def toggle_task(task_id):
    task = task_settlement.toggle_task(task_id)
    state = "activated" if task["isActive"] else "deactivated"
    return json_response(200, "Task", f"Task {state} successfully.", {"task": task})


@admin_bp.route("/tasks/<int:task_id>", methods=["DELETE"])
@admin_required
def delete_task(task_id):
    result = task_settlement.delete_task(task_id)
    logger.info("Admin %s deleted task %s", current_user.id, task_id)
    return json_response(200, "Task", "Task deleted successfully.", result)
