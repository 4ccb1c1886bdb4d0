from flask import Blueprint, request
from flask_login import login_required, current_user

from utils import json_response, parse_pagination
from ledger import task_settlement


bp = Blueprint("tasks", __name__, url_prefix="/api/tasks")


@bp.route("", methods=["GET"])
@login_required
def get_tasks():
    page, limit = parse_pagination(request.args)
    result = task_settlement.list_tasks(current_user, page, limit, level=request.args.get("level"))
    message = result.pop("message")
    return json_response(200, "Tasks", message, result)


@bp.route("/<int:task_id>", methods=["GET"])
@login_required
def get_task(task_id):
    task = task_settlement.get_task(current_user, task_id)
    return json_response(200, "Get Task", "Task retrieved successfully.", {"task": task})


@bp.route("/<int:task_id>/complete", methods=["POST"])
@login_required
def complete_task(task_id):
    result = task_settlement.complete_task(current_user.id, task_id)
    return json_response(
        200,
        "Complete Task",
        f"Congratulations! You earned ₹{result['rewardAmount']:.2f}",
        result,
    )
