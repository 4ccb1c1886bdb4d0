from flask import Blueprint, request
from flask_login import login_required, current_user

from utils import json_response, parse_pagination
from ledger import recharge


bp = Blueprint("recharges", __name__, url_prefix="/api/recharges")


@bp.route("", methods=["POST"])
@login_required
def submit():
    data = request.get_json(silent=True) or {}
    order = recharge.submit_recharge(current_user.id, data.get("amount"), data.get("transactionId"))
    return json_response(
        201, "Recharge",
        "Payment details submitted. Your wallet will be credited once the recharge is approved.",
        {"recharge": order},
    )


@bp.route("", methods=["GET"])
@login_required
def history():
    page, limit = parse_pagination(request.args)
    return json_response(200, "Recharge", "Recharge history retrieved successfully.",
                         recharge.list_recharges(current_user.id, page, limit))
