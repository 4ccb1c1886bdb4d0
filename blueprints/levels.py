from flask import Blueprint, request
from flask_login import login_required, current_user

from utils import json_response
from ledger import levels


bp = Blueprint("levels", __name__, url_prefix="/api/levels")


@bp.route("", methods=["GET"])
@login_required
def get_levels():
    return json_response(200, "Levels", "Levels retrieved successfully.", {"levels": levels.list_levels(current_user)})


@bp.route("/purchase", methods=["POST"])
@login_required
def purchase():
    data = request.get_json(silent=True) or {}
    result = levels.purchase_level(current_user.id, data.get("newLevelNumber", data.get("levelNumber")))
    return json_response(
        200,
        "Purchase Level",
        f"Successfully purchased {result['levelName']}! Start watching videos to earn ₹{result['rewardPerTask']:.2f} per task.",
        result,
    )
