from flask import Blueprint
from flask_login import login_required, current_user

from utils import json_response


bp = Blueprint("profile", __name__, url_prefix="")


# ----------------------------------------------------------------------------------
# FRONTEND GETS THIS DATA TO DYNAMICALLY UPDATE/ LOAD USER DATA
# ----------------------------------------------------------------------------------
@bp.route("/api/user/profile", methods=["GET"])
@login_required
def get_user_profile():
    return json_response(200, "User Profile", "Profile retrieved successfully.", {"user": current_user.to_dict()})


@bp.route("/api/wallet", methods=["GET"])
@login_required
def get_wallet():
    data = current_user.to_dict()
    return json_response(200, "Wallet", "Wallet info retrieved successfully.", {
        "mainWallet": data["mainWallet"],
        "commissionWallet": data["commissionWallet"],
        "mainWalletUsdt": data["mainWalletUsdt"],
        "commissionWalletUsdt": data["commissionWalletUsdt"],
        "totalWithdrawals": data["totalWithdrawals"],
    })
