from flask import Blueprint, request
from flask_login import login_required, current_user

from utils import json_response, parse_pagination, pagination_meta
from ledger.referral_tree import ReferralTreeHelper


bp = Blueprint("team", __name__, url_prefix="/api/team")


@bp.route("/stats", methods=["GET"])
@login_required
def team_stats():
    stats = ReferralTreeHelper.get_team_stats(current_user.id)
    stats["teamLevel"] = current_user.team_level
    stats["directReferralsCount"] = current_user.direct_referrals_count
    return json_response(200, "Team Stats", "Team statistics retrieved successfully", stats)


@bp.route("/members/<tier>", methods=["GET"])
@login_required
def team_members(tier):
    members = ReferralTreeHelper.get_team_members(current_user.id, tier)
    return json_response(200, "Team Members", "Team members retrieved successfully", members)


@bp.route("/referral-link", methods=["GET"])
@login_required
def referral_link():
    return json_response(
        200, "Referral Link", "Referral link retrieved successfully",
        ReferralTreeHelper.get_referral_link(current_user),
    )


@bp.route("/commissions", methods=["GET"])
@login_required
def commission_history():
    page, limit = parse_pagination(request.args)
    result = ReferralTreeHelper.get_commission_history(current_user.id, page, limit)
    result["pagination"] = pagination_meta(page, limit, result.pop("total"))
    return json_response(200, "Commission History", "Commission history retrieved successfully", result)
