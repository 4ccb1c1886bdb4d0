from flask import Blueprint, request, current_app
from flask_login import login_user, logout_user, login_required, current_user
from sqlalchemy.exc import IntegrityError
import logging

from extensions import db
from models import User
from utils import json_response, validate_email, validate_phone
from ledger.referral_tree import ReferralTreeHelper
from ledger.exceptions import Conflict, Forbidden, Unauthorized, ValidationError


logger = logging.getLogger(__name__)
#==================================================================================================================

bp = Blueprint("auth", __name__, url_prefix="")


#===========================================================================
#      SIGN UP ROUTE.
#==============================================================================
@bp.route("/api/signup", methods=["POST"])
def signup():
    """
    Create new user + integrate them into the three-tier referral tree.
    Referral edges and commissions are written in the same transaction as the user.
    """
    data = request.get_json(silent=True)
    if not data:
        raise ValidationError("Invalid or missing JSON body")

    name = (data.get("name") or data.get("fullName") or "").strip()
    email = (data.get("email") or "").strip().lower()
    phone = (data.get("phone") or "").strip()
    password = data.get("password") or ""
    referral_code = (data.get("referralCode") or "").strip().upper()

    # -----------------------------------------
    #  BASIC VALIDATION
    # -----------------------------------------
    if not name or not phone or not password:
        raise ValidationError("Name, phone and password are required.")
    if not validate_phone(phone):
        raise ValidationError("Invalid phone number.")
    if email and not validate_email(email):
        raise ValidationError("Invalid email address.")
    if len(password) < 6:
        raise ValidationError("Password must be at least 6 characters")

    if User.query.filter_by(phone=phone).first():
        raise ValidationError("User with this phone already exists. Please login.")

    # -----------------------------------------
    #  HANDLE REFERRAL CODE
    # -----------------------------------------
    referrer = ReferralTreeHelper.resolve_referrer(referral_code, phone=phone, email=email)

    new_user = User(
        name=name,
        email=email or None,
        phone=phone,
        referral_code=ReferralTreeHelper.generate_referral_code(),
        referred_by=referrer.id if referrer else None,
    )
    new_user.set_password(password)
    db.session.add(new_user)
    try:
        db.session.flush()
    except IntegrityError:
        db.session.rollback()
        raise Conflict("User with this phone already exists. Please login.")

    # unknown or inactive codes resolve to no referrer; the user still signs up
    referral = ReferralTreeHelper.build_referral_edges(new_user.id, referrer.referral_code if referrer else "")

    login_user(new_user)
    current_app.logger.info(f"New user {new_user.id} signed up (referrer={referrer.id if referrer else None})")

    return json_response(
        201,
        "User Authentication",
        "Signup successful.",
        {"user": new_user.to_dict(), "referral": referral},
    )


#===========================================================================
#      LOGIN / LOGOUT
#==============================================================================
@bp.route("/api/login", methods=["POST"])
def login():
    data = request.get_json(silent=True) or {}
    phone = (data.get("phone") or "").strip()
    password = data.get("password") or ""

    if not phone or not password:
        raise ValidationError("Phone and password are required.")

    user = User.query.filter_by(phone=phone).first()
    if not user or not user.check_password(password):
        raise Unauthorized("Invalid phone or password.")
    if not user.is_active:
        raise Forbidden("Account is inactive.")

    login_user(user)
    logger.info("User %s logged in", user.id)
    return json_response(200, "User Authentication", "Login successful.", {"user": user.to_dict()})


@bp.route("/api/logout", methods=["POST"])
@login_required
def logout():
    user_id = current_user.id
    logout_user()
    logger.info("User %s logged out", user_id)
    return json_response(200, "User Authentication", "Logged out successfully.")
