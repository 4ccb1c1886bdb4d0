import logging
from datetime import datetime

from sqlalchemy import case, or_

from extensions import db
from models import User, Level
from utils import pagination_meta
from ledger.exceptions import NotFound, ValidationError

logger = logging.getLogger(__name__)


def _user_or_404(user_id):
    user = db.session.get(User, user_id)
    if user is None:
        raise NotFound("User not found.")
    return user


def get_statistics():
    row = db.session.query(
        db.func.count(User.id),
        db.func.coalesce(db.func.sum(case((User.is_active.is_(True), 1), else_=0)), 0),
        db.func.coalesce(db.func.sum(User.main_wallet), 0),
        db.func.coalesce(db.func.sum(User.commission_wallet), 0),
    ).one()
    return {
        "totalUsers": row[0],
        "activeUsers": int(row[1]),
        "totalWalletBalance": float(row[2]),
        "totalCommissions": float(row[3]),
    }


def list_users(page=1, limit=10, search=None, level=None, team_level=None):
    """Admin user directory, newest first, with platform-wide totals."""
    query = User.query
    if search:
        pattern = f"%{search}%"
        query = query.filter(or_(User.name.ilike(pattern), User.phone.ilike(pattern), User.email.ilike(pattern)))
    if level and level != "all":
        query = query.filter(User.current_level == level)
    if team_level and team_level != "all":
        query = query.filter(User.team_level == team_level)

    total = query.count()
    rows = (query.order_by(User.created_at.desc(), User.id.desc())
            .offset((page - 1) * limit).limit(limit).all())
    return {
        "users": [u.to_dict() for u in rows],
        "pagination": pagination_meta(page, limit, total),
        "statistics": get_statistics(),
    }


def get_user(user_id):
    user = _user_or_404(user_id)
    referrer = db.session.get(User, user.referred_by) if user.referred_by else None
    referrals = User.query.filter_by(referred_by=user.id).order_by(User.created_at.desc()).all()
    return {
        "user": user.to_dict(),
        "referrer": {"id": referrer.id, "name": referrer.name, "phone": referrer.phone} if referrer else None,
        "referrals": [
            {
                "id": r.id,
                "name": r.name,
                "phone": r.phone,
                "currentLevel": r.current_level,
                "createdAt": r.created_at.isoformat() if r.created_at else None,
            }
            for r in referrals
        ],
    }


def set_user_status(user_id, is_active):
    if not isinstance(is_active, bool):
        raise ValidationError("isActive must be true or false.")
    user = _user_or_404(user_id)
    user.is_active = is_active
    db.session.commit()
    logger.info("User %s %s", user.id, "activated" if is_active else "deactivated")
    return user.to_dict()


def update_user_level(user_id, level_number):
    """Admin override of a user's level; no wallet movement and no commissions."""
    try:
        level_number = int(level_number)
    except (TypeError, ValueError):
        raise ValidationError("levelNumber is required.")

    user = _user_or_404(user_id)
    level = Level.query.filter_by(level_number=level_number).first()
    if level is None:
        raise NotFound(f"Level {level_number} not found.")

    user.current_level = level.level_name
    user.current_level_number = level.level_number
    user.level_upgraded_at = datetime.now()
    db.session.commit()
    logger.info("User %s moved to level %s by admin", user.id, level.level_number)
    return user.to_dict()
