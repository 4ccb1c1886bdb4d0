import logging
from datetime import datetime
from decimal import Decimal

from extensions import db
from models import User, Level, TaskCompletion
from utils import quantize
from ledger import wallet
from ledger.commission import compute_commission
from ledger.exceptions import NotFound, ValidationError

logger = logging.getLogger(__name__)


def _next_purchasable(user, levels):
    if user.current_level_number is None or user.current_level_number < 0:
        return min((lvl.level_number for lvl in levels), default=None)
    return user.current_level_number + 1


def list_levels(user, now=None):
    now = now or datetime.now()
    levels = Level.query.filter_by(is_active=True).order_by(Level.level_number.asc()).all()
    next_number = _next_purchasable(user, levels)
    balance = quantize(user.main_wallet or 0)

    midnight = datetime(now.year, now.month, now.day)
    completed_today = TaskCompletion.query.filter(
        TaskCompletion.user_id == user.id,
        TaskCompletion.completed_at >= midnight,
    ).count()

    result = []
    for level in levels:
        is_current = level.level_number == user.current_level_number
        completed = completed_today if is_current else 0
        data = level.to_dict()
        data.update({
            "completed": completed,
            "remaining": max(0, level.daily_task_limit - completed),
            "isCurrent": is_current,
            "isUnlocked": 0 <= level.level_number <= user.current_level_number,
            "canPurchase": level.level_number == next_number and balance >= quantize(level.investment_amount),
            "invitations": [
                {
                    "tier": tier,
                    "rate": f"{level.rate_for(tier)}%",
                    "amount": float(compute_commission(tier, level)),
                }
                for tier in ("A", "B", "C")
            ],
        })
        result.append(data)
    return result


def purchase_level(user_id, level_number):
    try:
        level_number = int(level_number)
    except (TypeError, ValueError):
        raise ValidationError("newLevelNumber is required.")

    user = db.session.get(User, user_id)
    if user is None:
        raise NotFound("User not found.")

    level = Level.query.filter_by(level_number=level_number, is_active=True).first()
    if level is None:
        raise NotFound(f"Target level {level_number} not found.")

    if level_number <= user.current_level_number:
        raise ValidationError("You already own this level or a higher one.")

    price = quantize(level.investment_amount or 0)
    if price > Decimal("0"):
        entry = wallet.debit(user_id, wallet.MAIN_WALLET, price)
        wallet.adjust_counter(user_id, "investment_amount", price)
        remaining = entry.new_balance
    else:
        remaining = quantize(user.main_wallet or 0)

    user.current_level = level.level_name
    user.current_level_number = level.level_number
    user.level_upgraded_at = datetime.now()
    user.today_tasks_completed = 0
    db.session.commit()

    logger.info("User %s purchased level %s for %s", user_id, level.level_number, price)
    return {
        "levelName": level.level_name,
        "levelNumber": level.level_number,
        "investmentAmount": float(price),
        "rewardPerTask": float(level.reward_per_task),
        "dailyTaskLimit": level.daily_task_limit,
        "remainingBalance": float(remaining),
        "totalInvestment": float(user.investment_amount),
    }
