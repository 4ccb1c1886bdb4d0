import logging
from datetime import datetime

from sqlalchemy import case, or_
from sqlalchemy.exc import IntegrityError

from extensions import db
from models import User, Level, Task, TaskCompletion
from utils import quantize, parse_amount, pagination_meta
from ledger import wallet
from ledger.exceptions import (
    AlreadyCompleted, Conflict, DailyLimitReached, Forbidden, NotFound, ValidationError,
)

logger = logging.getLogger(__name__)


def _midnight(now):
    return datetime(now.year, now.month, now.day)


def _month_start(now):
    return datetime(now.year, now.month, 1)


def _active_level(user):
    if user.current_level_number is None or user.current_level_number < 0:
        return None
    return Level.query.filter_by(level_number=user.current_level_number, is_active=True).first()


def _completed_today(user_id, now):
    return TaskCompletion.query.filter(
        TaskCompletion.user_id == user_id,
        TaskCompletion.completed_at >= _midnight(now),
    ).count()


def _already_completed(user_id, task_id):
    return TaskCompletion.query.filter_by(user_id=user_id, task_id=task_id).first() is not None


# ==========================================================================
#   COMPLETION
# ==========================================================================

def complete_task(user_id, task_id, now=None):
    """
    Settle one task reward. Idempotent per (user, task): the unique index on
    task_completions rejects a second completion even under concurrency.
    """
    now = now or datetime.now()

    if _already_completed(user_id, task_id):
        raise AlreadyCompleted("Task already completed.")

    task = Task.query.filter_by(id=task_id, is_active=True).first()
    if task is None:
        raise NotFound("Task not found or inactive.")

    user = db.session.get(User, user_id)
    if user is None:
        raise NotFound("User not found.")

    level = _active_level(user)
    if level is None:
        raise NotFound("Level configuration not found.")

    if task.level_number != user.current_level_number:
        raise Forbidden("This task is not available for your current level.")

    reward = quantize(task.reward_price)
    limit = level.daily_task_limit or 0
    if limit <= 0:
        raise DailyLimitReached(f"Daily task limit reached ({limit} tasks).")

    db.session.add(TaskCompletion(user_id=user_id, task_id=task.id, reward_amount=reward, completed_at=now))
    try:
        db.session.flush()
    except IntegrityError:
        db.session.rollback()
        raise AlreadyCompleted("Task already completed.")

    new_day = or_(User.last_task_completed_at.is_(None), User.last_task_completed_at < _midnight(now))
    new_month = or_(User.last_monthly_reset_date.is_(None), User.last_monthly_reset_date < _month_start(now))

    rows = User.query.filter(
        User.id == user_id,
        or_(new_day, User.today_tasks_completed < limit),
    ).update(
        {
            User.today_tasks_completed: case((new_day, 1), else_=User.today_tasks_completed + 1),
            User.today_income: case((new_day, reward), else_=User.today_income + reward),
            User.last_income_reset_date: case((new_day, now), else_=User.last_income_reset_date),
            User.monthly_income: case((new_month, reward), else_=User.monthly_income + reward),
            User.last_monthly_reset_date: case((new_month, now), else_=User.last_monthly_reset_date),
            User.total_revenue: User.total_revenue + reward,
            User.total_profit: User.total_profit + reward,
            User.total_tasks_completed: User.total_tasks_completed + 1,
            User.last_task_completed_at: now,
        },
        synchronize_session="fetch",
    )
    if rows == 0:
        db.session.rollback()
        raise DailyLimitReached(f"Daily task limit reached ({limit} tasks).")

    entry = wallet.credit(user_id, wallet.MAIN_WALLET, reward)
    db.session.commit()

    db.session.refresh(user)
    logger.info(
        "User %s completed task %s: +%s mainWallet (%s/%s today)",
        user_id, task.id, reward, user.today_tasks_completed, limit,
    )
    return {
        "rewardAmount": float(reward),
        "newBalance": float(entry.new_balance),
        "todayTasksCompleted": user.today_tasks_completed,
        "dailyLimit": limit,
        "remainingTasks": max(0, limit - user.today_tasks_completed),
        "totalTasksCompleted": user.total_tasks_completed,
        "todayIncome": float(user.today_income),
    }


# ==========================================================================
#   QUERIES
# ==========================================================================

def list_tasks(user, page=1, limit=10, level=None, now=None):
    now = now or datetime.now()
    level_config = _active_level(user)
    daily_limit = level_config.daily_task_limit if level_config else 0
    today_completed = _completed_today(user.id, now)

    if level_config and today_completed >= daily_limit:
        return {
            "tasks": [],
            "pagination": pagination_meta(page, limit, 0),
            "stats": {
                "todayCompleted": today_completed,
                "dailyLimit": daily_limit,
                "limitReached": True,
            },
            "message": "Daily task limit reached.",
        }

    query = Task.query.filter_by(is_active=True)
    if level:
        query = query.filter(Task.level == level)
    else:
        query = query.filter(Task.level_number == user.current_level_number)

    total = query.count()
    tasks = (query.order_by(Task.order.asc(), Task.created_at.desc())
             .offset((page - 1) * limit).limit(limit).all())

    completed_ids = {
        row.task_id for row in TaskCompletion.query.filter(
            TaskCompletion.user_id == user.id,
            TaskCompletion.task_id.in_([t.id for t in tasks]),
        ).all()
    } if tasks else set()

    return {
        "tasks": [t.to_dict(completed=t.id in completed_ids) for t in tasks],
        "pagination": pagination_meta(page, limit, total),
        "stats": {
            "todayCompleted": today_completed,
            "dailyLimit": daily_limit,
            "totalAvailable": total,
            "remainingTasks": max(0, daily_limit - today_completed),
            "limitReached": False,
        },
        "message": "Tasks retrieved successfully.",
    }


def get_task(user, task_id):
    task = db.session.get(Task, task_id)
    if task is None:
        raise NotFound("Task not found.")
    if not task.is_active:
        raise ValidationError("Task is not active.")
    return task.to_dict(completed=_already_completed(user.id, task.id))


# ==========================================================================
#   ADMIN
# ==========================================================================

def _level_or_404(level_number):
    try:
        level_number = int(level_number)
    except (TypeError, ValueError):
        raise ValidationError("Task level number is required.")
    level = Level.query.filter_by(level_number=level_number).first()
    if level is None:
        raise NotFound(f"Level {level_number} not found.")
    return level


def _parse_order(value):
    try:
        return int(value or 0)
    except (TypeError, ValueError):
        raise ValidationError("Task order must be a whole number.")


def create_task(payload):
    video_url = (payload.get("videoUrl") or "").strip()
    if not video_url:
        raise ValidationError("Video URL is required.")
    if Task.query.filter_by(video_url=video_url).first():
        raise ValidationError("Task with this video already exists.")

    level = _level_or_404(payload.get("levelNumber"))
    reward = payload.get("rewardPrice")
    reward = parse_amount(reward, "rewardPrice") if reward is not None else quantize(level.reward_per_task)

    task = Task(
        title=payload.get("title"),
        video_url=video_url,
        thumbnail=payload.get("thumbnail"),
        level=level.level_name,
        level_number=level.level_number,
        reward_price=reward,
        order=_parse_order(payload.get("order")),
        is_active=bool(payload.get("isActive", True)),
    )
    db.session.add(task)
    db.session.commit()
    logger.info("Task %s created for level %s", task.id, level.level_number)
    return task.to_dict()


def update_task(task_id, payload):
    task = db.session.get(Task, task_id)
    if task is None:
        raise NotFound("Task not found.")

    order = _parse_order(payload["order"]) if "order" in payload else None
    if "levelNumber" in payload:
        level = _level_or_404(payload["levelNumber"])
        task.level = level.level_name
        task.level_number = level.level_number
    if "rewardPrice" in payload:
        task.reward_price = parse_amount(payload["rewardPrice"], "rewardPrice")
    for key, attr in (("title", "title"), ("videoUrl", "video_url"), ("thumbnail", "thumbnail")):
        if key in payload:
            setattr(task, attr, payload[key])
    if order is not None:
        task.order = order
    if "isActive" in payload:
        task.is_active = bool(payload["isActive"])

    db.session.commit()
    return task.to_dict()


def toggle_task(task_id):
    task = db.session.get(Task, task_id)
    if task is None:
        raise NotFound("Task not found.")
    task.is_active = not task.is_active
    db.session.commit()
    logger.info("Task %s is now %s", task.id, "active" if task.is_active else "inactive")
    return task.to_dict()


def delete_task(task_id):
    """Remove a task nobody has completed; settled tasks can only be deactivated."""
    task = db.session.get(Task, task_id)
    if task is None:
        raise NotFound("Task not found.")
    completions = TaskCompletion.query.filter_by(task_id=task.id).count()
    if completions:
        raise Conflict(f"Task has {completions} completion(s); deactivate it instead.")
    db.session.delete(task)
    db.session.commit()
    logger.info("Task %s deleted", task_id)
    return {"id": task_id}
