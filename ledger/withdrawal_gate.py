import logging
import re
from collections import namedtuple
from datetime import datetime

from flask import current_app

from extensions import db
from models import WithdrawalConfig
from ledger.exceptions import ValidationError

logger = logging.getLogger(__name__)

DAY_NAMES = ["Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday"]

DAY_NOT_ACTIVE = "Withdrawals are not available today."
LEVEL_NOT_ALLOWED = "Withdrawals are not allowed for your level today."
OUTSIDE_WINDOW = "Withdrawals are only allowed between {start} and {end}."

_TIME_RE = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")

GateDecision = namedtuple("GateDecision", ["allowed", "reason"])


def day_of_week(now):
    """Sunday-based weekday index: 0 = Sunday ... 6 = Saturday."""
    return (now.weekday() + 1) % 7


def to_minutes(hhmm):
    match = _TIME_RE.match(hhmm or "")
    if not match:
        raise ValidationError(f"Invalid time '{hhmm}', expected HH:MM.")
    return int(match.group(1)) * 60 + int(match.group(2))


def can_withdraw(user, now=None):
    """Day, level and time-window policy for new withdrawal requests."""
    now = now or datetime.now()
    config = WithdrawalConfig.query.filter_by(day_of_week=day_of_week(now)).first()

    if config is None or not config.is_active:
        return GateDecision(False, DAY_NOT_ACTIVE)

    if user.current_level_number not in (config.allowed_levels or []):
        return GateDecision(False, LEVEL_NOT_ALLOWED)

    current = now.hour * 60 + now.minute
    start, end = to_minutes(config.start_time), to_minutes(config.end_time)
    if current < start or current > end:
        return GateDecision(False, OUTSIDE_WINDOW.format(start=config.start_time, end=config.end_time))

    return GateDecision(True, None)


# ---------------------------------------------------------------------
# Admin configuration
# ---------------------------------------------------------------------

def _default_config(day):
    return {
        "dayOfWeek": day,
        "dayName": DAY_NAMES[day],
        "allowedLevels": [],
        "isActive": day != 0,
        "startTime": current_app.config.get("DEFAULT_WITHDRAWAL_START", "08:30"),
        "endTime": current_app.config.get("DEFAULT_WITHDRAWAL_END", "17:00"),
    }


def list_configs():
    """All seven days; days without a stored row show the defaults."""
    stored = {c.day_of_week: c for c in WithdrawalConfig.query.all()}
    return [stored[d].to_dict() if d in stored else _default_config(d) for d in range(7)]


def _parse_day(day):
    try:
        day = int(day)
    except (TypeError, ValueError):
        raise ValidationError("Invalid dayOfWeek (0-6).")
    if day < 0 or day > 6:
        raise ValidationError("Invalid dayOfWeek (0-6).")
    return day


def _parse_levels(levels):
    if levels is None:
        return []
    if not isinstance(levels, list):
        raise ValidationError("allowedLevels must be a list of level numbers.")
    try:
        return sorted({int(level) for level in levels})
    except (TypeError, ValueError):
        raise ValidationError("allowedLevels must be a list of level numbers.")


def _apply(day, payload):
    defaults = _default_config(day)
    start = payload.get("startTime") or defaults["startTime"]
    end = payload.get("endTime") or defaults["endTime"]
    if to_minutes(start) > to_minutes(end):
        raise ValidationError("startTime must not be later than endTime.")

    config = WithdrawalConfig.query.filter_by(day_of_week=day).first()
    if config is None:
        config = WithdrawalConfig(day_of_week=day, day_name=DAY_NAMES[day])
        db.session.add(config)

    config.allowed_levels = _parse_levels(payload.get("allowedLevels"))
    is_active = payload.get("isActive")
    config.is_active = True if is_active is None else bool(is_active)
    config.start_time = start
    config.end_time = end
    return config


def upsert_config(day, payload):
    day = _parse_day(day)
    config = _apply(day, payload or {})
    db.session.commit()
    logger.info("Withdrawal config for %s updated: %s", DAY_NAMES[day], config.to_dict())
    return config.to_dict()


def bulk_upsert(configs):
    if not isinstance(configs, list):
        raise ValidationError("Configs must be an array.")
    updated = []
    for item in configs:
        if not isinstance(item, dict):
            raise ValidationError("Each config must be an object.")
        updated.append(_apply(_parse_day(item.get("dayOfWeek")), item))
    db.session.commit()
    logger.info("Bulk updated %s withdrawal configs", len(updated))
    return [c.to_dict() for c in updated]
