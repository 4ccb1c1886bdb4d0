import re
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from flask import jsonify
from ledger.exceptions import ValidationError

CENT = Decimal("0.01")


def validate_email(email):
    return re.match(r'^[\w\.-]+@[\w\.-]+\.\w+$', email or "")


def validate_phone(phone):
    return re.match(r'^\+?\d{9,15}$', phone or "")


def quantize(amount) -> Decimal:
    """Round to 2 places, half up."""
    return Decimal(str(amount)).quantize(CENT, rounding=ROUND_HALF_UP)


def parse_amount(value, field="amount"):
    """Parse a client supplied amount into a positive 2-place Decimal."""
    if value is None or isinstance(value, bool):
        raise ValidationError(f"{field} is required.")
    try:
        amount = quantize(value)
    except (InvalidOperation, ValueError, TypeError):
        raise ValidationError(f"Invalid {field}.")
    if not amount.is_finite() or amount <= 0:
        raise ValidationError(f"{field} must be greater than zero.")
    return amount


def parse_pagination(args, default_limit=10, max_limit=100):
    try:
        page = max(int(args.get("page", 1)), 1)
        limit = min(max(int(args.get("limit", default_limit)), 1), max_limit)
    except (TypeError, ValueError):
        page, limit = 1, default_limit
    return page, limit


def pagination_meta(page, limit, total):
    return {
        "currentPage": page,
        "limit": limit,
        "total": total,
        "totalPages": (total + limit - 1) // limit if limit else 0,
    }


def json_response(status_code=200, title="Success", message="", data=None):
    """Uniform response envelope used by every endpoint."""
    body = {
        "status": "success" if status_code < 400 else "error",
        "statusCode": status_code,
        "title": title,
        "message": message,
    }
    if data is not None:
        body["data"] = data
    return jsonify(body), status_code
