"""Shared request-parsing helpers for the blueprints."""

import logging
from datetime import date, datetime

from partnerhub.core.exceptions import ValidationError

logger = logging.getLogger(__name__)


def parse_date(value):
    """Parse a date string (ISO or DD.MM.YYYY) to a date object.

    Returns None for empty/invalid input. Supports:
    - YYYY-MM-DD (ISO format)
    - YYYY-MM-DDTHH:MM:SS (datetime ISO → .date())
    - DD.MM.YYYY
    """
    if not value:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value))
    except (ValueError, TypeError):
        pass
    try:
        return datetime.fromisoformat(str(value)).date()
    except (ValueError, TypeError):
        pass
    try:
        return datetime.strptime(str(value), "%d.%m.%Y").date()
    except (ValueError, TypeError):
        return None


def parse_optional_int(value, field):
    """Coerce an optional id/number from JSON or query args.

    Returns None for None/"" and raises ValueError for anything that is
    not an integer (booleans included), so blueprints can answer 400.
    """
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise ValueError(f"{field} must be an integer")
    if isinstance(value, int):
        return value
    try:
        return int(str(value).strip())
    except (TypeError, ValueError) as exc:
        raise ValueError(f"{field} must be an integer") from exc


def require_int(data, field, *, minimum=None, maximum=None):
    """Read a required integer field from a payload dict, raising ValidationError."""
    raw = data.get(field)
    if raw is None or isinstance(raw, bool):
        raise ValidationError(f"{field} is required", details={field: "required integer"})
    if isinstance(raw, float) and not raw.is_integer():
        raise ValidationError(f"{field} must be an integer", details={field: "must be an integer"})
    try:
        value = int(raw)
    except (TypeError, ValueError) as exc:
        raise ValidationError(f"{field} must be an integer", details={field: "must be an integer"}) from exc
    if minimum is not None and value < minimum:
        raise ValidationError(f"{field} must be >= {minimum}", details={field: f"min {minimum}"})
    if maximum is not None and value > maximum:
        raise ValidationError(f"{field} must be <= {maximum}", details={field: f"max {maximum}"})
    return value


def clamp_paging(page, per_page) -> tuple[int, int]:
    """Page >= 1, per_page within 1..100."""
    return max(page or 1, 1), min(max(per_page or 20, 1), 100)


def paginate_query(query, page: int = 1, per_page: int = 20) -> tuple[list, int]:
    """Apply offset/limit pagination to a SQLAlchemy query.

    Args:
        query: SQLAlchemy query object.
        page: 1-based page number.
        per_page: Items per page (capped at 100).

    Returns:
        Tuple of (items list, total count).
    """
    page, per_page = clamp_paging(page, per_page)
    total = query.count()
    items = query.offset((page - 1) * per_page).limit(per_page).all()
    return items, total
