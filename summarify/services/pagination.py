"""Offset pagination helpers shared by the list endpoints."""

import math

from summarify.config import settings
from summarify.exceptions import ValidationError
from summarify.schemas.common import Pagination


def validate_page(page: int, limit: int) -> None:
    """page >= 1, 1 <= limit <= settings.history_max_limit."""
    if page < 1:
        raise ValidationError("page must be at least 1", field="page")
    if limit < 1:
        raise ValidationError("limit must be at least 1", field="limit")
    if limit > settings.history_max_limit:
        raise ValidationError(
            f"limit cannot exceed {settings.history_max_limit}",
            field="limit",
            context={"max_limit": settings.history_max_limit},
        )


def make_pagination(total: int, page: int, limit: int) -> Pagination:
    return Pagination(
        total=total,
        page=page,
        limit=limit,
        total_pages=math.ceil(total / limit) if total else 0,
    )
