"""Column helpers shared by the ORM models."""

from datetime import datetime, timezone


def utcnow() -> datetime:
    """Timezone-aware UTC now; all timestamps are stored in UTC."""
    return datetime.now(timezone.utc)
