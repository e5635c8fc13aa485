"""Human-readable reference codes for inquiries and announcements."""

import secrets
from datetime import UTC, datetime


def generate_code(prefix: str, *, now: datetime | None = None) -> str:
    """e.g. generate_code("INQ") -> "INQ20260105143012A3F9"."""
    stamp = (now or datetime.now(UTC)).strftime("%Y%m%d%H%M%S")
    return f"{prefix}{stamp}{secrets.token_hex(2).upper()}"
