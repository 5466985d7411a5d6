"""Translation of Supabase client failures into storage errors."""

from collections.abc import Callable
from datetime import datetime
from typing import TypeVar

import httpx
from supabase import PostgrestAPIError

from multicam_sessions.domain.errors import DuplicateCodeError, StorageError

_UNIQUE_VIOLATION = "23505"

T = TypeVar("T")


def run_query(query: Callable[[], T], action: str) -> T:
    """Execute a PostgREST call, raising StorageError on failure."""
    try:
        return query()
    except PostgrestAPIError as exc:
        if exc.code == _UNIQUE_VIOLATION and "session_code" in str(exc.message):
            raise DuplicateCodeError() from exc
        raise StorageError(f"Failed to {action}: {exc.message}") from exc
    except httpx.HTTPError as exc:
        raise StorageError(f"Failed to {action}: {exc}") from exc


def parse_timestamp(value: object) -> datetime | None:
    """Parse an ISO timestamp column, tolerating nulls."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value).replace("Z", "+00:00"))
