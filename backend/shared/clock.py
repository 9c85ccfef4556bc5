"""
Time and identifier sources.

Services take these as constructor arguments so tests can pin the
current time and predict generated ids.
"""

import uuid
from datetime import datetime, timezone
from typing import Callable, Protocol, runtime_checkable


@runtime_checkable
class Clock(Protocol):
    """Provides the current timestamp."""

    def now(self) -> datetime:
        """Return the current time as a timezone-aware datetime."""
        ...


class SystemClock:
    """Wall-clock time in UTC."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


IdFactory = Callable[[], str]


def new_id() -> str:
    """Generate a new opaque record identifier."""
    return str(uuid.uuid4())
