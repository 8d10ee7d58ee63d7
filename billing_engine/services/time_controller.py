"""Clock used by the reconciliation engine and the dunning sweep.

Responsibilities:
- Report the current time (real time plus an offset)
- Advance time for operational replays and tests
- Optionally freeze time at a fixed instant
"""

import threading
from datetime import datetime, timedelta, timezone
from typing import Optional

from billing_engine.logging_config import get_logger

logger = get_logger(__name__)


class TimeController:
    """Clock with an adjustable offset.

    Args:
        start_time: optional instant to freeze the clock at. When given, the
            clock does not tick on its own and only moves via advance_time
            or set_time.
    """

    def __init__(self, start_time: Optional[datetime] = None) -> None:
        # thread safety lock
        self._lock = threading.RLock()
        self._offset = timedelta(0)
        self._frozen_at: Optional[datetime] = None
        if start_time is not None:
            self._frozen_at = _as_utc(start_time)

        logger.info(
            "time_controller_initialized",
            frozen=self._frozen_at is not None,
            now=self.now().isoformat(),
        )

    def now(self) -> datetime:
        """Current time as an aware UTC datetime."""
        with self._lock:
            if self._frozen_at is not None:
                return self._frozen_at + self._offset
            return datetime.now(timezone.utc) + self._offset

    def get_current_time_millis(self) -> int:
        """Current time as a Unix timestamp in milliseconds."""
        return int(self.now().timestamp() * 1000)

    @property
    def is_frozen(self) -> bool:
        return self._frozen_at is not None

    def advance_time(self, days: int = 0, hours: int = 0, minutes: int = 0) -> dict:
        """Move the clock forward.

        Returns:
            Dictionary with old_time and new_time (ISO strings)

        Raises:
            ValueError: if any value is negative
        """
        if days < 0 or hours < 0 or minutes < 0:
            raise ValueError("Cannot advance time backwards, negative values are not allowed.")

        delta = timedelta(days=days, hours=hours, minutes=minutes)
        with self._lock:
            old_time = self.now()
            self._offset += delta
            new_time = self.now()

        logger.info(
            "time_advanced",
            old_time=old_time.isoformat(),
            new_time=new_time.isoformat(),
            days=days,
            hours=hours,
            minutes=minutes,
        )
        return {"old_time": old_time.isoformat(), "new_time": new_time.isoformat()}

    def set_time(self, instant: datetime) -> dict:
        """Jump the clock to a specific instant.

        Raises:
            ValueError: If the instant is before the current time
        """
        instant = _as_utc(instant)
        with self._lock:
            old_time = self.now()
            # don't allow going backwards in time
            if instant < old_time:
                raise ValueError(
                    f"cannot set time backwards, current: {old_time.isoformat()}, "
                    f"requested: {instant.isoformat()}"
                )
            self._offset += instant - old_time

        logger.info("time_set", old_time=old_time.isoformat(), new_time=instant.isoformat())
        return {"old_time": old_time.isoformat(), "new_time": instant.isoformat()}

    def reset_time(self) -> dict:
        """Drop the offset and unfreeze the clock."""
        with self._lock:
            old_time = self.now()
            self._offset = timedelta(0)
            self._frozen_at = None
            new_time = datetime.now(timezone.utc)

        logger.info("time_reset", old_time=old_time.isoformat(), new_time=new_time.isoformat())
        return {"old_time": old_time.isoformat(), "new_time": new_time.isoformat()}


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
