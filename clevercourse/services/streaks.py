"""Daily streak state machine.

State lives in (last_activity_date, current_streak, freezes_available).
A freeze forgives exactly one missed day and is spent automatically.
"""

from dataclasses import dataclass
from datetime import date, datetime, timezone
from zoneinfo import ZoneInfo


@dataclass(frozen=True)
class StreakUpdate:
    """Outcome of registering activity on a given day."""

    current_streak: int
    last_activity_date: date
    freezes_available: int
    used_freeze: bool = False
    streak_reset: bool = False
    unchanged: bool = False


def advance_streak(
    last_activity_date: date | None,
    current_streak: int,
    freezes_available: int,
    activity_date: date,
) -> StreakUpdate:
    """Apply one day of activity to the streak state."""
    if last_activity_date is None:
        return StreakUpdate(
            current_streak=1,
            last_activity_date=activity_date,
            freezes_available=freezes_available,
        )

    gap = (activity_date - last_activity_date).days

    # Same day, or a late event stamped before the last counted day
    if gap <= 0:
        return StreakUpdate(
            current_streak=current_streak,
            last_activity_date=last_activity_date,
            freezes_available=freezes_available,
            unchanged=True,
        )

    if gap == 1:
        return StreakUpdate(
            current_streak=current_streak + 1,
            last_activity_date=activity_date,
            freezes_available=freezes_available,
        )

    if gap == 2 and freezes_available > 0:
        return StreakUpdate(
            current_streak=current_streak + 1,
            last_activity_date=activity_date,
            freezes_available=freezes_available - 1,
            used_freeze=True,
        )

    return StreakUpdate(
        current_streak=1,
        last_activity_date=activity_date,
        freezes_available=freezes_available,
        streak_reset=True,
    )


def today_in(tz_name: str = "UTC") -> date:
    """Calendar date right now in the configured streak time zone."""
    if tz_name.upper() == "UTC":
        return datetime.now(timezone.utc).date()
    return datetime.now(ZoneInfo(tz_name)).date()
