"""Level curve: total XP <-> level.

Pure functions with no I/O so clients can reproduce them for optimistic UI.
The curve is cumulative ``floor(XP_CURVE_BASE * (level - 1) ** XP_CURVE_EXPONENT)``:
level 2 at 100 XP, level 3 at 282, level 4 at 519, level 5 at 800, ...
"""

import math

XP_CURVE_BASE = 100
XP_CURVE_EXPONENT = 1.5


def xp_for_level(level: int) -> int:
    """Cumulative XP required to reach ``level``. Level 1 starts at 0."""
    if level <= 1:
        return 0
    return math.floor(XP_CURVE_BASE * (level - 1) ** XP_CURVE_EXPONENT)


def xp_for_next_level(level: int) -> int:
    """Cumulative XP required to reach the level after ``level``."""
    return xp_for_level(level + 1)


def level_for_xp(xp: int) -> int:
    """Largest level whose threshold is <= ``xp``."""
    if xp <= 0:
        return 1

    # Closed-form guess, then step to the exact integer boundary
    level = int((xp / XP_CURVE_BASE) ** (1 / XP_CURVE_EXPONENT)) + 1
    while xp_for_level(level + 1) <= xp:
        level += 1
    while level > 1 and xp_for_level(level) > xp:
        level -= 1
    return level


def xp_progress(xp: int) -> int:
    """Integer percentage (0-100) of the way through the current level."""
    level = level_for_xp(xp)
    start = xp_for_level(level)
    span = xp_for_next_level(level) - start
    percent = (xp - start) * 100 // span
    return max(0, min(100, percent))


def levels_between(previous_xp: int, new_xp: int) -> int:
    """Number of levels gained moving from ``previous_xp`` to ``new_xp``."""
    return max(0, level_for_xp(new_xp) - level_for_xp(previous_xp))
