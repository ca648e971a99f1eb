"""
XP and Leveling

Level N is reached once cumulative XP is at or above threshold(N). The
default curve follows the classic formula where advancing out of level L
costs floor(100 * L^1.5) XP:

- Level 1: 0 XP
- Level 2: 100 XP
- Level 3: 382 XP
- Level 4: 901 XP
- ...

Thresholds can also be given explicitly, e.g. LevelCurve([0, 100, 250]).
Level is a pure function of XP; nothing here touches storage.
"""

from bisect import bisect_right
from typing import Sequence
import math
import logging

from habitflow.config import MAX_LEVEL
from habitflow.exceptions import ConfigurationError
from habitflow.models import XPProgress

logger = logging.getLogger(__name__)


def xp_for_level(level: int) -> int:
    """XP needed to advance out of `level`. Formula: floor(100 * L^1.5)."""
    if level <= 0:
        return 0
    return math.floor(100 * (level ** 1.5))


class LevelCurve:
    """Strictly increasing XP thresholds, thresholds[0] is level 1 and must be 0"""

    def __init__(self, thresholds: Sequence[int]):
        thresholds = list(thresholds)
        if len(thresholds) < 1 or thresholds[0] != 0:
            raise ConfigurationError(
                "Level thresholds must start at 0",
                config_key="level_thresholds"
            )
        for lower, upper in zip(thresholds, thresholds[1:]):
            if upper <= lower:
                raise ConfigurationError(
                    f"Level thresholds must be strictly increasing ({lower} >= {upper})",
                    config_key="level_thresholds"
                )
        self.thresholds = thresholds

    @classmethod
    def from_formula(cls, max_level: int = MAX_LEVEL) -> "LevelCurve":
        thresholds = [0]
        for level in range(1, max_level):
            thresholds.append(thresholds[-1] + xp_for_level(level))
        return cls(thresholds)

    @property
    def max_level(self) -> int:
        return len(self.thresholds)

    def threshold(self, level: int) -> int:
        """Cumulative XP required to reach `level`"""
        level = max(1, min(level, self.max_level))
        return self.thresholds[level - 1]

    def level_for(self, total_xp: int) -> int:
        """Level for a cumulative XP total (1..max_level)"""
        if total_xp <= 0:
            return 1
        return bisect_right(self.thresholds, total_xp)

    def progress(self, total_xp: int) -> XPProgress:
        """
        Progress through the current level

        Returns XPProgress where current_level_xp is the XP earned since the
        level started and next_level_xp the size of the level. At max level
        next_level_xp is 0 and progress is 100.
        """
        total_xp = max(total_xp, 0)
        level = self.level_for(total_xp)
        current_level_xp = total_xp - self.threshold(level)

        if level >= self.max_level:
            return XPProgress(
                current_level=level,
                current_level_xp=current_level_xp,
                next_level_xp=0,
                progress=100.0,
            )

        span = self.threshold(level + 1) - self.threshold(level)
        return XPProgress(
            current_level=level,
            current_level_xp=current_level_xp,
            next_level_xp=span,
            progress=min(current_level_xp / span * 100, 100.0),
        )

    def __repr__(self) -> str:
        return f"LevelCurve(max_level={self.max_level})"


DEFAULT_LEVEL_CURVE = LevelCurve.from_formula()
