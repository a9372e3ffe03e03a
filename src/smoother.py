"""
Advanced Compass - Heading Smoothing, Correction and Logging
Heading Smoother Module

Copyright (c) 2026 Kay Schäfer. All Rights Reserved.
Proprietary and confidential. See LICENSE for details.

Exponential moving-angle filter that drives the needle towards the
latest raw heading along the shorter arc.
"""

from typing import Optional

from angles import normalize, shortest_signed_diff

DEFAULT_SMOOTHING = 0.12


def smooth_step(current: Optional[float], target: float,
                alpha: float = DEFAULT_SMOOTHING) -> float:
    """Advance *current* one step towards *target* and return the result.

    When *current* is ``None`` the normalised *target* is returned
    directly so the first sample does not animate in from north.
    """
    target = normalize(target)
    if current is None:
        return target
    diff = shortest_signed_diff(current, target)
    return normalize(current + diff * alpha)


class HeadingSmoother:
    """Stateful wrapper around :func:`smooth_step`.

    Args:
        alpha: Fraction of the remaining gap closed per update.  Must be
            in the open interval (0, 1); smaller values converge slower.
        displayed_angle: Optional starting needle angle.  ``None`` means
            the first :meth:`update` jumps straight to its target.
    """

    def __init__(self, alpha: float = DEFAULT_SMOOTHING,
                 displayed_angle: Optional[float] = None):
        if not 0.0 < alpha < 1.0:
            raise ValueError(f"alpha must be in (0, 1), got {alpha!r}")
        self.alpha = alpha
        self._displayed: Optional[float] = (
            None if displayed_angle is None else normalize(displayed_angle)
        )

    @property
    def displayed_angle(self) -> Optional[float]:
        """The current needle angle in degrees, or ``None``."""
        return self._displayed

    def update(self, target: float) -> float:
        """Feed one raw heading and return the new displayed angle."""
        self._displayed = smooth_step(self._displayed, target, self.alpha)
        return self._displayed

    def reset(self) -> None:
        """Forget the displayed angle; the next update jumps directly."""
        self._displayed = None
