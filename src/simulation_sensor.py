"""
Advanced Compass - Heading Smoothing, Correction and Logging
Simulation Sensor Module

Copyright (c) 2026 Kay Schäfer. All Rights Reserved.
Proprietary and confidential. See LICENSE for details.

Pointer-drag heading simulation for desktops without orientation
sensors.  Dragging on the compass points the needle at the pointer.
Whether a drag is in progress is part of the compass state; this class
only knows the widget geometry.
"""

from heading_source import PointerDragReading


class PointerSimulation:
    """Maps pointer positions on the compass widget to readings.

    Args:
        width: Widget width in pixels.
        height: Widget height in pixels.
    """

    def __init__(self, width: float, height: float):
        self.width = float(width)
        self.height = float(height)

    @property
    def center(self) -> tuple:
        return (self.width / 2.0, self.height / 2.0)

    def resize(self, width: float, height: float) -> None:
        """Update the widget size used to locate the centre."""
        self.width = float(width)
        self.height = float(height)

    def reading_at(self, x: float, y: float) -> PointerDragReading:
        """Return a pointer reading for widget-local coordinates."""
        cx, cy = self.center
        return PointerDragReading(x=float(x), y=float(y), center_x=cx, center_y=cy)
