"""Layout: derives page geometry from musical time."""

from mnote.layout.constraints import LayoutConstraints
from mnote.layout.engine import (
    IncrementalLayoutEngine,
    LayoutEngine,
    LayoutStats,
    ProportionalLayoutEngine,
)
from mnote.layout.geometry import (
    LayoutResult,
    MeasureLayout,
    Point,
    Rect,
    StaffLayout,
    SystemLayout,
)

__all__ = [
    "LayoutConstraints",
    "LayoutEngine",
    "LayoutStats",
    "ProportionalLayoutEngine",
    "IncrementalLayoutEngine",
    "LayoutResult",
    "MeasureLayout",
    "Point",
    "Rect",
    "StaffLayout",
    "SystemLayout",
]
