"""Layout constraints: the only tunables of the layout engine."""

from __future__ import annotations

from dataclasses import dataclass

from mnote.errors import ValidationError


@dataclass(frozen=True)
class LayoutConstraints:
    """Page geometry inputs.  All lengths are in the same (pixel) unit.

    ``measures_per_system`` caps how many measures a system may hold;
    ``0`` lifts the cap and leaves packing to the page width alone.
    ``density_scale`` is the extra width a measure gains per segment per
    quarter note.
    """

    page_width: float
    staff_height: float = 40.0
    system_spacing: float = 60.0
    staff_gap: float = 20.0
    measure_min_width: float = 80.0
    measure_max_width: float = 300.0
    measures_per_system: int = 4
    density_scale: float = 50.0

    def __post_init__(self) -> None:
        if self.page_width <= 0:
            raise ValidationError(f"page width {self.page_width} must be positive")
        if self.staff_height <= 0:
            raise ValidationError(f"staff height {self.staff_height} must be positive")
        if self.system_spacing < 0 or self.staff_gap < 0:
            raise ValidationError("spacing must be non-negative")
        if not 0 < self.measure_min_width <= self.measure_max_width:
            raise ValidationError(
                f"measure width bounds [{self.measure_min_width}, "
                f"{self.measure_max_width}] are invalid"
            )
        if self.measures_per_system < 0:
            raise ValidationError("measures_per_system must be >= 0")

    @property
    def line_spacing(self) -> float:
        """Distance between two adjacent staff lines."""
        return self.staff_height / 4

    def system_height(self, staff_count: int) -> float:
        return staff_count * self.staff_height + (staff_count - 1) * self.staff_gap
