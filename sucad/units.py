"""Unit helpers backed by Pint.

Call sites stay readable while all conversions are delegated to Pint. The
helpers return *plain floats* (magnitudes) so the numerical code paths keep
working on bare numbers.
"""

from __future__ import annotations

from typing import Optional

from pint import UnitRegistry

_ureg = UnitRegistry()
Q_ = _ureg.Quantity

G0_MPS2 = float(Q_(9.80665, "meter / second ** 2").magnitude)
SECONDS_PER_DAY = float(Q_(1.0, "day").to("second").magnitude)


class UnitConverter:
    """Conversions used by the sizing model and the report writers."""

    def __init__(self, ureg: Optional[UnitRegistry] = None):
        self.ureg = ureg or _ureg

    def wh_per_kg_to_j_per_kg(self, value: float) -> float:
        return float(self.ureg.Quantity(value, "watt_hour / kilogram").to("joule / kilogram").magnitude)

    def j_to_wh(self, value: float) -> float:
        return float(self.ureg.Quantity(value, "joule").to("watt_hour").magnitude)

    def s_to_h(self, value: float) -> float:
        return float(self.ureg.Quantity(value, "second").to("hour").magnitude)

    def h_to_s(self, value: float) -> float:
        return float(self.ureg.Quantity(value, "hour").to("second").magnitude)

    def s_to_days(self, value: float) -> float:
        return float(self.ureg.Quantity(value, "second").to("day").magnitude)

    def celsius_to_kelvin(self, value: float) -> float:
        return float(self.ureg.Quantity(value, "degC").to("kelvin").magnitude)


units = UnitConverter()
