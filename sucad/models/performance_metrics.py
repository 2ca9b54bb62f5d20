"""Result records and the performance metrics extractor."""

from __future__ import annotations

import math
import warnings
from dataclasses import dataclass, replace

import numpy as np

from sucad.exceptions import ConvergenceWarning
from sucad.models.aero_structure import DerivedDesign
from sucad.models.energy_balance import DayEvents, FlightTrajectory
from sucad.units import SECONDS_PER_DAY, units

_TIME_FIELDS = ("t_sunrise", "t_eq", "t_max", "t_fullcharge", "t_eq2", "t_sunset")


# ============================
# Result objects (dataclasses)
# ============================


@dataclass(frozen=True)
class PerfResult:
    """Performance of one configuration.

    Event times are seconds on the simulation clock of the day they occur
    (seconds since local midnight). Durations are seconds. Missing events are NaN.
    """

    min_SoC: float
    t_excess: float
    t_chargemargin: float
    t_endurance: float
    t_sunrise: float
    t_eq: float
    t_eq2: float
    t_fullcharge: float
    t_sunset: float
    P_elec_level_tot_nom: float

    t_max: float = math.nan
    h_max_reached: float = math.nan
    h_max_eternal: float = math.nan

    @property
    def endurance_days(self) -> float:
        return units.s_to_days(self.t_endurance)

    def shifted(self, hours: float) -> "PerfResult":
        """Copy with all event times moved by `hours` (display in solar time)."""
        dt = units.h_to_s(hours)
        return replace(self, **{name: getattr(self, name) + dt for name in _TIME_FIELDS})


@dataclass(frozen=True)
class DesignResult:
    """Mass breakdown of one configuration [kg], areas [m^2] and battery energy [J]."""

    m_no_bat: float
    m_bat: float

    m_struct: float = 0.0
    m_solar: float = 0.0
    m_mppt: float = 0.0
    m_prop: float = 0.0
    m_avionics: float = 0.0
    m_payload: float = 0.0
    wing_area: float = 0.0
    solar_area: float = 0.0
    E_bat_max_j: float = 0.0

    @property
    def m_total(self) -> float:
        return self.m_no_bat + self.m_bat


@dataclass(frozen=True)
class FlightData:
    """Design variables actually used for a configuration."""

    b: float
    m_bat: float
    AR: float


def design_result(derived: DerivedDesign) -> DesignResult:
    return DesignResult(
        m_no_bat=derived.m_no_bat_kg,
        m_bat=derived.m_bat_kg,
        m_struct=derived.m_struct_kg,
        m_solar=derived.m_solar_kg,
        m_mppt=derived.m_mppt_kg,
        m_prop=derived.m_prop_kg,
        m_avionics=derived.m_avionics_kg,
        m_payload=derived.m_payload_kg,
        wing_area=derived.wing_area_m2,
        solar_area=derived.solar_area_m2,
        E_bat_max_j=derived.E_bat_max_j,
    )


def _time_of_day(t_s: float) -> float:
    return t_s - math.floor(t_s / SECONDS_PER_DAY) * SECONDS_PER_DAY


def full_charge_time(trajectory: FlightTrajectory, events: DayEvents) -> float:
    """First time the battery is full at or after the first sunrise, as time-of-day; NaN if never."""

    candidates = list(trajectory.full_charge_times)
    if trajectory.soc[0] >= 1.0:
        candidates.insert(0, trajectory.t_start_s)
    t_min = events.t_sunrise if not math.isnan(events.t_sunrise) else trajectory.t_start_s
    for t in candidates:
        if t >= t_min:
            return _time_of_day(t)
    return math.nan


def endurance_s(trajectory: FlightTrajectory) -> float:
    """Time the flight can be sustained from the start.

    Depletion time if the battery ran empty; the simulated horizon if the
    daily cycle closes; otherwise extrapolated from the negative 24-h SoC trend.
    """

    if trajectory.depleted:
        return trajectory.t_depleted_s - trajectory.t_start_s
    elapsed = trajectory.t_end_s - trajectory.t_start_s
    if trajectory.sustains_flight():
        return elapsed
    trend = trajectory.soc_trend_per_day()
    return elapsed + float(trajectory.soc[-1]) / -trend * SECONDS_PER_DAY


def extract_metrics(
    trajectory: FlightTrajectory,
    events: DayEvents,
    derived: DerivedDesign,
    h_max_eternal: float = math.nan,
) -> PerfResult:
    """Reduce a trajectory and the first-day events to the scalar performance indicators."""

    t_fullcharge = full_charge_time(trajectory, events)
    if math.isnan(t_fullcharge):
        warnings.warn(
            "Battery never reaches full charge within the simulated horizon.",
            ConvergenceWarning,
            stacklevel=2,
        )
        t_excess = 0.0
        t_chargemargin = 0.0
    else:
        t_excess = max(events.t_eq2 - t_fullcharge, 0.0) if not math.isnan(events.t_eq2) else 0.0
        t_chargemargin = max(events.t_sunset - t_fullcharge, 0.0) if not math.isnan(events.t_sunset) else 0.0

    return PerfResult(
        min_SoC=float(np.min(trajectory.soc)),
        t_excess=t_excess,
        t_chargemargin=t_chargemargin,
        t_endurance=endurance_s(trajectory),
        t_sunrise=events.t_sunrise,
        t_eq=events.t_eq,
        t_eq2=events.t_eq2,
        t_fullcharge=t_fullcharge,
        t_sunset=events.t_sunset,
        P_elec_level_tot_nom=derived.p_elec_level_tot_nom_w,
        t_max=events.t_max,
        h_max_reached=float(np.max(trajectory.h_m)),
        h_max_eternal=h_max_eternal,
    )
