"""Per-configuration evaluation engine."""

from __future__ import annotations

import logging
import math
from typing import Tuple

from sucad.config import Design, Environment, Params, Settings
from sucad.models.aero_structure import derive_design
from sucad.models.energy_balance import find_max_altitude, scan_reference_day, simulate
from sucad.models.performance_metrics import (
    DesignResult,
    FlightData,
    PerfResult,
    design_result,
    extract_metrics,
)

logger = logging.getLogger(__name__)


def evaluate_solution(
    design: Design,
    environment: Environment,
    params: Params,
    settings: Settings,
) -> Tuple[PerfResult, DesignResult, FlightData]:
    """Evaluate one design/environment combination.

    Derives the mass and power budget, scans the first day for the
    characteristic times, integrates the battery state over the simulated
    horizon and reduces the trajectory to the scalar metrics.

    The function has no side effects other than logging and warnings, so
    identical inputs give identical results. Event times are on the
    simulation clock; the display timeshift is not applied here.

    Raises:
        InvalidDesignError: for non-physical design inputs.
    """

    derived = derive_design(design, environment, params)
    events = scan_reference_day(derived, environment, params, settings)
    trajectory = simulate(derived, environment, params, settings, events=events)

    h_max_eternal = math.nan
    if settings.find_max_altitude:
        h_max_eternal = find_max_altitude(derived, environment, params, settings)

    perf = extract_metrics(trajectory, events, derived, h_max_eternal=h_max_eternal)
    flight = FlightData(b=derived.wing_span_m, m_bat=derived.m_bat_kg, AR=derived.aspect_ratio)
    logger.debug(
        "Evaluated b=%.2f AR=%.2f m_bat=%.2f: min SoC=%.3f, m_total=%.2f kg",
        flight.b,
        flight.AR,
        flight.m_bat,
        perf.min_SoC,
        derived.m_total_kg,
    )
    return perf, design_result(derived), flight
