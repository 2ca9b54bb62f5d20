"""Energy-balance time integrator.

Steps the flight at a fixed interval, evaluating solar generation and power
consumption at each sample and updating the battery state-of-charge (SoC)
and altitude. Samples are produced incrementally by ``iter_flight``;
``simulate`` materializes them into a ``FlightTrajectory``.

Clock convention: all times are seconds on the simulation clock, i.e. seconds
since local midnight of the first simulated day.
"""

from __future__ import annotations

import logging
import math
import warnings
from dataclasses import dataclass, replace
from typing import Iterator, List, Optional, Tuple

import numpy as np

from sucad.config import Environment, Params, Settings, SimType
from sucad.exceptions import ConvergenceWarning
from sucad.models.aero_structure import DerivedDesign, consumed_power_w
from sucad.models.solar_irradiance import solar_power_w
from sucad.units import G0_MPS2, SECONDS_PER_DAY

logger = logging.getLogger(__name__)

SOC_TREND_TOL_PER_DAY = 1e-9


@dataclass(frozen=True)
class FlightSample:
    """State at one discrete time sample.

    t_full_s is set (not NaN) on the sample that closes the step in which the
    battery became full; t_depleted_s on every step that ran the battery empty.
    """

    t_s: float
    p_gen_w: float
    p_cons_w: float
    soc: float
    h_m: float
    elevation_rad: float
    t_full_s: float = math.nan
    t_depleted_s: float = math.nan
    grounded: bool = False


@dataclass(frozen=True)
class DayEvents:
    """Characteristic times of the first simulated day (NaN when not found)."""

    t_sunrise: float
    t_sunset: float
    t_eq: float
    t_eq2: float
    t_max: float


@dataclass(frozen=True, eq=False)
class FlightTrajectory:
    t_s: np.ndarray
    p_gen_w: np.ndarray
    p_cons_w: np.ndarray
    soc: np.ndarray
    h_m: np.ndarray
    elevation_rad: np.ndarray

    t_start_s: float
    horizon_s: float
    full_charge_times: Tuple[float, ...]
    t_depleted_s: float
    truncated: bool

    @property
    def t_end_s(self) -> float:
        return float(self.t_s[-1])

    @property
    def depleted(self) -> bool:
        return not math.isnan(self.t_depleted_s)

    def soc_trend_per_day(self) -> Optional[float]:
        """SoC change over the last 24 h of the trajectory, None if shorter than a day."""
        if self.t_end_s - self.t_start_s < SECONDS_PER_DAY:
            return None
        soc_ref = float(np.interp(self.t_end_s - SECONDS_PER_DAY, self.t_s, self.soc))
        return float(self.soc[-1]) - soc_ref

    def recharged_within_last_day(self) -> bool:
        """True if the battery reached full charge during the last 24 h."""
        t_min = self.t_end_s - SECONDS_PER_DAY
        return any(t >= t_min for t in self.full_charge_times)

    def sustains_flight(self) -> bool:
        """No depletion, and the daily cycle closes: recharged or no SoC loss over the last 24 h."""
        if self.depleted or self.truncated:
            return False
        if self.recharged_within_last_day():
            return True
        trend = self.soc_trend_per_day()
        return trend is None or trend >= -SOC_TREND_TOL_PER_DAY


def _crossings(t: np.ndarray, y: np.ndarray, rising: bool) -> List[float]:
    """Zero crossings of y(t), linearly interpolated between straddling samples."""

    if rising:
        idx = np.nonzero((y[:-1] <= 0.0) & (y[1:] > 0.0))[0]
    else:
        idx = np.nonzero((y[:-1] > 0.0) & (y[1:] <= 0.0))[0]
    out = []
    for i in idx:
        y0, y1 = float(y[i]), float(y[i + 1])
        frac = -y0 / (y1 - y0)
        out.append(float(t[i] + frac * (t[i + 1] - t[i])))
    return out


def _first_after(times: List[float], t_min: float) -> float:
    for t in times:
        if t >= t_min:
            return t
    return math.nan


def _check_settings(settings: Settings) -> None:
    if not settings.dt_s > 0.0:
        raise ValueError(f"settings.dt_s must be > 0, got {settings.dt_s}.")
    if not settings.sim_time_days > 0.0:
        raise ValueError(f"settings.sim_time_days must be > 0, got {settings.sim_time_days}.")
    if not 0.0 <= settings.init_cond.soc <= 1.0:
        raise ValueError(f"init_cond.soc must be within [0, 1], got {settings.init_cond.soc}.")


def scan_reference_day(
    derived: DerivedDesign,
    environment: Environment,
    params: Params,
    settings: Settings,
) -> DayEvents:
    """Find sunrise, sunset, equilibrium crossings and peak generation of the first day.

    The scan samples the first day at settings.dt_s at the base altitude h_0; it
    does not depend on the battery state.
    """

    n = int(math.ceil(SECONDS_PER_DAY / settings.dt_s))
    t = np.minimum(np.arange(n + 1) * settings.dt_s, SECONDS_PER_DAY)
    gen = np.empty_like(t)
    elev = np.empty_like(t)
    cons = np.empty_like(t)
    for i, ti in enumerate(t):
        gen[i], elev[i] = solar_power_w(
            float(ti), environment, settings, params.solar, derived.solar_area_m2, environment.h_0_m
        )
        cons[i], _ = consumed_power_w(derived, environment, params, environment.h_0_m, elev[i] > 0.0)

    t_sunrise = _first_after(_crossings(t, elev, rising=True), 0.0)
    t_sunset = _first_after(_crossings(t, elev, rising=False), 0.0 if math.isnan(t_sunrise) else t_sunrise)
    t_eq = _first_after(_crossings(t, gen - cons, rising=True), 0.0)
    t_eq2 = math.nan if math.isnan(t_eq) else _first_after(_crossings(t, gen - cons, rising=False), t_eq)
    t_max = float(t[int(np.argmax(gen))]) if float(np.max(gen)) > 0.0 else math.nan

    for name, value in (("sunrise", t_sunrise), ("sunset", t_sunset), ("t_eq", t_eq), ("t_eq2", t_eq2)):
        if math.isnan(value):
            warnings.warn(
                f"No {name} crossing found on day {environment.day_of_year:g} "
                f"(lat={environment.lat_deg:g}, clearness={environment.clearness:g}).",
                ConvergenceWarning,
                stacklevel=2,
            )

    return DayEvents(t_sunrise=t_sunrise, t_sunset=t_sunset, t_eq=t_eq, t_eq2=t_eq2, t_max=t_max)


def initial_state(settings: Settings, events: DayEvents) -> Tuple[float, float]:
    """Return (t_start, soc_start) according to settings.sim_type."""

    soc0 = settings.init_cond.soc
    if settings.sim_type == SimType.START_AT_EQUILIBRIUM:
        if not math.isnan(events.t_eq):
            return events.t_eq, soc0
        warnings.warn(
            "No energy equilibrium found; starting from the initial-condition time instead.",
            ConvergenceWarning,
            stacklevel=2,
        )
    return settings.init_cond.t_s, soc0


def iter_flight(
    derived: DerivedDesign,
    environment: Environment,
    params: Params,
    settings: Settings,
    t_start_s: float,
    soc_start: float,
) -> Iterator[FlightSample]:
    """Yield one FlightSample per time step, starting with the initial state.

    Positive net power charges the battery; energy beyond full charge is turned
    into altitude (climb_allowed, up to h_max) or curtailed. A deficit above h_0
    is first covered by gliding down to h_0, then by the battery. Once the
    battery is empty, the unmet propulsion energy is lost as altitude; reaching
    h_ground ends the flight.
    """

    _check_settings(settings)

    dt = settings.dt_s
    n_steps = int(round(settings.sim_time_days * SECONDS_PER_DAY / dt))
    e_max = derived.E_bat_max_j
    weight_n = derived.m_total_kg * G0_MPS2
    eta_chain = params.propulsion.eta_chain
    bat = params.battery
    h_0 = environment.h_0_m
    h_max = max(environment.h_max_m, h_0)
    h_ground = environment.h_ground_m

    def powers(t: float, h: float) -> Tuple[float, float, float, float]:
        gen, elev = solar_power_w(t, environment, settings, params.solar, derived.solar_area_m2, h)
        cons, cons_prop = consumed_power_w(derived, environment, params, h, elev > 0.0)
        return gen, cons, cons_prop, elev

    t = t_start_s
    h = h_0
    energy = soc_start * e_max
    gen, cons, cons_prop, elev = powers(t, h)
    yield FlightSample(t, gen, cons, soc_start, h, elev)

    for _ in range(n_steps):
        t_full = math.nan
        t_depleted = math.nan
        grounded = False
        net_j = (gen - cons) * dt

        if net_j >= 0.0:
            if h < h_0:
                # regain the base altitude before charging
                dh = min(net_j * eta_chain / weight_n, h_0 - h)
                h += dh
                net_j -= dh * weight_n / eta_chain
            charge_j = net_j * bat.eta_chrg
            headroom_j = e_max - energy
            if charge_j >= headroom_j:
                if headroom_j > 0.0:
                    t_full = t + dt * headroom_j / charge_j
                energy = e_max
                surplus_j = (charge_j - headroom_j) / bat.eta_chrg
                if settings.climb_allowed and h < h_max:
                    h = min(h + surplus_j * eta_chain / weight_n, h_max)
            else:
                energy += charge_j
        else:
            deficit_j = -net_j
            if h > h_0:
                pot_avail_j = (h - h_0) * weight_n / eta_chain
                used_j = min(deficit_j, cons_prop * dt, pot_avail_j)
                h -= used_j * eta_chain / weight_n
                deficit_j -= used_j
            need_j = deficit_j / bat.eta_dischrg
            if need_j <= energy:
                energy -= need_j
            else:
                t_depleted = t + dt * energy / need_j
                unmet_j = (need_j - energy) * bat.eta_dischrg
                energy = 0.0
                h -= min(unmet_j, cons_prop * dt) * eta_chain / weight_n
                if h <= h_ground:
                    h = h_ground
                    grounded = True

        t += dt
        soc = min(1.0, max(0.0, energy / e_max)) if e_max > 0.0 else 0.0
        gen, cons, cons_prop, elev = powers(t, h)
        yield FlightSample(t, gen, cons, soc, h, elev, t_full, t_depleted, grounded)
        if grounded:
            logger.debug("Hard floor reached at t=%.0f s; stopping the simulation early.", t)
            return


def simulate(
    derived: DerivedDesign,
    environment: Environment,
    params: Params,
    settings: Settings,
    events: Optional[DayEvents] = None,
) -> FlightTrajectory:
    """Run the time integration and materialize the trajectory."""

    _check_settings(settings)
    if events is None:
        events = scan_reference_day(derived, environment, params, settings)
    t_start, soc_start = initial_state(settings, events)

    rows = []
    full_charge_times: List[float] = []
    t_depleted = math.nan
    truncated = False
    for sample in iter_flight(derived, environment, params, settings, t_start, soc_start):
        rows.append((sample.t_s, sample.p_gen_w, sample.p_cons_w, sample.soc, sample.h_m, sample.elevation_rad))
        if not math.isnan(sample.t_full_s):
            full_charge_times.append(sample.t_full_s)
        if math.isnan(t_depleted) and not math.isnan(sample.t_depleted_s):
            t_depleted = sample.t_depleted_s
        truncated = sample.grounded

    data = np.asarray(rows, dtype=float)
    traj = FlightTrajectory(
        t_s=data[:, 0],
        p_gen_w=data[:, 1],
        p_cons_w=data[:, 2],
        soc=data[:, 3],
        h_m=data[:, 4],
        elevation_rad=data[:, 5],
        t_start_s=t_start,
        horizon_s=settings.sim_time_days * SECONDS_PER_DAY,
        full_charge_times=tuple(full_charge_times),
        t_depleted_s=t_depleted,
        truncated=truncated,
    )
    logger.debug(
        "Simulated %d samples from t=%.0f s (SoC0=%.2f): min SoC=%.3f, depleted=%s, truncated=%s",
        len(traj.t_s),
        t_start,
        soc_start,
        float(np.min(traj.soc)),
        traj.depleted,
        truncated,
    )
    return traj


def find_max_altitude(
    derived: DerivedDesign,
    environment: Environment,
    params: Params,
    settings: Settings,
    tol_m: float = 1.0,
    max_iter: int = 40,
) -> float:
    """Highest constant flight level in [h_0, h_max] that still allows sustained flight.

    Bisection on the flight level; stops as soon as the bracket is below tol_m.
    Returns NaN if the flight is not sustainable at h_0.
    """

    level_settings = replace(settings, climb_allowed=False, find_max_altitude=False)

    def sustainable(h: float) -> bool:
        env_h = replace(environment, h_0_m=h, h_max_m=max(environment.h_max_m, h))
        with warnings.catch_warnings():
            warnings.simplefilter("ignore", ConvergenceWarning)
            return simulate(derived, env_h, params, level_settings).sustains_flight()

    lo, hi = environment.h_0_m, max(environment.h_max_m, environment.h_0_m)
    if not sustainable(lo):
        return math.nan
    if sustainable(hi):
        return hi

    for _ in range(max_iter):
        if hi - lo <= tol_m:
            break
        mid = 0.5 * (lo + hi)
        if sustainable(mid):
            lo = mid
        else:
            hi = mid
    logger.debug("Maximum sustainable altitude: %.1f m", lo)
    return lo
