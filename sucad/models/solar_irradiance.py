"""Solar irradiance at the aircraft position.

Sun geometry, air mass and the extraterrestrial flux come from
``aerosandbox.library.power_solar``; its clock is the time after local solar
noon, so the simulation clock is converted through the equation of time
(Spencer 1971) and the longitude correction first. Clear-sky direct normal
irradiance follows Meinel's air-mass model with the Laue altitude
correction. Clouds are described by a single clearness factor in [0, 1]
(1 = clear sky).

The aircraft loiters, so the solar module orientation is averaged over the
heading: only the module tilt (wing dihedral/camber) enters the model.
"""

from __future__ import annotations

import math
from typing import NamedTuple, Optional, Tuple

from aerosandbox.library import power_solar

from sucad.config import Environment, Settings, SolarParams
from sucad.exceptions import InvalidDesignError
from sucad.units import SECONDS_PER_DAY


class Irradiance(NamedTuple):
    """Irradiance on the solar modules [W/m^2] and sun elevation [rad]."""

    direct_w_m2: float
    diffuse_w_m2: float
    elevation_rad: float


def declination_rad(day_of_year: float) -> float:
    return math.radians(float(power_solar.declination_angle(day_of_year)))


def equation_of_time_s(day_of_year: float) -> float:
    b = 2.0 * math.pi * (day_of_year - 1.0) / 365.0
    eot_min = 229.18 * (
        0.000075
        + 0.001868 * math.cos(b)
        - 0.032077 * math.sin(b)
        - 0.014615 * math.cos(2.0 * b)
        - 0.040849 * math.sin(2.0 * b)
    )
    return eot_min * 60.0


def _day_and_clock(time_s: float, environment: Environment) -> Tuple[float, float]:
    """Day of year and clock time-of-day for a time on the simulation clock."""
    day_index = math.floor(time_s / SECONDS_PER_DAY)
    return environment.day_of_year + day_index, time_s - day_index * SECONDS_PER_DAY


def solar_time_s(time_s: float, environment: Environment) -> float:
    """Apparent solar time [s] for a time on the simulation clock."""
    day, clock_s = _day_and_clock(time_s, environment)
    standard_meridian_deg = 15.0 * round(environment.lon_deg / 15.0)
    longitude_corr_s = 240.0 * (environment.lon_deg - standard_meridian_deg)
    return clock_s + environment.add_solar_timeshift_s + longitude_corr_s + equation_of_time_s(day)


def time_after_solar_noon_s(time_s: float, environment: Environment) -> float:
    return solar_time_s(time_s, environment) - 0.5 * SECONDS_PER_DAY


def sun_position(time_s: float, environment: Environment) -> Tuple[float, float]:
    """Return (elevation, azimuth) of the sun in radians, azimuth from north, clockwise."""

    day, _ = _day_and_clock(time_s, environment)
    t_noon = time_after_solar_noon_s(time_s, environment)
    elevation_deg = float(power_solar.solar_elevation_angle(latitude=environment.lat_deg, day_of_year=day, time=t_noon))
    azimuth_deg = float(power_solar.solar_azimuth_angle(latitude=environment.lat_deg, day_of_year=day, time=t_noon))
    if not math.isfinite(azimuth_deg):
        # sun at the zenith
        azimuth_deg = 0.0
    return math.radians(elevation_deg), math.radians(azimuth_deg)


def air_mass(zenith_rad: float) -> float:
    """Relative optical air mass."""
    return float(power_solar.airmass(math.degrees(zenith_rad)))


def incidence_angle_modifier(incidence_rad: float, a_r: float) -> float:
    """Relative module efficiency vs. angle of incidence (Martin & Ruiz 2001)."""
    cos_i = math.cos(incidence_rad)
    if cos_i <= 0.0:
        return 0.0
    return (1.0 - math.exp(-cos_i / a_r)) / (1.0 - math.exp(-1.0 / a_r))


def check_environment(environment: Environment) -> None:
    for name in ("clearness", "albedo"):
        value = getattr(environment, name)
        if not 0.0 <= value <= 1.0:
            raise InvalidDesignError(f"{name} must be in [0, 1], got {value!r}.")


def irradiance(
    time_s: float,
    environment: Environment,
    settings: Settings,
    solar: SolarParams,
    altitude_m: Optional[float] = None,
) -> Irradiance:
    """Direct and diffuse irradiance on the (heading-averaged) solar modules.

    Args:
        time_s: time on the simulation clock (seconds since local midnight of the first day).
        altitude_m: flight altitude, defaults to environment.h_0_m.

    Raises:
        InvalidDesignError: clearness or albedo outside [0, 1].

    At or below the horizon both components are exactly zero.
    """

    check_environment(environment)
    elevation, _ = sun_position(time_s, environment)
    if elevation <= 0.0:
        return Irradiance(0.0, 0.0, elevation)

    day, _ = _day_and_clock(time_s, environment)
    h_km = max(environment.h_0_m if altitude_m is None else altitude_m, 0.0) / 1000.0
    a_h = min(solar.altitude_coeff_per_km * h_km, 1.0)

    i_ext = float(power_solar.solar_flux_outside_atmosphere_normal(day_of_year=day))
    zenith = 0.5 * math.pi - elevation
    dni_clear = i_ext * ((1.0 - a_h) * 0.7 ** (air_mass(zenith) ** 0.678) + a_h)

    clearness = environment.clearness
    sin_el = math.sin(elevation)
    dni = clearness * dni_clear
    dhi = solar.diffuse_fraction * dni_clear + solar.cloud_scatter * (1.0 - clearness) * dni_clear * sin_el
    ghi = dni * sin_el + dhi

    cos_tilt = math.cos(math.radians(solar.tilt_deg))
    direct = dni * sin_el * cos_tilt
    diffuse = dhi * 0.5 * (1.0 + cos_tilt) + environment.albedo * ghi * 0.5 * (1.0 - cos_tilt)

    if settings.use_aoi:
        direct *= incidence_angle_modifier(zenith, solar.aoi_a_r)

    return Irradiance(direct, diffuse, elevation)


def effective_irradiance_w_m2(irr: Irradiance, settings: Settings, solar: SolarParams) -> float:
    """Irradiance weighted by the relative direct/diffuse module efficiencies."""
    if settings.use_dir_diff_rad:
        return solar.eta_dir_rel * irr.direct_w_m2 + solar.eta_diff_rel * irr.diffuse_w_m2
    return irr.direct_w_m2 + irr.diffuse_w_m2


def solar_power_w(
    time_s: float,
    environment: Environment,
    settings: Settings,
    solar: SolarParams,
    solar_area_m2: float,
    altitude_m: Optional[float] = None,
) -> Tuple[float, float]:
    """Return (electrical power after MPPT [W], sun elevation [rad])."""

    irr = irradiance(time_s, environment, settings, solar, altitude_m)
    eta = solar.eta_sc * solar.eta_cbr * solar.eta_mppt
    return effective_irradiance_w_m2(irr, settings, solar) * solar_area_m2 * eta, irr.elevation_rad
