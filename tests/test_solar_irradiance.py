import math
from dataclasses import replace

import numpy as np
import pytest

from sucad.config import Environment, Settings, SolarParams
from sucad.exceptions import InvalidDesignError
from sucad.models.solar_irradiance import (
    air_mass,
    declination_rad,
    incidence_angle_modifier,
    irradiance,
    solar_power_w,
    solar_time_s,
    sun_position,
    time_after_solar_noon_s,
)


def _noon_elevation_deg(environment: Environment) -> float:
    times = np.arange(0.0, 86400.0, 60.0)
    return max(math.degrees(sun_position(float(t), environment)[0]) for t in times)


def test_declination_at_solstices():
    assert math.degrees(declination_rad(172.0)) == pytest.approx(23.45, abs=0.05)
    assert math.degrees(declination_rad(355.0)) == pytest.approx(-23.45, abs=0.05)


def test_noon_elevation_matches_latitude_and_declination():
    env = Environment()
    expected = 90.0 - env.lat_deg + math.degrees(declination_rad(env.day_of_year))
    assert _noon_elevation_deg(env) == pytest.approx(expected, abs=0.3)


def test_sun_below_horizon_at_midnight():
    elevation, _ = sun_position(0.0, Environment())
    assert elevation < 0.0


def test_sun_due_south_around_noon():
    env = Environment()
    times = np.arange(0.0, 86400.0, 60.0)
    elevations = [sun_position(float(t), env)[0] for t in times]
    t_noon = float(times[int(np.argmax(elevations))])
    _, azimuth = sun_position(t_noon, env)
    assert math.degrees(azimuth) == pytest.approx(180.0, abs=2.0)


def test_air_mass_at_zenith_is_one():
    assert air_mass(0.0) == pytest.approx(1.0, abs=1e-3)
    assert air_mass(math.radians(60.0)) == pytest.approx(2.0, rel=0.01)


def test_incidence_angle_modifier_limits():
    assert incidence_angle_modifier(0.0, 0.16) == pytest.approx(1.0)
    assert incidence_angle_modifier(math.radians(90.0), 0.16) == pytest.approx(0.0, abs=1e-12)
    assert 0.0 < incidence_angle_modifier(math.radians(60.0), 0.16) < 1.0


def test_night_irradiance_is_exactly_zero():
    irr = irradiance(0.0, Environment(), Settings(), SolarParams())
    assert irr.direct_w_m2 == 0.0
    assert irr.diffuse_w_m2 == 0.0
    power, _ = solar_power_w(0.0, Environment(), Settings(), SolarParams(), solar_area_m2=1.5)
    assert power == 0.0


@pytest.mark.parametrize("t_h", [8.0, 13.5, 18.0])
def test_generation_increases_with_clearness(t_h):
    solar, settings = SolarParams(), Settings()
    powers = [
        solar_power_w(t_h * 3600.0, replace(Environment(), clearness=c), settings, solar, 1.5)[0]
        for c in (0.0, 0.4, 0.7, 1.0)
    ]
    assert all(b > a for a, b in zip(powers, powers[1:]))


def test_overcast_still_has_diffuse_light():
    irr = irradiance(13.5 * 3600.0, replace(Environment(), clearness=0.0), Settings(), SolarParams())
    assert irr.direct_w_m2 == 0.0
    assert irr.diffuse_w_m2 > 0.0


def test_clear_sky_noon_magnitude():
    irr = irradiance(13.5 * 3600.0, Environment(), Settings(), SolarParams())
    total = irr.direct_w_m2 + irr.diffuse_w_m2
    assert 800.0 < total < 1200.0


def test_higher_altitude_more_direct_irradiance():
    env, settings, solar = Environment(), Settings(), SolarParams()
    low = irradiance(10.0 * 3600.0, env, settings, solar, altitude_m=0.0)
    high = irradiance(10.0 * 3600.0, env, settings, solar, altitude_m=3000.0)
    assert high.direct_w_m2 > low.direct_w_m2


def test_aoi_reduces_direct_component():
    env, solar = Environment(), SolarParams()
    plain = irradiance(9.0 * 3600.0, env, Settings(), solar)
    with_aoi = irradiance(9.0 * 3600.0, env, replace(Settings(), use_aoi=True), solar)
    assert with_aoi.direct_w_m2 < plain.direct_w_m2
    assert with_aoi.diffuse_w_m2 == pytest.approx(plain.diffuse_w_m2)


def test_direct_diffuse_efficiencies():
    env, solar = Environment(), SolarParams()
    t = 13.5 * 3600.0
    p_plain, _ = solar_power_w(t, env, Settings(), solar, 1.0)
    p_split, _ = solar_power_w(t, env, replace(Settings(), use_dir_diff_rad=True), solar, 1.0)
    assert p_split < p_plain


def test_elevation_peaks_at_solar_noon():
    env = Environment()
    t_noon = 43200.0 - solar_time_s(0.0, env)
    assert time_after_solar_noon_s(t_noon, env) == pytest.approx(0.0, abs=1e-6)
    elevation, _ = sun_position(t_noon, env)
    expected = 90.0 - env.lat_deg + math.degrees(declination_rad(env.day_of_year))
    assert math.degrees(elevation) == pytest.approx(expected, abs=1e-6)
    assert sun_position(t_noon - 3600.0, env)[0] < elevation
    assert sun_position(t_noon + 3600.0, env)[0] < elevation


def test_extraterrestrial_flux_follows_earth_orbit():
    env, settings, solar = Environment(), Settings(), SolarParams()
    t = 13.5 * 3600.0
    january = irradiance(t, replace(env, day_of_year=4.0, lat_deg=0.0), settings, solar)
    july = irradiance(t, replace(env, day_of_year=186.0, lat_deg=0.0), settings, solar)
    # perihelion in early January, similar sun elevation at the equator
    assert abs(january.elevation_rad - july.elevation_rad) < math.radians(5.0)
    assert january.direct_w_m2 / math.sin(january.elevation_rad) > july.direct_w_m2 / math.sin(july.elevation_rad)


@pytest.mark.parametrize("changes", [{"clearness": 1.2}, {"clearness": math.nan}, {"albedo": -0.1}])
def test_out_of_range_environment_rejected(changes):
    with pytest.raises(InvalidDesignError, match="must be in"):
        irradiance(13.5 * 3600.0, replace(Environment(), **changes), Settings(), SolarParams())
