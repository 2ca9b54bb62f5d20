import math
import warnings
from dataclasses import astuple, replace

import numpy as np
import pytest

from sucad.config import Design
from sucad.evaluation import evaluate_solution
from sucad.exceptions import ConvergenceWarning, InvalidDesignError


def test_reference_scenario(design, environment, params, settings):
    perf, design_res, flight = evaluate_solution(design, environment, params, settings)

    assert perf.min_SoC > 0.0
    assert perf.t_excess > 0.0
    assert perf.t_chargemargin > 0.0
    assert perf.t_chargemargin >= perf.t_excess
    assert perf.t_endurance == pytest.approx(settings.sim_time_days * 86400.0, abs=settings.dt_s)
    assert design_res.m_total == pytest.approx(6.8, abs=0.05)
    assert (flight.b, flight.m_bat, flight.AR) == (5.6, 2.9, 18.5)


def test_event_ordering(design, environment, params, settings):
    perf, _, _ = evaluate_solution(design, environment, params, settings)
    assert perf.t_sunrise < perf.t_eq < perf.t_fullcharge <= perf.t_eq2 < perf.t_sunset


def test_display_shift_is_not_applied(design, environment, params, settings):
    perf, _, _ = evaluate_solution(design, environment, params, settings)
    # clock on daylight saving time: solar noon is well after 12:00
    assert perf.t_max / 3600.0 > 12.5


def test_deterministic(design, environment, params, settings):
    a = evaluate_solution(design, environment, params, settings)
    b = evaluate_solution(design, environment, params, settings)
    for x, y in zip(a, b):
        np.testing.assert_array_equal(np.array(astuple(x), dtype=float), np.array(astuple(y), dtype=float))


def test_cloudy_day_delays_full_charge(design, environment, params, settings):
    clear, _, _ = evaluate_solution(design, environment, params, settings)
    with warnings.catch_warnings():
        warnings.simplefilter("ignore", ConvergenceWarning)
        cloudy, _, _ = evaluate_solution(design, replace(environment, clearness=0.4), params, settings)
    assert math.isnan(cloudy.t_fullcharge) or cloudy.t_fullcharge > clear.t_fullcharge
    assert cloudy.t_chargemargin <= clear.t_chargemargin


def test_min_soc_monotone_in_clearness(design, environment, params, coarse_settings):
    values = []
    with warnings.catch_warnings():
        warnings.simplefilter("ignore", ConvergenceWarning)
        for clearness in (0.2, 0.4, 0.7, 1.0):
            perf, _, _ = evaluate_solution(design, replace(environment, clearness=clearness), params, coarse_settings)
            values.append(perf.min_SoC)
    assert all(b >= a - 1e-9 for a, b in zip(values, values[1:]))


def test_min_soc_within_unit_interval(environment, params, coarse_settings):
    with warnings.catch_warnings():
        warnings.simplefilter("ignore", ConvergenceWarning)
        for m_bat in (0.5, 2.9, 6.5):
            perf, _, _ = evaluate_solution(replace(Design(), battery_mass_kg=m_bat), environment, params, coarse_settings)
            assert 0.0 <= perf.min_SoC <= 1.0


def test_small_battery_has_limited_endurance(environment, params, coarse_settings):
    with warnings.catch_warnings():
        warnings.simplefilter("ignore", ConvergenceWarning)
        perf, _, _ = evaluate_solution(replace(Design(), battery_mass_kg=0.5), environment, params, coarse_settings)
    assert perf.min_SoC == 0.0
    assert perf.endurance_days < 1.0


def test_find_max_altitude_reported(design, environment, params, coarse_settings):
    perf, _, _ = evaluate_solution(design, environment, params, replace(coarse_settings, find_max_altitude=True))
    assert environment.h_0_m <= perf.h_max_eternal <= environment.h_max_m


def test_invalid_design_raises(environment, params, settings):
    with pytest.raises(InvalidDesignError):
        evaluate_solution(replace(Design(), wing_span_m=-2.0), environment, params, settings)


def test_polar_night_starts_from_initial_condition(design, environment, params, coarse_settings):
    env = replace(environment, lat_deg=80.0, day_of_year=355.0)
    with pytest.warns(ConvergenceWarning, match="equilibrium"):
        perf, _, _ = evaluate_solution(design, env, params, coarse_settings)
    assert math.isnan(perf.t_sunrise)
    assert math.isnan(perf.t_eq)
    assert perf.min_SoC == 0.0
    assert perf.t_endurance < 2 * 86400.0


@pytest.mark.parametrize("changes", [{"clearness": 1.2}, {"clearness": -0.1}, {"albedo": 1.5}])
def test_out_of_range_environment_raises(design, environment, params, coarse_settings, changes):
    with pytest.raises(InvalidDesignError, match=next(iter(changes))):
        evaluate_solution(design, replace(environment, **changes), params, coarse_settings)
