import json
import logging
import math
from dataclasses import replace

import pandas as pd
import pytest

from sucad.models.aero_structure import derive_design
from sucad.models.energy_balance import simulate
from sucad.output import OutputWriter, performance_summary_text
from sucad.sweep import GridSweep, SweepAxis, SweepVariable


@pytest.fixture
def sweep_results(config):
    axes = [SweepAxis(SweepVariable.WING_SPAN, (-1.0, 4.5, 5.6)), SweepAxis(SweepVariable.BATTERY_MASS, (2.9, 3.9))]
    return GridSweep(config, axes).run()


def test_results_table(tmp_path, config, sweep_results):
    writer = OutputWriter(config)
    df = writer.write_results_table(results=sweep_results, out_dir=tmp_path)
    assert len(df) == 4
    assert (tmp_path / "PerformanceResults.csv").exists()
    assert (tmp_path / "PerformanceResults.xlsx").exists()

    back = pd.read_csv(tmp_path / "PerformanceResults.csv")
    assert list(back["b_m"].unique()) == [4.5, 5.6]
    raw = sweep_results.to_dataframe()
    # event times are reported in solar time
    assert back["t_sunrise_h"].iloc[0] == pytest.approx(raw["t_sunrise_h"].iloc[0] + writer.display_shift_h)


def test_results_text_lists_failures(tmp_path, config, sweep_results):
    path = OutputWriter(config).write_results_text(results=sweep_results, out_dir=tmp_path, execution_time_s=1.25)
    text = path.read_text(encoding="utf-8")
    assert text.count("| Set: b:") == 4
    assert "*** Failed configurations ***" in text
    assert "InvalidDesignError" in text
    assert "#1| (0, 0, 0)" in text
    assert "Execution time: 1.2 seconds" in text or "Execution time: 1.3 seconds" in text


def test_case_variable_exports(tmp_path, config, sweep_results):
    path = OutputWriter(config).write_case_variable_exports(results=sweep_results, out_dir=tmp_path)
    payload = json.loads(path.read_text(encoding="utf-8"))
    assert payload["config_used"]["params"]["structure"]["corr_fact"] == 1.21
    assert payload["axes"][0] == {"variable": "wing_span", "values": [-1.0, 4.5, 5.6]}
    assert len(payload["results"]) == 4
    assert payload["failures"][0]["index"] == [0, 0, 0]
    assert payload["results"][0]["perf"]["h_max_eternal"] is None
    flat = pd.read_csv(tmp_path / "config_used_flat.csv")
    assert "design.wing_span_m" in flat.columns


def test_time_history_plot(tmp_path, config):
    env = config.environment
    derived = derive_design(config.design, env, config.params)
    traj = simulate(derived, env, config.params, config.settings)
    sweep = GridSweep(config, []).run()
    _, perf, _, _ = next(sweep.iter_results())

    OutputWriter(config).write_time_history(trajectory=traj, perf=perf, out_dir=tmp_path)
    assert (tmp_path / "Simulation Time Plot.png").stat().st_size > 0
    df = pd.read_excel(tmp_path / "TimeHistory.xlsx")
    assert len(df) == len(traj.t_s)
    assert df["SoC"].between(0.0, 1.0).all()


def test_sweep_plot(tmp_path, config, sweep_results):
    path = OutputWriter(config).write_sweep_plot(results=sweep_results, out_dir=tmp_path)
    assert path is not None and path.stat().st_size > 0


def test_summary_text_handles_missing_events(config):
    sweep = GridSweep(config, []).run()
    _, perf, design, _ = next(sweep.iter_results())
    text = performance_summary_text(perf, design)
    assert "Minimum SoC" in text
    assert "n/a" not in text

    text = performance_summary_text(replace(perf, t_fullcharge=math.nan), design)
    assert "n/a" in text


@pytest.mark.parametrize("mode, jobs", [("serial", 1), ("parallel", 2)])
def test_result_numbers_match_run_log(tmp_path, config, caplog, mode, jobs):
    axes = [SweepAxis(SweepVariable.WING_SPAN, (4.5, 5.5)), SweepAxis(SweepVariable.BATTERY_MASS, (2.5, 3.5))]
    with caplog.at_level(logging.INFO, logger="sucad.sweep"):
        results = GridSweep(config, axes, mode=mode, jobs=jobs).run()
    logged = sorted(r.getMessage() for r in caplog.records if r.getMessage().startswith("#"))

    path = OutputWriter(config).write_results_text(results=results, out_dir=tmp_path)
    written = [line for line in path.read_text(encoding="utf-8").splitlines() if line.startswith("#")]

    assert written == logged
    assert written[1].startswith("#2| Set: b:5.5 m_bat:2.5")
    assert written[2].startswith("#3| Set: b:4.5 m_bat:3.5")
