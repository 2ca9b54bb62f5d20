"""Grid sweep over up to three design/environment variables.

Each grid cell is one independent call of ``evaluate_solution``. Cells can be
evaluated serially or in a process pool; a stop request is honoured between
cells and results are stored only once an evaluation has returned.
"""

from __future__ import annotations

import enum
import itertools
import logging
import time
from concurrent.futures import CancelledError, ProcessPoolExecutor, as_completed
from dataclasses import dataclass, replace
from threading import Event, Lock
from typing import Callable, Dict, Iterator, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from sucad.config import Design, Environment, Params, Settings, SucadConfig, SweepConfig, parse_values
from sucad.evaluation import evaluate_solution
from sucad.exceptions import InvalidDesignError
from sucad.models.performance_metrics import DesignResult, FlightData, PerfResult
from sucad.units import units

logger = logging.getLogger(__name__)

MAX_AXES = 3

CellIndex = Tuple[int, int, int]
CellResult = Tuple[PerfResult, DesignResult, FlightData]


class SweepVariable(enum.Enum):
    WING_SPAN = "wing_span"
    BATTERY_MASS = "battery_mass"
    ASPECT_RATIO = "aspect_ratio"
    CLEARNESS = "clearness"
    TURBULENCE = "turbulence"
    DAY_OF_YEAR = "day_of_year"
    LATITUDE = "latitude"

    @classmethod
    def from_name(cls, name: str) -> "SweepVariable":
        key = name.strip()
        for member in cls:
            if key.lower() == member.value or key.upper() == member.name:
                return member
        raise ValueError(
            f"Unknown sweep variable {name!r}. Allowed: {', '.join(m.value for m in cls)}"
        )

    def apply(self, design: Design, environment: Environment, value: float) -> Tuple[Design, Environment]:
        """Return (design, environment) with this variable set to value."""
        return _SETTERS[self](design, environment, float(value))


Setter = Callable[[Design, Environment, float], Tuple[Design, Environment]]

_SETTERS: Dict[SweepVariable, Setter] = {
    SweepVariable.WING_SPAN: lambda d, e, v: (replace(d, wing_span_m=v), e),
    SweepVariable.BATTERY_MASS: lambda d, e, v: (replace(d, battery_mass_kg=v), e),
    SweepVariable.ASPECT_RATIO: lambda d, e, v: (replace(d, aspect_ratio=v), e),
    SweepVariable.CLEARNESS: lambda d, e, v: (d, replace(e, clearness=v)),
    SweepVariable.TURBULENCE: lambda d, e, v: (d, replace(e, turbulence=v)),
    SweepVariable.DAY_OF_YEAR: lambda d, e, v: (d, replace(e, day_of_year=v)),
    SweepVariable.LATITUDE: lambda d, e, v: (d, replace(e, lat_deg=v)),
}


@dataclass(frozen=True)
class SweepAxis:
    variable: SweepVariable
    values: Tuple[float, ...]

    def __post_init__(self) -> None:
        if not self.values:
            raise ValueError(f"Sweep axis {self.variable.value} has no values.")


def axes_from_config(sweep: SweepConfig) -> List[SweepAxis]:
    """Build the sweep axes from the [sweep] section."""

    axes: List[SweepAxis] = []
    for name, raw in sweep.axes():
        try:
            values = parse_values(raw)
        except ValueError as exc:
            raise ValueError(f"Invalid values for sweep variable {name!r}: {raw!r}") from exc
        axes.append(SweepAxis(SweepVariable.from_name(name), values))
    return axes


def _check_axes(axes: Sequence[SweepAxis]) -> None:
    if len(axes) > MAX_AXES:
        raise ValueError(f"At most {MAX_AXES} sweep axes are supported, got {len(axes)}.")
    seen = [ax.variable for ax in axes]
    dup = sorted({v.value for v in seen if seen.count(v) > 1})
    if dup:
        raise ValueError(f"Sweep variables must be distinct, repeated: {', '.join(dup)}")


def grid_shape(axes: Sequence[SweepAxis]) -> CellIndex:
    lengths = [len(ax.values) for ax in axes]
    lengths += [1] * (MAX_AXES - len(lengths))
    return lengths[0], lengths[1], lengths[2]


def cell_indices(shape: CellIndex) -> Iterator[CellIndex]:
    """Cell indices in evaluation order, the first axis varying fastest."""
    n1, n2, n3 = shape
    for i3, i2, i1 in itertools.product(range(n3), range(n2), range(n1)):
        yield i1, i2, i3


class SweepResults:
    """Result collector: object arrays indexed [i1, i2, i3] by axis position.

    Unused axes have length 1. Cells that were not evaluated (stop request or
    failure) hold None.
    """

    def __init__(self, axes: Sequence[SweepAxis]):
        _check_axes(axes)
        self.axes: List[SweepAxis] = list(axes)
        self.perf = np.empty(self.shape, dtype=object)
        self.design = np.empty(self.shape, dtype=object)
        self.flight = np.empty(self.shape, dtype=object)
        self.failures: Dict[CellIndex, str] = {}

    @property
    def shape(self) -> CellIndex:
        return grid_shape(self.axes)

    @property
    def size(self) -> int:
        return int(np.prod(self.shape))

    def store(self, index: CellIndex, result: CellResult) -> None:
        perf, design, flight = result
        self.perf[index] = perf
        self.design[index] = design
        self.flight[index] = flight

    def record_failure(self, index: CellIndex, exc: BaseException) -> None:
        self.failures[index] = f"{type(exc).__name__}: {exc}"

    def axis_values(self, index: CellIndex) -> Dict[str, float]:
        return {ax.variable.value: ax.values[i] for ax, i in zip(self.axes, index)}

    def indices(self) -> Iterator[CellIndex]:
        return cell_indices(self.shape)

    def cell_number(self, index: CellIndex) -> int:
        """1-based position of a cell in evaluation order."""
        n1, n2, _ = self.shape
        i1, i2, i3 = index
        return 1 + i1 + n1 * (i2 + n2 * i3)

    def iter_results(self) -> Iterator[Tuple[CellIndex, PerfResult, DesignResult, FlightData]]:
        for index in self.indices():
            if self.perf[index] is not None:
                yield index, self.perf[index], self.design[index], self.flight[index]

    def __len__(self) -> int:
        return sum(1 for _ in self.iter_results())

    def to_dataframe(self, shift_h: float = 0.0) -> pd.DataFrame:
        """One row per evaluated cell; event times in hours, shifted by shift_h."""

        rows = []
        for index, perf, design, flight in self.iter_results():
            shown = perf.shifted(shift_h) if shift_h else perf
            row: Dict[str, object] = {"i1": index[0], "i2": index[1], "i3": index[2]}
            row.update(self.axis_values(index))
            row.update(
                {
                    "b_m": flight.b,
                    "AR": flight.AR,
                    "m_bat_kg": flight.m_bat,
                    "m_no_bat_kg": design.m_no_bat,
                    "m_total_kg": design.m_total,
                    "wing_area_m2": design.wing_area,
                    "solar_area_m2": design.solar_area,
                    "min_SoC": shown.min_SoC,
                    "t_excess_h": units.s_to_h(shown.t_excess),
                    "t_chargemargin_h": units.s_to_h(shown.t_chargemargin),
                    "t_endurance_h": units.s_to_h(shown.t_endurance),
                    "t_sunrise_h": units.s_to_h(shown.t_sunrise),
                    "t_eq_h": units.s_to_h(shown.t_eq),
                    "t_max_h": units.s_to_h(shown.t_max),
                    "t_fullcharge_h": units.s_to_h(shown.t_fullcharge),
                    "t_eq2_h": units.s_to_h(shown.t_eq2),
                    "t_sunset_h": units.s_to_h(shown.t_sunset),
                    "P_elec_level_tot_nom_w": shown.P_elec_level_tot_nom,
                    "h_max_reached_m": shown.h_max_reached,
                    "h_max_eternal_m": shown.h_max_eternal,
                }
            )
            rows.append(row)
        return pd.DataFrame(rows)


def cell_inputs(config: SucadConfig, axes: Sequence[SweepAxis], index: CellIndex) -> Tuple[Design, Environment]:
    """Design and environment of one grid cell."""
    design, environment = config.design, config.environment
    for ax, i in zip(axes, index):
        design, environment = ax.variable.apply(design, environment, ax.values[i])
    return design, environment


def _evaluate_cell(
    index: CellIndex,
    design: Design,
    environment: Environment,
    params: Params,
    settings: Settings,
) -> Tuple[CellIndex, CellResult]:
    return index, evaluate_solution(design, environment, params, settings)


def result_line(n: int, environment: Environment, result: CellResult, shift_h: float = 0.0) -> str:
    """One-line summary of an evaluated configuration."""

    perf, design, flight = result
    p = perf.shifted(shift_h) if shift_h else perf
    h = units.s_to_h
    return (
        f"#{n}| Set: b:{flight.b:g} m_bat:{flight.m_bat:g} AR:{flight.AR:g}   "
        f"DoY={environment.day_of_year:g},Lat={environment.lat_deg:g},"
        f"CLR={environment.clearness:g},Turb={environment.turbulence:g}   "
        f"Res:Soc_min={p.min_SoC * 100.0:.2f}%,T_exc={h(p.t_excess):.2f}h,"
        f"T_cm={h(p.t_chargemargin):.2f}h,T_end={h(p.t_endurance):.2f}h   "
        f"CharTimes:t_sr={h(p.t_sunrise):.2f}h t_eq1={h(p.t_eq):.2f}h t_fc={h(p.t_fullcharge):.2f}h "
        f"t_eq2={h(p.t_eq2):.2f}h t_ss={h(p.t_sunset):.2f}h "
        f"m={design.m_total:.2f} P={p.P_elec_level_tot_nom:.2f}"
    )


class GridSweep:
    """Evaluate every combination of the sweep axes.

    Args:
        config: base configuration; swept variables override its values.
        axes: up to three SweepAxis, outermost last.
        mode: "serial" or "parallel" (process pool).
        jobs: worker processes in parallel mode.
    """

    def __init__(
        self,
        config: SucadConfig,
        axes: Sequence[SweepAxis],
        mode: str = "serial",
        jobs: int = 1,
    ):
        if mode not in ("serial", "parallel"):
            raise ValueError(f"mode must be 'serial' or 'parallel', got {mode!r}.")
        _check_axes(axes)
        self.config = config
        self.axes = list(axes)
        self.mode = mode
        self.jobs = max(1, int(jobs))
        self._stop_requested = Event()
        self._progress_lock = Lock()
        self._done = 0

        shift = config.environment.plot_solar_timeshift_h
        self.display_shift_h = shift if abs(shift) > 0.01 else 0.0

    @property
    def stop_requested(self) -> bool:
        return self._stop_requested.is_set()

    def request_stop(self) -> None:
        self._stop_requested.set()
        logger.info("[sweep] stop requested.")

    def cells(self) -> Iterator[Tuple[CellIndex, Design, Environment]]:
        """Yield (index, design, environment) with the first axis varying fastest."""

        for index in cell_indices(grid_shape(self.axes)):
            design, environment = cell_inputs(self.config, self.axes, index)
            yield index, design, environment

    def _on_done(self, index: CellIndex, environment: Environment, result: CellResult, results: SweepResults) -> None:
        results.store(index, result)
        with self._progress_lock:
            self._done += 1
            done = self._done
        logger.info(result_line(results.cell_number(index), environment, result, self.display_shift_h))
        logger.debug("[sweep] %d/%d done", done, results.size)

    def _on_failed(self, index: CellIndex, exc: BaseException, results: SweepResults) -> None:
        results.record_failure(index, exc)
        with self._progress_lock:
            self._done += 1
        logger.warning(
            "[sweep] #%d %s %s failed: %s", results.cell_number(index), index, results.axis_values(index), exc
        )

    def run(self) -> SweepResults:
        results = SweepResults(self.axes)
        params, settings = self.config.params, self.config.settings
        self._done = 0
        start_time = time.perf_counter()

        logger.info("Number of configurations to be calculated: %d", results.size)

        if self.mode == "parallel" and self.jobs > 1:
            envs: Dict[CellIndex, Environment] = {}
            with ProcessPoolExecutor(max_workers=self.jobs) as pool:
                futures = {}
                for index, design, environment in self.cells():
                    envs[index] = environment
                    futures[pool.submit(_evaluate_cell, index, design, environment, params, settings)] = index
                for future in as_completed(futures):
                    if self._stop_requested.is_set():
                        for pending in futures:
                            if not pending.done():
                                pending.cancel()

                    index = futures[future]
                    try:
                        _, result = future.result()
                    except CancelledError:
                        continue
                    except InvalidDesignError as exc:
                        self._on_failed(index, exc, results)
                        continue
                    self._on_done(index, envs[index], result, results)
        else:
            for index, design, environment in self.cells():
                if self._stop_requested.is_set():
                    break
                try:
                    result = evaluate_solution(design, environment, params, settings)
                except InvalidDesignError as exc:
                    self._on_failed(index, exc, results)
                    continue
                self._on_done(index, environment, result, results)

        elapsed = time.perf_counter() - start_time
        logger.info(
            "[sweep] %d/%d configurations evaluated, %d failed, %.1f s%s",
            len(results),
            results.size,
            len(results.failures),
            elapsed,
            " (stopped)" if self._stop_requested.is_set() else "",
        )
        return results


def single_configuration(results: SweepResults) -> Optional[CellResult]:
    """The only result of a one-cell sweep, None otherwise."""
    if results.size != 1 or len(results) != 1:
        return None
    _, perf, design, flight = next(results.iter_results())
    return perf, design, flight
