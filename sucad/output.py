"""Report, table and plot writers for sweep and single-configuration runs."""

from __future__ import annotations

import json
import logging
import math
import time
from dataclasses import asdict, is_dataclass
from pathlib import Path
from typing import Dict, List, Optional

import numpy as np
import pandas as pd

from sucad.config import SucadConfig
from sucad.models.energy_balance import FlightTrajectory
from sucad.models.performance_metrics import DesignResult, PerfResult
from sucad.sweep import SweepResults, cell_inputs, result_line
from sucad.units import units

logger = logging.getLogger(__name__)


def _fmt_h(value_s: float) -> str:
    if not math.isfinite(value_s):
        return "    n/a"
    return f"{units.s_to_h(value_s):7.2f}"


def performance_summary_text(perf: PerfResult, design: DesignResult) -> str:
    """Human-readable block for one configuration (times already display-shifted)."""

    lines = [
        "=================== SUCAD performance ===================",
        f"Total mass           : {design.m_total:8.2f} kg (battery {design.m_bat:.2f} kg, rest {design.m_no_bat:.2f} kg)",
        f"  structure          : {design.m_struct:8.2f} kg",
        f"  solar modules      : {design.m_solar:8.2f} kg",
        f"  MPPT               : {design.m_mppt:8.2f} kg",
        f"  propulsion         : {design.m_prop:8.2f} kg",
        f"  avionics + payload : {design.m_avionics + design.m_payload:8.2f} kg",
        f"Wing / solar area    : {design.wing_area:8.2f} / {design.solar_area:.2f} m^2",
        f"Battery energy       : {units.j_to_wh(design.E_bat_max_j):8.1f} Wh",
        f"P_elec level (nom.)  : {perf.P_elec_level_tot_nom:8.2f} W",
        "---------------------------------------------------------",
        f"Minimum SoC          : {perf.min_SoC * 100.0:8.2f} %",
        f"Excess time          : {_fmt_h(perf.t_excess)} h",
        f"Charge margin        : {_fmt_h(perf.t_chargemargin)} h",
        f"Endurance            : {_fmt_h(perf.t_endurance)} h ({perf.endurance_days:.2f} days)",
        "---------------------------------------------------------",
        f"Sunrise              : {_fmt_h(perf.t_sunrise)} h",
        f"Equilibrium (morning): {_fmt_h(perf.t_eq)} h",
        f"Max. generation      : {_fmt_h(perf.t_max)} h",
        f"Full charge          : {_fmt_h(perf.t_fullcharge)} h",
        f"Equilibrium (evening): {_fmt_h(perf.t_eq2)} h",
        f"Sunset               : {_fmt_h(perf.t_sunset)} h",
    ]
    if math.isfinite(perf.h_max_eternal):
        lines.append(f"Max. sustained alt.  : {perf.h_max_eternal:8.1f} m")
    lines.append("========================== END ==========================")
    return "\n".join(lines)


class OutputWriter:
    def __init__(self, cfg: SucadConfig):
        self._cfg = cfg
        shift = cfg.environment.plot_solar_timeshift_h
        self._shift_h = shift if abs(shift) > 0.01 else 0.0

    @property
    def display_shift_h(self) -> float:
        return self._shift_h

    def write_results_text(
        self,
        *,
        results: SweepResults,
        out_dir: Path,
        execution_time_s: Optional[float] = None,
    ) -> Path:
        """Write the one-line-per-configuration result list (and failures)."""

        out_dir.mkdir(parents=True, exist_ok=True)
        lines: List[str] = ["*** Performance solutions ***"]
        for index, perf, design, flight in results.iter_results():
            n = results.cell_number(index)
            _, environment = cell_inputs(self._cfg, results.axes, index)
            lines.append(result_line(n, environment, (perf, design, flight), self._shift_h))

        if results.failures:
            lines.append("")
            lines.append("*** Failed configurations ***")
            for index, message in sorted(results.failures.items(), key=lambda item: results.cell_number(item[0])):
                lines.append(f"#{results.cell_number(index)}| {index} {results.axis_values(index)}: {message}")

        if results.size == 1 and len(results) == 1:
            _, perf, design, _ = next(results.iter_results())
            lines.append("")
            lines.append(performance_summary_text(perf.shifted(self._shift_h), design))

        if execution_time_s is not None and math.isfinite(float(execution_time_s)):
            lines.append(f"Execution time: {float(execution_time_s):.1f} seconds")

        path = out_dir / "PerformanceResults.txt"
        path.write_text("\n".join(lines) + "\n", encoding="utf-8")
        return path

    def write_results_table(self, *, results: SweepResults, out_dir: Path) -> pd.DataFrame:
        out_dir.mkdir(parents=True, exist_ok=True)
        df = results.to_dataframe(shift_h=self._shift_h)
        df.to_csv(out_dir / "PerformanceResults.csv", index=False)
        df.to_excel(str(out_dir / "PerformanceResults.xlsx"), index=False)
        logger.info("Wrote %d result rows to %s", len(df), out_dir)
        return df

    @staticmethod
    def _to_jsonable(value: object) -> object:
        if is_dataclass(value):
            return OutputWriter._to_jsonable(asdict(value))
        if isinstance(value, Path):
            return str(value)
        if isinstance(value, np.ndarray):
            return [OutputWriter._to_jsonable(v) for v in value.tolist()]
        if isinstance(value, np.generic):
            return OutputWriter._to_jsonable(value.item())
        if isinstance(value, dict):
            return {str(k): OutputWriter._to_jsonable(v) for k, v in value.items()}
        if isinstance(value, (list, tuple, set)):
            return [OutputWriter._to_jsonable(v) for v in value]
        if isinstance(value, float) and not math.isfinite(value):
            return None
        if isinstance(value, (str, int, float, bool)) or value is None:
            return value
        return str(value)

    @classmethod
    def _flatten_for_table(cls, value: object, prefix: str, out: Dict[str, object]) -> None:
        normalized = cls._to_jsonable(value)
        if isinstance(normalized, dict):
            for key, sub_value in normalized.items():
                child = f"{prefix}.{key}" if prefix else str(key)
                cls._flatten_for_table(sub_value, child, out)
            return
        if isinstance(normalized, list):
            if not normalized:
                if prefix:
                    out[prefix] = ""
                return
            for i, sub_value in enumerate(normalized):
                child = f"{prefix}.{i}" if prefix else str(i)
                cls._flatten_for_table(sub_value, child, out)
            return
        if prefix:
            out[prefix] = normalized

    def write_case_variable_exports(
        self,
        *,
        results: SweepResults,
        out_dir: Path,
        input_path: Optional[Path] = None,
        execution_time_s: Optional[float] = None,
    ) -> Path:
        """Write config and raw (unshifted) results as JSON, plus the flat config as CSV."""

        out_dir.mkdir(parents=True, exist_ok=True)

        cells = []
        for index, perf, design, flight in results.iter_results():
            cells.append(
                {
                    "index": list(index),
                    "axis_values": results.axis_values(index),
                    "perf": perf,
                    "design": design,
                    "flight": flight,
                }
            )

        payload = {
            "meta": {
                "generated_at": time.strftime("%Y-%m-%d %H:%M:%S"),
                "input_path": str(input_path) if input_path is not None else "",
                "output_path": str(out_dir),
                "execution_time_s": float(execution_time_s) if execution_time_s is not None else None,
                "display_shift_h": self._shift_h,
            },
            "config_used": self._cfg,
            "axes": [{"variable": ax.variable.value, "values": ax.values} for ax in results.axes],
            "results": cells,
            "failures": [{"index": list(k), "error": v} for k, v in sorted(results.failures.items())],
        }

        json_payload = self._to_jsonable(payload)
        json_path = out_dir / "all_case_variables.json"
        json_path.write_text(json.dumps(json_payload, ensure_ascii=False, indent=2), encoding="utf-8")

        flat_row: Dict[str, object] = {}
        self._flatten_for_table(json_payload["config_used"], "", flat_row)
        pd.DataFrame([flat_row]).to_csv(out_dir / "config_used_flat.csv", index=False)
        logger.debug("Wrote %s", json_path)
        return json_path

    def write_time_history(
        self,
        *,
        trajectory: FlightTrajectory,
        perf: PerfResult,
        out_dir: Path,
        show_plot: bool = False,
    ) -> None:
        """Plot SoC, power and altitude of a single configuration and export the samples."""

        if show_plot:
            import matplotlib.pyplot as plt
        else:
            import matplotlib
            matplotlib.use("Agg", force=True)
            import matplotlib.pyplot as plt

        shift_s = units.h_to_s(self._shift_h)
        t_h = (trajectory.t_s + shift_s) / 3600.0
        shown = perf.shifted(self._shift_h)

        fig, (ax_soc, ax_pow, ax_alt) = plt.subplots(3, 1, sharex=True, figsize=(9, 8))

        ax_soc.plot(t_h, trajectory.soc * 100.0, color="blue")
        ax_soc.set_ylabel("SoC (%)")
        ax_soc.set_ylim(0.0, 105.0)
        ax_soc.set_title(f"Minimum SoC {perf.min_SoC * 100.0:.1f} %")

        ax_pow.plot(t_h, trajectory.p_gen_w, color="orange", label="Solar (generated)")
        ax_pow.plot(t_h, trajectory.p_cons_w, color="gray", label="Consumed")
        for name, color in (("t_sunrise", "gold"), ("t_eq", "green"), ("t_fullcharge", "blue"), ("t_eq2", "green"), ("t_sunset", "red")):
            value = getattr(shown, name)
            if math.isfinite(value):
                ax_pow.axvline(value / 3600.0, color=color, linestyle="dashed", linewidth=0.8)
        ax_pow.set_ylabel("Power (W)")
        ax_pow.legend(loc="upper right")

        ax_alt.plot(t_h, trajectory.h_m, color="black")
        ax_alt.set_ylabel("Altitude (m)")
        ax_alt.set_xlabel("Time (h)" + (" solar time" if self._shift_h else ""))

        for ax in (ax_soc, ax_pow, ax_alt):
            ax.grid(True)
        fig.tight_layout()

        out_dir.mkdir(parents=True, exist_ok=True)
        fig.savefig(str(out_dir / "Simulation Time Plot.png"), dpi=200)
        if show_plot:
            plt.show()
        plt.close(fig)

        df = pd.DataFrame(
            {
                "t_h": t_h,
                "P_solar_W": trajectory.p_gen_w,
                "P_consumed_W": trajectory.p_cons_w,
                "SoC": trajectory.soc,
                "h_m": trajectory.h_m,
                "sun_elevation_deg": np.degrees(trajectory.elevation_rad),
            }
        )
        df.to_excel(str(out_dir / "TimeHistory.xlsx"), index=False)
        logger.info("Wrote time history (%d samples) to %s", len(df), out_dir)

    def write_sweep_plot(
        self,
        *,
        results: SweepResults,
        out_dir: Path,
        show_plot: bool = False,
    ) -> Optional[Path]:
        """Metrics over the first sweep axis, one curve per combination of the other axes."""

        if not results.axes or len(results) == 0:
            return None

        if show_plot:
            import matplotlib.pyplot as plt
        else:
            import matplotlib
            matplotlib.use("Agg", force=True)
            import matplotlib.pyplot as plt

        df = results.to_dataframe(shift_h=self._shift_h)
        x_name = results.axes[0].variable.value
        others = [ax.variable.value for ax in results.axes[1:]]
        metrics = (
            ("min_SoC", "Minimum SoC (-)"),
            ("t_excess_h", "Excess time (h)"),
            ("t_chargemargin_h", "Charge margin (h)"),
        )

        fig, axes = plt.subplots(len(metrics), 1, sharex=True, figsize=(9, 9))
        groups = df.groupby(others) if others else [((), df)]
        for key, group in groups:
            key = key if isinstance(key, tuple) else (key,)
            label = ", ".join(f"{n}={v:g}" for n, v in zip(others, key)) or None
            group = group.sort_values(x_name)
            for ax, (col, _) in zip(axes, metrics):
                ax.plot(group[x_name], group[col], marker="o", label=label)

        for ax, (_, ylabel) in zip(axes, metrics):
            ax.set_ylabel(ylabel)
            ax.grid(True)
        axes[-1].set_xlabel(x_name)
        if others:
            axes[0].legend(loc="best", fontsize="small")
        fig.tight_layout()

        out_dir.mkdir(parents=True, exist_ok=True)
        path = out_dir / "Sweep Results.png"
        fig.savefig(str(path), dpi=200)
        if show_plot:
            plt.show()
        plt.close(fig)
        return path
