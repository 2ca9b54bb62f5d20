"""Command-line entry point: evaluate a design grid from an input file."""

from __future__ import annotations

import argparse
import logging
import os
import shutil
import time
from pathlib import Path
from typing import List, Optional

from sucad.config import load_config, write_input_template
from sucad.models.aero_structure import derive_design
from sucad.models.energy_balance import scan_reference_day, simulate
from sucad.output import OutputWriter, performance_summary_text
from sucad.sweep import GridSweep, axes_from_config, single_configuration

logger = logging.getLogger(__name__)


def _output_subdir_from_input(input_path: Path) -> str:
    stem = input_path.stem
    if stem.startswith("input_"):
        return stem[len("input_"):]
    return stem


def main(argv: Optional[List[str]] = None) -> Optional[float]:
    logging.basicConfig(level=logging.INFO, format="%(message)s")
    start_time = time.perf_counter()

    default_input = Path(__file__).with_name("input_SUCAD.txt")

    parser = argparse.ArgumentParser(
        description="Solar UAV Conceptual Aircraft Design (SUCAD) - performance sweep",
    )
    parser.add_argument(
        "-i",
        "--input",
        default=str(default_input),
        help="Path to input file (INI-style). Default: input_SUCAD.txt next to this script.",
    )
    parser.add_argument(
        "--outdir",
        default=str(Path.cwd()),
        help="Output directory for result tables, plots and the text summary.",
    )
    parser.add_argument(
        "--jobs",
        type=int,
        default=1,
        help="Number of worker processes for the sweep (1 = serial).",
    )
    parser.add_argument(
        "--show-plot",
        action="store_true",
        help="Show the plot windows.",
    )
    parser.add_argument(
        "--write-template",
        action="store_true",
        help="Write a full template input file to --input and exit.",
    )

    args = parser.parse_args(argv)

    if not args.show_plot:
        os.environ.setdefault("MPLBACKEND", "Agg")

    input_path = Path(args.input).expanduser()
    if args.write_template:
        write_input_template(input_path)
        logger.info("Wrote template input file: %s", input_path)
        return None

    if not input_path.exists():
        raise FileNotFoundError(
            f"Input file not found: {input_path}. "
            "Run with --write-template to generate a template."
        )

    cfg = load_config(input_path)
    if cfg.settings.debug:
        logging.getLogger().setLevel(logging.DEBUG)

    out_root = Path(args.outdir).expanduser()
    out_dir = out_root / _output_subdir_from_input(input_path)
    out_dir.mkdir(parents=True, exist_ok=True)

    # Copy the input file into the output folder for traceability
    input_copy_path = out_dir / input_path.name
    if input_copy_path.resolve() != input_path.resolve():
        shutil.copy2(input_path, input_copy_path)

    axes = axes_from_config(cfg.sweep)
    mode = "parallel" if args.jobs > 1 else "serial"
    sweep = GridSweep(cfg, axes, mode=mode, jobs=args.jobs)
    try:
        results = sweep.run()
    except KeyboardInterrupt:
        sweep.request_stop()
        raise

    writer = OutputWriter(cfg)
    single = single_configuration(results)
    if single is not None:
        perf, design_res, _ = single
        print()
        print(performance_summary_text(perf.shifted(writer.display_shift_h), design_res))

        # The engine keeps no trajectory; rerun the single configuration for the time plot.
        _, design, environment = next(sweep.cells())
        derived = derive_design(design, environment, cfg.params)
        events = scan_reference_day(derived, environment, cfg.params, cfg.settings)
        trajectory = simulate(derived, environment, cfg.params, cfg.settings, events=events)
        writer.write_time_history(
            trajectory=trajectory,
            perf=perf,
            out_dir=out_dir,
            show_plot=bool(args.show_plot),
        )
    else:
        writer.write_sweep_plot(results=results, out_dir=out_dir, show_plot=bool(args.show_plot))

    writer.write_results_table(results=results, out_dir=out_dir)
    elapsed_time = time.perf_counter() - start_time
    writer.write_results_text(results=results, out_dir=out_dir, execution_time_s=elapsed_time)
    writer.write_case_variable_exports(
        results=results,
        out_dir=out_dir,
        input_path=input_path,
        execution_time_s=elapsed_time,
    )
    logger.info("Results written to %s", out_dir)
    return elapsed_time


if __name__ == "__main__":
    elapsed_time = main()
    if elapsed_time is not None:
        print("\n\n=============================================================")
        print(f"Execution time: {elapsed_time:.1f} seconds")
        print("=============================================================")
