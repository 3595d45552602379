"""Command line entry point for model runs.

Examples::

    python -m detmalaria.run --config configs/base.yml
    python -m detmalaria.run --stable --override transmission.init_EIR=50
"""
from __future__ import annotations

import argparse
import logging
import math
from pathlib import Path
from typing import Any, Dict, List, Optional

import pandas as pd

from . import config_utils
from .errors import DetMalariaError
from .io import writer
from .orchestrator import run_model, run_model_until_stable
from .parameters import RESERVED_PARAMETERS
from .runtime import float_or_nan, format_exception_short
from .schema import Config

logger = logging.getLogger(__name__)


def run_from_config(cfg: Config) -> pd.DataFrame:
    """Run the model described by ``cfg`` and return its output."""

    common: Dict[str, Any] = {
        "model": cfg.model,
        "het_brackets": cfg.population.het_brackets,
        "age": cfg.population.age,
        "init_EIR": cfg.transmission.init_EIR,
        "init_ft": cfg.transmission.init_ft,
        "country": cfg.transmission.country,
        "admin2": cfg.transmission.admin2,
        "seasonality": cfg.transmission.seasonality_table,
    }
    standard = {key: value for key, value in cfg.params.items() if key in RESERVED_PARAMETERS}
    extras = {key: value for key, value in cfg.params.items() if key not in RESERVED_PARAMETERS}
    common["extra_params"] = extras or None
    solver = cfg.run.solver.options()
    if cfg.run.mode == "stable":
        return run_model_until_stable(
            tolerance=cfg.run.tolerance,
            max_t=cfg.run.max_t,
            window=cfg.run.window,
            observable=cfg.run.observable,
            solver=solver,
            **common,
            **standard,
        )
    return run_model(time=cfg.run.time, solver=solver, **common, **standard)


def summarise(out: pd.DataFrame, cfg: Config) -> Dict[str, Any]:
    """Return the run summary written next to the series."""

    final = out.iloc[-1]
    summary: Dict[str, Any] = {
        "mode": cfg.run.mode,
        "model": cfg.model,
        "rows": int(len(out)),
        "t_start": float_or_nan(out["t"].iloc[0]),
        "t_final": float_or_nan(final["t"]),
        "EIR_final": float_or_nan(final.get("EIR_out")),
        "prev_final": float_or_nan(final.get("prev")),
        "inc_final": float_or_nan(final.get("inc")),
        "init_EIR": cfg.transmission.init_EIR,
        "init_ft": cfg.transmission.init_ft,
        "params": dict(cfg.params),
    }
    stabilisation = out.attrs.get("stabilisation")
    if stabilisation:
        summary["stabilisation"] = dict(stabilisation)
    return {
        key: (None if isinstance(value, float) and not math.isfinite(value) else value)
        for key, value in summary.items()
    }


def write_outputs(out: pd.DataFrame, cfg: Config) -> Path:
    """Write the series and summary under ``cfg.io.outdir``."""

    outdir = Path(cfg.io.outdir)
    if cfg.io.format == "csv":
        series_path = outdir / "series.csv"
        writer.write_csv(out, series_path)
    else:
        series_path = outdir / "series.parquet"
        writer.write_parquet(out, series_path)
    writer.write_summary(summarise(out, cfg), outdir / "summary.json")
    logger.info("Wrote %d rows to %s", len(out), series_path)
    return series_path


def main(argv: Optional[List[str]] = None) -> int:
    """Command line entry point."""

    parser = argparse.ArgumentParser(description="Run the deterministic malaria model")
    parser.add_argument("--config", type=Path, help="Path to YAML configuration")
    parser.add_argument("--model", help="Override the model variant")
    parser.add_argument(
        "--stable",
        action="store_true",
        help="Run until the output is stable (run.mode=stable)",
    )
    parser.add_argument("--outdir", type=Path, help="Override io.outdir")
    parser.add_argument(
        "--override",
        action="append",
        nargs="+",
        metavar="PATH=VALUE",
        help="Apply configuration overrides using dotted paths; e.g. --override params.rho=0.8",
    )
    parser.add_argument(
        "--overrides-file",
        action="append",
        type=Path,
        help="Load overrides from a file (one PATH=VALUE per line).",
    )
    parser.add_argument(
        "--quiet",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Suppress INFO logs and Python warnings.",
    )
    args = parser.parse_args(argv)

    override_list: List[str] = []
    for override_path in args.overrides_file or []:
        override_list.extend(config_utils.read_overrides_file(override_path))
    for group in args.override or []:
        override_list.extend(group)
    if args.model is not None:
        override_list.append(f"model={args.model}")
    if args.stable:
        override_list.append("run.mode=stable")
    if args.outdir is not None:
        override_list.append(f"io.outdir={args.outdir}")

    try:
        cfg = config_utils.load_config(args.config, overrides=override_list)
    except DetMalariaError as exc:
        parser.error(format_exception_short(exc))
    if args.quiet is not None:
        cfg.io.quiet = bool(args.quiet)
    config_utils.configure_logging(
        logging.WARNING if cfg.io.quiet else logging.INFO,
        suppress_warnings=cfg.io.quiet,
    )

    try:
        out = run_from_config(cfg)
    except DetMalariaError as exc:
        logger.error("Run failed: %s", format_exception_short(exc))
        return 1
    write_outputs(out, cfg)
    return 0


__all__ = ["main", "run_from_config", "summarise", "write_outputs"]


if __name__ == "__main__":  # pragma: no cover - standard CLI entrypoint
    raise SystemExit(main())
