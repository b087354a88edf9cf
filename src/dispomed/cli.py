"""Command line interface for the availability report."""
from __future__ import annotations

import argparse
import logging
from dataclasses import replace
from pathlib import Path

from .config import default_config
from .pipeline import run_pipeline
from .utils import parse_date


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Compute medication availability status and history")
    parser.add_argument("incidents", type=Path, help="Path to incidents CSV extract")
    parser.add_argument("output", type=Path, help="Path to write the product report CSV")
    parser.add_argument("audit", type=Path, help="Path to append the audit log CSV")
    parser.add_argument("--user", default="auto", help="Run user for audit logging")
    parser.add_argument("--months", type=int, help="Number of calendar months in the default window")
    start_group = parser.add_mutually_exclusive_group()
    start_group.add_argument("--window-start", type=parse_date, help="First day of the analysis window")
    start_group.add_argument(
        "--since-program-start",
        action="store_true",
        help="Start the window at the beginning of the reporting program",
    )
    parser.add_argument("--window-end", type=parse_date, help="Last day of the analysis window")
    parser.add_argument("--recency-days", type=int, help="Trailing days used to flag recent changes")
    parser.add_argument("--search", help="Keep products whose name or molecule contains this text")
    parser.add_argument("--atc", help="Keep products whose ATC code starts with this prefix")
    parser.add_argument("--log-level", default="INFO", choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    config = default_config()
    if args.months is not None:
        config = replace(config, months_to_show=args.months)
    if args.recency_days is not None:
        config = replace(config, recency_window_days=args.recency_days)
    window_start = config.program_start if args.since_program_start else args.window_start
    run_pipeline(
        incidents_csv=args.incidents,
        output_csv=args.output,
        audit_csv=args.audit,
        run_user=args.user,
        window_start=window_start,
        window_end=args.window_end,
        config=config,
        search=args.search,
        atc_code=args.atc,
    )
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
