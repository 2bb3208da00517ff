"""
OHIE Command Line Interface (CLI)
=================================

Run the pipeline over one or more yearly outbreak files:

    python -m ohie.cli data/ob_report_2016.csv data/ob_report_2017.csv

Without `--by` it prints every standard breakdown. With `--by` it prints one
custom table:

    python -m ohie.cli data/*.csv --by year setting --normalize
    python -m ohie.cli data/*.csv --by year --where "outbreak_type == 'Enteric'"
    python -m ohie.cli data/*.csv --by year outbreak_type --export out/by_type.json
    python -m ohie.cli data/*.csv --summary

The CLI does not modify the input files.
"""

from __future__ import annotations
from typing import List, Optional, Sequence
import argparse
import logging
import os
import sys

from .aggregate import aggregate, crosstab, export_csv, export_json
from .exceptions import OhieError
from .models import GroupCount
from .pipeline import STANDARD_BREAKDOWNS, run_pipeline
from .summary import summary_to_frame

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(message)s"


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(prog="ohie", description="Outbreak counts and shares by year, type and setting")
    ap.add_argument("files", nargs="+", help="Outbreak files (CSV, TSV or XLSX), typically one per year")
    ap.add_argument("--by", nargs="+", metavar="FIELD",
                    help="Group by these fields; the last one is the stacking dimension")
    ap.add_argument("--where", help="Filter expression, e.g. \"outbreak_type == 'Respiratory' AND year >= 2020\"")
    ap.add_argument("--normalize", action="store_true", help="Add percentages within each partition")
    ap.add_argument("--summary", action="store_true", help="Print descriptive statistics of the analysis fields")
    ap.add_argument("--long", action="store_true", help="Print tables in long form instead of a crosstab")
    ap.add_argument("--export", metavar="PATH",
                    help="Write the table(s): a .csv/.json file with --by, else a directory of CSV files")
    ap.add_argument("--log-level", default="WARNING", choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    return ap


def _export(groups: List[GroupCount], path: str) -> None:
    if path.lower().endswith(".json"):
        export_json(groups, path)
    else:
        export_csv(groups, path)
    print(f"Exported {len(groups)} rows to {path}")


def _print_table(title: str, groups: List[GroupCount], normalized: bool, long: bool) -> None:
    print(title)
    print("-" * len(title))
    if not groups:
        print("(no records)\n")
        return
    if long:
        for g in groups:
            key = ", ".join(str(v) for v in g.key)
            pct = f"  {g.percentage:.2f}%" if g.percentage is not None else ""
            print(f"({key}): {g.count}{pct}")
    else:
        table = crosstab(groups, value="percentage" if normalized else "count")
        print(table.round(2).to_string() if normalized else table.to_string())
    print("")


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Entry point for the OHIE CLI.

    1) Load + derive the dataset
    2) Build the requested table(s)
    3) Print and/or export them
    """
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=getattr(logging, args.log_level), format=LOG_FORMAT,
                        datefmt="%Y-%m-%d %H:%M:%S")

    try:
        breakdowns = () if args.by else STANDARD_BREAKDOWNS
        result = run_pipeline(args.files, breakdowns=breakdowns)
        print(f"Loaded {len(result.records)} outbreaks from {len(result.source_files)} file(s) "
              f"({result.skipped_rows} rows skipped).\n")

        if args.by:
            groups = aggregate(result.records, args.by, where=args.where, normalize=args.normalize)
            _print_table("Outbreaks by " + ", ".join(args.by), groups, args.normalize, args.long)
            if args.export:
                _export(groups, args.export)
        else:
            if args.where:
                logger.warning("--where is only applied together with --by")
            for b in STANDARD_BREAKDOWNS:
                _print_table(result.titles[b.name], result.tables[b.name], b.normalize, args.long)
            if args.export:
                for b in STANDARD_BREAKDOWNS:
                    _export(result.tables[b.name], os.path.join(args.export, f"{b.name}.csv"))

        if args.summary:
            print("Summary statistics")
            print("------------------")
            print(summary_to_frame(result.summary).to_string(index=False))
    except (OhieError, ValueError, KeyError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
