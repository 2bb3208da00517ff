"""
Pipeline (load -> derive -> aggregate/summarize)
================================================

This module wires the stages together. Every stage receives its input as an
argument and returns a new value; there is no module-level dataset.

    result = run_pipeline(["ob_report_2016.csv", "ob_report_2017.csv"])
    result.tables["setting_share_by_year"]   # List[GroupCount]
    result.summary                           # List[SummaryRow]

The standard breakdowns are the tables the outbreak report is built from.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Sequence, Tuple
import logging

from .aggregate import aggregate
from .derive import derive_records
from .loader import LoaderConfig, load_outbreak_files
from .models import ANALYSIS_FIELDS, GroupCount, OutbreakRecord, SummaryRow
from .summary import summarize

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Breakdown:
    """One aggregated table: what to group by, which records, and whether to normalize."""
    name: str
    title: str
    group_by: Tuple[str, ...]
    where: Optional[str] = None
    normalize: bool = False


STANDARD_BREAKDOWNS: Tuple[Breakdown, ...] = (
    Breakdown("by_year", "Outbreaks per year", ("year",)),
    Breakdown("by_year_type", "Outbreaks per year by outbreak type", ("year", "outbreak_type")),
    Breakdown("type_share_by_year", "Share of outbreak types within each year",
              ("year", "outbreak_type"), normalize=True),
    Breakdown("by_year_setting", "Outbreaks per year by setting", ("year", "setting")),
    Breakdown("setting_share_by_year", "Share of settings within each year",
              ("year", "setting"), normalize=True),
    Breakdown("respiratory_setting_share_by_year", "Respiratory outbreaks: share of settings within each year",
              ("year", "setting"), where="outbreak_type == 'Respiratory'", normalize=True),
    Breakdown("enteric_setting_share_by_year", "Enteric outbreaks: share of settings within each year",
              ("year", "setting"), where="outbreak_type == 'Enteric'", normalize=True),
    Breakdown("type_share_by_setting", "Share of outbreak types within each setting",
              ("setting", "outbreak_type"), normalize=True),
)


@dataclass
class PipelineResult:
    """Everything one run produced, ready for the report layer."""
    records: List[OutbreakRecord]
    skipped_rows: int
    source_files: List[str] = field(default_factory=list)
    tables: Dict[str, List[GroupCount]] = field(default_factory=dict)
    titles: Dict[str, str] = field(default_factory=dict)
    summary: List[SummaryRow] = field(default_factory=list)


def run_breakdowns(records: Sequence[OutbreakRecord],
                   breakdowns: Iterable[Breakdown] = STANDARD_BREAKDOWNS) -> Dict[str, List[GroupCount]]:
    """Compute each breakdown over the same records."""
    return {
        b.name: aggregate(records, b.group_by, where=b.where, normalize=b.normalize)
        for b in breakdowns
    }


def run_pipeline(
    paths: Iterable[str],
    breakdowns: Sequence[Breakdown] = STANDARD_BREAKDOWNS,
    summary_fields: Sequence[str] = ANALYSIS_FIELDS,
    loader_config: Optional[LoaderConfig] = None,
) -> PipelineResult:
    """Load the files, derive fields, then build every table and the summary.

    Raises LoadError if nothing usable could be loaded.
    """
    loaded = load_outbreak_files(paths, config=loader_config)
    records = derive_records(loaded.records)
    logger.info("Derived %d records from %d file(s)", len(records), len(loaded.source_files))

    return PipelineResult(
        records=records,
        skipped_rows=loaded.skipped_rows,
        source_files=list(loaded.source_files),
        tables=run_breakdowns(records, breakdowns),
        titles={b.name: b.title for b in breakdowns},
        summary=summarize(records, variables=summary_fields),
    )
