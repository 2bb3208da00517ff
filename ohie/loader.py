"""
Dataset loader (CSV/Excel -> RawOutbreak list)
==============================================

This module reads the yearly outbreak files published by the health authority
and converts each row into a `RawOutbreak` object.

Key ideas:
- We try multiple possible column names because the yearly exports vary
  ("Outbreak Setting" in one year, "outbreak_setting" in another).
- Rows with a blank setting/type or an unparseable onset date are skipped and
  counted; they never abort the load.
- The loader returns a list of immutable records; OHIE never edits the files.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Iterable, List, Optional, Sequence, Tuple
import logging
import os
import re
import zipfile

import pandas as pd

from .exceptions import LoadError
from .models import RawOutbreak

logger = logging.getLogger(__name__)

SETTING_COLUMNS = ("outbreak_setting", "Outbreak Setting", "Setting")
TYPE_COLUMNS = ("type_of_outbreak", "Type of Outbreak", "Outbreak Type", "Type")
DATE_BEGAN_COLUMNS = ("date_outbreak_began", "Date Outbreak Began", "Date Began", "Onset Date")

INSTITUTION_NAME_COLUMNS = ("institution_name", "Institution Name")
INSTITUTION_ADDRESS_COLUMNS = ("institution_address", "Institution Address")
AGENT_1_COLUMNS = ("causative_agent_1", "Causative Agent-1", "Causative Agent 1")
AGENT_2_COLUMNS = ("causative_agent_2", "Causative Agent-2", "Causative Agent 2")
DATE_OVER_COLUMNS = ("date_declared_over", "Date Declared Over")
ACTIVE_COLUMNS = ("active", "Active")

EXCEL_SUFFIXES = (".xlsx", ".xlsm")


@dataclass
class LoaderConfig:
    """Knobs for reading the source files."""
    # Tried in order; the first that parses wins. Day-first for slashed dates.
    date_formats: Tuple[str, ...] = (
        "%Y-%m-%d",
        "%Y-%m-%dT%H:%M:%S",
        "%Y-%m-%d %H:%M:%S",
        "%Y/%m/%d",
        "%d/%m/%Y",
        "%B %d, %Y",
        "%b %d, %Y",
    )
    delimiter: str = ","
    encoding: str = "utf-8"


@dataclass
class LoadResult:
    """What the loader produced: the valid rows plus how many were dropped."""
    records: List[RawOutbreak]
    skipped_rows: int = 0
    source_files: List[str] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.records)


def _to_str(x) -> Optional[str]:
    """Convert a cell to stripped text, returning None if blank/missing."""
    if x is None or (not isinstance(x, str) and pd.isna(x)):
        return None
    s = str(x).strip()
    return s or None


def _to_date(x, formats: Sequence[str]) -> Optional[date]:
    """Convert a cell to a calendar date, returning None if missing/invalid."""
    if x is None:
        return None
    if isinstance(x, datetime):
        # pandas.Timestamp is a datetime subclass (NaT included)
        return None if pd.isna(x) else x.date()
    if isinstance(x, date):
        return x
    s = _to_str(x)
    if s is None:
        return None
    for fmt in formats:
        try:
            return datetime.strptime(s, fmt).date()
        except ValueError:
            continue
    return None


def _norm(s: str) -> str:
    return re.sub(r"[^a-z0-9]+", "", str(s).lower())


def _find_col(df: pd.DataFrame, *names: str) -> Optional[str]:
    cols = list(df.columns)
    for n in names:
        if n in cols:
            return n
    norm_map = {_norm(c): c for c in cols}
    for n in names:
        nn = _norm(n)
        if nn in norm_map:
            return norm_map[nn]
    return None


def _col(df: pd.DataFrame, path: str, *names: str) -> str:
    c = _find_col(df, *names)
    if c is None:
        raise LoadError(f"{path}: missing required column. Tried={names}. Available={list(df.columns)}")
    return c


def _read_table(path: str, config: LoaderConfig) -> pd.DataFrame:
    """Read one file as a DataFrame of text (CSV) or raw cells (Excel)."""
    try:
        if path.lower().endswith(EXCEL_SUFFIXES):
            df = pd.read_excel(path, engine="openpyxl", dtype=object)
        else:
            sep = "\t" if path.lower().endswith(".tsv") else config.delimiter
            df = pd.read_csv(path, sep=sep, dtype=str, encoding=config.encoding)
    except (OSError, ValueError, zipfile.BadZipFile) as e:
        raise LoadError(f"Cannot read {path}: {e}") from e
    df.rename(columns={c: str(c).strip() for c in df.columns}, inplace=True)
    return df


def _rows_from_frame(df: pd.DataFrame, path: str, config: LoaderConfig, start_id: int) -> Tuple[List[RawOutbreak], int]:
    setting_col = _col(df, path, *SETTING_COLUMNS)
    type_col = _col(df, path, *TYPE_COLUMNS)
    began_col = _col(df, path, *DATE_BEGAN_COLUMNS)

    name_col = _find_col(df, *INSTITUTION_NAME_COLUMNS)
    address_col = _find_col(df, *INSTITUTION_ADDRESS_COLUMNS)
    agent1_col = _find_col(df, *AGENT_1_COLUMNS)
    agent2_col = _find_col(df, *AGENT_2_COLUMNS)
    over_col = _find_col(df, *DATE_OVER_COLUMNS)
    active_col = _find_col(df, *ACTIVE_COLUMNS)

    source = os.path.basename(path)
    records: List[RawOutbreak] = []
    skipped = 0
    for i, row in df.iterrows():
        setting = _to_str(row[setting_col])
        otype = _to_str(row[type_col])
        began = _to_date(row[began_col], config.date_formats)
        if setting is None or otype is None or began is None:
            skipped += 1
            logger.debug("%s: skipping row %s (setting=%r, type=%r, date=%r)",
                         source, i, row[setting_col], row[type_col], row[began_col])
            continue

        records.append(RawOutbreak(
            row_id=start_id + len(records),
            setting=setting,
            outbreak_type=otype,
            date_began=began,
            institution_name=_to_str(row[name_col]) if name_col else None,
            institution_address=_to_str(row[address_col]) if address_col else None,
            causative_agent_1=_to_str(row[agent1_col]) if agent1_col else None,
            causative_agent_2=_to_str(row[agent2_col]) if agent2_col else None,
            date_declared_over=_to_date(row[over_col], config.date_formats) if over_col else None,
            active=_to_str(row[active_col]) if active_col else None,
            source_file=source,
        ))
    return records, skipped


def load_outbreak_files(paths: Iterable[str], config: Optional[LoaderConfig] = None) -> LoadResult:
    """Load and concatenate several outbreak files (typically one per year).

    Row ids are unique across all files. Raises LoadError if any file cannot
    be read or if no valid row remains.
    """
    config = config or LoaderConfig()
    result = LoadResult(records=[])
    for path in paths:
        path = os.fspath(path)
        df = _read_table(path, config)
        rows, skipped = _rows_from_frame(df, path, config, start_id=len(result.records))
        logger.info("Loaded %d rows from %s (%d skipped)", len(rows), path, skipped)
        result.records.extend(rows)
        result.skipped_rows += skipped
        result.source_files.append(path)

    if not result.source_files:
        raise LoadError("No input files given")
    if not result.records:
        raise LoadError(f"No valid rows in {', '.join(result.source_files)} "
                        f"({result.skipped_rows} skipped)")
    if result.skipped_rows:
        logger.warning("Skipped %d rows with a missing setting/type or unparseable onset date",
                       result.skipped_rows)
    return result


def load_outbreaks(path: str, config: Optional[LoaderConfig] = None) -> LoadResult:
    """Load one outbreak file (CSV, TSV or Excel)."""
    return load_outbreak_files([path], config=config)
