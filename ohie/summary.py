"""
Summary statistics engine
=========================

One summary row per variable, chosen by the variable's kind:

- numeric:     count, mean, median, sd, min, max
- categorical: count, unique, mode, mode frequency
- temporal:    count, min, max

Missing values are excluded from every statistic (never imputed). Statistics
that are undefined for the data at hand (the sd of a single value, the mean of
nothing) come out as NaN instead of raising.

The input can be the derived records or a raw pandas DataFrame (for example
the full file including institution names and causative agents).
"""

from __future__ import annotations
from dataclasses import asdict
from datetime import date, datetime
from enum import Enum
from typing import Callable, Dict, List, Mapping, Optional, Sequence, Union
import logging

import numpy as np
import pandas as pd
from pandas.api import types as ptypes

from .exceptions import UnsupportedVariableKindError
from .models import (
    CategoricalSummary, NumericSummary, OutbreakRecord, RECORD_FIELD_KINDS,
    SummaryRow, TemporalSummary, VariableKind,
)

logger = logging.getLogger(__name__)

KindSpec = Union[VariableKind, str]


def records_to_frame(records: Sequence[OutbreakRecord], fields: Optional[Sequence[str]] = None) -> pd.DataFrame:
    """Tabular view of derived records (enums written as their labels)."""
    fields = list(fields or RECORD_FIELD_KINDS.keys())
    unknown = [f for f in fields if f not in OutbreakRecord.__dataclass_fields__]
    if unknown:
        raise KeyError(f"No such variable: {unknown[0]!r}")
    rows = []
    for r in records:
        row = {}
        for f in fields:
            v = getattr(r, f)
            row[f] = v.value if isinstance(v, Enum) else v
        rows.append(row)
    return pd.DataFrame(rows, columns=fields)


def _as_kind(k: KindSpec) -> VariableKind:
    if isinstance(k, VariableKind):
        return k
    try:
        return VariableKind(str(k).lower())
    except ValueError:
        raise ValueError(f"Unknown variable kind: {k!r}") from None


def infer_kind(name: str, series: pd.Series) -> VariableKind:
    """Guess a column's kind from its dtype, or from its values for object columns."""
    if ptypes.is_bool_dtype(series) or isinstance(series.dtype, pd.CategoricalDtype):
        return VariableKind.CATEGORICAL
    if ptypes.is_numeric_dtype(series):
        return VariableKind.NUMERIC
    if ptypes.is_datetime64_any_dtype(series):
        return VariableKind.TEMPORAL
    if ptypes.is_string_dtype(series) or ptypes.is_object_dtype(series):
        values = series.dropna()
        if values.empty:
            raise UnsupportedVariableKindError(name, "no non-missing values and no declared kind")
        if all(isinstance(v, (date, datetime)) for v in values):
            return VariableKind.TEMPORAL
        if all(isinstance(v, str) for v in values):
            return VariableKind.CATEGORICAL
        if all(isinstance(v, (int, float, np.number)) and not isinstance(v, bool) for v in values):
            return VariableKind.NUMERIC
        raise UnsupportedVariableKindError(name, "values of mixed types")
    raise UnsupportedVariableKindError(name, f"unsupported dtype {series.dtype}")


def _numeric(name: str, series: pd.Series) -> NumericSummary:
    s = pd.to_numeric(series, errors="coerce").dropna()
    if s.empty:
        return NumericSummary(variable=name, count=0, mean=np.nan, median=np.nan,
                              sd=np.nan, min=np.nan, max=np.nan)
    # sd uses n-1 and is NaN for a single value
    return NumericSummary(
        variable=name,
        count=int(s.size),
        mean=float(s.mean()),
        median=float(s.median()),
        sd=float(s.std(ddof=1)) if s.size > 1 else np.nan,
        min=float(s.min()),
        max=float(s.max()),
    )


def _categorical(name: str, series: pd.Series) -> CategoricalSummary:
    s = series.dropna()
    s = s[s.astype(str).str.strip() != ""].astype(str)
    if s.empty:
        return CategoricalSummary(variable=name, count=0, unique=0, mode=None, mode_freq=0)
    freq = s.value_counts()
    top = int(freq.max())
    # Ties: first value in sorted order
    mode = sorted(v for v, c in freq.items() if c == top)[0]
    return CategoricalSummary(variable=name, count=int(s.size), unique=int(freq.size),
                              mode=mode, mode_freq=top)


def _to_date(v) -> Optional[date]:
    if isinstance(v, datetime):
        return None if pd.isna(v) else v.date()
    if isinstance(v, date):
        return v
    ts = pd.to_datetime(v, errors="coerce")
    return None if pd.isna(ts) else ts.date()


def _temporal(name: str, series: pd.Series) -> TemporalSummary:
    dates = [d for d in (_to_date(v) for v in series.dropna()) if d is not None]
    if not dates:
        return TemporalSummary(variable=name, count=0, min=None, max=None)
    return TemporalSummary(variable=name, count=len(dates), min=min(dates), max=max(dates))


_SUMMARIZERS: Dict[VariableKind, Callable[[str, pd.Series], SummaryRow]] = {
    VariableKind.NUMERIC: _numeric,
    VariableKind.CATEGORICAL: _categorical,
    VariableKind.TEMPORAL: _temporal,
}


def summarize_variable(name: str, series: pd.Series, kind: Optional[KindSpec] = None) -> SummaryRow:
    """Summarize one column. Raises UnsupportedVariableKindError if its kind is unknown."""
    k = _as_kind(kind) if kind is not None else infer_kind(name, series)
    return _SUMMARIZERS[k](name, series)


def summarize(
    data: Union[pd.DataFrame, Sequence[OutbreakRecord]],
    kinds: Optional[Mapping[str, KindSpec]] = None,
    variables: Optional[Sequence[str]] = None,
    strict: bool = False,
) -> List[SummaryRow]:
    """Summarize every variable of `data`, in column order.

    Args:
        data: derived records, or a DataFrame of raw rows
        kinds: explicit kinds per column; record fields have declared kinds,
            other columns are inferred from their dtype. Dates read from a
            CSV are text and infer as categorical: pass
            kinds={"Date Outbreak Began": "temporal"} or parse them first
        variables: restrict to these columns
        strict: re-raise UnsupportedVariableKindError instead of skipping
            the variable

    Returns:
        One SummaryRow per variable whose kind could be determined.
    """
    if isinstance(data, pd.DataFrame):
        df = data
        declared: Dict[str, KindSpec] = {}
    else:
        df = records_to_frame(data, fields=variables)
        declared = dict(RECORD_FIELD_KINDS)
    declared.update(kinds or {})

    cols = list(variables) if variables is not None else list(df.columns)
    rows: List[SummaryRow] = []
    for col in cols:
        if col not in df.columns:
            raise KeyError(f"No such variable: {col!r}")
        try:
            rows.append(summarize_variable(str(col), df[col], declared.get(col)))
        except UnsupportedVariableKindError as e:
            if strict:
                raise
            logger.warning("Skipping %s", e)
    return rows


def summary_to_frame(rows: Sequence[SummaryRow]) -> pd.DataFrame:
    """Flatten summary rows (columns not used by a kind are left empty)."""
    flat = []
    for r in rows:
        d = asdict(r)
        d["kind"] = r.kind.value
        flat.append(d)
    return pd.DataFrame(flat)
