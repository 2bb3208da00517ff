"""
Aggregator (grouped counts and per-partition percentages)
=========================================================

`aggregate` is the heart of the project. It works like a tiny GROUP BY:

1) Filter the records (predicate or where-expression)
2) Build a key tuple for each record from the `group_by` selectors
3) Count records per key
4) Optionally turn counts into percentages within each partition

A *partition* is the set of groups that share every key field except the last
one (the stacking dimension). Grouping by (year, setting) with
`normalize=True` gives, for each year, each setting's share of that year's
outbreaks; the shares of one year add up to 100.

Results are always sorted by key so that two runs over the same input produce
identical output.
"""

from __future__ import annotations
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple, Union
import csv
import json
import logging
import os

import pandas as pd

from .models import GroupCount, OutbreakRecord
from .query_lang import compile_where, resolve_field

logger = logging.getLogger(__name__)

Selector = Union[str, Tuple[str, Callable[[OutbreakRecord], Any]]]
Predicate = Callable[[OutbreakRecord], bool]

MISSING_LABEL = "Missing"


def _selector(sel: Selector) -> Tuple[str, Callable[[OutbreakRecord], Any]]:
    """Turn a field name or a (name, function) pair into (name, getter)."""
    if isinstance(sel, tuple):
        name, fn = sel
        return name, fn
    field = resolve_field(sel)
    return field, lambda r: getattr(r, field)


def _predicate(where: Union[None, str, Predicate]) -> Optional[Predicate]:
    if where is None:
        return None
    if isinstance(where, str):
        return compile_where(where)
    return where


def _key_order(key: Tuple) -> Tuple:
    """Sort key for a key tuple: enums by label, missing values last."""
    out = []
    for v in key:
        if v is None:
            out.append((1, ""))
        elif isinstance(v, Enum):
            out.append((0, v.value))
        else:
            out.append((0, v))
    return tuple(out)


def aggregate(
    records: Iterable[OutbreakRecord],
    group_by: Sequence[Selector],
    where: Union[None, str, Predicate] = None,
    normalize: bool = False,
) -> List[GroupCount]:
    """Count records per key tuple.

    Args:
        records: derived outbreak records
        group_by: ordered selectors, e.g. ["year", "setting"]; the last one is
            the stacking dimension used by `normalize`
        where: optional predicate or where-expression applied before grouping
        normalize: add each group's percentage of its partition total

    Returns:
        GroupCount list sorted by key tuple.
    """
    if not group_by:
        raise ValueError("group_by needs at least one field")
    selectors = [_selector(s) for s in group_by]
    names = tuple(name for name, _ in selectors)
    pred = _predicate(where)

    counts: Dict[Tuple, int] = {}
    seen = 0
    for r in records:
        if pred is not None and not pred(r):
            continue
        seen += 1
        key = tuple(get(r) for _, get in selectors)
        counts[key] = counts.get(key, 0) + 1

    logger.debug("aggregate by %s: %d records -> %d groups", names, seen, len(counts))

    keys = sorted(counts, key=_key_order)
    if not normalize:
        return [GroupCount(key=k, count=counts[k], fields=names) for k in keys]

    totals: Dict[Tuple, int] = {}
    for k in keys:
        totals[k[:-1]] = totals.get(k[:-1], 0) + counts[k]

    out: List[GroupCount] = []
    for k in keys:
        total = totals[k[:-1]]
        pct = counts[k] * 100.0 / total if total > 0 else None
        out.append(GroupCount(key=k, count=counts[k], percentage=pct, fields=names))
    return out


def partition_totals(groups: Iterable[GroupCount]) -> Dict[Tuple, int]:
    """Sum of counts per partition (key without its last field)."""
    totals: Dict[Tuple, int] = {}
    for g in groups:
        totals[g.partition] = totals.get(g.partition, 0) + g.count
    return totals


# ---------------- Views for the report layer ----------------

def counts_to_frame(groups: Sequence[GroupCount]) -> pd.DataFrame:
    """One row per group: key columns, `count` and `percentage`."""
    if not groups:
        return pd.DataFrame(columns=["count", "percentage"])
    return pd.DataFrame([g.as_dict() for g in groups])


def crosstab(groups: Sequence[GroupCount], value: str = "count") -> pd.DataFrame:
    """Wide table: partitions as rows, stacking values as columns.

    Cells of combinations that never occurred are 0. Missing key values
    (e.g. the duration of an open outbreak) appear as "Missing".
    """
    if value not in ("count", "percentage"):
        raise ValueError("value must be 'count' or 'percentage'")
    df = counts_to_frame(groups)
    if df.empty:
        return df
    fields = list(groups[0].as_dict().keys())[:-2]
    # pivot_table drops NaN keys; label them so no group disappears
    df[fields] = df[fields].astype(object).where(df[fields].notna(), MISSING_LABEL)
    if len(fields) == 1:
        return df.set_index(fields[0])[[value]]
    # groups arrive sorted (missing last); keep that order
    return df.pivot_table(index=fields[:-1], columns=fields[-1], values=value,
                          aggfunc="sum", fill_value=0, sort=False)


def export_csv(groups: Sequence[GroupCount], path: str) -> None:
    rows = [g.as_dict() for g in groups]
    header = list(rows[0].keys()) if rows else ["count", "percentage"]
    os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
    with open(path, "w", newline="", encoding="utf-8") as f:
        w = csv.writer(f)
        w.writerow(header)
        for row in rows:
            w.writerow(["" if row[h] is None else row[h] for h in header])


def export_json(groups: Sequence[GroupCount], path: str) -> None:
    """Export groups as a JSON list of objects (dates written as ISO strings)."""
    payload = [g.as_dict() for g in groups]
    os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(payload, f, ensure_ascii=False, indent=2, default=str)
