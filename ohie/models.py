"""
Data model (RawOutbreak, OutbreakRecord, GroupCount, summary rows)
==================================================================

Each row of a yearly outbreak file becomes a `RawOutbreak` (text as read,
dates parsed). The deriver turns it into an `OutbreakRecord`, whose setting and
outbreak type belong to closed vocabularies and whose `year` is derived from
`date_began`.

All records are immutable (`frozen=True`) so that:
- nothing downstream can edit a record after loading, and
- every stage is a function from one sequence of records to another.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Optional, Tuple, Union


class Setting(Enum):
    """Institution categories used by the health authority."""
    LTCH = "LTCH"
    RETIREMENT_HOME = "Retirement Home"
    HOSPITAL_CHRONIC = "Hospital-Chronic Care"
    HOSPITAL_ACUTE = "Hospital-Acute Care"
    HOSPITAL_PSYCHIATRIC = "Hospital-Psychiatric"
    SHELTER = "Shelter"
    TRANSITIONAL_CARE = "Transitional Care"
    UNKNOWN = "Unknown"

    def __str__(self) -> str:
        return self.value


class OutbreakType(Enum):
    """Transmission-mode classification of an outbreak."""
    RESPIRATORY = "Respiratory"
    ENTERIC = "Enteric"
    OTHER = "Other"
    UNKNOWN = "Unknown"

    def __str__(self) -> str:
        return self.value


class VariableKind(Enum):
    NUMERIC = "numeric"
    CATEGORICAL = "categorical"
    TEMPORAL = "temporal"


@dataclass(frozen=True)
class RawOutbreak:
    """One row of an outbreak file that passed the loader's checks."""
    row_id: int
    setting: str
    outbreak_type: str
    date_began: date
    institution_name: Optional[str] = None
    institution_address: Optional[str] = None
    causative_agent_1: Optional[str] = None
    causative_agent_2: Optional[str] = None
    date_declared_over: Optional[date] = None
    active: Optional[str] = None
    source_file: Optional[str] = None


@dataclass(frozen=True)
class OutbreakRecord:
    """One reported outbreak, ready for analysis.

    `year` is always the calendar year of `date_began`.
    """
    row_id: int
    setting: Setting
    outbreak_type: OutbreakType
    date_began: date
    year: int
    month: int
    duration_days: Optional[int] = None
    institution_name: Optional[str] = None
    institution_address: Optional[str] = None
    causative_agent_1: Optional[str] = None
    causative_agent_2: Optional[str] = None
    date_declared_over: Optional[date] = None
    active: Optional[str] = None
    source_file: Optional[str] = None

    def __post_init__(self) -> None:
        if self.year != self.date_began.year:
            raise ValueError(f"year {self.year} does not match date_began {self.date_began}")


# Declared kinds of the OutbreakRecord fields (used by the summary engine).
RECORD_FIELD_KINDS = {
    "setting": VariableKind.CATEGORICAL,
    "outbreak_type": VariableKind.CATEGORICAL,
    "date_began": VariableKind.TEMPORAL,
    "year": VariableKind.NUMERIC,
    "month": VariableKind.NUMERIC,
    "duration_days": VariableKind.NUMERIC,
    "institution_name": VariableKind.CATEGORICAL,
    "institution_address": VariableKind.CATEGORICAL,
    "causative_agent_1": VariableKind.CATEGORICAL,
    "causative_agent_2": VariableKind.CATEGORICAL,
    "date_declared_over": VariableKind.TEMPORAL,
    "active": VariableKind.CATEGORICAL,
}

# Fields of the analysis dataset (raw-only fields excluded).
ANALYSIS_FIELDS = ("setting", "outbreak_type", "date_began", "year")


@dataclass(frozen=True)
class GroupCount:
    """Number of records sharing one key tuple.

    `fields` names the key dimensions in order; the last one is the stacking
    dimension used when percentages are computed.
    """
    key: Tuple
    count: int
    percentage: Optional[float] = None
    fields: Tuple[str, ...] = ()

    @property
    def partition(self) -> Tuple:
        """Key without its last (stacking) dimension."""
        return self.key[:-1]

    def as_dict(self) -> dict:
        out = {}
        names = self.fields or tuple(f"key_{i}" for i in range(len(self.key)))
        for name, value in zip(names, self.key):
            out[name] = value.value if isinstance(value, Enum) else value
        out["count"] = self.count
        out["percentage"] = self.percentage
        return out


@dataclass(frozen=True)
class NumericSummary:
    variable: str
    count: int
    mean: float
    median: float
    sd: float
    min: float
    max: float
    kind: VariableKind = field(default=VariableKind.NUMERIC, init=False)


@dataclass(frozen=True)
class CategoricalSummary:
    variable: str
    count: int
    unique: int
    mode: Optional[str]
    mode_freq: int
    kind: VariableKind = field(default=VariableKind.CATEGORICAL, init=False)


@dataclass(frozen=True)
class TemporalSummary:
    variable: str
    count: int
    min: Optional[date]
    max: Optional[date]
    kind: VariableKind = field(default=VariableKind.TEMPORAL, init=False)


SummaryRow = Union[NumericSummary, CategoricalSummary, TemporalSummary]
