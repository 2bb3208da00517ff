"""
Field derivation (RawOutbreak -> OutbreakRecord)
================================================

The yearly files spell the same category in several ways
("LTCH", "Long Term Care Home", "long-term care home"...). Here every raw
string is mapped once onto the closed `Setting` / `OutbreakType` vocabularies,
so nothing downstream has to compare strings.

Values we do not recognize map to `Unknown` instead of being dropped: the
number of records never changes during derivation.
"""

from __future__ import annotations
from typing import Dict, Iterable, List, Optional
import logging
import re

from .models import OutbreakRecord, OutbreakType, RawOutbreak, Setting

logger = logging.getLogger(__name__)


def _norm(s: str) -> str:
    return re.sub(r"[^a-z0-9]+", "", str(s).lower())


_SETTING_ALIASES: Dict[str, Setting] = {
    "longtermcarehome": Setting.LTCH,
    "longtermcare": Setting.LTCH,
    "ltc": Setting.LTCH,
    "ltchome": Setting.LTCH,
    "retirement": Setting.RETIREMENT_HOME,
    "retirementresidence": Setting.RETIREMENT_HOME,
    "chroniccarehospital": Setting.HOSPITAL_CHRONIC,
    "hospitalchronic": Setting.HOSPITAL_CHRONIC,
    "acutecarehospital": Setting.HOSPITAL_ACUTE,
    "hospitalacute": Setting.HOSPITAL_ACUTE,
    "psychiatrichospital": Setting.HOSPITAL_PSYCHIATRIC,
    "hospitalpsych": Setting.HOSPITAL_PSYCHIATRIC,
    "homelessshelter": Setting.SHELTER,
    "transitionalcarehome": Setting.TRANSITIONAL_CARE,
}

_TYPE_ALIASES: Dict[str, OutbreakType] = {
    "resp": OutbreakType.RESPIRATORY,
    "respiratoryillness": OutbreakType.RESPIRATORY,
    "gastroenteric": OutbreakType.ENTERIC,
    "gastrointestinal": OutbreakType.ENTERIC,
    "gi": OutbreakType.ENTERIC,
}

# Canonical labels match themselves, whatever the spelling/case.
_SETTING_LOOKUP: Dict[str, Setting] = {_norm(s.value): s for s in Setting}
_SETTING_LOOKUP.update(_SETTING_ALIASES)
_TYPE_LOOKUP: Dict[str, OutbreakType] = {_norm(t.value): t for t in OutbreakType}
_TYPE_LOOKUP.update(_TYPE_ALIASES)


def normalize_setting(text: Optional[str]) -> Setting:
    """Map a raw setting string onto `Setting` (unrecognized -> Setting.UNKNOWN)."""
    if text is None:
        return Setting.UNKNOWN
    return _SETTING_LOOKUP.get(_norm(text), Setting.UNKNOWN)


def normalize_outbreak_type(text: Optional[str]) -> OutbreakType:
    """Map a raw outbreak type onto `OutbreakType` (unrecognized -> OutbreakType.UNKNOWN)."""
    if text is None:
        return OutbreakType.UNKNOWN
    return _TYPE_LOOKUP.get(_norm(text), OutbreakType.UNKNOWN)


def derive_record(raw: RawOutbreak) -> OutbreakRecord:
    """Build the analysis record for one loaded row.

    `year` and `month` come from the calendar date `date_began` (no timezone
    involved). `duration_days` is the number of days until the outbreak was
    declared over, or None if it is still open or the dates are inconsistent.
    """
    if raw.date_began is None:
        raise ValueError(f"row {raw.row_id}: date_began is required (loader post-condition)")

    duration = None
    if raw.date_declared_over is not None:
        days = (raw.date_declared_over - raw.date_began).days
        if days >= 0:
            duration = days

    return OutbreakRecord(
        row_id=raw.row_id,
        setting=normalize_setting(raw.setting),
        outbreak_type=normalize_outbreak_type(raw.outbreak_type),
        date_began=raw.date_began,
        year=raw.date_began.year,
        month=raw.date_began.month,
        duration_days=duration,
        institution_name=raw.institution_name,
        institution_address=raw.institution_address,
        causative_agent_1=raw.causative_agent_1,
        causative_agent_2=raw.causative_agent_2,
        date_declared_over=raw.date_declared_over,
        active=raw.active,
        source_file=raw.source_file,
    )


def derive_records(raws: Iterable[RawOutbreak]) -> List[OutbreakRecord]:
    """Derive every loaded row, keeping order and count."""
    out = [derive_record(r) for r in raws]
    unknown_settings = sum(1 for r in out if r.setting is Setting.UNKNOWN)
    unknown_types = sum(1 for r in out if r.outbreak_type is OutbreakType.UNKNOWN)
    if unknown_settings or unknown_types:
        logger.info("Unrecognized values: %d settings, %d outbreak types (bucketed as Unknown)",
                    unknown_settings, unknown_types)
    return out
