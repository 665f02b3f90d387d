"""
Report Filters

Reusable filtering primitives for reports: per-record date axes and range
filters, and the enumerated field accessors behind custom stat filters.
Filter fields are an explicit registry of typed accessors rather than dynamic
attribute lookup, so an unrecognized field name simply matches nothing.
"""

import logging
from datetime import datetime
from typing import Optional, Callable, Dict, List, Any, Iterable

from ..models import Patient
from .timeutils import is_on_or_after

logger = logging.getLogger(__name__)


# Map record kinds to the date that places them on their own axis
DATE_AXIS_MAP: Dict[str, Callable[[Any], Optional[datetime]]] = {
    'patients': lambda p: p.registered_at,
    'visits': lambda v: v.visit_date,
    'payments': lambda p: p.date,
}


# Fields a custom stat may filter on, with their accessors
BOOLEAN_FILTER_FIELDS: Dict[str, Callable[[Patient], Optional[bool]]] = {
    'isAmputee': lambda p: p.is_amputee,
    'isPhysiotherapy': lambda p: p.is_physiotherapy,
    'isMedicalSupport': lambda p: p.is_medical_support,
}

TEXT_FILTER_FIELDS: Dict[str, Callable[[Patient], Any]] = {
    'medicalCondition': lambda p: p.medical_condition,
    'amputationSite': lambda p: p.amputation_site,
    'diseaseType': lambda p: p.disease_type,
    'treatmentType': lambda p: p.treatment_type,
    'supportType': lambda p: p.support_type,
    'age': lambda p: p.age,
    'branchId': lambda p: p.branch_id,
}

FILTER_FIELDS = tuple(BOOLEAN_FILTER_FIELDS) + tuple(TEXT_FILTER_FIELDS)


def filter_by_date(records: Iterable, kind: str, start_date: Optional[datetime] = None) -> List:
    """
    Keep records whose own date falls on or after start_date.

    Args:
        records: Patients, visits or payments
        kind: Record kind selecting the date axis ('patients', 'visits', 'payments')
        start_date: Inclusive lower bound; None keeps everything

    Returns:
        List of matching records. Undated records are dropped once a bound is set.
    """
    if start_date is None:
        return list(records)
    get_date = DATE_AXIS_MAP[kind]
    return [r for r in records if is_on_or_after(get_date(r), start_date)]


def matches_filter(patient: Patient, filter_field: Optional[str], filter_value: Optional[str]) -> bool:
    """
    Check one patient against a custom stat filter.

    Boolean fields compare as the strings "true"/"false"; every other field
    compares as its string form. Unknown fields and missing values never match.
    """
    if filter_field in BOOLEAN_FILTER_FIELDS:
        value = BOOLEAN_FILTER_FIELDS[filter_field](patient)
        if value is None:
            return False
        return ("true" if value else "false") == filter_value

    if filter_field in TEXT_FILTER_FIELDS:
        value = TEXT_FILTER_FIELDS[filter_field](patient)
        if value is None:
            return False
        return str(value) == str(filter_value)

    return False


def has_filter(filter_field: Optional[str], filter_value: Optional[str]) -> bool:
    """A filter applies only when both its field and value are present"""
    return bool(filter_field) and filter_value is not None and filter_value != ""


def apply_stat_filter(
    patients: Iterable[Patient],
    filter_field: Optional[str] = None,
    filter_value: Optional[str] = None
) -> List[Patient]:
    """
    Apply an optional custom stat filter to a patient population.

    Returns the population unchanged when no filter is set.
    """
    patients = list(patients)
    if not has_filter(filter_field, filter_value):
        return patients
    if filter_field not in FILTER_FIELDS:
        logger.warning(f"Unknown custom stat filter field '{filter_field}'; no patient matches")
        return []
    return [p for p in patients if matches_filter(p, filter_field, filter_value)]
