"""
Distribution Reports

Cross-sectional statistics over a scoped patient population: headline counters,
age and condition distributions, per-branch counts and revenue, top-N
categorical breakdowns, a monthly trend and the collection rate, plus the
treatment and service revenue breakdowns.

Patient counts honour the requested time window through each patient's
registration date. Visits and payments are windowed by their own dates and are
drawn from the whole scoped population, not only from patients registered inside
the window. Collection rate, branch figures, breakdowns and the trend are
all-time.
"""

import logging
from collections import defaultdict
from datetime import datetime
from typing import Optional, Dict, List, Any, Callable, Iterable, Tuple

import pandas as pd

from ..config import config
from ..models import Patient
from .filters import filter_by_date
from .handlers import condition_counts
from .scope import AccessScope, narrow_scope
from .service import ReportService, ReportSnapshot, sum_amounts, sum_costs, percentage
from .timeutils import UNKNOWN_KEY, month_key, resolve_start_date

logger = logging.getLogger(__name__)

UNSPECIFIED_LABEL = "غير محدد"

AGE_GROUPS = [
    ('0-10', 0, 10),
    ('11-20', 11, 20),
    ('21-30', 21, 30),
    ('31-40', 31, 40),
    ('41-50', 41, 50),
    ('51-60', 51, 60),
    ('61-70', 61, 70),
    ('70+', 71, 150),
]

CONDITIONS = [
    ('amputee', 'بتر'),
    ('physiotherapy', 'علاج طبيعي'),
    ('medical_support', 'مساند طبية'),
]

SERVICE_NAMES = {
    'amputee': 'مرضى البتر',
    'physiotherapy': 'العلاج الطبيعي',
    'medical_support': 'المساند الطبية',
}


def age_histogram(patients: Iterable[Patient]) -> List[Dict[str, Any]]:
    """Patient counts per fixed age bucket; ages outside every bucket are skipped"""
    counts = {label: 0 for label, _, _ in AGE_GROUPS}
    for patient in patients:
        if patient.age is None:
            continue
        for label, low, high in AGE_GROUPS:
            if low <= patient.age <= high:
                counts[label] += 1
                break
    return [{"name": label, "count": counts[label]} for label, _, _ in AGE_GROUPS]


def condition_distribution(patients: Iterable[Patient]) -> List[Dict[str, Any]]:
    counts = defaultdict(int)
    for patient in patients:
        counts[patient.condition] += 1
    return [{"key": key, "name": name, "value": counts[key]} for key, name in CONDITIONS]


def top_values(values: Iterable[Optional[str]], limit: int) -> List[Tuple[str, int]]:
    """
    Frequency of each distinct value, most frequent first, truncated to limit.

    Missing or blank values are counted under the unspecified label. Ties are
    broken alphabetically so the ordering is stable.
    """
    labels = [
        value.strip() if isinstance(value, str) and value.strip() else UNSPECIFIED_LABEL
        for value in values
    ]
    if not labels:
        return []
    counts = pd.Series(labels, dtype="object").value_counts()
    ranked = sorted(((str(name), int(count)) for name, count in counts.items()),
                    key=lambda item: (-item[1], item[0]))
    return ranked[:limit]


def bucket_by_month(records: Iterable, get_date: Callable, get_value: Callable = None) -> Dict[str, int]:
    """Sum (or count) records per civil month of their own date"""
    buckets = defaultdict(int)
    for record in records:
        key = month_key(get_date(record))
        buckets[key] += get_value(record) if get_value else 1
    return buckets


def monthly_trend(snapshot: ReportSnapshot, months: int) -> List[Dict[str, Any]]:
    """
    Registrations, visits and payment totals per month.

    Three independent passes, one per date axis, merged on the month key. Only
    months present in the data appear; the most recent ones are kept, oldest
    first.
    """
    patient_ids = {p.id for p in snapshot.patients}
    registrations = bucket_by_month(snapshot.patients, lambda p: p.registered_at)
    visits = bucket_by_month(
        (v for v in snapshot.visits if v.patient_id in patient_ids),
        lambda v: v.visit_date
    )
    payments = bucket_by_month(
        (p for p in snapshot.payments if p.patient_id in patient_ids),
        lambda p: p.date,
        lambda p: p.amount or 0
    )

    month_keys = sorted((set(registrations) | set(visits) | set(payments)) - {UNKNOWN_KEY})
    if months > 0:
        month_keys = month_keys[-months:]
    else:
        month_keys = []

    return [
        {
            "month": key,
            "patients": registrations.get(key, 0),
            "visits": visits.get(key, 0),
            "payments": payments.get(key, 0)
        }
        for key in month_keys
    ]


def build_statistics(
    snapshot: ReportSnapshot,
    start_date: Optional[datetime] = None,
    top_n: int = 10,
    trend_months: int = 12
) -> Dict[str, Any]:
    """
    Compute every distribution over one snapshot.

    Args:
        snapshot: Scoped records (not time-filtered)
        start_date: Inclusive lower bound of the reporting window, None for all time
        top_n: Size of the categorical breakdowns
        trend_months: Number of months kept in the trend

    Returns:
        Dictionary of counters and distributions
    """
    scoped_patients = snapshot.patients
    patient_ids = {p.id for p in scoped_patients}
    scoped_visits = [v for v in snapshot.visits if v.patient_id in patient_ids]
    scoped_payments = [p for p in snapshot.payments if p.patient_id in patient_ids]

    window_patients = filter_by_date(scoped_patients, 'patients', start_date)
    window_visits = filter_by_date(scoped_visits, 'visits', start_date)
    window_payments = filter_by_date(scoped_payments, 'payments', start_date)

    counts = condition_counts(window_patients)
    all_time_revenue = sum_costs(scoped_patients)
    all_time_paid = sum_amounts(scoped_payments)

    branch_distribution = []
    for branch in snapshot.branches:
        branch_patients = [p for p in scoped_patients if p.branch_id == branch.id]
        branch_distribution.append({
            "branchId": branch.id,
            "name": branch.name,
            "count": len(branch_patients),
            "revenue": sum_costs(branch_patients)
        })

    amputation_sites = top_values(
        (p.amputation_site for p in scoped_patients if p.condition == 'amputee'), top_n
    )
    disease_types = top_values(
        (p.disease_type for p in scoped_patients if p.condition == 'physiotherapy'), top_n
    )

    return {
        "totalPatients": len(window_patients),
        "amputeeCount": counts['amputees'],
        "physioCount": counts['physiotherapy'],
        "medicalSupportCount": counts['medicalSupport'],
        "totalVisits": len(window_visits),
        "totalPaid": sum_amounts(window_payments),
        "timeFilteredRevenue": sum_costs(window_patients),
        "allTimeRevenue": all_time_revenue,
        "allTimePaid": all_time_paid,
        "allTimeRemaining": all_time_revenue - all_time_paid,
        "collectionRate": percentage(all_time_paid, all_time_revenue, digits=1),
        "ageDistribution": age_histogram(window_patients),
        "conditionDistribution": condition_distribution(window_patients),
        "branchDistribution": branch_distribution,
        "amputationSites": [{"name": name, "value": value} for name, value in amputation_sites],
        "diseaseTypes": [{"name": name, "value": value} for name, value in disease_types],
        "monthlyTrend": monthly_trend(snapshot, trend_months)
    }


class DistributionReports:
    """Handlers for statistics and distribution reports"""

    def __init__(self, service: ReportService, top_n: int = None, trend_months: int = None):
        self.service = service
        self.top_n = top_n if top_n is not None else config.reporting.top_n
        self.trend_months = trend_months if trend_months is not None else config.reporting.trend_months

    def get_statistics(
        self,
        scope: AccessScope,
        time_range: Optional[str] = 'all',
        branch_id: Optional[int] = None,
        now: Optional[datetime] = None
    ) -> Dict[str, Any]:
        """Statistics overview for a scope, optionally narrowed to one branch"""
        scope = narrow_scope(scope, branch_id)
        snapshot = self.service.fetch_snapshot(scope)
        start_date = resolve_start_date(time_range, now)
        stats = build_statistics(snapshot, start_date, self.top_n, self.trend_months)
        stats["timeRange"] = time_range or 'all'
        stats["startDate"] = start_date.isoformat() if start_date else None
        logger.info(
            f"Built statistics for {len(snapshot.patients)} scoped patients "
            f"(range={stats['timeRange']}, branch={branch_id})"
        )
        return stats

    def get_revenue_by_treatment(self, scope: AccessScope, branch_id: Optional[int] = None) -> List[Dict[str, Any]]:
        """
        Payments received per physiotherapy treatment type.

        Each physiotherapy patient contributes all of their payments to their
        treatment type; patients without one fall under the unspecified label.
        """
        snapshot = self.service.fetch_snapshot(narrow_scope(scope, branch_id), include_visits=False)
        payments_by_patient = snapshot.payments_by_patient()

        totals = defaultdict(lambda: {"totalAmount": 0, "count": 0})
        for patient in snapshot.patients:
            if patient.condition != 'physiotherapy':
                continue
            treatment = (patient.treatment_type or "").strip() or UNSPECIFIED_LABEL
            totals[treatment]["totalAmount"] += sum_amounts(payments_by_patient.get(patient.id, []))
            totals[treatment]["count"] += 1

        rows = [
            (treatment, values["totalAmount"], values["count"])
            for treatment, values in totals.items()
        ]
        rows.sort(key=lambda row: (-row[1], row[0]))
        return self.service.format_table_data(rows, ["treatmentType", "totalAmount", "count"])

    def get_profitability_by_service(self, scope: AccessScope, branch_id: Optional[int] = None) -> List[Dict[str, Any]]:
        """Billed versus collected amounts per condition"""
        snapshot = self.service.fetch_snapshot(narrow_scope(scope, branch_id), include_visits=False)
        payments_by_patient = snapshot.payments_by_patient()

        results = []
        for key, _ in CONDITIONS:
            patients = [p for p in snapshot.patients if p.condition == key]
            total_revenue = sum_costs(patients)
            total_paid = sum(sum_amounts(payments_by_patient.get(p.id, [])) for p in patients)
            results.append({
                "serviceType": key,
                "serviceName": SERVICE_NAMES[key],
                "patientCount": len(patients),
                "totalRevenue": total_revenue,
                "totalPaid": total_paid,
                "remaining": total_revenue - total_paid,
                "collectionRate": percentage(total_paid, total_revenue)
            })
        return results
