"""
Report Handlers (Business Logic Layer)

Financial ledger reports: the per-day ledger for one branch, per-branch
revenue summaries, scoped overall and same-day summaries, and the debtors list.
Every figure in one response is derived from a single fetched snapshot, so a
ledger's totals always equal the sum of its own rows.
"""

import logging
from collections import defaultdict
from datetime import datetime
from typing import Optional, Dict, List, Any

from ..models import Patient, Payment
from .scope import AccessScope, narrow_scope
from .service import ReportService, ReportSnapshot, sum_amounts, sum_costs
from .timeutils import UNKNOWN_KEY, day_key, today_key, to_utc

logger = logging.getLogger(__name__)

UNKNOWN_PATIENT_LABEL = "غير معروف"


def _iso(value: Optional[datetime]) -> Optional[str]:
    instant = to_utc(value)
    return instant.isoformat() if instant else None


def _sort_instant(value: Optional[datetime]) -> float:
    instant = to_utc(value)
    return instant.timestamp() if instant else float('-inf')


def condition_counts(patients: List[Patient]) -> Dict[str, int]:
    """Patients per condition; the three conditions are mutually exclusive"""
    counts = {'amputees': 0, 'physiotherapy': 0, 'medicalSupport': 0}
    keys = {'amputee': 'amputees', 'physiotherapy': 'physiotherapy', 'medical_support': 'medicalSupport'}
    for patient in patients:
        counts[keys[patient.condition]] += 1
    return counts


def revenue_summary(patients: List[Patient], payments: List[Payment]) -> Dict[str, int]:
    """Sold (billed) versus paid totals; revenue is what was actually received"""
    sold = sum_costs(patients)
    paid = sum_amounts(payments)
    return {
        "revenue": paid,
        "sold": sold,
        "paid": paid,
        "remaining": sold - paid
    }


class LedgerReports:
    """Handlers for per-branch financial ledgers"""

    def __init__(self, service: ReportService):
        self.service = service

    def _patient_detail(self, patient: Patient) -> Dict[str, Any]:
        return {
            "id": patient.id,
            "name": patient.name,
            "totalCost": patient.total_cost or 0,
            "condition": patient.condition,
            "isAmputee": patient.is_amputee,
            "isPhysiotherapy": patient.is_physiotherapy,
            "isMedicalSupport": patient.is_medical_support,
            "createdAt": _iso(patient.registered_at)
        }

    def _payment_detail(self, payment: Payment, patient: Optional[Patient]) -> Dict[str, Any]:
        return {
            "id": payment.id,
            "patientId": payment.patient_id,
            "patientName": patient.name if patient else UNKNOWN_PATIENT_LABEL,
            "amount": payment.amount or 0,
            "notes": payment.notes,
            "date": _iso(payment.date),
            "patientTotalCost": (patient.total_cost or 0) if patient else 0
        }

    def build_ledger(self, branch_id: int, snapshot: ReportSnapshot) -> Dict[str, Any]:
        """
        Build the daily ledger from a branch snapshot.

        Patients are placed on their registration day and payments on their
        payment day; a patient's total cost is never split across days. Days
        are listed most recent first. Records without a usable date appear in
        no day row and are summarized under 'unassigned' instead.
        """
        patient_map = snapshot.patient_map()

        patients_by_day: Dict[str, List[Patient]] = defaultdict(list)
        for patient in snapshot.patients:
            patients_by_day[day_key(patient.registered_at)].append(patient)

        payments_by_day: Dict[str, List[Payment]] = defaultdict(list)
        for payment in snapshot.payments:
            payments_by_day[day_key(payment.date)].append(payment)

        days = sorted(
            (set(patients_by_day) | set(payments_by_day)) - {UNKNOWN_KEY},
            reverse=True
        )

        daily_summaries = []
        for day in days:
            day_patients = patients_by_day.get(day, [])
            day_payments = sorted(
                payments_by_day.get(day, []),
                key=lambda p: _sort_instant(p.date),
                reverse=True
            )
            daily_summaries.append({
                "date": day,
                "patients": [self._patient_detail(p) for p in day_patients],
                "payments": [self._payment_detail(p, patient_map.get(p.patient_id)) for p in day_payments],
                "totalPaid": sum_amounts(day_payments),
                "totalCosts": sum_costs(day_patients),
                "patientCount": len(day_patients),
                "paymentCount": len(day_payments)
            })

        undated_patients = patients_by_day.get(UNKNOWN_KEY, [])
        undated_payments = payments_by_day.get(UNKNOWN_KEY, [])
        if undated_patients or undated_payments:
            logger.warning(
                f"Branch {branch_id} ledger: {len(undated_patients)} patients and "
                f"{len(undated_payments)} payments have no usable date"
            )

        total_cost = sum_costs(snapshot.patients)
        total_paid = sum_amounts(snapshot.payments)

        return {
            "branchId": branch_id,
            "dailySummaries": daily_summaries,
            "unassigned": {
                "totalCosts": sum_costs(undated_patients),
                "totalPaid": sum_amounts(undated_payments),
                "patientCount": len(undated_patients),
                "paymentCount": len(undated_payments)
            },
            "overall": {
                "totalCost": total_cost,
                "totalPaid": total_paid,
                "remaining": total_cost - total_paid,
                "totalPatients": len(snapshot.patients),
                "totalPayments": len(snapshot.payments)
            }
        }

    def get_detailed_report(self, scope: AccessScope, branch_id: int) -> Dict[str, Any]:
        """Full-history daily ledger for one branch"""
        branch_scope = narrow_scope(scope, branch_id)
        snapshot = self.service.fetch_snapshot(branch_scope, include_visits=False)
        ledger = self.build_ledger(branch_id, snapshot)
        logger.info(f"Built ledger for branch {branch_id}: {len(ledger['dailySummaries'])} days")
        return ledger

    def get_branch_summary(self, scope: AccessScope, branch_id: int) -> Dict[str, int]:
        """All-time sold/paid/remaining for one branch"""
        branch_scope = narrow_scope(scope, branch_id)
        snapshot = self.service.fetch_snapshot(branch_scope, include_visits=False)
        return revenue_summary(snapshot.patients, snapshot.payments)

    def get_all_branches(self, scope: AccessScope, daily: bool = False,
                         now: Optional[datetime] = None) -> Dict[int, Dict[str, int]]:
        """
        Revenue summary per visible branch.

        With daily set, only patients registered today are counted, and only
        payments made today by those same patients.
        """
        snapshot = self.service.fetch_snapshot(scope, include_visits=False)
        today = today_key(now)

        result = {}
        for branch in snapshot.branches:
            patients = [p for p in snapshot.patients if p.branch_id == branch.id]
            payments = [p for p in snapshot.payments if p.branch_id == branch.id]

            if daily:
                patients = [p for p in patients if day_key(p.registered_at) == today]
                today_patient_ids = {p.id for p in patients}
                payments = [
                    p for p in payments
                    if day_key(p.date) == today and p.patient_id in today_patient_ids
                ]

            result[branch.id] = revenue_summary(patients, payments)

        logger.info(f"Built all-branches summary for {len(result)} branches (daily={daily})")
        return result

    def get_overall(self, scope: AccessScope) -> Dict[str, int]:
        """Scoped all-time totals with patient counts per condition"""
        snapshot = self.service.fetch_snapshot(scope, include_visits=False)
        summary = revenue_summary(snapshot.patients, snapshot.payments)
        summary["totalPatients"] = len(snapshot.patients)
        summary.update(condition_counts(snapshot.patients))
        return summary

    def get_today(self, scope: AccessScope, now: Optional[datetime] = None) -> Dict[str, Any]:
        """Registrations and payments for the current civil day"""
        snapshot = self.service.fetch_snapshot(scope, include_visits=False)
        today = today_key(now)

        today_patients = [p for p in snapshot.patients if day_key(p.registered_at) == today]
        today_payments = [p for p in snapshot.payments if day_key(p.date) == today]

        result = {
            "date": today,
            "totalPatients": len(today_patients),
            "paid": sum_amounts(today_payments)
        }
        result.update(condition_counts(today_patients))
        return result

    def get_debtors(self, scope: AccessScope, branch_id: Optional[int] = None,
                    min_amount: Optional[int] = None) -> List[Dict[str, Any]]:
        """
        Patients with an outstanding balance, largest balance first.

        Args:
            scope: Resolved caller scope
            branch_id: Optional branch to narrow to
            min_amount: Only include balances at or above this amount
        """
        snapshot = self.service.fetch_snapshot(narrow_scope(scope, branch_id), include_visits=False)
        payments_by_patient = snapshot.payments_by_patient()

        debtors = []
        for patient in snapshot.patients:
            payments = payments_by_patient.get(patient.id, [])
            total_paid = sum_amounts(payments)
            remaining = (patient.total_cost or 0) - total_paid
            if remaining <= 0:
                continue
            if min_amount is not None and remaining < min_amount:
                continue

            dated = [p.date for p in payments if to_utc(p.date) is not None]
            last_payment = max(dated, key=_sort_instant) if dated else None
            debtors.append({
                "patient": {
                    "id": patient.id,
                    "name": patient.name,
                    "branchId": patient.branch_id,
                    "condition": patient.condition
                },
                "totalCost": patient.total_cost or 0,
                "totalPaid": total_paid,
                "remaining": remaining,
                "lastPaymentDate": _iso(last_payment)
            })

        debtors.sort(key=lambda d: d["remaining"], reverse=True)
        return debtors
