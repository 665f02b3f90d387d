"""
Report Service (Data Access Layer)

Fetches a scope-limited snapshot of clinic data for one report computation and
provides the small formatting helpers shared by the report handlers. Each
request fetches its own snapshot; nothing is cached between requests.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP
from typing import List, Dict, Any, Tuple, Iterable

from ..models import Branch, Patient, Visit, Payment
from ..storage import ClinicStorage
from .scope import AccessScope

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReportSnapshot:
    """Immutable view of the records one report is computed from"""
    patients: List[Patient] = field(default_factory=list)
    visits: List[Visit] = field(default_factory=list)
    payments: List[Payment] = field(default_factory=list)
    branches: List[Branch] = field(default_factory=list)

    def patient_map(self) -> Dict[int, Patient]:
        return {p.id: p for p in self.patients}

    def payments_by_patient(self) -> Dict[int, List[Payment]]:
        grouped = defaultdict(list)
        for payment in self.payments:
            grouped[payment.patient_id].append(payment)
        return grouped


def round_half_up(value: float, digits: int = 0):
    """Round halves away from zero (2.5 -> 3); int result when digits is 0"""
    quantum = Decimal(1).scaleb(-digits)
    rounded = Decimal(str(value)).quantize(quantum, rounding=ROUND_HALF_UP)
    return int(rounded) if digits == 0 else float(rounded)


def percentage(part: float, whole: float, digits: int = 0):
    """part / whole * 100, rounded; 0 when whole is zero"""
    if not whole:
        return 0 if digits == 0 else 0.0
    return round_half_up(part / whole * 100, digits)


def sum_amounts(payments: Iterable[Payment]) -> int:
    return sum(p.amount or 0 for p in payments)


def sum_costs(patients: Iterable[Patient]) -> int:
    return sum(p.total_cost or 0 for p in patients)


class ReportService:
    """Base service for fetching report data"""

    def __init__(self, storage: ClinicStorage):
        self.storage = storage

    def get_branches(self, scope: AccessScope) -> List[Branch]:
        """Branches visible within a scope"""
        if scope.is_empty:
            return []
        return scope.filter(self.storage.get_branches(), attr='id')

    def get_patients(self, scope: AccessScope) -> List[Patient]:
        if scope.is_empty:
            return []
        if scope.is_all:
            return self.storage.get_patients()
        patients = []
        for branch_id in sorted(scope.branch_ids):
            patients.extend(self.storage.get_patients(branch_id))
        return patients

    def get_payments(self, scope: AccessScope) -> List[Payment]:
        if scope.is_empty:
            return []
        if scope.is_all:
            return self.storage.get_payments()
        payments = []
        for branch_id in sorted(scope.branch_ids):
            payments.extend(self.storage.get_payments_by_branch(branch_id))
        return payments

    def get_visits(self, scope: AccessScope) -> List[Visit]:
        if scope.is_empty:
            return []
        if scope.is_all:
            return self.storage.get_visits()
        visits = []
        for branch_id in sorted(scope.branch_ids):
            visits.extend(self.storage.get_visits(branch_id))
        return visits

    def fetch_snapshot(self, scope: AccessScope, include_visits: bool = True) -> ReportSnapshot:
        """
        Fetch every record visible in a scope.

        Args:
            scope: Resolved branch visibility
            include_visits: Skip the visit fetch for reports that never use visits

        Returns:
            ReportSnapshot with patients, visits, payments and branches
        """
        snapshot = ReportSnapshot(
            patients=self.get_patients(scope),
            visits=self.get_visits(scope) if include_visits else [],
            payments=self.get_payments(scope),
            branches=self.get_branches(scope),
        )
        logger.debug(
            f"Fetched snapshot: {len(snapshot.patients)} patients, {len(snapshot.visits)} visits, "
            f"{len(snapshot.payments)} payments across {len(snapshot.branches)} branches"
        )
        return snapshot

    def format_table_data(self, results: List[Tuple], columns: List[str]) -> List[Dict[str, Any]]:
        """
        Format rows as list of dictionaries.

        Args:
            results: Result rows
            columns: Column names

        Returns:
            List of dictionaries with column names as keys
        """
        return [
            {col: row[i] for i, col in enumerate(columns)}
            for row in results
        ]
