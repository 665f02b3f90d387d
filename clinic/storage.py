"""
Clinic Storage (Data Access Layer)

Repository over the clinic database consumed by the reporting engine. Fetches
branch-scoped patients, visits, payments and custom statistic definitions and
maps rows to immutable domain records. Every report reads through this class;
none of the aggregation code issues SQL.
"""

import logging
import sqlite3
from datetime import datetime, timezone
from typing import List, Optional, Dict, Any

from .database import DatabaseManager
from .models import Branch, Patient, Visit, Payment, CustomStat

logger = logging.getLogger(__name__)


def _parse_timestamp(value) -> Optional[datetime]:
    """Parse a stored ISO-8601 timestamp; unparseable values become None"""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    try:
        return datetime.fromisoformat(str(value).replace('Z', '+00:00'))
    except ValueError:
        logger.debug(f"Ignoring unparseable timestamp {value!r}")
        return None


def _to_bool(value) -> bool:
    return bool(value) if value is not None else False


def _row_to_branch(row: sqlite3.Row) -> Branch:
    return Branch(id=row['id'], name=row['name'], location=row['location'])


def _row_to_patient(row: sqlite3.Row) -> Patient:
    return Patient(
        id=row['id'],
        branch_id=row['branch_id'],
        name=row['name'],
        age=row['age'],
        medical_condition=row['medical_condition'],
        is_amputee=_to_bool(row['is_amputee']),
        amputation_site=row['amputation_site'],
        is_physiotherapy=_to_bool(row['is_physiotherapy']),
        disease_type=row['disease_type'],
        treatment_type=row['treatment_type'],
        is_medical_support=_to_bool(row['is_medical_support']),
        support_type=row['support_type'],
        total_cost=row['total_cost'] or 0,
        registration_date=_parse_timestamp(row['registration_date']),
        created_at=_parse_timestamp(row['created_at']),
    )


def _row_to_visit(row: sqlite3.Row) -> Visit:
    return Visit(
        id=row['id'],
        patient_id=row['patient_id'],
        branch_id=row['branch_id'],
        visit_date=_parse_timestamp(row['visit_date']),
        treatment_type=row['treatment_type'],
        notes=row['notes'],
    )


def _row_to_payment(row: sqlite3.Row) -> Payment:
    return Payment(
        id=row['id'],
        patient_id=row['patient_id'],
        branch_id=row['branch_id'],
        amount=row['amount'] or 0,
        notes=row['notes'],
        date=_parse_timestamp(row['date']),
    )


def _row_to_custom_stat(row: sqlite3.Row) -> CustomStat:
    return CustomStat(
        id=row['id'],
        name=row['name'],
        description=row['description'],
        stat_type=row['stat_type'],
        category=row['category'],
        filter_field=row['filter_field'],
        filter_value=row['filter_value'],
        is_global=_to_bool(row['is_global']),
        branch_id=row['branch_id'],
        created_by=row['created_by'],
        created_at=_parse_timestamp(row['created_at']),
        updated_at=_parse_timestamp(row['updated_at']),
    )


class ClinicStorage:
    """Read access to clinic records plus custom statistic persistence"""

    CUSTOM_STAT_COLUMNS = (
        'name', 'description', 'stat_type', 'category', 'filter_field',
        'filter_value', 'is_global', 'branch_id', 'created_by'
    )

    def __init__(self, db_manager: DatabaseManager):
        self.db_manager = db_manager

    # ------------------------------------------------------------------
    # Branches
    # ------------------------------------------------------------------

    def get_branches(self) -> List[Branch]:
        rows = self.db_manager.fetch_all("SELECT * FROM branches ORDER BY id")
        return [_row_to_branch(row) for row in rows]

    def add_branch(self, name: str, location: Optional[str] = None) -> Branch:
        branch_id = self.db_manager.execute(
            "INSERT INTO branches (name, location) VALUES (?, ?)",
            (name, location)
        )
        return Branch(id=branch_id, name=name, location=location)

    # ------------------------------------------------------------------
    # Patients
    # ------------------------------------------------------------------

    def get_patients(self, branch_id: Optional[int] = None) -> List[Patient]:
        """Get patients, newest first, optionally restricted to one branch"""
        if branch_id is None:
            rows = self.db_manager.fetch_all("SELECT * FROM patients ORDER BY created_at DESC, id DESC")
        else:
            rows = self.db_manager.fetch_all(
                "SELECT * FROM patients WHERE branch_id = ? ORDER BY created_at DESC, id DESC",
                (branch_id,)
            )
        return [_row_to_patient(row) for row in rows]

    def add_patient(self, branch_id: int, name: str, **fields) -> Patient:
        """Insert a patient record; used by seeding and tests"""
        columns = ['branch_id', 'name'] + list(fields.keys())
        values = [branch_id, name] + list(fields.values())
        placeholders = ', '.join('?' for _ in columns)
        patient_id = self.db_manager.execute(
            f"INSERT INTO patients ({', '.join(columns)}) VALUES ({placeholders})",
            tuple(values)
        )
        row = self.db_manager.fetch_one("SELECT * FROM patients WHERE id = ?", (patient_id,))
        return _row_to_patient(row)

    # ------------------------------------------------------------------
    # Visits
    # ------------------------------------------------------------------

    def get_visits(self, branch_id: Optional[int] = None) -> List[Visit]:
        if branch_id is None:
            rows = self.db_manager.fetch_all("SELECT * FROM visits ORDER BY visit_date DESC, id DESC")
        else:
            rows = self.db_manager.fetch_all(
                "SELECT * FROM visits WHERE branch_id = ? ORDER BY visit_date DESC, id DESC",
                (branch_id,)
            )
        return [_row_to_visit(row) for row in rows]

    def get_visits_by_patient_id(self, patient_id: int) -> List[Visit]:
        rows = self.db_manager.fetch_all(
            "SELECT * FROM visits WHERE patient_id = ? ORDER BY visit_date DESC, id DESC",
            (patient_id,)
        )
        return [_row_to_visit(row) for row in rows]

    def add_visit(self, patient_id: int, branch_id: int, visit_date=None,
                  treatment_type: Optional[str] = None, notes: Optional[str] = None) -> Visit:
        visit_id = self.db_manager.execute(
            "INSERT INTO visits (patient_id, branch_id, visit_date, treatment_type, notes) VALUES (?, ?, ?, ?, ?)",
            (patient_id, branch_id, visit_date, treatment_type, notes)
        )
        row = self.db_manager.fetch_one("SELECT * FROM visits WHERE id = ?", (visit_id,))
        return _row_to_visit(row)

    # ------------------------------------------------------------------
    # Payments
    # ------------------------------------------------------------------

    def get_payments(self, branch_id: Optional[int] = None) -> List[Payment]:
        if branch_id is None:
            rows = self.db_manager.fetch_all("SELECT * FROM payments ORDER BY date DESC, id DESC")
            return [_row_to_payment(row) for row in rows]
        return self.get_payments_by_branch(branch_id)

    def get_payments_by_branch(self, branch_id: int) -> List[Payment]:
        rows = self.db_manager.fetch_all(
            "SELECT * FROM payments WHERE branch_id = ? ORDER BY date DESC, id DESC",
            (branch_id,)
        )
        return [_row_to_payment(row) for row in rows]

    def get_payments_by_patient_id(self, patient_id: int) -> List[Payment]:
        rows = self.db_manager.fetch_all(
            "SELECT * FROM payments WHERE patient_id = ? ORDER BY date DESC, id DESC",
            (patient_id,)
        )
        return [_row_to_payment(row) for row in rows]

    def add_payment(self, patient_id: int, branch_id: int, amount: int,
                    date=None, notes: Optional[str] = None) -> Payment:
        payment_id = self.db_manager.execute(
            "INSERT INTO payments (patient_id, branch_id, amount, notes, date) VALUES (?, ?, ?, ?, ?)",
            (patient_id, branch_id, amount, notes, date)
        )
        row = self.db_manager.fetch_one("SELECT * FROM payments WHERE id = ?", (payment_id,))
        return _row_to_payment(row)

    # ------------------------------------------------------------------
    # Custom stats
    # ------------------------------------------------------------------

    def get_custom_stats(self, branch_id: Optional[int] = None, include_global: bool = False) -> List[CustomStat]:
        """
        Get custom stat definitions.

        With no branch every definition is returned. With a branch, that branch's
        definitions are returned, plus global ones when include_global is set.
        """
        if branch_id is None:
            rows = self.db_manager.fetch_all("SELECT * FROM custom_stats ORDER BY id")
        elif include_global:
            rows = self.db_manager.fetch_all(
                "SELECT * FROM custom_stats WHERE branch_id = ? OR is_global = 1 ORDER BY id",
                (branch_id,)
            )
        else:
            rows = self.db_manager.fetch_all(
                "SELECT * FROM custom_stats WHERE branch_id = ? ORDER BY id",
                (branch_id,)
            )
        return [_row_to_custom_stat(row) for row in rows]

    def get_custom_stat(self, stat_id: int) -> Optional[CustomStat]:
        row = self.db_manager.fetch_one("SELECT * FROM custom_stats WHERE id = ?", (stat_id,))
        return _row_to_custom_stat(row) if row else None

    def create_custom_stat(self, data: Dict[str, Any]) -> CustomStat:
        now = datetime.now(timezone.utc)
        columns = [c for c in self.CUSTOM_STAT_COLUMNS if c in data]
        values = [data[c] for c in columns]
        columns += ['created_at', 'updated_at']
        values += [now, now]
        placeholders = ', '.join('?' for _ in columns)
        stat_id = self.db_manager.execute(
            f"INSERT INTO custom_stats ({', '.join(columns)}) VALUES ({placeholders})",
            tuple(values)
        )
        logger.info(f"Created custom stat {stat_id}")
        return self.get_custom_stat(stat_id)

    def update_custom_stat(self, stat_id: int, updates: Dict[str, Any]) -> Optional[CustomStat]:
        columns = [c for c in self.CUSTOM_STAT_COLUMNS if c in updates]
        if columns:
            assignments = ', '.join(f"{c} = ?" for c in columns) + ', updated_at = ?'
            values = [updates[c] for c in columns] + [datetime.now(timezone.utc), stat_id]
            self.db_manager.execute(
                f"UPDATE custom_stats SET {assignments} WHERE id = ?",
                tuple(values)
            )
            logger.info(f"Updated custom stat {stat_id} ({', '.join(columns)})")
        return self.get_custom_stat(stat_id)

    def delete_custom_stat(self, stat_id: int):
        self.db_manager.execute("DELETE FROM custom_stats WHERE id = ?", (stat_id,))
        logger.info(f"Deleted custom stat {stat_id}")
