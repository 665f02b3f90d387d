"""
================================================================================
Clinic Reporting - Report Service Unit Tests
================================================================================

Description:
    Unit tests for the report service module: scope-limited snapshot
    fetching through the storage collaborator, and the rounding and
    formatting helpers shared by the report handlers.

Test Coverage:
    - Snapshot fetching for all, single-branch and empty scopes
    - Half-up rounding and zero-safe percentages
    - Table formatting

================================================================================
"""
import pytest
from unittest.mock import Mock

from clinic.models import Branch, Patient, Payment
from clinic.reports.scope import AccessScope
from clinic.reports.service import (
    ReportService,
    ReportSnapshot,
    round_half_up,
    percentage,
    sum_amounts,
    sum_costs,
)


@pytest.fixture
def report_service(mock_storage):
    mock_storage.get_branches.return_value = [Branch(id=1, name="a"), Branch(id=2, name="b")]
    mock_storage.get_patients.return_value = [Patient(id=1, branch_id=1, name="p", total_cost=500)]
    mock_storage.get_payments.return_value = []
    mock_storage.get_payments_by_branch.return_value = [Payment(id=1, patient_id=1, branch_id=1, amount=200)]
    mock_storage.get_visits.return_value = []
    return ReportService(mock_storage)


class TestFetchSnapshot:
    """Test suite for scope-limited fetching"""

    def test_all_branches_uses_unfiltered_reads(self, report_service, mock_storage):
        snapshot = report_service.fetch_snapshot(AccessScope.all_branches())
        mock_storage.get_patients.assert_called_once_with()
        mock_storage.get_payments.assert_called_once_with()
        assert len(snapshot.branches) == 2

    def test_single_branch_reads(self, report_service, mock_storage):
        snapshot = report_service.fetch_snapshot(AccessScope.single(1))
        mock_storage.get_patients.assert_called_once_with(1)
        mock_storage.get_payments_by_branch.assert_called_once_with(1)
        mock_storage.get_visits.assert_called_once_with(1)
        assert [b.id for b in snapshot.branches] == [1]
        assert sum_amounts(snapshot.payments) == 200

    def test_empty_scope_never_reads(self, report_service, mock_storage):
        snapshot = report_service.fetch_snapshot(AccessScope.empty())
        mock_storage.get_patients.assert_not_called()
        mock_storage.get_branches.assert_not_called()
        assert snapshot == ReportSnapshot()

    def test_visits_skipped_when_not_needed(self, report_service, mock_storage):
        report_service.fetch_snapshot(AccessScope.single(1), include_visits=False)
        mock_storage.get_visits.assert_not_called()


class TestSnapshotHelpers:
    """Test suite for snapshot lookups"""

    def test_payments_by_patient(self):
        snapshot = ReportSnapshot(payments=[
            Payment(id=1, patient_id=1, branch_id=1, amount=10),
            Payment(id=2, patient_id=1, branch_id=1, amount=15),
            Payment(id=3, patient_id=2, branch_id=1, amount=5),
        ])
        grouped = snapshot.payments_by_patient()
        assert sum_amounts(grouped[1]) == 25
        assert grouped.get(3, []) == []

    def test_patient_map(self):
        snapshot = ReportSnapshot(patients=[Patient(id=7, branch_id=1, name="p", total_cost=3)])
        assert snapshot.patient_map()[7].name == "p"
        assert sum_costs(snapshot.patients) == 3


class TestRounding:
    """Test suite for rounding helpers"""

    @pytest.mark.parametrize("value,expected", [(2.5, 3), (3.5, 4), (2.4, 2), (0.5, 1)])
    def test_half_up(self, value, expected):
        assert round_half_up(value) == expected

    def test_one_decimal(self):
        assert round_half_up(34.65, 1) == 34.7

    def test_percentage_zero_whole(self):
        assert percentage(5, 0) == 0
        assert percentage(5, 0, digits=1) == 0.0

    def test_percentage(self):
        assert percentage(1, 4) == 25
        assert percentage(1, 3, digits=1) == 33.3


class TestFormatTableData:
    """Test suite for table formatting"""

    def test_rows_to_dicts(self, report_service):
        rows = report_service.format_table_data([("a", 1), ("b", 2)], ["name", "count"])
        assert rows == [{"name": "a", "count": 1}, {"name": "b", "count": 2}]

    def test_empty(self, report_service):
        assert report_service.format_table_data([], ["name"]) == []
