"""
================================================================================
Clinic Reporting - Unified Test Configuration and Fixtures
================================================================================

Description:
    Shared pytest configuration and fixtures for unit and API tests.
    Provides a temporary SQLite database, seeded clinic data, a FastAPI test
    client wired to that database, and identity header helpers.

Fixtures:
    - db_manager: DatabaseManager over a temporary database file
    - storage: ClinicStorage over db_manager
    - ledger_storage: the two-day, one-branch ledger example
    - seeded_storage: two branches with patients of every condition
    - client: FastAPI TestClient using seeded_storage
    - admin_headers / staff_headers: request identity headers

================================================================================
"""
import pytest
import sys
from pathlib import Path
from unittest.mock import Mock

# Add project root to path for all tests
project_root = Path(__file__).parent.parent
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))

from clinic.database import DatabaseManager
from clinic.storage import ClinicStorage
from clinic.reports.service import ReportService


# Civil day D1 and D2 of the ledger example (09:00 UTC is 12:00 civil time)
DAY_ONE = "2024-03-10T09:00:00+00:00"
DAY_TWO = "2024-03-11T09:00:00+00:00"


@pytest.fixture
def db_manager(tmp_path):
    """Database manager over a fresh temporary database"""
    manager = DatabaseManager(tmp_path / "clinic.db")
    yield manager
    manager.close()


@pytest.fixture
def storage(db_manager):
    return ClinicStorage(db_manager)


@pytest.fixture
def mock_storage():
    """Storage double for handler tests"""
    return Mock(spec=ClinicStorage)


@pytest.fixture
def ledger_storage(storage):
    """
    Branch with P1 (5000, day one) and P2 (3000, day two); payments of 2000 on
    day one for P1, then 1000 for P2 and 500 for P1 on day two.
    """
    branch = storage.add_branch("فرع الكرادة", "بغداد")
    p1 = storage.add_patient(branch.id, "P1", total_cost=5000, is_amputee=True, created_at=DAY_ONE)
    p2 = storage.add_patient(branch.id, "P2", total_cost=3000, is_physiotherapy=True, created_at=DAY_TWO)
    storage.add_payment(p1.id, branch.id, 2000, date=DAY_ONE, notes="دفعة أولى")
    storage.add_payment(p2.id, branch.id, 1000, date="2024-03-11T10:00:00+00:00")
    storage.add_payment(p1.id, branch.id, 500, date="2024-03-11T11:00:00+00:00")
    return storage


@pytest.fixture
def seeded_storage(storage):
    """
    Two branches.

    Branch 1: an amputee (age 30, below knee, cost 4000, paid 1000), a
    physiotherapy patient (age 50, robot treatment, cost 2000, paid 2000) and
    a medical-support patient (age 8, cost 1000, unpaid).
    Branch 2: one physiotherapy patient (age 72, cost 6000, paid 1500).
    """
    b1 = storage.add_branch("الفرع الأول", "بغداد")
    b2 = storage.add_branch("الفرع الثاني", "البصرة")

    amputee = storage.add_patient(
        b1.id, "مريض بتر", age=30, is_amputee=True, amputation_site="تحت الركبة",
        total_cost=4000, created_at="2024-01-15T08:00:00+00:00"
    )
    physio = storage.add_patient(
        b1.id, "مريض علاج طبيعي", age=50, is_physiotherapy=True, disease_type="شلل نصفي",
        treatment_type="روبوت", total_cost=2000, created_at="2024-02-20T08:00:00+00:00"
    )
    storage.add_patient(
        b1.id, "مريض مساند", age=8, is_medical_support=True, support_type="جبيرة",
        total_cost=1000, created_at="2024-02-21T08:00:00+00:00"
    )
    far_physio = storage.add_patient(
        b2.id, "مريض البصرة", age=72, is_physiotherapy=True, disease_type="انزلاق غضروفي",
        total_cost=6000, created_at="2024-03-05T08:00:00+00:00"
    )

    storage.add_payment(amputee.id, b1.id, 1000, date="2024-01-15T09:00:00+00:00")
    storage.add_payment(physio.id, b1.id, 2000, date="2024-02-20T09:00:00+00:00")
    storage.add_payment(far_physio.id, b2.id, 1500, date="2024-03-05T09:00:00+00:00")

    storage.add_visit(physio.id, b1.id, visit_date="2024-02-22T09:00:00+00:00", treatment_type="روبوت")
    storage.add_visit(far_physio.id, b2.id, visit_date="2024-03-06T09:00:00+00:00")
    return storage


@pytest.fixture
def service(seeded_storage):
    return ReportService(seeded_storage)


@pytest.fixture
def client(seeded_storage, db_manager):
    """FastAPI test client backed by the seeded temporary database"""
    from fastapi.testclient import TestClient
    from clinic.app import app, app_state
    from clinic.reports.router import get_storage

    app.dependency_overrides[get_storage] = lambda: seeded_storage
    previous_state = dict(app_state)
    app_state["db_manager"] = db_manager
    app_state["storage"] = seeded_storage

    yield TestClient(app)

    app.dependency_overrides.clear()
    app_state.update(previous_state)


@pytest.fixture
def admin_headers():
    return {"X-User-Role": "admin"}


@pytest.fixture
def staff_headers():
    """Header factory for branch staff"""
    def _headers(branch_id=1):
        headers = {"X-User-Role": "staff"}
        if branch_id is not None:
            headers["X-Branch-Id"] = str(branch_id)
        return headers
    return _headers
