"""
================================================================================
Clinic Reporting - Custom Statistics Unit Tests
================================================================================

Description:
    Unit tests for custom statistic evaluation and for the definition
    lifecycle (validation, authorization, not-found handling) against the
    seeded two-branch database.

Test Coverage:
    - count / sum / percentage / average evaluation and labels
    - Evaluation population for global and branch stats
    - Unknown filter fields degrading to no match
    - Create / update / delete rules per role

================================================================================
"""
import pytest

from clinic.auth import RequestContext, UserRole
from clinic.models import CustomStat
from clinic.reports.custom_stats import (
    CustomStatEvaluator,
    CustomStatManager,
    format_stat_label,
    average_age,
    UNAVAILABLE_LABEL,
)
from clinic.reports.errors import ValidationError, AuthorizationError, NotFoundError
from clinic.reports.scope import AccessScope


ADMIN = RequestContext(role=UserRole.ADMIN, user_id="admin")


def staff(branch_id):
    return RequestContext(role=UserRole.STAFF, branch_id=branch_id, user_id=f"staff-{branch_id}")


def make_stat(stat_type='count', category='patients', **fields):
    fields.setdefault('is_global', True)
    return CustomStat(id=fields.pop('id', 1), name="stat", stat_type=stat_type, category=category, **fields)


@pytest.fixture
def evaluator(service):
    return CustomStatEvaluator(service)


@pytest.fixture
def manager(seeded_storage, service):
    return CustomStatManager(seeded_storage, service)


class TestFormatLabel:
    """Test suite for value labels"""

    def test_labels(self):
        assert format_stat_label('count', 3) == "3 مريض"
        assert format_stat_label('sum', 12500, currency="د.ع") == "12,500 د.ع"
        assert format_stat_label('percentage', 25) == "25%"
        assert format_stat_label('average', 40) == "40 سنة"

    def test_unavailable(self):
        assert format_stat_label('average', None) == UNAVAILABLE_LABEL

    def test_average_age_rounds_half_up(self):
        from clinic.models import Patient
        patients = [Patient(id=1, branch_id=1, name="a", age=20), Patient(id=2, branch_id=1, name="b", age=21)]
        assert average_age(patients) == 21

    def test_average_age_counts_missing_age_as_zero(self):
        from clinic.models import Patient
        patients = [Patient(id=1, branch_id=1, name="a", age=40), Patient(id=2, branch_id=1, name="b")]
        assert average_age(patients) == 20
        assert average_age([]) is None


class TestEvaluator:
    """Test suite for stat evaluation"""

    def test_percentage_example(self, evaluator):
        stat = make_stat('percentage', filter_field='isAmputee', filter_value='true')
        result = evaluator.calculate(stat, AccessScope.all_branches())
        assert result["value"] == 25
        assert result["label"] == "25%"
        assert result["count"] == 1
        assert result["totalCount"] == 4

    def test_count_with_filter(self, evaluator):
        stat = make_stat('count', filter_field='isPhysiotherapy', filter_value='true')
        result = evaluator.calculate(stat, AccessScope.all_branches())
        assert result["value"] == 2
        assert result["label"] == "2 مريض"

    def test_sum_payments_of_filtered_patients(self, evaluator):
        stat = make_stat('sum', 'payments', filter_field='isPhysiotherapy', filter_value='true')
        result = evaluator.calculate(stat, AccessScope.all_branches())
        assert result["value"] == 3500
        assert result["label"].startswith("3,500 ")

    def test_sum_costs_for_patients(self, evaluator):
        stat = make_stat('sum', 'patients', filter_field='isPhysiotherapy', filter_value='true')
        assert evaluator.calculate(stat, AccessScope.all_branches())["value"] == 8000

    def test_average_age(self, evaluator):
        result = evaluator.calculate(make_stat('average'), AccessScope.all_branches())
        assert result["value"] == 40
        assert result["label"] == "40 سنة"

    def test_average_empty_population_unavailable(self, evaluator):
        stat = make_stat('average', filter_field='diseaseType', filter_value='غير موجود')
        result = evaluator.calculate(stat, AccessScope.all_branches())
        assert result["value"] is None
        assert result["label"] == UNAVAILABLE_LABEL

    def test_unknown_filter_field_is_no_match(self, evaluator):
        stat = make_stat('count', filter_field='bloodType', filter_value='O+')
        result = evaluator.calculate(stat, AccessScope.all_branches())
        assert result["value"] == 0
        assert result["totalCount"] == 4

    def test_percentage_empty_population(self, evaluator):
        result = evaluator.calculate(make_stat('percentage'), AccessScope.empty())
        assert result["value"] == 0

    def test_percentage_bounds(self, evaluator):
        result = evaluator.calculate(make_stat('percentage'), AccessScope.all_branches())
        assert 0 <= result["value"] <= 100

    def test_global_stat_follows_viewer(self, evaluator):
        result = evaluator.calculate(make_stat('count'), AccessScope.single(1))
        assert result["value"] == 3

    def test_global_stat_admin_viewing_branch(self, evaluator):
        result = evaluator.calculate(make_stat('count'), AccessScope.all_branches(), branch_id=2)
        assert result["value"] == 1

    def test_branch_stat_uses_own_branch(self, evaluator):
        stat = make_stat('count', is_global=False, branch_id=2)
        result = evaluator.calculate(stat, AccessScope.all_branches(), branch_id=1)
        assert result["value"] == 1

    def test_branch_stat_outside_scope_refused(self, evaluator):
        stat = make_stat('count', is_global=False, branch_id=2)
        with pytest.raises(AuthorizationError):
            evaluator.calculate(stat, AccessScope.single(1))


class TestManagerReads:
    """Test suite for listing and reading definitions"""

    def test_staff_sees_own_and_global(self, manager):
        manager.create_stat(ADMIN, {'name': 'global', 'stat_type': 'count', 'category': 'patients', 'is_global': True})
        manager.create_stat(staff(1), {'name': 'b1', 'stat_type': 'count', 'category': 'patients'})
        manager.create_stat(staff(2), {'name': 'b2', 'stat_type': 'count', 'category': 'patients'})

        assert sorted(s.name for s in manager.list_stats(staff(1))) == ['b1', 'global']
        assert len(manager.list_stats(ADMIN)) == 3
        assert manager.list_stats(staff(None)) == []

    def test_get_missing(self, manager):
        with pytest.raises(NotFoundError):
            manager.get_stat(ADMIN, 999)

    def test_get_other_branch_refused(self, manager):
        stat = manager.create_stat(staff(2), {'name': 'b2', 'stat_type': 'count', 'category': 'patients'})
        with pytest.raises(AuthorizationError):
            manager.get_stat(staff(1), stat.id)

    def test_calculate_by_id(self, manager):
        stat = manager.create_stat(staff(1), {
            'name': 'amputees', 'stat_type': 'count', 'category': 'patients',
            'filter_field': 'isAmputee', 'filter_value': 'true'
        })
        result = manager.calculate(staff(1), stat.id)
        assert result["value"] == 1
        assert result["stat"]["name"] == 'amputees'

    def test_evaluate_all(self, manager):
        manager.create_stat(ADMIN, {'name': 'all', 'stat_type': 'count', 'category': 'patients', 'is_global': True})
        manager.create_stat(ADMIN, {'name': 'b2', 'stat_type': 'count', 'category': 'patients', 'branch_id': 2})
        values = {r["stat"]["name"]: r["value"] for r in manager.evaluate_all(staff(2))}
        assert values == {'all': 1, 'b2': 1}


class TestManagerWrites:
    """Test suite for validated, authorized writes"""

    @pytest.mark.parametrize("data", [
        {'name': 'x', 'stat_type': 'median', 'category': 'patients'},
        {'name': 'x', 'stat_type': 'count', 'category': 'doctors'},
        {'name': '  ', 'stat_type': 'count', 'category': 'patients'},
        {'name': 'x', 'category': 'patients'},
    ])
    def test_invalid_definition_rejected(self, manager, seeded_storage, data):
        with pytest.raises(ValidationError) as exc_info:
            manager.create_stat(ADMIN, dict(data, is_global=True))
        assert exc_info.value.status_code == 400
        assert seeded_storage.get_custom_stats() == []

    def test_staff_cannot_create_global(self, manager):
        with pytest.raises(AuthorizationError):
            manager.create_stat(staff(1), {'name': 'g', 'stat_type': 'count', 'category': 'patients', 'is_global': True})

    def test_staff_create_forced_to_own_branch(self, manager):
        stat = manager.create_stat(staff(1), {
            'name': 'mine', 'stat_type': 'count', 'category': 'patients', 'branch_id': 2
        })
        assert stat.branch_id == 1
        assert not stat.is_global
        assert stat.created_by == 'staff-1'

    def test_admin_branch_stat_needs_branch(self, manager):
        with pytest.raises(ValidationError):
            manager.create_stat(ADMIN, {'name': 'x', 'stat_type': 'count', 'category': 'patients'})

    def test_admin_global_has_no_branch(self, manager):
        stat = manager.create_stat(ADMIN, {
            'name': 'g', 'stat_type': 'count', 'category': 'patients', 'is_global': True, 'branch_id': 1
        })
        assert stat.is_global
        assert stat.branch_id is None

    def test_staff_cannot_update_global(self, manager):
        stat = manager.create_stat(ADMIN, {'name': 'g', 'stat_type': 'count', 'category': 'patients', 'is_global': True})
        with pytest.raises(AuthorizationError):
            manager.update_stat(staff(1), stat.id, {'name': 'renamed'})

    def test_staff_cannot_update_other_branch(self, manager):
        stat = manager.create_stat(staff(2), {'name': 'b2', 'stat_type': 'count', 'category': 'patients'})
        with pytest.raises(AuthorizationError):
            manager.update_stat(staff(1), stat.id, {'name': 'renamed'})

    def test_staff_cannot_make_stat_global(self, manager):
        stat = manager.create_stat(staff(1), {'name': 'b1', 'stat_type': 'count', 'category': 'patients'})
        with pytest.raises(AuthorizationError):
            manager.update_stat(staff(1), stat.id, {'is_global': True})

    def test_partial_update(self, manager):
        stat = manager.create_stat(staff(1), {'name': 'b1', 'stat_type': 'count', 'category': 'patients'})
        updated = manager.update_stat(staff(1), stat.id, {'stat_type': 'percentage'})
        assert updated.stat_type == 'percentage'
        assert updated.name == 'b1'
        assert updated.branch_id == 1

    def test_update_invalid_type(self, manager):
        stat = manager.create_stat(staff(1), {'name': 'b1', 'stat_type': 'count', 'category': 'patients'})
        with pytest.raises(ValidationError):
            manager.update_stat(staff(1), stat.id, {'stat_type': 'mode'})

    def test_update_missing(self, manager):
        with pytest.raises(NotFoundError):
            manager.update_stat(ADMIN, 404, {'name': 'x'})

    def test_admin_moves_global_to_branch(self, manager):
        stat = manager.create_stat(ADMIN, {'name': 'g', 'stat_type': 'count', 'category': 'patients', 'is_global': True})
        updated = manager.update_stat(ADMIN, stat.id, {'branch_id': 2})
        assert not updated.is_global
        assert updated.branch_id == 2

    def test_admin_cannot_clear_branch_of_branch_stat(self, manager, seeded_storage):
        stat = manager.create_stat(ADMIN, {'name': 'b1', 'stat_type': 'count', 'category': 'patients', 'branch_id': 1})
        with pytest.raises(ValidationError):
            manager.update_stat(ADMIN, stat.id, {'branch_id': None})
        stored = seeded_storage.get_custom_stat(stat.id)
        assert stored.branch_id == 1
        assert not stored.is_global

    def test_admin_create_unknown_branch_rejected(self, manager, seeded_storage):
        with pytest.raises(ValidationError) as exc_info:
            manager.create_stat(ADMIN, {'name': 'x', 'stat_type': 'count', 'category': 'patients', 'branch_id': 999})
        assert exc_info.value.status_code == 400
        assert seeded_storage.get_custom_stats() == []

    def test_admin_move_to_unknown_branch_rejected(self, manager, seeded_storage):
        stat = manager.create_stat(ADMIN, {'name': 'g', 'stat_type': 'count', 'category': 'patients', 'is_global': True})
        with pytest.raises(ValidationError):
            manager.update_stat(ADMIN, stat.id, {'branch_id': 999})
        assert seeded_storage.get_custom_stat(stat.id).is_global

    def test_delete_rules(self, manager, seeded_storage):
        global_stat = manager.create_stat(ADMIN, {'name': 'g', 'stat_type': 'count', 'category': 'patients', 'is_global': True})
        own = manager.create_stat(staff(1), {'name': 'b1', 'stat_type': 'count', 'category': 'patients'})

        with pytest.raises(AuthorizationError):
            manager.delete_stat(staff(1), global_stat.id)
        with pytest.raises(AuthorizationError):
            manager.delete_stat(staff(2), own.id)

        manager.delete_stat(staff(1), own.id)
        manager.delete_stat(ADMIN, global_stat.id)
        assert seeded_storage.get_custom_stats() == []

    def test_delete_missing(self, manager):
        with pytest.raises(NotFoundError):
            manager.delete_stat(ADMIN, 12345)
