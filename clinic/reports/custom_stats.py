"""
Custom Statistics

Evaluation and lifecycle of operator-authored custom statistics. A definition
names a statistic type, a category and an optional single-field filter; the
evaluator interprets it against a freshly fetched, scope-limited population.

Evaluation never raises for data anomalies: an unknown filter field matches
nothing, an empty population yields zero (or "unavailable" for averages).
Definition writes are validated and authorized before anything is persisted.
"""

import logging
from typing import Optional, Dict, List, Any

from ..auth import RequestContext
from ..config import config
from ..models import CustomStat, Patient
from ..storage import ClinicStorage
from .errors import ValidationError, AuthorizationError, NotFoundError
from .filters import apply_stat_filter
from .scope import AccessScope, resolve_scope, narrow_scope
from .service import ReportService, sum_amounts, sum_costs, percentage, round_half_up

logger = logging.getLogger(__name__)

STAT_TYPES = ('count', 'sum', 'percentage', 'average')
CATEGORIES = ('patients', 'payments', 'visits')

UNAVAILABLE_LABEL = "غير متوفر"


def format_stat_label(stat_type: str, value: Optional[int], currency: str = None) -> str:
    """Human-facing rendering of a computed value"""
    if value is None:
        return UNAVAILABLE_LABEL
    if stat_type == 'count':
        return f"{value} مريض"
    if stat_type == 'sum':
        return f"{value:,} {currency or config.reporting.currency_label}"
    if stat_type == 'percentage':
        return f"{value}%"
    if stat_type == 'average':
        return f"{value} سنة"
    return str(value)


def average_age(patients: List[Patient]) -> Optional[int]:
    """Mean age over the whole population, a missing age counting as 0; None when empty"""
    if not patients:
        return None
    ages = [p.age or 0 for p in patients]
    return round_half_up(sum(ages) / len(ages))


class CustomStatEvaluator:
    """Interprets custom stat definitions against live data"""

    def __init__(self, service: ReportService):
        self.service = service

    def population_scope(self, stat: CustomStat, scope: AccessScope,
                         branch_id: Optional[int] = None) -> AccessScope:
        """
        Scope a stat is evaluated over.

        A global stat follows the viewer, narrowed to one branch when one is
        requested. A branch stat always uses its own branch, which the viewer
        must be able to see.
        """
        if stat.is_global or stat.branch_id is None:
            return narrow_scope(scope, branch_id)
        if not scope.includes(stat.branch_id):
            logger.warning(f"Refused evaluation of custom stat {stat.id} outside caller scope")
            raise AuthorizationError("ليس لديك صلاحية لعرض هذه الإحصائية")
        return AccessScope.single(stat.branch_id)

    def calculate(self, stat: CustomStat, scope: AccessScope,
                  branch_id: Optional[int] = None) -> Dict[str, Any]:
        """
        Evaluate one definition.

        Returns:
            Dictionary with the definition, the value, its label, the filtered
            population size and the unfiltered population size
        """
        snapshot = self.service.fetch_snapshot(
            self.population_scope(stat, scope, branch_id), include_visits=False
        )
        population = snapshot.patients
        filtered = apply_stat_filter(population, stat.filter_field, stat.filter_value)

        if stat.stat_type == 'sum':
            if stat.category == 'payments':
                payments_by_patient = snapshot.payments_by_patient()
                value = sum(sum_amounts(payments_by_patient.get(p.id, [])) for p in filtered)
            else:
                value = sum_costs(filtered)
        elif stat.stat_type == 'percentage':
            value = percentage(len(filtered), len(population))
        elif stat.stat_type == 'average':
            value = average_age(filtered)
        else:
            value = len(filtered)

        return {
            "stat": stat.to_dict(),
            "value": value,
            "label": format_stat_label(stat.stat_type, value),
            "count": len(filtered),
            "totalCount": len(population)
        }


class CustomStatManager:
    """
    Custom stat definitions: scoped listing, validated writes and evaluation.

    Administrators manage every definition. Branch staff manage their own
    branch's definitions and may read, but never change, global ones.
    """

    def __init__(self, storage: ClinicStorage, service: ReportService = None):
        self.storage = storage
        self.evaluator = CustomStatEvaluator(service or ReportService(storage))

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def list_for_scope(self, scope: AccessScope) -> List[CustomStat]:
        if scope.is_empty:
            return []
        if scope.is_all:
            return self.storage.get_custom_stats()
        return self.storage.get_custom_stats(scope.branch_id, include_global=True)

    def list_stats(self, context: RequestContext) -> List[CustomStat]:
        """Definitions visible to the caller"""
        return self.list_for_scope(resolve_scope(context))

    def get_stat(self, context: RequestContext, stat_id: int) -> CustomStat:
        stat = self.storage.get_custom_stat(stat_id)
        if stat is None:
            raise NotFoundError("الإحصائية غير موجودة")

        scope = resolve_scope(context)
        visible = not scope.is_empty if stat.is_global else scope.includes(stat.branch_id)
        if not visible:
            logger.warning(f"Refused read of custom stat {stat_id} outside caller scope")
            raise AuthorizationError("ليس لديك صلاحية لعرض هذه الإحصائية")
        return stat

    def calculate(self, context: RequestContext, stat_id: int,
                  branch_id: Optional[int] = None) -> Dict[str, Any]:
        stat = self.get_stat(context, stat_id)
        result = self.evaluator.calculate(stat, resolve_scope(context), branch_id)
        logger.info(f"Calculated custom stat {stat_id} ({stat.stat_type}/{stat.category})")
        return result

    def evaluate_all(self, context: RequestContext, branch_id: Optional[int] = None) -> List[Dict[str, Any]]:
        """Evaluate every definition visible to the caller, optionally for one branch"""
        scope = narrow_scope(resolve_scope(context), branch_id)
        results = [self.evaluator.calculate(stat, scope) for stat in self.list_for_scope(scope)]
        logger.info(f"Evaluated {len(results)} custom stats (branch={branch_id})")
        return results

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def _validate(self, data: Dict[str, Any], partial: bool = False):
        """Reject malformed definitions before they reach storage"""
        if not partial or 'name' in data:
            if not (data.get('name') or '').strip():
                raise ValidationError("اسم الإحصائية مطلوب")
        if not partial or 'stat_type' in data:
            if data.get('stat_type') not in STAT_TYPES:
                raise ValidationError(
                    f"نوع الإحصائية غير صالح: {data.get('stat_type')!r} (المسموح: {', '.join(STAT_TYPES)})"
                )
        if not partial or 'category' in data:
            if data.get('category') not in CATEGORIES:
                raise ValidationError(
                    f"فئة الإحصائية غير صالحة: {data.get('category')!r} (المسموح: {', '.join(CATEGORIES)})"
                )

    def _require_branch(self, branch_id: Optional[int]):
        """A branch stat must name an existing branch"""
        if branch_id is None:
            raise ValidationError("يجب تحديد الفرع للإحصائية غير العامة")
        if branch_id not in {branch.id for branch in self.storage.get_branches()}:
            logger.warning(f"Custom stat write names unknown branch {branch_id}")
            raise ValidationError(f"الفرع غير موجود: {branch_id}")

    def _check_can_modify(self, context: RequestContext, stat: CustomStat):
        if context.is_admin:
            return
        if stat.is_global:
            logger.warning(f"Non-administrator attempted to modify global custom stat {stat.id}")
            raise AuthorizationError("فقط المدير يمكنه تعديل أو حذف الإحصائيات العامة")
        if context.branch_id is None or stat.branch_id != context.branch_id:
            logger.warning(f"Refused modification of custom stat {stat.id} owned by another branch")
            raise AuthorizationError("ليس لديك صلاحية لتعديل هذه الإحصائية")

    def create_stat(self, context: RequestContext, data: Dict[str, Any]) -> CustomStat:
        """
        Create a definition.

        Args:
            context: Caller identity
            data: Snake_case definition fields

        Returns:
            The persisted CustomStat
        """
        self._validate(data)
        record = {k: v for k, v in data.items() if k in ClinicStorage.CUSTOM_STAT_COLUMNS}
        is_global = bool(record.get('is_global'))

        if is_global:
            if not context.is_admin:
                logger.warning("Non-administrator attempted to create a global custom stat")
                raise AuthorizationError("فقط المدير يمكنه إنشاء إحصائيات عامة")
            record['branch_id'] = None
        elif context.is_admin:
            self._require_branch(record.get('branch_id'))
        else:
            if context.branch_id is None:
                raise AuthorizationError("لا يوجد فرع مرتبط بهذا المستخدم")
            record['branch_id'] = context.branch_id
            self._require_branch(record['branch_id'])

        record['is_global'] = is_global
        record['name'] = record['name'].strip()
        record['created_by'] = context.user_id
        return self.storage.create_custom_stat(record)

    def update_stat(self, context: RequestContext, stat_id: int, updates: Dict[str, Any]) -> CustomStat:
        """Apply a partial update; only the supplied fields change"""
        stat = self.storage.get_custom_stat(stat_id)
        if stat is None:
            raise NotFoundError("الإحصائية غير موجودة")
        self._check_can_modify(context, stat)
        self._validate(updates, partial=True)

        record = {
            k: v for k, v in updates.items()
            if k in ClinicStorage.CUSTOM_STAT_COLUMNS and k != 'created_by'
        }
        if 'name' in record:
            record['name'] = record['name'].strip()

        if not context.is_admin:
            if record.get('is_global'):
                logger.warning(f"Non-administrator attempted to make custom stat {stat_id} global")
                raise AuthorizationError("فقط المدير يمكنه إنشاء إحصائيات عامة")
            record.pop('branch_id', None)

        if record.get('branch_id') is not None and 'is_global' not in record:
            record['is_global'] = False

        if 'is_global' in record:
            record['is_global'] = bool(record['is_global'])
            if record['is_global']:
                record['branch_id'] = None

        if 'branch_id' in record or 'is_global' in record:
            if not record.get('is_global', stat.is_global):
                self._require_branch(record.get('branch_id', stat.branch_id))

        return self.storage.update_custom_stat(stat_id, record)

    def delete_stat(self, context: RequestContext, stat_id: int):
        stat = self.storage.get_custom_stat(stat_id)
        if stat is None:
            raise NotFoundError("الإحصائية غير موجودة")
        self._check_can_modify(context, stat)
        self.storage.delete_custom_stat(stat_id)
