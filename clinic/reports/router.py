"""
Report Router (API Layer)

FastAPI router for the reporting endpoints: branch ledgers and summaries,
statistics and distributions, and custom statistic definitions. Every endpoint
resolves the caller's identity first and hands the handlers an explicit scope.
"""

import logging
from typing import Optional
from fastapi import APIRouter, Query, Depends, status

from ..auth import RequestContext, get_request_context
from ..storage import ClinicStorage
from .custom_stats import CustomStatManager
from .distribution import DistributionReports
from .handlers import LedgerReports
from .models import CustomStatCreate, CustomStatUpdate
from .scope import AccessScope, resolve_scope
from .service import ReportService

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api", tags=["reports"])


def get_storage() -> ClinicStorage:
    """Storage collaborator created by the app lifespan"""
    from ..app import app_state
    return app_state["storage"]


def get_report_service(storage: ClinicStorage = Depends(get_storage)) -> ReportService:
    return ReportService(storage)


def get_scope(context: RequestContext = Depends(get_request_context)) -> AccessScope:
    return resolve_scope(context)


# ============================================================================
# LEDGER & SUMMARY ENDPOINTS
# ============================================================================

@router.get("/reports/detailed/{branch_id}")
async def get_detailed_report(
    branch_id: int,
    scope: AccessScope = Depends(get_scope),
    service: ReportService = Depends(get_report_service)
):
    """Daily ledger for one branch"""
    handler = LedgerReports(service)
    return handler.get_detailed_report(scope, branch_id)


@router.get("/reports/all-branches")
async def get_all_branches(
    daily: bool = Query(False),
    scope: AccessScope = Depends(get_scope),
    service: ReportService = Depends(get_report_service)
):
    """Revenue summary per visible branch, optionally for today only"""
    handler = LedgerReports(service)
    return handler.get_all_branches(scope, daily=daily)


@router.get("/reports/branch/{branch_id}")
async def get_branch_report(
    branch_id: int,
    scope: AccessScope = Depends(get_scope),
    service: ReportService = Depends(get_report_service)
):
    """All-time revenue summary for one branch"""
    handler = LedgerReports(service)
    return handler.get_branch_summary(scope, branch_id)


@router.get("/reports/overall")
async def get_overall_report(
    scope: AccessScope = Depends(get_scope),
    service: ReportService = Depends(get_report_service)
):
    handler = LedgerReports(service)
    return handler.get_overall(scope)


@router.get("/reports/today")
async def get_today_report(
    scope: AccessScope = Depends(get_scope),
    service: ReportService = Depends(get_report_service)
):
    handler = LedgerReports(service)
    return handler.get_today(scope)


@router.get("/reports/debtors")
async def get_debtors(
    branch_id: Optional[int] = Query(None, alias="branchId"),
    min_amount: Optional[int] = Query(None, alias="minAmount"),
    scope: AccessScope = Depends(get_scope),
    service: ReportService = Depends(get_report_service)
):
    """Patients with an outstanding balance"""
    handler = LedgerReports(service)
    return handler.get_debtors(scope, branch_id, min_amount)


# ============================================================================
# STATISTICS ENDPOINTS
# ============================================================================

@router.get("/statistics")
async def get_statistics(
    time_range: Optional[str] = Query('all', alias="range"),
    branch_id: Optional[int] = Query(None, alias="branchId"),
    scope: AccessScope = Depends(get_scope),
    service: ReportService = Depends(get_report_service)
):
    """Headline counters and distributions over a time window"""
    handler = DistributionReports(service)
    return handler.get_statistics(scope, time_range, branch_id)


@router.get("/statistics/revenue-by-treatment")
async def get_revenue_by_treatment(
    branch_id: Optional[int] = Query(None, alias="branchId"),
    scope: AccessScope = Depends(get_scope),
    service: ReportService = Depends(get_report_service)
):
    handler = DistributionReports(service)
    return handler.get_revenue_by_treatment(scope, branch_id)


@router.get("/statistics/profitability-by-service")
async def get_profitability_by_service(
    branch_id: Optional[int] = Query(None, alias="branchId"),
    scope: AccessScope = Depends(get_scope),
    service: ReportService = Depends(get_report_service)
):
    handler = DistributionReports(service)
    return handler.get_profitability_by_service(scope, branch_id)


# ============================================================================
# CUSTOM STAT ENDPOINTS
# ============================================================================

def get_custom_stat_manager(
    storage: ClinicStorage = Depends(get_storage),
    service: ReportService = Depends(get_report_service)
) -> CustomStatManager:
    return CustomStatManager(storage, service)


@router.get("/custom-stats")
async def list_custom_stats(
    context: RequestContext = Depends(get_request_context),
    manager: CustomStatManager = Depends(get_custom_stat_manager)
):
    """Definitions visible to the caller"""
    return [stat.to_dict() for stat in manager.list_stats(context)]


@router.get("/custom-stats/values")
async def get_custom_stat_values(
    branch_id: Optional[int] = Query(None, alias="branchId"),
    context: RequestContext = Depends(get_request_context),
    manager: CustomStatManager = Depends(get_custom_stat_manager)
):
    """Every visible definition evaluated in one pass"""
    return manager.evaluate_all(context, branch_id)


@router.post("/custom-stats", status_code=status.HTTP_201_CREATED)
async def create_custom_stat(
    body: CustomStatCreate,
    context: RequestContext = Depends(get_request_context),
    manager: CustomStatManager = Depends(get_custom_stat_manager)
):
    stat = manager.create_stat(context, body.to_record())
    return stat.to_dict()


@router.get("/custom-stats/{stat_id}")
async def get_custom_stat(
    stat_id: int,
    context: RequestContext = Depends(get_request_context),
    manager: CustomStatManager = Depends(get_custom_stat_manager)
):
    return manager.get_stat(context, stat_id).to_dict()


@router.put("/custom-stats/{stat_id}")
async def update_custom_stat(
    stat_id: int,
    body: CustomStatUpdate,
    context: RequestContext = Depends(get_request_context),
    manager: CustomStatManager = Depends(get_custom_stat_manager)
):
    stat = manager.update_stat(context, stat_id, body.to_record())
    return stat.to_dict()


@router.delete("/custom-stats/{stat_id}")
async def delete_custom_stat(
    stat_id: int,
    context: RequestContext = Depends(get_request_context),
    manager: CustomStatManager = Depends(get_custom_stat_manager)
):
    manager.delete_stat(context, stat_id)
    return {"success": True}


@router.get("/custom-stats/{stat_id}/calculate")
async def calculate_custom_stat(
    stat_id: int,
    branch_id: Optional[int] = Query(None, alias="branchId"),
    context: RequestContext = Depends(get_request_context),
    manager: CustomStatManager = Depends(get_custom_stat_manager)
):
    """Evaluate one definition against live data"""
    return manager.calculate(context, stat_id, branch_id)
