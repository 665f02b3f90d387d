"""
Reports Module

Reporting engine for the clinic: access scoping, time ranges and civil-day
bucketing, daily ledgers, distributions and custom statistics, exposed through
one FastAPI router. Layered as router -> handlers -> service -> filters.
"""

from .router import router as reports_router
from .errors import ReportError, ValidationError, AuthorizationError, NotFoundError
from .scope import AccessScope, resolve_scope, narrow_scope
from .service import ReportService, ReportSnapshot

__all__ = [
    "reports_router",
    "ReportError",
    "ValidationError",
    "AuthorizationError",
    "NotFoundError",
    "AccessScope",
    "resolve_scope",
    "narrow_scope",
    "ReportService",
    "ReportSnapshot"
]
