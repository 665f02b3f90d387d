"""
Report Errors

Error taxonomy for the reporting API. Only definition writes and access checks
raise; evaluation-time anomalies are absorbed into default values instead.
"""


class ReportError(Exception):
    """Base error carrying the HTTP status it maps to"""
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(ReportError):
    """Malformed custom stat definition"""
    status_code = 400


class AuthorizationError(ReportError):
    """Caller may not see or change the requested resource"""
    status_code = 403


class NotFoundError(ReportError):
    """Requested resource does not exist"""
    status_code = 404
