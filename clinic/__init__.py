"""
Clinic Reporting Service

Reporting and statistics engine for a multi-branch clinic records system.
"""

__version__ = "1.0.0"
