"""
Output Module.

Report rendering and audit trail persistence.
"""

from provafacil.output.audit import AuditTrail
from provafacil.output.report import ReportFormat, ReportGenerator

__all__ = [
    "AuditTrail",
    "ReportFormat",
    "ReportGenerator",
]
