"""
Grading Module.

Extraction plus scoring for answer sheets, one at a time or in batches.
"""

from provafacil.grading.service import GRADING_ERRORS, GradingOutcome, GradingService

__all__ = [
    "GRADING_ERRORS",
    "GradingOutcome",
    "GradingService",
]
