"""
Scoring Module.

Pure comparison of extracted answers against an answer key.
"""

from provafacil.scoring.engine import calculate_grades

__all__ = ["calculate_grades"]
