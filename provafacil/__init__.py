"""
ProvaFácil - photo-based multiple-choice exam grading.

A student's answer sheet is photographed, a multimodal LLM reads the
marked choices, and the answers are scored against a stored answer key.
"""

__version__ = "1.0.0"
__author__ = "ProvaFácil Team"
