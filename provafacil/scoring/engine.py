"""
Scoring engine - compares extracted answers with an answer key.

A single pass over the answer key builds the per-question breakdown and
the aggregate summary together. The function is pure: it only reads its
arguments, never raises for short or missing inputs, and is safe to call
from several threads at once.
"""

import math
from collections.abc import Sequence
from decimal import Decimal
from numbers import Real

from provafacil.models import GradeSummary, GradingReport, QuestionDetail, is_unreadable


def calculate_grades(
    extracted_answers: Sequence[str],
    answer_key: Sequence[str],
    points: Sequence[float] | None = None,
) -> GradingReport:
    """
    Grade extracted answers against an answer key.

    Only indices covered by the answer key are consulted. Missing student
    answers count as "" (always incorrect). When ``points`` is given the
    grading is weighted and missing weights count as 0; when it is None
    every question is worth one point.

    Args:
        extracted_answers: Tokens read from the student's sheet.
        answer_key: Correct token for each question.
        points: Optional weight for each question.

    Returns:
        GradingReport with the summary and one detail per key entry.
    """
    weighted = points is not None
    total_questions = len(answer_key)

    correct = 0
    unreadable = 0
    weights: list[float] = []
    earned_weights: list[float] = []
    details: list[QuestionDetail] = []

    for i, correct_answer in enumerate(answer_key):
        student_answer = extracted_answers[i] if i < len(extracted_answers) else ""
        is_correct = student_answer == correct_answer

        if is_correct:
            correct += 1
        if is_unreadable(student_answer):
            unreadable += 1

        if weighted:
            weight = _weight_at(points, i)
            earned = weight if is_correct else 0.0
            weights.append(weight)
            earned_weights.append(earned)
            details.append(
                QuestionDetail(
                    question=i + 1,
                    student_answer=student_answer,
                    correct_answer=correct_answer,
                    is_correct=is_correct,
                    points=weight,
                    earned_points=earned,
                )
            )
        else:
            details.append(
                QuestionDetail(
                    question=i + 1,
                    student_answer=student_answer,
                    correct_answer=correct_answer,
                    is_correct=is_correct,
                )
            )

    if weighted:
        total_points = _sum(weights)
        earned_points = _sum(earned_weights)
        score = _weighted_score(earned_weights, weights, earned_points, total_points)
        summary = GradeSummary(
            correct_answers=correct,
            incorrect_answers=total_questions - correct,
            total_questions=total_questions,
            score=score,
            total_points=total_points,
            earned_points=earned_points,
            unreadable_answers=unreadable,
        )
    else:
        summary = GradeSummary(
            correct_answers=correct,
            incorrect_answers=total_questions - correct,
            total_questions=total_questions,
            score=_percentage(float(correct), float(total_questions)),
            unreadable_answers=unreadable,
        )

    return GradingReport(summary=summary, details=tuple(details))


def _weight_at(points: Sequence[float], index: int) -> float:
    """Weight for a question; missing, non-numeric, negative or non-finite weights are 0."""
    if index >= len(points):
        return 0.0
    value = points[index]
    if isinstance(value, bool) or not isinstance(value, (Real, Decimal)):
        return 0.0
    if isinstance(value, Decimal) and not value.is_finite():
        return 0.0
    weight = float(value)
    if not math.isfinite(weight) or weight < 0:
        return 0.0
    return weight


def _sum(values: list[float]) -> float:
    """Exact float sum; math.inf when it doesn't fit in a float."""
    try:
        return math.fsum(values)
    except OverflowError:
        return math.inf


def _weighted_score(
    earned_weights: list[float],
    weights: list[float],
    earned_points: float,
    total_points: float,
) -> float:
    if math.isfinite(total_points):
        return _percentage(earned_points, total_points)

    # The sum overflowed; weights relative to the largest one keep the same ratio
    largest = max(weights)
    return _percentage(
        math.fsum(w / largest for w in earned_weights),
        math.fsum(w / largest for w in weights),
    )


def _percentage(part: float, whole: float) -> float:
    if whole <= 0:
        return 0.0
    score = part / whole * 100
    if not math.isfinite(score):
        return 0.0
    # min() guards against float rounding nudging a perfect score past 100
    return min(score, 100.0)
