"""
Template validation module.

Catches shape problems at authoring time so they never reach the
scoring engine.
"""

import math

from provafacil.models import ANULADA, ExamTemplate


class TemplateValidationError(Exception):
    """Raised when template validation fails."""

    def __init__(self, errors: list[str]):
        self.errors = errors
        message = "Template validation failed:\n" + "\n".join(f"  - {e}" for e in errors)
        super().__init__(message)


class TemplateValidator:
    """
    Validates templates for completeness and consistency.

    Checks:
    1. Name and answer key are present
    2. One point value per question
    3. Points are finite and non-negative
    4. The key doesn't contain the unreadable sentinel or blank tokens
    """

    # Sanity cap on exam length
    MAX_QUESTIONS = 500

    def validate(self, template: ExamTemplate) -> tuple[bool, list[str]]:
        """
        Validate a template and return any issues found.

        Args:
            template: The template to validate.

        Returns:
            Tuple of (is_valid, list of issues).
        """
        issues: list[str] = []

        if not template.name.strip():
            issues.append("name: Template name is empty")

        issues.extend(self._validate_answer_key(template))
        issues.extend(self._validate_points(template))

        return len(issues) == 0, issues

    def validate_or_raise(self, template: ExamTemplate) -> None:
        """
        Validate a template and raise if invalid.

        Raises:
            TemplateValidationError: If validation fails.
        """
        is_valid, issues = self.validate(template)
        if not is_valid:
            raise TemplateValidationError(issues)

    def _validate_answer_key(self, template: ExamTemplate) -> list[str]:
        issues: list[str] = []

        if not template.answer_key:
            issues.append("answer_key: Answer key has no questions")
        elif len(template.answer_key) > self.MAX_QUESTIONS:
            issues.append(
                f"answer_key: {len(template.answer_key)} questions exceeds the "
                f"maximum of {self.MAX_QUESTIONS}"
            )

        for number, token in enumerate(template.answer_key, start=1):
            if not token.strip():
                issues.append(f"answer_key: Question {number} has a blank answer")
            elif token == ANULADA:
                issues.append(
                    f"answer_key: Question {number} is {ANULADA}; the key sheet "
                    "could not be read for this question"
                )

        return issues

    def _validate_points(self, template: ExamTemplate) -> list[str]:
        issues: list[str] = []

        if len(template.points) != len(template.answer_key):
            issues.append(
                f"points: The number of points ({len(template.points)}) must match "
                f"the number of answers ({len(template.answer_key)})"
            )

        for number, value in enumerate(template.points, start=1):
            if not math.isfinite(value):
                issues.append(f"points: Question {number} has a non-finite value")
            elif value < 0:
                issues.append(f"points: Question {number} has negative points ({value})")

        return issues
