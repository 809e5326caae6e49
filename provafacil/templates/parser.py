"""
Template parser module.

Parses the comma-separated form input used when authoring a template
("A, b ,C" and "1, 1, 2") into a structured ExamTemplate.
"""

import math
import re

from provafacil.models import ExamTemplate


class TemplateParseError(Exception):
    """Raised when template form input can't be parsed."""

    def __init__(self, message: str, field: str | None = None):
        self.field = field
        if field:
            message = f"{field}: {message}"
        super().__init__(message)


class TemplateParser:
    """
    Parses template form fields into an ExamTemplate.

    Accepted separators are commas, semicolons and whitespace, so
    "A,B,C", "A; B; C" and "A B C" all describe the same key. Decimal
    commas are not supported in points; use "1.5".
    """

    SEPARATOR = re.compile(r"[,;\s]+")

    def parse(self, name: str, answer_key: str, points: str) -> ExamTemplate:
        """
        Parse template fields.

        Args:
            name: Template name.
            answer_key: Comma-separated answer tokens (e.g. "A,B,C").
            points: Comma-separated points per question (e.g. "1,1,2").

        Returns:
            ExamTemplate built from the fields. Shape checks such as
            key/points length agreement are left to TemplateValidator.

        Raises:
            TemplateParseError: If a field is empty or a point value isn't a number.
        """
        if not name or not name.strip():
            raise TemplateParseError("Template name is required", "name")

        key = self.parse_answer_key(answer_key)
        weights = self.parse_points(points)

        return ExamTemplate(name=name.strip(), answer_key=tuple(key), points=tuple(weights))

    def parse_answer_key(self, text: str) -> list[str]:
        """Split and normalize answer tokens (trimmed, upper-cased)."""
        tokens = self._split(text)
        if not tokens:
            raise TemplateParseError(
                "The answer key is required. Separate answers with commas (e.g. A,B,C).",
                "answer_key",
            )
        return [t.upper() for t in tokens]

    def parse_answers(self, text: str) -> list[str]:
        """
        Split and normalize a student's answers.

        Unlike the key, an empty list is allowed: a blank sheet scores
        every question as unanswered.
        """
        return [t.upper() for t in self._split(text)]

    def parse_points(self, text: str) -> list[float]:
        """Split and parse point values."""
        tokens = self._split(text)
        if not tokens:
            raise TemplateParseError(
                "Points for each question are required. Separate them with commas (e.g. 1,1,2).",
                "points",
            )

        values: list[float] = []
        for position, token in enumerate(tokens, start=1):
            try:
                value = float(token)
            except ValueError as e:
                raise TemplateParseError(
                    f"Invalid points value '{token}' for question {position}", "points"
                ) from e
            if not math.isfinite(value):
                raise TemplateParseError(
                    f"Points for question {position} must be a finite number", "points"
                )
            values.append(value)
        return values

    def _split(self, text: str) -> list[str]:
        if not text:
            return []
        return [t for t in self.SEPARATOR.split(text.strip()) if t]
