"""
Grading service - the core orchestrator.

Runs extraction on an answer sheet, scores the extracted answers against
a template, and produces an audit record for the pass.
"""

import concurrent.futures
import logging
from collections.abc import Sequence
from typing import NamedTuple

from provafacil.config import Settings, get_settings
from provafacil.extraction import AnswerExtractor, ExtractionError, ImageLoadError, LLMError
from provafacil.models import AuditRecord, ExamTemplate, GradingReport, ImagePayload
from provafacil.scoring import calculate_grades

logger = logging.getLogger(__name__)

# Failures at the extraction boundary; try_grade turns these into None
GRADING_ERRORS = (ImageLoadError, LLMError, ExtractionError)


class GradingOutcome(NamedTuple):
    """Result of grading one answer sheet."""

    report: GradingReport
    audit: AuditRecord
    extracted_answers: tuple[str, ...]


class GradingService:
    """
    Grades answer sheet images against exam templates.

    Extraction is the only step that does I/O. Scoring runs once
    extraction has completed and never fails.
    """

    def __init__(self, settings: Settings | None = None, extractor: AnswerExtractor | None = None):
        """
        Initialize the grading service.

        Args:
            settings: Configuration settings. Uses global settings if not provided.
            extractor: Answer extractor. Built from settings if not provided.
        """
        self._settings = settings or get_settings()
        self._extractor = extractor or AnswerExtractor(self._settings)

    def grade(self, image: ImagePayload, template: ExamTemplate) -> GradingOutcome:
        """
        Grade a student's answer sheet.

        Args:
            image: Photo of the answer sheet.
            template: Template holding the answer key and points.

        Returns:
            GradingOutcome with the report, audit record and raw answers.

        Raises:
            LLMError: If the extraction service can't be reached.
            ExtractionError: If the extraction output is malformed.
        """
        extracted = self._extractor.extract_answers(
            image, expected_questions=template.question_count
        )
        if len(extracted) != template.question_count:
            logger.warning(
                "Extracted %d answers for a %d-question template '%s'",
                len(extracted),
                template.question_count,
                template.name,
            )

        return self._score(extracted, template, image_hash=image.content_hash)

    def try_grade(self, image: ImagePayload, template: ExamTemplate) -> GradingOutcome | None:
        """
        Grade a sheet, returning None if the image couldn't be processed.

        Errors are logged rather than raised; callers show a generic
        "could not process image" message and let the user resubmit.
        """
        try:
            return self.grade(image, template)
        except GRADING_ERRORS as e:
            logger.error("Error grading %s: %s", image.source, e)
            return None

    def grade_batch(
        self, images: Sequence[ImagePayload], template: ExamTemplate
    ) -> list[GradingOutcome | None]:
        """
        Grade several sheets in parallel.

        Returns:
            One entry per image, in input order; None where grading failed.
        """
        if not images:
            return []

        results: list[GradingOutcome | None] = [None] * len(images)
        workers = min(self._settings.grading_workers, len(images))

        with concurrent.futures.ThreadPoolExecutor(max_workers=workers) as executor:
            future_to_index = {
                executor.submit(self.try_grade, image, template): index
                for index, image in enumerate(images)
            }
            for future in concurrent.futures.as_completed(future_to_index):
                results[future_to_index[future]] = future.result()

        failed = sum(1 for r in results if r is None)
        logger.info("Graded %d sheets (%d failed)", len(images), failed)
        return results

    def score_answers(self, answers: Sequence[str], template: ExamTemplate) -> GradingOutcome:
        """Score answers that were already extracted (no API call)."""
        return self._score(list(answers), template, image_hash=None)

    def extract_template(
        self,
        image: ImagePayload,
        name: str,
        points: Sequence[float] | None = None,
    ) -> ExamTemplate:
        """
        Build a template from a photographed answer key.

        When ``points`` is omitted every question is worth one point.
        The template is returned unsaved so it can be reviewed first.

        Raises:
            LLMError: If the extraction service can't be reached.
            ExtractionError: If the extraction output is malformed.
        """
        expected = len(points) if points else None
        answer_key = self._extractor.extract_key(image, expected_questions=expected)
        weights = tuple(points) if points is not None else tuple(1.0 for _ in answer_key)
        return ExamTemplate(name=name, answer_key=tuple(answer_key), points=weights)

    def health_check(self) -> bool:
        """
        Check if the extraction service is reachable.

        Returns:
            True if the vision API responds.
        """
        return self._extractor.health_check()

    def _score(
        self, extracted: list[str], template: ExamTemplate, image_hash: str | None
    ) -> GradingOutcome:
        report = calculate_grades(extracted, template.answer_key, template.points)
        audit = self._create_audit(template, extracted, report, image_hash)
        logger.info(
            "Graded against '%s': %d/%d correct, %.1f%%",
            template.name,
            report.summary.correct_answers,
            report.summary.total_questions,
            report.summary.score,
        )
        return GradingOutcome(report=report, audit=audit, extracted_answers=tuple(extracted))

    def _create_audit(
        self,
        template: ExamTemplate,
        extracted: list[str],
        report: GradingReport,
        image_hash: str | None,
    ) -> AuditRecord:
        """
        Create an audit record for the grading operation.

        Returns:
            Immutable AuditRecord.
        """
        result_content = report.model_dump_json(by_alias=True)

        return AuditRecord(
            template_id=template.id,
            key_hash=AuditRecord.compute_hash(
                AuditRecord.serialize_key(template.answer_key, template.points)
            ),
            answers_hash=AuditRecord.compute_hash(AuditRecord.serialize_answers(extracted)),
            image_hash=image_hash,
            result_hash=AuditRecord.compute_hash(result_content),
            model_used=self._extractor.model if image_hash is not None else None,
        )
