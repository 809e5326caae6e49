"""
Answer extractor - reads answer tokens off sheet images.

Combines the prompt builder, vision client and response parser into
the two calls the rest of the application needs: read a student's
sheet, and read an answer key.
"""

import logging

from provafacil.config import Settings, get_settings
from provafacil.extraction.llm_client import VisionClient
from provafacil.extraction.parser import ExtractionParser
from provafacil.extraction.prompt_builder import PromptBuilder
from provafacil.models import ImagePayload

logger = logging.getLogger(__name__)


class AnswerExtractor:
    """Wraps the external extraction service."""

    def __init__(self, settings: Settings | None = None, client: VisionClient | None = None):
        """
        Initialize the extractor.

        Args:
            settings: Configuration settings. Uses global settings if not provided.
            client: Vision client to use. Built from settings if not provided.
        """
        self._settings = settings or get_settings()
        self._client = client or VisionClient(self._settings)
        self._parser = ExtractionParser()

    @property
    def model(self) -> str:
        return self._settings.llm_model

    def extract_answers(
        self, image: ImagePayload, expected_questions: int | None = None
    ) -> list[str]:
        """
        Read the answers a student marked.

        Args:
            image: Photo of the student's answer sheet.
            expected_questions: Number of questions on the exam, if known.

        Returns:
            Normalized answer tokens in question order.

        Raises:
            LLMError: If the vision API call fails.
            ExtractionError: If the response can't be parsed.
        """
        prompt = PromptBuilder.build_answer_sheet_prompt(expected_questions)
        return self._run(image, prompt, "answer sheet")

    def extract_key(self, image: ImagePayload, expected_questions: int | None = None) -> list[str]:
        """
        Read the correct answers from a photographed answer key.

        Raises:
            LLMError: If the vision API call fails.
            ExtractionError: If the response can't be parsed.
        """
        prompt = PromptBuilder.build_answer_key_prompt(expected_questions)
        return self._run(image, prompt, "answer key")

    def health_check(self) -> bool:
        return self._client.health_check()

    def _run(self, image: ImagePayload, user_prompt: str, kind: str) -> list[str]:
        logger.debug("Extracting %s from %s", kind, image.source)
        raw_response = self._client.generate(
            system_prompt=PromptBuilder.get_system_prompt(),
            user_prompt=user_prompt,
            image=image,
        )
        answers = self._parser.parse(raw_response)
        logger.info("Extracted %d answers from %s", len(answers), image.source)
        return answers
