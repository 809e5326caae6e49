"""
Response parser for extraction output.

Parses the JSON the vision model returns and normalizes the answer
tokens. Normalization happens here, at the extraction boundary, so the
scoring engine can compare tokens with plain equality.
"""

import json
import re
from typing import Any

from provafacil.models import ANULADA


class ExtractionError(Exception):
    """Raised when the extraction service output can't be turned into answers."""

    def __init__(self, message: str, raw_response: str | None = None):
        self.raw_response = raw_response
        super().__init__(message)


def normalize_token(token: str) -> str:
    """Trim and upper-case a token; blank tokens become ANULADA."""
    cleaned = token.strip().upper()
    return cleaned or ANULADA


class ExtractionParser:
    """
    Parses and validates extraction responses.

    Ensures:
    1. Response contains valid JSON
    2. The ``extractedAnswers`` field is present and is a list
    3. Every entry is a string (numbers are tolerated and stringified)
    """

    FIELD = "extractedAnswers"

    def parse(self, response: str) -> list[str]:
        """
        Parse a model response into normalized answer tokens.

        Args:
            response: Raw model response (expected JSON).

        Returns:
            List of answer tokens, in question order.

        Raises:
            ExtractionError: If parsing or validation fails.
        """
        json_str = self._extract_json(response)

        try:
            data = json.loads(json_str)
        except json.JSONDecodeError as e:
            raise ExtractionError(
                f"Invalid JSON in response: {e}",
                raw_response=response,
            ) from e

        answers = self._get_answers(data, response)
        return [self._coerce_token(item, i, response) for i, item in enumerate(answers)]

    def _extract_json(self, response: str) -> str:
        """
        Extract JSON from response, handling common formats.

        Args:
            response: Raw response text.

        Returns:
            Extracted JSON string.
        """
        # Remove markdown code block if present
        json_match = re.search(r"```(?:json)?\s*([\s\S]*?)```", response)
        if json_match:
            return json_match.group(1).strip()

        # Otherwise take the first balanced object or array
        starts = [i for i in (response.find("{"), response.find("[")) if i != -1]
        if not starts:
            raise ExtractionError("No JSON found in response", raw_response=response)

        start = min(starts)
        opener = response[start]
        closer = "}" if opener == "{" else "]"

        depth = 0
        in_string = False
        escaped = False
        for i, char in enumerate(response[start:], start=start):
            if in_string:
                if escaped:
                    escaped = False
                elif char == "\\":
                    escaped = True
                elif char == '"':
                    in_string = False
                continue
            if char == '"':
                in_string = True
            elif char == opener:
                depth += 1
            elif char == closer:
                depth -= 1
                if depth == 0:
                    return response[start : i + 1]

        raise ExtractionError("Unclosed JSON in response", raw_response=response)

    def _get_answers(self, data: Any, raw_response: str) -> list[Any]:
        # Some models drop the wrapper object and return the bare array
        if isinstance(data, list):
            return data

        if not isinstance(data, dict):
            raise ExtractionError("Response JSON must be an object", raw_response=raw_response)

        if self.FIELD not in data:
            raise ExtractionError(f"Missing required field: {self.FIELD}", raw_response=raw_response)

        answers = data[self.FIELD]
        if not isinstance(answers, list):
            raise ExtractionError(f"{self.FIELD} must be a list", raw_response=raw_response)

        return answers

    def _coerce_token(self, item: Any, index: int, raw_response: str) -> str:
        if item is None:
            return ANULADA
        if isinstance(item, bool) or isinstance(item, (dict, list)):
            raise ExtractionError(
                f"{self.FIELD}[{index}] must be a string, got {type(item).__name__}",
                raw_response=raw_response,
            )
        return normalize_token(str(item))
