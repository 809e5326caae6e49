"""
Pytest configuration and fixtures.

Provides common test fixtures for all test modules.
"""

import json
import tempfile
from pathlib import Path
from typing import Generator
from unittest.mock import MagicMock, patch

import pytest

from provafacil.config import Settings
from provafacil.extraction.image_loader import to_data_uri
from provafacil.models import ANULADA, ExamTemplate, GradingReport, ImagePayload
from provafacil.scoring import calculate_grades

# Smallest valid PNG (1x1 transparent pixel)
PNG_BYTES = bytes.fromhex(
    "89504e470d0a1a0a0000000d4948445200000001000000010806000000"
    "1f15c4890000000d49444154789c6360000002000001e221bc330000000049454e44ae426082"
)


# ==============================================================================
# Directory Fixtures
# ==============================================================================


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test files."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


# ==============================================================================
# Template Fixtures
# ==============================================================================


@pytest.fixture
def sample_template() -> ExamTemplate:
    """Four-question template with one double-weight question."""
    return ExamTemplate(
        id="tpl-math-1",
        name="Math Quiz 1",
        answer_key=("A", "B", "C", "D"),
        points=(1.0, 1.0, 2.0, 1.0),
    )


@pytest.fixture
def sample_answers() -> list[str]:
    """Student answers: questions 1 and 3 right, 4 unreadable."""
    return ["A", "C", "C", ANULADA]


@pytest.fixture
def sample_report(sample_template: ExamTemplate, sample_answers: list[str]) -> GradingReport:
    """Weighted report for the sample answers."""
    return calculate_grades(sample_answers, sample_template.answer_key, sample_template.points)


# ==============================================================================
# Extraction Fixtures
# ==============================================================================


@pytest.fixture
def sample_llm_response(sample_answers: list[str]) -> str:
    """Sample extraction response in JSON format."""
    return json.dumps({"extractedAnswers": sample_answers})


@pytest.fixture
def sample_image() -> ImagePayload:
    """In-memory PNG answer sheet."""
    return ImagePayload(
        data_uri=to_data_uri(PNG_BYTES, "image/png"),
        mime_type="image/png",
        source="sheet.png",
    )


@pytest.fixture
def sample_png_file(temp_dir: Path) -> Path:
    """PNG answer sheet on disk."""
    file_path = temp_dir / "sheet.png"
    file_path.write_bytes(PNG_BYTES)
    return file_path


# ==============================================================================
# Settings Fixtures
# ==============================================================================


@pytest.fixture
def test_settings(temp_dir: Path) -> Settings:
    """Create test settings with mocked values."""
    return Settings(
        llm_api_key="test-api-key-for-testing",
        llm_base_url="https://test.api.local/",
        llm_model="test-vision-model",
        llm_temperature=0.0,
        llm_max_retries=2,
        templates_file=temp_dir / "templates.json",
        output_directory=temp_dir / "output",
        grading_workers=2,
    )


# ==============================================================================
# Mock Fixtures
# ==============================================================================


@pytest.fixture
def mock_vision_client(sample_llm_response: str) -> Generator[MagicMock, None, None]:
    """Mock the vision client to avoid actual API calls."""
    with patch("provafacil.extraction.extractor.VisionClient") as mock_class:
        mock_instance = MagicMock()
        mock_instance.generate.return_value = sample_llm_response
        mock_instance.health_check.return_value = True
        mock_class.return_value = mock_instance
        yield mock_instance


@pytest.fixture
def mock_extractor(sample_answers: list[str]) -> MagicMock:
    """Answer extractor stand-in returning the sample answers."""
    extractor = MagicMock()
    extractor.model = "test-vision-model"
    extractor.extract_answers.return_value = list(sample_answers)
    extractor.extract_key.return_value = ["A", "B", "C", "D"]
    extractor.health_check.return_value = True
    return extractor
