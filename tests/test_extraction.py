"""
Unit tests for answer extraction.

Tests image loading, prompt builder, vision client and response parser
with mocked API responses.
"""

import base64
import json
from pathlib import Path
from unittest.mock import MagicMock, patch

import fitz  # PyMuPDF
import httpx
import pytest
from openai import APIConnectionError, APIStatusError, RateLimitError

from provafacil.config import Settings
from provafacil.extraction import (
    AnswerExtractor,
    ExtractionError,
    ExtractionParser,
    ImageLoadError,
    LLMError,
    PromptBuilder,
    VisionClient,
    load_image,
    normalize_token,
    payload_from_data_uri,
)
from provafacil.models import ANULADA, ImagePayload

_REQUEST = httpx.Request("POST", "https://test.api.local/chat/completions")


def _completion(content: str | None) -> MagicMock:
    response = MagicMock()
    message = MagicMock()
    message.content = content
    choice = MagicMock()
    choice.message = message
    response.choices = [choice]
    return response


def _status_error(status: int) -> APIStatusError:
    return APIStatusError(
        f"status {status}",
        response=httpx.Response(status, request=_REQUEST),
        body=None,
    )


class TestImageLoader:
    """Tests for load_image and data URI helpers."""

    def test_load_png(self, sample_png_file: Path, test_settings: Settings) -> None:
        """PNG files are base64-encoded into a data URI."""
        payload = load_image(sample_png_file, test_settings)

        assert payload.mime_type == "image/png"
        assert payload.data_uri.startswith("data:image/png;base64,")
        encoded = payload.data_uri.split(",", 1)[1]
        assert base64.b64decode(encoded) == sample_png_file.read_bytes()
        assert payload.source == str(sample_png_file.resolve())

    def test_load_jpeg_mime_type(self, temp_dir: Path, test_settings: Settings) -> None:
        path = temp_dir / "sheet.JPG"
        path.write_bytes(b"\xff\xd8\xff\xe0fake-jpeg")

        payload = load_image(path, test_settings)

        assert payload.mime_type == "image/jpeg"

    def test_load_accepts_str_path(self, sample_png_file: Path, test_settings: Settings) -> None:
        payload = load_image(str(sample_png_file), test_settings)

        assert payload.mime_type == "image/png"

    def test_load_nonexistent_file(self, temp_dir: Path, test_settings: Settings) -> None:
        with pytest.raises(ImageLoadError, match="does not exist"):
            load_image(temp_dir / "missing.png", test_settings)

    def test_load_directory(self, temp_dir: Path, test_settings: Settings) -> None:
        folder = temp_dir / "folder.png"
        folder.mkdir()

        with pytest.raises(ImageLoadError, match="not a file"):
            load_image(folder, test_settings)

    def test_load_unsupported_extension(self, temp_dir: Path, test_settings: Settings) -> None:
        path = temp_dir / "sheet.txt"
        path.write_text("not an image", encoding="utf-8")

        with pytest.raises(ImageLoadError, match="Unsupported file format"):
            load_image(path, test_settings)

    def test_load_empty_file(self, temp_dir: Path, test_settings: Settings) -> None:
        path = temp_dir / "empty.png"
        path.write_bytes(b"")

        with pytest.raises(ImageLoadError, match="empty"):
            load_image(path, test_settings)

    def test_load_unreadable_file(self, sample_png_file: Path, test_settings: Settings) -> None:
        """OS errors while reading become ImageLoadError."""
        with patch.object(Path, "read_bytes", side_effect=PermissionError("denied")):
            with pytest.raises(ImageLoadError, match="Could not read file") as exc_info:
                load_image(sample_png_file, test_settings)

        assert isinstance(exc_info.value.cause, PermissionError)

    def test_load_oversized_file(self, temp_dir: Path, test_settings: Settings) -> None:
        settings = test_settings.model_copy(update={"max_image_size_mb": 0.1})
        path = temp_dir / "huge.png"
        path.write_bytes(b"\x00" * 200 * 1024)

        with pytest.raises(ImageLoadError, match="limit"):
            load_image(path, settings)

    def test_load_pdf_renders_png(self, temp_dir: Path, test_settings: Settings) -> None:
        """Scanned PDFs are rasterized to PNG."""
        path = temp_dir / "scan.pdf"
        with fitz.open() as doc:
            page = doc.new_page()
            page.insert_text((72, 72), "1. A  2. B  3. C")
            doc.save(str(path))

        payload = load_image(path, test_settings)

        assert payload.mime_type == "image/png"
        raw = base64.b64decode(payload.data_uri.split(",", 1)[1])
        assert raw.startswith(b"\x89PNG")

    def test_load_invalid_pdf(self, temp_dir: Path, test_settings: Settings) -> None:
        path = temp_dir / "broken.pdf"
        path.write_bytes(b"this is not a pdf")

        with pytest.raises(ImageLoadError):
            load_image(path, test_settings)

    def test_payload_from_data_uri(self) -> None:
        uri = "data:image/webp;base64,AAAA"

        payload = payload_from_data_uri(uri)

        assert payload.mime_type == "image/webp"
        assert payload.data_uri == uri

    @pytest.mark.parametrize("uri", ["image/png;base64,AAAA", "data:image/png,AAAA", "data:image/png;base64,"])
    def test_payload_from_invalid_data_uri(self, uri: str) -> None:
        with pytest.raises(ImageLoadError):
            payload_from_data_uri(uri)

    def test_content_hash_stable(self, sample_image: ImagePayload) -> None:
        copy = ImagePayload(data_uri=sample_image.data_uri, mime_type="image/png", source="other")

        assert copy.content_hash == sample_image.content_hash


class TestPromptBuilder:
    """Tests for PromptBuilder."""

    def test_get_system_prompt(self) -> None:
        """System prompt pins the output format and sentinel."""
        prompt = PromptBuilder.get_system_prompt()

        assert ANULADA in prompt
        assert "JSON" in prompt

    def test_answer_sheet_prompt_voids_ambiguous_marks(self) -> None:
        prompt = PromptBuilder.build_answer_sheet_prompt()

        assert "erasures" in prompt
        assert "more than one option" in prompt
        assert ANULADA in prompt
        assert "extractedAnswers" in prompt

    def test_answer_key_prompt(self) -> None:
        prompt = PromptBuilder.build_answer_key_prompt()

        assert "answer key" in prompt
        assert "erasures" not in prompt
        assert "extractedAnswers" in prompt

    def test_expected_question_hint(self) -> None:
        prompt = PromptBuilder.build_answer_sheet_prompt(expected_questions=25)

        assert "exactly 25" in prompt

    def test_no_hint_without_count(self) -> None:
        assert "exactly" not in PromptBuilder.build_answer_key_prompt()


class TestExtractionParser:
    """Tests for ExtractionParser."""

    def test_parse_plain_json(self) -> None:
        parser = ExtractionParser()

        assert parser.parse('{"extractedAnswers": ["A", "B", "ANULADA"]}') == ["A", "B", ANULADA]

    def test_parse_markdown_block(self) -> None:
        response = '```json\n{"extractedAnswers": ["C", "D"]}\n```'

        assert ExtractionParser().parse(response) == ["C", "D"]

    def test_parse_json_with_surrounding_text(self) -> None:
        response = 'Here are the answers: {"extractedAnswers": ["E", "A"]} Hope this helps!'

        assert ExtractionParser().parse(response) == ["E", "A"]

    def test_parse_bare_array(self) -> None:
        assert ExtractionParser().parse('["A", "B"]') == ["A", "B"]

    def test_parse_braces_inside_strings(self) -> None:
        response = '{"note": "} tricky {", "extractedAnswers": ["B"]}'

        assert ExtractionParser().parse(response) == ["B"]

    def test_parse_normalizes_tokens(self) -> None:
        response = json.dumps({"extractedAnswers": [" a ", "b", "", None, "anulada"]})

        assert ExtractionParser().parse(response) == ["A", "B", ANULADA, ANULADA, ANULADA]

    def test_parse_numbers_stringified(self) -> None:
        assert ExtractionParser().parse('{"extractedAnswers": [1, 2]}') == ["1", "2"]

    def test_parse_no_json(self) -> None:
        with pytest.raises(ExtractionError, match="No JSON found"):
            ExtractionParser().parse("I cannot read this image")

    def test_parse_unclosed_json(self) -> None:
        with pytest.raises(ExtractionError, match="Unclosed"):
            ExtractionParser().parse('{"extractedAnswers": ["A"')

    def test_parse_invalid_json(self) -> None:
        with pytest.raises(ExtractionError, match="Invalid JSON"):
            ExtractionParser().parse("```json\n{not json}\n```")

    def test_parse_missing_field(self) -> None:
        with pytest.raises(ExtractionError, match="Missing required field") as exc_info:
            ExtractionParser().parse('{"answers": ["A"]}')

        assert exc_info.value.raw_response == '{"answers": ["A"]}'

    def test_parse_field_not_list(self) -> None:
        with pytest.raises(ExtractionError, match="must be a list"):
            ExtractionParser().parse('{"extractedAnswers": "ABC"}')

    def test_parse_nested_entry(self) -> None:
        with pytest.raises(ExtractionError, match=r"extractedAnswers\[1\]"):
            ExtractionParser().parse('{"extractedAnswers": ["A", {"q": 2}]}')

    def test_normalize_token(self) -> None:
        assert normalize_token(" c\n") == "C"
        assert normalize_token("   ") == ANULADA


class TestVisionClient:
    """Tests for VisionClient with a mocked OpenAI SDK."""

    @pytest.fixture
    def openai_mock(self):
        with patch("provafacil.extraction.llm_client.OpenAI") as mock_class:
            instance = MagicMock()
            mock_class.return_value = instance
            yield mock_class, instance

    def test_client_configuration(self, openai_mock, test_settings: Settings) -> None:
        mock_class, _ = openai_mock

        VisionClient(test_settings)

        mock_class.assert_called_once_with(
            api_key="test-api-key-for-testing",
            base_url="https://test.api.local",
        )

    def test_generate_sends_image(
        self, openai_mock, test_settings: Settings, sample_image: ImagePayload
    ) -> None:
        """The image travels as an image_url content part."""
        _, instance = openai_mock
        instance.chat.completions.create.return_value = _completion('{"extractedAnswers": []}')

        client = VisionClient(test_settings)
        result = client.generate("system", "read this", sample_image)

        assert result == '{"extractedAnswers": []}'
        kwargs = instance.chat.completions.create.call_args.kwargs
        assert kwargs["model"] == "test-vision-model"
        assert kwargs["temperature"] == 0.0
        user_content = kwargs["messages"][1]["content"]
        assert user_content[0] == {"type": "text", "text": "read this"}
        assert user_content[1]["image_url"]["url"] == sample_image.data_uri

    def test_empty_response(self, openai_mock, test_settings: Settings, sample_image) -> None:
        _, instance = openai_mock
        instance.chat.completions.create.return_value = _completion(None)

        with pytest.raises(LLMError, match="Empty response"):
            VisionClient(test_settings).generate("s", "u", sample_image)

    @patch("provafacil.extraction.llm_client.time.sleep")
    def test_retries_connection_errors(
        self, mock_sleep: MagicMock, openai_mock, test_settings: Settings, sample_image
    ) -> None:
        _, instance = openai_mock
        instance.chat.completions.create.side_effect = [
            APIConnectionError(request=_REQUEST),
            _completion("ok"),
        ]

        result = VisionClient(test_settings).generate("s", "u", sample_image)

        assert result == "ok"
        assert instance.chat.completions.create.call_count == 2
        mock_sleep.assert_called_once_with(1.0)

    @patch("provafacil.extraction.llm_client.time.sleep")
    def test_gives_up_after_max_retries(
        self, mock_sleep: MagicMock, openai_mock, test_settings: Settings, sample_image
    ) -> None:
        _, instance = openai_mock
        instance.chat.completions.create.side_effect = APIConnectionError(request=_REQUEST)

        with pytest.raises(LLMError, match="Connection failed") as exc_info:
            VisionClient(test_settings).generate("s", "u", sample_image)

        assert exc_info.value.retryable
        # llm_max_retries=2 in test settings
        assert instance.chat.completions.create.call_count == 3
        assert [c.args[0] for c in mock_sleep.call_args_list] == [1.0, 2.0]

    @patch("provafacil.extraction.llm_client.time.sleep")
    def test_retries_rate_limit(
        self, mock_sleep: MagicMock, openai_mock, test_settings: Settings, sample_image
    ) -> None:
        _, instance = openai_mock
        rate_limited = RateLimitError(
            "slow down", response=httpx.Response(429, request=_REQUEST), body=None
        )
        instance.chat.completions.create.side_effect = [rate_limited, _completion("ok")]

        assert VisionClient(test_settings).generate("s", "u", sample_image) == "ok"

    @patch("provafacil.extraction.llm_client.time.sleep")
    def test_no_retry_on_client_error(
        self, mock_sleep: MagicMock, openai_mock, test_settings: Settings, sample_image
    ) -> None:
        _, instance = openai_mock
        instance.chat.completions.create.side_effect = _status_error(400)

        with pytest.raises(LLMError, match="API error") as exc_info:
            VisionClient(test_settings).generate("s", "u", sample_image)

        assert not exc_info.value.retryable
        assert instance.chat.completions.create.call_count == 1
        mock_sleep.assert_not_called()

    @patch("provafacil.extraction.llm_client.time.sleep")
    def test_retries_server_error(
        self, mock_sleep: MagicMock, openai_mock, test_settings: Settings, sample_image
    ) -> None:
        _, instance = openai_mock
        instance.chat.completions.create.side_effect = [_status_error(503), _completion("ok")]

        assert VisionClient(test_settings).generate("s", "u", sample_image) == "ok"

    def test_health_check(self, openai_mock, test_settings: Settings) -> None:
        _, instance = openai_mock
        instance.chat.completions.create.return_value = _completion("pong")

        assert VisionClient(test_settings).health_check()

    def test_health_check_failure(self, openai_mock, test_settings: Settings) -> None:
        _, instance = openai_mock
        instance.chat.completions.create.side_effect = APIConnectionError(request=_REQUEST)

        assert not VisionClient(test_settings).health_check()


class TestAnswerExtractor:
    """Tests for AnswerExtractor."""

    def test_extract_answers(
        self, mock_vision_client: MagicMock, test_settings: Settings, sample_image: ImagePayload
    ) -> None:
        extractor = AnswerExtractor(test_settings)

        answers = extractor.extract_answers(sample_image, expected_questions=4)

        assert answers == ["A", "C", "C", ANULADA]
        kwargs = mock_vision_client.generate.call_args.kwargs
        assert kwargs["image"] is sample_image
        assert "erasures" in kwargs["user_prompt"]
        assert "exactly 4" in kwargs["user_prompt"]

    def test_extract_key(
        self, mock_vision_client: MagicMock, test_settings: Settings, sample_image: ImagePayload
    ) -> None:
        mock_vision_client.generate.return_value = '```json\n{"extractedAnswers": ["a","b"]}\n```'

        answers = AnswerExtractor(test_settings).extract_key(sample_image)

        assert answers == ["A", "B"]
        assert "answer key" in mock_vision_client.generate.call_args.kwargs["user_prompt"]

    def test_malformed_output(
        self, mock_vision_client: MagicMock, test_settings: Settings, sample_image: ImagePayload
    ) -> None:
        mock_vision_client.generate.return_value = "Sorry, the image is too blurry."

        with pytest.raises(ExtractionError):
            AnswerExtractor(test_settings).extract_answers(sample_image)

    def test_injected_client(self, test_settings: Settings, sample_image: ImagePayload) -> None:
        client = MagicMock()
        client.generate.return_value = '["B"]'

        extractor = AnswerExtractor(test_settings, client=client)

        assert extractor.extract_answers(sample_image) == ["B"]
        assert extractor.model == "test-vision-model"
