"""
Pydantic models for ProvaFácil.

These models define the schemas for:
- Exam templates (answer key plus per-question points)
- Grade summaries and per-question breakdowns
- Answer sheet image payloads
- Audit records for reproducibility

Result models are frozen; a grading pass never mutates them afterwards.
"""

from datetime import datetime, timezone
from enum import Enum
from hashlib import sha256
from typing import Any
from uuid import UUID, uuid4

from pydantic import (
    AliasGenerator,
    BaseModel,
    ConfigDict,
    Field,
    computed_field,
    field_validator,
)
from pydantic.alias_generators import to_camel

# Token returned by the extraction service when a mark can't be determined
# (unreadable, erased or more than one option marked).
ANULADA = "ANULADA"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AnswerStatus(str, Enum):
    """Classification of a student's token for reporting."""

    MARKED = "marked"
    UNREADABLE = "unreadable"  # extraction returned ANULADA
    BLANK = "blank"  # no token extracted for this question


def is_unreadable(token: str) -> bool:
    """Return True if the token is the unreadable-answer sentinel."""
    return token == ANULADA


def classify_answer(token: str) -> AnswerStatus:
    """Classify a student token without altering it."""
    if token == "":
        return AnswerStatus.BLANK
    if is_unreadable(token):
        return AnswerStatus.UNREADABLE
    return AnswerStatus.MARKED


# ==============================================================================
# Template Models
# ==============================================================================


class ExamTemplate(BaseModel):
    """
    A named, gradable exam: an answer key and the points for each question.

    Index ``i`` of ``answer_key`` and ``points`` both describe question ``i + 1``.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(
        default_factory=lambda: uuid4().hex,
        min_length=1,
        description="Identifier used to address the template",
    )

    name: str = Field(
        ...,
        min_length=1,
        max_length=200,
        description="Human readable template name",
    )

    answer_key: tuple[str, ...] = Field(
        ...,
        description="Correct answer token for each question",
    )

    points: tuple[float, ...] = Field(
        default=(),
        description="Points awarded for each question",
    )

    created_at: datetime = Field(
        default_factory=_utcnow,
        description="When the template was created",
    )

    @computed_field  # type: ignore[prop-decorator]
    @property
    def question_count(self) -> int:
        """Number of questions in the answer key."""
        return len(self.answer_key)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def total_points(self) -> float:
        """Sum of all question points."""
        return float(sum(self.points))


# ==============================================================================
# Grading Result Models
# ==============================================================================


class _ResultModel(BaseModel):
    """Frozen model that serializes with the camelCase keys of the result API."""

    model_config = ConfigDict(
        frozen=True,
        strict=True,
        alias_generator=AliasGenerator(serialization_alias=to_camel),
    )

    def to_dict(self) -> dict[str, Any]:
        """Dump to a plain dict with camelCase keys, omitting unset optionals."""
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")


class QuestionDetail(_ResultModel):
    """Scoring outcome for a single question."""

    question: int = Field(..., ge=1, description="1-based question number")

    student_answer: str = Field(
        ...,
        description="Token read from the sheet, or empty string if none was extracted",
    )

    correct_answer: str = Field(..., description="Token from the answer key")

    is_correct: bool = Field(..., description="Exact match between the two tokens")

    points: float | None = Field(
        default=None,
        description="Weight of the question (weighted mode only)",
    )

    earned_points: float | None = Field(
        default=None,
        description="Points earned for the question (weighted mode only)",
    )

    @property
    def status(self) -> AnswerStatus:
        """How the student's mark was read."""
        return classify_answer(self.student_answer)


class GradeSummary(_ResultModel):
    """
    Aggregate result of a grading pass.

    ``total_points`` and ``earned_points`` are only populated when the
    grading was weighted.
    """

    correct_answers: int = Field(..., ge=0)
    incorrect_answers: int = Field(..., ge=0)
    total_questions: int = Field(..., ge=0)
    score: float = Field(..., ge=0.0, le=100.0, description="Percentage score")
    total_points: float | None = Field(default=None, ge=0.0)
    earned_points: float | None = Field(default=None, ge=0.0)
    unreadable_answers: int = Field(
        default=0,
        ge=0,
        description="Questions whose mark came back as ANULADA",
    )

    @property
    def is_weighted(self) -> bool:
        return self.total_points is not None


class GradingReport(_ResultModel):
    """Summary and per-question detail, always produced together."""

    summary: GradeSummary
    details: tuple[QuestionDetail, ...]

    def to_dict(self) -> dict[str, Any]:
        """Flatten the summary next to the detail list."""
        data = self.summary.to_dict()
        data["details"] = [d.to_dict() for d in self.details]
        return data


# ==============================================================================
# Image Models
# ==============================================================================


class ImagePayload(BaseModel):
    """
    An answer sheet image ready to send to the extraction service.

    The image is carried as a data URI (``data:<mime>;base64,<data>``).
    """

    model_config = ConfigDict(frozen=True, strict=True)

    data_uri: str = Field(
        ...,
        min_length=1,
        description="Base64 data URI of the image",
    )

    mime_type: str = Field(
        ...,
        description="MIME type of the encoded image",
    )

    source: str = Field(
        default="<memory>",
        description="Where the image came from (path or label)",
    )

    @field_validator("data_uri")
    @classmethod
    def validate_data_uri(cls, v: str) -> str:
        """Require the data URI shape the model API expects."""
        if not v.startswith("data:") or ";base64," not in v:
            raise ValueError("Expected format 'data:<mimetype>;base64,<encoded_data>'")
        return v

    @computed_field  # type: ignore[prop-decorator]
    @property
    def content_hash(self) -> str:
        """Hash of the encoded image for audit records."""
        return AuditRecord.compute_hash(self.data_uri)


# ==============================================================================
# Audit Models
# ==============================================================================


class AuditRecord(BaseModel):
    """
    Immutable audit record for reproducibility.

    Contains hashes of inputs and outputs to enable verification
    that the same inputs produce the same outputs.
    """

    model_config = ConfigDict(frozen=True)

    audit_id: UUID = Field(
        default_factory=uuid4,
        description="Unique identifier for this audit record",
    )

    timestamp: datetime = Field(
        default_factory=_utcnow,
        description="Timestamp of the grading operation",
    )

    template_id: str | None = Field(
        default=None,
        description="Template the sheet was graded against",
    )

    key_hash: str = Field(
        ...,
        description="SHA-256 hash of the answer key and points",
    )

    answers_hash: str = Field(
        ...,
        description="SHA-256 hash of the extracted answers",
    )

    image_hash: str | None = Field(
        default=None,
        description="SHA-256 hash of the submitted image, if any",
    )

    result_hash: str = Field(
        ...,
        description="SHA-256 hash of the grading result",
    )

    model_used: str | None = Field(
        default=None,
        description="LLM model identifier used for extraction",
    )

    @staticmethod
    def compute_hash(content: str) -> str:
        """Compute SHA-256 hash of content."""
        return sha256(content.encode("utf-8")).hexdigest()

    @staticmethod
    def serialize_key(answer_key: Any, points: Any) -> str:
        """Canonical text form of an answer key and its points."""
        key_part = ",".join(answer_key)
        if points is None:
            return key_part
        return key_part + "|" + ",".join(repr(float(p)) for p in points)

    @staticmethod
    def serialize_answers(answers: Any) -> str:
        """Canonical text form of extracted answers."""
        return ",".join(answers)
