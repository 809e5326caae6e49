"""
Template store.

A repository of exam templates on top of an injected storage backend.
The store validates every write; backends only move lists of plain
dicts in and out of storage.
"""

import json
import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Any, Protocol, Sequence

from pydantic import ValidationError

from provafacil.models import ExamTemplate
from provafacil.templates.validator import TemplateValidator

logger = logging.getLogger(__name__)

# Derived fields that are recomputed on load
_COMPUTED_FIELDS = {"question_count", "total_points"}


class TemplateNotFoundError(KeyError):
    """Raised when no template matches the given identifier."""

    def __init__(self, template_id: str):
        self.template_id = template_id
        super().__init__(template_id)

    def __str__(self) -> str:
        return f"Template not found: {self.template_id}"


class TemplateStorageError(Exception):
    """Raised when the storage backend can't be read or written."""

    def __init__(self, message: str, cause: Exception | None = None):
        self.cause = cause
        super().__init__(message)


class StorageBackend(Protocol):
    """Persistence for serialized templates."""

    def load(self) -> list[dict[str, Any]]: ...

    def save(self, records: list[dict[str, Any]]) -> None: ...


class MemoryBackend:
    """Keeps templates in process memory. Useful for tests and one-off runs."""

    def __init__(self, records: Sequence[dict[str, Any]] | None = None):
        self._records = [dict(r) for r in records or ()]

    def load(self) -> list[dict[str, Any]]:
        return [dict(r) for r in self._records]

    def save(self, records: list[dict[str, Any]]) -> None:
        self._records = [dict(r) for r in records]


class JSONFileBackend:
    """
    Stores templates as a JSON array in a single file.

    Writes go to a temporary file in the same directory and are moved into
    place, so a crash mid-write leaves the previous file intact.
    """

    def __init__(self, path: Path | str):
        self.path = Path(path)

    def load(self) -> list[dict[str, Any]]:
        if not self.path.exists():
            return []

        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            raise TemplateStorageError(f"Could not read templates from {self.path}", e) from e

        if not isinstance(data, list):
            raise TemplateStorageError(f"Expected a JSON array in {self.path}")
        return data

    def save(self, records: list[dict[str, Any]]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=self.path.parent, prefix=".templates-", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(records, f, indent=2, ensure_ascii=False)
            os.replace(tmp_name, self.path)
        except OSError as e:
            Path(tmp_name).unlink(missing_ok=True)
            raise TemplateStorageError(f"Could not write templates to {self.path}", e) from e


class TemplateStore:
    """
    CRUD access to exam templates.

    Templates are validated with TemplateValidator before they are saved.
    Reads return immutable ExamTemplate snapshots, so a grading pass never
    sees a template change underneath it.
    """

    def __init__(self, backend: StorageBackend, validator: TemplateValidator | None = None):
        self._backend = backend
        self._validator = validator or TemplateValidator()
        self._lock = threading.Lock()

    def list_all(self) -> list[ExamTemplate]:
        """Return all templates in insertion order."""
        with self._lock:
            return self._load()

    def get(self, template_id: str) -> ExamTemplate:
        """
        Get a template by id.

        Raises:
            TemplateNotFoundError: If no template has this id.
        """
        for template in self.list_all():
            if template.id == template_id:
                return template
        raise TemplateNotFoundError(template_id)

    def find_by_name(self, name: str) -> ExamTemplate | None:
        """Return the first template whose name matches (case-insensitive)."""
        wanted = name.strip().lower()
        for template in self.list_all():
            if template.name.lower() == wanted:
                return template
        return None

    def resolve(self, id_or_name: str) -> ExamTemplate:
        """
        Look a template up by id, falling back to its name.

        Raises:
            TemplateNotFoundError: If neither matches.
        """
        try:
            return self.get(id_or_name)
        except TemplateNotFoundError:
            template = self.find_by_name(id_or_name)
            if template is None:
                raise
            return template

    def create(self, name: str, answer_key: Sequence[str], points: Sequence[float]) -> ExamTemplate:
        """
        Create and save a new template.

        Raises:
            TemplateValidationError: If the template is invalid.
        """
        template = ExamTemplate(name=name, answer_key=tuple(answer_key), points=tuple(points))
        return self.add(template)

    def add(self, template: ExamTemplate) -> ExamTemplate:
        """
        Save an already-built template.

        Raises:
            TemplateValidationError: If the template is invalid.
            ValueError: If a template with the same id exists.
        """
        self._validator.validate_or_raise(template)

        with self._lock:
            templates = self._load()
            if any(t.id == template.id for t in templates):
                raise ValueError(f"Template id already exists: {template.id}")
            templates.append(template)
            self._save(templates)

        logger.info("Saved template '%s' (%d questions)", template.name, template.question_count)
        return template

    def update(self, template_id: str, **changes: Any) -> ExamTemplate:
        """
        Replace fields of an existing template.

        Raises:
            TemplateNotFoundError: If no template has this id.
            TemplateValidationError: If the updated template is invalid.
        """
        changes.pop("id", None)

        with self._lock:
            templates = self._load()
            for index, current in enumerate(templates):
                if current.id == template_id:
                    data = current.model_dump(exclude=_COMPUTED_FIELDS)
                    data.update(changes)
                    updated = ExamTemplate.model_validate(data)
                    self._validator.validate_or_raise(updated)
                    templates[index] = updated
                    self._save(templates)
                    return updated

        raise TemplateNotFoundError(template_id)

    def delete(self, template_id: str) -> None:
        """
        Delete a template.

        Raises:
            TemplateNotFoundError: If no template has this id.
        """
        with self._lock:
            templates = self._load()
            remaining = [t for t in templates if t.id != template_id]
            if len(remaining) == len(templates):
                raise TemplateNotFoundError(template_id)
            self._save(remaining)

        logger.info("Deleted template %s", template_id)

    def _load(self) -> list[ExamTemplate]:
        templates: list[ExamTemplate] = []
        for position, record in enumerate(self._backend.load()):
            try:
                templates.append(ExamTemplate.model_validate(record))
            except ValidationError as e:
                raise TemplateStorageError(f"Stored template #{position} is malformed", e) from e
        return templates

    def _save(self, templates: list[ExamTemplate]) -> None:
        self._backend.save(
            [t.model_dump(mode="json", exclude=_COMPUTED_FIELDS) for t in templates]
        )
