"""
Template Module.

Parsing, validation and storage of exam templates (answer key + points).
"""

from provafacil.templates.parser import TemplateParseError, TemplateParser
from provafacil.templates.store import (
    JSONFileBackend,
    MemoryBackend,
    StorageBackend,
    TemplateNotFoundError,
    TemplateStorageError,
    TemplateStore,
)
from provafacil.templates.validator import TemplateValidationError, TemplateValidator

__all__ = [
    "JSONFileBackend",
    "MemoryBackend",
    "StorageBackend",
    "TemplateNotFoundError",
    "TemplateParseError",
    "TemplateParser",
    "TemplateStorageError",
    "TemplateStore",
    "TemplateValidationError",
    "TemplateValidator",
]
