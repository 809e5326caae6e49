"""
Audit trail persistence.

Stores one JSON file per audit record and checks recorded hashes
against the inputs of a later regrade.
"""

from collections.abc import Sequence
from pathlib import Path
from uuid import UUID

from provafacil.models import AuditRecord


class AuditTrail:
    """Reads and writes audit records under a directory."""

    def __init__(self, directory: Path):
        self.directory = directory
        self.directory.mkdir(parents=True, exist_ok=True)

    def save(self, audit: AuditRecord) -> Path:
        """Write an audit record; returns the file path."""
        path = self._path_for(audit.audit_id)
        path.write_text(audit.model_dump_json(indent=2), encoding="utf-8")
        return path

    def load(self, audit_id: UUID | str) -> AuditRecord | None:
        """Load an audit record, or None if it doesn't exist."""
        path = self._path_for(audit_id)
        if not path.exists():
            return None
        return AuditRecord.model_validate_json(path.read_text(encoding="utf-8"))

    def verify(
        self,
        audit: AuditRecord,
        answer_key: Sequence[str],
        extracted_answers: Sequence[str],
        points: Sequence[float] | None = None,
    ) -> bool:
        """
        Check that the given inputs are the ones the audit was made from.

        Returns:
            True if both the key and answer hashes match.
        """
        key_hash = AuditRecord.compute_hash(AuditRecord.serialize_key(answer_key, points))
        answers_hash = AuditRecord.compute_hash(AuditRecord.serialize_answers(extracted_answers))
        return key_hash == audit.key_hash and answers_hash == audit.answers_hash

    def _path_for(self, audit_id: UUID | str) -> Path:
        return self.directory / f"audit_{audit_id}.json"
