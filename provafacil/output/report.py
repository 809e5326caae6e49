"""
Report generation for grading results.

Renders a GradingReport as JSON, CSV or Markdown, optionally with its
audit record attached.
"""

import csv
import io
import json
from enum import Enum
from pathlib import Path
from typing import Any

from provafacil.models import AuditRecord, GradingReport


class ReportFormat(str, Enum):
    """Supported report output formats."""

    JSON = "json"
    CSV = "csv"
    MARKDOWN = "markdown"


_SUFFIX_FORMATS = {
    ".json": ReportFormat.JSON,
    ".csv": ReportFormat.CSV,
    ".md": ReportFormat.MARKDOWN,
    ".markdown": ReportFormat.MARKDOWN,
}


class ReportGenerator:
    """Formats grading reports for humans and machines."""

    def generate(
        self,
        report: GradingReport,
        audit: AuditRecord | None = None,
        format: ReportFormat = ReportFormat.JSON,
    ) -> str:
        """
        Render a report as text.

        Args:
            report: The grading report.
            audit: Audit record to include, if any.
            format: Output format.

        Returns:
            The rendered report.
        """
        if format == ReportFormat.CSV:
            return self._to_csv(report)
        if format == ReportFormat.MARKDOWN:
            return self._to_markdown(report, audit)
        return self._to_json(report, audit)

    def save(
        self,
        report: GradingReport,
        output_path: Path,
        audit: AuditRecord | None = None,
        format: ReportFormat | None = None,
    ) -> Path:
        """
        Write a report to disk.

        The format is inferred from the file suffix when not given,
        defaulting to JSON.

        Returns:
            The path written.
        """
        fmt = format or _SUFFIX_FORMATS.get(output_path.suffix.lower(), ReportFormat.JSON)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        output_path.write_text(self.generate(report, audit, fmt), encoding="utf-8")
        return output_path

    def _to_json(self, report: GradingReport, audit: AuditRecord | None) -> str:
        data: dict[str, Any] = {"grading_result": report.to_dict()}
        if audit is not None:
            data["audit"] = audit.model_dump(mode="json")
        return json.dumps(data, indent=2, ensure_ascii=False)

    def _to_csv(self, report: GradingReport) -> str:
        buffer = io.StringIO()
        writer = csv.writer(buffer, lineterminator="\n")
        summary = report.summary

        writer.writerow(["Question", "Student Answer", "Correct Answer", "Correct", "Points", "Earned Points"])
        for d in report.details:
            writer.writerow(
                [
                    d.question,
                    d.student_answer,
                    d.correct_answer,
                    "yes" if d.is_correct else "no",
                    _fmt(d.points),
                    _fmt(d.earned_points),
                ]
            )

        writer.writerow(
            [
                "TOTAL",
                f"{summary.correct_answers}/{summary.total_questions}",
                "",
                "",
                _fmt(summary.total_points),
                _fmt(summary.earned_points),
            ]
        )
        writer.writerow(["SCORE", f"{summary.score:.2f}%", "", "", "", ""])
        return buffer.getvalue()

    def _to_markdown(self, report: GradingReport, audit: AuditRecord | None) -> str:
        summary = report.summary
        lines = [
            "# Grading Report",
            "",
            "## Summary",
            "",
            f"- **Score:** {summary.score:.1f}%",
            f"- **Correct answers:** {summary.correct_answers}",
            f"- **Incorrect answers:** {summary.incorrect_answers}",
            f"- **Total questions:** {summary.total_questions}",
        ]
        if summary.is_weighted:
            lines.append(f"- **Points:** {_fmt(summary.earned_points)} / {_fmt(summary.total_points)}")
        if summary.unreadable_answers:
            lines.append(f"- **Unreadable marks:** {summary.unreadable_answers}")

        lines.extend(
            [
                "",
                "## Question Breakdown",
                "",
                "| # | Student | Key | Result | Points |",
                "|---|---------|-----|--------|--------|",
            ]
        )
        for d in report.details:
            result = "✅" if d.is_correct else "❌"
            points = f"{_fmt(d.earned_points)}/{_fmt(d.points)}" if d.points is not None else "-"
            lines.append(
                f"| {d.question} | {d.student_answer or '-'} | {d.correct_answer} | {result} | {points} |"
            )

        if audit is not None:
            lines.extend(
                [
                    "",
                    "## Audit",
                    "",
                    f"- Audit ID: `{audit.audit_id}`",
                    f"- Timestamp: {audit.timestamp.isoformat()}",
                    f"- Result hash: `{audit.result_hash}`",
                ]
            )

        return "\n".join(lines) + "\n"


def _fmt(value: float | None) -> str:
    """Format points without a trailing .0 for whole numbers."""
    if value is None:
        return ""
    return f"{value:g}"
