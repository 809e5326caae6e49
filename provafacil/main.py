"""
ProvaFácil CLI Application.

Provides a command-line interface for grading photographed answer
sheets and managing exam templates.
"""

from pathlib import Path
from typing import Annotated, Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

from provafacil.config import Settings, get_settings
from provafacil.extraction import ExtractionError, ImageLoadError, LLMError, load_image
from provafacil.grading import GradingService
from provafacil.logging_config import configure_logging
from provafacil.models import ExamTemplate, GradingReport
from provafacil.output import AuditTrail, ReportFormat, ReportGenerator
from provafacil.scoring import calculate_grades
from provafacil.templates import (
    JSONFileBackend,
    TemplateNotFoundError,
    TemplateParseError,
    TemplateParser,
    TemplateStorageError,
    TemplateStore,
    TemplateValidationError,
)

# Create Typer app
app = typer.Typer(
    name="provafacil",
    help="Grade photographed multiple-choice answer sheets",
    add_completion=False,
)
template_app = typer.Typer(help="Manage exam templates (answer key + points)")
app.add_typer(template_app, name="template")

console = Console()

PROCESS_FAILED = "Could not process the image. Check the photo and try again."


def _store(settings: Settings) -> TemplateStore:
    return TemplateStore(JSONFileBackend(settings.templates_file))


@app.command()
def grade(
    images: Annotated[list[Path], typer.Argument(help="Answer sheet photo(s) or scanned PDF(s)")],
    template_ref: Annotated[
        str,
        typer.Option("--template", "-t", help="Template id or name"),
    ],
    output: Annotated[
        Optional[Path],
        typer.Option("--output", "-o", help="Output file path for the report (single sheet only)"),
    ] = None,
    format: Annotated[
        Optional[ReportFormat],
        typer.Option("--format", "-f", help="Report format (default: from the --output suffix, else json)"),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Show the per-question breakdown"),
    ] = False,
) -> None:
    """
    Grade one or more answer sheets against a saved template.

    Several sheets are graded in parallel. A sheet that can't be read is
    reported and skipped; the rest are still graded.
    """
    settings = get_settings()
    configure_logging(settings.log_level, verbose)

    try:
        template = _store(settings).resolve(template_ref)
        payloads = [load_image(path, settings) for path in images]
    except (TemplateNotFoundError, TemplateStorageError) as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)
    except ImageLoadError as e:
        console.print(f"[red]{PROCESS_FAILED}[/red]\n[dim]{e}[/dim]")
        raise typer.Exit(1)

    service = GradingService(settings)

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        console=console,
    ) as progress:
        progress.add_task(
            f"Reading {len(payloads)} sheet(s) with {settings.llm_model}...", total=None
        )
        outcomes = service.grade_batch(payloads, template)

    audit_trail = AuditTrail(settings.output_directory / "audits")
    generator = ReportGenerator()
    failures = 0

    for path, outcome in zip(images, outcomes):
        console.rule(str(path))
        if outcome is None:
            failures += 1
            console.print(f"[red]{PROCESS_FAILED}[/red]")
            continue

        _display_results(outcome.report, verbose)
        audit_path = audit_trail.save(outcome.audit)
        if verbose:
            console.print(f"[dim]Audit saved to: {audit_path}[/dim]")

        if output and len(images) == 1:
            saved_path = generator.save(outcome.report, output, outcome.audit, format)
            console.print(f"\n[green]Report saved to:[/green] {saved_path}")

    if output and len(images) > 1:
        console.print("[yellow]--output is ignored when grading more than one sheet[/yellow]")

    if failures:
        raise typer.Exit(1)


@app.command()
def score(
    answers: Annotated[str, typer.Option("--answers", "-a", help="Student answers, e.g. A,C,C,ANULADA")],
    key: Annotated[
        Optional[str],
        typer.Option("--key", "-k", help="Answer key, e.g. A,B,C,D"),
    ] = None,
    points: Annotated[
        Optional[str],
        typer.Option("--points", "-p", help="Points per question, e.g. 1,1,2,1"),
    ] = None,
    template_ref: Annotated[
        Optional[str],
        typer.Option("--template", "-t", help="Use a saved template instead of --key/--points"),
    ] = None,
    format: Annotated[
        Optional[ReportFormat],
        typer.Option("--format", "-f", help="Print the report in this format"),
    ] = None,
) -> None:
    """
    Score answers that were already read, without calling the vision API.

    Without --points every question is worth one point.
    """
    parser = TemplateParser()

    try:
        student = parser.parse_answers(answers)
        if template_ref:
            template = _store(get_settings()).resolve(template_ref)
            answer_key: list[str] = list(template.answer_key)
            weights: list[float] | None = list(template.points)
        elif key:
            answer_key = parser.parse_answer_key(key)
            weights = parser.parse_points(points) if points else None
        else:
            console.print("[red]Error:[/red] Provide --key or --template")
            raise typer.Exit(1)
    except (TemplateParseError, TemplateNotFoundError, TemplateStorageError) as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)

    report = calculate_grades(student, answer_key, weights)

    if format:
        console.print(ReportGenerator().generate(report, format=format), markup=False)
    else:
        _display_results(report, verbose=True)


@app.command("extract-key")
def extract_key(
    image: Annotated[Path, typer.Argument(help="Photo of the answer key sheet")],
    name: Annotated[str, typer.Option("--name", "-n", help="Name for the new template")],
    points: Annotated[
        Optional[str],
        typer.Option("--points", "-p", help="Points per question (default: 1 each)"),
    ] = None,
    save: Annotated[
        bool,
        typer.Option("--save/--no-save", help="Save the template after extraction"),
    ] = True,
) -> None:
    """
    Read an answer key from a photo and create a template from it.
    """
    settings = get_settings()
    configure_logging(settings.log_level)

    try:
        weights = TemplateParser().parse_points(points) if points else None
        payload = load_image(image, settings)

        with console.status("Reading answer key..."):
            template = GradingService(settings).extract_template(payload, name, weights)

        _display_template(template)

        if save:
            _store(settings).add(template)
            console.print(f"\n[green]✓ Template saved with id[/green] {template.id}")

    except (TemplateParseError, TemplateStorageError) as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)
    except TemplateValidationError as e:
        console.print(f"[red]Template Validation Error:[/red] {e}")
        raise typer.Exit(1)
    except (ImageLoadError, LLMError, ExtractionError) as e:
        console.print(f"[red]{PROCESS_FAILED}[/red]\n[dim]{e}[/dim]")
        raise typer.Exit(1)


@template_app.command("add")
def template_add(
    name: Annotated[str, typer.Argument(help="Template name")],
    answer_key: Annotated[str, typer.Argument(help="Answer key, e.g. A,B,C")],
    points: Annotated[str, typer.Argument(help="Points per question, e.g. 1,1,2")],
) -> None:
    """Create a template from an answer key and points."""
    try:
        template = TemplateParser().parse(name, answer_key, points)
        _store(get_settings()).add(template)
    except (TemplateParseError, TemplateStorageError) as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)
    except TemplateValidationError as e:
        console.print(f"[red]Template Validation Error:[/red] {e}")
        raise typer.Exit(1)

    console.print(f"[green]✓ Template created:[/green] {template.name} ({template.id})")


@template_app.command("list")
def template_list() -> None:
    """List saved templates."""
    try:
        templates = _store(get_settings()).list_all()
    except TemplateStorageError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)

    if not templates:
        console.print("[dim]No templates saved yet.[/dim]")
        return

    table = Table(title="Templates")
    table.add_column("ID", style="dim")
    table.add_column("Name", style="cyan")
    table.add_column("Questions", justify="right")
    table.add_column("Points", justify="right")

    for t in templates:
        table.add_row(t.id, t.name, str(t.question_count), f"{t.total_points:g}")

    console.print(table)


@template_app.command("show")
def template_show(
    template_ref: Annotated[str, typer.Argument(help="Template id or name")],
) -> None:
    """Show a template's answer key."""
    try:
        template = _store(get_settings()).resolve(template_ref)
    except (TemplateNotFoundError, TemplateStorageError) as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)

    _display_template(template)


@template_app.command("delete")
def template_delete(
    template_id: Annotated[str, typer.Argument(help="Template id")],
) -> None:
    """Delete a template."""
    try:
        _store(get_settings()).delete(template_id)
    except (TemplateNotFoundError, TemplateStorageError) as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)

    console.print(f"[green]✓ Deleted template[/green] {template_id}")


@app.command()
def health() -> None:
    """
    Check if the extraction service is operational.

    Verifies API connectivity and configuration.
    """
    try:
        settings = get_settings()
        console.print("[bold]ProvaFácil Health Check[/bold]\n")

        console.print("[dim]Checking configuration...[/dim]")
        console.print(f"  API Base URL: {settings.llm_base_url}")
        console.print(f"  Model: {settings.llm_model}")
        console.print(f"  Templates: {settings.templates_file}")

        console.print("\n[dim]Checking API connectivity...[/dim]")
        service = GradingService(settings)

        if service.health_check():
            console.print("[green]✓ API is reachable[/green]")
        else:
            console.print("[red]✗ API is not reachable[/red]")
            raise typer.Exit(1)

        console.print("\n[green]All systems operational[/green]")

    except typer.Exit:
        raise
    except Exception as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)


def _display_results(report: GradingReport, verbose: bool = False) -> None:
    """Display grading results in a formatted table."""
    summary = report.summary

    score_color = "green" if summary.score >= 70 else "yellow" if summary.score >= 50 else "red"
    lines = [
        f"[{score_color}][bold]{summary.correct_answers} / {summary.total_questions}[/bold] "
        f"({summary.score:.1f}%)[/{score_color}]"
    ]
    if summary.is_weighted:
        lines.append(f"Points: {summary.earned_points:g} / {summary.total_points:g}")
    console.print(Panel("\n".join(lines), title="Final Score"))

    if summary.unreadable_answers:
        console.print(
            f"[yellow]⚠ {summary.unreadable_answers} question(s) could not be read "
            "and were marked incorrect[/yellow]"
        )

    if verbose:
        table = Table(title="Question Breakdown")
        table.add_column("#", justify="right")
        table.add_column("Student")
        table.add_column("Key")
        table.add_column("Points", justify="right")
        table.add_column("Status")

        for d in report.details:
            points = f"{d.earned_points:g}/{d.points:g}" if d.points is not None else "-"
            table.add_row(
                str(d.question),
                d.student_answer or "-",
                d.correct_answer,
                points,
                "✅" if d.is_correct else "❌",
            )

        console.print(table)


def _display_template(template: ExamTemplate) -> None:
    table = Table(title=f"{template.name} ({template.question_count} questions)")
    table.add_column("#", justify="right")
    table.add_column("Answer", style="cyan")
    table.add_column("Points", justify="right")

    for i, answer in enumerate(template.answer_key):
        weight = template.points[i] if i < len(template.points) else 0.0
        table.add_row(str(i + 1), answer, f"{weight:g}")

    console.print(table)
    console.print(f"[bold]Total Points:[/bold] {template.total_points:g}")


if __name__ == "__main__":
    app()
