"""
Command-line interface for MUCM.

Provides commands for:
- Initializing a project and listing methodologies and languages
- Creating use cases, scenarios and steps
- Updating scenario status and regenerating documentation
- Managing personas and cleaning orphaned methodology fields

Usage:
    mucm init --name "Shop" --backend sqlite
    mucm create "User login" --category Security --view feature:normal
    mucm add-scenario UC-SEC-001 "Valid credentials"
    mucm update-status UC-SEC-001-S01 implemented
    mucm regenerate --tests
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table
from rich.progress import Progress, SpinnerColumn, TextColumn, BarColumn

from mucm import __version__
from mucm.bootstrap import init_project, packaged_methodologies
from mucm.config import PACKAGE_TEMPLATES, Config, find_project_root, require_project_root
from mucm.errors import MucmError, ValidationError
from mucm.languages import LanguageRegistry
from mucm.methodology.registry import MethodologyRegistry, lookup_methodology
from mucm.models import SCENARIO_ID_PATTERN, ActorEntity, Status
from mucm.services.application import UseCaseApplicationService

app = typer.Typer(
    name="mucm",
    help="MUCM: Markdown Use Case Manager",
    add_completion=False,
)
persona_app = typer.Typer(help="Manage personas and other actors")
app.add_typer(persona_app, name="persona")
console = Console()


def version_callback(value: bool):
    if value:
        console.print(f"MUCM v{__version__}")
        raise typer.Exit()


def _fail(exc: MucmError) -> None:
    console.print(f"[red]Error:[/] {exc.message}")
    if exc.hint:
        console.print(f"[dim]{exc.hint}[/]")
    raise typer.Exit(exc.exit_code)


def _service() -> UseCaseApplicationService:
    root = require_project_root()
    return UseCaseApplicationService.from_config(Config.load(root), root)


def _template_dir() -> Path:
    """Project templates when inside a project, packaged defaults otherwise."""
    root = find_project_root()
    if root is None:
        return PACKAGE_TEMPLATES
    return Config.load(root).template_path(root)


def _parent_id(scenario_id: str) -> str:
    match = SCENARIO_ID_PATTERN.match(scenario_id)
    if not match:
        raise ValidationError(f"Invalid scenario ID '{scenario_id}'", hint="Scenario IDs look like UC-SEC-001-S01")
    return match.group("parent")


def _parse_fields(values: Optional[list[str]]) -> dict:
    fields = {}
    for item in values or []:
        name, sep, value = item.partition("=")
        if not sep or not name.strip():
            raise ValidationError(f"Invalid field '{item}'", hint="Use --field name=value")
        fields[name.strip()] = value
    return fields


@app.callback()
def main(
    version: bool = typer.Option(
        False, "--version", "-V",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit",
    ),
    verbose: bool = typer.Option(
        False, "--verbose", "-v",
        help="Show debug logging",
    ),
):
    """MUCM: use case documentation from a single source of truth."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
    )


@app.command()
def init(
    name: Optional[str] = typer.Option(None, "--name", "-n", help="Project name (default: directory name)"),
    description: str = typer.Option("", "--description", "-d", help="Project description"),
    backend: str = typer.Option("toml", "--backend", "-b", help="Storage backend: toml or sqlite"),
    methodologies: Optional[str] = typer.Option(
        None, "--methodologies", "-m",
        help="Comma separated methodologies to install (default: all)",
    ),
    default_methodology: Optional[str] = typer.Option(
        None, "--default-methodology",
        help="Methodology used when a use case is created without views",
    ),
    language: str = typer.Option("python", "--language", "-l", help="Test language, or 'none'"),
    force: bool = typer.Option(False, "--force", "-f", help="Reinitialize and restore default templates"),
):
    """Initialize a use case project in the current directory."""
    selected = [m.strip() for m in methodologies.split(",")] if methodologies else None
    try:
        config = init_project(
            Path.cwd(),
            name=name,
            description=description,
            backend=backend,
            methodologies=selected,
            default_methodology=default_methodology,
            test_language=language,
            force=force,
        )
    except MucmError as exc:
        _fail(exc)
    console.print(f"[green]✓[/] Initialized project [bold]{config.project.name}[/]")
    console.print(f"  Storage: {config.storage_backend}")
    console.print(f"  Methodologies: {', '.join(config.templates.methodologies)}")
    console.print(f"  Test language: {config.test_language}")


@app.command()
def create(
    title: str = typer.Argument(..., help="Use case title"),
    category: str = typer.Option(..., "--category", "-c", help="Category (drives the ID prefix)"),
    description: str = typer.Option("", "--description", "-d", help="Description"),
    priority: str = typer.Option("medium", "--priority", "-p", help="low, medium, high or critical"),
    views: Optional[list[str]] = typer.Option(
        None, "--view",
        help="methodology:level view to enable (repeatable)",
    ),
    fields: Optional[list[str]] = typer.Option(
        None, "--field",
        help="Methodology field value as name=value (repeatable)",
    ),
):
    """Create a use case."""
    try:
        service = _service()
        use_case = service.create_use_case(
            title,
            category,
            description=description,
            priority=priority,
            views=views or [],
            field_values=_parse_fields(fields),
        )
    except MucmError as exc:
        _fail(exc)
    console.print(f"[green]✓[/] Created [bold]{use_case.id}[/]: {use_case.title}")
    for view in use_case.enabled_views():
        console.print(f"  View: {view.methodology}:{view.level}")


@app.command("list")
def list_use_cases(
    category: Optional[str] = typer.Option(None, "--category", "-c", help="Only this category"),
):
    """List use cases."""
    try:
        use_cases = _service().list_use_cases(category)
    except MucmError as exc:
        _fail(exc)
    if not use_cases:
        console.print("[yellow]No use cases yet.[/] Create one with 'mucm create'.")
        return
    table = Table(title="Use Cases")
    table.add_column("ID", style="cyan")
    table.add_column("Title")
    table.add_column("Category")
    table.add_column("Priority")
    table.add_column("Status")
    table.add_column("Scenarios", justify="right")
    for uc in use_cases:
        table.add_row(
            uc.id, uc.title, uc.category, uc.priority.display_name,
            f"{uc.status.emoji} {uc.status.display_name}", str(len(uc.scenarios)),
        )
    console.print(table)


@app.command()
def show(use_case_id: str = typer.Argument(..., help="Use case ID")):
    """Show a use case with its scenarios and steps."""
    try:
        uc = _service().get_use_case(use_case_id)
    except MucmError as exc:
        _fail(exc)
    console.print(f"[bold cyan]{uc.id}[/] {uc.title}")
    console.print(f"  Category: {uc.category}   Priority: {uc.priority.display_name}   "
                  f"Status: {uc.status.emoji} {uc.status.display_name}")
    if uc.description:
        console.print(f"  {uc.description}")
    for scenario in uc.scenarios:
        console.print(f"\n  [bold]{scenario.id}[/] {scenario.title} "
                      f"[dim]({scenario.scenario_type.display_name}, {scenario.status.display_name})[/]")
        for step in scenario.steps:
            receiver = f" → {step.receiver}" if step.receiver else ""
            console.print(f"    {step.order}. {step.actor}{receiver} {step.action} {step.description}")


@app.command("add-scenario")
def add_scenario(
    use_case_id: str = typer.Argument(..., help="Use case ID"),
    title: str = typer.Argument(..., help="Scenario title"),
    description: str = typer.Option("", "--description", "-d", help="Description"),
    scenario_type: str = typer.Option("happy_path", "--type", "-t", help="happy_path, alternative_flow, exception_flow or extension"),
    persona: Optional[str] = typer.Option(None, "--persona", help="Persona ID"),
):
    """Add a scenario to a use case."""
    try:
        scenario_id = _service().add_scenario(use_case_id, title, description, scenario_type, persona)
    except MucmError as exc:
        _fail(exc)
    console.print(f"[green]✓[/] Added scenario [bold]{scenario_id}[/]")


@app.command("add-step")
def add_step(
    scenario_id: str = typer.Argument(..., help="Scenario ID"),
    actor: str = typer.Argument(..., help="Actor (User, System, Database, api, or a custom name)"),
    action: str = typer.Argument(..., help="Action verb"),
    description: str = typer.Argument("", help="What happens"),
    receiver: Optional[str] = typer.Option(None, "--to", help="Receiving actor"),
    notes: Optional[str] = typer.Option(None, "--notes", help="Notes"),
):
    """Append a step to a scenario."""
    try:
        step = _service().add_step(_parent_id(scenario_id), scenario_id, actor, action, description, receiver, notes)
    except MucmError as exc:
        _fail(exc)
    console.print(f"[green]✓[/] Added step {step.order} to {scenario_id}")


@app.command("update-status")
def update_status(
    scenario_id: str = typer.Argument(..., help="Scenario ID"),
    status: str = typer.Argument(..., help="planned, in_progress, implemented, tested, deployed or deprecated"),
):
    """Update the status of a scenario."""
    try:
        aggregate = _service().update_scenario_status(_parent_id(scenario_id), scenario_id, status)
    except MucmError as exc:
        _fail(exc)
    new_status = Status.parse(status)
    console.print(f"[green]✓[/] {scenario_id} is now {new_status.emoji} {new_status.display_name}")
    console.print(f"  Use case status: {aggregate.emoji} {aggregate.display_name}")


@app.command()
def regenerate(
    use_case_id: Optional[str] = typer.Argument(None, help="Only this use case"),
    tests: bool = typer.Option(False, "--tests", help="Also (re)generate test skeletons"),
):
    """Regenerate Markdown views, test skeletons and the overview."""
    try:
        service = _service()
        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            console=console,
            transient=True,
        ) as progress:
            task = progress.add_task("Regenerating...", total=1.0)
            result = service.regenerate(
                use_case_id,
                generate_tests=True if tests else None,
                progress_callback=lambda msg, pct: progress.update(task, description=msg, completed=pct),
            )
    except MucmError as exc:
        _fail(exc)
    stats = result.stats
    console.print(f"[green]✓[/] Regenerated {stats['use_cases']} use case(s): "
                  f"{stats['views']} view(s), {stats['tests_written']} test file(s)")
    for error in result.errors:
        console.print(f"[red]✗[/] {error}")
    if not result.success:
        raise typer.Exit(7)


@app.command()
def methodologies():
    """List available methodologies."""
    try:
        registry = MethodologyRegistry.from_directory(_template_dir())
    except MucmError as exc:
        _fail(exc)
    table = Table(title="Methodologies")
    table.add_column("Name", style="cyan")
    table.add_column("Title")
    table.add_column("Levels")
    table.add_column("Preferred")
    for definition in registry:
        levels = ", ".join(f"{lv.name} ({lv.abbreviation})" for lv in definition.levels)
        table.add_row(definition.name, definition.title, levels, definition.preferred_style)
    console.print(table)
    if not len(registry):
        console.print(f"[yellow]No methodologies found.[/] Packaged: {', '.join(packaged_methodologies())}")


@app.command("methodology-info")
def methodology_info(name: str = typer.Argument(..., help="Methodology name")):
    """Show a methodology's levels and custom fields."""
    try:
        registry = MethodologyRegistry.from_directory(_template_dir())
        definition = lookup_methodology(registry, name)
    except MucmError as exc:
        _fail(exc)
    console.print(f"[bold cyan]{definition.title}[/] ({definition.name})")
    if definition.description:
        console.print(definition.description)
    if definition.when_to_use:
        console.print("\n[bold]When to use:[/]")
        for item in definition.when_to_use:
            console.print(f"  • {item}")
    if definition.key_features:
        console.print("\n[bold]Key features:[/]")
        for item in definition.key_features:
            console.print(f"  • {item}")
    table = Table(title="Levels")
    table.add_column("Level", style="cyan")
    table.add_column("Abbrev")
    table.add_column("Inherits")
    table.add_column("Fields")
    for level in definition.levels:
        names = ", ".join(
            f"{n}*" if c.required else n for n, c in level.custom_fields.items()
        )
        table.add_row(level.name, level.abbreviation, ", ".join(level.inherits) or "-", names or "-")
    console.print(table)
    console.print("[dim]* required[/]")


@app.command()
def languages():
    """List supported test languages."""
    try:
        registry = LanguageRegistry.from_directory(_template_dir())
    except MucmError as exc:
        _fail(exc)
    table = Table(title="Test Languages")
    table.add_column("Language", style="cyan")
    table.add_column("Extension")
    table.add_column("Aliases")
    for lang in registry:
        table.add_row(lang.name, f".{lang.extension}", ", ".join(lang.aliases) or "-")
    console.print(table)


@app.command()
def status():
    """Show project statistics and dangling references."""
    try:
        service = _service()
        summary = service.project_status()
    except MucmError as exc:
        _fail(exc)
    console.print(f"[bold]{service.config.project.name}[/]  "
                  f"({service.config.storage_backend} storage)")
    console.print(f"  Use cases: {summary.total_use_cases}   Scenarios: {summary.total_scenarios}")

    table = Table(title="By Status")
    table.add_column("Status")
    table.add_column("Count", justify="right")
    for s in Status:
        if summary.by_status.get(s.value):
            table.add_row(f"{s.emoji} {s.display_name}", str(summary.by_status[s.value]))
    console.print(table)

    if summary.by_category:
        console.print("  Categories: " + ", ".join(f"{k} ({v})" for k, v in sorted(summary.by_category.items())))
    if summary.lints:
        console.print(f"\n[yellow]⚠ {len(summary.lints)} dangling reference(s):[/]")
        for lint in summary.lints:
            console.print(f"  {lint.use_case_id} [{lint.location}]: {lint.message}")
    else:
        console.print("[green]✓[/] No dangling references")


@app.command()
def cleanup(
    use_case_id: Optional[str] = typer.Argument(None, help="Only this use case"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Report without changing anything"),
):
    """Remove methodology fields no longer backed by an enabled view."""
    try:
        report = _service().clean_orphans(use_case_id, dry_run=dry_run)
    except MucmError as exc:
        _fail(exc)
    verb = "Would clean" if dry_run else "Cleaned"
    console.print(f"{verb} {report.cleaned_count} of {report.total} use case(s)")
    for uc_id, orphans in report.details:
        console.print(f"  {uc_id}: {', '.join(orphans)}")
    for uc_id, message in report.errors:
        console.print(f"[red]✗[/] {uc_id}: {message}")


@persona_app.command("create")
def persona_create(
    persona_id: str = typer.Argument(..., help="Persona ID (kebab-case)"),
    name: str = typer.Option(..., "--name", "-n", help="Display name"),
    description: str = typer.Option("", "--description", "-d", help="Who this is"),
    goal: Optional[str] = typer.Option(None, "--goal", help="What they want to achieve"),
    context: Optional[str] = typer.Option(None, "--context", help="Situation they work in"),
    tech_level: Optional[int] = typer.Option(None, "--tech-level", help="Technical proficiency 1-5"),
    usage_frequency: Optional[str] = typer.Option(None, "--usage", help="How often they use the product"),
    actor_type: str = typer.Option("persona", "--type", help="persona, system, external_service, database or custom"),
    emoji: Optional[str] = typer.Option(None, "--emoji", help="Display emoji"),
):
    """Create a persona."""
    try:
        service = _service()
        actor = service.create_actor(ActorEntity(
            id=persona_id,
            name=name,
            actor_type=actor_type,
            emoji=emoji,
            description=description,
            goal=goal,
            context=context,
            tech_level=tech_level,
            usage_frequency=usage_frequency,
        ))
    except MucmError as exc:
        _fail(exc)
    console.print(f"[green]✓[/] Created persona {actor.emoji} [bold]{actor.id}[/]")


@persona_app.command("list")
def persona_list(
    all_actors: bool = typer.Option(False, "--all", help="Include non-persona actors"),
):
    """List personas."""
    try:
        actors = _service().list_actors(personas_only=not all_actors)
    except MucmError as exc:
        _fail(exc)
    if not actors:
        console.print("[yellow]No personas yet.[/] Create one with 'mucm persona create'.")
        return
    table = Table(title="Personas")
    table.add_column("", width=2)
    table.add_column("ID", style="cyan")
    table.add_column("Name")
    table.add_column("Type")
    table.add_column("Goal")
    for actor in actors:
        table.add_row(actor.emoji, actor.id, actor.name, actor.actor_type.value, actor.goal or "")
    console.print(table)


@persona_app.command("delete")
def persona_delete(persona_id: str = typer.Argument(..., help="Persona ID")):
    """Delete a persona."""
    try:
        actor, referencing = _service().delete_actor(persona_id)
    except MucmError as exc:
        _fail(exc)
    console.print(f"[green]✓[/] Deleted persona [bold]{actor.id}[/]")
    if referencing:
        console.print("[yellow]Still referenced by:[/] " + ", ".join(uc.id for uc in referencing))


if __name__ == "__main__":
    app()
