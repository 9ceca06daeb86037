import asyncio
import json
from pathlib import Path
from typing import Any, Optional

import typer
from dotenv import load_dotenv
from rich import print as rprint
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from .config import configure_logging, get_settings
from .errors import CodecError
from .toon import calculate_token_savings, decode, encode
from .workflow.catalog import build_default_catalog
from .workflow.pipeline import default_validator, refine_workflow
from .workflow.report import ValidationResult
from .workflow.validator import GraphValidator

app = typer.Typer(no_args_is_help=True, help="Workflow Sidekick: turn natural language into n8n workflows.")


@app.callback()
def main(verbose: bool = typer.Option(False, "--verbose", "-v", help="Log at DEBUG level.")):
    load_dotenv()
    settings = get_settings()
    if verbose:
        settings = settings.model_copy(update={"log_level": "DEBUG"})
    configure_logging(settings)


def _read_text(file: Path) -> str:
    try:
        return file.read_text()
    except FileNotFoundError:
        rprint(f"[red]No such file:[/] {file}")
        raise typer.Exit(code=2)


def _read_json(file: Path) -> Any:
    try:
        return json.loads(_read_text(file))
    except ValueError as exc:
        rprint(f"[red]Invalid JSON in {file}:[/] {exc}")
        raise typer.Exit(code=2)


def _report_table(result: ValidationResult) -> Table:
    table = Table(title="Validation Report", show_lines=True)
    table.add_column("Status", justify="center", style="bold")
    table.add_column("Message")
    for e in result.errors:
        table.add_row("[red]ERR[/]", escape(e))
    for w in result.warnings:
        table.add_row("[yellow]WARN[/]", escape(w))
    if result.is_valid:
        found = ", ".join(result.expected_nodes_found) or "none"
        table.add_row("[green]OK[/]", f"{result.node_count} node(s); detected: {found}")
    return table


@app.command()
def generate(
    description: str = typer.Option(..., "--description", "-d", help="What the workflow should do"),
    provider: Optional[str] = typer.Option(None, help="openrouter | openai | groq | ollama | google"),
    model: Optional[str] = typer.Option(None, help="Model name; defaults to the provider default"),
    out: Optional[Path] = typer.Option(None, help="Write the workflow JSON here"),
    print_json: bool = typer.Option(False, "--print", help="Print the workflow JSON to stdout"),
    toon: Optional[bool] = typer.Option(None, "--toon/--no-toon", help="Embed the request as TOON"),
    retries: Optional[int] = typer.Option(None, min=0, help="Self-correction attempts after the first"),
):
    """Generate a workflow, validating and self-correcting it."""
    settings = get_settings()
    if retries is not None:
        settings = settings.model_copy(update={"max_fix_attempts": retries})
    validator = default_validator(settings, build_default_catalog())

    async def _run() -> tuple[Optional[dict], Optional[ValidationResult]]:
        workflow, report = None, None
        async for event in refine_workflow(
            description,
            provider,
            None,
            model,
            settings=settings,
            use_toon=toon,
            validator=validator,
        ):
            kind, content = event["type"], event["content"]
            if kind == "workflow":
                workflow = content
            elif kind == "validation_report":
                report = ValidationResult.model_validate(content["report"])
            elif kind == "generation":
                rprint(f"[dim]attempt {content['attempt']}: {content['provider']} / {content['model']}[/]")
            elif kind == "text":
                rprint(escape(content))
            elif kind == "error":
                rprint(f"[red]{escape(content)}[/]")
        return workflow, report

    workflow, report = asyncio.run(_run())
    if workflow is None:
        raise typer.Exit(code=1)

    if report is not None:
        rprint(_report_table(report))
    if out:
        out.parent.mkdir(parents=True, exist_ok=True)
        out.write_text(json.dumps(workflow, indent=2))
        rprint(Panel.fit(f"Saved [bold]{workflow.get('name')}[/] to [cyan]{out}[/]"))
    if print_json:
        typer.echo(json.dumps(workflow, indent=2))
    if report is not None and not report.is_valid:
        raise typer.Exit(code=1)


@app.command()
def validate(
    file: Path,
    namespace: Optional[list[str]] = typer.Option(None, help="Accepted type namespace (repeatable)"),
    markdown: bool = typer.Option(False, help="Print the markdown report instead of a table"),
):
    """Validate a workflow JSON file."""
    settings = get_settings()
    namespaces = namespace or settings.node_namespaces or None
    validator = GraphValidator(build_default_catalog(), namespaces, settings.require_parameters)
    result = validator.validate(_read_json(file))
    if markdown:
        typer.echo(result.to_markdown(file.stem))
    else:
        rprint(_report_table(result))
    if not result.is_valid:
        raise typer.Exit(code=1)


@app.command("encode")
def encode_command(
    file: Path,
    root: str = typer.Option("data", help="Root entry name"),
):
    """Encode a JSON file as TOON."""
    try:
        typer.echo(encode(_read_json(file), root))
    except CodecError as exc:
        rprint(f"[red]{escape(str(exc))}[/]")
        raise typer.Exit(code=1)


@app.command("decode")
def decode_command(file: Path):
    """Decode a TOON file to JSON."""
    try:
        typer.echo(json.dumps(decode(_read_text(file)), indent=2))
    except CodecError as exc:
        rprint(f"[red]{escape(str(exc))}[/]")
        raise typer.Exit(code=1)


@app.command()
def savings(
    file: Path,
    root: str = typer.Option("data", help="Root entry name"),
):
    """Estimate the token savings of TOON over pretty-printed JSON."""
    try:
        result = calculate_token_savings(_read_json(file), root)
    except CodecError as exc:
        rprint(f"[red]{escape(str(exc))}[/]")
        raise typer.Exit(code=1)

    table = Table(title=f"Token savings: {file.name}")
    table.add_column("Metric")
    table.add_column("Value", justify="right")
    table.add_row("JSON tokens", str(result.json_tokens))
    table.add_row("TOON tokens", str(result.toon_tokens))
    table.add_row("Saved", f"{result.savings} ({result.savings_percent}%)")
    table.add_row("Compression ratio", f"{result.compression_ratio}x")
    rprint(table)


@app.command()
def nodes(
    category: Optional[str] = typer.Option(None, help="triggers | actions | transforms"),
    search: Optional[str] = typer.Option(None, help="Filter by name or description"),
):
    """List the node types in the built-in catalog."""
    catalog = build_default_catalog()
    definitions = catalog.search(search) if search else catalog.all()
    if category:
        definitions = [d for d in definitions if d.category == category]

    table = Table(title="Node catalog")
    table.add_column("Key", style="bold")
    table.add_column("Type", style="cyan")
    table.add_column("Category")
    table.add_column("Description")
    for d in definitions:
        table.add_row(d.key, d.type, d.category, d.description)
    rprint(table)


if __name__ == "__main__":
    app()
