from __future__ import annotations

"""Tagette Command Line Interface."""

import json
from pathlib import Path
from typing import List, Optional

import typer
from jsonschema import ValidationError as SchemaFileError
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from tagette.core.client import ExtractionClient
from tagette.core.prompt import PromptBuilder
from tagette.core.registry import SchemaRegistry
from tagette.core.retry import extract_many_with_retries, extract_with_retries
from tagette.core.schema import BoundedIntType, EnumType
from tagette.engine.broker import EngineBroker
from tagette.engine.registry import load_engines_from_yaml, registered_engines
from tagette.errors import SchemaDefinitionError, TagetteError, ValidationFailed
from tagette.utils import logging as tlog
from tagette.yaml_loader import load_schemas

app = typer.Typer(
    name="tagette",
    help="CLI for Tagette: schema-constrained label extraction with LLMs.",
    add_completion=False,
)

console = Console()


def _load_registry(schema_file: Path) -> SchemaRegistry:
    registry = SchemaRegistry()
    try:
        for schema in load_schemas(schema_file):
            registry.define(schema)
    except SchemaFileError as e:
        console.print(f"[bold red]Invalid schema file {schema_file}: {escape(e.message)}[/]")
        raise typer.Exit(code=1)
    except SchemaDefinitionError as e:
        console.print(f"[bold red]Invalid schema in {schema_file}: {escape(str(e))}[/]")
        raise typer.Exit(code=1)
    return registry


def _get_schema(registry: SchemaRegistry, schema_name: str):
    if schema_name not in registry:
        known = ", ".join(registry.names()) or "none"
        console.print(f"[bold red]Schema '{schema_name}' not found (known: {known}).[/]")
        raise typer.Exit(code=1)
    return registry.get(schema_name)


def _print_result(res) -> None:
    if res.ok:
        console.print_json(json.dumps(res.value.to_dict(), ensure_ascii=False))
        return
    err = res.error
    console.print(f"[bold red]{type(err).__name__}:[/] {escape(str(err))}", highlight=False)
    if isinstance(err, ValidationFailed):
        table = Table(title="Violations")
        table.add_column("Field", style="cyan", no_wrap=True)
        table.add_column("Reason", style="yellow")
        table.add_column("Value", style="magenta")
        for v in err.violations:
            table.add_row(v.field, v.kind, "-" if v.value is None else repr(v.value))
        console.print(table)


@app.command()
def engines(
    engines_file: Optional[Path] = typer.Option(None, "--engines", help="YAML file with engine definitions."),
):
    """List all registered LLM engine configurations."""
    if engines_file is not None:
        load_engines_from_yaml(engines_file)
    registry = registered_engines()
    if not registry:
        console.print("[yellow]No engines registered.[/]")
        return

    table = Table(title="Registered LLM Engines")
    table.add_column("Name", style="cyan", no_wrap=True)
    table.add_column("Backend", style="green")
    table.add_column("Model", style="magenta")
    table.add_column("Endpoint", style="blue")
    table.add_column("Timeout", style="yellow")

    for name, config in registry.items():
        table.add_row(
            name,
            config.backend,
            config.model or "-",
            config.endpoint or "-",
            f"{config.timeout:g}s",
        )
    console.print(table)


@app.command()
def schemas(
    schema_file: Path = typer.Argument(..., help="YAML file with schema definitions.", exists=True, dir_okay=False, readable=True),
):
    """Show the schemas declared in a YAML file."""
    registry = _load_registry(schema_file)
    for schema in registry:
        table = Table(title=f"{schema.name}" + (f" – {schema.description}" if schema.description else ""))
        table.add_column("Field", style="cyan", no_wrap=True)
        table.add_column("Type", style="green")
        table.add_column("Constraint", style="magenta")
        table.add_column("Required", style="yellow")
        table.add_column("Description", style="dim")
        for f in schema.fields:
            if isinstance(f.type, BoundedIntType):
                constraint = f"[{f.type.min}, {f.type.max}]"
            elif isinstance(f.type, EnumType):
                constraint = ", ".join(f.type.values)
            else:
                constraint = "-"
            table.add_row(f.name, f.type.kind, constraint, "yes" if f.required else "no", f.description or "-")
        console.print(table)


@app.command()
def prompt(
    schema_file: Path = typer.Argument(..., help="YAML file with schema definitions.", exists=True, dir_okay=False, readable=True),
    schema_name: str = typer.Argument(..., help="Schema to render."),
    text: str = typer.Argument(..., help="Document text."),
):
    """Print the prompt that would be sent for TEXT (no model call)."""
    registry = _load_registry(schema_file)
    schema = _get_schema(registry, schema_name)
    try:
        rendered = PromptBuilder().render(text, schema)
    except TagetteError as e:
        console.print(f"[bold red]{type(e).__name__}:[/] {escape(str(e))}")
        raise typer.Exit(code=1)
    console.print(rendered, markup=False, highlight=False)


@app.command()
def extract(
    schema_file: Path = typer.Argument(..., help="YAML file with schema definitions.", exists=True, dir_okay=False, readable=True),
    schema_name: str = typer.Argument(..., help="Schema to extract."),
    text: Optional[str] = typer.Argument(None, help="Document text (omit when using --input)."),
    engines_file: Path = typer.Option(..., "--engines", help="YAML file with engine definitions.", exists=True, dir_okay=False),
    engine: str = typer.Option(..., "--engine", help="Name of the engine to use."),
    input_file: Optional[Path] = typer.Option(None, "--input", help="JSONL file, one document per line."),
    text_key: str = typer.Option("text", "--text-key", help="Key holding the document text in each JSONL record."),
    output_dir: Optional[Path] = typer.Option(None, "--output-dir", help="Directory for batch results.", file_okay=False),
    fmt: str = typer.Option("jsonl", "--format", help="Batch output format: jsonl or csv."),
    retries: int = typer.Option(1, "--retries", min=1, help="Attempts per document (retry policy)."),
    timeout: Optional[float] = typer.Option(None, "--timeout", help="Per-call timeout in seconds."),
    max_workers: int = typer.Option(8, "--max-workers", min=1, help="Concurrent calls for batch input."),
    json_logs: bool = typer.Option(False, "--json-logs", help="Emit JSON event logs instead of Rich logs."),
    log_level: str = typer.Option("warning", "--log-level", help="debug, info, warning or error."),
):
    """Extract SCHEMA_NAME from TEXT (or every record of --input)."""
    if fmt not in ("jsonl", "csv"):
        console.print(f"[bold red]Unsupported format '{fmt}' (use jsonl or csv).[/]")
        raise typer.Exit(code=1)
    registry = _load_registry(schema_file)
    schema = _get_schema(registry, schema_name)
    load_engines_from_yaml(engines_file)
    if engine not in registered_engines():
        console.print(f"[bold red]Engine '{engine}' not found in {engines_file}.[/]")
        raise typer.Exit(code=1)

    tlog.get(log_level)
    tlog.enable_event_logging(json_logs=json_logs)
    client = ExtractionClient(engine=engine, registry=registry, timeout=timeout)

    def _one(doc: str):
        if retries > 1:
            return extract_with_retries(client, doc, schema, max_attempts=retries, timeout=timeout)
        return client.extract(doc, schema, timeout=timeout)

    try:
        if input_file is None:
            if text is None:
                console.print("[bold red]Provide TEXT or --input.[/]")
                raise typer.Exit(code=1)
            res = _one(text)
            _print_result(res)
            if not res.ok:
                raise typer.Exit(code=1)
            return

        records: List[dict] = []
        try:
            with open(input_file, "r", encoding="utf-8") as f:
                for line in f:
                    if line.strip():
                        records.append(json.loads(line))
        except (OSError, json.JSONDecodeError) as e:
            console.print(f"[bold red]Error reading input file {input_file}: {escape(str(e))}[/]")
            raise typer.Exit(code=1)

        docs = []
        for i, rec in enumerate(records, 1):
            if text_key not in rec:
                console.print(f"[bold red]Record {i} has no '{text_key}' key.[/]")
                raise typer.Exit(code=1)
            docs.append(str(rec[text_key]))

        if retries > 1:
            results = extract_many_with_retries(
                client, docs, schema, max_workers=max_workers, max_attempts=retries, timeout=timeout
            )
        else:
            results = client.extract_many(docs, schema, max_workers=max_workers, timeout=timeout)

        from tagette.io.writer import ResultWriter

        writer = ResultWriter(output_dir or Path("tagette_output"), fmt=fmt, schema_name=schema.name)
        for i, (rec, res) in enumerate(zip(records, results)):
            writer.write(str(rec.get("id", i)), res)
        path = writer.finalize()

        ok = sum(1 for r in results if r.ok)
        console.print(f"[green]✓[/] {ok}/{len(results)} documents extracted • results: {path}")
    finally:
        EngineBroker.flush(force=True)
        tlog.stop()
        tlog.disable_event_logging()


if __name__ == "__main__":
    app()
