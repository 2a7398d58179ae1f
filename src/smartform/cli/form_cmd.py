"""Form CLI commands: validate, graph, resolve, suggest, functions."""

import json
from dataclasses import replace
from pathlib import Path

import click
import yaml

from smartform.config import EngineConfig
from smartform.engine import FormEngine
from smartform.errors import SmartFormError
from smartform.expressions.functions import FunctionCategory
from smartform.expressions.registry import Registry
from smartform.expressions.suggestions import suggest as suggest_expressions
from smartform.graph import DependencyGraph
from smartform.schema.loader import load_form, validate_form_file
from smartform.schema.types import FormSchema


def _config(strict: bool = False) -> EngineConfig:
    try:
        config = EngineConfig.from_env()
    except ValueError as e:
        click.echo(click.style(f"Error: {e}", fg="red"), err=True)
        raise SystemExit(1)
    return replace(config, strict=True) if strict else config


def _load(path: Path, config: EngineConfig) -> FormSchema:
    try:
        return load_form(path, allow_empty_groups=config.allow_empty_groups)
    except SmartFormError as e:
        click.echo(click.style(f"Error: {e}", fg="red"), err=True)
        raise SystemExit(1)


def _dump(data) -> str:
    return json.dumps(data, indent=2, default=str)


@click.command()
@click.argument("form_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--strict", is_flag=True, default=False, help="Treat warnings as errors.")
def validate(form_file: Path, strict: bool):
    """Validate a form definition file."""
    config = _config()

    # ── Schema and structural validation ────────────────────────────────────
    issues = validate_form_file(form_file, allow_empty_groups=config.allow_empty_groups)
    for issue in issues:
        click.echo(click.style(str(issue), fg="red"))
    if issues:
        click.echo(click.style(f"\n{len(issues)} error(s) found", fg="red", bold=True))
        raise SystemExit(1)

    # ── Dependency cycles (warnings) ────────────────────────────────────────
    schema = _load(form_file, config)
    graph = DependencyGraph(schema)
    graph.evaluation_order()
    for cycle in graph.cycles:
        click.echo(click.style(f"[WARNING] {form_file}: {cycle}", fg="yellow"))

    if graph.cycles:
        click.echo(click.style(f"{len(graph.cycles)} warning(s) found.", fg="yellow"))
        if strict:
            raise SystemExit(1)

    click.echo(
        click.style(
            f"Form '{schema.id}' is valid ({len(schema.field_map)} fields).",
            fg="green",
            bold=True,
        )
    )


@click.command()
@click.argument("form_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option(
    "--changed",
    "changed",
    multiple=True,
    help="Show the fields to re-evaluate, in order, after this field changes. Repeatable.",
)
def graph(form_file: Path, changed: tuple[str, ...]):
    """Show the field dependency graph."""
    schema = _load(form_file, _config())
    dependency_graph = DependencyGraph(schema)

    if changed:
        order = dependency_graph.order_for(changed)
        if not order:
            click.echo("No fields affected.")
            return
        click.echo(f"{len(order)} field(s) affected:\n")
        for i, path in enumerate(order, 1):
            click.echo(f"  {i}. {path}")
        return

    click.echo(_dump(dependency_graph.to_dict()))


@click.command()
@click.argument("form_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option(
    "--data",
    "data_file",
    default=None,
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="YAML or JSON file with form values.",
)
@click.option("--strict", is_flag=True, default=False, help="Fail on unresolvable templates.")
def resolve(form_file: Path, data_file: Path | None, strict: bool):
    """Evaluate every field of a form against a set of values."""
    config = _config(strict)
    schema = _load(form_file, config)

    values = {}
    if data_file is not None:
        with data_file.open() as fh:
            try:
                values = yaml.safe_load(fh) or {}
            except yaml.YAMLError as e:
                click.echo(click.style(f"Error: cannot parse {data_file}: {e}", fg="red"), err=True)
                raise SystemExit(1)
        if not isinstance(values, dict):
            click.echo(click.style(f"Error: {data_file} must contain a mapping", fg="red"), err=True)
            raise SystemExit(1)

    engine = FormEngine(schema, config=config)
    try:
        states = engine.evaluate(values)
    except SmartFormError as e:
        click.echo(click.style(f"Error: {e}", fg="red"), err=True)
        raise SystemExit(1)

    click.echo(_dump({path: state.to_dict() for path, state in states.items()}))


@click.command()
@click.argument("form_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.argument("partial")
@click.option("--limit", default=20, show_default=True, help="Maximum number of suggestions.")
def suggest(form_file: Path, partial: str, limit: int):
    """Suggest completions for a partial expression using the form's variables."""
    engine = FormEngine(_load(form_file, _config()))
    results = suggest_expressions(partial, engine.registry, limit)

    if not results:
        click.echo("No suggestions.")
        return

    for suggestion in results:
        label = suggestion.signature if suggestion.is_function else suggestion.expr
        line = f"  {label}  ({suggestion.type})"
        if suggestion.description:
            line += f"  {suggestion.description}"
        click.echo(line)


@click.command()
@click.option("--json", "as_json", is_flag=True, default=False, help="Output JSON documentation.")
def functions(as_json: bool):
    """List the built-in expression functions."""
    registry = Registry()

    if as_json:
        click.echo(_dump(registry.export_documentation()))
        return

    for category in FunctionCategory:
        definitions = registry.list_by_category(category)
        if not definitions:
            continue
        click.echo(click.style(f"\n{category.value}", bold=True))
        for definition in definitions:
            click.echo(f"  {definition.signature}  {definition.description}")
