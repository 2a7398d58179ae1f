"""SmartForm CLI entry point."""

import logging

import click


@click.group()
@click.option("--verbose", "-v", is_flag=True, default=False, help="Show debug logging.")
def cli(verbose: bool):
    """SmartForm form-definition engine CLI."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )


# Register subcommands
from smartform.cli.form_cmd import functions, graph, resolve, suggest, validate  # noqa: E402

cli.add_command(validate)
cli.add_command(graph)
cli.add_command(resolve)
cli.add_command(suggest)
cli.add_command(functions)
