"""CLI for multilayout."""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path

import click

from multilayout import __version__
from multilayout.layout.engine import create_layout_engine
from multilayout.layout.errors import LayoutError
from multilayout.layout.selector import STRATEGIES
from multilayout.layout.types import LayoutResult
from multilayout.layout.validator import ValidationOptions, validate_layout
from multilayout.parser.json_graph import dump_json, parse_graph_json, result_to_dict
from multilayout.parser.model import LayoutGraph
from multilayout.render.svg import render_svg
from multilayout.themes import THEMES

ALGORITHM_NAMES = ["force-directed", "enhanced-hierarchical", "constraint-based"]


def _load_graph(input_file: Path) -> LayoutGraph:
    try:
        return parse_graph_json(input_file.read_text())
    except LayoutError as e:
        raise click.ClickException(str(e)) from e


def _flow(config: dict | None) -> tuple[str, bool]:
    """Axis and reversal edges should follow under ``config``."""
    config = config or {}
    direction = config.get("direction")
    if direction in ("TB", "BT"):
        return "y", direction == "BT"
    if direction == "RL":
        return "x", True
    if config.get("flow_direction") == "y":
        return "y", False
    return "x", False


def _load_config(config_file: Path | None) -> dict | None:
    if config_file is None:
        return None
    try:
        data = json.loads(config_file.read_text())
    except json.JSONDecodeError as e:
        raise click.ClickException(f"Invalid config file: {e}") from e
    if not isinstance(data, dict):
        raise click.ClickException("Config file must contain a JSON object")
    return data


def _run_layout(
    graph: LayoutGraph,
    algorithm: str | None,
    strategy: str,
    config: dict | None,
) -> LayoutResult:
    engine = create_layout_engine()
    engine.update_config(selection_strategy=strategy)
    try:
        return asyncio.run(
            engine.process_layout(graph.nodes, graph.edges, algorithm, config)
        )
    except LayoutError as e:
        raise click.ClickException(str(e)) from e


algorithm_option = click.option(
    "--algorithm", type=click.Choice(ALGORITHM_NAMES), default=None,
    help="Layout algorithm (default: selected automatically)",
)
strategy_option = click.option(
    "--strategy", type=click.Choice(list(STRATEGIES)), default="automatic",
    help="Selection strategy when no algorithm is given (default: automatic)",
)
config_option = click.option(
    "--config", "config_file", type=click.Path(exists=True, path_type=Path), default=None,
    help="JSON file with algorithm configuration overrides",
)


@click.group()
@click.version_option(version=__version__)
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging")
def cli(verbose: bool) -> None:
    """multilayout: Lay out dependency graphs with automatic algorithm selection."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )


@cli.command()
@click.argument("input_file", type=click.Path(exists=True, path_type=Path))
@click.option("-o", "--output", type=click.Path(path_type=Path), default=None,
              help="Output JSON file path. Defaults to stdout")
@algorithm_option
@strategy_option
@config_option
def layout(
    input_file: Path,
    output: Path | None,
    algorithm: str | None,
    strategy: str,
    config_file: Path | None,
) -> None:
    """Lay out a JSON graph document and write the positioned result."""
    graph = _load_graph(input_file)
    result = _run_layout(graph, algorithm, strategy, _load_config(config_file))
    text = dump_json(result_to_dict(result))

    if output is None:
        click.echo(text)
        return
    output.write_text(text)
    click.echo(f"Laid out {len(result.nodes)} nodes with "
               f"{result.metadata.algorithm} "
               f"(quality {result.quality.overall_score:.1f}) -> {output}")


@cli.command()
@click.argument("input_file", type=click.Path(exists=True, path_type=Path))
@strategy_option
def analyze(input_file: Path, strategy: str) -> None:
    """Show graph metrics and which algorithm would be selected."""
    graph = _load_graph(input_file)
    engine = create_layout_engine()
    engine.update_config(selection_strategy=strategy)
    metrics = engine.analyze_graph(graph.nodes, graph.edges)

    click.echo(f"Nodes: {metrics.node_count}")
    click.echo(f"Edges: {metrics.edge_count}")
    click.echo(f"Density: {metrics.density:.3f}")
    click.echo(f"Groups: {metrics.group_count} "
               f"(avg {metrics.avg_group_size:.1f}, max {metrics.max_group_size})")
    click.echo(f"Connectivity: avg {metrics.average_connectivity:.2f}, "
               f"max {metrics.max_connectivity}")
    click.echo(f"Cycles: {'yes' if metrics.has_circular_dependencies else 'no'}")
    click.echo(f"Diameter: {metrics.diameter}")
    click.echo(f"Clustering: {metrics.clustering_coefficient:.3f}")

    try:
        selection = engine.select_algorithm(graph.nodes, graph.edges)
    except LayoutError as e:
        raise click.ClickException(str(e)) from e
    click.echo(f"Selected: {selection.algorithm.name} "
               f"(confidence {selection.confidence:.2f})")
    for reason in selection.reasoning:
        click.echo(f"  - {reason}")
    for alt in selection.alternatives:
        click.echo(f"  alternative: {alt.algorithm.name} ({alt.score:.2f}) {alt.reason}")


@cli.command()
@click.argument("input_file", type=click.Path(exists=True, path_type=Path))
@click.option("--as-is", is_flag=True,
              help="Validate the positions in the document instead of laying it out")
@click.option("--lenient", is_flag=True,
              help="Report dependency violations as high rather than critical")
@algorithm_option
@strategy_option
@config_option
def validate(
    input_file: Path,
    as_is: bool,
    lenient: bool,
    algorithm: str | None,
    strategy: str,
    config_file: Path | None,
) -> None:
    """Validate a layout; exits with status 1 when it is invalid."""
    graph = _load_graph(input_file)
    config = _load_config(config_file)
    layers = None
    positioned = graph.nodes
    if not as_is:
        result = _run_layout(graph, algorithm, strategy, config)
        layers = result.metadata.layers
        positioned = result.nodes

    axis, reverse = _flow(config)
    report = validate_layout(
        graph, layers, positioned,
        ValidationOptions(
            strict_dependency_checking=not lenient,
            flow_axis=axis,
            flow_reversed=reverse,
        ),
    )
    for error in report.errors:
        click.echo(f"  [{error.severity.value}] {error.message}", err=True)
    for warning in report.warnings:
        click.echo(f"  warning: {warning.message}", err=True)
    for suggestion in report.suggestions:
        click.echo(f"  suggestion: {suggestion.title} - {suggestion.description}")

    if not report.is_valid:
        click.echo(f"Invalid: score {report.score:.3f}, "
                   f"{len(report.errors)} errors", err=True)
        raise SystemExit(1)
    click.echo(f"Valid: score {report.score:.3f}, "
               f"{len(report.errors)} errors, "
               f"{len(report.warnings)} warnings")


@cli.command()
@click.argument("input_file", type=click.Path(exists=True, path_type=Path))
@click.option("-o", "--output", type=click.Path(path_type=Path), default=None,
              help="Output SVG file path. Defaults to <input>.svg")
@click.option("--theme", type=click.Choice(list(THEMES.keys())), default="light",
              help="Visual theme (default: light)")
@click.option("--title", default=None, help="Title drawn above the layout")
@click.option("--as-is", is_flag=True,
              help="Draw the positions in the document instead of laying it out")
@algorithm_option
@strategy_option
@config_option
def preview(
    input_file: Path,
    output: Path | None,
    theme: str,
    title: str | None,
    as_is: bool,
    algorithm: str | None,
    strategy: str,
    config_file: Path | None,
) -> None:
    """Draw a layout as an SVG preview."""
    graph = _load_graph(input_file)
    nodes = graph.nodes
    if not as_is:
        nodes = _run_layout(graph, algorithm, strategy, _load_config(config_file)).nodes

    svg = render_svg(nodes, graph.edges, THEMES[theme], title=title)

    if output is None:
        output = input_file.with_suffix(".svg")

    output.write_text(svg)
    click.echo(f"Rendered {len(nodes)} nodes, {len(graph.edges)} edges -> {output}")
