"""CLI entrypoint for the tile world."""

from __future__ import annotations

import json

import typer
from rich import print
from rich.console import Console
from rich.table import Table

from tileworld.config import PRESET_SECTIONS, TerrainConfig, load_config
from tileworld.engine import TileWorldEngine
from tileworld.errors import ConfigurationInvalid, ModuleGenerationFailure
from tileworld.models import Position
from tileworld.telemetry.logging import configure_logging

app = typer.Typer(help="Deterministic tile-world generator and agent simulation")

SEED_OPTION = typer.Option(None, help="World seed; defaults to TILEWORLD_WORLD__DEFAULT_SEED")
SIZE_OPTION = typer.Option(None, help="Half-width of a square world centred on the origin")


def _build_config(seed: int | None, size: int | None) -> TerrainConfig:
    world: dict[str, int] = {}
    if seed is not None:
        world["default_seed"] = seed
    if size is not None:
        if size < 1:
            raise typer.BadParameter("--size must be at least 1")
        world.update({"min_x": -size, "max_x": size, "min_y": -size, "max_y": size})

    try:
        config = load_config()
        if world:
            config = config.overlay("world", world)
    except ConfigurationInvalid as exc:
        print({"error": str(exc)})
        raise typer.Exit(code=1)
    configure_logging(config.log_level)
    return config


def _build_engine(seed: int | None, size: int | None) -> TileWorldEngine:
    engine = TileWorldEngine(_build_config(seed, size))
    try:
        engine.initialize()
    except ModuleGenerationFailure as exc:
        print({"error": str(exc), "module": exc.module})
        raise typer.Exit(code=1)
    return engine


@app.command()
def start(seed: int = SEED_OPTION, size: int = SIZE_OPTION) -> None:
    """Show the effective world configuration."""
    config = _build_config(seed, size)
    print(
        {
            "app_name": config.app_name,
            "seed": config.world.default_seed,
            "bounds": config.world.bounds.as_dict(),
            "elevation_method": config.elevation.method,
            "formations": sum(template.count for template in config.geology.formations),
            "springs": config.hydrology.spring_count,
            "lakes": config.hydrology.lake_count,
            "problems": config.validate_sections(),
        }
    )


@app.command()
def stats(
    seed: int = SEED_OPTION,
    size: int = SIZE_OPTION,
    step: int = typer.Option(None, help="Sampling stride; defaults to performance.statistics_sample_step"),
) -> None:
    """Print terrain composition for a sampled world."""
    if step is not None and step < 1:
        raise typer.BadParameter("--step must be at least 1")
    engine = _build_engine(seed, size)
    statistics = engine.world.terrain_statistics(step)

    table = Table(title=f"Terrain (seed {engine.world.seed}, step {statistics['step']})")
    table.add_column("Terrain")
    table.add_column("Samples", justify="right")
    table.add_column("Percent", justify="right")
    for kind, count in statistics["counts"].items():
        table.add_row(kind, str(count), f"{statistics['percentages'][kind]:.1f}%")
    Console().print(table)


@app.command()
def cell(x: int, y: int, seed: int = SEED_OPTION, size: int = SIZE_OPTION) -> None:
    """Analyze one position."""
    engine = _build_engine(seed, size)
    if not engine.world.is_valid_position(x, y):
        print({"error": f"({x}, {y}) is outside the world", "bounds": engine.world.bounds.as_dict()})
        raise typer.Exit(code=1)
    print(engine.world.analyze_position(x, y).as_dict())


@app.command()
def render(
    seed: int = SEED_OPTION,
    size: int = SIZE_OPTION,
    x: int = typer.Option(0, help="Centre X"),
    y: int = typer.Option(0, help="Centre Y"),
    width: int = typer.Option(41, help="Columns"),
    height: int = typer.Option(21, help="Rows"),
) -> None:
    """Print a window of map symbols with agents overlaid."""
    if width < 1 or height < 1:
        raise typer.BadParameter("--width and --height must be positive")
    engine = _build_engine(seed, size)
    player = engine.player_position()
    rows = engine.render_view(Position(x, y), width, height)
    left, top = x - width // 2, y - height // 2
    console = Console()
    for row_index, row in enumerate(rows):
        symbols = [
            "@" if player == (left + column, top + row_index) else rendered.symbol
            for column, rendered in enumerate(row)
        ]
        console.print("".join(symbols), markup=False, highlight=False)


@app.command()
def simulate(
    seed: int = SEED_OPTION,
    size: int = SIZE_OPTION,
    ms: int = typer.Option(7_500, help="Virtual milliseconds to advance"),
) -> None:
    """Advance the agent tickers and print their states."""
    if ms < 0:
        raise typer.BadParameter("--ms must not be negative")
    engine = _build_engine(seed, size)
    fired = engine.advance(ms)
    status = engine.status()
    print(
        {
            "ticks_fired": fired,
            "tickers": status["tickers"],
            "deer": status["deer"],
            "companion": status["companion"],
            "spawn": engine.deer.last_report.placed if engine.deer and engine.deer.last_report else 0,
        }
    )


@app.command()
def export(seed: int = SEED_OPTION, size: int = SIZE_OPTION) -> None:
    """Write the world state as JSON to stdout."""
    engine = _build_engine(seed, size)
    typer.echo(json.dumps(engine.export_world_state(), default=str))


@app.command()
def presets(kind: str = typer.Option(None, help="elevation, water or geological")) -> None:
    """List the available presets."""
    if kind is not None and kind not in PRESET_SECTIONS:
        raise typer.BadParameter(f"kind must be one of: {', '.join(PRESET_SECTIONS)}")
    names = load_config().preset_names()
    print(names if kind is None else {kind: names[kind]})


if __name__ == "__main__":
    app()
