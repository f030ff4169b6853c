# noqa: D401
"""CLI entry point for Print Guardian."""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from common.config import Settings
from common.logging import configure_logging, get_logger

from . import __version__
from .alerts import AlertService, format_duration
from .config import load_settings
from .detection import DarknetEngine, DetectionPipeline, ensure_weights, load_labels
from .errors import GuardianError
from .fetcher import ImageFetcher
from .imaging import transform
from .monitor import MonitorPolicy, PrintGuardian
from .printer import MoonrakerClient, PrinterMonitor

app = typer.Typer(
    name="print-guardian",
    help="Print Guardian - watch printer cameras and pause failed prints",
    add_completion=False,
)

console = Console()
LOGGER = get_logger(__name__)


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"Print Guardian version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Optional[bool] = typer.Option(
        None,
        "--version",
        "-v",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit",
    ),
) -> None:
    """Print Guardian - watch printer cameras and pause failed prints."""


def _load(log_level: Optional[str] = None) -> Settings:
    try:
        settings = load_settings()
    except GuardianError as exc:
        console.print(f"[red]Error: {exc}[/red]")
        raise typer.Exit(1)
    configure_logging(log_level or settings.log_level, settings.log_format != "console")
    return settings


def build_pipeline(settings: Settings) -> DetectionPipeline:
    """Provision the model and wrap it in the threshold pipeline."""
    ensure_weights(settings.weights_file, settings.model_weights_url)
    engine = DarknetEngine(settings.model_cfg, settings.weights_file)
    return DetectionPipeline(
        engine,
        load_labels(settings.label_file),
        objectness_threshold=settings.objectness_threshold,
        class_prob_threshold=settings.class_prob_threshold,
    )


def build_guardian(settings: Settings) -> PrintGuardian:
    """Wire every component from settings."""
    fetcher = ImageFetcher(
        settings.image_urls,
        max_retries=settings.max_retries,
        retry_delay=settings.retry_delay_seconds,
    )
    printer = PrinterMonitor(
        MoonrakerClient(settings.moonraker_api_url, timeout=settings.http_timeout_seconds)
    )
    alerts = AlertService.from_webhook(
        settings.discord_webhook, timeout=settings.http_timeout_seconds
    )
    return PrintGuardian(
        printer=printer,
        fetcher=fetcher,
        pipeline=build_pipeline(settings),
        alerts=alerts,
        policy=MonitorPolicy.from_settings(settings),
    )


@app.command()
def run(
    log_level: Optional[str] = typer.Option(
        None,
        "--log-level",
        "-l",
        help="Override LOG_LEVEL",
    ),
) -> None:
    """Monitor the printer until the process is stopped."""
    settings = _load(log_level)
    try:
        guardian = build_guardian(settings)
    except GuardianError as exc:
        LOGGER.error("Startup failed", error=str(exc))
        console.print(f"[red]Error: {exc}[/red]")
        raise typer.Exit(1)

    settings.ready_file.touch()
    LOGGER.info(
        "Print Guardian ready",
        version=__version__,
        sources=settings.image_urls,
        moonraker_api_url=settings.moonraker_api_url,
    )
    try:
        guardian.run()
    except KeyboardInterrupt:
        LOGGER.info("Print Guardian stopped")
    finally:
        settings.ready_file.unlink(missing_ok=True)


@app.command()
def detect(
    image_path: Path = typer.Argument(..., exists=True, dir_okay=False, help="Image to analyse"),
) -> None:
    """Run detection once on a local image and print the results."""
    settings = _load()
    try:
        pipeline = build_pipeline(settings)
        frame = transform(image_path.read_bytes(), settings.flip_image)
        detections = pipeline.run(frame)
    except GuardianError as exc:
        console.print(f"[red]Error: {exc}[/red]")
        raise typer.Exit(1)

    if not detections:
        console.print("[green]No print failures detected[/green]")
        return

    table = Table(title=f"Detections in {image_path.name}")
    table.add_column("Label")
    table.add_column("Confidence", justify="right")
    table.add_column("Center (x, y)", justify="right")
    table.add_column("Size (w x h)", justify="right")
    table.add_column("Alert", justify="center")
    for detection in detections:
        bbox = detection.bbox
        table.add_row(
            detection.label,
            f"{detection.confidence_percent:.2f}%",
            f"{bbox.center_x:.3f}, {bbox.center_y:.3f}",
            f"{bbox.width:.3f} x {bbox.height:.3f}",
            "yes" if detection.exceeds(settings.alert_probability_threshold) else "no",
        )
    console.print(table)


@app.command()
def status() -> None:
    """Show the printer's current print state."""
    settings = _load()
    client = MoonrakerClient(settings.moonraker_api_url, timeout=settings.http_timeout_seconds)
    try:
        observation = PrinterMonitor(client).observe()
    except GuardianError as exc:
        console.print(f"[red]Error: {exc}[/red]")
        raise typer.Exit(1)
    finally:
        client.close()

    console.print(f"State: [bold]{observation.state}[/bold]")
    if observation.state_message:
        console.print(f"Message: {observation.state_message}")
    console.print(f"File: {observation.filename or 'Unknown'}")
    console.print(f"Filament used: {observation.filament_used / 1000.0:.2f}m")
    console.print(f"Print duration: {format_duration(observation.print_duration)}")


if __name__ == "__main__":
    app()
