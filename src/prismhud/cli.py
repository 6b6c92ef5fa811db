"""PRISM HUD CLI - prismhud command line tool."""

from __future__ import annotations

import asyncio
import json
import sys
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from prismhud import __version__
from prismhud.analysis import FocusMode, VoiceOption
from prismhud.capture import CaptureAdapter, ImageFileCaptureBackend
from prismhud.common import get_event_bus, setup_logging
from prismhud.config import Config, load_config
from prismhud.pipeline import PipelineOrchestrator, PipelineState

app = typer.Typer(
    name="prismhud",
    help="PRISM HUD scene analysis pipeline",
    no_args_is_help=True,
)
console = Console()

RATING_STYLES = {"SECURE": "green", "ADVISORY": "yellow", "ATTENTION": "red"}


def get_config(config_path: Optional[Path] = None, mock: bool = False) -> Config:
    """Load configuration and set up logging."""
    cfg = load_config(config_path)
    if mock:
        cfg.mock_mode = True
    setup_logging(
        level=cfg.device.log_level,
        json_output=cfg.device.mode == "production",
        service_name=cfg.device.name,
    )
    return cfg


def render_state(state: PipelineState) -> None:
    """Print the result of the last cycle."""
    if state.error:
        console.print(f"[red]{state.message}[/] [dim]({state.error})[/]")
        return
    if state.result is None:
        console.print(f"[dim]{state.message}[/]")
        return

    result = state.result
    console.print(
        Panel(
            f"[bold]{result.verbal}[/]\n[dim]{result.summary_rationale}[/]",
            title=f"PRISM // {state.focus_mode.value}",
            subtitle=f"ambient {result.ambient_score:.0f} | {result.mood_descriptor}",
        )
    )

    table = Table(title="Regions of Interest")
    table.add_column("Label", style="cyan")
    table.add_column("Rating")
    table.add_column("Category")
    table.add_column("Conf.", justify="right")
    table.add_column("Position", justify="right")
    table.add_column("Recommendation")

    for roi in state.rois:
        style = RATING_STYLES.get(roi.safety_rating.value, "white")
        table.add_row(
            roi.label,
            f"[{style}]{roi.safety_rating.value}[/]",
            roi.category.value,
            f"{roi.confidence:.0f}%",
            f"{roi.x:.0f},{roi.y:.0f}",
            roi.recommendation,
        )

    console.print(table)


def save_thumbnails(state: PipelineState, directory: Path) -> list[Path]:
    """Write ROI thumbnails as JPEG files."""
    directory.mkdir(parents=True, exist_ok=True)
    paths = []
    for index, roi in enumerate(state.rois, start=1):
        if roi.thumbnail is None:
            continue
        slug = "".join(c if c.isalnum() else "_" for c in roi.label.lower()).strip("_")
        path = directory / f"cycle{state.cycle:03d}_{index}_{slug}.jpg"
        path.write_bytes(roi.thumbnail)
        paths.append(path)
    return paths


@app.command()
def scan(
    command: str = typer.Option("", "--command", "-c", help="Command for the analysis; empty sweeps the sector"),
    focus: FocusMode = typer.Option(FocusMode.GENERAL, "--focus", help="Focus mode"),
    voice: VoiceOption = typer.Option(VoiceOption.MALE, "--voice", help="Voice for the spoken report"),
    image: Optional[Path] = typer.Option(None, "--image", help="Analyze a still image instead of the camera"),
    mock: bool = typer.Option(False, "--mock", help="Use mock devices and analysis"),
    save_dir: Optional[Path] = typer.Option(None, "--save-thumbnails", help="Directory for ROI thumbnails"),
    no_audio: bool = typer.Option(False, "--no-audio", help="Do not play the spoken report"),
    config_path: Optional[Path] = typer.Option(None, "--config", help="Config file"),
):
    """Run a single analysis cycle and print the result."""
    cfg = get_config(config_path, mock)
    cfg.analysis.focus_mode = focus.value
    cfg.analysis.voice = voice.value
    cfg.audio.playback_enabled = not no_audio

    async def _scan() -> PipelineState:
        capture = None
        if image is not None:
            capture = CaptureAdapter(cfg, backend=ImageFileCaptureBackend(image))

        async with PipelineOrchestrator(cfg, capture=capture) as orchestrator:
            await orchestrator.scan(command)
            return orchestrator.state

    state = asyncio.run(_scan())
    render_state(state)

    if save_dir is not None and state.rois:
        for path in save_thumbnails(state, save_dir):
            console.print(f"[dim]saved {path}[/]")

    if state.error:
        sys.exit(1)


@app.command()
def run(
    autonomous: Optional[float] = typer.Option(None, "--autonomous", help="Sweep every N seconds"),
    mock: bool = typer.Option(False, "--mock", help="Use mock devices and analysis"),
    config_path: Optional[Path] = typer.Option(None, "--config", help="Config file"),
):
    """Interactive push-to-talk loop."""
    cfg = get_config(config_path, mock)

    async def _run():
        bus = get_event_bus()

        async def on_cycle_finished(event):
            render_state(orchestrator.state)

        bus.subscribe("pipeline.cycle_completed", on_cycle_finished)
        bus.subscribe("pipeline.cycle_failed", on_cycle_finished)

        async with PipelineOrchestrator(cfg, event_bus=bus) as orchestrator:
            if autonomous:
                orchestrator.start_autonomous(autonomous)

            console.print(
                "[bold]PRISM HUD[/] [dim]Enter: scan | text: command | v: voice | f: flip camera | q: quit[/]"
            )
            while True:
                line = (await asyncio.to_thread(console.input, "[cyan]prism>[/] ")).strip()
                if line == "q":
                    break
                if line == "f":
                    if await orchestrator.toggle_facing():
                        console.print(f"[dim]{orchestrator.state.message} ({orchestrator.state.facing.value})[/]")
                elif line == "v":
                    cycle = orchestrator.state.cycle
                    if not await orchestrator.listen():
                        console.print("[yellow]Busy[/]")
                    elif orchestrator.state.cycle == cycle:
                        console.print(f"[dim]{orchestrator.state.message}[/]")
                elif not await orchestrator.scan(line):
                    console.print("[yellow]Busy[/]")

    try:
        asyncio.run(_run())
    except (KeyboardInterrupt, EOFError):
        console.print()


@app.command()
def config(
    json_output: bool = typer.Option(False, "--json", help="Print as JSON"),
    config_path: Optional[Path] = typer.Option(None, "--config", help="Config file"),
):
    """Show configuration."""
    cfg = load_config(config_path)

    if json_output:
        data = cfg.model_dump()
        if data["analysis"]["api_key"]:
            data["analysis"]["api_key"] = "***"
        print(json.dumps(data, indent=2, default=str))
    else:
        console.print("[bold]Configuration[/]")
        console.print(f"  Device: {cfg.device.name}")
        console.print(f"  Mode: {cfg.device.mode}")
        console.print(f"  Mock Mode: {cfg.mock_mode}")
        console.print("\n[bold]Analysis[/]")
        console.print(f"  Provider: {cfg.analysis.provider}")
        console.print(f"  Model: {cfg.analysis.model}")
        console.print(f"  API Key: {'set' if cfg.analysis.api_key else 'missing'}")
        console.print(f"  Focus: {cfg.analysis.focus_mode}")
        console.print(f"  Voice: {cfg.analysis.voice}")
        console.print("\n[bold]Capture[/]")
        console.print(f"  Facing: {cfg.capture.default_facing}")
        console.print(f"  Target Width: {cfg.capture.target_width}")
        console.print(f"  Settle Delay: {cfg.capture.settle_delay_seconds}s")
        console.print("\n[bold]Conversation[/]")
        console.print(f"  History Limit: {cfg.conversation.history_limit} turns")


@app.command()
def version():
    """Show version information."""
    console.print(f"[bold]PRISM HUD[/] v{__version__}")


def main():
    """Main entry point."""
    app()


if __name__ == "__main__":
    main()
