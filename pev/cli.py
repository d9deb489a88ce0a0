"""CLI entry-point: generate, track and stitch patient-education videos."""

import asyncio
import logging
import shutil
from pathlib import Path

import httpx
import typer
from rich.console import Console
from rich.table import Table

from pev.config import get_settings
from pev.errors import StitchError, VideoGenerationError
from pev.generation import build_orchestrator, get_stitch_engine
from pev.generation.orchestrator import DualPartSession, SessionOutcome
from pev.jobs import GenerationRequest, get_job_state_store
from pev.notify import DesktopNotificationBackend
from pev.prompts import note_to_prompt, validate_prompt_result
from pev.providers import list_profiles

app = typer.Typer(help="Patient education video generator")

CONTINUATION_HINT = "Continue seamlessly from the previous scene, keeping characters, style and lighting."


@app.callback()
def main(verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logging")):
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _http_client(timeout: float) -> httpx.AsyncClient:
    return httpx.AsyncClient(timeout=timeout)

def _print_session(console: Console, session: DualPartSession) -> None:
    table = Table(title=f"Session {session.session_id[:8]}")
    table.add_column("Part")
    table.add_column("Job id")
    table.add_column("Status")
    table.add_column("Result / error")
    for part, job in session.parts():
        table.add_row(part.value, job.job_id or "-", job.status.value, job.result_url or job.error or "")
    console.print(table)
    console.print(f"Phase: {session.phase.value}  Outcome: {session.outcome.value}")
    if session.stitch_result is not None and session.stitch_result.path is not None:
        console.print(
            f"Merged video ({session.stitch_result.strategy}, "
            f"{session.stitch_result.duration_seconds:.1f}s): {session.stitch_result.path}"
        )
    if session.stitch_error:
        console.print(f"[yellow]Merge failed: {session.stitch_error}[/yellow]")


@app.command()
def models():
    """List registered generation models."""
    console = Console()
    table = Table(title="Models")
    table.add_column("Model")
    table.add_column("Name")
    table.add_column("Durations (s)")
    table.add_column("Resolutions")
    table.add_column("Needs OpenAI key")
    for profile in list_profiles():
        table.add_row(
            profile.model_id,
            profile.display_name,
            ", ".join(str(d) for d in profile.supported_durations),
            ", ".join(f"{r.width}x{r.height}" for r in profile.supported_resolutions),
            "yes" if profile.requires_secondary_credential else "no",
        )
    console.print(table)


@app.command()
def prompt(
    note_file: str = typer.Argument(..., help="Path to a provider note (text)"),
    as_json: bool = typer.Option(False, "--json", help="Print the full result as JSON"),
):
    """Turn a provider note into a 12-second patient-education prompt."""
    console = Console()
    path = Path(note_file)
    if not path.is_file():
        console.print(f"[red]Error: note not found: {note_file}[/red]")
        raise typer.Exit(1)
    result = note_to_prompt(path.read_text(encoding="utf-8"))
    valid, errors = validate_prompt_result(result)
    if as_json:
        console.print_json(result.model_dump_json())
    else:
        console.print(result.prompt)
        for beat, text in result.ost.model_dump().items():
            console.print(f"[bold]{beat}[/bold]: {text}")
    for error in errors:
        console.print(f"[yellow]Warning: {error}[/yellow]")
    if not valid:
        raise typer.Exit(1)


async def _generate(
    part_a: GenerationRequest,
    part_b: GenerationRequest | None,
    wait: bool,
    console: Console,
) -> DualPartSession:
    settings = get_settings()
    async with _http_client(60.0) as client:
        orchestrator = build_orchestrator(
            client,
            settings,
            notification_backend=DesktopNotificationBackend(console),
            on_update=lambda s: console.log(f"{s.phase.value} / {s.outcome.value}"),
        )
        session = orchestrator.session
        if session.resumed and session.in_flight:
            console.print("[yellow]Resuming a previous generation instead of submitting.[/yellow]")
        else:
            if session.resumed:
                console.print("Previous generation already finished; starting a new one.")
                orchestrator.reset()
            await orchestrator.start(part_a, part_b)
        if wait:
            return await orchestrator.wait()
        return orchestrator.session


@app.command()
def generate(
    text: str = typer.Argument(None, help="Prompt text (omit when using --note)"),
    note: str = typer.Option(None, "--note", help="Build the prompt from a provider note file"),
    model: str = typer.Option(None, help="Model id (default from PEV_DEFAULT_MODEL)"),
    width: int = typer.Option(1920, help="Requested width"),
    height: int = typer.Option(1080, help="Requested height"),
    seconds: float = typer.Option(12, "--seconds", help="Requested duration per part"),
    parts: int = typer.Option(1, "--parts", min=1, max=2, help="1 for a single clip, 2 for a stitched pair"),
    continuation: str = typer.Option(None, "--continuation", help="Prompt for the second part"),
    wait: bool = typer.Option(True, "--wait/--no-wait", help="Poll until the session finishes"),
):
    """Submit a generation (one part, or two parts stitched together) and follow it."""
    console = Console()
    settings = get_settings()
    if note:
        note_path = Path(note)
        if not note_path.is_file():
            console.print(f"[red]Error: note not found: {note}[/red]")
            raise typer.Exit(1)
        text = note_to_prompt(note_path.read_text(encoding="utf-8")).prompt
    if not text:
        console.print("[red]Error: give a prompt or --note[/red]")
        raise typer.Exit(1)

    model_id = model or settings.pev_default_model
    part_a = GenerationRequest(prompt=text, model=model_id, width=width, height=height, duration_seconds=seconds)
    part_b = None
    if parts == 2:
        part_b = part_a.model_copy(update={"prompt": continuation or f"{text}\n\n{CONTINUATION_HINT}"})

    try:
        session = asyncio.run(_generate(part_a, part_b, wait, console))
    except VideoGenerationError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)
    _print_session(console, session)
    if session.outcome == SessionOutcome.FAILED:
        raise typer.Exit(1)
    console.print("[green]Done.[/green]")


@app.command()
def status(
    refresh: bool = typer.Option(False, "--refresh", help="Poll the provider once"),
):
    """Show the persisted generation, if any."""
    console = Console()

    async def _status() -> DualPartSession:
        async with _http_client(30.0) as client:
            orchestrator = build_orchestrator(client)
            if refresh:
                await orchestrator.tick()
            return orchestrator.session

    session = asyncio.run(_status())
    if not session.parts():
        console.print("No generation in progress.")
        return
    _print_session(console, session)


@app.command()
def stitch(
    url_a: str = typer.Argument(..., help="URL of the first part"),
    url_b: str = typer.Argument(..., help="URL of the second part"),
    out: str = typer.Option("stitched.mp4", "--out", help="Output file"),
):
    """Merge two video parts (crossfade, falling back to simple concat)."""
    console = Console()

    async def _stitch():
        async with _http_client(120.0) as client:
            return await get_stitch_engine(client).stitch(url_a, url_b)

    try:
        result = asyncio.run(_stitch())
    except StitchError as e:
        console.print(f"[red]Error: {e}[/red]")
        for name, reason in e.failures.items():
            console.print(f"  {name}: {reason}")
        raise typer.Exit(1)
    shutil.move(str(result.path), out)
    console.print(f"Wrote {out} ({result.strategy}, {result.duration_seconds:.1f}s)")
    console.print("[green]Done.[/green]")


@app.command()
def reset():
    """Forget the persisted generation."""
    get_job_state_store().clear_all()
    Console().print("[green]Cleared persisted job records.[/green]")


if __name__ == "__main__":
    app()
