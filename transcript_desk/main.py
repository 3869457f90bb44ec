"""Typer CLI entrypoint for transcript-desk."""

import asyncio
import json
import logging
from pathlib import Path

import typer

from transcript_desk._types import Transcription, TranscriptionChunk
from transcript_desk.config import Config, ConfigError, load_config
from transcript_desk.errors import PreconditionError
from transcript_desk.gateway_memory import InMemoryGateway
from transcript_desk.library import TranscriptLibrary
from transcript_desk.session import RecordingSessionController, SessionState
from transcript_desk.state import AppState

app = typer.Typer(help="Drive and inspect live transcription sessions")

logger = logging.getLogger(__name__)


def _setup_logging(verbose: bool = False) -> None:
    """Setup logging configuration."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def _build_gateway(cfg: Config) -> InMemoryGateway:
    export_directory = cfg.gateway.export_directory
    return InMemoryGateway(
        export_directory=Path(export_directory) if export_directory else None,
        selected_model=cfg.model.name,
    )


def _read_chunks(path: Path) -> list[TranscriptionChunk]:
    """Read a JSON-lines file with one chunk object per line.

    Raises:
        ValueError: If the file cannot be read or a line is not a valid chunk
    """
    chunks = []
    try:
        lines = path.read_text(encoding="utf-8").splitlines()
    except OSError as e:
        raise ValueError(f"Cannot read chunk file {path}: {e}") from e

    for lineno, line in enumerate(lines, start=1):
        if not line.strip():
            continue
        try:
            chunks.append(TranscriptionChunk.from_dict(json.loads(line)))
        except (json.JSONDecodeError, ValueError, AttributeError) as e:
            raise ValueError(f"{path}:{lineno}: invalid chunk: {e}") from e
    return chunks


async def _replay_session(
    cfg: Config,
    chunks: list[TranscriptionChunk],
    *,
    analyze: bool = False,
    export: bool = False,
) -> tuple[Transcription | None, Path | None, AppState]:
    """Run one recording session against the in-memory backend."""
    app_state = AppState()
    gateway = _build_gateway(cfg)
    library = TranscriptLibrary(
        gateway,
        app_state,
        request_timeout=cfg.gateway.request_timeout,
        export_defaults=cfg.export.to_export_config(),
    )
    controller = RecordingSessionController(
        gateway,
        app_state,
        config=cfg.session,
        request_timeout=cfg.gateway.request_timeout,
    )

    transcription = None
    export_path = None
    async with controller:
        if cfg.gateway.api_key:
            await library.set_credential(cfg.gateway.api_key)
        await library.select_model(cfg.model.name)

        await controller.start()
        if controller.state != SessionState.ACTIVE:
            return None, None, app_state

        for chunk in chunks:
            gateway.emit_chunk(chunk)
            await asyncio.sleep(0)

        if app_state.recording is not None:
            logger.debug(
                "Live text before stop (%.1fs): %s",
                app_state.recording.duration,
                app_state.recording.current_text,
            )

        transcription = await controller.stop()
        if transcription is not None and analyze:
            transcription = await library.analyze_structure(transcription.id) or transcription
        if transcription is not None and export:
            export_path = await library.export(transcription.id, open_after=False)

    return transcription, export_path, app_state


def _echo_transcription(transcription: Transcription) -> None:
    typer.echo(f"{transcription.title} [{transcription.id}]")
    typer.echo(f"  Duration: {transcription.duration:.1f}s")
    typer.echo(f"  Status: {transcription.status.kind.value}")
    typer.echo(f"  Text: {transcription.raw_text}")
    for chapter in transcription.chapters:
        typer.echo(f"  [{chapter.start_time:7.1f}s] {chapter.title}")


@app.command()
def replay(
    chunks_file: Path = typer.Argument(
        ..., help="JSON-lines file with one transcription chunk per line"
    ),
    config: Path | None = typer.Option(
        None, "--config", help="Path to configuration file"
    ),
    verbose: bool = typer.Option(
        False, "--verbose", "-v", help="Enable verbose logging"
    ),
    api_key: str | None = typer.Option(
        None, "--api-key", help="Override API key"
    ),
    analyze: bool = typer.Option(
        False, "--analyze", help="Run structure analysis on the result"
    ),
    export: bool = typer.Option(
        False, "--export", help="Request an export with the configured format"
    ),
    json_output: bool = typer.Option(
        False, "--json", help="Output as JSON instead of text"
    ),
) -> None:
    """Replay recorded chunks through a full recording session."""
    _setup_logging(verbose)
    try:
        cfg = load_config(config)
        if api_key is not None:
            logger.debug("Overriding API key from command line")
            cfg.gateway.api_key = api_key
        cfg.validate()
        chunks = _read_chunks(chunks_file)
        logger.info("Replaying %d chunks from %s", len(chunks), chunks_file)

        transcription, export_path, app_state = asyncio.run(
            _replay_session(cfg, chunks, analyze=analyze, export=export)
        )
    except ConfigError as e:
        logger.error("Configuration error: %s", e)
        raise typer.Exit(1)
    except (PreconditionError, ValueError) as e:
        logger.error("%s", e)
        raise typer.Exit(1)
    except Exception as e:
        logger.error("Unexpected error: %s", e, exc_info=True)
        raise typer.Exit(1)

    if transcription is None:
        logger.error("Session failed: %s", app_state.last_error or "unknown error")
        raise typer.Exit(1)

    if json_output:
        payload = transcription.to_dict()
        if export_path is not None:
            payload["export_path"] = str(export_path)
        typer.echo(json.dumps(payload, indent=2))
    else:
        _echo_transcription(transcription)
        if export_path is not None:
            typer.echo(f"  Export: {export_path}")

    if app_state.last_error:
        logger.warning("Completed with error: %s", app_state.last_error)


@app.command()
def list_models(
    verbose: bool = typer.Option(False, "--verbose", "-v"),
    json_output: bool = typer.Option(
        False, "--json", help="Output as JSON instead of table"
    ),
) -> None:
    """List inference models offered by the backend."""
    _setup_logging(verbose)
    library = TranscriptLibrary(InMemoryGateway(), AppState())
    try:
        models = asyncio.run(library.list_models())
    except Exception as e:
        logger.error("Error listing models: %s", e)
        raise typer.Exit(1)

    if not models:
        logger.warning("No models available")
        return

    if json_output:
        typer.echo(json.dumps([m.to_dict() for m in models], indent=2))
    else:
        typer.echo("Available models:")
        for model in models:
            typer.echo(f"  {model.id}")
            typer.echo(f"    Name: {model.name}")
            typer.echo(f"    Context window: {model.context_window}")


@app.command()
def check_config(
    config: Path | None = typer.Option(
        None, "--config", help="Path to configuration file"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v"),
) -> None:
    """Load and validate the configuration file."""
    _setup_logging(verbose)
    try:
        cfg = load_config(config)
        cfg.validate()
    except ConfigError as e:
        logger.error("Configuration error: %s", e)
        raise typer.Exit(1)

    typer.echo("Configuration OK")
    typer.echo(f"  Backend: {cfg.gateway.backend}")
    typer.echo(f"  API key: {'set' if cfg.gateway.api_key else 'not set'}")
    typer.echo(f"  Model: {cfg.model.name}")
    typer.echo(f"  Export format: {cfg.export.format}")


if __name__ == "__main__":
    app()
