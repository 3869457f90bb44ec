"""In-process backend gateway.

Keeps transcriptions in memory and lets callers push live chunks. Used by the
``replay`` command and by tests in place of the real desktop backend.
"""

import logging
import uuid
from dataclasses import replace
from datetime import datetime
from pathlib import Path
from typing import Callable

from transcript_desk._types import (
    Chapter,
    ExportConfig,
    ModelDescriptor,
    RecordingState,
    Transcription,
    TranscriptionChunk,
    TranscriptionStatus,
    utcnow,
)
from transcript_desk.errors import GatewayError, NotFoundError
from transcript_desk.gateway import ChunkHandler, Unsubscribe

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gemini-2.5-flash"

AVAILABLE_MODELS = (
    ModelDescriptor(
        id="gemini-2.5-flash",
        name="Gemini 2.5 Flash",
        description="Best price/performance, audio support, thinking capabilities",
        supports_audio=True,
        context_window="1M tokens",
    ),
    ModelDescriptor(
        id="gemini-2.5-pro",
        name="Gemini 2.5 Pro",
        description="Most powerful model for complex reasoning and analysis",
        supports_audio=True,
        context_window="2M tokens",
    ),
    ModelDescriptor(
        id="gemini-2.0-flash",
        name="Gemini 2.0 Flash",
        description="Fast with native tool use and improved capabilities",
        supports_audio=True,
        context_window="1M tokens",
    ),
    ModelDescriptor(
        id="gemini-1.5-pro",
        name="Gemini 1.5 Pro (Legacy)",
        description="Available only for existing projects with prior usage",
        supports_audio=True,
        context_window="2M tokens",
    ),
)


def single_chapter_analyzer(transcription: Transcription) -> list[Chapter]:
    """Default structure analysis: one chapter holding the whole text."""
    if not transcription.raw_text.strip():
        return []
    return [
        Chapter(
            id=f"{transcription.id}-ch1",
            title=transcription.title,
            start_time=0.0,
            content=transcription.raw_text,
            confidence=1.0,
        )
    ]


class InMemoryGateway:
    """Backend gateway holding all state in process memory.

    Chunks pushed with ``emit_chunk`` are delivered to every subscriber and,
    while a session is open, recorded so ``end_session`` can assemble the
    final text.
    """

    def __init__(
        self,
        *,
        export_directory: Path | None = None,
        id_factory: Callable[[], str] | None = None,
        clock: Callable[[], datetime] | None = None,
        analyzer: Callable[[Transcription], list[Chapter]] | None = None,
        selected_model: str = DEFAULT_MODEL,
    ):
        """Initialize gateway.

        Args:
            export_directory: Directory export paths are placed in
            id_factory: Generates new transcription ids (defaults to uuid4)
            clock: Source of creation timestamps
            analyzer: Builds chapters for ``analyze_structure``
            selected_model: Initially selected model id
        """
        self.export_directory = Path(export_directory or Path.cwd() / "exports")
        self._id_factory = id_factory or (lambda: str(uuid.uuid4()))
        self._clock = clock or utcnow
        self._analyzer = analyzer or single_chapter_analyzer
        self._transcriptions: dict[str, Transcription] = {}
        self._handlers: list[ChunkHandler] = []
        self._session: RecordingState | None = None
        self._session_chunks: list[TranscriptionChunk] = []
        self.credential: str | None = None
        self.selected_model = selected_model
        self.opened_files: list[Path] = []
        logger.info("InMemoryGateway initialized (export_directory=%s)", self.export_directory)

    async def begin_session(self) -> str:
        if self._session is not None:
            raise GatewayError("A recording is already in progress")
        if not self.credential:
            raise GatewayError("API key not set")

        transcription_id = self._id_factory()
        self._session = RecordingState(is_recording=True, transcription_id=transcription_id)
        self._session_chunks = []
        logger.info("Recording session %s started", transcription_id)
        return transcription_id

    async def end_session(self) -> Transcription:
        if self._session is None:
            raise GatewayError("No active recording")

        session, self._session = self._session, None
        chunks, self._session_chunks = self._session_chunks, []
        created_at = self._clock()
        transcription = Transcription(
            id=session.transcription_id or self._id_factory(),
            title=f"Recording {created_at:%Y-%m-%d %H:%M}",
            created_at=created_at,
            duration=chunks[-1].end_time if chunks else 0.0,
            raw_text=" ".join(c.text.strip() for c in chunks if c.text.strip()),
            status=TranscriptionStatus.completed(),
        )
        self._transcriptions[transcription.id] = transcription
        logger.info(
            "Recording session %s finalized: %d chunks, %.1fs",
            transcription.id,
            len(chunks),
            transcription.duration,
        )
        return transcription

    async def list_transcriptions(self) -> list[Transcription]:
        return sorted(
            self._transcriptions.values(), key=lambda t: t.created_at, reverse=True
        )

    async def get_transcription(self, transcription_id: str) -> Transcription:
        try:
            return self._transcriptions[transcription_id]
        except KeyError:
            raise NotFoundError(transcription_id) from None

    async def delete_transcription(self, transcription_id: str) -> None:
        if self._transcriptions.pop(transcription_id, None) is None:
            raise NotFoundError(transcription_id)
        logger.info("Deleted transcription %s", transcription_id)

    async def analyze_structure(self, transcription_id: str) -> Transcription:
        current = await self.get_transcription(transcription_id)
        if not self.credential:
            raise GatewayError("API key not set")

        analyzed = Transcription(
            id=current.id,
            title=current.title,
            created_at=current.created_at,
            duration=current.duration,
            raw_text=current.raw_text,
            chapters=self._analyzer(current),
            status=TranscriptionStatus.completed(),
        )
        self._transcriptions[transcription_id] = analyzed
        return analyzed

    async def export(self, transcription_id: str, config: ExportConfig) -> Path:
        await self.get_transcription(transcription_id)
        return self.export_directory / f"{transcription_id}.{config.format.extension}"

    async def open_file(self, path: Path) -> None:
        self.opened_files.append(Path(path))

    async def set_credential(self, value: str) -> None:
        if not value:
            raise GatewayError("API key must not be empty")
        self.credential = value

    async def get_session_state(self) -> RecordingState | None:
        return replace(self._session) if self._session is not None else None

    async def list_models(self) -> list[ModelDescriptor]:
        return list(AVAILABLE_MODELS)

    async def get_selected_model(self) -> str:
        return self.selected_model

    async def set_selected_model(self, model_id: str) -> None:
        if model_id not in {m.id for m in AVAILABLE_MODELS}:
            raise GatewayError(f"Unknown model: {model_id}")
        self.selected_model = model_id

    def subscribe_chunks(self, handler: ChunkHandler) -> Unsubscribe:
        self._handlers.append(handler)

        def unsubscribe() -> None:
            if handler in self._handlers:
                self._handlers.remove(handler)

        return unsubscribe

    def emit_chunk(self, chunk: TranscriptionChunk) -> None:
        """Deliver a live chunk to every subscriber."""
        if self._session is not None:
            self._session_chunks.append(chunk)
            self._session.current_text += " " + chunk.text
            self._session.duration = chunk.end_time
        for handler in list(self._handlers):
            handler(chunk)

    def add_transcription(self, transcription: Transcription) -> None:
        """Seed the backend with an existing transcription."""
        self._transcriptions[transcription.id] = transcription
