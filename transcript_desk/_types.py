"""Shared types and dataclasses for cross-module use."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any


def _require(data: dict, key: str, kind: type | tuple[type, ...]) -> Any:
    """Fetch a required field from a mapping and check its type."""
    if key not in data:
        raise ValueError(f"missing field '{key}'")
    value = data[key]
    if isinstance(value, bool) and bool not in (kind if isinstance(kind, tuple) else (kind,)):
        raise ValueError(f"field '{key}' has invalid type bool")
    if not isinstance(value, kind):
        raise ValueError(f"field '{key}' has invalid type {type(value).__name__}")
    return value


class StatusKind(Enum):
    """Lifecycle stage of a transcription."""

    RECORDING = "Recording"
    PROCESSING = "Processing"
    COMPLETED = "Completed"
    ERROR = "Error"


@dataclass(frozen=True)
class TranscriptionStatus:
    """Status of a transcription; carries a message only for errors."""

    kind: StatusKind
    message: str | None = None

    @classmethod
    def recording(cls) -> "TranscriptionStatus":
        return cls(StatusKind.RECORDING)

    @classmethod
    def processing(cls) -> "TranscriptionStatus":
        return cls(StatusKind.PROCESSING)

    @classmethod
    def completed(cls) -> "TranscriptionStatus":
        return cls(StatusKind.COMPLETED)

    @classmethod
    def error(cls, message: str) -> "TranscriptionStatus":
        return cls(StatusKind.ERROR, message)

    @property
    def is_error(self) -> bool:
        return self.kind is StatusKind.ERROR

    def to_value(self) -> str | dict:
        if self.kind is StatusKind.ERROR:
            return {"Error": self.message or ""}
        return self.kind.value

    @classmethod
    def from_value(cls, value: str | dict) -> "TranscriptionStatus":
        """Parse the backend form: ``"Completed"`` or ``{"Error": "..."}``."""
        if isinstance(value, dict):
            if set(value) != {"Error"}:
                raise ValueError(f"invalid status: {value!r}")
            return cls.error(str(value["Error"]))
        try:
            kind = StatusKind(value)
        except ValueError as e:
            raise ValueError(f"invalid status: {value!r}") from e
        if kind is StatusKind.ERROR:
            return cls.error("")
        return cls(kind)



@dataclass
class Subsection:
    """Sub-segment of a chapter."""

    id: str
    content: str
    start_time: float
    end_time: float
    confidence: float = 0.0

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "content": self.content,
            "start_time": self.start_time,
            "end_time": self.end_time,
            "confidence": self.confidence,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Subsection":
        return cls(
            id=_require(data, "id", str),
            content=_require(data, "content", str),
            start_time=float(_require(data, "start_time", (int, float))),
            end_time=float(_require(data, "end_time", (int, float))),
            confidence=float(data.get("confidence", 0.0)),
        )


@dataclass
class Chapter:
    """A named segment of a transcription."""

    id: str
    title: str
    start_time: float
    content: str
    confidence: float = 0.0
    subsections: list[Subsection] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "start_time": self.start_time,
            "content": self.content,
            "confidence": self.confidence,
            "subsections": [s.to_dict() for s in self.subsections],
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Chapter":
        return cls(
            id=_require(data, "id", str),
            title=_require(data, "title", str),
            start_time=float(_require(data, "start_time", (int, float))),
            content=_require(data, "content", str),
            confidence=float(data.get("confidence", 0.0)),
            subsections=[Subsection.from_dict(s) for s in data.get("subsections", [])],
        )


@dataclass
class Transcription:
    """A finalized recording artifact."""

    id: str
    title: str
    created_at: datetime
    duration: float
    raw_text: str
    chapters: list[Chapter] = field(default_factory=list)
    status: TranscriptionStatus = field(default_factory=TranscriptionStatus.completed)

    def chapters_in_order(self) -> bool:
        """Check that chapter start offsets never decrease.

        Only reported, never enforced: chapters keep the order the backend
        returned them in.
        """
        return all(
            earlier.start_time <= later.start_time
            for earlier, later in zip(self.chapters, self.chapters[1:])
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "created_at": self.created_at.isoformat(),
            "duration": self.duration,
            "chapters": [c.to_dict() for c in self.chapters],
            "raw_text": self.raw_text,
            "status": self.status.to_value(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Transcription":
        """Build a Transcription from its backend mapping.

        Raises:
            ValueError: If a required field is missing or malformed
        """
        created_raw = _require(data, "created_at", str)
        try:
            created_at = datetime.fromisoformat(created_raw.replace("Z", "+00:00"))
        except ValueError as e:
            raise ValueError(f"invalid created_at: {created_raw!r}") from e

        duration = float(_require(data, "duration", (int, float)))
        if duration < 0:
            raise ValueError(f"duration must be non-negative, got {duration}")

        return cls(
            id=_require(data, "id", str),
            title=_require(data, "title", str),
            created_at=created_at,
            duration=duration,
            raw_text=_require(data, "raw_text", str),
            chapters=[Chapter.from_dict(c) for c in data.get("chapters", [])],
            status=TranscriptionStatus.from_value(data.get("status", "Completed")),
        )


@dataclass
class RecordingState:
    """Live state of the recording in progress."""

    is_recording: bool
    current_text: str = ""
    duration: float = 0.0
    audio_level: float = 0.0
    transcription_id: str | None = None

    def to_dict(self) -> dict:
        return {
            "is_recording": self.is_recording,
            "current_text": self.current_text,
            "duration": self.duration,
            "audio_level": self.audio_level,
            "transcription_id": self.transcription_id,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "RecordingState":
        transcription_id = data.get("transcription_id")
        return cls(
            is_recording=_require(data, "is_recording", bool),
            current_text=str(data.get("current_text", "")),
            duration=float(data.get("duration", 0.0)),
            audio_level=float(data.get("audio_level", 0.0)),
            transcription_id=str(transcription_id) if transcription_id is not None else None,
        )


@dataclass
class TranscriptionChunk:
    """One unit of the live partial-transcription stream."""

    text: str
    start_time: float
    end_time: float
    confidence: float = 0.0
    is_final: bool = False

    def to_dict(self) -> dict:
        return {
            "text": self.text,
            "confidence": self.confidence,
            "start_time": self.start_time,
            "end_time": self.end_time,
            "is_final": self.is_final,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "TranscriptionChunk":
        return cls(
            text=_require(data, "text", str),
            start_time=float(_require(data, "start_time", (int, float))),
            end_time=float(_require(data, "end_time", (int, float))),
            confidence=float(data.get("confidence", 0.0)),
            is_final=bool(data.get("is_final", False)),
        )


class ExportType(Enum):
    """Document formats the backend can export to."""

    PDF = "Pdf"
    DOCX = "Docx"
    TXT = "Txt"
    MARKDOWN = "Markdown"

    @property
    def extension(self) -> str:
        return {"Pdf": "pdf", "Docx": "docx", "Txt": "txt", "Markdown": "md"}[self.value]


@dataclass
class ExportConfig:
    """Export request options."""

    format: ExportType = ExportType.MARKDOWN
    include_timestamps: bool = True
    include_chapters: bool = True
    custom_template: str | None = None

    def to_dict(self) -> dict:
        return {
            "format_type": self.format.value,
            "include_timestamps": self.include_timestamps,
            "include_chapters": self.include_chapters,
            "custom_template": self.custom_template,
        }


@dataclass
class ModelDescriptor:
    """Inference model offered by the backend."""

    id: str
    name: str
    description: str = ""
    supports_audio: bool = True
    context_window: str = ""

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "supports_audio": self.supports_audio,
            "context_window": self.context_window,
        }


def utcnow() -> datetime:
    """Timezone-aware current time."""
    return datetime.now(timezone.utc)
