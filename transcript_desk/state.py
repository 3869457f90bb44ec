"""Application state owned by the composition root."""

import logging
from dataclasses import dataclass, field

from transcript_desk._types import RecordingState
from transcript_desk.store import TranscriptStore

logger = logging.getLogger(__name__)


@dataclass
class AppState:
    """Mutable state shared by the controller, aggregator and library.

    Constructed once and injected; presentation code only reads it.
    ``recording`` is present only while a session is active or stopping.
    """

    transcriptions: TranscriptStore = field(default_factory=TranscriptStore)
    recording: RecordingState | None = None
    last_error: str | None = None
    is_loading: bool = False
    api_key: str | None = None
    selected_model: str | None = None

    def report_error(self, message: str) -> None:
        """Publish a user-facing error, replacing any previous one."""
        logger.error("%s", message)
        self.last_error = message

    def dismiss_error(self) -> None:
        self.last_error = None
