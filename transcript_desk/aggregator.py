"""Live aggregation of partial-transcription chunks into the recording state."""

import logging
from dataclasses import replace
from typing import AsyncIterable

from transcript_desk._types import RecordingState, TranscriptionChunk
from transcript_desk.state import AppState

logger = logging.getLogger(__name__)


def _is_valid_chunk(chunk: object) -> bool:
    """Check that a chunk carries usable text and an end offset."""
    if not isinstance(chunk, TranscriptionChunk):
        return False
    if not isinstance(chunk.text, str):
        return False
    end_time = chunk.end_time
    if isinstance(end_time, bool) or not isinstance(end_time, (int, float)):
        return False
    return end_time >= 0


def fold_chunk(
    state: RecordingState | None,
    chunk: TranscriptionChunk,
    *,
    monotonic: bool = False,
) -> RecordingState | None:
    """Fold one chunk into the recording state.

    Text is appended after a single space. Duration is replaced by the
    chunk's end offset, or kept at the maximum seen when ``monotonic`` is set.
    ``is_final`` is ignored here; only an explicit stop ends a session.

    Args:
        state: Current recording state, or None when no session is active
        chunk: Incoming chunk
        monotonic: Never let the duration go backwards

    Returns:
        The next recording state. None if there was no state to fold into;
        the unchanged state if the chunk is malformed.
    """
    if state is None:
        return None

    if not _is_valid_chunk(chunk):
        logger.debug("Ignoring malformed chunk: %r", chunk)
        return state

    duration = float(chunk.end_time)
    if monotonic:
        duration = max(state.duration, duration)

    return replace(
        state,
        current_text=state.current_text + " " + chunk.text,
        duration=duration,
    )


class LiveAggregator:
    """Applies chunks to the shared recording state in arrival order.

    No reordering or deduplication: whatever order the feed delivers is what
    ends up in the live text.
    """

    def __init__(self, app_state: AppState, monotonic_duration: bool = False):
        """Initialize aggregator.

        Args:
            app_state: Shared application state whose ``recording`` is updated
            monotonic_duration: Clamp duration to the largest end offset seen
        """
        self.app_state = app_state
        self.monotonic_duration = monotonic_duration
        self.chunks_applied = 0

    def apply(self, chunk: TranscriptionChunk) -> bool:
        """Fold a chunk into the current recording, if there is one.

        Never raises.

        Returns:
            True if the recording state changed, False for a no-op
        """
        current = self.app_state.recording
        if current is None:
            logger.debug("Chunk received with no active recording, ignoring")
            return False

        try:
            updated = fold_chunk(current, chunk, monotonic=self.monotonic_duration)
        except Exception as e:
            logger.warning("Failed to fold chunk (%s: %s), ignoring", type(e).__name__, e)
            return False

        if updated is current:
            return False

        self.app_state.recording = updated
        self.chunks_applied += 1
        logger.debug(
            "Chunk applied: %d characters, duration=%.2fs",
            len(updated.current_text),
            updated.duration,
        )
        return True

    async def consume(self, feed: AsyncIterable[TranscriptionChunk]) -> None:
        """Drain a chunk feed until it ends."""
        logger.debug("Live aggregator consuming chunk feed")
        async for chunk in feed:
            self.apply(chunk)
        logger.debug("Chunk feed ended after %d applied chunks", self.chunks_applied)
