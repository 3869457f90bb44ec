"""Tests for live chunk aggregation."""

import pytest

from transcript_desk._types import RecordingState, TranscriptionChunk
from transcript_desk.aggregator import LiveAggregator, fold_chunk
from transcript_desk.state import AppState


def chunk(text: str, start: float, end: float, is_final: bool = False) -> TranscriptionChunk:
    return TranscriptionChunk(text=text, start_time=start, end_time=end, confidence=0.9, is_final=is_final)


@pytest.fixture
def recording():
    """Fresh recording state."""
    return RecordingState(is_recording=True, transcription_id="abc")


@pytest.fixture
def app_state(recording):
    """App state with an active recording."""
    return AppState(recording=recording, api_key="key")


class TestFoldChunk:
    """Test the pure fold function."""

    def test_fold_appends_text_and_replaces_duration(self, recording):
        """Test two chunks build the expected text and duration."""
        state = fold_chunk(recording, chunk("hello", 0.0, 1.0))
        state = fold_chunk(state, chunk("world", 1.0, 2.5))

        assert state.current_text == " hello world"
        assert state.duration == 2.5
        assert state.transcription_id == "abc"

    def test_fold_does_not_mutate_input(self, recording):
        """Test the input state is left untouched."""
        fold_chunk(recording, chunk("hello", 0.0, 1.0))
        assert recording.current_text == ""
        assert recording.duration == 0.0

    def test_fold_without_state_is_noop(self):
        """Test a chunk never fabricates a recording state."""
        assert fold_chunk(None, chunk("stray", 0.0, 1.0)) is None

    def test_duration_replacement_can_regress(self, recording):
        """Test literal replacement follows the latest end offset."""
        state = fold_chunk(recording, chunk("late", 2.0, 3.0))
        state = fold_chunk(state, chunk("early", 0.0, 1.0))
        assert state.duration == 1.0
        assert state.current_text == " late early"

    def test_monotonic_duration_clamps(self, recording):
        """Test monotonic mode keeps the largest end offset."""
        state = fold_chunk(recording, chunk("late", 2.0, 3.0), monotonic=True)
        state = fold_chunk(state, chunk("early", 0.0, 1.0), monotonic=True)
        assert state.duration == 3.0

    def test_final_flag_does_not_end_session(self, recording):
        """Test is_final chunks are folded like any other."""
        state = fold_chunk(recording, chunk("done", 0.0, 1.0, is_final=True))
        assert state.is_recording is True
        assert state.current_text == " done"

    @pytest.mark.parametrize(
        "bad_chunk",
        [
            "not a chunk",
            TranscriptionChunk(text=None, start_time=0.0, end_time=1.0),
            TranscriptionChunk(text="x", start_time=0.0, end_time="1.0"),
            TranscriptionChunk(text="x", start_time=0.0, end_time=-1.0),
        ],
    )
    def test_malformed_chunk_is_absorbed(self, recording, bad_chunk):
        """Test malformed chunks leave the state unchanged."""
        assert fold_chunk(recording, bad_chunk) is recording


class TestLiveAggregator:
    """Test aggregator bound to app state."""

    def test_apply_updates_app_state(self, app_state):
        """Test apply stores the folded state."""
        aggregator = LiveAggregator(app_state)
        assert aggregator.apply(chunk("hi", 0.0, 0.8)) is True
        assert app_state.recording.current_text == " hi"
        assert app_state.recording.duration == 0.8
        assert aggregator.chunks_applied == 1

    def test_apply_without_recording(self):
        """Test a chunk after the session ended changes nothing."""
        app_state = AppState()
        aggregator = LiveAggregator(app_state)

        assert aggregator.apply(chunk("late", 0.0, 1.0)) is False
        assert app_state.recording is None
        assert app_state.last_error is None

    def test_apply_malformed_chunk(self, app_state):
        """Test a malformed chunk is not counted and not surfaced."""
        aggregator = LiveAggregator(app_state)
        assert aggregator.apply(object()) is False
        assert aggregator.chunks_applied == 0
        assert app_state.last_error is None

    def test_monotonic_flag_passed_through(self, app_state):
        """Test aggregator honours monotonic_duration."""
        aggregator = LiveAggregator(app_state, monotonic_duration=True)
        aggregator.apply(chunk("a", 0.0, 5.0))
        aggregator.apply(chunk("b", 0.0, 2.0))
        assert app_state.recording.duration == 5.0

    @pytest.mark.asyncio
    async def test_consume_preserves_order(self, app_state):
        """Test consume folds chunks in delivery order."""

        async def feed():
            yield chunk("one", 0.0, 1.0)
            yield chunk("two", 1.0, 2.0)
            yield chunk("three", 2.0, 3.0)

        aggregator = LiveAggregator(app_state)
        await aggregator.consume(feed())

        assert app_state.recording.current_text == " one two three"
        assert app_state.recording.duration == 3.0
        assert aggregator.chunks_applied == 3

    @pytest.mark.asyncio
    async def test_consume_keeps_duplicates(self, app_state):
        """Test duplicates are not removed."""

        async def feed():
            yield chunk("again", 0.0, 1.0)
            yield chunk("again", 0.0, 1.0)

        await LiveAggregator(app_state).consume(feed())
        assert app_state.recording.current_text == " again again"
