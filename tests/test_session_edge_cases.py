"""Tests for session controller edge cases: startup, routing, interleaving."""

import asyncio
from datetime import datetime
from unittest.mock import AsyncMock, Mock

import pytest

from transcript_desk._types import (
    RecordingState,
    Transcription,
    TranscriptionChunk,
    TranscriptionStatus,
)
from transcript_desk.config import SessionConfig
from transcript_desk.errors import PreconditionError
from transcript_desk.gateway_memory import InMemoryGateway
from transcript_desk.session import RecordingSessionController, SessionState
from transcript_desk.state import AppState


def make_transcription(transcription_id: str = "abc") -> Transcription:
    return Transcription(
        id=transcription_id,
        title="Recording",
        created_at=datetime(2024, 1, 1, 12, 0),
        duration=2.0,
        raw_text="final text",
        status=TranscriptionStatus.completed(),
    )


def chunk(text: str, start: float, end: float) -> TranscriptionChunk:
    return TranscriptionChunk(text=text, start_time=start, end_time=end)


async def drain() -> None:
    for _ in range(5):
        await asyncio.sleep(0)


@pytest.fixture
def unsubscribe():
    return Mock()


@pytest.fixture
def mock_gateway(unsubscribe):
    """Create mock BackendGateway."""
    mock = AsyncMock()
    mock.begin_session.return_value = "abc"
    mock.end_session.return_value = make_transcription()
    mock.list_transcriptions.return_value = [make_transcription("old")]
    mock.get_session_state.return_value = None
    mock.subscribe_chunks = Mock(return_value=unsubscribe)
    return mock


@pytest.fixture
def app_state():
    return AppState(api_key="secret")


@pytest.fixture
def controller(mock_gateway, app_state):
    return RecordingSessionController(
        mock_gateway,
        app_state,
        config=SessionConfig(shutdown_timeout=1.0),
        request_timeout=1.0,
    )


def push(mock_gateway, item) -> None:
    """Deliver a chunk through the handler the controller subscribed with."""
    handler = mock_gateway.subscribe_chunks.call_args[0][0]
    handler(item)


class TestStartupAndShutdown:
    """Test lifecycle around the chunk subscription."""

    @pytest.mark.asyncio
    async def test_startup_loads_collection(self, controller, app_state, mock_gateway):
        """Test startup subscribes and loads transcriptions."""
        await controller.startup()
        try:
            mock_gateway.subscribe_chunks.assert_called_once()
            assert [t.id for t in app_state.transcriptions.list()] == ["old"]
            assert controller.state == SessionState.IDLE
        finally:
            await controller.shutdown()

    @pytest.mark.asyncio
    async def test_startup_resumes_backend_recording(self, controller, app_state, mock_gateway):
        """Test a recording already running on the backend is adopted."""
        mock_gateway.get_session_state.return_value = RecordingState(
            is_recording=True, current_text=" so far", duration=3.0, transcription_id="live"
        )

        async with controller:
            assert controller.state == SessionState.ACTIVE
            assert app_state.recording.transcription_id == "live"

            with pytest.raises(PreconditionError):
                await controller.start()

            transcription = await controller.stop()

        assert transcription is not None
        assert app_state.recording is None

    @pytest.mark.asyncio
    async def test_startup_load_failure_reported(self, controller, app_state, mock_gateway):
        """Test a failing initial load is surfaced, not raised."""
        mock_gateway.list_transcriptions.side_effect = RuntimeError("offline")

        async with controller:
            assert app_state.last_error == "Failed to load data: offline"
            assert controller.state == SessionState.IDLE

    @pytest.mark.asyncio
    async def test_shutdown_idempotent(self, controller, unsubscribe):
        """Test shutdown is safe before startup and when repeated."""
        await controller.shutdown()
        await controller.startup()
        await controller.shutdown()
        await controller.shutdown()

        unsubscribe.assert_called_once()

    @pytest.mark.asyncio
    async def test_startup_twice_subscribes_once(self, controller, mock_gateway):
        """Test repeated startup keeps a single subscription."""
        await controller.startup()
        await controller.startup()
        await controller.shutdown()
        mock_gateway.subscribe_chunks.assert_called_once()

    @pytest.mark.asyncio
    async def test_restart_after_shutdown(self, controller, app_state, mock_gateway, unsubscribe):
        """Test a controller entered again after shutdown still routes chunks."""
        async with controller:
            pass

        async with controller:
            await controller.start()
            push(mock_gateway, chunk("hi", 0.0, 1.0))
            await drain()

            assert app_state.recording.current_text == " hi"

        assert mock_gateway.subscribe_chunks.call_count == 2
        assert unsubscribe.call_count == 2


class TestChunkRouting:
    """Test chunk delivery relative to the session lifecycle."""

    @pytest.mark.asyncio
    async def test_chunks_routed_while_active(self, controller, app_state, mock_gateway):
        """Test subscribed chunks reach the recording state in order."""
        async with controller:
            await controller.start()
            push(mock_gateway, chunk("hello", 0.0, 1.0))
            push(mock_gateway, chunk("world", 1.0, 2.5))
            await drain()

            assert app_state.recording.current_text == " hello world"
            assert app_state.recording.duration == 2.5

    @pytest.mark.asyncio
    async def test_chunk_before_start_ignored(self, controller, app_state, mock_gateway):
        """Test chunks while IDLE do not create a recording."""
        async with controller:
            push(mock_gateway, chunk("stray", 0.0, 1.0))
            await drain()
            assert app_state.recording is None
            assert controller.state == SessionState.IDLE
            assert app_state.last_error is None

    @pytest.mark.asyncio
    async def test_chunk_after_stop_is_noop(self, controller, app_state, mock_gateway):
        """Test a chunk arriving after finalize does not resurrect the recording."""
        async with controller:
            await controller.start()
            await controller.stop()
            before = app_state.transcriptions.list()

            push(mock_gateway, chunk("late", 2.0, 3.0))
            await drain()

            assert app_state.recording is None
            assert app_state.transcriptions.list() == before

    @pytest.mark.asyncio
    async def test_chunk_during_stopping_is_folded(self, controller, app_state, mock_gateway):
        """Test chunks interleaving with an in-flight stop are kept if it fails."""
        release = asyncio.Event()

        async def slow_failing_end():
            await release.wait()
            raise RuntimeError("finalize failed")

        mock_gateway.end_session.side_effect = slow_failing_end

        async with controller:
            await controller.start()
            push(mock_gateway, chunk("before", 0.0, 1.0))
            await drain()

            stop_task = asyncio.create_task(controller.stop())
            await drain()
            assert controller.state == SessionState.STOPPING

            push(mock_gateway, chunk("during", 1.0, 2.0))
            await drain()
            release.set()
            assert await stop_task is None

            assert controller.state == SessionState.ACTIVE
            assert app_state.recording.current_text == " before during"

    @pytest.mark.asyncio
    async def test_malformed_chunk_never_surfaces(self, controller, app_state, mock_gateway):
        """Test junk on the feed is absorbed silently."""
        async with controller:
            await controller.start()
            push(mock_gateway, {"text": "not a chunk"})
            push(mock_gateway, chunk("ok", 0.0, 1.0))
            await drain()

            assert app_state.recording.current_text == " ok"
            assert app_state.last_error is None

    @pytest.mark.asyncio
    async def test_monotonic_duration_config(self, mock_gateway, app_state):
        """Test session config enables duration clamping."""
        controller = RecordingSessionController(
            mock_gateway, app_state, config=SessionConfig(monotonic_duration=True)
        )
        async with controller:
            await controller.start()
            push(mock_gateway, chunk("late", 4.0, 5.0))
            push(mock_gateway, chunk("early", 0.0, 1.0))
            await drain()
            assert app_state.recording.duration == 5.0


class TestSessionIsolation:
    """Test queued chunks never cross from one session into the next."""

    @pytest.fixture
    def gateway(self):
        ids = iter(["s1", "s2"])
        return InMemoryGateway(id_factory=lambda: next(ids))

    @pytest.fixture
    def controller(self, gateway, app_state):
        gateway.credential = "secret"
        # No timeout, so gateway calls complete without yielding to the consumer.
        return RecordingSessionController(gateway, app_state, request_timeout=None)

    @pytest.mark.asyncio
    async def test_queued_chunk_stays_in_its_session(self, controller, gateway, app_state):
        """Test a chunk still queued at stop does not reach the next session."""
        async with controller:
            await controller.start()
            gateway.emit_chunk(chunk("old", 0.0, 9.0))
            first = await controller.stop()
            await controller.start()
            await drain()

            assert first.raw_text == "old"
            assert app_state.recording.transcription_id == "s2"
            assert app_state.recording.current_text == ""
            assert app_state.recording.duration == 0.0

    @pytest.mark.asyncio
    async def test_chunk_after_stop_not_carried_into_restart(self, controller, gateway, app_state):
        """Test a chunk arriving between sessions is dropped."""
        async with controller:
            await controller.start()
            await controller.stop()
            gateway.emit_chunk(chunk("late", 9.0, 10.0))
            await controller.start()
            gateway.emit_chunk(chunk("new", 0.0, 1.0))
            await drain()

            assert app_state.recording.current_text == " new"
            assert app_state.recording.duration == 1.0
