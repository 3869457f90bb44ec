"""Recording session state machine."""

import asyncio
import logging
from enum import Enum

from transcript_desk._types import RecordingState, Transcription
from transcript_desk.aggregator import LiveAggregator
from transcript_desk.config import SessionConfig
from transcript_desk.errors import GatewayError, PreconditionError
from transcript_desk.gateway import BackendGateway, ChunkSubscription, call_gateway
from transcript_desk.state import AppState

logger = logging.getLogger(__name__)


class SessionState(Enum):
    """Recording session state."""

    IDLE = "idle"
    STARTING = "starting"
    ACTIVE = "active"
    STOPPING = "stopping"


class RecordingSessionController:
    """Owns the lifecycle of the recording in progress.

    Drives begin/finalize requests against the gateway, keeps
    ``AppState.recording`` present exactly while ACTIVE or STOPPING, and
    routes the chunk feed to the live aggregator. Gateway failures never
    escape: each one is reported on the app state and resolves to a named
    fallback state.
    """

    def __init__(
        self,
        gateway: BackendGateway,
        app_state: AppState,
        aggregator: LiveAggregator | None = None,
        config: SessionConfig | None = None,
        request_timeout: float | None = 30.0,
    ):
        """Initialize controller.

        Args:
            gateway: Backend gateway
            app_state: Shared application state
            aggregator: Live aggregator; built from config when omitted
            config: SessionConfig for aggregation and shutdown parameters
            request_timeout: Per-request gateway timeout in seconds
        """
        self.gateway = gateway
        self.app_state = app_state
        self.config = config or SessionConfig()
        self.aggregator = aggregator or LiveAggregator(
            app_state, monotonic_duration=self.config.monotonic_duration
        )
        self.request_timeout = request_timeout

        self.state = SessionState.IDLE
        self._subscription: ChunkSubscription | None = None
        self._consumer_task: asyncio.Task | None = None

        logger.info("RecordingSessionController initialized in IDLE state")

    @property
    def is_busy(self) -> bool:
        """True while a start or stop request is in flight."""
        return self.state in (SessionState.STARTING, SessionState.STOPPING)

    async def __aenter__(self) -> "RecordingSessionController":
        await self.startup()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.shutdown()

    async def startup(self) -> None:
        """Subscribe to the chunk feed and load initial state from the backend.

        Picks up a recording the backend reports as already running. Load
        failures are reported, not raised.
        """
        logger.info("Session controller startup")
        if self._subscription is None:
            self._subscription = ChunkSubscription(
                self.gateway, maxsize=self.config.chunk_queue_size
            ).open()
            self._consumer_task = asyncio.create_task(
                self.aggregator.consume(self._subscription)
            )

        try:
            transcriptions = await call_gateway(
                "list_transcriptions",
                self.gateway.list_transcriptions(),
                self.request_timeout,
            )
            self.app_state.transcriptions.replace_all(transcriptions)
            logger.info("Loaded %d transcriptions", len(transcriptions))

            recording = await call_gateway(
                "get_session_state",
                self.gateway.get_session_state(),
                self.request_timeout,
            )
        except GatewayError as e:
            self.app_state.report_error(f"Failed to load data: {e}")
            return

        if recording is not None and recording.is_recording and self.state == SessionState.IDLE:
            logger.info("Resuming recording %s reported by backend", recording.transcription_id)
            self.app_state.recording = recording
            self._transition(SessionState.ACTIVE)

    async def shutdown(self) -> None:
        """Release the chunk subscription and stop the consumer task.

        Safe to call repeatedly or without a prior startup.
        """
        logger.info("Session controller shutdown")
        if self._subscription is not None:
            self._subscription.close()
            self._subscription = None

        task, self._consumer_task = self._consumer_task, None
        if task is not None and not task.done():
            try:
                await asyncio.wait_for(task, timeout=self.config.shutdown_timeout)
            except asyncio.TimeoutError:
                logger.warning(
                    "Chunk consumer did not finish within %.1fs, cancelled",
                    self.config.shutdown_timeout,
                )
            except asyncio.CancelledError:
                pass
        logger.info("Session controller shutdown complete")

    async def start(self) -> RecordingState | None:
        """Begin a recording: IDLE -> STARTING -> ACTIVE.

        Returns:
            The new recording state, or None if the backend refused
            (state falls back to IDLE and the error is reported)

        Raises:
            PreconditionError: If a session is already starting or running,
                or no API key is set. State is left unchanged.
        """
        if self.state != SessionState.IDLE:
            logger.warning("Start requested while in %s state, ignoring", self.state.value)
            raise PreconditionError("A recording session is already in progress")

        if not self.app_state.api_key:
            message = "Please set your API key first"
            self.app_state.report_error(message)
            raise PreconditionError(message)

        self.app_state.dismiss_error()
        self._transition(SessionState.STARTING)

        try:
            transcription_id = await call_gateway(
                "begin_session", self.gateway.begin_session(), self.request_timeout
            )
        except GatewayError as e:
            self.app_state.recording = None
            self._transition(SessionState.IDLE)
            self.app_state.report_error(f"Failed to start recording: {e}")
            return None

        # Chunks queued before the session existed belong to no session.
        self._flush_pending()
        recording = RecordingState(
            is_recording=True,
            current_text="",
            duration=0.0,
            audio_level=0.0,
            transcription_id=transcription_id,
        )
        self.app_state.recording = recording
        self._transition(SessionState.ACTIVE)
        logger.info("Recording %s started", transcription_id)
        return recording

    async def stop(self) -> Transcription | None:
        """Finalize the recording: ACTIVE -> STOPPING -> IDLE.

        On success the finished transcription goes into the collection store
        and the live buffer is dropped. On failure the controller returns to
        ACTIVE with the live text intact.

        Returns:
            The finalized transcription, or None if nothing was stopped
        """
        recording = self.app_state.recording
        if self.state != SessionState.ACTIVE or recording is None or not recording.is_recording:
            logger.warning("Stop requested while in %s state, ignoring", self.state.value)
            return None

        self._transition(SessionState.STOPPING)
        self.app_state.is_loading = True
        try:
            transcription = await call_gateway(
                "end_session", self.gateway.end_session(), self.request_timeout
            )
        except GatewayError as e:
            self._transition(SessionState.ACTIVE)
            self.app_state.report_error(f"Failed to stop recording: {e}")
            return None
        finally:
            self.app_state.is_loading = False

        self._flush_pending()
        self.app_state.transcriptions.upsert(transcription)
        self.app_state.recording = None
        self._transition(SessionState.IDLE)
        logger.info(
            "Recording %s finalized: %d characters, %.1fs",
            transcription.id,
            len(transcription.raw_text),
            transcription.duration,
        )
        return transcription

    def _flush_pending(self) -> None:
        """Apply chunks still queued to whatever recording is current now."""
        if self._subscription is None:
            return
        pending = self._subscription.drain_pending()
        if pending:
            logger.debug("Flushing %d queued chunks", len(pending))
        for chunk in pending:
            self.aggregator.apply(chunk)

    def _transition(self, new_state: SessionState) -> None:
        logger.info("State transition: %s -> %s", self.state.name, new_state.name)
        self.state = new_state
