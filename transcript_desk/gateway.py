"""Backend boundary: gateway protocol, request wrapper and chunk subscription."""

import asyncio
import logging
from pathlib import Path
from typing import AsyncIterator, Awaitable, Callable, Protocol, TypeVar

from transcript_desk._types import (
    ExportConfig,
    ModelDescriptor,
    RecordingState,
    Transcription,
    TranscriptionChunk,
)
from transcript_desk.errors import GatewayError

logger = logging.getLogger(__name__)

T = TypeVar("T")

ChunkHandler = Callable[[TranscriptionChunk], None]
Unsubscribe = Callable[[], None]


class BackendGateway(Protocol):
    """Operations offered by the transcription backend.

    Every coroutine may raise GatewayError (NotFoundError for unknown ids).
    The chunk feed carries no session address: every chunk delivered while a
    session is active belongs to it.
    """

    async def begin_session(self) -> str: ...

    async def end_session(self) -> Transcription: ...

    async def list_transcriptions(self) -> list[Transcription]: ...

    async def get_transcription(self, transcription_id: str) -> Transcription: ...

    async def delete_transcription(self, transcription_id: str) -> None: ...

    async def analyze_structure(self, transcription_id: str) -> Transcription: ...

    async def export(self, transcription_id: str, config: ExportConfig) -> Path: ...

    async def open_file(self, path: Path) -> None: ...

    async def set_credential(self, value: str) -> None: ...

    async def get_session_state(self) -> RecordingState | None: ...

    async def list_models(self) -> list[ModelDescriptor]: ...

    async def get_selected_model(self) -> str: ...

    async def set_selected_model(self, model_id: str) -> None: ...

    def subscribe_chunks(self, handler: ChunkHandler) -> Unsubscribe: ...


async def call_gateway(
    description: str,
    awaitable: Awaitable[T],
    timeout: float | None = None,
) -> T:
    """Await one backend request, normalizing its failures to GatewayError.

    Args:
        description: Operation name used in log messages
        awaitable: The pending gateway call
        timeout: Maximum time in seconds, or None to wait indefinitely

    Returns:
        The gateway's result

    Raises:
        GatewayError: On any failure, including timeout. GatewayError
            subclasses raised by the gateway pass through unchanged.
    """
    try:
        if timeout is None:
            return await awaitable
        return await asyncio.wait_for(awaitable, timeout=timeout)
    except GatewayError as e:
        logger.debug("%s failed: %s", description, e)
        raise
    except asyncio.TimeoutError as e:
        logger.warning("%s timed out after %.1f seconds", description, timeout)
        raise GatewayError(f"timed out after {timeout} seconds") from e
    except Exception as e:
        logger.warning("%s failed (%s: %s)", description, type(e).__name__, e)
        raise GatewayError(str(e) or type(e).__name__) from e


_CLOSED = object()


class ChunkSubscription:
    """Queue-backed channel carrying chunks from a gateway to a consumer.

    The gateway's push callback only enqueues; the consumer iterates the
    subscription asynchronously, in delivery order, until it is closed.
    """

    def __init__(self, gateway: BackendGateway, maxsize: int = 0):
        """Initialize subscription.

        Args:
            gateway: Gateway providing ``subscribe_chunks``
            maxsize: Maximum queued chunks, 0 for unbounded
        """
        self.gateway = gateway
        self.maxsize = maxsize
        self._queue: asyncio.Queue = asyncio.Queue()
        self._unsubscribe: Unsubscribe | None = None
        self._closed = False
        self.dropped = 0

    @property
    def is_open(self) -> bool:
        return self._unsubscribe is not None

    def open(self) -> "ChunkSubscription":
        """Register with the gateway. No-op if already open.

        Raises:
            RuntimeError: If the subscription was already closed
        """
        if self._closed:
            raise RuntimeError("Chunk subscription already closed")
        if self._unsubscribe is None:
            self._unsubscribe = self.gateway.subscribe_chunks(self._on_chunk)
            logger.debug("Chunk subscription opened")
        return self

    def close(self) -> None:
        """Unregister and end iteration. Safe to call any number of times."""
        if self._closed:
            return
        self._closed = True

        unsubscribe, self._unsubscribe = self._unsubscribe, None
        if unsubscribe is not None:
            try:
                unsubscribe()
            except Exception as e:
                logger.warning("Error while unsubscribing from chunk feed: %s", e)
        self._queue.put_nowait(_CLOSED)
        logger.debug("Chunk subscription closed")

    async def __aenter__(self) -> "ChunkSubscription":
        return self.open()

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.close()

    async def __aiter__(self) -> AsyncIterator[TranscriptionChunk]:
        while True:
            item = await self._queue.get()
            if item is _CLOSED:
                return
            yield item

    def drain_pending(self) -> list[TranscriptionChunk]:
        """Take every chunk queued so far without waiting.

        The consumer does not see drained chunks. A pending close marker
        stays queued so iteration still ends.
        """
        chunks = []
        closing = False
        while not self._queue.empty():
            item = self._queue.get_nowait()
            if item is _CLOSED:
                closing = True
            else:
                chunks.append(item)
        if closing:
            self._queue.put_nowait(_CLOSED)
        return chunks

    def _on_chunk(self, chunk: TranscriptionChunk) -> None:
        if self._closed:
            return
        if self.maxsize and self._queue.qsize() >= self.maxsize:
            self.dropped += 1
            logger.warning("Chunk queue full (%d), dropping chunk", self.maxsize)
            return
        self._queue.put_nowait(chunk)
