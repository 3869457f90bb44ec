"""Gateway-backed operations on finalized transcriptions and settings."""

import logging
from pathlib import Path

from transcript_desk._types import ExportConfig, ModelDescriptor, Transcription
from transcript_desk.errors import GatewayError, NotFoundError
from transcript_desk.gateway import BackendGateway, call_gateway
from transcript_desk.state import AppState

logger = logging.getLogger(__name__)


class TranscriptLibrary:
    """Browse, refine and export transcriptions through the backend.

    Every backend failure is reported on the app state; methods return a
    neutral value (None, False, empty list) instead of raising.
    """

    def __init__(
        self,
        gateway: BackendGateway,
        app_state: AppState,
        request_timeout: float | None = 30.0,
        export_defaults: ExportConfig | None = None,
    ):
        self.gateway = gateway
        self.app_state = app_state
        self.request_timeout = request_timeout
        self.export_defaults = export_defaults or ExportConfig()

    @property
    def store(self):
        return self.app_state.transcriptions

    async def refresh(self) -> bool:
        """Reload the whole collection from the backend."""
        try:
            transcriptions = await self._call(
                "list_transcriptions", self.gateway.list_transcriptions()
            )
        except GatewayError as e:
            self.app_state.report_error(f"Failed to load transcriptions: {e}")
            return False

        self.store.replace_all(transcriptions)
        logger.info("Collection refreshed: %d transcriptions", len(transcriptions))
        return True

    async def open(self, transcription_id: str) -> Transcription | None:
        """Fetch a transcription, store it and make it the selection."""
        try:
            transcription = await self._call(
                "get_transcription", self.gateway.get_transcription(transcription_id)
            )
        except GatewayError as e:
            self.app_state.report_error(f"Failed to load transcription: {e}")
            return None

        self.store.upsert(transcription)
        self.store.select(transcription)
        return transcription

    def select(self, transcription: Transcription | None) -> None:
        self.store.select(transcription)

    async def delete(self, transcription_id: str) -> bool:
        """Delete a transcription on the backend and in the store.

        An id the backend no longer knows counts as deleted.

        Returns:
            True if the transcription is gone, False if deletion failed
        """
        try:
            await self._call(
                "delete_transcription", self.gateway.delete_transcription(transcription_id)
            )
        except NotFoundError:
            logger.info("Transcription %s already deleted on backend", transcription_id)
        except GatewayError as e:
            self.app_state.report_error(f"Failed to delete transcription: {e}")
            return False

        self.store.remove(transcription_id)
        return True

    async def analyze_structure(self, transcription_id: str) -> Transcription | None:
        """Request chapter analysis and replace the stored transcription."""
        try:
            analyzed = await self._call(
                "analyze_structure", self.gateway.analyze_structure(transcription_id)
            )
        except GatewayError as e:
            self.app_state.report_error(f"Failed to analyze structure: {e}")
            return None

        # Chapters keep backend order even when start offsets go backwards.
        if not analyzed.chapters_in_order():
            logger.warning(
                "Chapters of transcription %s are not in start-time order", analyzed.id
            )
        self.store.upsert(analyzed)
        logger.info(
            "Structure analysis of %s produced %d chapters", analyzed.id, len(analyzed.chapters)
        )
        return analyzed

    async def export(
        self,
        transcription_id: str,
        config: ExportConfig | None = None,
        open_after: bool = True,
    ) -> Path | None:
        """Export a transcription and optionally open the resulting file.

        Args:
            transcription_id: Transcription to export
            config: Export options, defaults to the configured ones
            open_after: Ask the backend to open the exported file

        Returns:
            Path of the exported file, or None on failure
        """
        config = config or self.export_defaults
        try:
            path = await self._call(
                "export", self.gateway.export(transcription_id, config)
            )
            logger.info("Exported %s as %s to %s", transcription_id, config.format.value, path)
            if open_after:
                await self._call("open_file", self.gateway.open_file(path))
        except GatewayError as e:
            self.app_state.report_error(f"Failed to export: {e}")
            return None
        return Path(path)

    async def set_credential(self, value: str) -> bool:
        """Store the API key on the backend, then locally."""
        try:
            await self._call("set_credential", self.gateway.set_credential(value))
        except GatewayError as e:
            self.app_state.report_error(f"Failed to save API key: {e}")
            return False

        self.app_state.api_key = value
        logger.info("API key updated")
        return True

    async def list_models(self) -> list[ModelDescriptor]:
        try:
            return await self._call("list_models", self.gateway.list_models())
        except GatewayError as e:
            self.app_state.report_error(f"Failed to load models: {e}")
            return []

    async def load_selected_model(self) -> str | None:
        try:
            model_id = await self._call(
                "get_selected_model", self.gateway.get_selected_model()
            )
        except GatewayError as e:
            self.app_state.report_error(f"Failed to load selected model: {e}")
            return None

        self.app_state.selected_model = model_id
        return model_id

    async def select_model(self, model_id: str) -> bool:
        try:
            await self._call(
                "set_selected_model", self.gateway.set_selected_model(model_id)
            )
        except GatewayError as e:
            self.app_state.report_error(f"Failed to select model: {e}")
            return False

        self.app_state.selected_model = model_id
        logger.info("Selected model %s", model_id)
        return True

    async def _call(self, description: str, awaitable):
        return await call_gateway(description, awaitable, self.request_timeout)
