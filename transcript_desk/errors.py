"""Error taxonomy shared by the session controller, library and gateways."""

__all__ = [
    "DeskError",
    "PreconditionError",
    "GatewayError",
    "NotFoundError",
]


class DeskError(Exception):
    """Base class for transcript-desk errors."""

    pass


class PreconditionError(DeskError):
    """Request rejected locally before reaching the backend.

    Raised for a missing credential or a session that is already in progress.
    """

    pass


class GatewayError(DeskError):
    """A backend operation failed."""

    pass


class NotFoundError(GatewayError):
    """The backend has no transcription with the requested id."""

    def __init__(self, transcription_id: str):
        super().__init__(f"Transcription not found: {transcription_id}")
        self.transcription_id = transcription_id
