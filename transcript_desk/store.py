"""Client-side collection of finalized transcriptions and the current selection."""

import logging
from typing import Iterable

from transcript_desk._types import Transcription

logger = logging.getLogger(__name__)


class TranscriptStore:
    """Ordered collection of transcriptions, newest first, plus a selection.

    Holds at most one entity per id. Only the store's own operations mutate
    the collection; readers get copies from ``list()``.
    """

    def __init__(self, transcriptions: Iterable[Transcription] = ()):
        self._items: list[Transcription] = []
        self._selected: Transcription | None = None
        self.replace_all(transcriptions)

    def __len__(self) -> int:
        return len(self._items)

    def __contains__(self, transcription_id: object) -> bool:
        return any(t.id == transcription_id for t in self._items)

    @property
    def selected(self) -> Transcription | None:
        """Currently selected transcription, if any."""
        return self._selected

    def list(self) -> list[Transcription]:
        """Return the collection in store order."""
        return list(self._items)

    def get(self, transcription_id: str) -> Transcription | None:
        for item in self._items:
            if item.id == transcription_id:
                return item
        return None

    def upsert(self, transcription: Transcription) -> None:
        """Insert or replace a transcription.

        An existing entity with the same id is replaced in place, keeping its
        position; a new one is prepended. A selection with the same id is
        moved to the new value.

        Args:
            transcription: Transcription to store
        """
        index = self._index_of(transcription.id)
        if index is None:
            self._items.insert(0, transcription)
            logger.debug("Inserted transcription %s", transcription.id)
        else:
            self._items[index] = transcription
            logger.debug("Replaced transcription %s at position %d", transcription.id, index)

        if self._selected is not None and self._selected.id == transcription.id:
            self._selected = transcription

    def remove(self, transcription_id: str) -> bool:
        """Delete a transcription by id.

        Clears the selection when it points at the removed id. Removing an
        unknown id is a no-op.

        Returns:
            True if an entity was removed, False otherwise
        """
        index = self._index_of(transcription_id)
        if index is None:
            logger.debug("Remove ignored, transcription %s not in store", transcription_id)
            return False

        del self._items[index]
        if self._selected is not None and self._selected.id == transcription_id:
            self._selected = None
        logger.debug("Removed transcription %s", transcription_id)
        return True

    def select(self, transcription: Transcription | None) -> None:
        """Set or clear the selection. Membership is not required."""
        self._selected = transcription

    def replace_all(self, transcriptions: Iterable[Transcription]) -> None:
        """Replace the whole collection, e.g. after loading from the backend.

        Duplicate ids collapse to their first occurrence. A selection whose
        id is still present is refreshed to the new value.
        """
        items: list[Transcription] = []
        seen: set[str] = set()
        for transcription in transcriptions:
            if transcription.id in seen:
                logger.warning("Duplicate transcription id %s dropped", transcription.id)
                continue
            seen.add(transcription.id)
            items.append(transcription)
        self._items = items

        if self._selected is not None:
            current = self.get(self._selected.id)
            if current is not None:
                self._selected = current

    def clear(self) -> None:
        self._items = []
        self._selected = None

    def _index_of(self, transcription_id: str) -> int | None:
        for index, item in enumerate(self._items):
            if item.id == transcription_id:
                return index
        return None
