"""
Note repository: the write path used by the presentation layer.

Every command is one atomic read-modify-write against the local store, so
the change is visible to observers before the call returns. Nothing here
talks to the network; syncing is the coordinator's job.
"""

from __future__ import annotations

import logging

from .exceptions import RecordNotFoundError, ValidationError
from .live import LiveValue
from .records import NotePayload, Record, SyncState
from .store import RecordStore

logger = logging.getLogger(__name__)


def validate_payload(title: str, content: str) -> NotePayload:
    """Normalize note content, rejecting notes with nothing in them.

    Raises:
        ValidationError: If both title and content are blank
    """
    payload = NotePayload(title=title or "", content=content or "")
    if payload.is_empty:
        raise ValidationError("note", "Note cannot be empty")
    return payload.normalized()


class NoteRepository:
    """Local note commands and queries."""

    def __init__(self, store: RecordStore):
        self.store = store

    # =========================================================================
    # Commands
    # =========================================================================

    async def create_note(self, title: str, content: str = "") -> Record:
        """Create a note locally as PENDING_CREATE.

        Raises:
            ValidationError: If the note is empty
        """
        record = Record.create(validate_payload(title, content))
        await self.store.put(record)
        logger.debug(f"Created note {record.id}")
        return record

    async def edit_note(self, record_id: str, title: str, content: str = "") -> Record:
        """Replace a note's content and mark it pending.

        Editing a note that is waiting to be deleted cancels the delete.

        Raises:
            ValidationError: If the note is empty
            RecordNotFoundError: If no such note exists locally
        """
        payload = validate_payload(title, content)

        def edit(current: Record | None) -> Record | None:
            if current is None:
                return None
            if current.payload == payload and not current.deleted:
                return current
            return current.edited(payload)

        stored = await self.store.apply(record_id, edit)
        if stored is None:
            raise RecordNotFoundError(record_id)
        logger.debug(f"Edited note {record_id}: {stored.sync_state.value}")
        return stored

    async def delete_note(self, record_id: str) -> bool:
        """Delete a note.

        A note the remote has never accepted is removed immediately;
        otherwise it is marked PENDING_DELETE until the remote confirms.

        Returns:
            False if no such note exists locally
        """
        existed = False

        def delete(current: Record | None) -> Record | None:
            nonlocal existed
            if current is None:
                return None
            existed = True
            if not current.was_ever_pushed:
                return None
            if current.sync_state is SyncState.PENDING_DELETE:
                return current
            return current.marked_for_deletion()

        await self.store.apply(record_id, delete)
        if not existed:
            logger.debug(f"Delete ignored, note not found: {record_id}")
        return existed

    # =========================================================================
    # Queries
    # =========================================================================

    async def get_note(self, record_id: str) -> Record | None:
        return await self.store.get_by_id(record_id)

    def observe_notes(self) -> LiveValue[list[Record]]:
        """Notes shown to users: newest first, pending deletes hidden."""
        return self.store.observe_all(excluding_pending_delete=True)

    def observe_note(self, record_id: str) -> LiveValue[Record | None]:
        return self.store.observe_by_id(record_id)

    def observe_pending_count(self) -> LiveValue[int]:
        return self.store.observe_pending_count()
