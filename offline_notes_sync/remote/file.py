"""
File-backed simulated remote authority.

Same behaviour as ``SimulatedRemoteGateway``, but the server state lives in
a JSON file so it survives restarts. Writes are atomic (temp file + rename).
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any

import aiofiles
import aiofiles.os

from ..exceptions import StorageIOError
from ..records import Record
from .fake import RemoteNote, SimulatedRemoteGateway

logger = logging.getLogger(__name__)


class FileRemoteGateway(SimulatedRemoteGateway):
    """Simulated remote whose notes are persisted to ``state_path``.

    Call ``load()`` before use; every successful mutating call saves.
    """

    def __init__(self, state_path: Path, **kwargs: Any):
        super().__init__(**kwargs)
        self.state_path = Path(state_path)

    @classmethod
    async def open(cls, state_path: Path, **kwargs: Any) -> FileRemoteGateway:
        """Create a gateway and load its persisted state."""
        gateway = cls(state_path, **kwargs)
        await gateway.load()
        return gateway

    async def load(self) -> int:
        """Load server state from disk.

        Returns:
            Number of notes loaded
        """
        if not await aiofiles.os.path.exists(self.state_path):
            return 0
        try:
            async with aiofiles.open(self.state_path, encoding="utf-8") as f:
                content = await f.read()
            data = json.loads(content) if content.strip() else {}
        except (OSError, json.JSONDecodeError) as e:
            raise StorageIOError("load_remote_state", str(self.state_path), e) from e

        try:
            records = [Record.from_dict(item) for item in data.get("notes", [])]
        except (KeyError, TypeError, ValueError) as e:
            raise StorageIOError("load_remote_state", str(self.state_path), e) from e
        self._notes = {record.id: RemoteNote.from_record(record) for record in records}
        logger.debug(f"Loaded {len(self._notes)} remote notes from {self.state_path}")
        return len(self._notes)

    async def save(self) -> None:
        """Write server state to disk atomically."""
        data = {"notes": [note.to_record().to_dict() for note in self._notes.values()]}
        await aiofiles.os.makedirs(self.state_path.parent, exist_ok=True)

        fd, temp_path = tempfile.mkstemp(dir=self.state_path.parent, prefix=".tmp_", suffix=".json")
        try:
            os.close(fd)
            async with aiofiles.open(temp_path, "w", encoding="utf-8") as f:
                await f.write(json.dumps(data, indent=2))
                await f.flush()
            await aiofiles.os.rename(temp_path, self.state_path)
        except OSError as e:
            try:
                await aiofiles.os.remove(temp_path)
            except OSError:
                pass
            raise StorageIOError("save_remote_state", str(self.state_path), e) from e

    async def _after_change(self) -> None:
        await self.save()
