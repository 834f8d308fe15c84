"""
Abstract remote gateway.

The engine depends only on this capability; whether the authority is
reached over HTTP, gRPC or a simulator is the implementation's concern.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from ..records import Record


class RemoteGateway(ABC):
    """Create, update, delete and fetch records on the remote authority.

    Every call may be slow and may fail with a ``RemoteGatewayError``
    (``NetworkFailureError`` in transport, ``NotFoundRemotelyError`` when
    an update or delete targets an unknown id). No call is assumed to be
    idempotent, so callers must not blindly repeat one.
    """

    @abstractmethod
    async def fetch_all(self) -> list[Record]:
        """Fetch every record the remote holds, tagged SYNCED."""

    @abstractmethod
    async def create(self, record: Record) -> Record:
        """Create a record; returns the echo with server timestamp and version."""

    @abstractmethod
    async def update(self, record: Record) -> Record:
        """Update a record; returns the echo with the bumped version."""

    @abstractmethod
    async def delete(self, record_id: str) -> None:
        """Delete a record."""

    async def close(self) -> None:
        """Release transport resources."""
        return None
