"""
Remote gateways.

The engine talks to the remote authority only through ``RemoteGateway``.
Two simulated authorities are provided for demos and tests:

    # In-memory, with latency and failure simulation
    from offline_notes_sync.remote import SimulatedRemoteGateway

    # Same, persisted to a JSON file across runs
    from offline_notes_sync.remote import FileRemoteGateway
"""

from .base import RemoteGateway
from .fake import CallStats, SimulatedRemoteGateway
from .file import FileRemoteGateway

__all__ = [
    "RemoteGateway",
    "SimulatedRemoteGateway",
    "FileRemoteGateway",
    "CallStats",
]
