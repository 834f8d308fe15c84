"""
Settings for the offline notes sync engine.

Settings can be given directly, read from environment variables, or read
from the ``sync`` section of a YAML file:

```yaml
sync:
  db_path: ~/.offline-notes/notes.db
  max_attempts: 3
  backoff_base: 30
  auto_sync_interval: 900
  probe_host: dns.google
  remote_state_path: ~/.offline-notes/server.json
```

Environment Variables:
    NOTES_SYNC_DB_PATH: SQLite database path (default: :memory:)
    NOTES_SYNC_MAX_ATTEMPTS: Attempts per scheduled pass (default: 3)
    NOTES_SYNC_BACKOFF_BASE: First retry delay in seconds (default: 30)
    NOTES_SYNC_BACKOFF_MULTIPLIER: Backoff growth factor (default: 2)
    NOTES_SYNC_AUTO_SYNC_INTERVAL: Seconds between periodic passes (default: off)
    NOTES_SYNC_PROBE_HOST: Host resolved to detect connectivity (default: off)
    NOTES_SYNC_REMOTE_FAILURE_RATE: Simulated remote failure rate (default: 0)
    NOTES_SYNC_REMOTE_STATE_PATH: File persisting the simulated remote
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any

import yaml

from .sync.scheduler import BackoffPolicy

logger = logging.getLogger(__name__)

ENV_PREFIX = "NOTES_SYNC_"


@dataclass
class SyncSettings:
    """Configuration for a notes sync engine."""

    # Local store
    db_path: str = ":memory:"

    # Scheduled pass retries
    max_attempts: int = 3
    backoff_base: float = 30.0  # seconds
    backoff_multiplier: float = 2.0
    backoff_max: float = 3600.0

    # Triggers
    auto_sync_interval: float | None = None  # seconds, None disables
    start_online: bool = True
    probe_host: str | None = None  # None: connectivity is driven externally
    probe_interval: float = 30.0

    # Simulated remote
    remote_failure_rate: float = 0.0
    remote_min_delay: float = 0.0
    remote_max_delay: float = 0.0
    remote_state_path: str | None = None

    def backoff_policy(self) -> BackoffPolicy:
        return BackoffPolicy(
            max_attempts=self.max_attempts,
            base_delay=self.backoff_base,
            multiplier=self.backoff_multiplier,
            max_delay=self.backoff_max,
        )

    @property
    def resolved_db_path(self) -> str:
        if self.db_path == ":memory:":
            return self.db_path
        return str(Path(self.db_path).expanduser())

    @property
    def resolved_remote_state_path(self) -> Path | None:
        if not self.remote_state_path:
            return None
        return Path(self.remote_state_path).expanduser()

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SyncSettings:
        """Create settings from a mapping, ignoring unknown keys."""
        known = {f.name: f for f in fields(cls)}
        values: dict[str, Any] = {}
        for key, value in data.items():
            if key not in known:
                logger.warning(f"Ignoring unknown sync setting: {key}")
                continue
            values[key] = value
        return cls(**values)

    @classmethod
    def from_env(cls) -> SyncSettings:
        """Create settings from ``NOTES_SYNC_*`` environment variables."""
        defaults = cls()
        values: dict[str, Any] = {}
        for f in fields(cls):
            raw = os.environ.get(ENV_PREFIX + f.name.upper())
            if raw is None:
                continue
            values[f.name] = _coerce(raw, getattr(defaults, f.name))
        return cls(**values)

    @classmethod
    def from_file(cls, path: Path) -> SyncSettings:
        """Create settings from the ``sync`` section of a YAML file.

        A missing file or section yields the defaults.
        """
        path = Path(path).expanduser()
        if not path.exists():
            return cls()
        try:
            config = yaml.safe_load(path.read_text()) or {}
        except yaml.YAMLError as e:
            logger.warning(f"Could not parse {path}: {e}")
            return cls()
        return cls.from_dict(config.get("sync") or {})

    def to_file(self, path: Path) -> None:
        """Write the settings to the ``sync`` section of a YAML file."""
        path = Path(path).expanduser()
        config: dict[str, Any] = {}
        if path.exists():
            config = yaml.safe_load(path.read_text()) or {}
        config["sync"] = {f.name: getattr(self, f.name) for f in fields(self)}
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(yaml.safe_dump(config, default_flow_style=False))


def _coerce(raw: str, default: Any) -> Any:
    """Convert an environment string to the type of the field's default."""
    if isinstance(default, bool):
        return raw.strip().lower() in ("1", "true", "yes", "on")
    if isinstance(default, int):
        return int(raw)
    if isinstance(default, float):
        return float(raw)
    if default is None:
        # Optional fields: numbers stay numbers, empty means unset
        if not raw.strip():
            return None
        try:
            return float(raw)
        except ValueError:
            return raw
    return raw
