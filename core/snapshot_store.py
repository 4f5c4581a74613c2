"""
💾 Snapshot Store - Durable copy of the channel registry

One JSON file per session: <data_path>/<session_name>.json
Writes replace the whole file (temp file + os.replace), so a crash mid-write
leaves the previous snapshot intact.
"""
import json
import logging
import os
import tempfile
from pathlib import Path

from core.errors import PersistenceReadFailed, PersistenceWriteFailed, SnapshotNotFound
from core.registry import ChannelRegistry

LOGGER = logging.getLogger(__name__)


class SnapshotStore:
    """Loads and saves ChannelRegistry snapshots"""

    def __init__(self, data_path: str = "data"):
        """
        Args:
            data_path: Directory holding the snapshot files
        """
        self.data_path = Path(data_path)

    def path_for(self, name: str) -> Path:
        return self.data_path / f"{name}.json"

    def save(self, name: str, registry: ChannelRegistry) -> None:
        """
        Write the registry snapshot for a session.

        Raises:
            PersistenceWriteFailed: directory/file not writable or data not serializable
        """
        target = self.path_for(name)
        tmp_name = None
        try:
            self.data_path.mkdir(parents=True, exist_ok=True)
            payload = json.dumps(registry.to_snapshot(), indent=2)

            fd, tmp_name = tempfile.mkstemp(prefix=f".{name}.", suffix=".tmp", dir=self.data_path)
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(payload)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, target)
            tmp_name = None
        except (OSError, TypeError, ValueError) as e:
            raise PersistenceWriteFailed(f"Could not write snapshot {target}: {e}") from e
        finally:
            if tmp_name is not None:
                try:
                    os.unlink(tmp_name)
                except OSError:
                    pass

        LOGGER.debug(f"💾 Snapshot written: {target} ({len(registry)} channels)")

    def load(self, name: str) -> ChannelRegistry:
        """
        Read the registry snapshot for a session.

        Raises:
            SnapshotNotFound: no snapshot on disk yet
            PersistenceReadFailed: file unreadable or corrupt
        """
        source = self.path_for(name)
        try:
            with open(source, "r", encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError as e:
            raise SnapshotNotFound(f"No snapshot at {source}") from e
        except (OSError, json.JSONDecodeError) as e:
            raise PersistenceReadFailed(f"Could not read snapshot {source}: {e}") from e

        if not isinstance(data, dict):
            raise PersistenceReadFailed(f"Snapshot {source} is not a JSON object")

        try:
            registry = ChannelRegistry.from_snapshot(data)
        except (KeyError, TypeError, ValueError) as e:
            raise PersistenceReadFailed(f"Snapshot {source} is malformed: {e}") from e

        LOGGER.info(f"📂 Snapshot loaded: {source} ({len(registry)} channels)")
        return registry
