"""Locked, atomically written JSON documents shared by the stores."""

import fcntl
import json
import os
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator

from .errors import InvalidSchemaVersionError

SCHEMA_VERSION = 1


class JsonDocument:
    """A single JSON file of the form {"schema_version": 1, <key>: [...]}."""

    def __init__(self, config_dir: Path, filename: str, key: str):
        self.config_dir = config_dir
        self.path = config_dir / filename
        self.key = key
        self._lock_path = config_dir / f".{Path(filename).stem}.lock"

    def _ensure_dir(self) -> None:
        """Ensure the data directory exists."""
        self.config_dir.mkdir(parents=True, exist_ok=True)

    def exists(self) -> bool:
        return self.path.exists()

    @contextmanager
    def lock(self) -> Iterator[None]:
        """Acquire exclusive lock for read-modify-write operations."""
        self._ensure_dir()
        with open(self._lock_path, "w") as lock_file:
            fcntl.flock(lock_file.fileno(), fcntl.LOCK_EX)
            try:
                yield
            finally:
                fcntl.flock(lock_file.fileno(), fcntl.LOCK_UN)

    def load(self) -> dict[str, Any]:
        """
        Load the document from disk, or an empty one if it doesn't exist.

        Raises:
            InvalidSchemaVersionError: If schema version is unsupported.
        """
        if not self.exists():
            return {"schema_version": SCHEMA_VERSION, self.key: []}

        with open(self.path, "r", encoding="utf-8") as f:
            data = json.load(f)

        version = data.get("schema_version", 0)
        if version != SCHEMA_VERSION:
            raise InvalidSchemaVersionError(version, SCHEMA_VERSION)

        data.setdefault(self.key, [])
        return data

    def save(self, data: dict[str, Any]) -> None:
        """
        Save the document atomically.

        Uses write-to-temp-then-rename for atomicity.
        """
        self._ensure_dir()

        fd, temp_path = tempfile.mkstemp(
            dir=self.config_dir, prefix=f".{self.path.stem}_", suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2)
                f.write("\n")  # trailing newline
            os.replace(temp_path, self.path)
        except Exception:
            # Clean up temp file on failure (ignore errors if already removed)
            try:
                os.unlink(temp_path)
            except OSError:
                pass
            raise
