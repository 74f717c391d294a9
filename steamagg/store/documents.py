"""Filesystem-backed canonical store - one directory per account, one JSON file per category."""

import asyncio
import json
import os
import re
import shutil
import tempfile
from enum import Enum
from pathlib import Path
from typing import Any

from steamagg.exceptions import StoreError
from steamagg.logging import get_logger


STEAM64_PATTERN = re.compile(r"^\d{17}$")


class DocumentKind(str, Enum):
    """Document categories kept per account. Values are the file stems on disk."""
    IDENTITY = "id"
    SNAPSHOT = "scrape"
    BADGES = "badges"
    RECENTLY_PLAYED = "recently-played"
    SUMMARY = "summary"


def is_steam64(value: str) -> bool:
    """Check whether value has the shape of a 17-digit numeric account id."""
    return bool(STEAM64_PATTERN.match(value))


class CanonicalStore:
    """
    Durable per-account JSON documents.

    Reads never fail: a missing, unreadable or corrupt document reads as None.
    Writes go to a temporary file in the partition and are renamed over the
    target, so readers only ever see a complete document.
    """

    def __init__(self, root: str | Path = "./steam"):
        """
        Initialize store.

        Args:
            root: Directory holding one partition per account
        """
        self.root = Path(root)
        self._log = get_logger("store")

    def partition(self, steam64: str) -> Path:
        """Directory holding every document for one account."""
        if not is_steam64(steam64):
            raise StoreError(f"Invalid account id: {steam64!r}")
        return self.root / steam64

    def path_for(self, kind: DocumentKind, steam64: str) -> Path:
        return self.partition(steam64) / f"{kind.value}.json"

    async def read(self, kind: DocumentKind, steam64: str) -> Any | None:
        """
        Load a document.

        Args:
            kind: Document category
            steam64: Account id

        Returns:
            Decoded JSON value, or None if absent or corrupt
        """
        path = self.path_for(kind, steam64)
        return await asyncio.to_thread(self._read_sync, path)

    async def write(self, kind: DocumentKind, steam64: str, value: Any) -> Path:
        """
        Atomically replace a document.

        Args:
            kind: Document category
            steam64: Account id
            value: JSON-serializable value

        Returns:
            Path to the written document

        Raises:
            StoreError: If the value cannot be serialized or the write fails
        """
        path = self.path_for(kind, steam64)
        try:
            payload = json.dumps(value, indent=2, ensure_ascii=False)
        except (TypeError, ValueError) as e:
            raise StoreError(f"Cannot serialize {kind.value} for {steam64}: {e}") from e

        await asyncio.to_thread(self._write_sync, path, payload)
        self._log.debug("document_written", steam64=steam64, kind=kind.value)
        return path

    async def exists(self, kind: DocumentKind, steam64: str) -> bool:
        return await asyncio.to_thread(self.path_for(kind, steam64).is_file)

    async def partitions(self) -> list[str]:
        """List every account id that has a partition on disk."""
        return await asyncio.to_thread(self._partitions_sync)

    async def remove(self, steam64: str) -> None:
        """Delete an account's partition and every document in it."""
        partition = self.partition(steam64)
        await asyncio.to_thread(shutil.rmtree, partition, True)

    def _read_sync(self, path: Path) -> Any | None:
        try:
            return json.loads(path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return None
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
            self._log.warning("document_unreadable", path=str(path), error=str(e))
            return None

    def _write_sync(self, path: Path, payload: str) -> None:
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                dir=path.parent, prefix=f".{path.stem}.", suffix=".tmp"
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    f.write(payload)
                    f.flush()
                    os.fsync(f.fileno())
                os.replace(tmp_name, path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as e:
            raise StoreError(f"Failed to write {path}: {e}") from e

    def _partitions_sync(self) -> list[str]:
        if not self.root.is_dir():
            return []
        return sorted(
            entry.name
            for entry in self.root.iterdir()
            if entry.is_dir() and is_steam64(entry.name)
        )
