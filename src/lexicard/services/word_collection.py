"""Append-only word collection that enrichment tasks merge into."""

import json
import os
from pathlib import Path
from typing import Hashable, Iterable, Optional, Protocol

from lexicard.models.word import EnrichedItem, Word
from lexicard.utils.logging import get_logger


logger = get_logger(__name__)

# The whole collection is one JSON blob stored under this key
COLLECTION_KEY = "words"


class WordSink(Protocol):
    """What the task manager needs from the caller's word collection."""

    def existing_keys(self, structured: bool) -> set[Hashable]:
        """Dedup keys of words already stored."""
        ...

    def merge(self, items: list[EnrichedItem]) -> list[Word]:
        """Append items atomically; return the stored records."""
        ...


def atomic_write(path: Path, content: str) -> None:
    """
    Atomically write content to file with temp-file-rename pattern.

    Args:
        path: Target file path
        content: Content to write

    Raises:
        OSError: On file I/O errors
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    temp_path = path.parent / f".{path.name}.tmp.{os.getpid()}"

    try:
        with open(temp_path, "w", encoding="utf-8") as f:
            f.write(content)
            f.flush()
            os.fsync(f.fileno())

        # Atomic on POSIX even if the target exists
        temp_path.replace(path)

        logger.debug("atomic_write_success", path=str(path), size=len(content))

    except Exception as e:
        if temp_path.exists():
            temp_path.unlink()
        logger.error("atomic_write_failed", path=str(path), error=str(e))
        raise


class WordCollection:
    """
    In-process word collection with optional JSON snapshot persistence.

    Merges only ever append. Each merge is applied in one step with no
    suspension point in between, so concurrently running tasks never
    interleave partial writes.
    """

    def __init__(self, words: Optional[Iterable[Word]] = None, path: Optional[Path] = None):
        """
        Args:
            words: Initial contents
            path: Snapshot file; when set, every merge is saved to it
        """
        self._words: list[Word] = list(words or [])
        self.path = path

    def __len__(self) -> int:
        return len(self._words)

    @property
    def words(self) -> list[Word]:
        """Copy of the stored words, in insertion order."""
        return list(self._words)

    def existing_keys(self, structured: bool = False) -> set[Hashable]:
        """
        Dedup keys for the batch planner.

        Args:
            structured: Return (source, translation) pairs instead of sources
        """
        if structured:
            return {word.pair_key for word in self._words}
        return {word.source for word in self._words}

    def merge(self, items: list[EnrichedItem]) -> list[Word]:
        """
        Append enriched items to the collection.

        Args:
            items: Validated items from one batch

        Returns:
            The newly stored Word records

        Raises:
            OSError: If the snapshot cannot be written; the collection is
                left unchanged
        """
        if not items:
            return []

        added = [Word.from_item(item) for item in items]

        # The in-memory list only grows once the snapshot is on disk
        if self.path is not None:
            self._write(self._words + added, self.path)
        self._words.extend(added)

        logger.info("collection_merged", added=len(added), total=len(self._words))
        return added

    def save(self, path: Optional[Path] = None) -> None:
        """Write the whole collection as a single JSON blob."""
        target = path or self.path
        if target is None:
            raise ValueError("No path to save the collection to")

        self._write(self._words, target)

    def _write(self, words: list[Word], target: Path) -> None:
        payload = {COLLECTION_KEY: [word.model_dump(mode="json") for word in words]}
        atomic_write(target, json.dumps(payload, ensure_ascii=False, indent=2))

    @classmethod
    def load(cls, path: Path) -> "WordCollection":
        """
        Load a collection snapshot; a missing file yields an empty collection.

        Raises:
            ValueError: If the file exists but is not a valid snapshot
        """
        if not path.exists():
            logger.info("collection_not_found", path=str(path))
            return cls(path=path)

        try:
            data = json.loads(path.read_text(encoding="utf-8"))
            words = [Word(**record) for record in data.get(COLLECTION_KEY, [])]
        except (json.JSONDecodeError, AttributeError, TypeError) as e:
            logger.error("collection_load_failed", path=str(path), error=str(e))
            raise ValueError(f"Word collection at {path} is corrupt: {e}") from e

        logger.info("collection_loaded", path=str(path), count=len(words))
        return cls(words, path=path)
