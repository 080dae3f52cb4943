"""Deduplication and batching of source items."""

from dataclasses import dataclass, field
from typing import Callable, Generic, Hashable, Iterable, Sequence, TypeVar

from lexicard.utils.logging import get_logger


logger = get_logger(__name__)

T = TypeVar("T")

DEFAULT_BATCH_SIZE = 5


def normalize_lines(raw: str) -> list[str]:
    """
    Split raw input into trimmed, non-empty lines.

    Example:
        >>> normalize_lines("foo\\n  bar \\n\\n")
        ['foo', 'bar']
    """
    return [line.strip() for line in raw.splitlines() if line.strip()]


def _identity(item):
    return item


@dataclass
class BatchPlan(Generic[T]):
    """Result of planning: ordered batches plus the number of duplicates dropped."""

    batches: list[list[T]] = field(default_factory=list)
    skipped_count: int = 0

    @property
    def item_count(self) -> int:
        """Number of unique items spread across all batches."""
        return sum(len(batch) for batch in self.batches)

    def items(self) -> list[T]:
        """All planned items, in order."""
        return [item for batch in self.batches for item in batch]


class BatchPlanner:
    """
    Splits source items into fixed-size batches after removing duplicates.

    Duplicates are detected by exact equality of a canonical key: the
    source text for plain input, the (source, translation) pair for
    structured input. An item is a duplicate if its key is already in the
    existing collection or appeared earlier in the same input.
    """

    def __init__(self, batch_size: int = DEFAULT_BATCH_SIZE):
        if batch_size < 1:
            raise ValueError(f"batch_size must be positive, got {batch_size}")
        self.batch_size = batch_size

    def plan(
        self,
        source_items: Sequence[T],
        existing: Iterable[Hashable] = (),
        key: Callable[[T], Hashable] = _identity
    ) -> BatchPlan[T]:
        """
        Deduplicate and batch source items.

        Args:
            source_items: Items in input order
            existing: Keys already present in the collection
            key: Canonical key function (identity for plain strings)

        Returns:
            BatchPlan whose batches, concatenated, are the deduplicated
            input in original order; empty when everything was a duplicate
        """
        seen = set(existing)
        unique: list[T] = []
        skipped = 0

        for item in source_items:
            item_key = key(item)
            if item_key in seen:
                skipped += 1
                continue
            seen.add(item_key)
            unique.append(item)

        batches = [
            unique[start:start + self.batch_size]
            for start in range(0, len(unique), self.batch_size)
        ]

        logger.debug(
            "batch_plan_created",
            input_count=len(source_items),
            unique_count=len(unique),
            skipped_count=skipped,
            batch_count=len(batches),
            batch_size=self.batch_size,
        )
        return BatchPlan(batches=batches, skipped_count=skipped)
