"""Unit tests for deduplication and batching."""

import pytest

from lexicard.services.batch_planner import BatchPlanner, normalize_lines


def test_normalize_lines():
    assert normalize_lines("  foo \n\n\tbar\n   \n") == ["foo", "bar"]
    assert normalize_lines("") == []


class TestBatchPlanner:
    """Test BatchPlanner.plan."""

    def test_duplicate_within_input(self):
        """Test the first occurrence wins and later copies are skipped."""
        plan = BatchPlanner(batch_size=5).plan(normalize_lines("foo\nbar\nfoo"))

        assert plan.batches == [["foo", "bar"]]
        assert plan.skipped_count == 1

    def test_duplicate_of_existing(self):
        plan = BatchPlanner(batch_size=5).plan(["foo", "bar"], existing={"foo"})

        assert plan.batches == [["bar"]]
        assert plan.skipped_count == 1

    def test_everything_duplicate(self):
        """Test an all-duplicate input yields no batches."""
        plan = BatchPlanner().plan(["a", "b"], existing={"a", "b"})

        assert plan.batches == []
        assert plan.item_count == 0
        assert plan.skipped_count == 2

    def test_chunks_in_order(self):
        items = [f"w{i}" for i in range(12)]
        plan = BatchPlanner(batch_size=5).plan(items)

        assert [len(b) for b in plan.batches] == [5, 5, 2]
        assert plan.items() == items

    def test_coverage(self):
        """Test every input is either planned or counted as skipped."""
        items = ["a", "b", "a", "c", "d", "b", "e"]
        plan = BatchPlanner(batch_size=2).plan(items, existing={"e"})

        assert plan.item_count + plan.skipped_count == len(items)
        assert plan.items() == ["a", "b", "c", "d"]

    def test_replanning_after_merge_is_empty(self):
        """Test planning the same input against its own result skips everything."""
        planner = BatchPlanner(batch_size=3)
        first = planner.plan(["x", "y", "z"])
        second = planner.plan(["x", "y", "z"], existing=first.items())

        assert second.batches == []
        assert second.skipped_count == 3

    def test_custom_key(self):
        """Test pairs dedup on (source, translation)."""
        pairs = [("ספר", "книга"), ("ספר", "книжка"), ("ספר", "книга")]
        plan = BatchPlanner().plan(pairs, key=lambda p: p)

        assert plan.items() == [("ספר", "книга"), ("ספר", "книжка")]
        assert plan.skipped_count == 1

    def test_invalid_batch_size(self):
        with pytest.raises(ValueError):
            BatchPlanner(batch_size=0)
