"""
Tests for LogRelevanceSelector.
"""

import random

from routers.chat_orchestration.log_selection import LogRelevanceSelector


def _lines(n, error_at=None, width=10):
    lines = [f"{i:0{width}d}" for i in range(n)]
    if error_at is not None:
        lines[error_at] = "ERROR " + lines[error_at]
    return lines


class TestMarking:
    """Head, tail and keyword windows."""

    def setup_method(self):
        self.selector = LogRelevanceSelector(head=15, tail=15, before=5, after=3)

    def test_head_tail_and_error_window(self):
        """40 lines with an ERROR at 20 keeps 0-23 and 25-39."""
        lines = _lines(40, error_at=20)
        selected = self.selector.select(lines, max_chars=100_000)

        expected_indices = list(range(0, 24)) + list(range(25, 40))
        assert selected == [lines[i] for i in expected_indices]
        assert lines[24] not in selected

    def test_short_input_kept_whole(self):
        lines = _lines(10)
        assert self.selector.select(lines, max_chars=100_000) == lines

    def test_window_clipped_at_bounds(self):
        lines = _lines(60, error_at=1)
        keep = self.selector.mark(lines)
        assert keep[0] and keep[4]
        assert not keep[20]

    def test_keywords_are_case_sensitive(self):
        assert self.selector.is_significant("request TIMEOUT")
        assert self.selector.is_significant("Exception in thread")
        assert not self.selector.is_significant("an Error happened")

    def test_rollback_is_significant(self):
        lines = _lines(60)
        lines[30] = "ROLLBACK of ledger entry"
        keep = self.selector.mark(lines)
        assert all(keep[25:34])
        assert not keep[24]
        assert not keep[34]


class TestBudget:
    """Character budget is a hard stop."""

    def setup_method(self):
        self.selector = LogRelevanceSelector(head=15, tail=15, before=5, after=3)

    def test_hard_stop_not_skip(self):
        """A short line after an overflowing one is still dropped."""
        lines = ["a" * 10, "b" * 50, "c"]
        assert self.selector.select(lines, max_chars=20) == ["a" * 10]

    def test_exact_budget_fits(self):
        lines = ["a" * 10, "b" * 10]
        assert self.selector.select(lines, max_chars=20) == lines

    def test_empty_input(self):
        assert self.selector.select([], max_chars=100) == []

    def test_none_and_empty_lines_skipped(self):
        lines = ["start", None, "", "ERROR boom", "end"]
        assert self.selector.select(lines, max_chars=1000) == ["start", "ERROR boom", "end"]

    def test_uses_configured_budget(self):
        from config import runtime_config

        runtime_config.update(log_max_chars=1000)
        lines = ["x" * 600, "y" * 600]
        assert LogRelevanceSelector().select(lines) == ["x" * 600]


class TestSelectionProperties:
    """Output is an ordered, duplicate-free subsequence within budget."""

    def test_random_inputs(self):
        rng = random.Random(7)
        selector = LogRelevanceSelector(head=15, tail=15, before=5, after=3)
        words = ["INFO ok", "ERROR bad", "WARN slow", "debug", "failed call", "noise"]

        for _ in range(50):
            n = rng.randint(0, 200)
            lines = [f"{i} {rng.choice(words)}" for i in range(n)]
            budget = rng.randint(0, 3000)
            selected = selector.select(lines, max_chars=budget)

            indices = [lines.index(line) for line in selected]
            assert indices == sorted(set(indices))
            assert sum(len(line) for line in selected) <= budget
