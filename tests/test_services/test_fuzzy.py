"""Tests for the edit matcher."""

from agentloop.services.tools.fuzzy import EXACT, FUZZY, NORMALIZED, count_exact, find_match


class TestFindMatch:
    def test_exact(self):
        m = find_match("alpha beta gamma", "beta")
        assert m.strategy == EXACT
        assert m.is_exact
        assert m.apply("alpha beta gamma", "BETA") == "alpha BETA gamma"

    def test_empty_needle(self):
        assert find_match("abc", "") is None

    def test_line_endings_and_trailing_space(self):
        content = "def f():  \r\n    return 1\r\nprint(f())\r\n"
        m = find_match(content, "def f():\n    return 1")
        assert m.strategy == NORMALIZED
        assert m.apply(content, "def g():\n    return 2") == "def g():\n    return 2\r\nprint(f())\r\n"

    def test_fuzzy_window(self):
        content = "import os\n\ndef compute(a, b):\n    return a + b\n\nprint(compute(1, 2))\n"
        m = find_match(content, "def compute(a, c):\n    return a + c")
        assert m.strategy == FUZZY
        assert 0.85 <= m.similarity < 1.0
        assert content[m.start:m.end] == "def compute(a, b):\n    return a + b"

    def test_below_threshold(self):
        content = "one\ntwo\nthree\n"
        assert find_match(content, "completely different text") is None

    def test_threshold_is_configurable(self):
        content = "value = compute(alpha)\n"
        needle = "value = compute(beta)"
        assert find_match(content, needle, min_similarity=0.99) is None
        assert find_match(content, needle, min_similarity=0.5) is not None

    def test_needle_longer_than_content(self):
        assert find_match("one line", "one\ntwo\nthree") is None


def test_count_exact():
    assert count_exact("a a a", "a") == 3
    assert count_exact("abc", "") == 0
