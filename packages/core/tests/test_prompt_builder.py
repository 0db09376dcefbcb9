"""Tests for review prompt construction."""

from codegrade_core.models import CATEGORIES, SEVERITIES
from codegrade_core.prompt import INPUT_CHAR_BUDGETS, build_prompt, truncate_source


class TestTruncateSource:
    def test_short_source_unchanged(self):
        assert truncate_source("x = 1", "openai") == "x = 1"

    def test_prefix_cut_at_family_budget(self):
        source = "a" * 10_000
        assert truncate_source(source, "openai") == "a" * INPUT_CHAR_BUDGETS["openai"]
        assert truncate_source(source, "gemini") == "a" * INPUT_CHAR_BUDGETS["gemini"]

    def test_larger_families_get_more_room(self):
        assert INPUT_CHAR_BUDGETS["anthropic"] > INPUT_CHAR_BUDGETS["local"]

    def test_unknown_family_uses_smallest_budget(self):
        assert len(truncate_source("b" * 10_000, "somebody-else")) == 3500

    def test_deterministic(self):
        source = "\n".join(f"line {n}" for n in range(2000))
        assert truncate_source(source, "openai") == truncate_source(source, "openai")


class TestBuildPrompt:
    def test_contains_filename_and_code(self):
        prompt = build_prompt("def f():\n    return 1", "src/util.py")
        assert "File: src/util.py" in prompt
        assert "def f():" in prompt

    def test_lists_every_enum_value(self):
        prompt = build_prompt("x = 1", "a.py")
        for severity in SEVERITIES:
            assert severity in prompt
        for category in CATEGORIES:
            assert category in prompt
        assert "A+|A|B|C|D|F" in prompt

    def test_asks_for_all_severity_counts(self):
        prompt = build_prompt("x = 1", "a.py")
        for name in ("criticalCount", "highCount", "mediumCount", "lowCount", "infoCount", "totalIssues"):
            assert name in prompt

    def test_context_included_when_given(self):
        prompt = build_prompt("x = 1", "a.py", context="Payment webhook handler")
        assert "Context: Payment webhook handler" in prompt

    def test_no_context_line_without_context(self):
        assert "Context:" not in build_prompt("x = 1", "a.py")

    def test_source_is_truncated_per_family(self):
        source = "z" * 9000
        assert "z" * 3501 not in build_prompt(source, "a.py", family="openai")
        assert "z" * 8000 in build_prompt(source, "a.py", family="gemini")
        assert "z" * 8001 not in build_prompt(source, "a.py", family="gemini")

    def test_same_input_same_prompt(self):
        assert build_prompt("x = 1", "a.py", "ctx", "anthropic") == build_prompt("x = 1", "a.py", "ctx", "anthropic")
