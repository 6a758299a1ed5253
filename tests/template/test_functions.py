"""Tests for the template helper registry."""

from __future__ import annotations

import re
from datetime import date, datetime

import pytest

from zen_assets import __version__
from zen_assets.template import functions as functions_module
from zen_assets.template.functions import FunctionRegistry, to_int, to_string


@pytest.fixture()
def registry() -> FunctionRegistry:
    return FunctionRegistry("/work/space", clock=lambda: datetime(2025, 3, 14, 9, 26, 53))


@pytest.fixture()
def fn(registry: FunctionRegistry):
    return registry.functions()


class TestRegistry:
    """Test registration."""

    def test_builtins_present(self, registry: FunctionRegistry):
        """Every documented helper is registered."""
        for name in ("taskID", "formatDate", "stageName", "camelCase", "default", "add", "zenVersion"):
            assert name in registry

    def test_register_custom(self, registry: FunctionRegistry):
        """Custom helpers are added by name."""
        registry.register("shout", lambda s: s.upper() + "!")
        assert registry.functions()["shout"]("hi") == "HI!"

    @pytest.mark.parametrize("name,fn", [("", len), ("bad", None), ("bad", "not callable")])
    def test_register_rejects_invalid(self, registry: FunctionRegistry, name, fn):
        """Empty names and non-callables are refused."""
        with pytest.raises(ValueError):
            registry.register(name, fn)

    def test_functions_returns_copy(self, registry: FunctionRegistry):
        """Mutating the returned map does not affect the registry."""
        registry.functions().pop("upper")
        assert "upper" in registry


class TestIds:
    """Test ID generators."""

    def test_task_id_format(self, fn):
        """Task IDs embed the date and four hex digits."""
        assert re.fullmatch(r"ZEN-250314-[0-9A-F]{4}", fn["taskID"]("ZEN"))

    def test_task_id_fallback(self, fn, monkeypatch):
        """Without a random source only the date is used."""
        monkeypatch.setattr(functions_module, "_random_bytes", lambda count: None)
        assert fn["taskID"]("ZEN") == "ZEN-250314"

    def test_random_id_length(self, fn):
        """Random IDs honour the requested length."""
        assert re.fullmatch(r"[0-9A-F]{5}", fn["randomID"](5))
        assert len(fn["randomID"](0)) == 8


class TestTime:
    """Test date helpers."""

    def test_now_today_tomorrow(self, fn):
        """Dates use ISO layouts."""
        assert fn["now"]() == "2025-03-14 09:26:53"
        assert fn["today"]() == "2025-03-14"
        assert fn["tomorrow"]() == "2025-03-15"

    def test_format_date(self, fn):
        """Dates and ISO strings are reformatted; junk passes through."""
        assert fn["formatDate"]("2025-01-02", "%d/%m/%Y") == "02/01/2025"
        assert fn["formatDate"](date(2025, 1, 2), "%b %d") == "Jan 02"
        assert fn["formatDate"]("soon", "%Y") == "soon"

    def test_add_days(self, fn):
        """addDays crosses month boundaries."""
        assert fn["addDays"]("2025-01-30", 3) == "2025-02-02"
        assert fn["addDays"]("garbage", 3) == "garbage"

    def test_working_days(self, fn):
        """Weekends are excluded; both ends are included."""
        assert fn["workingDays"]("2025-03-10", "2025-03-16") == 5
        assert fn["workingDays"]("2025-03-16", "2025-03-10") == 0


class TestWorkflow:
    """Test stage helpers."""

    def test_stage_table(self, fn):
        """There are seven stages in order."""
        stages = fn["zenflowStages"]()
        assert len(stages) == 7
        assert stages[0] == {"number": 1, "id": "01-align", "name": "Align"}

    def test_navigation(self, fn):
        """Stages know their neighbours; the ends are sticky."""
        assert fn["stageNumber"]("04-design") == 4
        assert fn["stageNumber"]("unknown") == 0
        assert fn["stageName"]("05-build") == "Build"
        assert fn["stageName"]("custom") == "custom"
        assert fn["nextStage"]("01-align") == "02-discover"
        assert fn["nextStage"]("07-learn") == "07-learn"
        assert fn["prevStage"]("01-align") == "01-align"
        assert fn["isStageCompleted"]("01-align", ["01-align"]) is True


class TestPaths:
    """Test path helpers."""

    def test_workspace_relative(self, fn):
        """Paths resolve against the workspace root."""
        assert fn["workspacePath"]("docs/../spec.md") == "/work/space/spec.md"
        assert fn["relativePath"]("/work/space/docs/a.md") == "docs/a.md"

    def test_components(self, fn):
        """Path pieces are extracted like their shell equivalents."""
        assert fn["joinPath"]("a", "b", "../c") == "a/c"
        assert fn["fileName"]("docs/spec.md") == "spec.md"
        assert fn["fileExt"]("docs/spec.md") == ".md"
        assert fn["dirName"]("docs/spec.md") == "docs"
        assert fn["dirName"]("spec.md") == "."


class TestStrings:
    """Test string helpers."""

    @pytest.mark.parametrize(
        "name,value,expected",
        [
            ("camelCase", "user profile_page", "userProfilePage"),
            ("pascalCase", "user-profile page", "UserProfilePage"),
            ("snakeCase", "User Profile-Page", "user_profile_page"),
            ("kebabCase", "User Profile_Page", "user-profile-page"),
            ("titleCase", "hello WORLD", "Hello World"),
            ("slugify", "  Hello, World! 2025 ", "hello-world-2025"),
        ],
    )
    def test_case_conversions(self, fn, name, value, expected):
        """Case helpers split on spaces, dashes and underscores."""
        assert fn[name](value) == expected

    def test_indent_skips_blank_lines(self, fn):
        """Blank lines stay blank."""
        assert fn["indent"]("a\n\nb", 2) == "  a\n\n  b"

    def test_wrap(self, fn):
        """Words are packed greedily into lines of the given width."""
        assert fn["wrap"]("the quick brown fox", 10) == "the quick\nbrown fox"

    def test_truncate_and_pad(self, fn):
        """truncate adds an ellipsis; pad fills to length."""
        assert fn["truncate"]("abcdefghij", 6) == "abc..."
        assert fn["truncate"]("abc", 6) == "abc"
        assert fn["pad"]("ab", 5, "-") == "ab---"

    def test_collections(self, fn):
        """join, split and predicates work on strings and lists."""
        assert fn["join"](["a", 1], ", ") == "a, 1"
        assert fn["split"]("a,b", ",") == ["a", "b"]
        assert fn["contains"]("haystack", "st") is True
        assert fn["hasPrefix"]("feature-spec", "feat") is True
        assert fn["replace"]("a-b-c", "-", "+") == "a+b+c"


class TestConditionalsAndMath:
    """Test fallbacks, arithmetic and conversion."""

    def test_default_and_coalesce(self, fn):
        """Empty strings and None fall back."""
        assert fn["default"]("", "x") == "x"
        assert fn["default"]("y", "x") == "y"
        assert fn["default"](0, "x") == 0
        assert fn["coalesce"](None, "", "z") == "z"
        assert fn["ternary"](True, "yes", "no") == "yes"

    def test_arithmetic(self, fn):
        """Ints stay ints; mixed operands become floats."""
        assert fn["add"](2, 3) == 5
        assert isinstance(fn["add"](2, 3), int)
        assert fn["sub"]("5", 1.5) == 3.5
        assert fn["mul"](4, 2) == 8
        assert fn["div"](7, 2) == 3.5

    def test_zero_divisors(self, fn):
        """Division and modulo by zero give 0."""
        assert fn["div"](1, 0) == 0
        assert fn["mod"](7, 0) == 0
        assert fn["mod"](7, 3) == 1
        assert fn["mod"](7.5, 2) == 0

    def test_conversions(self):
        """toString and toInt follow template conventions."""
        assert to_string(None) == "<nil>"
        assert to_string(False) == "false"
        assert to_int("42abc") == 42
        assert to_int("abc") == 0

    def test_metadata(self, fn):
        """Version and workspace are exposed."""
        assert fn["zenVersion"]() == __version__
        assert fn["zenWorkspace"]() == "/work/space"
        assert fn["zenConfig"]()["workspace_root"] == "/work/space"
