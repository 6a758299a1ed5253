"""Tests for template variable validation."""

from __future__ import annotations

import pytest

from zen_assets.assets.models import VariableSpec
from zen_assets.errors import TemplateErrorCode
from zen_assets.template.validator import VariableValidator, matches_type, stringify


@pytest.fixture()
def validator() -> VariableValidator:
    return VariableValidator()


def _spec(**kwargs) -> VariableSpec:
    kwargs.setdefault("name", "N")
    return VariableSpec(**kwargs)


class TestRequired:
    """Test the required-variable pass."""

    @pytest.mark.parametrize("variables", [{}, {"N": None}, {"N": "  "}, {"N": []}, {"N": {}}])
    def test_missing_or_empty(self, validator, variables):
        """Absent, None, blank and empty collections are missing."""
        errors = validator.validate_required(variables, [_spec(required=True)])
        assert len(errors) == 1
        assert errors[0].code == TemplateErrorCode.VARIABLE_REQUIRED
        assert errors[0].message == "required variable 'N' is missing or empty"

    def test_zero_and_false_are_present(self, validator):
        """Falsy scalars still count as provided."""
        specs = [_spec(name="a", required=True), _spec(name="b", required=True)]
        assert validator.validate_required({"a": 0, "b": False}, specs) == []


class TestTypes:
    """Test the type pass."""

    @pytest.mark.parametrize(
        "value,expected,ok",
        [
            ("x", "string", True),
            ("x", "str", True),
            (3, "int", True),
            (True, "int", False),
            (3.5, "float64", True),
            (3, "number", False),
            (True, "boolean", True),
            ([1], "array", True),
            ({"a": 1}, "object", True),
            (None, "any", True),
            (None, "string", False),
        ],
    )
    def test_matches_type(self, value, expected, ok):
        """Aliases map to Python types; bool is not an int."""
        assert matches_type(value, expected) is ok

    def test_type_error_message(self, validator):
        """Mismatches name the expected and actual types."""
        errors = validator.validate_types({"N": 5}, [_spec(type="string")])
        assert errors[0].message == "variable 'N' has invalid type: expected string, got int"
        assert errors[0].code == TemplateErrorCode.VARIABLE_INVALID
        assert errors[0].value == "5"

    def test_absent_variables_skipped(self, validator):
        """Type checks only apply to supplied variables."""
        assert validator.validate_types({}, [_spec(type="int")]) == []


class TestConstraints:
    """Test constraint rules."""

    def test_length_scenario(self, validator):
        """A too-short required string yields exactly one invalid error."""
        spec = _spec(required=True, type="string", validation="length:3-10")
        result = validator.validate({"N": "hi"}, [spec])
        assert result.valid is False
        assert len(result.errors) == 1
        assert result.errors[0].code == TemplateErrorCode.VARIABLE_INVALID
        assert "length 2 is outside range 3-10" in result.errors[0].message

    @pytest.mark.parametrize(
        "value,rule,message",
        [
            ("abc", "regex:^[A-Z]+$", "does not match pattern '^[A-Z]+$'"),
            ("ABC-1x", "regex:[A-Z]+-\\d+", "does not match pattern"),
            (150, "range:1-100", "value 150 is outside range 1-100"),
            ("medium-ish", "enum:low,medium,high", "is not one of allowed options: low, medium, high"),
            (2, "min:5", "value 2 is less than minimum 5"),
            (9.5, "max:9", "value 9.5 is greater than maximum 9"),
            ("abcd", "length:3", "length 4 is outside range 3-3"),
            ([1, 2], "len:3-5", "length 2 is outside range 3-5"),
        ],
    )
    def test_violations(self, validator, value, rule, message):
        """Each rule kind reports its own message."""
        error = validator.check_constraint(value, rule, "N")
        assert error is not None
        assert message in error.message

    @pytest.mark.parametrize(
        "value,rule",
        [
            ("ABC-12", "regex:[A-Z]+-\\d+"),
            (-3, "range:-5-5"),
            ("50", "range:1-100"),
            ("high", "oneof:low, medium, high"),
            (True, "enum:true,false"),
            ("abc", "length:3-10"),
            (5, "min:5"),
        ],
    )
    def test_satisfied(self, validator, value, rule):
        """Values inside the rule pass."""
        assert validator.check_constraint(value, rule, "N") is None

    @pytest.mark.parametrize(
        "rule,message",
        [
            ("nocolon", "invalid constraint format"),
            ("bogus:1", "unsupported constraint type: bogus"),
            ("regex:([", "invalid regex pattern"),
            ("range:1..5", "invalid range format"),
            ("length:a-b", "invalid length minimum"),
            ("min:x", "invalid minimum value"),
        ],
    )
    def test_malformed_rules(self, validator, rule, message):
        """Broken rules are reported as errors, not exceptions."""
        error = validator.check_constraint("value", rule, "N")
        assert message in error.message

    def test_non_numeric_range(self, validator):
        """Range rules need numbers."""
        error = validator.check_constraint("many", "range:1-10", "N")
        assert "cannot validate range for non-numeric value: many" in error.message


class TestDefaults:
    """Test default application."""

    def test_defaults_fill_absent_only(self, validator):
        """Supplied values win over defaults, and input is not mutated."""
        specs = [_spec(name="a", default="x"), _spec(name="b", default="y"), _spec(name="c")]
        variables = {"a": "given"}
        result = validator.apply_defaults(variables, specs)
        assert result == {"a": "given", "b": "y"}
        assert variables == {"a": "given"}

    def test_stringify(self):
        """Values render the way messages show them."""
        assert stringify(None) == "<nil>"
        assert stringify(True) == "true"
        assert stringify(2.0) == "2"
