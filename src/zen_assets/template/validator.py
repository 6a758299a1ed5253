"""Check caller-supplied template variables against their declared specs.

Three independent passes (required, types, constraints) each return a list
of ``ValidationError``; ``validate`` concatenates them. Constraint rules are
written ``<kind>:<rule>``::

    regex:^[A-Z]+-\\d+$     full-string match on the stringified value
    range:1-100             numeric closed interval
    length:5 / length:3-10  characters for strings, elements for collections
    enum:low,medium,high    equality on the stringified value
    min:0 / max:10          numeric bounds
"""

from __future__ import annotations

import logging
import re
from typing import Any, Iterable, Mapping

from pydantic import BaseModel, Field

from zen_assets.assets.models import VariableSpec
from zen_assets.errors import TemplateErrorCode

logger = logging.getLogger(__name__)

_RANGE = re.compile(r"^\s*(-?\d+(?:\.\d+)?)\s*-\s*(-?\d+(?:\.\d+)?)\s*$")

_TYPE_ALIASES = {
    "string": "string",
    "str": "string",
    "int": "int",
    "integer": "int",
    "float": "float",
    "float64": "float",
    "number": "float",
    "bool": "bool",
    "boolean": "bool",
    "slice": "list",
    "array": "list",
    "list": "list",
    "map": "map",
    "object": "map",
    "any": "any",
    "interface{}": "any",
    "interface": "any",
}


class ValidationError(BaseModel):
    """One problem with one variable."""

    variable: str
    message: str
    code: str = TemplateErrorCode.VARIABLE_INVALID
    value: str = ""


class ValidationResult(BaseModel):
    valid: bool = True
    errors: list[ValidationError] = Field(default_factory=list)


def stringify(value: Any) -> str:
    """Render a value the way constraint messages and enum checks see it."""
    if value is None:
        return "<nil>"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float):
        return f"{value:g}"
    return str(value)


def is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, tuple, set, dict)):
        return len(value) == 0
    return False


def type_name(value: Any) -> str:
    return "nil" if value is None else type(value).__name__


def matches_type(value: Any, expected: str) -> bool:
    kind = _TYPE_ALIASES.get(expected.lower())
    if kind == "any":
        return True
    if value is None:
        return False
    if kind == "string":
        return isinstance(value, str)
    if kind == "int":
        return isinstance(value, int) and not isinstance(value, bool)
    if kind == "float":
        return isinstance(value, float)
    if kind == "bool":
        return isinstance(value, bool)
    if kind == "list":
        return isinstance(value, (list, tuple))
    if kind == "map":
        return isinstance(value, Mapping)
    return type_name(value) == expected


def _as_number(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value.strip())
        except ValueError:
            return None
    return None


class VariableValidator:
    """Stateless variable checker."""

    def validate_required(self, variables: Mapping[str, Any], specs: Iterable[VariableSpec]) -> list[ValidationError]:
        errors = [
            ValidationError(
                variable=spec.name,
                message=f"required variable '{spec.name}' is missing or empty",
                code=TemplateErrorCode.VARIABLE_REQUIRED,
            )
            for spec in specs
            if spec.required and is_empty(variables.get(spec.name))
        ]
        logger.debug("Required variable validation found %d errors", len(errors))
        return errors

    def validate_types(self, variables: Mapping[str, Any], specs: Iterable[VariableSpec]) -> list[ValidationError]:
        errors = []
        for spec in specs:
            if spec.name not in variables:
                continue
            value = variables[spec.name]
            if not matches_type(value, spec.type):
                errors.append(
                    ValidationError(
                        variable=spec.name,
                        message=(
                            f"variable '{spec.name}' has invalid type: "
                            f"expected {spec.type}, got {type_name(value)}"
                        ),
                        value=stringify(value),
                    )
                )
        logger.debug("Type validation found %d errors", len(errors))
        return errors

    def validate_constraints(
        self, variables: Mapping[str, Any], specs: Iterable[VariableSpec]
    ) -> list[ValidationError]:
        errors = []
        for spec in specs:
            if spec.name not in variables or not spec.validation:
                continue
            error = self.check_constraint(variables[spec.name], spec.validation, spec.name)
            if error is not None:
                errors.append(error)
        logger.debug("Constraint validation found %d errors", len(errors))
        return errors

    def validate(self, variables: Mapping[str, Any], specs: Iterable[VariableSpec]) -> ValidationResult:
        specs = list(specs)
        errors = (
            self.validate_required(variables, specs)
            + self.validate_types(variables, specs)
            + self.validate_constraints(variables, specs)
        )
        return ValidationResult(valid=not errors, errors=errors)

    def apply_defaults(self, variables: Mapping[str, Any], specs: Iterable[VariableSpec]) -> dict[str, Any]:
        """Return a copy of ``variables`` with declared defaults for absent keys."""
        result = dict(variables)
        applied = 0
        for spec in specs:
            if spec.name not in result and spec.default is not None:
                result[spec.name] = spec.default
                applied += 1
        logger.debug("Applied %d variable defaults", applied)
        return result

    # ── Constraints ───────────────────────────────────────────────

    def check_constraint(self, value: Any, constraint: str, name: str) -> ValidationError | None:
        kind, sep, rule = constraint.partition(":")
        if not sep:
            return ValidationError(variable=name, message=f"invalid constraint format: {constraint}")
        kind = kind.strip().lower()
        rule = rule.strip()

        if kind in ("regex", "regexp"):
            return self._check_regex(value, rule, name)
        if kind == "range":
            return self._check_range(value, rule, name)
        if kind in ("length", "len"):
            return self._check_length(value, rule, name)
        if kind in ("enum", "oneof"):
            return self._check_enum(value, rule, name)
        if kind == "min":
            return self._check_bound(value, rule, name, minimum=True)
        if kind == "max":
            return self._check_bound(value, rule, name, minimum=False)
        return ValidationError(variable=name, message=f"unsupported constraint type: {kind}")

    def _check_regex(self, value: Any, pattern: str, name: str) -> ValidationError | None:
        text = stringify(value)
        try:
            compiled = re.compile(pattern)
        except re.error:
            return ValidationError(variable=name, message=f"invalid regex pattern: {pattern}")
        if compiled.fullmatch(text) is None:
            return ValidationError(
                variable=name,
                message=f"variable '{name}' does not match pattern '{pattern}'",
                value=text,
            )
        return None

    def _check_range(self, value: Any, rule: str, name: str) -> ValidationError | None:
        match = _RANGE.match(rule)
        if match is None:
            return ValidationError(variable=name, message=f"invalid range format: {rule} (expected min-max)")
        low, high = float(match.group(1)), float(match.group(2))

        number = _as_number(value)
        if number is None:
            return ValidationError(
                variable=name,
                message=f"cannot validate range for non-numeric value: {stringify(value)}",
                value=stringify(value),
            )
        if number < low or number > high:
            return ValidationError(
                variable=name,
                message=(
                    f"variable '{name}' value {stringify(number)} is outside range "
                    f"{stringify(low)}-{stringify(high)}"
                ),
                value=stringify(value),
            )
        return None

    def _check_length(self, value: Any, rule: str, name: str) -> ValidationError | None:
        if "-" in rule:
            parts = rule.split("-")
            if len(parts) != 2:
                return ValidationError(variable=name, message=f"invalid length format: {rule}")
            try:
                low = int(parts[0])
            except ValueError:
                return ValidationError(variable=name, message=f"invalid length minimum: {parts[0]}")
            try:
                high = int(parts[1])
            except ValueError:
                return ValidationError(variable=name, message=f"invalid length maximum: {parts[1]}")
        else:
            try:
                low = high = int(rule)
            except ValueError:
                return ValidationError(variable=name, message=f"invalid length value: {rule}")

        if not isinstance(value, (str, list, tuple, set, dict)):
            return ValidationError(
                variable=name,
                message=f"cannot validate length for type: {type_name(value)}",
                value=stringify(value),
            )
        length = len(value)
        if length < low or length > high:
            return ValidationError(
                variable=name,
                message=f"variable '{name}' length {length} is outside range {low}-{high}",
                value=stringify(value),
            )
        return None

    def _check_enum(self, value: Any, rule: str, name: str) -> ValidationError | None:
        options = [option.strip() for option in rule.split(",")]
        text = stringify(value)
        if text in options:
            return None
        return ValidationError(
            variable=name,
            message=f"variable '{name}' value '{text}' is not one of allowed options: {', '.join(options)}",
            value=text,
        )

    def _check_bound(self, value: Any, rule: str, name: str, *, minimum: bool) -> ValidationError | None:
        label = "minimum" if minimum else "maximum"
        try:
            bound = float(rule)
        except ValueError:
            return ValidationError(variable=name, message=f"invalid {label} value: {rule}")

        number = _as_number(value)
        if number is None:
            return ValidationError(
                variable=name,
                message=f"cannot validate {label} for non-numeric value: {stringify(value)}",
                value=stringify(value),
            )
        if minimum and number < bound:
            return ValidationError(
                variable=name,
                message=f"variable '{name}' value {stringify(number)} is less than minimum {stringify(bound)}",
                value=stringify(value),
            )
        if not minimum and number > bound:
            return ValidationError(
                variable=name,
                message=f"variable '{name}' value {stringify(number)} is greater than maximum {stringify(bound)}",
                value=stringify(value),
            )
        return None
