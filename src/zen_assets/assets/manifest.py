"""Parse the catalog manifest into AssetRecord rows.

Manifest shape (YAML)::

    schema_version: "1.0"
    generated: "2025-01-01T00:00:00Z"
    version: "1.2.0"
    activities:
      feature-spec:
        name: feature-spec
        command: feature-spec
        description: Feature specification
        format: markdown
        category: planning
        workflow_stages: [04-design]
        tags: [spec]
        assets:
          prompt: prompts/feature-spec.md
          output: [templates/feature-spec.md]
        variables:
          - name: TASK_ID
            type: string
            required: true

Unknown fields are ignored. Records keep manifest order.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, time, timezone
from typing import Any, Optional

from pydantic import ValidationError
from ruamel.yaml import YAML
from ruamel.yaml.error import YAMLError

from zen_assets.assets.models import AssetRecord, AssetType, VariableSpec
from zen_assets.errors import ConfigurationError

logger = logging.getLogger(__name__)

_FORMAT_TYPES = {
    "template": AssetType.TEMPLATE,
    "markdown": AssetType.TEMPLATE,
    "yaml": AssetType.TEMPLATE,
    "yml": AssetType.TEMPLATE,
    "code": AssetType.TEMPLATE,
}
_REQUIRED_ACTIVITY_FIELDS = ("name", "command", "description")


@dataclass(frozen=True)
class ManifestIssue:
    path: str
    message: str

    def __str__(self) -> str:
        return f"{self.path}: {self.message}"


class ManifestValidationError(ConfigurationError):
    """The manifest is syntactically or structurally invalid."""

    def __init__(self, issues: list[ManifestIssue]):
        self.issues = list(issues)
        summary = "; ".join(str(issue) for issue in self.issues)
        super().__init__(
            f"manifest validation failed: {summary}",
            details=[{"path": issue.path, "message": issue.message} for issue in self.issues],
        )


def _text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def _string_list(value: Any) -> list[str]:
    if isinstance(value, str):
        return [value] if value.strip() else []
    if isinstance(value, (list, tuple)):
        return [str(item) for item in value if item is not None and str(item).strip()]
    return []


def _timestamp(value: Any) -> Optional[datetime]:
    """Accept RFC3339 strings, YAML timestamps and plain dates."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime.combine(value, time.min)
    else:
        text = str(value).strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            logger.debug("Ignoring unparseable manifest timestamp %r", value)
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def asset_type_for_format(fmt: str) -> AssetType:
    """Map an activity ``format`` to the catalog asset type (template by default)."""
    return _FORMAT_TYPES.get(fmt.lower(), AssetType.TEMPLATE)


class ManifestParser:
    """Turns manifest bytes into validated ``AssetRecord`` lists."""

    def __init__(self) -> None:
        self._yaml = YAML(typ="safe")

    def load(self, data: bytes) -> dict[str, Any]:
        try:
            payload = self._yaml.load(data.decode("utf-8"))
        except (YAMLError, UnicodeDecodeError) as exc:
            raise ManifestValidationError(
                [ManifestIssue("<document>", f"failed to parse manifest YAML: {exc}")]
            ) from exc
        if payload is None:
            payload = {}
        if not isinstance(payload, dict):
            raise ManifestValidationError(
                [ManifestIssue("<document>", "manifest must be a mapping")]
            )
        return payload

    def validate(self, data: bytes) -> list[ManifestIssue]:
        """Return every structural problem in the manifest, in document order."""
        try:
            payload = self.load(data)
        except ManifestValidationError as exc:
            return exc.issues
        return self._validate_payload(payload)

    def parse(self, data: bytes) -> list[AssetRecord]:
        """Validate and convert the manifest.

        Raises:
            ManifestValidationError: one issue per problem, each with its path.
        """
        payload = self.load(data)
        issues = self._validate_payload(payload)
        if issues:
            raise ManifestValidationError(issues)

        generated = _timestamp(payload.get("generated"))
        activities = payload.get("activities") or {}
        records = []
        for key, activity in activities.items():
            try:
                records.append(self._convert(str(key), activity, generated))
            except ValidationError as exc:
                raise ManifestValidationError(
                    [ManifestIssue(f"activities.{key}", str(exc))]
                ) from exc

        logger.debug("Parsed manifest with %d assets", len(records))
        return records

    def _validate_payload(self, payload: dict[str, Any]) -> list[ManifestIssue]:
        issues: list[ManifestIssue] = []
        if not _text(payload.get("schema_version")):
            issues.append(ManifestIssue("schema_version", "missing required field: schema_version"))

        activities = payload.get("activities")
        if activities is None:
            return issues
        if not isinstance(activities, dict):
            issues.append(ManifestIssue("activities", "activities must be a mapping"))
            return issues

        seen: dict[str, str] = {}
        for key, activity in activities.items():
            base = f"activities.{key}"
            if not isinstance(activity, dict):
                issues.append(ManifestIssue(base, "activity must be a mapping"))
                continue

            for field_name in _REQUIRED_ACTIVITY_FIELDS:
                if not _text(activity.get(field_name)):
                    issues.append(
                        ManifestIssue(f"{base}.{field_name}", f"missing required field: {field_name}")
                    )

            name = _text(activity.get("name"))
            if name:
                if name in seen:
                    issues.append(
                        ManifestIssue(
                            f"{base}.name",
                            f"duplicate activity name: {name} (first defined at activities.{seen[name]})",
                        )
                    )
                else:
                    seen[name] = str(key)

            variables = activity.get("variables") or []
            if not isinstance(variables, list):
                issues.append(ManifestIssue(f"{base}.variables", "variables must be a list"))
                continue
            for index, variable in enumerate(variables):
                if not isinstance(variable, dict) or not _text(variable.get("name")):
                    issues.append(
                        ManifestIssue(f"{base}.variables[{index}].name", "variable missing name")
                    )
        return issues

    def _convert(
        self,
        key: str,
        activity: dict[str, Any],
        generated: Optional[datetime],
    ) -> AssetRecord:
        assets = activity.get("assets") if isinstance(activity.get("assets"), dict) else {}
        outputs = _string_list(assets.get("output"))
        prompt = _text(assets.get("prompt"))
        path = outputs[0] if outputs else prompt or f"templates/{key}.md"

        fmt = _text(activity.get("format"))
        variables = [
            VariableSpec(
                name=_text(variable.get("name")),
                type=_text(variable.get("type")) or "string",
                required=bool(variable.get("required", False)),
                default=variable.get("default"),
                validation=_text(variable.get("validation")),
                description=_text(variable.get("description")),
                examples=_string_list(variable.get("examples")),
            )
            for variable in activity.get("variables") or []
        ]

        return AssetRecord(
            name=_text(activity.get("name")),
            type=asset_type_for_format(fmt),
            format=fmt,
            description=_text(activity.get("description")),
            category=_text(activity.get("category")),
            tags=_string_list(activity.get("tags")),
            workflow_stages=_string_list(activity.get("workflow_stages")),
            path=path,
            variables=variables,
            checksum=_text(activity.get("checksum")),
            updated_at=_timestamp(activity.get("updated_at")) or generated,
            command=_text(activity.get("command")),
            output_file=outputs[0] if outputs else "",
        )
