"""Template metadata: frontmatter, ``@key:`` comment directives and merging.

Two in-content forms are recognized. A YAML frontmatter block on the first
line wins; otherwise leading ``#`` or ``//`` comment lines are scanned::

    # @name: feature-spec
    # @tags: planning, spec
    # @variable: TASK_ID:string:required:Task identifier
    # @variable: PRIORITY:string:false:P2:Priority (P0-P3)
"""

from __future__ import annotations

import logging
import re
from datetime import date, datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, Field, ValidationError
from ruamel.yaml import YAML
from ruamel.yaml.error import YAMLError

from zen_assets.assets.models import AssetRecord, VariableSpec

logger = logging.getLogger(__name__)

FRONTMATTER_PATTERN = re.compile(r"^---[ \t]*\r?\n(.*?)\r?\n---[ \t]*(?:\r?\n|$)", re.DOTALL)

_COMMENT_PREFIXES = ("#", "//")
_DIRECTIVES = ("name", "description", "category", "version", "author", "tags", "created", "updated", "variable")


class TemplateMetadata(BaseModel):
    name: str = ""
    description: str = ""
    category: str = ""
    tags: list[str] = Field(default_factory=list)
    version: str = ""
    author: str = ""
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    variables: list[VariableSpec] = Field(default_factory=list)


def split_frontmatter(content: str) -> tuple[Optional[str], str]:
    """Return ``(frontmatter_text, body)``; frontmatter is None when absent."""
    match = FRONTMATTER_PATTERN.match(content)
    if match is None:
        return None, content
    return match.group(1), content[match.end():]


def strip_frontmatter(content: str) -> str:
    return split_frontmatter(content)[1]


def _date(value: Any) -> Optional[datetime]:
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)
    if isinstance(value, str) and value.strip():
        try:
            return datetime.strptime(value.strip(), "%Y-%m-%d").replace(tzinfo=timezone.utc)
        except ValueError:
            return None
    return None


def parse_variable_spec(text: str) -> Optional[VariableSpec]:
    """Parse ``name:type:required[:default]:description``.

    Four fields mean the fourth is the description. With five or more the
    fourth is the default and the rest (rejoined on ``:``) the description.
    """
    parts = text.split(":")
    if len(parts) < 3 or not parts[0].strip():
        return None

    default = None
    description = ""
    if len(parts) == 4:
        description = parts[3].strip()
    elif len(parts) >= 5:
        default = parts[3].strip()
        description = ":".join(parts[4:]).strip()

    return VariableSpec(
        name=parts[0].strip(),
        type=parts[1].strip() or "string",
        required=parts[2].strip() in ("true", "required"),
        default=default,
        description=description,
    )


def _from_frontmatter(text: str) -> Optional[TemplateMetadata]:
    try:
        data = YAML(typ="safe").load(text)
    except YAMLError as exc:
        logger.debug("Failed to parse template frontmatter: %s", exc)
        return None
    if not isinstance(data, dict):
        return None

    payload = dict(data)
    payload.setdefault("created_at", payload.pop("created", None))
    payload.setdefault("updated_at", payload.pop("updated", None))
    payload["created_at"] = _date(payload.get("created_at"))
    payload["updated_at"] = _date(payload.get("updated_at"))
    if isinstance(payload.get("tags"), str):
        payload["tags"] = [tag.strip() for tag in payload["tags"].split(",") if tag.strip()]
    for key in ("name", "description", "category", "version", "author"):
        if payload.get(key) is not None:
            payload[key] = str(payload[key])

    try:
        return TemplateMetadata.model_validate(
            {key: value for key, value in payload.items() if key in TemplateMetadata.model_fields and value is not None}
        )
    except ValidationError as exc:
        logger.debug("Template frontmatter does not describe metadata: %s", exc)
        return None


def _from_comments(content: str) -> TemplateMetadata:
    metadata = TemplateMetadata()
    for raw_line in content.split("\n"):
        line = raw_line.strip()
        if not line.startswith(_COMMENT_PREFIXES):
            continue
        line = line.removeprefix("#").removeprefix("//").strip()
        if not line.startswith("@"):
            continue

        key, sep, value = line[1:].partition(":")
        if not sep or key not in _DIRECTIVES:
            continue
        value = value.strip()

        if key == "tags":
            if value:
                metadata.tags = [tag.strip() for tag in value.split(",")]
        elif key == "created":
            metadata.created_at = _date(value) or metadata.created_at
        elif key == "updated":
            metadata.updated_at = _date(value) or metadata.updated_at
        elif key == "variable":
            spec = parse_variable_spec(value)
            if spec is not None:
                metadata.variables.append(spec)
        else:
            setattr(metadata, key, value)
    return metadata


def extract_metadata(content: str) -> TemplateMetadata:
    """Read metadata embedded in template ``content``."""
    frontmatter, _ = split_frontmatter(content)
    if frontmatter is not None:
        metadata = _from_frontmatter(frontmatter)
        if metadata is not None:
            return metadata
    return _from_comments(content)


def from_record(record: AssetRecord | None) -> TemplateMetadata:
    if record is None:
        return TemplateMetadata()
    return TemplateMetadata(
        name=record.name,
        description=record.description,
        category=record.category,
        tags=list(record.tags),
        updated_at=record.updated_at,
        variables=[spec.model_copy() for spec in record.variables],
    )


def merge_metadata(base: TemplateMetadata, override: TemplateMetadata) -> TemplateMetadata:
    """Overlay every non-empty field of ``override`` onto ``base``."""
    updates = {
        name: value
        for name, value in override.model_dump(exclude_defaults=True).items()
        if value not in ("", None, [])
    }
    if "variables" in updates:
        updates["variables"] = [spec.model_copy() for spec in override.variables]
    return base.model_copy(update=updates)


def combine(record: AssetRecord | None, content: str) -> TemplateMetadata:
    """Catalog metadata as the base; the template's own version, author,
    creation date and variables take precedence."""
    embedded = extract_metadata(content)
    if record is None:
        return embedded

    updates: dict[str, Any] = {}
    if embedded.version:
        updates["version"] = embedded.version
    if embedded.author:
        updates["author"] = embedded.author
    if embedded.created_at is not None:
        updates["created_at"] = embedded.created_at
    if embedded.variables:
        updates["variables"] = embedded.variables
    return from_record(record).model_copy(update=updates)
