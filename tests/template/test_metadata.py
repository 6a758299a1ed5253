"""Tests for template metadata extraction and merging."""

from __future__ import annotations

from datetime import datetime, timezone

from zen_assets.assets.models import AssetRecord, VariableSpec
from zen_assets.template.metadata import (
    TemplateMetadata,
    combine,
    extract_metadata,
    merge_metadata,
    parse_variable_spec,
    split_frontmatter,
    strip_frontmatter,
)

FRONTMATTER_TEMPLATE = """\
---
name: feature-spec
description: Feature specification
tags: planning, spec
version: 2.1
author: Product Team
created: 2025-01-15
---
# {{ TASK_ID }}
"""

COMMENT_TEMPLATE = """\
# @name: user-story
# @category: development
# @tags: story, agile
// @variable: TASK_ID:string:required:Task identifier
# @variable: PRIORITY:string:false:P2:Priority: P0 to P3
# @unknown: ignored
As a user...
"""


class TestFrontmatter:
    """Test YAML frontmatter handling."""

    def test_split(self):
        """The block and the body are separated."""
        block, body = split_frontmatter(FRONTMATTER_TEMPLATE)
        assert block.startswith("name: feature-spec")
        assert body == "# {{ TASK_ID }}\n"

    def test_no_frontmatter(self):
        """Content without a block is returned whole."""
        assert split_frontmatter("# Title\n") == (None, "# Title\n")
        assert strip_frontmatter("# Title\n") == "# Title\n"

    def test_extract_from_frontmatter(self):
        """Scalars are stringified, tags split, dates parsed."""
        metadata = extract_metadata(FRONTMATTER_TEMPLATE)
        assert metadata.name == "feature-spec"
        assert metadata.tags == ["planning", "spec"]
        assert metadata.version == "2.1"
        assert metadata.author == "Product Team"
        assert metadata.created_at == datetime(2025, 1, 15, tzinfo=timezone.utc)

    def test_invalid_frontmatter_falls_back_to_comments(self):
        """Unparseable frontmatter is ignored."""
        content = "---\nname: [broken\n---\n# @name: from-comment\n"
        assert extract_metadata(content).name == "from-comment"


class TestCommentDirectives:
    """Test ``@key:`` comment parsing."""

    def test_extract_from_comments(self):
        """Both comment styles are recognized."""
        metadata = extract_metadata(COMMENT_TEMPLATE)
        assert metadata.name == "user-story"
        assert metadata.category == "development"
        assert metadata.tags == ["story", "agile"]
        assert [spec.name for spec in metadata.variables] == ["TASK_ID", "PRIORITY"]

    def test_variable_spec_forms(self):
        """Four fields give a description; five give a default too."""
        four = parse_variable_spec("TASK_ID:string:required:Task identifier")
        assert (four.required, four.default, four.description) == (True, None, "Task identifier")

        five = parse_variable_spec("PRIORITY:string:false:P2:Priority: P0 to P3")
        assert (five.required, five.default, five.description) == (False, "P2", "Priority: P0 to P3")

        three = parse_variable_spec("FLAG:bool:true")
        assert three.type == "bool" and three.required is True

    def test_invalid_variable_spec(self):
        """Too few fields or no name is ignored."""
        assert parse_variable_spec("ONLY:two") is None
        assert parse_variable_spec(":string:true") is None


class TestMerging:
    """Test combining catalog and embedded metadata."""

    def test_combine_prefers_embedded_variables(self):
        """The template's own variables override the catalog's."""
        record = AssetRecord(
            name="user-story",
            description="From catalog",
            category="development",
            variables=[VariableSpec(name="OLD")],
        )
        metadata = combine(record, COMMENT_TEMPLATE)
        assert metadata.description == "From catalog"
        assert [spec.name for spec in metadata.variables] == ["TASK_ID", "PRIORITY"]

    def test_combine_keeps_catalog_identity(self):
        """Name and updated_at come from the catalog record."""
        stamp = datetime(2025, 5, 1, tzinfo=timezone.utc)
        record = AssetRecord(name="catalog-name", updated_at=stamp)
        metadata = combine(record, FRONTMATTER_TEMPLATE)
        assert metadata.name == "catalog-name"
        assert metadata.updated_at == stamp
        assert metadata.version == "2.1"

    def test_combine_without_record(self):
        """Embedded metadata stands alone when there is no record."""
        assert combine(None, COMMENT_TEMPLATE).name == "user-story"

    def test_merge_metadata_overlays_non_empty(self):
        """Only populated override fields replace the base."""
        base = TemplateMetadata(name="a", description="base", tags=["x"])
        merged = merge_metadata(base, TemplateMetadata(description="override"))
        assert merged.name == "a"
        assert merged.description == "override"
        assert merged.tags == ["x"]
