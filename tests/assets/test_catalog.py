"""Tests for catalog filtering, paging and diffing."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from zen_assets.assets.catalog import CatalogEngine, diff_catalogs, filter_records, paginate
from zen_assets.assets.models import AssetFilter, AssetRecord, AssetType


@pytest.fixture()
def records() -> list[AssetRecord]:
    return [
        AssetRecord(name="roadmap", type=AssetType.TEMPLATE, category="planning", tags=["strategy"]),
        AssetRecord(name="api-design", type=AssetType.TEMPLATE, category="dev", tags=["api"]),
        AssetRecord(name="vision", type=AssetType.PROMPT, category="planning", tags=["Strategy"]),
    ]


class TestFilter:
    """Test filter semantics."""

    def test_type_and_category(self, records):
        """Type and category combine with AND."""
        result = filter_records(records, AssetFilter(type="template", category="planning"))
        assert [record.name for record in result] == ["roadmap"]

    def test_tags_are_case_insensitive(self, records):
        """Every filter tag must be present, ignoring case."""
        result = filter_records(records, AssetFilter(tags=("STRATEGY",)))
        assert [record.name for record in result] == ["roadmap", "vision"]
        assert filter_records(records, AssetFilter(tags=("strategy", "api"))) == []

    def test_empty_filter_matches_all(self, records):
        """No facets means everything."""
        assert filter_records(records, AssetFilter()) == records

    def test_composition(self, records):
        """Filtering by both facets equals filtering by each in turn."""
        both = filter_records(records, AssetFilter(type="template", tags=("strategy",)))
        stepwise = filter_records(
            filter_records(records, AssetFilter(type="template")), AssetFilter(tags=("strategy",))
        )
        assert both == stepwise


class TestPaginate:
    """Test limit/offset paging."""

    def test_limit_and_has_more(self, records):
        """has_more is set while rows remain."""
        page = paginate(records, limit=2, offset=0)
        assert [record.name for record in page.assets] == ["roadmap", "api-design"]
        assert page.total == 3
        assert page.has_more is True

    def test_offset_past_end(self, records):
        """An offset beyond the end yields an empty page."""
        page = paginate(records, limit=2, offset=10)
        assert page.assets == []
        assert page.has_more is False

    def test_default_limit(self, records):
        """A non-positive limit uses the default page size."""
        assert len(paginate(records, limit=0, offset=0).assets) == 3


class TestDiff:
    """Test catalog diffs."""

    def test_added_updated_removed(self):
        """Changes are classified by name, checksum and timestamp."""
        stamp = datetime(2025, 1, 1, tzinfo=timezone.utc)
        old = [
            AssetRecord(name="same", checksum="sha256:1"),
            AssetRecord(name="changed", checksum="sha256:1"),
            AssetRecord(name="touched", updated_at=stamp),
            AssetRecord(name="gone"),
        ]
        new = [
            AssetRecord(name="same", checksum="sha256:1"),
            AssetRecord(name="changed", checksum="sha256:2"),
            AssetRecord(name="touched", updated_at=stamp.replace(day=2)),
            AssetRecord(name="fresh"),
        ]
        diff = diff_catalogs(old, new)
        assert diff.added == ("fresh",)
        assert diff.updated == ("changed", "touched")
        assert diff.removed == ("gone",)
        assert diff.changed == ("changed", "touched", "gone")


class TestCatalogEngine:
    """Test snapshot replacement."""

    def test_replace_swaps_snapshot(self, records):
        """Old snapshots stay intact after a replace."""
        engine = CatalogEngine()
        assert engine.loaded is False
        engine.replace(records[:1])
        before = engine.snapshot()
        diff = engine.replace(records)
        assert engine.loaded is True
        assert len(before) == 1
        assert len(engine.snapshot()) == 3
        assert diff.added == ("api-design", "vision")

    def test_lookup_and_filter(self, records):
        """Queries run against the current snapshot."""
        engine = CatalogEngine()
        engine.replace(records)
        assert engine.lookup("vision").type == AssetType.PROMPT
        assert engine.filter(AssetFilter(category="planning")).total == 2
