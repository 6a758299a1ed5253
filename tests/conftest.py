from __future__ import annotations

from pathlib import Path
from typing import Callable

import pytest

from zen_assets.assets.cache import FileCacheStore
from zen_assets.assets.client import AssetClient
from zen_assets.config import AssetConfig
from zen_assets.errors import AssetNotFoundError
from zen_assets.scope import check_scope

MANIFEST_YAML = """\
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
    tags: [spec, planning]
    assets:
      output: [templates/feature-spec.md]
  user-story:
    name: user-story
    command: user-story
    description: User story
    format: markdown
    category: development
    tags: [story]
  roadmap:
    name: roadmap
    command: roadmap
    description: Product roadmap
    format: yaml
    category: planning
    workflow_stages: [03-prioritize]
    tags: [planning]
"""

FEATURE_SPEC_TEMPLATE = "# {{ TASK_ID }}: {{ TASK_TITLE }}\n\nOwner: {{ OWNER_NAME }}\n"


class FakeBackend:
    """In-memory ``RepoBackend`` that records every path it serves."""

    def __init__(self, files: dict[str, bytes] | None = None):
        self.files = dict(files or {})
        self.calls: list[str] = []
        self.refs: list[str] = []
        self.error: Exception | None = None

    def get_file(self, path, scope=None, ref="") -> bytes:
        check_scope(scope)
        self.calls.append(path)
        self.refs.append(ref)
        if self.error is not None:
            raise self.error
        if path not in self.files:
            raise AssetNotFoundError(f"{path} not found in repository")
        return self.files[path]


@pytest.fixture()
def backend() -> FakeBackend:
    return FakeBackend(
        {
            "manifest.yaml": MANIFEST_YAML.encode("utf-8"),
            "templates/feature-spec.md": FEATURE_SPEC_TEMPLATE.encode("utf-8"),
            "templates/user-story.md": b"As a user I want {{ GOAL }}\n",
            "templates/roadmap.md": b"task: {{ TASK_ID }}\n",
        }
    )


@pytest.fixture()
def asset_config(tmp_path: Path) -> AssetConfig:
    return AssetConfig(cache_path=str(tmp_path / "cache"))


@pytest.fixture()
def cache_store(tmp_path: Path) -> FileCacheStore:
    return FileCacheStore(tmp_path / "cache", size_limit=1024 * 1024)


@pytest.fixture()
def workspace(tmp_path: Path) -> Path:
    root = tmp_path / "workspace"
    root.mkdir()
    return root


@pytest.fixture()
def make_client(
    asset_config: AssetConfig, cache_store: FileCacheStore, workspace: Path, backend: FakeBackend
) -> Callable[..., AssetClient]:
    def _make(**overrides) -> AssetClient:
        kwargs = {
            "config": asset_config,
            "backend": backend,
            "cache": cache_store,
            "workspace_root": workspace,
        }
        kwargs.update(overrides)
        return AssetClient(**kwargs)

    return _make


@pytest.fixture()
def client(make_client) -> AssetClient:
    return make_client()
