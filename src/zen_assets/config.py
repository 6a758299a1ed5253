"""Workspace configuration stored in .zen/config.yaml.

Two sections are recognized: ``assets`` for the asset client and
``templates`` for the template engine. Unknown keys are ignored with a
warning so older clients keep working against newer config files.
"""

from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any

from ruamel.yaml import YAML

from zen_assets.errors import ConfigurationError

logger = logging.getLogger(__name__)

ASSETS_SECTION = "assets"
TEMPLATES_SECTION = "templates"

DEFAULT_REPOSITORY_URL = "https://github.com/daddia/zen-assets.git"
DEFAULT_CACHE_PATH = "~/.zen/cache/assets"

_DURATION_PART = re.compile(r"(\d+(?:\.\d+)?)(ms|s|m|h|d)")
_DURATION_UNITS = {"ms": 0.001, "s": 1, "m": 60, "h": 3600, "d": 86400}


def parse_duration(value: Any) -> float:
    """Convert ``90``, ``"90s"``, ``"30m"``, ``"24h"`` or ``"1h30m"`` to seconds."""
    if isinstance(value, bool):
        raise ConfigurationError(f"invalid duration: {value!r}")
    if isinstance(value, (int, float)):
        return float(value)
    if not isinstance(value, str) or not value.strip():
        raise ConfigurationError(f"invalid duration: {value!r}")

    text = value.strip().lower()
    try:
        return float(text)
    except ValueError:
        pass

    total = 0.0
    position = 0
    for match in _DURATION_PART.finditer(text):
        if match.start() != position:
            raise ConfigurationError(f"invalid duration: {value!r}")
        total += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
        position = match.end()
    if position != len(text):
        raise ConfigurationError(f"invalid duration: {value!r}")
    return total


def format_duration(seconds: float) -> str:
    seconds = int(seconds)
    if seconds and seconds % 3600 == 0:
        return f"{seconds // 3600}h"
    if seconds and seconds % 60 == 0:
        return f"{seconds // 60}m"
    return f"{seconds}s"


def _known_keys(cls: type) -> set[str]:
    return {f.name for f in fields(cls)}


def _warn_unknown(section: str, data: dict[str, Any], known: set[str]) -> None:
    for key in data:
        if key not in known:
            logger.warning("Ignoring unknown %s config key: %s", section, key)


def _as_bool(value: Any, default: bool) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in {"true", "yes", "1", "on"}:
            return True
        if lowered in {"false", "no", "0", "off"}:
            return False
    return default


def _as_int(key: str, value: Any) -> int:
    if isinstance(value, bool):
        raise ConfigurationError(f"{key} must be an integer, got {value!r}")
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"{key} must be an integer, got {value!r}") from exc


@dataclass(slots=True)
class AssetConfig:
    """Settings for the asset client, read from the ``assets`` section.

    ``max_concurrent_ops`` and ``prefetch_enabled`` are accepted, validated
    and round-tripped so existing config files keep loading; nothing reads
    them yet.
    """

    repository_url: str = DEFAULT_REPOSITORY_URL
    branch: str = "main"
    cache_path: str = DEFAULT_CACHE_PATH
    cache_size_mb: int = 100
    default_ttl: float = 24 * 3600.0
    auth_provider: str = "github"
    sync_timeout_seconds: int = 30
    max_concurrent_ops: int = 3
    integrity_checks_enabled: bool = True
    prefetch_enabled: bool = True

    @property
    def cache_size_bytes(self) -> int:
        return self.cache_size_mb * 1024 * 1024

    def resolved_cache_path(self) -> Path:
        return Path(self.cache_path).expanduser()

    def validate(self) -> None:
        """Raise ``ConfigurationError`` for the first invalid setting."""
        if not self.repository_url:
            raise ConfigurationError("repository_url is required")
        if not self.branch:
            raise ConfigurationError("branch is required")
        if not self.cache_path:
            raise ConfigurationError("cache_path is required")
        if self.cache_size_mb <= 0:
            raise ConfigurationError("cache_size_mb must be positive")
        if self.default_ttl <= 0:
            raise ConfigurationError("default_ttl must be positive")
        if self.sync_timeout_seconds <= 0:
            raise ConfigurationError("sync_timeout_seconds must be positive")
        if self.max_concurrent_ops <= 0:
            raise ConfigurationError("max_concurrent_ops must be positive")

    def to_dict(self) -> dict[str, object]:
        return {
            "repository_url": self.repository_url,
            "branch": self.branch,
            "cache_path": self.cache_path,
            "cache_size_mb": self.cache_size_mb,
            "default_ttl": format_duration(self.default_ttl),
            "auth_provider": self.auth_provider,
            "sync_timeout_seconds": self.sync_timeout_seconds,
            "max_concurrent_ops": self.max_concurrent_ops,
            "integrity_checks_enabled": self.integrity_checks_enabled,
            "prefetch_enabled": self.prefetch_enabled,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "AssetConfig":
        config = cls()
        if not isinstance(data, dict):
            return config
        _warn_unknown(ASSETS_SECTION, data, _known_keys(cls))

        for key in ("repository_url", "branch", "cache_path", "auth_provider"):
            value = data.get(key)
            if isinstance(value, str) and value.strip():
                setattr(config, key, value.strip())
        for key in ("cache_size_mb", "sync_timeout_seconds", "max_concurrent_ops"):
            if key in data:
                setattr(config, key, _as_int(key, data[key]))
        if "default_ttl" in data:
            config.default_ttl = parse_duration(data["default_ttl"])
        for key in ("integrity_checks_enabled", "prefetch_enabled"):
            if key in data:
                setattr(config, key, _as_bool(data[key], getattr(config, key)))
        return config

    def apply_env(self, environ: dict[str, str] | None = None) -> "AssetConfig":
        env = os.environ if environ is None else environ
        if env.get("ZEN_ASSETS_REPOSITORY_URL"):
            self.repository_url = env["ZEN_ASSETS_REPOSITORY_URL"].strip()
        if env.get("ZEN_ASSETS_BRANCH"):
            self.branch = env["ZEN_ASSETS_BRANCH"].strip()
        if env.get("ZEN_ASSETS_CACHE_PATH"):
            self.cache_path = env["ZEN_ASSETS_CACHE_PATH"].strip()
        return self


@dataclass(slots=True)
class Delimiters:
    left: str = "{{"
    right: str = "}}"


@dataclass(slots=True)
class TemplateEngineConfig:
    """Settings for the template engine, read from the ``templates`` section."""

    cache_enabled: bool = True
    cache_ttl: float = 30 * 60.0
    cache_size: int = 100
    strict_mode: bool = False
    enable_ai: bool = False
    default_delims: Delimiters = field(default_factory=Delimiters)
    workspace_root: str = "."

    def validate(self) -> None:
        if self.cache_size <= 0:
            raise ConfigurationError("cache_size must be positive")
        if self.cache_ttl <= 0:
            raise ConfigurationError("cache_ttl must be positive")
        if not self.default_delims.left or not self.default_delims.right:
            raise ConfigurationError("template delimiters cannot be empty")

    def to_dict(self) -> dict[str, object]:
        return {
            "cache_enabled": self.cache_enabled,
            "cache_ttl": format_duration(self.cache_ttl),
            "cache_size": self.cache_size,
            "strict_mode": self.strict_mode,
            "enable_ai": self.enable_ai,
            "default_delims": {
                "left": self.default_delims.left,
                "right": self.default_delims.right,
            },
            "workspace_root": self.workspace_root,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "TemplateEngineConfig":
        config = cls()
        if not isinstance(data, dict):
            return config
        _warn_unknown(TEMPLATES_SECTION, data, _known_keys(cls))

        for key in ("cache_enabled", "strict_mode", "enable_ai"):
            if key in data:
                setattr(config, key, _as_bool(data[key], getattr(config, key)))
        if "cache_ttl" in data:
            config.cache_ttl = parse_duration(data["cache_ttl"])
        if "cache_size" in data:
            config.cache_size = _as_int("cache_size", data["cache_size"])
        delims = data.get("default_delims")
        if isinstance(delims, dict):
            left = delims.get("left")
            right = delims.get("right")
            if isinstance(left, str) and left:
                config.default_delims.left = left
            if isinstance(right, str) and right:
                config.default_delims.right = right
        root = data.get("workspace_root")
        if isinstance(root, str) and root.strip():
            config.workspace_root = root.strip()
        return config


@dataclass(slots=True)
class ZenConfig:
    assets: AssetConfig = field(default_factory=AssetConfig)
    templates: TemplateEngineConfig = field(default_factory=TemplateEngineConfig)


def config_path(workspace_root: Path) -> Path:
    return workspace_root / ".zen" / "config.yaml"


def _read_payload(path: Path) -> dict[str, Any]:
    if not path.exists():
        return {}
    yaml = YAML(typ="safe")
    try:
        with path.open("r", encoding="utf-8") as handle:
            payload = yaml.load(handle) or {}
    except Exception as exc:
        raise ConfigurationError(f"Failed to parse {path}: {exc}") from exc
    return payload if isinstance(payload, dict) else {}


def load_config(workspace_root: Path, environ: dict[str, str] | None = None) -> ZenConfig:
    """Load both sections from ``<workspace>/.zen/config.yaml``.

    Missing files and sections fall back to defaults. Environment overrides
    are applied to the assets section before validation.
    """
    payload = _read_payload(config_path(workspace_root))
    assets = AssetConfig.from_dict(payload.get(ASSETS_SECTION)).apply_env(environ)
    templates = TemplateEngineConfig.from_dict(payload.get(TEMPLATES_SECTION))
    assets.validate()
    templates.validate()
    return ZenConfig(assets=assets, templates=templates)


def save_config(workspace_root: Path, config: ZenConfig) -> None:
    """Persist both sections, preserving any other top-level sections."""
    path = config_path(workspace_root)
    path.parent.mkdir(parents=True, exist_ok=True)

    yaml = YAML()
    yaml.preserve_quotes = True

    payload: Any = {}
    if path.exists():
        with path.open("r", encoding="utf-8") as handle:
            payload = yaml.load(handle) or {}
    if not isinstance(payload, dict):
        payload = {}

    payload[ASSETS_SECTION] = config.assets.to_dict()
    payload[TEMPLATES_SECTION] = config.templates.to_dict()

    with path.open("w", encoding="utf-8") as handle:
        yaml.dump(payload, handle)
