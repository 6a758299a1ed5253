"""Template engine: load templates through the asset client, compile them
with Jinja2 and render them against validated variables.

Delimiters for variable output come from ``TemplateEngineConfig``. In strict
mode an undefined variable is a rendering error; otherwise it renders as an
empty value. A YAML frontmatter block is metadata, not output, and is
removed before compilation.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Mapping, Optional, Protocol

from jinja2 import ChainableUndefined, Environment, StrictUndefined, TemplateError, TemplateSyntaxError
from jinja2 import Template as JinjaTemplate
from pydantic import BaseModel, Field

from zen_assets.assets.models import (
    AssetContent,
    AssetFilter,
    AssetList,
    AssetRecord,
    AssetType,
    GetAssetOptions,
    VariableSpec,
    compute_checksum,
)
from zen_assets.config import TemplateEngineConfig
from zen_assets.errors import AssetClientError, AssetNotFoundError, TemplateEngineError, TemplateErrorCode
from zen_assets.processor import ProcessingError, get_processor
from zen_assets.scope import CancelScope
from zen_assets.template.cache import NullTemplateCache, TemplateCache
from zen_assets.template.functions import FunctionRegistry
from zen_assets.template.metadata import TemplateMetadata, combine, from_record, strip_frontmatter
from zen_assets.template.validator import ValidationResult, VariableValidator

logger = logging.getLogger(__name__)

_RENDER_ERRORS = (TemplateError, TypeError, ValueError, AttributeError, LookupError, ArithmeticError)


class AssetSource(Protocol):
    """The slice of ``AssetClient`` the engine depends on."""

    def get_asset(
        self, name: str, options: GetAssetOptions | None = None, scope: CancelScope | None = None
    ) -> AssetContent: ...

    def describe_asset(self, name: str, scope: CancelScope | None = None) -> AssetRecord | None: ...

    def list_assets(self, asset_filter: AssetFilter | None = None, scope: CancelScope | None = None) -> AssetList: ...


@dataclass
class Template:
    """A compiled template and the metadata it was compiled with."""

    name: str
    content: str
    compiled: JinjaTemplate
    metadata: TemplateMetadata
    variables: list[VariableSpec]
    checksum: str
    compiled_at: datetime
    format: str = ""


class TemplateList(BaseModel):
    templates: list[TemplateMetadata] = Field(default_factory=list)
    total: int = 0
    has_more: bool = False


@dataclass
class RenderedAsset:
    name: str
    output: str
    format: str
    template: Template = field(repr=False)


class TemplateEngine:
    """Compile and render catalog templates.

    Args:
        assets: Asset client (or anything with the same query surface).
        config: Engine settings; defaults apply when omitted.
        functions: Helper registry; built from ``config.workspace_root`` when omitted.
        clock: Wall-clock source for ``compiled_at``.
    """

    def __init__(
        self,
        assets: AssetSource | None,
        config: TemplateEngineConfig | None = None,
        functions: FunctionRegistry | None = None,
        validator: VariableValidator | None = None,
        cache: TemplateCache | NullTemplateCache | None = None,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self.assets = assets
        self.config = config or TemplateEngineConfig()
        self.config.validate()
        self.registry = functions or FunctionRegistry(self.config.workspace_root)
        self.validator = validator or VariableValidator()
        if cache is not None:
            self.cache = cache
        elif self.config.cache_enabled:
            self.cache = TemplateCache(self.config.cache_size, self.config.cache_ttl)
        else:
            self.cache = NullTemplateCache()
        self._clock = clock
        self._env = self._build_environment()

    def _build_environment(self) -> Environment:
        delims = self.config.default_delims
        env = Environment(
            variable_start_string=delims.left,
            variable_end_string=delims.right,
            undefined=StrictUndefined if self.config.strict_mode else ChainableUndefined,
            keep_trailing_newline=True,
            autoescape=False,
        )
        functions = self.registry.functions()
        env.globals.update(functions)
        # Jinja's own filters keep their names and signatures.
        env.filters.update({name: fn for name, fn in functions.items() if name not in env.filters})
        return env

    def functions(self) -> dict[str, Callable[..., Any]]:
        return self.registry.functions()

    # ── Loading & compiling ───────────────────────────────────────

    def _require_assets(self) -> AssetSource:
        if self.assets is None:
            raise TemplateEngineError(
                TemplateErrorCode.CONFIGURATION_ERROR,
                "template engine has no asset client configured",
            )
        return self.assets

    def load_template(self, name: str, scope: CancelScope | None = None) -> Template:
        """Return the compiled template ``name``, from cache when current.

        Raises:
            TemplateEngineError: ``template_not_found`` when the catalog has no
                such asset, ``asset_client_error`` for any other fetch failure,
                ``compilation_failed`` when the content does not compile.
        """
        assets = self._require_assets()
        logger.debug("Loading template %s", name)

        try:
            record = assets.describe_asset(name, scope)
            cached = self.cache.get(name, record.checksum if record is not None else "")
            if cached is not None:
                return cached
            content = assets.get_asset(
                name,
                GetAssetOptions(include_metadata=True, verify_integrity=True, use_cache=True),
                scope,
            )
        except AssetNotFoundError as exc:
            raise TemplateEngineError(
                TemplateErrorCode.TEMPLATE_NOT_FOUND,
                f"failed to load template '{name}': {exc}",
                exc,
            ) from exc
        except AssetClientError as exc:
            raise TemplateEngineError(
                TemplateErrorCode.ASSET_CLIENT_ERROR,
                f"failed to load template '{name}': {exc}",
                exc,
            ) from exc

        metadata_record = content.metadata or record
        try:
            text = content.text
        except UnicodeDecodeError as exc:
            raise TemplateEngineError(
                TemplateErrorCode.COMPILATION_FAILED,
                f"failed to compile template '{name}': content is not valid UTF-8",
                exc,
            ) from exc
        template = self.compile_template(name, text, combine(metadata_record, text))
        if metadata_record is not None:
            template.format = metadata_record.format
        self.cache.set(name, template)
        return template

    def compile_template(self, name: str, content: str, metadata: TemplateMetadata | None = None) -> Template:
        logger.debug("Compiling template %s (%d chars)", name, len(content))
        metadata = metadata or TemplateMetadata(name=name)
        try:
            compiled = self._env.from_string(strip_frontmatter(content))
        except TemplateSyntaxError as exc:
            raise TemplateEngineError(
                TemplateErrorCode.COMPILATION_FAILED,
                f"failed to compile template '{name}': {exc}",
                exc,
            ) from exc

        return Template(
            name=name,
            content=content,
            compiled=compiled,
            metadata=metadata,
            variables=list(metadata.variables),
            checksum=compute_checksum(content.encode("utf-8")),
            compiled_at=self._clock(),
        )

    # ── Rendering ─────────────────────────────────────────────────

    def validate_variables(self, template: Template, variables: Mapping[str, Any]) -> ValidationResult:
        """Run every validator pass.

        Raises:
            TemplateEngineError: ``validation_failed`` with the full
                ``ValidationResult`` as details.
        """
        result = self.validator.validate(variables, template.variables)
        if not result.valid:
            raise TemplateEngineError(
                TemplateErrorCode.VALIDATION_FAILED,
                f"template variable validation failed: {len(result.errors)} errors",
                result,
            )
        return result

    def render_template(self, template: Template, variables: Mapping[str, Any] | None = None) -> str:
        variables = dict(variables or {})
        logger.debug("Rendering template %s with %d variables", template.name, len(variables))
        if template.variables:
            self.validate_variables(template, variables)

        context = self.validator.apply_defaults(variables, template.variables)
        context.setdefault("__context", self._render_context(template))
        try:
            return template.compiled.render(context)
        except _RENDER_ERRORS as exc:
            raise TemplateEngineError(
                TemplateErrorCode.RENDERING_FAILED,
                f"failed to render template '{template.name}': {exc}",
                exc,
            ) from exc

    def _render_context(self, template: Template) -> dict[str, Any]:
        return {
            "metadata": template.metadata.model_dump(mode="json"),
            "workspace_root": self.config.workspace_root,
            "options": {
                "strict_variables": self.config.strict_mode,
                "enable_ai": self.config.enable_ai,
                "delims": {"left": self.config.default_delims.left, "right": self.config.default_delims.right},
            },
        }

    def render_asset(
        self,
        name: str,
        variables: Mapping[str, Any] | None = None,
        output_format: str | None = None,
        scope: CancelScope | None = None,
    ) -> RenderedAsset:
        """Load, render and post-process ``name`` for ``output_format``.

        The catalog format of the asset is used when ``output_format`` is
        omitted. Post-processor validation only runs in strict mode.
        """
        template = self.load_template(name, scope)
        rendered = self.render_template(template, variables)
        fmt = output_format or template.format or "text"
        processor = get_processor(fmt)
        try:
            output = processor.process(rendered, strict=self.config.strict_mode)
        except ProcessingError as exc:
            raise TemplateEngineError(
                TemplateErrorCode.RENDERING_FAILED,
                f"rendered template '{name}' is not valid {processor.output_type}: {exc}",
                exc,
            ) from exc
        return RenderedAsset(name=name, output=output, format=fmt, template=template)

    # ── Listing ───────────────────────────────────────────────────

    def list_templates(
        self, asset_filter: AssetFilter | None = None, scope: CancelScope | None = None
    ) -> TemplateList:
        assets = self._require_assets()
        base = asset_filter or AssetFilter()
        query = AssetFilter(
            type=AssetType.TEMPLATE.value,
            category=base.category,
            tags=base.tags,
            limit=base.limit,
            offset=base.offset,
        )
        try:
            listing = assets.list_assets(query, scope)
        except AssetClientError as exc:
            raise TemplateEngineError(
                TemplateErrorCode.ASSET_CLIENT_ERROR,
                f"failed to list templates: {exc}",
                exc,
            ) from exc
        return TemplateList(
            templates=[from_record(record) for record in listing.assets],
            total=listing.total,
            has_more=listing.has_more,
        )

    def clear_cache(self) -> None:
        self.cache.clear()


def build_template_engine(assets: Optional[AssetSource], config: TemplateEngineConfig) -> TemplateEngine:
    return TemplateEngine(assets, config)
