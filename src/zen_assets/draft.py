"""Generate task documents from catalog templates.

``zen draft <activity>`` looks up the template whose ``command`` is the
activity, renders it with data from the nearest task ``manifest.yaml`` and
writes the result into the task's work-type directory::

    task-dir/
      manifest.yaml
      research/      02-discover, analysis
      design/        04-design, development
      execution/     05-build, 06-ship, quality, operations, documentation
      outcomes/      07-learn
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime
from pathlib import Path
from typing import Any, Callable, Iterable, Optional

from pydantic import BaseModel, Field, ValidationError, field_validator
from ruamel.yaml import YAML
from ruamel.yaml.error import YAMLError

from zen_assets.assets.models import AssetFilter, AssetRecord, AssetType, GetAssetOptions
from zen_assets.errors import AssetClientError, TemplateEngineError
from zen_assets.fsutil import atomic_write
from zen_assets.processor import ProcessingError, get_processor
from zen_assets.scope import CancelScope
from zen_assets.template.engine import AssetSource, TemplateEngine
from zen_assets.template.metadata import combine

logger = logging.getLogger(__name__)

MANIFEST_FILENAME = "manifest.yaml"
MAX_SUGGESTIONS = 3
ACTIVITY_PAGE_SIZE = 100

WORK_TYPE_DIRS = {
    "01-align": "",
    "02-discover": "research",
    "03-prioritize": "",
    "04-design": "design",
    "05-build": "execution",
    "06-ship": "execution",
    "07-learn": "outcomes",
    "analysis": "research",
    "planning": "",
    "development": "design",
    "quality": "execution",
    "operations": "execution",
    "documentation": "execution",
    "task-management": "",
}

_EXTENSIONS = {"markdown": ".md", "yaml": ".yaml", "json": ".json"}
_PROCESSOR_FORMATS = ("markdown", "yaml", "json")


class DraftError(RuntimeError):
    """Raised when a document cannot be drafted.

    ``code`` is one of ``invalid_input``, ``already_exists``,
    ``asset_not_found``, ``processing_failed``, ``permission_denied`` or
    ``network_error``.
    """

    def __init__(self, code: str, message: str) -> None:
        super().__init__(message)
        self.code = code
        self.message = message


# ── Task manifest ─────────────────────────────────────────────────


def _stringify_date(value: Any) -> Any:
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    return value


class TaskInfo(BaseModel):
    id: str = ""
    title: str = ""
    type: str = ""
    status: str = ""
    priority: str = ""
    size: str = ""
    points: int = 0


class TaskOwner(BaseModel):
    name: str = ""
    email: str = ""
    github: str = ""


class TaskTeam(BaseModel):
    name: str = ""
    stream: str = ""
    members: list[str] = Field(default_factory=list)


class TaskDates(BaseModel):
    created: str = ""
    started: Optional[str] = None
    target: str = ""
    completed: Optional[str] = None
    last_updated: str = ""

    @field_validator("created", "started", "target", "completed", "last_updated", mode="before")
    @classmethod
    def _dates_as_text(cls, value: Any) -> Any:
        return _stringify_date(value)


class WorkflowStage(BaseModel):
    name: str = ""
    status: str = ""
    progress: int = 0
    started: Optional[str] = None
    completed: Optional[str] = None
    artifacts: list[str] = Field(default_factory=list)

    @field_validator("started", "completed", mode="before")
    @classmethod
    def _dates_as_text(cls, value: Any) -> Any:
        return _stringify_date(value)


class TaskWorkflow(BaseModel):
    current_stage: str = ""
    completed_stages: list[str] = Field(default_factory=list)
    stages: dict[str, WorkflowStage] = Field(default_factory=dict)


class SuccessCriteria(BaseModel):
    business: list[str] = Field(default_factory=list)
    technical: list[str] = Field(default_factory=list)
    user_experience: list[str] = Field(default_factory=list)


class TaskDependencies(BaseModel):
    upstream: list[str] = Field(default_factory=list)
    downstream: list[str] = Field(default_factory=list)


class TaskRisk(BaseModel):
    level: str = ""
    factors: list[str] = Field(default_factory=list)


class TaskManifest(BaseModel):
    """The parts of a task ``manifest.yaml`` that templates can reference."""

    schema_version: str = ""
    task: TaskInfo = Field(default_factory=TaskInfo)
    owner: TaskOwner = Field(default_factory=TaskOwner)
    team: TaskTeam = Field(default_factory=TaskTeam)
    dates: TaskDates = Field(default_factory=TaskDates)
    workflow: TaskWorkflow = Field(default_factory=TaskWorkflow)
    success_criteria: SuccessCriteria = Field(default_factory=SuccessCriteria)
    dependencies: TaskDependencies = Field(default_factory=TaskDependencies)
    risk: TaskRisk = Field(default_factory=TaskRisk)
    labels: list[str] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)
    custom_fields: dict[str, Any] = Field(default_factory=dict)


def _parse_task_manifest(path: Path) -> TaskManifest:
    try:
        with path.open("r", encoding="utf-8") as handle:
            data = YAML(typ="safe").load(handle) or {}
    except OSError as exc:
        raise DraftError("invalid_input", f"failed to read manifest file: {exc}") from exc
    except YAMLError as exc:
        raise DraftError("invalid_input", f"failed to parse manifest file: {exc}") from exc
    if not isinstance(data, dict):
        data = {}
    try:
        return TaskManifest.model_validate(data)
    except ValidationError as exc:
        raise DraftError("invalid_input", f"failed to parse manifest file: {exc}") from exc


def load_task_manifest(start: Path | None = None) -> tuple[TaskManifest, Path]:
    """Find the nearest ``manifest.yaml`` at or above ``start``.

    The first manifest found must describe a task (``task.id``); the search
    does not continue past a non-task manifest.

    Returns:
        ``(manifest, task_dir)``

    Raises:
        DraftError: no manifest, unreadable manifest, or not a task manifest.
    """
    directory = (start or Path.cwd()).resolve()
    for candidate in (directory, *directory.parents):
        manifest_file = candidate / MANIFEST_FILENAME
        if not manifest_file.is_file():
            continue
        manifest = _parse_task_manifest(manifest_file)
        if not manifest.task.id:
            raise DraftError("invalid_input", "manifest.yaml found but does not contain task information")
        logger.debug("Loaded task manifest %s from %s", manifest.task.id, candidate)
        return manifest, candidate

    raise DraftError(
        "invalid_input",
        "no task manifest.yaml found in current directory or parent directories",
    )


# ── Activity lookup and output placement ──────────────────────────


def find_similar_activities(activity: str, records: Iterable[AssetRecord]) -> list[str]:
    """Commands that contain, or are contained in, ``activity``."""
    needle = activity.lower()
    suggestions: list[str] = []
    for record in records:
        command = record.command.lower()
        name = record.name.lower()
        if needle in command or command in needle or needle in name or name in needle:
            suggestions.append(record.command)
            if len(suggestions) >= MAX_SUGGESTIONS:
                break
    return suggestions


def work_type_directory(record: AssetRecord) -> str:
    """First workflow stage, then tags, then category; root level otherwise."""
    if record.workflow_stages and record.workflow_stages[0] in WORK_TYPE_DIRS:
        return WORK_TYPE_DIRS[record.workflow_stages[0]]
    for tag in record.tags:
        if tag in WORK_TYPE_DIRS:
            return WORK_TYPE_DIRS[tag]
    return WORK_TYPE_DIRS.get(record.category, "")


def determine_output_path(record: AssetRecord, task_dir: Path, custom: str | Path | None = None) -> Path:
    if custom:
        custom_path = Path(custom)
        return custom_path if custom_path.is_absolute() else task_dir / custom_path

    if record.output_file:
        # Catalog outputs are repository paths, often with a .tmpl suffix.
        filename = Path(record.output_file).name.removesuffix(".tmpl")
    else:
        filename = record.command + _EXTENSIONS.get(record.format, ".md")
    work_dir = work_type_directory(record)
    return task_dir / work_dir / filename if work_dir else task_dir / filename


def build_template_data(manifest: TaskManifest, now: datetime | None = None) -> dict[str, Any]:
    """Flatten ``manifest`` into the upper-case variables templates use."""
    now = now or datetime.now()
    data: dict[str, Any] = {
        "TASK_ID": manifest.task.id,
        "TASK_TITLE": manifest.task.title,
        "TASK_TYPE": manifest.task.type,
        "TASK_STATUS": manifest.task.status,
        "PRIORITY": manifest.task.priority,
        "SIZE": manifest.task.size,
        "STORY_POINTS": manifest.task.points,
        "OWNER_NAME": manifest.owner.name,
        "OWNER_EMAIL": manifest.owner.email,
        "GITHUB_USERNAME": manifest.owner.github,
        "TEAM_NAME": manifest.team.name,
        "STREAM_TYPE": manifest.team.stream,
        "TEAM_MEMBERS": list(manifest.team.members),
        "CREATED_DATE": manifest.dates.created,
        "TARGET_DATE": manifest.dates.target,
        "LAST_UPDATED": manifest.dates.last_updated,
        "CURRENT_STAGE": manifest.workflow.current_stage,
        "COMPLETED_STAGES": list(manifest.workflow.completed_stages),
        "WORKFLOW_STAGES": {key: stage.model_dump() for key, stage in manifest.workflow.stages.items()},
        "BUSINESS_CRITERIA": list(manifest.success_criteria.business),
        "TECHNICAL_CRITERIA": list(manifest.success_criteria.technical),
        "UX_CRITERIA": list(manifest.success_criteria.user_experience),
        "UPSTREAM_DEPS": list(manifest.dependencies.upstream),
        "DOWNSTREAM_DEPS": list(manifest.dependencies.downstream),
        "RISK_LEVEL": manifest.risk.level,
        "RISK_FACTORS": list(manifest.risk.factors),
        "LABELS": list(manifest.labels),
        "TAGS": list(manifest.tags),
        "CUSTOM_FIELDS": dict(manifest.custom_fields),
        "CURRENT_DATE": now.strftime("%Y-%m-%d"),
        "CURRENT_DATETIME": now.strftime("%Y-%m-%d %H:%M:%S"),
    }
    if manifest.dates.started is not None:
        data["STARTED_DATE"] = manifest.dates.started
    if manifest.dates.completed is not None:
        data["COMPLETED_DATE"] = manifest.dates.completed
    return data


# ── Service ───────────────────────────────────────────────────────


@dataclass(slots=True)
class DraftResult:
    activity: str
    task_id: str
    path: Path
    content: str
    written: bool = False
    preview: bool = False

    def to_dict(self) -> dict[str, object]:
        return {
            "activity": self.activity,
            "task_id": self.task_id,
            "path": str(self.path),
            "written": self.written,
            "preview": self.preview,
        }


class DraftService:
    """Render an activity template for the task that owns ``start``."""

    def __init__(
        self,
        assets: AssetSource,
        engine: TemplateEngine,
        start: Path | None = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.assets = assets
        self.engine = engine
        self.start = start
        self._clock = clock

    def find_activity(self, activity: str, scope: CancelScope | None = None) -> AssetRecord:
        templates = self._list_templates(scope)
        for record in templates:
            if record.command == activity:
                return record

        message = f"Unknown activity '{activity}'"
        suggestions = find_similar_activities(activity, templates)
        if suggestions:
            message += f". Did you mean: {', '.join(suggestions)}?"
        raise DraftError("invalid_input", message)

    def _list_templates(self, scope: CancelScope | None) -> list[AssetRecord]:
        """Every template record, walking the listing page by page."""
        records: list[AssetRecord] = []
        offset = 0
        while True:
            page_filter = AssetFilter(type=AssetType.TEMPLATE.value, limit=ACTIVITY_PAGE_SIZE, offset=offset)
            try:
                listing = self.assets.list_assets(page_filter, scope)
            except AssetClientError as exc:
                raise DraftError("network_error", f"failed to list assets: {exc}") from exc
            records.extend(listing.assets)
            if not listing.has_more or not listing.assets:
                return records
            offset += len(listing.assets)

    def render(self, record: AssetRecord, manifest: TaskManifest, scope: CancelScope | None = None) -> str:
        try:
            content = self.assets.get_asset(
                record.name, GetAssetOptions(include_metadata=True, use_cache=True), scope
            )
        except AssetClientError as exc:
            raise DraftError("asset_not_found", f"failed to fetch template: {exc}") from exc

        fmt = record.format if record.format in _PROCESSOR_FORMATS else "markdown"
        try:
            text = content.text
            template = self.engine.compile_template(record.name, text, combine(record, text))
            rendered = self.engine.render_template(template, build_template_data(manifest, self._clock()))
            return get_processor(fmt).process(rendered)
        except (UnicodeDecodeError, TemplateEngineError, ProcessingError) as exc:
            raise DraftError("processing_failed", f"failed to process template: {exc}") from exc

    def draft(
        self,
        activity: str,
        force: bool = False,
        preview: bool = False,
        output: str | Path | None = None,
        scope: CancelScope | None = None,
    ) -> DraftResult:
        """Render ``activity`` and write it unless ``preview`` is set.

        Raises:
            DraftError: unknown activity, existing file without ``force``,
                fetch or render failure, or an unwritable destination.
        """
        manifest, task_dir = load_task_manifest(self.start)
        logger.debug("Drafting %s for task %s in %s", activity, manifest.task.id, task_dir)
        record = self.find_activity(activity, scope)
        path = determine_output_path(record, task_dir, output)

        if not force and not preview and path.exists():
            raise DraftError(
                "already_exists",
                f"File {path.name} already exists. Use --force to overwrite or --preview to see content",
            )

        content = self.render(record, manifest, scope)
        result = DraftResult(activity=activity, task_id=manifest.task.id, path=path, content=content)
        if preview:
            result.preview = True
            return result

        try:
            path.parent.mkdir(parents=True, exist_ok=True, mode=0o755)
            atomic_write(path, content.encode("utf-8"), mode=0o644)
        except OSError as exc:
            raise DraftError("permission_denied", f"failed to write file: {exc}") from exc

        result.written = True
        logger.info("Generated %s for task %s", path, manifest.task.id)
        return result
