"""Named helper functions exposed to templates.

Every function is registered on the Jinja environment as a global
(``{{ camelCase(title) }}``). Functions whose names Jinja does not already
use as filters are also registered as filters with the subject first
(``{{ title | camelCase }}``); ``default``, ``truncate``, ``indent`` and the
other shared names keep Jinja's filter behaviour.
"""

from __future__ import annotations

import logging
import os
import re
import secrets
import textwrap
import time
from datetime import date, datetime, timedelta
from typing import Any, Callable

from jinja2 import Undefined

from zen_assets import __version__

logger = logging.getLogger(__name__)

DATE_FORMAT = "%Y-%m-%d"
DATETIME_FORMAT = "%Y-%m-%d %H:%M:%S"

ZENFLOW_STAGES: tuple[tuple[str, str], ...] = (
    ("01-align", "Align"),
    ("02-discover", "Discover"),
    ("03-prioritize", "Prioritize"),
    ("04-design", "Design"),
    ("05-build", "Build"),
    ("06-ship", "Ship"),
    ("07-learn", "Learn"),
)
_STAGE_IDS = [stage_id for stage_id, _ in ZENFLOW_STAGES]
_STAGE_NAMES = dict(ZENFLOW_STAGES)

_LEADING_INT = re.compile(r"^\s*[+-]?\d+")
_LEADING_FLOAT = re.compile(r"^\s*[+-]?(\d+(\.\d*)?|\.\d+)([eE][+-]?\d+)?")


def _is_missing(value: Any) -> bool:
    return value is None or isinstance(value, Undefined) or (isinstance(value, str) and value == "")


def _random_bytes(count: int) -> bytes | None:
    try:
        return secrets.token_bytes(count)
    except (OSError, NotImplementedError) as exc:
        logger.warning("Secure random source unavailable, using timestamp fallback: %s", exc)
        return None


def _parse_date(value: Any) -> date | None:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return datetime.strptime(str(value), DATE_FORMAT).date()
    except ValueError:
        return None


def _split_words(text: str, separators: str) -> list[str]:
    return [word for word in re.split(f"[{re.escape(separators)}]+", text) if word]


def to_float(value: Any) -> float:
    """Coerce numbers and numeric strings; anything else is 0."""
    if isinstance(value, bool):
        return 0.0
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        match = _LEADING_FLOAT.match(value)
        if match:
            return float(match.group(0))
    return 0.0


def to_int(value: Any) -> int:
    if isinstance(value, bool):
        return 0
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value)
    if isinstance(value, str):
        match = _LEADING_INT.match(value)
        if match:
            return int(match.group(0))
    return 0


def to_string(value: Any) -> str:
    if value is None:
        return "<nil>"
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _math(a: Any, b: Any, op: Callable[[float, float], float]) -> int | float:
    if _is_int(a) and _is_int(b):
        return op(a, b)
    return op(to_float(a), to_float(b))


class FunctionRegistry:
    """Closed set of pure template helpers.

    Args:
        workspace_root: Root used by the path helpers and ``zenWorkspace``.
        clock: Returns the current local datetime, used by the date helpers.
    """

    def __init__(self, workspace_root: str = ".", clock: Callable[[], datetime] = datetime.now):
        self.workspace_root = str(workspace_root)
        self._clock = clock
        self._functions: dict[str, Callable[..., Any]] = {}
        self._register_builtins()

    def register(self, name: str, fn: Callable[..., Any]) -> None:
        if not name:
            raise ValueError("function name cannot be empty")
        if fn is None or not callable(fn):
            raise ValueError(f"function '{name}' must be callable")
        self._functions[name] = fn
        logger.debug("Registered template function %s", name)

    def functions(self) -> dict[str, Callable[..., Any]]:
        return dict(self._functions)

    def __contains__(self, name: str) -> bool:
        return name in self._functions

    def _register_builtins(self) -> None:
        builtins: dict[str, Callable[..., Any]] = {
            # IDs
            "taskID": self.task_id,
            "taskIDShort": self.task_id_short,
            "randomID": self.random_id,
            # Time
            "now": self.now,
            "today": self.today,
            "tomorrow": self.tomorrow,
            "formatDate": self.format_date,
            "formatTime": self.format_time,
            "addDays": self.add_days,
            "workingDays": self.working_days,
            # Workflow
            "zenflowStages": self.zenflow_stages,
            "stageNumber": self.stage_number,
            "stageName": self.stage_name,
            "nextStage": self.next_stage,
            "prevStage": self.prev_stage,
            "isStageCompleted": self.is_stage_completed,
            # Paths
            "workspacePath": self.workspace_path,
            "relativePath": self.relative_path,
            "joinPath": self.join_path,
            "fileName": self.file_name,
            "fileExt": self.file_ext,
            "dirName": self.dir_name,
            # Strings
            "upper": lambda s: str(s).upper(),
            "lower": lambda s: str(s).lower(),
            "trim": lambda s: str(s).strip(),
            "trimLeft": lambda s, cutset=None: str(s).lstrip(cutset),
            "trimRight": lambda s, cutset=None: str(s).rstrip(cutset),
            "camelCase": self.camel_case,
            "pascalCase": self.pascal_case,
            "snakeCase": self.snake_case,
            "kebabCase": self.kebab_case,
            "titleCase": self.title_case,
            "slugify": self.slugify,
            "indent": self.indent,
            "dedent": self.dedent,
            "wrap": self.wrap,
            "truncate": self.truncate,
            "pad": self.pad,
            # Collections
            "join": lambda items, separator="": separator.join(str(item) for item in items),
            "split": lambda s, separator: str(s).split(separator),
            "contains": lambda s, sub: sub in s,
            "hasPrefix": lambda s, prefix: str(s).startswith(prefix),
            "hasSuffix": lambda s, suffix: str(s).endswith(suffix),
            "replace": lambda s, old, new: str(s).replace(old, new),
            # Conditionals
            "default": self.default,
            "coalesce": self.coalesce,
            "ternary": self.ternary,
            # Math
            "add": lambda a, b: _math(a, b, lambda x, y: x + y),
            "sub": lambda a, b: _math(a, b, lambda x, y: x - y),
            "mul": lambda a, b: _math(a, b, lambda x, y: x * y),
            "div": self.div,
            "mod": self.mod,
            # Conversion
            "toString": to_string,
            "toInt": to_int,
            # Metadata
            "zenVersion": lambda: __version__,
            "zenWorkspace": lambda: self.workspace_root,
            "zenConfig": self.zen_config,
        }
        self._functions.update(builtins)

    # ── IDs ───────────────────────────────────────────────────────

    def task_id(self, prefix: str) -> str:
        """``<prefix>-YYMMDD-<4 hex upper>``."""
        stamp = self._clock().strftime("%y%m%d")
        raw = _random_bytes(2)
        if raw is None:
            return f"{prefix}-{stamp}"
        return f"{prefix}-{stamp}-{raw.hex().upper()}"

    def task_id_short(self, prefix: str) -> str:
        raw = _random_bytes(2)
        if raw is None:
            return f"{prefix}-{int(time.time()) % 10000}"
        return f"{prefix}-{raw.hex().upper()}"

    def random_id(self, length: int = 8) -> str:
        length = to_int(length)
        if length <= 0:
            length = 8
        raw = _random_bytes((length + 1) // 2)
        if raw is None:
            return f"ID{time.time_ns() % 1000000}"
        return raw.hex()[:length].upper()

    # ── Time ──────────────────────────────────────────────────────

    def now(self) -> str:
        return self._clock().strftime(DATETIME_FORMAT)

    def today(self) -> str:
        return self._clock().strftime(DATE_FORMAT)

    def tomorrow(self) -> str:
        return (self._clock() + timedelta(days=1)).strftime(DATE_FORMAT)

    def format_date(self, value: Any, layout: str) -> str:
        """Reformat a date, datetime or ``YYYY-MM-DD`` string with ``layout``.

        Unparseable strings come back unchanged.
        """
        if isinstance(value, (date, datetime)):
            return value.strftime(layout)
        if isinstance(value, str):
            parsed = _parse_date(value)
            return parsed.strftime(layout) if parsed else value
        return to_string(value)

    def format_time(self, value: datetime, layout: str) -> str:
        return value.strftime(layout)

    def add_days(self, value: str, days: int) -> str:
        parsed = _parse_date(value)
        if parsed is None:
            return value
        return (parsed + timedelta(days=to_int(days))).strftime(DATE_FORMAT)

    def working_days(self, start: str, end: str) -> int:
        """Count weekdays in the closed interval ``[start, end]``."""
        first, last = _parse_date(start), _parse_date(end)
        if first is None or last is None:
            return 0
        days = 0
        current = first
        while current <= last:
            if current.weekday() < 5:
                days += 1
            current += timedelta(days=1)
        return days

    # ── Workflow ──────────────────────────────────────────────────

    def zenflow_stages(self) -> list[dict[str, Any]]:
        return [
            {"number": number, "id": stage_id, "name": name}
            for number, (stage_id, name) in enumerate(ZENFLOW_STAGES, start=1)
        ]

    def stage_number(self, stage_id: str) -> int:
        return _STAGE_IDS.index(stage_id) + 1 if stage_id in _STAGE_NAMES else 0

    def stage_name(self, stage_id: str) -> str:
        return _STAGE_NAMES.get(stage_id, stage_id)

    def next_stage(self, stage_id: str) -> str:
        if stage_id in _STAGE_NAMES:
            index = _STAGE_IDS.index(stage_id)
            if index < len(_STAGE_IDS) - 1:
                return _STAGE_IDS[index + 1]
        return stage_id

    def prev_stage(self, stage_id: str) -> str:
        if stage_id in _STAGE_NAMES:
            index = _STAGE_IDS.index(stage_id)
            if index > 0:
                return _STAGE_IDS[index - 1]
        return stage_id

    def is_stage_completed(self, stage_id: str, completed: list[str]) -> bool:
        return stage_id in (completed or [])

    # ── Paths ─────────────────────────────────────────────────────

    def workspace_path(self, path: str) -> str:
        return os.path.normpath(os.path.join(self.workspace_root, path))

    def relative_path(self, path: str) -> str:
        if not self.workspace_root:
            return path
        try:
            return os.path.relpath(path, self.workspace_root)
        except ValueError:
            return path

    def join_path(self, *parts: str) -> str:
        if not parts:
            return ""
        return os.path.normpath(os.path.join(*parts))

    def file_name(self, path: str) -> str:
        stripped = path.rstrip("/")
        if not stripped:
            return "/" if path else "."
        return os.path.basename(stripped)

    def file_ext(self, path: str) -> str:
        return os.path.splitext(path)[1]

    def dir_name(self, path: str) -> str:
        return os.path.dirname(path.rstrip("/")) or "."

    # ── Strings ───────────────────────────────────────────────────

    def camel_case(self, text: str) -> str:
        words = _split_words(text, " _-")
        if not words:
            return text
        return words[0].lower() + "".join(word[:1].upper() + word[1:].lower() for word in words[1:])

    def pascal_case(self, text: str) -> str:
        return "".join(word[:1].upper() + word[1:].lower() for word in _split_words(text, " _-"))

    def snake_case(self, text: str) -> str:
        return "_".join(_split_words(text, " -")).lower()

    def kebab_case(self, text: str) -> str:
        return "-".join(_split_words(text, " _")).lower()

    def title_case(self, text: str) -> str:
        return " ".join(word[:1].upper() + word[1:] for word in text.lower().split())

    def slugify(self, text: str) -> str:
        return re.sub(r"[^a-z0-9]+", "-", text.lower()).strip("-")

    def indent(self, text: str, spaces: int) -> str:
        """Prefix every non-blank line with ``spaces`` spaces."""
        spaces = to_int(spaces)
        if spaces <= 0:
            return text
        prefix = " " * spaces
        return "\n".join(prefix + line if line.strip() else line for line in text.split("\n"))

    def dedent(self, text: str) -> str:
        return textwrap.dedent(text.expandtabs(4))

    def wrap(self, text: str, width: int) -> str:
        width = to_int(width)
        words = text.split()
        if width <= 0 or not words:
            return text
        lines: list[str] = []
        current = ""
        for word in words:
            if not current:
                current = word
            elif len(current) + 1 + len(word) <= width:
                current = f"{current} {word}"
            else:
                lines.append(current)
                current = word
        lines.append(current)
        return "\n".join(lines)

    def truncate(self, text: str, length: int) -> str:
        length = to_int(length)
        if len(text) <= length:
            return text
        if length <= 3:
            return text[:max(length, 0)]
        return text[: length - 3] + "..."

    def pad(self, text: str, length: int, fill: str = " ") -> str:
        length = to_int(length)
        if len(text) >= length:
            return text
        fill = fill or " "
        padding = fill * (-(-(length - len(text)) // len(fill)))
        return text + padding[: length - len(text)]

    # ── Conditionals & math ───────────────────────────────────────

    def default(self, value: Any, fallback: Any) -> Any:
        return fallback if _is_missing(value) else value

    def coalesce(self, *values: Any) -> Any:
        for value in values:
            if not _is_missing(value):
                return value
        return None

    def ternary(self, condition: Any, true_value: Any, false_value: Any) -> Any:
        return true_value if condition else false_value

    def div(self, a: Any, b: Any) -> float:
        divisor = to_float(b)
        if divisor == 0:
            return 0
        return to_float(a) / divisor

    def mod(self, a: Any, b: Any) -> int:
        """Integer remainder; non-integer operands or a zero divisor give 0."""
        if _is_int(a) and _is_int(b) and b != 0:
            return a % b
        return 0

    def zen_config(self) -> dict[str, Any]:
        return {"workspace_root": self.workspace_root, "version": __version__}
