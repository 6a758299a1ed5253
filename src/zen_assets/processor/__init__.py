"""Post-processing of rendered template output, one processor per format."""

from __future__ import annotations

from zen_assets.processor.base import FormatProcessor, ProcessingError, TextProcessor
from zen_assets.processor.markdown import MarkdownProcessor
from zen_assets.processor.prompt import PromptProcessor
from zen_assets.processor.structured import (
    DockerfileProcessor,
    JSONProcessor,
    OpenAPIProcessor,
    XMLProcessor,
    YAMLProcessor,
)

PROCESSORS: dict[str, type[FormatProcessor]] = {
    "markdown": MarkdownProcessor,
    "md": MarkdownProcessor,
    "yaml": YAMLProcessor,
    "yml": YAMLProcessor,
    "json": JSONProcessor,
    "xml": XMLProcessor,
    "prompt": PromptProcessor,
    "dockerfile": DockerfileProcessor,
    "openapi": OpenAPIProcessor,
    "text": TextProcessor,
}


def get_processor(fmt: str | None) -> FormatProcessor:
    """Processor for ``fmt``; unknown or empty formats get the text processor."""
    return PROCESSORS.get((fmt or "").strip().lower(), TextProcessor)()


def supported_formats() -> list[str]:
    return sorted(PROCESSORS)


__all__ = [
    "DockerfileProcessor",
    "FormatProcessor",
    "JSONProcessor",
    "MarkdownProcessor",
    "OpenAPIProcessor",
    "PROCESSORS",
    "ProcessingError",
    "PromptProcessor",
    "TextProcessor",
    "XMLProcessor",
    "YAMLProcessor",
    "get_processor",
    "supported_formats",
]
