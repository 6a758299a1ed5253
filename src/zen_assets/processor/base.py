"""Shared pieces of the output format processors."""

from __future__ import annotations

import re
from typing import NoReturn


class ProcessingError(ValueError):
    """Rendered output failed its format's validation rule."""

    def __init__(self, output_type: str, message: str):
        super().__init__(message)
        self.output_type = output_type
        self.message = message


BLANK_RUNS = re.compile(r"\n{3,}")


def normalize_newlines(text: str) -> str:
    return text.replace("\r\n", "\n")


def strip_trailing_whitespace(text: str) -> str:
    return "\n".join(line.rstrip(" \t") for line in text.split("\n"))


def finish(text: str) -> str:
    """Trim surrounding whitespace and end with exactly one newline."""
    return text.strip() + "\n"


class FormatProcessor:
    """Normalizes rendered output for one format and optionally validates it.

    Subclasses override ``normalize`` and ``validate``. ``process`` always
    normalizes; validation only runs when ``strict`` is set.
    """

    output_type = "text"
    description = "Generic template output with basic formatting"

    def normalize(self, text: str) -> str:
        return finish(normalize_newlines(text))

    def validate(self, text: str) -> None:
        if not text.strip():
            self.fail("output is empty")

    def process(self, text: str, strict: bool = False) -> str:
        formatted = self.normalize(text)
        if strict:
            self.validate(formatted)
        return formatted

    def fail(self, message: str) -> NoReturn:
        raise ProcessingError(self.output_type, message)


class TextProcessor(FormatProcessor):
    """Default processor: trailing whitespace stripped, single final newline."""

    def normalize(self, text: str) -> str:
        return finish(strip_trailing_whitespace(normalize_newlines(text)))
