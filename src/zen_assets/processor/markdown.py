"""Markdown output: spacing normalization and structural checks."""

from __future__ import annotations

import re

from zen_assets.processor.base import BLANK_RUNS, FormatProcessor, finish, normalize_newlines

_HEADING_BREAK = re.compile(r"\n(#{1,6})\s")
_LIST_ITEM = re.compile(r"^([-*+]|\d+\.)\s+")
_CODE_BLOCK = re.compile(r"^```[\s\S]*?^```$", re.MULTILINE)
_MALFORMED_HEADER = re.compile(r"#{7,}|^#{1,6}[^#\s]")
_HEADER = re.compile(r"^(#{1,6})\s+(.*)$")
_LINK = re.compile(r"\[([^\]]*)\]\(([^)]*)\)")


def format_lists(text: str) -> str:
    """Put a blank line before a list and after it ends."""
    lines = text.split("\n")
    formatted: list[str] = []
    in_list = False
    for index, line in enumerate(lines):
        stripped = line.strip()
        if _LIST_ITEM.match(stripped):
            if not in_list and index > 0 and lines[index - 1].strip():
                formatted.append("")
            in_list = True
        elif in_list and stripped:
            if formatted and formatted[-1].strip():
                formatted.append("")
            in_list = False
        formatted.append(line)
    return "\n".join(formatted)


def format_code_blocks(text: str) -> str:
    text = _CODE_BLOCK.sub(lambda match: f"\n\n{match.group(0)}\n\n", text)
    return BLANK_RUNS.sub("\n\n", text)


class MarkdownProcessor(FormatProcessor):
    output_type = "markdown"
    description = "Markdown document generation with structure validation"

    def normalize(self, text: str) -> str:
        text = normalize_newlines(text)
        text = BLANK_RUNS.sub("\n\n", text)
        text = _HEADING_BREAK.sub(r"\n\n\1 ", text)
        text = format_lists(text)
        text = format_code_blocks(text)
        return finish(text)

    def validate(self, text: str) -> None:
        if not text.strip():
            self.fail("markdown output is empty")
        if _MALFORMED_HEADER.search(text):
            self.fail("malformed headers detected")

        for number, line in enumerate(text.split("\n"), start=1):
            header = _HEADER.match(line)
            if header and not header.group(2).strip():
                self.fail(f"empty header at line {number}")
            for link_text, url in _LINK.findall(line):
                if not link_text.strip():
                    self.fail(f"empty link text at line {number}")
                if not url.strip():
                    self.fail(f"empty link URL at line {number}")

        fences = text.count("```")
        if fences % 2:
            self.fail(f"unmatched code block delimiters (found {fences})")
