"""AI prompt output: XML-structured prompts with semantic sections.

A prompt looks like::

    <role>You are a release engineer.</role>
    <objective>Draft the release notes.</objective>
    <policies>
    - **MUST** cite the changelog
    </policies>
"""

from __future__ import annotations

import re
import xml.etree.ElementTree as ElementTree

from zen_assets.processor.base import BLANK_RUNS, FormatProcessor, finish, normalize_newlines

SEMANTIC_ELEMENTS = ("role", "objective", "policies", "workflow", "inputs", "examples", "constraints")
REQUIRED_ELEMENTS = ("role", "objective")

_BETWEEN_TAGS = re.compile(r">\s*<")
_TAG = re.compile(r"<\s*(/?)(\w+)(?:\s+[^>]*)?\s*(/?)>")
_POLICIES = re.compile(r"<policies>(.*?)</policies>", re.DOTALL)
_BULLET = re.compile(r"^[-*]\s+")


def indent_elements(text: str) -> str:
    lines = []
    level = 0
    for line in text.split("\n"):
        stripped = line.strip()
        if not stripped:
            lines.append("")
            continue
        if stripped.startswith("</"):
            level = max(level - 1, 0)
        lines.append("  " * level + stripped)
        if stripped.startswith("<") and not stripped.startswith("</") and not stripped.endswith("/>"):
            level += 1
    return "\n".join(lines)


def check_balanced_tags(text: str) -> str | None:
    """Return a description of the first tag imbalance, or None."""
    stack: list[str] = []
    for closing, name, self_closing in _TAG.findall(text):
        if self_closing:
            continue
        if not closing:
            stack.append(name)
            continue
        if not stack:
            return f"unexpected closing tag: </{name}>"
        if stack[-1] != name:
            return f"mismatched tags: expected </{stack[-1]}> but found </{name}>"
        stack.pop()
    if stack:
        return f"unclosed tags: [{' '.join(stack)}]"
    return None


class PromptProcessor(FormatProcessor):
    output_type = "prompt"
    description = "AI prompt XML structure generation with semantic validation"

    def normalize(self, text: str) -> str:
        text = normalize_newlines(text)
        text = self._format_structure(text)
        text = self._format_semantic_elements(text)
        return finish(text)

    def _format_structure(self, text: str) -> str:
        # Short single-line prompts are left as written.
        if text.count("<") <= 4 and "\n" not in text:
            return text
        return indent_elements(_BETWEEN_TAGS.sub(">\n<", text))

    def _format_semantic_elements(self, text: str) -> str:
        present = sum(1 for element in SEMANTIC_ELEMENTS if re.search(rf"<{element}\s*>", text))
        if present <= 2 and text.count("\n") <= 2:
            return text
        for element in SEMANTIC_ELEMENTS:
            text = re.sub(rf"(<\s*{element}\s*>)", r"\n\1\n", text)
            text = re.sub(rf"(<\s*/\s*{element}\s*>)", r"\n\1\n", text)
        return BLANK_RUNS.sub("\n\n", text)

    def validate(self, text: str) -> None:
        if not text.strip():
            self.fail("prompt output is empty")
        try:
            ElementTree.fromstring(f"<prompt>{text}</prompt>")
        except ElementTree.ParseError:
            try:
                ElementTree.fromstring(text.strip())
            except ElementTree.ParseError as exc:
                self.fail(f"invalid XML structure: {exc}")

        problem = check_balanced_tags(text)
        if problem:
            self.fail(problem)

        for element in REQUIRED_ELEMENTS:
            if not re.search(rf"<\s*{element}\s*>.*?<\s*/\s*{element}\s*>", text, re.DOTALL):
                self.fail(f"required semantic element <{element}> is missing or malformed")
            if re.search(rf"<{element}\s*>\s*</{element}>", text):
                self.fail(f"{element} element cannot be empty")

        match = _POLICIES.search(text)
        if match is not None:
            self._validate_policies(match.group(1))

    def _validate_policies(self, body: str) -> None:
        lines = [
            line.strip()
            for line in body.strip().split("\n")
            if line.strip() and not line.strip().startswith("<!--")
        ]
        if not lines:
            self.fail("policies element is empty")
        # Continuation lines are allowed, but at least one entry must be a bullet.
        if not any(_BULLET.match(line) for line in lines):
            self.fail("policies must be written as bullet points")
