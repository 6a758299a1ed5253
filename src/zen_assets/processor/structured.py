"""Processors for machine-readable outputs: YAML, JSON, XML, OpenAPI and
Dockerfiles."""

from __future__ import annotations

import json
import re
import xml.etree.ElementTree as ElementTree

from ruamel.yaml import YAML
from ruamel.yaml.error import YAMLError

from zen_assets.processor.base import FormatProcessor, finish, normalize_newlines, strip_trailing_whitespace

_FROM_INSTRUCTION = re.compile(r"^\s*FROM\s+", re.IGNORECASE)


def _load_yaml(text: str):
    return YAML(typ="safe").load(text)


class YAMLProcessor(FormatProcessor):
    output_type = "yaml"
    description = "YAML configuration file generation with syntax validation"

    def normalize(self, text: str) -> str:
        text = strip_trailing_whitespace(normalize_newlines(text))
        text = "\n".join(line.replace("\t", "  ") if line.strip() else "" for line in text.split("\n"))
        return finish(text)

    def validate(self, text: str) -> None:
        if not text.strip():
            self.fail("YAML output is empty")
        try:
            _load_yaml(text)
        except YAMLError as exc:
            self.fail(f"invalid YAML syntax: {exc}")

        for number, line in enumerate(text.split("\n"), start=1):
            stripped = line.strip()
            if not stripped or stripped.startswith("#"):
                continue
            if "\t" in line:
                self.fail(f"tabs found at line {number}, YAML should use spaces for indentation")
            if line != line.rstrip(" \t"):
                self.fail(f"trailing whitespace found at line {number}")


class JSONProcessor(FormatProcessor):
    output_type = "json"
    description = "JSON data file generation with syntax validation"

    def normalize(self, text: str) -> str:
        text = text.strip()
        try:
            data = json.loads(text)
        except ValueError:
            return text + "\n"
        return json.dumps(data, indent=2, ensure_ascii=False) + "\n"

    def validate(self, text: str) -> None:
        if not text.strip():
            self.fail("JSON output is empty")
        try:
            json.loads(text)
        except ValueError as exc:
            self.fail(f"invalid JSON syntax: {exc}")


class XMLProcessor(FormatProcessor):
    output_type = "xml"
    description = "XML document generation with structure validation"

    def normalize(self, text: str) -> str:
        return finish(text)

    def validate(self, text: str) -> None:
        if not text.strip():
            self.fail("XML output is empty")
        try:
            ElementTree.fromstring(text.strip())
        except ElementTree.ParseError as exc:
            self.fail(f"invalid XML syntax: {exc}")


class DockerfileProcessor(FormatProcessor):
    output_type = "dockerfile"
    description = "Dockerfile generation with instruction validation"

    def normalize(self, text: str) -> str:
        return finish(strip_trailing_whitespace(text))

    def validate(self, text: str) -> None:
        if not text.strip():
            self.fail("dockerfile output is empty")
        for line in text.split("\n"):
            stripped = line.strip()
            if not stripped or stripped.startswith("#"):
                continue
            if _FROM_INSTRUCTION.match(line):
                return
            self.fail("dockerfile must start with FROM instruction")
        self.fail("dockerfile is missing FROM instruction")


class OpenAPIProcessor(FormatProcessor):
    output_type = "openapi"
    description = "OpenAPI specification generation with schema validation"

    def normalize(self, text: str) -> str:
        return finish(strip_trailing_whitespace(text))

    def validate(self, text: str) -> None:
        if not text.strip():
            self.fail("OpenAPI output is empty")
        try:
            document = _load_yaml(text)
        except YAMLError as exc:
            self.fail(f"invalid OpenAPI YAML syntax: {exc}")
        if not isinstance(document, dict):
            self.fail("OpenAPI document must be a mapping")
        if "openapi" not in document:
            self.fail("missing required 'openapi' field")
        if "info" not in document:
            self.fail("missing required 'info' field")
