"""Lifecycle collaborator: task classification and prompt templates.

The coordinator only talks to the :class:`Lifecycle` protocol. Data crosses
the boundary as JSON text so a plugin-hosted implementation can satisfy it
without sharing Python types.
"""
from __future__ import annotations

import json
import logging
from pathlib import Path
from string import Template
from typing import Mapping, Protocol, Sequence

from trustee.errors import TemplateLoadError

logger = logging.getLogger(__name__)

SYSTEM_TEMPLATE = "system"
TASK_START_TEMPLATE = "task_start"

DEFAULT_TEMPLATES: dict[str, str] = {
    "system": (
        "You are Trustee, an autonomous $task_type agent working in $working_dir.\n"
        "Work step by step. Use the available tools ($tools) to inspect and change "
        "the workspace; never guess at file contents.\n"
        "When the task is finished, call the submit tool with a short summary, "
        "then reply with $completion_marker."
    ),
    "system/coding": (
        "You are Trustee, an autonomous software engineer working in $working_dir.\n"
        "Read code before changing it, keep edits minimal, and run the project's "
        "checks with run_command when they exist. Available tools: $tools.\n"
        "When the task is finished, call the submit tool with a short summary, "
        "then reply with $completion_marker."
    ),
    "task_start": "Task ($task_type):\n$task",
}

DEFAULT_TASK_RULES: dict[str, tuple[str, ...]] = {
    "coding": ("code", "bug", "function", "refactor", "test", "compile", "implement", "file"),
    "research": ("research", "investigate", "summarize", "explain", "compare"),
}


class Lifecycle(Protocol):
    """Protocol for the collaborator supplying classification and templates."""

    def classify(self, task_description: str) -> str: ...

    def load_template(self, name: str) -> str: ...

    def render_template(self, template: str, data_json: str) -> str: ...


def template_candidates(kind: str, task_type: str) -> list[str]:
    """Names tried for a template kind, most specific first."""
    return [f"{kind}/{task_type}", kind]


def load_for_task(lifecycle: Lifecycle, kind: str, task_type: str) -> tuple[str, str]:
    """Load the most specific template of *kind* for *task_type*.

    Returns ``(name, template)``. Raises TemplateLoadError when no candidate loads.
    """
    last: Exception | None = None
    for name in template_candidates(kind, task_type):
        try:
            return name, lifecycle.load_template(name)
        except TemplateLoadError as exc:
            last = exc
    raise TemplateLoadError(
        f"No {kind!r} template for task type {task_type!r}: {last}", template=kind,
    )


def render(template: str, data_json: str) -> str:
    """Replace ``$name`` placeholders from a JSON object; unknown names stay as-is."""
    try:
        data = json.loads(data_json)
    except json.JSONDecodeError as exc:
        raise TemplateLoadError(f"Template data is not valid JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise TemplateLoadError("Template data must be a JSON object")
    values = {k: v if isinstance(v, str) else json.dumps(v) for k, v in data.items()}
    return Template(template).safe_substitute(values)


class TemplateLifecycle:
    """Keyword-rule classifier with file-backed templates and built-in defaults.

    Templates are looked up as ``<templates_dir>/<name>.md`` first, then in
    :data:`DEFAULT_TEMPLATES`.
    """

    def __init__(
        self,
        templates_dir: str | Path | None = None,
        task_rules: Mapping[str, Sequence[str]] | None = None,
        default_task_type: str = "general",
        templates: Mapping[str, str] | None = None,
    ) -> None:
        self.templates_dir = Path(templates_dir) if templates_dir else None
        self.task_rules = dict(task_rules) if task_rules else dict(DEFAULT_TASK_RULES)
        self.default_task_type = default_task_type
        self._templates = dict(DEFAULT_TEMPLATES)
        if templates:
            self._templates.update(templates)

    def classify(self, task_description: str) -> str:
        """First rule with a keyword in the task wins; otherwise the default type."""
        lowered = task_description.lower()
        for task_type, keywords in self.task_rules.items():
            if any(keyword.lower() in lowered for keyword in keywords):
                return task_type
        return self.default_task_type

    def load_template(self, name: str) -> str:
        if self.templates_dir is not None:
            path = self.templates_dir / f"{name}.md"
            if path.is_file():
                try:
                    return path.read_text(encoding="utf-8")
                except OSError as exc:
                    raise TemplateLoadError(f"Cannot read {path}: {exc}", template=name) from exc
        try:
            return self._templates[name]
        except KeyError:
            raise TemplateLoadError(f"Template not found: {name}", template=name) from None

    def render_template(self, template: str, data_json: str) -> str:
        return render(template, data_json)


class StubLifecycle:
    """In-memory lifecycle for tests. Records every call it receives."""

    def __init__(
        self,
        task_type: str | Exception = "general",
        templates: Mapping[str, str] | None = None,
    ) -> None:
        self._task_type = task_type
        self._templates = dict(templates) if templates is not None else {
            "system": "You are a test agent.",
            "task_start": "Task: $task",
        }
        self.calls: list[tuple[str, str]] = []

    def classify(self, task_description: str) -> str:
        self.calls.append(("classify", task_description))
        if isinstance(self._task_type, Exception):
            raise self._task_type
        return self._task_type

    def load_template(self, name: str) -> str:
        self.calls.append(("load_template", name))
        try:
            return self._templates[name]
        except KeyError:
            raise TemplateLoadError(f"Template not found: {name}", template=name) from None

    def render_template(self, template: str, data_json: str) -> str:
        self.calls.append(("render_template", template))
        return render(template, data_json)
