"""Prompt construction with explicit trust boundaries.

Untrusted content is sanitized and wrapped in ``<user_input>`` tags so the
model can tell it apart from system instructions. Structured values (URLs,
repository names, file paths) are validated and rejected outright when they
do not pass.
"""

from __future__ import annotations

import json
import re
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from curator_guard.logging import get_logger
from curator_guard.security.sanitizer import detect_injection, sanitize_json_data, sanitize_text
from curator_guard.security.validators import (
    sanitize_file_path,
    sanitize_github_url,
    sanitize_repo_name,
)

log = get_logger("curator_guard.security.prompt_builder")

UNTRUSTED_WARNING = "<!-- WARNING: Untrusted user input above -->"


class PromptBuildError(ValueError):
    """A structured value given to the prompt builder failed validation."""


@dataclass(frozen=True)
class _Section:
    label: str
    content: str
    trusted: bool = False


class SafePromptBuilder:
    """Assemble a prompt from system instructions and labelled user content.

    Example::

        prompt = (
            SafePromptBuilder()
            .set_system_instruction("Categorize the submitted tool.")
            .add_github_url(url)
            .add_user_content("Issue Body", body)
            .set_reinforcement("Only answer with a category slug.")
            .build()
        )
    """

    def __init__(self) -> None:
        self._instructions: list[str] = []
        self._sections: list[_Section] = []
        self._reinforcement = ""
        self._detected: list[str] = []

    def set_system_instruction(self, instruction: str) -> SafePromptBuilder:
        self._instructions.append(instruction.strip())
        return self

    def add_system_instruction(self, instruction: str) -> SafePromptBuilder:
        self._instructions.append(instruction.strip())
        return self

    def add_user_content(
        self, label: str, content: str, trusted: bool = False
    ) -> SafePromptBuilder:
        """Add a labelled block; untrusted content is sanitized first."""
        if not trusted and detect_injection(content):
            self._detected.append(f'Detected injection attempt in "{label}"')
            log.warning("prompt_injection_detected", label=label, content_length=len(content))

        self._sections.append(
            _Section(
                label=label,
                content=content if trusted else sanitize_text(content),
                trusted=trusted,
            )
        )
        return self

    def add_github_url(self, url: str) -> SafePromptBuilder:
        """Add a repository URL.

        Raises:
            PromptBuildError: The URL is not a valid GitHub repository URL.
        """
        sanitized = sanitize_github_url(url)
        if sanitized is None:
            raise PromptBuildError(f"Invalid GitHub URL: {url!r}")
        self._sections.append(_Section(label="Repository URL", content=sanitized))
        return self

    def add_repo_name(self, name: str) -> SafePromptBuilder:
        """Add a repository name.

        Raises:
            PromptBuildError: The name fails validation.
        """
        sanitized = sanitize_repo_name(name)
        if sanitized is None:
            raise PromptBuildError(f"Invalid repository name: {name!r}")
        self._sections.append(_Section(label="Repository Name", content=sanitized))
        return self

    def add_file_path(self, path: str, allowed_prefix: str) -> SafePromptBuilder:
        """Add a file path that must live under *allowed_prefix*.

        Raises:
            PromptBuildError: The path fails validation.
        """
        sanitized = sanitize_file_path(path, allowed_prefix)
        if sanitized is None:
            raise PromptBuildError(f"Invalid file path: {path!r}")
        self._sections.append(_Section(label="File Path", content=sanitized))
        return self

    def add_structured_data(self, label: str, data: dict[str, Any]) -> SafePromptBuilder:
        """Add a JSON record after sanitizing its string fields."""
        self._sections.append(
            _Section(label=label, content=json.dumps(sanitize_json_data(data), indent=2))
        )
        return self

    def set_reinforcement(self, reinforcement: str) -> SafePromptBuilder:
        """Set text restated after all user content."""
        self._reinforcement = reinforcement.strip()
        return self

    @property
    def detected_injections(self) -> list[str]:
        return list(self._detected)

    def has_detected_injections(self) -> bool:
        return bool(self._detected)

    def reset(self) -> SafePromptBuilder:
        self._instructions = []
        self._sections = []
        self._reinforcement = ""
        self._detected = []
        return self

    def build(self) -> str:
        lines: list[str] = []

        if self._instructions:
            lines += [
                "<system_instruction>",
                "\n\n".join(self._instructions),
                "</system_instruction>",
                "",
            ]

        for section in self._sections:
            lines += [
                "<user_input>",
                f"<label>{section.label}</label>",
                "<content>",
                section.content,
                "</content>",
            ]
            if not section.trusted:
                lines.append(UNTRUSTED_WARNING)
            lines += ["</user_input>", ""]

        if self._reinforcement:
            lines += [
                "<instruction_reinforcement>",
                self._reinforcement,
                "</instruction_reinforcement>",
            ]

        return "\n".join(lines)


# ---------------------------------------------------------------------------
# Template helpers
# ---------------------------------------------------------------------------


def _sanitize_variable(key: str, value: str, max_length: int) -> str:
    # The placeholder name decides how the value is treated.
    if "URL" in key:
        return sanitize_github_url(value) or "[invalid URL]"
    if "NAME" in key:
        return sanitize_repo_name(value) or "[invalid name]"
    if "FILE" in key or "PATH" in key:
        return sanitize_text(value, max_length=200, strip_newlines=True)
    if "NUMBER" in key or "ISSUE" in key:
        return re.sub(r"[^0-9]", "", value) or "0"
    return sanitize_text(value, max_length=max_length)


def build_safe_replacements(
    replacements: Mapping[str, str], max_length: int = 10000
) -> dict[str, str]:
    """Sanitize template values according to their placeholder names."""
    safe: dict[str, str] = {}
    for key, value in replacements.items():
        if detect_injection(value):
            log.warning("template_variable_injection_detected", key=key)
        safe[key] = _sanitize_variable(key, value, max_length)
    return safe


def safe_template_replace(
    template: str, replacements: Mapping[str, str], max_length: int = 10000
) -> str:
    """Replace ``{{KEY}}`` placeholders with sanitized, tagged values."""
    result = template
    for key, value in build_safe_replacements(replacements, max_length).items():
        wrapped = f'<user_input label="{key}">{value}</user_input>'
        result = result.replace("{{" + key + "}}", wrapped)
    return result


def create_safe_prompt(
    instruction: str,
    user_inputs: Mapping[str, str],
    reinforcement: str | None = None,
) -> str:
    """Build a prompt from one instruction and a mapping of labelled inputs."""
    builder = SafePromptBuilder().set_system_instruction(instruction)
    for label, content in user_inputs.items():
        builder.add_user_content(label, content)
    if reinforcement:
        builder.set_reinforcement(reinforcement)
    return builder.build()
