"""
System prompt building.

Renders the system preamble sent ahead of every query. The template has two
slots: ``preprompt`` (the user's resolved pre-prompt) and ``context`` (a short
description of the environment the question is asked from). Templates may
use Jinja2 syntax (``{{ preprompt }}``) or the bare ``{preprompt}`` form.
"""

from __future__ import annotations

import logging
import os
import platform
import re
import sys
from dataclasses import dataclass, field
from pathlib import Path

from jinja2 import Environment, StrictUndefined, TemplateError

from n00bkeys.config import Settings, get_settings
from n00bkeys.errors import ValidationError
from n00bkeys.settings_resolver import ConfigResolver

logger = logging.getLogger(__name__)

DEFAULT_SYSTEM_PROMPT = """{{ preprompt }}

You are a command-line and keybinding assistant helping a user with THEIR SPECIFIC SETUP. The user's environment is described below; answer for that environment, not a hypothetical one.

{{ context }}

RESPONSE GUIDELINES:
- The user may be new to the terminal and use imprecise terminology; interpret charitably and ask ONE clarifying question when a request is ambiguous
- For command or keybinding questions, give the command first with minimal context: `git restore <file>` - discard local changes
- For general questions, explain simply and include the relevant commands
- Stay under 150 words unless explaining a complex concept to a beginner
"""

CONTEXT_TEMPLATE = """== ENVIRONMENT ==
Platform: {{ ctx.platform }}
Shell: {{ ctx.shell }}
Editor: {{ ctx.editor }}
Python: {{ ctx.python_version }}
Working directory: {{ ctx.cwd }}
Project root: {{ ctx.project_root }}
{%- if ctx.extra %}

== DETAILS ==
{%- for key, value in ctx.extra.items() %}
  {{ key }}: {{ value }}
{%- endfor %}
{%- endif %}"""

TOPIC_KEYWORDS: dict[str, tuple[str, ...]] = {
    "diagnostics": ("lint", "warn", "error", "diagnostic"),
    "formatting": ("format",),
    "search": ("search", "find", "grep"),
    "git": ("git", "commit", "diff", "branch"),
    "windows": ("buffer", "tab", "window", "split", "pane"),
    "files": ("save", "write", "quit", "file"),
}

_BARE_SLOT = re.compile(r"(?<!\{)\{(preprompt|context)\}(?!\})")


@dataclass
class EnvironmentContext:
    """Snapshot of the environment a question is asked from."""

    cwd: str
    project_root: str
    platform: str
    shell: str
    editor: str
    python_version: str
    extra: dict[str, str] = field(default_factory=dict)


def collect_context(project_root: Path, cwd: Path | None = None) -> EnvironmentContext:
    return EnvironmentContext(
        cwd=str(cwd or Path.cwd()),
        project_root=str(project_root),
        platform=f"{platform.system()} {platform.release()}".strip() or "unknown",
        shell=Path(os.environ.get("SHELL", "")).name or os.environ.get("COMSPEC", "unknown"),
        editor=os.environ.get("VISUAL") or os.environ.get("EDITOR") or "unknown",
        python_version=platform.python_version() or sys.version.split()[0],
    )


def detect_topics(query: str | None) -> list[str]:
    """Topics named in ``query``, in TOPIC_KEYWORDS order."""
    if not query:
        return []
    words = query.lower()
    return [topic for topic, keywords in TOPIC_KEYWORDS.items() if any(k in words for k in keywords)]


def format_context(context: EnvironmentContext) -> str:
    """Render an EnvironmentContext as the plain-text block injected into the prompt."""
    return Environment(autoescape=False).from_string(CONTEXT_TEMPLATE).render(ctx=context)


class PromptBuilder:
    """Build system prompts and outbound message lists."""

    def __init__(
        self,
        resolver: ConfigResolver,
        settings: Settings | None = None,
        template: str | None = None,
        cwd: Path | None = None,
    ) -> None:
        self.resolver = resolver
        settings = settings or get_settings()
        self.template = template or settings.llm.prompt_template or DEFAULT_SYSTEM_PROMPT
        self.cwd = cwd
        self._env = Environment(autoescape=False, undefined=StrictUndefined, keep_trailing_newline=True)

    def collect_context(self) -> EnvironmentContext:
        return collect_context(self.resolver.store.find_project_root(), self.cwd)

    def system_prompt(self, query: str | None = None) -> str:
        """
        Render the system prompt with the current pre-prompt and environment.

        Raises:
            ValidationError: If the template cannot be rendered
        """
        context = self.collect_context()
        topics = detect_topics(query)
        if topics:
            context.extra["Question topics"] = ", ".join(topics)
        preprompt = self.resolver.get_current("preprompt") or ""

        try:
            template = self._env.from_string(_BARE_SLOT.sub(r"{{ \1 }}", self.template))
            prompt = template.render(preprompt=preprompt, context=format_context(context))
        except TemplateError as e:
            raise ValidationError(
                "prompt_builder",
                f"Invalid prompt template: {e}",
            ) from e

        logger.debug(
            "Built system prompt",
            extra={"chars": len(prompt), "has_preprompt": bool(preprompt)},
        )
        return prompt
