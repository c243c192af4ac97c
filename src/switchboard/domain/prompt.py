"""System-prompt templates with ``{{NAME}}`` placeholders.

Rendering is exact-match substitution only. Unknown placeholders are left
verbatim: partially specified prompts are a normal operating mode (an agent
may fill the remaining variables later via set_system_prompt).
"""

from __future__ import annotations

import re

from pydantic import BaseModel, ConfigDict, Field

PLACEHOLDER = re.compile(r"\{\{([A-Za-z0-9_]+)\}\}")

TemplateValue = str | list[str] | tuple[str, ...]


class PromptTemplate(BaseModel):
    """Versioned, immutable system-prompt configuration.

    Agents hold a reference to one PromptTemplate; updating the prompt swaps
    the reference for a new version. An invocation that grabbed the old
    reference keeps rendering the old prompt.

    Example:
        >>> tpl = PromptTemplate(template="You are {{NAME}}. {{STYLE}}", variables={"NAME": "Tech"})
        >>> tpl.render()
        'You are Tech. {{STYLE}}'
    """

    template: str = ""
    variables: dict[str, TemplateValue] = Field(default_factory=dict)
    version: int = 1

    model_config = ConfigDict(frozen=True)

    def render(self, extra: dict[str, TemplateValue] | None = None) -> str:
        """Substitute placeholders; ``extra`` wins over stored variables."""
        values = {**self.variables, **(extra or {})}

        def substitute(match: re.Match[str]) -> str:
            name = match.group(1)
            if name not in values:
                return match.group(0)
            value = values[name]
            # Lists render one item per line
            return value if isinstance(value, str) else "\n".join(value)

        return PLACEHOLDER.sub(substitute, self.template)

    def placeholders(self) -> frozenset[str]:
        return frozenset(PLACEHOLDER.findall(self.template))

    def unresolved(self) -> frozenset[str]:
        return self.placeholders() - set(self.variables)

    def replaced(self, template: str, variables: dict[str, TemplateValue] | None = None) -> PromptTemplate:
        """Next version with both template and variables replaced."""
        return PromptTemplate(template=template, variables=dict(variables or {}), version=self.version + 1)


__all__ = ["PLACEHOLDER", "PromptTemplate", "TemplateValue"]
