"""
Prompt templates for the issue classifiers.

Built-in templates live below; any ``*.yaml`` file in ``PROMPTS_DIR`` with
the same ``name``/``version`` replaces one. A YAML file looks like::

    name: severity_classifier
    version: v1
    system: You rate civic issues...
    user: "Title: {{title}} ..."

Placeholders are ``{{name}}``; unknown ones are left in place.
"""

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path

import yaml

logger = logging.getLogger(__name__)

DEFAULT_PROMPTS_DIR = Path(__file__).resolve().parents[2] / "prompts"

_PLACEHOLDER = re.compile(r"\{\{\s*(\w+)\s*\}\}")


@dataclass(frozen=True)
class PromptTemplate:
    name: str
    version: str
    system: str
    user: str
    description: str = ""
    metadata: dict = field(default_factory=dict, compare=False)

    @classmethod
    def from_yaml(cls, data: dict, fallback_name: str) -> "PromptTemplate":
        return cls(
            name=data.get("name", fallback_name),
            version=str(data.get("version", "v1")),
            system=data.get("system") or "",
            user=data.get("user") or "",
            description=data.get("description") or "",
            metadata=data.get("metadata") or {},
        )

    def render(self, **variables) -> list[dict]:
        """Chat messages for this template; empty parts are dropped."""
        def fill(text):
            return _PLACEHOLDER.sub(
                lambda m: str(variables[m.group(1)]) if m.group(1) in variables else m.group(0),
                text,
            )

        messages = [
            {"role": role, "content": fill(text)}
            for role, text in (("system", self.system), ("user", self.user))
        ]
        return [m for m in messages if m["content"].strip()]

    def summary(self) -> dict:
        return {
            "name": self.name,
            "version": self.version,
            "description": self.description,
            "system_preview": self.system[:200],
            "user_preview": self.user[:200],
        }


class PromptRegistry:
    """Templates keyed by ``(name, version)``."""

    def __init__(self, prompts_dir=None):
        self.prompts_dir = Path(prompts_dir) if prompts_dir else DEFAULT_PROMPTS_DIR
        self._templates = {(t.name, t.version): t for t in BUILTIN_TEMPLATES}
        for tpl in self._read_overrides():
            self._templates[(tpl.name, tpl.version)] = tpl

    def _read_overrides(self):
        if not self.prompts_dir.is_dir():
            logger.debug("No prompts directory at %s; built-in templates only", self.prompts_dir)
            return
        for path in sorted(self.prompts_dir.glob("*.yaml")):
            try:
                data = yaml.safe_load(path.read_text(encoding="utf-8"))
            except (OSError, yaml.YAMLError) as e:
                logger.error("Skipping prompt file %s: %s", path.name, e)
                continue
            if isinstance(data, dict):
                tpl = PromptTemplate.from_yaml(data, path.stem)
                logger.info("Prompt %s@%s loaded from %s", tpl.name, tpl.version, path.name)
                yield tpl

    def get(self, name: str, version: str = "v1") -> PromptTemplate | None:
        return self._templates.get((name, version))

    def render(self, name: str, version: str = "v1", **variables) -> list[dict]:
        """Render ``name@version``; raises KeyError when it is not registered."""
        tpl = self.get(name, version)
        if tpl is None:
            raise KeyError(f"no prompt template {name}@{version}")
        return tpl.render(**variables)

    def list_templates(self) -> list[dict]:
        return [tpl.summary() for tpl in self._templates.values()]


SEVERITY_SYSTEM = """\
You are an expert at analyzing community issues and assigning appropriate severity scores.

Scale:
1-2: Minor inconvenience, low impact, affects very few people
3-4: Moderate issue, localized impact, affects a small group
5-6: Significant issue, notable impact, affects a neighborhood
7-8: Serious issue, substantial impact, affects many people or poses health/safety risks
9-10: Critical emergency, severe impact, immediate danger to public, infrastructure failure

Analyze the issue title and description, then return ONLY a single number between 1 and 10 \
representing the severity."""

DEPARTMENT_SYSTEM = """\
You are an expert at analyzing community issues and assigning them to the most appropriate \
government department.

Analyze the issue title and description, then determine which department would be most \
responsible for handling this issue. Return ONLY the exact name of the most appropriate \
department from the list provided."""

BUILTIN_TEMPLATES = (
    PromptTemplate(
        name="severity_classifier",
        version="v1",
        description="Score a civic issue from 1 (minor) to 10 (critical emergency)",
        system=SEVERITY_SYSTEM,
        user="Title: {{title}}\nDescription: {{description}}\n\nSeverity score (1-10):",
    ),
    PromptTemplate(
        name="department_classifier",
        version="v1",
        description="Pick the department responsible for a civic issue",
        system=DEPARTMENT_SYSTEM,
        user=(
            "Title: {{title}}\nDescription: {{description}}\n\n"
            "Departments:\n{{department_list}}\n\nMost appropriate department:"
        ),
    ),
)
