from __future__ import annotations
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Dict, Any, List
import yaml
import jinja2
import logging

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PromptConfig:
    #immutable prompt config
    name: str
    version: str
    system_template: jinja2.Template
    user_template: jinja2.Template
    description: Optional[str] = None

    @property
    def ref(self) -> str:
        return f"{self.name}@{self.version}"


class PromptManager:
    """
    Registry of versioned prompt templates.

    Layout on disk is `<prompts_dir>/<name>/<version>/{system.j2,user.j2,config.yaml}`
    and a prompt is referenced as "<name>@<version>", e.g. "listing/grounding@v1".
    All templates are discovered and compiled when the manager is built.
    """

    def __init__(self, prompts_dir: Path):
        self.prompts_dir = Path(prompts_dir)
        if not self.prompts_dir.exists():
            raise FileNotFoundError(f"Prompts dir not found: {self.prompts_dir}")

        self.jinja_env = jinja2.Environment(
            undefined=jinja2.StrictUndefined, #strict checking, but 'is defined' test still works
            trim_blocks=True,
            lstrip_blocks=True,
        )
        self._prompts: Dict[str, PromptConfig] = self._discover()
        logger.info(f"Loaded {len(self._prompts)} prompts from {self.prompts_dir}")

    def _discover(self) -> Dict[str, PromptConfig]:
        prompts = {}
        for system_path in sorted(self.prompts_dir.rglob("system.j2")):
            prompt_path = system_path.parent
            rel = prompt_path.relative_to(self.prompts_dir)
            if len(rel.parts) < 2:
                continue
            name = "/".join(rel.parts[:-1])
            version = rel.parts[-1]
            prompts[f"{name}@{version}"] = self._load_prompt(prompt_path, name, version)
        return prompts

    def _load_prompt(self, prompt_path: Path, name: str, version: str) -> PromptConfig:
        config = self._load_config(prompt_path)
        return PromptConfig(
            name=name,
            version=version,
            system_template=self.jinja_env.from_string(self._load_template(prompt_path, "system.j2")),
            user_template=self.jinja_env.from_string(self._load_template(prompt_path, "user.j2")),
            description=config.get('description'),
        )

    @property
    def refs(self) -> List[str]:
        return sorted(self._prompts)

    def load_prompt(self, prompt_ref: str) -> PromptConfig:
        if '@' not in prompt_ref:
            raise ValueError(f"Invalid prompt reference: {prompt_ref}")
        if prompt_ref not in self._prompts:
            raise FileNotFoundError(f"Prompt not found: {prompt_ref}")
        return self._prompts[prompt_ref]

    def render(self, prompt_ref: str, variables: Dict[str, Any]) -> List[Dict[str, str]]:
        config = self.load_prompt(prompt_ref)
        try:
            system_content = config.system_template.render(**variables)
            user_content = config.user_template.render(**variables)
        except jinja2.UndefinedError as e:
            raise ValueError(f"Missing required variable in prompt {prompt_ref}: {e}") from e

        logger.debug(f"Rendered {prompt_ref}: system={len(system_content)} chars, user={len(user_content)} chars")
        return [
            {"role": "system", "content": system_content},
            {"role": "user", "content": user_content},
        ]

    def _load_config(self, prompt_path: Path) -> dict:
        config_path = prompt_path / "config.yaml"
        if not config_path.exists():
            return {}
        with open(config_path) as f:
            return yaml.safe_load(f) or {}

    def _load_template(self, prompt_path: Path, template_name: str) -> str:
        template_path = prompt_path / template_name
        if not template_path.exists():
            raise FileNotFoundError(f"Template file not found: {template_path}")
        return template_path.read_text()
