from __future__ import annotations
from typing import Optional, Dict, Any, List, Type, Union
from pathlib import Path
from dataclasses import dataclass, field
from enum import Enum
from os import getenv
import yaml
import time
import logging

from pydantic import BaseModel

from .prompts import PromptManager
from .providers.base import ChatRequest, ModelProvider, ModelResponse, ModelError
from .providers.ollama import OllamaProvider
from .providers.openai_sdk import OpenAIProvider

logger = logging.getLogger(__name__)

PACKAGE_ROOT = Path(__file__).parents[1]
DEFAULT_CONFIG_PATH = PACKAGE_ROOT / "config" / "config.yaml"
DEFAULT_PROMPTS_DIR = PACKAGE_ROOT / "prompts"


class Provider(Enum):
    OLLAMA = "ollama"
    OPENAI = "openai"


@dataclass(frozen=True)
class TaskConfig:
    provider: str
    model: str
    params: Dict[str, Any] = field(default_factory=dict)
    prompt_ref: Optional[str] = None #e.g. "listing/grounding@v1"
    timeout: Optional[float] = None

    @classmethod
    def from_dict(cls, cfg: Dict[str, Any]) -> "TaskConfig":
        return cls(
            provider=cfg["provider"],
            model=cfg["model"],
            params=dict(cfg.get("params") or {}),
            prompt_ref=cfg.get("prompt_ref"),
            timeout=cfg.get("timeout"),
        )


def resolve_config_path(config_path: Optional[Union[Path, str]] = None) -> Path:
    return Path(config_path or getenv("LISTING_ENGINE_CONFIG") or DEFAULT_CONFIG_PATH)


class ModelManager:
    """
    Task-configured access to model providers.

    Everything is built at construction: config is validated, one provider
    instance per configured provider is created and every prompt template is
    compiled. After that the manager is read-only and safe to share between
    concurrent requests.
    """

    def __init__(self, config_path: Optional[Union[Path, str]] = None, prompts_dir: Optional[Path] = None):
        self.config_path = resolve_config_path(config_path)
        self.config = self._load_config()
        self.tasks: Dict[str, TaskConfig] = {
            name: TaskConfig.from_dict(cfg) for name, cfg in self.config["tasks"].items()
        }
        self.providers: Dict[str, ModelProvider] = {
            name: self._build_provider(name, cfg) for name, cfg in self.config["providers"].items()
        }
        self.prompts = PromptManager(prompts_dir or DEFAULT_PROMPTS_DIR)

    def _load_config(self) -> Dict:
        if not self.config_path.exists():
            raise FileNotFoundError(f"Config not found: {self.config_path}")
        with open(self.config_path) as f:
            config = yaml.safe_load(f) or {}

        if 'providers' not in config:
            raise ValueError("Config missing 'providers'")
        if 'tasks' not in config:
            raise ValueError("Config missing 'tasks'")

        for task_name, task_cfg in config['tasks'].items():
            if 'provider' not in task_cfg:
                raise ValueError(f"Task '{task_name}' missing provider")
            if 'model' not in task_cfg:
                raise ValueError(f"Task '{task_name}' missing model")

            provider_name = task_cfg['provider']
            if provider_name not in config['providers']:
                raise ValueError(f"Task '{task_name}' references unknown provider '{provider_name}'")

        return config

    @staticmethod
    def _build_provider(provider_name: str, provider_cfg: Dict[str, Any]) -> ModelProvider:
        provider_type = provider_cfg.get("type")
        settings = provider_cfg.get("settings") or {}

        if provider_type == Provider.OLLAMA.value:
            provider = OllamaProvider(**settings)
        elif provider_type == Provider.OPENAI.value:
            provider = OpenAIProvider(**settings)
        else:
            raise ValueError(f"Unknown provider type: {provider_type}")
        logger.info(f"initialized provider: {provider_name} ({provider_type})")
        return provider

    def task(self, task: str) -> TaskConfig:
        if task not in self.tasks:
            raise ValueError(f"Unknown task: {task}")
        return self.tasks[task]

    async def call(self, task: str, prompt_ref: Optional[str] = None, variables: Optional[Dict[str, Any]] = None, images: Optional[List[Any]] = None, schema: Optional[Type[BaseModel]] = None, **params_override) -> ModelResponse:
        start_time = time.perf_counter()

        task_cfg = self.task(task)
        prompt_ref = prompt_ref or task_cfg.prompt_ref
        if not prompt_ref:
            raise ValueError(f"Task '{task}' has no prompt_ref and none was given")

        rendered = self.prompts.render(prompt_ref, variables or {})

        params = {**task_cfg.params, **params_override}
        json_mode = bool(params.pop("json_mode", False))
        if task_cfg.timeout:
            params.setdefault("timeout", task_cfg.timeout)

        request = ChatRequest(
            model=task_cfg.model,
            messages=rendered,
            images=images,
            params=params,
            schema=schema,
            json_mode=json_mode,
        )

        provider = self.providers[task_cfg.provider]
        try:
            response = await provider.chat(request)
        except ModelError as e:
            elapsed_ms = (time.perf_counter() - start_time) * 1000
            logger.warning(f"task '{task}' failed after {elapsed_ms:.0f}ms: {e}")
            raise

        elapsed_ms = (time.perf_counter() - start_time) * 1000
        logger.debug(f"task '{task}' completed in {elapsed_ms:.0f}ms via {task_cfg.provider}/{task_cfg.model}")
        return response

    async def health_check(self) -> Dict[str, bool]:
        return {name: await provider.health_check() for name, provider in self.providers.items()}

    async def cleanup(self):
        for name, provider in self.providers.items():
            try:
                await provider.cleanup()
                logger.info(f"Cleaned up provider: {name}")
            except Exception as e:
                logger.error(f"Cleanup failed for {name}: {e}")
