# config.py
# Application configuration: defaults, then an optional YAML/JSON file, then
# environment variables (a .env file is honoured via python-dotenv).

import json
import os
from pathlib import Path

import yaml
from dotenv import find_dotenv, load_dotenv
from pydantic import BaseModel, Field, ValidationError

from skill_agent.models import Limits


class ConfigError(Exception):
    """Raised when a config file cannot be read or the result is invalid."""


DEFAULT_MODEL = "openai/gpt-4o-mini"


class LLMConfig(BaseModel):
    api_key: str = ""
    base_url: str = "https://openrouter.ai/api/v1"
    default_model: str = DEFAULT_MODEL
    timeout_seconds: int = 60
    max_retries: int = 3


class ToolsConfig(BaseModel):
    metadata_dir: str = ""
    enable_code_execution: bool = False


class AgentConfig(BaseModel):
    max_steps: int = 6
    max_chars: int = 24000
    temperature: float = 0.2

    def limits(self) -> Limits:
        return Limits(max_steps=self.max_steps, max_chars=self.max_chars, temperature=self.temperature)


class PersistenceConfig(BaseModel):
    threads_dir: str = ".llm_threads"
    skills_dir: str = ""
    projects_dir: str = ""


class Config(BaseModel):
    llm: LLMConfig = Field(default_factory=LLMConfig)
    tools: ToolsConfig = Field(default_factory=ToolsConfig)
    agent: AgentConfig = Field(default_factory=AgentConfig)
    persistence: PersistenceConfig = Field(default_factory=PersistenceConfig)

    def apply_env(self) -> "Config":
        """Overlay environment variables onto this config, in place."""
        if api_key := os.getenv("OPENROUTER_API_KEY"):
            self.llm.api_key = api_key
        if base_url := os.getenv("LLM_BASE_URL"):
            self.llm.base_url = base_url
        if model := os.getenv("LLM_DEFAULT_MODEL"):
            self.llm.default_model = model
        return self

    def validate_settings(self) -> None:
        """Raise ConfigError when the config cannot drive a real model client."""
        if not self.llm.api_key:
            raise ConfigError("LLM API key is required (set OPENROUTER_API_KEY or api_key in config)")
        if not self.llm.base_url:
            raise ConfigError("LLM base URL cannot be empty")
        if not self.llm.default_model:
            raise ConfigError("default model cannot be empty")
        if self.llm.timeout_seconds < 1:
            raise ConfigError("timeout must be at least 1 second")
        try:
            self.agent.limits()
        except ValidationError as exc:
            raise ConfigError(f"invalid agent limits: {exc}") from exc


CONFIG_NAMES = ("llm.yaml", "llm.yml", "llm.json", ".llm.yaml", ".llm.yml", ".llm.json")


def config_locations() -> list[Path]:
    return [Path("."), Path("config"), Path.home() / ".config" / "llm"]


def find_config_file() -> Path | None:
    for location in config_locations():
        for name in CONFIG_NAMES:
            path = location / name
            if path.is_file():
                return path
    return None


def load(path: str | Path | None = None) -> Config:
    """
    Build a Config from defaults, an optional file and the environment.

    With no path, the usual locations are searched; finding nothing is not an
    error. Supported formats: .yaml, .yml, .json.
    """
    load_dotenv(find_dotenv(usecwd=True))

    if path is None:
        path = find_config_file()
        if path is None:
            return Config().apply_env()

    path = Path(path)
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigError(f"read config file: {exc}") from exc

    suffix = path.suffix.lower()
    try:
        if suffix in (".yaml", ".yml"):
            data = yaml.safe_load(raw) or {}
        elif suffix == ".json":
            data = json.loads(raw)
        else:
            raise ConfigError(f"unsupported config format: {suffix} (use .yaml, .yml, or .json)")
    except (yaml.YAMLError, json.JSONDecodeError) as exc:
        raise ConfigError(f"parse config {path}: {exc}") from exc

    try:
        config = Config.model_validate(data)
    except ValidationError as exc:
        raise ConfigError(f"invalid config {path}: {exc}") from exc
    return config.apply_env()


def save_example(path: str | Path, fmt: str = "yaml") -> None:
    """Write a config file populated with defaults and placeholder keys."""
    config = Config()
    config.llm.api_key = "your-api-key-here"
    data = config.model_dump()

    if fmt in ("yaml", "yml"):
        text = yaml.safe_dump(data, sort_keys=False)
    elif fmt == "json":
        text = json.dumps(data, indent=2)
    else:
        raise ConfigError(f"unsupported format: {fmt} (use yaml or json)")

    Path(path).write_text(text, encoding="utf-8")
