"""Load model definitions and aliases from TOML.

Search order (later files override earlier ones, per model and per alias):
  1. ~/.config/model-selector/config.toml
  2. ./model-selector.toml
  3. $MODEL_SELECTOR_CONFIG
  4. an explicit path
"""

import os
import re
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from .core import AttributeValue, Candidate
from .errors import ConfigError
from .providers import is_provider_supported

ENV_CONFIG = "MODEL_SELECTOR_CONFIG"

_ENV_REF = re.compile(r"\$\{?([A-Z_][A-Z0-9_]*)\}?", re.IGNORECASE)


@dataclass(frozen=True)
class ModelConfig:
    provider: str
    model_id: str
    api_key: str | None = None
    base_url: str | None = None
    enabled: bool = True
    attributes: dict[str, AttributeValue] = field(default_factory=dict)


@dataclass(frozen=True)
class Config:
    models: dict[str, ModelConfig] = field(default_factory=dict)
    aliases: dict[str, str] = field(default_factory=dict)
    sources: tuple[Path, ...] = ()


def search_paths(custom_path: str | Path | None = None) -> list[Path]:
    paths = [
        Path.home() / ".config" / "model-selector" / "config.toml",
        Path.cwd() / "model-selector.toml",
    ]
    env_path = os.environ.get(ENV_CONFIG)
    if env_path:
        paths.append(Path(env_path).expanduser())
    if custom_path:
        paths.append(Path(custom_path).expanduser())
    return paths


def find_config_path(custom_path: str | Path | None = None) -> Path | None:
    return next((p for p in search_paths(custom_path) if p.exists()), None)


def resolve_env_vars(value: str) -> str:
    """Expand $VAR and ${VAR}; unset variables become empty strings."""
    return _ENV_REF.sub(lambda m: os.environ.get(m.group(1), ""), value)


def parse_config(data: dict[str, Any], source: str = "<config>") -> Config:
    aliases = data.get("aliases", {})
    if not isinstance(aliases, dict):
        raise ConfigError(f"{source}: [aliases] must be a table", ConfigError.INVALID_ALIAS)
    for name, fragment in aliases.items():
        if not isinstance(fragment, str):
            raise ConfigError(
                f"{source}: alias '{name}' must map to a query string",
                ConfigError.INVALID_ALIAS,
            )

    models = data.get("models", {})
    if not isinstance(models, dict):
        raise ConfigError(f"{source}: [models] must be a table", ConfigError.INVALID_CONFIG)

    return Config(
        models={name: _parse_model(name, raw, source) for name, raw in models.items()},
        aliases=dict(aliases),
    )


def _parse_model(name: str, raw: Any, source: str) -> ModelConfig:
    def invalid(msg):
        return ConfigError(f"{source}: model '{name}' {msg}", ConfigError.INVALID_MODEL)

    if not isinstance(raw, dict):
        raise invalid("must be a table")
    for key in ("provider", "model_id"):
        if not isinstance(raw.get(key), str) or not raw[key]:
            raise invalid(f"needs a string '{key}'")
    if not is_provider_supported(raw["provider"]):
        raise ConfigError(
            f"{source}: model '{name}' uses unknown provider '{raw['provider']}'",
            ConfigError.UNKNOWN_PROVIDER,
        )
    for key in ("api_key", "base_url"):
        if key in raw and not isinstance(raw[key], str):
            raise invalid(f"'{key}' must be a string")
    enabled = raw.get("enabled", True)
    if not isinstance(enabled, bool):
        raise invalid("'enabled' must be true or false")

    attributes = raw.get("attributes", {})
    if not isinstance(attributes, dict):
        raise invalid("'attributes' must be a table")
    for attr, value in attributes.items():
        if not isinstance(value, (bool, int, float, str)):
            raise invalid(f"attribute '{attr}' must be a boolean, number or string")

    return ModelConfig(
        provider=raw["provider"],
        model_id=raw["model_id"],
        api_key=raw.get("api_key"),
        base_url=raw.get("base_url"),
        enabled=enabled,
        attributes=dict(attributes),
    )


def load_config_file(path: str | Path) -> Config:
    path = Path(path)
    try:
        with path.open("rb") as f:
            data = tomllib.load(f)
    except FileNotFoundError as e:
        raise ConfigError(f"Config file not found: {path}", ConfigError.FILE_NOT_FOUND) from e
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(
            f"Failed to parse config file {path}: {e}", ConfigError.PARSE_ERROR
        ) from e
    cfg = parse_config(data, source=str(path))
    return Config(models=cfg.models, aliases=cfg.aliases, sources=(path,))


def merge_configs(configs: list[Config]) -> Config:
    models: dict[str, ModelConfig] = {}
    aliases: dict[str, str] = {}
    sources: list[Path] = []
    for cfg in configs:
        models.update(cfg.models)
        aliases.update(cfg.aliases)
        sources.extend(cfg.sources)
    return Config(models=models, aliases=aliases, sources=tuple(sources))


def load_config(custom_path: str | Path | None = None) -> Config:
    paths = search_paths(custom_path)
    configs = [load_config_file(p) for p in paths if p.exists()]
    if not configs:
        searched = ", ".join(str(p) for p in paths)
        raise ConfigError(
            f"No config files found. Searched: {searched}\n"
            "Create a config at ~/.config/model-selector/config.toml "
            "or ./model-selector.toml",
            ConfigError.FILE_NOT_FOUND,
        )

    merged = merge_configs(configs)
    models = {
        name: ModelConfig(
            provider=m.provider,
            model_id=m.model_id,
            api_key=resolve_env_vars(m.api_key) if m.api_key else None,
            base_url=resolve_env_vars(m.base_url) if m.base_url else None,
            enabled=m.enabled,
            attributes=m.attributes,
        )
        for name, m in merged.models.items()
    }
    return Config(models=models, aliases=merged.aliases, sources=merged.sources)


def to_candidate(name: str, model: ModelConfig) -> Candidate:
    settings = {
        k: v
        for k, v in (("api_key", model.api_key), ("base_url", model.base_url))
        if v
    }
    return Candidate(
        name=name,
        provider_id=model.provider,
        attributes=dict(model.attributes),
        model_id=model.model_id,
        enabled=model.enabled,
        settings=settings,
    )


def candidates_from_config(config: Config) -> list[Candidate]:
    return [to_candidate(name, m) for name, m in config.models.items()]


def enabled_candidates(config: Config) -> list[Candidate]:
    return [c for c in candidates_from_config(config) if c.enabled]
