"""Generator configuration: defaults, validation, JSON file loading."""

from __future__ import annotations

import json
import os
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any

from query_assistant.engine.errors import ConfigurationError
from query_assistant.engine.prompt import DEFAULT_STOP_TOKENS

CONFIG_ENV_VAR = "QUERY_ASSISTANT_CONFIG"

DEFAULT_MODEL_ID = "benjamintli/duckdb-sqlcoder-0.5B"

_DEVICES = {"auto", "cpu", "cuda", "mps"}
_DTYPES = {"float32", "fp32", "float16", "fp16", "half", "bfloat16", "bf16"}


@dataclass(frozen=True)
class GeneratorConfig:
    """Deployment configuration of a generation session.

    Notes:
    - Defaults: greedy decoding, a mild repetition penalty over the last 64
      tokens, at most 256 decode steps.
    - `use_system_prompt` selects the two-message transcript (system + user);
      when false everything goes into one user message.
    """

    model_id: str = DEFAULT_MODEL_ID
    revision: str = "main"
    model_family: str = "causal-lm"
    device: str = "auto"
    dtype: str = "float32"
    cache_dir: str | None = None
    seed: int = 299792458
    temperature: float = 0.0
    top_p: float | None = None
    repeat_penalty: float = 1.1
    repeat_last_n: int = 64
    max_steps: int = 256
    use_system_prompt: bool = True
    stop_tokens: tuple[str, ...] = DEFAULT_STOP_TOKENS
    extract_sql: bool = False

    def validate(self) -> None:
        if not self.model_id:
            raise ConfigurationError("'model_id' must be a non-empty string.")
        if not self.revision:
            raise ConfigurationError("'revision' must be a non-empty string.")
        if self.device.split(":", 1)[0].lower() not in _DEVICES:
            raise ConfigurationError(f"'device' must be one of {sorted(_DEVICES)}, got {self.device!r}.")
        if self.dtype.lower() not in _DTYPES:
            raise ConfigurationError(f"'dtype' must be one of {sorted(_DTYPES)}, got {self.dtype!r}.")
        if self.temperature < 0:
            raise ConfigurationError("'temperature' must be >= 0.")
        if self.top_p is not None and not 0.0 < self.top_p <= 1.0:
            raise ConfigurationError("'top_p' must be in (0, 1].")
        if self.repeat_penalty <= 0:
            raise ConfigurationError("'repeat_penalty' must be > 0.")
        if self.repeat_last_n < 0:
            raise ConfigurationError("'repeat_last_n' must be >= 0.")
        if self.max_steps <= 0:
            raise ConfigurationError("'max_steps' must be > 0.")
        if not self.stop_tokens or not all(isinstance(t, str) and t for t in self.stop_tokens):
            raise ConfigurationError("'stop_tokens' must be a non-empty list of strings.")

    def merged(self, override: dict[str, Any] | None) -> "GeneratorConfig":
        """Apply a dict of overrides (config file or CLI flags); None values are ignored."""
        if not override:
            return self
        if not isinstance(override, dict):
            raise ConfigurationError("configuration must be a JSON object.")

        known = {f.name for f in fields(self)}
        unknown = sorted(set(override) - known)
        if unknown:
            raise ConfigurationError(f"unknown configuration keys: {', '.join(unknown)}")

        data = asdict(self)
        for key, value in override.items():
            if value is None and key not in ("top_p", "cache_dir"):
                continue
            data[key] = _coerce(key, value, data[key])

        merged = GeneratorConfig(**data)
        merged.validate()
        return merged


def _coerce(key: str, value: Any, current: Any) -> Any:
    if key == "stop_tokens":
        if isinstance(value, str) or not isinstance(value, (list, tuple)):
            raise ConfigurationError("'stop_tokens' must be a list of strings.")
        return tuple(str(v) for v in value)
    if key in ("top_p", "cache_dir") and value is None:
        return None
    if key == "top_p":
        current = 0.0
    if key == "cache_dir":
        current = ""
    if isinstance(current, bool):
        if not isinstance(value, bool):
            raise ConfigurationError(f"'{key}' must be a boolean.")
        return value
    if isinstance(value, bool):
        raise ConfigurationError(f"'{key}' must not be a boolean.")
    try:
        return type(current)(value)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"'{key}' must be of type {type(current).__name__}.") from exc


def config_dir() -> Path:
    xdg_config_home = os.environ.get("XDG_CONFIG_HOME")
    base = Path(xdg_config_home) if xdg_config_home else (Path.home() / ".config")
    return base / "query-assistant"


def default_config_path() -> Path:
    return config_dir() / "config.json"


def load_config(path: str | Path | None = None) -> GeneratorConfig:
    """Load configuration from `path`, $QUERY_ASSISTANT_CONFIG or the default location.

    An explicitly named file must exist; a missing default file yields the
    built-in defaults.
    """
    explicit = path or os.environ.get(CONFIG_ENV_VAR)
    p = Path(explicit).expanduser() if explicit else default_config_path()
    if not p.exists():
        if explicit:
            raise ConfigurationError(f"config file not found: {p}")
        return GeneratorConfig()

    try:
        raw = json.loads(p.read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        raise ConfigurationError(f"Failed to read config file: {p}: {exc}") from exc

    if not isinstance(raw, dict):
        raise ConfigurationError(f"Config file must contain a JSON object: {p}")
    return GeneratorConfig().merged(raw)


def config_to_dict(config: GeneratorConfig) -> dict[str, Any]:
    data = asdict(config)
    data["stop_tokens"] = list(config.stop_tokens)
    return data
