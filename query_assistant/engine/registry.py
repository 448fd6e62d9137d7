"""Model registry.

Resolves a model repository + revision to local files, and maps model
families to their adapter classes.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Type

from .adapters.base import BaseAdapter
from .adapters.causal_lm import CausalLMAdapter
from .errors import ConfigurationError
from .types import ModelFiles

logger = logging.getLogger(__name__)

TOKENIZER_FILENAME = "tokenizer.json"
CONFIG_FILENAME = "config.json"
WEIGHTS_FILENAME = "model.safetensors"
WEIGHTS_INDEX_FILENAME = "model.safetensors.index.json"

# Fetched when present; the tokenizer and model load without them.
OPTIONAL_FILENAMES = ("tokenizer_config.json", "generation_config.json", "special_tokens_map.json")

# Registry mapping model family names to adapter classes
_ADAPTER_REGISTRY: dict[str, Type[BaseAdapter]] = {
    "causal-lm": CausalLMAdapter,
}


def get_adapter(model_family: str) -> BaseAdapter:
    """
    Get an adapter instance for the given model family.

    Args:
        model_family: Name of the model family (e.g., "causal-lm").

    Returns:
        An adapter instance for the model family.

    Raises:
        ConfigurationError: If the model family is not registered.
    """
    if model_family not in _ADAPTER_REGISTRY:
        available = ", ".join(_ADAPTER_REGISTRY.keys())
        raise ConfigurationError(
            f"Unknown model family: {model_family!r}. Available: {available}"
        )
    return _ADAPTER_REGISTRY[model_family]()


def register_adapter(model_family: str, adapter_cls: Type[BaseAdapter]) -> None:
    """Register a new adapter for a model family."""
    _ADAPTER_REGISTRY[model_family] = adapter_cls


def list_model_families() -> list[str]:
    """Return list of registered model family names."""
    return list(_ADAPTER_REGISTRY.keys())


def resolve_model_files(model_id: str, revision: str = "main", *, cache_dir: str | None = None) -> ModelFiles:
    """Return local paths to the tokenizer, config and weights of a model.

    `model_id` may be a local directory (used as-is) or a Hugging Face Hub
    repository id, in which case the files of `revision` are downloaded into
    the hub cache. Sharded checkpoints are resolved through their
    safetensors index.

    Raises:
        ConfigurationError: A required file is missing or cannot be fetched.
    """
    local = Path(model_id).expanduser()
    if local.is_dir():
        return _resolve_local(local)
    return _resolve_hub(model_id, revision, cache_dir=cache_dir)


def _resolve_local(root: Path) -> ModelFiles:
    tokenizer_file = root / TOKENIZER_FILENAME
    config_file = root / CONFIG_FILENAME
    for required in (tokenizer_file, config_file):
        if not required.is_file():
            raise ConfigurationError(f"missing {required.name} in {root}")

    single = root / WEIGHTS_FILENAME
    index = root / WEIGHTS_INDEX_FILENAME
    if single.is_file():
        weights = [single]
    elif index.is_file():
        weights = [root / name for name in _shard_names(index)]
        missing = [w.name for w in weights if not w.is_file()]
        if missing:
            raise ConfigurationError(f"missing weight shards in {root}: {', '.join(missing)}")
    else:
        raise ConfigurationError(f"no {WEIGHTS_FILENAME} or {WEIGHTS_INDEX_FILENAME} in {root}")

    return ModelFiles(root=root, tokenizer_file=tokenizer_file, config_file=config_file, weight_files=weights)


def _resolve_hub(repo_id: str, revision: str, *, cache_dir: str | None) -> ModelFiles:
    from huggingface_hub import hf_hub_download
    from huggingface_hub.errors import EntryNotFoundError, HfHubHTTPError

    def fetch(filename: str) -> Path:
        return Path(hf_hub_download(repo_id, filename, revision=revision, cache_dir=cache_dir))

    logger.info("resolving %s@%s from the hub", repo_id, revision)
    try:
        tokenizer_file = fetch(TOKENIZER_FILENAME)
        config_file = fetch(CONFIG_FILENAME)
        try:
            weights = [fetch(WEIGHTS_FILENAME)]
        except EntryNotFoundError:
            index = fetch(WEIGHTS_INDEX_FILENAME)
            weights = [fetch(name) for name in _shard_names(index)]
        for name in OPTIONAL_FILENAMES:
            try:
                fetch(name)
            except EntryNotFoundError:
                logger.debug("%s has no %s", repo_id, name)
    except (HfHubHTTPError, OSError, ValueError) as exc:
        raise ConfigurationError(f"failed to resolve {repo_id}@{revision}: {exc}") from exc

    return ModelFiles(
        root=config_file.parent,
        tokenizer_file=tokenizer_file,
        config_file=config_file,
        weight_files=weights,
    )


def _shard_names(index_file: Path) -> list[str]:
    try:
        raw = json.loads(Path(index_file).read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        raise ConfigurationError(f"unreadable weight index {index_file}: {exc}") from exc
    weight_map = raw.get("weight_map") if isinstance(raw, dict) else None
    if not isinstance(weight_map, dict) or not weight_map:
        raise ConfigurationError(f"weight index {index_file} has no weight_map")
    return sorted(set(str(v) for v in weight_map.values()))
