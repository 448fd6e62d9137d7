"""Adapter for Hugging Face causal language models (Qwen2 and friends)."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Sequence

from ..errors import ConfigurationError, ModelForwardError
from .base import BaseAdapter

if TYPE_CHECKING:
    import torch

    from ..types import ModelFiles

logger = logging.getLogger(__name__)


class CausalLMAdapter(BaseAdapter):
    """
    Adapter for `transformers.AutoModelForCausalLM` checkpoints.

    The adapter keeps the KV cache returned by the model between `forward`
    calls and tracks how many positions it holds. A forward pass must start
    exactly where the cache ends; anything else means tokens would be
    reprocessed (or skipped) and is rejected.

    Thread Safety:
        This adapter is NOT thread-safe. The cache is mutated in place by
        every forward pass; callers must serialize access.

    Example:
        >>> adapter = CausalLMAdapter()
        >>> adapter.load(resolve_model_files("benjamintli/duckdb-sqlcoder-0.5B"), device="cpu")
        >>> logits = adapter.forward(prompt_ids, 0)
        >>> logits = adapter.forward([next_id], len(prompt_ids))
        >>> adapter.clear_cache()
    """

    # -------------------------------------------------------------------------
    # Initialization
    # -------------------------------------------------------------------------

    def __init__(self, model: Any = None, *, device: str = "cpu", model_id: str | None = None) -> None:
        self._model = model
        self._model_id = model_id
        self._revision: str | None = None
        self._device = str(device)
        self._dtype = None
        self._past_key_values: Any = None
        self._cache_len = 0

    # -------------------------------------------------------------------------
    # Properties
    # -------------------------------------------------------------------------

    @property
    def model(self):
        """Access the underlying model (for advanced use cases)."""
        return self._model

    @property
    def device(self) -> str:
        """Device the model is loaded on."""
        return self._device

    @property
    def cache_len(self) -> int:
        """Number of positions currently held in the KV cache."""
        return self._cache_len

    @property
    def model_info(self) -> dict[str, Any]:
        """Return model metadata."""
        config = getattr(self._model, "config", None)
        return {
            "model_id": self._model_id,
            "revision": self._revision,
            "device": self._device,
            "dtype": str(self._dtype) if self._dtype is not None else None,
            "loaded": self._model is not None,
            "max_context_length": getattr(config, "max_position_embeddings", None),
            "cached_tokens": self._cache_len,
        }

    # -------------------------------------------------------------------------
    # Loading / Unloading
    # -------------------------------------------------------------------------

    def load(self, model_files: ModelFiles, **kwargs) -> None:
        """Load config, weights and move the model to its device.

        Args:
            model_files: Local files resolved by the registry.
            device: Torch device (default: "cpu").
            dtype: Torch dtype (default: torch.float32).
            model_id: Display name for model_info (default: the files root).
            revision: Revision the files were resolved from.
            **kwargs: Additional kwargs passed to from_pretrained().
        """
        import torch
        from transformers import AutoConfig, AutoModelForCausalLM

        self._device = str(kwargs.pop("device", "cpu"))
        self._dtype = kwargs.pop("dtype", torch.float32)
        self._model_id = kwargs.pop("model_id", None) or str(model_files.root)
        self._revision = kwargs.pop("revision", None)

        try:
            config = AutoConfig.from_pretrained(str(model_files.config_file))
        except (OSError, ValueError, KeyError) as exc:
            raise ConfigurationError(f"malformed model configuration {model_files.config_file}: {exc}") from exc

        logger.info(
            "loading %s (model_type=%s, layers=%s, hidden=%s) dtype=%s device=%s",
            self._model_id,
            getattr(config, "model_type", None),
            getattr(config, "num_hidden_layers", None),
            getattr(config, "hidden_size", None),
            self._dtype,
            self._device,
        )
        try:
            model = AutoModelForCausalLM.from_pretrained(
                str(model_files.root),
                config=config,
                dtype=self._dtype,
                **kwargs,
            )
            model.to(self._device)
        except (OSError, ValueError, RuntimeError) as exc:
            raise ConfigurationError(f"failed to load weights from {model_files.root}: {exc}") from exc

        model.eval()
        self._model = model
        self.clear_cache()

    def unload(self) -> None:
        """Unload the model and free accelerator memory."""
        import gc
        import torch

        self.clear_cache()
        del self._model
        self._model = None

        gc.collect()
        if torch.cuda.is_available():
            torch.cuda.empty_cache()

    # -------------------------------------------------------------------------
    # Forward / Cache
    # -------------------------------------------------------------------------

    def forward(self, input_ids: Sequence[int], position_offset: int) -> torch.Tensor:
        import torch

        self._ensure_loaded()
        n = len(input_ids)
        if n == 0:
            raise ModelForwardError("forward called with no input ids")
        if position_offset != self._cache_len:
            raise ModelForwardError(
                f"position offset {position_offset} does not match the {self._cache_len} cached positions"
            )

        device = getattr(self._model, "device", self._device)
        ids = torch.tensor([list(input_ids)], dtype=torch.long, device=device)
        cache_position = torch.arange(position_offset, position_offset + n, device=device)

        with torch.no_grad():
            outputs = self._model(
                ids,
                past_key_values=self._past_key_values,
                cache_position=cache_position,
                use_cache=True,
            )
        self._past_key_values = outputs.past_key_values
        self._cache_len = position_offset + n
        return outputs.logits[:, -1, :]

    def clear_cache(self) -> None:
        self._past_key_values = None
        self._cache_len = 0

    # -------------------------------------------------------------------------
    # Internal: Validation
    # -------------------------------------------------------------------------

    def _ensure_loaded(self) -> None:
        """Raise if the model is not loaded."""
        if self._model is None:
            raise RuntimeError("Model not loaded. Call load() first.")
