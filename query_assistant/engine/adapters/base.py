"""Base adapter interface for model families."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, Sequence

if TYPE_CHECKING:
    import torch

    from ..types import ModelFiles


class BaseAdapter(ABC):
    """
    Abstract base class for model-family adapters.

    An adapter owns a loaded causal LM together with its KV cache. The
    decoding loop only needs two operations from it: a forward pass over new
    token ids at a given position offset, and an explicit cache reset.
    """

    @abstractmethod
    def load(self, model_files: ModelFiles, **kwargs) -> None:
        """
        Load model weights and configuration from resolved local files.

        Args:
            model_files: Paths returned by the model registry.
            **kwargs: Model-specific loading options (dtype, device, etc.).
        """
        pass

    @abstractmethod
    def forward(self, input_ids: Sequence[int], position_offset: int) -> torch.Tensor:
        """
        Run the model over `input_ids`, appending them to the KV cache.

        Args:
            input_ids: Token ids not yet seen by the cache.
            position_offset: Absolute position of `input_ids[0]`; must equal
                the number of tokens already cached.

        Returns:
            Logits for the position after the last input id, shape (1, vocab_size).
        """
        pass

    @abstractmethod
    def clear_cache(self) -> None:
        """Drop all cached attention state so the next forward starts at position 0."""
        pass

    @property
    @abstractmethod
    def model_info(self) -> dict[str, Any]:
        """
        Return metadata about the loaded model.

        Returns:
            Dict with keys like 'model_id', 'dtype', 'device', 'max_context_length'.
        """
        pass

    def unload(self) -> None:
        """
        Unload the model and free resources.

        Default implementation does nothing; override if cleanup is needed.
        """
        pass
