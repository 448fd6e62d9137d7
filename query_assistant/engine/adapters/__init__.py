# Model-family adapters
#
# Each adapter implements a common interface for:
#   - Loading a model from files resolved by the registry
#   - Incremental forward passes against its own KV cache
#   - Resetting that cache between requests
#
# The engine uses adapters to stay model-agnostic.

from .base import BaseAdapter

__all__ = ["BaseAdapter"]
