"""Engine result and model description types.

These types are used internally by the engine and adapters.
They are independent of any HTTP/API layer.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Literal


FinishReason = Literal["stop", "length"]


@dataclass(frozen=True)
class GenerationResult:
    """Outcome of one `generate` call."""

    text: str
    token_ids: list[int] = field(default_factory=list)
    prompt_tokens: int = 0
    finish_reason: FinishReason = "stop"  # "stop" (stop token) or "length" (step budget)
    prefill_s: float | None = None
    decode_s: float | None = None

    @property
    def completion_tokens(self) -> int:
        return len(self.token_ids)


@dataclass(frozen=True)
class ModelFiles:
    """Local files of a resolved model repository."""

    root: Path
    tokenizer_file: Path
    config_file: Path
    weight_files: list[Path] = field(default_factory=list)

