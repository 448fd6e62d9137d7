"""Logits -> next token id: repetition penalty + greedy / seeded sampling."""

from __future__ import annotations

from typing import Sequence

import torch

from .errors import SamplingError

DEFAULT_SEED = 299792458


def apply_repetition_penalty(logits: torch.Tensor, penalty: float, context: Sequence[int]) -> torch.Tensor:
    """Discourage every distinct id in `context`.

    Non-negative logits are divided by `penalty`, negative ones multiplied by
    it, so a repeated token always becomes less likely and never changes sign.
    Returns a new tensor; `logits` is left untouched.
    """
    out = logits.clone()
    vocab_size = out.shape[-1]
    ids = sorted({int(t) for t in context if 0 <= int(t) < vocab_size})
    if not ids:
        return out
    index = torch.tensor(ids, dtype=torch.long, device=out.device)
    selected = out[index]
    out[index] = torch.where(selected >= 0, selected / penalty, selected * penalty)
    return out


class SamplingPolicy:
    """Turns a logits vector into one token id.

    Temperature 0 (the default) is pure argmax. A positive temperature draws
    from a `torch.Generator` seeded with `seed`; `reset()` reseeds it, which
    the session does before every call so results do not depend on how many
    calls came before.
    """

    def __init__(
        self,
        *,
        seed: int = DEFAULT_SEED,
        temperature: float | None = 0.0,
        top_p: float | None = None,
        repeat_penalty: float = 1.1,
        repeat_last_n: int = 64,
    ) -> None:
        if temperature is not None and temperature < 0:
            raise ValueError(f"Temperature must be >= 0, got {temperature}")
        if top_p is not None and not 0.0 < top_p <= 1.0:
            raise ValueError(f"top_p must be in (0, 1], got {top_p}")
        if repeat_penalty <= 0:
            raise ValueError(f"repeat_penalty must be > 0, got {repeat_penalty}")
        if repeat_last_n < 0:
            raise ValueError(f"repeat_last_n must be >= 0, got {repeat_last_n}")
        self.seed = int(seed)
        self.temperature = temperature
        self.top_p = top_p
        self.repeat_penalty = float(repeat_penalty)
        self.repeat_last_n = int(repeat_last_n)
        self._generator = torch.Generator(device="cpu")
        self._generator.manual_seed(self.seed)

    def reset(self) -> None:
        self._generator.manual_seed(self.seed)

    def penalize(self, logits: torch.Tensor, history: Sequence[int]) -> torch.Tensor:
        if self.repeat_penalty == 1.0:
            return logits
        start_at = max(len(history) - self.repeat_last_n, 0)
        return apply_repetition_penalty(logits, self.repeat_penalty, history[start_at:])

    def sample(self, logits: torch.Tensor, history: Sequence[int]) -> int:
        if logits.dim() != 1 or logits.numel() == 0:
            raise SamplingError(f"expected a non-empty 1-D logits vector, got shape {tuple(logits.shape)}")
        if torch.isnan(logits).any():
            raise SamplingError("logits contain NaN")

        logits = self.penalize(logits, history)

        if not self.temperature:
            return int(torch.argmax(logits, dim=-1).item())

        # Softmax in fp32 on CPU so the seeded generator drives the draw.
        probs = torch.softmax(logits.detach().float().cpu() / float(self.temperature), dim=-1)
        if self.top_p is not None and self.top_p < 1.0:
            probs = self._top_p_filter(probs, self.top_p)
        return int(torch.multinomial(probs, 1, generator=self._generator).item())

    @staticmethod
    def _top_p_filter(probs: torch.Tensor, top_p: float) -> torch.Tensor:
        sorted_probs, sorted_idx = torch.sort(probs, descending=True)
        cumulative = torch.cumsum(sorted_probs, dim=-1)
        # Keep the smallest prefix whose mass reaches top_p (always at least one token).
        drop = (cumulative - sorted_probs) >= top_p
        sorted_probs = sorted_probs.masked_fill(drop, 0.0)
        filtered = torch.zeros_like(probs).scatter(-1, sorted_idx, sorted_probs)
        return filtered / filtered.sum()
