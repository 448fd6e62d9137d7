"""Incremental decoding loop: prefill once, then one token per step.

State machine::

    INIT -> PREFILL -> DECODE(n) -> STOPPED            (stop token sampled)
                                 -> BUDGET_EXHAUSTED   (max_steps reached)

Step 0 runs the model over the whole prompt at position 0, filling the KV
cache. Every later step feeds only the most recent token at position
``len(tokens) - 1``; cached positions are never fed again. The cache is
cleared on every exit path, including errors.
"""

from __future__ import annotations

import enum
import logging
import time
from typing import Collection, Sequence

import torch

from .adapters.base import BaseAdapter
from .errors import EncodeError, MissingStopTokenError, ModelForwardError, QueryAssistantError
from .sampling import SamplingPolicy
from .tokenizer_session import TokenizerSession
from .types import GenerationResult

logger = logging.getLogger(__name__)

DEFAULT_MAX_STEPS = 256


class DecodeState(str, enum.Enum):
    INIT = "init"
    PREFILL = "prefill"
    DECODE = "decode"
    STOPPED = "stopped"
    BUDGET_EXHAUSTED = "budget_exhausted"


class DecodingLoop:
    def __init__(
        self,
        adapter: BaseAdapter,
        tokenizer: TokenizerSession,
        sampler: SamplingPolicy,
        stop_token_ids: Collection[int],
        *,
        max_steps: int = DEFAULT_MAX_STEPS,
    ) -> None:
        if max_steps <= 0:
            raise ValueError(f"max_steps must be > 0, got {max_steps}")
        self.adapter = adapter
        self.tokenizer = tokenizer
        self.sampler = sampler
        self.stop_token_ids = frozenset(int(t) for t in stop_token_ids)
        self.max_steps = int(max_steps)
        self.state = DecodeState.INIT
        self.steps = 0

    def run(self, prompt_ids: Sequence[int]) -> GenerationResult:
        self.state = DecodeState.INIT
        self.steps = 0
        if not self.stop_token_ids:
            raise MissingStopTokenError("stop")
        if not prompt_ids:
            raise EncodeError("cannot decode from an empty prompt")

        tokens = [int(t) for t in prompt_ids]
        prompt_len = len(tokens)
        output: list[str] = []
        prefill_s: float | None = None
        t0 = time.perf_counter()

        try:
            for index in range(self.max_steps):
                if index == 0:
                    self.state = DecodeState.PREFILL
                    start_pos = 0
                else:
                    self.state = DecodeState.DECODE
                    start_pos = len(tokens) - 1

                logits = self._forward(tokens[start_pos:], start_pos)
                if index == 0:
                    prefill_s = time.perf_counter() - t0
                    logger.debug("prefill: %d tokens in %.3fs", prompt_len, prefill_s)

                next_token = self.sampler.sample(logits, tokens)
                tokens.append(next_token)
                self.steps = index + 1

                if next_token in self.stop_token_ids:
                    self.state = DecodeState.STOPPED
                    break

                fragment = self.tokenizer.next_fragment(next_token)
                if fragment:
                    output.append(fragment)
            else:
                self.state = DecodeState.BUDGET_EXHAUSTED

            rest = self.tokenizer.flush_remainder()
            if rest:
                output.append(rest)
        finally:
            self.adapter.clear_cache()

        total_s = time.perf_counter() - t0
        finish_reason = "stop" if self.state is DecodeState.STOPPED else "length"
        logger.info(
            "decode finished: reason=%s prompt_tokens=%d steps=%d total=%.3fs",
            finish_reason,
            prompt_len,
            self.steps,
            total_s,
        )
        return GenerationResult(
            text="".join(output),
            token_ids=tokens[prompt_len:],
            prompt_tokens=prompt_len,
            finish_reason=finish_reason,
            prefill_s=prefill_s,
            decode_s=None if prefill_s is None else total_s - prefill_s,
        )

    def _forward(self, input_ids: list[int], start_pos: int) -> torch.Tensor:
        try:
            logits = self.adapter.forward(input_ids, start_pos)
            # (1, vocab) or (1, 1, vocab) -> (vocab,)
            return logits.reshape(-1).to(torch.float32)
        except QueryAssistantError:
            raise
        except Exception as exc:
            logger.error("forward pass failed at position %d (%s): %s", start_pos, self.state.value, exc)
            raise ModelForwardError(f"forward pass failed at position {start_pos}: {exc}") from exc
