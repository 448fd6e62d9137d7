"""Top-level generation session (single-flight).

A session owns the loaded model adapter, the tokenizer session and the
sampling policy, and exposes ``generate(prompt, table_schema) -> str``.
Between calls it always returns to the same logical state: empty KV cache,
cleared decode cursor, reseeded sampler.
"""

from __future__ import annotations

import dataclasses
import logging
import threading
from typing import TYPE_CHECKING, Any, Sequence

from .adapters.base import BaseAdapter
from .decoding import DEFAULT_MAX_STEPS, DecodingLoop
from .errors import ConfigurationError, MissingStopTokenError
from .postprocess import extract_sql
from .prompt import DEFAULT_STOP_TOKENS, PromptComposer
from .sampling import SamplingPolicy
from .tokenizer_session import TokenizerSession
from .types import GenerationResult, ModelFiles

if TYPE_CHECKING:
    from query_assistant.config import GeneratorConfig

logger = logging.getLogger(__name__)


class GenerationSession:
    """Question + schema -> SQL text.

    Thread-safety:
        The model's KV cache, the decode cursor and the random stream are
        mutated in place during a call. The session serializes callers with a
        lock (single-flight); run it on a worker thread from async code.
    """

    def __init__(
        self,
        adapter: BaseAdapter,
        tokenizer: TokenizerSession | Any,
        *,
        composer: PromptComposer | None = None,
        sampler: SamplingPolicy | None = None,
        stop_tokens: Sequence[str] = DEFAULT_STOP_TOKENS,
        max_steps: int = DEFAULT_MAX_STEPS,
        device: Any = None,
        extract_sql: bool = False,
    ) -> None:
        if int(max_steps) <= 0:
            raise ConfigurationError(f"max_steps must be > 0, got {max_steps}")
        if not isinstance(tokenizer, TokenizerSession):
            tokenizer = TokenizerSession(tokenizer)
        self._adapter = adapter
        self._tokenizer = tokenizer
        self._composer = composer or PromptComposer()
        self._sampler = sampler or SamplingPolicy()
        self._max_steps = int(max_steps)
        self._device = device
        self._extract_sql = bool(extract_sql)
        self._stop_tokens = tuple(stop_tokens)
        self._stop_token_ids = self._resolve_stop_tokens(self._stop_tokens)
        self._lock = threading.Lock()

    @classmethod
    def from_config(cls, config: GeneratorConfig | None = None) -> "GenerationSession":
        """Resolve, load and assemble everything a session needs.

        Raises:
            ConfigurationError: on any failure; no session is constructed.
        """
        from query_assistant.config import GeneratorConfig
        from query_assistant.runtime import dtype_from_string, resolve_device

        from .registry import get_adapter, resolve_model_files

        config = config or GeneratorConfig()
        config.validate()

        device = resolve_device(config.device)
        dtype = dtype_from_string(config.dtype)
        files = resolve_model_files(config.model_id, config.revision, cache_dir=config.cache_dir)
        tokenizer = _load_tokenizer(files)

        adapter = get_adapter(config.model_family)
        adapter.load(files, device=str(device), dtype=dtype, model_id=config.model_id, revision=config.revision)

        sampler = SamplingPolicy(
            seed=config.seed,
            temperature=config.temperature,
            top_p=config.top_p,
            repeat_penalty=config.repeat_penalty,
            repeat_last_n=config.repeat_last_n,
        )
        return cls(
            adapter,
            TokenizerSession(tokenizer),
            composer=PromptComposer(use_system_prompt=config.use_system_prompt),
            sampler=sampler,
            stop_tokens=config.stop_tokens,
            max_steps=config.max_steps,
            device=device,
            extract_sql=config.extract_sql,
        )

    @property
    def adapter(self) -> BaseAdapter:
        return self._adapter

    @property
    def tokenizer(self) -> TokenizerSession:
        return self._tokenizer

    @property
    def stop_token_ids(self) -> frozenset[int]:
        return self._stop_token_ids

    @property
    def max_steps(self) -> int:
        return self._max_steps

    @property
    def model_info(self) -> dict[str, Any]:
        info = dict(getattr(self._adapter, "model_info", {}) or {})
        if self._device is not None:
            info["device"] = str(self._device)
        info["max_steps"] = self._max_steps
        info["stop_tokens"] = list(self._stop_tokens)
        return info

    def generate(self, prompt: str, table_schema: str) -> str:
        """Return the SQL text generated for `prompt` against `table_schema`.

        The result is "" when the model emits a stop token first; that is an
        answer, not an error. Failures raise a QueryAssistantError subclass.
        """
        return self.run(prompt, table_schema).text

    def run(self, prompt: str, table_schema: str) -> GenerationResult:
        with self._lock:
            self._tokenizer.reset()
            self._sampler.reset()
            try:
                text = self._composer.build(prompt, table_schema, self._tokenizer.tokenizer)
                prompt_ids = self._tokenizer.encode(text)
                loop = DecodingLoop(
                    self._adapter,
                    self._tokenizer,
                    self._sampler,
                    self._stop_token_ids,
                    max_steps=self._max_steps,
                )
                result = loop.run(prompt_ids)
            finally:
                self._tokenizer.reset()

        if self._extract_sql:
            result = dataclasses.replace(result, text=extract_sql(result.text))
        return result

    def shutdown(self) -> None:
        self._adapter.unload()

    def _resolve_stop_tokens(self, names: Sequence[str]) -> frozenset[int]:
        if not names:
            raise ConfigurationError("at least one stop token is required")
        ids: set[int] = set()
        for name in names:
            token_id = self._tokenizer.resolve_special_token(name)
            if token_id is None:
                raise MissingStopTokenError(name)
            ids.add(token_id)
        return frozenset(ids)


def _load_tokenizer(files: ModelFiles) -> Any:
    from transformers import AutoTokenizer

    try:
        return AutoTokenizer.from_pretrained(str(files.root), use_fast=True)
    except (OSError, ValueError) as exc:
        raise ConfigurationError(f"failed to load tokenizer from {files.tokenizer_file}: {exc}") from exc
