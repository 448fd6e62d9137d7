"""Stateful tokenizer wrapper with incremental detokenization."""

from __future__ import annotations

from typing import Any, Sequence

from .errors import EncodeError


class TokenizerSession:
    """Encodes prompts and turns generated ids back into text one token at a time.

    Sub-word and byte-level tokenizers cannot decode every id on its own: a
    multi-byte character may span several tokens, and leading spaces depend on
    the previous token. The session therefore decodes a sliding window
    ``tokens[prev_index:]`` and only emits the suffix that was not part of
    ``tokens[prev_index:current_index]``, and only once the window ends in an
    alphanumeric character. Everything withheld is returned by
    :meth:`flush_remainder`.

    Not thread-safe; owned by a single GenerationSession.
    """

    def __init__(self, tokenizer: Any) -> None:
        self._tokenizer = tokenizer
        self._tokens: list[int] = []
        self._prev_index = 0
        self._current_index = 0
        self._vocab: dict[str, int] | None = None

    @property
    def tokenizer(self) -> Any:
        """Access the wrapped tokenizer."""
        return self._tokenizer

    @property
    def tokens(self) -> list[int]:
        return list(self._tokens)

    def reset(self) -> None:
        self._tokens = []
        self._prev_index = 0
        self._current_index = 0

    def encode(self, text: str) -> list[int]:
        try:
            ids = self._tokenizer.encode(text, add_special_tokens=True)
        except Exception as exc:
            raise EncodeError(str(exc) or f"failed to encode text: {exc!r}") from exc
        ids = [int(i) for i in ids]
        if not ids:
            raise EncodeError("text encoded to an empty token sequence")
        return ids

    def decode(self, ids: Sequence[int]) -> str:
        if not ids:
            return ""
        return self._tokenizer.decode(
            list(ids),
            skip_special_tokens=True,
            clean_up_tokenization_spaces=False,
        )

    def next_fragment(self, token_id: int) -> str | None:
        """Feed one generated id; return newly completed text, if any."""
        if self._tokens:
            prev_text = self.decode(self._tokens[self._prev_index : self._current_index])
        else:
            prev_text = ""
        self._tokens.append(int(token_id))
        text = self.decode(self._tokens[self._prev_index :])
        if len(text) > len(prev_text) and text[-1].isalnum():
            self._prev_index = self._current_index
            self._current_index = len(self._tokens)
            return text[len(prev_text) :]
        return None

    def flush_remainder(self) -> str | None:
        """Return text buffered since the last emitted fragment."""
        if self._tokens:
            prev_text = self.decode(self._tokens[self._prev_index : self._current_index])
        else:
            prev_text = ""
        text = self.decode(self._tokens[self._prev_index :])
        if len(text) > len(prev_text):
            return text[len(prev_text) :]
        return None

    def resolve_special_token(self, name: str) -> int | None:
        """Look up a named marker (e.g. ``<|im_end|>``) in the full vocabulary."""
        if self._vocab is None:
            self._vocab = dict(self._tokenizer.get_vocab())
        token_id = self._vocab.get(name)
        return None if token_id is None else int(token_id)
