import pytest


torch = pytest.importorskip("torch", reason="torch not installed")


from query_assistant.engine.adapters.base import BaseAdapter
from query_assistant.engine.decoding import DecodeState, DecodingLoop
from query_assistant.engine.errors import (
    EncodeError,
    MissingStopTokenError,
    ModelForwardError,
)
from query_assistant.engine.sampling import SamplingPolicy
from query_assistant.engine.tokenizer_session import TokenizerSession


EOS = 0
IM_END = 2
VOCAB = 300


class _CharTokenizer:
    _offset = 10

    def encode(self, text, *, add_special_tokens=True):
        return [self._offset + ord(ch) for ch in text]

    def decode(self, ids, *, skip_special_tokens=False, clean_up_tokenization_spaces=True):
        return "".join(chr(i - self._offset) for i in ids if i >= self._offset)

    def get_vocab(self):
        return {"<|endoftext|>": EOS, "<|im_end|>": IM_END}


class _ScriptedAdapter(BaseAdapter):
    """Emits a fixed token script; checks that positions line up with the cache."""

    def __init__(self, script, *, fail_at_call=None):
        self.script = list(script)
        self.fail_at_call = fail_at_call
        self.calls = []
        self.cache_len = 0
        self.clear_calls = 0

    def load(self, model_files, **kwargs):  # pragma: no cover
        pass

    def forward(self, input_ids, position_offset):
        assert position_offset == self.cache_len
        if self.fail_at_call is not None and len(self.calls) == self.fail_at_call:
            raise RuntimeError("device lost")
        step = len(self.calls)
        self.calls.append((list(input_ids), position_offset))
        self.cache_len += len(input_ids)
        logits = torch.zeros(1, VOCAB)
        logits[0, self.script[step % len(self.script)]] = 10.0
        return logits

    def clear_cache(self):
        self.cache_len = 0
        self.clear_calls += 1

    @property
    def model_info(self):
        return {}


def _ids(text):
    return _CharTokenizer().encode(text)


def _loop(adapter, *, max_steps=256, stop=(EOS, IM_END)):
    return DecodingLoop(
        adapter,
        TokenizerSession(_CharTokenizer()),
        SamplingPolicy(repeat_penalty=1.0),
        stop,
        max_steps=max_steps,
    )


def test_prefill_once_then_single_tokens():
    prompt = _ids("Q:")
    adapter = _ScriptedAdapter(_ids("SELECT 1;") + [IM_END])
    loop = _loop(adapter)

    result = loop.run(prompt)

    assert result.text == "SELECT 1;"
    assert result.finish_reason == "stop"
    assert loop.state is DecodeState.STOPPED
    # Prefill over the whole prompt at position 0.
    assert adapter.calls[0] == (prompt, 0)
    # Every later call feeds exactly one new token at the next position.
    for n, (ids, offset) in enumerate(adapter.calls[1:], start=1):
        assert len(ids) == 1
        assert offset == len(prompt) + n - 1
    assert len(adapter.calls) == len("SELECT 1;") + 1
    assert adapter.clear_calls == 1


def test_stop_token_is_not_rendered_but_counted():
    adapter = _ScriptedAdapter(_ids("ab") + [EOS] + _ids("zz"))
    result = _loop(adapter).run(_ids("p"))

    assert result.text == "ab"
    assert result.token_ids == _ids("ab") + [EOS]
    assert result.completion_tokens == 3
    assert result.prompt_tokens == 1


def test_immediate_stop_gives_empty_text():
    adapter = _ScriptedAdapter([IM_END])
    result = _loop(adapter).run(_ids("p"))

    assert result.text == ""
    assert result.finish_reason == "stop"
    assert len(adapter.calls) == 1


def test_budget_exhausted_after_max_steps():
    # The stop token would only come on step 257.
    adapter = _ScriptedAdapter(_ids("x") * 256 + [IM_END])
    loop = _loop(adapter)

    result = loop.run(_ids("p"))

    assert result.finish_reason == "length"
    assert loop.state is DecodeState.BUDGET_EXHAUSTED
    assert loop.steps == 256
    assert len(adapter.calls) == 256
    assert result.text == "x" * 256
    assert adapter.clear_calls == 1


def test_custom_budget():
    adapter = _ScriptedAdapter(_ids("abcdef"))
    result = _loop(adapter, max_steps=3).run(_ids("p"))

    assert result.text == "abc"
    assert result.finish_reason == "length"


def test_forward_error_is_wrapped_and_cache_cleared():
    adapter = _ScriptedAdapter(_ids("abc"), fail_at_call=2)
    loop = _loop(adapter)

    with pytest.raises(ModelForwardError, match="device lost"):
        loop.run(_ids("p"))

    assert adapter.clear_calls == 1
    assert adapter.cache_len == 0


def test_empty_prompt_and_stop_set_are_rejected():
    with pytest.raises(EncodeError):
        _loop(_ScriptedAdapter([EOS])).run([])
    with pytest.raises(MissingStopTokenError):
        _loop(_ScriptedAdapter([EOS]), stop=()).run(_ids("p"))


def test_loop_is_reusable_from_clean_cache():
    adapter = _ScriptedAdapter(_ids("a") + [EOS])
    loop = _loop(adapter)

    first = loop.run(_ids("p"))
    loop.tokenizer.reset()
    adapter.script = _ids("a") + [EOS]
    adapter.calls = []
    second = loop.run(_ids("p"))

    assert first.text == second.text == "a"
    assert adapter.calls[0][1] == 0
