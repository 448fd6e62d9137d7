"""Error taxonomy for the generation engine.

Callers can branch on the concrete class (or on the ``kind`` tag, which the
HTTP layer forwards to clients):

- ConfigurationError: raised while building a session, never mid-generation.
- TemplateError / EncodeError: the current call is aborted; the session stays usable.
- ModelForwardError: the tensor runtime failed; the KV cache is reset before
  the error reaches the caller.
- SamplingError: internal invariant violation (empty or NaN logits).

Running out of decode steps is not an error; see ``GenerationResult.finish_reason``.
"""

from __future__ import annotations


class QueryAssistantError(RuntimeError):
    kind = "internal"


class ConfigurationError(QueryAssistantError):
    kind = "configuration"


class MissingStopTokenError(ConfigurationError):
    kind = "missing_stop_token"

    def __init__(self, token: str) -> None:
        super().__init__(f"cannot find the {token} token in the tokenizer vocabulary")
        self.token = token


class TemplateError(QueryAssistantError):
    kind = "template"


class EncodeError(QueryAssistantError):
    kind = "encode"


class ModelForwardError(QueryAssistantError):
    kind = "model_forward"


class SamplingError(QueryAssistantError):
    kind = "sampling"
