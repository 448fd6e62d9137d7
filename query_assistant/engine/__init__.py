# Incremental decoding engine
#
# This package turns a question + table schema into SQL text with a
# causal language model, one token at a time.
#
# Key components:
#   - prompt.py              ChatML transcript composition
#   - tokenizer_session.py   Encoding + incremental detokenization
#   - sampling.py            Repetition penalty + greedy / seeded sampling
#   - decoding.py            Prefill / decode state machine over the KV cache
#   - session.py             Single-flight GenerationSession (public entry point)
#   - adapters/              Model-family adapters (forward + clear_cache)
#   - registry.py            Model file resolution and adapter lookup
#   - postprocess.py         Optional SQL extraction from raw output
#   - errors.py              Error taxonomy
