"""
query_assistant - natural-language questions to DuckDB SQL with a small causal LM.

Quick Start:
    from query_assistant import GenerationSession, GeneratorConfig

    session = GenerationSession.from_config(GeneratorConfig(device="cpu"))
    sql = session.generate(
        "How many orders did each customer place?",
        "CREATE TABLE orders(id INTEGER, customer_id INTEGER, total DOUBLE);",
    )

Submodules:
    - query_assistant.engine: prompt composition, tokenizer session, sampling,
      decoding loop, session and model adapters
    - query_assistant.config: GeneratorConfig and JSON config loading
    - query_assistant.runtime: device selection
    - query_assistant.integrations.duckdb_udf: `query_assistant(prompt)` SQL function

Environment Variables:
    QUERY_ASSISTANT_CONFIG: Path to a JSON config file (overrides the default
        $XDG_CONFIG_HOME/query-assistant/config.json)
"""

from query_assistant._version import __version__

from query_assistant.config import GeneratorConfig, load_config
from query_assistant.engine.errors import (
    ConfigurationError,
    EncodeError,
    MissingStopTokenError,
    ModelForwardError,
    QueryAssistantError,
    SamplingError,
    TemplateError,
)
from query_assistant.engine.session import GenerationSession
from query_assistant.engine.types import GenerationResult

__all__ = [
    "__version__",
    "GenerationSession",
    "GenerationResult",
    "GeneratorConfig",
    "load_config",
    "QueryAssistantError",
    "ConfigurationError",
    "MissingStopTokenError",
    "TemplateError",
    "EncodeError",
    "ModelForwardError",
    "SamplingError",
]
