"""Query assistant inference server entrypoint (FastAPI).

Example:
    python -m apps.server.main --model benjamintli/duckdb-sqlcoder-0.5B --host 0.0.0.0 --port 8787
"""

from __future__ import annotations

import argparse
import logging
import os
from typing import Sequence

from apps.server.app import create_app
from query_assistant.config import GeneratorConfig, load_config
from query_assistant.engine.session import GenerationSession


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(description="Query assistant inference server")
    p.add_argument("--config", default=None, help="JSON config file (default: $QUERY_ASSISTANT_CONFIG or XDG config)")
    p.add_argument("--model", default=None, help="Model path or HF repo id")
    p.add_argument("--revision", default=None, help="Model revision (default: main)")
    p.add_argument("--host", default="0.0.0.0", help="Bind host (default: 0.0.0.0)")
    p.add_argument("--port", type=int, default=8787, help="Bind port (default: 8787)")

    p.add_argument("--device", default=None, help="auto|cpu|cuda|mps (default: auto)")
    p.add_argument("--dtype", default=None, help="Torch dtype: float16|bfloat16|float32 (default: float32)")
    p.add_argument("--max-steps", type=int, default=None, help="Decode step budget (default: 256)")
    p.add_argument("--temperature", type=float, default=None, help="Sampling temperature (default: 0 = greedy)")
    p.add_argument("--seed", type=int, default=None, help="Sampling seed")
    p.add_argument("--repeat-penalty", type=float, default=None, help="Repetition penalty (default: 1.1)")
    p.add_argument(
        "--no-system-prompt",
        dest="use_system_prompt",
        action="store_false",
        default=None,
        help="Put the instructions in the user message instead of a system message",
    )
    p.add_argument("--extract-sql", action="store_true", default=None, help="Strip code fences / trailing text")
    p.add_argument(
        "--http-max-concurrency",
        type=int,
        default=0,
        help="Max in-flight /v1/generate requests (0 = unlimited)",
    )
    p.add_argument("--log-level", default="info", help="Log level (default: info)")
    return p


def config_from_args(args: argparse.Namespace) -> GeneratorConfig:
    config = load_config(args.config)
    return config.merged(
        {
            "model_id": args.model,
            "revision": args.revision,
            "device": args.device,
            "dtype": args.dtype,
            "max_steps": args.max_steps,
            "temperature": args.temperature,
            "seed": args.seed,
            "repeat_penalty": args.repeat_penalty,
            "use_system_prompt": args.use_system_prompt,
            "extract_sql": args.extract_sql,
        }
    )


def main(argv: Sequence[str] | None = None) -> None:
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=args.log_level.upper(), format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    config = config_from_args(args)
    print(
        "[server] loading model... "
        f"model={config.model_id!r} revision={config.revision!r} device={config.device!r} dtype={config.dtype!r}",
        flush=True,
    )
    session = GenerationSession.from_config(config)
    print(f"[server] model loaded on {session.model_info.get('device')}", flush=True)

    model_id = os.path.basename(config.model_id.rstrip("/")) or "query-assistant"
    app = create_app(
        session=session,
        model_id=model_id,
        http_max_concurrency=None if args.http_max_concurrency <= 0 else int(args.http_max_concurrency),
    )

    try:
        import uvicorn
    except Exception as exc:  # pragma: no cover
        raise RuntimeError("uvicorn is required to run the server.") from exc

    uvicorn.run(
        app,
        host=args.host,
        port=args.port,
        log_level=args.log_level.lower(),
    )


if __name__ == "__main__":
    main()
