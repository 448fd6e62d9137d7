"""`qa`: query assistant CLI.

Run from source with:
  `python -m apps.cli.main --help`

`generate` loads the model in-process; `ask` talks to a running server.
"""

from __future__ import annotations

import argparse
import logging
from pathlib import Path
from typing import Sequence

from apps.cli.client import DEFAULT_URL, HttpError, QueryAssistantClient
from apps.cli.output import print_error, print_json
from query_assistant.config import GeneratorConfig, config_to_dict, load_config
from query_assistant.engine.errors import QueryAssistantError


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="qa", description="Query assistant: natural language to DuckDB SQL")
    p.add_argument(
        "--url",
        default=DEFAULT_URL,
        help="Server base URL for `ask` (default: %(default)s)",
    )
    p.add_argument("--config", default=None, help="JSON config file (default: $QUERY_ASSISTANT_CONFIG or XDG config)")
    p.add_argument("--log-level", default="warning", help="Log level (default: warning)")

    sub = p.add_subparsers(dest="command")

    gen = sub.add_parser("generate", help="Generate SQL with a locally loaded model")
    gen.add_argument("question", help="Natural-language question")
    schema_src = gen.add_mutually_exclusive_group()
    schema_src.add_argument("--schema", default=None, help="Schema DDL as a string")
    schema_src.add_argument("--schema-file", default=None, help="Read schema DDL from a file")
    schema_src.add_argument("--duckdb", default=None, metavar="DB", help="Read table DDL from a DuckDB database")
    gen.add_argument("--model", default=None, help="Model path or HF repo id")
    gen.add_argument("--device", default=None, help="auto|cpu|cuda|mps")
    gen.add_argument("--max-steps", type=int, default=None, help="Decode step budget")
    gen.add_argument("--temperature", type=float, default=None, help="Sampling temperature (0 = greedy)")
    gen.add_argument("--seed", type=int, default=None, help="Sampling seed")
    gen.add_argument("--extract-sql", action="store_true", default=None, help="Strip code fences / trailing text")
    gen.add_argument("--json", action="store_true", help="Print the full result as JSON")

    ask = sub.add_parser("ask", help="Generate SQL through a running server")
    ask.add_argument("question", help="Natural-language question")
    ask_src = ask.add_mutually_exclusive_group()
    ask_src.add_argument("--schema", default=None, help="Schema DDL as a string")
    ask_src.add_argument("--schema-file", default=None, help="Read schema DDL from a file")
    ask_src.add_argument("--duckdb", default=None, metavar="DB", help="Read table DDL from a DuckDB database")
    ask.add_argument("--json", action="store_true", help="Print the full response as JSON")

    sub.add_parser("config", help="Print the effective configuration")
    return p


def read_schema(args: argparse.Namespace) -> str:
    if getattr(args, "schema", None) is not None:
        return args.schema
    if getattr(args, "schema_file", None):
        return Path(args.schema_file).read_text(encoding="utf-8")
    if getattr(args, "duckdb", None):
        import duckdb

        from query_assistant.integrations.duckdb_udf import collect_ddl

        conn = duckdb.connect(args.duckdb, read_only=True)
        try:
            return collect_ddl(conn)
        finally:
            conn.close()
    return ""


def _config_for_generate(args: argparse.Namespace) -> GeneratorConfig:
    return load_config(args.config).merged(
        {
            "model_id": args.model,
            "device": args.device,
            "max_steps": args.max_steps,
            "temperature": args.temperature,
            "seed": args.seed,
            "extract_sql": args.extract_sql,
        }
    )


def cmd_generate(args: argparse.Namespace) -> int:
    from query_assistant.engine.session import GenerationSession

    schema = read_schema(args)
    config = _config_for_generate(args)
    session = GenerationSession.from_config(config)
    try:
        result = session.run(args.question, schema)
    finally:
        session.shutdown()

    if args.json:
        print_json(
            {
                "sql": result.text,
                "finish_reason": result.finish_reason,
                "prompt_tokens": result.prompt_tokens,
                "completion_tokens": result.completion_tokens,
            }
        )
    else:
        print(result.text)
    if result.finish_reason == "length":
        print_error(f"step budget of {session.max_steps} exhausted; output may be truncated")
    return 0


def cmd_ask(args: argparse.Namespace) -> int:
    schema = read_schema(args)
    client = QueryAssistantClient(base_url=args.url)
    # Fail fast on an unreachable server before sending a long-running request.
    client.health()
    resp = client.generate(args.question, schema)
    if args.json:
        print_json(resp)
    else:
        print(resp["sql"])
    return 0


def cmd_config(args: argparse.Namespace) -> int:
    print_json(config_to_dict(load_config(args.config)))
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(level=args.log_level.upper(), format="%(levelname)s %(name)s: %(message)s")

    command = args.command
    if not command:
        parser.print_help()
        return 2

    try:
        if command == "generate":
            return cmd_generate(args)
        if command == "ask":
            return cmd_ask(args)
        if command == "config":
            return cmd_config(args)
    except HttpError as exc:
        print_error(str(exc))
        return 1
    except QueryAssistantError as exc:
        print_error(f"{exc.kind}: {exc}")
        return 1
    except OSError as exc:
        print_error(str(exc))
        return 1
    parser.error(f"Unknown command: {command!r}")
    return 2


if __name__ == "__main__":
    raise SystemExit(main())
