"""FastAPI app exposing SQL generation over HTTP.

The HTTP layer lives under `apps/` and can depend on heavier deps (FastAPI, uvicorn).
All model execution is delegated to the core session (`query_assistant/engine`).
"""

from __future__ import annotations

import asyncio
import time
import uuid
from typing import Any

from fastapi import FastAPI, HTTPException, Request
from starlette.responses import JSONResponse

from query_assistant._version import __version__
from query_assistant.engine.errors import EncodeError, QueryAssistantError, TemplateError


def create_app(
    *,
    session: Any,
    model_id: str,
    http_max_concurrency: int | None = None,
) -> FastAPI:
    app = FastAPI(title="Query Assistant Server", version=__version__)

    http_semaphore: asyncio.Semaphore | None = None
    if http_max_concurrency is not None:
        try:
            http_max_concurrency = int(http_max_concurrency)
        except Exception as exc:
            raise ValueError("http_max_concurrency must be an integer") from exc
        if http_max_concurrency > 0:
            http_semaphore = asyncio.Semaphore(http_max_concurrency)
        elif http_max_concurrency < 0:
            raise ValueError("http_max_concurrency must be >= 0")

    async def _try_acquire_semaphore() -> None:
        if http_semaphore is None:
            return
        try:
            await asyncio.wait_for(http_semaphore.acquire(), timeout=0.001)
        except asyncio.TimeoutError as exc:
            raise HTTPException(status_code=429, detail="Server is busy") from exc

    # -------------------------------------------------------------------------
    # Health & Models
    # -------------------------------------------------------------------------

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    @app.get("/v1/models")
    async def list_models() -> dict[str, Any]:
        now = int(time.time())
        info = dict(getattr(session, "model_info", {}) or {})
        return {
            "object": "list",
            "data": [
                {
                    "id": model_id,
                    "object": "model",
                    "created": now,
                    "owned_by": "query-assistant",
                    "info": info,
                }
            ],
        }

    # -------------------------------------------------------------------------
    # Generation
    # -------------------------------------------------------------------------

    @app.post("/v1/generate")
    async def generate(request: Request) -> Any:
        try:
            payload = await request.json()
        except Exception as exc:
            raise HTTPException(status_code=400, detail="Request body must be valid JSON.") from exc
        if not isinstance(payload, dict):
            raise HTTPException(status_code=400, detail="Request body must be a JSON object.")

        req_model = payload.get("model")
        if req_model is not None and req_model != model_id:
            raise HTTPException(status_code=404, detail=f"Unknown model: {req_model}")

        prompt = payload.get("prompt")
        if not isinstance(prompt, str) or not prompt.strip():
            raise HTTPException(status_code=400, detail="'prompt' is required and must be a non-empty string.")
        schema = payload.get("schema", "")
        if schema is None:
            schema = ""
        if not isinstance(schema, str):
            raise HTTPException(status_code=400, detail="'schema' must be a string.")

        await _try_acquire_semaphore()
        t0 = time.perf_counter()
        try:
            # The session serializes callers; keep the event loop free meanwhile.
            result = await asyncio.to_thread(session.run, prompt, schema)
        except (TemplateError, EncodeError) as exc:
            raise HTTPException(status_code=400, detail=_error_detail(exc)) from exc
        except QueryAssistantError as exc:
            raise HTTPException(status_code=500, detail=_error_detail(exc)) from exc
        except Exception as exc:
            raise HTTPException(status_code=500, detail=str(exc)) from exc
        finally:
            if http_semaphore is not None:
                http_semaphore.release()
        total_s = time.perf_counter() - t0

        completion_tokens = len(result.token_ids)
        return JSONResponse(
            {
                "id": f"sqlgen-{uuid.uuid4().hex}",
                "object": "sql.generation",
                "created": int(time.time()),
                "model": model_id,
                "sql": result.text,
                "finish_reason": result.finish_reason,
                "usage": {
                    "prompt_tokens": result.prompt_tokens,
                    "completion_tokens": completion_tokens,
                    "total_tokens": result.prompt_tokens + completion_tokens,
                },
                "timing": {
                    "prefill_s": result.prefill_s,
                    "decode_s": result.decode_s,
                    "total_s": total_s,
                },
            }
        )

    return app


def _error_detail(exc: QueryAssistantError) -> dict[str, str]:
    return {"kind": exc.kind, "message": str(exc)}
