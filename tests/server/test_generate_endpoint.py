import pytest

pytest.importorskip("fastapi", reason="fastapi not installed")
pytest.importorskip("torch", reason="torch not installed")


from query_assistant.engine.errors import EncodeError, ModelForwardError
from query_assistant.engine.types import GenerationResult


class FakeSession:
    def __init__(self, *, error=None):
        self.error = error
        self.calls = []

    @property
    def model_info(self):
        return {"device": "cpu", "max_steps": 256}

    def run(self, prompt, schema):
        self.calls.append((prompt, schema))
        if self.error is not None:
            raise self.error
        return GenerationResult(
            text="SELECT count(*) FROM t;",
            token_ids=[11, 12, 2],
            prompt_tokens=40,
            finish_reason="stop",
            prefill_s=0.01,
            decode_s=0.02,
        )


def _client(session, **kwargs):
    from fastapi.testclient import TestClient

    from apps.server.app import create_app

    return TestClient(create_app(session=session, model_id="duckdb-sqlcoder", **kwargs))


def test_generate_basic_shape():
    session = FakeSession()
    client = _client(session)

    resp = client.post(
        "/v1/generate",
        json={"model": "duckdb-sqlcoder", "prompt": "how many rows?", "schema": "CREATE TABLE t(a INT);"},
    )

    assert resp.status_code == 200
    data = resp.json()
    assert data["object"] == "sql.generation"
    assert data["id"].startswith("sqlgen-")
    assert data["model"] == "duckdb-sqlcoder"
    assert data["sql"] == "SELECT count(*) FROM t;"
    assert data["finish_reason"] == "stop"
    assert data["usage"] == {"prompt_tokens": 40, "completion_tokens": 3, "total_tokens": 43}
    assert data["timing"]["prefill_s"] == 0.01
    assert session.calls == [("how many rows?", "CREATE TABLE t(a INT);")]


def test_schema_defaults_to_empty():
    session = FakeSession()
    resp = _client(session).post("/v1/generate", json={"prompt": "list tables"})
    assert resp.status_code == 200
    assert session.calls == [("list tables", "")]


@pytest.mark.parametrize(
    "payload",
    [
        {},
        {"prompt": ""},
        {"prompt": 3},
        {"prompt": "q", "schema": ["a"]},
    ],
)
def test_invalid_payload_is_400(payload):
    session = FakeSession()
    resp = _client(session).post("/v1/generate", json=payload)
    assert resp.status_code == 400
    assert session.calls == []


def test_non_json_body_is_400():
    resp = _client(FakeSession()).post(
        "/v1/generate", content=b"not json", headers={"Content-Type": "application/json"}
    )
    assert resp.status_code == 400


def test_unknown_model_is_404():
    resp = _client(FakeSession()).post("/v1/generate", json={"model": "gpt-x", "prompt": "q"})
    assert resp.status_code == 404


def test_encode_error_is_client_error():
    resp = _client(FakeSession(error=EncodeError("bad input"))).post("/v1/generate", json={"prompt": "q"})
    assert resp.status_code == 400
    assert resp.json()["detail"] == {"kind": "encode", "message": "bad input"}


def test_forward_error_is_server_error():
    resp = _client(FakeSession(error=ModelForwardError("device lost"))).post("/v1/generate", json={"prompt": "q"})
    assert resp.status_code == 500
    assert resp.json()["detail"]["kind"] == "model_forward"


def test_health_and_models():
    client = _client(FakeSession())
    assert client.get("/health").json() == {"status": "ok"}

    data = client.get("/v1/models").json()
    assert data["object"] == "list"
    assert data["data"][0]["id"] == "duckdb-sqlcoder"
    assert data["data"][0]["info"]["max_steps"] == 256


def test_negative_concurrency_is_rejected():
    from apps.server.app import create_app

    with pytest.raises(ValueError):
        create_app(session=FakeSession(), model_id="m", http_max_concurrency=-1)
