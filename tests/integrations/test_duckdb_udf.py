import pytest


pytest.importorskip("torch", reason="torch not installed")
duckdb = pytest.importorskip("duckdb", reason="duckdb not installed")


from query_assistant.integrations.duckdb_udf import (
    collect_ddl,
    make_query_assistant,
    register_query_assistant,
)


class _FakeSession:
    def __init__(self):
        self.calls = []

    def generate(self, prompt, table_schema):
        self.calls.append((prompt, table_schema))
        return "SELECT count(*) FROM orders;"


def _conn_with_tables():
    conn = duckdb.connect(":memory:")
    conn.execute("CREATE TABLE customers(id INTEGER, name VARCHAR)")
    conn.execute("CREATE TABLE orders(id INTEGER, customer_id INTEGER, total DOUBLE)")
    return conn


def test_collect_ddl_joins_create_statements():
    conn = _conn_with_tables()
    ddl = collect_ddl(conn)
    lines = ddl.split("\n")
    assert len(lines) == 2
    assert any(line.startswith("CREATE TABLE customers") for line in lines)
    assert any(line.startswith("CREATE TABLE orders") for line in lines)


def test_collect_ddl_on_empty_database():
    assert collect_ddl(duckdb.connect(":memory:")) == ""


def test_make_query_assistant_reads_schema_per_call():
    session = _FakeSession()
    schemas = iter(["CREATE TABLE a(x INT);", "CREATE TABLE b(y INT);"])
    fn = make_query_assistant(session, lambda: next(schemas))

    assert fn("first") == "SELECT count(*) FROM orders;"
    fn("second")

    assert session.calls == [("first", "CREATE TABLE a(x INT);"), ("second", "CREATE TABLE b(y INT);")]


def test_registered_function_is_callable_from_sql():
    conn = _conn_with_tables()
    session = _FakeSession()
    register_query_assistant(conn, session)

    (sql,) = conn.execute("SELECT query_assistant('how many orders?')").fetchone()

    assert sql == "SELECT count(*) FROM orders;"
    prompt, schema = session.calls[0]
    assert prompt == "how many orders?"
    assert "CREATE TABLE orders" in schema
    assert "CREATE TABLE customers" in schema


def test_custom_function_name():
    conn = duckdb.connect(":memory:")
    register_query_assistant(conn, _FakeSession(), name="nl2sql")
    (sql,) = conn.execute("SELECT nl2sql('anything')").fetchone()
    assert sql.startswith("SELECT")
