"""Prompt composition: question + schema -> ChatML transcript."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Literal, Sequence

from jinja2 import TemplateError as JinjaTemplateError

from .errors import TemplateError


Role = Literal["system", "user", "assistant"]

_ROLES = ("system", "user", "assistant")

SYSTEM_PROMPT = r"""System:
Your task is to generate valid DuckDB SQL to answer the question that the user asks. You should only respond with a valid DuckDB SQL query.

Here are some DuckDB SQL syntax specifics you should be aware of:


- DuckDB use double quotes (") for identifiers that contain spaces or special characters, or to force case-sensitivity and single quotes (') to define string literals
- DuckDB can query CSV, Parquet, and JSON directly without loading them first, e.g. `SELECT * FROM 'data.csv';`
- DuckDB supports CREATE TABLE AS (CTAS): `CREATE TABLE new_table AS SELECT * FROM old_table;`
- DuckDB queries can start with FROM, and optionally omit SELECT *, e.g. `FROM my_table WHERE condition;` is equivalent to `SELECT * FROM my_table WHERE condition;`
- DuckDB allows you to use SELECT without a FROM clause to generate a single row of results or to work with expressions directly, e.g. `SELECT 1 + 1 AS result;`
- DuckDB supports attaching multiple databases, unsing the ATTACH statement: `ATTACH 'my_database.duckdb' AS mydb;`. Tables within attached databases can be accessed using the dot notation (.), e.g. `SELECT * FROM mydb.table_name syntax`. The default databases doesn't require the do notation to access tables. The default database can be changed with the USE statement, e.g. `USE my_db;`.
- DuckDB is generally more lenient with implicit type conversions (e.g. `SELECT '42' + 1;` - Implicit cast, result is 43), but you can always be explicit using `::`, e.g. `SELECT '42'::INTEGER + 1;`
- DuckDB can extract parts of strings and lists using [start:end] or [start:end:step] syntax. Indexes start at 1. String slicing: `SELECT 'DuckDB'[1:4];`. Array/List slicing: `SELECT [1, 2, 3, 4][1:3];`
- DuckDB has a powerful way to select or transform multiple columns using patterns or functions. You can select columns matching a pattern: `SELECT COLUMNS('sales_.*') FROM sales_data;` or transform multiple columns with a function: `SELECT AVG(COLUMNS('sales_.*')) FROM sales_data;`
- DuckDB an easy way to include/exclude or modify columns when selecting all: e.g. Exclude: `SELECT * EXCLUDE (sensitive_data) FROM users;` Replace: `SELECT * REPLACE (UPPER(name) AS name) FROM users;`
- DuckDB has a shorthand for grouping/ordering by all non-aggregated/all columns. e.g `SELECT category, SUM(sales) FROM sales_data GROUP BY ALL;` and `SELECT * FROM my_table ORDER BY ALL;`
- DuckDB can combine tables by matching column names, not just their positions using UNION BY NAME. E.g. `SELECT * FROM table1 UNION BY NAME SELECT * FROM table2;`
- DuckDB has an inutitive syntax to create List/Struct/Map and Array types. Create complex types using intuitive syntax. List: `SELECT [1, 2, 3] AS my_list;`, Struct: `{{'a': 1, 'b': 'text'}} AS my_struct;`, Map: `MAP([1,2],['one','two']) as my_map;`. All types can also be nested into each other. Array types are fixed size, while list types have variable size. Compared to Structs, MAPs do not need to have the same keys present for each row, but keys can only be of type Integer or Varchar. Example: `CREATE TABLE example (my_list INTEGER[], my_struct STRUCT(a INTEGER, b TEXT), my_map MAP(INTEGER, VARCHAR),  my_array INTEGER[3], my_nested_struct STRUCT(a INTEGER, b Integer[3]));`
- DuckDB has an inutive syntax to access struct fields using dot notation (.) or brackets ([]) with the field name. Maps fields can be accessed by brackets ([]).
- DuckDB's way of converting between text and timestamps, and extract date parts. Current date as 'YYYY-MM-DD': `SELECT strftime(NOW(), '%Y-%m-%d');` String to timestamp: `SELECT strptime('2023-07-23', '%Y-%m-%d')::TIMESTAMP;`, Extract Year from date: `SELECT EXTRACT(YEAR FROM DATE '2023-07-23');`
- Column Aliases in WHERE/GROUP BY/HAVING: You can use column aliases defined in the SELECT clause within the WHERE, GROUP BY, and HAVING clauses. E.g.: `SELECT a + b AS total FROM my_table WHERE total > 10 GROUP BY total HAVING total < 20;`
- DuckDB allows generating lists using expressions similar to Python list comprehensions. E.g. `SELECT [x*2 FOR x IN [1, 2, 3]];` Returns [2, 4, 6].
- DuckDB allows chaining multiple function calls together using the dot (.) operator. E.g.: `SELECT 'DuckDB'.replace('Duck', 'Goose').upper(); -- Returns 'GOOSEDB';`
- DuckDB has a JSON data type. It supports selecting fields from the JSON with a JSON-Path expression using the arrow operator, -> (returns JSON) or ->> (returns text) with JSONPath expressions. For example: `SELECT data->'$.user.id' AS user_id, data->>'$.event_type' AS event_type FROM events;`
- DuckDB has built-in functions for regex regexp_matches(column, regex), regexp_replace(column, regex), and regexp_extract(column, regex).
- DuckDB has a way to quickly get a subset of your data with `SELECT * FROM large_table USING SAMPLE 10%;`
"""

USER_ONLY_PREAMBLE = (
    "Write a single valid DuckDB SQL query that answers the question below, "
    "using only the tables in the schema. Respond with the SQL query only."
)

SCHEMA_LABEL = "SCHEMA: "

IM_END = "<|im_end|>"

DEFAULT_STOP_TOKENS = ("<|endoftext|>", IM_END)

# Plain ChatML (one line, so trim/lstrip settings of the Jinja environment do not matter).
CHATML_TEMPLATE = (
    "{%- for message in messages -%}"
    "{{ '<|im_start|>' + message['role'] + '\\n' + message['content'] + '<|im_end|>' + '\\n' }}"
    "{%- endfor -%}"
    "{%- if add_generation_prompt -%}"
    "{{ '<|im_start|>assistant\\n' }}"
    "{%- endif -%}"
)


@dataclass(frozen=True)
class ChatMessage:
    role: Role
    content: str


class PromptComposer:
    """Builds the model-facing transcript for a question and a table schema.

    With ``use_system_prompt`` (the default) the transcript is a system message
    carrying the DuckDB dialect guidance plus a user message holding the
    question and the schema. Without it, everything goes into one user message
    behind a short instruction preamble. The mode is fixed per deployment.
    """

    def __init__(
        self,
        *,
        use_system_prompt: bool = True,
        system_prompt: str = SYSTEM_PROMPT,
        chat_template: str = CHATML_TEMPLATE,
    ) -> None:
        self.use_system_prompt = bool(use_system_prompt)
        self.system_prompt = system_prompt
        self.chat_template = chat_template

    def compose(self, user_prompt: str, schema_text: str) -> list[ChatMessage]:
        if self.use_system_prompt:
            return [
                ChatMessage(role="system", content=self.system_prompt),
                ChatMessage(role="user", content=f"{user_prompt}\n{SCHEMA_LABEL}{schema_text}"),
            ]
        content = f"{USER_ONLY_PREAMBLE}\n\nQuestion: {user_prompt}\n{SCHEMA_LABEL}{schema_text}"
        return [ChatMessage(role="user", content=content)]

    def render(self, messages: Sequence[ChatMessage], tokenizer: Any, *, add_generation_prompt: bool = True) -> str:
        """Serialize messages through the tokenizer's chat-template engine.

        The fixed ChatML template is always passed explicitly, so a model's
        built-in template (which may inject its own default system message)
        never applies. The trailing ``<|im_start|>assistant`` header (when
        requested) tells the model that it should answer next.
        """
        if not messages:
            raise TemplateError("cannot render an empty message list")

        template_messages: list[dict[str, str]] = []
        for i, msg in enumerate(messages):
            if msg.role not in _ROLES:
                raise TemplateError(f"message {i} has unsupported role {msg.role!r}")
            if not isinstance(msg.content, str):
                raise TemplateError(f"message {i} content must be a string, got {type(msg.content).__name__}")
            template_messages.append({"role": msg.role, "content": msg.content})

        apply_chat_template = getattr(tokenizer, "apply_chat_template", None)
        if not callable(apply_chat_template):
            raise TemplateError("tokenizer does not support apply_chat_template()")

        try:
            text = apply_chat_template(
                template_messages,
                chat_template=self.chat_template,
                tokenize=False,
                add_generation_prompt=add_generation_prompt,
            )
        except (JinjaTemplateError, ValueError, TypeError) as exc:
            raise TemplateError(f"chat template rejected the transcript: {exc}") from exc
        if not isinstance(text, str):
            raise TemplateError(f"chat template returned {type(text).__name__}, expected str")
        return text

    def build(self, user_prompt: str, schema_text: str, tokenizer: Any) -> str:
        return self.render(self.compose(user_prompt, schema_text), tokenizer)
