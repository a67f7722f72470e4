"""Text-to-SQL: question -> schema-aware SELECT -> execution -> natural-language answer."""

import asyncio
import json
import logging
import re
from typing import Any, Protocol

from knowledge_router.llm_client import CompletionGateway
from knowledge_router.models import OrchestrationResult

logger = logging.getLogger(__name__)

MAX_RESULT_ROWS = 50
NO_RESULTS_MARKER = "No results found."

EMPTY_DATABASE_ANSWER = "The connected database appears to be empty."
QUERY_FAILED_ANSWER = (
    "I was unable to query the database. The generated SQL may have been invalid."
)
UNEXPECTED_FAILURE_ANSWER = "I'm sorry, I was unable to retrieve an answer from the database."

_CODE_FENCE = re.compile(r"```[A-Za-z]*[ \t]*\n?")
_READ_ONLY_STATEMENT = re.compile(r"\s*SELECT\b", re.IGNORECASE)

# Per-dialect hint for string aggregation, the most common cross-engine mistake.
_AGGREGATION_HINTS = {
    "PostgreSQL": "use STRING_AGG instead of GROUP_CONCAT",
    "MySQL": "use GROUP_CONCAT instead of STRING_AGG",
    "SQLite": "use GROUP_CONCAT instead of STRING_AGG",
}

SQL_PROMPT = """You are a SQL expert. The database engine is {engine}. Given the database schema below, write a single, valid, read-only SQL query to answer the user's question.

Rules:
- Respond ONLY with the SQL code, no explanations or markdown.
- Use only SELECT statements. Never use INSERT, UPDATE, DELETE, DROP, or ALTER.
- Use table and column names exactly as shown in the schema.
- Use only {engine}-compatible functions and syntax{hint}.

Schema:
{schema}

Question: {question}"""

SYNTHESIS_PROMPT = """Based on the user's question and the database query results below, write a clear, natural language answer.
Be concise and directly answer the question. If the results are empty, say so clearly.

Question: {question}
Database Results (JSON): {results}"""


class QueryExecutionError(Exception):
    """A generated statement was rejected or failed to run."""


class StructuredDataConnection(Protocol):
    def list_tables(self) -> list[str]: ...

    def list_columns(self, table: str) -> list[tuple[str, str]]: ...

    def adapter_name(self) -> str: ...

    def execute(self, statement: str, max_rows: int | None = None) -> list[dict[str, Any]]: ...


def detect_dialect(adapter_name: str) -> str:
    """Classify a driver/dialect name into a known SQL family."""
    adapter = adapter_name.lower()
    if "postgres" in adapter:
        return "PostgreSQL"
    if "mysql" in adapter or "mariadb" in adapter:
        return "MySQL"
    if "sqlite" in adapter:
        return "SQLite"
    return adapter.capitalize()


def strip_code_fences(raw: str) -> str:
    return _CODE_FENCE.sub("", raw).strip()


def is_read_only_statement(statement: str) -> bool:
    """A single statement that starts with SELECT.

    Any semicolon before the trailing one rejects the statement, even inside a
    string literal or comment. Such queries fail closed to the apology answer.
    """
    if not _READ_ONLY_STATEMENT.match(statement):
        return False
    body = statement.strip().rstrip(";")
    return ";" not in body


class StructuredQueryExecutor:
    """Answers questions from the business database.

    Never raises: data-layer and provider failures turn into apologetic answers.
    """

    def __init__(self, gateway: CompletionGateway, connection: StructuredDataConnection):
        self.gateway = gateway
        self.connection = connection

    async def execute(self, question: str) -> OrchestrationResult:
        try:
            schema = await self._run_blocking(self._describe_schema)
            if not schema:
                logger.warning("No tables found in the business database.")
                return OrchestrationResult(answer=EMPTY_DATABASE_ANSWER)

            statement = await self._generate_sql(question, schema)
            logger.info("Generated SQL: %s", statement)

            rows = await self._execute_sql(statement)
            answer = await self._synthesize_answer(question, rows)
            return OrchestrationResult(answer=answer)
        except QueryExecutionError as e:
            logger.error("SQL error: %s", e)
            return OrchestrationResult(answer=QUERY_FAILED_ANSWER)
        except Exception:
            logger.exception("Unexpected error answering from the database")
            return OrchestrationResult(answer=UNEXPECTED_FAILURE_ANSWER)

    async def _run_blocking(self, fn, *args):
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, fn, *args)

    def _describe_schema(self) -> str:
        """One line per table: 'Table: t | Columns: a (TYPE), b (TYPE)'."""
        lines = []
        for table in self.connection.list_tables():
            columns = ", ".join(
                f"{name} ({col_type})" for name, col_type in self.connection.list_columns(table)
            )
            lines.append(f"Table: {table} | Columns: {columns}")
        return "\n".join(lines)

    async def _generate_sql(self, question: str, schema: str) -> str:
        engine = detect_dialect(self.connection.adapter_name())
        hint = _AGGREGATION_HINTS.get(engine)
        prompt = SQL_PROMPT.format(
            engine=engine,
            hint=f" (e.g., {hint})" if hint else "",
            schema=schema,
            question=question,
        )
        raw = await self.gateway.complete(prompt, temperature=0.0)
        return strip_code_fences(raw or "")

    async def _execute_sql(self, statement: str) -> list[dict[str, Any]]:
        if not is_read_only_statement(statement):
            raise QueryExecutionError(
                f"Generated SQL is not a single SELECT statement: {statement[:200]}"
            )
        try:
            return await self._run_blocking(
                self.connection.execute, statement, MAX_RESULT_ROWS
            )
        except Exception as e:
            raise QueryExecutionError(f"SQL execution failed: {e}") from e

    async def _synthesize_answer(self, question: str, rows: list[dict[str, Any]]) -> str:
        if rows:
            results = json.dumps(rows[:MAX_RESULT_ROWS], default=str)
        else:
            results = NO_RESULTS_MARKER
        return await self.gateway.complete(
            SYNTHESIS_PROMPT.format(question=question, results=results)
        )
