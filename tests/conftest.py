"""Shared fixtures for all test modules."""

from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy import create_engine, text

from knowledge_router.models import Citation, KnowledgeDocument, OrchestrationResult

SAMPLE_EMBEDDING = [0.1] * 384

DB_RESULT = OrchestrationResult(
    answer="There are 5 customers in the database.",
    citations=[],
    session=None,
)

KB_RESULT = OrchestrationResult(
    answer="EC2 is a virtual server in the AWS cloud [1].",
    citations=[Citation(number=1, title="ec2.pdf", filename="ec2.pdf", content="EC2 ...")],
    session="kb-session-123",
)


def make_gateway(*responses):
    """AsyncMock completion gateway returning ``responses`` in order."""
    gateway = AsyncMock()
    gateway.complete = AsyncMock(side_effect=list(responses))
    return gateway


def make_documents(*names):
    modified = datetime(2024, 1, 15, tzinfo=timezone.utc)
    return [KnowledgeDocument(name=n, size_bytes=1024, modified_at=modified) for n in names]


@pytest.fixture
def document_store():
    store = MagicMock()
    store.list_documents.return_value = make_documents("guide.pdf")
    return store


@pytest.fixture
def business_engine(tmp_path):
    """SQLite business database with one ``customers`` table of five rows."""
    engine = create_engine(f"sqlite:///{tmp_path / 'business.db'}")
    with engine.begin() as conn:
        conn.execute(text("CREATE TABLE customers (id INTEGER PRIMARY KEY, name TEXT)"))
        for i, name in enumerate(["Ada", "Grace", "Linus", "Barbara", "Ken"], 1):
            conn.execute(
                text("INSERT INTO customers (id, name) VALUES (:id, :name)"),
                {"id": i, "name": name},
            )
    yield engine
    engine.dispose()
