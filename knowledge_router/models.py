"""Pydantic models shared by the query orchestration engine."""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class IntentLabel(str, Enum):
    """Routing decision for a question.

    Values are the exact tokens the classifier prompt asks the model to emit.
    """

    STRUCTURED = "DATABASE_QUERY"
    UNSTRUCTURED = "KNOWLEDGE_BASE_QUERY"
    HYBRID = "HYBRID_QUERY"
    UNRECOGNIZED = "UNRECOGNIZED"


class ImageInput(BaseModel):
    """An image attached to a question."""

    data: bytes
    media_type: str = "image/png"


class Query(BaseModel):
    """A single inbound question."""

    question: str = ""
    images: list[ImageInput] = Field(default_factory=list)
    session: str | None = None


class Citation(BaseModel):
    """A reference to a supporting document, numbered as it appears in the answer."""

    number: int
    title: str
    filename: str
    content: str | None = None
    location: dict[str, Any] | None = None


class OrchestrationResult(BaseModel):
    """What every execution path hands back to the caller."""

    answer: str
    citations: list[Citation] = Field(default_factory=list)
    session: str | None = None

    @property
    def is_blank(self) -> bool:
        return not self.answer.strip()


class RetrievedReference(BaseModel):
    """A provider-native citation as returned by the knowledge service."""

    content: str | None = None
    uri: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class KnowledgeResponse(BaseModel):
    """Raw output of a retrieve-and-generate call."""

    answer: str
    citations: list[RetrievedReference] = Field(default_factory=list)
    session: str


class ProviderCitation(BaseModel):
    """A provider citation with its location parsed."""

    content: str | None = None
    location: dict[str, Any] | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class KnowledgeDocument(BaseModel):
    """An entry of the known-document directory."""

    name: str
    size_bytes: int
    modified_at: datetime


class Passage(BaseModel):
    """A chunk returned by the vector index."""

    id: str
    content: str
    metadata: dict[str, Any] = Field(default_factory=dict)
    score: float
