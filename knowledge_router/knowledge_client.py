"""Knowledge retrieval client: RAG answer plus normalized, renumbered citations."""

import asyncio
import logging
import time
from dataclasses import replace
from typing import Any

from openai import OpenAIError

from knowledge_router.citations import MARKER_PATTERN, CitationProcessor
from knowledge_router.cost_tracker import CostRecord, QueryTelemetry, estimate_tokens
from knowledge_router.documents import DocumentStore
from knowledge_router.knowledge_service import (
    GenerationConfig,
    KnowledgeBackendError,
    KnowledgeService,
    RetrievalConfig,
)
from knowledge_router.models import OrchestrationResult

logger = logging.getLogger(__name__)


class MissingKnowledgeSourceError(Exception):
    """No knowledge source is configured."""


class KnowledgeServiceError(Exception):
    """The knowledge service (or the model behind it) failed."""


class KnowledgeRetrievalClient:
    """Queries the knowledge service and maps its citations onto the document directory.

    Unlike the structured executor this client raises on failure; the
    orchestrator or its caller decides what to do.
    """

    def __init__(
        self,
        service: KnowledgeService,
        documents: DocumentStore,
        knowledge_source_id: str | None,
        model: str = "gpt-4o-mini",
        telemetry: QueryTelemetry | None = None,
        retrieval: RetrievalConfig | None = None,
        generation: GenerationConfig | None = None,
    ):
        self.service = service
        self.documents = documents
        self.knowledge_source_id = knowledge_source_id
        self.model = model
        self.telemetry = telemetry
        self.retrieval = retrieval or RetrievalConfig()
        self.generation = generation or GenerationConfig()
        self.citation_processor = CitationProcessor()
        logger.info("Knowledge source: %s", knowledge_source_id or "NOT SET")

    async def query(
        self,
        question: str,
        session: str | None = None,
        overrides: dict[str, dict[str, Any]] | None = None,
    ) -> OrchestrationResult:
        if not self.knowledge_source_id:
            message = "Knowledge source not configured. Please set the KNOWLEDGE_SOURCE_ID environment variable."
            logger.error(message)
            raise MissingKnowledgeSourceError(message)

        logger.info("Querying knowledge source with: %s", question)
        overrides = overrides or {}
        retrieval = replace(self.retrieval, **overrides.get("retrieval", {}))
        generation = replace(self.generation, **overrides.get("generation", {}))

        start = time.perf_counter()
        try:
            response = await self.service.retrieve_and_generate(
                question,
                knowledge_source_id=self.knowledge_source_id,
                session=session,
                retrieval=retrieval,
                generation=generation,
            )
        except (KnowledgeBackendError, OpenAIError) as e:
            logger.error("Knowledge service error: %s", e)
            raise KnowledgeServiceError(f"Failed to query knowledge source: {e}") from e

        processor = self.citation_processor
        citations = processor.extract_citations(response.citations)
        try:
            documents = await asyncio.get_running_loop().run_in_executor(
                None, self.documents.list_documents
            )
        except OSError as e:
            logger.error("Could not list knowledge documents: %s", e)
            raise KnowledgeServiceError(f"Failed to list knowledge documents: {e}") from e

        mapping = processor.build_citation_mapping(citations, documents)
        answer = processor.replace_citation_numbers(response.answer, mapping)

        if citations and not MARKER_PATTERN.search(answer):
            answer = processor.add_citations_to_answer(answer, citations, mapping)
            logger.info("Added citations automatically to answer text")

        latency_ms = int((time.perf_counter() - start) * 1000)
        self._record_telemetry(question, answer, latency_ms)

        references = processor.build_numbered_references(citations, answer, documents)
        logger.info("Found %d citation(s)", len(citations))
        for ref in references:
            logger.info("  Citation %d: %s (%s)", ref.number, ref.title, ref.filename)

        return OrchestrationResult(answer=answer, citations=references, session=response.session)

    def _record_telemetry(self, question: str, answer: str, latency_ms: int) -> None:
        """Hand the write to the executor without waiting for it."""
        if self.telemetry is None:
            return
        record = CostRecord(
            model=self.model,
            operation="knowledge_query",
            query=question,
            input_tokens=estimate_tokens(question),
            output_tokens=estimate_tokens(answer),
            latency_ms=latency_ms,
        )
        try:
            asyncio.get_running_loop().run_in_executor(None, self.telemetry.record, record)
        except RuntimeError as e:
            logger.error("Failed to schedule query telemetry: %s", e)
