"""Query orchestrator: routes each question to the right backend(s).

Routing:
    images attached   -> vision completion (no classification, no merge)
    DATABASE_QUERY    -> StructuredQueryExecutor
    KNOWLEDGE_BASE_QUERY or unrecognized -> KnowledgeRetrievalClient
    HYBRID_QUERY      -> both concurrently, then a merge completion

This is the only component that lets exceptions reach the caller, and only
from classification and the knowledge path.
"""

import asyncio
import logging
from datetime import datetime
from typing import Awaitable

from knowledge_router.classifier import IntentClassifier
from knowledge_router.documents import DocumentStore
from knowledge_router.indexer import DocumentIndexer
from knowledge_router.knowledge_client import KnowledgeRetrievalClient
from knowledge_router.llm_client import CompletionGateway
from knowledge_router.models import ImageInput, IntentLabel, OrchestrationResult, Query
from knowledge_router.sql_executor import StructuredQueryExecutor

logger = logging.getLogger(__name__)

DEFAULT_IMAGE_PROMPT = "Describe this image in detail. Identify all relevant information."
IMAGE_FAILURE_ANSWER = "I couldn't analyze the image. Please try again."
NO_INFORMATION_ANSWER = "I couldn't find any information to answer your question."
IMAGE_MAX_TOKENS = 3000

MERGE_PROMPT = """You have two answers to the same user question, each from a different source.
Combine them into a single, coherent, well-structured response. Do not mention the sources explicitly (don't say "according to the database" or "according to the knowledge base"). Just present the information naturally as one unified answer.

If information overlaps, avoid repetition. If information is complementary, organize it logically.

User question: "{question}"

Source 1 - Business data:
{structured_answer}

Source 2 - Documentation/Knowledge base:
{knowledge_answer}

Write the unified answer:"""

BLANK_RESULT = OrchestrationResult(answer="")


class QueryOrchestrator:
    def __init__(
        self,
        gateway: CompletionGateway,
        classifier: IntentClassifier,
        sql_executor: StructuredQueryExecutor,
        knowledge_client: KnowledgeRetrievalClient,
        document_store: DocumentStore | None = None,
        indexer: DocumentIndexer | None = None,
    ):
        self.gateway = gateway
        self.classifier = classifier
        self.sql_executor = sql_executor
        self.knowledge_client = knowledge_client
        self.document_store = document_store
        self.indexer = indexer
        self._background_tasks: set[asyncio.Task] = set()

    async def execute(self, query: Query) -> OrchestrationResult:
        if query.images:
            return await self._execute_multimodal(query)

        label = await self.classifier.classify(query.question)

        if label is IntentLabel.STRUCTURED:
            logger.info("Routing to DATABASE_QUERY for: %r", query.question)
            return await self.sql_executor.execute(query.question)
        if label is IntentLabel.UNSTRUCTURED:
            logger.info("Routing to KNOWLEDGE_BASE_QUERY for: %r", query.question)
            return await self.knowledge_client.query(query.question, session=query.session)
        if label is IntentLabel.HYBRID:
            logger.info("Routing to HYBRID_QUERY for: %r", query.question)
            return await self._execute_hybrid(query)

        logger.warning(
            "Unrecognized intent for %r, defaulting to KNOWLEDGE_BASE_QUERY", query.question
        )
        return await self.knowledge_client.query(query.question, session=query.session)

    async def shutdown(self) -> None:
        """Wait for in-flight background uploads before the process exits."""
        if self._background_tasks:
            await asyncio.gather(*self._background_tasks, return_exceptions=True)

    async def _execute_multimodal(self, query: Query) -> OrchestrationResult:
        logger.info(
            "MULTIMODAL query with %d image(s) for: %r", len(query.images), query.question
        )
        prompt = query.question.strip() or DEFAULT_IMAGE_PROMPT
        answer = await self.gateway.complete(
            prompt, images=query.images, max_tokens=IMAGE_MAX_TOKENS
        )

        task = asyncio.create_task(self._upload_and_sync(list(query.images)))
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)

        answer = (answer or "").strip()
        logger.info("MULTIMODAL image answer present: %s", bool(answer))
        return OrchestrationResult(answer=answer or IMAGE_FAILURE_ANSWER)

    async def _upload_and_sync(self, images: list[ImageInput]) -> None:
        """Store the images and re-sync the knowledge source. Errors are only logged."""
        try:
            if self.document_store is not None:
                loop = asyncio.get_running_loop()
                stamp = datetime.now().strftime("%Y%m%d_%H%M%S")
                for idx, image in enumerate(images):
                    ext = image.media_type.split("/")[-1] or "png"
                    filename = f"chat_{stamp}_{idx}.{ext}"
                    await loop.run_in_executor(
                        None, self.document_store.upload_file, filename, image.data, image.media_type
                    )
            if self.indexer is not None:
                await self.indexer.sync()
        except Exception:
            logger.exception("MULTIMODAL image upload/sync failed")

    async def _execute_hybrid(self, query: Query) -> OrchestrationResult:
        structured, knowledge = await asyncio.gather(
            self._guarded("DB", self.sql_executor.execute(query.question)),
            self._guarded(
                "KB", self.knowledge_client.query(query.question, session=query.session)
            ),
        )

        logger.info("HYBRID DB answer present: %s", not structured.is_blank)
        logger.info("HYBRID KB answer present: %s", not knowledge.is_blank)

        if structured.is_blank and knowledge.is_blank:
            return OrchestrationResult(answer=NO_INFORMATION_ANSWER)
        if structured.is_blank:
            return knowledge
        if knowledge.is_blank:
            return structured

        merged = await self._merge_answers(query.question, structured.answer, knowledge.answer)
        return OrchestrationResult(
            answer=merged,
            citations=knowledge.citations,
            session=knowledge.session,
        )

    async def _guarded(
        self, branch: str, work: Awaitable[OrchestrationResult]
    ) -> OrchestrationResult:
        """Run one hybrid branch; a failure becomes a blank result."""
        try:
            return await work
        except Exception as e:
            logger.error("HYBRID %s branch failed: %s", branch, e)
            return BLANK_RESULT

    async def _merge_answers(
        self, question: str, structured_answer: str, knowledge_answer: str
    ) -> str:
        prompt = MERGE_PROMPT.format(
            question=question,
            structured_answer=structured_answer,
            knowledge_answer=knowledge_answer,
        )
        return (await self.gateway.complete(prompt)).strip()
