"""Local retrieve-and-generate backend over the Chroma index.

Behaves like a managed RAG service: decompose the question, run hybrid
retrieval for each part, rerank, then generate an answer that cites the
numbered sources it was given.
"""

import logging
import uuid
from dataclasses import dataclass
from typing import Protocol

from chromadb.errors import ChromaError

from knowledge_router.embeddings import LocalReranker
from knowledge_router.llm_client import CompletionGateway
from knowledge_router.models import KnowledgeResponse, Passage, RetrievedReference
from knowledge_router.retriever import DocumentRetriever

logger = logging.getLogger(__name__)

MAX_SUB_QUESTIONS = 3
MAX_SOURCE_CHARS = 1500


@dataclass
class RetrievalConfig:
    number_of_results: int = 20
    search_type: str = "HYBRID"     # or "SEMANTIC"
    rerank: bool = True
    rerank_top_n: int = 5
    query_decomposition: bool = True


@dataclass
class GenerationConfig:
    temperature: float = 0.3
    top_p: float = 0.9
    max_tokens: int = 3000


@dataclass
class OrchestrationConfig:
    temperature: float = 0.1
    top_p: float = 0.8
    max_tokens: int = 2048


DECOMPOSITION_PROMPT = """Break the question below into at most {limit} self-contained sub-questions that together cover everything it asks.
If the question is already simple, return it unchanged.
Respond with one sub-question per line and nothing else.

Question: {question}"""

GENERATION_PROMPT = """You are a question answering assistant. Answer the user's question using ONLY the numbered sources below.
Cite every statement with the number of the source that supports it, in square brackets, e.g. [1] or [2][3].
If the sources do not contain the answer, say that you could not find the information.

Sources:
{sources}

Question: {question}

Answer:"""


class KnowledgeBackendError(Exception):
    """The vector collection is missing or chromadb rejected the search."""


class KnowledgeService(Protocol):
    async def retrieve_and_generate(
        self,
        question: str,
        knowledge_source_id: str,
        session: str | None = None,
        retrieval: RetrievalConfig | None = None,
        generation: GenerationConfig | None = None,
    ) -> KnowledgeResponse: ...


def _format_sources(passages: list[Passage]) -> str:
    parts = []
    for i, passage in enumerate(passages, 1):
        name = passage.metadata.get("filename", "document")
        content = passage.content.strip()
        if len(content) > MAX_SOURCE_CHARS:
            content = content[:MAX_SOURCE_CHARS - 1] + "…"
        parts.append(f"[{i}] ({name})\n{content}")
    return "\n\n".join(parts)


class ChromaKnowledgeService:
    def __init__(
        self,
        retriever: DocumentRetriever,
        gateway: CompletionGateway,
        reranker: LocalReranker | None = None,
        orchestration: OrchestrationConfig | None = None,
    ):
        self.retriever = retriever
        self.gateway = gateway
        self.reranker = reranker
        self.orchestration = orchestration or OrchestrationConfig()

    async def retrieve_and_generate(
        self,
        question: str,
        knowledge_source_id: str,
        session: str | None = None,
        retrieval: RetrievalConfig | None = None,
        generation: GenerationConfig | None = None,
    ) -> KnowledgeResponse:
        retrieval = retrieval or RetrievalConfig()
        generation = generation or GenerationConfig()
        session = session or uuid.uuid4().hex

        sub_questions = [question]
        if retrieval.query_decomposition:
            sub_questions = await self._decompose(question)

        candidates = await self._retrieve(knowledge_source_id, sub_questions, retrieval)
        passages = await self._rerank(question, candidates, retrieval)

        if not passages:
            logger.info("No passages retrieved from %s for %r", knowledge_source_id, question)
            return KnowledgeResponse(
                answer="I could not find any relevant information in the knowledge base.",
                citations=[],
                session=session,
            )

        answer = await self.gateway.complete(
            GENERATION_PROMPT.format(sources=_format_sources(passages), question=question),
            max_tokens=generation.max_tokens,
            temperature=generation.temperature,
            top_p=generation.top_p,
        )

        citations = [
            RetrievedReference(
                content=p.content,
                uri=p.metadata.get("source_uri"),
                metadata={k: v for k, v in p.metadata.items() if k != "source_uri"},
            )
            for p in passages
        ]
        return KnowledgeResponse(answer=answer, citations=citations, session=session)

    async def _decompose(self, question: str) -> list[str]:
        response = await self.gateway.complete(
            DECOMPOSITION_PROMPT.format(limit=MAX_SUB_QUESTIONS, question=question),
            max_tokens=self.orchestration.max_tokens,
            temperature=self.orchestration.temperature,
            top_p=self.orchestration.top_p,
        )
        lines = [line.strip(" -*\t") for line in (response or "").splitlines()]
        sub_questions = [line for line in lines if line][:MAX_SUB_QUESTIONS]
        return sub_questions or [question]

    async def _retrieve(
        self, knowledge_source_id: str, sub_questions: list[str], retrieval: RetrievalConfig
    ) -> list[Passage]:
        """Union of hits across sub-questions, first occurrence wins."""
        seen: dict[str, Passage] = {}
        for sub_question in sub_questions:
            try:
                hits = await self.retriever.search(
                    knowledge_source_id,
                    sub_question,
                    top_k=retrieval.number_of_results,
                    search_type=retrieval.search_type,
                )
            except (ChromaError, ValueError) as e:
                raise KnowledgeBackendError(
                    f"Could not search knowledge source {knowledge_source_id!r}: {e}"
                ) from e
            for hit in hits:
                seen.setdefault(hit.id, hit)
        return list(seen.values())

    async def _rerank(
        self, question: str, candidates: list[Passage], retrieval: RetrievalConfig
    ) -> list[Passage]:
        if not retrieval.rerank or self.reranker is None:
            return candidates[:retrieval.rerank_top_n]

        scores = await self.reranker.score(question, [c.content for c in candidates])
        ranked = sorted(zip(candidates, scores), key=lambda pair: pair[1], reverse=True)
        return [
            passage.model_copy(update={"score": score})
            for passage, score in ranked[:retrieval.rerank_top_n]
        ]
