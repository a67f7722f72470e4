"""Hybrid (semantic + keyword) search over a Chroma collection."""

import logging
import re
from typing import Any

from chromadb.api import ClientAPI

from knowledge_router.embeddings import LocalEmbeddings
from knowledge_router.models import Passage

logger = logging.getLogger(__name__)

RRF_K = 60
MIN_KEYWORD_LENGTH = 4
MAX_KEYWORDS = 8

_STOPWORDS = {
    "about", "does", "from", "have", "what", "when", "where", "which", "with",
    "that", "this", "there", "their", "these", "those", "would", "could", "should",
    "many", "much", "tell", "give", "show", "explain", "describe",
}


def extract_keywords(query: str) -> list[str]:
    """Distinct content words of the query, original casing kept."""
    seen = set()
    keywords = []
    for word in re.findall(r"\w+", query):
        lowered = word.lower()
        if len(word) < MIN_KEYWORD_LENGTH or lowered in _STOPWORDS or lowered in seen:
            continue
        seen.add(lowered)
        keywords.append(word)
    return keywords[:MAX_KEYWORDS]


def _keyword_filter(keywords: list[str]) -> dict[str, Any]:
    if len(keywords) == 1:
        return {"$contains": keywords[0]}
    return {"$or": [{"$contains": k} for k in keywords]}


class DocumentRetriever:
    """Retrieves chunks for a question from a named collection."""

    def __init__(self, client: ClientAPI, embeddings: LocalEmbeddings):
        self.client = client
        self.embeddings_client = embeddings

    def get_collection(self, name: str):
        return self.client.get_collection(name=name)

    async def search(
        self,
        collection_name: str,
        query: str,
        top_k: int = 20,
        search_type: str = "HYBRID",
    ) -> list[Passage]:
        collection = self.get_collection(collection_name)
        available = collection.count()
        if not available:
            return []

        n_results = min(top_k, available)
        query_embedding = await self.embeddings_client.embed_query(query)

        semantic = self._query(collection, query_embedding, n_results)
        if search_type != "HYBRID":
            return semantic

        keywords = extract_keywords(query)
        if not keywords:
            return semantic

        keyword = self._query(
            collection, query_embedding, n_results, where_document=_keyword_filter(keywords)
        )
        return self._fuse([semantic, keyword], top_k)

    def _query(self, collection, query_embedding, n_results, where_document=None) -> list[Passage]:
        kwargs: dict[str, Any] = {"query_embeddings": [query_embedding], "n_results": n_results}
        if where_document:
            kwargs["where_document"] = where_document
        results = collection.query(**kwargs)

        passages = []
        if not results["ids"] or not results["ids"][0]:
            return passages

        ids = results["ids"][0]
        documents = results["documents"][0]
        metadatas = results["metadatas"][0]
        distances = results["distances"][0]

        for i, chunk_id in enumerate(ids):
            passages.append(
                Passage(
                    id=chunk_id,
                    content=documents[i] or "",
                    metadata=metadatas[i] or {},
                    score=1.0 - distances[i],
                )
            )
        return passages

    def _fuse(self, rankings: list[list[Passage]], top_k: int) -> list[Passage]:
        """Reciprocal rank fusion of several ranked lists."""
        scores: dict[str, float] = {}
        by_id: dict[str, Passage] = {}
        for ranking in rankings:
            for rank, passage in enumerate(ranking, 1):
                scores[passage.id] = scores.get(passage.id, 0.0) + 1.0 / (RRF_K + rank)
                by_id.setdefault(passage.id, passage)

        ordered = sorted(scores, key=lambda pid: scores[pid], reverse=True)[:top_k]
        logger.debug("Fused %d candidates into %d passages", len(scores), len(ordered))
        return [by_id[pid].model_copy(update={"score": scores[pid]}) for pid in ordered]
