"""Local sentence-transformers models: bi-encoder embeddings and cross-encoder reranking."""

import asyncio
from functools import lru_cache

from sentence_transformers import CrossEncoder, SentenceTransformer


@lru_cache(maxsize=4)
def _load_model(model_name: str) -> SentenceTransformer:
    """Load and cache a SentenceTransformer model."""
    return SentenceTransformer(model_name)


@lru_cache(maxsize=2)
def _load_cross_encoder(model_name: str) -> CrossEncoder:
    return CrossEncoder(model_name)


class LocalEmbeddings:
    """Embeds document chunks and queries for the vector index."""

    def __init__(
        self,
        model: str = "BAAI/bge-small-en-v1.5",
        batch_size: int = 64,
        device: str | None = None,  # None = auto-detect
    ):
        self.model_name = model
        self.batch_size = batch_size
        self._model = _load_model(model)
        if device:
            self._model = self._model.to(device)

    async def embed_texts(self, texts: list[str]) -> list[list[float]]:
        """Embed a list of texts in the default executor."""
        if not texts:
            return []

        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(
            None,
            lambda: self._model.encode(
                texts,
                batch_size=self.batch_size,
                show_progress_bar=len(texts) > 100,
                normalize_embeddings=True,
                convert_to_numpy=True,
            ).tolist(),
        )

    async def embed_query(self, query: str) -> list[float]:
        results = await self.embed_texts([query])
        return results[0]


class LocalReranker:
    """Scores (query, passage) pairs with a cross-encoder; higher is more relevant."""

    def __init__(self, model: str = "cross-encoder/ms-marco-MiniLM-L-6-v2"):
        self.model_name = model
        self._model = _load_cross_encoder(model)

    async def score(self, query: str, passages: list[str]) -> list[float]:
        if not passages:
            return []

        loop = asyncio.get_running_loop()
        scores = await loop.run_in_executor(
            None,
            lambda: self._model.predict([(query, passage) for passage in passages]),
        )
        return [float(s) for s in scores]
