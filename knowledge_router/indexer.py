"""Knowledge-source sync: (re)ingests the document directory into Chroma."""

import logging
from pathlib import Path
from typing import Any

from chromadb.api import ClientAPI

from knowledge_router.embeddings import LocalEmbeddings
from knowledge_router.llm_client import CompletionGateway
from knowledge_router.models import ImageInput

logger = logging.getLogger(__name__)

TEXT_SUFFIXES = {".txt", ".md", ".csv", ".json"}
IMAGE_MEDIA_TYPES = {
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".gif": "image/gif",
    ".webp": "image/webp",
}
CHUNK_SIZE = 1000
CHUNK_OVERLAP = 150

IMAGE_INDEX_PROMPT = """Describe this image in detail so that it can be found later by text search.
Transcribe any visible text, numbers and labels exactly."""


def chunk_text(text: str, size: int = CHUNK_SIZE, overlap: int = CHUNK_OVERLAP) -> list[str]:
    """Split on paragraph boundaries into chunks of roughly ``size`` characters."""
    paragraphs = [p.strip() for p in text.split("\n\n") if p.strip()]
    chunks: list[str] = []
    current = ""
    for paragraph in paragraphs:
        if current and len(current) + len(paragraph) + 2 > size:
            chunks.append(current)
            current = current[-overlap:] if overlap else ""
        current = f"{current}\n\n{paragraph}" if current else paragraph
        while len(current) > size:
            chunks.append(current[:size])
            current = current[size - overlap:]
    if current:
        chunks.append(current)
    return chunks


def file_fingerprint(path: Path) -> str:
    stat = path.stat()
    return f"{stat.st_size}-{stat.st_mtime_ns}"


class DocumentIndexer:
    """Indexes every supported file of a directory into a named collection."""

    def __init__(
        self,
        client: ClientAPI,
        embeddings: LocalEmbeddings,
        documents_dir: Path,
        knowledge_source_id: str | None,
        gateway: CompletionGateway | None = None,
    ):
        self.client = client
        self.embeddings_client = embeddings
        self.documents_dir = Path(documents_dir)
        self.knowledge_source_id = knowledge_source_id
        self.gateway = gateway

    async def _extract_content(self, path: Path) -> str | None:
        """Text of a document, or a model-written description of an image."""
        suffix = path.suffix.lower()
        if suffix in TEXT_SUFFIXES:
            content = path.read_text(errors="replace").strip()
            return content or None

        media_type = IMAGE_MEDIA_TYPES.get(suffix)
        if media_type and self.gateway is not None:
            description = await self.gateway.complete(
                IMAGE_INDEX_PROMPT,
                images=[ImageInput(data=path.read_bytes(), media_type=media_type)],
                max_tokens=1500,
            )
            return description.strip() or None

        logger.debug("Skipping unsupported document %s", path.name)
        return None

    async def sync(self) -> int:
        """Bring the collection in line with the directory; return the number of chunks written.

        Files whose size and mtime match what is already indexed are not
        re-read. New chunks are embedded and upserted before anything is
        deleted, so a failed sync leaves the previous index in place.
        """
        if not self.knowledge_source_id:
            logger.warning("Knowledge source not configured, skipping sync")
            return 0

        collection = self.client.get_or_create_collection(
            name=self.knowledge_source_id,
            metadata={"embedding_model": self.embeddings_client.model_name},
        )

        existing = collection.get(include=["metadatas"])
        indexed: dict[str, tuple[str, list[str]]] = {}
        for chunk_id, meta in zip(existing["ids"], existing["metadatas"] or []):
            meta = meta or {}
            filename = meta.get("filename", "")
            _, chunk_ids = indexed.setdefault(filename, (meta.get("fingerprint", ""), []))
            chunk_ids.append(chunk_id)

        files = []
        if self.documents_dir.is_dir():
            files = sorted(p for p in self.documents_dir.iterdir() if p.is_file())

        documents: list[str] = []
        metadatas: list[dict[str, Any]] = []
        ids: list[str] = []
        keep: set[str] = set()
        indexed_files: list[str] = []

        for path in files:
            fingerprint = file_fingerprint(path)
            previous = indexed.get(path.name)
            if previous and previous[0] == fingerprint:
                keep.update(previous[1])
                continue

            content = await self._extract_content(path)
            if not content:
                continue

            indexed_files.append(path.name)
            for i, chunk in enumerate(chunk_text(content)):
                documents.append(chunk)
                metadatas.append(
                    {
                        "filename": path.name,
                        "source_uri": path.resolve().as_uri(),
                        "chunk": i,
                        "fingerprint": fingerprint,
                    }
                )
                ids.append(f"{path.name}::{i}")

        if documents:
            embeddings = await self.embeddings_client.embed_texts(documents)
            collection.upsert(
                embeddings=embeddings,
                documents=documents,
                metadatas=metadatas,
                ids=ids,
            )

        keep.update(ids)
        stale = [i for i in existing["ids"] if i not in keep]
        if stale:
            collection.delete(ids=stale)

        logger.info(
            "Synced %d chunk(s) from %d changed document(s) into %s, removed %d stale chunk(s)",
            len(documents), len(indexed_files), self.knowledge_source_id, len(stale),
        )
        return len(documents)
