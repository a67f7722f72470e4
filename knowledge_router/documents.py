"""Local document directory: the known-document list and the upload sink."""

import logging
from datetime import datetime, timezone
from pathlib import Path

from knowledge_router.models import KnowledgeDocument

logger = logging.getLogger(__name__)


class DocumentStore:
    """Files under one directory, listed in name order."""

    def __init__(self, root: Path = Path("documents")):
        self.root = Path(root)

    def list_documents(self) -> list[KnowledgeDocument]:
        if not self.root.is_dir():
            return []

        documents = []
        for path in sorted(p for p in self.root.iterdir() if p.is_file()):
            stat = path.stat()
            documents.append(
                KnowledgeDocument(
                    name=path.name,
                    size_bytes=stat.st_size,
                    modified_at=datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc),
                )
            )
        return documents

    def upload_file(self, filename: str, data: bytes, media_type: str | None = None) -> Path:
        """Write ``data`` as ``filename`` and return the stored path."""
        target = self.root / Path(filename).name
        self.root.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data)
        logger.info("Stored %s (%s, %d bytes)", target, media_type or "unknown type", len(data))
        return target
