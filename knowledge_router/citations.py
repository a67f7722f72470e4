"""Citation normalization for knowledge-service answers.

The knowledge service numbers its citations in retrieval order. Users see
documents numbered by their position in the known-document directory, so
markers like ``[3]`` in the answer are remapped onto those numbers and the
reference list is rebuilt from the markers that survive.
"""

import posixpath
import re
from typing import Any
from urllib.parse import urlparse

from knowledge_router.models import Citation, KnowledgeDocument, ProviderCitation, RetrievedReference

MARKER_PATTERN = re.compile(r"\[(\d+)\]")
_SENTENCE_SPLIT = re.compile(r"([.!?]\s+)")


def extract_location_info(uri: str | None) -> dict[str, Any] | None:
    """Split a source URI (s3://bucket/key, file:///path, ...) into its parts."""
    if not uri:
        return None
    parsed = urlparse(uri)
    return {
        "bucket": parsed.netloc or None,
        "key": parsed.path.lstrip("/"),
        "uri": uri,
        "type": parsed.scheme or "file",
    }


def citation_filename(citation: ProviderCitation) -> str | None:
    location = citation.location
    if location and location.get("key"):
        return posixpath.basename(location["key"])
    if location and location.get("uri"):
        return posixpath.basename(location["uri"])
    return None


def _document_numbers(documents: list[KnowledgeDocument]) -> dict[str, int]:
    """Directory position (1-based) keyed by document name."""
    return {doc.name: index for index, doc in enumerate(documents, 1) if doc.name}


class CitationProcessor:
    def extract_citations(self, references: list[RetrievedReference]) -> list[ProviderCitation]:
        return [
            ProviderCitation(
                content=ref.content,
                location=extract_location_info(ref.uri),
                metadata=ref.metadata or {},
            )
            for ref in references
        ]

    def build_citation_mapping(
        self, citations: list[ProviderCitation], documents: list[KnowledgeDocument]
    ) -> dict[int, int]:
        """Provider citation number -> directory document number."""
        if not citations or not documents:
            return {}

        doc_numbers = _document_numbers(documents)
        mapping = {}
        for provider_num, citation in enumerate(citations, 1):
            filename = citation_filename(citation)
            title = citation.metadata.get("title") or filename
            mapping[provider_num] = (
                doc_numbers.get(filename) or doc_numbers.get(title) or provider_num
            )
        return mapping

    def replace_citation_numbers(self, answer: str, mapping: dict[int, int]) -> str:
        if not mapping:
            return answer

        def _swap(match: re.Match) -> str:
            provider_num = int(match.group(1))
            return f"[{mapping.get(provider_num, provider_num)}]"

        return MARKER_PATTERN.sub(_swap, answer)

    def add_citations_to_answer(
        self,
        answer: str,
        citations: list[ProviderCitation],
        mapping: dict[int, int] | None = None,
    ) -> str:
        """Insert markers after every third sentence piece and at the end."""
        if not citations:
            return answer

        mapping = mapping or {}
        pieces = _SENTENCE_SPLIT.split(answer)
        result = []
        citation_index = 0
        last = len(pieces) - 1

        for index, piece in enumerate(pieces):
            result.append(piece)
            if citation_index < len(citations) and (index % 3 == 2 or index == last):
                provider_num = citation_index + 1
                result.append(f"[{mapping.get(provider_num, provider_num)}]")
                citation_index += 1

        return "".join(result)

    def build_numbered_references(
        self,
        citations: list[ProviderCitation],
        answer: str,
        documents: list[KnowledgeDocument],
    ) -> list[Citation]:
        """One Citation per distinct marker in the (already renumbered) answer, ascending."""
        numbers = sorted({int(n) for n in MARKER_PATTERN.findall(answer)})
        doc_numbers = _document_numbers(documents)

        references: dict[int, Citation] = {}
        for citation in citations:
            filename = citation_filename(citation) or "Document"
            title = citation.metadata.get("title") or filename
            doc_number = doc_numbers.get(filename) or doc_numbers.get(title)
            # several chunks can come from one document; keep the best-ranked
            if doc_number and doc_number not in references:
                references[doc_number] = Citation(
                    number=doc_number,
                    title=title,
                    filename=filename,
                    content=citation.content,
                    location=citation.location,
                )

        return [references[n] for n in numbers if n in references]
