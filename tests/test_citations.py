"""Tests for knowledge_router.citations: pure functions, no mocking."""

import pytest

from knowledge_router.citations import (
    MARKER_PATTERN,
    CitationProcessor,
    citation_filename,
    extract_location_info,
)
from knowledge_router.models import ProviderCitation, RetrievedReference
from tests.conftest import make_documents


def _citation(key, title=None, content="excerpt"):
    metadata = {"title": title} if title else {}
    return ProviderCitation(
        content=content,
        location=extract_location_info(f"s3://docs-bucket/{key}"),
        metadata=metadata,
    )


@pytest.fixture
def processor():
    return CitationProcessor()


class TestExtractLocationInfo:
    def test_s3_uri(self):
        assert extract_location_info("s3://docs-bucket/manuals/guide.pdf") == {
            "bucket": "docs-bucket",
            "key": "manuals/guide.pdf",
            "uri": "s3://docs-bucket/manuals/guide.pdf",
            "type": "s3",
        }

    def test_file_uri(self):
        location = extract_location_info("file:///srv/documents/guide.pdf")
        assert location["bucket"] is None
        assert location["key"] == "srv/documents/guide.pdf"
        assert location["type"] == "file"

    @pytest.mark.parametrize("uri", [None, ""])
    def test_missing_uri(self, uri):
        assert extract_location_info(uri) is None


class TestCitationFilename:
    def test_from_key(self):
        assert citation_filename(_citation("manuals/guide.pdf")) == "guide.pdf"

    def test_without_location(self):
        assert citation_filename(ProviderCitation(content="x")) is None


class TestExtractCitations:
    def test_parses_locations_and_keeps_metadata(self, processor):
        refs = [
            RetrievedReference(
                content="S3 stores objects.",
                uri="s3://docs-bucket/guide.pdf",
                metadata={"title": "Guide"},
            )
        ]
        [citation] = processor.extract_citations(refs)
        assert citation.content == "S3 stores objects."
        assert citation.location["key"] == "guide.pdf"
        assert citation.metadata == {"title": "Guide"}


class TestBuildCitationMapping:
    def test_maps_to_directory_position(self, processor):
        documents = make_documents("a.pdf", "b.pdf", "guide.pdf")
        citations = [_citation("guide.pdf"), _citation("a.pdf")]
        assert processor.build_citation_mapping(citations, documents) == {1: 3, 2: 1}

    def test_matches_by_title(self, processor):
        documents = make_documents("a.pdf", "Guide")
        citations = [_citation("unknown.pdf", title="Guide")]
        assert processor.build_citation_mapping(citations, documents) == {1: 2}

    def test_unknown_document_keeps_provider_number(self, processor):
        documents = make_documents("a.pdf")
        assert processor.build_citation_mapping([_citation("zzz.pdf")], documents) == {1: 1}

    def test_empty_inputs(self, processor):
        assert processor.build_citation_mapping([], make_documents("a.pdf")) == {}
        assert processor.build_citation_mapping([_citation("a.pdf")], []) == {}


class TestReplaceCitationNumbers:
    def test_rewrites_all_markers(self, processor):
        answer = "S3 is storage [1]. Glacier archives it [2]. See also [1]."
        assert (
            processor.replace_citation_numbers(answer, {1: 3, 2: 1})
            == "S3 is storage [3]. Glacier archives it [1]. See also [3]."
        )

    def test_unmapped_markers_unchanged(self, processor):
        assert processor.replace_citation_numbers("x [7]", {1: 3}) == "x [7]"

    def test_empty_mapping_is_noop(self, processor):
        assert processor.replace_citation_numbers("x [1]", {}) == "x [1]"


class TestAddCitationsToAnswer:
    def test_single_sentence_gets_marker_at_end(self, processor):
        result = processor.add_citations_to_answer("S3 is object storage.", [_citation("a.pdf")])
        assert result == "S3 is object storage.[1]"

    def test_cycles_through_citations(self, processor):
        answer = "First point. Second point. Third point."
        citations = [_citation("a.pdf"), _citation("b.pdf")]

        result = processor.add_citations_to_answer(answer, citations)

        assert result == "First point. Second point[1]. Third point.[2]"

    def test_uses_mapping(self, processor):
        result = processor.add_citations_to_answer(
            "Only one sentence", [_citation("a.pdf")], {1: 4}
        )
        assert result == "Only one sentence[4]"

    def test_no_citations_leaves_answer(self, processor):
        assert processor.add_citations_to_answer("Plain answer.", []) == "Plain answer."


class TestBuildNumberedReferences:
    def test_one_entry_per_distinct_marker_ascending(self, processor):
        documents = make_documents("a.pdf", "b.pdf", "c.pdf")
        citations = [_citation("c.pdf"), _citation("a.pdf")]

        refs = processor.build_numbered_references(
            citations, "Foo [3]. Bar [1]. Baz [3].", documents
        )

        assert [r.number for r in refs] == [1, 3]
        assert [r.filename for r in refs] == ["a.pdf", "c.pdf"]

    def test_first_chunk_of_a_document_wins(self, processor):
        documents = make_documents("guide.pdf")
        citations = [
            _citation("guide.pdf", content="best chunk"),
            _citation("guide.pdf", content="second chunk"),
        ]

        [ref] = processor.build_numbered_references(citations, "Answer [1].", documents)
        assert ref.content == "best chunk"

    def test_title_from_metadata(self, processor):
        documents = make_documents("guide.pdf")
        [ref] = processor.build_numbered_references(
            [_citation("guide.pdf", title="guide.pdf")], "[1]", documents
        )
        assert ref.title == "guide.pdf"
        assert ref.location["bucket"] == "docs-bucket"

    def test_markers_without_a_document_are_skipped(self, processor):
        documents = make_documents("guide.pdf")
        refs = processor.build_numbered_references([_citation("guide.pdf")], "x [1] y [9]", documents)
        assert [r.number for r in refs] == [1]


class TestRenumberingRoundTrip:
    @pytest.mark.parametrize(
        "answer",
        [
            "Alpha [1]. Beta [2]. Gamma [3].",
            "Only the second [2].",
            "No markers at all. Just text. More text. And more.",
        ],
    )
    def test_markers_and_references_agree(self, processor, answer):
        documents = make_documents("a.pdf", "b.pdf", "c.pdf", "d.pdf")
        citations = [_citation("d.pdf"), _citation("b.pdf"), _citation("a.pdf")]

        mapping = processor.build_citation_mapping(citations, documents)
        final = processor.replace_citation_numbers(answer, mapping)
        if not MARKER_PATTERN.search(final):
            final = processor.add_citations_to_answer(final, citations, mapping)
        refs = processor.build_numbered_references(citations, final, documents)

        in_text = {int(n) for n in MARKER_PATTERN.findall(final)}
        numbers = {r.number for r in refs}
        assert in_text == numbers
        assert [r.number for r in refs] == sorted(numbers)
