"""Tests for knowledge_router.models: no mocking needed."""

import pytest
from pydantic import ValidationError

from knowledge_router.models import (
    Citation,
    ImageInput,
    IntentLabel,
    OrchestrationResult,
    Query,
)


class TestQuery:
    def test_defaults(self):
        query = Query()
        assert query.question == ""
        assert query.images == []
        assert query.session is None

    def test_with_image(self):
        query = Query(images=[ImageInput(data=b"\x89PNG", media_type="image/png")])
        assert query.images[0].data == b"\x89PNG"


class TestCitation:
    def test_missing_required_field_raises(self):
        with pytest.raises(ValidationError):
            Citation(number=1, title="Guide")

    def test_optional_fields_default_to_none(self):
        citation = Citation(number=2, title="Guide", filename="guide.pdf")
        assert citation.content is None
        assert citation.location is None


class TestOrchestrationResult:
    def test_has_exactly_three_fields(self):
        result = OrchestrationResult(answer="hi")
        assert set(result.model_dump()) == {"answer", "citations", "session"}

    def test_defaults(self):
        result = OrchestrationResult(answer="hi")
        assert result.citations == []
        assert result.session is None

    @pytest.mark.parametrize("answer", ["", "   ", "\n\t"])
    def test_is_blank(self, answer):
        assert OrchestrationResult(answer=answer).is_blank

    def test_not_blank(self):
        assert not OrchestrationResult(answer="5 customers").is_blank


class TestIntentLabel:
    def test_values_do_not_contain_each_other(self):
        routable = [IntentLabel.STRUCTURED, IntentLabel.UNSTRUCTURED, IntentLabel.HYBRID]
        for a in routable:
            for b in routable:
                if a is not b:
                    assert a.value not in b.value
