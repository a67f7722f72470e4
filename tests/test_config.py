"""Tests for knowledge_router.config."""

from pathlib import Path
from unittest.mock import patch

from knowledge_router.config import Settings


class TestSettings:
    @patch.dict("os.environ", {}, clear=True)
    def test_defaults(self):
        settings = Settings()
        assert settings.openai_api_key is None
        assert settings.model == "gpt-4o-mini"
        assert settings.vision_model == "gpt-4o"
        assert settings.database_url == "sqlite:///business.db"
        assert settings.knowledge_source_id is None
        assert settings.index_path == Path(".chroma_db")
        assert settings.documents_dir == Path("documents")
        assert settings.log_level == "INFO"

    @patch.dict(
        "os.environ",
        {
            "OPENAI_API_KEY": "sk-env",
            "OPENAI_MODEL": "gpt-4o",
            "OPENAI_VISION_MODEL": "gpt-4.1",
            "DATABASE_URL": "postgresql://localhost/shop",
            "KNOWLEDGE_SOURCE_ID": "kb-123",
            "DOCUMENTS_DIR": "/srv/docs",
            "LOG_LEVEL": "debug",
        },
        clear=True,
    )
    def test_reads_environment(self):
        settings = Settings()
        assert settings.openai_api_key == "sk-env"
        assert settings.model == "gpt-4o"
        assert settings.vision_model == "gpt-4.1"
        assert settings.database_url == "postgresql://localhost/shop"
        assert settings.knowledge_source_id == "kb-123"
        assert settings.documents_dir == Path("/srv/docs")
        assert settings.log_level == "DEBUG"

    @patch.dict("os.environ", {"KNOWLEDGE_SOURCE_ID": ""}, clear=True)
    def test_blank_source_is_none(self):
        assert Settings().knowledge_source_id is None

    @patch.dict("os.environ", {"OPENAI_MODEL": "gpt-4o", "UNRELATED_VAR": "x"}, clear=True)
    def test_keyword_arguments_override_environment(self):
        settings = Settings(model="gpt-4o-mini", knowledge_source_id="kb-1")
        assert settings.model == "gpt-4o-mini"
        assert settings.knowledge_source_id == "kb-1"
