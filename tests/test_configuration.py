"""
Tests for program configuration, runtime settings and schema lookups.
"""

from pathlib import Path

import pytest
from omegaconf.errors import ConfigKeyError

from premiers_awards_backend.configuration import RuntimeSettings, load_program_config, make_program_config
from premiers_awards_backend.errors import SchemaUnavailable
from premiers_awards_backend.schema import ConfigSchemaLookup, has_section, require_text


class TestProgramConfig:
    def test_defaults(self):
        config = load_program_config()
        assert config.program.max_drafts == 10
        assert config.program.max_attachments == 5
        assert config.program.max_pages is None
        assert list(config.uploads.mime_types) == ["application/pdf"]

    def test_overrides(self):
        config = make_program_config({"program": {"max_pages": 5}})
        assert config.program.max_pages == 5
        assert config.program.max_drafts == 10

    def test_unknown_override_key(self):
        with pytest.raises(ConfigKeyError):
            make_program_config({"program": {"no_such_option": 1}})


class TestRuntimeSettings:
    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("DATA_PATH", "/srv/awards")
        monkeypatch.delenv("DB_PATH", raising=False)
        monkeypatch.setenv("PDF_CONVERT_TIMEOUT", "30")
        monkeypatch.setenv("CORS_ORIGINS", "https://a.example, https://b.example")
        monkeypatch.setenv("LOG_LEVEL", "debug")

        settings = RuntimeSettings.from_env()

        assert settings.db_path == Path("/srv/awards/nominations.db")
        assert settings.generated_root == Path("/srv/awards/generated")
        assert settings.pdf_convert_timeout == 30.0
        assert settings.cors_origins == ["https://a.example", "https://b.example"]
        assert settings.log_level == "DEBUG"

    def test_timeout_disabled_by_default(self, monkeypatch):
        monkeypatch.delenv("PDF_CONVERT_TIMEOUT", raising=False)
        assert RuntimeSettings.from_env().pdf_convert_timeout is None


class TestSchemaLookup:
    def test_lookup(self, schema):
        assert schema.lookup("categories", "innovation") == "Innovation"
        assert schema.lookup("organizations", "org-21") == "Transportation and Infrastructure"
        assert schema.lookup("organizations", "org-999") is None

    def test_section_membership(self, schema):
        assert has_section(schema, "valuing_people", "leadership")
        assert not has_section(schema, "valuing_people", "innovation")
        assert schema.sections_for("unknown") == []

    def test_require_text(self, schema):
        assert require_text(schema, "evaluation_sections", "impact") == "Impact"
        with pytest.raises(SchemaUnavailable):
            require_text(schema, "evaluation_sections", "missing")

    def test_missing_table(self):
        lookup = ConfigSchemaLookup(make_program_config({}))
        with pytest.raises(SchemaUnavailable):
            lookup.options("venues")
