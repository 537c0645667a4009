import pytest
import yaml

from api.config import load_settings


class TestLoadSettings:
    def test_defaults_without_file(self, tmp_path):
        """No YAML, no env: documented defaults and a local SQLite file."""
        settings = load_settings(tmp_path / "missing.yaml", environ={})

        assert settings.ai_gateway.api_key == ""
        assert settings.ai_gateway.base_url == "https://ai.gateway.lovable.dev/v1"
        assert settings.ai_gateway.model == "google/gemini-3-flash-preview"
        assert settings.ai_gateway.max_retries == 0
        assert settings.scraper.base_url == "https://api.firecrawl.dev/v1"
        assert settings.blog.model == "google/gemini-2.5-flash"
        assert settings.blog.max_source_chars == 6000
        assert settings.database.url.startswith("sqlite:///")
        assert settings.database.url.endswith("quantmentor.db")
        assert settings.debug is False

    def test_yaml_values(self, tmp_path):
        config_file = tmp_path / "config.yaml"
        config_file.write_text(yaml.dump({
            "database": {"url": "postgresql://u:p@db/qm"},
            "ai_gateway": {"api_key": "yaml-key", "model": "openai/gpt-5-mini", "timeout": 30},
            "scraper": {"api_key": "fc-yaml"},
            "blog": {"max_source_chars": 4000},
        }))

        settings = load_settings(config_file, environ={})

        assert settings.database.url == "postgresql://u:p@db/qm"
        assert settings.ai_gateway.api_key == "yaml-key"
        assert settings.ai_gateway.model == "openai/gpt-5-mini"
        assert settings.ai_gateway.timeout == 30.0
        assert settings.scraper.api_key == "fc-yaml"
        assert settings.blog.max_source_chars == 4000

    def test_env_overrides_yaml(self, tmp_path):
        """Secrets and the database URL come from the environment first."""
        config_file = tmp_path / "config.yaml"
        config_file.write_text(yaml.dump({
            "database": {"url": "sqlite:///yaml.db"},
            "ai_gateway": {"api_key": "yaml-key"},
            "scraper": {"api_key": "fc-yaml"},
        }))

        settings = load_settings(config_file, environ={
            "DATABASE_URL": "sqlite://",
            "AI_GATEWAY_API_KEY": "env-key",
            "FIRECRAWL_API_KEY": "fc-env",
            "DEBUG": "true",
        })

        assert settings.database.url == "sqlite://"
        assert settings.ai_gateway.api_key == "env-key"
        assert settings.scraper.api_key == "fc-env"
        assert settings.debug is True

    def test_empty_yaml(self, tmp_path):
        config_file = tmp_path / "config.yaml"
        config_file.write_text("")

        settings = load_settings(config_file, environ={"DATABASE_URL": "sqlite://"})

        assert settings.database.url == "sqlite://"

    def test_invalid_yaml_raises(self, tmp_path):
        config_file = tmp_path / "config.yaml"
        config_file.write_text("invalid: yaml: content: [")

        with pytest.raises(yaml.YAMLError):
            load_settings(config_file, environ={})
