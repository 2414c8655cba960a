"""Tests for entry_fees.settings."""

import pytest
import yaml

from entry_fees.settings import EngineSettings, load_settings, settings_from_dict


class TestLoadSettings:
    def test_packaged_defaults(self):
        settings = load_settings(environ={})
        assert settings.database_url.startswith("postgresql://")
        assert settings.statement_number_prefix == "PL"
        assert settings.amount_scale == 2
        assert settings.max_cancel_batch_size == 100
        assert settings.conflict_report_limit == 20

    def test_yaml_overlay_merges_sections(self, tmp_path):
        path = tmp_path / "settings.yaml"
        path.write_text(yaml.safe_dump({
            "statements": {"number_prefix": "EF"},
            "batch": {"max_cancel_batch_size": 10},
        }))

        settings = load_settings(path, environ={})

        assert settings.statement_number_prefix == "EF"
        assert settings.amount_scale == 2
        assert settings.max_cancel_batch_size == 10

    def test_environment_overrides_url(self, tmp_path):
        path = tmp_path / "settings.yaml"
        path.write_text(yaml.safe_dump({"database": {"url": "postgresql://file/db"}}))

        settings = load_settings(path, environ={"ENTRY_FEES_DATABASE_URL": "sqlite://"})
        assert settings.database_url == "sqlite://"

    def test_generic_database_url_variable(self):
        settings = load_settings(environ={"DATABASE_URL": "postgresql://env/db"})
        assert settings.database_url == "postgresql://env/db"

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_settings(tmp_path / "absent.yaml", environ={})

    def test_database_section_required(self):
        with pytest.raises(KeyError):
            settings_from_dict({"statements": {}})


class TestClampLimit:
    @pytest.mark.parametrize("requested, expected", [(None, 50), (0, 1), (25, 25), (10_000, 200)])
    def test_clamp(self, requested, expected):
        assert EngineSettings(database_url="sqlite://").clamp_limit(requested) == expected
