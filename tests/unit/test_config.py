"""
Tests for Configuration System.

This test suite covers:
1. Schema validation (type mismatch, constraint violation)
2. Default file generation with comments
3. Loading settings and plugin declarations
4. Derived paths
5. Error cases
"""

import tomllib
from pathlib import Path

import pytest

from trellis.config import (
    SETTINGS_SCHEMA,
    ConfigError,
    ConfigField,
    Settings,
    ValidationError,
    load_config,
    write_default_config,
)
from trellis.config.schema import SchemaError, generate_default_config, validate_config
from trellis.config.toml_handler import TOMLError, read_toml, write_toml


class TestSchemaValidation:
    """Test schema field validation."""

    def test_field_default_type_mismatch(self):
        """ConfigField should reject a default that doesn't match its type."""
        with pytest.raises(SchemaError, match="does not match type"):
            ConfigField(int, "not an int", "Bad default")

    def test_bool_is_not_int(self):
        """Booleans must not pass as integers."""
        field = ConfigField(int, 1, "Count")
        with pytest.raises(ValidationError, match="Expected type int"):
            field.validate(True)

    def test_min_max_constraints(self):
        field = ConfigField(int, 50, "Number with range", min=0, max=100)
        field.validate(0)
        field.validate(100)

        with pytest.raises(ValidationError, match="below the minimum"):
            field.validate(-1)
        with pytest.raises(ValidationError, match="above the maximum"):
            field.validate(101)

    def test_string_length(self):
        field = ConfigField(str, "abc", "Template", min=3)
        with pytest.raises(ValidationError, match="below the minimum"):
            field.validate("ab")

    def test_choices(self):
        field = SETTINGS_SCHEMA["log_level"]
        field.validate("debug")
        with pytest.raises(ValidationError, match="not in allowed choices"):
            field.validate("verbose")

    def test_validate_config(self):
        config = generate_default_config(SETTINGS_SCHEMA)
        validate_config(config, SETTINGS_SCHEMA)

        config["colour"] = "red"
        with pytest.raises(ValidationError, match="Unknown configuration field"):
            validate_config(config, SETTINGS_SCHEMA)

        del config["colour"]
        del config["git_depth"]
        with pytest.raises(ValidationError, match="Missing required field"):
            validate_config(config, SETTINGS_SCHEMA)


class TestSettings:
    """Test Settings construction and derived values."""

    def test_defaults_match_schema(self):
        settings = Settings()
        for name, field in SETTINGS_SCHEMA.items():
            assert getattr(settings, name) == field.default

    def test_from_dict_overrides(self):
        settings = Settings.from_dict({"max_concurrent_tasks": 4, "log_level": "info"})
        assert settings.max_concurrent_tasks == 4
        assert settings.log_level == "info"
        assert settings.git_depth == 1

    def test_from_dict_rejects_invalid(self):
        with pytest.raises(ConfigError, match="max_concurrent_tasks"):
            Settings.from_dict({"max_concurrent_tasks": 0})

    def test_paths_under_data_dir(self, tmp_path):
        settings = Settings(data_dir=str(tmp_path))
        assert settings.start_dir == tmp_path / "site" / "pack" / "trellis" / "start"
        assert settings.opt_dir == tmp_path / "site" / "pack" / "trellis" / "opt"

    def test_xdg_data_home(self, monkeypatch, tmp_path):
        monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path))
        assert Settings().data_root == tmp_path / "trellis"

    def test_default_data_root(self, monkeypatch):
        monkeypatch.delenv("XDG_DATA_HOME", raising=False)
        assert Settings().data_root == Path.home() / ".local" / "share" / "trellis"

    def test_git_timeout_seconds(self):
        assert Settings(git_timeout=1500).git_timeout_seconds == 1.5


class TestLoadConfig:
    """Test loading configuration files."""

    def test_missing_file_gives_defaults(self, tmp_path):
        settings, specs = load_config(tmp_path / "absent.toml")
        assert settings == Settings()
        assert specs == []

    def test_settings_and_plugins(self, tmp_path):
        path = tmp_path / "trellis.toml"
        path.write_text(
            "[trellis]\n"
            "max_concurrent_tasks = 4\n"
            "install_retry = true\n"
            "\n"
            "[[plugin]]\n"
            'name = "owner/editor-tools"\n'
            'depends = ["owner/shared-lib"]\n'
            'cmd = ["Tools"]\n'
            "\n"
            "[[plugin]]\n"
            'name = "owner/theme"\n'
            "theme = true\n"
        )

        settings, specs = load_config(path)

        assert settings.max_concurrent_tasks == 4
        assert settings.install_retry is True
        assert [spec["name"] for spec in specs] == ["owner/editor-tools", "owner/theme"]
        assert specs[0]["depends"] == ["owner/shared-lib"]

    def test_invalid_toml(self, tmp_path):
        path = tmp_path / "broken.toml"
        path.write_text("[trellis\n")
        with pytest.raises(ConfigError, match="not valid TOML"):
            load_config(path)

    def test_invalid_setting(self, tmp_path):
        path = tmp_path / "trellis.toml"
        path.write_text('[trellis]\nlog_level = "loud"\n')
        with pytest.raises(ConfigError, match="log_level"):
            load_config(path)

    def test_plugin_must_be_array_of_tables(self, tmp_path):
        path = tmp_path / "trellis.toml"
        path.write_text('[plugin]\nname = "owner/repo"\n')
        with pytest.raises(ConfigError, match="array of tables"):
            load_config(path)

    def test_plugin_needs_name(self, tmp_path):
        path = tmp_path / "trellis.toml"
        path.write_text('[[plugin]]\ncmd = "Tools"\n')
        with pytest.raises(ConfigError, match="needs a string 'name'"):
            load_config(path)


class TestDefaultFile:
    """Test default configuration generation."""

    def test_write_default_config(self, tmp_path):
        path = tmp_path / "nested" / "trellis.toml"

        write_default_config(path)

        text = path.read_text()
        assert "# Maximum number of git operations running at once" in text
        assert "# (min: 1; max: 64)" in text
        assert "# (one of: debug, info, warn, error)" in text
        assert "# [[plugin]]" in text

        data = tomllib.loads(text)
        assert data["trellis"] == generate_default_config(SETTINGS_SCHEMA)
        assert load_config(path) == (Settings(), [])

    def test_write_and_read_toml(self, tmp_path):
        path = tmp_path / "data.toml"
        write_toml(path, {"trellis": {"log_level": "debug"}})
        assert read_toml(path) == {"trellis": {"log_level": "debug"}}

    def test_read_missing_file(self, tmp_path):
        with pytest.raises(TOMLError, match="not found"):
            read_toml(tmp_path / "nope.toml")

    def test_read_malformed_file(self, tmp_path):
        path = tmp_path / "broken.toml"
        path.write_text("[trellis\n")
        with pytest.raises(TOMLError, match="not valid TOML"):
            read_toml(path)
