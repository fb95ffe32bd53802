"""Tests for the configuration module."""

from pathlib import Path

import pytest

from livecompute._coerce import EN_LOCALE
from livecompute._config import (
    ConfigError,
    EngineSettings,
    find_pyproject_toml,
    load_settings,
    load_settings_file,
    settings_from_mapping,
)


def write_pyproject(directory: Path, body: str) -> Path:
    pyproject = directory / "pyproject.toml"
    pyproject.write_text(body)
    return pyproject


class TestFindPyprojectToml:
    """Tests for find_pyproject_toml function."""

    def test_finds_in_current_directory(self, tmp_path: Path) -> None:
        """Should find pyproject.toml in current directory."""
        pyproject = write_pyproject(tmp_path, "[project]\nname = 'test'\n")

        assert find_pyproject_toml(tmp_path) == pyproject

    def test_finds_in_parent_directory(self, tmp_path: Path) -> None:
        """Should find pyproject.toml in parent directory."""
        pyproject = write_pyproject(tmp_path, "[project]\nname = 'test'\n")
        subdir = tmp_path / "forms" / "invoices"
        subdir.mkdir(parents=True)

        assert find_pyproject_toml(subdir) == pyproject

    def test_returns_none_when_not_found(self, tmp_path: Path) -> None:
        """Should return None when no pyproject.toml is found."""
        assert find_pyproject_toml(tmp_path) is None


class TestLoadSettingsFile:
    """Tests for reading [tool.livecompute]."""

    def test_reads_section(self, tmp_path: Path) -> None:
        pyproject = write_pyproject(
            tmp_path,
            """
[tool.livecompute]
max-passes = 5
settle_delay = 0.25
tolerance = 0
locale = "en"
""",
        )

        settings = load_settings_file(pyproject)

        assert settings.max_passes == 5
        assert settings.settle_delay == 0.25
        assert settings.tolerance == 0.0
        assert settings.number_locale == EN_LOCALE
        assert settings.batch_size == EngineSettings().batch_size

    def test_missing_section_gives_defaults(self, tmp_path: Path) -> None:
        """A pyproject.toml without the section should give default settings."""
        pyproject = write_pyproject(tmp_path, "[project]\nname = 'test'\n")

        assert load_settings_file(pyproject) == EngineSettings()

    def test_unknown_key(self, tmp_path: Path) -> None:
        pyproject = write_pyproject(tmp_path, "[tool.livecompute]\nmax_pass = 5\n")

        with pytest.raises(ConfigError, match="Unknown key"):
            load_settings_file(pyproject)

    def test_invalid_toml(self, tmp_path: Path) -> None:
        pyproject = write_pyproject(tmp_path, "[tool.livecompute\n")

        with pytest.raises(ConfigError, match="Invalid TOML"):
            load_settings_file(pyproject)

    def test_section_must_be_table(self, tmp_path: Path) -> None:
        pyproject = write_pyproject(tmp_path, '[tool]\nlivecompute = "fast"\n')

        with pytest.raises(ConfigError, match="expected a table"):
            load_settings_file(pyproject)


class TestSettingsFromMapping:
    """Tests for value validation."""

    @pytest.mark.parametrize(
        ("values", "message"),
        [
            ({"max_passes": "3"}, "expected integer"),
            ({"max_passes": 0}, "at least 1"),
            ({"batch_size": True}, "expected integer"),
            ({"edit_cooldown": -1}, "must not be negative"),
            ({"tolerance": "small"}, "expected number"),
            ({"locale": "fr"}, "expected one of"),
        ],
    )
    def test_rejects_bad_values(self, values: dict, message: str) -> None:
        with pytest.raises(ConfigError, match=message):
            settings_from_mapping(values)

    def test_precision_may_be_zero(self) -> None:
        assert settings_from_mapping({"precision": 0}).precision == 0

    def test_integer_accepted_for_float(self) -> None:
        settings = settings_from_mapping({"immediate-delay": 1})
        assert settings.immediate_delay == 1.0
        assert isinstance(settings.immediate_delay, float)

    def test_section_name_in_message(self) -> None:
        with pytest.raises(ConfigError, match=r"\[settings\]"):
            settings_from_mapping({"nope": 1}, section="[settings]")


class TestLoadSettings:
    def test_defaults_without_pyproject(self, tmp_path: Path) -> None:
        assert load_settings(tmp_path) == EngineSettings()

    def test_uses_nearest_pyproject(self, tmp_path: Path) -> None:
        write_pyproject(tmp_path, "[tool.livecompute]\nbatch-size = 4\n")
        subdir = tmp_path / "forms"
        subdir.mkdir()

        assert load_settings(subdir).batch_size == 4
