"""Tests for the TOML-backed analysis settings."""

import pytest
import toml

from reposcope import config_manager
from reposcope.config import DEFAULT_BATCH_SIZE, DEFAULT_RESOLUTION_SUFFIXES
from reposcope.config_manager import load_analysis_config, load_full_config, set_analysis_value


def _write_config(text: str) -> None:
    config_manager.CONFIG_FILE.write_text(text, encoding="utf-8")


class TestLoad:
    """Reading the [analysis] section."""

    def test_defaults_without_file(self):
        cfg = load_analysis_config()

        assert cfg["batch_size"] == DEFAULT_BATCH_SIZE
        assert cfg["resolution_suffixes"] == DEFAULT_RESOLUTION_SUFFIXES
        assert load_full_config() == {}

    def test_defaults_are_not_shared(self):
        load_analysis_config()["resolution_suffixes"].append(".vue")
        assert ".vue" not in load_analysis_config()["resolution_suffixes"]

    def test_values_from_file(self):
        _write_config(
            "[analysis]\n"
            "max_workers = 2\n"
            "parse_timeout = 5\n"
            'resolution_suffixes = [".py"]\n'
            'unknown = "ignored"\n'
        )
        cfg = load_analysis_config()

        assert cfg["max_workers"] == 2
        assert cfg["parse_timeout"] == 5.0
        assert cfg["resolution_suffixes"] == [".py"]
        assert "unknown" not in cfg

    def test_bad_values_fall_back(self):
        _write_config('[analysis]\nbatch_size = "lots"\nresolution_suffixes = ".py"\n')
        cfg = load_analysis_config()

        assert cfg["batch_size"] == DEFAULT_BATCH_SIZE
        assert cfg["resolution_suffixes"] == DEFAULT_RESOLUTION_SUFFIXES

    def test_unreadable_file(self):
        _write_config("[analysis\nbatch_size = ")
        assert load_full_config() == {}
        assert load_analysis_config()["batch_size"] == DEFAULT_BATCH_SIZE


class TestSet:
    """Persisting values given as strings."""

    def test_set_and_reload(self):
        assert set_analysis_value("max_cache_entries", "42")
        assert set_analysis_value("eviction_fraction", "0.5")
        assert set_analysis_value("resolution_suffixes", ".ts, .js,")

        cfg = load_analysis_config()
        assert cfg["max_cache_entries"] == 42
        assert cfg["eviction_fraction"] == 0.5
        assert cfg["resolution_suffixes"] == [".ts", ".js"]

    def test_other_sections_are_preserved(self):
        _write_config('[editor]\ntheme = "dark"\n')
        set_analysis_value("batch_size", "9")

        saved = toml.loads(config_manager.CONFIG_FILE.read_text(encoding="utf-8"))
        assert saved["editor"] == {"theme": "dark"}
        assert saved["analysis"]["batch_size"] == 9

    def test_unknown_key(self):
        with pytest.raises(KeyError):
            set_analysis_value("colour", "blue")

    def test_invalid_value(self):
        with pytest.raises(ValueError):
            set_analysis_value("max_workers", "four")
