"""Tests for configuration loading."""

import pytest

from trackprobe.utils.config import (
    DEFAULT_CONFIG_LOCATIONS,
    ConfigManager,
    deep_merge,
    get_default_config,
    load_config,
    validate_queue_config,
)
from trackprobe.utils.errors import ConfigurationError


class TestConfigManager:
    def test_dot_notation(self):
        config = ConfigManager({"queue": {"max_concurrent": 3}})
        assert config.get("queue.max_concurrent") == 3
        assert config.get("queue.missing", default=7) == 7

    def test_required_key(self):
        with pytest.raises(ConfigurationError) as exc_info:
            ConfigManager({}).get("queue.max_concurrent", required=True)
        assert exc_info.value.config_key == "queue.max_concurrent"

    def test_set_creates_sections(self):
        config = ConfigManager()
        config.set("logging.level", "DEBUG")
        assert config.get_section("logging") == {"level": "DEBUG"}

    def test_get_section_of_scalar(self):
        assert ConfigManager({"audio": 5}).get_section("audio") == {}

    def test_to_dict_is_a_copy(self):
        config = ConfigManager({"a": {"b": 1}})
        config.to_dict()["a"]["b"] = 2
        assert config.get("a.b") == 1

    def test_from_file_interpolates_env(self, tmp_path, monkeypatch):
        monkeypatch.setenv("TRACKPROBE_LOG", "/var/log/tp.log")
        path = tmp_path / "config.yaml"
        path.write_text("logging:\n  file: ${TRACKPROBE_LOG}\n  tag: ${UNSET_VAR_XYZ}\n")

        config = ConfigManager.from_file(path)
        assert config.get("logging.file") == "/var/log/tp.log"
        assert config.get("logging.tag") == "${UNSET_VAR_XYZ}"

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError, match="not found"):
            ConfigManager.from_file(tmp_path / "nope.yaml")

    def test_bad_yaml(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("queue: [unclosed\n")
        with pytest.raises(ConfigurationError, match="parse"):
            ConfigManager.from_file(path)

    def test_non_mapping_root(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- a\n- b\n")
        with pytest.raises(ConfigurationError, match="mapping"):
            ConfigManager.from_file(path)

    def test_validate_type(self):
        config = ConfigManager({"logging": {"level": 10}})
        with pytest.raises(ConfigurationError, match="Invalid type"):
            config.validate({"logging.level": {"type": str}})

    def test_validate_optional_missing(self):
        ConfigManager({}).validate({"logging.level": {"type": str}})


class TestLoadConfig:
    def test_layers_file_over_defaults(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("queue:\n  max_concurrent: 6\n")
        config = load_config(str(path))
        assert config["queue"]["max_concurrent"] == 6
        assert config["audio"] == get_default_config()["audio"]

    def test_defaults_when_nothing_found(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        assert load_config() == get_default_config()

    def test_search_does_not_depend_on_install_location(self):
        assert all(not path.is_absolute() for path in DEFAULT_CONFIG_LOCATIONS)

    def test_searches_working_directory(self, tmp_path, monkeypatch):
        (tmp_path / "config.yaml").write_text("logging:\n  level: WARNING\n")
        monkeypatch.chdir(tmp_path)
        assert load_config()["logging"]["level"] == "WARNING"


class TestHelpers:
    def test_deep_merge(self):
        merged = deep_merge({"a": {"x": 1, "y": 2}, "b": 1}, {"a": {"y": 3}, "c": 4})
        assert merged == {"a": {"x": 1, "y": 3}, "b": 1, "c": 4}

    def test_deep_merge_leaves_inputs_alone(self):
        base = {"a": {"x": 1}}
        deep_merge(base, {"a": {"x": 2}})
        assert base == {"a": {"x": 1}}

    def test_validate_queue_config(self):
        assert validate_queue_config(get_default_config()) == 2

    @pytest.mark.parametrize("value", [0, -3, True, "2", None])
    def test_validate_queue_config_rejects(self, value):
        with pytest.raises(ConfigurationError):
            validate_queue_config({"queue": {"max_concurrent": value}})
