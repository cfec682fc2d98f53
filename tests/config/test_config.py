"""Configuration tests - CFG-001 through CFG-003.

Tests for:
  - Defaults and validation
  - YAML and JSON config files
  - Config discovery by walking up directories
"""

import json

import pytest

from revlang.config import RevConfig, find_config, load_config
from revlang.numeric import IntDomain


# ===========================================================================
# CFG-001: Defaults
# ===========================================================================

class TestCFG001:
    """CFG-001: The default configuration."""

    def test_defaults(self):
        config = RevConfig()
        assert config.int_type == "i64"
        assert config.domain == IntDomain(64, True)
        assert config.verify_assertions is False
        assert config.check_guard_on_backward is False
        assert config.max_call_depth == 100
        assert config.pure_functions == ["abs", "max", "min"]

    @pytest.mark.parametrize("kwargs", [
        {"int_type": "i7"},
        {"max_call_depth": 0},
        {"pure_functions": ["abs", "print"]},
    ])
    def test_invalid(self, kwargs):
        with pytest.raises(ValueError):
            RevConfig(**kwargs).validate()

    def test_no_file_gives_defaults(self, tmp_path):
        assert load_config(start_dir=str(tmp_path)) == RevConfig()


# ===========================================================================
# CFG-002: Files
# ===========================================================================

class TestCFG002:
    """CFG-002: YAML and JSON files override defaults."""

    def test_yaml(self, tmp_path):
        path = tmp_path / ".revlangrc.yml"
        path.write_text(
            "int_type: u32\n"
            "verify_assertions: true\n"
            "max_call_depth: 250\n"
            "pure_functions:\n"
            "  - abs\n"
        )
        config = load_config(str(path))
        assert config.domain == IntDomain(32, False)
        assert config.verify_assertions is True
        assert config.max_call_depth == 250
        assert config.pure_functions == ["abs"]

    def test_json(self, tmp_path):
        path = tmp_path / ".revlangrc.json"
        path.write_text(json.dumps({"int_type": "i16", "check_guard_on_backward": True}))
        config = load_config(str(path))
        assert config.int_type == "i16"
        assert config.check_guard_on_backward is True
        assert config.max_call_depth == 100

    def test_empty_yaml(self, tmp_path):
        path = tmp_path / ".revlangrc.yml"
        path.write_text("")
        assert load_config(str(path)) == RevConfig()

    def test_not_a_mapping(self, tmp_path):
        path = tmp_path / ".revlangrc.yml"
        path.write_text("- i32\n- u8\n")
        with pytest.raises(ValueError, match="mapping"):
            load_config(str(path))

    def test_invalid_value(self, tmp_path):
        path = tmp_path / ".revlangrc.yml"
        path.write_text("int_type: i128\n")
        with pytest.raises(ValueError, match="Unknown integer type"):
            load_config(str(path))


# ===========================================================================
# CFG-003: Discovery
# ===========================================================================

class TestCFG003:
    """CFG-003: The nearest config file wins."""

    def test_walks_up(self, tmp_path):
        (tmp_path / ".revlangrc.yml").write_text("int_type: i8\n")
        nested = tmp_path / "a" / "b"
        nested.mkdir(parents=True)
        assert find_config(str(nested)) == str(tmp_path / ".revlangrc.yml")
        assert load_config(start_dir=str(nested)).int_type == "i8"

    def test_nearest_first(self, tmp_path):
        (tmp_path / ".revlangrc.yml").write_text("int_type: i8\n")
        nested = tmp_path / "sub"
        nested.mkdir()
        (nested / ".revlangrc.json").write_text('{"int_type": "u16"}')
        assert load_config(start_dir=str(nested)).int_type == "u16"

    def test_yml_preferred_over_json(self, tmp_path):
        (tmp_path / ".revlangrc.json").write_text('{"int_type": "u16"}')
        (tmp_path / ".revlangrc.yml").write_text("int_type: i32\n")
        assert find_config(str(tmp_path)).endswith(".revlangrc.yml")
