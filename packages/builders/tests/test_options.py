"""Tests for builder option parsing."""

import re

import pytest

from kvknobs_builders.exceptions import BuilderOptionError
from kvknobs_builders.options import (
    DEFAULT_TOKEN_PATTERN,
    BuilderConfig,
    BuilderOptions,
    KeyValueEnabled,
    KeyValueMode,
    compile_token_pattern,
    parse_bool,
    parse_char_map,
    parse_enum,
    parse_mode,
)
from kvknobs_common import ConfigurationError


class TestBuilderOptions:
    """Test the case-insensitive option bag."""

    def test_names_ignore_case(self):
        """Test that option names match in any case."""
        options = BuilderOptions({"PREfix": "$This_is_my_other_PREFIX#"})
        assert options["prefix"] == "$This_is_my_other_PREFIX#"
        assert options.get("PREFIX") == "$This_is_my_other_PREFIX#"
        assert "Prefix" in options

    def test_values_keep_case(self):
        """Test that values are not case-folded."""
        options = BuilderOptions({"mode": "Greedy"})
        assert options["MODE"] == "Greedy"

    def test_iteration_uses_original_names(self):
        """Test that iteration yields names as given."""
        options = BuilderOptions({"stripPrefix": "true", "Mode": "Strict"})
        assert list(options) == ["stripPrefix", "Mode"]
        assert len(options) == 2

    def test_missing_option(self):
        """Test that a missing option is absent."""
        options = BuilderOptions()
        assert options.get("mode") is None
        assert "mode" not in options


class TestParseMode:
    """Test parsing of the mode option."""

    @pytest.mark.parametrize(
        "value,expected",
        [
            ("Strict", KeyValueMode.STRICT),
            ("strict", KeyValueMode.STRICT),
            ("Greedy", KeyValueMode.GREEDY),
            ("GREEDY", KeyValueMode.GREEDY),
            ("Token", KeyValueMode.TOKEN),
            ("Expand", KeyValueMode.TOKEN),
            ("RawToken", KeyValueMode.TOKEN),
        ],
    )
    def test_valid_modes(self, value, expected):
        """Test every accepted spelling."""
        assert parse_mode(value) is expected

    def test_invalid_mode(self):
        """Test that an unknown mode is a configuration error."""
        with pytest.raises(BuilderOptionError) as exc_info:
            parse_mode("InvalidModeDoesNotExist")

        assert isinstance(exc_info.value, ConfigurationError)
        assert exc_info.value.context["option"] == "mode"


class TestParseScalars:
    """Test enum and boolean parsing."""

    def test_parse_enabled(self):
        """Test enabled values in any case."""
        assert parse_enum(KeyValueEnabled, "optional", "enabled") is KeyValueEnabled.OPTIONAL
        assert parse_enum(KeyValueEnabled, "DISABLED", "enabled") is KeyValueEnabled.DISABLED

    def test_parse_enabled_invalid(self):
        """Test that unknown enabled values are rejected."""
        with pytest.raises(BuilderOptionError):
            parse_enum(KeyValueEnabled, "sometimes", "enabled")

    @pytest.mark.parametrize("value,expected", [("true", True), ("TRUE", True), ("False", False)])
    def test_parse_bool(self, value, expected):
        """Test boolean parsing."""
        assert parse_bool(value, "stripPrefix") is expected

    def test_parse_bool_invalid(self):
        """Test that non-boolean text is rejected."""
        with pytest.raises(BuilderOptionError):
            parse_bool("yes", "stripPrefix")


class TestParseCharMap:
    """Test character map parsing."""

    def test_simple_pairs(self):
        """Test ordered from=to pairs."""
        assert parse_char_map(":=-,/=__") == ((":", "-"), ("/", "__"))

    def test_doubled_separators_are_literal(self):
        """Test that '==' and ',,' stand for literal characters."""
        assert parse_char_map("===__") == (("=", "__"),)
        assert parse_char_map(",,=comma") == ((",", "comma"),)

    def test_empty_replacement(self):
        """Test mapping a character to nothing."""
        assert parse_char_map(".=") == ((".", ""),)

    def test_empty_map(self):
        """Test that an empty value gives no pairs."""
        assert parse_char_map("") == ()

    @pytest.mark.parametrize("value", ["abc", "=x", "a=b=c"])
    def test_invalid_entries(self, value):
        """Test malformed entries."""
        with pytest.raises(BuilderOptionError):
            parse_char_map(value)


class TestTokenPattern:
    """Test token pattern compilation."""

    def test_default_pattern(self):
        """Test what the default pattern matches."""
        pattern = compile_token_pattern(DEFAULT_TOKEN_PATTERN)
        assert pattern.fullmatch("${Db:Connection-String.v2}").group(1) == "Db:Connection-String.v2"
        assert pattern.fullmatch("${-leading}") is None

    def test_invalid_regex(self):
        """Test that a pattern that does not compile is an option error."""
        with pytest.raises(BuilderOptionError):
            compile_token_pattern("%%([\\w:]+%%")


class TestBuilderConfig:
    """Test the resolved option set."""

    def test_defaults(self):
        """Test default values."""
        config = BuilderConfig()
        assert config.mode is KeyValueMode.STRICT
        assert config.key_prefix == ""
        assert config.strip_prefix is False
        assert config.enabled is KeyValueEnabled.ENABLED
        assert config.token_pattern.pattern == DEFAULT_TOKEN_PATTERN

    def test_apply_char_map_in_order(self):
        """Test that substitutions apply left to right."""
        config = BuilderConfig(char_map=((":", "_"), ("_", "-")))
        assert config.apply_char_map("a:b_c") == "a-b-c"

    def test_frozen(self):
        """Test that the config cannot change after creation."""
        config = BuilderConfig()
        with pytest.raises(Exception):
            config.key_prefix = "changed"

    def test_token_pattern_is_compiled(self):
        """Test that the token pattern is a compiled expression."""
        assert isinstance(BuilderConfig().token_pattern, re.Pattern)
