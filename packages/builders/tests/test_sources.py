"""Tests for the concrete key/value sources."""

import json
import os

import pytest

from kvknobs_builders import (
    AppSettingsSection,
    ConnectionStringSettings,
    ConnectionStringsSection,
    EnvironmentConfigBuilder,
    KeyPerFileConfigBuilder,
    KeyValueBuilderConfigError,
    KeyValueBuilderError,
    KeyValueEnabled,
    SimpleJsonConfigBuilder,
    SimpleJsonConfigBuilderMode,
    UserSecretsConfigBuilder,
    map_path,
)
from kvknobs_builders.sources.user_secrets import secrets_file_from_id
from kvknobs_builders.sources.values import CaseInsensitiveValues
from kvknobs_common import ValidationError


def build(builder_cls, options, config_root=None):
    builder = builder_cls()
    builder.initialize("source", options, config_root=config_root)
    return builder


def settings(**entries):
    section = AppSettingsSection()
    for key, value in entries.items():
        section.add(key, value)
    return section


@pytest.fixture
def json_file(tmp_path):
    """Write a JSON document and return its path."""

    def _write(document, name="settings.json"):
        path = tmp_path / name
        path.write_text(json.dumps(document), encoding="utf-8")
        return path

    return _write


class TestCaseInsensitiveValues:
    """Test the shared value store."""

    def test_lookup_ignores_case(self):
        """Test lookups and prefix queries."""
        values = CaseInsensitiveValues()
        values.add("Db:Host", "localhost")
        values.add("Greeting", "hi")

        assert values.get("DB:HOST") == "localhost"
        assert values.with_prefix("db:") == [("Db:Host", "localhost")]
        assert "greeting" in values
        assert len(values) == 2

    def test_duplicates_can_be_refused(self):
        """Test that a duplicate key fails when replacing is not allowed."""
        values = CaseInsensitiveValues()
        values.add("a", "1", allow_replace=False)

        with pytest.raises(ValidationError):
            values.add("A", "2", allow_replace=False)


class TestEnvironmentConfigBuilder:
    """Test the environment variable source."""

    def test_strict(self, env_vars):
        """Test that existing keys are replaced from the environment."""
        env_vars(KVTEST_Greeting="from-env")
        builder = build(EnvironmentConfigBuilder, {"mode": "Strict"})
        section = settings(KVTEST_Greeting="original", Other="untouched")

        builder.process_section(section)

        assert section.get("KVTEST_Greeting") == "from-env"
        assert section.get("Other") == "untouched"

    def test_lookup_ignores_case(self, env_vars):
        """Test that names match regardless of case."""
        env_vars(KVTEST_MixedCase="value")
        builder = build(EnvironmentConfigBuilder, {})

        assert builder.get_value("kvtest_mixedcase") == "value"
        assert builder.get_value("KVTEST_Missing") is None

    def test_greedy_with_stripped_prefix(self, env_vars):
        """Test that Greedy mode adds every prefixed variable."""
        env_vars(KVTEST_Alpha="a", KVTEST_Beta="b")
        builder = build(
            EnvironmentConfigBuilder,
            {"mode": "Greedy", "prefix": "KVTEST_", "stripPrefix": "true"},
        )
        section = settings(alpha="old")

        builder.process_section(section)

        assert section.get("Alpha") == "a"
        assert section.get("Beta") == "b"
        assert section.get_key("alpha") == "alpha"
        assert "KVTEST_Alpha" not in section

    def test_token_mode(self, env_vars):
        """Test expanding environment tokens in raw text."""
        env_vars(KVTEST_Host="db.internal")
        builder = build(EnvironmentConfigBuilder, {"mode": "Token"})

        assert builder.expand_text("Server=${KVTEST_Host}") == "Server=db.internal"


class TestSimpleJsonConfigBuilder:
    """Test the JSON file source."""

    DOCUMENT = {
        "Greeting": "hi",
        "Db": {"Hosts": ["a", "b"], "Port": 5432, "Ssl": True, "Password": None},
    }

    def test_flat_keys(self, json_file):
        """Test how nested values are flattened."""
        path = json_file(self.DOCUMENT)
        builder = build(SimpleJsonConfigBuilder, {"jsonFile": str(path)})
        builder.ensure_initialized()

        assert builder.get_value("Greeting") == "hi"
        assert builder.get_value("db:hosts:1") == "b"
        assert builder.get_value("Db:Port") == "5432"
        assert builder.get_value("Db:Ssl") == "true"
        assert builder.get_value("Db:Password") == ""
        assert builder.get_value("Db") is None

    def test_greedy(self, json_file):
        """Test that Greedy mode adds every flattened key."""
        path = json_file(self.DOCUMENT)
        builder = build(SimpleJsonConfigBuilder, {"jsonFile": str(path), "mode": "Greedy"})
        section = AppSettingsSection()

        builder.process_section(section)

        assert section.as_dict() == {
            "Greeting": "hi",
            "Db:Hosts:0": "a",
            "Db:Hosts:1": "b",
            "Db:Port": "5432",
            "Db:Ssl": "true",
            "Db:Password": "",
        }

    def test_relative_path_uses_config_root(self, json_file, tmp_path):
        """Test that jsonFile resolves against the configuration directory."""
        json_file(self.DOCUMENT, name="relative.json")
        builder = build(SimpleJsonConfigBuilder, {"jsonFile": "relative.json"}, tmp_path)

        assert builder.expand_text("${Greeting}") == "hi"
        assert builder.json_file == str(tmp_path / "relative.json")

    def test_sectional(self, json_file):
        """Test that each section reads its own object."""
        path = json_file(
            {
                "appSettings": {"Greeting": "hello"},
                "connectionStrings": {"Main": "Server=real"},
                "Shared": "everywhere",
                "List": ["x", {"ignored": "object"}],
            }
        )
        options = {"jsonFile": str(path), "jsonMode": "Sectional", "mode": "Greedy"}

        app = AppSettingsSection()
        build(SimpleJsonConfigBuilder, options).process_section(app)
        assert app.as_dict() == {"Greeting": "hello"}

        other = AppSettingsSection("otherSettings")
        build(SimpleJsonConfigBuilder, options).process_section(other)
        assert other.as_dict() == {"Shared": "everywhere", "List:0": "x"}

        connections = ConnectionStringsSection()
        connections.add(ConnectionStringSettings("Main", "placeholder", "postgresql"))
        build(SimpleJsonConfigBuilder, {**options, "mode": "Strict"}).process_section(connections)
        assert connections.get("Main").connection_string == "Server=real"
        assert connections.get("Main").provider_name == "postgresql"

    def test_json_mode_property(self, json_file):
        """Test that jsonMode is parsed ignoring case."""
        path = json_file({})
        builder = build(SimpleJsonConfigBuilder, {"jsonFile": str(path), "jsonMode": "sectional"})
        builder.ensure_initialized()

        assert builder.json_mode is SimpleJsonConfigBuilderMode.SECTIONAL

    def test_duplicate_keys(self, json_file):
        """Test that two paths flattening to one key are an error."""
        path = json_file({"a": {"b": "nested"}, "A:B": "flat"})
        builder = build(SimpleJsonConfigBuilder, {"jsonFile": str(path)})

        with pytest.raises(KeyValueBuilderError) as exc_info:
            builder.ensure_initialized()

        assert isinstance(exc_info.value.__cause__, ValidationError)

    def test_missing_option(self):
        """Test that jsonFile is required, even for an optional builder."""
        builder = build(SimpleJsonConfigBuilder, {"enabled": "Optional"})

        with pytest.raises(KeyValueBuilderConfigError, match="jsonFile"):
            builder.ensure_initialized()

    def test_missing_file(self, tmp_path):
        """Test that a missing file fails an enabled builder."""
        builder = build(SimpleJsonConfigBuilder, {"jsonFile": str(tmp_path / "nope.json")})

        with pytest.raises(KeyValueBuilderError) as exc_info:
            builder.process_section(settings(Greeting="x"))

        assert isinstance(exc_info.value.__cause__, FileNotFoundError)

    def test_missing_file_when_optional(self, tmp_path):
        """Test that a missing file leaves sections alone for an optional builder."""
        builder = build(
            SimpleJsonConfigBuilder,
            {"jsonFile": str(tmp_path / "nope.json"), "optional": "true", "mode": "Greedy"},
        )
        section = settings(Greeting="x")

        builder.process_section(section)

        assert section.as_dict() == {"Greeting": "x"}

    def test_root_must_be_object(self, json_file):
        """Test that a JSON array document is refused."""
        path = json_file(["not", "an", "object"])
        builder = build(SimpleJsonConfigBuilder, {"jsonFile": str(path)})

        with pytest.raises(KeyValueBuilderConfigError):
            builder.ensure_initialized()


class TestKeyPerFileConfigBuilder:
    """Test the one-file-per-key source."""

    @pytest.fixture
    def secrets_dir(self, tmp_path):
        root = tmp_path / "secrets"
        (root / "Db").mkdir(parents=True)
        (root / "ignore.Skipped").mkdir()
        (root / "Alpha").write_text("one\n", encoding="utf-8")
        (root / "ignore.Hidden").write_text("hidden", encoding="utf-8")
        (root / "Db" / "Password").write_text("s3cret\r\n", encoding="utf-8")
        (root / "ignore.Skipped" / "Value").write_text("nope", encoding="utf-8")
        return root

    def test_single_level(self, secrets_dir):
        """Test that without a delimiter only top-level files are keys."""
        builder = build(
            KeyPerFileConfigBuilder, {"directoryPath": str(secrets_dir), "mode": "Greedy"}
        )
        section = AppSettingsSection()

        builder.process_section(section)

        assert section.as_dict() == {"Alpha": "one"}

    def test_multi_level(self, secrets_dir):
        """Test that sub directories become key segments."""
        builder = build(
            KeyPerFileConfigBuilder,
            {"directoryPath": str(secrets_dir), "keyDelimiter": ":", "mode": "Greedy"},
        )
        section = AppSettingsSection()

        builder.process_section(section)

        assert section.as_dict() == {"Db:Password": "s3cret", "Alpha": "one"}
        assert builder.get_value("Db:Password") == "s3cret"

    def test_ignore_prefix(self, secrets_dir):
        """Test a custom ignore prefix."""
        builder = build(
            KeyPerFileConfigBuilder,
            {"directoryPath": str(secrets_dir), "ignorePrefix": "Al"},
        )
        builder.ensure_initialized()

        assert builder.get_value("Alpha") is None
        assert builder.get_value("ignore.Hidden") == "hidden"

    def test_ignored_files_are_not_read(self, secrets_dir):
        """Test that ignored names are skipped by direct lookups too."""
        builder = build(
            KeyPerFileConfigBuilder, {"directoryPath": str(secrets_dir), "keyDelimiter": ":"}
        )
        builder.ensure_initialized()

        assert builder.get_value("ignore.Hidden") is None
        assert builder.get_value("ignore.Skipped:Value") is None

    def test_lookups_stay_inside_directory(self, secrets_dir):
        """Test that keys cannot escape the configured directory."""
        (secrets_dir.parent / "outside").write_text("leaked", encoding="utf-8")
        builder = build(KeyPerFileConfigBuilder, {"directoryPath": str(secrets_dir)})
        builder.ensure_initialized()

        assert builder.get_value(os.path.join("..", "outside")) is None
        assert builder.get_value("Missing") is None

    def test_missing_option(self):
        """Test that directoryPath is required."""
        builder = build(KeyPerFileConfigBuilder, {})

        with pytest.raises(KeyValueBuilderConfigError, match="directoryPath"):
            builder.ensure_initialized()

    def test_missing_directory(self, tmp_path):
        """Test that a missing directory is reported."""
        builder = build(KeyPerFileConfigBuilder, {"directoryPath": str(tmp_path / "none")})

        with pytest.raises(KeyValueBuilderError) as exc_info:
            builder.ensure_initialized()

        assert isinstance(exc_info.value.__cause__, FileNotFoundError)


class TestUserSecretsConfigBuilder:
    """Test the user secrets source."""

    SECRETS = """<root>
  <secrets ver="1.0">
    <secret name="ApiKey" value="abc123" />
    <secret name="Db:Password" value="hunter2" />
  </secrets>
</root>"""

    def write_secrets(self, path):
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(self.SECRETS, encoding="utf-8")
        return path

    def test_optional_by_default(self):
        """Test the default enabled value."""
        builder = build(UserSecretsConfigBuilder, {})
        assert builder.enabled is KeyValueEnabled.OPTIONAL

    def test_secrets_file(self, tmp_path):
        """Test reading an explicit secrets file."""
        path = self.write_secrets(tmp_path / "secrets.xml")
        builder = build(UserSecretsConfigBuilder, {"userSecretsFile": str(path)})
        section = settings(ApiKey="placeholder")

        builder.process_section(section)

        assert section.get("ApiKey") == "abc123"
        assert builder.expand_text("${Db:Password}") == "hunter2"

    def test_secrets_id_from_home(self, tmp_path, monkeypatch):
        """Test locating the file through the user's home directory."""
        monkeypatch.delenv("APPDATA", raising=False)
        monkeypatch.setenv("HOME", str(tmp_path))
        self.write_secrets(tmp_path / ".microsoft" / "usersecrets" / "my-app" / "secrets.xml")

        builder = build(UserSecretsConfigBuilder, {"userSecretsId": "my-app", "enabled": "Enabled"})

        assert builder.expand_text("${ApiKey}") == "abc123"

    def test_secrets_id_prefers_appdata(self, tmp_path, monkeypatch):
        """Test that APPDATA wins over HOME."""
        monkeypatch.setenv("APPDATA", str(tmp_path / "appdata"))
        monkeypatch.setenv("HOME", str(tmp_path / "home"))

        expected = os.path.join(
            str(tmp_path / "appdata"), "Microsoft", "UserSecrets", "my-app", "secrets.xml"
        )
        assert secrets_file_from_id("my-app") == expected

    def test_invalid_secrets_id(self):
        """Test that ids with path characters are refused."""
        builder = build(UserSecretsConfigBuilder, {"userSecretsId": "../escape"})

        with pytest.raises(KeyValueBuilderConfigError):
            builder.ensure_initialized()

    def test_no_file_or_id(self):
        """Test that one of the two options is required."""
        builder = build(UserSecretsConfigBuilder, {})

        with pytest.raises(KeyValueBuilderConfigError):
            builder.ensure_initialized()

    def test_missing_file_when_optional(self, tmp_path):
        """Test that a missing secrets file is fine by default."""
        builder = build(UserSecretsConfigBuilder, {"userSecretsFile": str(tmp_path / "no.xml")})
        section = settings(ApiKey="placeholder")

        builder.process_section(section)

        assert section.get("ApiKey") == "placeholder"

    def test_missing_file_when_enabled(self, tmp_path):
        """Test that a missing secrets file fails an enabled builder."""
        builder = build(
            UserSecretsConfigBuilder,
            {"userSecretsFile": str(tmp_path / "no.xml"), "enabled": "Enabled"},
        )

        with pytest.raises(KeyValueBuilderError):
            builder.process_section(settings(ApiKey="placeholder"))


class TestMapPath:
    """Test configuration path resolution."""

    def test_blank_is_unchanged(self):
        """Test that empty input comes back as is."""
        assert map_path(None) is None
        assert map_path("  ") == "  "

    def test_absolute_is_unchanged(self, tmp_path):
        """Test that absolute paths are not touched."""
        assert map_path(str(tmp_path / "a.json"), "/elsewhere") == str(tmp_path / "a.json")

    def test_relative_to_root(self, tmp_path):
        """Test that relative paths resolve against the root."""
        assert map_path("sub/a.json", tmp_path) == str(tmp_path / "sub" / "a.json")
        assert map_path("~/a.json", tmp_path) == str(tmp_path / "a.json")

    def test_relative_to_cwd(self, tmp_path, monkeypatch):
        """Test that the working directory is used without a root."""
        monkeypatch.chdir(tmp_path)
        assert map_path("a.json") == str(tmp_path / "a.json")
