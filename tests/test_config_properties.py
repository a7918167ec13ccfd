"""
Property-based tests for configuration module.

Uses Hypothesis to check that configuration files round-trip without
data loss, plus example tests for defaults and environment overrides.
"""

import json
import tempfile
from pathlib import Path

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from gemtab.config import (
    BrowserConfig,
    ClientConfig,
    LoggingConfig,
    PersistenceConfig,
    apply_env_overrides,
    create_default_config,
    load_config_from_file,
    save_config_to_file,
)
from gemtab.exceptions import ConfigError


ENV_VARS = ("GEMTAB_LANGUAGE", "GEMTAB_LOG_LEVEL", "GEMTAB_TIMEOUT", "GEMTAB_START_URL")


# Strategies for generating valid configuration objects

path_segment = st.text(alphabet="abcdefghijklmnopqrstuvwxyz0123456789_", min_size=1, max_size=12)


@st.composite
def client_config_strategy(draw) -> ClientConfig:
    """Generate valid ClientConfig objects."""
    with_cert = draw(st.booleans())
    return ClientConfig(
        timeout_seconds=draw(st.floats(min_value=0.5, max_value=120.0)),
        max_header_bytes=draw(st.integers(min_value=16, max_value=4096)),
        max_meta_length=draw(st.integers(min_value=1, max_value=4096)),
        max_body_bytes=draw(st.integers(min_value=1, max_value=16 * 1024 * 1024)),
        max_redirects=draw(st.integers(min_value=0, max_value=20)),
        gemini_port=draw(st.integers(min_value=1, max_value=65535)),
        gopher_port=draw(st.integers(min_value=1, max_value=65535)),
        client_cert_file=Path("/certs") / f"{draw(path_segment)}.crt" if with_cert else None,
        client_key_file=Path("/certs") / f"{draw(path_segment)}.key" if with_cert else None,
    )


@st.composite
def browser_config_strategy(draw) -> BrowserConfig:
    """Generate valid BrowserConfig objects."""
    return BrowserConfig(
        client=draw(client_config_strategy()),
        persistence=PersistenceConfig(config_dir=Path("/data") / draw(path_segment)),
        logging=LoggingConfig(
            level=draw(st.sampled_from(["debug", "info", "warn", "error"])),
            output_format=draw(st.sampled_from(["json", "text", "both"])),
            log_file=draw(st.one_of(st.none(), path_segment.map(lambda s: Path("/logs") / s))),
        ),
        language=draw(st.sampled_from(["en", "de"])),
        start_url=draw(st.sampled_from([
            "home://",
            "gemini://geminiprotocol.net/",
            "gopher://gopher.floodgap.com/",
        ])),
    )


def clear_env(monkeypatch) -> None:
    # setenv first so teardown also removes values load_dotenv puts back
    for name in ENV_VARS:
        monkeypatch.setenv(name, "unused")
        monkeypatch.delenv(name)


class TestConfigurationRoundTripProperty:
    """Property-based tests for configuration file round-trips."""

    @given(config=browser_config_strategy())
    @settings(max_examples=100, deadline=None)
    def test_config_round_trip_preserves_data(self, config: BrowserConfig) -> None:
        """
        Property 1: Configuration round-trips without data loss.

        *For any* valid BrowserConfig, saving to a file and loading it back
        SHALL produce an equal configuration.
        """
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "config.json"
            save_config_to_file(config, path)
            loaded = load_config_from_file(path)

        assert loaded == config

    @given(config=browser_config_strategy())
    @settings(max_examples=50, deadline=None)
    def test_saved_config_is_valid_json(self, config: BrowserConfig) -> None:
        """
        Property 1b: The saved file is a JSON object with every section.
        """
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "nested" / "config.json"
            save_config_to_file(config, path)
            data = json.loads(path.read_text(encoding="utf-8"))

        assert set(data.keys()) == {"client", "persistence", "logging", "language", "start_url"}
        assert data["client"]["max_redirects"] == config.client.max_redirects


class TestConfigDefaults:
    """Tests for defaults and error handling."""

    def test_client_defaults(self) -> None:
        client = ClientConfig()
        assert client.timeout_seconds == 30.0
        assert client.max_header_bytes == 1029
        assert client.max_meta_length == 1024
        assert client.max_body_bytes == 1024 * 1024
        assert client.max_redirects == 5
        assert client.gemini_port == 1965
        assert client.gopher_port == 70

    def test_persistence_paths(self, tmp_path: Path) -> None:
        config = create_default_config(config_dir=tmp_path, language="de")
        assert config.persistence.certs_path == tmp_path / "certs.json"
        assert config.persistence.history_path == tmp_path / "history.json"
        assert config.language == "de"
        assert config.start_url == "home://"

    def test_missing_file_yields_defaults(self, tmp_path: Path) -> None:
        config = load_config_from_file(tmp_path / "absent.json")
        assert config.client == ClientConfig()

    def test_malformed_file_raises_config_error(self, tmp_path: Path) -> None:
        path = tmp_path / "config.json"
        path.write_text("{not json", encoding="utf-8")
        with pytest.raises(ConfigError):
            load_config_from_file(path)

    def test_unknown_log_format_raises_config_error(self, tmp_path: Path) -> None:
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"logging": {"output_format": "xml"}}), encoding="utf-8")
        with pytest.raises(ConfigError):
            load_config_from_file(path)

    def test_config_dir_from_environment(self, tmp_path: Path, monkeypatch) -> None:
        monkeypatch.setenv("GEMTAB_CONFIG_DIR", str(tmp_path))
        config = create_default_config()
        assert config.persistence.config_dir == tmp_path


class TestEnvironmentOverrides:
    """Tests for GEMTAB_* overrides and .env loading."""

    def test_environment_overrides_config(self, tmp_path: Path, monkeypatch) -> None:
        clear_env(monkeypatch)
        monkeypatch.setenv("GEMTAB_LANGUAGE", "de")
        monkeypatch.setenv("GEMTAB_LOG_LEVEL", "debug")
        monkeypatch.setenv("GEMTAB_TIMEOUT", "12.5")
        monkeypatch.setenv("GEMTAB_START_URL", "gemini://example.org/")

        config = apply_env_overrides(create_default_config(), dotenv_path=tmp_path / ".env")

        assert config.language == "de"
        assert config.logging.level == "debug"
        assert config.client.timeout_seconds == 12.5
        assert config.start_url == "gemini://example.org/"

    def test_dotenv_file_is_loaded(self, tmp_path: Path, monkeypatch) -> None:
        clear_env(monkeypatch)
        dotenv_path = tmp_path / ".env"
        dotenv_path.write_text("GEMTAB_START_URL=gopher://example.org/\n", encoding="utf-8")

        config = apply_env_overrides(create_default_config(), dotenv_path=dotenv_path)

        assert config.start_url == "gopher://example.org/"

    def test_real_environment_wins_over_dotenv(self, tmp_path: Path, monkeypatch) -> None:
        clear_env(monkeypatch)
        monkeypatch.setenv("GEMTAB_LANGUAGE", "en")
        dotenv_path = tmp_path / ".env"
        dotenv_path.write_text("GEMTAB_LANGUAGE=de\n", encoding="utf-8")

        config = apply_env_overrides(create_default_config(), dotenv_path=dotenv_path)

        assert config.language == "en"

    def test_invalid_timeout_raises_config_error(self, tmp_path: Path, monkeypatch) -> None:
        clear_env(monkeypatch)
        monkeypatch.setenv("GEMTAB_TIMEOUT", "soon")
        with pytest.raises(ConfigError):
            apply_env_overrides(create_default_config(), dotenv_path=tmp_path / ".env")
