"""
Configuration dataclasses for the gemtab navigation engine.

This module defines all configuration structures used throughout the system:
protocol client limits, persistence locations, logging, and the browser
aggregate, plus loading from JSON files and environment overrides.
"""

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from .exceptions import ConfigError


DEFAULT_CONFIG_DIR = Path.home() / ".config" / "gemtab"
CERTS_FILE_NAME = "certs.json"
HISTORY_FILE_NAME = "history.json"
CONFIG_FILE_NAME = "config.json"

SUPPORTED_LOG_FORMATS = ("json", "text", "both")


@dataclass
class ClientConfig:
    """Protocol client limits and TLS client identity."""

    timeout_seconds: float = 30.0
    # 1024 meta + 2 status digits + space + CRLF
    max_header_bytes: int = 1029
    max_meta_length: int = 1024
    max_body_bytes: int = 1024 * 1024
    max_redirects: int = 5
    gemini_port: int = 1965
    gopher_port: int = 70
    client_cert_file: Optional[Path] = None
    client_key_file: Optional[Path] = None


@dataclass
class PersistenceConfig:
    """Where pins and session history are stored."""

    config_dir: Path = DEFAULT_CONFIG_DIR

    @property
    def certs_path(self) -> Path:
        return self.config_dir / CERTS_FILE_NAME

    @property
    def history_path(self) -> Path:
        return self.config_dir / HISTORY_FILE_NAME


@dataclass
class LoggingConfig:
    """Logging configuration."""

    level: str = "info"
    output_format: str = "text"  # 'json', 'text', 'both'
    log_file: Optional[Path] = None


@dataclass
class BrowserConfig:
    """Main configuration combining all sub-configurations."""

    client: ClientConfig = field(default_factory=ClientConfig)
    persistence: PersistenceConfig = field(default_factory=PersistenceConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    language: str = "en"  # 'en' or 'de'
    start_url: str = "home://"


def default_config_dir() -> Path:
    env_dir = os.getenv("GEMTAB_CONFIG_DIR", "").strip()
    if env_dir:
        return Path(env_dir).expanduser()
    return DEFAULT_CONFIG_DIR


def create_default_config(
    config_dir: Optional[Path] = None,
    language: str = "en",
) -> BrowserConfig:
    """
    Create a default browser configuration.

    Args:
        config_dir: Directory for certs.json and history.json
        language: Message language ('en' or 'de')

    Returns:
        BrowserConfig with default settings
    """
    return BrowserConfig(
        persistence=PersistenceConfig(config_dir=config_dir or default_config_dir()),
        language=language,
    )


def _optional_path(value) -> Optional[Path]:
    return Path(value).expanduser() if value else None


def load_config_from_file(config_path: Path) -> BrowserConfig:
    """
    Load configuration from a JSON file.

    A missing file yields the defaults.

    Raises:
        ConfigError: If the file exists but cannot be parsed
    """
    if not config_path.exists():
        return create_default_config()

    try:
        with open(config_path, "r", encoding="utf-8") as f:
            data = json.load(f)

        client_data = data.get("client", {})
        defaults = ClientConfig()
        client = ClientConfig(
            timeout_seconds=float(client_data.get("timeout_seconds", defaults.timeout_seconds)),
            max_header_bytes=int(client_data.get("max_header_bytes", defaults.max_header_bytes)),
            max_meta_length=int(client_data.get("max_meta_length", defaults.max_meta_length)),
            max_body_bytes=int(client_data.get("max_body_bytes", defaults.max_body_bytes)),
            max_redirects=int(client_data.get("max_redirects", defaults.max_redirects)),
            gemini_port=int(client_data.get("gemini_port", defaults.gemini_port)),
            gopher_port=int(client_data.get("gopher_port", defaults.gopher_port)),
            client_cert_file=_optional_path(client_data.get("client_cert_file")),
            client_key_file=_optional_path(client_data.get("client_key_file")),
        )

        persistence_data = data.get("persistence", {})
        config_dir = persistence_data.get("config_dir")
        persistence = PersistenceConfig(
            config_dir=Path(config_dir).expanduser() if config_dir else default_config_dir(),
        )

        logging_data = data.get("logging", {})
        logging_config = LoggingConfig(
            level=logging_data.get("level", "info"),
            output_format=logging_data.get("output_format", "text"),
            log_file=_optional_path(logging_data.get("log_file")),
        )
        if logging_config.output_format not in SUPPORTED_LOG_FORMATS:
            raise ConfigError(
                code="invalid_value",
                message=f"Unknown log output format: {logging_config.output_format}",
                details={"config_path": str(config_path)},
            )

        return BrowserConfig(
            client=client,
            persistence=persistence,
            logging=logging_config,
            language=data.get("language", "en"),
            start_url=data.get("start_url", "home://"),
        )

    except (json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
        raise ConfigError(
            code="parse_error",
            message=f"Error loading config: {e}",
            details={"config_path": str(config_path)},
        )
    except OSError as e:
        raise ConfigError(
            code="io_error",
            message=f"Error reading config: {e}",
            details={"config_path": str(config_path)},
        )


def save_config_to_file(config: BrowserConfig, config_path: Path) -> None:
    """
    Save configuration to a JSON file.

    Raises:
        ConfigError: If the file cannot be written
    """
    client = config.client
    data = {
        "client": {
            "timeout_seconds": client.timeout_seconds,
            "max_header_bytes": client.max_header_bytes,
            "max_meta_length": client.max_meta_length,
            "max_body_bytes": client.max_body_bytes,
            "max_redirects": client.max_redirects,
            "gemini_port": client.gemini_port,
            "gopher_port": client.gopher_port,
            "client_cert_file": str(client.client_cert_file) if client.client_cert_file else None,
            "client_key_file": str(client.client_key_file) if client.client_key_file else None,
        },
        "persistence": {
            "config_dir": str(config.persistence.config_dir),
        },
        "logging": {
            "level": config.logging.level,
            "output_format": config.logging.output_format,
            "log_file": str(config.logging.log_file) if config.logging.log_file else None,
        },
        "language": config.language,
        "start_url": config.start_url,
    }

    try:
        config_path.parent.mkdir(parents=True, exist_ok=True)
        with open(config_path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, ensure_ascii=False)
    except OSError as e:
        raise ConfigError(
            code="io_error",
            message=f"Error saving config: {e}",
            details={"config_path": str(config_path)},
        )


def apply_env_overrides(config: BrowserConfig, dotenv_path: Optional[Path] = None) -> BrowserConfig:
    """
    Apply GEMTAB_* environment variables on top of a configuration.

    Variables from a .env file are loaded first and never override the
    real environment.
    """
    load_dotenv(dotenv_path=dotenv_path)

    language = os.getenv("GEMTAB_LANGUAGE", "").strip().lower()
    if language:
        config.language = language

    level = os.getenv("GEMTAB_LOG_LEVEL", "").strip().lower()
    if level:
        config.logging.level = level

    timeout = os.getenv("GEMTAB_TIMEOUT", "").strip()
    if timeout:
        try:
            config.client.timeout_seconds = float(timeout)
        except ValueError:
            raise ConfigError(
                code="invalid_value",
                message=f"GEMTAB_TIMEOUT is not a number: {timeout!r}",
            )

    start_url = os.getenv("GEMTAB_START_URL", "").strip()
    if start_url:
        config.start_url = start_url

    return config
