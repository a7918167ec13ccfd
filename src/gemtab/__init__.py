"""
gemtab - Gemini and Gopher navigation engine.

This package provides the protocol-and-navigation core of a small-internet
client: a Gemini client with trust-on-first-use certificate pinning, a
Gopher client, link resolution, per-tab history and a tab state machine
that runs cancellable, superseding fetches.
"""

__version__ = "0.1.0"

from gemtab.exceptions import (
    GemtabError,
    ParseError,
    DialError,
    CertChangedError,
    FetchTimeoutError,
    FetchCanceledError,
    TooManyRedirectsError,
    UnsupportedSchemeError,
    PersistenceError,
    ConfigError,
)
from gemtab.enums import (
    StatusClass,
    TabMode,
    InputKind,
    MessageKind,
    PinStatus,
    LogLevel,
    ErrorCode,
)
from gemtab.models import (
    Header,
    GeminiResponse,
    GopherResponse,
    Response,
    HistoryEntry,
    LinkAnchor,
    RenderedPage,
    Bookmark,
)
from gemtab.config import (
    ClientConfig,
    PersistenceConfig,
    LoggingConfig,
    BrowserConfig,
    create_default_config,
    load_config_from_file,
    save_config_to_file,
    apply_env_overrides,
)
from gemtab.event_logger import EventLogger, LogEntry
from gemtab.cert_store import CertStore, PinResult
from gemtab.gemini_client import GeminiClient, parse_header
from gemtab.gopher_client import GopherClient, GopherItem, parse_directory
from gemtab.links import Link, parse_link, resolve_url
from gemtab.history import History, load_histories, save_histories
from gemtab.renderer import Renderer, BookmarkProvider, SourceRenderer
from gemtab.fetcher import Fetcher, FetchRequest, FetchCompleted
from gemtab.tab import Tab, InputPrompt, TabMessage
from gemtab.browser import Browser

__all__ = [
    # Exceptions
    "GemtabError",
    "ParseError",
    "DialError",
    "CertChangedError",
    "FetchTimeoutError",
    "FetchCanceledError",
    "TooManyRedirectsError",
    "UnsupportedSchemeError",
    "PersistenceError",
    "ConfigError",
    # Enums
    "StatusClass",
    "TabMode",
    "InputKind",
    "MessageKind",
    "PinStatus",
    "LogLevel",
    "ErrorCode",
    # Models
    "Header",
    "GeminiResponse",
    "GopherResponse",
    "Response",
    "HistoryEntry",
    "LinkAnchor",
    "RenderedPage",
    "Bookmark",
    # Configuration
    "ClientConfig",
    "PersistenceConfig",
    "LoggingConfig",
    "BrowserConfig",
    "create_default_config",
    "load_config_from_file",
    "save_config_to_file",
    "apply_env_overrides",
    # Logging
    "EventLogger",
    "LogEntry",
    # Protocol clients
    "CertStore",
    "PinResult",
    "GeminiClient",
    "parse_header",
    "GopherClient",
    "GopherItem",
    "parse_directory",
    # Navigation
    "Link",
    "parse_link",
    "resolve_url",
    "History",
    "load_histories",
    "save_histories",
    "Renderer",
    "BookmarkProvider",
    "SourceRenderer",
    "Fetcher",
    "FetchRequest",
    "FetchCompleted",
    "Tab",
    "InputPrompt",
    "TabMessage",
    "Browser",
]
