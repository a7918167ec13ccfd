"""
Enumeration types for the gemtab navigation engine.

These enums provide type-safe constants for protocol status classes,
tab modes, prompt kinds and error codes throughout the system.
"""

from enum import Enum, IntEnum


class StatusClass(IntEnum):
    """Coarse outcome class: the leading digit of a Gemini header."""

    INPUT = 1
    SUCCESS = 2
    REDIRECT = 3
    TEMPORARY_FAILURE = 4
    PERMANENT_FAILURE = 5
    CERTIFICATE_REQUIRED = 6


class TabMode(Enum):
    """What a tab is currently showing."""

    PAGE = "page"
    INPUT = "input"
    MESSAGE = "message"


class InputKind(Enum):
    """Why an input prompt is open."""

    NAV = "nav"
    QUERY = "query"


class MessageKind(Enum):
    """What answering a message does."""

    PLAIN = "plain"
    LOAD_EXTERNAL = "load_external"
    FORCE_CERT = "force_cert"


class PinStatus(Enum):
    """Outcome of a successful trust store check."""

    TRUSTED = "trusted"
    PINNED = "pinned"
    REPINNED = "repinned"


class LogLevel(Enum):
    """Logging severity levels."""

    DEBUG = "debug"
    INFO = "info"
    WARN = "warn"
    ERROR = "error"


class ErrorCode(Enum):
    """Error codes carried by GemtabError.code."""

    HEADER_INCOMPLETE = "header_incomplete"
    HEADER_TOO_SHORT = "header_too_short"
    HEADER_TOO_LONG = "header_too_long"
    MALFORMED_HEADER = "malformed_header"
    META_TOO_LONG = "meta_too_long"
    INVALID_LINK = "invalid_link"
    INVALID_URL = "invalid_url"
    CONNECTION_FAILED = "connection_failed"
    TLS_ERROR = "tls_error"
    HOSTNAME_MISMATCH = "hostname_mismatch"
    TIMEOUT = "timeout"
    CANCELED = "canceled"
    TOO_MANY_REDIRECTS = "too_many_redirects"
    UNSUPPORTED_SCHEME = "unsupported_scheme"
    IO_ERROR = "io_error"
    DECODE_ERROR = "decode_error"
    UNEXPECTED = "unexpected_error"
