"""
Exception classes for the gemtab navigation engine.

All exceptions inherit from GemtabError and provide structured
error information with codes, messages, and optional details.
"""

from typing import Optional


class GemtabError(Exception):
    """Base exception for all gemtab errors."""

    def __init__(
        self,
        code: str,
        message: str,
        details: Optional[dict] = None,
    ) -> None:
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(code={self.code!r}, message={self.message!r})"

    def to_dict(self) -> dict:
        """Convert exception to dictionary for serialization."""
        return {
            "error_type": self.__class__.__name__,
            "code": self.code,
            "message": self.message,
            "details": self.details,
        }


class ParseError(GemtabError):
    """Raised when a header, link line or stored record is malformed."""

    pass


class DialError(GemtabError):
    """Raised when connecting, the TLS handshake or hostname verification fails."""

    pass


class CertChangedError(GemtabError):
    """Raised when a host presents a key that differs from its pin."""

    def __init__(self, host: str, details: Optional[dict] = None) -> None:
        self.host = host
        super().__init__(
            code="cert_changed",
            message=f"Certificate for {host!r} has changed",
            details=details or {"host": host},
        )


class FetchTimeoutError(GemtabError):
    """Raised when a fetch exceeds its deadline."""

    pass


class FetchCanceledError(GemtabError):
    """Raised when a fetch is canceled because a newer load superseded it."""

    pass


class TooManyRedirectsError(GemtabError):
    """Raised when the redirect depth cap is exceeded."""

    pass


class UnsupportedSchemeError(GemtabError):
    """Raised for URLs whose scheme neither protocol client handles."""

    pass


class PersistenceError(GemtabError):
    """Raised when persistence operations fail (file I/O, JSON decoding)."""

    pass


class ConfigError(GemtabError):
    """Raised when a configuration file cannot be parsed."""

    pass
