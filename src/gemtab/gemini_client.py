"""
Gemini protocol client.

This module provides a Gemini client with TOFU certificate pinning. The
request is one URL line over TLS; the response is one header line and,
for success responses only, a body read until the server closes the
connection or the body cap is reached.
"""

import asyncio
import socket
import ssl
import threading
from dataclasses import dataclass
from typing import BinaryIO, Optional
from urllib.parse import urlsplit, urlunsplit

from .cert_store import CertStore
from .certificate import normalize_hostname, verify_hostname
from .config import ClientConfig
from .enums import ErrorCode, StatusClass
from .event_logger import EventLogger
from .exceptions import DialError, FetchTimeoutError, ParseError
from .models import GeminiResponse, Header


VALID_STATUS_DIGITS = b"123456"
DIGITS = b"0123456789"


def parse_header(line: bytes, max_meta_length: int = 1024) -> Header:
    """
    Parse a raw header line including its terminator.

    Raises:
        ParseError: If the terminator is missing, the line is shorter than
            two bytes, the status bytes are not digits in range, or the
            meta is too long
    """
    if not line.endswith(b"\n"):
        raise ParseError(
            code=ErrorCode.HEADER_INCOMPLETE.value,
            message="could not read header: missing line terminator",
        )
    content = line[:-1]
    if content.endswith(b"\r"):
        content = content[:-1]
    if len(content) < 2:
        raise ParseError(
            code=ErrorCode.HEADER_TOO_SHORT.value,
            message="header too short",
            details={"header": line[:64].decode("latin-1")},
        )
    if content[0] not in VALID_STATUS_DIGITS or content[1] not in DIGITS:
        raise ParseError(
            code=ErrorCode.MALFORMED_HEADER.value,
            message="malformed header",
            details={"header": line[:64].decode("latin-1")},
        )

    try:
        meta = content[2:].decode("utf-8").strip()
    except UnicodeDecodeError:
        raise ParseError(
            code=ErrorCode.MALFORMED_HEADER.value,
            message="header meta is not valid UTF-8",
        )
    if len(meta) > max_meta_length:
        raise ParseError(
            code=ErrorCode.META_TOO_LONG.value,
            message="meta too long",
            details={"length": len(meta)},
        )

    return Header(
        status=StatusClass(content[0] - ord("0")),
        status_detail=content[1] - ord("0"),
        meta=meta,
    )


def read_header(stream: BinaryIO, max_header_bytes: int = 1029, max_meta_length: int = 1024) -> Header:
    """Read and parse one header line, never consuming more than max_header_bytes."""
    line = stream.readline(max_header_bytes)
    if not line.endswith(b"\n") and len(line) >= max_header_bytes:
        raise ParseError(
            code=ErrorCode.HEADER_TOO_LONG.value,
            message="header line exceeds maximum length",
            details={"max_header_bytes": max_header_bytes},
        )
    return parse_header(line, max_meta_length)


def read_body(stream: BinaryIO, max_body_bytes: int) -> bytes:
    """Read until EOF; anything past max_body_bytes is not read."""
    chunks: list[bytes] = []
    remaining = max_body_bytes
    while remaining > 0:
        chunk = stream.read(min(remaining, 65536))
        if not chunk:
            break
        chunks.append(chunk)
        remaining -= len(chunk)
    return b"".join(chunks)


@dataclass(frozen=True)
class GeminiTarget:
    """Where to connect and what to send for a gemini:// URL."""

    host: str
    port: int
    request_url: str


def resolve_target(url: str, default_port: int = 1965) -> GeminiTarget:
    """
    Apply the default port and path to a gemini URL.

    Raises:
        ParseError: If the URL has no host or an invalid port
    """
    try:
        parts = urlsplit(url)
        port = parts.port
    except ValueError as e:
        raise ParseError(
            code=ErrorCode.INVALID_URL.value,
            message=f"Invalid URL: {e}",
            details={"url": url},
        )
    if not parts.hostname:
        raise ParseError(
            code=ErrorCode.INVALID_URL.value,
            message="URL has no host",
            details={"url": url},
        )

    host = normalize_hostname(parts.hostname)
    netloc = f"[{host}]" if ":" in host else host
    if port is not None:
        netloc = f"{netloc}:{port}"
    request_url = urlunsplit((
        parts.scheme.lower(),
        netloc,
        parts.path or "/",
        parts.query,
        "",
    ))
    # urlunsplit drops a trailing "?" when the query is empty
    if url.endswith("?") and not parts.query:
        request_url += "?"
    return GeminiTarget(host=host, port=port or default_port, request_url=request_url)


class Connection:
    """Socket holder so an awaiting coroutine can abort a blocked worker thread."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._sock: Optional[socket.socket] = None
        self._aborted = False

    def attach(self, sock: socket.socket) -> None:
        with self._lock:
            self._sock = sock
            if self._aborted:
                self._shutdown()

    @property
    def aborted(self) -> bool:
        return self._aborted

    def abort(self) -> None:
        with self._lock:
            self._aborted = True
            self._shutdown()

    def close(self) -> None:
        with self._lock:
            if self._sock is not None:
                self._sock.close()
                self._sock = None

    def _shutdown(self) -> None:
        if self._sock is None:
            return
        try:
            self._sock.shutdown(socket.SHUT_RDWR)
        except OSError:
            # Not connected yet or already closed by the peer.
            pass


class GeminiClient:
    """
    Gemini client with trust-on-first-use certificate pinning.

    CA trust is never consulted: the server's leaf certificate must match
    the dialed hostname and the pin stored for that host. Blocking socket
    work runs in the default executor; the awaiting coroutine aborts the
    connection when it is canceled.
    """

    COMPONENT = "gemini"

    def __init__(
        self,
        cert_store: CertStore,
        config: Optional[ClientConfig] = None,
        logger: Optional[EventLogger] = None,
    ) -> None:
        """
        Initialize the Gemini client.

        Args:
            cert_store: Shared trust store consulted on every handshake
            config: Client limits and optional client certificate
            logger: Optional event logger
        """
        self._cert_store = cert_store
        self._config = config or ClientConfig()
        self._logger = logger
        self._ssl_context = self.create_ssl_context(self._config)

    @staticmethod
    def create_ssl_context(config: ClientConfig) -> ssl.SSLContext:
        """Return a TLS context that accepts any certificate chain."""
        context = ssl.SSLContext(ssl.PROTOCOL_TLS_CLIENT)
        context.minimum_version = ssl.TLSVersion.TLSv1_2
        context.check_hostname = False
        context.verify_mode = ssl.CERT_NONE
        if hasattr(ssl, "OP_IGNORE_UNEXPECTED_EOF"):
            context.options |= ssl.OP_IGNORE_UNEXPECTED_EOF
        if config.client_cert_file and config.client_key_file:
            context.load_cert_chain(str(config.client_cert_file), str(config.client_key_file))
        return context

    async def load_url(self, url: str, force_repin: bool = False) -> GeminiResponse:
        """
        Fetch a gemini:// URL.

        Args:
            url: Absolute gemini URL
            force_repin: Replace the stored pin with the presented key

        Returns:
            GeminiResponse; the body is only read for status 2

        Raises:
            ParseError: Invalid URL or malformed header
            DialError: Connection, TLS or hostname verification failure
            CertChangedError: Presented key differs from the pin
            FetchTimeoutError: A socket operation timed out
        """
        target = resolve_target(url, self._config.gemini_port)
        loop = asyncio.get_running_loop()
        conn = Connection()
        try:
            return await loop.run_in_executor(None, self._load_sync, target, force_repin, conn)
        except asyncio.CancelledError:
            conn.abort()
            raise

    def _load_sync(self, target: GeminiTarget, force_repin: bool, conn: Connection) -> GeminiResponse:
        if self._logger:
            self._logger.debug(self.COMPONENT, "Connecting", {
                "host": target.host, "port": target.port,
            })
        try:
            raw_sock = socket.create_connection(
                (target.host, target.port),
                timeout=self._config.timeout_seconds,
            )
        except TimeoutError:
            raise FetchTimeoutError(
                code=ErrorCode.TIMEOUT.value,
                message=f"connection to {target.host} timed out",
                details={"host": target.host},
            )
        except OSError as e:
            raise DialError(
                code=ErrorCode.CONNECTION_FAILED.value,
                message=f"could not connect to server: {e.strerror or e}",
                details={"host": target.host, "port": target.port},
            )

        conn.attach(raw_sock)
        try:
            try:
                tls_sock = self._ssl_context.wrap_socket(raw_sock, server_hostname=target.host)
            except ssl.SSLError as e:
                raise DialError(
                    code=ErrorCode.TLS_ERROR.value,
                    message=f"TLS handshake failed: {e.reason or e}",
                    details={"host": target.host},
                )
            conn.attach(tls_sock)

            der = tls_sock.getpeercert(binary_form=True)
            if not der:
                raise DialError(
                    code=ErrorCode.TLS_ERROR.value,
                    message="server presented no certificate",
                    details={"host": target.host},
                )
            verify_hostname(der, target.host)
            self._cert_store.check(target.host, der, force_repin)

            tls_sock.sendall(f"{target.request_url}\r\n".encode("utf-8"))
            with tls_sock.makefile("rb") as stream:
                header = read_header(
                    stream,
                    self._config.max_header_bytes,
                    self._config.max_meta_length,
                )
                body = b""
                if header.status == StatusClass.SUCCESS:
                    body = read_body(stream, self._config.max_body_bytes)
        except TimeoutError:
            raise FetchTimeoutError(
                code=ErrorCode.TIMEOUT.value,
                message=f"reading from {target.host} timed out",
                details={"host": target.host},
            )
        except ssl.SSLError as e:
            raise DialError(
                code=ErrorCode.TLS_ERROR.value,
                message=f"TLS error: {e.reason or e}",
                details={"host": target.host},
            )
        except OSError as e:
            raise DialError(
                code=ErrorCode.CONNECTION_FAILED.value,
                message=f"connection lost: {e.strerror or e}",
                details={"host": target.host, "aborted": conn.aborted},
            )
        finally:
            conn.close()

        if self._logger:
            self._logger.info(self.COMPONENT, "Response", {
                "url": target.request_url,
                "status": header.code,
                "body_bytes": len(body),
            })
        return GeminiResponse(header=header, url=target.request_url, body=body)
