"""
Gopher protocol client and directory listing parser.

A Gopher request is a selector line over plain TCP; the response is
everything the server sends until it closes the connection. There is no
status line, so every completed read is a successful response.
"""

import asyncio
import socket
from dataclasses import dataclass
from typing import Optional
from urllib.parse import quote, unquote, urlsplit

from .certificate import normalize_hostname
from .config import ClientConfig
from .enums import ErrorCode
from .event_logger import EventLogger
from .exceptions import DialError, FetchTimeoutError, ParseError
from .gemini_client import Connection, read_body
from .models import GopherResponse


DIRECTORY_TYPE = "1"
INFO_TYPE = "i"
SEARCH_TYPE = "7"
EXTERNAL_PREFIX = "URL:"


@dataclass(frozen=True)
class GopherRequest:
    host: str
    port: int
    item_type: str
    selector: str


def parse_gopher_url(url: str, default_port: int = 70) -> GopherRequest:
    """
    Split a gopher URL into host, port, item type and selector.

    An empty or "/" path requests the root directory. Otherwise the first
    path character after the slash is the item type and the rest is the
    selector. A query string is appended to the selector after a TAB.

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

    path = unquote(parts.path)
    if path in ("", "/"):
        item_type, selector = DIRECTORY_TYPE, ""
    else:
        item_type, selector = path[1], path[2:]
    if parts.query:
        selector = f"{selector}\t{unquote(parts.query)}"

    return GopherRequest(
        host=normalize_hostname(parts.hostname),
        port=port or default_port,
        item_type=item_type,
        selector=selector,
    )


@dataclass(frozen=True)
class GopherItem:
    """One line of a directory listing."""

    item_type: str
    display: str
    selector: str = ""
    host: str = ""
    port: int = 70

    @property
    def url(self) -> Optional[str]:
        """Link target, or None for info lines and incomplete entries."""
        if self.item_type == INFO_TYPE:
            return None
        if self.selector.startswith(EXTERNAL_PREFIX):
            return self.selector[len(EXTERNAL_PREFIX):]
        if not self.host:
            return None
        path = quote(f"{self.item_type}{self.selector}", safe="/")
        return f"gopher://{self.host}:{self.port}/{path}"


def parse_directory(text: str) -> list[GopherItem]:
    """
    Parse a type-1 directory listing.

    Empty lines become empty info items so line positions are preserved.
    The "." terminator line ends the listing.
    """
    items: list[GopherItem] = []
    for line in text.split("\n"):
        line = line.rstrip("\r")
        if line == ".":
            break
        if not line:
            items.append(GopherItem(item_type=INFO_TYPE, display=""))
            continue

        fields = line[1:].split("\t")
        display = fields[0]
        selector = fields[1] if len(fields) > 1 else ""
        host = fields[2] if len(fields) > 2 else ""
        try:
            port = int(fields[3]) if len(fields) > 3 else 70
        except ValueError:
            port = 70
        items.append(GopherItem(
            item_type=line[0],
            display=display,
            selector=selector,
            host=host,
            port=port,
        ))
    return items


class GopherClient:
    """Plain TCP Gopher client."""

    COMPONENT = "gopher"

    def __init__(
        self,
        config: Optional[ClientConfig] = None,
        logger: Optional[EventLogger] = None,
    ) -> None:
        self._config = config or ClientConfig()
        self._logger = logger

    async def load_url(self, url: str) -> GopherResponse:
        """
        Fetch a gopher:// URL.

        Raises:
            ParseError: If the URL cannot be parsed
            DialError: If connecting or reading fails
            FetchTimeoutError: If a socket operation times out
        """
        request = parse_gopher_url(url, self._config.gopher_port)
        loop = asyncio.get_running_loop()
        conn = Connection()

        def _sync_query() -> bytes:
            sock = socket.create_connection(
                (request.host, request.port),
                timeout=self._config.timeout_seconds,
            )
            conn.attach(sock)
            try:
                sock.sendall(f"{request.selector}\r\n".encode("utf-8"))
                with sock.makefile("rb") as stream:
                    return read_body(stream, self._config.max_body_bytes)
            finally:
                conn.close()

        if self._logger:
            self._logger.debug(self.COMPONENT, "Loading", {"url": url})
        try:
            data = await loop.run_in_executor(None, _sync_query)
        except asyncio.CancelledError:
            conn.abort()
            raise
        except TimeoutError:
            raise FetchTimeoutError(
                code=ErrorCode.TIMEOUT.value,
                message=f"gopher request to {request.host} timed out",
                details={"host": request.host},
            )
        except OSError as e:
            raise DialError(
                code=ErrorCode.CONNECTION_FAILED.value,
                message=f"could not dial gopher {request.host}:{request.port}: {e.strerror or e}",
                details={"host": request.host, "port": request.port},
            )

        if self._logger:
            self._logger.info(self.COMPONENT, "Response", {
                "url": url, "type": request.item_type, "bytes": len(data),
            })
        return GopherResponse(item_type=request.item_type, url=url, data=data)
