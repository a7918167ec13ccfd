"""
Data models for the gemtab navigation engine.

This module defines the immutable values that flow between the protocol
clients, the tab state machine and the presentation layer.
"""

import codecs
from dataclasses import dataclass, field
from typing import Optional, Union

from .enums import StatusClass


# A success header with an empty meta means this.
DEFAULT_GEMINI_META = "text/gemini; charset=utf-8"


def parse_charset(meta: str) -> Optional[str]:
    """Return the charset parameter of a media type, lowercased."""
    for param in meta.split(";")[1:]:
        name, _, value = param.partition("=")
        if name.strip().lower() == "charset" and value.strip():
            return value.strip().strip('"').lower()
    return None


def decode_text(data: bytes, charset: Optional[str] = None) -> str:
    encoding = "utf-8"
    if charset:
        try:
            encoding = codecs.lookup(charset).name
        except LookupError:
            encoding = "utf-8"
    return data.decode(encoding, errors="replace")


@dataclass(frozen=True)
class Header:
    """Parsed Gemini response header line."""

    status: StatusClass
    status_detail: int
    meta: str

    @property
    def code(self) -> int:
        """Two-digit status code, e.g. 51."""
        return int(self.status) * 10 + self.status_detail


@dataclass(frozen=True)
class GeminiResponse:
    """Response from a Gemini server (or a locally synthesized page)."""

    header: Header
    url: str
    body: bytes = b""

    @property
    def data(self) -> bytes:
        return self.body

    @property
    def content_type(self) -> str:
        """Meta of a success response, defaulted when the server sent none."""
        return self.header.meta or DEFAULT_GEMINI_META

    @property
    def media_type(self) -> str:
        """Media type without parameters; only meaningful for status 2."""
        return self.content_type.split(";", 1)[0].strip().lower()

    @property
    def charset(self) -> Optional[str]:
        """Charset parameter declared in the meta, if any."""
        return parse_charset(self.content_type)

    def text(self) -> str:
        """
        Decode the body using the declared charset.

        Falls back to UTF-8 with replacement characters when no charset
        is declared or the declared one is unknown. No detection is done.
        """
        return decode_text(self.body, self.charset)


@dataclass(frozen=True)
class GopherResponse:
    """Response from a Gopher server."""

    item_type: str
    url: str
    data: bytes = b""

    @property
    def media_type(self) -> str:
        if self.item_type == "1":
            return "text/gopher"
        if self.item_type == "h":
            return "text/html"
        return "text/plain"

    def text(self) -> str:
        return self.data.decode("utf-8", errors="replace")


Response = Union[GeminiResponse, GopherResponse]


@dataclass(frozen=True)
class HistoryEntry:
    """A visited URL and the scroll position it was left at."""

    url: str
    scroll_pos: int = 0


@dataclass(frozen=True)
class LinkAnchor:
    """A resolved link at a position in rendered content."""

    position: int
    url: str
    label: str
    number: int = 0


@dataclass(frozen=True)
class RenderedPage:
    """Output of the renderer collaborator."""

    content: str
    links: tuple[LinkAnchor, ...] = field(default_factory=tuple)
    title: str = ""

    def link_at(self, position: int) -> Optional[LinkAnchor]:
        for link in self.links:
            if link.position == position:
                return link
        return None

    def link_number(self, number: int) -> Optional[LinkAnchor]:
        for link in self.links:
            if link.number == number:
                return link
        return None


@dataclass(frozen=True)
class Bookmark:
    """A saved URL shown on the home page."""

    url: str
    name: str
