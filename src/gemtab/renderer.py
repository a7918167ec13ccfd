"""
Renderer and bookmark collaborator interfaces.

The tab depends only on the Renderer contract: given body bytes, the
declared media type and the base URL, return displayable content, the
link anchors in it and a page title. SourceRenderer is the built-in
implementation; it keeps the text as-is and only extracts links.
"""

from typing import Optional, Protocol

from .exceptions import ParseError
from .gopher_client import parse_directory
from .links import is_link_line, parse_link
from .models import Bookmark, LinkAnchor, RenderedPage, decode_text, parse_charset


class Renderer(Protocol):
    def render(self, body: bytes, media_type: str, base_url: str) -> RenderedPage:
        ...


class BookmarkProvider(Protocol):
    def all(self) -> list[Bookmark]:
        ...


class StaticBookmarks:
    """In-memory BookmarkProvider."""

    def __init__(self, bookmarks: Optional[list[Bookmark]] = None) -> None:
        self._bookmarks = list(bookmarks or [])

    def all(self) -> list[Bookmark]:
        return list(self._bookmarks)


GOPHER_TYPE_LABELS = {
    "0": "text",
    "h": "html",
}

# Directory items of other types are shown as text.
GOPHER_LINK_TYPES = frozenset({"0", "1", "h"})


class SourceRenderer:
    """
    Renders gemtext, gopher directories and plain text without styling.

    Link anchors are positioned by line index and numbered from 1 in
    document order. Links whose target cannot be resolved are left out.
    """

    def render(self, body: bytes, media_type: str, base_url: str) -> RenderedPage:
        text = decode_text(body, parse_charset(media_type))
        kind = media_type.split(";", 1)[0].strip().lower()
        if kind == "text/gemini":
            return self._render_gemtext(text, base_url)
        if kind == "text/gopher":
            return self._render_gopher(text)
        return RenderedPage(content=text)

    def _render_gemtext(self, text: str, base_url: str) -> RenderedPage:
        lines: list[str] = []
        links: list[LinkAnchor] = []
        title = ""
        preformatted = False

        for position, line in enumerate(text.split("\n")):
            line = line.rstrip("\r")
            if line.startswith("```"):
                preformatted = not preformatted
            elif not preformatted and is_link_line(line):
                try:
                    link = parse_link(line)
                except ParseError:
                    lines.append(line)
                    continue
                url = link.full_url(base_url)
                if url:
                    number = len(links) + 1
                    links.append(LinkAnchor(position=position, url=url, label=link.name, number=number))
                    line = f"{number}> {link.name}"
            elif not preformatted and not title and line.startswith("# "):
                title = line[2:].strip()
            lines.append(line)

        return RenderedPage(content="\n".join(lines), links=tuple(links), title=title)

    def _render_gopher(self, text: str) -> RenderedPage:
        lines: list[str] = []
        links: list[LinkAnchor] = []
        for position, item in enumerate(parse_directory(text)):
            url = item.url
            if item.item_type not in GOPHER_LINK_TYPES or url is None:
                lines.append(item.display)
                continue
            number = len(links) + 1
            links.append(LinkAnchor(position=position, url=url, label=item.display, number=number))
            line = f"{number}> {item.display}"
            if "://" in url and not url.startswith("gopher://"):
                line += f" ({url.split('://', 1)[0]})"
            elif item.item_type in GOPHER_TYPE_LABELS:
                line += f" ({GOPHER_TYPE_LABELS[item.item_type]})"
            lines.append(line)
        return RenderedPage(content="\n".join(lines), links=tuple(links))
