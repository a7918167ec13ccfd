"""
Link line parsing and resolution.

A gemtext link line looks like ``=> target [label]``. Targets may be
relative and are resolved against the URL of the page they appear on.
"""

import re
import urllib.parse
from dataclasses import dataclass

from .enums import ErrorCode
from .exceptions import ParseError


# urljoin only resolves relative references for schemes it knows about.
for _scheme in ("gemini", "gopher"):
    if _scheme not in urllib.parse.uses_relative:
        urllib.parse.uses_relative.append(_scheme)
    if _scheme not in urllib.parse.uses_netloc:
        urllib.parse.uses_netloc.append(_scheme)

LINK_MARKER = "=>"
_WHITESPACE_RE = re.compile(r"\s+")


@dataclass(frozen=True)
class Link:
    """A link target and its display name."""

    url: str
    name: str

    def full_url(self, base: str) -> str:
        """
        Return the absolute URL of this link.

        URLs containing "://" are returned unchanged; anything else is
        resolved relative to base. Returns "" when resolution fails.
        """
        if "://" in self.url:
            return self.url
        return resolve_url(base, self.url)


def resolve_url(base: str, target: str) -> str:
    """Resolve target against base, or "" if either cannot be parsed."""
    try:
        if not urllib.parse.urlsplit(base).scheme:
            return ""
        return urllib.parse.urljoin(base, target)
    except ValueError:
        return ""


def is_link_line(line: str) -> bool:
    return line.startswith(LINK_MARKER)


def parse_link(line: str) -> Link:
    """
    Parse a link line.

    The first two characters are the marker; the rest, trimmed, must be
    non-empty. The first whitespace run splits URL from name, and a link
    without a name uses its URL as the name.

    Raises:
        ParseError: If nothing follows the marker
    """
    chars = line[2:].strip()
    if not chars:
        raise ParseError(
            code=ErrorCode.INVALID_LINK.value,
            message="incorrect format for link",
            details={"line": line},
        )

    parts = _WHITESPACE_RE.split(chars, maxsplit=1)
    if len(parts) == 1:
        return Link(url=chars, name=chars)
    return Link(url=parts[0], name=parts[1].strip())
