"""
Property-based tests for the built-in source renderer.
"""

from hypothesis import given, settings
from hypothesis import strategies as st

from gemtab.models import Bookmark, LinkAnchor
from gemtab.renderer import SourceRenderer, StaticBookmarks


BASE = "gemini://example.org/dir/page.gmi"

text_line_strategy = st.text(
    alphabet=st.characters(blacklist_categories=("Cs", "Cc")),
    max_size=40,
).filter(lambda s: not s.startswith(("=>", "```", "# ")))

path_strategy = st.text(alphabet="abcdefghijklmnopqrstuvwxyz", min_size=1, max_size=10)


class TestGemtextRenderingProperty:
    """Property-based tests for gemtext link extraction."""

    @given(
        lines=st.lists(
            st.one_of(
                text_line_strategy.map(lambda s: ("text", s)),
                path_strategy.map(lambda s: ("link", s)),
            ),
            max_size=20,
        )
    )
    @settings(max_examples=100)
    def test_links_numbered_in_document_order(self, lines: list) -> None:
        """
        Property 1: Links are numbered from 1 in document order.

        *For any* gemtext document, every resolvable link line SHALL yield
        one anchor whose position is its line index, whose URL is resolved
        against the base, and whose number counts up from 1.
        """
        source = [f"=> {value} {value.upper()}" if kind == "link" else value for kind, value in lines]

        page = SourceRenderer().render("\n".join(source).encode("utf-8"), "text/gemini", BASE)

        expected = []
        for position, (kind, value) in enumerate(lines):
            if kind == "link":
                expected.append(LinkAnchor(
                    position=position,
                    url=f"gemini://example.org/dir/{value}",
                    label=value.upper(),
                    number=len(expected) + 1,
                ))
        assert list(page.links) == expected

        content = page.content.split("\n")
        for anchor in expected:
            assert content[anchor.position] == f"{anchor.number}> {anchor.label}"

    def test_document_example(self) -> None:
        body = (
            "# Title\n"
            "=> gemini://other.org/ Other\n"
            "plain text\n"
            "=> docs/ Docs\n"
            "```\n"
            "=> not-a-link inside\n"
            "```\n"
            "=>\n"
            "# Second heading\n"
        ).encode("utf-8")

        page = SourceRenderer().render(body, "text/gemini", BASE)

        assert page.title == "Title"
        assert [(a.number, a.position, a.url) for a in page.links] == [
            (1, 1, "gemini://other.org/"),
            (2, 3, "gemini://example.org/dir/docs/"),
        ]
        lines = page.content.split("\n")
        assert lines[1] == "1> Other"
        assert lines[5] == "=> not-a-link inside"
        assert lines[7] == "=>"
        assert page.link_number(2).label == "Docs"
        assert page.link_at(3).number == 2
        assert page.link_number(3) is None

    def test_unresolvable_link_left_as_text(self) -> None:
        page = SourceRenderer().render(b"=> relative Name\n", "text/gemini", "no base")
        assert page.links == ()
        assert page.content.startswith("=> relative Name")

    def test_declared_charset_used(self) -> None:
        page = SourceRenderer().render(
            "café".encode("latin-1"), "text/gemini; charset=ISO-8859-1", BASE,
        )
        assert page.content == "café"

    def test_unknown_charset_falls_back_to_utf8(self) -> None:
        page = SourceRenderer().render("café".encode("utf-8"), "text/plain; charset=x-none", BASE)
        assert page.content == "café"


class TestOtherMediaTypes:
    """Tests for gopher directories and plain text."""

    def test_gopher_directory(self) -> None:
        body = (
            "iWelcome\tfake\t(NULL)\t0\r\n"
            "0Readme\t/readme\texample.org\t70\r\n"
            "hWeb\tURL:https://example.org/\texample.org\t70\r\n"
            "1Menu\t/menu\texample.org\t70\r\n"
            ".\r\n"
        ).encode("utf-8")

        page = SourceRenderer().render(body, "text/gopher", "gopher://example.org/")

        assert page.content.split("\n") == [
            "Welcome",
            "1> Readme (text)",
            "2> Web (https)",
            "3> Menu",
        ]
        assert [a.url for a in page.links] == [
            "gopher://example.org:70/0/readme",
            "https://example.org/",
            "gopher://example.org:70/1/menu",
        ]

    def test_only_text_menu_and_html_items_link(self) -> None:
        body = (
            "3Not found\t\terror.host\t1\r\n"
            "9Archive\t/a.zip\texample.org\t70\r\n"
            "IPicture\t/p.png\texample.org\t70\r\n"
            "7Search\t/search\texample.org\t70\r\n"
            "0Readme\t/readme\texample.org\t70\r\n"
            ".\r\n"
        ).encode("utf-8")

        page = SourceRenderer().render(body, "text/gopher", "gopher://example.org/")

        assert page.content.split("\n") == [
            "Not found",
            "Archive",
            "Picture",
            "Search",
            "1> Readme (text)",
        ]
        assert [(a.number, a.position) for a in page.links] == [(1, 4)]

    def test_plain_text_has_no_links(self) -> None:
        page = SourceRenderer().render(b"=> gemini://x/ not parsed\n", "text/plain", BASE)
        assert page.links == ()
        assert page.content == "=> gemini://x/ not parsed\n"
        assert page.title == ""


class TestStaticBookmarks:
    """Tests for the in-memory bookmark provider."""

    def test_all_returns_copy(self) -> None:
        bookmarks = StaticBookmarks([Bookmark(url="gemini://a/", name="A")])
        bookmarks.all().clear()
        assert bookmarks.all() == [Bookmark(url="gemini://a/", name="A")]
