"""
Property-based tests for link line parsing and resolution.
"""

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from gemtab.exceptions import ParseError
from gemtab.links import Link, is_link_line, parse_link, resolve_url


token_strategy = st.text(
    alphabet=st.characters(whitelist_categories=("L", "N", "P", "S")),
    min_size=1,
    max_size=30,
)
space_strategy = st.text(alphabet=" \t", min_size=1, max_size=4)


class TestParseLinkProperty:
    """Property-based tests for parse_link."""

    @given(url=token_strategy, name=token_strategy, gap=space_strategy, pad=st.text(alphabet=" \t", max_size=3))
    @settings(max_examples=100)
    def test_url_and_name_split_on_first_whitespace(
        self, url: str, name: str, gap: str, pad: str
    ) -> None:
        """
        Property 1: URL and name are split at the first whitespace run.

        *For any* link line "=>" + pad + url + whitespace + name, parse_link
        SHALL return the url and the trimmed name.
        """
        link = parse_link(f"=>{pad}{url}{gap}{name}{pad}")
        assert link == Link(url=url, name=name)

    @given(url=token_strategy, pad=st.text(alphabet=" \t", max_size=3))
    @settings(max_examples=100)
    def test_name_defaults_to_url(self, url: str, pad: str) -> None:
        """
        Property 2: A link without a name uses its URL as the name.
        """
        assert parse_link(f"=>{pad}{url}{pad}") == Link(url=url, name=url)

    @pytest.mark.parametrize("line", ["=>", "=>   ", "=>\t"])
    def test_empty_link_raises(self, line: str) -> None:
        with pytest.raises(ParseError) as exc_info:
            parse_link(line)
        assert exc_info.value.code == "invalid_link"

    def test_examples(self) -> None:
        assert parse_link("=> gemini://example.org/ Example") == Link("gemini://example.org/", "Example")
        assert parse_link("=>foo.gmi") == Link("foo.gmi", "foo.gmi")
        assert parse_link("=> /docs  Two  words ") == Link("/docs", "Two  words")

    def test_is_link_line(self) -> None:
        assert is_link_line("=> x")
        assert not is_link_line(" => x")
        assert not is_link_line("# heading")


class TestFullUrlProperty:
    """Property-based tests for link resolution."""

    @given(
        scheme=st.sampled_from(["gemini", "gopher", "https", "mailto-ish"]),
        rest=st.text(alphabet="abcdefghijklmnopqrstuvwxyz/.", min_size=1, max_size=30),
    )
    @settings(max_examples=100)
    def test_absolute_urls_pass_through(self, scheme: str, rest: str) -> None:
        """
        Property 3: A target containing "://" is returned unchanged.
        """
        url = f"{scheme}://{rest}"
        assert Link(url=url, name="x").full_url("gemini://example.org/a/b") == url

    @pytest.mark.parametrize(
        "base, target, expected",
        [
            ("gemini://example.org/a/b", "c", "gemini://example.org/a/c"),
            ("gemini://example.org/a/b", "/c", "gemini://example.org/c"),
            ("gemini://example.org/a/b", "../c", "gemini://example.org/c"),
            ("gemini://example.org/a/", "c?q=1", "gemini://example.org/a/c?q=1"),
            ("gemini://example.org/a", "//other.org/x", "gemini://other.org/x"),
            ("gopher://example.org/1/dir/", "0file", "gopher://example.org/1/dir/0file"),
        ],
    )
    def test_relative_resolution(self, base: str, target: str, expected: str) -> None:
        assert Link(url=target, name=target).full_url(base) == expected

    def test_unparseable_base_yields_empty(self) -> None:
        assert Link(url="c", name="c").full_url("not a url") == ""
        assert resolve_url("gemini://[broken/", "c") == ""

    def test_resolve_url_redirect_target(self) -> None:
        assert resolve_url("gemini://example.org/old/page", "new") == "gemini://example.org/old/new"
