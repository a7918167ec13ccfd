"""
Property-based tests for the Gopher client and directory parser.
"""

import asyncio
import socket
import time

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from gemtab.config import ClientConfig
from gemtab.exceptions import DialError, FetchTimeoutError, ParseError
from gemtab.gopher_client import GopherClient, GopherItem, parse_directory, parse_gopher_url

from servers import GopherServer


field_strategy = st.text(
    alphabet=st.characters(blacklist_categories=("Cs", "Cc")),
    max_size=30,
)
host_strategy = st.text(alphabet="abcdefghijklmnopqrstuvwxyz.", min_size=1, max_size=20)


@st.composite
def item_strategy(draw) -> GopherItem:
    return GopherItem(
        item_type=draw(st.sampled_from("0179hgI")),
        display=draw(field_strategy),
        selector=draw(field_strategy),
        host=draw(host_strategy),
        port=draw(st.integers(min_value=1, max_value=65535)),
    )


def item_line(item: GopherItem) -> str:
    return f"{item.item_type}{item.display}\t{item.selector}\t{item.host}\t{item.port}"


class TestParseGopherUrl:
    """Tests for splitting gopher URLs into requests."""

    def test_root_is_directory(self) -> None:
        request = parse_gopher_url("gopher://Example.org")
        assert (request.host, request.port, request.item_type, request.selector) == (
            "example.org", 70, "1", "",
        )

    def test_type_and_selector(self) -> None:
        request = parse_gopher_url("gopher://example.org:7070/0/docs/file.txt")
        assert request.port == 7070
        assert request.item_type == "0"
        assert request.selector == "/docs/file.txt"

    def test_query_appended_after_tab(self) -> None:
        request = parse_gopher_url("gopher://example.org/7/search?hello%20world")
        assert request.item_type == "7"
        assert request.selector == "/search\thello world"

    def test_percent_encoding_removed(self) -> None:
        assert parse_gopher_url("gopher://example.org/1%2Fmy%20dir").selector == "/my dir"

    def test_missing_host(self) -> None:
        with pytest.raises(ParseError) as exc_info:
            parse_gopher_url("gopher:///1/x")
        assert exc_info.value.code == "invalid_url"


class TestItemUrlProperty:
    """Property-based tests for directory item URLs."""

    @given(
        item_type=st.sampled_from("01h79gI"),
        selector=field_strategy.filter(lambda s: "\t" not in s and not s.startswith("URL:")),
        port=st.integers(min_value=1, max_value=65535),
    )
    @settings(max_examples=200)
    def test_item_url_round_trip(self, item_type: str, selector: str, port: int) -> None:
        """
        Property 2: A listing entry links back to exactly its selector.

        *For any* tab-free selector, parsing the URL built for a directory
        item SHALL yield the same item type, port and selector, including
        "?", "#" and "%" characters.
        """
        item = GopherItem(item_type, "label", selector, "example.org", port)

        request = parse_gopher_url(item.url)

        assert (request.item_type, request.port, request.selector) == (item_type, port, selector)

    def test_reserved_characters_are_quoted(self) -> None:
        item = GopherItem("0", "x", "/cgi-bin/t?a=1#b%41", "example.org", 70)
        assert item.url == "gopher://example.org:70/0/cgi-bin/t%3Fa%3D1%23b%2541"
        assert parse_gopher_url(item.url).selector == "/cgi-bin/t?a=1#b%41"


class TestParseDirectoryProperty:
    """Property-based tests for directory listings."""

    @given(items=st.lists(item_strategy(), max_size=10), crlf=st.booleans())
    @settings(max_examples=100)
    def test_listing_round_trip(self, items: list, crlf: bool) -> None:
        """
        Property 1: Every directory line becomes one item.

        *For any* well-formed listing terminated by ".", parse_directory
        SHALL return one item per line with type, display, selector, host
        and port preserved.
        """
        newline = "\r\n" if crlf else "\n"
        text = newline.join([item_line(i) for i in items] + ["."]) + newline

        assert parse_directory(text) == items

    @given(items=st.lists(item_strategy(), min_size=1, max_size=5))
    @settings(max_examples=50)
    def test_lines_after_terminator_ignored(self, items: list) -> None:
        text = "\n".join(["."] + [item_line(i) for i in items])
        assert parse_directory(text) == []

    def test_empty_lines_kept_as_info(self) -> None:
        items = parse_directory("iHello\tfake\t(NULL)\t0\n\n1Sub\t/sub\texample.org\t70\n")
        assert [i.item_type for i in items] == ["i", "i", "1", "i"]
        assert items[1].display == ""

    def test_bad_port_defaults(self) -> None:
        assert parse_directory("0File\t/f\texample.org\tabc")[0].port == 70

    def test_item_urls(self) -> None:
        info, menu, external, hostless = parse_directory(
            "iWelcome\tfake\t(NULL)\t0\n"
            "1Menu\t/menu\texample.org\t7070\n"
            "hWeb\tURL:https://example.org/\texample.org\t70\n"
            "0Broken\t/x"
        )
        assert info.url is None
        assert menu.url == "gopher://example.org:7070/1/menu"
        assert external.url == "https://example.org/"
        assert hostless.url is None


def free_port() -> int:
    with socket.socket() as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


class TestGopherClientConnection:
    """Tests against a local plain TCP server."""

    def test_selector_and_query_sent(self) -> None:
        client = GopherClient(ClientConfig(timeout_seconds=5))

        async def scenario():
            async with GopherServer(b"result text") as server:
                response = await client.load_url(server.url("/7/search?gemini"))
                return server, response

        server, response = asyncio.run(scenario())

        assert server.requests == [b"/search\tgemini\r\n"]
        assert response.item_type == "7"
        assert response.data == b"result text"
        assert response.media_type == "text/plain"

    def test_root_directory(self) -> None:
        client = GopherClient(ClientConfig(timeout_seconds=5))

        async def scenario():
            async with GopherServer(b"iHi\tfake\tnull\t0\r\n.\r\n") as server:
                response = await client.load_url(server.url(""))
                return server, response

        server, response = asyncio.run(scenario())

        assert server.requests == [b"\r\n"]
        assert response.media_type == "text/gopher"
        assert parse_directory(response.text())[0].display == "Hi"

    def test_body_capped(self) -> None:
        client = GopherClient(ClientConfig(timeout_seconds=5, max_body_bytes=4))

        async def scenario():
            async with GopherServer(b"0123456789") as server:
                return await client.load_url(server.url("/0/file"))

        assert asyncio.run(scenario()).data == b"0123"

    def test_connection_refused(self) -> None:
        client = GopherClient(ClientConfig(timeout_seconds=5))
        with pytest.raises(DialError) as exc_info:
            asyncio.run(client.load_url(f"gopher://127.0.0.1:{free_port()}/"))
        assert exc_info.value.code == "connection_failed"

    def test_silent_server_times_out(self) -> None:
        client = GopherClient(ClientConfig(timeout_seconds=0.5))

        async def scenario():
            async with GopherServer(None) as server:
                await client.load_url(server.url("/0/slow"))

        with pytest.raises(FetchTimeoutError):
            asyncio.run(scenario())

    def test_listing_selector_sent_verbatim(self) -> None:
        client = GopherClient(ClientConfig(timeout_seconds=5))

        async def scenario():
            async with GopherServer(b"result") as server:
                item = GopherItem("0", "Query", "/cgi-bin/t?a=1", "127.0.0.1", server.port)
                await client.load_url(item.url)
                return server

        assert asyncio.run(scenario()).requests == [b"/cgi-bin/t?a=1\r\n"]

    def test_cancel_aborts_connection(self) -> None:
        client = GopherClient(ClientConfig(timeout_seconds=10))

        async def scenario():
            async with GopherServer(None) as server:
                task = asyncio.ensure_future(client.load_url(server.url("/0/slow")))
                await asyncio.sleep(0.3)
                task.cancel()
                with pytest.raises(asyncio.CancelledError):
                    await task

        started = time.monotonic()
        asyncio.run(asyncio.wait_for(scenario(), timeout=5))

        # asyncio.run joins the executor thread, which only returns early
        # once the socket has been shut down.
        assert time.monotonic() - started < 5
