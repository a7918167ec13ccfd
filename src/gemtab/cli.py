"""
Command-line interface for gemtab.

Commands:
- fetch: Fetch a single URL and print the parsed header (and body)
- browse: Line-oriented browser driving the tab engine
- certs: List or forget pinned hosts
- config: Configuration management
- gen-cert: Generate a self-signed client certificate
"""

import argparse
import asyncio
import sys
from contextlib import contextmanager, nullcontext
from pathlib import Path
from typing import Iterator, Optional, TextIO
from urllib.parse import urlsplit

from . import __version__
from .browser import Browser
from .cert_store import CertStore
from .certificate import generate_client_certificate
from .config import (
    CONFIG_FILE_NAME,
    BrowserConfig,
    apply_env_overrides,
    create_default_config,
    default_config_dir,
    load_config_from_file,
    save_config_to_file,
)
from .enums import TabMode
from .event_logger import EventLogger, parse_level
from .exceptions import CertChangedError, GemtabError
from .fetcher import SUPPORTED_SCHEMES
from .gemini_client import GeminiClient
from .gopher_client import GopherClient
from .i18n import get_message
from .models import GeminiResponse
from .tab import HOME_URL, Tab


def config_path_from_args(args: argparse.Namespace) -> Path:
    if getattr(args, "config", None):
        return Path(args.config).expanduser()
    return default_config_dir() / CONFIG_FILE_NAME


def load_config(args: argparse.Namespace) -> BrowserConfig:
    """
    Raises:
        ConfigError: If the config file or environment is invalid
    """
    config = load_config_from_file(config_path_from_args(args))
    config = apply_env_overrides(config)
    if getattr(args, "language", None):
        config.language = args.language
    return config


@contextmanager
def open_logger(config: BrowserConfig, verbose: bool = False) -> Iterator[EventLogger]:
    """Yield the configured logger; a log file is closed on exit."""
    stream: Optional[TextIO] = None
    if config.logging.log_file:
        config.logging.log_file.parent.mkdir(parents=True, exist_ok=True)
        stream = open(config.logging.log_file, "a", encoding="utf-8")
    level = parse_level("debug" if verbose else config.logging.level)
    try:
        yield EventLogger(
            output_format=config.logging.output_format,
            output_stream=stream,
            min_level=level,
        )
    finally:
        if stream is not None:
            stream.close()


async def fetch_url(
    url: str,
    config: BrowserConfig,
    force_repin: bool = False,
    show_body: bool = False,
    logger: Optional[EventLogger] = None,
) -> int:
    """
    Fetch one URL without redirects and print what came back.

    Returns:
        Exit code (0 success, 1 error, 2 certificate changed)
    """
    if "://" not in url:
        url = f"gemini://{url}"
    if urlsplit(url).scheme.lower() not in SUPPORTED_SCHEMES:
        print(get_message("confirm.open_external", config.language, url=url), file=sys.stderr)
        return 1

    try:
        if url.startswith("gopher://"):
            client = GopherClient(config.client, logger)
            response = await asyncio.wait_for(client.load_url(url), config.client.timeout_seconds)
        else:
            cert_store = CertStore.load(config.persistence.certs_path, logger=logger)
            gemini = GeminiClient(cert_store, config.client, logger)
            response = await asyncio.wait_for(
                gemini.load_url(url, force_repin=force_repin),
                config.client.timeout_seconds,
            )
    except CertChangedError as e:
        print(get_message("confirm.cert_changed", config.language, url=url), file=sys.stderr)
        print(f"Rerun with --force-repin to trust the new key for {e.host}.", file=sys.stderr)
        return 2
    except asyncio.TimeoutError:
        print(get_message("error.timeout", config.language, url=url), file=sys.stderr)
        return 1
    except GemtabError as e:
        print(f"Error [{e.code}]: {e.message}", file=sys.stderr)
        return 1

    if isinstance(response, GeminiResponse):
        header = response.header
        print(f"Status: {header.code}")
        print(f"Meta: {header.meta}")
        print(f"URL: {response.url}")
        if show_body and response.body:
            print()
            print(response.text())
    else:
        print(f"Type: {response.item_type}")
        print(f"URL: {response.url}")
        if show_body:
            print()
            print(response.text())
    return 0


def render_tab(tab: Tab, out: TextIO = sys.stdout) -> None:
    """Print the visible state of a tab."""
    if tab.mode == TabMode.MESSAGE and tab.message is not None:
        print(tab.message.text, file=out)
        print(file=out)
        key = "prompt.yes_no" if tab.message.with_confirm else "prompt.ok"
        print(get_message(key, tab.language), file=out)
        return
    if tab.mode == TabMode.INPUT and tab.prompt is not None:
        print(f"{tab.prompt.message}:", file=out)
        return
    if tab.page is not None:
        print(f"=== {tab.title} ({tab.current_url})", file=out)
        print(tab.page.content, file=out)


def handle_command(browser: Browser, line: str) -> bool:
    """
    Apply one line of user input to the browser.

    Returns:
        False when the user asked to quit
    """
    tab = browser.active_tab
    if tab is None:
        return False
    line = line.strip()

    if tab.mode == TabMode.INPUT:
        if line == "":
            tab.cancel_input()
        else:
            tab.submit_input(line)
        return True
    if tab.mode == TabMode.MESSAGE:
        tab.answer_message(line.lower() in ("y", "yes"))
        return True

    command, _, arg = line.partition(" ")
    arg = arg.strip()
    if command == "q":
        return False
    if command.isdigit():
        tab.open_link(int(command))
    elif command == "b":
        tab.go_back()
    elif command == "f":
        tab.go_forward()
    elif command == "g":
        if arg:
            tab.load_url(arg)
        else:
            tab.show_nav_prompt()
    elif command == "r":
        tab.reload()
    elif command == "H":
        tab.load_url(HOME_URL)
    elif command == "s":
        tab.stop()
    elif command == "t":
        browser.open_tab(arg or None)
    elif command == "n":
        browser.next_tab()
    elif command == "x":
        browser.close_tab(tab.id)
        if not browser.tabs:
            return False
    elif command == "d" and arg:
        try:
            size = tab.save_last_response(Path(arg).expanduser())
            print(f"Saved {size} bytes to {arg}")
        except GemtabError as e:
            print(f"Error: {e.message}", file=sys.stderr)
    return True


async def browse(
    config: BrowserConfig,
    url: Optional[str] = None,
    logger: Optional[EventLogger] = None,
) -> int:
    """Interactive session: restore tabs, read commands, save on exit."""
    loop = asyncio.get_running_loop()
    async with Browser(config, logger=logger) as browser:
        if url:
            browser.open_tab(url)
        else:
            browser.restore_session()

        running = True
        while running and browser.tabs:
            await browser.run_until_idle()
            render_tab(browser.active_tab)
            try:
                line = await loop.run_in_executor(None, input, "> ")
            except EOFError:
                break
            running = handle_command(browser, line)

        try:
            browser.save_session()
        except GemtabError as e:
            print(f"Warning: Could not save session: {e.message}", file=sys.stderr)
    return 0


def cmd_fetch(args: argparse.Namespace) -> int:
    """Handle the 'fetch' command."""
    config = load_config(args)
    with open_logger(config, verbose=True) if args.verbose else nullcontext() as logger:
        return asyncio.run(fetch_url(
            args.url,
            config,
            force_repin=args.force_repin,
            show_body=args.body,
            logger=logger,
        ))


def cmd_browse(args: argparse.Namespace) -> int:
    """Handle the 'browse' command."""
    config = load_config(args)
    with open_logger(config, args.verbose) as logger:
        try:
            return asyncio.run(browse(config, args.url, logger))
        except KeyboardInterrupt:
            return 130


def cmd_certs(args: argparse.Namespace) -> int:
    """Handle the 'certs' command."""
    config = load_config(args)
    store = CertStore.load(config.persistence.certs_path)

    if args.action == "list":
        hosts = store.hosts()
        if not hosts:
            print(f"No pinned hosts in {store.file_path}")
            return 0
        for host in hosts:
            print(f"{host}  {store.pin_for(host)}")
        return 0

    if not args.host:
        print("Error: 'certs forget' needs a HOST", file=sys.stderr)
        return 1
    if store.forget(args.host):
        print(f"Forgot pin for {args.host}")
        return 0
    print(f"No pin stored for {args.host}")
    return 1


def cmd_config(args: argparse.Namespace) -> int:
    """Handle the 'config' command."""
    config_path = config_path_from_args(args)

    if args.action == "show":
        if not config_path.exists():
            print(f"No configuration found at: {config_path}")
            print("Use 'config init' to create a default configuration.")
            return 1
        config = load_config(args)
        print(f"Configuration from: {config_path}")
        print(f"  Language: {config.language}")
        print(f"  Start URL: {config.start_url}")
        print(f"  Timeout: {config.client.timeout_seconds}s")
        print(f"  Max redirects: {config.client.max_redirects}")
        print(f"  Certificates: {config.persistence.certs_path}")
        print(f"  History: {config.persistence.history_path}")
        print(f"  Client certificate: {config.client.client_cert_file or '-'}")
        print(f"  Log level: {config.logging.level}")
        return 0

    if args.action == "init":
        if config_path.exists() and not args.force:
            print(f"Configuration already exists at: {config_path}")
            print("Use --force to overwrite.")
            return 1
        config = create_default_config(language=args.language or "en")
        save_config_to_file(config, config_path)
        print(f"Configuration created at: {config_path}")
        return 0

    load_config_from_file(config_path)
    print(f"Configuration at {config_path} is valid.")
    return 0


def cmd_gen_cert(args: argparse.Namespace) -> int:
    """Handle the 'gen-cert' command."""
    config_dir = default_config_dir()
    cert_file = Path(args.cert).expanduser() if args.cert else config_dir / "client.crt"
    key_file = Path(args.key).expanduser() if args.key else config_dir / "client.key"
    try:
        generate_client_certificate(cert_file, key_file, args.common_name, days=args.days)
    except OSError as e:
        print(f"Error: could not write certificate: {e}", file=sys.stderr)
        return 1
    print(f"Certificate: {cert_file}")
    print(f"Private key: {key_file}")
    print("Set client.client_cert_file and client.client_key_file in the config to use it.")
    return 0


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser for the CLI."""
    parser = argparse.ArgumentParser(
        prog="gemtab",
        description="Gemini and Gopher client with TOFU certificate pinning",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # Options shared by every command
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--config", "-c",
        help="Path to configuration file",
    )
    common.add_argument(
        "--language", "-l",
        choices=["de", "en"],
        help="Message language (default: from config)",
    )

    # 'fetch' command
    fetch_parser = subparsers.add_parser(
        "fetch",
        parents=[common],
        help="Fetch a URL and print the response header",
    )
    fetch_parser.add_argument(
        "url",
        help="gemini:// or gopher:// URL",
    )
    fetch_parser.add_argument(
        "--force-repin",
        action="store_true",
        help="Trust the key the server presents now, replacing any pin",
    )
    fetch_parser.add_argument(
        "--body",
        action="store_true",
        help="Also print the decoded body",
    )
    fetch_parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable debug logging",
    )
    fetch_parser.set_defaults(func=cmd_fetch)

    # 'browse' command
    browse_parser = subparsers.add_parser(
        "browse",
        parents=[common],
        help="Browse interactively (restores the last session)",
    )
    browse_parser.add_argument(
        "url",
        nargs="?",
        help="Open this URL instead of restoring the session",
    )
    browse_parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable debug logging",
    )
    browse_parser.set_defaults(func=cmd_browse)

    # 'certs' command
    certs_parser = subparsers.add_parser(
        "certs",
        parents=[common],
        help="Manage pinned server keys",
    )
    certs_parser.add_argument(
        "action",
        choices=["list", "forget"],
        help="Certificate action",
    )
    certs_parser.add_argument(
        "host",
        nargs="?",
        help="Host to forget",
    )
    certs_parser.set_defaults(func=cmd_certs)

    # 'config' command
    config_parser = subparsers.add_parser(
        "config",
        parents=[common],
        help="Configuration management",
    )
    config_parser.add_argument(
        "action",
        choices=["show", "init", "validate"],
        help="Configuration action",
    )
    config_parser.add_argument(
        "--force", "-f",
        action="store_true",
        help="Force overwrite existing configuration",
    )
    config_parser.set_defaults(func=cmd_config)

    # 'gen-cert' command
    gen_cert_parser = subparsers.add_parser(
        "gen-cert",
        help="Generate a self-signed client certificate",
    )
    gen_cert_parser.add_argument(
        "--common-name", "--cn",
        default="gemtab",
        help="Certificate common name (default: gemtab)",
    )
    gen_cert_parser.add_argument(
        "--days",
        type=int,
        default=365,
        help="Validity in days (default: 365)",
    )
    gen_cert_parser.add_argument(
        "--cert",
        help="Certificate output path (default: <config dir>/client.crt)",
    )
    gen_cert_parser.add_argument(
        "--key",
        help="Private key output path (default: <config dir>/client.key)",
    )
    gen_cert_parser.set_defaults(func=cmd_gen_cert)

    return parser


def main(argv: Optional[list[str]] = None) -> int:
    """
    Main entry point for the CLI.

    Args:
        argv: Command line arguments (defaults to sys.argv[1:])

    Returns:
        Exit code
    """
    parser = create_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    try:
        return args.func(args)
    except GemtabError as e:
        print(f"Error [{e.code}]: {e.message}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
