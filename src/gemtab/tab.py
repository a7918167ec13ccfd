"""
Tab navigation state machine.

A Tab is a single-threaded reducer. Load intents and fetch completions
are applied one at a time; network work is handed to an injected
scheduler that returns a cancel function for the fetch it started.

Modes:
    PAGE: content displayed (possibly with a load in flight)
    INPUT: awaiting a single line from the user
    MESSAGE: awaiting acknowledgement or a yes/no answer

Only terminal pages are recorded in history: a status 2 Gemini page, a
Gopher response, or a pseudo page. Input prompts, redirect hops and
errors are never recorded.
"""

import webbrowser
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional
from urllib.parse import quote, urlsplit

from .enums import ErrorCode, InputKind, MessageKind, StatusClass, TabMode
from .event_logger import EventLogger, mask_url
from .exceptions import (
    CertChangedError,
    DialError,
    FetchCanceledError,
    FetchTimeoutError,
    GemtabError,
    ParseError,
    PersistenceError,
    TooManyRedirectsError,
    UnsupportedSchemeError,
)
from .fetcher import SUPPORTED_SCHEMES, FetchCompleted, FetchRequest
from .history import History
from .i18n import DEFAULT_LANGUAGE, get_message
from .links import resolve_url
from .models import (
    Bookmark,
    GeminiResponse,
    GopherResponse,
    Header,
    RenderedPage,
    Response,
)
from .renderer import BookmarkProvider, Renderer, SourceRenderer, StaticBookmarks


HOME_URL = "home://"
HELP_URL = "help://"
DEFAULT_SCHEME_PREFIX = "gemini://"

BUILTIN_BOOKMARKS = (
    Bookmark(url="gemini://geminiprotocol.net/", name="Project Gemini"),
    Bookmark(url="gemini://kennedy.gemi.dev/", name="Kennedy search"),
    Bookmark(url="gopher://gopher.floodgap.com/", name="Floodgap gopher"),
)

HELP_TEXT = """# {title}

```
Open link               type its number
Go back                 b
Go forward              f
Go to URL               g URL
Reload                  r
Home                    H
Stop loading            s
New tab                 t [URL]
Next tab                n
Close tab               x
Download page           d PATH
Quit                    q
```
"""

# Returns the function that cancels the fetch it started.
Scheduler = Callable[[FetchRequest], Callable[[], None]]


@dataclass(frozen=True)
class InputPrompt:
    kind: InputKind
    message: str
    payload: str = ""
    sensitive: bool = False


@dataclass(frozen=True)
class TabMessage:
    text: str
    kind: MessageKind = MessageKind.PLAIN
    payload: str = ""
    with_confirm: bool = False


class Tab:
    """
    Navigation engine for one tab.

    Starting a load or stopping cancels the fetch in flight and bumps the
    tab's load token. A completion whose token is not the current one was
    superseded and is discarded without touching state.
    """

    COMPONENT = "tab"

    def __init__(
        self,
        tab_id: int,
        schedule: Scheduler,
        renderer: Optional[Renderer] = None,
        bookmarks: Optional[BookmarkProvider] = None,
        history: Optional[History] = None,
        language: str = DEFAULT_LANGUAGE,
        max_redirects: int = 5,
        opener: Callable[[str], bool] = webbrowser.open,
        logger: Optional[EventLogger] = None,
    ) -> None:
        """
        Initialize a tab in Page mode with nothing loaded.

        Args:
            tab_id: Identifier carried on every fetch request
            schedule: Starts a fetch and returns its cancel function
            renderer: Turns committed bodies into content and links
            bookmarks: Entries listed on the home page
            history: Restored history, or None for a fresh one
            language: Language for user-visible messages
            max_redirects: Highest redirect level that is still followed
            opener: Opens a URL outside the engine (non-gemini/gopher)
            logger: Optional event logger
        """
        self.id = tab_id
        self._schedule = schedule
        self._renderer = renderer or SourceRenderer()
        self._bookmarks = bookmarks or StaticBookmarks()
        self.history = history if history is not None else History()
        self._language = language
        self._max_redirects = max_redirects
        self._opener = opener
        self._logger = logger

        self.mode = TabMode.PAGE
        self.loading = False
        self.current_url = ""
        self.scroll_pos = 0
        self.last_response: Optional[Response] = None
        self.page: Optional[RenderedPage] = None
        self.prompt: Optional[InputPrompt] = None
        self.message: Optional[TabMessage] = None

        self._cancel: Optional[Callable[[], None]] = None
        self._token = 0
        self._special_pages: dict[str, Callable[[], str]] = {
            HOME_URL: self._home_content,
            HELP_URL: self._help_content,
        }

    @property
    def token(self) -> int:
        return self._token

    @property
    def language(self) -> str:
        return self._language

    @property
    def title(self) -> str:
        if self.page and self.page.title:
            return self.page.title
        return self.current_url

    # Load intents

    def load_url(
        self,
        url: str,
        scroll_pos: int = 0,
        add_history: bool = True,
        level: int = 0,
        force_repin: bool = False,
    ) -> Optional[FetchRequest]:
        """
        Start loading url, superseding any load in flight.

        Args:
            url: Target; "gemini://" is prepended when it has no scheme
            scroll_pos: Scroll offset to restore once committed
            add_history: Record the page in history when it commits
            level: Redirect depth of this load
            force_repin: Replace the host's pin with the presented key

        Returns:
            The request handed to the scheduler, or None when the load was
            resolved without network I/O
        """
        if level > self._max_redirects:
            self._supersede()
            error = TooManyRedirectsError(
                code=ErrorCode.TOO_MANY_REDIRECTS.value,
                message="too many redirects",
                details={"url": url, "level": level},
            )
            self._log_error("Redirect limit reached", error, url)
            self._show_message(get_message("error.too_many_redirects", self._language))
            return None

        url = url.strip()
        if "://" not in url:
            url = DEFAULT_SCHEME_PREFIX + url

        if add_history:
            self.history.update_scroll(self.scroll_pos)

        special = self._special_pages.get(url)
        if special is not None:
            self._supersede()
            response = GeminiResponse(
                header=Header(status=StatusClass.SUCCESS, status_detail=0, meta="text/gemini"),
                url=url,
                body=special().encode("utf-8"),
            )
            self._commit(response, scroll_pos, add_history)
            return None

        scheme = urlsplit(url).scheme.lower()
        if scheme not in SUPPORTED_SCHEMES:
            self._supersede()
            self._show_message(
                get_message("confirm.open_external", self._language, url=url),
                kind=MessageKind.LOAD_EXTERNAL,
                payload=url,
                with_confirm=True,
            )
            return None

        self._supersede()
        request = FetchRequest(
            tab_id=self.id,
            url=url,
            token=self._token,
            level=level,
            scroll_pos=scroll_pos,
            add_history=add_history,
            force_repin=force_repin,
        )
        self.loading = True
        self._cancel = self._schedule(request)
        if self._logger:
            self._logger.debug(self.COMPONENT, "Load started", {
                "tab": self.id, "url": url, "level": level, "force_repin": force_repin,
            })
        return request

    def reload(self) -> Optional[FetchRequest]:
        if not self.current_url:
            return None
        return self.load_url(self.current_url, scroll_pos=self.scroll_pos, add_history=False)

    def go_back(self) -> Optional[FetchRequest]:
        self.history.update_scroll(self.scroll_pos)
        entry = self.history.back()
        if entry is None:
            return None
        return self.load_url(entry.url, scroll_pos=entry.scroll_pos, add_history=False)

    def go_forward(self) -> Optional[FetchRequest]:
        self.history.update_scroll(self.scroll_pos)
        entry = self.history.forward()
        if entry is None:
            return None
        return self.load_url(entry.url, scroll_pos=entry.scroll_pos, add_history=False)

    def open_link(self, number: int) -> Optional[FetchRequest]:
        """Load the link with the given number on the current page."""
        if self.page is None:
            return None
        anchor = self.page.link_number(number)
        if anchor is None:
            return None
        return self.load_url(anchor.url)

    def stop(self) -> None:
        """Cancel the load in flight, if any."""
        self._supersede()

    def set_scroll(self, scroll_pos: int) -> None:
        self.scroll_pos = max(scroll_pos, 0)

    # Fetch completions

    def handle_result(self, completed: FetchCompleted) -> Optional[FetchRequest]:
        """
        Apply a fetch completion.

        Returns:
            A follow-up request when a redirect is being followed
        """
        request = completed.request
        if request.tab_id != self.id or request.token != self._token:
            if self._logger:
                self._logger.debug(self.COMPONENT, "Discarded stale result", {
                    "tab": self.id, "url": request.url, "generation": request.token,
                })
            return None

        self._cancel = None
        self.loading = False

        if completed.error is not None:
            self._handle_error(request, completed.error)
            return None

        response = completed.response
        if isinstance(response, GopherResponse):
            self._commit(response, request.scroll_pos, request.add_history)
            return None
        return self._handle_gemini(request, response)

    def _handle_gemini(self, request: FetchRequest, response: GeminiResponse) -> Optional[FetchRequest]:
        header = response.header
        if self._logger:
            url = mask_url(response.url) if header.code == 11 else response.url
            self._logger.info(self.COMPONENT, "Response", {
                "tab": self.id, "url": url, "status": header.code,
            })

        if header.status == StatusClass.INPUT:
            self.prompt = InputPrompt(
                kind=InputKind.QUERY,
                message=header.meta,
                payload=response.url,
                sensitive=header.status_detail == 1,
            )
            self.mode = TabMode.INPUT
            return None

        if header.status == StatusClass.SUCCESS:
            self._commit(response, request.scroll_pos, request.add_history)
            return None

        if header.status == StatusClass.REDIRECT:
            target = resolve_url(response.url, header.meta)
            if not target:
                self._show_message(get_message("error.invalid_url", self._language, url=header.meta))
                return None
            return self.load_url(
                target,
                scroll_pos=request.scroll_pos,
                add_history=request.add_history,
                level=request.level + 1,
            )

        if header.status == StatusClass.TEMPORARY_FAILURE:
            text = get_message("status.temporary_failure", self._language, meta=header.meta)
        elif header.status == StatusClass.PERMANENT_FAILURE and header.status_detail == 1:
            text = get_message("status.not_found", self._language)
        elif header.status == StatusClass.PERMANENT_FAILURE:
            text = get_message("status.permanent_failure", self._language, meta=header.meta)
        else:
            text = get_message("status.certificate_required", self._language, meta=header.meta)
        self._show_message(text)
        return None

    def _handle_error(self, request: FetchRequest, error: GemtabError) -> None:
        if isinstance(error, FetchCanceledError):
            return

        self._log_error("Load failed", error, request.url)
        url = request.url
        if isinstance(error, CertChangedError):
            self._show_message(
                get_message("confirm.cert_changed", self._language, url=url),
                kind=MessageKind.FORCE_CERT,
                payload=url,
                with_confirm=True,
            )
        elif isinstance(error, UnsupportedSchemeError):
            self._show_message(
                get_message("confirm.open_external", self._language, url=url),
                kind=MessageKind.LOAD_EXTERNAL,
                payload=url,
                with_confirm=True,
            )
        elif isinstance(error, FetchTimeoutError):
            self._show_message(get_message("error.timeout", self._language, url=url))
        elif isinstance(error, ParseError) and error.code == ErrorCode.INVALID_URL.value:
            self._show_message(get_message("error.invalid_url", self._language, url=url))
        elif isinstance(error, ParseError):
            self._show_message(get_message("error.parse", self._language, url=url))
        elif isinstance(error, DialError):
            host = urlsplit(url).hostname or url
            self._show_message(get_message("error.dial", self._language, host=host, reason=error.message))
        else:
            self._show_message(get_message("error.generic", self._language, url=url))

    # User answers

    def show_nav_prompt(self) -> None:
        self.prompt = InputPrompt(
            kind=InputKind.NAV,
            message=get_message("prompt.navigate", self._language),
            payload=self.current_url,
        )
        self.mode = TabMode.INPUT

    def submit_input(self, value: str) -> Optional[FetchRequest]:
        """Answer the open prompt and load the resulting URL."""
        if self.mode != TabMode.INPUT or self.prompt is None:
            return None
        prompt = self.prompt
        self.prompt = None
        self.mode = TabMode.PAGE

        if prompt.kind == InputKind.NAV:
            if not value.strip():
                return None
            return self.load_url(value)

        url = f"{prompt.payload.split('?', 1)[0]}?{quote(value, safe='')}"
        if self._logger:
            self._logger.debug(self.COMPONENT, "Input submitted", {
                "tab": self.id,
                "url": mask_url(url) if prompt.sensitive else url,
            })
        return self.load_url(url)

    def cancel_input(self) -> None:
        if self.mode == TabMode.INPUT:
            self.prompt = None
            self.mode = TabMode.PAGE

    def answer_message(self, yes: bool = False) -> Optional[FetchRequest]:
        """
        Dismiss the open message; a yes answer acts on its payload.

        FORCE_CERT reloads the payload URL with pinning forced.
        LOAD_EXTERNAL hands the payload URL to the external opener.
        """
        if self.mode != TabMode.MESSAGE or self.message is None:
            return None
        message = self.message
        self.message = None
        self.mode = TabMode.PAGE

        if not yes:
            return None
        if message.kind == MessageKind.FORCE_CERT:
            return self.load_url(message.payload, force_repin=True)
        if message.kind == MessageKind.LOAD_EXTERNAL:
            opened = self._opener(message.payload)
            if not opened and self._logger:
                self._logger.warn(self.COMPONENT, "Could not open URL externally", {
                    "url": message.payload,
                })
        return None

    # Downloads

    def save_last_response(self, path: Path) -> int:
        """
        Write the raw bytes of the last committed response.

        Returns:
            Number of bytes written

        Raises:
            PersistenceError: If nothing has been loaded or writing fails
        """
        if self.last_response is None:
            raise PersistenceError(
                code=ErrorCode.IO_ERROR.value,
                message="nothing to download",
                details={"path": str(path)},
            )
        data = self.last_response.data
        try:
            Path(path).write_bytes(data)
        except OSError as e:
            raise PersistenceError(
                code=ErrorCode.IO_ERROR.value,
                message=f"could not complete download: {e}",
                details={"path": str(path)},
            )
        return len(data)

    # Internals

    def _supersede(self) -> None:
        # Results carrying an older token are discarded on arrival.
        self._token += 1
        if self._cancel is not None:
            self._cancel()
            self._cancel = None
        self.loading = False

    def _commit(self, response: Response, scroll_pos: int, add_history: bool) -> None:
        if isinstance(response, GeminiResponse):
            media_type = response.content_type
            body = response.body
        else:
            media_type = response.media_type
            body = response.data

        self.page = self._renderer.render(body, media_type, response.url)
        self.last_response = response
        self.current_url = response.url
        self.scroll_pos = scroll_pos
        self.prompt = None
        self.message = None
        self.mode = TabMode.PAGE
        if add_history:
            self.history.add(response.url, scroll_pos)

    def _show_message(
        self,
        text: str,
        kind: MessageKind = MessageKind.PLAIN,
        payload: str = "",
        with_confirm: bool = False,
    ) -> None:
        self.message = TabMessage(text=text, kind=kind, payload=payload, with_confirm=with_confirm)
        self.prompt = None
        self.mode = TabMode.MESSAGE

    def _log_error(self, message: str, error: GemtabError, url: str) -> None:
        if self._logger:
            self._logger.log_error(self.COMPONENT, message, error=error, url=url,
                                   additional_data={"tab": self.id})

    def _home_content(self) -> str:
        lines = [f"# {get_message('page.home_title', self._language)}", ""]
        lines.extend(f"=> {b.url} {b.name}" for b in BUILTIN_BOOKMARKS)
        lines.append("")
        lines.extend(f"=> {b.url} {b.name}" for b in self._bookmarks.all())
        return "\n".join(lines) + "\n"

    def _help_content(self) -> str:
        return HELP_TEXT.format(title=get_message("page.help_title", self._language))
