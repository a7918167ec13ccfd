"""
Browser event loop for the gemtab navigation engine.

The Browser owns the tabs and a single message queue. Fetches run as
independent tasks and post exactly one FetchCompleted each; the loop
applies them to their tab one at a time, so tab state is only ever
mutated from this loop.
"""

import asyncio
from typing import Callable, Optional

from .cert_store import CertStore
from .config import BrowserConfig
from .event_logger import EventLogger
from .exceptions import PersistenceError
from .fetcher import FetchCompleted, Fetcher, FetchRequest
from .gemini_client import GeminiClient
from .gopher_client import GopherClient
from .history import History, load_histories, save_histories
from .renderer import BookmarkProvider, Renderer
from .tab import Tab


class Browser:
    """
    Tab container and single-threaded reducer loop.

    Must be used from inside a running event loop: opening a tab may
    start a fetch task.
    """

    COMPONENT = "browser"

    async def __aenter__(self) -> "Browser":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    def __init__(
        self,
        config: BrowserConfig,
        cert_store: Optional[CertStore] = None,
        fetcher: Optional[Fetcher] = None,
        renderer: Optional[Renderer] = None,
        bookmarks: Optional[BookmarkProvider] = None,
        opener: Optional[Callable[[str], bool]] = None,
        logger: Optional[EventLogger] = None,
    ) -> None:
        """
        Initialize the browser.

        Args:
            config: Browser configuration
            cert_store: Trust store; loaded from the config dir when None
            fetcher: Fetch dispatcher; built from config when None
            renderer: Renderer shared by all tabs
            bookmarks: Bookmark collaborator for the home page
            opener: External URL opener for non-gemini/gopher links
            logger: Optional event logger
        """
        self._config = config
        self._logger = logger
        if fetcher is None:
            if cert_store is None:
                cert_store = CertStore.load(config.persistence.certs_path, logger=logger)
            fetcher = Fetcher(
                GeminiClient(cert_store, config.client, logger),
                GopherClient(config.client, logger),
                timeout_seconds=config.client.timeout_seconds,
                logger=logger,
            )
        self._cert_store = cert_store
        self._fetcher = fetcher
        self._renderer = renderer
        self._bookmarks = bookmarks
        self._opener = opener

        self._queue: asyncio.Queue = asyncio.Queue()
        self._tasks: set[asyncio.Task] = set()
        self._tabs: list[Tab] = []
        self._active = 0
        self._next_id = 1

    @property
    def tabs(self) -> list[Tab]:
        return list(self._tabs)

    @property
    def active_index(self) -> int:
        return self._active

    @property
    def active_tab(self) -> Optional[Tab]:
        if not self._tabs:
            return None
        return self._tabs[self._active]

    def get_tab(self, tab_id: int) -> Optional[Tab]:
        for tab in self._tabs:
            if tab.id == tab_id:
                return tab
        return None

    # Tabs

    def new_tab(self, history: Optional[History] = None) -> Tab:
        """Create a tab without loading anything."""
        kwargs = {}
        if self._opener is not None:
            kwargs["opener"] = self._opener
        tab = Tab(
            self._next_id,
            self._schedule,
            renderer=self._renderer,
            bookmarks=self._bookmarks,
            history=history,
            language=self._config.language,
            max_redirects=self._config.client.max_redirects,
            logger=self._logger,
            **kwargs,
        )
        self._next_id += 1
        self._tabs.append(tab)
        return tab

    def open_tab(self, url: Optional[str] = None, switch: bool = True) -> Tab:
        """Open a tab at url (the start URL by default)."""
        tab = self.new_tab()
        if switch:
            self._active = len(self._tabs) - 1
        tab.load_url(url or self._config.start_url)
        return tab

    def close_tab(self, tab_id: int) -> bool:
        """
        Close a tab and cancel its fetch. Results still in flight for it
        are dropped when they arrive.
        """
        tab = self.get_tab(tab_id)
        if tab is None:
            return False
        tab.stop()
        index = self._tabs.index(tab)
        self._tabs.remove(tab)
        if self._active > index or self._active >= len(self._tabs):
            self._active = max(self._active - 1, 0)
        return True

    def select_tab(self, index: int) -> Optional[Tab]:
        if 0 <= index < len(self._tabs):
            self._active = index
            return self._tabs[index]
        return None

    def next_tab(self) -> Optional[Tab]:
        if not self._tabs:
            return None
        return self.select_tab((self._active + 1) % len(self._tabs))

    # Event loop

    def _schedule(self, request: FetchRequest) -> Callable[[], None]:
        task = self._fetcher.start(request, self._queue.put_nowait)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task.cancel

    def dispatch(self, completed: FetchCompleted) -> None:
        """Apply one completion message to its tab."""
        tab = self.get_tab(completed.request.tab_id)
        if tab is None:
            if self._logger:
                self._logger.debug(self.COMPONENT, "Dropped result for closed tab", {
                    "tab": completed.request.tab_id, "url": completed.request.url,
                })
            return
        tab.handle_result(completed)

    def pending(self) -> bool:
        return bool(self._tasks) or not self._queue.empty()

    async def process_next(self) -> FetchCompleted:
        """Wait for the next completion message and apply it."""
        completed = await self._queue.get()
        self.dispatch(completed)
        return completed

    async def run_until_idle(self) -> None:
        """Apply completions until no fetch is in flight or queued."""
        while self.pending():
            await self.process_next()

    # Session

    def restore_session(self) -> list[Tab]:
        """
        Recreate one tab per stored history and reload its current entry.

        An unreadable session file or an empty session yields a single
        fresh tab at the start URL.
        """
        try:
            histories = load_histories(self._config.persistence.history_path)
        except PersistenceError as e:
            if self._logger:
                self._logger.log_error(self.COMPONENT, "Could not restore session", error=e)
            histories = []

        histories = [h for h in histories if h.current() is not None]
        if not histories:
            return [self.open_tab()]

        restored = []
        for history in histories:
            tab = self.new_tab(history=history)
            entry = history.current()
            tab.load_url(entry.url, scroll_pos=entry.scroll_pos, add_history=False)
            restored.append(tab)
        self._active = 0
        if self._logger:
            self._logger.info(self.COMPONENT, "Session restored", {"tabs": len(restored)})
        return restored

    def save_session(self) -> None:
        """
        Raises:
            PersistenceError: If the session file cannot be written
        """
        for tab in self._tabs:
            tab.history.update_scroll(tab.scroll_pos)
        save_histories(self._config.persistence.history_path, [t.history for t in self._tabs])
        if self._logger:
            self._logger.info(self.COMPONENT, "Session saved", {"tabs": len(self._tabs)})

    async def close(self) -> None:
        """Cancel every fetch in flight and wait for the tasks to finish."""
        for tab in self._tabs:
            tab.stop()
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
