"""
Fetch dispatch with timeouts and cancellation.

A fetch is one background task per load request. Whatever happens to it
(success, error, timeout, cancellation) exactly one FetchCompleted
message is posted back to the caller's loop.
"""

import asyncio
from dataclasses import dataclass
from typing import Callable, Optional
from urllib.parse import urlsplit

from .enums import ErrorCode
from .event_logger import EventLogger
from .exceptions import (
    FetchCanceledError,
    FetchTimeoutError,
    GemtabError,
    UnsupportedSchemeError,
)
from .gemini_client import GeminiClient
from .gopher_client import GopherClient
from .models import Response


SUPPORTED_SCHEMES = ("gemini", "gopher")


@dataclass(frozen=True)
class FetchRequest:
    """A load a tab wants performed; token identifies the tab's load generation."""

    tab_id: int
    url: str
    token: int
    level: int = 0
    scroll_pos: int = 0
    add_history: bool = True
    force_repin: bool = False


@dataclass(frozen=True)
class FetchCompleted:
    """Completion message: exactly one of response or error is set."""

    request: FetchRequest
    response: Optional[Response] = None
    error: Optional[GemtabError] = None

    @property
    def canceled(self) -> bool:
        return isinstance(self.error, FetchCanceledError)


def canceled_result(request: FetchRequest) -> FetchCompleted:
    return FetchCompleted(
        request=request,
        error=FetchCanceledError(
            code=ErrorCode.CANCELED.value,
            message="load superseded",
            details={"url": request.url},
        ),
    )


class Fetcher:
    """Routes requests to the protocol client for their scheme."""

    COMPONENT = "fetcher"

    def __init__(
        self,
        gemini_client: GeminiClient,
        gopher_client: GopherClient,
        timeout_seconds: float = 30.0,
        logger: Optional[EventLogger] = None,
    ) -> None:
        self._gemini = gemini_client
        self._gopher = gopher_client
        self._timeout = timeout_seconds
        self._logger = logger

    async def _load(self, request: FetchRequest) -> Response:
        scheme = urlsplit(request.url).scheme.lower()
        if scheme == "gemini":
            return await self._gemini.load_url(request.url, request.force_repin)
        if scheme == "gopher":
            return await self._gopher.load_url(request.url)
        raise UnsupportedSchemeError(
            code=ErrorCode.UNSUPPORTED_SCHEME.value,
            message=f"unsupported scheme {scheme!r}",
            details={"url": request.url},
        )

    async def fetch(self, request: FetchRequest) -> FetchCompleted:
        """
        Perform one request bounded by the fetch timeout.

        Every outcome except cancellation is returned as a FetchCompleted.

        Raises:
            asyncio.CancelledError: If the task running the fetch is canceled
        """
        if self._logger:
            self._logger.debug(self.COMPONENT, "Fetch started", {
                "tab": request.tab_id, "url": request.url, "level": request.level,
            })
        try:
            response = await asyncio.wait_for(self._load(request), timeout=self._timeout)
        except asyncio.CancelledError:
            if self._logger:
                self._logger.debug(self.COMPONENT, "Fetch canceled", {
                    "tab": request.tab_id, "url": request.url,
                })
            raise
        except asyncio.TimeoutError:
            error = FetchTimeoutError(
                code=ErrorCode.TIMEOUT.value,
                message=f"loading timed out after {self._timeout}s",
                details={"url": request.url},
            )
            if self._logger:
                self._logger.log_error(self.COMPONENT, "Fetch timed out", error=error, url=request.url)
            return FetchCompleted(request=request, error=error)
        except GemtabError as e:
            if self._logger:
                self._logger.log_error(self.COMPONENT, "Fetch failed", error=e, url=request.url)
            return FetchCompleted(request=request, error=e)
        except Exception as e:
            error = GemtabError(
                code=ErrorCode.UNEXPECTED.value,
                message=f"Unexpected error: {e}",
                details={"url": request.url, "error_type": type(e).__name__},
            )
            if self._logger:
                self._logger.log_error(self.COMPONENT, "Unexpected fetch error", error=e, url=request.url)
            return FetchCompleted(request=request, error=error)

        return FetchCompleted(request=request, response=response)

    def start(
        self,
        request: FetchRequest,
        post: Callable[[FetchCompleted], None],
    ) -> asyncio.Task:
        """
        Run a fetch as a task that posts its completion message.

        A task canceled before or during the fetch posts a canceled result.
        Must be called with a running event loop.
        """
        task = asyncio.get_running_loop().create_task(self.fetch(request))

        def _on_done(done: asyncio.Task) -> None:
            if done.cancelled():
                post(canceled_result(request))
            else:
                post(done.result())

        task.add_done_callback(_on_done)
        return task
