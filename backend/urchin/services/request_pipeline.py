from __future__ import annotations
import asyncio
import inspect
import logging
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional, Set, Union

import httpx
from httpx import Timeout

from urchin.config import SERVERS, DEFAULT_SERVER, MAX_CONCURRENT_REQUESTS, REQUEST_TIMEOUT_S
from urchin.errors import MalformedURLError, ResponseStatusError, TransportError

logger = logging.getLogger(__name__)

Callback = Callable[..., Union[None, Awaitable[None]]]
HeadersProvider = Callable[[], Awaitable[Dict[str, str]]]


class RequestHandle:
    """
    Returned by RequestPipeline.submit. cancel() only suppresses callback
    delivery; the network call itself may still run to completion.
    """

    def __init__(self, method: str, url: str, tag: Any = None):
        self.method = method
        self.url = url
        self.tag = tag
        self._canceled = False
        self._task: Optional[asyncio.Task] = None

    def cancel(self) -> None:
        self._canceled = True

    @property
    def canceled(self) -> bool:
        return self._canceled

    @property
    def done(self) -> bool:
        return self._task is not None and self._task.done()

    async def wait(self) -> None:
        """Wait until the request (and any callback it triggered) has finished."""
        if self._task is not None:
            await self._task

    def __repr__(self) -> str:
        return f"<RequestHandle {self.method} {self.url} canceled={self._canceled}>"


async def deliver(handle: Optional[RequestHandle], callback: Optional[Callback], *args: Any) -> bool:
    """Invoke `callback(*args)` unless the handle was canceled. Returns True if delivered."""
    if callback is None:
        return False
    if handle is not None and handle.canceled:
        logger.debug("suppressed delivery for canceled %r", handle)
        return False
    result = callback(*args)
    if inspect.isawaitable(result):
        await result
    return True


class RequestPipeline:
    """
    Builds, dispatches and routes HTTP requests.

    Each request runs as its own asyncio task; at most `max_concurrency` are on
    the wire at once. No retries.
    """

    def __init__(
        self,
        server: str = DEFAULT_SERVER,
        headers_provider: Optional[HeadersProvider] = None,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        max_concurrency: int = MAX_CONCURRENT_REQUESTS,
        timeout: float = REQUEST_TIMEOUT_S,
    ):
        if server not in SERVERS:
            raise ValueError(f"unknown server {server!r}, expected one of {sorted(SERVERS)}")
        self._server = server
        self._headers_provider = headers_provider
        self._client = httpx.AsyncClient(transport=transport, timeout=Timeout(timeout))
        self._slots = asyncio.Semaphore(max_concurrency)
        self._in_flight: Set[RequestHandle] = set()

    @property
    def server(self) -> str:
        return self._server

    @property
    def base_url(self) -> str:
        return SERVERS[self._server]

    def set_server(self, name: str) -> bool:
        """Switch base endpoint; affects only requests submitted afterwards."""
        if name not in SERVERS:
            logger.error("No server called %s found in map", name)
            return False
        self._server = name
        logger.info("server set to %s (%s)", name, SERVERS[name])
        return True

    def resolve(self, path: str) -> str:
        try:
            url = httpx.URL(self.base_url).join(path)
        except (httpx.InvalidURL, TypeError, ValueError) as e:
            raise MalformedURLError(f"cannot build URL from {path!r}: {e}") from e
        if url.scheme not in ("http", "https") or not url.host:
            raise MalformedURLError(f"cannot build URL from {path!r}")
        return str(url)

    async def build_headers(self, extra: Optional[Mapping[str, str]] = None) -> Dict[str, str]:
        headers: Dict[str, str] = {}
        if self._headers_provider is not None:
            headers.update(await self._headers_provider())
        if extra:
            headers.update(extra)
        return headers

    async def submit(
        self,
        method: str,
        path: str,
        headers: Optional[Mapping[str, str]] = None,
        body: Optional[Union[str, bytes]] = None,
        on_success: Optional[Callback] = None,
        on_error: Optional[Callback] = None,
        *,
        tag: Any = None,
    ) -> RequestHandle:
        """
        Schedule a request and return immediately.

        Exactly one of `on_success(body, response_headers)` / `on_error(error)` is
        called later, unless the handle is canceled first. Raises
        MalformedURLError synchronously if the URL cannot be built, and passes
        on whatever the headers provider raises; nothing is sent in either case.
        """
        url = self.resolve(path)
        merged = await self.build_headers(headers)
        request = self._client.build_request(method, url, headers=merged, content=body)

        handle = RequestHandle(method, url, tag=tag)
        self._in_flight.add(handle)
        handle._task = asyncio.create_task(self._run(handle, request, on_success, on_error))
        logger.debug("submitted %s %s", method, url)
        return handle

    async def _run(self, handle: RequestHandle, request: httpx.Request, on_success, on_error) -> None:
        try:
            try:
                async with self._slots:
                    response = await self._client.send(request)
            except httpx.HTTPError as e:
                logger.warning("%s %s failed: %s", handle.method, handle.url, e)
                await deliver(handle, on_error, TransportError(f"{type(e).__name__}: {e}", cause=e))
                return

            if response.is_error:
                logger.warning("%s %s -> %s", handle.method, handle.url, response.status_code)
                await deliver(handle, on_error, ResponseStatusError(response.status_code, response.text))
                return

            await deliver(handle, on_success, response.text, response.headers)
        except Exception:
            # 콜백에서 올라온 예외. 다른 요청에는 영향 없음
            logger.exception("callback for %r raised", handle)
        finally:
            self._in_flight.discard(handle)

    def in_flight(self) -> Set[RequestHandle]:
        return set(self._in_flight)

    def cancel_all(self, tag: Any = None) -> int:
        """Cancel every in-flight handle, or only those carrying `tag`."""
        count = 0
        for handle in list(self._in_flight):
            if tag is None or handle.tag == tag:
                handle.cancel()
                count += 1
        return count

    async def aclose(self) -> None:
        await self._client.aclose()
