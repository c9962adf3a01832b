"""
Page transports: how rendered pages are loaded from the draw source.

A transport hands out sessions scoped to one logical operation (the latest
draw, or a whole range walk). The session is always released, even when the
operation fails. Library errors are mapped to TransientSourceError with a
message the retry classifier recognizes.
"""

from abc import ABC, abstractmethod
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from typing import AsyncIterator

import httpx
from loguru import logger

from lottopipe.services.errors import RequestTimeoutError, ServiceError, TransientSourceError

DEFAULT_HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
    ),
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "ko-KR,ko;q=0.9,en-US;q=0.8,en;q=0.7",
}


class PageSession(ABC):
    """An open session that can load pages."""

    @abstractmethod
    async def fetch(self, url: str, timeout: float) -> str:
        """Return the page HTML, or raise TransientSourceError."""
        ...


class PageTransport(ABC):
    """Factory for page sessions."""

    service_id: str = "dhlottery"

    @abstractmethod
    def session(self) -> AbstractAsyncContextManager[PageSession]:
        """Async context manager yielding a PageSession."""
        ...


class _HttpSession(PageSession):
    def __init__(self, client: httpx.AsyncClient, service_id: str):
        self._client = client
        self._service_id = service_id

    async def fetch(self, url: str, timeout: float) -> str:
        try:
            response = await self._client.get(url, timeout=timeout)
            response.raise_for_status()
            return response.text

        except httpx.TimeoutException as e:
            raise RequestTimeoutError(self._service_id, timeout) from e

        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            if status >= 500 or status == 429:
                raise TransientSourceError(
                    f"network error: HTTP {status} from {url}",
                    service_id=self._service_id,
                ) from e
            raise ServiceError(f"HTTP {status} from {url}", service_id=self._service_id) from e

        except httpx.RequestError as e:
            raise TransientSourceError(
                f"network error: {type(e).__name__}: {e}",
                service_id=self._service_id,
            ) from e


class HttpTransport(PageTransport):
    """
    Plain HTTP transport built on httpx.

    The result pages are server-rendered, so no browser is needed. A custom
    httpx transport can be passed in (tests use httpx.MockTransport).
    """

    def __init__(
        self,
        headers: dict[str, str] | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._headers = {**DEFAULT_HEADERS, **(headers or {})}
        self._transport = transport

    @asynccontextmanager
    async def session(self) -> AsyncIterator[PageSession]:
        async with httpx.AsyncClient(
            headers=self._headers,
            follow_redirects=True,
            transport=self._transport,
        ) as client:
            yield _HttpSession(client, self.service_id)


class _BrowserSession(PageSession):
    def __init__(self, page, service_id: str, timeout_error: type[Exception], error: type[Exception]):
        self._page = page
        self._service_id = service_id
        self._timeout_error = timeout_error
        self._error = error

    async def fetch(self, url: str, timeout: float) -> str:
        try:
            await self._page.goto(url, wait_until="networkidle", timeout=timeout * 1000)
            return await self._page.content()
        except self._timeout_error as e:
            raise RequestTimeoutError(self._service_id, timeout) from e
        except self._error as e:
            raise TransientSourceError(
                f"navigation failed for {url}: {e}", service_id=self._service_id
            ) from e


class BrowserTransport(PageTransport):
    """
    Headless Chromium transport (Playwright).

    Install with the 'browser' extra. One browser is launched per session
    and closed when the session ends.
    """

    def __init__(self, headers: dict[str, str] | None = None, headless: bool = True):
        self._headers = {**DEFAULT_HEADERS, **(headers or {})}
        self._headless = headless

    @asynccontextmanager
    async def session(self) -> AsyncIterator[PageSession]:
        try:
            from playwright.async_api import Error as PlaywrightError
            from playwright.async_api import TimeoutError as PlaywrightTimeoutError
            from playwright.async_api import async_playwright
        except ImportError as exc:  # pragma: no cover
            raise RuntimeError(
                "Browser transport requires installing the 'playwright' package."
            ) from exc

        async with async_playwright() as playwright:
            browser = await playwright.chromium.launch(
                headless=self._headless,
                args=["--no-sandbox", "--disable-dev-shm-usage"],
            )
            try:
                context = await browser.new_context(
                    user_agent=self._headers["User-Agent"],
                    locale="ko-KR",
                    timezone_id="Asia/Seoul",
                    extra_http_headers={
                        k: v for k, v in self._headers.items() if k != "User-Agent"
                    },
                )
                page = await context.new_page()
                logger.debug("Browser session opened")
                yield _BrowserSession(
                    page, self.service_id, PlaywrightTimeoutError, PlaywrightError
                )
            finally:
                await browser.close()
                logger.debug("Browser session closed")


def create_transport(kind: str) -> PageTransport:
    """Transport for the SCRAPER_TRANSPORT setting ('http' or 'browser')."""
    if kind == "http":
        return HttpTransport()
    if kind == "browser":
        return BrowserTransport()
    raise ValueError(f"Unknown scraper transport: {kind}")
