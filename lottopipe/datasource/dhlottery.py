"""
DHLottery result pages as a draw source.

Every page load goes through the source's circuit breaker, so repeated
network failures stop hitting the site. Parse failures are not source
failures and never trip the breaker.
"""

import asyncio
from typing import Any, Awaitable, Callable

from loguru import logger

from lottopipe.datasource.base import BaseDataSource
from lottopipe.datasource.extractor import DrawPageExtractor
from lottopipe.datasource.transport import PageSession, PageTransport
from lottopipe.services.circuit_breaker import CircuitBreaker
from lottopipe.services.errors import StructuralParseError

DEFAULT_BASE_URL = "https://dhlottery.co.kr"


class DHLotterySource(BaseDataSource):
    """
    Scrapes draw results from the DHLottery result pages.

    Each public call opens one transport session and releases it when done,
    including on errors.

    Usage:
        source = DHLotterySource(HttpTransport())
        latest = await source.fetch_latest()
        recent = await source.fetch_recent(20)
    """

    def __init__(
        self,
        transport: PageTransport,
        extractor: DrawPageExtractor | None = None,
        breaker: CircuitBreaker | None = None,
        base_url: str = DEFAULT_BASE_URL,
        page_timeout: float = 30.0,
        round_timeout: float = 15.0,
        request_delay: float = 1.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.transport = transport
        self.extractor = extractor or DrawPageExtractor()
        self.breaker = breaker or CircuitBreaker(self.service_id)
        self.base_url = base_url.rstrip("/")
        self.page_timeout = page_timeout
        self.round_timeout = round_timeout
        self.request_delay = request_delay
        self._sleep = sleep

    @property
    def service_id(self) -> str:
        return "dhlottery"

    @property
    def latest_url(self) -> str:
        return f"{self.base_url}/gameResult.do?method=byWin"

    def round_url(self, round_no: int) -> str:
        return f"{self.latest_url}&drwNo={round_no}"

    def get_status(self) -> dict[str, Any]:
        return {
            "service_id": self.service_id,
            "base_url": self.base_url,
            "circuit_breaker": self.breaker.get_status(),
        }

    async def fetch_latest(self) -> dict[str, Any]:
        async with self.transport.session() as session:
            return await self._load_latest(session)

    async def fetch_range(self, start: int, end: int) -> list[dict[str, Any]]:
        if start < 1 or start > end:
            raise ValueError(f"Invalid round range: {start}-{end}")

        async with self.transport.session() as session:
            return await self._walk(session, start, end)

    async def fetch_recent(self, count: int) -> list[dict[str, Any]]:
        if count < 1:
            raise ValueError(f"count must be positive, got {count}")

        async with self.transport.session() as session:
            latest = await self._load_latest(session)
            latest_round = latest["round"]
            start = max(1, latest_round - count + 1)

            candidates = []
            if start < latest_round:
                await self._sleep(self.request_delay)
                candidates = await self._walk(session, start, latest_round - 1)
            candidates.append(latest)
            return candidates

    async def _load_latest(self, session: PageSession) -> dict[str, Any]:
        logger.info("Fetching latest draw")
        html = await self._load(session, self.latest_url, self.page_timeout)
        candidate = self.extractor.extract(html)
        logger.info(f"Fetched latest draw: round {candidate['round']}")
        return candidate

    async def _walk(self, session: PageSession, start: int, end: int) -> list[dict[str, Any]]:
        logger.info(f"Fetching draws {start}-{end}")
        candidates = []

        for round_no in range(start, end + 1):
            if round_no > start:
                await self._sleep(self.request_delay)

            html = await self._load(session, self.round_url(round_no), self.round_timeout)
            try:
                candidates.append(self.extractor.extract(html, round_hint=round_no))
            except StructuralParseError as e:
                logger.warning(f"Skipping round {round_no}: {e}")

        logger.info(f"Fetched {len(candidates)}/{end - start + 1} draws for {start}-{end}")
        return candidates

    async def _load(self, session: PageSession, url: str, timeout: float) -> str:
        return await self.breaker.call(lambda: session.fetch(url, timeout))
