from lottopipe.datasource.base import BaseDataSource
from lottopipe.datasource.dhlottery import DHLotterySource
from lottopipe.datasource.extractor import DrawPageExtractor
from lottopipe.datasource.transport import (
    BrowserTransport,
    HttpTransport,
    PageSession,
    PageTransport,
    create_transport,
)

__all__ = [
    "BaseDataSource",
    "BrowserTransport",
    "DHLotterySource",
    "DrawPageExtractor",
    "HttpTransport",
    "PageSession",
    "PageTransport",
    "create_transport",
]
