import httpx
import pytest

from lottopipe.datasource.transport import (
    BrowserTransport,
    HttpTransport,
    create_transport,
)
from lottopipe.services.errors import (
    RequestTimeoutError,
    ServiceError,
    TransientSourceError,
)
from lottopipe.services.retry import SCRAPING_RETRY_CONFIG, is_retryable_error

URL = "https://dhlottery.co.kr/gameResult.do?method=byWin"


def transport_for(handler) -> HttpTransport:
    return HttpTransport(transport=httpx.MockTransport(handler))


async def fetch(transport: HttpTransport) -> str:
    async with transport.session() as session:
        return await session.fetch(URL, timeout=5)


async def test_returns_page_text():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["language"] = request.headers["accept-language"]
        return httpx.Response(200, text="<html>1100회</html>")

    assert await fetch(transport_for(handler)) == "<html>1100회</html>"
    assert seen["language"].startswith("ko-KR")


async def test_follows_redirects():
    def handler(request: httpx.Request) -> httpx.Response:
        if "drwNo" not in str(request.url):
            return httpx.Response(302, headers={"Location": f"{URL}&drwNo=1100"})
        return httpx.Response(200, text="redirected")

    assert await fetch(transport_for(handler)) == "redirected"


async def test_timeout_is_retryable():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("timed out", request=request)

    with pytest.raises(RequestTimeoutError) as exc_info:
        await fetch(transport_for(handler))

    assert is_retryable_error(exc_info.value, SCRAPING_RETRY_CONFIG.retryable_errors)


async def test_connection_error_is_retryable():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(TransientSourceError) as exc_info:
        await fetch(transport_for(handler))

    assert is_retryable_error(exc_info.value, SCRAPING_RETRY_CONFIG.retryable_errors)


@pytest.mark.parametrize("status", [429, 500, 503])
async def test_server_errors_are_retryable(status):
    transport = transport_for(lambda request: httpx.Response(status))

    with pytest.raises(TransientSourceError) as exc_info:
        await fetch(transport)

    assert is_retryable_error(exc_info.value, SCRAPING_RETRY_CONFIG.retryable_errors)


async def test_client_error_is_not_retryable():
    transport = transport_for(lambda request: httpx.Response(404))

    with pytest.raises(ServiceError) as exc_info:
        await fetch(transport)

    assert not isinstance(exc_info.value, TransientSourceError)
    assert not is_retryable_error(exc_info.value, SCRAPING_RETRY_CONFIG.retryable_errors)


def test_create_transport():
    assert isinstance(create_transport("http"), HttpTransport)
    assert isinstance(create_transport("browser"), BrowserTransport)
    with pytest.raises(ValueError):
        create_transport("carrier-pigeon")
