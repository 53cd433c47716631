"""Unit tests for the redirect limit and redirect header handling."""

from __future__ import annotations

import httpx
import pytest

from unireq import RedirectLimitError, Request, TransportError


class _RedirectChain:
    """Redirects /hop/<n> to /hop/<n-1> until /hop/0 answers 200."""

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        remaining = int(request.url.path.rsplit("/", 1)[-1])
        if remaining > 0:
            return httpx.Response(
                302,
                headers={"Location": f"/hop/{remaining - 1}"},
                text=f"moved {remaining}",
            )
        return httpx.Response(200, text="arrived")


@pytest.mark.asyncio
async def test_exactly_max_redirects_succeeds(make_executor) -> None:
    chain = _RedirectChain()
    async with make_executor(chain.handler) as executor:
        response = await executor.execute(Request(url="http://api.test/hop/3", max_redirects=3))
        async with response:
            assert response.status_code == 200
            assert await response.body.text() == "arrived"

    assert [r.url.path for r in chain.requests] == ["/hop/3", "/hop/2", "/hop/1", "/hop/0"]


@pytest.mark.asyncio
async def test_one_redirect_too_many_keeps_the_last_response(make_executor) -> None:
    chain = _RedirectChain()
    async with make_executor(chain.handler) as executor:
        with pytest.raises(RedirectLimitError) as exc_info:
            await executor.execute(Request(url="http://api.test/hop/3", max_redirects=2))

        error = exc_info.value
        assert isinstance(error, TransportError)
        assert error.timeout is False
        async with error.response as partial:
            assert partial.status_code == 302
            assert partial.headers["location"] == "/hop/0"
            assert await partial.body.text() == "moved 1"

    assert len(chain.requests) == 3


@pytest.mark.asyncio
async def test_first_redirect_is_refused_by_default(make_executor) -> None:
    chain = _RedirectChain()
    async with make_executor(chain.handler) as executor:
        with pytest.raises(RedirectLimitError) as exc_info:
            await executor.execute(Request(url="http://api.test/hop/1"))
        await exc_info.value.response.aclose()

    assert exc_info.value.response.status_code == 302
    assert len(chain.requests) == 1


@pytest.mark.asyncio
async def test_headers_are_dropped_on_redirect_by_default(make_executor) -> None:
    chain = _RedirectChain()
    request = Request(url="http://api.test/hop/1", user_agent="unireq-test", max_redirects=1)
    request.header("X-Token", "abc")

    async with make_executor(chain.handler) as executor:
        response = await executor.execute(request)
        await response.aclose()

    first, second = chain.requests
    assert first.headers["x-token"] == "abc"
    assert "x-token" not in second.headers
    assert second.headers["user-agent"] != "unireq-test"
    assert second.headers["host"] == "api.test"


@pytest.mark.asyncio
async def test_headers_are_copied_when_enabled(make_executor) -> None:
    chain = _RedirectChain()
    request = Request(
        url="http://api.test/hop/2",
        max_redirects=2,
        redirect_headers=True,
        basic_auth_username="user",
        basic_auth_password="pw",
    )
    request.header("X-Token", "abc")

    async with make_executor(chain.handler) as executor:
        response = await executor.execute(request)
        await response.aclose()

    for hop in chain.requests:
        assert hop.headers["x-token"] == "abc"
        assert hop.headers["authorization"].startswith("Basic ")
        assert hop.headers["host"] == "api.test"
