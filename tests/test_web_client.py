import asyncio

import httpx

from clients.web_client import WebContentClient

from conftest import html_page, site_transport


def test_fetch_page_follows_redirects():
    pages = {
        "/start": httpx.Response(302, headers={"location": "/end"}),
        "/end": html_page("done"),
    }

    async def _run():
        async with WebContentClient(transport=site_transport(pages)) as client:
            return await client.fetch_page("https://example.com/start")

    page = asyncio.run(_run())
    assert page.url == "https://example.com/end"
    assert page.status_code == 200
    assert page.is_html


def test_retries_transient_errors_but_not_404():
    attempts = {"flaky": 0, "missing": 0}

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/flaky":
            attempts["flaky"] += 1
            if attempts["flaky"] == 1:
                return httpx.Response(503)
            return httpx.Response(200, text="ok", headers={"content-type": "text/plain"})
        attempts["missing"] += 1
        return httpx.Response(404)

    async def _run():
        async with WebContentClient(transport=httpx.MockTransport(handler), max_retries=3) as client:
            return await client.fetch("https://example.com/flaky"), await client.fetch("https://example.com/missing")

    flaky, missing = asyncio.run(_run())
    assert flaky == "ok"
    assert missing == ""
    assert attempts == {"flaky": 2, "missing": 1}


def test_connection_errors_return_none():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    async def _run():
        async with WebContentClient(transport=httpx.MockTransport(handler)) as client:
            return await client.fetch_page("https://example.com/")

    assert asyncio.run(_run()) is None


def test_fetch_many_keeps_every_requested_url():
    pages = {"/a": html_page("a")}
    urls = ["https://example.com/a", "https://example.com/b"]

    async def _run():
        async with WebContentClient(transport=site_transport(pages)) as client:
            return await client.fetch_many(urls, concurrency=2)

    results = asyncio.run(_run())
    assert list(results) == urls
    assert "a" in results["https://example.com/a"]
    assert results["https://example.com/b"] == ""
