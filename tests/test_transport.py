"""Tests for the single-attempt HTTP transport against a local aiohttp server."""

from __future__ import annotations

import asyncio

import aiohttp
import pytest
from aiohttp import web

from nfeio.api.http.transport import (
    AsyncAccepted,
    HttpTransport,
    Request,
    build_params,
    build_url,
)
from nfeio.core import exceptions
from nfeio.core.exceptions import RateLimitError, ServerError, ValidationError
from tests.helpers import serve_api


async def _execute(base_url: str, request: Request, timeout: float = 5.0):
    transport = HttpTransport("test-key", base_url, timeout)
    try:
        return await transport.execute(request)
    finally:
        await transport.close()


def test_build_url_joins_with_single_slash() -> None:
    assert build_url("https://api.nfe.io/v1/", "/companies") == "https://api.nfe.io/v1/companies"
    assert build_url("https://api.nfe.io/v1", "companies") == "https://api.nfe.io/v1/companies"


def test_build_params_drops_none_and_renders_bools() -> None:
    assert build_params({"pageCount": 10, "hasTotals": True, "search": None}) == {
        "pageCount": "10",
        "hasTotals": "true",
    }
    assert build_params({"search": None}) is None
    assert build_params(None) is None


@pytest.mark.asyncio
async def test_json_body_and_headers() -> None:
    async def handler(request: web.Request) -> web.Response:
        return web.json_response(
            {
                "authorization": request.headers.get("Authorization"),
                "content_type": request.headers.get("Content-Type"),
                "user_agent": request.headers.get("User-Agent"),
                "payload": await request.json(),
            },
            status=201,
        )

    async with serve_api([web.post("/v1/companies/c1/serviceinvoices", handler)]) as base_url:
        response = await _execute(
            base_url, Request("POST", "/companies/c1/serviceinvoices", body={"description": "x"})
        )

    assert response.status == 201
    assert response.body["authorization"] == "test-key"
    assert response.body["content_type"] == "application/json"
    assert response.body["user_agent"].startswith("nfeio-python/")
    assert response.body["payload"] == {"description": "x"}


@pytest.mark.asyncio
async def test_query_params_are_rendered() -> None:
    async def handler(request: web.Request) -> web.Response:
        return web.json_response(dict(request.query))

    async with serve_api([web.get("/v1/companies", handler)]) as base_url:
        response = await _execute(
            base_url, Request("GET", "/companies", params={"pageCount": 1, "active": False, "q": None})
        )

    assert response.body == {"pageCount": "1", "active": "false"}


@pytest.mark.asyncio
async def test_multipart_body_keeps_its_own_content_type() -> None:
    async def handler(request: web.Request) -> web.Response:
        form = await request.post()
        upload = form["file"]
        return web.json_response(
            {
                "content_type": request.content_type,
                "has_boundary": "boundary=" in request.headers["Content-Type"],
                "filename": upload.filename,
                "file": upload.file.read().decode(),
                "password": form["password"],
            }
        )

    form = aiohttp.FormData()
    form.add_field("file", b"PFX-CONTENT", filename="cert.pfx", content_type="application/x-pkcs12")
    form.add_field("password", "s3cret")

    async with serve_api([web.post("/v1/companies/c1/certificate", handler)]) as base_url:
        response = await _execute(base_url, Request("POST", "/companies/c1/certificate", body=form))

    assert response.body == {
        "content_type": "multipart/form-data",
        "has_boundary": True,
        "filename": "cert.pfx",
        "file": "PFX-CONTENT",
        "password": "s3cret",
    }


@pytest.mark.asyncio
async def test_binary_and_text_bodies() -> None:
    async def pdf(request: web.Request) -> web.Response:
        return web.Response(body=b"%PDF-1.4 fake", content_type="application/pdf")

    async def text(request: web.Request) -> web.Response:
        return web.Response(text="pong")

    async def empty(request: web.Request) -> web.Response:
        return web.Response(status=204)

    routes = [web.get("/v1/pdf", pdf), web.get("/v1/text", text), web.delete("/v1/empty", empty)]
    async with serve_api(routes) as base_url:
        pdf_response = await _execute(base_url, Request("GET", "/pdf"))
        text_response = await _execute(base_url, Request("GET", "/text"))
        empty_response = await _execute(base_url, Request("DELETE", "/empty"))

    assert pdf_response.body == b"%PDF-1.4 fake"
    assert text_response.body == "pong"
    assert empty_response.status == 204
    assert empty_response.body is None


@pytest.mark.asyncio
async def test_invalid_json_is_a_server_error() -> None:
    async def handler(request: web.Request) -> web.Response:
        return web.Response(text="{oops", content_type="application/json")

    async with serve_api([web.get("/v1/broken", handler)]) as base_url:
        with pytest.raises(ServerError, match="Invalid JSON"):
            await _execute(base_url, Request("GET", "/broken"))


@pytest.mark.asyncio
@pytest.mark.parametrize("content_type", ["application/json", "text/plain"])
async def test_undecodable_body_is_a_server_error(content_type: str) -> None:
    async def handler(request: web.Request) -> web.Response:
        return web.Response(body=b"\xff\xfe\xfa", headers={"Content-Type": f"{content_type}; charset=utf-8"})

    async with serve_api([web.get("/v1/garbled", handler)]) as base_url:
        with pytest.raises(ServerError, match="Undecodable") as excinfo:
            await _execute(base_url, Request("GET", "/garbled"))

    assert excinfo.value.status_code == 200
    assert excinfo.value.body == b"\xff\xfe\xfa"


@pytest.mark.asyncio
async def test_accepted_with_location_returns_sentinel() -> None:
    location = "/v1/companies/c1/serviceinvoices/inv-9"

    async def handler(request: web.Request) -> web.Response:
        return web.Response(status=202, headers={"Location": location})

    async with serve_api([web.post("/v1/companies/c1/serviceinvoices", handler)]) as base_url:
        response = await _execute(base_url, Request("POST", "/companies/c1/serviceinvoices", body={}))

    assert response.status == 202
    assert response.body == AsyncAccepted(location)
    assert response.body.status == "pending"


@pytest.mark.asyncio
async def test_accepted_without_location_is_parsed_normally() -> None:
    async def handler(request: web.Request) -> web.Response:
        return web.json_response({"status": "queued"}, status=202)

    async with serve_api([web.post("/v1/jobs", handler)]) as base_url:
        response = await _execute(base_url, Request("POST", "/jobs", body={}))

    assert response.status == 202
    assert response.body == {"status": "queued"}


@pytest.mark.asyncio
async def test_error_statuses_are_classified() -> None:
    async def invalid(request: web.Request) -> web.Response:
        return web.json_response({"message": "borrower is required"}, status=400)

    async def throttled(request: web.Request) -> web.Response:
        return web.Response(status=429, text="slow down", headers={"Retry-After": "2"})

    routes = [web.post("/v1/invalid", invalid), web.get("/v1/throttled", throttled)]
    async with serve_api(routes) as base_url:
        with pytest.raises(ValidationError) as validation:
            await _execute(base_url, Request("POST", "/invalid", body={}))
        with pytest.raises(RateLimitError) as rate_limit:
            await _execute(base_url, Request("GET", "/throttled"))

    assert validation.value.message == "borrower is required"
    assert validation.value.body == {"message": "borrower is required"}
    assert rate_limit.value.retry_after == 2.0
    assert rate_limit.value.message == "slow down"


@pytest.mark.asyncio
async def test_timeout_is_classified() -> None:
    async def slow(request: web.Request) -> web.Response:
        await asyncio.sleep(0.5)
        return web.json_response({})

    async with serve_api([web.get("/v1/slow", slow)]) as base_url:
        with pytest.raises(exceptions.TimeoutError) as excinfo:
            await _execute(base_url, Request("GET", "/slow"), timeout=0.05)

    assert "timeout" in excinfo.value.message.lower()


@pytest.mark.asyncio
async def test_connection_failure_is_classified() -> None:
    with pytest.raises(exceptions.ConnectionError):
        await _execute("http://127.0.0.1:1/v1", Request("GET", "/companies"), timeout=2.0)


@pytest.mark.asyncio
async def test_close_leaves_injected_session_open() -> None:
    async with aiohttp.ClientSession() as session:
        transport = HttpTransport("test-key", session=session)
        await transport.close()

        assert not session.closed
