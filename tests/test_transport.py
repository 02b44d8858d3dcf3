"""
Tests for the HTTP Transport
============================

Runs the transport against a local aiohttp server.
"""

import asyncio
from unittest.mock import patch

import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer as LocalServer

from loneless.llm.errors import DecodeError, TransportError
from loneless.llm.transport import HttpRequest, HttpResponse, HttpTransport, MultipartField, RequestTimeout


async def _echo_json(request: web.Request) -> web.Response:
    return web.json_response(
        {
            "query": dict(request.query),
            "body": await request.json(),
            "auth": request.headers.get("Authorization"),
        }
    )


async def _echo_form(request: web.Request) -> web.Response:
    form = await request.post()
    upload = form["file"]
    return web.json_response(
        {
            "model": form["model"],
            "filename": upload.filename,
            "content_type": upload.content_type,
            "size": len(upload.file.read()),
        }
    )


async def _stream(request: web.Request) -> web.StreamResponse:
    response = web.StreamResponse()
    response.content_type = "text/event-stream"
    await response.prepare(request)
    for part in (b"data: one\n", b"data: two\n"):
        await response.write(part)
    await response.write_eof()
    return response


async def _slow(request: web.Request) -> web.Response:
    await asyncio.sleep(2)
    return web.Response(text="late")


async def _rate_limited(request: web.Request) -> web.Response:
    return web.Response(status=429, text='{"error": "quota"}')


def _app() -> web.Application:
    app = web.Application()
    app.router.add_post("/json", _echo_json)
    app.router.add_post("/form", _echo_form)
    app.router.add_post("/stream", _stream)
    app.router.add_post("/slow", _slow)
    app.router.add_post("/limited", _rate_limited)
    return app


class TestHttpResponse:
    def test_json_decode_error(self):
        response = HttpResponse(status=200, body=b"<html>")

        with pytest.raises(DecodeError) as exc_info:
            response.json()
        assert exc_info.value.raw_body == "<html>"

    def test_ok(self):
        assert HttpResponse(status=204).ok
        assert not HttpResponse(status=429).ok


class TestHttpTransport:
    @pytest.mark.asyncio
    async def test_json_request(self):
        transport = HttpTransport()
        async with LocalServer(_app()) as server:
            try:
                response = await transport.send(
                    HttpRequest(
                        url=str(server.make_url("/json")),
                        headers={"Authorization": "Bearer sk-test", "Content-Type": "application/json"},
                        params={"key": "abc"},
                        json_body={"text": "Привет"},
                    )
                )
            finally:
                await transport.close()

        assert response.ok
        assert response.json() == {"query": {"key": "abc"}, "body": {"text": "Привет"}, "auth": "Bearer sk-test"}

    @pytest.mark.asyncio
    async def test_multipart_request(self):
        transport = HttpTransport()
        async with LocalServer(_app()) as server:
            try:
                response = await transport.send(
                    HttpRequest(
                        url=str(server.make_url("/form")),
                        form_fields=[
                            MultipartField(name="file", value=b"\x00" * 64, filename="audio.m4a", content_type="audio/m4a"),
                            MultipartField(name="model", value="whisper-1"),
                        ],
                    )
                )
            finally:
                await transport.close()

        assert response.json() == {"model": "whisper-1", "filename": "audio.m4a", "content_type": "audio/m4a", "size": 64}

    @pytest.mark.asyncio
    async def test_error_status_returned(self):
        transport = HttpTransport()
        async with LocalServer(_app()) as server:
            try:
                response = await transport.send(HttpRequest(url=str(server.make_url("/limited"))))
            finally:
                await transport.close()

        assert response.status == 429
        assert "quota" in response.text

    @pytest.mark.asyncio
    async def test_stream_chunks(self):
        transport = HttpTransport()
        async with LocalServer(_app()) as server:
            try:
                async with transport.stream(HttpRequest(url=str(server.make_url("/stream")))) as stream:
                    assert stream.ok
                    body = b"".join([chunk async for chunk in stream.iter_chunks()])
            finally:
                await transport.close()

        assert body == b"data: one\ndata: two\n"

    @pytest.mark.asyncio
    async def test_timeout_becomes_transport_error(self):
        transport = HttpTransport()
        async with LocalServer(_app()) as server:
            try:
                with pytest.raises(TransportError):
                    await transport.send(
                        HttpRequest(url=str(server.make_url("/slow")), timeout=RequestTimeout(total=0.2))
                    )
            finally:
                await transport.close()

    @pytest.mark.asyncio
    async def test_connection_refused(self):
        transport = HttpTransport()
        try:
            with pytest.raises(TransportError):
                await transport.send(HttpRequest(url="http://127.0.0.1:1/json"))
            with pytest.raises(TransportError):
                async with transport.stream(HttpRequest(url="http://127.0.0.1:1/stream")):
                    pass
        finally:
            await transport.close()

    @pytest.mark.asyncio
    async def test_failure_log_masks_query_key(self):
        transport = HttpTransport()
        try:
            with patch("loneless.llm.transport.logger") as mock_logger:
                with pytest.raises(TransportError):
                    await transport.send(
                        HttpRequest(url="http://127.0.0.1:1/json", params={"key": "AIzaSyD-secret-123"})
                    )
        finally:
            await transport.close()

        kwargs = mock_logger.warning.call_args.kwargs
        assert kwargs["params"] == {"key": "AIz********"}
        debug_kwargs = mock_logger.debug.call_args_list[0].kwargs
        assert "AIzaSyD-secret-123" not in repr(debug_kwargs)
