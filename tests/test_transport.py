from __future__ import annotations

import asyncio
import threading
import time
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from urllib.parse import parse_qs

import httpx
import pytest

from metrics_digest.errors import CancellationError, TransportError
from metrics_digest.transport import Transport


class _SinkHandler(BaseHTTPRequestHandler):
    posted: list[tuple[str, dict[str, list[str]]]] = []

    def log_message(self, format: str, *args) -> None:  # noqa: A002
        return

    def _send(self, status: int, body: bytes, content_type: str = "text/plain; charset=utf-8") -> None:
        self.send_response(status)
        self.send_header("Content-Type", content_type)
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    def do_GET(self) -> None:  # noqa: N802
        if self.path == "/ok":
            self._send(200, b'{"status":"success"}', "application/json")
            return
        if self.path == "/unavailable":
            self._send(503, b"backend overloaded")
            return
        if self.path == "/slow":
            self.send_response(200)
            self.send_header("Content-Type", "application/json")
            self.send_header("Content-Length", "1000")
            self.end_headers()
            try:
                self.wfile.write(b'{"data":')
                self.wfile.flush()
                time.sleep(1.5)
                self.wfile.write(b" " * 992)
            except OSError:
                pass
            return
        self._send(404, b"Not Found")

    def do_POST(self) -> None:  # noqa: N802
        n = int(self.headers.get("Content-Length") or "0")
        raw = self.rfile.read(n).decode("utf-8") if n > 0 else ""
        type(self).posted.append((self.headers.get("Content-Type") or "", parse_qs(raw)))
        if self.path == "/notify":
            self._send(200, b"ok")
            return
        self._send(400, b"chat not found")


@pytest.fixture(scope="module")
def sink_base_url() -> str:
    httpd = ThreadingHTTPServer(("127.0.0.1", 0), _SinkHandler)
    httpd.daemon_threads = True
    host, port = httpd.server_address
    thread = threading.Thread(target=httpd.serve_forever, daemon=True)
    thread.start()
    try:
        yield f"http://{host}:{port}"
    finally:
        httpd.shutdown()
        thread.join(timeout=5)
        httpd.server_close()


@pytest.mark.asyncio
async def test_get_returns_body(sink_base_url: str) -> None:
    async with Transport() as transport:
        body = await transport.send("GET", f"{sink_base_url}/ok")
    assert body == b'{"status":"success"}'


@pytest.mark.asyncio
async def test_non_200_status_raises_with_code_and_body(sink_base_url: str) -> None:
    async with Transport() as transport:
        with pytest.raises(TransportError) as excinfo:
            await transport.send("GET", f"{sink_base_url}/unavailable")
    err = excinfo.value
    assert err.status_code == 503
    assert err.body == "backend overloaded"
    assert "503" in str(err)
    assert "backend overloaded" in str(err)


@pytest.mark.asyncio
async def test_post_is_form_encoded_with_parse_mode(sink_base_url: str) -> None:
    _SinkHandler.posted.clear()
    async with Transport(parse_mode="HTML") as transport:
        await transport.send("POST", f"{sink_base_url}/notify", "Queues on Hawk\n\norders: 42")
    content_type, fields = _SinkHandler.posted[-1]
    assert content_type.startswith("application/x-www-form-urlencoded")
    assert fields["message"] == ["Queues on Hawk\n\norders: 42"]
    assert fields["parse_mode"] == ["HTML"]


@pytest.mark.asyncio
async def test_post_rejected_by_sink_raises(sink_base_url: str) -> None:
    async with Transport() as transport:
        with pytest.raises(TransportError) as excinfo:
            await transport.send("POST", f"{sink_base_url}/elsewhere", "report")
    assert excinfo.value.status_code == 400
    assert excinfo.value.method == "POST"


@pytest.mark.asyncio
async def test_connection_failure_is_transport_error() -> None:
    async with Transport(timeout_seconds=2.0) as transport:
        with pytest.raises(TransportError) as excinfo:
            await transport.send("GET", "http://127.0.0.1:1/api/v1/query")
    assert excinfo.value.status_code is None
    assert isinstance(excinfo.value.__cause__, httpx.HTTPError)


@pytest.mark.asyncio
async def test_cancel_during_body_read_raises_cancellation(sink_base_url: str) -> None:
    cancel = asyncio.Event()
    asyncio.get_running_loop().call_later(0.2, cancel.set)
    started = time.monotonic()
    async with Transport() as transport:
        with pytest.raises(CancellationError):
            await transport.send("GET", f"{sink_base_url}/slow", cancel=cancel)
    assert time.monotonic() - started < 1.4


@pytest.mark.asyncio
async def test_task_cancel_waits_for_in_flight_exchange(sink_base_url: str) -> None:
    cancel = asyncio.Event()
    async with Transport() as transport:
        before = asyncio.all_tasks()
        sender = asyncio.create_task(transport.send("GET", f"{sink_base_url}/slow", cancel=cancel))
        await asyncio.sleep(0.2)
        sender.cancel()
        with pytest.raises(asyncio.CancelledError):
            await sender
        await asyncio.sleep(0)
        leftover = [t for t in asyncio.all_tasks() - before if t is not sender and not t.done()]
        assert leftover == []


@pytest.mark.asyncio
async def test_already_cancelled_sends_nothing(sink_base_url: str) -> None:
    _SinkHandler.posted.clear()
    cancel = asyncio.Event()
    cancel.set()
    async with Transport() as transport:
        with pytest.raises(CancellationError):
            await transport.send("POST", f"{sink_base_url}/notify", "report", cancel=cancel)
    assert _SinkHandler.posted == []


@pytest.mark.asyncio
async def test_injected_client_is_not_closed(sink_base_url: str) -> None:
    async with httpx.AsyncClient() as client:
        async with Transport(client) as transport:
            await transport.send("GET", f"{sink_base_url}/ok")
        assert not client.is_closed
