import asyncio
from contextlib import asynccontextmanager

import pytest
from prometheus_client import REGISTRY

from core.exceptions import BindError
from models.proxy import ProxyConfig
from services.proxy.bridge import CONNECTION_ESTABLISHED, HttpProxyBridge, run_http_proxy_bridge

DENIED = b"HTTP/1.1 407 Proxy Authentication Required\r\nProxy-Authenticate: Basic\r\n\r\n"


async def read_head(reader: asyncio.StreamReader) -> bytes:
    head = b""
    while True:
        line = await reader.readline()
        head += line
        if not line or line == b"\r\n":
            return head


class FakeUpstream:
    """Scriptable upstream proxy recording every request head it receives."""

    def __init__(self, reply: bytes, echo: bool = False):
        self.reply = reply
        self.echo = echo
        self.heads = []
        self.server = None

    @property
    def port(self) -> int:
        return self.server.sockets[0].getsockname()[1]

    async def handle(self, reader, writer):
        self.heads.append(await read_head(reader))
        writer.write(self.reply)
        await writer.drain()
        if self.echo:
            while True:
                data = await reader.read(65536)
                if not data:
                    break
                writer.write(data)
                await writer.drain()
        writer.close()


@asynccontextmanager
async def running_bridge(upstream: FakeUpstream, username=None, password=None):
    upstream.server = await asyncio.start_server(upstream.handle, "127.0.0.1", 0)
    config = ProxyConfig(
        upstream_host="127.0.0.1",
        upstream_port=upstream.port,
        username=username,
        password=password,
    )
    bridge = HttpProxyBridge(config)
    await bridge.bind("127.0.0.1", 0)
    task = asyncio.create_task(bridge.serve())
    await asyncio.sleep(0.01)
    try:
        yield bridge
    finally:
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)
        upstream.server.close()
        await upstream.server.wait_closed()


async def open_client(bridge: HttpProxyBridge):
    return await asyncio.open_connection("127.0.0.1", bridge.local_address[1])


@pytest.mark.asyncio
class TestConnectTunnel:
    """CONNECT requests re-issued to the upstream proxy."""

    async def test_injects_credentials_and_splices(self):
        upstream = FakeUpstream(b"HTTP/1.1 200 Connection established\r\n\r\n", echo=True)
        async with running_bridge(upstream, "u", "p") as bridge:
            reader, writer = await open_client(bridge)
            writer.write(b"CONNECT example.com:443 HTTP/1.1\r\n\r\n")
            await writer.drain()

            assert await reader.readexactly(len(CONNECTION_ESTABLISHED)) == CONNECTION_ESTABLISHED

            writer.write(b"\x16\x03\x01 client hello")
            await writer.drain()
            assert await reader.readexactly(16) == b"\x16\x03\x01 client hello"
            writer.close()

        head = upstream.heads[0]
        assert head.startswith(b"CONNECT example.com:443 HTTP/1.1\r\n")
        assert b"Host: example.com:443\r\n" in head
        assert b"Proxy-Authorization: Basic dTpw\r\n" in head
        assert head.endswith(b"\r\n\r\n")

    async def test_no_credentials_no_authorization_header(self):
        upstream = FakeUpstream(b"HTTP/1.1 200 OK\r\n\r\n", echo=True)
        async with running_bridge(upstream) as bridge:
            reader, writer = await open_client(bridge)
            writer.write(b"CONNECT example.com:443 HTTP/1.1\r\nHost: example.com:443\r\n\r\n")
            await writer.drain()
            assert await reader.readexactly(len(CONNECTION_ESTABLISHED)) == CONNECTION_ESTABLISHED
            writer.close()

        assert b"Proxy-Authorization" not in upstream.heads[0]

    async def test_denied_response_forwarded_verbatim(self):
        upstream = FakeUpstream(DENIED)
        refused_before = REGISTRY.get_sample_value("proxy_bridge_upstream_refused_total") or 0
        async with running_bridge(upstream, "u", "p") as bridge:
            reader, writer = await open_client(bridge)
            writer.write(b"CONNECT example.com:443 HTTP/1.1\r\n\r\n")
            await writer.drain()

            received = await asyncio.wait_for(reader.read(), timeout=5)
            writer.close()

        assert received == DENIED
        assert REGISTRY.get_sample_value("proxy_bridge_upstream_refused_total") == refused_before + 1

    async def test_large_payload_round_trips(self):
        payload = bytes(range(256)) * 4096  # 1 MiB
        upstream = FakeUpstream(b"HTTP/1.1 200 Connection established\r\n\r\n", echo=True)
        async with running_bridge(upstream, "u", "p") as bridge:
            reader, writer = await open_client(bridge)
            writer.write(b"CONNECT example.com:443 HTTP/1.1\r\n\r\n")
            await writer.drain()
            await reader.readexactly(len(CONNECTION_ESTABLISHED))

            async def send():
                writer.write(payload)
                await writer.drain()

            _, echoed = await asyncio.wait_for(
                asyncio.gather(send(), reader.readexactly(len(payload))),
                timeout=10,
            )
            writer.close()

        assert echoed == payload


@pytest.mark.asyncio
class TestPlainHttp:
    """Absolute-URI requests forwarded with headers untouched."""

    async def test_authorization_precedes_client_headers(self):
        upstream = FakeUpstream(b"HTTP/1.1 200 OK\r\nContent-Length: 2\r\n\r\nok")
        async with running_bridge(upstream, "u", "p") as bridge:
            reader, writer = await open_client(bridge)
            writer.write(
                b"GET http://example.com/ HTTP/1.1\r\n"
                b"Host: example.com\r\n"
                b"Accept: */*\r\n"
                b"\r\n"
            )
            await writer.drain()
            received = await asyncio.wait_for(reader.read(), timeout=5)
            writer.close()

        assert upstream.heads[0] == (
            b"GET http://example.com/ HTTP/1.1\r\n"
            b"Proxy-Authorization: Basic dTpw\r\n"
            b"Host: example.com\r\n"
            b"Accept: */*\r\n"
            b"\r\n"
        )
        assert received == b"HTTP/1.1 200 OK\r\nContent-Length: 2\r\n\r\nok"

    async def test_headers_unchanged_without_credentials(self):
        upstream = FakeUpstream(b"HTTP/1.1 204 No Content\r\n\r\n")
        request = b"GET http://example.com/x HTTP/1.1\r\nHost: example.com\r\nX-Odd:  spaced \r\n\r\n"
        async with running_bridge(upstream) as bridge:
            reader, writer = await open_client(bridge)
            writer.write(request)
            await writer.drain()
            await asyncio.wait_for(reader.read(), timeout=5)
            writer.close()

        assert upstream.heads[0] == request

    async def test_empty_connection_is_dropped(self):
        upstream = FakeUpstream(b"")
        async with running_bridge(upstream) as bridge:
            reader, writer = await open_client(bridge)
            writer.write_eof()
            assert await asyncio.wait_for(reader.read(), timeout=5) == b""
            writer.close()

        assert upstream.heads == []

    async def test_malformed_request_line_closes_connection(self):
        upstream = FakeUpstream(b"")
        async with running_bridge(upstream) as bridge:
            reader, writer = await open_client(bridge)
            writer.write(b"GARBAGE\r\n\r\n")
            await writer.drain()
            assert await asyncio.wait_for(reader.read(), timeout=5) == b""
            writer.close()

        assert upstream.heads == []


@pytest.mark.asyncio
class TestBind:

    async def test_address_in_use_raises_bind_error(self):
        occupant = await asyncio.start_server(lambda r, w: w.close(), "127.0.0.1", 0)
        port = occupant.sockets[0].getsockname()[1]
        try:
            with pytest.raises(BindError) as exc_info:
                await HttpProxyBridge(ProxyConfig()).bind("127.0.0.1", port)
            assert exc_info.value.details["address"] == f"127.0.0.1:{port}"
        finally:
            occupant.close()
            await occupant.wait_closed()

    async def test_run_fails_fast_on_taken_port(self):
        occupant = await asyncio.start_server(lambda r, w: w.close(), "127.0.0.1", 0)
        port = occupant.sockets[0].getsockname()[1]
        try:
            with pytest.raises(BindError):
                await asyncio.wait_for(run_http_proxy_bridge("127.0.0.1", port, ProxyConfig()), timeout=5)
        finally:
            occupant.close()
            await occupant.wait_closed()

    async def test_serve_requires_bind(self):
        with pytest.raises(RuntimeError):
            await HttpProxyBridge(ProxyConfig()).serve()


def test_authorization_header_line():
    assert ProxyConfig(username="u", password="p").authorization_header() == b"Proxy-Authorization: Basic dTpw\r\n"
    assert ProxyConfig().authorization_header() is None


def test_half_configured_credentials_rejected():
    with pytest.raises(ValueError):
        ProxyConfig(username="u")


@pytest.mark.parametrize("username, password", [("", ""), ("  ", ""), (None, ""), ("", None)])
def test_blank_credentials_mean_none(username, password):
    config = ProxyConfig(username=username, password=password)

    assert not config.has_credentials
    assert config.authorization_header() is None
    assert config.to_url() == "http://127.0.0.1:1080"


def test_blank_credentials_from_environment(monkeypatch):
    from core.config import Settings

    monkeypatch.setenv("PROXY_USERNAME", "")
    monkeypatch.setenv("PROXY_PASSWORD", "")

    assert Settings(_env_file=None).proxy_config().authorization_header() is None
