"""
No-auth to auth HTTP proxy bridge.

The browser is pointed at this bridge because chromedriver cannot hand
credentials to an HTTP proxy. Every client connection carries exactly one
request line; the bridge dials the upstream proxy, injects
`Proxy-Authorization` when credentials are configured and then splices bytes
in both directions until either side closes.

Two request shapes are handled:

* ``CONNECT host:port HTTP/1.1`` (HTTPS tunnels) is re-issued to the upstream.
  A non-200 answer is forwarded to the client verbatim.
* ``METHOD http://absolute/uri HTTP/1.1`` (plain HTTP) is forwarded as-is,
  the upstream acting as a proxy rather than an origin.

Header lines are retransmitted byte-for-byte; the only change ever made is
the single injected authorization header.
"""
from typing import List, Optional, Set, Tuple
import asyncio
from loguru import logger
from prometheus_client import Counter

from core.exceptions import BadRequestError, BindError, UpstreamRefusedError
from models.proxy import ProxyConfig

BUFFER_SIZE = 65536
CONNECTION_ESTABLISHED = b"HTTP/1.1 200 Connection established\r\n\r\n"

PROXY_CONNECTIONS = Counter('proxy_bridge_connections_total', 'Client connections handled by the proxy bridge', ['method'])
PROXY_UPSTREAM_REFUSED = Counter('proxy_bridge_upstream_refused_total', 'CONNECT requests refused by the upstream proxy')

async def _read_header_block(reader: asyncio.StreamReader) -> Tuple[List[bytes], bytes]:
    """Read header lines up to the blank line.

    Returns the raw lines (terminators kept) and the blank line itself,
    which is empty when the peer hit EOF first.
    """
    lines = []
    while True:
        line = await reader.readline()
        if not line or not line.strip():
            return lines, line
        lines.append(line)

async def _pipe(reader: asyncio.StreamReader, writer: asyncio.StreamWriter):
    while True:
        data = await reader.read(BUFFER_SIZE)
        if not data:
            break
        writer.write(data)
        await writer.drain()

async def forward_streams(client_reader: asyncio.StreamReader, client_writer: asyncio.StreamWriter,
                          upstream_reader: asyncio.StreamReader, upstream_writer: asyncio.StreamWriter):
    """Copy bytes both ways until either direction reaches EOF"""
    tasks = [
        asyncio.ensure_future(_pipe(client_reader, upstream_writer)),
        asyncio.ensure_future(_pipe(upstream_reader, client_writer)),
    ]
    try:
        done, _ = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
    finally:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    for task in done:
        if not task.cancelled() and task.exception() is not None:
            logger.warning(f"Bidirectional forwarding ended with error: {task.exception()}")
            raise task.exception()

async def _close(writer: Optional[asyncio.StreamWriter]):
    if writer is None or writer.is_closing():
        return
    writer.close()
    try:
        await writer.wait_closed()
    except (ConnectionError, OSError):
        pass

class HttpProxyBridge:
    """
    Local HTTP proxy that forwards every connection to the upstream proxy
    described by `config`.
    """

    def __init__(self, config: ProxyConfig):
        self.config = config
        self._server: Optional[asyncio.AbstractServer] = None
        self._connections: Set[asyncio.StreamWriter] = set()

    async def bind(self, host: str = "0.0.0.0", port: int = 8080):
        """Bind the listener. Raises BindError when the address is taken."""
        try:
            self._server = await asyncio.start_server(
                self._handle_client,
                host,
                port,
                reuse_address=True,
                start_serving=False,
            )
        except OSError as e:
            raise BindError(f"{host}:{port}", str(e)) from e
        logger.info(f"HTTP proxy bridge bound to {host}:{self.local_address[1]}")
        logger.info(f"Forwarding to HTTP proxy at {self.config.upstream_address}")

    @property
    def local_address(self) -> Tuple[str, int]:
        if self._server is None:
            raise RuntimeError("Server not bound. Call bind() first.")
        host, port = self._server.sockets[0].getsockname()[:2]
        return host, port

    async def serve(self):
        """Accept connections until cancelled; each one runs in its own task"""
        if self._server is None:
            raise RuntimeError("Server not bound. Call bind() first.")
        try:
            await self._server.serve_forever()
        finally:
            await self.close()

    async def close(self):
        if self._server is None:
            return
        server, self._server = self._server, None
        server.close()
        for writer in list(self._connections):
            writer.close()
        await server.wait_closed()
        logger.info("HTTP proxy bridge closed")

    async def _handle_client(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter):
        peer = writer.get_extra_info("peername")
        self._connections.add(writer)
        try:
            request_line = await reader.readline()
            if not request_line.strip():
                # Empty request, possibly from a port scanner
                return

            logger.debug(f"Request line from {peer}: {request_line.strip()!r}")
            parts = request_line.split()
            if len(parts) < 3:
                raise BadRequestError("Invalid HTTP request line")

            if parts[0] == b"CONNECT":
                PROXY_CONNECTIONS.labels(method="CONNECT").inc()
                await self._handle_connect(reader, writer, parts[1].decode("latin-1"))
            else:
                PROXY_CONNECTIONS.labels(method="HTTP").inc()
                await self._handle_regular(reader, writer, request_line)

        except UpstreamRefusedError as e:
            PROXY_UPSTREAM_REFUSED.inc()
            logger.warning(f"{e.message} (client {peer})")
        except Exception as e:
            logger.error(f"Error handling client {peer}: {type(e).__name__}: {e}")
        finally:
            self._connections.discard(writer)
            await _close(writer)

    async def _connect_upstream(self) -> Tuple[asyncio.StreamReader, asyncio.StreamWriter]:
        try:
            return await asyncio.open_connection(self.config.upstream_host, self.config.upstream_port)
        except OSError as e:
            logger.error(f"Failed to reach upstream proxy {self.config.upstream_address}: {e}")
            raise

    async def _handle_connect(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter, target: str):
        logger.info(f"Handling CONNECT to {target}")
        upstream_reader, upstream_writer = await self._connect_upstream()
        try:
            request = f"CONNECT {target} HTTP/1.1\r\nHost: {target}\r\n".encode("latin-1")
            auth = self.config.authorization_header()
            if auth:
                request += auth
            request += b"Connection: close\r\n\r\n"
            upstream_writer.write(request)
            await upstream_writer.drain()

            status_line = await upstream_reader.readline()
            if b"200" not in status_line:
                lines, blank = await _read_header_block(upstream_reader)
                writer.write(status_line + b"".join(lines) + blank)
                await writer.drain()
                raise UpstreamRefusedError(status_line.decode("latin-1").strip())

            # Tunnel is up: drop the upstream's headers and the rest of the client's CONNECT
            await _read_header_block(upstream_reader)
            await _read_header_block(reader)
            writer.write(CONNECTION_ESTABLISHED)
            await writer.drain()

            await forward_streams(reader, writer, upstream_reader, upstream_writer)
        finally:
            await _close(upstream_writer)

    async def _handle_regular(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter, request_line: bytes):
        logger.info(f"Handling regular request: {request_line.decode('latin-1').strip()}")
        upstream_reader, upstream_writer = await self._connect_upstream()
        try:
            upstream_writer.write(request_line)

            headers, _ = await _read_header_block(reader)
            auth = self.config.authorization_header()
            if auth:
                upstream_writer.write(auth)
            for header in headers:
                upstream_writer.write(header)
            upstream_writer.write(b"\r\n")
            await upstream_writer.drain()

            # Request body (if any) and the response
            await forward_streams(reader, writer, upstream_reader, upstream_writer)
        finally:
            await _close(upstream_writer)

async def run_http_proxy_bridge(host: str, port: int, config: ProxyConfig):
    """Bind and serve a bridge on the given address"""
    bridge = HttpProxyBridge(config)
    await bridge.bind(host, port)
    await bridge.serve()
