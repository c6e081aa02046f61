"""
Default probe: checks whether a target address serves the test identifiers.

For every identifier a TLS connection is opened to ``target:port`` with the
identifier as SNI and a HEAD request is sent with it as Host. The target
passes only when every identifier answers with an HTTP status line. With no
identifiers configured the probe is a plain TCP connect.
"""
from __future__ import annotations
import asyncio
import ssl
from typing import Optional, Sequence

DEFAULT_PORT = 443


class ProbeError(Exception):
    """Raised when a target fails a probe; the message is the reason."""


def create_ssl_context(verify: bool = True) -> ssl.SSLContext:
    context = ssl.create_default_context()
    if not verify:
        context.check_hostname = False
        context.verify_mode = ssl.CERT_NONE
    return context


async def _close_writer(writer: asyncio.StreamWriter, timeout: float) -> None:
    writer.close()
    try:
        await asyncio.wait_for(writer.wait_closed(), timeout)
    except (OSError, asyncio.TimeoutError):
        pass


async def check_tcp_port(target: str, port: int, timeout: float) -> None:
    """Raises ProbeError unless a TCP connection to the port succeeds."""
    try:
        _, writer = await asyncio.wait_for(asyncio.open_connection(target, port), timeout)
    except asyncio.TimeoutError:
        raise ProbeError(f"connect to port {port} timed out") from None
    except OSError as e:
        raise ProbeError(f"connect to port {port} failed: {e}") from e
    await _close_writer(writer, timeout)


async def _head_request(target: str, identifier: str, port: int, ssl_context: ssl.SSLContext) -> bytes:
    reader, writer = await asyncio.open_connection(
        target, port, ssl=ssl_context, server_hostname=identifier
    )
    try:
        request = (
            f"HEAD / HTTP/1.1\r\n"
            f"Host: {identifier}\r\n"
            f"User-Agent: rangescan\r\n"
            f"Connection: close\r\n\r\n"
        )
        writer.write(request.encode('ascii'))
        await writer.drain()
        return await reader.readline()
    finally:
        writer.close()


async def check_identifier(
    target: str,
    identifier: str,
    port: int,
    timeout: float,
    ssl_context: ssl.SSLContext,
) -> None:
    """Raises ProbeError unless ``identifier`` is served over TLS by the target."""
    try:
        status_line = await asyncio.wait_for(
            _head_request(target, identifier, port, ssl_context), timeout
        )
    except asyncio.TimeoutError:
        raise ProbeError(f"{identifier}: timed out after {timeout:g}s") from None
    except OSError as e:
        # ssl.SSLError and ConnectionError are both OSError subclasses.
        raise ProbeError(f"{identifier}: {e}") from e

    if not status_line.startswith(b"HTTP/"):
        raise ProbeError(f"{identifier}: unexpected response {status_line[:40]!r}")


async def probe_target(
    target: str,
    test_identifiers: Sequence[str],
    timeout_ms: int,
    port: int = DEFAULT_PORT,
    ssl_context: Optional[ssl.SSLContext] = None,
) -> None:
    """Probes one target against every test identifier; raises ProbeError on failure."""
    timeout = timeout_ms / 1000.0
    if not test_identifiers:
        await check_tcp_port(target, port, timeout)
        return
    if ssl_context is None:
        ssl_context = create_ssl_context()
    for identifier in test_identifiers:
        await check_identifier(target, identifier, port, timeout, ssl_context)
