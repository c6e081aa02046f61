import asyncio
import ssl
from pathlib import Path

import pytest

from rangescan.probe import ProbeError, check_identifier, create_ssl_context, probe_target


async def start_server(handler):
    server = await asyncio.start_server(handler, '127.0.0.1', 0)
    port = server.sockets[0].getsockname()[1]
    return server, port


def test_tcp_connect_probe_succeeds_against_listening_port():
    async def scenario():
        async def handler(reader, writer):
            writer.close()

        server, port = await start_server(handler)
        async with server:
            await probe_target('127.0.0.1', [], timeout_ms=2000, port=port)

    asyncio.run(scenario())


def test_tcp_connect_probe_fails_against_closed_port():
    async def scenario():
        server, port = await start_server(lambda r, w: w.close())
        server.close()
        await server.wait_closed()
        with pytest.raises(ProbeError):
            await probe_target('127.0.0.1', [], timeout_ms=2000, port=port)

    asyncio.run(scenario())


def test_identifier_check_times_out_on_silent_server():
    async def scenario():
        hold = asyncio.Event()

        async def handler(reader, writer):
            await hold.wait()
            writer.close()

        server, port = await start_server(handler)
        async with server:
            with pytest.raises(ProbeError) as excinfo:
                await check_identifier('127.0.0.1', 'example.com', port, 0.2, create_ssl_context())
            hold.set()
        return str(excinfo.value)

    message = asyncio.run(scenario())
    assert message.startswith("example.com: timed out")


def test_insecure_context_skips_verification():
    context = create_ssl_context(verify=False)
    assert context.check_hostname is False
    assert context.verify_mode.name == "CERT_NONE"


CERT_DIR = Path(__file__).parent / "data"


@pytest.fixture
def server_context():
    context = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)
    context.load_cert_chain(str(CERT_DIR / "localhost.pem"), str(CERT_DIR / "localhost.key"))
    return context


async def start_tls_server(server_context, replies):
    """Serves one reply per SNI name; records the names clients sent."""
    seen = []

    def on_sni(sslobj, server_name, context):
        seen.append(server_name)

    server_context.sni_callback = on_sni

    async def handler(reader, writer):
        request = await reader.readuntil(b"\r\n\r\n")
        host = next(line.split(b":", 1)[1].strip().decode()
                    for line in request.split(b"\r\n") if line.lower().startswith(b"host:"))
        writer.write(replies[host])
        await writer.drain()
        writer.close()

    server = await asyncio.start_server(handler, '127.0.0.1', 0, ssl=server_context)
    return server, server.sockets[0].getsockname()[1], seen


def test_identifier_answering_http_passes(server_context):
    async def scenario():
        server, port, seen = await start_tls_server(
            server_context, {'good.example': b"HTTP/1.1 200 OK\r\n\r\n"})
        async with server:
            await probe_target('127.0.0.1', ['good.example'], timeout_ms=2000, port=port,
                               ssl_context=create_ssl_context(verify=False))
        return seen

    assert asyncio.run(scenario()) == ['good.example']


def test_non_http_reply_fails(server_context):
    async def scenario():
        server, port, _ = await start_tls_server(
            server_context, {'ssh.example': b"SSH-2.0-OpenSSH_9.6\r\n"})
        async with server:
            with pytest.raises(ProbeError) as excinfo:
                await probe_target('127.0.0.1', ['ssh.example'], timeout_ms=2000, port=port,
                                   ssl_context=create_ssl_context(verify=False))
        return str(excinfo.value)

    message = asyncio.run(scenario())
    assert message.startswith("ssh.example: unexpected response")


def test_every_identifier_must_pass(server_context):
    async def scenario():
        server, port, seen = await start_tls_server(server_context, {
            'first.example': b"HTTP/1.1 301 Moved Permanently\r\n\r\n",
            'second.example': b"garbage\r\n",
        })
        async with server:
            with pytest.raises(ProbeError) as excinfo:
                await probe_target('127.0.0.1', ['first.example', 'second.example'], timeout_ms=2000,
                                   port=port, ssl_context=create_ssl_context(verify=False))
        return seen, str(excinfo.value)

    seen, message = asyncio.run(scenario())
    assert seen == ['first.example', 'second.example']
    assert message.startswith("second.example:")


def test_untrusted_certificate_fails_when_verifying(server_context):
    async def scenario():
        server, port, _ = await start_tls_server(
            server_context, {'good.example': b"HTTP/1.1 200 OK\r\n\r\n"})
        async with server:
            with pytest.raises(ProbeError):
                await probe_target('127.0.0.1', ['good.example'], timeout_ms=2000, port=port,
                                   ssl_context=create_ssl_context(verify=True))

    asyncio.run(scenario())
