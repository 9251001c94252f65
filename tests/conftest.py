"""
Pytest configuration for tiny_transport tests.

This file contains shared fixtures: a throwaway certificate authority,
loopback plaintext/TLS servers and client identities.
"""

import asyncio
import socket
import ssl
import struct
import threading
from typing import List, Optional

import pytest
import pytest_asyncio
import trustme
from cryptography.hazmat.primitives import serialization

from tiny_transport.network import context as context_module


SERVER_NAME = "example.org"


def common_name(peercert: dict) -> Optional[str]:
    """Extract the subject commonName from a getpeercert() dict."""
    for rdn in peercert.get("subject", ()):
        for key, value in rdn:
            if key == "commonName":
                return value
    return None


def make_identity(ca: trustme.CA, name: str) -> bytes:
    """Issue a client certificate and return it with a PKCS#8 key as PEM."""
    leaf = ca.issue_cert(f"{name}.{SERVER_NAME}", common_name=name)
    key = serialization.load_pem_private_key(leaf.private_key_pem.bytes(), password=None)
    pkcs8 = key.private_bytes(
        serialization.Encoding.PEM,
        serialization.PrivateFormat.PKCS8,
        serialization.NoEncryption(),
    )
    return leaf.cert_chain_pems[0].bytes() + pkcs8


class LoopbackServer:
    """
    Echo server on 127.0.0.1 for exercising real connections.

    Optionally greets each client with the commonName of the certificate it
    presented, and can stay silent to simulate a stalled handshake. After the
    greeting it can also drop the connection without an orderly close, either
    plainly or with a TCP reset.
    """

    def __init__(
        self,
        ssl_context: Optional[ssl.SSLContext] = None,
        greet_with_peer_name: bool = False,
        greeting: Optional[bytes] = None,
        close_after_greeting: bool = False,
        silent: bool = False,
        abort_after_greeting: bool = False,
        reset: bool = False,
    ) -> None:
        self.ssl_context = ssl_context
        self.greet_with_peer_name = greet_with_peer_name
        self.greeting = greeting
        self.close_after_greeting = close_after_greeting
        self.silent = silent
        self.abort_after_greeting = abort_after_greeting or reset
        self.reset = reset
        self.connections = 0
        self.peer_names: List[Optional[str]] = []
        self.received = bytearray()
        self.connected = asyncio.Event()
        self.disconnected = asyncio.Event()
        self._writers: List[asyncio.StreamWriter] = []
        self._server: Optional[asyncio.AbstractServer] = None

    async def start(self) -> "LoopbackServer":
        self._server = await asyncio.start_server(
            self._handle, "127.0.0.1", 0, ssl=self.ssl_context
        )
        return self

    @property
    def address(self):
        return self._server.sockets[0].getsockname()[:2]

    async def _handle(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        self.connections += 1
        self._writers.append(writer)
        self.connected.set()
        try:
            peercert = writer.get_extra_info("peercert")
            if self.greet_with_peer_name:
                name = common_name(peercert) if peercert else None
                self.peer_names.append(name)
                writer.write(f"{name}\r\n".encode())
                await writer.drain()
            if self.greeting is not None:
                writer.write(self.greeting)
                await writer.drain()
            if self.close_after_greeting:
                return
            if self.abort_after_greeting:
                if self.reset:
                    sock = writer.get_extra_info("socket")
                    sock.setsockopt(socket.SOL_SOCKET, socket.SO_LINGER, struct.pack("ii", 1, 0))
                writer.transport.abort()
                return
            while True:
                data = await reader.read(65536)
                if not data:
                    break
                self.received += data
                if not self.silent:
                    writer.write(data)
                    await writer.drain()
        except OSError:
            pass
        finally:
            self.disconnected.set()
            writer.close()
            try:
                await writer.wait_closed()
            except OSError:
                pass

    async def close(self) -> None:
        self._server.close()
        for writer in self._writers:
            writer.close()
        await self._server.wait_closed()


class StalledTLSServer:
    """
    TLS server that completes the handshake and then never reads again.

    It runs in a thread with a blocking socket, so a client close_notify is
    never answered and the TCP connection stays open until close().
    """

    def __init__(self, ssl_context: ssl.SSLContext) -> None:
        self.ssl_context = ssl_context
        self.handshake_done = threading.Event()
        self._release = threading.Event()
        self._listener = socket.create_server(("127.0.0.1", 0))
        self._listener.settimeout(10)
        self._thread = threading.Thread(target=self._serve, daemon=True)

    def start(self) -> "StalledTLSServer":
        self._thread.start()
        return self

    @property
    def address(self):
        return self._listener.getsockname()[:2]

    def _serve(self) -> None:
        try:
            conn, _ = self._listener.accept()
            with self.ssl_context.wrap_socket(conn, server_side=True):
                self.handshake_done.set()
                self._release.wait(10)
        except OSError:
            pass

    def close(self) -> None:
        self._release.set()
        self._thread.join(10)
        self._listener.close()


async def read_exactly(stream, size: int) -> bytes:
    """Read from a Stream until size bytes arrived or the peer closed."""
    data = bytearray()
    while len(data) < size:
        chunk = await stream.read(size - len(data))
        if not chunk:
            break
        data += chunk
    return bytes(data)


@pytest.fixture(scope="session")
def ca() -> trustme.CA:
    return trustme.CA()


@pytest.fixture(scope="session")
def server_cert(ca: trustme.CA) -> trustme.LeafCert:
    return ca.issue_cert(SERVER_NAME)


@pytest.fixture
def fresh_default_context(monkeypatch):
    """Drop the shared default context for the duration of a test."""
    monkeypatch.setattr(context_module, "_default_context", None)


@pytest.fixture
def trust_ca(ca, tmp_path, monkeypatch, fresh_default_context):
    """Make the test CA the platform trust store for new contexts."""
    path = tmp_path / "ca.pem"
    ca.cert_pem.write_to_path(str(path))
    monkeypatch.setenv("SSL_CERT_FILE", str(path))
    return ca


@pytest.fixture
def untrusted_store(tmp_path, monkeypatch, fresh_default_context):
    """Point the platform trust store at an unrelated CA."""
    path = tmp_path / "other-ca.pem"
    trustme.CA().cert_pem.write_to_path(str(path))
    monkeypatch.setenv("SSL_CERT_FILE", str(path))
    monkeypatch.delenv("SSL_CERT_DIR", raising=False)


@pytest.fixture
def server_ssl_context(server_cert) -> ssl.SSLContext:
    context = ssl.create_default_context(ssl.Purpose.CLIENT_AUTH)
    server_cert.configure_cert(context)
    return context


@pytest.fixture
def mtls_server_ssl_context(ca, server_cert) -> ssl.SSLContext:
    context = ssl.create_default_context(ssl.Purpose.CLIENT_AUTH)
    server_cert.configure_cert(context)
    ca.configure_trust(context)
    context.verify_mode = ssl.CERT_REQUIRED
    return context


@pytest.fixture
def identity_factory(ca):
    def _create(name: str) -> bytes:
        return make_identity(ca, name)
    return _create


@pytest_asyncio.fixture
async def plain_server():
    server = await LoopbackServer().start()
    yield server
    await server.close()


@pytest_asyncio.fixture
async def tls_server(server_ssl_context):
    server = await LoopbackServer(ssl_context=server_ssl_context).start()
    yield server
    await server.close()


@pytest_asyncio.fixture
async def mtls_server(mtls_server_ssl_context):
    server = await LoopbackServer(
        ssl_context=mtls_server_ssl_context, greet_with_peer_name=True
    ).start()
    yield server
    await server.close()


@pytest_asyncio.fixture
async def silent_server():
    """Plain TCP server that never answers, so a TLS handshake stalls."""
    server = await LoopbackServer(silent=True).start()
    yield server
    await server.close()


@pytest.fixture
def unused_address():
    """An address on which nothing is listening."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        port = sock.getsockname()[1]
    return ("127.0.0.1", port)


@pytest.fixture
def stalled_tls_server(server_ssl_context):
    """TLS server that never answers a close_notify."""
    server = StalledTLSServer(server_ssl_context).start()
    yield server
    server.close()
