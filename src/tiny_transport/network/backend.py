"""
Connection establishment for tiny_transport.

This module opens the raw TCP connection, optionally drives the TLS
handshake over it, and hands the result back as a Stream. Failures are
reported as TransportError (no byte-level connection) or EncryptionError
(connected, but no trusted session).
"""

import asyncio
import logging
from typing import Optional, Tuple

from .context import EncryptionContext, build_context
from .stream import (
    DEFAULT_READ_SIZE as STREAM_READ_SIZE,
    DEFAULT_SHUTDOWN_TIMEOUT as STREAM_SHUTDOWN_TIMEOUT,
    Stream,
)
from .utils import Address, configure_socket, format_address, normalize_host, validate_address
from ..exceptions import EncryptionError, TransportError, classify_error

logger = logging.getLogger(__name__)


class Connector:
    """
    Opens plaintext and encrypted connections.

    A Connector holds only timeouts and sizes; it keeps no reference to the
    streams it creates, so one instance can serve any number of tasks.
    """

    # Default configuration
    DEFAULT_CONNECT_TIMEOUT = 30.0  # 30 seconds
    DEFAULT_HANDSHAKE_TIMEOUT = 30.0  # 30 seconds
    DEFAULT_READ_SIZE = STREAM_READ_SIZE  # 64 KiB
    DEFAULT_SHUTDOWN_TIMEOUT = STREAM_SHUTDOWN_TIMEOUT  # 10 seconds

    def __init__(
        self,
        connect_timeout: Optional[float] = None,
        handshake_timeout: Optional[float] = None,
        read_size: Optional[int] = None,
        shutdown_timeout: Optional[float] = None,
    ):
        """
        Initialize the connector.

        Args:
            connect_timeout: Timeout for opening the TCP connection in seconds
            handshake_timeout: Timeout for the TLS handshake in seconds
            read_size: Default maximum chunk returned by Stream.read()
            shutdown_timeout: How long Stream.shutdown() waits for the peer

        Raises:
            ValueError: If read_size or shutdown_timeout is not positive
        """
        self._connect_timeout = connect_timeout or self.DEFAULT_CONNECT_TIMEOUT
        self._handshake_timeout = handshake_timeout or self.DEFAULT_HANDSHAKE_TIMEOUT
        self._read_size = read_size if read_size is not None else self.DEFAULT_READ_SIZE
        self._shutdown_timeout = shutdown_timeout or self.DEFAULT_SHUTDOWN_TIMEOUT

        if self._read_size <= 0:
            raise ValueError(f"read_size must be positive, got {self._read_size}")
        if self._shutdown_timeout <= 0:
            raise ValueError(f"shutdown_timeout must be positive, got {self._shutdown_timeout}")

    @property
    def connect_timeout(self) -> float:
        return self._connect_timeout

    @property
    def handshake_timeout(self) -> float:
        return self._handshake_timeout

    @property
    def read_size(self) -> int:
        return self._read_size

    @property
    def shutdown_timeout(self) -> float:
        return self._shutdown_timeout

    async def _open_tcp(
        self, address: Address
    ) -> Tuple[asyncio.StreamReader, asyncio.StreamWriter]:
        host, port = address
        target = format_address(address)
        logger.debug(f"Connecting to {target}")
        try:
            reader, writer = await asyncio.wait_for(
                asyncio.open_connection(host, port),
                timeout=self._connect_timeout,
            )
        except asyncio.TimeoutError as e:
            raise TransportError(
                f"connection to {target} timed out after {self._connect_timeout}s", cause=e
            ) from e
        except OSError as e:
            raise classify_error(e, f"connection to {target} failed") from e

        configure_socket(writer.get_extra_info("socket"))
        logger.debug(f"Connected to {target}")
        return reader, writer

    async def connect_plain(self, address: Address) -> Stream:
        """
        Open a plaintext connection.

        Args:
            address: Resolved (ip, port) to connect to.

        Returns:
            A plaintext Stream.

        Raises:
            ValueError: If the address is not an (ip, port) pair.
            TransportError: If the connection cannot be opened.
        """
        address = validate_address(address)
        reader, writer = await self._open_tcp(address)
        return Stream.plain(reader, writer, self._read_size, self._shutdown_timeout)

    async def connect_encrypted(
        self,
        address: Address,
        host_name: str,
        client_identity: Optional[bytes] = None,
    ) -> Stream:
        """
        Open a TLS connection.

        The client identity is parsed before any network activity, so a bad
        credential never results in a connection attempt.

        Args:
            address: Resolved (ip, port) to connect to.
            host_name: Name the server certificate is verified against.
            client_identity: Optional PEM certificate + PKCS#8 key presented
                             to the server for mutual authentication.

        Returns:
            An encrypted Stream.

        Raises:
            ValueError: If the address or host name is malformed.
            CredentialError: If the client identity cannot be used.
            TransportError: If the TCP connection cannot be opened.
            EncryptionError: If the TLS handshake fails.
        """
        address = validate_address(address)
        host_name = normalize_host(host_name)
        context = build_context(client_identity)

        reader, writer = await self._open_tcp(address)
        try:
            await self._handshake(writer, context, host_name, address)
        except BaseException:
            # Never fall back to plaintext on the same connection.
            writer.transport.abort()
            raise
        return Stream.encrypted(reader, writer, self._read_size, self._shutdown_timeout)

    async def _handshake(
        self,
        writer: asyncio.StreamWriter,
        context: EncryptionContext,
        host_name: str,
        address: Address,
    ) -> None:
        target = format_address(address)
        logger.debug(
            f"Starting TLS handshake with {target} as {host_name!r} "
            f"(client identity: {context.has_client_identity})"
        )
        try:
            await writer.start_tls(
                context.ssl_context,
                server_hostname=host_name,
                ssl_handshake_timeout=self._handshake_timeout,
            )
        except Exception as e:
            logger.warning(f"TLS handshake with {target} as {host_name!r} failed: {e}")
            raise EncryptionError(
                f"handshake with {target} as {host_name!r} failed: {e}", cause=e
            ) from e
        logger.debug(f"TLS handshake with {target} as {host_name!r} complete")


_default_connector = Connector()


async def connect_plain(address: Address) -> Stream:
    """Open a plaintext connection with the default connector settings."""
    return await _default_connector.connect_plain(address)


async def connect_encrypted(
    address: Address,
    host_name: str,
    client_identity: Optional[bytes] = None,
) -> Stream:
    """Open a TLS connection with the default connector settings."""
    return await _default_connector.connect_encrypted(address, host_name, client_identity)
