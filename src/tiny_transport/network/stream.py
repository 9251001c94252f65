"""
Unified network stream for tiny_transport.

A Stream is either a plaintext TCP connection or the same connection after a
TLS handshake. Upper layers (message framing, command dispatch) read and
write application bytes through one interface and never branch on which
variant is active.
"""

import asyncio
import logging
import ssl
from enum import Enum
from typing import Any, Optional, Union

from typing_extensions import assert_never, final

from ..exceptions import TransportError, classify_error

logger = logging.getLogger(__name__)

DEFAULT_READ_SIZE = 65536
DEFAULT_SHUTDOWN_TIMEOUT = 10.0


class StreamKind(Enum):
    """Kinds of connection a Stream can carry."""
    PLAIN = "plain"
    ENCRYPTED = "encrypted"


@final
class PlainConnection:
    """A raw TCP connection."""

    __slots__ = ("reader", "writer")

    def __init__(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        self.reader = reader
        self.writer = writer


@final
class EncryptedConnection:
    """A TCP connection carrying a negotiated TLS session."""

    __slots__ = ("reader", "writer", "ssl_object")

    def __init__(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
        ssl_object: Optional[ssl.SSLObject],
    ) -> None:
        self.reader = reader
        self.writer = writer
        self.ssl_object = ssl_object


Connection = Union[PlainConnection, EncryptedConnection]


@final
class Stream:
    """
    Single owner handle for one connection.

    The variant is fixed at construction. Every operation dispatches over the
    closed set of connection classes; the per-variant state lives in its own
    object so a Stream is the same size whichever variant it holds.

    A Stream is driven by one task at a time. Concurrent read/write/shutdown
    calls from different tasks are not supported.
    """

    __slots__ = ("_connection", "_read_size", "_shutdown_timeout", "_closed")

    def __init__(
        self,
        connection: Connection,
        read_size: int = DEFAULT_READ_SIZE,
        shutdown_timeout: float = DEFAULT_SHUTDOWN_TIMEOUT,
    ) -> None:
        """
        Wrap an established connection.

        Args:
            connection: The plaintext or encrypted connection to own.
            read_size: Default maximum number of bytes returned by read().
            shutdown_timeout: Seconds shutdown() waits for the peer before
                              aborting the connection.
        """
        if not isinstance(connection, (PlainConnection, EncryptedConnection)):
            raise TypeError(f"unsupported connection type: {type(connection).__name__}")
        if read_size <= 0:
            raise ValueError(f"read_size must be positive, got {read_size}")
        if shutdown_timeout <= 0:
            raise ValueError(f"shutdown_timeout must be positive, got {shutdown_timeout}")
        self._connection = connection
        self._read_size = read_size
        self._shutdown_timeout = shutdown_timeout
        self._closed = False

    @classmethod
    def plain(
        cls,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
        read_size: int = DEFAULT_READ_SIZE,
        shutdown_timeout: float = DEFAULT_SHUTDOWN_TIMEOUT,
    ) -> "Stream":
        return cls(PlainConnection(reader, writer), read_size, shutdown_timeout)

    @classmethod
    def encrypted(
        cls,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
        read_size: int = DEFAULT_READ_SIZE,
        shutdown_timeout: float = DEFAULT_SHUTDOWN_TIMEOUT,
    ) -> "Stream":
        ssl_object = writer.get_extra_info("ssl_object")
        return cls(EncryptedConnection(reader, writer, ssl_object), read_size, shutdown_timeout)

    @property
    def kind(self) -> StreamKind:
        connection = self._connection
        if isinstance(connection, PlainConnection):
            return StreamKind.PLAIN
        elif isinstance(connection, EncryptedConnection):
            return StreamKind.ENCRYPTED
        else:
            assert_never(connection)

    @property
    def is_encrypted(self) -> bool:
        return self.kind is StreamKind.ENCRYPTED

    @property
    def is_closed(self) -> bool:
        return self._closed

    @property
    def peername(self) -> Optional[Any]:
        return self.get_extra_info("peername")

    def _check_open(self) -> None:
        if self._closed:
            raise TransportError("Stream is closed")

    async def read(self, max_bytes: Optional[int] = None) -> bytes:
        """
        Read application bytes from the stream.

        Suspends until at least one byte is available, the peer closes the
        connection, or an error occurs.

        Args:
            max_bytes: Maximum number of bytes to return. Defaults to the
                       stream's read size.

        Returns:
            The bytes read, or b"" once the peer has closed the connection.

        Raises:
            TransportError: If the stream is closed or the socket fails.
            EncryptionError: If the TLS session fails.
        """
        self._check_open()
        if max_bytes is None:
            max_bytes = self._read_size
        elif max_bytes <= 0:
            raise ValueError(f"max_bytes must be positive, got {max_bytes}")

        connection = self._connection
        try:
            if isinstance(connection, PlainConnection):
                return await connection.reader.read(max_bytes)
            elif isinstance(connection, EncryptedConnection):
                return await connection.reader.read(max_bytes)
            else:
                assert_never(connection)
        except OSError as e:
            raise classify_error(e, "read failed") from e

    async def write(self, data: bytes) -> int:
        """
        Write application bytes to the stream.

        Suspends while the transport applies back-pressure.

        Args:
            data: The bytes to send.

        Returns:
            The number of bytes accepted.

        Raises:
            TransportError: If the stream is closed or the socket fails.
            EncryptionError: If the TLS session fails.
        """
        self._check_open()
        connection = self._connection
        try:
            if isinstance(connection, PlainConnection):
                connection.writer.write(data)
                await connection.writer.drain()
            elif isinstance(connection, EncryptedConnection):
                connection.writer.write(data)
                await connection.writer.drain()
            else:
                assert_never(connection)
        except OSError as e:
            raise classify_error(e, "write failed") from e
        return len(data)

    async def flush(self) -> None:
        """
        Hand previously written bytes to the transport.

        For the encrypted variant this also pushes out pending TLS records.
        """
        self._check_open()
        connection = self._connection
        try:
            if isinstance(connection, PlainConnection):
                await connection.writer.drain()
            elif isinstance(connection, EncryptedConnection):
                await connection.writer.drain()
            else:
                assert_never(connection)
        except OSError as e:
            raise classify_error(e, "flush failed") from e

    async def shutdown(self) -> None:
        """
        Close the connection in an orderly way.

        The encrypted variant sends a TLS close_notify before the TCP
        connection is closed. If the peer has not finished closing within
        the stream's shutdown timeout, the connection is aborted. Calling
        shutdown() again is a no-op.

        Raises:
            TransportError: If closing the socket fails.
            EncryptionError: If the TLS shutdown fails.
        """
        if self._closed:
            logger.debug("Shutdown requested on a closed stream")
            return
        self._closed = True

        connection = self._connection
        try:
            if isinstance(connection, PlainConnection):
                writer = connection.writer
                try:
                    if writer.can_write_eof() and not writer.is_closing():
                        writer.write_eof()
                finally:
                    writer.close()
            elif isinstance(connection, EncryptedConnection):
                # Closing the SSL transport sends close_notify first.
                writer = connection.writer
                writer.close()
            else:
                assert_never(connection)
            await self._wait_closed(writer)
        except OSError as e:
            raise classify_error(e, "shutdown failed") from e
        finally:
            logger.debug(f"{self.kind.value} stream to {self.peername} shut down")

    async def _wait_closed(self, writer: asyncio.StreamWriter) -> None:
        try:
            await asyncio.wait_for(writer.wait_closed(), timeout=self._shutdown_timeout)
        except asyncio.TimeoutError:
            logger.debug(
                f"Peer {self.peername} did not close within "
                f"{self._shutdown_timeout}s, aborting"
            )
            writer.transport.abort()

    async def aclose(self) -> None:
        await self.shutdown()

    async def __aenter__(self) -> "Stream":
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.shutdown()

    def get_extra_info(self, name: str, default: Any = None) -> Any:
        """
        Get extra information about the stream.

        Args:
            name: The name of the information to retrieve. Both variants
                  answer "socket", "peername" and "sockname"; the encrypted
                  variant also answers "ssl_object", "cipher", "version" and
                  "peercert".
            default: Value returned when the information is not available.

        Returns:
            The requested information or ``default``.
        """
        connection = self._connection
        if isinstance(connection, PlainConnection):
            if name in ("ssl_object", "cipher", "version", "peercert"):
                return default
            return connection.writer.get_extra_info(name, default)
        elif isinstance(connection, EncryptedConnection):
            ssl_object = connection.ssl_object
            if name == "ssl_object":
                return ssl_object if ssl_object is not None else default
            if name == "version" and ssl_object is not None:
                return ssl_object.version()
            return connection.writer.get_extra_info(name, default)
        else:
            assert_never(connection)

    def __repr__(self) -> str:
        state = "closed" if self._closed else "open"
        return f"<Stream {self.kind.value} {state} peer={self.peername}>"
