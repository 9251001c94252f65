"""
Custom exceptions for tiny_transport.

Every failure surfaced by the transport layer is one of exactly two kinds:
a transport failure (no byte-level connection, or the connection broke) or
an encryption failure (connected, but trust could not be established or the
TLS session failed). Callers branch on the exception class or on ``kind``.
"""

import asyncio
import ssl
from enum import Enum
from typing import Optional


class ErrorKind(Enum):
    """The two failure kinds of the transport layer."""
    TRANSPORT = "transport"
    ENCRYPTION = "encryption"


class TransportCoreError(Exception):
    """Base exception for all tiny_transport errors."""

    kind: ErrorKind

    def __init__(self, message: str, cause: Optional[BaseException] = None) -> None:
        super().__init__(message)
        self.message = message
        self.cause = cause


class TransportError(TransportCoreError):
    """Raised when the raw connection cannot be opened or fails during I/O."""

    kind = ErrorKind.TRANSPORT

    def __init__(self, message: str, cause: Optional[BaseException] = None) -> None:
        super().__init__(f"Transport error: {message}", cause)


class EncryptionError(TransportCoreError):
    """Raised when the TLS handshake or the TLS session fails."""

    kind = ErrorKind.ENCRYPTION

    def __init__(self, message: str, cause: Optional[BaseException] = None) -> None:
        super().__init__(f"Encryption error: {message}", cause)


class CredentialError(EncryptionError):
    """
    Raised when a client identity cannot be parsed or loaded.

    A malformed credential is a configuration problem, not a transient
    condition: retrying the same bytes will fail the same way.
    """

    def __init__(self, message: str, cause: Optional[BaseException] = None) -> None:
        super().__init__(f"invalid client identity: {message}", cause)


def classify_error(exc: BaseException, context: str) -> TransportCoreError:
    """
    Map a low-level exception onto the two-kind failure taxonomy.

    Args:
        exc: The exception raised by the socket, asyncio or ssl layer.
        context: Short description of the operation that failed, used as
                 the message prefix (e.g. "read failed").

    Returns:
        The classified error. Errors that are already classified are
        returned unchanged.
    """
    if isinstance(exc, TransportCoreError):
        return exc
    # SSLError and CertificateError are OSError/ValueError subclasses, so they
    # have to be checked first.
    if isinstance(exc, (ssl.SSLError, ssl.CertificateError)):
        return EncryptionError(f"{context}: {exc}", cause=exc)
    if isinstance(exc, asyncio.TimeoutError):
        return TransportError(f"{context}: timed out", cause=exc)
    if isinstance(exc, OSError):
        return TransportError(f"{context}: {exc}", cause=exc)
    return TransportError(f"{context}: {exc!r}", cause=exc)
