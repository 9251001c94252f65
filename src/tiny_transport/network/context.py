"""
Encryption context construction for tiny_transport.

Connections that only verify the server share one process-wide context.
Connections that authenticate the client with a certificate (e.g. SASL
EXTERNAL) get a fresh context per attempt so the identity never leaks into
unrelated connections.
"""

import logging
import os
import re
import ssl
import tempfile
import threading
from dataclasses import dataclass
from typing import List, Optional

from cryptography import x509
from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import serialization

from ..exceptions import CredentialError

logger = logging.getLogger(__name__)

_PEM_BLOCK = re.compile(
    rb"-----BEGIN ([A-Z0-9 ]+)-----\r?\n.*?-----END \1-----",
    re.DOTALL,
)

CERTIFICATE_LABEL = b"CERTIFICATE"
PKCS8_KEY_LABEL = b"PRIVATE KEY"


@dataclass(frozen=True)
class ClientIdentity:
    """A client certificate and its PKCS#8 private key, both PEM encoded."""
    certificate_pem: bytes
    private_key_pem: bytes

    def to_pem(self) -> bytes:
        return self.certificate_pem + b"\n" + self.private_key_pem + b"\n"


class EncryptionContext:
    """
    Read-only description of how to negotiate a TLS session.

    Wraps an ``ssl.SSLContext`` that is fully configured at construction and
    never touched again, so a single instance can be shared by any number of
    concurrent handshakes.
    """

    __slots__ = ("_ssl_context", "_has_client_identity")

    def __init__(self, ssl_context: ssl.SSLContext, has_client_identity: bool = False) -> None:
        self._ssl_context = ssl_context
        self._has_client_identity = has_client_identity

    @property
    def ssl_context(self) -> ssl.SSLContext:
        return self._ssl_context

    @property
    def has_client_identity(self) -> bool:
        """True if the context presents a client certificate during handshake."""
        return self._has_client_identity

    def __repr__(self) -> str:
        return f"EncryptionContext(has_client_identity={self._has_client_identity})"


def _pem_blocks(data: bytes, label: bytes) -> List[bytes]:
    return [m.group(0) for m in _PEM_BLOCK.finditer(data) if m.group(1) == label]


def parse_client_identity(pem: bytes) -> ClientIdentity:
    """
    Parse a client identity from concatenated PEM data.

    Args:
        pem: PEM bytes holding exactly one certificate and exactly one
             PKCS#8 private key, in any order.

    Returns:
        The parsed ClientIdentity.

    Raises:
        CredentialError: If either part is missing, duplicated or malformed.
    """
    if not isinstance(pem, (bytes, bytearray)):
        raise CredentialError(f"expected PEM bytes, got {type(pem).__name__}")
    pem = bytes(pem)

    certificates = _pem_blocks(pem, CERTIFICATE_LABEL)
    if len(certificates) != 1:
        raise CredentialError(
            f"expected exactly one certificate, found {len(certificates)}"
        )
    keys = _pem_blocks(pem, PKCS8_KEY_LABEL)
    if len(keys) != 1:
        raise CredentialError(
            f"expected exactly one PKCS#8 private key, found {len(keys)}"
        )

    try:
        x509.load_pem_x509_certificate(certificates[0])
    except ValueError as e:
        raise CredentialError("malformed certificate", cause=e) from e
    try:
        serialization.load_pem_private_key(keys[0], password=None)
    except (ValueError, TypeError, UnsupportedAlgorithm) as e:
        raise CredentialError("malformed private key", cause=e) from e

    return ClientIdentity(certificate_pem=certificates[0], private_key_pem=keys[0])


def create_ssl_context() -> ssl.SSLContext:
    """
    Create an SSL context trusting the platform certificate authorities.

    The platform store is whatever OpenSSL's default verify paths point at,
    so ``SSL_CERT_FILE`` and ``SSL_CERT_DIR`` are honoured.

    Returns:
        A client-side context that requires a valid, name-matching server
        certificate.
    """
    context = ssl.create_default_context(ssl.Purpose.SERVER_AUTH)
    context.verify_mode = ssl.CERT_REQUIRED
    context.check_hostname = True

    context.options |= ssl.OP_NO_COMPRESSION

    # Disable legacy protocols
    context.minimum_version = ssl.TLSVersion.TLSv1_2

    return context


def _load_identity(context: ssl.SSLContext, identity: ClientIdentity) -> None:
    # OpenSSL only loads certificate chains from files.
    fd, path = tempfile.mkstemp(prefix="tiny-transport-", suffix=".pem")
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(identity.to_pem())
        context.load_cert_chain(path)
    except ssl.SSLError as e:
        raise CredentialError("certificate and private key do not match", cause=e) from e
    finally:
        os.unlink(path)


_default_context: Optional[EncryptionContext] = None
_default_context_lock = threading.Lock()


def default_context() -> EncryptionContext:
    """
    Return the shared context used by connections without a client identity.

    Built on first use and reused for the life of the process.
    """
    global _default_context
    context = _default_context
    if context is None:
        with _default_context_lock:
            if _default_context is None:
                _default_context = EncryptionContext(create_ssl_context())
                logger.debug("Default encryption context created")
            context = _default_context
    return context


def build_context(client_identity: Optional[bytes] = None) -> EncryptionContext:
    """
    Build the encryption context for one connection attempt.

    Args:
        client_identity: Optional PEM bytes with one certificate and one
                         PKCS#8 private key for mutual authentication.

    Returns:
        The shared default context if no identity is given, otherwise a new
        context that presents the identity and must not be reused.

    Raises:
        CredentialError: If the identity cannot be parsed or loaded.
    """
    if client_identity is None:
        return default_context()

    identity = parse_client_identity(client_identity)
    context = create_ssl_context()
    _load_identity(context, identity)
    logger.debug("Per-connection encryption context created with client identity")
    return EncryptionContext(context, has_client_identity=True)
