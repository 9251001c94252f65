"""
tiny_transport - unified plaintext/TLS transport for protocol clients

One connection handle for both plaintext TCP and TLS connections, so
message framing and dispatch code reads and writes bytes without caring
which transport is underneath.
"""

__version__ = "0.1.0"
__author__ = "Developer"
__email__ = "dev@example.com"

# Import main components for easy access
from .network import (
    Connector,
    EncryptionContext,
    Stream,
    StreamKind,
    build_context,
    connect_encrypted,
    connect_plain,
    parse_address,
)
from .exceptions import (
    ErrorKind,
    TransportCoreError,
    TransportError,
    EncryptionError,
    CredentialError,
    classify_error,
)

__all__ = [
    "Connector",
    "EncryptionContext",
    "Stream",
    "StreamKind",
    "build_context",
    "connect_encrypted",
    "connect_plain",
    "parse_address",
    "ErrorKind",
    "TransportCoreError",
    "TransportError",
    "EncryptionError",
    "CredentialError",
    "classify_error",
]
