"""
Network components for tiny_transport.

This module provides the connection establisher, the unified stream and
the encryption context builder.
"""

from .backend import Connector, connect_plain, connect_encrypted
from .context import (
    ClientIdentity,
    EncryptionContext,
    build_context,
    create_ssl_context,
    default_context,
    parse_client_identity,
)
from .stream import Stream, StreamKind, PlainConnection, EncryptedConnection
from .utils import (
    Address,
    configure_socket,
    format_address,
    is_ipv6_address,
    normalize_host,
    parse_address,
    validate_address,
    validate_port,
)

__all__ = [
    "Connector",
    "connect_plain",
    "connect_encrypted",
    "ClientIdentity",
    "EncryptionContext",
    "build_context",
    "create_ssl_context",
    "default_context",
    "parse_client_identity",
    "Stream",
    "StreamKind",
    "PlainConnection",
    "EncryptedConnection",
    "Address",
    "configure_socket",
    "format_address",
    "is_ipv6_address",
    "normalize_host",
    "parse_address",
    "validate_address",
    "validate_port",
]
