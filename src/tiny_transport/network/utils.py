"""
Network utilities for tiny_transport.

Helpers for validating already-resolved addresses and tuning the sockets
behind a connection.
"""

import ipaddress
import logging
import socket
from typing import Optional, Tuple, Union

logger = logging.getLogger(__name__)

Address = Tuple[str, int]


def is_ipv6_address(host: str) -> bool:
    """
    Check if a host string is an IPv6 address.

    Args:
        host: Host string to check

    Returns:
        True if the host is an IPv6 address
    """
    try:
        socket.inet_pton(socket.AF_INET6, host)
        return True
    except (OSError, ValueError):
        return False


def validate_port(port: Union[int, str]) -> int:
    """
    Validate and convert port to integer.

    Args:
        port: Port number (int or string)

    Returns:
        Port as integer

    Raises:
        ValueError: If port is invalid
    """
    try:
        port_int = int(port)
    except (ValueError, TypeError):
        raise ValueError(f"Invalid port: {port}")

    if not (1 <= port_int <= 65535):
        raise ValueError(f"Port must be between 1 and 65535, got {port_int}")

    return port_int


def validate_address(address: Address) -> Address:
    """
    Validate a resolved (ip, port) pair.

    Name resolution happens before the transport layer, so the host part
    must be an IPv4 or IPv6 literal.

    Raises:
        ValueError: If the host is not an IP literal or the port is invalid
    """
    try:
        host, port = address
    except (TypeError, ValueError):
        raise ValueError(f"Address must be an (ip, port) pair, got {address!r}")

    if not isinstance(host, str):
        raise ValueError(f"Address host must be a string, got {host!r}")
    try:
        ip = ipaddress.ip_address(host)
    except ValueError:
        raise ValueError(f"Address host must be an IP literal, got {host!r}")

    return str(ip), validate_port(port)


def parse_address(text: str) -> Address:
    """
    Parse "ip:port" or "[ipv6]:port" into an address tuple.

    Args:
        text: Address string

    Returns:
        Validated (ip, port) tuple

    Raises:
        ValueError: If the string is malformed
    """
    text = text.strip()
    if text.startswith("["):
        host, sep, rest = text[1:].partition("]")
        if not sep or not rest.startswith(":"):
            raise ValueError(f"Malformed IPv6 address: {text!r}")
        port = rest[1:]
    else:
        host, sep, port = text.rpartition(":")
        if not sep or ":" in host:
            raise ValueError(f"Malformed address: {text!r}")
    return validate_address((host, port))


def format_address(address: Address) -> str:
    """Format an address the way parse_address() accepts it."""
    host, port = address
    if is_ipv6_address(host):
        return f"[{host}]:{port}"
    return f"{host}:{port}"


def normalize_host(host: str) -> str:
    """
    Normalize a host name used for certificate verification.

    Args:
        host: Hostname to normalize

    Returns:
        Normalized hostname

    Raises:
        ValueError: If the host name is empty
    """
    # Remove trailing dots (common in DNS)
    host = host.strip().rstrip('.')

    # Convert to lowercase
    host = host.lower()

    if not host:
        raise ValueError("Host name must not be empty")

    return host


def configure_socket(sock: Optional[socket.socket]) -> None:
    """
    Apply low-latency and keep-alive options to a connected TCP socket.

    Options the platform does not support are skipped.

    Args:
        sock: The connected socket, or None if the transport has none
    """
    if sock is None:
        return

    try:
        sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_KEEPALIVE, 1)

        # Platform-specific keep-alive settings
        if hasattr(socket, 'TCP_KEEPIDLE'):
            sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_KEEPIDLE, 60)
        if hasattr(socket, 'TCP_KEEPINTVL'):
            sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_KEEPINTVL, 10)
        if hasattr(socket, 'TCP_KEEPCNT'):
            sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_KEEPCNT, 6)
    except OSError as e:
        # Tuning is best effort; the connection itself is usable.
        logger.debug(f"Could not tune socket options: {e}")
