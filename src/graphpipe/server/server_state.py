from __future__ import annotations

import ipaddress
import socket

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 0


def _valid_port(text: str, original: str) -> int:
    try:
        port = int(text)
    except ValueError:
        raise ValueError(f"Invalid port in {original!r}") from None
    if not 0 <= port <= 65535:
        raise ValueError(f"Port out of range in {original!r}")
    return port


def parse_listen_address(value: str | None) -> tuple[str, int]:
    """
    Parse a --listen value into (host, port).

    Accepted forms:
      None / ""        -> 127.0.0.1, dynamic port
      "8080"           -> 127.0.0.1:8080
      "host:8080"      -> host:8080 ("host:0" for a dynamic port)
      "[::1]:8080"     -> ::1:8080
    """
    if value is None or not value.strip():
        return DEFAULT_HOST, DEFAULT_PORT
    value = value.strip()

    if value.isdigit():
        return DEFAULT_HOST, _valid_port(value, value)

    if value.startswith("["):
        host, sep, rest = value[1:].partition("]")
        if not sep or not rest.startswith(":"):
            raise ValueError(f"Invalid listen address {value!r}; expected '[v6]:port'")
        try:
            ipaddress.IPv6Address(host)
        except ValueError:
            raise ValueError(f"Invalid IPv6 address in {value!r}") from None
        return host, _valid_port(rest[1:], value)

    parts = value.split(":")
    if len(parts) != 2 or not parts[0]:
        raise ValueError(f"Invalid listen address {value!r}; expected 'host:port' or 'port'")
    return parts[0], _valid_port(parts[1], value)


def _family(host: str) -> socket.AddressFamily:
    try:
        return socket.AF_INET6 if ipaddress.ip_address(host).version == 6 else socket.AF_INET
    except ValueError:
        return socket.AF_INET  # hostname


def pick_free_port(requested: int, host: str = DEFAULT_HOST) -> int:
    if requested != 0:
        return requested
    with socket.socket(_family(host), socket.SOCK_STREAM) as s:
        s.bind((host, 0))
        return int(s.getsockname()[1])


def server_url(host: str, port: int) -> str:
    """URL a client on this machine can use to reach a server bound to host:port."""
    if host in ("0.0.0.0", ""):
        host = "127.0.0.1"
    elif host == "::":
        host = "::1"
    if _family(host) == socket.AF_INET6:
        host = f"[{host}]"
    return f"http://{host}:{port}"
