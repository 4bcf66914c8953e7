import socket

import pytest

from graphpipe.server.server_state import parse_listen_address, pick_free_port, server_url


@pytest.mark.parametrize(
    "value, expected",
    [
        (None, ("127.0.0.1", 0)),
        ("", ("127.0.0.1", 0)),
        ("8080", ("127.0.0.1", 8080)),
        ("0", ("127.0.0.1", 0)),
        ("127.0.0.1:9000", ("127.0.0.1", 9000)),
        ("localhost:0", ("localhost", 0)),
        ("0.0.0.0:80", ("0.0.0.0", 80)),
        ("[::1]:8080", ("::1", 8080)),
    ],
)
def test_parse_listen_address(value, expected):
    assert parse_listen_address(value) == expected


@pytest.mark.parametrize("value", ["host:", "host:abc", ":80", "a:b:c", "70000", "[::1]", "[nothost]:80", "host:99999"])
def test_parse_listen_address_rejects(value):
    with pytest.raises(ValueError):
        parse_listen_address(value)


def test_pick_free_port():
    assert pick_free_port(8123) == 8123

    port = pick_free_port(0)
    assert 0 < port < 65536
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", port))


def test_server_url():
    assert server_url("127.0.0.1", 80) == "http://127.0.0.1:80"
    assert server_url("0.0.0.0", 80) == "http://127.0.0.1:80"
    assert server_url("::1", 80) == "http://[::1]:80"
    assert server_url("localhost", 8) == "http://localhost:8"
