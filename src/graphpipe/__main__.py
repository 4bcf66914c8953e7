# graphpipe/__main__.py
from __future__ import annotations

import argparse
import os
import sys

import uvicorn

from graphpipe.config.context import set_current_settings
from graphpipe.config.loader import load_settings
from graphpipe.server.app_factory import create_app
from graphpipe.server.server_state import parse_listen_address, pick_free_port, server_url

"""
Graphpipe CLI

Commands:

  1) Serve in the foreground (blocking)
       python -m graphpipe serve --listen 127.0.0.1:8080

     Notes:
       - --listen accepts "host:port", "[v6]:port", "port", or nothing
         (127.0.0.1 with a free port). Port 0 picks a free port.
       - The URL is printed once the port is known.

  2) Serve in the background from a shell (POSIX only)
       eval "$(python -m graphpipe serve --sh)"

     Behavior:
       - The server detaches into its own session.
       - Prints shell lines that export GRAPHPIPE (the URL) and GRAPHPIPE_PID.
"""


def sh_lines(url: str, pid: int) -> list[str]:
    """Shell lines printed by `serve --sh`, meant for `eval`."""
    return [
        f"echo Graphpipe is serving at {url}; export GRAPHPIPE={url}",
        f"export GRAPHPIPE_PID={pid}; echo Graphpipe process id is {pid}",
    ]


def _serve_foreground(args, host: str, port: int) -> int:
    cfg = load_settings()
    set_current_settings(cfg)
    app = create_app(cfg=cfg, log_level=args.log_level)

    port = pick_free_port(port, host)
    print(server_url(host, port), flush=True)
    uvicorn.run(app, host=host, port=port, log_level=args.uvicorn_log_level)
    return 0


def _serve_daemon(args, host: str, port: int) -> int:
    if not hasattr(os, "fork"):
        print("--sh requires a POSIX system", file=sys.stderr)
        return 2

    read_fd, write_fd = os.pipe()
    pid = os.fork()

    if pid > 0:
        # Parent: relay the child's URL, then print the pid lines and exit.
        os.close(write_fd)
        with os.fdopen(read_fd, "r", encoding="utf-8") as reader:
            url = reader.read().strip()
        if not url:
            print("echo Graphpipe failed to start", flush=True)
            return 1
        for line in sh_lines(url, pid):
            print(line, flush=True)
        return 0

    # Child: detach, silence stdio, start the server and report its URL.
    os.close(read_fd)
    os.setsid()
    devnull = os.open(os.devnull, os.O_RDWR)
    for fd in (0, 1, 2):
        os.dup2(devnull, fd)
    os.close(devnull)

    from graphpipe.server.start import start_server

    with os.fdopen(write_fd, "w", encoding="utf-8") as writer:
        handle = start_server(
            host=host,
            port=port,
            log_level=args.log_level,
            uvicorn_log_level=args.uvicorn_log_level,
        )
        writer.write(handle.url + "\n")
    handle.block()
    os._exit(0)


def main(argv: list[str] | None = None) -> int:
    argv = argv if argv is not None else sys.argv[1:]

    parser = argparse.ArgumentParser(prog="graphpipe")
    sub = parser.add_subparsers(dest="cmd", required=True)

    serve = sub.add_parser("serve", help="Run the graphpipe server.")
    serve.add_argument(
        "--listen",
        default=None,
        help='Address to listen on: "host:port", "[v6]:port", "port"; default 127.0.0.1 with a free port.',
    )
    serve.add_argument("--log-level", default="warning")
    serve.add_argument("--uvicorn-log-level", default="warning")
    serve.add_argument(
        "--sh",
        action="store_true",
        help='Daemonize and print shell exports; use as eval "$(graphpipe serve --sh)".',
    )

    args = parser.parse_args(argv)

    if args.cmd == "serve":
        try:
            host, port = parse_listen_address(args.listen)
        except ValueError as e:
            parser.error(str(e))
        if args.sh:
            return _serve_daemon(args, host, port)
        return _serve_foreground(args, host, port)

    return 2


if __name__ == "__main__":
    raise SystemExit(main())
