from __future__ import annotations

import contextlib
from dataclasses import dataclass
import threading
import time

from fastapi import FastAPI
import uvicorn

from graphpipe.config.config import AppSettings
from graphpipe.config.context import set_current_settings
from graphpipe.config.loader import load_settings
from graphpipe.core.runtime.graph_runtime import GraphRuntime
from graphpipe.server.server_state import pick_free_port, server_url

from .app_factory import create_app

_handle: ServerHandle | None = None


@dataclass
class ServerHandle:
    url: str
    app: FastAPI
    server: uvicorn.Server
    thread: threading.Thread

    @property
    def runtime(self) -> GraphRuntime:
        return self.app.state.runtime

    def stop(self, timeout_s: float = 2.0) -> None:
        self.server.should_exit = True
        self.thread.join(timeout=timeout_s)

    def block(self) -> None:
        self.thread.join()


def _make_uvicorn_server(app: FastAPI, host: str, port: int, log_level: str) -> uvicorn.Server:
    """
    Create a uvicorn.Server we can stop via server.should_exit = True.
    (Safe for background thread.)
    """
    config = uvicorn.Config(
        app=app,
        host=host,
        port=port,
        log_level=log_level,
        lifespan="on",
        loop="asyncio",
    )
    server = uvicorn.Server(config=config)
    server.install_signal_handlers = lambda: None  # type: ignore
    return server


def start_server(
    *,
    cfg: AppSettings | None = None,
    host: str | None = None,
    port: int | None = None,  # 0 = auto free port
    log_level: str | None = None,
    uvicorn_log_level: str | None = None,
    startup_timeout_s: float = 10.0,
) -> ServerHandle:
    """
    Start (or reuse) the in-process graphpipe server on a background thread.

    Parameters:
      cfg:
        Settings to use; by default they are loaded from the environment and
        .env files (see config.loader.load_settings).
      host / port:
        Bind address; default to cfg.server.host / cfg.server.port.
        Port 0 picks a free port.
      log_level / uvicorn_log_level:
        App logging vs uvicorn logging verbosity.

    Typical usage:

        handle = start_server(port=0)
        print("Server:", handle.url)
        handle.block()   # keep the process alive

    Returns the ServerHandle once uvicorn accepts connections.

    Raises:
      RuntimeError: the server did not come up within `startup_timeout_s`.
    """
    global _handle

    # In-process fast path
    if _handle is not None and _handle.thread.is_alive():
        return _handle

    settings = cfg or load_settings()
    set_current_settings(settings)
    app = create_app(cfg=settings, log_level=log_level)

    bind_host = host if host is not None else settings.server.host
    picked_port = pick_free_port(port if port is not None else settings.server.port, bind_host)
    url = server_url(bind_host, picked_port)

    server = _make_uvicorn_server(
        app, bind_host, picked_port, uvicorn_log_level or settings.server.uvicorn_log_level
    )
    t = threading.Thread(target=server.run, name="graphpipe-server", daemon=True)
    t.start()

    deadline = time.monotonic() + startup_timeout_s
    while not server.started:
        if not t.is_alive() or time.monotonic() > deadline:
            server.should_exit = True
            raise RuntimeError(f"graphpipe server failed to start on {url}")
        time.sleep(0.02)

    _handle = ServerHandle(url=url, app=app, server=server, thread=t)
    return _handle


def stop_server() -> None:
    """Stop the in-process background server (useful in tests/notebooks)."""
    global _handle
    if _handle is None:
        return
    with contextlib.suppress(RuntimeError):
        _handle.stop(timeout_s=5.0)
    _handle = None
