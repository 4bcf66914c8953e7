from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from graphpipe.api.v1.graph import router as graph_router
from graphpipe.config.config import AppSettings
from graphpipe.config.context import current_settings
from graphpipe.core.runtime.graph_runtime import GraphRuntime
from graphpipe.services.logger.std import LoggingConfig, StdLoggerService


def create_app(
    *,
    cfg: Optional["AppSettings"] = None,
    log_level: str | None = None,
    runtime: GraphRuntime | None = None,
) -> FastAPI:
    """
    Builds the FastAPI app, registers routers, and installs the GraphRuntime
    into app.state.runtime.
    Without `cfg`, the settings installed via set_current_settings() are used
    (else the environment-loaded ones).

    The layout driver thread runs for the lifetime of the app (lifespan); a
    TestClient used without `with` never starts it, so tests can tick by hand.
    """

    settings = cfg or current_settings()
    if log_level:
        settings.logging.level = log_level.upper()

    logs = StdLoggerService.build(LoggingConfig.from_cfg(settings))
    runtime = runtime or GraphRuntime(settings, logger_service=logs)
    api_log = logs.for_api()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # --- Startup: attach settings/runtime and start the layout loop ---
        app.state.settings = settings
        app.state.runtime = runtime
        runtime.start()
        api_log.info("graphpipe ready, creation_time=%.6f", runtime.epoch)
        try:
            yield
        finally:
            # --- Shutdown: stop ticking, flush file logs ---
            runtime.stop()
            logs.shutdown()

    app = FastAPI(
        title="Graphpipe",
        version="0.1",
        lifespan=lifespan,
    )

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.server.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Routers
    app.include_router(router=graph_router)

    # Viewer assets; mounted last so API routes take precedence
    assets = settings.server.assets_dir
    if assets:
        if Path(assets).is_dir():
            app.mount("/", StaticFiles(directory=assets, html=True), name="assets")
        else:
            api_log.warning("assets_dir %s does not exist; not serving static files", assets)

    # Available before lifespan runs (e.g. TestClient without a context manager)
    app.state.settings = settings
    app.state.runtime = runtime

    return app
