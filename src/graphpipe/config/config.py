from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


# --- Layout / simulation ---
class LayoutSettings(BaseModel):
    # link (attraction) force
    link_distance: float = 30.0
    link_strength: float = 0.1

    # many-body (repulsion) force; negative strength repels
    charge_strength: float = -30.0
    distance_min: float = 1.0

    # integration
    velocity_decay: float = 0.4  # fraction of velocity lost per tick
    alpha_min: float = 0.001
    alpha_decay: float | None = None  # None => 1 - alpha_min ** (1 / 300)
    alpha_target: float = 0.0
    reheat_alpha: float = 0.3  # temperature after a structural change
    initial_alpha: float = 1.0  # temperature of a freshly created graph

    # seeding of freshly added nodes
    seed_jitter: float = 1.0  # max offset per axis from the seed centroid

    # a tick moving no node further than this counts as converged
    convergence_threshold: float = 0.01

    def resolved_alpha_decay(self) -> float:
        if self.alpha_decay is not None:
            return self.alpha_decay
        return 1.0 - self.alpha_min ** (1.0 / 300.0)


# --- Background tick loop ---
class DriverSettings(BaseModel):
    tick_interval: float = 0.1  # seconds between ticks while unconverged
    idle_interval: float = 1.0  # seconds between ticks once converged
    join_timeout: float = 2.0


# --- Logging ---
class LoggingSettings(BaseModel):
    level: str = "INFO"
    json_logs: bool = False
    log_dir: str | None = None  # None => console only


# --- HTTP server ---
class ServerSettings(BaseModel):
    host: str = "127.0.0.1"
    port: int = 0  # 0 = auto free port
    assets_dir: str | None = None
    cors_origins: list[str] = Field(default_factory=lambda: ["http://localhost:5173"])
    uvicorn_log_level: Literal["critical", "error", "warning", "info", "debug", "trace"] = "warning"


class AppSettings(BaseSettings):
    """
    Root settings object.

    Values come from (later wins): defaults, .env files passed by the loader,
    environment variables such as GRAPHPIPE_LAYOUT__LINK_DISTANCE=40.
    """

    model_config = SettingsConfigDict(
        env_prefix="GRAPHPIPE_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    layout: LayoutSettings = LayoutSettings()
    driver: DriverSettings = DriverSettings()
    logging: LoggingSettings = LoggingSettings()
    server: ServerSettings = ServerSettings()

    # seed for the layout RNG; None => nondeterministic jitter
    random_seed: int | None = None
