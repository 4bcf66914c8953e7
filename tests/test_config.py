import pytest

from graphpipe.config.config import AppSettings, LayoutSettings
from graphpipe.config.context import current_settings, reset_current_settings, set_current_settings
from graphpipe.config.loader import load_settings


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch, tmp_path):
    for key in ("GRAPHPIPE_ENV_FILE", "GRAPHPIPE_LAYOUT__LINK_DISTANCE", "GRAPHPIPE_RANDOM_SEED"):
        monkeypatch.delenv(key, raising=False)
    monkeypatch.chdir(tmp_path)
    reset_current_settings()
    yield
    reset_current_settings()


def test_defaults():
    cfg = AppSettings()
    assert cfg.layout.link_distance == 30.0
    assert cfg.layout.charge_strength == -30.0
    assert cfg.driver.tick_interval == 0.1
    assert cfg.server.host == "127.0.0.1"
    assert cfg.random_seed is None


def test_alpha_decay_default_reaches_alpha_min_in_300_ticks():
    s = LayoutSettings()
    assert (1.0 - s.resolved_alpha_decay()) ** 300 == pytest.approx(s.alpha_min)
    assert LayoutSettings(alpha_decay=0.05).resolved_alpha_decay() == 0.05


def test_env_vars_override_nested_fields(monkeypatch):
    monkeypatch.setenv("GRAPHPIPE_LAYOUT__LINK_DISTANCE", "45")
    monkeypatch.setenv("GRAPHPIPE_RANDOM_SEED", "9")

    cfg = load_settings()
    assert cfg.layout.link_distance == 45.0
    assert cfg.random_seed == 9


def test_dotenv_in_working_directory_is_read(tmp_path):
    (tmp_path / ".env").write_text("GRAPHPIPE_DRIVER__IDLE_INTERVAL=2.5\n", encoding="utf-8")
    (tmp_path / ".env.local").write_text("GRAPHPIPE_LOGGING__LEVEL=DEBUG\n", encoding="utf-8")

    cfg = load_settings()
    assert cfg.driver.idle_interval == 2.5
    assert cfg.logging.level == "DEBUG"


def test_explicit_env_file_must_exist(monkeypatch, tmp_path):
    monkeypatch.setenv("GRAPHPIPE_ENV_FILE", str(tmp_path / "missing.env"))
    with pytest.raises(FileNotFoundError):
        load_settings()


def test_current_settings_context():
    cfg = AppSettings(random_seed=42)
    set_current_settings(cfg)
    assert current_settings() is cfg

    reset_current_settings()
    assert current_settings().random_seed is None


def test_create_app_uses_installed_settings():
    from graphpipe.server.app_factory import create_app

    cfg = AppSettings(random_seed=5)
    set_current_settings(cfg)

    app = create_app()

    assert app.state.settings is cfg
    assert app.state.runtime.settings is cfg
