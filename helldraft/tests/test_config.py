"""
Tests for environment settings and store selection.
"""

from ..config import Settings, create_save_manager, create_store
from ..session.store import InMemoryStore, RedisStore


class TestSettings:

    def test_defaults(self, monkeypatch):
        for name in ("HELLDRAFT_REDIS_URL", "HELLDRAFT_MAX_PLAYERS", "HELLDRAFT_SAVE_DIR", "ALLOWED_ORIGINS"):
            monkeypatch.delenv(name, raising=False)
        settings = Settings.from_env()
        assert settings.redis_url is None
        assert settings.max_players == 4
        assert settings.allowed_origins == ["*"]

    def test_environment(self, monkeypatch, tmp_path):
        monkeypatch.setenv("HELLDRAFT_LOG_LEVEL", "debug")
        monkeypatch.setenv("HELLDRAFT_MAX_PLAYERS", "9")
        monkeypatch.setenv("HELLDRAFT_SAVE_DIR", str(tmp_path))
        monkeypatch.setenv("ALLOWED_ORIGINS", "http://a,http://b")
        settings = Settings.from_env()
        assert settings.log_level == "DEBUG"
        assert settings.max_players == 4
        assert settings.save_dir == str(tmp_path)
        assert settings.allowed_origins == ["http://a", "http://b"]

    def test_bad_integer_falls_back(self, monkeypatch):
        monkeypatch.setenv("HELLDRAFT_RUN_HISTORY_LIMIT", "lots")
        assert Settings.from_env().run_history_limit == 20


class TestFactories:

    def test_in_memory_store_without_redis(self):
        assert isinstance(create_store(Settings()), InMemoryStore)

    def test_redis_store_from_url(self):
        store = create_store(Settings(redis_url="redis://localhost:6379/0"))
        assert isinstance(store, RedisStore)

    def test_save_manager(self, tmp_path):
        saves = create_save_manager(Settings(save_dir=str(tmp_path), run_history_limit=3))
        assert saves.save_dir == tmp_path
        assert saves.history_limit == 3
