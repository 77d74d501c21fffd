"""
Configuration - Environment settings, logging setup and store selection.

Environment variables:
- HELLDRAFT_ENV: deployment name (development)
- HELLDRAFT_LOG_LEVEL: logging level name (INFO)
- HELLDRAFT_REDIS_URL: shared store; unset means a process-local store
- HELLDRAFT_MAX_PLAYERS: seats per lobby (4)
- HELLDRAFT_SAVE_DIR: save directory; unset keeps saves in memory
- HELLDRAFT_RUN_HISTORY_LIMIT: finished runs kept in history (20)
- ALLOWED_ORIGINS: comma-separated CORS origins (*)
"""

from __future__ import annotations
from dataclasses import dataclass, field
import logging
import os

from .engine_core.balancing import MAX_PLAYERS
from .persistence.save_manager import DEFAULT_HISTORY_LIMIT, SaveManager
from .session.store import InMemoryStore, KeyValueStore, RedisStore

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning("Ignoring non-integer %s=%r", name, raw)
        return default


@dataclass
class Settings:
    env: str = "development"
    log_level: str = "INFO"
    redis_url: str | None = None
    max_players: int = MAX_PLAYERS
    save_dir: str | None = None
    run_history_limit: int = DEFAULT_HISTORY_LIMIT
    allowed_origins: list[str] = field(default_factory=lambda: ["*"])

    @classmethod
    def from_env(cls) -> Settings:
        return cls(
            env=os.getenv("HELLDRAFT_ENV", "development"),
            log_level=os.getenv("HELLDRAFT_LOG_LEVEL", "INFO").upper(),
            redis_url=os.getenv("HELLDRAFT_REDIS_URL") or None,
            max_players=max(1, min(MAX_PLAYERS, _env_int("HELLDRAFT_MAX_PLAYERS", MAX_PLAYERS))),
            save_dir=os.getenv("HELLDRAFT_SAVE_DIR") or None,
            run_history_limit=_env_int("HELLDRAFT_RUN_HISTORY_LIMIT", DEFAULT_HISTORY_LIMIT),
            allowed_origins=os.getenv("ALLOWED_ORIGINS", "*").split(","),
        )


def configure_logging(settings: Settings | None = None) -> None:
    settings = settings or Settings.from_env()
    logging.basicConfig(level=settings.log_level, format=LOG_FORMAT)


def create_store(settings: Settings) -> KeyValueStore:
    if settings.redis_url:
        logger.info("Using Redis store at %s", settings.redis_url)
        return RedisStore.from_url(settings.redis_url)
    logger.info("Using in-memory store")
    return InMemoryStore()


def create_save_manager(settings: Settings) -> SaveManager:
    return SaveManager(settings.save_dir, history_limit=settings.run_history_limit)
