"""Shared service context (stats store + contest manager) and its lifecycle."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from pathlib import Path
from threading import RLock
from typing import Any, Dict, Optional, Sequence, Tuple

from config import settings
from pickem import ContestManager
from pickem_db import DEFAULT_DATABASE_URL, ContestDatabase
from stats_store import DEFAULT_TIMEOUT, HttpStatsStore, InMemoryStatsStore, StatsStore

logger = logging.getLogger(__name__)


ENV_FILES = (".env.local", ".env")
SERVICE_ENV_KEYS = frozenset(
    {"PICKEM_DATABASE_URL", "STATS_STORE_URL", "STATS_STORE_FIXTURE", "STATS_STORE_TIMEOUT", "PICKEM_API_KEY"}
)


def _parse_env_line(line: str) -> Optional[Tuple[str, str]]:
    line = line.strip()
    if line.startswith("export "):
        line = line[len("export "):].lstrip()
    if not line or line.startswith("#") or "=" not in line:
        return None
    key, value = (part.strip() for part in line.split("=", 1))
    if len(value) >= 2 and value[0] == value[-1] and value[0] in "\"'":
        value = value[1:-1]
    return (key, value) if key else None


def load_service_env(directory: Optional[Path] = None, names: Sequence[str] = ENV_FILES) -> Dict[str, str]:
    """Copy service variables from dotenv files into ``os.environ``.

    Earlier files win, and variables already set in the process are never
    overridden. Returns the variables that were applied.
    """

    directory = directory or Path(__file__).resolve().parent
    applied: Dict[str, str] = {}
    for name in names:
        path = directory / name
        if not path.is_file():
            continue
        try:
            lines = path.read_text(encoding="utf-8").splitlines()
        except OSError as exc:
            logger.warning("Skipping unreadable env file %s: %s", path, exc)
            continue
        for line in lines:
            parsed = _parse_env_line(line)
            if parsed is None:
                continue
            key, value = parsed
            if key not in SERVICE_ENV_KEYS or key in os.environ:
                continue
            os.environ[key] = value
            applied[key] = value
    if applied:
        logger.info("Loaded %s from env files in %s", ", ".join(sorted(applied)), directory)
    return applied


load_service_env()


@dataclass(frozen=True)
class ServiceSettings:
    """Deployment settings read from the environment."""

    database_url: str = DEFAULT_DATABASE_URL
    stats_store_url: Optional[str] = None
    stats_store_fixture: Optional[str] = None
    stats_store_timeout: float = DEFAULT_TIMEOUT

    @classmethod
    def from_env(cls) -> "ServiceSettings":
        timeout_raw = os.getenv("STATS_STORE_TIMEOUT")
        try:
            timeout = float(timeout_raw) if timeout_raw else DEFAULT_TIMEOUT
        except ValueError:
            logger.warning("Ignoring invalid STATS_STORE_TIMEOUT=%r", timeout_raw)
            timeout = DEFAULT_TIMEOUT
        return cls(
            database_url=os.getenv("PICKEM_DATABASE_URL", DEFAULT_DATABASE_URL),
            stats_store_url=os.getenv("STATS_STORE_URL") or None,
            stats_store_fixture=os.getenv("STATS_STORE_FIXTURE") or None,
            stats_store_timeout=timeout,
        )


@dataclass(frozen=True)
class ServiceContext:
    """Live collaborators shared by the API routes and event handlers."""

    stats_store: StatsStore
    database: ContestDatabase
    contest_manager: ContestManager
    service_settings: ServiceSettings
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


def build_stats_store(service_settings: ServiceSettings) -> StatsStore:
    if service_settings.stats_store_url:
        return HttpStatsStore(service_settings.stats_store_url, timeout=service_settings.stats_store_timeout)
    if service_settings.stats_store_fixture:
        return InMemoryStatsStore.from_json(service_settings.stats_store_fixture)
    logger.warning("No STATS_STORE_URL or STATS_STORE_FIXTURE configured; using an empty in-memory store")
    return InMemoryStatsStore()


def build_context(
    service_settings: Optional[ServiceSettings] = None,
    *,
    stats_store: Optional[StatsStore] = None,
) -> ServiceContext:
    service_settings = service_settings or ServiceSettings.from_env()
    store = stats_store if stats_store is not None else build_stats_store(service_settings)
    database = ContestDatabase.from_url(service_settings.database_url)
    return ServiceContext(
        stats_store=store,
        database=database,
        contest_manager=ContestManager(database, store),
        service_settings=service_settings,
    )


class ContextManager:
    """Own the active :class:`ServiceContext`, building it lazily."""

    def __init__(self, service_settings: Optional[ServiceSettings] = None) -> None:
        self._lock = RLock()
        self._settings = service_settings
        self._stats_store: Optional[StatsStore] = None
        self._context: Optional[ServiceContext] = None

    def get(self) -> ServiceContext:
        with self._lock:
            if self._context is None:
                self._context = build_context(
                    self._settings or ServiceSettings.from_env(),
                    stats_store=self._stats_store,
                )
            return self._context

    def configure(
        self,
        *,
        database_url: Optional[str] = None,
        stats_store: Optional[StatsStore] = None,
    ) -> None:
        """Override settings (tests, CLI) before the context is next built."""

        with self._lock:
            base = self._settings or ServiceSettings.from_env()
            if database_url is not None:
                base = replace(base, database_url=database_url)
            self._settings = base
            if stats_store is not None:
                self._stats_store = stats_store
            self._context = None

    def reset(self) -> None:
        with self._lock:
            self._settings = None
            self._stats_store = None
            self._context = None

    async def startup(self) -> ServiceContext:
        ctx = self.get()
        await ctx.database.create_schema()
        return ctx

    async def shutdown(self) -> None:
        with self._lock:
            ctx, self._context = self._context, None
        if ctx is None:
            return
        await ctx.database.dispose()
        await ctx.stats_store.aclose()

    def metadata(self) -> Dict[str, Any]:
        ctx = self.get()
        return {
            "created_at": ctx.created_at.isoformat(),
            "database": ctx.database.dialect_name,
            "stats_store": type(ctx.stats_store).__name__,
            "settings": settings.snapshot(),
        }


# Global singleton used by the CLI/API layers.
context_manager = ContextManager()
