"""
Shared API dependencies.

The planning engine is built once per process and injected into routes with
``Depends(get_engine)``; tests replace it through ``app.dependency_overrides``.
"""

from functools import lru_cache
from pathlib import Path

from adaptive_coach.config import get_settings
from adaptive_coach.database import DatabaseStorage
from adaptive_coach.engine import DailyPlanningEngine
from adaptive_coach.logger import get_logger, setup_logger

log = get_logger(__name__)


def _ensure_sqlite_directory(database_url: str) -> None:
    prefix = "sqlite:///"
    if database_url.startswith(prefix) and database_url != "sqlite:///:memory:":
        Path(database_url[len(prefix):]).parent.mkdir(parents=True, exist_ok=True)


@lru_cache(maxsize=1)
def get_engine() -> DailyPlanningEngine:
    """Process-wide planning engine backed by the configured database."""
    settings = get_settings()
    setup_logger(level=settings.log_level, log_file=settings.log_file)
    _ensure_sqlite_directory(settings.database_url)
    log.info(f"Starting planning engine with storage at {settings.database_url}")
    return DailyPlanningEngine(storage=DatabaseStorage(settings.database_url), settings=settings)
