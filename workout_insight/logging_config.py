"""Central logging configuration for the workout insight service."""
from __future__ import annotations

from logging.config import dictConfig
from pathlib import Path

from pydantic import ValidationError

from workout_insight.config import get_settings

_configured = False

# Third-party loggers that are noisy at INFO.
QUIET_LOGGERS = {
    # The SDK logs every HTTP exchange.
    "httpx": "WARNING",
    "anthropic": "WARNING",
    "sqlalchemy.engine": "WARNING",
}


def build_logging_config(
    log_dir: Path,
    level: str,
    overrides: dict[str, str] | None = None,
    debug: bool = False,
) -> dict:
    """
    Build the ``dictConfig`` mapping for the service.

    Everything goes to the console and ``log_dir/app.log``. Decisions that
    refuse work (quota, cooldown, rate limits) are logged under
    ``workout_insight.services`` at WARNING or above and are also copied to
    ``log_dir/warnings.log`` so they can be audited without the request noise.

    Args:
        log_dir: Directory for the log files
        level: Root level
        overrides: Per-logger levels applied last
        debug: Echo SQL statements through the ``sqlalchemy.engine`` logger

    Returns:
        dict: Configuration accepted by :func:`logging.config.dictConfig`
    """
    fmt = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"

    loggers = {name: {"level": quiet} for name, quiet in QUIET_LOGGERS.items()}
    if debug:
        loggers["sqlalchemy.engine"] = {"level": "INFO"}
    loggers["workout_insight.services"] = {"level": level, "handlers": ["warnings"]}
    for name, override in (overrides or {}).items():
        loggers.setdefault(name, {})["level"] = override

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "standard": {
                "format": fmt,
            },
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "formatter": "standard",
            },
            "file": {
                "class": "logging.FileHandler",
                "filename": str(log_dir / "app.log"),
                "encoding": "utf-8",
                "formatter": "standard",
            },
            "warnings": {
                "class": "logging.FileHandler",
                "filename": str(log_dir / "warnings.log"),
                "encoding": "utf-8",
                "formatter": "standard",
                "level": "WARNING",
            },
        },
        "loggers": loggers,
        "root": {
            "level": level,
            "handlers": ["console", "file"],
        },
    }


def configure_logging() -> None:
    """Configure application logging once per process."""

    global _configured
    if _configured:
        return

    try:
        settings = get_settings()
        log_dir = settings.log_dir
        level = settings.log_level
        overrides = settings.log_levels
        debug = settings.debug
    except ValidationError:
        # Fallback for contexts (like certain tests) that inject required env vars later.
        log_dir = Path("logs")
        level = "INFO"
        overrides = {}
        debug = False
    log_dir.mkdir(parents=True, exist_ok=True)

    dictConfig(build_logging_config(log_dir, level, overrides, debug))
    _configured = True
