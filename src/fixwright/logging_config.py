"""Process-wide logging for fixwright.

``setup_logging`` runs once, before litellm is imported. It pins
``LITELLM_LOG`` (read by litellm at import time), configures the root
logger from ``Settings`` and quiets chatty third-party loggers.

``cleanup_third_party_handlers`` runs once, after every import. litellm
attaches its own StreamHandlers when imported; dropping them lets its
records reach the root handler exactly once.

``attach_run_log`` / ``detach_run_log`` own the single file handler behind
the ``fixwright.runs`` audit logger that ``RunLogger`` writes through.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

from fixwright.config import Settings

LOG_FORMAT = "%(asctime)s - %(levelname)s - [%(name)s] - %(message)s"
LOG_DATEFMT = "%Y-%m-%dT%H:%M:%S"

RUN_LOG_NAME = "fixwright.runs"
RUN_LOG_FILE = "runs.log"

_THIRD_PARTY_LEVELS: dict[str, int] = {
    "LiteLLM": logging.WARNING,
    "LiteLLM Router": logging.WARNING,
    "LiteLLM Proxy": logging.WARNING,
    "openai._base_client": logging.WARNING,
    "httpx": logging.WARNING,
    "aiosqlite": logging.WARNING,
    "sqlalchemy.engine": logging.WARNING,
}

_LITELLM_LOGGERS = ("LiteLLM", "LiteLLM Router", "LiteLLM Proxy")

_configured = False
_litellm_cleaned = False


def root_level(settings: Settings) -> int:
    """``debug_mode`` wins over ``log_level``."""
    if settings.debug_mode:
        return logging.DEBUG
    return logging.getLevelNamesMapping()[settings.log_level]


def setup_logging(settings: Settings | None = None) -> None:
    """Configure the root logger once per process.

    Must run BEFORE any fixwright module that pulls in litellm is
    imported. Later calls are no-ops.
    """
    global _configured  # noqa: PLW0603
    if _configured:
        return
    _configured = True

    cfg = settings or Settings()
    os.environ.setdefault(
        "LITELLM_LOG", "DEBUG" if cfg.debug_mode else "WARNING"
    )
    logging.basicConfig(
        level=root_level(cfg),
        format=LOG_FORMAT,
        datefmt=LOG_DATEFMT,
    )
    for name, level in _THIRD_PARTY_LEVELS.items():
        logging.getLogger(name).setLevel(level)


def cleanup_third_party_handlers() -> None:
    """Strip litellm's import-time handlers; records propagate to root."""
    global _litellm_cleaned  # noqa: PLW0603
    if _litellm_cleaned:
        return
    _litellm_cleaned = True

    for name in _LITELLM_LOGGERS:
        lg = logging.getLogger(name)
        lg.handlers.clear()
        lg.propagate = True


def attach_run_log(log_dir: Path, level: str = "INFO") -> logging.Logger:
    """Point the run audit logger at ``log_dir/runs.log``.

    The logger never propagates to root. Attaching to the file already
    in use keeps the open handler; any other directory replaces it.
    """
    log_dir.mkdir(parents=True, exist_ok=True)
    target = os.path.abspath(log_dir / RUN_LOG_FILE)

    run_log = logging.getLogger(RUN_LOG_NAME)
    run_log.setLevel(level.upper())
    run_log.propagate = False
    for handler in list(run_log.handlers):
        if (
            isinstance(handler, logging.FileHandler)
            and handler.baseFilename == target
        ):
            return run_log
        run_log.removeHandler(handler)
        handler.close()

    handler = logging.FileHandler(target, encoding="utf-8")
    handler.setFormatter(logging.Formatter("%(message)s"))
    run_log.addHandler(handler)
    return run_log


def detach_run_log() -> None:
    """Close and remove the run audit log handler, if any."""
    run_log = logging.getLogger(RUN_LOG_NAME)
    for handler in list(run_log.handlers):
        run_log.removeHandler(handler)
        handler.close()
