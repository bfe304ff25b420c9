from __future__ import annotations

import logging
from pathlib import Path

from rich.logging import RichHandler

_FILE_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def _resolve_level(level: int | str) -> int:
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(level.strip().upper())
    if not isinstance(resolved, int):
        raise ValueError(f"Unknown log level: {level!r}")
    return resolved


def setup_logging(log_path: Path | None = None, level: int | str = logging.INFO) -> logging.Logger:
    """Configure the root logger and return the ``gramcheck`` logger.

    The rich console handler shows `level` and above. The optional log file
    always records DEBUG, so per-sentence fallbacks and language guesses can be
    traced after a run.
    """
    console_level = _resolve_level(level)
    console = RichHandler(rich_tracebacks=True, show_path=False, show_time=True, show_level=True, markup=False)
    console.setLevel(console_level)
    handlers: list[logging.Handler] = [console]
    root_level = console_level
    if log_path is not None:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        fh = logging.FileHandler(log_path, encoding="utf-8")
        fh.setLevel(logging.DEBUG)
        fh.setFormatter(logging.Formatter(_FILE_FORMAT, "%Y-%m-%d %H:%M:%S"))
        handlers.append(fh)
        root_level = logging.DEBUG

    # force=True: a second run in the same process replaces the handlers.
    logging.basicConfig(level=root_level, handlers=handlers, format="%(message)s", force=True)
    return logging.getLogger("gramcheck")
