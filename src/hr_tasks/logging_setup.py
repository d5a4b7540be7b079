from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Optional

_HANDLER_TAG = "_hr_tasks_handler"


class _ConsoleNoiseFilter(logging.Filter):
    """Our own logs pass; third-party libraries only reach the console at WARNING+."""

    def filter(self, record: logging.LogRecord) -> bool:
        if record.name == "hr_tasks" or record.name.startswith("hr_tasks."):
            return True
        return record.levelno >= logging.WARNING


def setup_logging(
    *,
    level: str | int = logging.INFO,
    log_dir: Optional[str | Path] = None,
    file_level: int = logging.DEBUG,
) -> None:
    """Configure root logging: a filtered console handler plus an optional
    file handler under `log_dir` (hr_tasks.log).

    Safe to call more than once; only handlers installed here are replaced.
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    root = logging.getLogger()
    root.setLevel(min(level, file_level) if log_dir else level)

    for h in list(root.handlers):
        if getattr(h, _HANDLER_TAG, False):
            root.removeHandler(h)
            h.close()

    fmt = logging.Formatter(
        fmt="%(asctime)s.%(msecs)03d %(levelname)s %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    ch = logging.StreamHandler(sys.stderr)
    ch.setLevel(level)
    ch.setFormatter(fmt)
    ch.addFilter(_ConsoleNoiseFilter())
    setattr(ch, _HANDLER_TAG, True)
    root.addHandler(ch)

    if log_dir:
        path = Path(log_dir)
        path.mkdir(parents=True, exist_ok=True)
        fh = logging.FileHandler(str(path / "hr_tasks.log"), encoding="utf-8")
        fh.setLevel(file_level)
        fh.setFormatter(fmt)
        setattr(fh, _HANDLER_TAG, True)
        root.addHandler(fh)

    logging.captureWarnings(True)
