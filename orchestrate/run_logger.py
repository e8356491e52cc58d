"""
Per-execution logger: buffers structured lines for the run record and
mirrors each one to loguru.
"""

from __future__ import annotations

import threading
from datetime import datetime, timezone

from loguru import logger


class RunLogger:
    """
    Collects {level, msg, data, ts} entries for one submodule execution.

    Safe to share between the worker threads of a discovery batch.
    """

    def __init__(self, submodule: str, run_id: str | None = None):
        self.submodule = submodule
        self._lines: list[dict] = []
        self._lock = threading.Lock()
        self._log = logger.bind(submodule=submodule, run_id=run_id)

    def _record(self, level: str, msg: str, data=None) -> None:
        entry = {
            "level": level,
            "msg": str(msg),
            "data": data,
            "ts": datetime.now(timezone.utc).isoformat(),
        }
        with self._lock:
            self._lines.append(entry)
        # opt(depth=2) attributes the line to the submodule, not this wrapper
        self._log.opt(depth=2).log(level.upper(), "{}", msg)

    def debug(self, msg: str, data=None) -> None:
        self._record("debug", msg, data)

    def info(self, msg: str, data=None) -> None:
        self._record("info", msg, data)

    def warning(self, msg: str, data=None) -> None:
        self._record("warning", msg, data)

    warn = warning

    def error(self, msg: str, data=None) -> None:
        self._record("error", msg, data)

    @property
    def lines(self) -> list[dict]:
        with self._lock:
            return list(self._lines)

    def __len__(self) -> int:
        return len(self._lines)
