# ci_bootstrap/run_log.py
# -*- coding: utf-8 -*-
"""
Structured, append-only log of step results for one bootstrap run.

Each result becomes one JSON line, so the completed prefix of an
interrupted run can be read back from the file.
"""

import itertools
import logging
import uuid
from pathlib import Path
from typing import TYPE_CHECKING, List, Optional

from common.logging_config import JSONFormatter

if TYPE_CHECKING:
    from ci_bootstrap.step_executor import StepResult

module_logger = logging.getLogger(__name__)

_instance_counter = itertools.count(1)


class RunLog:
    """
    Owns a dedicated logger writing JSON lines to `path`.

    Every RunLog gets its own logger name, so simulated runs in one process
    do not share handlers.
    """

    def __init__(self, path: Optional[str], run_id: Optional[str] = None):
        self.path = Path(path) if path else None
        self.run_id = run_id or uuid.uuid4().hex[:12]
        self.entries: List["StepResult"] = []
        self._logger = logging.getLogger(
            f"ci_bootstrap.run_log.{next(_instance_counter)}"
        )
        self._logger.setLevel(logging.INFO)
        self._logger.propagate = False
        self._handler: Optional[logging.Handler] = None

        if self.path is not None:
            try:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                self._handler = logging.FileHandler(self.path, mode="a")
            except OSError as e:
                module_logger.warning(
                    f"Could not open run log {self.path}: {e}. Step results will only be kept in memory."
                )
            else:
                self._handler.setFormatter(JSONFormatter())
                self._logger.addHandler(self._handler)

    def record(self, result: "StepResult") -> None:
        self.entries.append(result)
        self._logger.info(
            f"step {result.name} {result.status.value}",
            extra={
                "run_id": self.run_id,
                "step": result.name,
                "status": result.status.value,
                "optional": result.optional,
                "detail": result.detail,
                "result_message": result.message,
                "started_at": result.started_at.isoformat(),
                "finished_at": result.finished_at.isoformat(),
            },
        )

    def close(self) -> None:
        if self._handler is not None:
            self._logger.removeHandler(self._handler)
            self._handler.close()
            self._handler = None
