# ci_bootstrap/step_executor.py
# -*- coding: utf-8 -*-
"""
Runs bootstrap steps in order, skipping those whose target state already
exists on the host.

For each step the executor probes the host. A satisfied probe yields a
`skipped` result and nothing is re-applied. Otherwise the step is applied
and probed again: the step is `applied` only if the second probe confirms
it. Any exception raised while probing or applying becomes a `failed`
result. A failed non-optional step stops the run; a failed optional step is
recorded and the run carries on.
"""

import logging
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Iterable, List, Optional

from pydantic import BaseModel, ConfigDict

from ci_bootstrap.config_models import AppSettings
from common.command_utils import log_bootstrap

if TYPE_CHECKING:
    from ci_bootstrap.run_log import RunLog
    from installer.base_step import BaseStep

module_logger = logging.getLogger(__name__)


class StepStatus(str, Enum):
    APPLIED = "applied"
    SKIPPED = "skipped"
    FAILED = "failed"


class StepResult(BaseModel):
    """Outcome of a single step. Immutable once the step has returned."""

    model_config = ConfigDict(frozen=True)

    name: str
    status: StepStatus
    message: Optional[str] = None
    optional: bool = False
    detail: Optional[str] = None
    started_at: datetime
    finished_at: datetime

    @property
    def is_fatal(self) -> bool:
        return self.status is StepStatus.FAILED and not self.optional


def _now() -> datetime:
    return datetime.now(timezone.utc)


class StepExecutor:
    """Executes an ordered list of steps and collects their results."""

    def __init__(
        self,
        app_settings: AppSettings,
        run_log: Optional["RunLog"] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.app_settings = app_settings
        self.run_log = run_log
        self.logger = logger or module_logger
        self.results: List[StepResult] = []

    def _describe(self, step: "BaseStep") -> Optional[str]:
        # The step outcome is already settled; a broken summary only loses detail.
        try:
            return step.describe_state()
        except Exception as e:
            log_bootstrap(
                f"{self.app_settings.symbols.get('warning', '⚠️')} Could not describe state of {step.name}: {e}",
                "warning",
                self.logger,
                self.app_settings,
                exc_info=True,
            )
            return None

    def execute(self, step: "BaseStep") -> StepResult:
        """
        Execute a single step and return its result.

        The result is also appended to `self.results` and the run log.
        """
        symbols = self.app_settings.symbols
        started_at = _now()
        status: StepStatus
        message: Optional[str] = None
        detail: Optional[str] = None

        log_bootstrap(
            f"--- {symbols.get('step', '➡️')} {step.description} ({step.name}) ---",
            "info",
            self.logger,
            self.app_settings,
        )
        try:
            skip_reason = step.skip_reason()
            if skip_reason:
                status = StepStatus.SKIPPED
                message = skip_reason
                log_bootstrap(
                    f"{symbols.get('skip', '⏭️')} {step.name}: {skip_reason}",
                    "info",
                    self.logger,
                    self.app_settings,
                )
            elif step.is_satisfied():
                status = StepStatus.SKIPPED
                message = "already present"
                log_bootstrap(
                    f"{symbols.get('warning', '⚠️')} {step.description} already present. Skipping.",
                    "warning",
                    self.logger,
                    self.app_settings,
                )
            else:
                step.apply()
                if step.is_satisfied():
                    status = StepStatus.APPLIED
                    log_bootstrap(
                        f"{symbols.get('success', '✅')} {step.description} applied.",
                        "success",
                        self.logger,
                        self.app_settings,
                    )
                else:
                    status = StepStatus.FAILED
                    message = "target state still absent after applying the step"
                    log_bootstrap(
                        f"{symbols.get('error', '❌')} FAILED: {step.name}: {message}",
                        "error",
                        self.logger,
                        self.app_settings,
                    )
        except Exception as e:
            status = StepStatus.FAILED
            message = str(e) or e.__class__.__name__
            log_bootstrap(
                f"{symbols.get('error', '❌')} FAILED: {step.name}: {message}",
                "error",
                self.logger,
                self.app_settings,
                exc_info=True,
            )

        if status is not StepStatus.FAILED:
            detail = self._describe(step)

        result = StepResult(
            name=step.name,
            status=status,
            message=message,
            optional=step.optional,
            detail=detail,
            started_at=started_at,
            finished_at=_now(),
        )
        self.results.append(result)
        if self.run_log is not None:
            self.run_log.record(result)
        return result

    def run(self, steps: Iterable["BaseStep"]) -> List[StepResult]:
        """
        Execute steps in order, stopping after the first fatal failure.

        Returns the results of every step attempted in this call.
        """
        attempted: List[StepResult] = []
        for step in steps:
            result = self.execute(step)
            attempted.append(result)
            if result.is_fatal:
                log_bootstrap(
                    f"{self.app_settings.symbols.get('critical', '🔥')} Step '{step.name}' is required. Halting the bootstrap.",
                    "critical",
                    self.logger,
                    self.app_settings,
                )
                break
            if result.status is StepStatus.FAILED:
                log_bootstrap(
                    f"{self.app_settings.symbols.get('warning', '⚠️')} Step '{step.name}' is optional. Continuing.",
                    "warning",
                    self.logger,
                    self.app_settings,
                )
        return attempted
