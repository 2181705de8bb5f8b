# installer/base_step.py
# -*- coding: utf-8 -*-
"""
Base step class for all bootstrap steps.

A step owns one piece of target host state. It can probe whether that state
already exists (is_satisfied) and create it (apply). The StepExecutor decides
which of the two to call; steps never call each other.
"""

import logging
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from installer.context import HostContext


class BaseStep(ABC):
    """
    Base class for all bootstrap steps.

    Subclasses set `name` (the identifier shown in the report and the run
    log) and `description`, and set `optional = True` when a failure must not
    halt the run.
    """

    name: str = ""
    description: str = ""
    optional: bool = False

    def __init__(self, context: "HostContext"):
        """
        Initialize the step.

        Args:
            context: Settings, configuration and host collaborators for the run.
        """
        self.context = context
        self.app_settings = context.app_settings
        self.config = context.config
        self.logger = context.logger or logging.getLogger(
            self.__class__.__name__
        )

    def skip_reason(self) -> Optional[str]:
        """
        Reason this step is skipped by choice, or None if it should run.

        Checked before the probe.
        """
        return None

    @abstractmethod
    def is_satisfied(self) -> bool:
        """
        Probe the host for this step's target state.

        Returns:
            True if the state already exists and nothing needs to be applied.
        """
        pass

    @abstractmethod
    def apply(self) -> None:
        """
        Create this step's target state.

        Raises an exception on failure; a return means the mutation was
        issued and the executor re-probes to confirm it.
        """
        pass

    def describe_state(self) -> Optional[str]:
        """
        Short description of the resulting state for the summary report,
        e.g. an installed tool version.
        """
        return None
