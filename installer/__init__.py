# installer/__init__.py
# -*- coding: utf-8 -*-
"""
Bootstrap steps for a CI control node.

Each step probes one piece of host state and applies it when missing. The
orchestrator runs them in a fixed order through the StepExecutor.
"""

from installer.base_step import BaseStep
from installer.context import HostContext, build_host_context

__all__ = ["BaseStep", "HostContext", "build_host_context"]
