"""
Idempotent bootstrap of a CI/CD control node.
"""

from ci_bootstrap.config import SCRIPT_VERSION

__version__ = SCRIPT_VERSION
