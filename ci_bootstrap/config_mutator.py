# ci_bootstrap/config_mutator.py
# -*- coding: utf-8 -*-
"""
Key/value edits of "Key value" style configuration files (sshd_config and
friends), with a one-time backup of the pristine original.

The text transformation is a pure function over file content so it can be
tested without touching a filesystem. ConfigMutator wraps it with the file
I/O: existence and permission checks, the backup, and an atomic write.
"""

import logging
import os
import re
import shutil
import tempfile
from pathlib import Path
from typing import Iterable, List, Optional, Set, Tuple

from pydantic import BaseModel, ConfigDict, Field

from ci_bootstrap.config_models import BACKUP_SUFFIX_DEFAULT, AppSettings
from ci_bootstrap.errors import ConfigFileNotFoundError, FilePermissionError
from common.command_utils import log_bootstrap

module_logger = logging.getLogger(__name__)

Assignment = Tuple[str, str]


class ConfigFileEdit(BaseModel):
    """A file and the ordered key/value assignments to enforce in it."""

    model_config = ConfigDict(frozen=True)

    path: str
    assignments: Tuple[Assignment, ...] = Field(default_factory=tuple)
    backup_suffix: str = BACKUP_SUFFIX_DEFAULT

    @property
    def backup_path(self) -> str:
        return f"{self.path}{self.backup_suffix}"


def _key_pattern(key: str) -> "re.Pattern[str]":
    # Matches "Key value", "#Key value" and "  # Key value".
    return re.compile(rf"^[#\t ]*{re.escape(key)}[\t ]+.*$", re.MULTILINE)


def apply_key_value_edits(
    content: str, assignments: Iterable[Assignment]
) -> str:
    """
    Return `content` with every assignment enforced.

    Every line setting `key` (commented out or not) is rewritten to
    "key value". A key that appears nowhere is appended on a new line.
    """
    new_content = content
    for key, value in assignments:
        line = f"{key} {value}"
        pattern = _key_pattern(key)
        if pattern.search(new_content):
            new_content = pattern.sub(lambda _m: line, new_content)
        else:
            if new_content and not new_content.endswith("\n"):
                new_content += "\n"
            new_content += line + "\n"
    return new_content


def pending_keys(content: str, assignments: Iterable[Assignment]) -> List[str]:
    """Keys whose enforcement would still change `content`."""
    pending = []
    for key, value in assignments:
        if apply_key_value_edits(content, [(key, value)]) != content:
            pending.append(key)
    return pending


class BackupLedger:
    """
    Paths backed up during the current run.

    Owned by the orchestrator and passed to each ConfigMutator, so two
    simulated runs in one process never share state.
    """

    def __init__(self) -> None:
        self._paths: Set[str] = set()

    def __contains__(self, path: object) -> bool:
        return path in self._paths

    def add(self, path: str) -> None:
        self._paths.add(path)

    @property
    def paths(self) -> Set[str]:
        return set(self._paths)


class ConfigMutator:
    """Applies ConfigFileEdits to files on disk."""

    def __init__(
        self,
        app_settings: AppSettings,
        ledger: Optional[BackupLedger] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.app_settings = app_settings
        self.ledger = ledger if ledger is not None else BackupLedger()
        self.logger = logger or module_logger

    def _read(self, path: Path) -> str:
        if not path.is_file():
            raise ConfigFileNotFoundError(str(path))
        try:
            return path.read_text(encoding="utf-8")
        except PermissionError as e:
            raise FilePermissionError(str(path)) from e

    def pending(self, edit: ConfigFileEdit) -> List[str]:
        """Keys of `edit` not yet enforced in the file."""
        return pending_keys(self._read(Path(edit.path)), edit.assignments)

    def ensure_backup(self, edit: ConfigFileEdit) -> bool:
        """
        Copy the file to its backup path unless a backup already exists.

        Returns True if a backup was written by this call.
        """
        symbols = self.app_settings.symbols
        backup = Path(edit.backup_path)
        if edit.path in self.ledger or backup.exists():
            log_bootstrap(
                f"{symbols.get('info', 'ℹ️')} Backup {backup} already exists. Keeping it.",
                "debug",
                self.logger,
                self.app_settings,
            )
            self.ledger.add(edit.path)
            return False
        shutil.copy2(edit.path, backup)
        self.ledger.add(edit.path)
        log_bootstrap(
            f"{symbols.get('success', '✅')} Backed up {edit.path} to {backup}",
            "success",
            self.logger,
            self.app_settings,
        )
        return True

    def apply(self, edit: ConfigFileEdit) -> bool:
        """
        Enforce `edit` on its file.

        Returns True if the file changed, False if it already matched.

        Raises:
            ConfigFileNotFoundError: The target file does not exist.
            FilePermissionError: The target file cannot be written.
        """
        path = Path(edit.path)
        content = self._read(path)
        new_content = apply_key_value_edits(content, edit.assignments)
        if new_content == content:
            return False

        if not os.access(path, os.W_OK) or not os.access(
            path.parent, os.W_OK
        ):
            raise FilePermissionError(str(path))

        self.ensure_backup(edit)

        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{path.name}.", dir=str(path.parent)
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as tmp_f:
                tmp_f.write(new_content)
            shutil.copymode(path, tmp_name)
            os.replace(tmp_name, path)
        except BaseException:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise

        log_bootstrap(
            f"{self.app_settings.symbols.get('gear', '⚙️')} Updated {path}: {', '.join(k for k, _ in edit.assignments)}",
            "info",
            self.logger,
            self.app_settings,
        )
        return True
