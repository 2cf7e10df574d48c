"""
Request-scoped state for one rotation run.

The context owns the scratch working directory: it is created when the
workflow reaches the backup stage and removed when the context exits,
whatever the outcome.
"""

import logging
import shutil
import tempfile
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Optional

from credrotate.config import RotationConfig

logger = logging.getLogger("credrotate.workflow")

WORKDIR_PREFIX = "argocd-update-"
UPDATED_FILENAME = "argocd-secret-updated.yaml"


class RotationState(Enum):
    """Linear states of a run; any fatal step goes to ABORTED."""

    VALIDATE = "validate"
    HASH = "hash"
    BACKUP = "backup"
    PATCH_CONFIG = "patch_config"
    REWRITE_SECRET = "rewrite_secret"
    APPLY = "apply"
    VERIFY_FIELD = "verify_field"
    RESTART = "restart"
    AWAIT_ROLLOUT = "await_rollout"
    FINAL_VERIFY = "final_verify"
    DONE = "done"
    ABORTED = "aborted"


@dataclass(frozen=True)
class AccountCredential:
    """Username and new plaintext password; the password never leaves memory."""
    username: str
    password: str = field(repr=False)


class RotationContext:
    """Per-run state: configuration, credential, scratch files and progress."""

    def __init__(self, config: RotationConfig, credential: AccountCredential):
        self.config = config
        self.credential = credential
        self.state = RotationState.VALIDATE
        self.workdir: Optional[Path] = None
        self.backup_path: Optional[Path] = None
        self.updated_path: Optional[Path] = None
        self.retained_backup: Optional[Path] = None
        self._tempdir: Optional[tempfile.TemporaryDirectory] = None

    def __enter__(self) -> "RotationContext":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.cleanup()

    @property
    def username(self) -> str:
        return self.credential.username

    @property
    def namespace(self) -> str:
        return self.config.namespace

    def advance(self, state: RotationState) -> None:
        logger.debug(f"State {self.state.value} -> {state.value}")
        self.state = state

    def create_workdir(self) -> Path:
        """Create the scratch directory (idempotent)."""
        if self._tempdir is None:
            self._tempdir = tempfile.TemporaryDirectory(prefix=WORKDIR_PREFIX)
            self.workdir = Path(self._tempdir.name)
        return self.workdir

    def new_backup_path(self, now: Optional[datetime] = None) -> Path:
        stamp = (now or datetime.now()).strftime("%Y%m%d-%H%M%S")
        self.backup_path = self.create_workdir() / f"argocd-secret-backup-{stamp}.yaml"
        return self.backup_path

    def new_updated_path(self) -> Path:
        self.updated_path = self.create_workdir() / UPDATED_FILENAME
        return self.updated_path

    def retain_backup(self) -> Optional[Path]:
        """
        Copy the backup out of the scratch directory so it survives cleanup.

        Returns the retained path, or None when no backup was taken.
        """
        if self.retained_backup is not None:
            return self.retained_backup
        if self.backup_path is None or not self.backup_path.exists():
            return None

        recovery_dir = Path(self.config.recovery_dir)
        recovery_dir.mkdir(parents=True, exist_ok=True)
        target = recovery_dir / self.backup_path.name
        shutil.copy2(self.backup_path, target)
        target.chmod(0o600)
        self.retained_backup = target
        return target

    def cleanup(self) -> None:
        """Remove the scratch directory."""
        if self._tempdir is not None:
            self._tempdir.cleanup()
            logger.debug(f"Removed working directory {self.workdir}")
            self._tempdir = None
