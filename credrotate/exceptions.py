"""Fatal errors raised by the rotation steps."""

from typing import Optional


class RotationError(Exception):
    """A step failed and the run must stop.

    ``restore_command`` is set once a backup exists, so the operator can
    put the previous secret back by hand.
    """

    step = "rotation"

    def __init__(self, message: str, restore_command: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.restore_command = restore_command


class PrerequisiteError(RotationError):
    step = "validate"


class HashingError(RotationError):
    step = "hash"


class BackupError(RotationError):
    step = "backup"


class SecretDocumentError(RotationError):
    step = "rewrite"


class ApplyError(RotationError):
    step = "apply"


class VerificationError(RotationError):
    step = "verify"


class RestartError(RotationError):
    step = "restart"
