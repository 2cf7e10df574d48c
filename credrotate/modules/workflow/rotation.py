"""
Credential rotation workflow.

Runs the steps in a fixed order:

    Validate -> Hash -> Backup -> PatchConfig -> RewriteSecret -> Apply ->
    VerifyField -> Restart -> AwaitRollout -> FinalVerify -> Done

Fatal steps raise a RotationError and the run stops (ABORTED). The config
patch and the rollout wait only warn. Nothing is rolled back automatically:
once a backup exists, the error carries the command that restores it.
"""

import logging
import time
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Callable, Optional

from credrotate.config import RotationConfig
from credrotate.exceptions import (
    ApplyError,
    BackupError,
    PrerequisiteError,
    RestartError,
    RotationError,
    SecretDocumentError,
    VerificationError,
)
from credrotate.modules.cluster import Kubectl, KubectlResult
from credrotate.modules.hashing import (
    HashedPassword,
    PasswordHasher,
    create_hasher,
    encode_for_storage,
    hash_for_argocd,
)
from credrotate.modules.secret import (
    FieldChange,
    password_key,
    rewrite_secret_file,
    validate_username,
)

from .context import AccountCredential, RotationContext, RotationState
from .reporter import StepReporter

logger = logging.getLogger("credrotate.workflow")

PREVIEW_LENGTH = 50
CONFLICT_MARKERS = ("already exists", "conflict", "(no change)")


class PatchOutcome(Enum):
    """Result of the best-effort argocd-cm patch."""

    APPLIED_NEW = "applied_new"
    CONFLICT = "conflict"
    TRANSPORT_ERROR = "transport_error"


def classify_patch_result(result: KubectlResult) -> PatchOutcome:
    """Map a ``kubectl patch`` result onto a PatchOutcome."""
    text = result.output.lower()
    if any(marker in text for marker in CONFLICT_MARKERS):
        return PatchOutcome.CONFLICT
    if result.success:
        return PatchOutcome.APPLIED_NEW
    return PatchOutcome.TRANSPORT_ERROR


@dataclass
class RotationResult:
    """Summary of a completed run."""
    username: str
    namespace: str
    password_hash: str
    encoded_hash: str
    patch_outcome: PatchOutcome
    field_change: FieldChange
    rollout_completed: bool
    retained_backup: Optional[Path] = None
    restore_command: Optional[str] = None


class RotationWorkflow:
    """Rotate one Argo CD local account password."""

    def __init__(
        self,
        config: RotationConfig,
        kubectl: Optional[Kubectl] = None,
        hasher: Optional[PasswordHasher] = None,
        reporter: Optional[StepReporter] = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.config = config
        self.kubectl = kubectl or Kubectl(
            binary=config.kubectl_binary,
            namespace=config.namespace,
            timeout=config.command_timeout,
        )
        self.hasher = hasher or create_hasher(config.hasher, cost=config.bcrypt_cost)
        self.reporter = reporter or StepReporter()
        self._sleep = sleep
        self._clock = clock

    def run(self, credential: AccountCredential) -> RotationResult:
        """
        Execute every step.

        Raises:
            RotationError: on the first fatal step
        """
        with RotationContext(self.config, credential) as context:
            try:
                self.validate(context)
                hashed = self.hash(context)
                self.backup(context)
                patch_outcome = self.patch_config(context)
                field_change = self.rewrite_secret(context, hashed)
                self.apply(context)
                self.verify_field(context, hashed)
                self.restart(context)
                rollout_completed = self.await_rollout(context)
                self.final_verify(context)
            except RotationError as e:
                context.advance(RotationState.ABORTED)
                self._attach_restore_command(context, e)
                raise

            retained = None
            restore_command = None
            if self.config.keep_backup:
                retained = context.retain_backup()
                if retained is not None:
                    restore_command = self.kubectl.restore_command(str(retained))

            context.advance(RotationState.DONE)
            result = RotationResult(
                username=context.username,
                namespace=context.namespace,
                password_hash=hashed.hash,
                encoded_hash=hashed.encoded,
                patch_outcome=patch_outcome,
                field_change=field_change,
                rollout_completed=rollout_completed,
                retained_backup=retained,
                restore_command=restore_command,
            )
            self.report_summary(result)
            return result

    def _attach_restore_command(self, context: RotationContext, error: RotationError) -> None:
        """Keep the backup past cleanup and point the error at it."""
        if error.restore_command is not None or context.backup_path is None:
            return
        try:
            retained = context.retain_backup()
        except OSError as e:
            logger.warning(f"Could not copy backup to {self.config.recovery_dir}: {e}")
            retained = context.backup_path
        if retained is not None:
            error.restore_command = self.kubectl.restore_command(str(retained))

    # Validate

    def validate(self, context: RotationContext) -> None:
        """Check the username, local tools and the cluster objects."""
        reporter = self.reporter
        reporter.banner("ArgoCD Credentials Update Script")
        reporter.heading("Configuration:")
        reporter.detail(f"Username: {context.username}")
        reporter.detail(f"Namespace: {context.namespace}")
        reporter.detail("")

        try:
            validate_username(context.username)
        except SecretDocumentError as e:
            raise PrerequisiteError(e.message) from e

        reporter.step(1, f"Verifying {self.kubectl.binary} installation")
        if not self.kubectl.is_available():
            raise PrerequisiteError(f"{self.kubectl.binary} not found")
        reporter.success(f"{self.kubectl.binary} is installed")

        reporter.step(2, f"Verifying {self.hasher.name} hashing backend")
        if self.hasher.is_available():
            reporter.success(f"{self.hasher.name} is available")
        else:
            self.hasher.ensure_available()

        reporter.step(3, f"Checking namespace: {context.namespace}")
        if not self.kubectl.namespace_exists(context.namespace):
            raise PrerequisiteError(f"Namespace '{context.namespace}' does not exist")
        reporter.success(f"Namespace '{context.namespace}' exists")

        reporter.step(4, f"Checking {self.config.secret_name} in namespace")
        if not self.kubectl.resource_exists("secret", self.config.secret_name):
            raise PrerequisiteError(
                f"Secret '{self.config.secret_name}' not found in namespace '{context.namespace}'"
            )
        reporter.success(f"{self.config.secret_name} found")

    # Hash

    def hash(self, context: RotationContext) -> HashedPassword:
        reporter = self.reporter
        context.advance(RotationState.HASH)

        reporter.step(5, "Creating temporary working directory")
        workdir = context.create_workdir()
        reporter.success(f"Temp directory created: {workdir}")

        reporter.step(6, "Generating bcrypt password hash")
        hashed = hash_for_argocd(self.hasher, context.credential.password)
        reporter.success("Password hash generated")
        reporter.detail(f"Hash: {hashed}")

        reporter.step(7, "Encoding hash to base64")
        encoded = encode_for_storage(hashed)
        reporter.success("Base64 encoding completed")
        reporter.detail(f"Base64: {encoded[:PREVIEW_LENGTH]}...")

        return HashedPassword(hash=hashed, encoded=encoded)

    # Backup

    def backup(self, context: RotationContext) -> Path:
        """Dump the live secret to disk before anything is changed."""
        context.advance(RotationState.BACKUP)
        self.reporter.step(8, "Backing up current secret")

        result = self.kubectl.get_yaml("secret", self.config.secret_name)
        if not result.success or not result.stdout.strip():
            raise BackupError(f"Failed to backup secret: {result.output}")

        backup_path = context.new_backup_path(self._clock())
        try:
            backup_path.write_text(result.stdout, encoding="utf-8")
            backup_path.chmod(0o600)
        except OSError as e:
            context.backup_path = None
            raise BackupError(f"Failed to write backup {backup_path}: {e}") from e

        self.reporter.success(f"Backup created: {backup_path}")
        return backup_path

    # Patch config

    def patch_config(self, context: RotationContext) -> PatchOutcome:
        """Enable the account in the ConfigMap; never fatal."""
        context.advance(RotationState.PATCH_CONFIG)
        self.reporter.step(9, "Updating ConfigMap to enable account")

        patch = {"data": {f"accounts.{context.username}": self.config.account_capabilities}}
        result = self.kubectl.patch_merge("configmap", self.config.configmap_name, patch)
        outcome = classify_patch_result(result)

        if outcome is PatchOutcome.APPLIED_NEW:
            self.reporter.success(f"ConfigMap updated with account: {context.username}")
        elif outcome is PatchOutcome.CONFLICT:
            self.reporter.warning("ConfigMap update failed or account already exists")
        else:
            logger.warning(f"Unexpected error patching {self.config.configmap_name}: {result.output}")
            self.reporter.warning("ConfigMap update failed or account already exists")
        return outcome

    # Rewrite secret

    def rewrite_secret(self, context: RotationContext, hashed: HashedPassword) -> FieldChange:
        context.advance(RotationState.REWRITE_SECRET)
        self.reporter.step(10, "Preparing updated secret")

        updated_path = context.new_updated_path()
        try:
            change = rewrite_secret_file(context.backup_path, updated_path, context.username, hashed.encoded)
        except OSError as e:
            raise SecretDocumentError(f"Failed to write {updated_path}: {e}") from e

        if change is FieldChange.REPLACED:
            self.reporter.detail("Password entry exists, replacing it")
        else:
            self.reporter.detail("Password entry does not exist, adding it")
        self.reporter.success("Secret prepared for update")
        return change

    # Apply / verify

    def apply(self, context: RotationContext) -> None:
        context.advance(RotationState.APPLY)
        self.reporter.step(11, "Applying updated secret to cluster")

        result = self.kubectl.apply_file(str(context.updated_path))
        if not result.success:
            raise ApplyError(f"Failed to apply secret: {result.output}")
        self.reporter.success("Secret applied successfully")

    def verify_field(self, context: RotationContext, hashed: HashedPassword) -> None:
        """Read the field back and compare it byte for byte."""
        context.advance(RotationState.VERIFY_FIELD)
        self.reporter.step(12, "Verifying secret update")

        current = self.kubectl.get_data_field("secret", self.config.secret_name, password_key(context.username))
        if current != hashed.encoded:
            raise VerificationError("Secret verification failed")
        self.reporter.success("Secret verified in cluster")

    # Restart

    def restart(self, context: RotationContext) -> None:
        context.advance(RotationState.RESTART)
        self.reporter.step(13, "Restarting ArgoCD server")

        result = self.kubectl.rollout_restart(self.config.deployment_ref)
        if not result.success:
            raise RestartError(f"Failed to restart ArgoCD: {result.output}")
        self.reporter.success("ArgoCD restart initiated")

    def await_rollout(self, context: RotationContext) -> bool:
        """Wait for the rollout; a timeout only warns."""
        context.advance(RotationState.AWAIT_ROLLOUT)
        self.reporter.step(14, "Waiting for ArgoCD to restart")
        self.reporter.heading("This may take 30-60 seconds...")

        result = self.kubectl.rollout_status(self.config.deployment_ref, timeout=self.config.rollout_timeout)
        if result.success:
            self.reporter.success("ArgoCD restarted successfully")
            return True
        self.reporter.warning("ArgoCD restart timeout (may still be restarting)")
        return False

    def final_verify(self, context: RotationContext) -> None:
        context.advance(RotationState.FINAL_VERIFY)
        self.reporter.step(15, "Performing final verification")
        self._sleep(self.config.settle_seconds)

        result = self.kubectl.get_yaml("secret", self.config.secret_name)
        if not result.success or password_key(context.username) not in result.stdout:
            raise VerificationError("Credentials not found in secret")
        self.reporter.success("Credentials verified in secret")

    # Summary

    def report_summary(self, result: RotationResult) -> None:
        reporter = self.reporter
        reporter.banner("✓ Update Completed Successfully!")

        reporter.heading("New Credentials:")
        reporter.detail(f"Username: {result.username}")
        reporter.detail("")

        reporter.heading("How to Access ArgoCD:")
        reporter.detail(
            f"{self.kubectl.binary} port-forward svc/{self.config.deployment_name} "
            f"-n {result.namespace} 8080:80"
        )
        reporter.detail("Then visit: http://localhost:8080")
        reporter.detail("")

        if result.restore_command:
            reporter.heading("Backup kept at:")
            reporter.detail(str(result.retained_backup))
            reporter.heading("To Restore from Backup (if needed):")
            reporter.detail(result.restore_command)
            reporter.detail("")

        reporter.success("Ready to log in!")
