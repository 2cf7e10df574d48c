"""Configuration provider following Black Box Design principles."""
import os
import tempfile
from dataclasses import dataclass, replace
from typing import Any, Mapping, Optional, Protocol

from credrotate.modules.cluster.kubectl import rollout_timeout_seconds

HASHER_BACKENDS = ("bcrypt", "htpasswd")


@dataclass(frozen=True)
class RotationConfig:
    """Settings for one credential rotation run."""
    namespace: str = "argocd"
    kubectl_binary: str = "kubectl"
    secret_name: str = "argocd-secret"
    configmap_name: str = "argocd-cm"
    deployment_name: str = "argocd-server"
    account_capabilities: str = "apiKey,login"
    hasher: str = "bcrypt"
    bcrypt_cost: int = 10
    rollout_timeout: str = "3m"
    command_timeout: int = 30
    settle_seconds: float = 3.0
    recovery_dir: str = tempfile.gettempdir()
    keep_backup: bool = False
    log_level: str = "INFO"
    use_color: bool = True

    @property
    def deployment_ref(self) -> str:
        """Deployment reference as kubectl rollout expects it."""
        return f"deployment/{self.deployment_name}"

    def __post_init__(self):
        if self.hasher not in HASHER_BACKENDS:
            raise ValueError(
                f"Unknown hasher backend '{self.hasher}'. "
                f"Expected one of: {', '.join(HASHER_BACKENDS)}"
            )
        rollout_timeout_seconds(self.rollout_timeout)

    def with_overrides(self, **overrides: Any) -> "RotationConfig":
        """Return a validated copy with every non-None override applied."""
        changes = {key: value for key, value in overrides.items() if value is not None}
        return replace(self, **changes)


class ConfigProvider(Protocol):
    """Protocol for configuration providers."""

    def get_rotation_config(self) -> RotationConfig:
        """Get rotation configuration."""
        ...


class EnvConfigProvider:
    """Environment-based configuration provider."""

    def __init__(self, environ: Optional[Mapping[str, str]] = None):
        self._environ = os.environ if environ is None else environ

    def _get(self, name: str, default: str) -> str:
        return self._environ.get(name) or default

    def _get_int(self, name: str, default: int) -> int:
        raw = self._get(name, str(default))
        try:
            return int(raw)
        except ValueError:
            raise ValueError(f"{name} must be an integer, got '{raw}'") from None

    def _get_duration(self, name: str, default: str) -> str:
        raw = self._get(name, default)
        try:
            rollout_timeout_seconds(raw)
        except ValueError:
            raise ValueError(f"{name} must be a kubectl duration such as 3m or 1m30s, got '{raw}'") from None
        return raw

    def _get_float(self, name: str, default: float) -> float:
        raw = self._get(name, str(default))
        try:
            return float(raw)
        except ValueError:
            raise ValueError(f"{name} must be a number, got '{raw}'") from None

    def get_rotation_config(self) -> RotationConfig:
        """Get rotation configuration from environment variables."""
        defaults = RotationConfig()

        hasher = self._get("CREDROTATE_HASHER", defaults.hasher).lower()
        if hasher not in HASHER_BACKENDS:
            raise ValueError(
                f"CREDROTATE_HASHER must be one of {', '.join(HASHER_BACKENDS)}, got '{hasher}'"
            )

        return RotationConfig(
            namespace=self._get("CREDROTATE_NAMESPACE", defaults.namespace),
            kubectl_binary=self._get("CREDROTATE_KUBECTL", defaults.kubectl_binary),
            secret_name=self._get("CREDROTATE_SECRET_NAME", defaults.secret_name),
            configmap_name=self._get("CREDROTATE_CONFIGMAP_NAME", defaults.configmap_name),
            deployment_name=self._get("CREDROTATE_DEPLOYMENT", defaults.deployment_name),
            account_capabilities=self._get("CREDROTATE_CAPABILITIES", defaults.account_capabilities),
            hasher=hasher,
            bcrypt_cost=self._get_int("CREDROTATE_BCRYPT_COST", defaults.bcrypt_cost),
            rollout_timeout=self._get_duration("CREDROTATE_ROLLOUT_TIMEOUT", defaults.rollout_timeout),
            command_timeout=self._get_int("CREDROTATE_COMMAND_TIMEOUT", defaults.command_timeout),
            settle_seconds=self._get_float("CREDROTATE_SETTLE_SECONDS", defaults.settle_seconds),
            recovery_dir=self._get("CREDROTATE_RECOVERY_DIR", defaults.recovery_dir),
            keep_backup=self._get("CREDROTATE_KEEP_BACKUP", "false").lower() == "true",
            log_level=self._get("LOG_LEVEL", defaults.log_level).upper(),
            # NO_COLOR convention: any non-empty value disables colour
            use_color=not self._get("NO_COLOR", ""),
        )
