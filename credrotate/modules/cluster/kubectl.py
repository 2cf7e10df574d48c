"""
kubectl wrapper used by the rotation workflow.

Every call is a single blocking ``subprocess.run`` with a timeout; results
come back as :class:`KubectlResult` and never raise for a non-zero exit.
"""

import json
import logging
import re
import shlex
import shutil
import subprocess
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

logger = logging.getLogger("credrotate.cluster")

TIMEOUT_RETURN_CODE = -1


@dataclass
class KubectlResult:
    """Outcome of one kubectl invocation."""
    args: List[str]
    returncode: int
    stdout: str = ""
    stderr: str = ""
    error: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.returncode == 0

    @property
    def timed_out(self) -> bool:
        return self.error == "timeout"

    @property
    def output(self) -> str:
        """stdout and stderr combined, for diagnostics."""
        output = self.stdout
        if self.stderr:
            output += "\n" + self.stderr
        if self.error and not output:
            output = self.error
        return output.strip()


DURATION_UNITS = {
    "ns": 1e-9,
    "us": 1e-6,
    "\u00b5s": 1e-6,
    "ms": 1e-3,
    "s": 1,
    "m": 60,
    "h": 3600,
}
DURATION_PART = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|\u00b5s|ms|h|m|s)")
DURATION_PATTERN = re.compile(r"(?:(?:\d+(?:\.\d*)?|\.\d+)(?:ns|us|\u00b5s|ms|h|m|s))+")


def rollout_timeout_seconds(timeout: str) -> int:
    """
    Convert a kubectl (Go) duration such as ``3m``, ``90s`` or ``1m30s`` to seconds.

    Raises:
        ValueError: if the value is not a duration kubectl would accept
    """
    value = timeout.strip()
    if value == "0":
        return 0
    if not DURATION_PATTERN.fullmatch(value):
        raise ValueError(
            f"Invalid duration '{timeout}', expected a kubectl duration such as 3m or 1m30s"
        )
    return int(sum(float(number) * DURATION_UNITS[unit] for number, unit in DURATION_PART.findall(value)))


def escape_jsonpath_key(key: str) -> str:
    """Escape dots so a data key is treated as one jsonpath segment."""
    return key.replace(".", "\\.")


class Kubectl:
    """Thin client for the kubectl commands the rotation needs."""

    def __init__(self, binary: str = "kubectl", namespace: str = "argocd", timeout: int = 30):
        self.binary = binary
        self.namespace = namespace
        self.timeout = timeout

    def is_available(self) -> bool:
        """Check whether the kubectl binary is on PATH."""
        return shutil.which(self.binary) is not None

    def run(self, args: List[str], timeout: Optional[int] = None, namespaced: bool = True) -> KubectlResult:
        """
        Execute a kubectl command.

        Args:
            args: kubectl arguments (without the binary)
            timeout: subprocess timeout in seconds, defaults to the client timeout
            namespaced: prepend ``-n <namespace>``

        Returns:
            KubectlResult with output and return code
        """
        cmd = [self.binary]
        if namespaced:
            cmd += ["-n", self.namespace]
        cmd += args

        logger.debug(f"Running: {' '.join(cmd)}")

        try:
            process = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                timeout=timeout or self.timeout,
            )
        except subprocess.TimeoutExpired:
            logger.debug(f"Command timed out: {' '.join(cmd)}")
            return KubectlResult(args=cmd, returncode=TIMEOUT_RETURN_CODE, error="timeout")
        except OSError as e:
            logger.debug(f"Command could not be started: {e}")
            return KubectlResult(args=cmd, returncode=TIMEOUT_RETURN_CODE, error=str(e))

        return KubectlResult(
            args=cmd,
            returncode=process.returncode,
            stdout=process.stdout or "",
            stderr=process.stderr or "",
        )

    # Reads

    def namespace_exists(self, namespace: Optional[str] = None) -> bool:
        result = self.run(["get", "namespace", namespace or self.namespace], namespaced=False)
        return result.success

    def resource_exists(self, kind: str, name: str) -> bool:
        return self.run(["get", kind, name]).success

    def get_yaml(self, kind: str, name: str) -> KubectlResult:
        """Full object dump as YAML text."""
        return self.run(["get", kind, name, "-o", "yaml"])

    def get_jsonpath(self, kind: str, name: str, expression: str) -> KubectlResult:
        """Structured field query, e.g. ``{.data.admin\\.password}``."""
        return self.run(["get", kind, name, "-o", f"jsonpath={expression}"])

    def get_data_field(self, kind: str, name: str, key: str) -> Optional[str]:
        """Read one ``data`` entry; None when the query itself fails."""
        result = self.get_jsonpath(kind, name, "{.data." + escape_jsonpath_key(key) + "}")
        if not result.success:
            return None
        return result.stdout

    # Mutations

    def patch_merge(self, kind: str, name: str, patch: Dict[str, Any]) -> KubectlResult:
        """Merge-type partial update."""
        return self.run(["patch", kind, name, "--type", "merge", "-p", json.dumps(patch)])

    def apply_file(self, path: str) -> KubectlResult:
        """Apply a manifest; the namespace comes from the document itself."""
        return self.run(["apply", "-f", path], namespaced=False)

    def rollout_restart(self, deployment_ref: str) -> KubectlResult:
        return self.run(["rollout", "restart", deployment_ref])

    def rollout_status(self, deployment_ref: str, timeout: str = "3m") -> KubectlResult:
        """Wait for a rollout, bounded by kubectl's own ``--timeout``."""
        # subprocess guard sits just past kubectl's own deadline
        guard = rollout_timeout_seconds(timeout) + self.timeout
        return self.run(
            ["rollout", "status", deployment_ref, f"--timeout={timeout}"],
            timeout=guard,
        )

    def restore_command(self, backup_path: str) -> str:
        """Exact command an operator runs to put a backup back."""
        return f"{shlex.quote(self.binary)} apply -f {shlex.quote(backup_path)}"
