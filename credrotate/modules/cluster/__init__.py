"""
Cluster Module - Black Box Interface

Purpose: Read and mutate the Argo CD objects in the cluster
Interface: Kubectl (get/patch/apply/rollout), KubectlResult
Hidden: kubectl invocation details, timeouts, argument layout

Can be replaced with a different client (direct K8s API) as long as
the same calls are offered.
"""

from .kubectl import Kubectl, KubectlResult, escape_jsonpath_key, rollout_timeout_seconds

__all__ = ["Kubectl", "KubectlResult", "escape_jsonpath_key", "rollout_timeout_seconds"]
