"""
credrotate - Argo CD local account credential rotation

Rotates the password of an Argo CD local account in a running cluster:
hashes the new password, enables the account in argocd-cm, rewrites the
password field of argocd-secret, restarts argocd-server and verifies.

Architecture:
- Each module is self-contained with clear interfaces
- The workflow talks to the cluster only through the cluster module
- All communication through defined interfaces

Modules:
- cluster: kubectl wrapper (get/patch/apply/rollout)
- hashing: bcrypt password hashing and storage encoding
- secret: structured editing of the Secret document
- workflow: the rotation steps, errors and run context
"""

__version__ = "1.0.0"
