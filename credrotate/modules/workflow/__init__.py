"""
Workflow Module - Black Box Interface

Purpose: Run the credential rotation steps in order
Interface: RotationWorkflow.run(), AccountCredential, RotationResult
Hidden: step ordering, scratch directory handling, backup retention
"""

from .context import AccountCredential, RotationContext, RotationState
from .reporter import StepReporter
from .rotation import PatchOutcome, RotationResult, RotationWorkflow, classify_patch_result

__all__ = [
    "AccountCredential",
    "PatchOutcome",
    "RotationContext",
    "RotationResult",
    "RotationState",
    "RotationWorkflow",
    "StepReporter",
    "classify_patch_result",
]
