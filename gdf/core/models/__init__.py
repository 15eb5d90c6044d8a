"""
Domain models for the apply/rollback engine.

All models are re-exported here for convenient access:

    from gdf.core.models import Bundle, Dotfile, Operation, Snapshot, Platform
"""

from gdf.core.models.bundle import (
    ApplyHook,
    AptPackage,
    Bundle,
    Completions,
    Confirm,
    CustomInstall,
    Dotfile,
    Hooks,
    InitSnippet,
    Package,
    Plugin,
    Prefer,
    Shell,
    TargetMap,
    bundle_map,
)
from gdf.core.models.operation import (
    Operation,
    RollbackResult,
    Snapshot,
    SnapshotCandidate,
)
from gdf.core.models.platform import OSFamily, Platform
from gdf.core.models.receipt import RiskFinding, StepReceipt

__all__ = [
    "ApplyHook",
    "AptPackage",
    # bundle.py
    "Bundle",
    "Completions",
    "Confirm",
    "CustomInstall",
    "Dotfile",
    "Hooks",
    "InitSnippet",
    "OSFamily",
    # operation.py
    "Operation",
    "Package",
    # platform.py
    "Platform",
    "Plugin",
    "Prefer",
    # receipt.py
    "RiskFinding",
    "RollbackResult",
    "Shell",
    "Snapshot",
    "SnapshotCandidate",
    "StepReceipt",
    "TargetMap",
    "bundle_map",
]
