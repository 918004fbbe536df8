"""
TokenWatch - Primitives

Shared base models, enums and chain fact types.
"""

from tokenwatch.primitives.chain import HashBasis, HookTarget, ModuleHashPin
from tokenwatch.primitives.common import (
    FrozenModel,
    Severity,
    TargetKind,
    TWBaseModel,
    new_id,
    utc_now,
    utc_now_iso,
)

__all__ = [
    "FrozenModel",
    "HashBasis",
    "HookTarget",
    "ModuleHashPin",
    "Severity",
    "TWBaseModel",
    "TargetKind",
    "new_id",
    "utc_now",
    "utc_now_iso",
]
