"""
TokenWatch - Chain Fact Primitives

Hook descriptors and module code-hash pins. Shared by per-source surfaces
(verification) and snapshots (drift).
"""

from __future__ import annotations

import enum

from pydantic import Field

from tokenwatch.primitives.common import FrozenModel


class HashBasis(str, enum.Enum):
    BYTECODE = "bytecode"
    ABI = "abi"
    NONE = "none"       # Artifact missing or unhashable


class HookTarget(FrozenModel):
    """One dispatch hook registered on an FA: address + module + function."""

    module_address: str
    module_name: str
    function_name: str
    risk: str | None = None

    @property
    def key(self) -> str:
        return f"{self.module_address}::{self.module_name}::{self.function_name}"


class ModuleHashPin(FrozenModel):
    """Content hash of one module, plus which source produced it."""

    module_id: str = Field(alias="moduleId")
    code_hash: str | None = Field(default=None, alias="codeHash")
    hash_basis: HashBasis = Field(default=HashBasis.NONE, alias="hashBasis")
    fetched_from: str = Field(default="unknown", alias="fetchedFrom")
    module_address: str | None = None
    module_name: str | None = None
    role: str | None = None  # coin_defining | rpc_v3_list | publisher_module
