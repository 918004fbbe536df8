"""
TokenWatch - Drift Types

Snapshots are a discriminated union on ``kind`` (``"fa"`` | ``"coin"``),
resolved once by ``parse_snapshot``. Rules narrow on the concrete class and
never probe fields to guess the kind.
"""

from __future__ import annotations

import enum
from collections.abc import Mapping
from typing import Annotated, Any, Literal

from pydantic import Field, TypeAdapter, computed_field

from tokenwatch.primitives.chain import HookTarget, ModuleHashPin
from tokenwatch.primitives.common import FrozenModel, Severity, utc_now_iso

# ─── Snapshot Field Groups ───────────────────────────────────────


class SnapshotMeta(FrozenModel):
    schema_version: str = "1"
    timestamp_iso: str = Field(default_factory=utc_now_iso)
    rpc_url: str = ""
    scanner_version: str = ""


class FAIdentity(FrozenModel):
    fa_address: str = Field(alias="faAddress")
    object_owner: str | None = Field(default=None, alias="objectOwner")


class CoinIdentity(FrozenModel):
    coin_type: str = Field(alias="coinType")
    publisher_address: str = Field(alias="publisherAddress")
    module_name: str = Field(alias="moduleName")
    symbol: str | None = None


class SupplyData(FrozenModel):
    supply_current_base: str | None = Field(default=None, alias="supplyCurrentBase")
    decimals: int | None = None
    supply_current_formatted: str | None = Field(default=None, alias="supplyCurrentFormatted")


class FASupplyData(SupplyData):
    supply_max_base: str | None = Field(default=None, alias="supplyMaxBase")


class FACapabilities(FrozenModel):
    has_mint_ref: bool = Field(default=False, alias="hasMintRef")
    has_burn_ref: bool = Field(default=False, alias="hasBurnRef")
    has_transfer_ref: bool = Field(default=False, alias="hasTransferRef")
    has_deposit_hook: bool = Field(default=False, alias="hasDepositHook")
    has_withdraw_hook: bool = Field(default=False, alias="hasWithdrawHook")
    has_derived_balance_hook: bool = Field(default=False, alias="hasDerivedBalanceHook")

    def flags(self) -> dict[str, bool]:
        return self.model_dump(by_alias=True)


class CoinCapabilities(FrozenModel):
    has_mint_cap: bool = Field(default=False, alias="hasMintCap")
    has_burn_cap: bool = Field(default=False, alias="hasBurnCap")
    has_freeze_cap: bool = Field(default=False, alias="hasFreezeCap")
    has_transfer_restrictions: bool = Field(default=False, alias="hasTransferRestrictions")

    def flags(self) -> dict[str, bool]:
        return self.model_dump(by_alias=True)


class ModuleInfo(FrozenModel):
    module_id: str = Field(alias="moduleId")  # address::module_name
    abi_fetched: bool = False
    entry_fn_names: list[str] = Field(default_factory=list)
    exposed_fn_names: list[str] = Field(default_factory=list)


class ControlSurface(FrozenModel):
    relevant_modules: list[str] = Field(default_factory=list, alias="relevantModules")
    modules: dict[str, ModuleInfo] = Field(default_factory=dict)  # Keyed by moduleId


class FAControlSurface(ControlSurface):
    hook_modules: list[HookTarget] = Field(default_factory=list, alias="hookModules")
    hooks: dict[str, HookTarget] = Field(default_factory=dict)  # deposit_hook, withdraw_hook, ...
    hook_module_pins: list[ModuleHashPin] = Field(default_factory=list, alias="hookModulePins")
    owner_modules_count: int | None = Field(default=None, alias="ownerModulesCount")


class CoinControlSurface(ControlSurface):
    module_pins: list[ModuleHashPin] = Field(default_factory=list, alias="modulePins")


class Coverage(FrozenModel):
    coverage: Literal["complete", "partial"] = "complete"
    reasons: list[str] = Field(default_factory=list)


class FindingSummary(FrozenModel):
    id: str
    severity: Severity
    title: str | None = None


class SurfaceHashes(FrozenModel):
    module_surface_hash: dict[str, str] = Field(default_factory=dict, alias="moduleSurfaceHash")
    overall_surface_hash: str = Field(default="", alias="overallSurfaceHash")
    hook_modules_surface_hash: str | None = Field(default=None, alias="hookModulesSurfaceHash")
    module_pins_hash: str | None = Field(default=None, alias="modulePinsHash")


class PrivilegedFunction(FrozenModel):
    privilege_class: str = Field(alias="class")  # MINT, UPGRADE_PUBLISH, ...
    fn_name: str = Field(alias="fnName")
    module_id: str = Field(alias="moduleId")
    evidence: Any = None

    @property
    def key(self) -> str:
        return f"{self.module_id}::{self.fn_name}"


class PrivilegeReport(FrozenModel):
    by_class: dict[str, list[PrivilegedFunction]] = Field(default_factory=dict, alias="byClass")
    all: list[PrivilegedFunction] = Field(default_factory=list)
    has_opaque_control: bool = Field(default=False, alias="hasOpaqueControl")


class InvariantStatus(str, enum.Enum):
    OK = "ok"
    WARNING = "warning"
    VIOLATION = "violation"
    UNKNOWN = "unknown"


class InvariantItem(FrozenModel):
    id: str
    status: InvariantStatus
    title: str = ""
    detail: str = ""
    evidence: Any = None


class InvariantReport(FrozenModel):
    items: list[InvariantItem] = Field(default_factory=list)
    overall: InvariantStatus = InvariantStatus.UNKNOWN


class ParityCheck(FrozenModel):
    id: str
    status: Literal["match", "mismatch", "unknown"]
    detail: str = ""
    evidence: Any = None


class EvidenceBundle(FrozenModel):
    sources_used: list[str] = Field(default_factory=list, alias="sourcesUsed")
    parity: list[ParityCheck] = Field(default_factory=list)


# ─── Snapshots ───────────────────────────────────────────────────


class _SnapshotBase(FrozenModel):
    meta: SnapshotMeta = Field(default_factory=SnapshotMeta)
    coverage: Coverage = Field(default_factory=Coverage)
    findings: list[FindingSummary] = Field(default_factory=list)
    hashes: SurfaceHashes = Field(default_factory=SurfaceHashes)
    privileges: PrivilegeReport | None = None
    invariants: InvariantReport | None = None
    evidence: EvidenceBundle | None = None


class FASnapshot(_SnapshotBase):
    """Point-in-time capture of one Fungible Asset object."""

    kind: Literal["fa"] = "fa"
    identity: FAIdentity
    supply: FASupplyData = Field(default_factory=FASupplyData)
    capabilities: FACapabilities = Field(default_factory=FACapabilities)
    control_surface: FAControlSurface = Field(default_factory=FAControlSurface)


class CoinSnapshot(_SnapshotBase):
    """Point-in-time capture of one legacy coin type."""

    kind: Literal["coin"] = "coin"
    identity: CoinIdentity
    supply: SupplyData = Field(default_factory=SupplyData)
    capabilities: CoinCapabilities = Field(default_factory=CoinCapabilities)
    control_surface: CoinControlSurface = Field(default_factory=CoinControlSurface)


Snapshot = Annotated[FASnapshot | CoinSnapshot, Field(discriminator="kind")]

_SNAPSHOT_ADAPTER: TypeAdapter[FASnapshot | CoinSnapshot] = TypeAdapter(Snapshot)


def parse_snapshot(raw: FASnapshot | CoinSnapshot | Mapping[str, Any]) -> FASnapshot | CoinSnapshot:
    """
    Validate a raw snapshot payload into its concrete variant.

    Payloads written before the ``kind`` tag existed are tagged here, once,
    from the identity group. Raises pydantic ValidationError on malformed input.
    """
    if isinstance(raw, (FASnapshot, CoinSnapshot)):
        return raw
    data = dict(raw)
    if "kind" not in data:
        identity = data.get("identity") or {}
        if "faAddress" in identity or "fa_address" in identity:
            data["kind"] = "fa"
        elif "coinType" in identity or "coin_type" in identity:
            data["kind"] = "coin"
    return _SNAPSHOT_ADAPTER.validate_python(data)


# ─── Diff Output ─────────────────────────────────────────────────


class ChangeType(str, enum.Enum):
    SUPPLY_CHANGED = "SUPPLY_CHANGED"
    SUPPLY_CHANGED_LARGE = "SUPPLY_CHANGED_LARGE"
    SUPPLY_CHANGED_SMALL = "SUPPLY_CHANGED_SMALL"
    SUPPLY_MAX_CHANGED = "SUPPLY_MAX_CHANGED"
    OWNER_CHANGED = "OWNER_CHANGED"
    ADMIN_CHANGED = "ADMIN_CHANGED"
    CAPABILITIES_CHANGED = "CAPABILITIES_CHANGED"
    PRIVILEGE_ESCALATION = "PRIVILEGE_ESCALATION"
    HOOKS_CHANGED = "HOOKS_CHANGED"
    HOOK_MODULE_CODE_CHANGED = "HOOK_MODULE_CODE_CHANGED"
    COIN_MODULE_CODE_CHANGED = "COIN_MODULE_CODE_CHANGED"
    MODULE_ADDED = "MODULE_ADDED"
    MODULE_REMOVED = "MODULE_REMOVED"
    ABI_SURFACE_CHANGED = "ABI_SURFACE_CHANGED"
    COVERAGE_CHANGED = "COVERAGE_CHANGED"
    FINDINGS_CHANGED = "FINDINGS_CHANGED"
    FINDING_ADDED = "FINDING_ADDED"
    FINDING_REMOVED = "FINDING_REMOVED"
    PRIVILEGES_CHANGED = "PRIVILEGES_CHANGED"
    INVARIANTS_CHANGED = "INVARIANTS_CHANGED"


class ChangeItem(FrozenModel):
    type: ChangeType
    severity: Severity
    before: Any = None
    after: Any = None
    evidence: dict[str, Any] | None = None


class AgentHints(FrozenModel):
    requires_multi_rpc: bool = Field(default=False, alias="requiresMultiRpc")
    requires_tx_correlation: bool = Field(default=False, alias="requiresTxCorrelation")
    escalation_reason: str | None = Field(default=None, alias="escalationReason")


class DiffResult(FrozenModel):
    changes: list[ChangeItem] = Field(default_factory=list)
    agent_hints: AgentHints | None = Field(default=None, alias="agentHints")

    @computed_field  # type: ignore[prop-decorator]
    @property
    def changed(self) -> bool:
        return len(self.changes) > 0

    def to_dict(self) -> dict[str, Any]:
        """JSON-ready dict. Absent hints and absent per-change evidence are omitted."""
        data = self.model_dump(mode="json", by_alias=True)
        if data.get("agentHints") is None:
            data.pop("agentHints", None)
        for change in data["changes"]:
            if change.get("evidence") is None:
                change.pop("evidence", None)
        return data
