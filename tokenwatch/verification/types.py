"""
TokenWatch - Verification Types

Per-source surfaces, claims, discrepancies, evidence tiers and the
verification report. Field aliases and enum values are the JSON contract
consumed by report-rendering and badge-policy collaborators.
"""

from __future__ import annotations

import enum
from typing import Any

from pydantic import Field

from tokenwatch.primitives.chain import HookTarget, ModuleHashPin
from tokenwatch.primitives.common import FrozenModel, TargetKind, new_id, utc_now_iso

# ─── Enums ────────────────────────────────────────────────────────


class EvidenceSource(str, enum.Enum):
    RPC_V3 = "rpc_v3"        # Primary RPC
    RPC_V1 = "rpc_v1"        # Legacy API on the primary RPC
    RPC_V3_2 = "rpc_v3_2"    # Independent secondary RPC
    SUPRASCAN = "suprascan"  # Block-explorer indexer

    @property
    def priority(self) -> int:
        return SOURCE_PRIORITY[self]

    @property
    def is_rpc(self) -> bool:
        return self in RPC_SOURCES


SOURCE_PRIORITY: dict[EvidenceSource, int] = {
    EvidenceSource.RPC_V3: 1,
    EvidenceSource.RPC_V1: 2,
    EvidenceSource.RPC_V3_2: 3,
    EvidenceSource.SUPRASCAN: 4,
}

RPC_SOURCES: frozenset[EvidenceSource] = frozenset(
    {EvidenceSource.RPC_V3, EvidenceSource.RPC_V1, EvidenceSource.RPC_V3_2}
)


class ClaimType(str, enum.Enum):
    OWNER = "OWNER"
    SUPPLY = "SUPPLY"
    HOOKS = "HOOKS"
    CAPABILITIES = "CAPS"
    MODULES = "MODULES"
    HOOK_MODULE_HASHES = "HOOK_MODULE_HASHES"
    MODULE_HASHES = "MODULE_HASHES"
    INDEXER_PARITY = "INDEXER_PARITY"
    CREATOR = "CREATOR"
    PRIVILEGE_ESCALATION = "PRIVILEGE_ESCALATION"


class ClaimStatus(str, enum.Enum):
    CONFIRMED = "CONFIRMED"
    CONFLICT = "CONFLICT"
    PARTIAL = "PARTIAL"
    UNAVAILABLE = "UNAVAILABLE"


class Confidence(str, enum.Enum):
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"


class EvidenceTier(str, enum.Enum):
    VIEW_ONLY = "view_only"
    MULTI_RPC_CONFIRMED = "multi_rpc_confirmed"
    MULTI_RPC_PLUS_INDEXER = "multi_rpc_plus_indexer"
    MULTI_SOURCE_CONFIRMED = "multi_source_confirmed"

    @property
    def rank(self) -> int:
        return _TIER_RANK[self]


_TIER_RANK: dict[EvidenceTier, int] = {
    EvidenceTier.VIEW_ONLY: 0,
    EvidenceTier.MULTI_RPC_CONFIRMED: 1,
    EvidenceTier.MULTI_RPC_PLUS_INDEXER: 2,
    EvidenceTier.MULTI_SOURCE_CONFIRMED: 3,
}


class IndexerParityStatus(str, enum.Enum):
    SUPPORTED = "supported"
    PARTIAL = "partial"
    UNSUPPORTED = "unsupported"
    UNSUPPORTED_SCHEMA = "unsupported_schema"
    ERROR = "error"
    NOT_REQUESTED = "not_requested"


class ParityValue(str, enum.Enum):
    MATCH = "match"
    MISMATCH = "mismatch"
    UNKNOWN = "unknown"            # Both present but not comparable
    INSUFFICIENT = "insufficient"  # RPC side has nothing to compare
    UNSUPPORTED = "unsupported"    # Indexer does not expose the field
    NOT_APPLICABLE = "n/a"         # Parity was not computed


class TierImpact(str, enum.Enum):
    MULTI_RPC = "multi_rpc"
    MULTI_RPC_PLUS_INDEXER = "multi_rpc_plus_indexer"


class ReportStatus(str, enum.Enum):
    OK = "OK"
    CONFLICT = "CONFLICT"
    INVALID_ARGS = "INVALID_ARGS"


VERDICT_CONFLICT = "FAIL_Corroboration"
VERDICT_INVALID_ARGS = "FAIL_InvalidArgs"


# ─── Per-source Inputs ───────────────────────────────────────────


class VerificationTarget(FrozenModel):
    kind: TargetKind
    id: str  # FA object address or coin type


class MiniSurface(FrozenModel):
    """The subset of facts one source extracted for one entity at one moment."""

    owner: str | None = None
    supply_current_base: str | None = Field(default=None, alias="supplyCurrentBase")
    supply_max_base: str | None = Field(default=None, alias="supplyMaxBase")
    decimals: int | None = None
    hook_modules: list[HookTarget] | None = Field(default=None, alias="hookModules")
    capabilities: dict[str, bool] | None = None
    module_inventory: list[str] | None = Field(default=None, alias="moduleInventory")
    hook_module_hashes: list[ModuleHashPin] | None = Field(default=None, alias="hookModuleHashes")
    module_hashes: list[ModuleHashPin] | None = Field(default=None, alias="moduleHashes")
    creator: str | None = None
    raw_hints: list[str] = Field(default_factory=list, alias="rawHints")

    def has_facts(self) -> bool:
        """True if at least one fact field is populated."""
        return any(
            getattr(self, name) is not None
            for name in (
                "owner",
                "supply_current_base",
                "supply_max_base",
                "hook_modules",
                "capabilities",
                "module_inventory",
                "hook_module_hashes",
                "module_hashes",
            )
        )


class SurfaceFetch(FrozenModel):
    """What a provider hands back: a surface, or an explanation of why not."""

    surface: MiniSurface | None = None
    error: str | None = None
    hint: str | None = None
    indexer_status: IndexerParityStatus | None = None


class ProviderResult(FrozenModel):
    source: EvidenceSource
    ok: bool
    error: str | None = None
    hint: str | None = None
    attempts: int = 0


# ─── Claims ──────────────────────────────────────────────────────


class ClaimConfirmation(FrozenModel):
    """One source's contribution to a claim."""

    source: EvidenceSource
    ok: bool = True
    value: Any = None
    raw_hint: str | None = Field(default=None, alias="rawHint")
    error: str | None = None


class Claim(FrozenModel):
    claim_type: ClaimType = Field(alias="claimType")
    value: Any = None
    confirmations: list[ClaimConfirmation] = Field(default_factory=list)
    status: ClaimStatus
    confidence: Confidence


class Discrepancy(FrozenModel):
    """Audit record of a hard disagreement between sources."""

    claim_type: ClaimType = Field(alias="claimType")
    sources: list[EvidenceSource]
    values: dict[str, Any]
    detail: str


# ─── Indexer Parity ──────────────────────────────────────────────


class ParityDetails(FrozenModel):
    owner_parity: ParityValue = Field(default=ParityValue.NOT_APPLICABLE, alias="ownerParity")
    supply_parity: ParityValue = Field(default=ParityValue.NOT_APPLICABLE, alias="supplyParity")
    supply_max_parity: ParityValue = Field(
        default=ParityValue.NOT_APPLICABLE, alias="supplyMaxParity"
    )
    hooks_parity: ParityValue = Field(default=ParityValue.NOT_APPLICABLE, alias="hooksParity")
    hook_hash_parity: ParityValue = Field(
        default=ParityValue.NOT_APPLICABLE, alias="hookHashParity"
    )


class ParityMismatch(FrozenModel):
    field: str  # owner | supply | supplyMax | hooks | hookHash
    rpc_value: Any = Field(default=None, alias="rpcValue")
    indexer_value: Any = Field(default=None, alias="suprascanValue")
    reason: str


class IndexerParityRecord(FrozenModel):
    """Explains, per field, why the indexer agrees, disagrees or cannot be compared."""

    status: IndexerParityStatus
    reason: str
    fields_compared: list[str] = Field(default_factory=list, alias="fieldsCompared")
    evidence_tier_impact: TierImpact = Field(
        default=TierImpact.MULTI_RPC, alias="evidenceTierImpact"
    )
    details: ParityDetails = Field(default_factory=ParityDetails)
    mismatches: list[ParityMismatch] = Field(default_factory=list)


# ─── Behavior Evidence ───────────────────────────────────────────


class BehaviorStatus(str, enum.Enum):
    SAMPLED = "sampled"
    OK_EMPTY = "ok_empty"        # Endpoint answered, no transactions
    UNAVAILABLE = "unavailable"
    NO_ACTIVITY = "no_activity"
    ERROR = "error"


class InvokedEntry(FrozenModel):
    module_address: str = Field(alias="moduleAddress")
    module_name: str = Field(alias="moduleName")
    function_name: str = Field(alias="functionName")
    full_id: str = Field(alias="fullId")
    tx_hash: str = Field(alias="txHash")
    timestamp: str | None = None


class PhantomEntry(FrozenModel):
    """Entry point invoked on chain but absent from the pinned ABI."""

    module_address: str = Field(alias="moduleAddress")
    module_name: str = Field(alias="moduleName")
    function_name: str = Field(alias="functionName")
    full_id: str = Field(alias="fullId")
    tx_hashes: list[str] = Field(default_factory=list, alias="txHashes")
    reason: str = ""


class BehaviorEvidence(FrozenModel):
    status: BehaviorStatus
    tx_count: int = 0
    invoked_entries: list[InvokedEntry] = Field(default_factory=list)
    phantom_entries: list[PhantomEntry] = Field(default_factory=list)
    opaque_active: bool = False
    source: str | None = None
    sampled_at: str | None = None
    error: str | None = None


# ─── Risk Synthesis ──────────────────────────────────────────────


class RiskSignal(str, enum.Enum):
    HASH_PINNED = "HASH_PINNED"
    HASH_CONFLICT = "HASH_CONFLICT"
    HASH_UNAVAILABLE = "HASH_UNAVAILABLE"
    INDEXER_CORROBORATED = "INDEXER_CORROBORATED"
    INDEXER_CONFLICT = "INDEXER_CONFLICT"
    INDEXER_UNSUPPORTED = "INDEXER_UNSUPPORTED"
    INDEXER_NOT_REQUESTED = "INDEXER_NOT_REQUESTED"
    BEHAVIOR_MATCHED = "BEHAVIOR_MATCHED"
    BEHAVIOR_NO_ACTIVITY = "BEHAVIOR_NO_ACTIVITY"
    BEHAVIOR_UNAVAILABLE = "BEHAVIOR_UNAVAILABLE"
    ABI_OPAQUE_ACTIVE = "ABI_OPAQUE_ACTIVE"
    PHANTOM_ENTRYPOINTS = "PHANTOM_ENTRYPOINTS"
    HOOK_CONTROLLED = "HOOK_CONTROLLED"
    PRIVILEGE_ESCALATION_POSSIBLE = "PRIVILEGE_ESCALATION_POSSIBLE"
    MULTI_RPC_CONFIRMED = "MULTI_RPC_CONFIRMED"
    MULTI_RPC_CONFLICT = "MULTI_RPC_CONFLICT"
    SUPPLY_CONFLICT = "SUPPLY_CONFLICT"
    OWNER_CONFLICT = "OWNER_CONFLICT"
    CAPS_CONFLICT = "CAPS_CONFLICT"


class RiskLevel(str, enum.Enum):
    SAFE_STATIC = "SAFE_STATIC"
    SAFE_DYNAMIC = "SAFE_DYNAMIC"
    OPAQUE_BUT_ACTIVE = "OPAQUE_BUT_ACTIVE"
    ELEVATED_RISK = "ELEVATED_RISK"
    DANGEROUS = "DANGEROUS"


class RiskSynthesis(FrozenModel):
    signals: list[RiskSignal] = Field(default_factory=list)
    risk_level: RiskLevel
    rationale: list[str] = Field(default_factory=list)


# ─── Report ──────────────────────────────────────────────────────


class VerificationReport(FrozenModel):
    """One verification run. Built once, after every source has settled."""

    id: str = Field(default_factory=new_id)
    target: VerificationTarget
    timestamp_iso: str = Field(default_factory=utc_now_iso)
    sources_attempted: list[EvidenceSource] = Field(default_factory=list)
    sources_succeeded: list[EvidenceSource] = Field(default_factory=list)
    provider_results: list[ProviderResult] = Field(default_factory=list)
    claims: list[Claim] = Field(default_factory=list)
    discrepancies: list[Discrepancy] = Field(default_factory=list)
    overall_evidence_tier: EvidenceTier = Field(
        default=EvidenceTier.VIEW_ONLY, alias="overallEvidenceTier"
    )
    indexer_parity: IndexerParityRecord | None = None
    behavior: BehaviorEvidence | None = None
    risk: RiskSynthesis | None = None
    status: ReportStatus = ReportStatus.OK
    verdict: str | None = None

    def claim(self, claim_type: ClaimType) -> Claim | None:
        return next((c for c in self.claims if c.claim_type == claim_type), None)

    def to_dict(self) -> dict[str, Any]:
        """JSON-ready dict using the stable field names. Absent sub-reports are omitted."""
        optional = ("indexer_parity", "behavior", "risk", "verdict")
        return self.model_dump(
            mode="json",
            by_alias=True,
            exclude={name for name in optional if getattr(self, name) is None},
        )
