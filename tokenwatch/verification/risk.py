"""
TokenWatch - Risk Synthesis

Turns the evidence of one verification run into stable, machine-readable
signals and a single risk level for downstream automation.
"""

from __future__ import annotations

from collections.abc import Sequence

from tokenwatch.primitives.common import TargetKind
from tokenwatch.verification.types import (
    BehaviorEvidence,
    BehaviorStatus,
    Claim,
    ClaimStatus,
    ClaimType,
    Confidence,
    Discrepancy,
    EvidenceTier,
    IndexerParityRecord,
    IndexerParityStatus,
    ParityValue,
    ReportStatus,
    RiskLevel,
    RiskSignal,
    RiskSynthesis,
)

_CONFLICT_SIGNALS = frozenset({
    RiskSignal.MULTI_RPC_CONFLICT,
    RiskSignal.HASH_CONFLICT,
    RiskSignal.INDEXER_CONFLICT,
    RiskSignal.SUPPLY_CONFLICT,
    RiskSignal.OWNER_CONFLICT,
    RiskSignal.CAPS_CONFLICT,
})

_DISCREPANCY_SIGNALS: dict[ClaimType, tuple[RiskSignal, str]] = {
    ClaimType.SUPPLY: (RiskSignal.SUPPLY_CONFLICT, "Supply values conflict across sources."),
    ClaimType.OWNER: (RiskSignal.OWNER_CONFLICT, "Owner values conflict across sources."),
    ClaimType.CAPABILITIES: (RiskSignal.CAPS_CONFLICT, "Capability flags conflict across sources."),
}


def synthesize_risk(
    *,
    kind: TargetKind,
    tier: EvidenceTier,
    status: ReportStatus,
    claims: Sequence[Claim],
    discrepancies: Sequence[Discrepancy],
    indexer_parity: IndexerParityRecord | None = None,
    behavior: BehaviorEvidence | None = None,
) -> RiskSynthesis:
    signals: set[RiskSignal] = set()
    rationale: list[str] = []
    by_type = {c.claim_type: c for c in claims}

    # Hash pinning
    hash_claim = by_type.get(ClaimType.HOOK_MODULE_HASHES) or by_type.get(ClaimType.MODULE_HASHES)
    if hash_claim is not None:
        if hash_claim.status == ClaimStatus.CONFIRMED and hash_claim.confidence == Confidence.HIGH:
            signals.add(RiskSignal.HASH_PINNED)
        elif hash_claim.status == ClaimStatus.CONFLICT:
            signals.add(RiskSignal.HASH_CONFLICT)
            rationale.append("Module code hashes differ across RPC sources.")
        elif hash_claim.status == ClaimStatus.UNAVAILABLE:
            signals.add(RiskSignal.HASH_UNAVAILABLE)

    # Multi-RPC
    if tier.rank >= EvidenceTier.MULTI_RPC_CONFIRMED.rank:
        if status == ReportStatus.CONFLICT:
            signals.add(RiskSignal.MULTI_RPC_CONFLICT)
            rationale.append("Multi-RPC sources returned conflicting data.")
        else:
            signals.add(RiskSignal.MULTI_RPC_CONFIRMED)

    # Indexer
    if kind == TargetKind.FA and indexer_parity is not None:
        _indexer_signals(indexer_parity, signals, rationale)

    for disc in discrepancies:
        mapped = _DISCREPANCY_SIGNALS.get(disc.claim_type)
        if mapped is not None and mapped[0] not in signals:
            signals.add(mapped[0])
            rationale.append(mapped[1])

    if behavior is not None:
        _behavior_signals(behavior, signals, rationale)

    hooks = by_type.get(ClaimType.HOOKS)
    if hooks is not None and hooks.status == ClaimStatus.CONFIRMED and hooks.value:
        signals.add(RiskSignal.HOOK_CONTROLLED)
    if ClaimType.PRIVILEGE_ESCALATION in by_type:
        signals.add(RiskSignal.PRIVILEGE_ESCALATION_POSSIBLE)
        rationale.append("Sensitive capabilities appeared since the baseline.")

    level = _risk_level(signals, behavior)
    rationale.append(f"Risk level: {level.value}")
    return RiskSynthesis(
        signals=sorted(signals, key=lambda s: s.value),
        risk_level=level,
        rationale=rationale,
    )


def _indexer_signals(
    parity: IndexerParityRecord,
    signals: set[RiskSignal],
    rationale: list[str],
) -> None:
    if parity.status in (IndexerParityStatus.SUPPORTED, IndexerParityStatus.PARTIAL):
        details = parity.details
        if ParityValue.MISMATCH in (
            details.owner_parity, details.supply_parity, details.hooks_parity
        ):
            signals.add(RiskSignal.INDEXER_CONFLICT)
            rationale.append("Indexer data conflicts with RPC data.")
        else:
            signals.add(RiskSignal.INDEXER_CORROBORATED)
    elif parity.status == IndexerParityStatus.NOT_REQUESTED:
        signals.add(RiskSignal.INDEXER_NOT_REQUESTED)
    else:
        signals.add(RiskSignal.INDEXER_UNSUPPORTED)
        rationale.append(parity.reason)


def _behavior_signals(
    behavior: BehaviorEvidence,
    signals: set[RiskSignal],
    rationale: list[str],
) -> None:
    if behavior.status == BehaviorStatus.SAMPLED:
        if behavior.phantom_entries:
            signals.add(RiskSignal.PHANTOM_ENTRYPOINTS)
            rationale.append(
                f"{len(behavior.phantom_entries)} phantom entry point(s) invoked but not in ABI."
            )
        elif behavior.invoked_entries:
            signals.add(RiskSignal.BEHAVIOR_MATCHED)
        else:
            signals.add(RiskSignal.BEHAVIOR_NO_ACTIVITY)
        if behavior.opaque_active:
            signals.add(RiskSignal.ABI_OPAQUE_ACTIVE)
            rationale.append("ABI is opaque but transaction activity exists.")
    elif behavior.status == BehaviorStatus.NO_ACTIVITY:
        signals.add(RiskSignal.BEHAVIOR_NO_ACTIVITY)
    elif behavior.status in (BehaviorStatus.UNAVAILABLE, BehaviorStatus.ERROR):
        signals.add(RiskSignal.BEHAVIOR_UNAVAILABLE)
    # ok_empty: endpoint answered with no transactions, not an outage


def _risk_level(
    signals: set[RiskSignal],
    behavior: BehaviorEvidence | None,
) -> RiskLevel:
    if RiskSignal.PHANTOM_ENTRYPOINTS in signals:
        return RiskLevel.DANGEROUS
    if signals & _CONFLICT_SIGNALS:
        return RiskLevel.ELEVATED_RISK

    sampled = behavior is not None and behavior.status == BehaviorStatus.SAMPLED
    if RiskSignal.ABI_OPAQUE_ACTIVE in signals:
        return RiskLevel.OPAQUE_BUT_ACTIVE
    if RiskSignal.INDEXER_UNSUPPORTED in signals and sampled and behavior.tx_count > 10:
        return RiskLevel.OPAQUE_BUT_ACTIVE

    # Static corroboration (hash pins or agreeing RPCs) with no conflicts
    if signals & {RiskSignal.HASH_PINNED, RiskSignal.MULTI_RPC_CONFIRMED}:
        return RiskLevel.SAFE_DYNAMIC if sampled else RiskLevel.SAFE_STATIC
    return RiskLevel.ELEVATED_RISK
