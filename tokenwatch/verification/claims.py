"""
TokenWatch - Claim Builder

Merges same-moment observations from up to four sources into one Claim per
fact type. Status and confidence depend only on how many sources reported
the fact and whether their canonical forms agree:

  0 sources              -> UNAVAILABLE / LOW
  1 source               -> PARTIAL / MEDIUM
  >=2, all equal         -> CONFIRMED / HIGH
  >=2, disagreement      -> CONFLICT / HIGH + Discrepancy
                            (PARTIAL / MEDIUM for benign-divergence facts)

Hook lists and capability maps are benign-divergence facts: an indexer or a
lagging node may legitimately report a different set. The dedicated
INDEXER_PARITY claim still treats an RPC/indexer hook disagreement as a hard
conflict.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from tokenwatch.primitives.common import Severity, TargetKind
from tokenwatch.telemetry.observer import EngineObserver, default_observer
from tokenwatch.verification.canonical import (
    canonical_json,
    normalize_address,
    normalize_hook_modules,
    normalize_module_id,
    normalize_supply,
)
from tokenwatch.verification.types import (
    Claim,
    ClaimConfirmation,
    ClaimStatus,
    ClaimType,
    Confidence,
    Discrepancy,
    EvidenceSource,
    MiniSurface,
    ParityValue,
)

# Danger order for flags that appeared newly true. Mint-like first.
ESCALATION_PRIORITY: tuple[str, ...] = (
    "hasMintRef",
    "hasMintCap",
    "hasWithdrawHook",
    "hasFreezeCap",
    "hasTransferRestrictions",
    "hasTransferRef",
    "hasBurnRef",
    "hasBurnCap",
)
SENSITIVE_FLAGS: frozenset[str] = frozenset(ESCALATION_PRIORITY)


@dataclass(frozen=True)
class Observation:
    """One source's reading of one fact. ``value=None`` means not reported."""

    source: EvidenceSource
    value: Any
    raw_hint: str | None = None


@dataclass(frozen=True)
class ClaimSpec:
    claim_type: ClaimType
    extract: Callable[[MiniSurface, EvidenceSource], Any]
    kinds: frozenset[TargetKind]
    detail: str
    raw_hints: Mapping[EvidenceSource, str]
    benign_divergence: bool = False
    always_emit: bool = True


# ─── Status Policy ───────────────────────────────────────────────


def grade(
    values: Sequence[Any],
    *,
    benign_divergence: bool = False,
) -> tuple[ClaimStatus, Confidence]:
    """Status and confidence for the values reported by present sources."""
    if not values:
        return ClaimStatus.UNAVAILABLE, Confidence.LOW
    if len(values) == 1:
        return ClaimStatus.PARTIAL, Confidence.MEDIUM

    # Values that cannot be canonicalized are left out of the comparison
    comparable = [c for c in (canonical_json(v) for v in values) if c is not None]
    if len(comparable) < 2:
        return ClaimStatus.PARTIAL, Confidence.MEDIUM
    if len(set(comparable)) == 1:
        return ClaimStatus.CONFIRMED, Confidence.HIGH
    if benign_divergence:
        return ClaimStatus.PARTIAL, Confidence.MEDIUM
    return ClaimStatus.CONFLICT, Confidence.HIGH


def build_claim(
    claim_type: ClaimType,
    observations: Iterable[Observation],
    *,
    benign_divergence: bool = False,
    detail: str = "{claim} mismatch across sources",
    observer: EngineObserver | None = None,
) -> tuple[Claim, Discrepancy | None]:
    """
    Corroborate one fact type.

    ``detail`` is the discrepancy text; ``{claim}`` and ``{values}`` are
    substituted with the claim type and the distinct reported values.
    """
    observer = observer or default_observer()
    present = sorted(
        (o for o in observations if o.value is not None),
        key=lambda o: o.source.priority,
    )
    values = [o.value for o in present]
    status, confidence = grade(values, benign_divergence=benign_divergence)

    claim = Claim(
        claim_type=claim_type,
        value=values[0] if values else None,
        confirmations=[
            ClaimConfirmation(source=o.source, ok=True, value=o.value, raw_hint=o.raw_hint)
            for o in present
        ],
        status=status,
        confidence=confidence,
    )
    observer.claim_built(claim)

    if status != ClaimStatus.CONFLICT:
        return claim, None

    distinct: list[str] = []
    for v in values:
        shown = v if isinstance(v, str) else (canonical_json(v) or repr(v))
        if shown not in distinct:
            distinct.append(shown)
    discrepancy = Discrepancy(
        claim_type=claim_type,
        sources=[o.source for o in present],
        values={o.source.value: o.value for o in present},
        detail=detail.format(claim=claim_type.value, values=" vs ".join(distinct)),
    )
    observer.discrepancy_recorded(discrepancy)
    return claim, discrepancy


# ─── Privilege Escalation ────────────────────────────────────────


def derive_privilege_escalation(
    before: Mapping[str, bool] | None,
    after: Mapping[str, bool] | None,
) -> list[str]:
    """
    Sensitive capability flags that went from absent/false to true.

    Ordered by danger priority, not by detection order.
    """
    if not after:
        return []
    before = before or {}
    appeared = [
        flag
        for flag in SENSITIVE_FLAGS
        if after.get(flag) is True and not before.get(flag, False)
    ]
    return sorted(appeared, key=ESCALATION_PRIORITY.index)


def escalation_claim(caps_claim: Claim, baseline: Mapping[str, bool]) -> Claim | None:
    """Derived PRIVILEGE_ESCALATION claim backed by the CAPS confirmations."""
    if not isinstance(caps_claim.value, Mapping):
        return None
    appeared = derive_privilege_escalation(baseline, caps_claim.value)
    if not appeared:
        return None
    return Claim(
        claim_type=ClaimType.PRIVILEGE_ESCALATION,
        value={"severity": Severity.HIGH.value, "appeared": appeared},
        confirmations=list(caps_claim.confirmations),
        status=caps_claim.status,
        confidence=caps_claim.confidence,
    )


# ─── Per-fact Extraction ─────────────────────────────────────────


def _owner(surface: MiniSurface, source: EvidenceSource) -> Any:
    return normalize_address(surface.owner)


def _supply(surface: MiniSurface, source: EvidenceSource) -> Any:
    return normalize_supply(surface.supply_current_base)


def _hooks(surface: MiniSurface, source: EvidenceSource) -> Any:
    if surface.hook_modules is None:
        return None
    return [
        h.model_dump(mode="json", exclude={"risk"})
        for h in normalize_hook_modules(surface.hook_modules)
    ]


def _capabilities(surface: MiniSurface, source: EvidenceSource) -> Any:
    return dict(surface.capabilities) if surface.capabilities is not None else None


def _modules(surface: MiniSurface, source: EvidenceSource) -> Any:
    if surface.module_inventory is None:
        return None
    return sorted({normalize_module_id(m) for m in surface.module_inventory})


def _pins(attr: str) -> Callable[[MiniSurface, EvidenceSource], Any]:
    def extract(surface: MiniSurface, source: EvidenceSource) -> Any:
        pins = getattr(surface, attr)
        if pins is None:
            return None
        return [
            pin.model_copy(
                update={
                    "module_id": normalize_module_id(pin.module_id),
                    "fetched_from": source.value,
                }
            ).model_dump(mode="json", by_alias=True, exclude_none=True)
            for pin in pins
        ]

    return extract


def _creator(surface: MiniSurface, source: EvidenceSource) -> Any:
    return normalize_address(surface.creator)


_RPC = (EvidenceSource.RPC_V3, EvidenceSource.RPC_V1, EvidenceSource.RPC_V3_2)
_BOTH = frozenset({TargetKind.FA, TargetKind.COIN})


def _hints(rpc: str, indexer: str | None = None) -> dict[EvidenceSource, str]:
    hints = {source: rpc for source in _RPC}
    if indexer:
        hints[EvidenceSource.SUPRASCAN] = indexer
    return hints


CLAIM_SPECS: tuple[ClaimSpec, ...] = (
    ClaimSpec(
        ClaimType.OWNER, _owner, frozenset({TargetKind.FA}),
        "Owner mismatch: {values}", _hints("ObjectCore", "GraphQL"),
    ),
    ClaimSpec(
        ClaimType.SUPPLY, _supply, _BOTH,
        "Supply mismatch: {values}",
        _hints("ConcurrentSupply/CoinInfo", "getFaDetails.totalSupply"),
    ),
    ClaimSpec(
        ClaimType.HOOKS, _hooks, frozenset({TargetKind.FA}),
        "Hook list mismatch across sources", _hints("DispatchFunctionStore", "GraphQL"),
        benign_divergence=True,
    ),
    ClaimSpec(
        ClaimType.CAPABILITIES, _capabilities, _BOTH,
        "Capability flags mismatch across sources", _hints("ManagedFungibleAsset/CoinInfo"),
        benign_divergence=True,
    ),
    ClaimSpec(
        ClaimType.MODULES, _modules, _BOTH,
        "Module inventory mismatch across sources", _hints("account modules"),
        always_emit=False,
    ),
    ClaimSpec(
        ClaimType.HOOK_MODULE_HASHES, _pins("hook_module_hashes"), frozenset({TargetKind.FA}),
        "Hook module hash mismatch across RPCs", _hints("module bytecode/ABI"),
        always_emit=False,
    ),
    ClaimSpec(
        ClaimType.MODULE_HASHES, _pins("module_hashes"), frozenset({TargetKind.COIN}),
        "Module hash mismatch across RPCs", _hints("module bytecode/ABI"),
        always_emit=False,
    ),
    ClaimSpec(
        ClaimType.CREATOR, _creator, _BOTH,
        "Creator mismatch: {values}", {EvidenceSource.SUPRASCAN: "getFaDetails.creatorAddress"},
        always_emit=False,
    ),
)


# ─── Corroboration ───────────────────────────────────────────────


def corroborate_claims(
    kind: TargetKind,
    surfaces: Mapping[EvidenceSource, MiniSurface | None],
    *,
    baseline_capabilities: Mapping[str, bool] | None = None,
    observer: EngineObserver | None = None,
) -> tuple[list[Claim], list[Discrepancy]]:
    """Build every claim that applies to ``kind`` from the settled surfaces."""
    observer = observer or default_observer()
    claims: list[Claim] = []
    discrepancies: list[Discrepancy] = []

    for spec in CLAIM_SPECS:
        if kind not in spec.kinds:
            continue
        observations = [
            Observation(source, spec.extract(surface, source), spec.raw_hints.get(source))
            for source, surface in surfaces.items()
            if surface is not None
        ]
        if not spec.always_emit and all(o.value is None for o in observations):
            continue
        claim, discrepancy = build_claim(
            spec.claim_type,
            observations,
            benign_divergence=spec.benign_divergence,
            detail=spec.detail,
            observer=observer,
        )
        claims.append(claim)
        if discrepancy is not None:
            discrepancies.append(discrepancy)

    if kind == TargetKind.FA:
        parity = _indexer_hooks_claim(surfaces, observer)
        if parity is not None:
            claims.append(parity[0])
            if parity[1] is not None:
                discrepancies.append(parity[1])

    if baseline_capabilities is not None:
        caps = next(c for c in claims if c.claim_type == ClaimType.CAPABILITIES)
        escalation = escalation_claim(caps, baseline_capabilities)
        if escalation is not None:
            observer.claim_built(escalation)
            claims.append(escalation)

    return claims, discrepancies


def _indexer_hooks_claim(
    surfaces: Mapping[EvidenceSource, MiniSurface | None],
    observer: EngineObserver,
) -> tuple[Claim, Discrepancy | None] | None:
    """Primary RPC hooks vs indexer hooks. Disagreement here is a hard conflict."""
    rpc = surfaces.get(EvidenceSource.RPC_V3)
    indexer = surfaces.get(EvidenceSource.SUPRASCAN)
    observations = [
        Observation(
            EvidenceSource.RPC_V3,
            _hooks(rpc, EvidenceSource.RPC_V3) if rpc else None,
            "DispatchFunctionStore",
        ),
        Observation(
            EvidenceSource.SUPRASCAN,
            _hooks(indexer, EvidenceSource.SUPRASCAN) if indexer else None,
            "GraphQL",
        ),
    ]
    if all(o.value is None for o in observations):
        return None

    claim, discrepancy = build_claim(
        ClaimType.INDEXER_PARITY,
        observations,
        detail="FA hooks differ between RPC and indexer",
        observer=observer,
    )
    if claim.status == ClaimStatus.CONFIRMED:
        hooks_parity = ParityValue.MATCH
    elif claim.status == ClaimStatus.CONFLICT:
        hooks_parity = ParityValue.MISMATCH
    else:
        hooks_parity = ParityValue.INSUFFICIENT
    claim = claim.model_copy(update={"value": {"hooksParity": hooks_parity.value}})
    return claim, discrepancy
