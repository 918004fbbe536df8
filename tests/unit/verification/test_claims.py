"""
Tests for the claim builder: status/confidence policy, discrepancies,
benign-divergence facts, and privilege-escalation derivation.
"""

from __future__ import annotations

from tokenwatch.primitives.chain import HookTarget, ModuleHashPin
from tokenwatch.primitives.common import TargetKind
from tokenwatch.telemetry.observer import EngineObserver
from tokenwatch.verification.claims import (
    Observation,
    build_claim,
    corroborate_claims,
    derive_privilege_escalation,
    grade,
)
from tokenwatch.verification.types import (
    ClaimStatus,
    ClaimType,
    Confidence,
    EvidenceSource,
    MiniSurface,
)

V3 = EvidenceSource.RPC_V3
V1 = EvidenceSource.RPC_V1
V3_2 = EvidenceSource.RPC_V3_2
SCAN = EvidenceSource.SUPRASCAN


class RecordingObserver(EngineObserver):
    def __init__(self) -> None:
        self.claims: list = []
        self.discrepancies: list = []

    def claim_built(self, claim) -> None:
        self.claims.append(claim)

    def discrepancy_recorded(self, discrepancy) -> None:
        self.discrepancies.append(discrepancy)


def _hook(fn: str, address: str = "0xabc") -> HookTarget:
    return HookTarget(module_address=address, module_name="hooks", function_name=fn)


def _fa_surface(**kwargs) -> MiniSurface:
    defaults = {
        "owner": "0xowner",
        "supply_current_base": "1000",
        "hook_modules": [_hook("deposit")],
        "capabilities": {"hasMintRef": False, "hasBurnRef": True},
    }
    defaults.update(kwargs)
    return MiniSurface(**defaults)


# ─── Status Policy ───────────────────────────────────────────────


class TestGrade:
    def test_no_sources_is_unavailable(self):
        assert grade([]) == (ClaimStatus.UNAVAILABLE, Confidence.LOW)

    def test_single_source_is_partial(self):
        assert grade(["x"]) == (ClaimStatus.PARTIAL, Confidence.MEDIUM)

    def test_agreement_is_confirmed(self):
        assert grade(["x", "x", "x"]) == (ClaimStatus.CONFIRMED, Confidence.HIGH)

    def test_disagreement_is_conflict(self):
        assert grade(["x", "y"]) == (ClaimStatus.CONFLICT, Confidence.HIGH)

    def test_benign_disagreement_is_partial(self):
        assert grade(["x", "y"], benign_divergence=True) == (
            ClaimStatus.PARTIAL,
            Confidence.MEDIUM,
        )

    def test_uncomparable_values_are_excluded(self):
        assert grade(["x", object()]) == (ClaimStatus.PARTIAL, Confidence.MEDIUM)


class TestBuildClaim:
    def test_zero_confirmations(self):
        claim, discrepancy = build_claim(
            ClaimType.OWNER, [Observation(V3, None), Observation(V3_2, None)]
        )
        assert claim.status == ClaimStatus.UNAVAILABLE
        assert claim.confidence == Confidence.LOW
        assert claim.confirmations == []
        assert claim.value is None
        assert discrepancy is None

    def test_one_confirmation(self):
        claim, discrepancy = build_claim(ClaimType.OWNER, [Observation(V3_2, "0xa")])
        assert claim.status == ClaimStatus.PARTIAL
        assert claim.confidence == Confidence.MEDIUM
        assert discrepancy is None

    def test_value_follows_source_priority(self):
        claim, _ = build_claim(
            ClaimType.SUPPLY,
            [Observation(V3_2, "5"), Observation(V3, "5"), Observation(V1, "5")],
        )
        assert claim.value == "5"
        assert [c.source for c in claim.confirmations] == [V3, V1, V3_2]

    def test_provenance_only_difference_confirms(self):
        a = [{"moduleId": "0x1::m", "codeHash": "aa", "fetchedFrom": "rpc_v3"}]
        b = [{"moduleId": "0x1::m", "codeHash": "aa", "fetchedFrom": "rpc_v3_2"}]
        claim, discrepancy = build_claim(
            ClaimType.HOOK_MODULE_HASHES, [Observation(V3, a), Observation(V3_2, b)]
        )
        assert claim.status == ClaimStatus.CONFIRMED
        assert claim.confidence == Confidence.HIGH
        assert discrepancy is None

    def test_conflict_records_discrepancy(self):
        observer = RecordingObserver()
        claim, discrepancy = build_claim(
            ClaimType.OWNER,
            [Observation(V3, "0xa"), Observation(V3_2, "0xb")],
            detail="Owner mismatch: {values}",
            observer=observer,
        )
        assert claim.status == ClaimStatus.CONFLICT
        assert discrepancy is not None
        assert discrepancy.detail == "Owner mismatch: 0xa vs 0xb"
        assert discrepancy.sources == [V3, V3_2]
        assert discrepancy.values == {"rpc_v3": "0xa", "rpc_v3_2": "0xb"}
        assert observer.claims == [claim]
        assert observer.discrepancies == [discrepancy]

    def test_benign_divergence_has_no_discrepancy(self):
        claim, discrepancy = build_claim(
            ClaimType.HOOKS,
            [Observation(V3, ["a"]), Observation(SCAN, ["b"])],
            benign_divergence=True,
        )
        assert claim.status == ClaimStatus.PARTIAL
        assert discrepancy is None


# ─── Corroboration ───────────────────────────────────────────────


class TestCorroborateClaims:
    def test_fa_agreement_confirms_core_claims(self):
        surfaces = {V3: _fa_surface(), V3_2: _fa_surface()}
        claims, discrepancies = corroborate_claims(TargetKind.FA, surfaces)
        by_type = {c.claim_type: c for c in claims}
        for claim_type in (ClaimType.OWNER, ClaimType.SUPPLY, ClaimType.HOOKS,
                           ClaimType.CAPABILITIES):
            assert by_type[claim_type].status == ClaimStatus.CONFIRMED
        assert discrepancies == []

    def test_owner_formatting_differences_confirm(self):
        surfaces = {V3: _fa_surface(owner="0xABC"), V3_2: _fa_surface(owner="abc")}
        claims, _ = corroborate_claims(TargetKind.FA, surfaces)
        owner = next(c for c in claims if c.claim_type == ClaimType.OWNER)
        assert owner.status == ClaimStatus.CONFIRMED
        assert owner.value == "0xabc"

    def test_supply_conflict(self):
        surfaces = {
            V3: _fa_surface(supply_current_base="1000"),
            V3_2: _fa_surface(supply_current_base="2000"),
        }
        claims, discrepancies = corroborate_claims(TargetKind.FA, surfaces)
        supply = next(c for c in claims if c.claim_type == ClaimType.SUPPLY)
        assert supply.status == ClaimStatus.CONFLICT
        assert [d.detail for d in discrepancies] == ["Supply mismatch: 1000 vs 2000"]

    def test_hook_order_does_not_matter(self):
        hooks = [_hook("deposit"), _hook("withdraw")]
        surfaces = {
            V3: _fa_surface(hook_modules=hooks),
            V3_2: _fa_surface(hook_modules=list(reversed(hooks))),
        }
        claims, _ = corroborate_claims(TargetKind.FA, surfaces)
        hooks_claim = next(c for c in claims if c.claim_type == ClaimType.HOOKS)
        assert hooks_claim.status == ClaimStatus.CONFIRMED

    def test_hooks_diverging_are_partial_but_indexer_parity_conflicts(self):
        surfaces = {
            V3: _fa_surface(hook_modules=[_hook("withdraw")]),
            SCAN: MiniSurface(hook_modules=[_hook("deposit")]),
        }
        claims, discrepancies = corroborate_claims(TargetKind.FA, surfaces)
        by_type = {c.claim_type: c for c in claims}
        assert by_type[ClaimType.HOOKS].status == ClaimStatus.PARTIAL
        parity = by_type[ClaimType.INDEXER_PARITY]
        assert parity.status == ClaimStatus.CONFLICT
        assert parity.value == {"hooksParity": "mismatch"}
        assert [d.detail for d in discrepancies] == ["FA hooks differ between RPC and indexer"]

    def test_no_surfaces_gives_unavailable_claims(self):
        claims, discrepancies = corroborate_claims(TargetKind.FA, {V3: None, V3_2: None})
        assert {c.claim_type for c in claims} == {
            ClaimType.OWNER, ClaimType.SUPPLY, ClaimType.HOOKS, ClaimType.CAPABILITIES,
        }
        assert all(c.status == ClaimStatus.UNAVAILABLE for c in claims)
        assert discrepancies == []

    def test_coin_has_no_owner_or_hooks(self):
        surfaces = {V3: MiniSurface(supply_current_base="1")}
        claims, _ = corroborate_claims(TargetKind.COIN, surfaces)
        types = {c.claim_type for c in claims}
        assert ClaimType.OWNER not in types
        assert ClaimType.HOOKS not in types
        assert ClaimType.INDEXER_PARITY not in types

    def test_module_hash_pins_are_stamped_and_corroborated(self):
        pin = ModuleHashPin(module_id="0xABC::coin", code_hash="h1")
        surfaces = {
            V3: MiniSurface(module_hashes=[pin]),
            V3_2: MiniSurface(module_hashes=[pin]),
        }
        claims, _ = corroborate_claims(TargetKind.COIN, surfaces)
        hashes = next(c for c in claims if c.claim_type == ClaimType.MODULE_HASHES)
        assert hashes.status == ClaimStatus.CONFIRMED
        assert hashes.confirmations[0].value[0]["fetchedFrom"] == "rpc_v3"
        assert hashes.confirmations[1].value[0]["fetchedFrom"] == "rpc_v3_2"
        assert hashes.value[0]["moduleId"] == "0xabc::coin"

    def test_module_hash_conflict(self):
        surfaces = {
            V3: MiniSurface(module_hashes=[ModuleHashPin(module_id="0x1::c", code_hash="h1")]),
            V3_2: MiniSurface(module_hashes=[ModuleHashPin(module_id="0x1::c", code_hash="h2")]),
        }
        _, discrepancies = corroborate_claims(TargetKind.COIN, surfaces)
        assert [d.detail for d in discrepancies] == ["Module hash mismatch across RPCs"]

    def test_creator_only_from_indexer(self):
        surfaces = {V3: _fa_surface(), SCAN: MiniSurface(creator="0xCREATOR")}
        claims, _ = corroborate_claims(TargetKind.FA, surfaces)
        creator = next(c for c in claims if c.claim_type == ClaimType.CREATOR)
        assert creator.status == ClaimStatus.PARTIAL
        assert creator.value == "0xcreator"

    def test_privilege_escalation_against_baseline(self):
        caps = {"hasMintRef": True, "hasBurnRef": True, "hasWithdrawHook": True}
        surfaces = {V3: _fa_surface(capabilities=caps), V3_2: _fa_surface(capabilities=caps)}
        claims, _ = corroborate_claims(
            TargetKind.FA,
            surfaces,
            baseline_capabilities={"hasMintRef": False, "hasBurnRef": True},
        )
        escalation = next(c for c in claims if c.claim_type == ClaimType.PRIVILEGE_ESCALATION)
        assert escalation.value == {
            "severity": "high",
            "appeared": ["hasMintRef", "hasWithdrawHook"],
        }
        assert escalation.status == ClaimStatus.CONFIRMED

    def test_no_escalation_without_new_flags(self):
        surfaces = {V3: _fa_surface()}
        claims, _ = corroborate_claims(
            TargetKind.FA, surfaces, baseline_capabilities={"hasMintRef": False, "hasBurnRef": True}
        )
        assert all(c.claim_type != ClaimType.PRIVILEGE_ESCALATION for c in claims)


class TestPrivilegeEscalation:
    def test_priority_order_not_detection_order(self):
        before = {}
        after = {
            "hasTransferRef": True,
            "hasFreezeCap": True,
            "hasWithdrawHook": True,
            "hasMintRef": True,
        }
        assert derive_privilege_escalation(before, after) == [
            "hasMintRef",
            "hasWithdrawHook",
            "hasFreezeCap",
            "hasTransferRef",
        ]

    def test_ignores_non_sensitive_and_existing_flags(self):
        before = {"hasMintRef": True}
        after = {"hasMintRef": True, "hasDepositHook": True}
        assert derive_privilege_escalation(before, after) == []

    def test_empty_after(self):
        assert derive_privilege_escalation({"hasMintRef": False}, None) == []
