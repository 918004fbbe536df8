"""
Tests for evidence-tier resolution and indexer demotion.
"""

from __future__ import annotations

from tokenwatch.verification.tier import demote_for_indexer, resolve_evidence_tier, rpc_agreement
from tokenwatch.verification.types import (
    Claim,
    ClaimConfirmation,
    ClaimStatus,
    ClaimType,
    Confidence,
    EvidenceSource,
    EvidenceTier,
)

V3 = EvidenceSource.RPC_V3
V1 = EvidenceSource.RPC_V1
V3_2 = EvidenceSource.RPC_V3_2
SCAN = EvidenceSource.SUPRASCAN


def _claim(*sources: EvidenceSource, status: ClaimStatus = ClaimStatus.CONFIRMED) -> Claim:
    return Claim(
        claim_type=ClaimType.SUPPLY,
        value="1",
        confirmations=[ClaimConfirmation(source=s, value="1") for s in sources],
        status=status,
        confidence=Confidence.HIGH,
    )


class TestRpcAgreement:
    def test_two_rpc_confirmations(self):
        assert rpc_agreement([_claim(V3, V3_2)])

    def test_rpc_plus_indexer_is_not_rpc_agreement(self):
        assert not rpc_agreement([_claim(V3, SCAN)])

    def test_conflict_does_not_count(self):
        assert not rpc_agreement([_claim(V3, V3_2, status=ClaimStatus.CONFLICT)])


class TestResolveEvidenceTier:
    def test_single_rpc_is_view_only(self):
        tier, _ = resolve_evidence_tier([V3, SCAN], [_claim(V3, SCAN)], indexer_usable=True)
        assert tier == EvidenceTier.VIEW_ONLY

    def test_nothing_succeeded(self):
        tier, reason = resolve_evidence_tier([], [], indexer_usable=False)
        assert tier == EvidenceTier.VIEW_ONLY
        assert "0 RPC" in reason

    def test_two_rpcs_without_agreement_is_view_only(self):
        tier, _ = resolve_evidence_tier(
            [V3, V3_2], [_claim(V3, V3_2, status=ClaimStatus.CONFLICT)], indexer_usable=False
        )
        assert tier == EvidenceTier.VIEW_ONLY

    def test_multi_rpc_confirmed(self):
        tier, _ = resolve_evidence_tier([V3, V3_2], [_claim(V3, V3_2)], indexer_usable=False)
        assert tier == EvidenceTier.MULTI_RPC_CONFIRMED

    def test_unusable_indexer_does_not_promote(self):
        tier, _ = resolve_evidence_tier(
            [V3, V3_2, SCAN], [_claim(V3, V3_2)], indexer_usable=False
        )
        assert tier == EvidenceTier.MULTI_RPC_CONFIRMED

    def test_plus_indexer_without_secondary(self):
        tier, _ = resolve_evidence_tier([V3, V1, SCAN], [_claim(V3, V1)], indexer_usable=True)
        assert tier == EvidenceTier.MULTI_RPC_PLUS_INDEXER

    def test_multi_source_confirmed(self):
        tier, _ = resolve_evidence_tier(
            [V3, V3_2, SCAN], [_claim(V3, V3_2, SCAN)], indexer_usable=True
        )
        assert tier == EvidenceTier.MULTI_SOURCE_CONFIRMED

    def test_tier_ordering(self):
        ranks = [t.rank for t in (
            EvidenceTier.VIEW_ONLY,
            EvidenceTier.MULTI_RPC_CONFIRMED,
            EvidenceTier.MULTI_RPC_PLUS_INDEXER,
            EvidenceTier.MULTI_SOURCE_CONFIRMED,
        )]
        assert ranks == sorted(ranks)


class TestDemoteForIndexer:
    def test_demotes_indexer_dependent_tier(self):
        claims = [_claim(V3, V3_2)]
        tier, reason = demote_for_indexer(
            EvidenceTier.MULTI_SOURCE_CONFIRMED, [V3, V3_2, SCAN], claims
        )
        assert tier == EvidenceTier.MULTI_RPC_CONFIRMED
        assert reason is not None

    def test_rpc_only_tier_untouched(self):
        tier, reason = demote_for_indexer(EvidenceTier.MULTI_RPC_CONFIRMED, [V3, V3_2], [])
        assert tier == EvidenceTier.MULTI_RPC_CONFIRMED
        assert reason is None
