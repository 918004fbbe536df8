"""
TokenWatch - Evidence-Tier Resolver

Assigns one ordinal trust level to a whole verification run:

  view_only < multi_rpc_confirmed < multi_rpc_plus_indexer < multi_source_confirmed

A tier is only ever justified by sources that actually succeeded. The indexer
counts only when it returned usable evidence; if it later turns out to be
unusable, the tier is recomputed from RPC sources alone.
"""

from __future__ import annotations

from collections.abc import Collection, Sequence

from tokenwatch.verification.types import (
    RPC_SOURCES,
    Claim,
    ClaimStatus,
    EvidenceSource,
    EvidenceTier,
)


def rpc_agreement(claims: Sequence[Claim]) -> bool:
    """True if at least one claim is CONFIRMED by two or more RPC-class sources."""
    for claim in claims:
        if claim.status != ClaimStatus.CONFIRMED:
            continue
        rpc = {c.source for c in claim.confirmations if c.ok and c.source.is_rpc}
        if len(rpc) >= 2:
            return True
    return False


def resolve_evidence_tier(
    succeeded: Collection[EvidenceSource],
    claims: Sequence[Claim],
    *,
    indexer_usable: bool,
) -> tuple[EvidenceTier, str]:
    """Highest tier justified by the settled sources. Returns (tier, reason)."""
    ok = set(succeeded)
    rpc_ok = ok & RPC_SOURCES

    if len(rpc_ok) < 2:
        return EvidenceTier.VIEW_ONLY, f"{len(rpc_ok)} RPC source(s) succeeded"
    if not rpc_agreement(claims):
        return EvidenceTier.VIEW_ONLY, "no claim confirmed by two RPC sources"

    if EvidenceSource.SUPRASCAN not in ok or not indexer_usable:
        return EvidenceTier.MULTI_RPC_CONFIRMED, "multiple RPC sources agree"

    if {EvidenceSource.RPC_V3, EvidenceSource.RPC_V3_2} <= ok:
        return (
            EvidenceTier.MULTI_SOURCE_CONFIRMED,
            "primary RPC, secondary RPC and indexer succeeded",
        )
    return EvidenceTier.MULTI_RPC_PLUS_INDEXER, "multiple RPC sources plus indexer"


def demote_for_indexer(
    tier: EvidenceTier,
    succeeded: Collection[EvidenceSource],
    claims: Sequence[Claim],
) -> tuple[EvidenceTier, str | None]:
    """
    Drop any indexer-dependent promotion once the indexer is known unusable.

    Returns the (possibly unchanged) tier and a reason when it was demoted.
    """
    if tier.rank <= EvidenceTier.MULTI_RPC_CONFIRMED.rank:
        return tier, None
    rpc_only, _ = resolve_evidence_tier(succeeded, claims, indexer_usable=False)
    return rpc_only, "indexer evidence unusable; tier limited to RPC sources"
