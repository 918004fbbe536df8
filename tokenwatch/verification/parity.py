"""
TokenWatch - Indexer Parity

For FA targets, compares what the primary RPC reported against what the
block-explorer indexer reported, field by field. An indexer that was not
asked, failed, or does not expose a field is always explained in the record
rather than left silently absent.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

from tokenwatch.verification.canonical import (
    canonical_json,
    normalize_address,
    normalize_hook_modules,
    normalize_supply,
)
from tokenwatch.verification.types import (
    IndexerParityRecord,
    IndexerParityStatus,
    MiniSurface,
    ParityDetails,
    ParityMismatch,
    ParityValue,
    SurfaceFetch,
    TierImpact,
)

_FAILED_STATUSES = frozenset({
    IndexerParityStatus.UNSUPPORTED,
    IndexerParityStatus.UNSUPPORTED_SCHEMA,
    IndexerParityStatus.ERROR,
})


def not_requested() -> IndexerParityRecord:
    return IndexerParityRecord(
        status=IndexerParityStatus.NOT_REQUESTED,
        reason="Indexer was not requested; indexer parity checks skipped.",
    )


def compute_indexer_parity(
    rpc: MiniSurface | None,
    indexer: SurfaceFetch | None,
    *,
    failure: str | None = None,
) -> IndexerParityRecord:
    """
    Parity between the primary RPC surface and the indexer answer.

    ``indexer`` is None when the indexer task itself failed; ``failure`` then
    carries the recorded error.
    """
    if indexer is None or indexer.surface is None:
        status = IndexerParityStatus.ERROR
        if indexer is not None and indexer.indexer_status in _FAILED_STATUSES:
            status = indexer.indexer_status
        cause = (indexer.error or indexer.hint) if indexer is not None else None
        cause = cause or failure or "no response"
        return IndexerParityRecord(
            status=status,
            reason=f"Indexer {status.value}: {cause}. Evidence tier limited to multi_rpc.",
        )

    surface = indexer.surface
    if not surface.has_facts():
        return IndexerParityRecord(
            status=IndexerParityStatus.UNSUPPORTED_SCHEMA,
            reason=(
                "Indexer answered but no field could be mapped. "
                "Evidence tier limited to multi_rpc."
            ),
        )

    rpc = rpc or MiniSurface()
    mismatches: list[ParityMismatch] = []

    def check(
        field: str,
        rpc_value: Any,
        indexer_value: Any,
        normalize: Callable[[Any], Any],
    ) -> ParityValue:
        if indexer_value is None:
            return ParityValue.UNSUPPORTED
        if rpc_value is None:
            return ParityValue.INSUFFICIENT
        left, right = normalize(rpc_value), normalize(indexer_value)
        if left is None or right is None:
            return ParityValue.UNKNOWN
        if canonical_json(left) == canonical_json(right):
            return ParityValue.MATCH
        mismatches.append(ParityMismatch(
            field=field,
            rpc_value=left,
            indexer_value=right,
            reason=f"{field} mismatch between RPC and indexer",
        ))
        return ParityValue.MISMATCH

    details = ParityDetails(
        owner_parity=check("owner", rpc.owner, surface.owner, normalize_address),
        supply_parity=check(
            "supply", rpc.supply_current_base, surface.supply_current_base, normalize_supply
        ),
        supply_max_parity=check(
            "supplyMax", rpc.supply_max_base, surface.supply_max_base, normalize_supply
        ),
        hooks_parity=check("hooks", rpc.hook_modules, surface.hook_modules, _hook_keys),
        hook_hash_parity=_hook_hash_parity(rpc, surface, mismatches),
    )

    fields_compared = [
        name
        for name, value in (
            ("owner", details.owner_parity),
            ("supply", details.supply_parity),
            ("supplyMax", details.supply_max_parity),
            ("hooks", details.hooks_parity),
        )
        if value in (ParityValue.MATCH, ParityValue.MISMATCH)
    ]
    any_match = ParityValue.MATCH in (
        details.owner_parity, details.supply_parity, details.hooks_parity
    )

    status = IndexerParityStatus.SUPPORTED
    reason = "Indexer returned FA data for corroboration."
    if indexer.indexer_status == IndexerParityStatus.PARTIAL:
        status = IndexerParityStatus.PARTIAL
        reason = "Indexer returned partial FA data; some fields not comparable."

    return IndexerParityRecord(
        status=status,
        reason=reason,
        fields_compared=fields_compared,
        evidence_tier_impact=(
            TierImpact.MULTI_RPC_PLUS_INDEXER if any_match else TierImpact.MULTI_RPC
        ),
        details=details,
        mismatches=mismatches,
    )


def _hook_keys(hooks: Any) -> list[str]:
    return [h.key for h in normalize_hook_modules(hooks)]


def _hook_hash_parity(
    rpc: MiniSurface,
    indexer: MiniSurface,
    mismatches: list[ParityMismatch],
) -> ParityValue:
    if indexer.hook_module_hashes is None:
        return ParityValue.UNSUPPORTED
    if not rpc.hook_module_hashes or not indexer.hook_module_hashes:
        return ParityValue.INSUFFICIENT

    rpc_map = {p.module_id: p.code_hash for p in rpc.hook_module_hashes}
    indexer_map = {p.module_id: p.code_hash for p in indexer.hook_module_hashes}
    result = ParityValue.MATCH
    for module_id in sorted(rpc_map.keys() | indexer_map.keys()):
        ours, theirs = rpc_map.get(module_id), indexer_map.get(module_id)
        if ours != theirs:
            result = ParityValue.MISMATCH
            mismatches.append(ParityMismatch(
                field="hookHash",
                rpc_value={"moduleId": module_id, "codeHash": ours},
                indexer_value={"moduleId": module_id, "codeHash": theirs},
                reason=f"Hook module hash mismatch for {module_id}",
            ))
    return result
