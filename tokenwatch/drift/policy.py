"""
TokenWatch - Severity Policy

Opt-in, caller-side escalation applied on top of a DiffResult. The differ
only detects (for example ABI_SURFACE_CHANGED stays high and carries a
``hasMintLikeFunction`` marker); this layer decides what is critical.

Severities are only ever raised, never lowered. The result is re-ranked and
its agent hints re-derived.
"""

from __future__ import annotations

from tokenwatch.drift.hints import derive_agent_hints
from tokenwatch.drift.ranking import rank_changes
from tokenwatch.drift.types import (
    ChangeItem,
    ChangeType,
    CoinSnapshot,
    DiffResult,
    FASnapshot,
    InvariantStatus,
)
from tokenwatch.primitives.common import Severity
from tokenwatch.verification.canonical import parse_base_units

_SUPPLY_TYPES = frozenset({
    ChangeType.SUPPLY_CHANGED,
    ChangeType.SUPPLY_CHANGED_LARGE,
    ChangeType.SUPPLY_CHANGED_SMALL,
})


def apply_severity_policy(
    diff: DiffResult,
    prev: FASnapshot | CoinSnapshot | None,
    curr: FASnapshot | CoinSnapshot,
) -> DiffResult:
    if prev is None or not diff.changed:
        return diff

    present = {c.type for c in diff.changes}
    updated: list[ChangeItem] = []
    for change in diff.changes:
        target = _escalation(change, present, curr)
        if target is not None and target.ordinal > change.severity.ordinal:
            change = change.model_copy(update={"severity": target})
        updated.append(change)

    changes = rank_changes(updated)
    return DiffResult(changes=changes, agent_hints=derive_agent_hints(changes))


def _escalation(
    change: ChangeItem,
    present: set[ChangeType],
    curr: FASnapshot | CoinSnapshot,
) -> Severity | None:
    evidence = change.evidence or {}

    if change.type == ChangeType.ABI_SURFACE_CHANGED and evidence.get("hasMintLikeFunction"):
        return Severity.CRITICAL
    if change.type == ChangeType.OWNER_CHANGED and ChangeType.HOOKS_CHANGED in present:
        return Severity.CRITICAL
    if change.type == ChangeType.PRIVILEGES_CHANGED:
        if evidence.get("addedPrivileges", {}).get("UPGRADE_PUBLISH"):
            return Severity.CRITICAL
    if change.type == ChangeType.INVARIANTS_CHANGED:
        if evidence.get("overallAfter") == InvariantStatus.VIOLATION.value:
            return Severity.CRITICAL
    if change.type in _SUPPLY_TYPES:
        return _supply_escalation(change, curr)
    return None


def _supply_escalation(change: ChangeItem, curr: FASnapshot | CoinSnapshot) -> Severity | None:
    before, after = parse_base_units(change.before), parse_base_units(change.after)
    if before is None or after is None or after <= before:
        return None
    if isinstance(curr, FASnapshot):
        cap = parse_base_units(curr.supply.supply_max_base)
        if cap is not None and after > cap:
            return Severity.CRITICAL
        return None
    if curr.capabilities.has_mint_cap:
        return Severity.CRITICAL
    return None
