"""
TokenWatch - Change Ranker

Orders changes by ``(severity rank, type priority)``. The type table breaks
ties independently of detection order, so output is stable across runs.
"""

from __future__ import annotations

from collections.abc import Iterable

from tokenwatch.drift.types import ChangeItem, ChangeType

UNKNOWN_TYPE_PRIORITY = 999

TYPE_PRIORITY: dict[ChangeType, float] = {
    ChangeType.SUPPLY_MAX_CHANGED: 1,
    ChangeType.PRIVILEGE_ESCALATION: 2,
    ChangeType.OWNER_CHANGED: 3,
    ChangeType.SUPPLY_CHANGED_LARGE: 4,
    ChangeType.HOOKS_CHANGED: 5,
    ChangeType.HOOK_MODULE_CODE_CHANGED: 5.5,
    ChangeType.COIN_MODULE_CODE_CHANGED: 5.5,
    ChangeType.CAPABILITIES_CHANGED: 6,
    ChangeType.ABI_SURFACE_CHANGED: 7,
    ChangeType.MODULE_ADDED: 8,
    ChangeType.MODULE_REMOVED: 9,
    ChangeType.FINDING_ADDED: 10,
    ChangeType.FINDINGS_CHANGED: 11,
    ChangeType.FINDING_REMOVED: 12,
    ChangeType.PRIVILEGES_CHANGED: 13,
    ChangeType.INVARIANTS_CHANGED: 14,
    ChangeType.COVERAGE_CHANGED: 15,
    ChangeType.SUPPLY_CHANGED: 16,
    ChangeType.SUPPLY_CHANGED_SMALL: 17,
    ChangeType.ADMIN_CHANGED: 18,
}


def sort_key(change: ChangeItem) -> tuple[int, float]:
    return change.severity.rank, TYPE_PRIORITY.get(change.type, UNKNOWN_TYPE_PRIORITY)


def rank_changes(changes: Iterable[ChangeItem]) -> list[ChangeItem]:
    """Stable sort; ranking an already ranked list returns it unchanged."""
    return sorted(changes, key=sort_key)
