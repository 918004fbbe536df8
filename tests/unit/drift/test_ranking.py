"""
Tests for deterministic change ordering.
"""

from __future__ import annotations

from tokenwatch.drift.ranking import TYPE_PRIORITY, rank_changes, sort_key
from tokenwatch.drift.types import ChangeItem, ChangeType
from tokenwatch.primitives.common import Severity


def _change(change_type: ChangeType, severity: Severity) -> ChangeItem:
    return ChangeItem(type=change_type, severity=severity)


class TestRankChanges:
    def test_severity_first(self):
        changes = [
            _change(ChangeType.SUPPLY_CHANGED_SMALL, Severity.INFO),
            _change(ChangeType.COVERAGE_CHANGED, Severity.HIGH),
            _change(ChangeType.SUPPLY_MAX_CHANGED, Severity.CRITICAL),
        ]
        ranked = rank_changes(changes)
        assert [c.severity for c in ranked] == [Severity.CRITICAL, Severity.HIGH, Severity.INFO]

    def test_type_priority_breaks_ties(self):
        changes = [
            _change(ChangeType.MODULE_ADDED, Severity.HIGH),
            _change(ChangeType.CAPABILITIES_CHANGED, Severity.HIGH),
            _change(ChangeType.HOOK_MODULE_CODE_CHANGED, Severity.HIGH),
            _change(ChangeType.OWNER_CHANGED, Severity.HIGH),
            _change(ChangeType.PRIVILEGE_ESCALATION, Severity.HIGH),
        ]
        ranked = rank_changes(changes)
        assert [c.type for c in ranked] == [
            ChangeType.PRIVILEGE_ESCALATION,
            ChangeType.OWNER_CHANGED,
            ChangeType.HOOK_MODULE_CODE_CHANGED,
            ChangeType.CAPABILITIES_CHANGED,
            ChangeType.MODULE_ADDED,
        ]

    def test_input_order_does_not_matter(self):
        changes = [
            _change(ChangeType.FINDING_REMOVED, Severity.INFO),
            _change(ChangeType.HOOKS_CHANGED, Severity.MEDIUM),
            _change(ChangeType.SUPPLY_CHANGED_LARGE, Severity.HIGH),
        ]
        assert rank_changes(changes) == rank_changes(list(reversed(changes)))

    def test_ranking_is_idempotent(self):
        changes = [
            _change(ChangeType.ABI_SURFACE_CHANGED, Severity.HIGH),
            _change(ChangeType.INVARIANTS_CHANGED, Severity.CRITICAL),
        ]
        ranked = rank_changes(changes)
        assert rank_changes(ranked) == ranked

    def test_every_change_type_has_a_priority(self):
        assert set(TYPE_PRIORITY) == set(ChangeType)
        assert sort_key(_change(ChangeType.ADMIN_CHANGED, Severity.LOW)) == (4, 18)
