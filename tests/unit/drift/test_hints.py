"""
Tests for agent-hint derivation.
"""

from __future__ import annotations

from tokenwatch.drift.hints import derive_agent_hints
from tokenwatch.drift.types import ChangeItem, ChangeType
from tokenwatch.primitives.common import Severity


def _hooks_changed(fn: str, severity: Severity = Severity.HIGH) -> ChangeItem:
    hook = {"module_address": "0x1", "module_name": "h", "function_name": fn}
    return ChangeItem(
        type=ChangeType.HOOKS_CHANGED,
        severity=severity,
        evidence={"added": [hook], "removed": []},
    )


class TestDeriveAgentHints:
    def test_no_triggers(self):
        changes = [ChangeItem(type=ChangeType.COVERAGE_CHANGED, severity=Severity.HIGH)]
        assert derive_agent_hints(changes) is None
        assert derive_agent_hints([]) is None

    def test_owner_change(self):
        hints = derive_agent_hints(
            [ChangeItem(type=ChangeType.OWNER_CHANGED, severity=Severity.HIGH)]
        )
        assert hints.requires_multi_rpc
        assert hints.requires_tx_correlation
        assert hints.escalation_reason == "owner changed"

    def test_large_supply_only_needs_multi_rpc(self):
        hints = derive_agent_hints(
            [ChangeItem(type=ChangeType.SUPPLY_CHANGED_LARGE, severity=Severity.HIGH)]
        )
        assert hints.requires_multi_rpc
        assert not hints.requires_tx_correlation

    def test_large_supply_keeps_tx_correlation(self):
        hints = derive_agent_hints([
            ChangeItem(type=ChangeType.PRIVILEGE_ESCALATION, severity=Severity.HIGH),
            ChangeItem(type=ChangeType.SUPPLY_CHANGED_LARGE, severity=Severity.HIGH),
        ])
        assert hints.requires_tx_correlation
        assert hints.escalation_reason == "privilege escalation; large supply change"

    def test_sensitive_hook(self):
        hints = derive_agent_hints([_hooks_changed("withdraw")])
        assert hints.requires_tx_correlation
        assert hints.escalation_reason == "withdraw/transfer hook changed"

    def test_benign_or_medium_hook_change(self):
        assert derive_agent_hints([_hooks_changed("deposit")]) is None
        assert derive_agent_hints([_hooks_changed("withdraw", Severity.MEDIUM)]) is None

    def test_reasons_are_deduplicated(self):
        hints = derive_agent_hints([
            _hooks_changed("withdraw"),
            _hooks_changed("transfer"),
        ])
        assert hints.escalation_reason == "withdraw/transfer hook changed"
