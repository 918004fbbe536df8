"""
End-to-end tests for the snapshot differ.
"""

from __future__ import annotations

from typing import Any

import pytest

from tokenwatch.config import DiffConfig
from tokenwatch.drift.engine import diff_snapshots
from tokenwatch.drift.ranking import rank_changes
from tokenwatch.drift.types import ChangeType
from tokenwatch.exceptions import SnapshotKindMismatch
from tokenwatch.primitives.common import Severity
from tokenwatch.telemetry.observer import EngineObserver


def _fa_snapshot(**overrides: Any) -> dict[str, Any]:
    snapshot: dict[str, Any] = {
        "kind": "fa",
        "meta": {"schema_version": "1", "timestamp_iso": "2025-01-01T00:00:00Z"},
        "identity": {"faAddress": "0xfa", "objectOwner": "0xA"},
        "supply": {"supplyCurrentBase": "10000000", "supplyMaxBase": "100000000", "decimals": 6},
        "capabilities": {"hasMintRef": False, "hasBurnRef": True},
        "control_surface": {
            "relevantModules": ["0xhook::hooks"],
            "hookModules": [
                {"module_address": "0xhook", "module_name": "hooks", "function_name": "deposit"},
                {"module_address": "0xhook", "module_name": "hooks", "function_name": "withdraw"},
            ],
        },
        "findings": [{"id": "F1", "severity": "low"}],
    }
    for key, value in overrides.items():
        if isinstance(value, dict) and isinstance(snapshot.get(key), dict):
            snapshot[key] = {**snapshot[key], **value}
        else:
            snapshot[key] = value
    return snapshot


def _coin_snapshot(**overrides: Any) -> dict[str, Any]:
    snapshot: dict[str, Any] = {
        "kind": "coin",
        "identity": {"coinType": "0x1::c::C", "publisherAddress": "0x1", "moduleName": "c"},
        "supply": {"supplyCurrentBase": "1000000000"},
    }
    snapshot.update(overrides)
    return snapshot


class ChangeRecorder(EngineObserver):
    def __init__(self) -> None:
        self.changes: list = []

    def change_emitted(self, change) -> None:
        self.changes.append(change)


class TestReflexivity:
    @pytest.mark.parametrize("snapshot", [_fa_snapshot(), _coin_snapshot()])
    def test_identical_snapshots(self, snapshot):
        result = diff_snapshots(snapshot, snapshot)
        assert result.changed is False
        assert result.changes == []
        assert result.to_dict() == {"changes": [], "changed": False}

    def test_repeated_finding_ids(self):
        snapshot = _coin_snapshot(findings=[
            {"id": "SVSSA-MOVE-001", "severity": "high"},
            {"id": "SVSSA-MOVE-001", "severity": "medium"},
        ])
        result = diff_snapshots(snapshot, snapshot)
        assert result.changed is False
        assert result.changes == []

    def test_timestamp_only_difference(self):
        later = _fa_snapshot(meta={"timestamp_iso": "2025-06-01T00:00:00Z"})
        assert not diff_snapshots(_fa_snapshot(), later).changed


class TestScenarios:
    def test_large_supply_increase(self):
        result = diff_snapshots(
            _fa_snapshot(), _fa_snapshot(supply={"supplyCurrentBase": "12000000"})
        )
        [change] = result.changes
        assert change.type == ChangeType.SUPPLY_CHANGED_LARGE
        assert change.severity == Severity.HIGH
        assert result.agent_hints.requires_multi_rpc

    def test_small_supply_increase(self):
        result = diff_snapshots(
            _coin_snapshot(), _coin_snapshot(supply={"supplyCurrentBase": "1000000001"})
        )
        [change] = result.changes
        assert change.type == ChangeType.SUPPLY_CHANGED_SMALL
        assert change.severity == Severity.INFO
        assert result.agent_hints is None
        assert "agentHints" not in result.to_dict()

    def test_owner_change(self):
        result = diff_snapshots(
            _fa_snapshot(), _fa_snapshot(identity={"objectOwner": "0xB"})
        )
        [change] = result.changes
        assert change.type == ChangeType.OWNER_CHANGED
        assert change.severity == Severity.HIGH
        assert result.agent_hints.requires_multi_rpc is True
        assert result.agent_hints.requires_tx_correlation is True

    def test_mint_ref_appears(self):
        result = diff_snapshots(
            _fa_snapshot(), _fa_snapshot(capabilities={"hasMintRef": True})
        )
        by_type = {c.type: c for c in result.changes}
        assert set(by_type) == {ChangeType.CAPABILITIES_CHANGED, ChangeType.PRIVILEGE_ESCALATION}
        assert by_type[ChangeType.CAPABILITIES_CHANGED].severity == Severity.HIGH
        escalation = by_type[ChangeType.PRIVILEGE_ESCALATION]
        assert escalation.severity == Severity.HIGH
        assert escalation.evidence["appeared"] == ["hasMintRef"]
        # Escalation ranks ahead of the capability change at equal severity
        assert result.changes[0].type == ChangeType.PRIVILEGE_ESCALATION

    def test_hook_order_is_irrelevant(self):
        prev = _fa_snapshot()
        hooks = list(reversed(prev["control_surface"]["hookModules"]))
        curr = _fa_snapshot(control_surface={"hookModules": hooks})
        result = diff_snapshots(prev, curr)
        assert ChangeType.HOOKS_CHANGED not in {c.type for c in result.changes}
        assert not result.changed


class TestOrdering:
    def test_output_is_ranked(self):
        curr = _fa_snapshot(
            identity={"objectOwner": "0xB"},
            supply={"supplyCurrentBase": "10000001", "supplyMaxBase": "200000000"},
            capabilities={"hasMintRef": True},
            coverage={"coverage": "partial"},
            findings=[{"id": "F2", "severity": "medium"}],
        )
        result = diff_snapshots(_fa_snapshot(), curr)
        assert rank_changes(result.changes) == result.changes
        assert result.changes[0].type == ChangeType.SUPPLY_MAX_CHANGED
        assert result.changes[-1].severity == Severity.INFO

    def test_observer_sees_ranked_changes(self):
        recorder = ChangeRecorder()
        curr = _fa_snapshot(identity={"objectOwner": "0xB"}, capabilities={"hasMintRef": True})
        result = diff_snapshots(_fa_snapshot(), curr, observer=recorder)
        assert recorder.changes == result.changes


class TestEdgeCases:
    def test_no_previous_snapshot(self):
        result = diff_snapshots(None, _fa_snapshot())
        assert result.changed is False
        assert result.agent_hints is None

    def test_kind_mismatch(self):
        with pytest.raises(SnapshotKindMismatch):
            diff_snapshots(_fa_snapshot(), _coin_snapshot())

    def test_untagged_snapshots_are_inferred(self):
        prev = _fa_snapshot()
        curr = _fa_snapshot(identity={"objectOwner": "0xB"})
        del prev["kind"], curr["kind"]
        result = diff_snapshots(prev, curr)
        assert [c.type for c in result.changes] == [ChangeType.OWNER_CHANGED]

    def test_ignore_supply(self):
        curr = _fa_snapshot(supply={"supplyCurrentBase": "99999999999"})
        result = diff_snapshots(_fa_snapshot(), curr, config=DiffConfig(ignore_supply=True))
        assert not result.changed
