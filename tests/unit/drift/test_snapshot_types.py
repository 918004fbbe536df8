"""
Tests for snapshot parsing and diff-result serialization.
"""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from tokenwatch.drift.types import (
    AgentHints,
    ChangeItem,
    ChangeType,
    CoinSnapshot,
    DiffResult,
    FASnapshot,
    PrivilegedFunction,
    parse_snapshot,
)
from tokenwatch.primitives.common import Severity


class TestParseSnapshot:
    def test_explicit_kind(self):
        snapshot = parse_snapshot({"kind": "fa", "identity": {"faAddress": "0xfa"}})
        assert isinstance(snapshot, FASnapshot)
        assert snapshot.identity.fa_address == "0xfa"
        assert snapshot.capabilities.has_mint_ref is False

    def test_kind_inferred_from_fa_identity(self):
        snapshot = parse_snapshot({
            "identity": {"faAddress": "0xfa", "objectOwner": "0xowner"},
            "supply": {"supplyCurrentBase": "100", "supplyMaxBase": "1000", "decimals": 6},
        })
        assert isinstance(snapshot, FASnapshot)
        assert snapshot.supply.supply_max_base == "1000"

    def test_kind_inferred_from_coin_identity(self):
        snapshot = parse_snapshot({
            "identity": {
                "coinType": "0x1::coin::C",
                "publisherAddress": "0x1",
                "moduleName": "coin",
            },
            "capabilities": {"hasMintCap": True},
        })
        assert isinstance(snapshot, CoinSnapshot)
        assert snapshot.capabilities.flags()["hasMintCap"] is True

    def test_models_pass_through(self):
        snapshot = FASnapshot(identity={"faAddress": "0xfa"})
        assert parse_snapshot(snapshot) is snapshot

    def test_unknown_kind_rejected(self):
        with pytest.raises(ValidationError):
            parse_snapshot({"kind": "nft", "identity": {"faAddress": "0xfa"}})

    def test_untagged_unrecognizable_payload_rejected(self):
        with pytest.raises(ValidationError):
            parse_snapshot({"identity": {}})

    def test_kind_mismatched_identity_rejected(self):
        with pytest.raises(ValidationError):
            parse_snapshot({"kind": "coin", "identity": {"faAddress": "0xfa"}})

    def test_privileged_function_key(self):
        fn = PrivilegedFunction.model_validate(
            {"class": "MINT", "fnName": "mint", "moduleId": "0x1::m"}
        )
        assert fn.privilege_class == "MINT"
        assert fn.key == "0x1::m::mint"


class TestDiffResult:
    def test_empty_result(self):
        result = DiffResult()
        assert result.changed is False
        assert result.to_dict() == {"changes": [], "changed": False}

    def test_serialization_uses_stable_names(self):
        result = DiffResult(
            changes=[ChangeItem(
                type=ChangeType.OWNER_CHANGED, severity=Severity.HIGH, before="0xa", after="0xb"
            )],
            agent_hints=AgentHints(
                requires_multi_rpc=True,
                requires_tx_correlation=True,
                escalation_reason="owner changed",
            ),
        )
        data = result.to_dict()
        assert data["changed"] is True
        assert data["changes"] == [
            {"type": "OWNER_CHANGED", "severity": "high", "before": "0xa", "after": "0xb"}
        ]
        assert data["agentHints"] == {
            "requiresMultiRpc": True,
            "requiresTxCorrelation": True,
            "escalationReason": "owner changed",
        }
