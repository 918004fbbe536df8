"""
TokenWatch - Agent Hints

Tells a downstream agent which follow-up checks a ranked change list calls
for: re-verifying across RPCs, correlating with transactions, or both.
"""

from __future__ import annotations

from collections.abc import Sequence

from tokenwatch.drift.rules import touches_sensitive_hook
from tokenwatch.drift.types import AgentHints, ChangeItem, ChangeType
from tokenwatch.primitives.common import Severity


def derive_agent_hints(changes: Sequence[ChangeItem]) -> AgentHints | None:
    """
    Hints for an already ranked change list, or None when nothing triggers.

    A large supply change asks for multi-RPC confirmation only; it never
    clears transaction correlation requested by another change.
    """
    multi_rpc = False
    tx_correlation = False
    reasons: list[str] = []

    for change in changes:
        if change.type == ChangeType.OWNER_CHANGED:
            multi_rpc = tx_correlation = True
            reasons.append("owner changed")
        elif change.type == ChangeType.PRIVILEGE_ESCALATION:
            multi_rpc = tx_correlation = True
            reasons.append("privilege escalation")
        elif change.type == ChangeType.HOOKS_CHANGED and change.severity == Severity.HIGH:
            evidence = change.evidence or {}
            touched = list(evidence.get("added", [])) + list(evidence.get("removed", []))
            if touches_sensitive_hook(touched):
                multi_rpc = tx_correlation = True
                reasons.append("withdraw/transfer hook changed")
        elif change.type == ChangeType.SUPPLY_CHANGED_LARGE:
            multi_rpc = True
            reasons.append("large supply change")

    if not reasons:
        return None
    return AgentHints(
        requires_multi_rpc=multi_rpc,
        requires_tx_correlation=tx_correlation,
        escalation_reason="; ".join(dict.fromkeys(reasons)),
    )
