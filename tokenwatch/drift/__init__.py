"""
TokenWatch - Drift Engine

Temporal diff between two snapshots of the same entity: classified,
deterministically ranked changes plus agent hints.
"""

from tokenwatch.drift.engine import diff_snapshots
from tokenwatch.drift.hints import derive_agent_hints
from tokenwatch.drift.policy import apply_severity_policy
from tokenwatch.drift.ranking import TYPE_PRIORITY, rank_changes
from tokenwatch.drift.types import (
    AgentHints,
    ChangeItem,
    ChangeType,
    CoinSnapshot,
    DiffResult,
    FASnapshot,
    Snapshot,
    parse_snapshot,
)

__all__ = [
    "AgentHints",
    "ChangeItem",
    "ChangeType",
    "CoinSnapshot",
    "DiffResult",
    "FASnapshot",
    "Snapshot",
    "TYPE_PRIORITY",
    "apply_severity_policy",
    "derive_agent_hints",
    "diff_snapshots",
    "parse_snapshot",
    "rank_changes",
]
