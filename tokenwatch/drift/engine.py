"""
TokenWatch - Snapshot Differ

Entry point of the drift engine: run every field-group rule over a pair of
same-kind snapshots, rank the result, derive agent hints.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from tokenwatch.config import DiffConfig
from tokenwatch.drift.hints import derive_agent_hints
from tokenwatch.drift.ranking import rank_changes
from tokenwatch.drift.rules import RULES
from tokenwatch.drift.types import CoinSnapshot, DiffResult, FASnapshot, parse_snapshot
from tokenwatch.exceptions import SnapshotKindMismatch
from tokenwatch.telemetry.observer import EngineObserver, default_observer

SnapshotInput = FASnapshot | CoinSnapshot | Mapping[str, Any]


def diff_snapshots(
    prev: SnapshotInput | None,
    curr: SnapshotInput,
    config: DiffConfig | None = None,
    observer: EngineObserver | None = None,
) -> DiffResult:
    """
    Diff ``prev`` against ``curr``.

    A missing previous snapshot is a baseline and yields no changes. Raw
    mappings are parsed first. Raises SnapshotKindMismatch when the two
    snapshots are of different kinds.
    """
    config = config or DiffConfig()
    observer = observer or default_observer()
    current = parse_snapshot(curr)
    if prev is None:
        return DiffResult()
    previous = parse_snapshot(prev)
    if previous.kind != current.kind:
        raise SnapshotKindMismatch(
            f"cannot diff a {previous.kind} snapshot against a {current.kind} snapshot"
        )

    detected = [change for rule in RULES for change in rule(previous, current, config)]
    changes = rank_changes(detected)
    for change in changes:
        observer.change_emitted(change)
    return DiffResult(changes=changes, agent_hints=derive_agent_hints(changes))
