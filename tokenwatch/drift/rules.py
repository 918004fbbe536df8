"""
TokenWatch - Drift Rules

One pure function per snapshot field group:

    rule(prev, curr, config) -> list[ChangeItem]

Both snapshots are always the same kind; kind-specific rules narrow with
isinstance and return nothing for the other kind. Rules never see each
other's output. The engine concatenates their results and ranks them.
"""

from __future__ import annotations

import re
from collections.abc import Callable, Sequence
from fractions import Fraction
from typing import Any

from tokenwatch.config import DiffConfig
from tokenwatch.drift.types import (
    ChangeItem,
    ChangeType,
    CoinSnapshot,
    FASnapshot,
    FindingSummary,
    InvariantReport,
    InvariantStatus,
    PrivilegeReport,
)
from tokenwatch.primitives.chain import HookTarget, ModuleHashPin
from tokenwatch.primitives.common import Severity
from tokenwatch.verification.canonical import (
    canonical_json,
    normalize_address,
    normalize_hook_modules,
    parse_base_units,
)
from tokenwatch.verification.claims import derive_privilege_escalation

AnySnapshot = FASnapshot | CoinSnapshot
Rule = Callable[[AnySnapshot, AnySnapshot, DiffConfig], list[ChangeItem]]

# Flags whose appearance makes a capability change high severity
HIGH_CAPABILITY_FLAGS: frozenset[str] = frozenset(
    {"hasMintRef", "hasBurnRef", "hasMintCap", "hasFreezeCap"}
)

MINT_LIKE_FUNCTION = re.compile(r"mint|issue|faucet|set_admin|set_minter", re.IGNORECASE)

_SENSITIVE_HOOK_WORDS = ("withdraw", "transfer")


def _dump(value: Any) -> Any:
    if isinstance(value, list):
        return [_dump(v) for v in value]
    if hasattr(value, "model_dump"):
        return value.model_dump(mode="json", by_alias=True)
    return value


def touches_sensitive_hook(hooks: Sequence[Any]) -> bool:
    """True if any hook's function name mentions withdraw or transfer."""
    for hook in hooks:
        name = hook.function_name if isinstance(hook, HookTarget) else hook.get("function_name")
        name = (name or "").lower()
        if any(word in name for word in _SENSITIVE_HOOK_WORDS):
            return True
    return False


# ─── Supply ──────────────────────────────────────────────────────


def _same_units(before: str | None, after: str | None) -> bool:
    """Integer comparison when both sides parse, raw comparison otherwise."""
    prev_units, curr_units = parse_base_units(before), parse_base_units(after)
    if prev_units is not None and curr_units is not None:
        return prev_units == curr_units
    return before == after


def diff_supply(prev: AnySnapshot, curr: AnySnapshot, config: DiffConfig) -> list[ChangeItem]:
    if config.ignore_supply:
        return []
    before = prev.supply.supply_current_base
    after = curr.supply.supply_current_base
    if _same_units(before, after):
        return []
    prev_units, curr_units = parse_base_units(before), parse_base_units(after)

    change_type, severity = ChangeType.SUPPLY_CHANGED_SMALL, Severity.INFO
    delta_abs: int | None = None
    delta_pct: Fraction | None = None
    if prev_units is not None and curr_units is not None:
        delta_abs = abs(curr_units - prev_units)
        delta_pct = Fraction(delta_abs, max(prev_units, 1))
        threshold = Fraction(str(config.large_supply_pct_threshold))
        if delta_pct > threshold or delta_abs > config.large_supply_delta_threshold:
            change_type, severity = ChangeType.SUPPLY_CHANGED_LARGE, Severity.HIGH

    return [
        ChangeItem(
            type=change_type,
            severity=severity,
            before=before,
            after=after,
            evidence={
                "formatted_before": prev.supply.supply_current_formatted,
                "formatted_after": curr.supply.supply_current_formatted,
                "decimals": curr.supply.decimals,
                "delta_abs": str(delta_abs) if delta_abs is not None else None,
                "delta_pct": float(delta_pct) if delta_pct is not None else None,
            },
        )
    ]


def diff_max_supply(prev: AnySnapshot, curr: AnySnapshot, config: DiffConfig) -> list[ChangeItem]:
    if config.ignore_supply:
        return []
    if not isinstance(prev, FASnapshot) or not isinstance(curr, FASnapshot):
        return []
    before, after = prev.supply.supply_max_base, curr.supply.supply_max_base
    if _same_units(before, after):
        return []
    return [ChangeItem(type=ChangeType.SUPPLY_MAX_CHANGED, severity=Severity.CRITICAL,
                       before=before, after=after)]


# ─── Identity & Capabilities ─────────────────────────────────────


def diff_owner(prev: AnySnapshot, curr: AnySnapshot, config: DiffConfig) -> list[ChangeItem]:
    if not isinstance(prev, FASnapshot) or not isinstance(curr, FASnapshot):
        return []
    before, after = prev.identity.object_owner, curr.identity.object_owner
    if normalize_address(before) == normalize_address(after):
        return []
    return [ChangeItem(type=ChangeType.OWNER_CHANGED, severity=Severity.HIGH,
                       before=before, after=after)]


def diff_capabilities(
    prev: AnySnapshot, curr: AnySnapshot, config: DiffConfig
) -> list[ChangeItem]:
    before = prev.capabilities.flags()
    after = curr.capabilities.flags()
    if before == after:
        return []

    changed_fields = [name for name in after if before.get(name) != after[name]]
    appeared = [name for name in changed_fields if after[name] and not before.get(name)]
    severity = Severity.HIGH if HIGH_CAPABILITY_FLAGS.intersection(appeared) else Severity.MEDIUM

    changes = [
        ChangeItem(
            type=ChangeType.CAPABILITIES_CHANGED,
            severity=severity,
            before=before,
            after=after,
            evidence={"changed_fields": changed_fields, "appeared": appeared},
        )
    ]
    escalated = derive_privilege_escalation(before, after)
    if escalated:
        changes.append(
            ChangeItem(
                type=ChangeType.PRIVILEGE_ESCALATION,
                severity=Severity.HIGH,
                before=False,
                after=True,
                evidence={"appeared": escalated},
            )
        )
    return changes


# ─── Control Surface ─────────────────────────────────────────────


def diff_hooks(prev: AnySnapshot, curr: AnySnapshot, config: DiffConfig) -> list[ChangeItem]:
    if not isinstance(prev, FASnapshot) or not isinstance(curr, FASnapshot):
        return []
    prev_hooks = normalize_hook_modules(prev.control_surface.hook_modules)
    curr_hooks = normalize_hook_modules(curr.control_surface.hook_modules)
    prev_keys = {h.key for h in prev_hooks}
    curr_keys = {h.key for h in curr_hooks}
    if prev_keys == curr_keys:
        return []

    added = [h for h in curr_hooks if h.key not in prev_keys]
    removed = [h for h in prev_hooks if h.key not in curr_keys]
    severity = Severity.HIGH if touches_sensitive_hook(added + removed) else Severity.MEDIUM
    return [
        ChangeItem(
            type=ChangeType.HOOKS_CHANGED,
            severity=severity,
            before=_dump(prev.control_surface.hook_modules),
            after=_dump(curr.control_surface.hook_modules),
            evidence={"added": _dump(added), "removed": _dump(removed)},
        )
    ]


def _pin_changes(
    change_type: ChangeType,
    prev_pins: list[ModuleHashPin],
    curr_pins: list[ModuleHashPin],
    prev_aggregate: str | None,
    curr_aggregate: str | None,
) -> list[ChangeItem]:
    if not prev_pins and not curr_pins:
        return []

    previous = {p.module_id: p for p in prev_pins}
    current_ids = {p.module_id for p in curr_pins}
    changed: list[dict[str, Any]] = []
    for pin in curr_pins:
        old = previous.get(pin.module_id)
        if old is not None and old.code_hash != pin.code_hash:
            changed.append({"moduleId": pin.module_id, "prevHash": old.code_hash,
                            "currHash": pin.code_hash, "role": pin.role})
    for pin in prev_pins:
        if pin.module_id not in current_ids and pin.code_hash is not None:
            changed.append({"moduleId": pin.module_id, "prevHash": pin.code_hash,
                            "currHash": None, "role": pin.role})

    # Aggregate drift with identical per-pin hashes points at a hashing inconsistency
    aggregate_changed = (
        prev_aggregate is not None
        and curr_aggregate is not None
        and prev_aggregate != curr_aggregate
    )
    if not changed and not aggregate_changed:
        return []
    return [
        ChangeItem(
            type=change_type,
            severity=Severity.HIGH,
            before=_dump(prev_pins),
            after=_dump(curr_pins),
            evidence={
                "changed_modules": changed,
                "aggregate_changed": aggregate_changed,
                "prev_aggregate_hash": prev_aggregate,
                "curr_aggregate_hash": curr_aggregate,
            },
        )
    ]


def diff_code_pins(prev: AnySnapshot, curr: AnySnapshot, config: DiffConfig) -> list[ChangeItem]:
    if isinstance(prev, FASnapshot) and isinstance(curr, FASnapshot):
        return _pin_changes(
            ChangeType.HOOK_MODULE_CODE_CHANGED,
            prev.control_surface.hook_module_pins,
            curr.control_surface.hook_module_pins,
            prev.hashes.hook_modules_surface_hash,
            curr.hashes.hook_modules_surface_hash,
        )
    if isinstance(prev, CoinSnapshot) and isinstance(curr, CoinSnapshot):
        return _pin_changes(
            ChangeType.COIN_MODULE_CODE_CHANGED,
            prev.control_surface.module_pins,
            curr.control_surface.module_pins,
            prev.hashes.module_pins_hash,
            curr.hashes.module_pins_hash,
        )
    return []


def diff_relevant_modules(
    prev: AnySnapshot, curr: AnySnapshot, config: DiffConfig
) -> list[ChangeItem]:
    prev_set = set(prev.control_surface.relevant_modules)
    curr_set = set(curr.control_surface.relevant_modules)
    added = [m for m in dict.fromkeys(curr.control_surface.relevant_modules) if m not in prev_set]
    removed = [m for m in dict.fromkeys(prev.control_surface.relevant_modules) if m not in curr_set]

    changes: list[ChangeItem] = []
    if added:
        changes.append(ChangeItem(
            type=ChangeType.MODULE_ADDED,
            severity=Severity.HIGH,
            before=None,
            after=added,
            evidence={"modules": added, "count": len(added)},
        ))
    if removed:
        changes.append(ChangeItem(
            type=ChangeType.MODULE_REMOVED,
            severity=Severity.HIGH,
            before=removed,
            after=None,
            evidence={"modules": removed, "count": len(removed)},
        ))
    return changes


def diff_abi_surface(
    prev: AnySnapshot, curr: AnySnapshot, config: DiffConfig
) -> list[ChangeItem]:
    """
    Compare per-module entry/exposed function names directly; hashes are
    reported but never trusted alone. Newly added mint-like names set the
    ``hasMintLikeFunction`` marker; severity stays high.
    """
    prev_modules = prev.control_surface.modules
    curr_modules = curr.control_surface.modules
    prev_hashes = prev.hashes.module_surface_hash
    curr_hashes = curr.hashes.module_surface_hash

    module_changes: list[dict[str, Any]] = []
    for module_id in sorted(prev_modules.keys() | curr_modules.keys()):
        old, new = prev_modules.get(module_id), curr_modules.get(module_id)
        old_entry = set(old.entry_fn_names) if old else set()
        new_entry = set(new.entry_fn_names) if new else set()
        old_exposed = set(old.exposed_fn_names) if old else set()
        new_exposed = set(new.exposed_fn_names) if new else set()
        if old is not None and new is not None:
            if old_entry == new_entry and old_exposed == new_exposed:
                continue
        module_changes.append({
            "moduleId": module_id,
            "addedEntryFns": sorted(new_entry - old_entry),
            "removedEntryFns": sorted(old_entry - new_entry),
            "addedExposedFns": sorted(new_exposed - old_exposed),
            "removedExposedFns": sorted(old_exposed - new_exposed),
            "beforeModuleHash": prev_hashes.get(module_id),
            "afterModuleHash": curr_hashes.get(module_id),
        })

    overall_changed = prev.hashes.overall_surface_hash != curr.hashes.overall_surface_hash
    if not module_changes and not overall_changed:
        return []

    has_mint_like = any(
        MINT_LIKE_FUNCTION.search(fn)
        for change in module_changes
        for fn in change["addedEntryFns"] + change["addedExposedFns"]
    )
    return [
        ChangeItem(
            type=ChangeType.ABI_SURFACE_CHANGED,
            severity=Severity.HIGH,
            before={"overallSurfaceHash": prev.hashes.overall_surface_hash,
                    "moduleSurfaceHash": dict(prev_hashes)},
            after={"overallSurfaceHash": curr.hashes.overall_surface_hash,
                   "moduleSurfaceHash": dict(curr_hashes)},
            evidence={
                "moduleChanges": module_changes,
                "modulesAdded": sorted(curr_modules.keys() - prev_modules.keys()),
                "modulesRemoved": sorted(prev_modules.keys() - curr_modules.keys()),
                "hasMintLikeFunction": has_mint_like,
            },
        )
    ]


# ─── Scan Results ────────────────────────────────────────────────


def diff_coverage(prev: AnySnapshot, curr: AnySnapshot, config: DiffConfig) -> list[ChangeItem]:
    before, after = prev.coverage.coverage, curr.coverage.coverage
    if before == after:
        return []
    degraded = before == "complete" and after == "partial"
    return [
        ChangeItem(
            type=ChangeType.COVERAGE_CHANGED,
            severity=Severity.HIGH if degraded else Severity.INFO,
            before=before,
            after=after,
            evidence={"reasons_before": prev.coverage.reasons,
                      "reasons_after": curr.coverage.reasons},
        )
    ]


def _peak_by_id(findings: Sequence[FindingSummary]) -> dict[str, FindingSummary]:
    """Highest-severity entry per finding id, in first-appearance order."""
    peaks: dict[str, FindingSummary] = {}
    for finding in findings:
        held = peaks.get(finding.id)
        if held is None or finding.severity.ordinal > held.severity.ordinal:
            peaks[finding.id] = finding
    return peaks


def diff_findings(prev: AnySnapshot, curr: AnySnapshot, config: DiffConfig) -> list[ChangeItem]:
    # A rule may report the same id more than once (one entry per function),
    # so ids are compared by their highest severity.
    prev_by_id = _peak_by_id(prev.findings)
    curr_by_id = _peak_by_id(curr.findings)
    changes: list[ChangeItem] = []

    for finding_id, finding in curr_by_id.items():
        if finding_id not in prev_by_id:
            changes.append(ChangeItem(
                type=ChangeType.FINDING_ADDED,
                severity=finding.severity,
                before=None,
                after=finding_id,
                evidence={"id": finding_id, "title": finding.title,
                          "severity": finding.severity.value},
            ))
    for finding_id, finding in prev_by_id.items():
        if finding_id not in curr_by_id:
            changes.append(ChangeItem(
                type=ChangeType.FINDING_REMOVED,
                severity=Severity.INFO,
                before=finding_id,
                after=None,
                evidence={"id": finding_id, "title": finding.title},
            ))

    prev_keys = {(f.id, f.severity) for f in prev.findings}
    curr_keys = {(f.id, f.severity) for f in curr.findings}
    new_findings = [f for f in curr.findings if (f.id, f.severity) not in prev_keys]
    gone_findings = [f for f in prev.findings if (f.id, f.severity) not in curr_keys]
    escalations = [
        {"id": finding_id, "before": prev_by_id[finding_id].severity.value,
         "after": finding.severity.value}
        for finding_id, finding in curr_by_id.items()
        if finding_id in prev_by_id
        and finding.severity.ordinal > prev_by_id[finding_id].severity.ordinal
    ]
    if not new_findings and not gone_findings and not escalations:
        return changes

    max_severity = Severity.max(Severity.INFO, *(f.severity for f in new_findings))
    if escalations:
        max_severity = Severity.max(max_severity, Severity.HIGH)
    changes.append(ChangeItem(
        type=ChangeType.FINDINGS_CHANGED,
        severity=max_severity,
        before=_dump(prev.findings),
        after=_dump(curr.findings),
        evidence={
            "newFindings": _dump(new_findings),
            "removedFindings": _dump(gone_findings),
            "severityEscalations": escalations,
            "maxNewSeverity": max_severity.value,
        },
    ))
    return changes


def _privilege_keys(report: PrivilegeReport | None) -> dict[str, set[str]]:
    if report is None:
        return {}
    return {cls: {fn.key for fn in fns} for cls, fns in report.by_class.items()}


def diff_privileges(prev: AnySnapshot, curr: AnySnapshot, config: DiffConfig) -> list[ChangeItem]:
    before, after = prev.privileges, curr.privileges
    if before is None and after is None:
        return []
    if canonical_json(before) == canonical_json(after):
        return []

    prev_keys, curr_keys = _privilege_keys(before), _privilege_keys(after)
    added: dict[str, list[str]] = {}
    removed: dict[str, list[str]] = {}
    for cls in sorted(prev_keys.keys() | curr_keys.keys()):
        new = sorted(curr_keys.get(cls, set()) - prev_keys.get(cls, set()))
        gone = sorted(prev_keys.get(cls, set()) - curr_keys.get(cls, set()))
        if new:
            added[cls] = new
        if gone:
            removed[cls] = gone

    opaque_before = before.has_opaque_control if before else False
    opaque_after = after.has_opaque_control if after else False
    return [
        ChangeItem(
            type=ChangeType.PRIVILEGES_CHANGED,
            severity=Severity.HIGH,
            before=_dump(before),
            after=_dump(after),
            evidence={
                "addedPrivileges": added,
                "removedPrivileges": removed,
                "opaqueControlChanged": opaque_before != opaque_after,
                "opaqueControlBefore": opaque_before,
                "opaqueControlAfter": opaque_after,
            },
        )
    ]


def diff_invariants(prev: AnySnapshot, curr: AnySnapshot, config: DiffConfig) -> list[ChangeItem]:
    before, after = prev.invariants, curr.invariants
    if before is None and after is None:
        return []
    if canonical_json(before) == canonical_json(after):
        return []

    prev_items = {i.id: i for i in before.items} if before else {}
    curr_items = {i.id: i for i in after.items} if after else {}
    transitions: list[dict[str, str]] = []
    new_violations: list[str] = []
    resolved: list[str] = []

    for item_id, item in curr_items.items():
        old = prev_items.get(item_id)
        if old is not None and old.status != item.status:
            transitions.append(
                {"id": item_id, "before": old.status.value, "after": item.status.value}
            )
            if old.status == InvariantStatus.VIOLATION:
                resolved.append(item_id)
        if item.status == InvariantStatus.VIOLATION and (
            old is None or old.status != InvariantStatus.VIOLATION
        ):
            new_violations.append(item_id)
    for item_id, old in prev_items.items():
        if item_id not in curr_items and old.status == InvariantStatus.VIOLATION:
            resolved.append(item_id)

    overall_changed = before is None or after is None or before.overall != after.overall
    if new_violations:
        severity = Severity.CRITICAL
    elif overall_changed:
        severity = Severity.HIGH
    else:
        severity = Severity.MEDIUM

    return [
        ChangeItem(
            type=ChangeType.INVARIANTS_CHANGED,
            severity=severity,
            before=_dump(before),
            after=_dump(after),
            evidence={
                "statusEscalations": transitions,
                "newViolations": new_violations,
                "resolvedViolations": resolved,
                "overallBefore": _overall(before),
                "overallAfter": _overall(after),
            },
        )
    ]


def _overall(report: InvariantReport | None) -> str:
    return report.overall.value if report is not None else InvariantStatus.UNKNOWN.value


# Evaluation order does not affect the result: the engine ranks afterwards
RULES: tuple[Rule, ...] = (
    diff_supply,
    diff_max_supply,
    diff_owner,
    diff_capabilities,
    diff_hooks,
    diff_code_pins,
    diff_relevant_modules,
    diff_abi_surface,
    diff_coverage,
    diff_findings,
    diff_privileges,
    diff_invariants,
)
