"""
TokenWatch - Canonicalizer

Normalizes fact values so that two sources reporting the same fact compare
equal regardless of formatting, key order, array order or provenance
metadata. Also hosts the normalization helpers shared by both engines and
the hashing helpers that snapshot builders use to fill the hash fields
the drift rules compare (``hashes`` and the control-surface module pins).

Nothing here raises on malformed input: values that cannot be normalized or
hashed degrade to ``None`` (or ``HashBasis.NONE``).
"""

from __future__ import annotations

import enum
import hashlib
import math
import re
from collections.abc import Iterable, Mapping
from typing import Any

import orjson
from pydantic import BaseModel

from tokenwatch.primitives.chain import HashBasis, HookTarget

# Keys that describe where/when a value was observed rather than the value itself.
PROVENANCE_KEYS: frozenset[str] = frozenset(
    {"fetchedFrom", "rawHint", "timestamp", "timestamp_iso"}
)

_DIGITS = re.compile(r"^\d+$")


# ─── Canonical Form ──────────────────────────────────────────────


def canonicalize(value: Any) -> Any:
    """
    Return the canonical form of ``value``.

    Pydantic models are dumped by alias, provenance keys are dropped, object
    keys are sorted and arrays are sorted by a stable element key.
    """
    if isinstance(value, BaseModel):
        value = value.model_dump(mode="json", by_alias=True)
    if isinstance(value, enum.Enum):
        return value.value
    if isinstance(value, Mapping):
        return {
            str(k): canonicalize(v)
            for k, v in sorted(value.items(), key=lambda kv: str(kv[0]))
            if str(k) not in PROVENANCE_KEYS
        }
    if isinstance(value, (list, tuple, set, frozenset)):
        items = [canonicalize(v) for v in value]
        return sorted(items, key=_element_sort_key)
    return value


def canonical_json(value: Any) -> str | None:
    """Canonical JSON text of ``value``, or None if it cannot be serialized."""
    try:
        return orjson.dumps(canonicalize(value), option=orjson.OPT_SORT_KEYS).decode()
    except (TypeError, ValueError):
        return None


def canonical_equal(a: Any, b: Any) -> bool:
    left = canonical_json(a)
    return left is not None and left == canonical_json(b)


def _element_sort_key(item: Any) -> tuple[str, str, str]:
    identity = ""
    code_hash = ""
    if isinstance(item, dict):
        if item.get("moduleId"):
            identity = str(item["moduleId"])
        elif "module_address" in item:
            identity = "::".join(
                str(item.get(k, "")) for k in ("module_address", "module_name", "function_name")
            )
        code_hash = str(item.get("codeHash") or "")
    return identity, code_hash, _loose_json(item)


def _loose_json(value: Any) -> str:
    try:
        return orjson.dumps(value, option=orjson.OPT_SORT_KEYS, default=repr).decode()
    except TypeError:
        return repr(value)


def stable_json(value: Any) -> str:
    """Sorted-key compact JSON (no array reordering). Used for ABI hashing."""
    return orjson.dumps(value, option=orjson.OPT_SORT_KEYS).decode()


# ─── Normalizers ─────────────────────────────────────────────────


def normalize_address(address: Any) -> str | None:
    if not isinstance(address, str) or not address.strip():
        return None
    addr = address.strip().lower()
    return addr if addr.startswith("0x") else f"0x{addr}"


def normalize_module_id(module_id: str) -> str:
    """Lowercase the address part of ``address::module``; keep the module name exact."""
    parts = module_id.split("::")
    if len(parts) != 2:
        return module_id.lower()
    address, module_name = parts
    return f"{address.lower()}::{module_name}"


def normalize_supply(value: Any) -> str | None:
    """
    Base-unit supply as a decimal string.

    Accepts digit strings, non-negative numbers (floored), and the nested
    ``{"value": ...}`` / ``{"magnitude": ...}`` / ``{"current": {"value": ...}}``
    shapes that RPC resources use. Anything else is None.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        text = value.strip()
        return str(int(text)) if _DIGITS.match(text) else None
    if isinstance(value, int):
        return str(value) if value >= 0 else None
    if isinstance(value, float):
        if not math.isfinite(value) or value < 0:
            return None
        return str(math.floor(value))
    if isinstance(value, Mapping):
        for key in ("value", "magnitude"):
            if key in value:
                return normalize_supply(value[key])
        current = value.get("current")
        if isinstance(current, Mapping):
            return normalize_supply(current.get("value"))
    return None


def parse_base_units(value: Any) -> int | None:
    normalized = normalize_supply(value)
    return int(normalized) if normalized is not None else None


def normalize_hook_modules(hooks: Iterable[HookTarget | Mapping[str, Any]]) -> list[HookTarget]:
    """Normalize hook addresses and sort by ``address::module::function``."""
    normalized: list[HookTarget] = []
    for hook in hooks:
        if not isinstance(hook, HookTarget):
            hook = HookTarget.model_validate(hook)
        address = normalize_address(hook.module_address) or hook.module_address
        normalized.append(hook.model_copy(update={"module_address": address}))
    return sorted(normalized, key=lambda h: h.key)


# ─── Hashing ─────────────────────────────────────────────────────
# The engines only compare these digests; snapshot builders compute them
# with the functions below so that equal artifacts hash equally.


def sha256_hex(data: str | bytes) -> str:
    if isinstance(data, str):
        data = data.encode()
    return hashlib.sha256(data).hexdigest()


def surface_hash_from_fn_names(fn_names: Iterable[str]) -> str:
    """
    16-hex-char hash of a function-name set (order independent).

    Fills ``hashes.moduleSurfaceHash`` values and ``hookModulesSurfaceHash``.
    """
    return sha256_hex("|".join(sorted(fn_names)))[:16]


def overall_hash_from_map(hashes: Mapping[str, str]) -> str:
    """
    16-hex-char hash over ``moduleId -> hash`` entries, sorted by module id.

    Fills ``hashes.overallSurfaceHash`` from ``moduleSurfaceHash``.
    """
    entries = [f"{k}:{v}" for k, v in sorted(hashes.items())]
    return sha256_hex("|".join(entries))[:16]


def hash_module_artifact(
    bytecode_hex: str | None = None,
    abi: Any = None,
) -> tuple[str | None, HashBasis]:
    """
    Content hash of one module: bytecode preferred, ABI as fallback.

    Produces the ``codeHash`` and ``hashBasis`` of each module pin in a
    snapshot. Returns ``(None, HashBasis.NONE)`` when neither artifact is
    usable.
    """
    if bytecode_hex:
        code = bytecode_hex[2:] if bytecode_hex[:2].lower() == "0x" else bytecode_hex
        try:
            return sha256_hex(bytes.fromhex(code.lower())), HashBasis.BYTECODE
        except ValueError:
            pass  # Malformed hex falls through to the ABI
    if abi:
        try:
            return sha256_hex(stable_json(abi)), HashBasis.ABI
        except TypeError:
            return None, HashBasis.NONE
    return None, HashBasis.NONE


def aggregate_pins_hash(pins: Iterable[Any]) -> str:
    """Aggregate hash over module pins, sorted by module id (``hashes.modulePinsHash``)."""
    entries = []
    for pin in sorted(pins, key=lambda p: p.module_id):
        basis = pin.hash_basis.value if isinstance(pin.hash_basis, enum.Enum) else pin.hash_basis
        entries.append(f"{pin.module_id}:{pin.code_hash or 'none'}:{basis}")
    return sha256_hex("|".join(entries))
