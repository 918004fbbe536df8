"""
TokenWatch - Common Primitives

Shared enums, base classes, and utilities used by the verification and
drift engines.
"""

from __future__ import annotations

import enum
from datetime import datetime, timezone

from pydantic import BaseModel
from ulid import ULID


def new_id() -> str:
    """Generate a new ULID string. Time-sortable, globally unique."""
    return str(ULID())


def utc_now() -> datetime:
    """Current UTC time, timezone-aware."""
    return datetime.now(timezone.utc)


def utc_now_iso() -> str:
    return utc_now().isoformat().replace("+00:00", "Z")


# ─── Enums ────────────────────────────────────────────────────────


class TargetKind(str, enum.Enum):
    FA = "fa"        # Fungible Asset object
    COIN = "coin"    # Legacy coin type


class Severity(str, enum.Enum):
    INFO = "info"
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def ordinal(self) -> int:
        """Escalation order: higher is more severe."""
        return _SEVERITY_ORDINAL[self]

    @property
    def rank(self) -> int:
        """Output order: lower sorts first."""
        return _SEVERITY_RANK[self]

    @classmethod
    def max(cls, *severities: Severity) -> Severity:
        return max(severities, key=lambda s: s.ordinal)


_SEVERITY_ORDINAL: dict[Severity, int] = {
    Severity.INFO: 1,
    Severity.LOW: 2,
    Severity.MEDIUM: 3,
    Severity.HIGH: 4,
    Severity.CRITICAL: 5,
}

_SEVERITY_RANK: dict[Severity, int] = {
    Severity.CRITICAL: 1,
    Severity.HIGH: 2,
    Severity.MEDIUM: 3,
    Severity.LOW: 4,
    Severity.INFO: 5,
}


# ─── Base Models ──────────────────────────────────────────────────


class TWBaseModel(BaseModel):
    """Base model for all TokenWatch primitives."""

    model_config = {"populate_by_name": True, "from_attributes": True}


class FrozenModel(TWBaseModel):
    """Immutable record. Constructed once, never mutated."""

    model_config = {"populate_by_name": True, "from_attributes": True, "frozen": True}
