"""
TokenWatch - Engine Observer

The pure engines report what they do through an injected observer instead of
logging directly. Callers pass their own implementation (metrics, audit
trail, test recorder); by default events go to structlog.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from tokenwatch.drift.types import ChangeItem
    from tokenwatch.verification.types import (
        Claim,
        Discrepancy,
        EvidenceTier,
        ProviderResult,
    )

logger = structlog.get_logger()


class EngineObserver:
    """
    Hook points called by the verification and drift engines.

    Every method is a no-op here; subclasses override what they need.
    Observers must not raise; the engines do not guard against it.
    """

    def source_settled(self, result: ProviderResult) -> None:
        return None

    def claim_built(self, claim: Claim) -> None:
        return None

    def discrepancy_recorded(self, discrepancy: Discrepancy) -> None:
        return None

    def tier_resolved(self, tier: EvidenceTier, reason: str) -> None:
        return None

    def change_emitted(self, change: ChangeItem) -> None:
        return None


class StructlogObserver(EngineObserver):
    """Writes every engine event as a structured log entry."""

    def __init__(self, **context: str) -> None:
        self._logger = logger.bind(system="tokenwatch", **context)

    def source_settled(self, result: ProviderResult) -> None:
        self._logger.info(
            "source_settled",
            source=result.source.value,
            ok=result.ok,
            error=result.error,
        )

    def claim_built(self, claim: Claim) -> None:
        self._logger.debug(
            "claim_built",
            claim_type=claim.claim_type.value,
            status=claim.status.value,
            confidence=claim.confidence.value,
            confirmations=len(claim.confirmations),
        )

    def discrepancy_recorded(self, discrepancy: Discrepancy) -> None:
        self._logger.warning(
            "discrepancy_recorded",
            claim_type=discrepancy.claim_type.value,
            sources=[s.value for s in discrepancy.sources],
            detail=discrepancy.detail,
        )

    def tier_resolved(self, tier: EvidenceTier, reason: str) -> None:
        self._logger.info("evidence_tier_resolved", tier=tier.value, reason=reason)

    def change_emitted(self, change: ChangeItem) -> None:
        self._logger.info(
            "change_emitted",
            change_type=change.type.value,
            severity=change.severity.value,
        )


_default_observer: EngineObserver | None = None


def default_observer() -> EngineObserver:
    global _default_observer
    if _default_observer is None:
        _default_observer = StructlogObserver()
    return _default_observer
