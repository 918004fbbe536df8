"""
TokenWatch - Verification Orchestrator

Drives one verification run:

  1. Validate every source endpoint. A malformed or placeholder endpoint
     short-circuits the run into an INVALID_ARGS report with zero fetches.
  2. Fetch every source concurrently (bounded parallelism, per-source
     timeout, bounded retry with exponential backoff). A failing source is
     recorded as a failed ProviderResult and never aborts its siblings.
  3. Once every source has settled, corroborate claims, compute FA indexer
     parity, resolve the evidence tier, optionally sample behavior, and
     synthesize risk.

If the run itself is cancelled or exceeds its overall deadline, in-flight
fetches are cancelled and no partial report is produced.
"""

from __future__ import annotations

import asyncio
from collections.abc import Mapping, Sequence

import structlog

from tokenwatch.config import VerifyConfig
from tokenwatch.exceptions import InvalidEndpointError, ProviderError, VerificationTimeoutError
from tokenwatch.primitives.common import TargetKind
from tokenwatch.telemetry.observer import EngineObserver, default_observer
from tokenwatch.verification.claims import corroborate_claims
from tokenwatch.verification.parity import compute_indexer_parity, not_requested
from tokenwatch.verification.providers import BehaviorSampler, SurfaceProvider, validate_endpoint
from tokenwatch.verification.risk import synthesize_risk
from tokenwatch.verification.tier import demote_for_indexer, resolve_evidence_tier
from tokenwatch.verification.types import (
    VERDICT_CONFLICT,
    VERDICT_INVALID_ARGS,
    BehaviorEvidence,
    BehaviorStatus,
    EvidenceSource,
    EvidenceTier,
    IndexerParityRecord,
    MiniSurface,
    ProviderResult,
    ReportStatus,
    RiskLevel,
    RiskSynthesis,
    SurfaceFetch,
    TierImpact,
    VerificationReport,
    VerificationTarget,
)

logger = structlog.get_logger()

_Outcome = tuple[ProviderResult, SurfaceFetch | None]


class VerificationOrchestrator:
    """
    Runs one verification pass per call. Holds no per-run state, so a single
    instance can serve concurrent ``verify`` calls.
    """

    def __init__(
        self,
        config: VerifyConfig | None = None,
        observer: EngineObserver | None = None,
    ) -> None:
        self._config = config or VerifyConfig()
        self._observer = observer or default_observer()
        self._logger = logger.bind(system="verification", component="orchestrator")

    async def verify(
        self,
        target: VerificationTarget,
        providers: Sequence[SurfaceProvider],
        *,
        behavior_sampler: BehaviorSampler | None = None,
        baseline_capabilities: Mapping[str, bool] | None = None,
    ) -> VerificationReport:
        sources = [p.source for p in providers]
        if len(set(sources)) != len(sources):
            raise ValueError(f"duplicate evidence sources: {sources}")
        attempted = sorted(sources, key=lambda s: s.priority)
        log = self._logger.bind(target=target.id, kind=target.kind.value)

        invalid = self._invalid_endpoints(providers)
        if invalid:
            log.warning("verification_invalid_args", sources=[s.value for s in invalid])
            return self._invalid_args_report(target, attempted, invalid)

        log.info("verification_started", sources=[s.value for s in attempted])
        try:
            outcomes = await asyncio.wait_for(
                self._fetch_all(target, providers),
                timeout=self._config.overall_timeout_s,
            )
        except TimeoutError as exc:
            log.warning("verification_timeout", timeout_s=self._config.overall_timeout_s)
            raise VerificationTimeoutError(
                f"verification of {target.id} exceeded {self._config.overall_timeout_s}s"
            ) from exc

        report = await self._build_report(
            target,
            attempted,
            outcomes,
            behavior_sampler=behavior_sampler,
            baseline_capabilities=baseline_capabilities,
        )
        log.info(
            "verification_complete",
            status=report.status.value,
            tier=report.overall_evidence_tier.value,
            succeeded=len(report.sources_succeeded),
            discrepancies=len(report.discrepancies),
        )
        return report

    # ─── Fetch ───────────────────────────────────────────────────────

    async def _fetch_all(
        self,
        target: VerificationTarget,
        providers: Sequence[SurfaceProvider],
    ) -> dict[EvidenceSource, _Outcome]:
        semaphore = asyncio.Semaphore(self._config.max_concurrency)

        async def fetch_one(provider: SurfaceProvider) -> _Outcome:
            async with semaphore:
                return await self._fetch_with_retry(target, provider)

        # Failures are captured inside fetch_one; only cancellation escapes
        results = await asyncio.gather(*(fetch_one(p) for p in providers))
        outcomes: dict[EvidenceSource, _Outcome] = {}
        for result, fetched in results:
            self._observer.source_settled(result)
            outcomes[result.source] = (result, fetched)
        return outcomes

    async def _fetch_with_retry(
        self,
        target: VerificationTarget,
        provider: SurfaceProvider,
    ) -> _Outcome:
        timeout = self._config.timeout_s
        max_retries = self._config.max_retries
        error: str | None = None
        hint: str | None = None

        for attempt in range(max_retries + 1):
            try:
                fetched = await asyncio.wait_for(provider.fetch(target), timeout=timeout)
            except TimeoutError:
                error, hint = f"timeout after {timeout}s", "source did not answer in time"
            except ProviderError as exc:
                error, hint = str(exc), exc.hint
            except Exception as exc:
                error, hint = f"{type(exc).__name__}: {exc}", None
            else:
                ok = fetched.surface is not None
                return (
                    ProviderResult(
                        source=provider.source,
                        ok=ok,
                        error=None if ok else (fetched.error or "no surface returned"),
                        hint=fetched.hint,
                        attempts=attempt + 1,
                    ),
                    fetched,
                )

            if attempt < max_retries:
                delay = self._config.base_delay_s * (2 ** attempt)
                self._logger.warning(
                    "source_fetch_retrying",
                    source=provider.source.value,
                    attempt=attempt + 1,
                    delay_s=delay,
                    error=error,
                )
                await asyncio.sleep(delay)

        self._logger.warning(
            "source_fetch_failed",
            source=provider.source.value,
            attempts=max_retries + 1,
            error=error,
        )
        return (
            ProviderResult(
                source=provider.source,
                ok=False,
                error=error,
                hint=hint,
                attempts=max_retries + 1,
            ),
            None,
        )

    # ─── Report Assembly ─────────────────────────────────────────────

    async def _build_report(
        self,
        target: VerificationTarget,
        attempted: list[EvidenceSource],
        outcomes: Mapping[EvidenceSource, _Outcome],
        *,
        behavior_sampler: BehaviorSampler | None,
        baseline_capabilities: Mapping[str, bool] | None,
    ) -> VerificationReport:
        surfaces: dict[EvidenceSource, MiniSurface | None] = {
            source: fetched.surface if fetched is not None else None
            for source, (_, fetched) in outcomes.items()
        }
        succeeded = [s for s in attempted if outcomes[s][0].ok]

        claims, discrepancies = corroborate_claims(
            target.kind,
            surfaces,
            baseline_capabilities=baseline_capabilities,
            observer=self._observer,
        )

        indexer = surfaces.get(EvidenceSource.SUPRASCAN)
        tier, reason = resolve_evidence_tier(
            succeeded,
            claims,
            indexer_usable=indexer is not None and indexer.has_facts(),
        )
        self._observer.tier_resolved(tier, reason)

        parity: IndexerParityRecord | None = None
        if target.kind == TargetKind.FA:
            parity = self._indexer_parity(surfaces, outcomes)
            if parity.evidence_tier_impact == TierImpact.MULTI_RPC:
                tier, demoted = demote_for_indexer(tier, succeeded, claims)
                if demoted is not None:
                    self._observer.tier_resolved(tier, demoted)

        behavior = None
        if behavior_sampler is not None:
            behavior = await self._sample_behavior(behavior_sampler, target, surfaces)

        status = ReportStatus.CONFLICT if discrepancies else ReportStatus.OK
        risk = synthesize_risk(
            kind=target.kind,
            tier=tier,
            status=status,
            claims=claims,
            discrepancies=discrepancies,
            indexer_parity=parity,
            behavior=behavior,
        )

        return VerificationReport(
            target=target,
            sources_attempted=attempted,
            sources_succeeded=succeeded,
            provider_results=[outcomes[s][0] for s in attempted],
            claims=claims,
            discrepancies=discrepancies,
            overall_evidence_tier=tier,
            indexer_parity=parity,
            behavior=behavior,
            risk=risk,
            status=status,
            verdict=VERDICT_CONFLICT if status == ReportStatus.CONFLICT else None,
        )

    @staticmethod
    def _indexer_parity(
        surfaces: Mapping[EvidenceSource, MiniSurface | None],
        outcomes: Mapping[EvidenceSource, _Outcome],
    ) -> IndexerParityRecord:
        if EvidenceSource.SUPRASCAN not in outcomes:
            return not_requested()
        result, fetched = outcomes[EvidenceSource.SUPRASCAN]
        return compute_indexer_parity(
            surfaces.get(EvidenceSource.RPC_V3),
            fetched,
            failure=result.error,
        )

    async def _sample_behavior(
        self,
        sampler: BehaviorSampler,
        target: VerificationTarget,
        surfaces: Mapping[EvidenceSource, MiniSurface | None],
    ) -> BehaviorEvidence:
        try:
            return await asyncio.wait_for(
                sampler.sample(target, surfaces),
                timeout=self._config.timeout_s,
            )
        except TimeoutError:
            self._logger.warning("behavior_sampling_timeout", target=target.id)
            return BehaviorEvidence(
                status=BehaviorStatus.UNAVAILABLE,
                error=f"timeout after {self._config.timeout_s}s",
            )
        except Exception as exc:
            self._logger.warning("behavior_sampling_failed", target=target.id, error=str(exc))
            return BehaviorEvidence(status=BehaviorStatus.ERROR, error=str(exc))

    # ─── Invalid Arguments ───────────────────────────────────────────

    def _invalid_endpoints(self, providers: Sequence[SurfaceProvider]) -> list[EvidenceSource]:
        invalid: list[EvidenceSource] = []
        for provider in providers:
            if provider.endpoint is None:
                continue
            try:
                validate_endpoint(provider.endpoint)
            except InvalidEndpointError as exc:
                self._logger.warning(
                    "invalid_endpoint", source=provider.source.value, reason=exc.reason
                )
                invalid.append(provider.source)
        return invalid

    def _invalid_args_report(
        self,
        target: VerificationTarget,
        attempted: list[EvidenceSource],
        invalid: list[EvidenceSource],
    ) -> VerificationReport:
        claims, _ = corroborate_claims(target.kind, {}, observer=self._observer)
        return VerificationReport(
            target=target,
            sources_attempted=attempted,
            sources_succeeded=[],
            provider_results=[
                ProviderResult(
                    source=source,
                    ok=False,
                    error="skipped",
                    hint="invalid rpc url",
                )
                for source in attempted
            ],
            claims=claims,
            discrepancies=[],
            overall_evidence_tier=EvidenceTier.VIEW_ONLY,
            indexer_parity=not_requested() if target.kind == TargetKind.FA else None,
            risk=RiskSynthesis(
                signals=[],
                risk_level=RiskLevel.ELEVATED_RISK,
                rationale=[
                    "Invalid source endpoint configuration.",
                    "Risk level: ELEVATED_RISK (insufficient data)",
                ],
            ),
            status=ReportStatus.INVALID_ARGS,
            verdict=VERDICT_INVALID_ARGS,
        )
