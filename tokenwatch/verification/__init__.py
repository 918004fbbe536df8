"""
TokenWatch - Verification Engine

Cross-source corroboration of one asset's on-chain facts at one moment.
"""

from tokenwatch.verification.claims import build_claim, corroborate_claims
from tokenwatch.verification.orchestrator import VerificationOrchestrator
from tokenwatch.verification.providers import (
    BehaviorSampler,
    StaticSurfaceProvider,
    SurfaceProvider,
    validate_endpoint,
)
from tokenwatch.verification.tier import resolve_evidence_tier
from tokenwatch.verification.types import (
    Claim,
    ClaimStatus,
    ClaimType,
    EvidenceSource,
    EvidenceTier,
    MiniSurface,
    SurfaceFetch,
    VerificationReport,
    VerificationTarget,
)

__all__ = [
    "BehaviorSampler",
    "Claim",
    "ClaimStatus",
    "ClaimType",
    "EvidenceSource",
    "EvidenceTier",
    "MiniSurface",
    "StaticSurfaceProvider",
    "SurfaceFetch",
    "SurfaceProvider",
    "VerificationOrchestrator",
    "VerificationReport",
    "VerificationTarget",
    "build_claim",
    "corroborate_claims",
    "resolve_evidence_tier",
    "validate_endpoint",
]
