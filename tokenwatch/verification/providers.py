"""
TokenWatch - Evidence Provider Interfaces

The engine never talks to the network itself. RPC and indexer adapters
implement SurfaceProvider and hand back already-parsed surfaces; a
BehaviorSampler may add transaction-behavior evidence.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Mapping
from typing import TYPE_CHECKING
from urllib.parse import urlparse

from tokenwatch.exceptions import InvalidEndpointError
from tokenwatch.verification.types import (
    BehaviorEvidence,
    EvidenceSource,
    MiniSurface,
    SurfaceFetch,
    VerificationTarget,
)

if TYPE_CHECKING:
    from tokenwatch.config import EndpointsConfig


def validate_endpoint(url: str | None) -> str:
    """
    Reject empty, placeholder (``<...>``) and non-http(s) endpoints.

    Returns the stripped URL. Raises InvalidEndpointError.
    """
    if url is None or not url.strip():
        raise InvalidEndpointError(url or "", "empty rpc url")
    url = url.strip()
    if "<" in url or ">" in url:
        raise InvalidEndpointError(url, "placeholder rpc url")
    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https") or not parsed.hostname:
        raise InvalidEndpointError(url)
    return url


class SurfaceProvider(ABC):
    """One evidence source for one verification target."""

    source: EvidenceSource
    endpoint: str | None = None  # Validated before any fetch when set

    @abstractmethod
    async def fetch(self, target: VerificationTarget) -> SurfaceFetch:
        """
        Extract the per-source surface for ``target``.

        Return ``SurfaceFetch(surface=None, error=...)`` for definitive
        answers such as "target unknown to this source". Raise ProviderError
        (or let timeouts/transport errors escape) for failures worth retrying.
        """
        ...


class StaticSurfaceProvider(SurfaceProvider):
    """Serves a surface the caller already fetched and parsed."""

    def __init__(
        self,
        source: EvidenceSource,
        result: SurfaceFetch | MiniSurface | None,
        endpoint: str | None = None,
    ) -> None:
        self.source = source
        self.endpoint = endpoint
        if isinstance(result, MiniSurface):
            result = SurfaceFetch(surface=result)
        self._result = result or SurfaceFetch(error="no surface supplied")

    async def fetch(self, target: VerificationTarget) -> SurfaceFetch:
        return self._result


class BehaviorSampler(ABC):
    """Samples recent transactions and checks invoked entry points against the ABI."""

    @abstractmethod
    async def sample(
        self,
        target: VerificationTarget,
        surfaces: Mapping[EvidenceSource, MiniSurface | None],
    ) -> BehaviorEvidence:
        ...


def endpoints_for(config: EndpointsConfig) -> dict[EvidenceSource, str]:
    """Map configured endpoints to the sources that use them. Unset ones are skipped."""
    endpoints: dict[EvidenceSource, str] = {}
    if config.rpc_url:
        endpoints[EvidenceSource.RPC_V3] = config.rpc_url
        endpoints[EvidenceSource.RPC_V1] = config.rpc_url
    if config.rpc_url_secondary:
        endpoints[EvidenceSource.RPC_V3_2] = config.rpc_url_secondary
    if config.indexer_url:
        endpoints[EvidenceSource.SUPRASCAN] = config.indexer_url
    return endpoints
