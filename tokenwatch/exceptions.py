"""
TokenWatch - Error Hierarchy

Expected partial-evidence conditions (a source down, an indexer that does not
know the asset, one RPC disagreeing) are never raised: they are reported as
failed ProviderResults and UNAVAILABLE/PARTIAL/CONFLICT claims. Only
configuration errors, provider transport errors (caught per source) and
programmer errors surface as exceptions.
"""

from __future__ import annotations


class TokenWatchError(RuntimeError):
    """Base for all TokenWatch errors."""


class InvalidEndpointError(TokenWatchError):
    """A source endpoint is empty, a placeholder, or not an http(s) URL."""

    def __init__(self, url: str, reason: str = "invalid rpc url") -> None:
        super().__init__(f"{reason}: {url!r}")
        self.url = url
        self.reason = reason


class ProviderError(TokenWatchError):
    """Transport failure or malformed payload from one evidence source."""

    def __init__(self, message: str, hint: str | None = None) -> None:
        super().__init__(message)
        self.hint = hint


class VerificationTimeoutError(TokenWatchError):
    """The overall verification deadline passed before all sources settled."""


class SnapshotKindMismatch(TokenWatchError, ValueError):
    """Two snapshots of different asset kinds were passed to the differ."""
