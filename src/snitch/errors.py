"""Exception hierarchy."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from snitch.models import Sample


class SnitchError(Exception):
    """Base class for snitch errors."""


class ConfigError(SnitchError):
    """Setup problem that must abort before any scanning starts."""


class ScanFailure(SnitchError):
    """A provider query failed (network, auth, quota, malformed response).

    Never means "sample unknown": providers return ``None`` for that.
    """

    def __init__(self, provider: str, sample: Sample, reason: str) -> None:
        super().__init__(f"{provider}: scan of {sample.hash} failed: {reason}")
        self.provider = provider
        self.sample = sample
        self.reason = reason
