"""
TCG Price Aggregator - Error Taxonomy

Adapter-level errors (NotFound, UpstreamError, PolicyDenied) are caught by
the orchestrator and turned into "this platform contributed nothing".
Only NoData and AllSourcesFailed ever reach the caller.
"""

from __future__ import annotations


class PriceLookupError(Exception):
    """Base class for every error raised by the price lookup core."""


class NotFound(PriceLookupError):
    """Source answered but had no matching product or no usable price points."""

    def __init__(self, platform: str, detail: str = "no price points") -> None:
        self.platform = platform
        self.detail = detail
        super().__init__(f"{platform}: {detail}")


class UpstreamError(PriceLookupError):
    """Transport, HTTP status or rate-limit failure talking to a source."""

    def __init__(
        self,
        platform: str,
        detail: str,
        status_code: int | None = None,
    ) -> None:
        self.platform = platform
        self.detail = detail
        self.status_code = status_code
        super().__init__(f"{platform}: {detail}")


class PolicyDenied(PriceLookupError):
    """robots.txt forbids crawling the search endpoint of this source."""

    def __init__(self, platform: str, path: str = "/search") -> None:
        self.platform = platform
        self.path = path
        super().__init__(f"{platform}: robots.txt disallows {path}")


class NoData(PriceLookupError):
    """Aggregation was asked to combine zero observations."""

    def __init__(self) -> None:
        super().__init__("no price observations to aggregate")


class AllSourcesFailed(PriceLookupError):
    """Every requested source failed or was denied."""

    def __init__(self, failures: dict[str, str]) -> None:
        self.failures = failures
        summary = ", ".join(f"{k}={v}" for k, v in sorted(failures.items())) or "no sources"
        super().__init__(f"all price sources failed: {summary}")


# Errors that retrying cannot fix
NON_RETRYABLE: tuple[type[Exception], ...] = (NotFound, PolicyDenied)
