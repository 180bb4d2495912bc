"""deblayer exception hierarchy.

Every failure raised by the index builder, resolver, installer or the
collaborators around them derives from DebLayerError, so the CLI can
report any of them with a single except clause.
"""

from collections.abc import Iterable


class DebLayerError(Exception):
    """Base exception for all deblayer errors."""

    def __init__(self, message: str = "", *, retryable: bool = False) -> None:
        super().__init__(message)
        self.retryable = retryable


class NetworkError(DebLayerError):
    """A fetch failed, possibly after exhausting its retries."""

    def __init__(
        self,
        message: str = "",
        *,
        url: str | None = None,
        status_code: int | None = None,
        retryable: bool = False,
    ) -> None:
        super().__init__(message, retryable=retryable)
        self.url = url
        self.status_code = status_code


class SignatureVerificationError(DebLayerError):
    """A Release file signature is missing, corrupt, or made by an untrusted key."""


class IntegrityError(DebLayerError):
    """Downloaded repository data does not match what the signed metadata declares."""


class ChecksumMismatch(IntegrityError):
    """A downloaded blob hashed to something other than its declared digest."""

    def __init__(self, url: str, expected: str, actual: str) -> None:
        super().__init__(f"Checksum mismatch for {url}: expected {expected}, got {actual}")
        self.url = url
        self.expected = expected
        self.actual = actual


class IndexParseError(IntegrityError):
    """A package index paragraph is missing a required field."""


class StaleReleaseError(IntegrityError):
    """A Release file is past its Valid-Until date."""


class ResolutionError(DebLayerError):
    """The requested package set could not be turned into an install plan."""


class UnknownPackage(ResolutionError):
    """A requested or required package is not in the package index."""

    def __init__(self, name: str, requested_by: str | None = None) -> None:
        if requested_by:
            message = f"Package {name} (required by {requested_by}) was not found in the package index"
        else:
            message = f"Package {name} was not found in the package index"
        super().__init__(message)
        self.name = name
        self.requested_by = requested_by


class CyclicDependency(ResolutionError):
    """A package depends on itself through its dependency chain."""

    def __init__(self, cycle: Iterable[str]) -> None:
        self.cycle = list(cycle)
        super().__init__(f"Dependency cycle detected: {' -> '.join(self.cycle)}")
        self.name = self.cycle[-1] if self.cycle else ""


class AmbiguousVirtualPackage(ResolutionError):
    """A virtual package is provided by more than one package, so one must be chosen explicitly."""

    def __init__(self, name: str, providers: Iterable[str]) -> None:
        self.name = name
        self.providers = sorted(providers)
        super().__init__(
            f"Virtual package {name} is provided by multiple packages ({', '.join(self.providers)}); "
            "request one of them explicitly"
        )


class ArchiveExtractionError(DebLayerError):
    """A package archive is malformed or contains members that cannot be safely extracted."""


class ConfigError(DebLayerError):
    """Invalid or missing configuration."""


class UnsupportedDistributionError(ConfigError):
    """The target distribution or architecture has no descriptor."""
