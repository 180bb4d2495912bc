"""Expose data models."""

from .distribution import Distribution, Source, get_distribution
from .layer import CacheRecord, LayerEnvironment, compute_fingerprint
from .packages import PackageIndex, PackageRecord, RequestedPackage
from .release import ReleaseChecksum, ReleaseMetadata
from .resolution import Notification, Provenance, Resolution, ResolvedPackage, SkippedPackage

__all__ = [
    "CacheRecord",
    "Distribution",
    "LayerEnvironment",
    "Notification",
    "PackageIndex",
    "PackageRecord",
    "Provenance",
    "ReleaseChecksum",
    "ReleaseMetadata",
    "RequestedPackage",
    "Resolution",
    "ResolvedPackage",
    "SkippedPackage",
    "Source",
    "compute_fingerprint",
    "get_distribution",
]
