"""Runs the index, resolve, install and environment steps against the layers directory."""

import logging
from collections.abc import AsyncIterator, Callable, Iterable, Sequence
from contextlib import asynccontextmanager
from pathlib import Path

import httpx
from pydantic import BaseModel

from deblayer.config import Settings
from deblayer.constants import PACKAGE_ENVIRONMENT, SPECIAL_CASE_PACKAGES
from deblayer.environment import compose
from deblayer.fetcher import Fetcher
from deblayer.installer import InstallResult, PackageInstaller, install_fingerprint
from deblayer.layers import Layer
from deblayer.models import CacheRecord, Distribution, LayerEnvironment, PackageIndex, RequestedPackage, Resolution
from deblayer.repository import IndexBuilder
from deblayer.resolver import resolve
from deblayer.signature import ReleaseVerifier

logger = logging.getLogger(__name__)

INDEX_LAYER = "package-index"
PACKAGES_LAYER = "packages"


class BuildResult(BaseModel):
    resolution: Resolution
    environment: LayerEnvironment
    layer_root: Path
    restored: bool = False
    install: InstallResult | None = None


@asynccontextmanager
async def open_fetcher(
    settings: Settings, transport: httpx.AsyncBaseTransport | None = None
) -> AsyncIterator[Fetcher]:
    async with httpx.AsyncClient(
        timeout=settings.http_timeout,
        follow_redirects=True,
        transport=transport,
    ) as client:
        yield Fetcher(client, attempts=settings.fetch_attempts, backoff=settings.fetch_backoff)


async def build_index(
    fetcher: Fetcher,
    distribution: Distribution,
    requested: Sequence[RequestedPackage],
    settings: Settings,
    verifier_factory: Callable[[Path], ReleaseVerifier] = ReleaseVerifier,
) -> PackageIndex:
    logger.info(
        f"Indexing {distribution.name} {distribution.version} "
        f"({distribution.codename}, {distribution.architecture})"
    )
    builder = IndexBuilder(
        fetcher,
        Layer(settings.layers_dir, INDEX_LAYER),
        cache_days=settings.package_cache_days,
        verifier_factory=verifier_factory,
    )
    return await builder.build_index(distribution, requested=[r.name for r in requested])


async def resolve_packages(
    requested: Sequence[RequestedPackage],
    distribution: Distribution,
    installed: Iterable[str],
    settings: Settings,
    transport: httpx.AsyncBaseTransport | None = None,
    verifier_factory: Callable[[Path], ReleaseVerifier] = ReleaseVerifier,
) -> Resolution:
    """Build the index and resolve the requested packages, without installing anything."""
    async with open_fetcher(settings, transport) as fetcher:
        index = await build_index(fetcher, distribution, requested, settings, verifier_factory)
    return resolve(requested, index, installed, SPECIAL_CASE_PACKAGES)


async def build_layer(
    requested: Sequence[RequestedPackage],
    distribution: Distribution,
    installed: Iterable[str],
    settings: Settings,
    transport: httpx.AsyncBaseTransport | None = None,
    verifier_factory: Callable[[Path], ReleaseVerifier] = ReleaseVerifier,
) -> BuildResult:
    """Index, resolve, install and write the environment of the packages layer.

    Raises:
        DebLayerError: any failure along the way; nothing is marked as cached unless every step succeeded
    """
    async with open_fetcher(settings, transport) as fetcher:
        index = await build_index(fetcher, distribution, requested, settings, verifier_factory)
        resolution = resolve(requested, index, installed, SPECIAL_CASE_PACKAGES)

        layer = Layer(settings.layers_dir, PACKAGES_LAYER)
        fingerprint = install_fingerprint(distribution, resolution.resolved)
        restored = layer.restore_or_reset(fingerprint, settings.package_cache_days)

        install_result = None
        if not restored:
            installer = PackageInstaller(fetcher, max_concurrent=settings.max_concurrent_downloads)
            install_result = await installer.install(resolution.resolved, layer.path)
            if install_result.pkgconfig_files:
                logger.info(f"Pointed {len(install_result.pkgconfig_files)} pkg-config files at {layer.path}")

    environment = compose(
        layer.path,
        resolution.resolved,
        resolution.skipped,
        PACKAGE_ENVIRONMENT,
        multiarch=distribution.multiarch,
    )
    layer.write_environment(environment)
    if not restored:
        layer.write_record(CacheRecord(fingerprint=fingerprint))

    logger.info(
        f"Layer {layer.name} ready: {len(resolution.resolved)} installed, "
        f"{len(resolution.skipped)} provided by the base image"
    )
    return BuildResult(
        resolution=resolution,
        environment=environment,
        layer_root=layer.path,
        restored=restored,
        install=install_result,
    )
