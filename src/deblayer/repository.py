"""Package index builder for signed APT repositories."""

import asyncio
import logging
from collections.abc import Callable, Iterable, Sequence
from pathlib import Path
from typing import Any

from debian.debian_support import Version
from pydantic import BaseModel, Field, ValidationError

from deblayer.errors import IndexParseError, IntegrityError, NetworkError, StaleReleaseError
from deblayer.fetcher import (
    Fetcher,
    build_packages_url,
    build_release_url,
    iter_packages_entries_async,
    packages_index_path,
    parse_release,
    url_to_local_path,
)
from deblayer.layers import Layer
from deblayer.models import CacheRecord, Distribution, PackageIndex, PackageRecord, Source, compute_fingerprint
from deblayer.signature import ReleaseVerifier
from deblayer.utils import run_concurrently

logger = logging.getLogger(__name__)

MANIFEST_NAME = "index.json"


class IndexFile(BaseModel):
    """A verified Packages index stored in the index layer."""

    repository_uri: str
    url: str
    path: str


class IndexManifest(BaseModel):
    files: list[IndexFile] = Field(default_factory=list)


def _safe_int(value: str | None) -> int | None:
    try:
        return int(value) if value else None
    except ValueError:
        return None


def build_package_record(entry: dict[str, Any], repository_uri: str) -> PackageRecord:
    """Build a PackageRecord from a Packages paragraph.

    Raises:
        IndexParseError: if a required field is missing or the version cannot be parsed
    """
    name = entry.get("Package")
    if not name:
        raise IndexParseError("There's a package index entry that's missing the required Package key")

    missing = [key for key in ("Version", "Filename", "SHA256") if not entry.get(key)]
    if missing:
        raise IndexParseError(f"Package {name} is missing the required {', '.join(missing)} key(s)")

    try:
        Version(entry["Version"])
    except ValueError as e:
        raise IndexParseError(f"Package {name} has an invalid version '{entry['Version']}'") from e

    return PackageRecord(
        name=name,
        version=entry["Version"],
        architecture=entry.get("Architecture", ""),
        filename=entry["Filename"],
        sha256=entry["SHA256"].strip().lower(),
        size=_safe_int(entry.get("Size")),
        depends=entry.get("Depends"),
        pre_depends=entry.get("Pre-Depends"),
        provides=entry.get("Provides"),
        repository_uri=repository_uri,
    )


class IndexBuilder:
    """Builds a PackageIndex for a distribution, caching verified indexes in a layer."""

    def __init__(
        self,
        fetcher: Fetcher,
        layer: Layer,
        cache_days: int = 7,
        verifier_factory: Callable[[Path], ReleaseVerifier] = ReleaseVerifier,
    ):
        """Initialize the index builder.

        Args:
            fetcher: Shared fetcher for Release files and Packages indexes
            layer: Layer the verified indexes are kept in between builds
            cache_days: How long a cached index stays valid, 0 disables the cache
            verifier_factory: Creates a verifier for a source's keyring
        """
        self.fetcher = fetcher
        self.layer = layer
        self.cache_days = cache_days
        self.verifier_factory = verifier_factory

    @property
    def manifest_path(self) -> Path:
        return self.layer.path / MANIFEST_NAME

    def fingerprint(
        self, distribution: Distribution, components: Sequence[str] | None, requested: Iterable[str]
    ) -> str:
        return compute_fingerprint(
            {
                "distribution": distribution.identity(),
                "components": list(components) if components is not None else None,
                "requested": sorted(set(requested)),
            }
        )

    async def build_index(
        self,
        distribution: Distribution,
        components: Sequence[str] | None = None,
        requested: Iterable[str] = (),
    ) -> PackageIndex:
        """Build the package index for a distribution.

        Args:
            distribution: The target distribution
            components: Narrow the enabled components to these, None for all of them
            requested: Names of the requested packages, part of the cache fingerprint

        Returns:
            The merged index, holding the highest version of every package

        Raises:
            SignatureVerificationError: if a Release file is unsigned or signed by an untrusted key
            IntegrityError: if a Release file is stale, or an index is missing or fails its checksum
            NetworkError: if the repository cannot be reached
        """
        fingerprint = self.fingerprint(distribution, components, requested)

        if self.layer.restore_or_reset(fingerprint, self.cache_days):
            try:
                return await self._load_index(self._read_manifest())
            except IntegrityError as e:
                logger.warning(f"Cached package index is unusable, rebuilding: {e}")
                self.layer.reset()

        manifest = await self._update(distribution, components)
        self.manifest_path.write_text(manifest.model_dump_json(indent=2), encoding="utf-8")
        index = await self._load_index(manifest)
        self.layer.write_record(CacheRecord(fingerprint=fingerprint))
        return index

    def _read_manifest(self) -> IndexManifest:
        try:
            return IndexManifest.model_validate_json(self.manifest_path.read_text(encoding="utf-8"))
        except (OSError, ValidationError) as e:
            raise IndexParseError(f"Unable to read index manifest {self.manifest_path}: {e}") from e

    async def _update(self, distribution: Distribution, components: Sequence[str] | None) -> IndexManifest:
        results = await run_concurrently(
            self._update_suite(source, suite, components, distribution.architecture)
            for source in distribution.sources
            for suite in source.suites
        )
        files = [index_file for suite_files in results for index_file in suite_files]
        return IndexManifest(files=files)

    async def _fetch_signature(self, url: str) -> bytes | None:
        try:
            return await self.fetcher.fetch_bytes(url)
        except NetworkError as e:
            if e.status_code == 404:
                return None
            raise

    async def _update_suite(
        self,
        source: Source,
        suite: str,
        components: Sequence[str] | None,
        architecture: str,
    ) -> list[IndexFile]:
        """Fetch and verify one suite's Release file, then download its Packages indexes."""
        release_url = build_release_url(source.uri, suite)
        signature_url = build_release_url(source.uri, suite, "Release.gpg")

        release_bytes, signature = await run_concurrently(
            [self.fetcher.fetch_bytes(release_url), self._fetch_signature(signature_url)]
        )

        verifier = self.verifier_factory(source.signed_by)
        await asyncio.to_thread(verifier.verify, release_bytes, signature, release_url)

        release_path = url_to_local_path(release_url, self.layer.path)
        release_path.parent.mkdir(parents=True, exist_ok=True)
        release_path.write_bytes(release_bytes)

        release = parse_release(release_bytes.decode("utf-8", errors="replace"))
        if release.is_stale():
            raise StaleReleaseError(f"{release_url} expired at {release.valid_until}")

        target_components = list(source.components)
        if components is not None:
            unknown = [c for c in components if c not in source.components]
            if unknown:
                logger.warning(f"Ignoring components not enabled for {source.uri}: {', '.join(unknown)}")
            target_components = [c for c in source.components if c in components]

        index_files: list[IndexFile] = []
        downloads = []
        for component in target_components:
            index_path = packages_index_path(component, architecture)
            checksum = release.checksum_for(index_path)
            if checksum is None:
                raise IntegrityError(f"{release_url} does not list {index_path}")

            canonical_url = build_packages_url(source.uri, suite, component, architecture)
            download_url = (
                build_packages_url(source.uri, suite, component, architecture, checksum=checksum)
                if release.acquire_by_hash
                else canonical_url
            )
            local_path = url_to_local_path(canonical_url, self.layer.path)
            downloads.append((download_url, local_path, checksum.sha256))
            index_files.append(
                IndexFile(
                    repository_uri=source.uri,
                    url=canonical_url,
                    path=local_path.relative_to(self.layer.path).as_posix(),
                )
            )

        await run_concurrently(
            self.fetcher.download_file(url, local_path, expected_sha256=sha256)
            for url, local_path, sha256 in downloads
        )

        logger.info(f"Updated {suite} ({', '.join(target_components)}) from {source.uri}")
        return index_files

    async def _load_index(self, manifest: IndexManifest) -> PackageIndex:
        records: list[PackageRecord] = []
        for index_file in manifest.files:
            async for entry in iter_packages_entries_async(self.layer.path / index_file.path):
                records.append(build_package_record(entry, index_file.repository_uri))

        index = PackageIndex.from_records(records)
        logger.info(f"Indexed {len(index)} packages ({index.packages_indexed} entries)")
        return index
