"""Download and unpack .deb payloads into a layer."""

import asyncio
import logging
import tarfile
import tempfile
from collections.abc import Sequence
from pathlib import Path

from debian.arfile import ArError
from debian.debfile import DebError, DebFile
from pydantic import BaseModel, Field

from deblayer.errors import ArchiveExtractionError
from deblayer.fetcher import Fetcher
from deblayer.models import Distribution, ResolvedPackage, compute_fingerprint
from deblayer.utils import run_concurrently

logger = logging.getLogger(__name__)


class InstallResult(BaseModel):
    layer_root: Path
    installed: list[str] = Field(default_factory=list)
    pkgconfig_files: list[Path] = Field(default_factory=list)


def install_fingerprint(distribution: Distribution, resolved: Sequence[ResolvedPackage]) -> str:
    """Fingerprint of everything that ends up in the packages layer."""
    return compute_fingerprint(
        {
            "distribution": distribution.identity(),
            "packages": [[package.name, package.record.sha256] for package in resolved],
        }
    )


def layer_member_filter(member: tarfile.TarInfo, dest_path: str) -> tarfile.TarInfo | None:
    """Extraction filter for package payloads.

    Builds on tarfile.tar_filter, which rejects members outside the destination
    and clears setuid/setgid bits. Ownership is reset to whoever runs the build
    and device nodes are dropped.
    """
    member = tarfile.tar_filter(member, dest_path)
    if member.ischr() or member.isblk() or member.isfifo():
        return None
    return member.replace(uid=None, gid=None, uname=None, gname=None, deep=False)


def rewrite_pkgconfig(path: Path, prefix: Path) -> bool:
    """Point a pkg-config file's prefix= line at the layer.

    Returns:
        True if the file was changed
    """
    # bytes outside utf-8 (e.g. latin-1 descriptions) round-trip untouched
    content = path.read_text(encoding="utf-8", errors="surrogateescape")
    lines = content.splitlines(keepends=True)
    changed = False
    for i, line in enumerate(lines):
        if line.startswith("prefix="):
            ending = line[len(line.rstrip("\r\n")) :]
            lines[i] = f"prefix={prefix}{ending}"
            changed = changed or lines[i] != line
    if changed:
        path.write_text("".join(lines), encoding="utf-8", errors="surrogateescape")
    return changed


def extract_payload(archive_path: Path, layer_root: Path) -> list[Path]:
    """Extract the data.tar.* member of a .deb into layer_root.

    Returns:
        The pkg-config files that were rewritten
    """
    rewritten: list[Path] = []
    try:
        deb = DebFile(filename=str(archive_path))
        try:
            payload = deb.data.tgz()
            payload.extractall(layer_root, filter=layer_member_filter)
            pkgconfig_members = [
                member.name for member in payload.getmembers() if member.isfile() and member.name.endswith(".pc")
            ]
        finally:
            deb.close()

        for name in pkgconfig_members:
            pc_path = layer_root / name.lstrip("/")
            if rewrite_pkgconfig(pc_path, layer_root):
                rewritten.append(pc_path)
    except (DebError, ArError, tarfile.TarError, OSError, UnicodeError) as e:
        raise ArchiveExtractionError(f"Unable to extract {archive_path.name}: {e}") from e
    return rewritten


class PackageInstaller:
    """Fetches resolved packages and unpacks them into a layer root, one archive at a time."""

    def __init__(self, fetcher: Fetcher, max_concurrent: int = 8):
        self.fetcher = fetcher
        self.max_concurrent = max(1, max_concurrent)
        self._extract_lock = asyncio.Lock()

    async def _download(self, semaphore: asyncio.Semaphore, package: ResolvedPackage, staging_dir: Path) -> Path:
        archive_path = staging_dir / Path(package.record.filename).name
        async with semaphore:
            logger.debug(f"Downloading {package.name}@{package.version}")
            await self.fetcher.download_file(
                package.record.download_url, archive_path, expected_sha256=package.record.sha256
            )
        return archive_path

    async def install(self, resolved: Sequence[ResolvedPackage], layer_root: Path) -> InstallResult:
        """Install resolved packages into layer_root.

        All archives are downloaded and verified before anything is extracted, so a
        checksum mismatch leaves the layer untouched.

        Raises:
            NetworkError: if an archive cannot be downloaded
            ChecksumMismatch: if an archive does not match its index checksum
            ArchiveExtractionError: if an archive is malformed or has unsafe members
        """
        layer_root = layer_root.resolve()
        result = InstallResult(layer_root=layer_root)
        if not resolved:
            return result

        semaphore = asyncio.Semaphore(self.max_concurrent)
        with tempfile.TemporaryDirectory(prefix="deblayer-staging-") as staging:
            staging_dir = Path(staging)
            archives = await run_concurrently(
                self._download(semaphore, package, staging_dir) for package in resolved
            )
            logger.info(f"Downloaded {len(archives)} packages")

            layer_root.mkdir(parents=True, exist_ok=True)
            async with self._extract_lock:
                for package, archive_path in zip(resolved, archives, strict=True):
                    logger.info(f"Installing {package.name}@{package.version}")
                    rewritten = await asyncio.to_thread(extract_payload, archive_path, layer_root)
                    result.installed.append(package.name)
                    result.pkgconfig_files.extend(rewritten)

        return result
