"""Repository fetching and index parsing for APT repositories."""

import asyncio
import hashlib
import logging
import zlib
from collections.abc import AsyncIterator, Awaitable, Callable
from pathlib import Path
from typing import Any
from urllib.parse import urljoin, urlparse

import aiofiles
import aiogzip
import httpx
from debian import deb822

from deblayer.errors import ChecksumMismatch, IndexParseError, NetworkError
from deblayer.models import ReleaseChecksum, ReleaseMetadata
from deblayer.utils import try_parse_date

logger = logging.getLogger(__name__)


def url_to_local_path(url: str, base_dir: Path) -> Path:
    """Convert a repository URL to a local file path that mirrors the source structure.

    Args:
        url: The full URL to a file (e.g., http://archive.ubuntu.com/ubuntu/dists/jammy/Release)
        base_dir: Directory the mirrored tree is rooted at

    Examples:
        >>> url_to_local_path("http://archive.ubuntu.com/ubuntu/dists/jammy/Release", Path("cache"))
        PosixPath('cache/archive.ubuntu.com/ubuntu/dists/jammy/Release')
    """
    parsed = urlparse(url)
    # Combine netloc (domain) and path, strip leading slash
    local_path = Path(parsed.netloc) / parsed.path.lstrip("/")
    return base_dir / local_path


def build_release_url(repo_url: str, suite: str, name: str = "Release") -> str:
    """Construct the URL of a suite's Release file (or its detached signature)."""

    repo_prefix = repo_url if repo_url.endswith("/") else f"{repo_url}/"
    return urljoin(repo_prefix, f"dists/{suite}/{name}")


def packages_index_path(component: str, architecture: str, suffix: str = "Packages.gz") -> str:
    """Path of a Packages index relative to the suite directory, as listed in the Release file."""

    return f"{component}/binary-{architecture}/{suffix}"


def build_packages_url(
    repo_url: str,
    suite: str,
    component: str,
    architecture: str,
    checksum: ReleaseChecksum | None = None,
    suffix: str = "Packages.gz",
) -> str:
    """Construct a Packages index URL for a component + architecture.

    When a checksum is given the by-hash location is used, which stays stable while
    the mirror is being updated.
    """

    repo_prefix = repo_url if repo_url.endswith("/") else f"{repo_url}/"
    if checksum is not None:
        rel_path = f"dists/{suite}/{component}/binary-{architecture}/by-hash/SHA256/{checksum.sha256}"
    else:
        rel_path = f"dists/{suite}/{packages_index_path(component, architecture, suffix)}"
    return urljoin(repo_prefix, rel_path)


def parse_release(release_text: str) -> ReleaseMetadata:
    """Parse the fields of a Release file that the index builder relies on."""

    release_data = deb822.Release(release_text)

    checksums: dict[str, ReleaseChecksum] = {}
    for entry in release_data.get("SHA256", []):
        try:
            checksums[entry["name"]] = ReleaseChecksum(sha256=entry["sha256"].lower(), size=int(entry["size"]))
        except (KeyError, ValueError) as e:
            raise IndexParseError(f"Malformed SHA256 entry in Release file: {entry}") from e

    return ReleaseMetadata(
        suite=release_data.get("Suite"),
        codename=release_data.get("Codename"),
        date=try_parse_date(release_data.get("Date")),
        valid_until=try_parse_date(release_data.get("Valid-Until")),
        acquire_by_hash=release_data.get("Acquire-By-Hash", "no").strip().lower() == "yes",
        architectures=release_data.get("Architectures", "").split(),
        components=release_data.get("Components", "").split(),
        sha256=checksums,
    )


class Fetcher:
    """Read-only HTTP GETs with bounded retries and exponential backoff.

    Only transport errors and 5xx responses are retried; anything else fails immediately.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        attempts: int = 3,
        backoff: float = 1.0,
        max_backoff: float = 30.0,
    ):
        self.client = client
        self.attempts = max(1, attempts)
        self.backoff = backoff
        self.max_backoff = max_backoff

    async def _with_retries(self, url: str, operation: Callable[[], Awaitable[Any]]) -> Any:
        delay = self.backoff
        last_error: Exception | None = None

        for attempt in range(self.attempts):
            if attempt > 0:
                logger.info(f"Retry attempt {attempt}/{self.attempts - 1} for {url} after {delay}s")
                await asyncio.sleep(delay)
                delay = min(delay * 2, self.max_backoff)
            try:
                return await operation()
            except httpx.HTTPStatusError as e:
                if e.response.status_code < 500:
                    raise NetworkError(
                        f"Failed to download {url}: HTTP {e.response.status_code}",
                        url=url,
                        status_code=e.response.status_code,
                    ) from e
                last_error = e
            except httpx.TransportError as e:
                last_error = e
            logger.warning(f"Attempt {attempt + 1}/{self.attempts} failed for {url}: {last_error}")

        raise NetworkError(
            f"Failed to download {url} after {self.attempts} attempts: {last_error}",
            url=url,
            retryable=True,
        ) from last_error

    async def fetch_bytes(self, url: str) -> bytes:
        async def _get() -> bytes:
            response = await self.client.get(url)
            response.raise_for_status()
            return response.content

        content = await self._with_retries(url, _get)
        logger.debug(f"Fetched {url} ({len(content)} bytes)")
        return content

    async def download_file(self, url: str, output_path: Path, expected_sha256: str | None = None) -> str:
        """Stream a URL to a local path, hashing it on the way.

        Args:
            url: The URL to download from
            output_path: Where to save the downloaded file
            expected_sha256: If given, the file is removed and ChecksumMismatch raised when the digest differs

        Returns:
            The SHA-256 hex digest of the downloaded bytes
        """

        async def _download() -> str:
            hasher = hashlib.sha256()
            output_path.parent.mkdir(parents=True, exist_ok=True)
            async with self.client.stream("GET", url) as response:
                response.raise_for_status()
                async with aiofiles.open(output_path, "wb") as f:
                    async for chunk in response.aiter_bytes():
                        hasher.update(chunk)
                        await f.write(chunk)
            return hasher.hexdigest()

        digest = await self._with_retries(url, _download)
        if expected_sha256 is not None and digest != expected_sha256.lower():
            output_path.unlink(missing_ok=True)
            raise ChecksumMismatch(url, expected_sha256, digest)

        logger.debug(f"Downloaded {url} to {output_path}")
        return digest


async def iter_packages_entries_async(local_path: Path) -> AsyncIterator[dict]:
    """Asynchronously stream package entries from a Packages or Packages.gz file."""

    async def _open_text_stream():
        if local_path.suffix == ".gz":
            async with aiogzip.AsyncGzipTextFile(local_path, encoding="utf-8", errors="ignore") as f:
                async for line in f:
                    yield line
            return
        async with aiofiles.open(local_path, encoding="utf-8", errors="ignore") as f:
            async for line in f:
                yield line

    paragraph_lines: list[str] = []
    try:
        async for line in _open_text_stream():
            line = line.replace("\0", "")
            if line.strip() == "":
                if paragraph_lines:
                    yield dict(deb822.Deb822(paragraph_lines))
                    paragraph_lines = []
            else:
                paragraph_lines.append(line.rstrip("\r\n"))
    except (OSError, EOFError, zlib.error) as e:
        raise IndexParseError(f"Unable to read package index {local_path}: {e}") from e

    if paragraph_lines:
        yield dict(deb822.Deb822(paragraph_lines))
