import gzip
import hashlib
import io
import tarfile
from pathlib import Path

import httpx
import pytest

from deblayer.config import Settings, get_settings
from deblayer.errors import SignatureVerificationError
from deblayer.models import Distribution, PackageIndex, PackageRecord, Source

MIRROR = "http://mirror.test/ubuntu"


def _make_record(
    name: str,
    version: str = "1.0",
    depends: str | None = None,
    pre_depends: str | None = None,
    provides: str | None = None,
) -> PackageRecord:
    return PackageRecord(
        name=name,
        version=version,
        architecture="amd64",
        filename=f"pool/main/{name[0]}/{name}/{name}_{version}_amd64.deb",
        sha256=hashlib.sha256(f"{name}-{version}".encode()).hexdigest(),
        depends=depends,
        pre_depends=pre_depends,
        provides=provides,
        repository_uri=MIRROR,
    )


def _make_tar(members: list[tuple[str, bytes | None, int]]) -> bytes:
    """members: (name, content or None for a directory, mode)"""
    buffer = io.BytesIO()
    with tarfile.open(fileobj=buffer, mode="w:gz") as tar:
        for name, content, mode in members:
            info = tarfile.TarInfo(name)
            info.mode = mode
            info.uid = info.gid = 0
            info.uname = info.gname = "root"
            if content is None:
                info.type = tarfile.DIRTYPE
                tar.addfile(info)
            else:
                info.size = len(content)
                tar.addfile(info, io.BytesIO(content))
    return buffer.getvalue()


def _make_ar(members: list[tuple[str, bytes]]) -> bytes:
    out = io.BytesIO()
    out.write(b"!<arch>\n")
    for name, data in members:
        header = (
            f"{name:<16}"
            f"{0:<12}"
            f"{0:<6}"
            f"{0:<6}"
            f"{'100644':<8}"
            f"{len(data):<10}"
            "`\n"
        )
        out.write(header.encode("ascii"))
        out.write(data)
        if len(data) % 2:
            out.write(b"\n")
    return out.getvalue()


def _make_deb(files: dict[str, bytes], modes: dict[str, int] | None = None) -> bytes:
    """Build a .deb whose payload holds files (paths relative to the layer root)."""
    modes = modes or {}
    directories: list[str] = []
    for path in files:
        parts = Path(path).parts[:-1]
        for i in range(1, len(parts) + 1):
            directory = "./" + "/".join(parts[:i]) + "/"
            if directory not in directories:
                directories.append(directory)

    data_members: list[tuple[str, bytes | None, int]] = [("./", None, 0o755)]
    data_members += [(d, None, 0o755) for d in directories]
    data_members += [(f"./{path}", content, modes.get(path, 0o644)) for path, content in files.items()]

    control = _make_tar([("./control", b"Package: test\nVersion: 1.0\nArchitecture: amd64\n", 0o644)])
    return _make_ar(
        [
            ("debian-binary", b"2.0\n"),
            ("control.tar.gz", control),
            ("data.tar.gz", _make_tar(data_members)),
        ]
    )


def _paragraph(name: str, version: str = "1.0", **fields: str) -> str:
    lines = [
        f"Package: {name}",
        f"Version: {version}",
        "Architecture: amd64",
        f"Filename: pool/main/{name[0]}/{name}/{name}_{version}_amd64.deb",
        f"SHA256: {hashlib.sha256(f'{name}-{version}'.encode()).hexdigest()}",
        "Size: 1024",
    ]
    lines += [f"{key.replace('_', '-').title()}: {value}" for key, value in fields.items()]
    return "\n".join(lines) + "\n"


def _release(suite: str, indexes: dict[str, bytes], *, by_hash: bool = True, valid_until: str | None = None) -> bytes:
    lines = [
        "Origin: Ubuntu",
        f"Suite: {suite}",
        "Codename: jammy",
        "Date: Thu, 21 Apr 2022 17:16:08 UTC",
    ]
    if valid_until:
        lines.append(f"Valid-Until: {valid_until}")
    if by_hash:
        lines.append("Acquire-By-Hash: yes")
    lines += ["Architectures: amd64", "Components: main universe", "SHA256:"]
    for path, content in indexes.items():
        lines.append(f" {hashlib.sha256(content).hexdigest()} {len(content)} {path}")
    return ("\n".join(lines) + "\n").encode()


class FakeMirror:
    """A static APT mirror behind httpx.MockTransport."""

    def __init__(self):
        self.files: dict[str, bytes] = {}
        self.requests: list[str] = []

    def add(self, url: str, content: bytes) -> None:
        self.files[url] = content

    def add_suite(
        self,
        suite: str,
        packages: dict[str, str],
        *,
        by_hash: bool = True,
        valid_until: str | None = None,
        signature: bytes | None = b"signature",
    ) -> None:
        """packages: component -> Packages text"""
        indexes = {
            f"{component}/binary-amd64/Packages.gz": gzip.compress(text.encode()) for component, text in packages.items()
        }
        self.add(f"{MIRROR}/dists/{suite}/Release", _release(suite, indexes, by_hash=by_hash, valid_until=valid_until))
        if signature is not None:
            self.add(f"{MIRROR}/dists/{suite}/Release.gpg", signature)
        for path, content in indexes.items():
            if by_hash:
                component = path.split("/")[0]
                digest = hashlib.sha256(content).hexdigest()
                self.add(f"{MIRROR}/dists/{suite}/{component}/binary-amd64/by-hash/SHA256/{digest}", content)
            else:
                self.add(f"{MIRROR}/dists/{suite}/{path}", content)

    def handler(self, request: httpx.Request) -> httpx.Response:
        url = str(request.url)
        self.requests.append(url)
        if url in self.files:
            return httpx.Response(200, content=self.files[url])
        return httpx.Response(404)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


class FakeVerifier:
    """Accepts any non-empty signature."""

    def __init__(self, keyring_path: Path | None = None):
        self.keyring_path = keyring_path

    def verify(self, data: bytes, signature: bytes | None, source: str = "Release") -> str:
        if not signature:
            raise SignatureVerificationError(f"No signature found for {source}")
        if signature == b"bad":
            raise SignatureVerificationError(f"Signature verification failed for {source}: BAD signature")
        return "FAKEFINGERPRINT"


@pytest.fixture(autouse=True)
def clear_settings_cache():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def make_record():
    return _make_record


@pytest.fixture
def make_index():
    def _make_index(*records: PackageRecord) -> PackageIndex:
        return PackageIndex.from_records(records)

    return _make_index


@pytest.fixture
def make_deb():
    return _make_deb


@pytest.fixture
def paragraph():
    return _paragraph


@pytest.fixture
def mirror() -> FakeMirror:
    return FakeMirror()


@pytest.fixture
def fake_verifier():
    return FakeVerifier


@pytest.fixture
def distribution() -> Distribution:
    return Distribution(
        architecture="amd64",
        name="ubuntu",
        version="22.04",
        codename="jammy",
        sources=(
            Source(
                uri=MIRROR,
                suites=("jammy",),
                components=("main",),
                signed_by=Path("/nonexistent/keyring.gpg"),
            ),
        ),
    )


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        layers_dir=tmp_path / "layers",
        package_cache_days=7,
        fetch_attempts=2,
        fetch_backoff=0,
        max_concurrent_downloads=4,
        keyring_path=tmp_path / "keyring.gpg",
        dpkg_status_path=tmp_path / "status",
        os_release_path=tmp_path / "os-release",
    )
