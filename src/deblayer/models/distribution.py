"""Descriptors for the distributions packages can be installed from."""

from pathlib import Path

from pydantic import BaseModel, ConfigDict

from deblayer.constants import (
    ARCHITECTURE_MIRRORS,
    DEFAULT_COMPONENTS,
    MULTIARCH_NAMES,
    SUITE_SUFFIXES,
    SUPPORTED_RELEASES,
    UBUNTU_ARCHIVE_KEYRING,
)
from deblayer.errors import UnsupportedDistributionError


class Source(BaseModel):
    """One apt source: a mirror, the suites and components enabled on it, and the keyring its Release files are signed with.

    Loosely follows the deb822 sources format, minus Types (binaries only) and Enabled (always on).
    """

    model_config = ConfigDict(frozen=True)

    uri: str
    suites: tuple[str, ...]
    components: tuple[str, ...]
    signed_by: Path


class Distribution(BaseModel):
    """A supported build target."""

    model_config = ConfigDict(frozen=True)

    os: str = "linux"
    architecture: str
    name: str
    version: str
    codename: str
    sources: tuple[Source, ...]

    @property
    def multiarch(self) -> str:
        """The multiarch tuple used for architecture-qualified lib/include directories."""
        return MULTIARCH_NAMES[self.architecture]

    def identity(self) -> dict:
        return self.model_dump(mode="json")


def get_distribution(codename: str, architecture: str, keyring: Path | None = None) -> Distribution:
    """Look up the descriptor for a codename + architecture pair.

    Args:
        codename: Distribution codename (e.g. "jammy")
        architecture: Debian architecture name (e.g. "amd64")
        keyring: Keyring holding the archive signing keys, defaults to the system archive keyring

    Raises:
        UnsupportedDistributionError: if either value is not supported
    """
    if codename not in SUPPORTED_RELEASES:
        supported = ", ".join(SUPPORTED_RELEASES)
        raise UnsupportedDistributionError(f"Unsupported distribution '{codename}' (supported: {supported})")
    if architecture not in ARCHITECTURE_MIRRORS:
        supported = ", ".join(ARCHITECTURE_MIRRORS)
        raise UnsupportedDistributionError(f"Unsupported architecture '{architecture}' (supported: {supported})")

    name, version = SUPPORTED_RELEASES[codename]
    source = Source(
        uri=ARCHITECTURE_MIRRORS[architecture],
        suites=tuple(f"{codename}{suffix}" for suffix in SUITE_SUFFIXES),
        components=tuple(DEFAULT_COMPONENTS),
        signed_by=keyring or UBUNTU_ARCHIVE_KEYRING,
    )
    return Distribution(
        architecture=architecture,
        name=name,
        version=version,
        codename=codename,
        sources=(source,),
    )
