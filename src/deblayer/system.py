"""Inspection of the base image the layer is built on."""

import logging
import platform
from pathlib import Path

from debian import deb822

from deblayer.constants import MACHINE_ARCHITECTURES
from deblayer.errors import ConfigError, UnsupportedDistributionError
from deblayer.models import Distribution, get_distribution

logger = logging.getLogger(__name__)


def read_installed_packages(status_path: Path) -> set[str]:
    """Names of packages dpkg reports as installed.

    A missing status file means nothing is installed.
    """
    if not status_path.exists():
        logger.warning(f"{status_path} does not exist, assuming no packages are installed")
        return set()

    installed: set[str] = set()
    try:
        with status_path.open(encoding="utf-8", errors="replace") as f:
            for paragraph in deb822.Deb822.iter_paragraphs(f, use_apt_pkg=False):
                name = paragraph.get("Package")
                status = paragraph.get("Status", "")
                if name and status.split()[-1:] == ["installed"]:
                    installed.add(name)
    except OSError as e:
        raise ConfigError(f"Unable to read {status_path}: {e}") from e

    logger.debug(f"Found {len(installed)} installed packages in {status_path}")
    return installed


def read_os_release(os_release_path: Path) -> dict[str, str]:
    try:
        lines = os_release_path.read_text(encoding="utf-8").splitlines()
    except OSError as e:
        raise ConfigError(f"Unable to read {os_release_path}: {e}") from e

    values: dict[str, str] = {}
    for line in lines:
        line = line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, _, value = line.partition("=")
        values[key] = value.strip().strip("\"'")
    return values


def detect_architecture(machine: str | None = None) -> str:
    machine = machine or platform.machine()
    try:
        return MACHINE_ARCHITECTURES[machine.lower()]
    except KeyError as e:
        raise UnsupportedDistributionError(f"Unsupported machine architecture '{machine}'") from e


def detect_distribution(
    os_release_path: Path,
    codename: str | None = None,
    architecture: str | None = None,
    keyring: Path | None = None,
) -> Distribution:
    """Work out the target distribution, preferring explicit values over the base image."""
    if codename is None:
        codename = read_os_release(os_release_path).get("VERSION_CODENAME")
        if not codename:
            raise UnsupportedDistributionError(f"No VERSION_CODENAME in {os_release_path}")
    architecture = architecture or detect_architecture()
    return get_distribution(codename, architecture, keyring)
