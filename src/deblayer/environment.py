"""Environment variables exposed by the packages layer."""

import logging
import os
import re
from collections.abc import Callable, Mapping, Sequence
from pathlib import Path

from deblayer.constants import INSTALL_DIR_PLACEHOLDER, PACKAGE_ENVIRONMENT
from deblayer.models import LayerEnvironment, ResolvedPackage, SkippedPackage

logger = logging.getLogger(__name__)

SHARED_OBJECT_PATTERN = re.compile(r"\.so(\.\d+)*$")


def _is_shared_object(name: str) -> bool:
    return SHARED_OBJECT_PATTERN.search(name) is not None


def _is_header(name: str) -> bool:
    return name.endswith(".h")


def layer_directories(multiarch: str) -> dict[str, list[str]]:
    """Layer-relative directories prepended for each variable, highest priority first."""
    library_dirs = [f"usr/lib/{multiarch}", "usr/lib", f"lib/{multiarch}", "lib"]
    include_dirs = [f"usr/include/{multiarch}", "usr/include"]
    return {
        "PATH": ["bin", "usr/bin", "usr/sbin"],
        "LD_LIBRARY_PATH": library_dirs,
        "LIBRARY_PATH": library_dirs,
        "INCLUDE_PATH": include_dirs,
        "CPATH": include_dirs,
        "PKG_CONFIG_PATH": [f"usr/lib/{multiarch}/pkgconfig", "usr/lib/pkgconfig"],
    }


def find_nested_directories(base_dir: Path, matches: Callable[[str], bool]) -> list[Path]:
    """Directories below base_dir (not base_dir itself) holding a file accepted by matches.

    Sorted longest path first.
    """
    if not base_dir.is_dir():
        return []

    found: list[Path] = []
    for dirpath, _dirnames, filenames in os.walk(base_dir):
        directory = Path(dirpath)
        if directory == base_dir:
            continue
        if any(matches(name) for name in filenames):
            found.append(directory)
    return sorted(found, key=lambda p: (-len(str(p)), str(p)))


def _expand(layer_root: Path, variable: str, relative_dirs: Sequence[str]) -> list[str]:
    if variable in ("LD_LIBRARY_PATH", "LIBRARY_PATH"):
        matches = _is_shared_object
    elif variable in ("INCLUDE_PATH", "CPATH"):
        matches = _is_header
    else:
        return [str(layer_root / d) for d in relative_dirs]

    values: list[str] = []
    for relative_dir in relative_dirs:
        base_dir = layer_root / relative_dir
        values.extend(str(d) for d in find_nested_directories(base_dir, matches))
        values.append(str(base_dir))
    return list(dict.fromkeys(values))


def compose(
    layer_root: Path,
    resolved: Sequence[ResolvedPackage],
    skipped: Sequence[SkippedPackage],
    static_env_table: Mapping[str, Mapping[str, str]] = PACKAGE_ENVIRONMENT,
    user_overrides: Mapping[str, Mapping[str, str]] | None = None,
    multiarch: str = "x86_64-linux-gnu",
) -> LayerEnvironment:
    """Build the environment for a layer holding the resolved packages.

    Args:
        layer_root: Absolute path of the layer the packages were installed into
        resolved: Packages installed into the layer
        skipped: Packages left to the base system; their variables are still set
        static_env_table: Package name to variables the package needs
        user_overrides: Package name to variables set by the user, on top of each package's own env
        multiarch: Multiarch tuple of the target architecture

    Returns:
        The variables to prepend, highest priority value first
    """
    environment = LayerEnvironment()

    for variable, relative_dirs in layer_directories(multiarch).items():
        environment.prepend(variable, _expand(layer_root, variable, relative_dirs))

    names = list(dict.fromkeys([p.name for p in resolved] + [p.name for p in skipped]))
    overrides: dict[str, dict[str, str]] = {}
    for package in [*resolved, *skipped]:
        if package.env:
            overrides.setdefault(package.name, {}).update(package.env)
    for name, variables in (user_overrides or {}).items():
        overrides.setdefault(name, {}).update(variables)

    # static values first so the user's end up in front
    for table in (static_env_table, overrides):
        for name in names:
            for variable, value in table.get(name, {}).items():
                value = value.replace(INSTALL_DIR_PLACEHOLDER, str(layer_root))
                logger.debug(f"Setting {variable}={value} for {name}")
                environment.prepend(variable, [value])

    return environment
