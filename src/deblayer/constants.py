from pathlib import Path

UBUNTU_ARCHIVE_KEYRING = Path("/usr/share/keyrings/ubuntu-archive-keyring.gpg")

# codename -> (distro name, distro version)
SUPPORTED_RELEASES = {
    "jammy": ("ubuntu", "22.04"),
    "noble": ("ubuntu", "24.04"),
}

# architecture -> mirror serving it
ARCHITECTURE_MIRRORS = {
    "amd64": "http://archive.ubuntu.com/ubuntu",
    "arm64": "http://ports.ubuntu.com/ubuntu-ports",
}

# https://wiki.debian.org/Multiarch/Tuples
MULTIARCH_NAMES = {
    "amd64": "x86_64-linux-gnu",
    "arm64": "aarch64-linux-gnu",
}

# platform.machine() -> debian architecture
MACHINE_ARCHITECTURES = {
    "x86_64": "amd64",
    "amd64": "amd64",
    "aarch64": "arm64",
    "arm64": "arm64",
}

# fmt: off
DEFAULT_COMPONENTS = ["main", "universe"]
SUITE_SUFFIXES = ["", "-updates", "-security"]
# fmt: on

INSTALL_DIR_PLACEHOLDER = "{install_dir}"

# Packages whose runtime needs are not declared in their Depends/Pre-Depends.
# Each extra package is resolved alongside the key package.
SPECIAL_CASE_PACKAGES: dict[str, list[str]] = {
    "imagemagick": ["ghostscript"],
    "graphviz": ["fonts-liberation"],
}

# Extra variables a package needs to locate its own files when it lives
# outside the default system prefix.
PACKAGE_ENVIRONMENT: dict[str, dict[str, str]] = {
    "git": {
        "GIT_EXEC_PATH": "{install_dir}/usr/lib/git-core",
        "GIT_TEMPLATE_DIR": "{install_dir}/usr/share/git-core/templates",
    },
    "ghostscript": {
        "GS_LIB": "{install_dir}/usr/share/ghostscript",
        "GS_FONTPATH": "{install_dir}/usr/share/fonts",
    },
}
