"""Models for package index records and the index built from them."""

import re
from collections.abc import Iterable

from debian.debian_support import Version
from pydantic import BaseModel, ConfigDict, Field, field_validator

type OptionalStr = str | None

# Package names must consist only of lower case letters, digits, plus and minus
# signs, and periods; at least two characters, starting alphanumeric.
# https://www.debian.org/doc/debian-policy/ch-controlfields.html#source
PACKAGE_NAME_PATTERN = re.compile(r"^[a-z0-9][a-z0-9+.\-]+$")

# leading package name of a relationship entry, e.g. "python3:any (>= 3.10) [amd64]" -> "python3"
_RELATION_NAME_PATTERN = re.compile(r"^\s*([^\s(\[<:|,]+)")


def _relation_names(field: str | None, first_alternative_only: bool = True) -> list[str]:
    names: list[str] = []
    if not field:
        return names
    for group in field.split(","):
        alternatives = group.split("|")
        if first_alternative_only:
            alternatives = alternatives[:1]
        for alternative in alternatives:
            if match := _RELATION_NAME_PATTERN.match(alternative):
                name = match.group(1)
                if name not in names:
                    names.append(name)
    return names


class PackageRecord(BaseModel):
    """One paragraph of a Packages index."""

    model_config = ConfigDict(frozen=True)

    name: str
    version: str
    architecture: str
    filename: str
    sha256: str
    size: int | None = None
    depends: OptionalStr = None
    pre_depends: OptionalStr = None
    provides: OptionalStr = None
    repository_uri: str = ""

    @property
    def download_url(self) -> str:
        return f"{self.repository_uri.rstrip('/')}/{self.filename.lstrip('/')}"

    def parsed_version(self) -> Version:
        return Version(self.version)

    def dependencies(self) -> list[str]:
        """Names from Pre-Depends then Depends, taking only the first alternative of each group.

        This deliberately ignores alternatives separated by "|" and drops version,
        architecture and profile qualifiers; only the package names matter for
        building a simple dependency list.
        https://www.debian.org/doc/debian-policy/ch-relationships#syntax-of-relationship-fields
        """
        names = _relation_names(self.pre_depends)
        for name in _relation_names(self.depends):
            if name not in names:
                names.append(name)
        return names

    def provided_names(self) -> list[str]:
        """Virtual package names this package provides."""
        return _relation_names(self.provides, first_alternative_only=False)


class PackageIndex(BaseModel):
    """Highest available version of every package, plus the virtual packages that map onto them."""

    model_config = ConfigDict(frozen=True)

    packages: dict[str, PackageRecord] = Field(default_factory=dict)
    # https://www.debian.org/doc/debian-policy/ch-relationships.html#virtual-packages-provides
    virtual_packages: dict[str, list[str]] = Field(default_factory=dict)
    packages_indexed: int = 0

    @classmethod
    def from_records(cls, records: Iterable[PackageRecord]) -> "PackageIndex":
        """Merge records by name, keeping the highest version.

        Equal versions keep whichever record came first, so callers control the
        tie-break through iteration order.
        """
        selected: dict[str, PackageRecord] = {}
        versions: dict[str, Version] = {}
        virtual_packages: dict[str, list[str]] = {}
        count = 0

        for record in records:
            count += 1
            version = record.parsed_version()
            if record.name not in selected or version > versions[record.name]:
                selected[record.name] = record
                versions[record.name] = version
            for provided in record.provided_names():
                providers = virtual_packages.setdefault(provided, [])
                if record.name not in providers:
                    providers.append(record.name)

        return cls(packages=selected, virtual_packages=virtual_packages, packages_indexed=count)

    def get(self, name: str) -> PackageRecord | None:
        return self.packages.get(name)

    def providers(self, name: str) -> list[str]:
        return list(self.virtual_packages.get(name, []))

    def __contains__(self, name: object) -> bool:
        return name in self.packages

    def __len__(self) -> int:
        return len(self.packages)


class RequestedPackage(BaseModel):
    """A package the user asked for."""

    model_config = ConfigDict(frozen=True)

    name: str
    skip_dependencies: bool = False
    force: bool = False
    env: dict[str, str] = Field(default_factory=dict)

    @field_validator("name")
    @classmethod
    def validate_name(cls, value: str) -> str:
        value = value.strip()
        if not PACKAGE_NAME_PATTERN.match(value):
            raise ValueError(f"'{value}' is not a valid Debian package name")
        return value
