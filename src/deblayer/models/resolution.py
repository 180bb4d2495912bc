"""Outputs of dependency resolution."""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, computed_field

from deblayer.models.packages import PackageRecord


class Provenance(str, Enum):
    """Why a package ended up in the install plan.
    EXPLICIT: Requested by the user.
    TRANSITIVE: Pulled in through Depends/Pre-Depends.
    SPECIAL_CASE: Added from the special-case table.
    """

    EXPLICIT = "explicit"
    TRANSITIVE = "transitive"
    SPECIAL_CASE = "special-case"


class ResolvedPackage(BaseModel):
    model_config = ConfigDict(frozen=True)

    record: PackageRecord
    provenance: Provenance
    order: int
    dependency_path: list[str] = Field(default_factory=list)
    env: dict[str, str] = Field(default_factory=dict)

    @property
    def name(self) -> str:
        return self.record.name

    @property
    def version(self) -> str:
        return self.record.version


class SkippedPackage(BaseModel):
    """A package already present on the base system."""

    model_config = ConfigDict(frozen=True)

    name: str
    provenance: Provenance
    dependency_path: list[str] = Field(default_factory=list)
    env: dict[str, str] = Field(default_factory=dict)


class Notification(BaseModel):
    """Advisory: extra packages added while resolving one requested package."""

    model_config = ConfigDict(frozen=True)

    package: str
    added: list[str]

    @computed_field
    @property
    def message(self) -> str:
        noun = "package" if len(self.added) == 1 else "packages"
        return (
            f"Added {len(self.added)} {noun} required by {self.package}: {', '.join(self.added)}. "
            f"If this is not correct, set skip_dependencies = true for {self.package} "
            "and list the packages it needs explicitly."
        )


class Resolution(BaseModel):
    resolved: list[ResolvedPackage] = Field(default_factory=list)
    skipped: list[SkippedPackage] = Field(default_factory=list)
    notifications: list[Notification] = Field(default_factory=list)

    @property
    def resolved_names(self) -> list[str]:
        return [package.name for package in self.resolved]

    @property
    def skipped_names(self) -> list[str]:
        return [package.name for package in self.skipped]
