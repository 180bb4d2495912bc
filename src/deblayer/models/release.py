"""Parsed Release file metadata."""

from datetime import UTC, datetime

from pydantic import BaseModel, ConfigDict, Field


class ReleaseChecksum(BaseModel):
    model_config = ConfigDict(frozen=True)

    sha256: str
    size: int


class ReleaseMetadata(BaseModel):
    """The trusted parts of a verified Release file."""

    model_config = ConfigDict(frozen=True)

    suite: str | None = None
    codename: str | None = None
    date: datetime | None = None
    valid_until: datetime | None = None
    acquire_by_hash: bool = False
    architectures: list[str] = Field(default_factory=list)
    components: list[str] = Field(default_factory=list)
    sha256: dict[str, ReleaseChecksum] = Field(default_factory=dict)

    def checksum_for(self, path: str) -> ReleaseChecksum | None:
        """Return the declared checksum for an index path relative to the suite directory."""
        return self.sha256.get(path)

    def is_stale(self, now: datetime | None = None) -> bool:
        if self.valid_until is None:
            return False
        now = now or datetime.now(UTC)
        valid_until = self.valid_until
        if valid_until.tzinfo is None:
            valid_until = valid_until.replace(tzinfo=UTC)
        return valid_until < now
