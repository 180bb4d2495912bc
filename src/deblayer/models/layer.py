"""Layer cache records and environment mutations."""

import hashlib
import json
from collections.abc import Iterable
from datetime import UTC, datetime, timedelta
from typing import Any

from pydantic import BaseModel, Field


def compute_fingerprint(payload: Any) -> str:
    """Stable SHA-256 over a JSON-serializable payload."""
    encoded = json.dumps(payload, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(encoded.encode()).hexdigest()


class CacheRecord(BaseModel):
    fingerprint: str
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    def is_fresh(self, fingerprint: str, max_age_days: int, now: datetime | None = None) -> bool:
        """Whether the cached layer can be reused.

        A max_age_days of 0 (or less) always invalidates.
        """
        if max_age_days <= 0 or fingerprint != self.fingerprint:
            return False
        now = now or datetime.now(UTC)
        created_at = self.created_at
        if created_at.tzinfo is None:
            created_at = created_at.replace(tzinfo=UTC)
        return now - created_at <= timedelta(days=max_age_days)

    def invalidation_reason(self, fingerprint: str, max_age_days: int, now: datetime | None = None) -> str | None:
        if max_age_days <= 0:
            return "cache disabled"
        if fingerprint != self.fingerprint:
            return "configuration changed"
        if not self.is_fresh(fingerprint, max_age_days, now):
            return f"older than {max_age_days} days"
        return None


class LayerEnvironment(BaseModel):
    """Environment variable prepends exposed by a layer.

    Values are kept in priority order: the first entry of each list wins.
    """

    delimiter: str = ":"
    variables: dict[str, list[str]] = Field(default_factory=dict)

    def prepend(self, name: str, values: Iterable[str]) -> None:
        """Put values in front of anything already set for name, dropping duplicates."""
        new_values = list(dict.fromkeys(str(v) for v in values))
        if not new_values:
            return
        existing = [v for v in self.variables.get(name, []) if v not in new_values]
        self.variables[name] = new_values + existing

    def value_of(self, name: str) -> str | None:
        values = self.variables.get(name)
        return self.delimiter.join(values) if values else None
