"""Layer directories and their cache records.

A layer is a directory under the layers root plus a sidecar JSON record
(<layers_dir>/<name>.json) describing what the directory was built from.
The record is only written once the layer contents are complete, and is
removed before the layer is rebuilt, so an interrupted build never looks
like a cache hit.
"""

import logging
import shutil
from datetime import datetime
from pathlib import Path

from pydantic import ValidationError

from deblayer.models import CacheRecord, LayerEnvironment

logger = logging.getLogger(__name__)


class Layer:
    def __init__(self, layers_dir: Path, name: str):
        self.name = name
        self.path = (layers_dir / name).resolve()
        self.record_path = self.path.parent / f"{name}.json"

    def read_record(self) -> CacheRecord | None:
        if not self.record_path.is_file():
            return None
        try:
            return CacheRecord.model_validate_json(self.record_path.read_text(encoding="utf-8"))
        except (OSError, ValidationError) as e:
            logger.warning(f"Ignoring unreadable cache record for layer {self.name}: {e}")
            return None

    def write_record(self, record: CacheRecord) -> None:
        self.record_path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.record_path.with_suffix(".json.tmp")
        tmp_path.write_text(record.model_dump_json(indent=2), encoding="utf-8")
        tmp_path.replace(self.record_path)

    def delete_record(self) -> None:
        self.record_path.unlink(missing_ok=True)

    def restore_or_reset(self, fingerprint: str, max_age_days: int, now: datetime | None = None) -> bool:
        """Keep the layer if its record is fresh, otherwise wipe it.

        Returns:
            True if the existing contents were kept
        """
        record = self.read_record()
        if record is not None and self.path.is_dir():
            reason = record.invalidation_reason(fingerprint, max_age_days, now)
            if reason is None:
                logger.info(f"Restored layer {self.name} from cache")
                return True
            logger.info(f"Invalidating layer {self.name} ({reason})")
        self.reset()
        return False

    def reset(self) -> None:
        """Drop the record first, then the contents, and start with an empty directory."""
        self.delete_record()
        if self.path.exists():
            shutil.rmtree(self.path)
        self.path.mkdir(parents=True, exist_ok=True)

    def write_environment(self, environment: LayerEnvironment) -> Path:
        """Write environment prepends as env/<NAME>.prepend + env/<NAME>.delim files."""
        env_dir = self.path / "env"
        if env_dir.exists():
            shutil.rmtree(env_dir)
        env_dir.mkdir(parents=True)
        for name in environment.variables:
            value = environment.value_of(name)
            if value is None:
                continue
            (env_dir / f"{name}.prepend").write_text(value, encoding="utf-8")
            (env_dir / f"{name}.delim").write_text(environment.delimiter, encoding="utf-8")
        return env_dir
