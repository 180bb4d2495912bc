"""Reads the packages to install from project.toml.

    [tool.deblayer]
    install = [
        "git",
        { name = "imagemagick", skip_dependencies = true, env = { MAGICK_HOME = "{install_dir}/usr" } },
    ]
"""

import logging
import tomllib
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, ValidationError, field_validator

from deblayer.errors import ConfigError
from deblayer.models import RequestedPackage

logger = logging.getLogger(__name__)


class ProjectConfig(BaseModel):
    install: list[RequestedPackage] = Field(default_factory=list)

    @field_validator("install", mode="before")
    @classmethod
    def expand_names(cls, value: Any) -> Any:
        if not isinstance(value, list):
            raise ValueError("install must be an array of package names or tables")
        return [{"name": item} if isinstance(item, str) else item for item in value]


def parse_project(data: dict[str, Any], source: str = "project.toml") -> list[RequestedPackage]:
    tool = data.get("tool", {})
    if not isinstance(tool, dict):
        raise ConfigError(f"[tool] in {source} must be a table")
    table = tool.get("deblayer")
    if table is None:
        return []
    if not isinstance(table, dict):
        raise ConfigError(f"[tool.deblayer] in {source} must be a table")

    try:
        config = ProjectConfig.model_validate(table)
    except ValidationError as e:
        raise ConfigError(f"Invalid [tool.deblayer] in {source}: {e}") from e
    return config.install


def load_project(path: Path) -> list[RequestedPackage]:
    """Load the requested packages from a project descriptor.

    Raises:
        ConfigError: if the file is missing, is not valid TOML, or has an invalid [tool.deblayer] table
    """
    try:
        with path.open("rb") as f:
            data = tomllib.load(f)
    except FileNotFoundError as e:
        raise ConfigError(f"Project descriptor {path} does not exist") from e
    except (OSError, tomllib.TOMLDecodeError) as e:
        raise ConfigError(f"Unable to read project descriptor {path}: {e}") from e

    requested = parse_project(data, str(path))
    logger.debug(f"Loaded {len(requested)} requested packages from {path}")
    return requested
