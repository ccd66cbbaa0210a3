"""
stepline_config -- YAML job definitions.

Responsibility:
    Loads job definition files, validates them and assembles runnable
    ``JobConfig`` objects from them.  Also reads the runtime settings
    (database URL, log level) from the environment.

Architecture position:
    Configuration -- sits above ``stepline_batch`` and ``stepline_kernel``.
    The engine never imports from ``stepline_config``.

Failure modes:
    - ``FileNotFoundError`` -- the definition file does not exist.
    - ``yaml.YAMLError`` / ``KeyError`` / ``ValueError`` -- malformed file.
    - ``InvalidJobDefinitionError`` -- a job failed validation.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path

from stepline_config.assembler import assemble_job, assemble_listeners
from stepline_config.loader import load_yaml_file, parse_definition_set
from stepline_config.schema import JobDefinitionSet
from stepline_config.validator import validate_definition_set, validate_job_def
from stepline_kernel.exceptions import InvalidJobDefinitionError
from stepline_kernel.logging_config import get_logger

logger = get_logger("config")

DEFAULT_DATABASE_URL = "sqlite:///stepline.db"


def load_job_definitions(path: str | Path) -> JobDefinitionSet:
    """Load, parse and validate a job definition file.

    Raises:
        FileNotFoundError: if the file does not exist.
        InvalidJobDefinitionError: if any job fails validation.
    """
    path = Path(path)
    definitions = parse_definition_set(load_yaml_file(path), source_path=str(path))

    result = validate_definition_set(definitions)
    for warning in result.warnings:
        logger.warning("job_definition_warning", extra={"detail": warning})
    if not result.is_valid:
        raise InvalidJobDefinitionError(path.name, result.errors)

    logger.info(
        "job_definitions_loaded",
        extra={
            "path": str(path),
            "jobs": list(definitions.job_names),
            "checksum": definitions.checksum,
        },
    )
    return definitions


@dataclass(frozen=True)
class RuntimeSettings:
    """Process settings read from the environment."""

    database_url: str = DEFAULT_DATABASE_URL
    log_level: int = logging.INFO

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None) -> RuntimeSettings:
        env = os.environ if environ is None else environ
        level_name = env.get("STEPLINE_LOG_LEVEL", "INFO").upper()
        level = logging.getLevelName(level_name)
        if not isinstance(level, int):
            raise ValueError(f"Unknown STEPLINE_LOG_LEVEL '{level_name}'")
        return cls(
            database_url=env.get("STEPLINE_DATABASE_URL", DEFAULT_DATABASE_URL),
            log_level=level,
        )


__all__ = [
    "DEFAULT_DATABASE_URL",
    "JobDefinitionSet",
    "RuntimeSettings",
    "assemble_job",
    "assemble_listeners",
    "load_job_definitions",
    "validate_job_def",
]
