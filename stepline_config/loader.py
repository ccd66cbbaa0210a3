"""
Job definition loader (``stepline_config.loader``).

Responsibility
--------------
Loads YAML job definition files and parses them into typed
``stepline_config.schema`` dataclass instances.

Invariants enforced
-------------------
* All parse errors raise ``ValueError`` or ``KeyError`` with descriptive
  messages; no silent defaults for required fields.
* Every parsed object is a frozen dataclass from ``schema.py``.
* ``compute_checksum`` produces a deterministic SHA-256 hash of the raw
  definition for identity and change detection.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing required keys in parsed dict  -> ``KeyError`` propagates.
* Wrong value types  -> ``ValueError``.

Expected file layout::

    jobs:
      - name: importUserJob
        restartable: true
        setup_sql: ["CREATE TABLE ..."]
        listeners:
          - type: table_report
            options: {table: people}
        steps:
          - name: stepToUppercase
            chunk_size: 10
            reader: {type: csv, options: {path: sample-data.csv}}
            processor: {type: uppercase}
            writer: {type: sql_insert, options: {table: people}}
            fault_policy: {skippable: [TransformError], skip_limit: 5}
            next:
              - {on: completed, to: step2}
"""

from __future__ import annotations

import hashlib
import json
from pathlib import Path
from typing import Any

import yaml

from stepline_config.schema import (
    ComponentDef,
    FaultPolicyDef,
    JobDef,
    JobDefinitionSet,
    StepDef,
    TransitionDef,
)


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        ValueError: if the top level is not a mapping.
    """
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: top level must be a mapping, got {type(data).__name__}")
    return data


def _int(value: Any, name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"'{name}' must be an integer, got {value!r}")
    return value


def _names(value: Any, name: str) -> tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str):
        return (value,)
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise ValueError(f"'{name}' must be a string or a list of strings, got {value!r}")
    return tuple(value)


def parse_component(data: Any, where: str) -> ComponentDef:
    """Parse a ComponentDef from ``{type: ..., options: {...}}`` or a bare type string."""
    if isinstance(data, str):
        return ComponentDef(type=data)
    if not isinstance(data, dict):
        raise ValueError(f"{where}: component must be a mapping or a type name, got {data!r}")
    options = data.get("options") or {}
    if not isinstance(options, dict):
        raise ValueError(f"{where}: 'options' must be a mapping")
    return ComponentDef(type=data["type"], options=dict(options))


def parse_fault_policy(data: dict[str, Any] | None) -> FaultPolicyDef:
    """Parse a FaultPolicyDef; a missing section means no fault tolerance."""
    if not data:
        return FaultPolicyDef()
    return FaultPolicyDef(
        skippable=_names(data.get("skippable"), "skippable"),
        skip_limit=_int(data.get("skip_limit", 0), "skip_limit"),
        retryable=_names(data.get("retryable"), "retryable"),
        retry_limit=_int(data.get("retry_limit", 0), "retry_limit"),
    )


def parse_transition(data: dict[str, Any]) -> TransitionDef:
    """Parse a TransitionDef.  ``on`` is required; ``to`` and ``end`` are optional."""
    return TransitionDef(
        on=str(data["on"]),
        to=data.get("to"),
        end=data.get("end"),
    )


def parse_step(data: dict[str, Any]) -> StepDef:
    """
    Parse a ``StepDef`` from a dict.

    Raises:
        KeyError: if ``name``, ``reader`` or ``writer`` is missing.
        ValueError: if a value has the wrong type.
    """
    name = data["name"]
    processor = data.get("processor")
    return StepDef(
        name=name,
        reader=parse_component(data["reader"], f"step '{name}' reader"),
        writer=parse_component(data["writer"], f"step '{name}' writer"),
        processor=(
            parse_component(processor, f"step '{name}' processor")
            if processor is not None
            else None
        ),
        chunk_size=_int(data.get("chunk_size", 10), "chunk_size"),
        fault_policy=parse_fault_policy(data.get("fault_policy")),
        transitions=tuple(parse_transition(t) for t in data.get("next", ())),
    )


def parse_job(data: dict[str, Any]) -> JobDef:
    """
    Parse a ``JobDef`` from a dict.

    Raises:
        KeyError: if ``name`` or ``steps`` is missing.
    """
    name = data["name"]
    setup_sql = data.get("setup_sql", ())
    if isinstance(setup_sql, str):
        setup_sql = (setup_sql,)
    return JobDef(
        name=name,
        steps=tuple(parse_step(s) for s in data["steps"]),
        restartable=bool(data.get("restartable", True)),
        description=data.get("description", ""),
        listeners=tuple(
            parse_component(l, f"job '{name}' listener")
            for l in data.get("listeners", ())
        ),
        setup_sql=tuple(setup_sql),
    )


def parse_definition_set(
    data: dict[str, Any], source_path: str | None = None,
) -> JobDefinitionSet:
    """Parse every job of a loaded definition file and stamp its checksum."""
    return JobDefinitionSet(
        jobs=tuple(parse_job(j) for j in data["jobs"]),
        source_path=source_path,
        checksum=compute_checksum(data),
    )


def compute_checksum(data: dict[str, Any]) -> str:
    """
    Compute SHA-256 checksum of canonical JSON serialization.

    Identical ``data`` always produces identical checksums.
    """
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()
