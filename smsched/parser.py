"""Instance loaders.

Supported inputs
----------------
Text (any suffix other than .yaml/.yml/.json)
    One job per line: ``<id> <release> <duration> <due>``. Blank lines and
    ``#`` comments are ignored. Line order is the canonical job order.
YAML / JSON
    ``{"jobs": {id: [release, duration, due], ...}}`` or the bare mapping;
    a job may also be ``{release: .., duration: .., due: ..}``.
"""

from __future__ import annotations

import json
import os
from typing import Any, Mapping

import yaml

from .exceptions import InvalidInstance
from .models import Instance


def _number(token: Any, where: str) -> float:
    if isinstance(token, bool):
        raise InvalidInstance(f"{where}: expected a number, got {token!r}")
    if isinstance(token, (int, float)):
        return token
    try:
        return int(token)
    except (TypeError, ValueError):
        pass
    try:
        return float(token)
    except (TypeError, ValueError):
        raise InvalidInstance(f"{where}: expected a number, got {token!r}") from None


def parse_instance_text(text: str) -> Instance:
    """Parse the whitespace text format."""
    records = []
    for lineno, raw in enumerate(text.splitlines(), start=1):
        line = raw.split("#", 1)[0].strip()
        if not line:
            continue
        tokens = line.split()
        if len(tokens) != 4:
            raise InvalidInstance(
                f"line {lineno}: expected 'id release duration due', got {len(tokens)} tokens"
            )
        job_id = tokens[0]
        where = f"line {lineno}"
        records.append(
            (
                job_id,
                _number(tokens[1], where),
                _number(tokens[2], where),
                _number(tokens[3], where),
            )
        )
    if not records:
        raise InvalidInstance("No jobs found")
    return Instance.from_records(records)


def instance_from_mapping(data: Mapping) -> Instance:
    """Build an instance from a decoded YAML/JSON document."""
    if not isinstance(data, Mapping):
        raise InvalidInstance("Instance document must be a mapping")
    jobs = data.get("jobs", data)
    if not isinstance(jobs, Mapping):
        raise InvalidInstance("'jobs' must map job ids to (release, duration, due)")
    records = []
    for job_id, entry in jobs.items():
        where = f"job {job_id!r}"
        if isinstance(entry, Mapping):
            try:
                values = (entry["release"], entry["duration"], entry["due"])
            except KeyError as e:
                raise InvalidInstance(f"{where}: missing key {e.args[0]!r}") from None
        elif isinstance(entry, (list, tuple)) and len(entry) == 3:
            values = tuple(entry)
        else:
            raise InvalidInstance(f"{where}: expected [release, duration, due], got {entry!r}")
        records.append((job_id, *(_number(v, where) for v in values)))
    return Instance.from_records(records)


def load_instance(path: str) -> Instance:
    """Load an instance file, dispatching on its suffix.

    Raises:
        FileNotFoundError: If ``path`` does not exist.
        InvalidInstance: If the content is malformed or breaks job invariants.
    """
    with open(path, "r", encoding="utf-8") as f:
        text = f.read()
    suffix = os.path.splitext(path)[1].lower()
    if suffix in (".yaml", ".yml"):
        try:
            data = yaml.safe_load(text)
        except yaml.YAMLError as e:
            raise InvalidInstance(f"{path}: invalid YAML: {e}") from e
        return instance_from_mapping(data or {})
    if suffix == ".json":
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise InvalidInstance(f"{path}: invalid JSON: {e}") from e
        return instance_from_mapping(data)
    return parse_instance_text(text)
