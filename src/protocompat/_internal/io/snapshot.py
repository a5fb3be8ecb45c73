"""Snapshot I/O helpers (internal).

Snapshots arrive as JSON documents (the SchemaSnapshot model dumped as JSON)
or as binary FileDescriptorSets written by `protoc --descriptor_set_out`.
Every failure surfaces as InputError before any analysis starts.
"""

import json
from pathlib import Path
from typing import Any, Dict, List, Union

from pydantic import ValidationError

from protocompat.kernel.errors import InputError
from protocompat.kernel.model import SchemaSnapshot

DESCRIPTOR_SET_SUFFIXES = frozenset({".pb", ".binpb", ".desc", ".protoset"})

SnapshotSource = Union[SchemaSnapshot, Dict[str, Any], str, Path]


def validation_problems(e: ValidationError) -> List[str]:
    """Flatten a pydantic ValidationError into `loc: message` lines."""
    problems = []
    for error in e.errors():
        loc = ".".join(str(part) for part in error.get("loc", ()))
        msg = error["msg"]
        if msg.startswith("Value error, "):
            msg = msg[len("Value error, "):]
        problems.append(f"{loc}: {msg}" if loc else msg)
    return problems


def snapshot_from_dict(data: Dict[str, Any], source: str | None = None) -> SchemaSnapshot:
    try:
        return SchemaSnapshot.model_validate(data)
    except ValidationError as e:
        raise InputError(validation_problems(e), source=source) from e


def _load_json_snapshot(path: Path) -> SchemaSnapshot:
    try:
        with open(path, 'r', encoding='utf-8') as f:
            data = json.load(f)
    except OSError as e:
        raise InputError([f"cannot read file: {e}"], source=str(path)) from e
    except UnicodeDecodeError as e:
        raise InputError([f"not valid UTF-8: {e}"], source=str(path)) from e
    except json.JSONDecodeError as e:
        raise InputError([f"not valid JSON: {e}"], source=str(path)) from e
    if not isinstance(data, dict):
        raise InputError(["top-level JSON value must be an object"], source=str(path))
    return snapshot_from_dict(data, source=str(path))


def _load_descriptor_snapshot(path: Path) -> SchemaSnapshot:
    from protocompat.adapters.descriptor_set import load_descriptor_set

    return load_descriptor_set(path)


def load_snapshot(source: SnapshotSource) -> SchemaSnapshot:
    """Load a snapshot from a model, a dict, or a file path (format by suffix)."""
    if isinstance(source, SchemaSnapshot):
        return source
    if isinstance(source, dict):
        return snapshot_from_dict(source)
    path = Path(source)
    if path.suffix.lower() in DESCRIPTOR_SET_SUFFIXES:
        return _load_descriptor_snapshot(path)
    return _load_json_snapshot(path)
