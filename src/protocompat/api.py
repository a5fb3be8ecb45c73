"""Public API for the protocompat package.

High-level functions that return complete, structured results.
Callers should use these functions instead of importing from _internal.
"""

import os
import threading
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel

from protocompat.codes import ValidationCode
from protocompat.contracts import CheckResult, RuleInfo
from protocompat.kernel.config import DEFAULT_FIELD_COUNT_THRESHOLD, CheckerConfig, load_config
from protocompat.kernel.engine import run_check
from protocompat.kernel.errors import InputError
from protocompat.kernel.model import SchemaSnapshot, Syntax
from protocompat.kernel.rules import build_default_registry
from protocompat._internal.io.snapshot import load_snapshot

SnapshotInput = Union[SchemaSnapshot, Dict[str, Any], str, os.PathLike, Path]
ConfigInput = Union[None, CheckerConfig, Dict[str, Any], str, os.PathLike, Path]


class ValidationIssue(BaseModel):
    """A single validation issue (error or warning)."""
    code: str  # ValidationCode value
    message: str
    element_id: Optional[str] = None  # qualified type name, when the issue is about one type


class ValidationResult(BaseModel):
    """Result of a snapshot preflight check."""
    ok: bool  # True if no errors (warnings don't block)
    errors: List[ValidationIssue]
    warnings: List[ValidationIssue]


def check(
    base: SnapshotInput,
    candidate: SnapshotInput,
    config: ConfigInput = None,
    cancel_event: Optional[threading.Event] = None,
) -> CheckResult:
    """
    Check `candidate` against `base` for backward/forward compatibility.

    Configuration is validated before either snapshot is read.

    Raises:
        ConfigurationError: unknown option or out-of-range value
        InputError: a snapshot is malformed or has unresolved references
    """
    checker_config = load_config(config)
    base_snapshot = load_snapshot(base)
    candidate_snapshot = load_snapshot(candidate)
    return run_check(
        base_snapshot,
        candidate_snapshot,
        config=checker_config,
        registry=build_default_registry(),
        cancel_event=cancel_event,
    )


def validate(
    snapshot: SnapshotInput,
    field_count_threshold: int = DEFAULT_FIELD_COUNT_THRESHOLD,
) -> ValidationResult:
    """
    Pure preflight for a single snapshot.

    Structural problems (the same ones that make `check` raise InputError)
    are errors. Conventions that rules would later flag are warnings.
    Does NOT mutate or write anything.
    """
    errors: List[ValidationIssue] = []
    warnings: List[ValidationIssue] = []

    try:
        snapshot_obj = load_snapshot(snapshot)
    except InputError as e:
        for problem in e.problems:
            errors.append(ValidationIssue(
                code=ValidationCode.INVALID_SNAPSHOT.value,
                message=problem,
            ))
        return ValidationResult(ok=False, errors=errors, warnings=warnings)

    for enum in sorted(snapshot_obj.enums, key=lambda e: e.name):
        if not enum.has_zero_value:
            hint = "proto3 requires the first value to be 0" if enum.syntax == Syntax.PROTO3 else "no value is bound to 0"
            warnings.append(ValidationIssue(
                code=ValidationCode.MISSING_ZERO_VALUE.value,
                message=f"Enum '{enum.name}': {hint}",
                element_id=enum.name,
            ))

    for message in sorted(snapshot_obj.messages, key=lambda m: m.name):
        if len(message.fields) > field_count_threshold:
            warnings.append(ValidationIssue(
                code=ValidationCode.FIELD_COUNT_EXCEEDED.value,
                message=(
                    f"Message '{message.name}' has {len(message.fields)} fields "
                    f"(threshold {field_count_threshold})"
                ),
                element_id=message.name,
            ))

    return ValidationResult(ok=True, errors=errors, warnings=warnings)


def list_rules() -> List[RuleInfo]:
    """Describe every registered rule, in registry order."""
    return [
        RuleInfo(
            rule_id=rule.rule_id,
            description=rule.description,
            severities=dict(rule.severities),
        )
        for rule in build_default_registry().values()
    ]
