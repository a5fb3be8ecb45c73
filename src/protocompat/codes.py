"""Rule id and severity constants.

These constants prevent stringly-typed rule ids and ensure configuration
and client code refer to rules that actually exist.
"""

from enum import Enum


class Severity(str, Enum):
    """Finding severity."""
    BREAKING = "breaking"  # corrupts or loses data for a deployed reader/writer
    ADVISORY = "advisory"  # a risk that does not corrupt data today


SEVERITY_RANK = {
    Severity.BREAKING: 0,
    Severity.ADVISORY: 1,
}


class RuleId(str, Enum):
    """Compatibility rule ids."""

    # Breaking by default
    TAG_REUSE = "R-TAG-REUSE"
    TYPE_CHANGE = "R-TYPE-CHANGE"
    REQUIRED_ADDED = "R-REQUIRED-ADDED"
    REQUIRED_CHANGED = "R-REQUIRED-CHANGED"
    ENUM_VALUE_REUSE = "R-ENUM-VALUE-REUSE"
    DEFAULT_VALUE_CHANGED = "R-DEFAULT-VALUE-CHANGED"
    REPEATED_TO_SCALAR = "R-REPEATED-TO-SCALAR"

    # Advisory by default
    FIELD_COUNT = "R-FIELD-COUNT"
    ENUM_DEFAULT = "R-ENUM-DEFAULT"
    UNRESERVED_REMOVAL = "R-UNRESERVED-REMOVAL"
    RESERVED_REMOVAL = "R-RESERVED-REMOVAL"
    PACKED_CHANGED = "R-PACKED-CHANGED"
    RESERVED_NAME_REUSE = "R-RESERVED-NAME-REUSE"
    TYPE_REMOVED = "R-TYPE-REMOVED"


KNOWN_RULE_IDS = frozenset(r.value for r in RuleId)


class ValidationCode(str, Enum):
    """Snapshot preflight issue codes."""

    # Errors (block a check)
    INVALID_SNAPSHOT = "INVALID_SNAPSHOT"

    # Warnings (non-blocking)
    MISSING_ZERO_VALUE = "MISSING_ZERO_VALUE"
    FIELD_COUNT_EXCEEDED = "FIELD_COUNT_EXCEEDED"
