"""protocompat: wire-level compatibility checks for Protocol Buffers schemas."""

from importlib.metadata import version, PackageNotFoundError

try:
    __version__ = version("protocompat")
except PackageNotFoundError:
    __version__ = "dev"

# Public API exports
from protocompat.api import check, validate, list_rules, ValidationIssue, ValidationResult
from protocompat.contracts import CheckResult, Finding, FindingSummary, RuleInfo
from protocompat.codes import RuleId, Severity, ValidationCode
from protocompat.kernel.config import CheckerConfig
from protocompat.kernel.errors import CheckerError, ConfigurationError, InputError, RuleEvaluationError
from protocompat.kernel.model import SchemaSnapshot

__all__ = [
    "__version__",
    "check",
    "validate",
    "list_rules",
    "ValidationIssue",
    "ValidationResult",
    "CheckResult",
    "Finding",
    "FindingSummary",
    "RuleInfo",
    "RuleId",
    "Severity",
    "ValidationCode",
    "CheckerConfig",
    "CheckerError",
    "ConfigurationError",
    "InputError",
    "RuleEvaluationError",
    "SchemaSnapshot",
]
