"""Error taxonomy for the compatibility checker."""

from typing import Iterable


class CheckerError(Exception):
    """Base exception for checker errors."""
    pass


class InputError(CheckerError):
    """Raised when a snapshot is malformed or has unresolved references.

    Fatal: the run aborts before any findings are produced.
    """
    def __init__(self, problems: Iterable[str], source: str | None = None):
        self.problems = sorted(set(problems))
        self.source = source
        prefix = f"Invalid snapshot '{source}'" if source else "Invalid snapshot"
        details = "\n".join(f"  - {p}" for p in self.problems)
        super().__init__(f"{prefix}:\n{details}" if details else prefix)


class ConfigurationError(CheckerError):
    """Raised for unknown option names or out-of-range option values."""
    def __init__(self, problems: Iterable[str]):
        self.problems = sorted(set(problems))
        details = "\n".join(f"  - {p}" for p in self.problems)
        super().__init__(f"Invalid configuration:\n{details}")


class RuleEvaluationError(CheckerError):
    """Raised by a rule that cannot classify an entity.

    Contained per rule and per type: the engine turns it into an advisory
    finding and keeps going.
    """
    def __init__(self, rule_id: str, path: str, reason: str):
        self.rule_id = rule_id
        self.path = path
        self.reason = reason
        super().__init__(f"{rule_id} could not evaluate {path}: {reason}")
