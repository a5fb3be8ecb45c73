"""Merge per-type findings into one deterministic result.

Findings arrive in arbitrary order from parallel workers. Everything here is
a pure function of the finding multiset, so the same inputs always yield a
byte-identical result regardless of scheduling.
"""

from typing import Dict, Iterable, List, Tuple

from protocompat.codes import SEVERITY_RANK, Severity
from protocompat.contracts import CheckResult, Finding, FindingSummary, Verdict
from .config import CheckerConfig


def _preference_key(f: Finding) -> Tuple:
    # Most severe wins; the remaining fields only break ties deterministically.
    return (SEVERITY_RANK[f.severity], f.message, f.old_value or "", f.new_value or "")


def sort_key(f: Finding) -> Tuple[int, str, str]:
    """Ordering: severity (breaking first), then path, then rule id."""
    return (SEVERITY_RANK[f.severity], f.path, f.rule_id)


def dedupe_findings(findings: Iterable[Finding]) -> List[Finding]:
    """Keep one finding per (rule_id, path), the most severe one."""
    best: Dict[Tuple[str, str], Finding] = {}
    for f in findings:
        key = (f.rule_id, f.path)
        current = best.get(key)
        if current is None or _preference_key(f) < _preference_key(current):
            best[key] = f
    return sorted(best.values(), key=sort_key)


def summarize(findings: List[Finding]) -> FindingSummary:
    breaking = sum(1 for f in findings if f.severity == Severity.BREAKING)
    advisory = sum(1 for f in findings if f.severity == Severity.ADVISORY)
    return FindingSummary(breaking=breaking, advisory=advisory, total=len(findings))


def decide_verdict(findings: List[Finding], config: CheckerConfig, cancelled: bool = False) -> Verdict:
    """
    fail if any breaking finding (or any advisory under treat_advisory_as_error),
    unknown if the run was cancelled, pass otherwise.
    """
    if cancelled:
        return "unknown"
    for f in findings:
        if f.severity == Severity.BREAKING:
            return "fail"
        if config.treat_advisory_as_error and f.severity == Severity.ADVISORY:
            return "fail"
    return "pass"


def aggregate(
    findings: Iterable[Finding],
    config: CheckerConfig,
    cancelled: bool = False,
    types_checked: int = 0,
    types_skipped: int = 0,
) -> CheckResult:
    ordered = dedupe_findings(findings)
    return CheckResult(
        verdict=decide_verdict(ordered, config, cancelled),
        findings=ordered,
        summary=summarize(ordered),
        cancelled=cancelled,
        types_checked=types_checked,
        types_skipped=types_skipped,
    )
