"""Check command: wrapper around the kernel engine with report rendering.

Every renderer is a pure serialization of one CheckResult; none of them
re-derives findings or the verdict.
"""

import logging
import threading
from pathlib import Path
from typing import Any, Dict, List, Literal, Optional, Tuple

from protocompat.contracts import CheckResult, Finding
from protocompat._internal.canonical_json import canonical_dumps

logger = logging.getLogger(__name__)

ReportFormat = Literal["text", "jsonl", "json"]

# Exit codes: 0 = pass, 1 = fail, 2 = input/config/internal error, 3 = cancelled
EXIT_PASS = 0
EXIT_FAIL = 1
EXIT_ERROR = 2
EXIT_CANCELLED = 3


def exit_code_for(result: CheckResult) -> int:
    if result.verdict == "unknown":
        return EXIT_CANCELLED
    return EXIT_PASS if result.verdict == "pass" else EXIT_FAIL


def finding_to_dict(finding: Finding) -> Dict[str, Any]:
    """Stable record shape; optional values are always present (possibly null)."""
    return {
        "rule_id": finding.rule_id,
        "severity": finding.severity.value,
        "path": finding.path,
        "message": finding.message,
        "old_value": finding.old_value,
        "new_value": finding.new_value,
    }


def summary_to_dict(result: CheckResult) -> Dict[str, Any]:
    return {
        "verdict": result.verdict,
        "cancelled": result.cancelled,
        "breaking": result.summary.breaking,
        "advisory": result.summary.advisory,
        "total": result.summary.total,
        "types_checked": result.types_checked,
        "types_skipped": result.types_skipped,
    }


def render_jsonl(result: CheckResult) -> str:
    """One `finding` record per line, then one `summary` record."""
    lines = []
    for finding in result.findings:
        lines.append(canonical_dumps({"record": "finding", **finding_to_dict(finding)}))
    lines.append(canonical_dumps({"record": "summary", **summary_to_dict(result)}))
    return "\n".join(lines) + "\n"


def render_json(result: CheckResult) -> str:
    """Single JSON document: summary plus the ordered findings."""
    doc = {
        "summary": summary_to_dict(result),
        "findings": [finding_to_dict(f) for f in result.findings],
    }
    return canonical_dumps(doc) + "\n"


def render_text(result: CheckResult) -> str:
    """Human-readable report."""
    lines: List[str] = []
    counts = f"{result.summary.breaking} breaking, {result.summary.advisory} advisory"
    if result.verdict == "unknown":
        lines.append(
            f"[?] Compatibility check cancelled: verdict unknown "
            f"({result.types_skipped} type(s) not evaluated; {counts} so far)"
        )
    elif result.verdict == "fail":
        lines.append(f"[!] Compatibility check failed: {counts}")
    else:
        lines.append(f"[OK] Compatibility check passed: {counts}")

    for finding in result.findings:
        lines.append("")
        lines.append(f"{finding.severity.value.upper():<9} {finding.rule_id}  {finding.path}")
        lines.append(f"  {finding.message}")
        if finding.old_value is not None:
            lines.append(f"  old: {finding.old_value}")
        if finding.new_value is not None:
            lines.append(f"  new: {finding.new_value}")

    return "\n".join(lines) + "\n"


_RENDERERS = {
    "text": render_text,
    "jsonl": render_jsonl,
    "json": render_json,
}


def render(result: CheckResult, fmt: ReportFormat = "text") -> str:
    if fmt not in _RENDERERS:
        raise ValueError(f"format must be one of {', '.join(sorted(_RENDERERS))}")
    return _RENDERERS[fmt](result)


def run_check_files(
    base_path: Path,
    candidate_path: Path,
    config: Any = None,
    fmt: ReportFormat = "text",
    output_path: Optional[Path] = None,
    cancel_event: Optional[threading.Event] = None,
) -> Tuple[int, str]:
    """
    Run a check and render the report.

    This is a thin wrapper over protocompat.api.check() so CLI and API stay in sync.
    Errors (ConfigurationError, InputError) propagate to the caller.

    Returns:
        Tuple of (exit_code, content)
        Exit codes: 0 = pass, 1 = fail, 3 = cancelled
    """
    from .api import check

    result = check(base_path, candidate_path, config=config, cancel_event=cancel_event)
    content = render(result, fmt)

    if output_path is not None:
        output_path.parent.mkdir(parents=True, exist_ok=True)
        with open(output_path, 'w', encoding='utf-8') as f:
            f.write(content)
        logger.info("Wrote %s report to %s", fmt, output_path)

    return exit_code_for(result), content
