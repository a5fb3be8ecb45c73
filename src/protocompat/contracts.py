"""Public result models for protocompat package."""

from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from protocompat.codes import Severity


Verdict = Literal["pass", "fail", "unknown"]


class Finding(BaseModel):
    """A single compatibility violation or risk."""
    rule_id: str  # e.g. "R-TAG-REUSE"
    severity: Severity
    path: str  # package.Message.field | package.Enum.VALUE | package.Type
    message: str
    old_value: Optional[str] = None
    new_value: Optional[str] = None

    model_config = ConfigDict(frozen=True, extra="forbid")


class FindingSummary(BaseModel):
    """Finding counts by severity."""
    breaking: int = 0
    advisory: int = 0
    total: int = 0


class CheckResult(BaseModel):
    """Verdict plus the full ordered findings list."""
    verdict: Verdict
    findings: List[Finding] = Field(default_factory=list)  # sorted, deduplicated
    summary: FindingSummary = Field(default_factory=FindingSummary)
    cancelled: bool = False  # True when the run stopped early; verdict is then "unknown"
    types_checked: int = 0
    types_skipped: int = 0

    @property
    def passed(self) -> bool:
        return self.verdict == "pass"


class RuleInfo(BaseModel):
    """Registry entry description, for listing rules."""
    rule_id: str
    description: str
    severities: dict[str, Severity]  # variant -> default severity
