"""Checker configuration with strict validation."""

import json
from pathlib import Path
from typing import Any, Dict, FrozenSet, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from protocompat.codes import KNOWN_RULE_IDS, Severity
from .errors import ConfigurationError


DEFAULT_FIELD_COUNT_THRESHOLD = 200


def _check_rule_ids(ids, option: str):
    unknown = sorted(set(ids) - KNOWN_RULE_IDS)
    if unknown:
        raise ValueError(f"Unknown rule id(s) in {option}: {', '.join(unknown)}")


class CheckerConfig(BaseModel):
    """Recognized options. camelCase names are canonical; snake_case is accepted."""
    field_count_threshold: int = Field(DEFAULT_FIELD_COUNT_THRESHOLD, alias="fieldCountThreshold", ge=1)
    treat_advisory_as_error: bool = Field(False, alias="treatAdvisoryAsError")
    rule_allowlist: FrozenSet[str] = Field(frozenset(), alias="ruleAllowlist")
    rule_denylist: FrozenSet[str] = Field(frozenset(), alias="ruleDenylist")
    severity_overrides: Dict[str, Severity] = Field(default_factory=dict, alias="severityOverrides")
    narrowing_severity: Severity = Field(Severity.BREAKING, alias="narrowingSeverity")
    workers: Optional[int] = Field(None, ge=1)  # None = one per core

    model_config = ConfigDict(extra="forbid", frozen=True, populate_by_name=True)

    @field_validator("rule_allowlist")
    @classmethod
    def validate_allowlist(cls, v: FrozenSet[str]) -> FrozenSet[str]:
        _check_rule_ids(v, "ruleAllowlist")
        return v

    @field_validator("rule_denylist")
    @classmethod
    def validate_denylist(cls, v: FrozenSet[str]) -> FrozenSet[str]:
        _check_rule_ids(v, "ruleDenylist")
        return v

    @field_validator("severity_overrides")
    @classmethod
    def validate_overrides(cls, v: Dict[str, Severity]) -> Dict[str, Severity]:
        _check_rule_ids(v.keys(), "severityOverrides")
        return v

    @model_validator(mode="after")
    def check_lists_disjoint(self) -> "CheckerConfig":
        overlap = sorted(self.rule_allowlist & self.rule_denylist)
        if overlap:
            raise ValueError(f"Rule id(s) both allowed and denied: {', '.join(overlap)}")
        return self

    def is_rule_enabled(self, rule_id: str) -> bool:
        if self.rule_allowlist and rule_id not in self.rule_allowlist:
            return False
        return rule_id not in self.rule_denylist


def _problems_from(e: ValidationError) -> list[str]:
    problems = []
    for error in e.errors():
        loc = ".".join(str(part) for part in error.get("loc", ()))
        problems.append(f"{loc}: {error['msg']}" if loc else error["msg"])
    return problems


def load_config(source: Union[None, CheckerConfig, Dict[str, Any], str, Path] = None, **overrides: Any) -> CheckerConfig:
    """
    Build a CheckerConfig from a dict, a JSON file path, or nothing.

    Keyword overrides (snake_case or camelCase) are applied on top of the
    source. Any problem raises ConfigurationError; nothing is partially applied.
    """
    if isinstance(source, CheckerConfig):
        data: Dict[str, Any] = source.model_dump(by_alias=True)
    elif source is None:
        data = {}
    elif isinstance(source, dict):
        data = dict(source)
    else:
        path = Path(source)
        try:
            with open(path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except OSError as e:
            raise ConfigurationError([f"Cannot read config file '{path}': {e}"]) from e
        except UnicodeDecodeError as e:
            raise ConfigurationError([f"Config file '{path}' is not valid UTF-8: {e}"]) from e
        except json.JSONDecodeError as e:
            raise ConfigurationError([f"Config file '{path}' is not valid JSON: {e}"]) from e
        if not isinstance(data, dict):
            raise ConfigurationError([f"Config file '{path}' must contain a JSON object"])

    for key, value in overrides.items():
        if value is None:
            continue
        info = CheckerConfig.model_fields.get(key)
        alias = info.alias if info is not None and info.alias else key
        data.pop(key, None)
        data[alias] = value

    try:
        return CheckerConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigurationError(_problems_from(e)) from e
