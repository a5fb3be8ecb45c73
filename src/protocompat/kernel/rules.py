"""Compatibility rules evaluated over change events.

Compatibility definition (deterministic predicates), one rule each:
1. R-TAG-REUSE: a field number reserved in base, or freed and rebound to a
   different field, is declared in candidate.
2. R-TYPE-CHANGE: a field's declared type changed outside the allow-list
   (int32/uint32/int64/uint64/bool, sint32/sint64) or alongside a
   cardinality change. Message- and group-typed retargets must be
   structural supersets, enum-typed retargets must keep every old number.
3. R-REQUIRED-ADDED: a `required` field added to an existing message.
4. R-REQUIRED-CHANGED: an existing field toggles `required`.
5. R-FIELD-COUNT: live field count above the configured threshold.
6. R-ENUM-DEFAULT: an enum without a value bound to 0.
7. R-ENUM-VALUE-REUSE: R-TAG-REUSE for enum numbers.
8. R-DEFAULT-VALUE-CHANGED: explicit default differs.
9. R-REPEATED-TO-SCALAR: repeated -> non-repeated (breaking) and
   non-repeated -> repeated (advisory).
10. R-UNRESERVED-REMOVAL / R-RESERVED-REMOVAL: a number disappeared,
    without / with a reservation covering it.
11. R-PACKED-CHANGED: effective packed encoding of a repeated field changed.
12. R-RESERVED-NAME-REUSE: a name reserved in base is declared again.
13. R-TYPE-REMOVED: a whole message or enum disappeared.

Rules are pure functions of (event, type change stream, context); they
share no mutable state and can run on any thread. Severity is data carried
by each Rule and resolved through the context, never hardcoded at the
emitting site.
"""

import logging
from dataclasses import dataclass
from types import MappingProxyType
from typing import Callable, Iterable, List, Mapping, Optional

from protocompat.codes import RuleId, Severity
from protocompat.contracts import Finding
from .config import CheckerConfig
from .diff import (
    ATTR_CARDINALITY,
    ATTR_DEFAULT,
    ATTR_NAME,
    ATTR_PACKED,
    ATTR_TYPE,
    ATTR_TYPE_NAME,
    ATTR_ZERO_VALUE,
    ChangeEvent,
    TypeChanges,
)
from .errors import RuleEvaluationError
from .matcher import MemberStatus
from .model import FieldDef, SchemaSnapshot, WireType
from .wire_types import TypeCompat, classify_scalar_change, is_enum_superset, is_message_superset

logger = logging.getLogger(__name__)

DEFAULT = "default"
NARROWING = "narrowing"
SCALAR_TO_REPEATED = "scalar_to_repeated"


@dataclass(frozen=True)
class RuleContext:
    """Read-only inputs shared by every rule evaluation."""
    base: SchemaSnapshot
    candidate: SchemaSnapshot
    config: CheckerConfig

    def severity(self, rule: "Rule", variant: str = DEFAULT) -> Severity:
        """Resolve severity: config override > narrowing policy > rule default."""
        override = self.config.severity_overrides.get(rule.rule_id)
        if override is not None:
            return override
        if variant == NARROWING:
            return self.config.narrowing_severity
        return rule.severities[variant]

    def finding(
        self,
        rule: "Rule",
        path: str,
        message: str,
        old_value: Optional[str] = None,
        new_value: Optional[str] = None,
        variant: str = DEFAULT,
    ) -> Finding:
        return Finding(
            rule_id=rule.rule_id,
            severity=self.severity(rule, variant),
            path=path,
            message=message,
            old_value=old_value,
            new_value=new_value,
        )


RuleFn = Callable[["Rule", ChangeEvent, TypeChanges, RuleContext], Iterable[Finding]]


@dataclass(frozen=True)
class Rule:
    """A registry entry: id, default severities per variant, evaluator."""
    rule_id: str
    description: str
    severities: Mapping[str, Severity]
    evaluate: RuleFn

    def __call__(self, event: ChangeEvent, changes: TypeChanges, ctx: RuleContext) -> List[Finding]:
        return list(self.evaluate(self, event, changes, ctx))


def _field_ref(f: FieldDef) -> str:
    return f"{f.type_label()} {f.name} = {f.number}"


# ---------------------------------------------------------------------------
# Identity rules
# ---------------------------------------------------------------------------

def _tag_reuse(rule: Rule, event: ChangeEvent, changes: TypeChanges, ctx: RuleContext):
    if event.change_type != "FIELD_ADDED":
        return
    if event.status == MemberStatus.ADDED_IN_RESERVATION:
        yield ctx.finding(
            rule,
            event.path,
            f"Tag {event.number} is reserved in the base schema but is declared again as "
            f"'{event.new.name}'. Tag numbers are permanent and must never be recycled.",
            old_value=f"reserved {event.number}",
            new_value=_field_ref(event.new),
        )
    elif event.status == MemberStatus.REUSED:
        old_field = changes.old.field_by_number(event.number)
        yield ctx.finding(
            rule,
            event.path,
            f"Tag {event.number} was bound to '{old_field.name}' and is now bound to a different "
            f"field '{event.new.name}'. Old data for tag {event.number} will be misread.",
            old_value=_field_ref(old_field),
            new_value=_field_ref(event.new),
        )


def _enum_value_reuse(rule: Rule, event: ChangeEvent, changes: TypeChanges, ctx: RuleContext):
    if event.change_type != "ENUM_VALUE_ADDED":
        return
    if event.status == MemberStatus.ADDED_IN_RESERVATION:
        yield ctx.finding(
            rule,
            event.path,
            f"Enum number {event.number} is reserved in the base schema but is bound again "
            f"to '{event.new.name}'.",
            old_value=f"reserved {event.number}",
            new_value=f"{event.new.name} = {event.number}",
        )
    elif event.status == MemberStatus.REUSED:
        old_value = changes.old.value_by_number(event.number)
        yield ctx.finding(
            rule,
            event.path,
            f"Enum number {event.number} was bound to '{old_value.name}' and is now bound to "
            f"'{event.new.name}' while '{old_value.name}' moved elsewhere.",
            old_value=f"{old_value.name} = {event.number}",
            new_value=f"{event.new.name} = {event.number}",
        )


def _reserved_name_reuse(rule: Rule, event: ChangeEvent, changes: TypeChanges, ctx: RuleContext):
    if changes.old is None or changes.new is None or event.is_type_event or event.is_removed:
        return
    if event.is_modified and ATTR_NAME not in event.changed:
        return
    if changes.old.is_name_reserved(event.new.name):
        yield ctx.finding(
            rule,
            event.path,
            f"Name '{event.new.name}' is reserved in the base schema. Reusing it breaks "
            f"JSON and text-format readers that still know the old meaning.",
            old_value=f"reserved \"{event.new.name}\"",
            new_value=event.new.name,
        )


# ---------------------------------------------------------------------------
# Field shape rules
# ---------------------------------------------------------------------------

def _classify_type_change(rule: Rule, event: ChangeEvent, ctx: RuleContext) -> TypeCompat:
    old, new = event.old, event.new
    compat = classify_scalar_change(old.type, new.type)
    if compat is not None:
        return compat
    if old.type == new.type and old.type in (WireType.MESSAGE, WireType.GROUP):
        if is_message_superset(ctx.base, ctx.candidate, old.type_name, new.type_name):
            return TypeCompat.WIDENING
        return TypeCompat.INCOMPATIBLE
    if WireType.GROUP in (old.type, new.type):
        raise RuleEvaluationError(
            rule.rule_id, event.path,
            f"group-encoded field change {old.type.value} -> {new.type.value} cannot be classified",
        )
    if old.type == new.type == WireType.ENUM:
        old_enum = ctx.base.get_enum(old.type_name)
        new_enum = ctx.candidate.get_enum(new.type_name)
        return TypeCompat.WIDENING if is_enum_superset(old_enum, new_enum) else TypeCompat.INCOMPATIBLE
    # scalar <-> reference, message <-> enum
    return TypeCompat.INCOMPATIBLE


def _type_change(rule: Rule, event: ChangeEvent, changes: TypeChanges, ctx: RuleContext):
    if event.change_type != "FIELD_MODIFIED":
        return
    if not event.changed & {ATTR_TYPE, ATTR_TYPE_NAME}:
        return

    compat = _classify_type_change(rule, event, ctx)
    old_label = event.old.type_name or event.old.type.value
    new_label = event.new.type_name or event.new.type.value
    cardinality_changed = ATTR_CARDINALITY in event.changed

    if compat in (TypeCompat.IDENTICAL, TypeCompat.WIDENING) and not cardinality_changed:
        return
    if compat == TypeCompat.NARROWING and not cardinality_changed:
        yield ctx.finding(
            rule,
            event.path,
            f"Type of tag {event.number} narrowed from {old_label} to {new_label}. The wire "
            f"format decodes it, but values written by old writers can be truncated.",
            old_value=old_label,
            new_value=new_label,
            variant=NARROWING,
        )
        return

    if compat in (TypeCompat.WIDENING, TypeCompat.NARROWING):
        reason = "a wire-compatible type change is only safe when cardinality is unchanged"
    elif event.old.type == event.new.type and event.old.type in (WireType.MESSAGE, WireType.GROUP):
        reason = f"{new_label} is not a structural superset of {old_label}"
    elif event.old.type == event.new.type == WireType.ENUM:
        reason = f"{new_label} does not keep every value number of {old_label}"
    else:
        reason = "the wire encodings are not interchangeable"
    yield ctx.finding(
        rule,
        event.path,
        f"Type of tag {event.number} changed from {old_label} to {new_label}: {reason}.",
        old_value=event.old.type_label(),
        new_value=event.new.type_label(),
    )


def _required_added(rule: Rule, event: ChangeEvent, changes: TypeChanges, ctx: RuleContext):
    # Fields of a brand-new message are part of its initial publication.
    if event.change_type != "FIELD_ADDED" or changes.old is None:
        return
    if event.new.is_required:
        yield ctx.finding(
            rule,
            event.path,
            f"Required field '{event.new.name}' (tag {event.number}) added to an existing message. "
            f"Messages from old writers lack it and will fail to parse.",
            new_value=_field_ref(event.new),
        )


def _required_changed(rule: Rule, event: ChangeEvent, changes: TypeChanges, ctx: RuleContext):
    if event.change_type != "FIELD_MODIFIED" or ATTR_CARDINALITY not in event.changed:
        return
    if event.old.is_required == event.new.is_required:
        return
    direction = "became required" if event.new.is_required else "is no longer required"
    yield ctx.finding(
        rule,
        event.path,
        f"Field '{event.new.name}' (tag {event.number}) {direction}. Readers on the other "
        f"side of the change will reject messages that omit it.",
        old_value=event.old.cardinality.value,
        new_value=event.new.cardinality.value,
    )


def _repeated_to_scalar(rule: Rule, event: ChangeEvent, changes: TypeChanges, ctx: RuleContext):
    if event.change_type != "FIELD_MODIFIED" or ATTR_CARDINALITY not in event.changed:
        return
    if event.old.is_repeated and not event.new.is_repeated:
        yield ctx.finding(
            rule,
            event.path,
            f"Field '{event.new.name}' (tag {event.number}) changed from repeated to "
            f"{event.new.cardinality.value}. All but the last element are dropped when decoding.",
            old_value=event.old.type_label(),
            new_value=event.new.type_label(),
        )
    elif not event.old.is_repeated and event.new.is_repeated:
        yield ctx.finding(
            rule,
            event.path,
            f"Field '{event.new.name}' (tag {event.number}) changed from "
            f"{event.old.cardinality.value} to repeated. Binary decoding is compatible; "
            f"JSON and text encodings are not.",
            old_value=event.old.type_label(),
            new_value=event.new.type_label(),
            variant=SCALAR_TO_REPEATED,
        )


def _default_value_changed(rule: Rule, event: ChangeEvent, changes: TypeChanges, ctx: RuleContext):
    if event.change_type != "FIELD_MODIFIED" or ATTR_DEFAULT not in event.changed:
        return
    old_default = event.old.default if event.old.default is not None else "<implicit>"
    new_default = event.new.default if event.new.default is not None else "<implicit>"
    yield ctx.finding(
        rule,
        event.path,
        f"Explicit default of '{event.new.name}' (tag {event.number}) changed from "
        f"{old_default} to {new_default}. Readers on different versions disagree on unset values.",
        old_value=event.old.default,
        new_value=event.new.default,
    )


def _packed_changed(rule: Rule, event: ChangeEvent, changes: TypeChanges, ctx: RuleContext):
    if event.change_type != "FIELD_MODIFIED" or ATTR_PACKED not in event.changed:
        return
    if not (event.old.is_repeated and event.new.is_repeated):
        return
    old_packed = event.old.is_packed(changes.old.syntax)
    new_packed = event.new.is_packed(changes.new.syntax)
    yield ctx.finding(
        rule,
        event.path,
        f"Encoding of repeated field '{event.new.name}' (tag {event.number}) changed from "
        f"{'packed' if old_packed else 'unpacked'} to {'packed' if new_packed else 'unpacked'}. "
        f"Conforming parsers accept both; very old parsers may not.",
        old_value="packed" if old_packed else "unpacked",
        new_value="packed" if new_packed else "unpacked",
    )


# ---------------------------------------------------------------------------
# Removal rules
# ---------------------------------------------------------------------------

def _member_noun(event: ChangeEvent) -> str:
    return "Tag" if event.change_type.startswith("FIELD_") else "Enum number"


def _unreserved_removal(rule: Rule, event: ChangeEvent, changes: TypeChanges, ctx: RuleContext):
    if not event.is_removed or event.status != MemberStatus.REMOVED_UNRESERVED:
        return
    yield ctx.finding(
        rule,
        event.path,
        f"{_member_noun(event)} {event.number} ('{event.old.name}') was removed without a "
        f"reservation. Reserve the number and name so it cannot be reused by accident.",
        old_value=f"{event.old.name} = {event.number}",
    )


def _reserved_removal(rule: Rule, event: ChangeEvent, changes: TypeChanges, ctx: RuleContext):
    if not event.is_removed or event.status != MemberStatus.REMOVED_RESERVED:
        return
    yield ctx.finding(
        rule,
        event.path,
        f"{_member_noun(event)} {event.number} ('{event.old.name}') was removed and reserved. "
        f"Data written by old writers is ignored and generated code referencing it breaks.",
        old_value=f"{event.old.name} = {event.number}",
        new_value=f"reserved {event.number}",
    )


def _type_removed(rule: Rule, event: ChangeEvent, changes: TypeChanges, ctx: RuleContext):
    if event.change_type != "TYPE_REMOVED":
        return
    yield ctx.finding(
        rule,
        event.path,
        f"{changes.kind.capitalize()} type '{changes.name}' was removed. Generated code and "
        f"any external references to it break.",
        old_value=changes.name,
    )


# ---------------------------------------------------------------------------
# Type-level rules
# ---------------------------------------------------------------------------

def _field_count(rule: Rule, event: ChangeEvent, changes: TypeChanges, ctx: RuleContext):
    if event.change_type not in ("TYPE_ADDED", "TYPE_MODIFIED") or changes.kind != "message":
        return
    count = len(changes.new.fields)
    threshold = ctx.config.field_count_threshold
    if count > threshold:
        yield ctx.finding(
            rule,
            event.path,
            f"Message has {count} live fields, above the threshold of {threshold}. "
            f"Consider splitting it.",
            old_value=str(len(changes.old.fields)) if changes.old is not None else None,
            new_value=str(count),
        )


def _enum_default(rule: Rule, event: ChangeEvent, changes: TypeChanges, ctx: RuleContext):
    if event.change_type not in ("TYPE_ADDED", "TYPE_MODIFIED") or changes.kind != "enum":
        return
    if changes.new.has_zero_value:
        return
    # When this change removed the zero value, the removal rules report it.
    if event.change_type == "TYPE_MODIFIED" and ATTR_ZERO_VALUE in event.changed:
        return
    yield ctx.finding(
        rule,
        event.path,
        f"Enum '{changes.name}' has no value bound to 0. Add a conventional "
        f"unspecified zero value so unset and unknown values decode predictably.",
    )


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------

def _rule(rule_id: RuleId, description: str, evaluate: RuleFn, **severities: Severity) -> Rule:
    return Rule(
        rule_id=rule_id.value,
        description=description,
        severities=MappingProxyType(dict(severities)),
        evaluate=evaluate,
    )


def build_default_registry() -> Mapping[str, Rule]:
    """Construct the fixed, ordered rule registry (rule id -> Rule)."""
    rules = [
        _rule(RuleId.TAG_REUSE, "Reserved or rebound field number declared again",
              _tag_reuse, default=Severity.BREAKING),
        _rule(RuleId.TYPE_CHANGE, "Field type changed outside the wire-compatible allow-list",
              _type_change, default=Severity.BREAKING, narrowing=Severity.BREAKING),
        _rule(RuleId.REQUIRED_ADDED, "Required field added to an existing message",
              _required_added, default=Severity.BREAKING),
        _rule(RuleId.REQUIRED_CHANGED, "Existing field became required or stopped being required",
              _required_changed, default=Severity.BREAKING),
        _rule(RuleId.FIELD_COUNT, "Live field count above threshold",
              _field_count, default=Severity.ADVISORY),
        _rule(RuleId.ENUM_DEFAULT, "Enum lacks a value bound to 0",
              _enum_default, default=Severity.ADVISORY),
        _rule(RuleId.ENUM_VALUE_REUSE, "Reserved or rebound enum number bound again",
              _enum_value_reuse, default=Severity.BREAKING),
        _rule(RuleId.DEFAULT_VALUE_CHANGED, "Explicit default value changed",
              _default_value_changed, default=Severity.BREAKING),
        _rule(RuleId.REPEATED_TO_SCALAR, "Cardinality changed between repeated and non-repeated",
              _repeated_to_scalar, default=Severity.BREAKING, scalar_to_repeated=Severity.ADVISORY),
        _rule(RuleId.UNRESERVED_REMOVAL, "Number removed without a reservation",
              _unreserved_removal, default=Severity.ADVISORY),
        _rule(RuleId.RESERVED_REMOVAL, "Number removed and reserved",
              _reserved_removal, default=Severity.ADVISORY),
        _rule(RuleId.PACKED_CHANGED, "Packed encoding of a repeated field changed",
              _packed_changed, default=Severity.ADVISORY),
        _rule(RuleId.RESERVED_NAME_REUSE, "Reserved name declared again",
              _reserved_name_reuse, default=Severity.ADVISORY),
        _rule(RuleId.TYPE_REMOVED, "Message or enum type removed",
              _type_removed, default=Severity.ADVISORY),
    ]
    return MappingProxyType({r.rule_id: r for r in rules})


def select_rules(registry: Mapping[str, Rule], config: CheckerConfig) -> List[Rule]:
    """Registry order, filtered by the allow/deny lists."""
    return [rule for rule_id, rule in registry.items() if config.is_rule_enabled(rule_id)]


def evaluate_type(changes: TypeChanges, rules: List[Rule], ctx: RuleContext) -> List[Finding]:
    """
    Run every rule over every event of one type.

    A RuleEvaluationError is contained to its (rule, entity): it becomes an
    advisory "unable to evaluate" finding and evaluation continues.
    """
    findings: List[Finding] = []
    for event in changes.events:
        for rule in rules:
            try:
                findings.extend(rule(event, changes, ctx))
            except RuleEvaluationError as e:
                logger.warning("%s", e)
                findings.append(Finding(
                    rule_id=e.rule_id,
                    severity=Severity.ADVISORY,
                    path=e.path,
                    message=f"Unable to evaluate {e.rule_id}: {e.reason}",
                ))
    return findings
