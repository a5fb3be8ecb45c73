"""Tests for individual compatibility rules."""

import pytest

from protocompat.codes import KNOWN_RULE_IDS, RuleId, Severity
from protocompat.kernel.config import CheckerConfig
from protocompat.kernel.diff import ChangeEvent, TypeChanges, diff_pair
from protocompat.kernel.matcher import MemberStatus, TypePair, match_snapshots
from protocompat.kernel.model import FieldDef, MessageType, SchemaSnapshot, WireType
from protocompat.kernel.rules import (
    RuleContext,
    build_default_registry,
    evaluate_type,
    select_rules,
)


def _snapshot(messages=(), enums=()):
    return SchemaSnapshot.model_validate({"messages": list(messages), "enums": list(enums)})


def _findings(base, candidate, config=None):
    config = config or CheckerConfig()
    registry = build_default_registry()
    ctx = RuleContext(base=base, candidate=candidate, config=config)
    rules = select_rules(registry, config)
    findings = []
    for pair in match_snapshots(base, candidate):
        findings.extend(evaluate_type(diff_pair(pair), rules, ctx))
    return findings


def _by_rule(findings, rule_id):
    return [f for f in findings if f.rule_id == rule_id.value]


def _msg(fields, name="acme.User", **kwargs):
    return {"name": name, "fields": fields, **kwargs}


def _f(number, name, type_="int32", **kwargs):
    return {"number": number, "name": name, "type": type_, **kwargs}


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------

def test_registry_holds_every_rule_once():
    registry = build_default_registry()
    assert set(registry) == KNOWN_RULE_IDS
    for rule_id, rule in registry.items():
        assert rule.rule_id == rule_id
        assert "default" in rule.severities


def test_registry_is_immutable():
    registry = build_default_registry()
    with pytest.raises(TypeError):
        registry["R-NEW"] = registry[RuleId.TAG_REUSE.value]


def test_select_rules_applies_allow_and_deny_lists():
    registry = build_default_registry()
    allowed = select_rules(registry, CheckerConfig(ruleAllowlist=["R-TAG-REUSE", "R-TYPE-CHANGE"]))
    assert [r.rule_id for r in allowed] == ["R-TAG-REUSE", "R-TYPE-CHANGE"]
    denied = select_rules(registry, CheckerConfig(ruleDenylist=["R-TAG-REUSE"]))
    assert "R-TAG-REUSE" not in [r.rule_id for r in denied]
    assert len(denied) == len(registry) - 1


# ---------------------------------------------------------------------------
# Identity
# ---------------------------------------------------------------------------

def test_rename_is_invisible_to_wire_rules():
    base = _snapshot([_msg([_f(1, "user_id", "int64"), _f(2, "email", "string")])])
    candidate = _snapshot([_msg([_f(1, "account_id", "int64"), _f(2, "contact_email", "string")])])
    findings = _findings(base, candidate)
    for rule_id in (RuleId.TAG_REUSE, RuleId.TYPE_CHANGE, RuleId.REQUIRED_ADDED):
        assert _by_rule(findings, rule_id) == []


def test_tag_reuse_after_unreserved_removal():
    base = _snapshot([_msg([_f(1, "id"), _f(2, "a", "string")])])
    candidate = _snapshot([_msg([_f(1, "id"), _f(2, "b", "int64")])])
    findings = _findings(base, candidate)

    [reuse] = _by_rule(findings, RuleId.TAG_REUSE)
    assert reuse.severity == Severity.BREAKING
    assert reuse.path == "acme.User.b"
    assert reuse.old_value == "string a = 2"
    assert reuse.new_value == "int64 b = 2"
    # The rebind is reported once, not also as a removal or a type change
    assert _by_rule(findings, RuleId.UNRESERVED_REMOVAL) == []
    assert _by_rule(findings, RuleId.TYPE_CHANGE) == []


def test_tag_reuse_of_reserved_number():
    base = _snapshot([_msg([_f(1, "id")], reserved_ranges=[[2, 3]])])
    candidate = _snapshot([_msg([_f(1, "id"), _f(3, "revived", "string")])])
    [reuse] = _by_rule(_findings(base, candidate), RuleId.TAG_REUSE)
    assert reuse.severity == Severity.BREAKING
    assert reuse.old_value == "reserved 3"


def test_reserving_a_removed_tag_is_not_breaking():
    base = _snapshot([_msg([_f(1, "id"), _f(2, "a", "string")])])
    candidate = _snapshot([_msg([_f(1, "id")], reserved_ranges=[2])])
    findings = _findings(base, candidate)
    assert [f for f in findings if f.severity == Severity.BREAKING] == []
    assert _by_rule(findings, RuleId.UNRESERVED_REMOVAL) == []
    [removal] = _by_rule(findings, RuleId.RESERVED_REMOVAL)
    assert removal.severity == Severity.ADVISORY
    assert removal.path == "acme.User.a"


def test_unreserved_removal_is_advisory():
    base = _snapshot([_msg([_f(1, "id"), _f(2, "a", "string")])])
    candidate = _snapshot([_msg([_f(1, "id")])])
    [removal] = _by_rule(_findings(base, candidate), RuleId.UNRESERVED_REMOVAL)
    assert removal.severity == Severity.ADVISORY
    assert removal.path == "acme.User.a"


def test_enum_value_reuse():
    base = _snapshot(enums=[{"name": "acme.Kind", "values": [
        {"number": 0, "name": "NONE"}, {"number": 1, "name": "CAT"},
    ]}])
    candidate = _snapshot(enums=[{"name": "acme.Kind", "values": [
        {"number": 0, "name": "NONE"}, {"number": 1, "name": "DOG"}, {"number": 2, "name": "CAT"},
    ]}])
    [reuse] = _by_rule(_findings(base, candidate), RuleId.ENUM_VALUE_REUSE)
    assert reuse.severity == Severity.BREAKING
    assert reuse.path == "acme.Kind.DOG"


def test_enum_value_in_base_reservation():
    base = _snapshot(enums=[{"name": "acme.Kind", "values": [{"number": 0, "name": "NONE"}], "reserved_ranges": [5]}])
    candidate = _snapshot(enums=[{"name": "acme.Kind", "values": [
        {"number": 0, "name": "NONE"}, {"number": 5, "name": "FIVE"},
    ]}])
    [reuse] = _by_rule(_findings(base, candidate), RuleId.ENUM_VALUE_REUSE)
    assert reuse.old_value == "reserved 5"


def test_reserved_name_reuse():
    base = _snapshot([_msg([_f(1, "id")], reserved_names=["legacy"])])
    candidate = _snapshot([_msg([_f(1, "id"), _f(7, "legacy", "string")])])
    [finding] = _by_rule(_findings(base, candidate), RuleId.RESERVED_NAME_REUSE)
    assert finding.severity == Severity.ADVISORY
    assert finding.path == "acme.User.legacy"


# ---------------------------------------------------------------------------
# Type changes
# ---------------------------------------------------------------------------

def test_int32_to_int64_is_silent():
    base = _snapshot([_msg([_f(1, "count", "int32")])])
    candidate = _snapshot([_msg([_f(1, "count", "int64")])])
    assert _by_rule(_findings(base, candidate), RuleId.TYPE_CHANGE) == []


def test_int32_to_string_is_breaking():
    base = _snapshot([_msg([_f(1, "count", "int32")])])
    candidate = _snapshot([_msg([_f(1, "count", "string")])])
    [finding] = _by_rule(_findings(base, candidate), RuleId.TYPE_CHANGE)
    assert finding.severity == Severity.BREAKING
    assert finding.old_value == "int32"
    assert finding.new_value == "string"


def test_narrowing_is_breaking_by_default_and_configurable():
    base = _snapshot([_msg([_f(1, "count", "int64")])])
    candidate = _snapshot([_msg([_f(1, "count", "int32")])])
    [finding] = _by_rule(_findings(base, candidate), RuleId.TYPE_CHANGE)
    assert finding.severity == Severity.BREAKING
    assert "narrowed" in finding.message

    relaxed = CheckerConfig(narrowingSeverity="advisory")
    [finding] = _by_rule(_findings(base, candidate, relaxed), RuleId.TYPE_CHANGE)
    assert finding.severity == Severity.ADVISORY


def test_widening_with_cardinality_change_is_breaking():
    base = _snapshot([_msg([_f(1, "count", "int32")])])
    candidate = _snapshot([_msg([_f(1, "count", "int64", cardinality="repeated")])])
    [finding] = _by_rule(_findings(base, candidate), RuleId.TYPE_CHANGE)
    assert finding.severity == Severity.BREAKING


def test_message_retarget_to_superset_is_silent():
    base = _snapshot([
        _msg([_f(1, "addr", "message", type_name="acme.Addr")]),
        _msg([_f(1, "zip", "string")], name="acme.Addr"),
    ])
    candidate = _snapshot([
        _msg([_f(1, "addr", "message", type_name="acme.Address")]),
        _msg([_f(1, "zip", "string")], name="acme.Addr"),
        _msg([_f(1, "zip", "string"), _f(2, "city", "string")], name="acme.Address"),
    ])
    assert _by_rule(_findings(base, candidate), RuleId.TYPE_CHANGE) == []


def test_message_retarget_to_non_superset_is_breaking():
    base = _snapshot([
        _msg([_f(1, "addr", "message", type_name="acme.Addr")]),
        _msg([_f(1, "zip", "string"), _f(2, "city", "string")], name="acme.Addr"),
    ])
    candidate = _snapshot([
        _msg([_f(1, "addr", "message", type_name="acme.Point")]),
        _msg([_f(1, "zip", "string"), _f(2, "city", "string")], name="acme.Addr"),
        _msg([_f(1, "x", "double")], name="acme.Point"),
    ])
    [finding] = _by_rule(_findings(base, candidate), RuleId.TYPE_CHANGE)
    assert finding.severity == Severity.BREAKING
    assert "superset" in finding.message


def test_enum_retarget_must_keep_numbers():
    enums_base = [{"name": "acme.Color", "values": [{"number": 0, "name": "NONE"}, {"number": 1, "name": "RED"}]}]
    enums_candidate = enums_base + [
        {"name": "acme.Shade", "values": [{"number": 0, "name": "NONE"}]},
    ]
    base = _snapshot([_msg([_f(1, "color", "enum", type_name="acme.Color")])], enums_base)
    candidate = _snapshot([_msg([_f(1, "color", "enum", type_name="acme.Shade")])], enums_candidate)
    [finding] = _by_rule(_findings(base, candidate), RuleId.TYPE_CHANGE)
    assert finding.severity == Severity.BREAKING


def test_group_to_message_retype_degrades_to_unable_to_evaluate():
    """An unclassifiable field yields an advisory finding; other fields still get checked."""
    base = _snapshot([
        _msg([_f(1, "payload", "group", type_name="acme.Payload"), _f(2, "count", "int32")], syntax="proto2"),
        _msg([_f(1, "data", "bytes")], name="acme.Payload", syntax="proto2"),
    ])
    candidate = _snapshot([
        _msg([_f(1, "payload", "message", type_name="acme.Payload"), _f(2, "count", "string")], syntax="proto2"),
        _msg([_f(1, "data", "bytes")], name="acme.Payload", syntax="proto2"),
    ])
    findings = _by_rule(_findings(base, candidate), RuleId.TYPE_CHANGE)
    by_path = {f.path: f for f in findings}
    assert by_path["acme.User.payload"].severity == Severity.ADVISORY
    assert "Unable to evaluate" in by_path["acme.User.payload"].message
    assert by_path["acme.User.count"].severity == Severity.BREAKING


def _group_snapshot(target, target_field):
    return _snapshot([
        _msg([_f(1, "g", "group", type_name=target)], syntax="proto2"),
        _msg([_f(1, "x", "int32")], name="acme.G1", syntax="proto2"),
        _msg([target_field], name="acme.G2", syntax="proto2"),
    ])


def test_group_retarget_to_superset_is_silent():
    base = _group_snapshot("acme.G1", _f(1, "x", "int64"))
    candidate = _group_snapshot("acme.G2", _f(1, "x", "int64"))
    assert _by_rule(_findings(base, candidate), RuleId.TYPE_CHANGE) == []


def test_group_retarget_to_non_superset_is_breaking():
    base = _group_snapshot("acme.G1", _f(1, "x", "string"))
    candidate = _group_snapshot("acme.G2", _f(1, "x", "string"))
    [finding] = _by_rule(_findings(base, candidate), RuleId.TYPE_CHANGE)
    assert finding.severity == Severity.BREAKING
    assert finding.path == "acme.User.g"
    assert "Unable to evaluate" not in finding.message
    assert "not a structural superset" in finding.message


# ---------------------------------------------------------------------------
# Cardinality, required, defaults, packing
# ---------------------------------------------------------------------------

def test_repeated_to_scalar_asymmetry():
    repeated = _snapshot([_msg([_f(1, "ids", "int32", cardinality="repeated")])])
    singular = _snapshot([_msg([_f(1, "ids", "int32")])])

    [narrowed] = _by_rule(_findings(repeated, singular), RuleId.REPEATED_TO_SCALAR)
    assert narrowed.severity == Severity.BREAKING

    [widened] = _by_rule(_findings(singular, repeated), RuleId.REPEATED_TO_SCALAR)
    assert widened.severity == Severity.ADVISORY


def test_required_added_to_existing_message():
    base = _snapshot([_msg([_f(1, "id")], syntax="proto2")])
    candidate = _snapshot([_msg([_f(1, "id"), _f(2, "tenant", "string", cardinality="required")], syntax="proto2")])
    [finding] = _by_rule(_findings(base, candidate), RuleId.REQUIRED_ADDED)
    assert finding.severity == Severity.BREAKING
    assert finding.path == "acme.User.tenant"


def test_required_in_new_message_is_not_flagged():
    base = _snapshot([])
    candidate = _snapshot([_msg([_f(1, "id", cardinality="required")], syntax="proto2")])
    assert _by_rule(_findings(base, candidate), RuleId.REQUIRED_ADDED) == []


def test_required_toggle():
    optional = _snapshot([_msg([_f(1, "id")], syntax="proto2")])
    required = _snapshot([_msg([_f(1, "id", cardinality="required")], syntax="proto2")])
    [finding] = _by_rule(_findings(optional, required), RuleId.REQUIRED_CHANGED)
    assert finding.severity == Severity.BREAKING
    assert "became required" in finding.message
    [finding] = _by_rule(_findings(required, optional), RuleId.REQUIRED_CHANGED)
    assert "no longer required" in finding.message


def test_default_value_changed():
    base = _snapshot([_msg([_f(1, "retries", default="3")], syntax="proto2")])
    candidate = _snapshot([_msg([_f(1, "retries", default="5")], syntax="proto2")])
    [finding] = _by_rule(_findings(base, candidate), RuleId.DEFAULT_VALUE_CHANGED)
    assert finding.severity == Severity.BREAKING
    assert (finding.old_value, finding.new_value) == ("3", "5")


def test_default_value_dropped():
    base = _snapshot([_msg([_f(1, "retries", default="3")], syntax="proto2")])
    candidate = _snapshot([_msg([_f(1, "retries")], syntax="proto2")])
    [finding] = _by_rule(_findings(base, candidate), RuleId.DEFAULT_VALUE_CHANGED)
    assert finding.new_value is None
    assert "<implicit>" in finding.message


def test_packed_change_on_repeated_field():
    base = _snapshot([_msg([_f(1, "ids", cardinality="repeated")])])
    candidate = _snapshot([_msg([_f(1, "ids", cardinality="repeated", packed=False)])])
    [finding] = _by_rule(_findings(base, candidate), RuleId.PACKED_CHANGED)
    assert finding.severity == Severity.ADVISORY
    assert (finding.old_value, finding.new_value) == ("packed", "unpacked")


# ---------------------------------------------------------------------------
# Type-level rules
# ---------------------------------------------------------------------------

def test_field_count_threshold():
    fields = [_f(n, f"f{n}") for n in range(1, 6)]
    base = _snapshot([_msg(fields[:4])])
    candidate = _snapshot([_msg(fields)])
    config = CheckerConfig(fieldCountThreshold=4)
    [finding] = _by_rule(_findings(base, candidate, config), RuleId.FIELD_COUNT)
    assert finding.severity == Severity.ADVISORY
    assert finding.path == "acme.User"
    assert (finding.old_value, finding.new_value) == ("4", "5")

    assert _by_rule(_findings(base, candidate), RuleId.FIELD_COUNT) == []


def test_enum_without_zero_on_new_enum():
    base = _snapshot()
    candidate = _snapshot(enums=[{"name": "acme.Kind", "values": [{"number": 1, "name": "ONE"}]}])
    [finding] = _by_rule(_findings(base, candidate), RuleId.ENUM_DEFAULT)
    assert finding.severity == Severity.ADVISORY
    assert finding.path == "acme.Kind"


def test_enum_default_defers_to_removal_rules():
    base = _snapshot(enums=[{"name": "acme.Kind", "values": [
        {"number": 0, "name": "NONE"}, {"number": 1, "name": "ONE"},
    ]}])
    candidate = _snapshot(enums=[{"name": "acme.Kind", "values": [{"number": 1, "name": "ONE"}]}])
    findings = _findings(base, candidate)
    assert _by_rule(findings, RuleId.ENUM_DEFAULT) == []
    assert len(_by_rule(findings, RuleId.UNRESERVED_REMOVAL)) == 1


def test_type_removed():
    base = _snapshot([_msg([_f(1, "id")]), _msg([], name="acme.Legacy")])
    candidate = _snapshot([_msg([_f(1, "id")])])
    [finding] = _by_rule(_findings(base, candidate), RuleId.TYPE_REMOVED)
    assert finding.severity == Severity.ADVISORY
    assert finding.path == "acme.Legacy"


# ---------------------------------------------------------------------------
# Severity resolution and isolated evaluation
# ---------------------------------------------------------------------------

def test_severity_override_wins():
    base = _snapshot([_msg([_f(1, "id"), _f(2, "a", "string")])])
    candidate = _snapshot([_msg([_f(1, "id")])])
    config = CheckerConfig(severityOverrides={"R-UNRESERVED-REMOVAL": "breaking"})
    [finding] = _by_rule(_findings(base, candidate, config), RuleId.UNRESERVED_REMOVAL)
    assert finding.severity == Severity.BREAKING


def test_rule_evaluates_synthetic_event():
    """Evaluators are plain callables over events; no snapshot diff needed."""
    old = MessageType(name="acme.User", fields=[FieldDef(number=1, name="ids", type=WireType.INT32, cardinality="repeated")])
    new = MessageType(name="acme.User", fields=[FieldDef(number=1, name="ids", type=WireType.INT32)])
    event = ChangeEvent(
        change_type="FIELD_MODIFIED",
        path="acme.User.ids",
        number=1,
        old=old.fields[0],
        new=new.fields[0],
        changed=frozenset({"cardinality"}),
        status=MemberStatus.MATCHED,
    )
    changes = TypeChanges(TypePair(name="acme.User", kind="message", old=old, new=new), (event,))
    snapshot = _snapshot()
    ctx = RuleContext(base=snapshot, candidate=snapshot, config=CheckerConfig())

    rule = build_default_registry()[RuleId.REPEATED_TO_SCALAR.value]
    [finding] = rule(event, changes, ctx)
    assert finding.rule_id == "R-REPEATED-TO-SCALAR"
    assert finding.severity == Severity.BREAKING
