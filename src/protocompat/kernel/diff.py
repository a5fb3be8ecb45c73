"""Structural diff between a base and a candidate snapshot.

Consumes the pairs built by the matcher and emits change events. No
judgment happens here: whether a change is acceptable is decided entirely
by the rules.
"""

from dataclasses import dataclass, field
from typing import Any, FrozenSet, List, Literal, Optional, Tuple

from .matcher import MemberPair, MemberStatus, TypePair
from .model import EnumType, FieldDef, MessageType


ChangeType = Literal[
    "TYPE_ADDED",  # Message/enum present only in candidate
    "TYPE_REMOVED",  # Message/enum present only in base
    "TYPE_MODIFIED",  # Reservations, syntax, zero value or any member changed
    "FIELD_ADDED",  # Field number not in base (or rebound)
    "FIELD_REMOVED",  # Field number not in candidate (or rebound)
    "FIELD_MODIFIED",  # Same field identity, some attribute changed
    "ENUM_VALUE_ADDED",
    "ENUM_VALUE_REMOVED",
    "ENUM_VALUE_MODIFIED",
]

# Attribute names carried in ChangeEvent.changed
ATTR_NAME = "name"
ATTR_TYPE = "type"
ATTR_TYPE_NAME = "type_name"
ATTR_CARDINALITY = "cardinality"
ATTR_PACKED = "packed"
ATTR_DEFAULT = "default"
ATTR_RESERVED = "reserved"
ATTR_ZERO_VALUE = "zero_value"
ATTR_SYNTAX = "syntax"
ATTR_MEMBERS = "members"


@dataclass(frozen=True)
class ChangeEvent:
    """A single change event between two snapshots."""
    change_type: ChangeType
    path: str  # package.Type or package.Type.member
    number: Optional[int] = None  # tag / enum number for member events
    old: Any = None  # entity in base (None when added)
    new: Any = None  # entity in candidate (None when removed)
    changed: FrozenSet[str] = field(default_factory=frozenset)
    status: Optional[MemberStatus] = None

    @property
    def is_type_event(self) -> bool:
        return self.change_type.startswith("TYPE_")

    @property
    def is_added(self) -> bool:
        return self.change_type.endswith("_ADDED")

    @property
    def is_removed(self) -> bool:
        return self.change_type.endswith("_REMOVED")

    @property
    def is_modified(self) -> bool:
        return self.change_type.endswith("_MODIFIED")


@dataclass(frozen=True)
class TypeChanges:
    """The full change-event stream for one message/enum pairing."""
    pair: TypePair
    events: Tuple[ChangeEvent, ...]

    @property
    def name(self) -> str:
        return self.pair.name

    @property
    def kind(self) -> str:
        return self.pair.kind

    @property
    def old(self) -> Any:
        return self.pair.old

    @property
    def new(self) -> Any:
        return self.pair.new

    def type_event(self) -> ChangeEvent | None:
        for event in self.events:
            if event.is_type_event:
                return event
        return None

    def member_events(self) -> List[ChangeEvent]:
        return [e for e in self.events if not e.is_type_event]


def member_path(type_name: str, member_name: str) -> str:
    return f"{type_name}.{member_name}"


def diff_fields(old_msg: MessageType, new_msg: MessageType, old: FieldDef, new: FieldDef) -> FrozenSet[str]:
    """Attributes that differ between two pairings of the same field."""
    changed = set()
    if old.name != new.name:
        changed.add(ATTR_NAME)
    if old.type != new.type:
        changed.add(ATTR_TYPE)
    if old.type_name != new.type_name:
        changed.add(ATTR_TYPE_NAME)
    if old.cardinality != new.cardinality:
        changed.add(ATTR_CARDINALITY)
    # Compare effective encoding, so a proto2 -> proto3 move surfaces as a packed change
    if old.is_packed(old_msg.syntax) != new.is_packed(new_msg.syntax):
        changed.add(ATTR_PACKED)
    if old.default != new.default:
        changed.add(ATTR_DEFAULT)
    return frozenset(changed)


def _member_events(pair: TypePair, member: MemberPair) -> List[ChangeEvent]:
    prefix = "FIELD" if pair.kind == "message" else "ENUM_VALUE"
    old_path = member_path(pair.name, member.old.name) if member.old is not None else None
    new_path = member_path(pair.name, member.new.name) if member.new is not None else None

    if member.status in (MemberStatus.REMOVED_RESERVED, MemberStatus.REMOVED_UNRESERVED):
        return [ChangeEvent(
            change_type=f"{prefix}_REMOVED",
            path=old_path,
            number=member.number,
            old=member.old,
            status=member.status,
        )]

    if member.status in (MemberStatus.ADDED, MemberStatus.ADDED_IN_RESERVATION):
        return [ChangeEvent(
            change_type=f"{prefix}_ADDED",
            path=new_path,
            number=member.number,
            new=member.new,
            status=member.status,
        )]

    if member.status == MemberStatus.REUSED:
        # Two distinct entities shared the number: one left, one arrived
        return [
            ChangeEvent(
                change_type=f"{prefix}_REMOVED",
                path=old_path,
                number=member.number,
                old=member.old,
                status=member.status,
            ),
            ChangeEvent(
                change_type=f"{prefix}_ADDED",
                path=new_path,
                number=member.number,
                new=member.new,
                status=member.status,
            ),
        ]

    if pair.kind == "message":
        changed = diff_fields(pair.old, pair.new, member.old, member.new)
    else:
        changed = frozenset({ATTR_NAME}) if member.old.name != member.new.name else frozenset()
    if not changed:
        return []
    return [ChangeEvent(
        change_type=f"{prefix}_MODIFIED",
        path=new_path,
        number=member.number,
        old=member.old,
        new=member.new,
        changed=changed,
        status=member.status,
    )]


def diff_pair(pair: TypePair) -> TypeChanges:
    """
    Compute the change-event stream for one type pairing.
    Unchanged entities emit nothing; the type-level event comes first,
    member events follow in number order.
    """
    if pair.old is None:
        return TypeChanges(pair, (ChangeEvent(change_type="TYPE_ADDED", path=pair.name, new=pair.new),))
    if pair.new is None:
        return TypeChanges(pair, (ChangeEvent(change_type="TYPE_REMOVED", path=pair.name, old=pair.old),))

    member_events: List[ChangeEvent] = []
    for member in pair.members:
        member_events.extend(_member_events(pair, member))

    changed = set()
    if pair.old.reservation_signature() != pair.new.reservation_signature():
        changed.add(ATTR_RESERVED)
    if pair.old.syntax != pair.new.syntax:
        changed.add(ATTR_SYNTAX)
    if isinstance(pair.old, EnumType) and pair.old.has_zero_value != pair.new.has_zero_value:
        changed.add(ATTR_ZERO_VALUE)
    if member_events:
        changed.add(ATTR_MEMBERS)

    if not changed:
        return TypeChanges(pair, ())

    type_event = ChangeEvent(
        change_type="TYPE_MODIFIED",
        path=pair.name,
        old=pair.old,
        new=pair.new,
        changed=frozenset(changed),
    )
    return TypeChanges(pair, (type_event, *member_events))
