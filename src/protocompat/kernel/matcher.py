"""Pair entities between a base and a candidate snapshot by stable identity.

Types pair by qualified name, fields by tag number, enum values by numeric
value. Declaration order and field names never decide a pairing; names only
decide whether two entities sharing a number are the same entity (rename) or
a number that was freed and rebound (reuse).
"""

from dataclasses import dataclass
from enum import Enum
from typing import List, Literal, Optional, Tuple, Union

from .model import EnumType, EnumValueDef, FieldDef, MessageType, SchemaSnapshot, SchemaType


class MemberStatus(str, Enum):
    """How a field number / enum value fared between base and candidate."""
    MATCHED = "matched"  # same identity on both sides
    ADDED = "added"  # fresh number
    ADDED_IN_RESERVATION = "added_in_reservation"  # number was reserved in base
    REMOVED_RESERVED = "removed_reserved"  # gone, and reserved in candidate
    REMOVED_UNRESERVED = "removed_unreserved"  # gone, free for accidental reuse
    REUSED = "reused"  # number now bound to a different identity


Member = Union[FieldDef, EnumValueDef]


@dataclass(frozen=True)
class MemberPair:
    """A field or enum value pairing, keyed by number."""
    number: int
    old: Optional[Member]
    new: Optional[Member]
    status: MemberStatus


@dataclass(frozen=True)
class TypePair:
    """A message or enum pairing, keyed by qualified name."""
    name: str
    kind: Literal["message", "enum"]
    old: Optional[SchemaType]
    new: Optional[SchemaType]
    members: Tuple[MemberPair, ...] = ()

    @property
    def is_matched(self) -> bool:
        return self.old is not None and self.new is not None


def _kind_of(schema_type: SchemaType) -> Literal["message", "enum"]:
    return "message" if isinstance(schema_type, MessageType) else "enum"


def _is_same_field(old_msg: MessageType, new_msg: MessageType, old: FieldDef, new: FieldDef) -> bool:
    if old.name == new.name:
        return True
    # The old name now lives at another number: the field moved and this number was rebound.
    moved = new_msg.field_by_name(old.name)
    if moved is not None and moved.number != old.number:
        return False
    # A pure rename keeps type and cardinality.
    return (
        old.type == new.type
        and old.type_name == new.type_name
        and old.cardinality == new.cardinality
    )


def _is_same_value(new_enum: EnumType, old: EnumValueDef, new: EnumValueDef) -> bool:
    if old.name == new.name:
        return True
    # Enum constants have no type to compare; only a moved name reveals a rebind.
    return new_enum.value_by_name(old.name) is None


def match_members(old: SchemaType, new: SchemaType) -> Tuple[MemberPair, ...]:
    """Pair the members of two same-kind types by number, sorted by number."""
    if isinstance(old, MessageType) and isinstance(new, MessageType):
        old_by_number = {f.number: f for f in old.fields}
        new_by_number = {f.number: f for f in new.fields}
    elif isinstance(old, EnumType) and isinstance(new, EnumType):
        old_by_number = {v.number: v for v in old.values}
        new_by_number = {v.number: v for v in new.values}
    else:
        raise TypeError(f"Cannot pair members of {type(old).__name__} and {type(new).__name__}")

    pairs: List[MemberPair] = []
    for number in sorted(set(old_by_number) | set(new_by_number)):
        old_member = old_by_number.get(number)
        new_member = new_by_number.get(number)

        if old_member is not None and new_member is None:
            status = (
                MemberStatus.REMOVED_RESERVED if new.is_reserved(number)
                else MemberStatus.REMOVED_UNRESERVED
            )
        elif old_member is None:
            status = (
                MemberStatus.ADDED_IN_RESERVATION if old.is_reserved(number)
                else MemberStatus.ADDED
            )
        else:
            if isinstance(old, MessageType):
                same = _is_same_field(old, new, old_member, new_member)
            else:
                same = _is_same_value(new, old_member, new_member)
            status = MemberStatus.MATCHED if same else MemberStatus.REUSED

        pairs.append(MemberPair(number=number, old=old_member, new=new_member, status=status))
    return tuple(pairs)


def match_snapshots(base: SchemaSnapshot, candidate: SchemaSnapshot) -> List[TypePair]:
    """Pair every message/enum present in either snapshot.

    Returns pairs sorted by (qualified name, kind). A name whose kind changed
    (message became enum or the reverse) yields a removed pair and an added
    pair rather than a match.
    """
    pairs: List[TypePair] = []
    for name in sorted(base.type_names() | candidate.type_names()):
        old = base.get_type(name)
        new = candidate.get_type(name)

        if old is not None and new is not None and _kind_of(old) != _kind_of(new):
            pairs.append(TypePair(name=name, kind=_kind_of(old), old=old, new=None))
            pairs.append(TypePair(name=name, kind=_kind_of(new), old=None, new=new))
            continue

        kind = _kind_of(old if old is not None else new)
        members: Tuple[MemberPair, ...] = ()
        if old is not None and new is not None:
            members = match_members(old, new)
        pairs.append(TypePair(name=name, kind=kind, old=old, new=new, members=members))

    return sorted(pairs, key=lambda p: (p.name, p.kind))
