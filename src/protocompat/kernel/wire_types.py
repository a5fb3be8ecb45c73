"""Wire-type compatibility matrix and structural superset checks.

The scalar matrix is a static table keyed by (old type, new type) so the
full set of decisions can be enumerated and tested on its own. Nothing here
inspects runtime Python types.

Allowed retypes (decoded from the same varint without loss of framing):
int32, uint32, int64, uint64 and bool among each other, plus sint32 <-> sint64.
Within the allow-list a change to a smaller width is NARROWING: the wire
accepts it but values can truncate, so callers decide its severity.
"""

from enum import Enum
from types import MappingProxyType
from typing import Dict, Mapping, Optional, Set, Tuple

from .model import (
    EnumType,
    FieldDef,
    SchemaSnapshot,
    WireType,
)


class TypeCompat(str, Enum):
    """Classification of a declared-type change."""
    IDENTICAL = "identical"
    WIDENING = "widening"
    NARROWING = "narrowing"
    INCOMPATIBLE = "incompatible"


SCALAR_ORDER: Tuple[WireType, ...] = (
    WireType.BOOL,
    WireType.INT32,
    WireType.UINT32,
    WireType.INT64,
    WireType.UINT64,
    WireType.SINT32,
    WireType.SINT64,
    WireType.FIXED32,
    WireType.SFIXED32,
    WireType.FIXED64,
    WireType.SFIXED64,
    WireType.FLOAT,
    WireType.DOUBLE,
    WireType.STRING,
    WireType.BYTES,
)

# Value width in bits for the interchangeable varint family
_VARINT_WIDTH: Dict[WireType, int] = {
    WireType.BOOL: 1,
    WireType.INT32: 32,
    WireType.UINT32: 32,
    WireType.INT64: 64,
    WireType.UINT64: 64,
}

_ZIGZAG_WIDTH: Dict[WireType, int] = {
    WireType.SINT32: 32,
    WireType.SINT64: 64,
}


def _classify(old: WireType, new: WireType) -> TypeCompat:
    if old == new:
        return TypeCompat.IDENTICAL
    for family in (_VARINT_WIDTH, _ZIGZAG_WIDTH):
        if old in family and new in family:
            return TypeCompat.WIDENING if family[new] >= family[old] else TypeCompat.NARROWING
    return TypeCompat.INCOMPATIBLE


SCALAR_COMPATIBILITY: Mapping[Tuple[WireType, WireType], TypeCompat] = MappingProxyType({
    (old, new): _classify(old, new)
    for old in SCALAR_ORDER
    for new in SCALAR_ORDER
})


def classify_scalar_change(old: WireType, new: WireType) -> Optional[TypeCompat]:
    """Table lookup; None when the pair is not a scalar pair."""
    return SCALAR_COMPATIBILITY.get((old, new))


def is_wire_compatible(compat: TypeCompat) -> bool:
    return compat in (TypeCompat.IDENTICAL, TypeCompat.WIDENING)


def is_enum_superset(old_enum: Optional[EnumType], new_enum: Optional[EnumType]) -> bool:
    """Every number known to the old enum is still known to the new one."""
    if old_enum is None or new_enum is None:
        return False
    return old_enum.value_numbers() <= new_enum.value_numbers()


def is_field_superset(
    base: SchemaSnapshot,
    candidate: SchemaSnapshot,
    old: FieldDef,
    new: FieldDef,
    visited: Optional[Set[Tuple[str, str]]] = None,
) -> bool:
    """Whether `new` (in candidate) can decode everything `old` (in base) wrote."""
    if visited is None:
        visited = set()
    if old.is_repeated != new.is_repeated:
        return False

    compat = classify_scalar_change(old.type, new.type)
    if compat is not None:
        return is_wire_compatible(compat)

    if old.type == new.type and old.type in (WireType.MESSAGE, WireType.GROUP):
        return is_message_superset(base, candidate, old.type_name, new.type_name, visited)
    if old.type == new.type == WireType.ENUM:
        return is_enum_superset(base.get_enum(old.type_name), candidate.get_enum(new.type_name))
    return False


def is_message_superset(
    base: SchemaSnapshot,
    candidate: SchemaSnapshot,
    old_name: str,
    new_name: str,
    visited: Optional[Set[Tuple[str, str]]] = None,
) -> bool:
    """
    Whether candidate message `new_name` is a structural superset of base
    message `old_name`: every old field exists in the new message with the
    same tag and a compatible type, recursively.

    Cyclic references are cut with a visited set keyed by (old, new) type
    names; a revisited pair is assumed consistent.
    """
    if visited is None:
        visited = set()
    key = (old_name, new_name)
    if key in visited:
        return True
    visited.add(key)

    old_msg = base.get_message(old_name)
    new_msg = candidate.get_message(new_name)
    if old_msg is None or new_msg is None:
        return False

    for old_field in old_msg.fields:
        new_field = new_msg.field_by_number(old_field.number)
        if new_field is None:
            return False
        if not is_field_superset(base, candidate, old_field, new_field, visited):
            return False
    return True
