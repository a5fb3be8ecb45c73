"""Pydantic models for resolved schema snapshots.

A snapshot is the in-memory view of one version of a schema corpus. It is
built once by a descriptor collaborator (JSON snapshot loader or the
descriptor-set adapter) and never mutated afterwards: every model here is
frozen.

Field identity is the tag number, enum value identity is the numeric value.
Names are carried for reporting and for rename/reuse classification only.
"""

from enum import Enum
from typing import Any, Dict, List, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, PrivateAttr, field_validator, model_validator


MAX_FIELD_NUMBER = 536870911  # 2^29 - 1


class Syntax(str, Enum):
    """Schema syntax mode."""
    PROTO2 = "proto2"  # explicit optional/required/default
    PROTO3 = "proto3"  # implicit presence, no required, no explicit defaults


class WireType(str, Enum):
    """Declared field type, grouped by wire encoding family."""
    INT32 = "int32"
    INT64 = "int64"
    UINT32 = "uint32"
    UINT64 = "uint64"
    SINT32 = "sint32"
    SINT64 = "sint64"
    BOOL = "bool"
    FIXED32 = "fixed32"
    FIXED64 = "fixed64"
    SFIXED32 = "sfixed32"
    SFIXED64 = "sfixed64"
    FLOAT = "float"
    DOUBLE = "double"
    STRING = "string"
    BYTES = "bytes"
    MESSAGE = "message"
    ENUM = "enum"
    GROUP = "group"  # proto2 legacy, start/end-group delimited


REFERENCE_TYPES = frozenset({WireType.MESSAGE, WireType.ENUM, WireType.GROUP})
SCALAR_TYPES = frozenset(t for t in WireType if t not in REFERENCE_TYPES)
PACKABLE_TYPES = frozenset(
    t for t in SCALAR_TYPES if t not in (WireType.STRING, WireType.BYTES)
) | {WireType.ENUM}


class Cardinality(str, Enum):
    """Field cardinality."""
    SINGULAR = "singular"
    REPEATED = "repeated"
    REQUIRED = "required"  # proto2 only


def _strip_dot(name: str) -> str:
    return name[1:] if name.startswith(".") else name


class ReservedRange(BaseModel):
    """An inclusive range of reserved numbers."""
    start: int
    end: int

    model_config = ConfigDict(frozen=True, extra="forbid")

    @model_validator(mode="before")
    @classmethod
    def coerce_shorthand(cls, data: Any) -> Any:
        """Accept `5` and `[5, 9]` as shorthand for single numbers and ranges."""
        if isinstance(data, int) and not isinstance(data, bool):
            return {"start": data, "end": data}
        if isinstance(data, (list, tuple)) and len(data) == 2:
            return {"start": data[0], "end": data[1]}
        return data

    @model_validator(mode="after")
    def check_bounds(self) -> "ReservedRange":
        if self.start > self.end:
            raise ValueError(f"Reserved range start {self.start} is greater than end {self.end}")
        return self

    def contains(self, number: int) -> bool:
        return self.start <= number <= self.end

    def render(self) -> str:
        if self.start == self.end:
            return str(self.start)
        return f"{self.start} to {self.end}"


class FieldDef(BaseModel):
    """A message field. `number` is the field's identity."""
    number: int
    name: str
    type: WireType
    type_name: Optional[str] = None  # qualified name of the referenced message/enum
    cardinality: Cardinality = Cardinality.SINGULAR
    packed: Optional[bool] = None  # None = syntax default
    default: Optional[str] = None  # explicit default, proto2 only

    model_config = ConfigDict(frozen=True, extra="forbid")

    @field_validator("number")
    @classmethod
    def validate_number(cls, v: int) -> int:
        if not 1 <= v <= MAX_FIELD_NUMBER:
            raise ValueError(f"Field number {v} is outside 1..{MAX_FIELD_NUMBER}")
        return v

    @field_validator("type_name")
    @classmethod
    def normalize_type_name(cls, v: Optional[str]) -> Optional[str]:
        return _strip_dot(v) if v else v

    @model_validator(mode="after")
    def check_type_reference(self) -> "FieldDef":
        if self.type in REFERENCE_TYPES and not self.type_name:
            raise ValueError(f"Field '{self.name}' of type {self.type.value} requires type_name")
        if self.type not in REFERENCE_TYPES and self.type_name:
            raise ValueError(f"Scalar field '{self.name}' must not carry type_name '{self.type_name}'")
        return self

    @property
    def is_repeated(self) -> bool:
        return self.cardinality == Cardinality.REPEATED

    @property
    def is_required(self) -> bool:
        return self.cardinality == Cardinality.REQUIRED

    def is_packed(self, syntax: Syntax) -> bool:
        """Effective packed encoding; only repeated numeric/enum fields pack."""
        if not self.is_repeated or self.type not in PACKABLE_TYPES:
            return False
        if self.packed is not None:
            return self.packed
        return syntax == Syntax.PROTO3

    def type_label(self) -> str:
        """Human-readable type, e.g. `repeated int32` or `acme.User`."""
        base = self.type_name if self.type_name else self.type.value
        if self.cardinality == Cardinality.SINGULAR:
            return base
        return f"{self.cardinality.value} {base}"


class EnumValueDef(BaseModel):
    """An enum constant. `number` is its identity."""
    number: int
    name: str

    model_config = ConfigDict(frozen=True, extra="forbid")


def _duplicates(items: List[Any]) -> List[Any]:
    seen = set()
    duplicates = set()
    for item in items:
        if item in seen:
            duplicates.add(item)
        seen.add(item)
    return sorted(duplicates)


class _ReservingType(BaseModel):
    """Shared shape of message and enum types."""
    name: str  # fully qualified, e.g. "acme.v1.User"
    syntax: Syntax = Syntax.PROTO3
    reserved_ranges: Tuple[ReservedRange, ...] = ()
    reserved_names: Tuple[str, ...] = ()

    model_config = ConfigDict(frozen=True, extra="forbid")

    @field_validator("name")
    @classmethod
    def normalize_name(cls, v: str) -> str:
        v = _strip_dot(v)
        if not v:
            raise ValueError("Type name must not be empty")
        return v

    @field_validator("reserved_names")
    @classmethod
    def canonicalize_reserved_names(cls, v: Tuple[str, ...]) -> Tuple[str, ...]:
        return tuple(sorted(set(v)))

    def is_reserved(self, number: int) -> bool:
        return any(r.contains(number) for r in self.reserved_ranges)

    def is_name_reserved(self, name: str) -> bool:
        return name in self.reserved_names

    def reservation_signature(self) -> Tuple[Tuple[Tuple[int, int], ...], Tuple[str, ...]]:
        """Order-independent view of the reservation set, for diffing."""
        ranges = tuple(sorted((r.start, r.end) for r in self.reserved_ranges))
        return ranges, self.reserved_names


class MessageType(_ReservingType):
    """A message type with its fields in declaration order."""
    fields: Tuple[FieldDef, ...] = ()

    @model_validator(mode="after")
    def check_fields(self) -> "MessageType":
        problems: List[str] = []
        for number in _duplicates([f.number for f in self.fields]):
            problems.append(f"{self.name}: field number {number} used by more than one field")
        for name in _duplicates([f.name for f in self.fields]):
            problems.append(f"{self.name}: field name '{name}' declared more than once")
        for r in self.reserved_ranges:
            if r.start < 1 or r.end > MAX_FIELD_NUMBER:
                problems.append(f"{self.name}: reserved range {r.render()} is outside 1..{MAX_FIELD_NUMBER}")
        for f in self.fields:
            if self.is_reserved(f.number):
                problems.append(f"{self.name}.{f.name}: field number {f.number} is reserved")
            if self.is_name_reserved(f.name):
                problems.append(f"{self.name}.{f.name}: field name is reserved")
            if self.syntax == Syntax.PROTO3 and f.is_required:
                problems.append(f"{self.name}.{f.name}: required fields are not allowed in proto3")
            if self.syntax == Syntax.PROTO3 and f.default is not None:
                problems.append(f"{self.name}.{f.name}: explicit defaults are not allowed in proto3")
        if problems:
            raise ValueError("; ".join(problems))
        return self

    def field_by_number(self, number: int) -> FieldDef | None:
        for f in self.fields:
            if f.number == number:
                return f
        return None

    def field_by_name(self, name: str) -> FieldDef | None:
        for f in self.fields:
            if f.name == name:
                return f
        return None

    def field_numbers(self) -> set[int]:
        return {f.number for f in self.fields}


class EnumType(_ReservingType):
    """An enum type with its values in declaration order."""
    values: Tuple[EnumValueDef, ...] = ()

    @model_validator(mode="after")
    def check_values(self) -> "EnumType":
        problems: List[str] = []
        for number in _duplicates([v.number for v in self.values]):
            problems.append(f"{self.name}: enum number {number} bound to more than one name")
        for name in _duplicates([v.name for v in self.values]):
            problems.append(f"{self.name}: enum name '{name}' declared more than once")
        for v in self.values:
            if self.is_reserved(v.number):
                problems.append(f"{self.name}.{v.name}: enum number {v.number} is reserved")
            if self.is_name_reserved(v.name):
                problems.append(f"{self.name}.{v.name}: enum name is reserved")
        if problems:
            raise ValueError("; ".join(problems))
        return self

    def value_by_number(self, number: int) -> EnumValueDef | None:
        for v in self.values:
            if v.number == number:
                return v
        return None

    def value_by_name(self, name: str) -> EnumValueDef | None:
        for v in self.values:
            if v.name == name:
                return v
        return None

    def value_numbers(self) -> set[int]:
        return {v.number for v in self.values}

    @property
    def has_zero_value(self) -> bool:
        return 0 in self.value_numbers()


SchemaType = Union[MessageType, EnumType]


class SchemaSnapshot(BaseModel):
    """One resolved version of a schema corpus."""
    messages: Tuple[MessageType, ...] = ()
    enums: Tuple[EnumType, ...] = ()

    model_config = ConfigDict(frozen=True, extra="forbid")

    _types: Dict[str, SchemaType] = PrivateAttr(default_factory=dict)

    @model_validator(mode="after")
    def check_resolved(self) -> "SchemaSnapshot":
        """Qualified names are unique and every type reference resolves."""
        problems: List[str] = []
        all_names = [m.name for m in self.messages] + [e.name for e in self.enums]
        for name in _duplicates(all_names):
            problems.append(f"Type '{name}' declared more than once")

        message_names = {m.name for m in self.messages}
        enum_names = {e.name for e in self.enums}
        for message in self.messages:
            for f in message.fields:
                if f.type in (WireType.MESSAGE, WireType.GROUP) and f.type_name not in message_names:
                    problems.append(
                        f"{message.name}.{f.name}: unresolved message reference '{f.type_name}'"
                    )
                elif f.type == WireType.ENUM and f.type_name not in enum_names:
                    problems.append(
                        f"{message.name}.{f.name}: unresolved enum reference '{f.type_name}'"
                    )
        if problems:
            raise ValueError("; ".join(problems))
        return self

    def model_post_init(self, __context: Any) -> None:
        types: Dict[str, SchemaType] = {}
        for message in self.messages:
            types[message.name] = message
        for enum in self.enums:
            types[enum.name] = enum
        self._types = types

    def type_names(self) -> set[str]:
        return set(self._types)

    def get_type(self, name: str) -> SchemaType | None:
        return self._types.get(_strip_dot(name))

    def get_message(self, name: str) -> MessageType | None:
        found = self.get_type(name)
        return found if isinstance(found, MessageType) else None

    def get_enum(self, name: str) -> EnumType | None:
        found = self.get_type(name)
        return found if isinstance(found, EnumType) else None
