"""FileDescriptorSet -> SchemaSnapshot adapter.

Reads the binary output of `protoc --include_imports --descriptor_set_out`
and flattens every file into one resolved snapshot:

- nested messages and enums become top-level types with qualified names
  (`pkg.Outer.Inner`); leading dots on type references are dropped
- message reserved ranges are end-exclusive in descriptors and become
  inclusive here; enum reserved ranges are already inclusive
- proto3 `optional` fields (synthetic oneofs) are plain singular fields
- map fields stay as repeated references to their synthesized entry message
"""

import logging
from pathlib import Path
from typing import Any, Dict, List, Union

from google.protobuf import descriptor_pb2
from google.protobuf.message import DecodeError

from protocompat._internal.io.snapshot import snapshot_from_dict
from protocompat.kernel.errors import InputError
from protocompat.kernel.model import Cardinality, SchemaSnapshot, Syntax, WireType

logger = logging.getLogger(__name__)

_FDP = descriptor_pb2.FieldDescriptorProto

_WIRE_TYPES: Dict[int, WireType] = {
    _FDP.TYPE_DOUBLE: WireType.DOUBLE,
    _FDP.TYPE_FLOAT: WireType.FLOAT,
    _FDP.TYPE_INT64: WireType.INT64,
    _FDP.TYPE_UINT64: WireType.UINT64,
    _FDP.TYPE_INT32: WireType.INT32,
    _FDP.TYPE_FIXED64: WireType.FIXED64,
    _FDP.TYPE_FIXED32: WireType.FIXED32,
    _FDP.TYPE_BOOL: WireType.BOOL,
    _FDP.TYPE_STRING: WireType.STRING,
    _FDP.TYPE_GROUP: WireType.GROUP,
    _FDP.TYPE_MESSAGE: WireType.MESSAGE,
    _FDP.TYPE_BYTES: WireType.BYTES,
    _FDP.TYPE_UINT32: WireType.UINT32,
    _FDP.TYPE_ENUM: WireType.ENUM,
    _FDP.TYPE_SFIXED32: WireType.SFIXED32,
    _FDP.TYPE_SFIXED64: WireType.SFIXED64,
    _FDP.TYPE_SINT32: WireType.SINT32,
    _FDP.TYPE_SINT64: WireType.SINT64,
}

_CARDINALITIES: Dict[int, Cardinality] = {
    _FDP.LABEL_OPTIONAL: Cardinality.SINGULAR,
    _FDP.LABEL_REQUIRED: Cardinality.REQUIRED,
    _FDP.LABEL_REPEATED: Cardinality.REPEATED,
}


def _qualify(scope: str, name: str) -> str:
    return f"{scope}.{name}" if scope else name


def _file_syntax(file_proto: descriptor_pb2.FileDescriptorProto, source: str) -> Syntax:
    # protoc leaves `syntax` empty for proto2 files
    if file_proto.syntax in ("", "proto2"):
        return Syntax.PROTO2
    if file_proto.syntax == "proto3":
        return Syntax.PROTO3
    raise InputError(
        [f"{file_proto.name}: unsupported syntax '{file_proto.syntax}'"],
        source=source,
    )


def _field_dict(field: descriptor_pb2.FieldDescriptorProto, problems: List[str], scope: str) -> Dict[str, Any]:
    wire_type = _WIRE_TYPES.get(field.type)
    if wire_type is None:
        problems.append(f"{scope}.{field.name}: unknown field type {field.type}")
        wire_type = WireType.BYTES
    data: Dict[str, Any] = {
        "number": field.number,
        "name": field.name,
        "type": wire_type.value,
        "cardinality": _CARDINALITIES.get(field.label, Cardinality.SINGULAR).value,
    }
    if field.type_name:
        data["type_name"] = field.type_name
    if field.options.HasField("packed"):
        data["packed"] = field.options.packed
    if field.HasField("default_value"):
        data["default"] = field.default_value
    return data


def _enum_values(enum_proto: descriptor_pb2.EnumDescriptorProto) -> List[Dict[str, Any]]:
    # allow_alias binds several names to one number; the first declared name wins
    values: Dict[int, str] = {}
    for v in enum_proto.value:
        values.setdefault(v.number, v.name)
    return [{"number": number, "name": name} for number, name in values.items()]


def _collect_enum(
    enum_proto: descriptor_pb2.EnumDescriptorProto,
    scope: str,
    syntax: Syntax,
    enums: List[Dict[str, Any]],
) -> None:
    enums.append({
        "name": _qualify(scope, enum_proto.name),
        "syntax": syntax.value,
        "values": _enum_values(enum_proto),
        "reserved_ranges": [[r.start, r.end] for r in enum_proto.reserved_range],
        "reserved_names": list(enum_proto.reserved_name),
    })


def _collect_message(
    message_proto: descriptor_pb2.DescriptorProto,
    scope: str,
    syntax: Syntax,
    messages: List[Dict[str, Any]],
    enums: List[Dict[str, Any]],
    problems: List[str],
) -> None:
    name = _qualify(scope, message_proto.name)
    messages.append({
        "name": name,
        "syntax": syntax.value,
        "fields": [_field_dict(f, problems, name) for f in message_proto.field],
        "reserved_ranges": [[r.start, r.end - 1] for r in message_proto.reserved_range],
        "reserved_names": list(message_proto.reserved_name),
    })
    for nested in message_proto.nested_type:
        _collect_message(nested, name, syntax, messages, enums, problems)
    for nested_enum in message_proto.enum_type:
        _collect_enum(nested_enum, name, syntax, enums)


def snapshot_from_descriptor_set(
    descriptor_set: descriptor_pb2.FileDescriptorSet,
    source: str | None = None,
) -> SchemaSnapshot:
    """Flatten every file of a FileDescriptorSet into one snapshot."""
    messages: List[Dict[str, Any]] = []
    enums: List[Dict[str, Any]] = []
    problems: List[str] = []

    for file_proto in descriptor_set.file:
        syntax = _file_syntax(file_proto, source)
        for message_proto in file_proto.message_type:
            _collect_message(message_proto, file_proto.package, syntax, messages, enums, problems)
        for enum_proto in file_proto.enum_type:
            _collect_enum(enum_proto, file_proto.package, syntax, enums)

    if problems:
        raise InputError(problems, source=source)

    logger.debug(
        "Read %d file(s): %d message(s), %d enum(s)",
        len(descriptor_set.file), len(messages), len(enums),
    )
    return snapshot_from_dict({"messages": messages, "enums": enums}, source=source)


def load_descriptor_set(path: Union[str, Path]) -> SchemaSnapshot:
    """Load a binary FileDescriptorSet file (built with --include_imports)."""
    path = Path(path)
    try:
        data = path.read_bytes()
    except OSError as e:
        raise InputError([f"cannot read file: {e}"], source=str(path)) from e

    descriptor_set = descriptor_pb2.FileDescriptorSet()
    try:
        descriptor_set.ParseFromString(data)
    except DecodeError as e:
        raise InputError([f"not a valid FileDescriptorSet: {e}"], source=str(path)) from e
    return snapshot_from_descriptor_set(descriptor_set, source=str(path))
