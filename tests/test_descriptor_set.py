"""Tests for the FileDescriptorSet adapter."""

import pytest
from google.protobuf import descriptor_pb2

from protocompat._internal.io.snapshot import load_snapshot
from protocompat.adapters.descriptor_set import load_descriptor_set, snapshot_from_descriptor_set
from protocompat.kernel.errors import InputError
from protocompat.kernel.model import Cardinality, Syntax, WireType

FDP = descriptor_pb2.FieldDescriptorProto


def _field(message, name, number, type_, label=FDP.LABEL_OPTIONAL, type_name=None):
    f = message.field.add()
    f.name = name
    f.number = number
    f.type = type_
    f.label = label
    if type_name:
        f.type_name = type_name
    return f


def _user_file(syntax="proto3"):
    file_proto = descriptor_pb2.FileDescriptorProto()
    file_proto.name = "acme/user.proto"
    file_proto.package = "acme.v1"
    file_proto.syntax = syntax

    user = file_proto.message_type.add()
    user.name = "User"
    _field(user, "id", 1, FDP.TYPE_INT64)
    _field(user, "tags", 2, FDP.TYPE_STRING, label=FDP.LABEL_REPEATED)
    _field(user, "address", 3, FDP.TYPE_MESSAGE, type_name=".acme.v1.User.Address")
    _field(user, "status", 4, FDP.TYPE_ENUM, type_name=".acme.v1.Status")
    reserved = user.reserved_range.add()
    reserved.start = 10
    reserved.end = 13  # exclusive
    user.reserved_name.append("legacy")

    address = user.nested_type.add()
    address.name = "Address"
    _field(address, "zip", 1, FDP.TYPE_STRING)

    status = file_proto.enum_type.add()
    status.name = "Status"
    for number, name in ((0, "STATUS_UNSPECIFIED"), (1, "ACTIVE")):
        value = status.value.add()
        value.name = name
        value.number = number
    enum_reserved = status.reserved_range.add()
    enum_reserved.start = 5
    enum_reserved.end = 6  # inclusive
    return file_proto


def _descriptor_set(*files):
    fds = descriptor_pb2.FileDescriptorSet()
    for f in files:
        fds.file.append(f)
    return fds


def test_flattens_nested_types_with_qualified_names():
    snapshot = snapshot_from_descriptor_set(_descriptor_set(_user_file()))
    assert snapshot.type_names() == {"acme.v1.User", "acme.v1.User.Address", "acme.v1.Status"}

    user = snapshot.get_message("acme.v1.User")
    assert user.syntax == Syntax.PROTO3
    address = user.field_by_name("address")
    assert address.type == WireType.MESSAGE
    assert address.type_name == "acme.v1.User.Address"
    assert user.field_by_name("tags").cardinality == Cardinality.REPEATED


def test_reserved_ranges_become_inclusive():
    snapshot = snapshot_from_descriptor_set(_descriptor_set(_user_file()))
    user = snapshot.get_message("acme.v1.User")
    assert user.is_reserved(10)
    assert user.is_reserved(12)
    assert not user.is_reserved(13)
    assert user.is_name_reserved("legacy")

    status = snapshot.get_enum("acme.v1.Status")
    assert status.is_reserved(5)
    assert status.is_reserved(6)
    assert not status.is_reserved(7)


def test_proto2_required_and_defaults():
    file_proto = descriptor_pb2.FileDescriptorProto()
    file_proto.name = "legacy.proto"
    file_proto.package = "legacy"
    # protoc leaves syntax empty for proto2
    msg = file_proto.message_type.add()
    msg.name = "Job"
    _field(msg, "id", 1, FDP.TYPE_INT32, label=FDP.LABEL_REQUIRED)
    retries = _field(msg, "retries", 2, FDP.TYPE_UINT32)
    retries.default_value = "3"
    ids = _field(msg, "ids", 3, FDP.TYPE_INT32, label=FDP.LABEL_REPEATED)
    ids.options.packed = True

    job = snapshot_from_descriptor_set(_descriptor_set(file_proto)).get_message("legacy.Job")
    assert job.syntax == Syntax.PROTO2
    assert job.field_by_name("id").is_required
    assert job.field_by_name("retries").default == "3"
    assert job.field_by_name("ids").is_packed(job.syntax) is True


def test_enum_aliases_keep_first_name():
    file_proto = descriptor_pb2.FileDescriptorProto()
    file_proto.name = "alias.proto"
    file_proto.syntax = "proto3"
    enum = file_proto.enum_type.add()
    enum.name = "Mode"
    enum.options.allow_alias = True
    for number, name in ((0, "MODE_UNSPECIFIED"), (1, "FAST"), (1, "QUICK")):
        value = enum.value.add()
        value.name = name
        value.number = number

    mode = snapshot_from_descriptor_set(_descriptor_set(file_proto)).get_enum("Mode")
    assert [(v.number, v.name) for v in mode.values] == [(0, "MODE_UNSPECIFIED"), (1, "FAST")]


def test_editions_rejected():
    file_proto = _user_file(syntax="editions")
    with pytest.raises(InputError, match="unsupported syntax 'editions'"):
        snapshot_from_descriptor_set(_descriptor_set(file_proto))


def test_unresolved_import_is_input_error():
    """A set built without --include_imports leaves dangling references."""
    file_proto = descriptor_pb2.FileDescriptorProto()
    file_proto.name = "order.proto"
    file_proto.package = "acme"
    file_proto.syntax = "proto3"
    order = file_proto.message_type.add()
    order.name = "Order"
    _field(order, "created", 1, FDP.TYPE_MESSAGE, type_name=".google.protobuf.Timestamp")

    with pytest.raises(InputError, match="unresolved message reference 'google.protobuf.Timestamp'"):
        snapshot_from_descriptor_set(_descriptor_set(file_proto), source="order.desc")


def test_load_from_file_by_suffix(tmp_path):
    path = tmp_path / "schema.desc"
    path.write_bytes(_descriptor_set(_user_file()).SerializeToString())

    snapshot = load_snapshot(path)
    assert snapshot == load_descriptor_set(path)
    assert snapshot.get_enum("acme.v1.Status").has_zero_value


def test_garbage_bytes_rejected(tmp_path):
    path = tmp_path / "schema.pb"
    # field 1 claims 16 bytes but only 3 follow
    path.write_bytes(b"\x0a\x10abc")
    with pytest.raises(InputError, match="not a valid FileDescriptorSet"):
        load_snapshot(path)


def test_missing_file_rejected(tmp_path):
    with pytest.raises(InputError, match="cannot read file"):
        load_descriptor_set(tmp_path / "missing.desc")
