"""Protobuf bindings for google_auth.proto.

The descriptor is assembled at import time instead of being generated by
protoc. Keep it in sync with google_auth.proto.
"""

from __future__ import annotations

from google.protobuf import descriptor_pb2, descriptor_pool, message_factory

_FILE_NAME = "otp_migration/google_auth.proto"
_PACKAGE = "otp_migration"

_Field = descriptor_pb2.FieldDescriptorProto

_ENUMS: dict[str, tuple[str, ...]] = {
    "Algorithm": ("ALGORITHM_UNSPECIFIED", "SHA1", "SHA256", "SHA512", "MD5"),
    "DigitCount": ("DIGIT_COUNT_UNSPECIFIED", "SIX", "EIGHT"),
    "OtpType": ("OTP_TYPE_UNSPECIFIED", "HOTP", "TOTP"),
}


def _scoped(name: str) -> str:
    return f".{_PACKAGE}.MigrationPayload.{name}"


def _build_file() -> descriptor_pb2.FileDescriptorProto:
    file_proto = descriptor_pb2.FileDescriptorProto(
        name=_FILE_NAME, package=_PACKAGE, syntax="proto3"
    )
    payload = file_proto.message_type.add(name="MigrationPayload")

    for enum_name, value_names in _ENUMS.items():
        enum_proto = payload.enum_type.add(name=enum_name)
        for number, value_name in enumerate(value_names):
            enum_proto.value.add(name=value_name, number=number)

    params = payload.nested_type.add(name="OtpParameters")
    for number, (name, field_type, type_name) in enumerate(
        [
            ("secret", _Field.TYPE_BYTES, None),
            ("name", _Field.TYPE_STRING, None),
            ("issuer", _Field.TYPE_STRING, None),
            ("algorithm", _Field.TYPE_ENUM, _scoped("Algorithm")),
            ("digits", _Field.TYPE_ENUM, _scoped("DigitCount")),
            ("type", _Field.TYPE_ENUM, _scoped("OtpType")),
            ("counter", _Field.TYPE_INT64, None),
        ],
        start=1,
    ):
        field = params.field.add(
            name=name, number=number, type=field_type, label=_Field.LABEL_OPTIONAL
        )
        if type_name:
            field.type_name = type_name

    payload.field.add(
        name="otp_parameters",
        number=1,
        type=_Field.TYPE_MESSAGE,
        type_name=_scoped("OtpParameters"),
        label=_Field.LABEL_REPEATED,
    )
    for number, name in enumerate(
        ["version", "batch_size", "batch_index", "batch_id"], start=2
    ):
        payload.field.add(
            name=name, number=number, type=_Field.TYPE_INT32, label=_Field.LABEL_OPTIONAL
        )
    return file_proto


_pool = descriptor_pool.Default()
_pool.AddSerializedFile(_build_file().SerializeToString())

DESCRIPTOR = _pool.FindFileByName(_FILE_NAME)

MigrationPayload = message_factory.GetMessageClass(
    DESCRIPTOR.message_types_by_name["MigrationPayload"]
)

__all__ = ["DESCRIPTOR", "MigrationPayload"]
