"""Decode Google Authenticator migration payloads into OTP account records."""

from __future__ import annotations

import base64
import binascii
import enum
import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from urllib.parse import parse_qs, urlparse

from google.protobuf.message import DecodeError

from otp_migration.errors import MalformedMessageError
from otp_migration.google_auth_pb2 import MigrationPayload

logger = logging.getLogger(__name__)

MIGRATION_SCHEME = "otpauth-migration"


class OtpType(enum.IntEnum):
    UNSPECIFIED = MigrationPayload.OTP_TYPE_UNSPECIFIED
    HOTP = MigrationPayload.HOTP
    TOTP = MigrationPayload.TOTP


class Algorithm(enum.IntEnum):
    UNSPECIFIED = MigrationPayload.ALGORITHM_UNSPECIFIED
    SHA1 = MigrationPayload.SHA1
    SHA256 = MigrationPayload.SHA256
    SHA512 = MigrationPayload.SHA512
    MD5 = MigrationPayload.MD5


class DigitCount(enum.IntEnum):
    UNSPECIFIED = MigrationPayload.DIGIT_COUNT_UNSPECIFIED
    SIX = MigrationPayload.SIX
    EIGHT = MigrationPayload.EIGHT


@dataclass(frozen=True)
class AccountRecord:
    secret: bytes
    name: str = ""
    issuer: str = ""
    otp_type: OtpType = OtpType.UNSPECIFIED
    algorithm: Algorithm = Algorithm.UNSPECIFIED
    digits: DigitCount = DigitCount.UNSPECIFIED
    counter: int = 0


@dataclass(frozen=True)
class MigrationBatch:
    accounts: list[AccountRecord] = field(default_factory=list)
    version: int = 0
    batch_size: int = 0
    batch_index: int = 0
    batch_id: int = 0


def _enum_value(enum_cls: type[enum.IntEnum], value: int) -> enum.IntEnum:
    """Map a wire value to enum_cls, treating unknown values as UNSPECIFIED."""
    try:
        return enum_cls(value)
    except ValueError:
        return enum_cls["UNSPECIFIED"]


def _decode_base64(value: str) -> bytes:
    # Form decoding turns an unescaped "+" into a space.
    return base64.b64decode(value.replace(" ", "+").strip(), validate=True)


def filter_migration_url(text: str) -> bytes | None:
    """Return the raw payload of an otpauth-migration URL, or None.

    Anything that is not such a URL, lacks a ``data`` parameter or carries
    invalid base64 yields None rather than an error.
    """
    try:
        parsed = urlparse(text.strip())
    except ValueError:
        return None
    # urlparse lowercases the scheme.
    if parsed.scheme != MIGRATION_SCHEME:
        return None
    values = parse_qs(parsed.query, keep_blank_values=True).get("data")
    if not values:
        return None
    try:
        return _decode_base64(values[0])
    except binascii.Error:
        return None


def decode_batch(raw: bytes) -> MigrationBatch:
    """Parse a serialized MigrationPayload into account records."""
    payload = MigrationPayload()
    try:
        payload.ParseFromString(raw)
    except DecodeError as exc:
        raise MalformedMessageError(f"malformed migration payload: {exc}") from exc

    accounts = [
        AccountRecord(
            secret=bytes(otp.secret),
            name=otp.name,
            issuer=otp.issuer,
            otp_type=_enum_value(OtpType, otp.type),
            algorithm=_enum_value(Algorithm, otp.algorithm),
            digits=_enum_value(DigitCount, otp.digits),
            counter=otp.counter,
        )
        for otp in payload.otp_parameters
    ]
    return MigrationBatch(
        accounts=accounts,
        version=payload.version,
        batch_size=payload.batch_size,
        batch_index=payload.batch_index,
        batch_id=payload.batch_id,
    )


def find_migration_payload(texts: Iterable[str]) -> MigrationBatch | None:
    """Return the first text that decodes to a valid migration batch.

    Stops consuming ``texts`` as soon as a batch is found.
    """
    for text in texts:
        raw = filter_migration_url(text)
        if raw is None:
            logger.debug("Ignoring symbol that is not a migration URL")
            continue
        try:
            batch = decode_batch(raw)
        except MalformedMessageError as exc:
            logger.debug("Ignoring migration URL: %s", exc)
            continue
        logger.debug("Found migration batch with %d account(s)", len(batch.accounts))
        return batch
    return None


def extract_base64_payload(uri: str) -> str:
    """Extract base64 payload from an otpauth-migration URI or raw base64."""
    uri = uri.strip()
    if "://" not in uri:
        return uri
    parsed = urlparse(uri)
    if parsed.scheme != MIGRATION_SCHEME:
        raise ValueError(f"Not an {MIGRATION_SCHEME} URI: {parsed.scheme}://")
    data_list = parse_qs(parsed.query, keep_blank_values=True).get("data")
    if not data_list:
        raise ValueError("No 'data' parameter found in migration URI")
    return data_list[0]


def decode_uri(uri: str) -> MigrationBatch:
    """Decode an otpauth-migration URI (or raw base64) into a MigrationBatch."""
    b64 = extract_base64_payload(uri)
    try:
        raw = _decode_base64(b64)
    except binascii.Error as exc:
        raise ValueError(f"Invalid base64 payload: {exc}") from exc
    return decode_batch(raw)
