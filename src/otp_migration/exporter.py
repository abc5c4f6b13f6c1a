"""Turn account records into otpauth:// URIs and QR code images."""

from __future__ import annotations

import base64
import logging
import string
from collections.abc import Iterable
from dataclasses import dataclass
from urllib.parse import quote_plus

import qrcode
import qrcode.constants
from qrcode.image.svg import SvgImage

from otp_migration.decoder import AccountRecord, Algorithm, DigitCount, OtpType
from otp_migration.errors import ConversionError, UnknownTypeError

logger = logging.getLogger(__name__)

ERROR_CORRECTION = qrcode.constants.ERROR_CORRECT_L

ALGORITHM_LABELS: dict[Algorithm, str] = {
    Algorithm.SHA1: "SHA1",
    Algorithm.SHA256: "SHA256",
    Algorithm.SHA512: "SHA512",
    Algorithm.MD5: "MD5",
}

DIGIT_LABELS: dict[DigitCount, str] = {
    DigitCount.SIX: "6",
    DigitCount.EIGHT: "8",
}

_ALPHANUMERIC = frozenset(string.ascii_letters + string.digits)


@dataclass(frozen=True)
class OutputAccount:
    issuer: str
    name: str
    secret: str
    kind: str
    algorithm: str | None
    digits: str | None
    counter: int | None
    url: str
    svg: str


def encode_secret(secret: bytes) -> str:
    """Base32-encode a secret without ``=`` padding."""
    return base64.b32encode(secret).decode("ascii").rstrip("=")


def strict_percent_encode(text: str) -> str:
    """Percent-encode every UTF-8 byte that is not an ASCII letter or digit."""
    return "".join(
        chr(byte) if chr(byte) in _ALPHANUMERIC else f"%{byte:02X}"
        for byte in text.encode("utf-8")
    )


def _form_encode(value: str) -> str:
    # application/x-www-form-urlencoded leaves only alphanumerics and "*-._".
    return quote_plus(value, safe="*").replace("~", "%7E")


def build_otpauth_uri(record: AccountRecord) -> str:
    """Build the Key URI Format string for a single account record."""
    return _build(record)[0]


def _build(record: AccountRecord) -> tuple[str, str, str, str | None, str | None]:
    secret = encode_secret(record.secret)
    params: list[tuple[str, str]] = [("secret", secret)]

    if record.otp_type == OtpType.HOTP:
        kind = "hotp"
        params.append(("counter", str(record.counter)))
    elif record.otp_type == OtpType.TOTP:
        kind = "totp"
    else:
        raise UnknownTypeError("unknown otp type")

    if record.issuer:
        params.append(("issuer", record.issuer))
        label = strict_percent_encode(f"{record.issuer}:{record.name}")
    else:
        label = strict_percent_encode(record.name)

    algorithm = ALGORITHM_LABELS.get(record.algorithm)
    if algorithm is not None:
        params.append(("algorithm", algorithm))

    digits = DIGIT_LABELS.get(record.digits)
    if digits is not None:
        params.append(("digits", digits))

    query = "&".join(f"{k}={_form_encode(v)}" for k, v in params)
    # https://github.com/google/google-authenticator/wiki/Key-Uri-Format
    return f"otpauth://{kind}/{label}?{query}", secret, kind, algorithm, digits


def make_qr(uri: str, **kwargs) -> qrcode.QRCode:
    """Lay out a low error-correction QR code for ``uri``."""
    qr = qrcode.QRCode(error_correction=ERROR_CORRECTION, **kwargs)
    qr.add_data(uri)
    qr.make(fit=True)
    return qr


def uri_to_svg(uri: str) -> str:
    """Render ``uri`` as square-module SVG markup."""
    img = make_qr(uri, image_factory=SvgImage).make_image()
    return img.to_string(encoding="unicode")


def uri_to_data_uri(uri: str) -> str:
    """Render ``uri`` as a percent-encoded ``image/svg+xml`` data URI."""
    return "data:image/svg+xml," + strict_percent_encode(uri_to_svg(uri))


def to_output(record: AccountRecord) -> OutputAccount:
    """Convert one account record into its URI and QR code.

    Raises:
        UnknownTypeError: the record is neither HOTP nor TOTP.
    """
    url, secret, kind, algorithm, digits = _build(record)
    return OutputAccount(
        issuer=record.issuer,
        name=record.name,
        secret=secret,
        kind=kind.upper(),
        algorithm=algorithm,
        digits=digits,
        counter=record.counter if kind == "hotp" else None,
        url=url,
        svg=uri_to_data_uri(url),
    )


def convert_accounts(
    records: Iterable[AccountRecord],
) -> tuple[list[OutputAccount], list[ConversionError]]:
    """Convert every record, collecting per-record failures instead of stopping."""
    outputs: list[OutputAccount] = []
    errors: list[ConversionError] = []
    for record in records:
        try:
            outputs.append(to_output(record))
        except ConversionError as exc:
            logger.debug("Skipping account %r: %s", record.name, exc)
            errors.append(exc)
    return outputs, errors


def summarize_errors(errors: Iterable[object]) -> str | None:
    """Build the user-facing message for per-record failures, if any."""
    messages = [str(e) for e in errors]
    if not messages:
        return None
    if len(messages) == 1:
        return f"One account could not be read: {messages[0]}"
    return f"{len(messages)} accounts could not be read: {', '.join(messages)}"
