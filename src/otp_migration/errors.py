"""Exceptions raised while reading migration QR codes."""


class MigrationError(Exception):
    """Base class for all otp_migration errors."""


class ImageFormatError(MigrationError):
    """The image container could not be decoded."""


class MalformedMessageError(MigrationError):
    """A migration payload was found but is not a valid MigrationPayload."""


class ConversionError(MigrationError):
    """A single account record could not be turned into an otpauth:// URI."""


class UnknownTypeError(ConversionError):
    """The account record has no HOTP/TOTP type."""
