"""otp_migration package.

This package can be used both as a CLI tool and as an importable library.
"""

__version__ = "0.1.0"

from otp_migration.decoder import AccountRecord, MigrationBatch, decode_uri
from otp_migration.errors import (
    ConversionError,
    ImageFormatError,
    MalformedMessageError,
    MigrationError,
    UnknownTypeError,
)
from otp_migration.exporter import OutputAccount, to_output, uri_to_svg
from otp_migration.extractor import ScanResult, scan_files, scan_image, scan_image_bytes

__all__ = [
    "AccountRecord",
    "ConversionError",
    "ImageFormatError",
    "MalformedMessageError",
    "MigrationBatch",
    "MigrationError",
    "OutputAccount",
    "ScanResult",
    "UnknownTypeError",
    "__version__",
    "decode_uri",
    "scan_files",
    "scan_image",
    "scan_image_bytes",
    "to_output",
    "uri_to_svg",
]
