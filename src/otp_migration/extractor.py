"""Scan QR code images for Google Authenticator migration payloads."""

from __future__ import annotations

import io
import logging
from collections.abc import Iterator, Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path

import zxingcpp
from PIL import Image

from otp_migration.decoder import MigrationBatch, find_migration_payload
from otp_migration.errors import ConversionError, ImageFormatError, MigrationError
from otp_migration.exporter import OutputAccount, convert_accounts, summarize_errors

logger = logging.getLogger(__name__)

IMAGE_EXTENSIONS = {".png", ".jpg", ".jpeg"}

# Samples above this become white when binarizing.
THRESHOLD = 128

NO_CODE_FOUND_MESSAGE = (
    "No valid Google Authenticator Export QR code found in the uploaded image."
)


@dataclass(frozen=True)
class ScanResult:
    found: bool
    accounts: list[OutputAccount] = field(default_factory=list)
    errors: list[ConversionError] = field(default_factory=list)

    @property
    def message(self) -> str | None:
        if not self.found:
            return NO_CODE_FOUND_MESSAGE
        return summarize_errors(self.errors)


# One file's scan: its result, or the error that stopped it.
ScanOutcome = ScanResult | MigrationError | OSError


def load_grayscale(data: bytes) -> Image.Image:
    """Decode image bytes into an 8-bit grayscale image."""
    # Pillow reports corrupt chunks as SyntaxError and bad sizes as ValueError.
    try:
        with Image.open(io.BytesIO(data)) as img:
            return img.convert("L")
    except (OSError, SyntaxError, ValueError, Image.DecompressionBombError) as exc:
        raise ImageFormatError(f"could not decode image: {exc}") from exc


def binarize(image: Image.Image) -> Image.Image:
    """Map every sample to 0 or 255 around THRESHOLD."""
    return image.point(lambda value: 255 if value > THRESHOLD else 0)


def preprocess(data: bytes, threshold: bool = False) -> Image.Image:
    gray = load_grayscale(data)
    return binarize(gray) if threshold else gray


def detect_and_decode(image: Image.Image) -> Iterator[str]:
    """Yield the text of every QR code zxing-cpp can read in ``image``."""
    results = zxingcpp.read_barcodes(image, formats=zxingcpp.BarcodeFormat.QRCode)
    for result in results:
        if result.text:
            yield result.text


def extract_migration(data: bytes) -> MigrationBatch | None:
    """Find the first migration batch in an image, retrying once binarized.

    Raises:
        ImageFormatError: ``data`` is not a readable image.
    """
    gray = load_grayscale(data)
    batch = find_migration_payload(detect_and_decode(gray))
    if batch is None:
        # Thresholding counteracts JPEG compression artefacts.
        logger.debug("No migration payload found, retrying with threshold")
        batch = find_migration_payload(detect_and_decode(binarize(gray)))
    return batch


def scan_image_bytes(data: bytes) -> ScanResult:
    """Run the full pipeline on image bytes."""
    batch = extract_migration(data)
    if batch is None:
        return ScanResult(found=False)
    accounts, errors = convert_accounts(batch.accounts)
    return ScanResult(found=True, accounts=accounts, errors=errors)


def scan_image(path: Path) -> ScanResult:
    """Read an image file and run the full pipeline on it."""
    return scan_image_bytes(Path(path).read_bytes())


def _scan_one(path: Path) -> ScanOutcome:
    try:
        return scan_image(path)
    except (MigrationError, OSError) as exc:
        logger.debug("Failed to scan %s: %s", path, exc)
        return exc


def scan_files(
    paths: Sequence[Path], max_workers: int | None = None
) -> list[tuple[Path, ScanOutcome]]:
    """Scan several image files concurrently, keeping input order.

    A decode or read error for one file is returned in that file's slot and
    does not affect the others.
    """
    with ThreadPoolExecutor(max_workers=max_workers) as pool:
        return list(zip(paths, pool.map(_scan_one, paths)))


def collect_image_paths(path: Path) -> list[Path]:
    """Return ``path`` itself, or the image files directly inside it."""
    if path.is_dir():
        return [
            p
            for p in sorted(path.iterdir())
            if p.is_file() and p.suffix.lower() in IMAGE_EXTENSIONS
        ]
    if path.is_file():
        return [path]
    raise FileNotFoundError(f"Path not found: {path}")
