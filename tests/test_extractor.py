"""Tests for the extractor module (QR image scanning)."""

from __future__ import annotations

import base64
import io
from pathlib import Path
from urllib.parse import quote

import pytest
import qrcode
from PIL import Image

from otp_migration import extractor
from otp_migration.errors import ImageFormatError
from otp_migration.extractor import (
    NO_CODE_FOUND_MESSAGE,
    ScanResult,
    binarize,
    collect_image_paths,
    detect_and_decode,
    extract_migration,
    load_grayscale,
    preprocess,
    scan_files,
    scan_image,
    scan_image_bytes,
)
from otp_migration.google_auth_pb2 import MigrationPayload


def _make_migration_uri(
    name: str = "alice",
    issuer: str = "example",
    otp_type: int = MigrationPayload.TOTP,
) -> str:
    """Create an otpauth-migration:// URI with one account."""
    payload = MigrationPayload()
    otp = payload.otp_parameters.add()
    otp.secret = b"TESTSECRET12"
    otp.name = name
    otp.issuer = issuer
    otp.algorithm = MigrationPayload.SHA1
    otp.digits = MigrationPayload.SIX
    otp.type = otp_type
    b64 = base64.b64encode(payload.SerializeToString()).decode()
    return f"otpauth-migration://offline?data={quote(b64, safe='')}"


def _qr_image(text: str) -> Image.Image:
    return qrcode.make(text).get_image().convert("L")


def _to_bytes(img: Image.Image, fmt: str = "PNG") -> bytes:
    buf = io.BytesIO()
    img.save(buf, format=fmt)
    return buf.getvalue()


def _make_qr_bytes(text: str, fmt: str = "PNG") -> bytes:
    return _to_bytes(_qr_image(text), fmt)


def _side_by_side(*texts: str) -> bytes:
    """Render several QR codes next to each other in one image."""
    images = [_qr_image(t) for t in texts]
    width = sum(i.width for i in images)
    height = max(i.height for i in images)
    canvas = Image.new("L", (width, height), 255)
    x = 0
    for img in images:
        canvas.paste(img, (x, 0))
        x += img.width
    return _to_bytes(canvas)


class TestPreprocess:
    def test_grayscale(self) -> None:
        rgb = Image.new("RGB", (4, 3), (255, 0, 0))
        gray = load_grayscale(_to_bytes(rgb))
        assert gray.mode == "L"
        assert gray.size == (4, 3)

    def test_non_image_bytes(self) -> None:
        with pytest.raises(ImageFormatError):
            load_grayscale(b"definitely not an image")

    def test_empty_bytes(self) -> None:
        with pytest.raises(ImageFormatError):
            preprocess(b"")

    def test_binarize_threshold(self) -> None:
        ramp = Image.new("L", (256, 1))
        ramp.putdata(list(range(256)))
        values = list(binarize(ramp).getdata())
        assert values[:129] == [0] * 129
        assert values[129:] == [255] * 127

    def test_preprocess_flag(self) -> None:
        img = Image.new("L", (2, 1))
        img.putdata([100, 200])
        data = _to_bytes(img)
        assert list(preprocess(data).getdata()) == [100, 200]
        assert list(preprocess(data, threshold=True).getdata()) == [0, 255]


class TestDetectAndDecode:
    def test_reads_text(self) -> None:
        gray = load_grayscale(_make_qr_bytes("hello world"))
        assert list(detect_and_decode(gray)) == ["hello world"]

    def test_blank_image(self) -> None:
        blank = Image.new("L", (200, 200), 255)
        assert list(detect_and_decode(blank)) == []


class TestScanImageBytes:
    def test_scenario_single_totp(self) -> None:
        result = scan_image_bytes(_make_qr_bytes(_make_migration_uri()))
        assert result.found
        assert result.message is None
        assert len(result.accounts) == 1
        acct = result.accounts[0]
        assert acct.url.startswith("otpauth://totp/example%3Aalice?")
        assert "algorithm=SHA1&digits=6" in acct.url
        assert acct.svg.startswith("data:image/svg+xml,")

    def test_jpeg(self) -> None:
        result = scan_image_bytes(_make_qr_bytes(_make_migration_uri(), fmt="JPEG"))
        assert result.found
        assert len(result.accounts) == 1

    def test_http_qr_is_not_found(self) -> None:
        result = scan_image_bytes(_make_qr_bytes("http://example.com"))
        assert result == ScanResult(found=False)
        assert result.message == NO_CODE_FOUND_MESSAGE

    def test_http_qr_next_to_migration_qr(self) -> None:
        data = _side_by_side("http://example.com", _make_migration_uri(name="bob"))
        result = scan_image_bytes(data)
        assert result.found
        assert [a.name for a in result.accounts] == ["bob"]

    def test_unknown_type_reported(self) -> None:
        uri = _make_migration_uri(otp_type=MigrationPayload.OTP_TYPE_UNSPECIFIED)
        result = scan_image_bytes(_make_qr_bytes(uri))
        assert result.found
        assert result.accounts == []
        assert result.message == "One account could not be read: unknown otp type"

    def test_non_image(self) -> None:
        with pytest.raises(ImageFormatError):
            scan_image_bytes(b"%PDF-1.4 not an image")


class TestThresholdRetry:
    def _fake_detector(self, texts_per_pass: list[list[str]], seen: list[Image.Image]):
        def detect(image: Image.Image):
            seen.append(image)
            yield from texts_per_pass[len(seen) - 1]

        return detect

    def test_binarized_pass_used(self, monkeypatch: pytest.MonkeyPatch) -> None:
        seen: list[Image.Image] = []
        monkeypatch.setattr(
            extractor,
            "detect_and_decode",
            self._fake_detector([[], [_make_migration_uri(name="carol")]], seen),
        )
        ramp = Image.new("L", (256, 1))
        ramp.putdata(list(range(256)))

        result = scan_image_bytes(_to_bytes(ramp))

        assert result.found
        assert [a.name for a in result.accounts] == ["carol"]
        assert len(seen) == 2
        assert set(seen[1].getdata()) == {0, 255}

    def test_plain_pass_short_circuits(self, monkeypatch: pytest.MonkeyPatch) -> None:
        seen: list[Image.Image] = []
        monkeypatch.setattr(
            extractor,
            "detect_and_decode",
            self._fake_detector([[_make_migration_uri()], []], seen),
        )
        assert extract_migration(_to_bytes(Image.new("L", (8, 8)))) is not None
        assert len(seen) == 1

    def test_both_passes_fail(self, monkeypatch: pytest.MonkeyPatch) -> None:
        seen: list[Image.Image] = []
        monkeypatch.setattr(
            extractor,
            "detect_and_decode",
            self._fake_detector([["http://example.com"], ["nope"]], seen),
        )
        result = scan_image_bytes(_to_bytes(Image.new("L", (8, 8))))
        assert not result.found
        assert len(seen) == 2


class TestScanFiles:
    def test_mixed_files(self, tmp_path: Path) -> None:
        good = tmp_path / "good.png"
        good.write_bytes(_make_qr_bytes(_make_migration_uri(name="a")))
        empty = tmp_path / "empty.png"
        empty.write_bytes(_make_qr_bytes("https://example.com"))
        broken = tmp_path / "broken.png"
        broken.write_bytes(b"not an image")

        results = scan_files([good, broken, empty])

        assert [p for p, _ in results] == [good, broken, empty]
        assert isinstance(results[0][1], ScanResult)
        assert results[0][1].accounts[0].name == "a"
        assert isinstance(results[1][1], ImageFormatError)
        assert results[2][1] == ScanResult(found=False)

    def test_scan_image_path(self, tmp_path: Path) -> None:
        path = tmp_path / "code.png"
        path.write_bytes(_make_qr_bytes(_make_migration_uri()))
        assert scan_image(path).found


class TestCollectImagePaths:
    def test_single_file(self, tmp_path: Path) -> None:
        path = tmp_path / "a.png"
        path.write_bytes(b"")
        assert collect_image_paths(path) == [path]

    def test_directory_filters_and_sorts(self, tmp_path: Path) -> None:
        for name in ("b.JPG", "a.png", "notes.txt", "c.jpeg"):
            (tmp_path / name).write_bytes(b"")
        (tmp_path / "sub").mkdir()
        names = [p.name for p in collect_image_paths(tmp_path)]
        assert names == ["a.png", "b.JPG", "c.jpeg"]

    def test_nonexistent_path(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError):
            collect_image_paths(tmp_path / "nope.png")


class TestCorruptImages:
    @pytest.fixture
    def corrupt_open(self, monkeypatch: pytest.MonkeyPatch):
        """Make Image.open fail like a PNG with a damaged chunk for CORRUPT data."""
        real_open = Image.open
        raised: list[Exception] = []

        def fake_open(fp, *args, **kwargs):
            if fp.getvalue().startswith(b"CORRUPT"):
                exc = SyntaxError("broken PNG file (chunk b'\\x93END')")
                raised.append(exc)
                raise exc
            return real_open(fp, *args, **kwargs)

        monkeypatch.setattr(Image, "open", fake_open)
        return raised

    @pytest.mark.parametrize(
        "error",
        [
            SyntaxError("broken PNG file"),
            ValueError("tile cannot extend outside image"),
            Image.DecompressionBombError("image too large"),
        ],
    )
    def test_pillow_errors_become_image_format_error(
        self, monkeypatch: pytest.MonkeyPatch, error: Exception
    ) -> None:
        def fake_open(fp, *args, **kwargs):
            raise error

        monkeypatch.setattr(Image, "open", fake_open)
        with pytest.raises(ImageFormatError) as info:
            scan_image_bytes(b"whatever")
        assert info.value.__cause__ is error

    def test_broken_chunk(self, corrupt_open: list[Exception]) -> None:
        with pytest.raises(ImageFormatError, match="broken PNG file"):
            scan_image_bytes(b"CORRUPT PNG")
        assert len(corrupt_open) == 1

    def test_broken_file_keeps_other_results(
        self, tmp_path: Path, corrupt_open: list[Exception]
    ) -> None:
        good = tmp_path / "good.png"
        good.write_bytes(_make_qr_bytes(_make_migration_uri(name="kept")))
        bad = tmp_path / "bad.png"
        bad.write_bytes(b"CORRUPT PNG")

        results = scan_files([good, bad])

        assert results[0][1].accounts[0].name == "kept"
        assert isinstance(results[1][1], ImageFormatError)


class TestUnreadableFiles:
    def test_read_error_stays_in_its_slot(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        good = tmp_path / "good.png"
        good.write_bytes(_make_qr_bytes(_make_migration_uri(name="kept")))
        locked = tmp_path / "locked.png"
        locked.write_bytes(b"")
        real_read_bytes = Path.read_bytes

        def read_bytes(self: Path) -> bytes:
            if self.name == "locked.png":
                raise PermissionError(13, "Permission denied", str(self))
            return real_read_bytes(self)

        monkeypatch.setattr(Path, "read_bytes", read_bytes)
        results = scan_files([locked, good])

        assert isinstance(results[0][1], PermissionError)
        assert results[1][1].accounts[0].name == "kept"


class TestQrOnly:
    def test_detector_asks_for_qr_codes(self, monkeypatch: pytest.MonkeyPatch) -> None:
        calls: list[dict] = []

        def read_barcodes(image, **kwargs):
            calls.append(kwargs)
            return []

        monkeypatch.setattr(extractor.zxingcpp, "read_barcodes", read_barcodes)
        assert list(detect_and_decode(Image.new("L", (8, 8)))) == []
        assert calls == [{"formats": extractor.zxingcpp.BarcodeFormat.QRCode}]
