"""Command-line interface for otp_migration."""

import logging
import sys
from pathlib import Path

from otp_migration import __version__
from otp_migration.errors import MigrationError
from otp_migration.extractor import collect_image_paths, scan_files


def _scan_paths(raw_paths: list[str]) -> int:
    try:
        files = [p for raw in raw_paths for p in collect_image_paths(Path(raw))]
    except FileNotFoundError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    if not files:
        print("Error: no .png/.jpg/.jpeg files found", file=sys.stderr)
        return 1

    failed = False
    found = False
    for path, result in scan_files(files):
        if isinstance(result, (MigrationError, OSError)):
            print(f"{path}: Unknown error: {result}", file=sys.stderr)
            failed = True
            continue
        found = found or result.found
        for account in result.accounts:
            print(account.url)
        if result.message:
            print(f"{path}: {result.message}", file=sys.stderr)
    return 1 if failed or not found else 0


def main() -> int:
    """CLI entry point.

    Returns:
        Exit code (0 for success, non-zero for errors)
    """
    args = sys.argv[1:]
    if args and args[0] in ("--version", "-v"):
        print(f"otp-migration version {__version__}")
        return 0

    if args and args[0] in ("--help", "-h"):
        print("otp-migration - Google Authenticator export QR code reader")
        print(f"Version: {__version__}")
        print("\nUsage: otp-migration [options] [PATH ...]")
        print("\nPrints one otpauth:// URI per account found in each image.")
        print("Without PATH arguments the interactive TUI is started.")
        print("\nOptions:")
        print("  --verbose        Log pipeline details to stderr")
        print("  --version, -v    Show version")
        print("  --help, -h       Show this help message")
        return 0

    if "--verbose" in args:
        logging.basicConfig(
            level=logging.DEBUG, format="%(levelname)s %(name)s: %(message)s"
        )
    paths = [a for a in args if a != "--verbose"]
    if paths:
        return _scan_paths(paths)

    from otp_migration.ui import MigrationApp

    app = MigrationApp()
    app.run()
    return 0


if __name__ == "__main__":
    sys.exit(main())
