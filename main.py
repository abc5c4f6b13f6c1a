"""Entry point for running the TUI directly with `python main.py`."""

from otp_migration.ui import MigrationApp


def main() -> None:
    app = MigrationApp()
    app.run()


if __name__ == "__main__":
    main()
