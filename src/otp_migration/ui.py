"""Textual TUI for reading Google Authenticator export QR codes."""

from __future__ import annotations

import io
from collections.abc import Iterable
from pathlib import Path
from typing import ClassVar

import pyperclip
from rich.text import Text
from textual import work
from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.containers import Horizontal, Vertical
from textual.screen import ModalScreen
from textual.widgets import (
    Button,
    DataTable,
    DirectoryTree,
    Footer,
    Header,
    Input,
    Static,
)

from otp_migration.decoder import decode_uri
from otp_migration.errors import MigrationError
from otp_migration.exporter import OutputAccount, convert_accounts, make_qr
from otp_migration.extractor import (
    IMAGE_EXTENSIONS,
    ScanResult,
    collect_image_paths,
    scan_image,
)


def render_qr_text(uri: str) -> str:
    """Draw the QR code for ``uri`` with half-block characters."""
    out = io.StringIO()
    make_qr(uri, border=1).print_ascii(out=out, invert=True)
    return out.getvalue()


# ---------------------------------------------------------------------------
# File picker modal (images + directories)
# ---------------------------------------------------------------------------


class _ExportTree(DirectoryTree):
    """Directory tree limited to folders and readable export images."""

    ALLOW_SELECT = True

    def filter_paths(self, paths: Iterable[Path]) -> Iterable[Path]:
        return [
            p
            for p in paths
            if not p.name.startswith(".")
            and (p.is_dir() or p.suffix.lower() in IMAGE_EXTENSIONS)
        ]


class FilePickerScreen(ModalScreen[Path | None]):
    """Pick the one image or directory to scan.

    Select with nothing highlighted returns the directory the tree is rooted
    at, so a folder of screenshots can be loaded without drilling into it.
    """

    DEFAULT_CSS = """
    FilePickerScreen {
        align: center middle;
    }
    #picker-dialog {
        width: 80%;
        height: 80%;
        border: heavy $accent;
        background: $surface;
        padding: 1;
    }
    #picker-tree {
        height: 1fr;
    }
    #picker-footer {
        height: auto;
        margin-top: 1;
    }
    #picker-selected {
        width: 1fr;
        color: $text-muted;
    }
    """

    BINDINGS: ClassVar[list[Binding]] = [
        Binding("escape", "cancel", "Cancel"),
    ]

    def __init__(self, start_path: str | Path = "~") -> None:
        super().__init__()
        self._root = Path(start_path).expanduser().resolve()
        self._selected_path: Path | None = None

    def compose(self) -> ComposeResult:
        with Vertical(id="picker-dialog"):
            yield _ExportTree(self._root, id="picker-tree")
            with Horizontal(id="picker-footer"):
                yield Static(self._describe(self._root), id="picker-selected")
                yield Button("Select", id="btn-pick-ok", variant="primary")
                yield Button("Cancel", id="btn-pick-cancel")

    @staticmethod
    def _describe(path: Path) -> str:
        if path.is_file():
            return path.name
        try:
            count = len(collect_image_paths(path))
        except OSError:
            return f"{path}/"
        return f"{path}/ ({count} image{'' if count == 1 else 's'})"

    def _choose(self, path: Path) -> None:
        self._selected_path = path
        self.query_one("#picker-selected", Static).update(self._describe(path))

    def on_directory_tree_file_selected(
        self, event: DirectoryTree.FileSelected
    ) -> None:
        self._choose(event.path)

    def on_directory_tree_directory_selected(
        self, event: DirectoryTree.DirectorySelected
    ) -> None:
        self._choose(event.path)

    def on_button_pressed(self, event: Button.Pressed) -> None:
        if event.button.id == "btn-pick-ok":
            self.dismiss(self._selected_path or self._root)
        else:
            self.dismiss(None)

    def action_cancel(self) -> None:
        self.dismiss(None)


# ---------------------------------------------------------------------------
# Main application
# ---------------------------------------------------------------------------


class MigrationApp(App[None]):
    """TUI application that turns export QR codes into otpauth:// URIs."""

    TITLE = "OTP Migration Reader"
    CSS = """
    Toast {
        width: 80;
        max-width: 70%;
    }
    #file-row {
        height: 3;
        margin: 1 1 0 1;
    }
    #uri-row {
        height: 3;
        margin: 0 1 1 1;
    }
    #file-row Input, #uri-row Input {
        width: 1fr;
    }
    #file-row Button, #uri-row Button {
        margin-left: 1;
    }
    .input-label {
        width: 10;
        padding: 1 1 0 0;
        text-style: bold;
    }
    #status-bar {
        height: auto;
        margin: 0 1;
        color: $warning;
    }
    #accounts-table {
        max-height: 40%;
        min-height: 3;
        margin: 0 1;
        border: solid $accent;
    }
    #details {
        height: 1fr;
        margin: 1 1 0 1;
    }
    #details-url {
        height: auto;
    }
    #details-qr {
        height: auto;
        margin-top: 1;
    }
    #copy-url-btn {
        margin-top: 1;
    }
    """

    BINDINGS: ClassVar[list[Binding]] = [
        Binding("ctrl+q", "quit", "Quit"),
        Binding("ctrl+l", "load_accounts", "Load"),
        Binding("ctrl+o", "browse_file", "Browse"),
        Binding("ctrl+y", "copy_url", "Copy URL"),
    ]

    def __init__(self) -> None:
        super().__init__()
        self._accounts: list[OutputAccount] = []
        # Results from workers started for an older load are dropped.
        self._generation = 0

    def compose(self) -> ComposeResult:
        yield Header()
        with Horizontal(id="file-row"):
            yield Static("File/Dir:", classes="input-label")
            yield Input(
                placeholder="/path/to/export.png or directory",
                id="file-input",
            )
            yield Button("Browse…", id="browse-btn")
            yield Button("Load", id="load-btn", variant="primary")
        with Horizontal(id="uri-row"):
            yield Static("URI:", classes="input-label")
            yield Input(
                placeholder="otpauth-migration://offline?data=…",
                id="uri-input",
            )
            yield Button("Load", id="load-uri-btn", variant="primary")
        yield Static("", id="status-bar")
        yield DataTable(id="accounts-table")
        with Vertical(id="details"):
            yield Static("", id="details-url")
            yield Button("Copy URL", id="copy-url-btn")
            yield Static("", id="details-qr")
        yield Footer()

    def on_mount(self) -> None:
        table = self.query_one("#accounts-table", DataTable)
        table.add_columns(
            ("Issuer", "issuer"),
            ("Name", "name"),
            ("Type", "kind"),
            ("Algorithm", "algorithm"),
            ("Digits", "digits"),
            ("Secret", "secret"),
        )
        table.cursor_type = "cell"

    def _populate_table(self) -> None:
        table = self.query_one("#accounts-table", DataTable)
        table.clear()
        for index, acct in enumerate(self._accounts):
            table.add_row(
                acct.issuer,
                acct.name,
                acct.kind,
                acct.algorithm or "",
                acct.digits or "",
                Text(acct.secret, style="bold cyan"),
                key=str(index),
            )
        if self._accounts:
            self._show_details(min(table.cursor_coordinate.row, len(self._accounts) - 1))
        else:
            self.query_one("#details-url", Static).update("")
            self.query_one("#details-qr", Static).update("")

    def _show_details(self, index: int) -> None:
        acct = self._accounts[index]
        self.query_one("#details-url", Static).update(Text(acct.url))
        self.query_one("#details-qr", Static).update(Text(render_qr_text(acct.url)))

    def _current_account(self) -> OutputAccount | None:
        if not self._accounts:
            return None
        table = self.query_one("#accounts-table", DataTable)
        return self._accounts[min(table.cursor_coordinate.row, len(self._accounts) - 1)]

    def _report(self, message: str, severity: str) -> None:
        self.query_one("#status-bar", Static).update(Text(message))
        self.notify(message, severity=severity)

    # -- clipboard ------------------------------------------------------------

    def _copy(self, text: str) -> None:
        try:
            pyperclip.copy(text)
        except pyperclip.PyperclipException:
            self.notify("Could not copy, use the URL in details.", severity="error")
            return
        self.notify(f"Copied: {text}", severity="information")

    def on_data_table_cell_highlighted(
        self, event: DataTable.CellHighlighted
    ) -> None:
        if event.coordinate.row < len(self._accounts):
            self._show_details(event.coordinate.row)

    def on_data_table_cell_selected(
        self, event: DataTable.CellSelected
    ) -> None:
        val = event.value
        text = val.plain if isinstance(val, Text) else str(val)
        if text:
            self._copy(text)

    def action_copy_url(self) -> None:
        acct = self._current_account()
        if acct is None:
            self.notify("No accounts loaded.", severity="warning")
            return
        self._copy(acct.url)

    # -- actions & button dispatch ------------------------------------------

    def action_load_accounts(self) -> None:
        self._do_load()

    def action_browse_file(self) -> None:
        self._open_file_picker()

    def _open_file_picker(self) -> None:
        current = self.query_one("#file-input", Input).value.strip()
        start = Path(current) if current else Path.home()
        if start.is_file():
            start = start.parent
        if not start.is_dir():
            start = Path.home()
        self.push_screen(
            FilePickerScreen(start_path=start),
            callback=self._on_file_picked,
        )

    def _on_file_picked(self, path: Path | None) -> None:
        if path is not None:
            self.query_one("#file-input", Input).value = str(path)

    def on_button_pressed(self, event: Button.Pressed) -> None:
        btn = event.button.id
        if btn in ("load-btn", "load-uri-btn"):
            self._do_load()
        elif btn == "browse-btn":
            self._open_file_picker()
        elif btn == "copy-url-btn":
            self.action_copy_url()

    # -- loading --------------------------------------------------------------

    def _do_load(self) -> None:
        file_input = self.query_one("#file-input", Input).value.strip()
        uri_input = self.query_one("#uri-input", Input).value.strip()

        if not uri_input and not file_input:
            self.notify(
                "Enter a file path or paste a URI first.",
                severity="warning",
            )
            return

        self._generation += 1
        self._accounts = []
        self._populate_table()
        self.query_one("#status-bar", Static).update("")

        if uri_input:
            self._decode_uri(uri_input, self._generation)
            return

        try:
            paths = collect_image_paths(Path(file_input).expanduser())
        except FileNotFoundError as e:
            self._report(f"Error: {e}", "error")
            return
        if not paths:
            self._report("No .png/.jpg/.jpeg files found.", "warning")
            return
        for path in paths:
            self._decode_file(path, self._generation)

    @work(thread=True, group="decode")
    def _decode_file(self, path: Path, generation: int) -> None:
        try:
            result = scan_image(path)
        except (MigrationError, OSError) as e:
            self.call_from_thread(
                self._on_failed, generation, f"{path.name}: Unknown error: {e}"
            )
            return
        self.call_from_thread(self._on_scanned, generation, path.name, result)

    @work(thread=True, group="decode")
    def _decode_uri(self, uri: str, generation: int) -> None:
        try:
            batch = decode_uri(uri)
        except (MigrationError, ValueError) as e:
            self.call_from_thread(self._on_failed, generation, f"Error: {e}")
            return
        accounts, errors = convert_accounts(batch.accounts)
        result = ScanResult(found=True, accounts=accounts, errors=errors)
        self.call_from_thread(self._on_scanned, generation, "URI", result)

    def _on_failed(self, generation: int, message: str) -> None:
        if generation == self._generation:
            self._report(message, "error")

    def _on_scanned(self, generation: int, source: str, result: ScanResult) -> None:
        if generation != self._generation:
            return
        self._accounts.extend(result.accounts)
        self._populate_table()
        if not result.found:
            self._report(f"{source}: {result.message}", "error")
        elif result.message:
            self._report(f"{source}: {result.message}", "warning")
        else:
            self.notify(
                f"Loaded {len(result.accounts)} account(s) from {source}.",
                severity="information",
            )
