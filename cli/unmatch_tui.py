#!/usr/bin/env python3
"""Unmatch TUI — progress status, backup export and restore, powered by Textual."""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Any

from textual import on, work
from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.containers import Vertical
from textual.logging import TextualHandler
from textual.widgets import DataTable, Footer, Header, Input, Label, Static

from unmatch import (
    LocalStore,
    db_path,
    default_clock,
    delete_all_data,
    import_data,
    load_settings,
    progress_summary,
    read_import_file,
    validate_import_data,
    workspace_root,
    write_snapshot_to_file,
)
from unmatch.errors import BackupFileError, EnvelopeError, InvalidBackupFileError, UnmatchError
from unmatch.repositories import dump_table


# ── Stylesheet ─────────────────────────────────────────────────

CSS = """
Screen {
    background: $surface;
}

.section-title {
    text-style: bold;
    color: $text;
    margin: 1 0 0 0;
    padding: 0 1;
}

#status-info {
    height: auto;
    padding: 1 2;
    margin: 0 0 1 0;
    border: tall $primary-background-darken-2;
}

#confirm-box {
    height: auto;
    padding: 0 2;
    color: $warning;
}

#import-path {
    display: none;
    margin: 0 1;
}

#progress-table {
    height: 1fr;
}
"""


# ── Main app ───────────────────────────────────────────────────


class UnmatchApp(App):
    """Unmatch — local data status, export and import."""

    TITLE = "Unmatch"
    CSS = CSS
    AUTO_FOCUS = None

    BINDINGS = [
        Binding("e", "export", "Export"),
        Binding("i", "import_file", "Import"),
        Binding("y", "confirm", "Confirm"),
        Binding("n", "cancel", "Cancel"),
        Binding("x", "delete_all", "Delete all"),
        Binding("r", "reload", "Refresh"),
        Binding("escape", "blur_focus", "Back"),
        Binding("q", "quit", "Quit"),
    ]

    def __init__(self, root: Path | None = None) -> None:
        super().__init__()
        self._root = root or workspace_root()
        self._pending_envelope: Any = None
        self._pending_delete = False

    def check_action(self, action: str, parameters: tuple[object, ...]) -> bool | None:
        """Only offer confirm/cancel while something is pending."""
        if action in {"confirm", "cancel"}:
            pending = self._pending_envelope is not None or self._pending_delete
            return True if pending else None
        return True

    def _store(self) -> LocalStore:
        return LocalStore(db_path(self._root))

    def compose(self) -> ComposeResult:
        yield Header()
        yield Vertical(
            Label("Status", classes="section-title"),
            Static(id="status-info"),
            Input(placeholder="Path to unmatch-backup.json, then Enter", id="import-path"),
            Static(id="confirm-box"),
            Label("Progress history", classes="section-title"),
            DataTable(id="progress-table"),
        )
        yield Footer()

    def on_mount(self) -> None:
        table: DataTable = self.query_one("#progress-table", DataTable)
        table.add_columns("Date", "Streak", "Resists", "Rank", "Spend avoided")
        self._load_data()

    def _load_data(self) -> None:
        clock = default_clock(self._root)
        with self._store() as store:
            summary = progress_summary(store, clock)
            rows = dump_table(store, "progress")

        info = [
            f"Today: {summary['today']}",
            f"Streak: {summary['streak']} days",
            f"Rank: {summary['rank']} / {summary['rank_cap']}",
            f"Resists: {summary['resist_total']}  Spend avoided: {summary['spend_avoided_total']}",
        ]
        if summary["last_success_date"]:
            info.append(f"Last success day: {summary['last_success_date']}")
        self.query_one("#status-info", Static).update("\n".join(info))
        self.sub_title = f"🔥 {summary['streak']}  Rank {summary['rank']}"

        table: DataTable = self.query_one("#progress-table", DataTable)
        table.clear()
        for r in reversed(rows[-30:]):
            table.add_row(
                str(r.get("date_local", "?")),
                str(r.get("streak_current", 0)),
                str(r.get("resist_count_total", 0)),
                str(r.get("rank_level", 1)),
                str(r.get("spend_avoided_count_total", 0)),
            )

    def _set_confirm(self, text: str) -> None:
        self.query_one("#confirm-box", Static).update(text)
        self.refresh_bindings()

    # ── Export ─────────────────────────────────────────────────

    def action_export(self) -> None:
        self._do_export()

    @work(thread=True)
    def _do_export(self) -> None:
        try:
            with self._store() as store:
                path = write_snapshot_to_file(store, clock=default_clock(self._root))
            self.call_from_thread(self.notify, f"Backup written to {path}", title="Export complete")
        except UnmatchError:
            self.call_from_thread(self.notify,
                "Could not export data. Please try again.",
                title="Export failed", severity="error")

    # ── Import ─────────────────────────────────────────────────

    def action_import_file(self) -> None:
        path_input = self.query_one("#import-path", Input)
        path_input.display = True
        path_input.focus()

    @on(Input.Submitted, "#import-path")
    def _on_path_submitted(self, event: Input.Submitted) -> None:
        event.input.display = False
        self.set_focus(None)
        path = Path(event.value.strip()).expanduser()
        try:
            raw = read_import_file(path)
        except InvalidBackupFileError:
            self.notify("The selected file is not valid JSON.", title="Invalid file", severity="error")
            return
        except BackupFileError as e:
            self.notify(str(e), title="Import failed", severity="error")
            return
        try:
            counts = validate_import_data(raw)
        except EnvelopeError as e:
            self.notify(str(e), title="Import failed", severity="error")
            return
        self._pending_envelope = raw
        self._set_confirm(
            f"Replace ALL local data with: {counts.describe()}?  [y] confirm  [n] cancel"
        )

    # ── Delete ─────────────────────────────────────────────────

    def action_delete_all(self) -> None:
        self._pending_envelope = None
        self._pending_delete = True
        self._set_confirm("Delete ALL local data? This cannot be undone.  [y] confirm  [n] cancel")

    # ── Confirm / cancel ───────────────────────────────────────

    def action_confirm(self) -> None:
        if self._pending_envelope is not None:
            envelope, self._pending_envelope = self._pending_envelope, None
            self._set_confirm("")
            self._do_import(envelope)
        elif self._pending_delete:
            self._pending_delete = False
            self._set_confirm("")
            self._do_delete()

    def action_cancel(self) -> None:
        self._pending_envelope = None
        self._pending_delete = False
        self.query_one("#import-path", Input).display = False
        self.set_focus(None)
        self._set_confirm("")

    @work(thread=True, exclusive=True)
    def _do_import(self, envelope: Any) -> None:
        try:
            with self._store() as store:
                counts = import_data(store, envelope)
            self.call_from_thread(self.notify,
                f"Your data has been restored ({counts.describe()}).", title="Import complete")
            self.call_from_thread(self._load_data)
        except UnmatchError:
            self.call_from_thread(self.notify,
                "Could not import data. Your previous data is unchanged.",
                title="Import failed", severity="error")

    @work(thread=True, exclusive=True)
    def _do_delete(self) -> None:
        try:
            with self._store() as store:
                delete_all_data(store)
            self.call_from_thread(self.notify, "All local data has been removed.", title="Data deleted")
            self.call_from_thread(self._load_data)
        except UnmatchError:
            self.call_from_thread(self.notify,
                "Could not delete data. Please try again.",
                title="Delete failed", severity="error")

    def action_blur_focus(self) -> None:
        """Escape handler — hide the path prompt and unfocus."""
        self.query_one("#import-path", Input).display = False
        self.set_focus(None)

    def action_reload(self) -> None:
        self._load_data()


# ── Entry point ────────────────────────────────────────────────


def main() -> None:
    root = workspace_root()
    try:
        LocalStore(db_path(root)).close()
    except UnmatchError as e:
        print(f"Cannot open data store in {root}: {e}")
        sys.exit(1)

    logger = logging.getLogger("unmatch")
    logger.setLevel(load_settings(root).log_level)
    logger.addHandler(TextualHandler())

    UnmatchApp(root).run()


if __name__ == "__main__":
    main()
