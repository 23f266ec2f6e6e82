"""Modal folder picker backing the orchestrator's destination prompt."""

from __future__ import annotations

import asyncio
from pathlib import Path

from textual.app import App, ComposeResult
from textual.containers import Horizontal, Vertical
from textual.screen import ModalScreen
from textual.widgets import Button, Input, Label, Static


class FolderPickerScreen(ModalScreen[Path | None]):
    """Asks for an existing directory; dismisses with ``None`` on cancel."""

    DEFAULT_CSS = """
    FolderPickerScreen {
        align: center middle;
    }

    FolderPickerScreen > Vertical {
        width: 70;
        height: auto;
        border: thick $primary;
        background: $surface;
        padding: 1 2;
    }

    FolderPickerScreen #folder-error {
        color: $error;
        height: auto;
    }

    FolderPickerScreen .picker-actions {
        margin-top: 1;
        height: auto;
    }

    FolderPickerScreen .picker-actions > Button {
        margin-right: 1;
    }
    """

    BINDINGS = [("escape", "cancel", "Cancel")]

    def __init__(self, initial: Path | None = None) -> None:
        super().__init__(id="folder-picker")
        self._initial = initial or Path.cwd()

    def compose(self) -> ComposeResult:
        with Vertical():
            yield Label("Save CSV files to folder:")
            yield Input(value=str(self._initial), id="folder-input")
            yield Static("", id="folder-error")
            with Horizontal(classes="picker-actions"):
                yield Button("Select", id="folder-select", variant="primary")
                yield Button("Cancel", id="folder-cancel")

    def on_button_pressed(self, event: Button.Pressed) -> None:
        if event.button.id == "folder-select":
            self._submit()
        elif event.button.id == "folder-cancel":
            self.dismiss(None)
        event.stop()

    def on_input_submitted(self, event: Input.Submitted) -> None:
        self._submit()
        event.stop()

    def action_cancel(self) -> None:
        self.dismiss(None)

    def _submit(self) -> None:
        raw = self.query_one("#folder-input", Input).value.strip()
        if not raw:
            self._show_error("Enter a folder path.")
            return
        folder = Path(raw).expanduser()
        if not folder.is_dir():
            self._show_error(f"Not a directory: {folder}")
            return
        self.dismiss(folder)

    def _show_error(self, message: str) -> None:
        self.query_one("#folder-error", Static).update(message)


class TextualFolderPicker:
    """Folder picker that prompts through a modal screen.

    Must be awaited from a worker so the app keeps processing messages while
    the screen is open.
    """

    def __init__(self, app: App[object], *, initial: Path | None = None) -> None:
        self._app = app
        self._initial = initial

    async def pick_folder(self) -> Path | None:
        loop = asyncio.get_running_loop()
        selection: asyncio.Future[Path | None] = loop.create_future()

        def _deliver(folder: Path | None) -> None:
            if not selection.done():
                selection.set_result(folder)

        self._app.push_screen(FolderPickerScreen(self._initial), callback=_deliver)
        folder = await selection
        if folder is not None:
            self._initial = folder
        return folder


__all__ = ["FolderPickerScreen", "TextualFolderPicker"]
