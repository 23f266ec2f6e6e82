"""Textual application entry point for pgmulti."""

from __future__ import annotations

import asyncio
import logging

from textual.app import App, ComposeResult
from textual.containers import Horizontal, Vertical
from textual.widgets import (
    Button,
    Checkbox,
    DataTable,
    Footer,
    Header,
    Input,
    RadioButton,
    RadioSet,
    Select,
    SelectionList,
    Static,
    TextArea,
)
from textual.widgets.selection_list import Selection
from textual.worker import Worker

from .config import AppConfig, ConnectionProfileConfig, load_config, save_config
from .connections import DatabaseCatalogError, list_databases
from .executor import AsyncpgStatementExecutor, StatementExecutor
from .models import ConnectionProfile, DatabaseReport, ExecutionStatus, SaveOption
from .orchestrator import EXECUTION_STATUS_EVENT, FolderSelectionError, QueryOrchestrator, split_statements
from .runner import DatabaseRunner
from .widgets import (
    ConfirmScreen,
    ExecutionStatusTable,
    OutcomeList,
    ProfileFormScreen,
    TextualFolderPicker,
)

LOG = logging.getLogger(__name__)

_SAVE_BUTTONS = {
    "save-none": SaveOption.NONE,
    "save-separate": SaveOption.SEPARATE,
    "save-single": SaveOption.SINGLE,
}


def _load_app_config() -> AppConfig:
    """Load configuration with a small wrapper for future overrides."""

    return load_config()


class PgMultiApp(App[None]):
    """Runs one SQL batch across the selected databases of a server."""

    CSS = """
    Screen {
        layout: vertical;
    }
    #content {
        layout: horizontal;
        height: 1fr;
    }
    #targets {
        width: 34;
        min-width: 26;
        padding: 1;
        border-right: solid $surface-darken-1;
    }
    .profile-actions {
        height: auto;
    }
    .profile-actions > Button {
        min-width: 8;
        margin-right: 1;
    }
    #databases {
        height: 1fr;
    }
    #main-column {
        layout: vertical;
        padding: 1 2;
        height: 1fr;
    }
    #query {
        height: 10;
    }
    .run-options {
        height: auto;
        margin: 1 0;
    }
    .run-options > * {
        margin-right: 2;
    }
    #execution-status {
        height: 1fr;
    }
    #outcomes {
        height: 1fr;
        border-top: solid $surface-darken-2;
    }
    """

    BINDINGS = [
        ("ctrl+c", "quit", "Quit"),
        ("ctrl+r", "run", "Run"),
        ("ctrl+e", "select_errors", "Select failed"),
        ("f5", "reload_databases", "Reload databases"),
    ]

    def __init__(self, *, config: AppConfig | None = None, executor: StatementExecutor | None = None) -> None:
        super().__init__()
        self._config = config or _load_app_config()
        profile = self._config.profile()
        if profile is None:
            raise ValueError("No connection profile configured.")
        self._profile_config = profile
        executor = executor or AsyncpgStatementExecutor(connect_timeout=self._config.connect_timeout)
        self._orchestrator = QueryOrchestrator(
            DatabaseRunner(executor),
            _AppReportEmitter(self),
            TextualFolderPicker(self),
            combined_filename=self._config.combined_filename,
        )
        self._databases: tuple[str, ...] = ()
        self._checked: set[str] = set()
        self._visible: tuple[str, ...] = ()
        self._reports: dict[str, DatabaseReport] = {}
        self._shown: str | None = None
        self._starter: Worker[None] | None = None
        self._batch: asyncio.Task[None] | None = None

    def compose(self) -> ComposeResult:
        """Compose the root layout."""

        profile = self._profile_config
        yield Header(show_clock=True)
        with Horizontal(id="content"):
            with Vertical(id="targets"):
                yield Select(self._profile_options(), value=profile.id, allow_blank=False, id="profile")
                with Horizontal(classes="profile-actions"):
                    yield Button("New", id="profile-new")
                    yield Button("Edit", id="profile-edit")
                    yield Button("Delete", id="profile-delete", variant="error")
                yield Static(_profile_summary(profile), id="profile-label")
                yield Input(
                    value=profile.password or "",
                    password=True,
                    placeholder="Password",
                    id="password",
                )
                yield Button("Load databases", id="load-databases")
                yield Input(placeholder="Filter databases", id="db-filter")
                yield Checkbox("All", value=True, id="select-all")
                yield SelectionList[str](id="databases")
            with Vertical(id="main-column"):
                yield TextArea(id="query")
                with Horizontal(classes="run-options"):
                    with RadioSet(id="save-option"):
                        for button_id, option in _SAVE_BUTTONS.items():
                            yield RadioButton(
                                _save_label(option),
                                value=option is self._config.save_option,
                                id=button_id,
                            )
                    yield Checkbox("Stop on error", value=self._config.stop_on_error, id="stop-on-error")
                    yield Button("Run", id="run", variant="primary")
                yield ExecutionStatusTable()
                yield OutcomeList()
        yield Footer()

    def on_mount(self) -> None:
        self.action_reload_databases()

    @property
    def current_profile(self) -> ConnectionProfile:
        """Runtime profile using the password currently typed in."""

        password = self.query_one("#password", Input).value
        return self._profile_config.to_profile(password=password)

    @property
    def app_config(self) -> AppConfig:
        """Configuration as last persisted by the app (testing helper)."""

        return self._config

    @property
    def selected_databases(self) -> list[str]:
        """Checked databases in server order, including ones hidden by the filter."""

        return [name for name in self._databases if name in self._checked]

    @property
    def reports(self) -> dict[str, DatabaseReport]:
        """Reports received during the current run (testing helper)."""

        return dict(self._reports)

    @property
    def last_batch(self) -> asyncio.Task[None] | None:
        """Background task of the most recent run (testing helper)."""

        return self._batch

    @property
    def batch_running(self) -> bool:
        starting = self._starter is not None and not self._starter.is_finished
        return starting or self._orchestrator.running

    def action_reload_databases(self) -> None:
        self.run_worker(self._load_databases(), group="catalog", exclusive=True)

    def action_run(self) -> None:
        if self.batch_running:
            self.notify("A run is already in progress.", severity="warning")
            return
        databases = self.selected_databases
        query = self.query_one("#query", TextArea).text
        if not databases:
            self.notify("Select at least one database.", severity="warning")
            return
        if not split_statements(query):
            self.notify("Enter SQL to run.", severity="warning")
            return
        save_option = self._selected_save_option()
        stop_on_error = self.query_one("#stop-on-error", Checkbox).value
        self._reports.clear()
        self.query_one(ExecutionStatusTable).reset(databases)
        self.show_outcomes(databases[0])
        self._starter = self.run_worker(
            self._start_batch(self.current_profile, databases, query, save_option, stop_on_error),
            group="execution",
        )

    def action_select_errors(self) -> None:
        """Check only the databases whose last report failed."""

        failed = {name for name, report in self._reports.items() if report.status is ExecutionStatus.ERROR}
        if not failed:
            self.notify("No failed databases to select.", severity="information")
            return
        self._checked = failed
        with self.prevent(Checkbox.Changed):
            self.query_one("#select-all", Checkbox).value = False
        self._render_databases()
        self.notify(f"Selected {len(failed)} failed database(s).", severity="information")

    def action_new_profile(self) -> None:
        self.push_screen(ProfileFormScreen(), callback=self.store_profile)

    def action_edit_profile(self) -> None:
        self.push_screen(ProfileFormScreen(self._profile_config), callback=self.store_profile)

    def action_delete_profile(self) -> None:
        if len(self._config.profiles) <= 1:
            self.notify("Keep at least one profile.", severity="warning")
            return
        profile_id = self._profile_config.id

        def _confirmed(answer: bool | None) -> None:
            if answer:
                self.delete_profile(profile_id)

        self.push_screen(ConfirmScreen(f"Delete profile '{self._profile_config.name}'?"), callback=_confirmed)

    def switch_profile(self, profile_id: str) -> None:
        """Activate the requested connection profile and persist the choice."""

        if profile_id == self._profile_config.id:
            return
        profile = self._config.profile(profile_id)
        if profile is None:
            self.notify(f"Unknown profile: {profile_id}", severity="error")
            return
        self._activate(profile)
        self.notify(f"Switched to profile: {profile.name}", severity="information")

    def store_profile(self, profile: ConnectionProfileConfig | None) -> None:
        """Add or update ``profile`` and make it the active one."""

        if profile is None:
            return
        self._config = self._config.with_profile(profile)
        self._activate(profile)

    def delete_profile(self, profile_id: str) -> None:
        """Remove ``profile_id`` and fall back to the first remaining profile."""

        self._config = self._config.without_profile(profile_id)
        replacement = self._config.profile()
        if replacement is None:
            return
        self._activate(replacement)

    def show_outcomes(self, database: str | None) -> None:
        """Display every statement outcome of ``database``."""

        self._shown = database
        report = self._reports.get(database) if database is not None else None
        self.query_one(OutcomeList).show(report)

    def on_button_pressed(self, event: Button.Pressed) -> None:
        actions = {
            "run": self.action_run,
            "load-databases": self.action_reload_databases,
            "profile-new": self.action_new_profile,
            "profile-edit": self.action_edit_profile,
            "profile-delete": self.action_delete_profile,
        }
        action = actions.get(event.button.id or "")
        if action is not None:
            action()

    def on_select_changed(self, event: Select.Changed) -> None:
        if event.select.id != "profile" or event.value is Select.BLANK:
            return
        self.switch_profile(str(event.value))

    def on_input_changed(self, event: Input.Changed) -> None:
        if event.input.id == "db-filter":
            self._render_databases()

    def on_checkbox_changed(self, event: Checkbox.Changed) -> None:
        if event.checkbox.id != "select-all":
            return
        if event.value:
            self._checked |= set(self._visible)
        else:
            self._checked -= set(self._visible)
        self._render_databases()

    def on_selection_list_selected_changed(self, event: SelectionList.SelectedChanged) -> None:
        if event.selection_list.id != "databases":
            return
        hidden = self._checked - set(self._visible)
        self._checked = hidden | set(event.selection_list.selected)

    def on_data_table_row_highlighted(self, event: DataTable.RowHighlighted) -> None:
        if event.data_table.id != "execution-status" or event.row_key is None:
            return
        self.show_outcomes(str(event.row_key.value))

    def handle_report(self, event: str, report: DatabaseReport) -> None:
        """Reflect a status update from the orchestrator."""

        if event != EXECUTION_STATUS_EVENT:
            LOG.debug("Ignoring unknown event", extra={"event": event})
            return
        self._reports[report.name] = report
        self.query_one(ExecutionStatusTable).apply(report)
        if report.name == self._shown:
            self.show_outcomes(report.name)

    def _activate(self, profile: ConnectionProfileConfig) -> None:
        self._profile_config = profile
        self._config = self._config.with_active_profile(profile.id)
        save_config(self._config)
        select = self.query_one("#profile", Select)
        with self.prevent(Select.Changed):
            select.set_options(self._profile_options())
            select.value = profile.id
        self.query_one("#profile-label", Static).update(_profile_summary(profile))
        self.query_one("#password", Input).value = profile.password or ""
        self._databases = ()
        self._checked = set()
        self._render_databases()
        self.action_reload_databases()

    def _profile_options(self) -> list[tuple[str, str]]:
        return [(entry.name, entry.id) for entry in self._config.profiles]

    def _render_databases(self) -> None:
        needle = self.query_one("#db-filter", Input).value.strip().lower()
        self._visible = tuple(name for name in self._databases if needle in name.lower())
        selection = self.query_one("#databases", SelectionList)
        selection.clear_options()
        selection.add_options([Selection(name, name, name in self._checked) for name in self._visible])

    async def _load_databases(self) -> None:
        try:
            names = await list_databases(self.current_profile, timeout=self._config.connect_timeout)
        except DatabaseCatalogError as exc:
            self.notify(str(exc), severity="error")
            return
        self._databases = tuple(names)
        self._checked = set(names)
        with self.prevent(Checkbox.Changed):
            self.query_one("#select-all", Checkbox).value = True
        self._render_databases()

    async def _start_batch(
        self,
        profile: ConnectionProfile,
        databases: list[str],
        query: str,
        save_option: SaveOption,
        stop_on_error: bool,
    ) -> None:
        try:
            batch = await self._orchestrator.execute(profile, databases, query, save_option, stop_on_error)
        except FolderSelectionError as exc:
            self.notify(str(exc), severity="error")
            return
        if batch is None:
            self.notify("No folder selected; nothing was executed.", severity="information")
            return
        self._batch = batch
        batch.add_done_callback(self._on_batch_done)

    def _on_batch_done(self, batch: asyncio.Task[None]) -> None:
        if batch.cancelled():
            return
        exc = batch.exception()
        if exc is not None:
            LOG.error("Execution batch crashed", exc_info=exc)
            self.notify(f"Execution failed: {exc}", severity="error")
            return
        self.notify(f"Finished {len(self._reports)} database(s).", severity="information")

    def _selected_save_option(self) -> SaveOption:
        pressed = self.query_one("#save-option", RadioSet).pressed_button
        if pressed is None or pressed.id is None:
            return SaveOption.NONE
        return _SAVE_BUTTONS.get(pressed.id, SaveOption.NONE)


class _AppReportEmitter:
    """Forwards orchestrator events to the app."""

    def __init__(self, app: PgMultiApp) -> None:
        self._app = app

    def emit(self, event: str, report: DatabaseReport) -> None:
        self._app.handle_report(event, report)


def _profile_summary(profile: ConnectionProfileConfig) -> str:
    return f"{profile.name} · {profile.user}@{profile.host}:{profile.port}"


def _save_label(option: SaveOption) -> str:
    return {
        SaveOption.NONE: "Don't save",
        SaveOption.SEPARATE: "CSV per database",
        SaveOption.SINGLE: "Single CSV",
    }[option]


def _configure_logging(config: AppConfig) -> None:
    # The TUI owns the terminal, so only a log file gets the configured level.
    if config.log_file:
        logging.basicConfig(
            filename=config.log_file,
            level=config.log_level.upper(),
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        )
    else:
        logging.basicConfig(level=logging.WARNING)


def main() -> None:
    """Invoke the Textual application."""

    config = _load_app_config()
    _configure_logging(config)
    PgMultiApp(config=config).run()


if __name__ == "__main__":
    main()
