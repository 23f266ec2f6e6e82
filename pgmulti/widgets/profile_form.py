"""Modal screens for creating, editing and deleting connection profiles."""

from __future__ import annotations

from uuid import uuid4

from pydantic import ValidationError
from textual.app import ComposeResult
from textual.containers import Horizontal, Vertical
from textual.screen import ModalScreen
from textual.widgets import Button, Checkbox, Input, Label, Static

from pgmulti.config import ConnectionProfileConfig

_FORM_CSS = """
{screen} {{
    align: center middle;
}}

{screen} > Vertical {{
    width: 60;
    height: auto;
    border: thick $primary;
    background: $surface;
    padding: 1 2;
}}

{screen} .form-error {{
    color: $error;
    height: auto;
}}

{screen} .form-actions {{
    margin-top: 1;
    height: auto;
}}

{screen} .form-actions > Button {{
    margin-right: 1;
}}
"""


class ProfileFormScreen(ModalScreen[ConnectionProfileConfig | None]):
    """Collects profile fields; dismisses with the profile, or ``None`` on cancel."""

    DEFAULT_CSS = _FORM_CSS.format(screen="ProfileFormScreen")

    BINDINGS = [("escape", "cancel", "Cancel")]

    def __init__(self, profile: ConnectionProfileConfig | None = None) -> None:
        super().__init__(id="profile-form")
        self._profile = profile

    def compose(self) -> ComposeResult:
        profile = self._profile or ConnectionProfileConfig(id="", name="New server")
        with Vertical():
            yield Label("Edit profile" if self._profile else "New profile")
            yield Input(value=profile.name if self._profile else "", placeholder="Name", id="profile-name")
            yield Input(value=profile.host, placeholder="Host", id="profile-host")
            yield Input(value=str(profile.port), placeholder="Port", id="profile-port")
            yield Input(value=profile.user, placeholder="User", id="profile-user")
            yield Input(value=profile.password or "", password=True, placeholder="Password", id="profile-password")
            yield Checkbox("Save password", value=profile.save_password, id="profile-save-password")
            yield Static("", id="profile-error", classes="form-error")
            with Horizontal(classes="form-actions"):
                yield Button("Save", id="profile-save", variant="primary")
                yield Button("Cancel", id="profile-cancel")

    def on_button_pressed(self, event: Button.Pressed) -> None:
        if event.button.id == "profile-save":
            self._submit()
        elif event.button.id == "profile-cancel":
            self.dismiss(None)
        event.stop()

    def on_input_submitted(self, event: Input.Submitted) -> None:
        self._submit()
        event.stop()

    def action_cancel(self) -> None:
        self.dismiss(None)

    def _submit(self) -> None:
        password = self._value("#profile-password")
        try:
            profile = ConnectionProfileConfig(
                id=self._profile.id if self._profile else uuid4().hex,
                name=self._value("#profile-name").strip(),
                host=self._value("#profile-host").strip(),
                port=self._value("#profile-port").strip(),
                user=self._value("#profile-user").strip() or "postgres",
                password=password or None,
                save_password=self.query_one("#profile-save-password", Checkbox).value,
            )
        except ValidationError as exc:
            error = exc.errors()[0]
            field = ".".join(str(part) for part in error["loc"])
            self.query_one("#profile-error", Static).update(f"{field}: {error['msg']}")
            return
        self.dismiss(profile)

    def _value(self, selector: str) -> str:
        return self.query_one(selector, Input).value


class ConfirmScreen(ModalScreen[bool]):
    """Yes/no question; escape answers no."""

    DEFAULT_CSS = _FORM_CSS.format(screen="ConfirmScreen")

    BINDINGS = [("escape", "cancel", "Cancel")]

    def __init__(self, question: str) -> None:
        super().__init__(id="confirm")
        self._question = question

    def compose(self) -> ComposeResult:
        with Vertical():
            yield Label(self._question)
            with Horizontal(classes="form-actions"):
                yield Button("Delete", id="confirm-yes", variant="error")
                yield Button("Cancel", id="confirm-no")

    def on_button_pressed(self, event: Button.Pressed) -> None:
        self.dismiss(event.button.id == "confirm-yes")
        event.stop()

    def action_cancel(self) -> None:
        self.dismiss(False)


__all__ = ["ConfirmScreen", "ProfileFormScreen"]
